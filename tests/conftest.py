"""Shared fixtures: an in-memory transport pair and a calculator config."""

from __future__ import annotations

import json
import sys
from collections.abc import Callable
from typing import Any

import pytest

from mcplink.transport.base import Transport


class LinkedTransport(Transport):
    """In-memory transport; whatever one end writes, the other end receives."""

    def __init__(self, *, name: str = "memory") -> None:
        super().__init__(name=name)
        self.peer: LinkedTransport | None = None
        self.sent: list[dict[str, Any]] = []

    async def _open(self) -> None:
        pass

    async def _write(self, data: bytes) -> None:
        self.sent.append(json.loads(data))
        if self.peer is not None:
            self.peer._deliver(data)

    async def _shutdown(self) -> None:
        if self.peer is not None:
            self.peer._emit_closed("peer closed")

    def inject(self, raw: bytes | str) -> None:
        """Deliver *raw* as if the peer had written it."""
        self._deliver(raw)


def _make_pair() -> tuple[LinkedTransport, LinkedTransport]:
    client_end = LinkedTransport(name="client-end")
    server_end = LinkedTransport(name="server-end")
    client_end.peer = server_end
    server_end.peer = client_end
    return client_end, server_end


@pytest.fixture()
def linked_pair() -> Callable[[], tuple[LinkedTransport, LinkedTransport]]:
    """Factory for connected (client_end, server_end) transports."""
    return _make_pair


@pytest.fixture()
def calculator_server_config() -> dict[str, Any]:
    """A server entry that launches the bundled calculator with this interpreter."""
    return {"command": sys.executable, "args": ["-m", "mcplink.servers.calculator"]}
