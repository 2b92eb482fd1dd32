"""Tool and resource registries for :class:`~mcplink.server.dispatch.Server`.

Descriptors are frozen once a session is initialized: clients may cache the
``tools/list`` result for the lifetime of the session.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from mcplink.protocol.messages import ResourceDescriptor, ToolDescriptor

ToolHandler = Callable[[dict[str, Any]], Any | Awaitable[Any]]
ResourceReader = Callable[[], str | bytes | Awaitable[str | bytes]]

D = TypeVar("D", ToolDescriptor, ResourceDescriptor)
H = TypeVar("H")


@dataclass(frozen=True)
class Registration(Generic[D, H]):
    descriptor: D
    handler: H


class _Registry(Generic[D, H]):
    kind = "entry"

    def __init__(self) -> None:
        self._entries: dict[str, Registration[D, H]] = {}
        self._frozen = False

    def _add(self, key: str, descriptor: D, handler: H) -> None:
        if self._frozen:
            msg = f"Cannot register {self.kind} {key!r}: descriptors are already published"
            raise RuntimeError(msg)
        if key in self._entries:
            msg = f"Duplicate {self.kind}: {key}"
            raise ValueError(msg)
        self._entries[key] = Registration(descriptor, handler)

    def get(self, key: str) -> Registration[D, H] | None:
        return self._entries.get(key)

    def descriptors(self) -> list[D]:
        return [entry.descriptor for entry in self._entries.values()]

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class ToolRegistry(_Registry[ToolDescriptor, ToolHandler]):
    """Maps tool names to descriptors and handlers."""

    kind = "tool"

    def register(self, descriptor: ToolDescriptor, handler: ToolHandler) -> None:
        self._add(descriptor.name, descriptor, handler)


class ResourceRegistry(_Registry[ResourceDescriptor, ResourceReader]):
    """Maps resource URIs to descriptors and readers."""

    kind = "resource"

    def register(self, descriptor: ResourceDescriptor, reader: ResourceReader) -> None:
        self._add(descriptor.uri, descriptor, reader)
