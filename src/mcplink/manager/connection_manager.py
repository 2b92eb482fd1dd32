"""ConnectionManager — spawns, connects and supervises server subprocesses.

Each configured server gets its own subprocess, :class:`StdioTransport` and
:class:`Client`.  Connections are independent: one server failing to start
or exiting later never affects the others.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from mcplink.client import Client
from mcplink.manager.config import MCPConfig, ServerConfig, load_config, parse_config
from mcplink.manager.process import ServerProcess
from mcplink.protocol.errors import HandshakeError
from mcplink.transport.stdio import StdioTransport
from mcplink.utils.telemetry import ATTR_SERVER_NAME, get_tracer

logger = logging.getLogger(__name__)

_tracer = get_tracer(__name__)


@dataclass
class ConnectionRecord:
    """A registered server: its config, process and connected client."""

    name: str
    config: ServerConfig
    process: ServerProcess
    client: Client
    watcher: asyncio.Task[None] | None = field(default=None, repr=False)


@dataclass
class InitializeReport:
    """Outcome of :meth:`ConnectionManager.initialize`."""

    connected: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


class ConnectionManager:
    """Owns the name → :class:`ConnectionRecord` registry.

    Usage::

        async with ConnectionManager() as manager:
            report = await manager.initialize("servers.yaml")
            client = manager.get_client("calculator")
            if client is not None:
                result = await client.call_tool("calculator", {"operation": "add", "a": 5, "b": 3})

    Registering, deregistering on exit and clearing on :meth:`cleanup` all
    happen under one lock.
    """

    def __init__(
        self,
        *,
        handshake_timeout: float = 30.0,
        shutdown_grace: float = 5.0,
        client_name: str = "mcplink",
        request_timeout: float | None = None,
    ) -> None:
        self._handshake_timeout = handshake_timeout
        self._shutdown_grace = shutdown_grace
        self._client_name = client_name
        self._request_timeout = request_timeout
        self._records: dict[str, ConnectionRecord] = {}
        self._lock = asyncio.Lock()

    async def __aenter__(self) -> ConnectionManager:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.cleanup()

    # -- queries ----------------------------------------------------------

    @property
    def server_names(self) -> list[str]:
        return list(self._records)

    def get_client(self, name: str) -> Client | None:
        record = self._records.get(name)
        return record.client if record is not None else None

    def get_record(self, name: str) -> ConnectionRecord | None:
        return self._records.get(name)

    # -- lifecycle --------------------------------------------------------

    async def initialize(self, config: MCPConfig | Mapping[str, Any] | str | Path) -> InitializeReport:
        """Connect every configured server.

        Servers are started concurrently.  A server that fails to spawn or
        handshake is logged and listed in :attr:`InitializeReport.failed`;
        the others are still registered.

        Raises:
            ConfigError: If *config* cannot be loaded or validated.
        """
        mcp_config = _coerce_config(config)
        names = list(mcp_config.servers)
        results = await asyncio.gather(
            *(self.connect_server(name, mcp_config.servers[name]) for name in names),
            return_exceptions=True,
        )

        report = InitializeReport()
        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                logger.error("Server %s failed to start: %s", name, result)
                report.failed[name] = str(result) or type(result).__name__
            else:
                report.connected.append(name)
        logger.info("Connected %d of %d servers", len(report.connected), len(names))
        return report

    async def connect_server(self, name: str, config: ServerConfig) -> Client:
        """Spawn *config*, handshake and register it under *name*.

        Whatever was started is torn down again if any step fails.

        Raises:
            ValueError: If *name* is already registered.
            TransportError: If the subprocess cannot be spawned.
            HandshakeError: If the handshake fails or times out.
        """
        if name in self._records:
            msg = f"Server {name!r} is already connected"
            raise ValueError(msg)

        with _tracer.start_as_current_span("mcp.connect") as span:
            span.set_attribute(ATTR_SERVER_NAME, name)
            process = await ServerProcess.spawn(name, config)
            client = Client(
                StdioTransport.for_process(process.process, name=name),
                client_name=self._client_name,
                request_timeout=self._request_timeout,
            )
            try:
                await asyncio.wait_for(client.connect(), timeout=self._handshake_timeout)
            except asyncio.TimeoutError:
                await self._teardown(name, client, process)
                raise HandshakeError(f"Server {name!r} did not answer initialize within {self._handshake_timeout}s") from None
            except BaseException:
                await self._teardown(name, client, process)
                raise

        async with self._lock:
            if name in self._records:
                await self._teardown(name, client, process)
                msg = f"Server {name!r} is already connected"
                raise ValueError(msg)
            record = ConnectionRecord(name=name, config=config, process=process, client=client)
            self._records[name] = record
            record.watcher = asyncio.create_task(self._watch_exit(record), name=f"{name}-exit-watcher")

        logger.info("Server %s connected (pid %s)", name, process.pid)
        return client

    async def cleanup(self) -> None:
        """Close every client and terminate every subprocess.

        Errors are logged per server and never stop the others.  The
        registry is empty afterwards and :meth:`initialize` may run again.
        """
        async with self._lock:
            records = list(self._records.values())
            self._records.clear()

            watchers = [r.watcher for r in records if r.watcher is not None]
            for watcher in watchers:
                watcher.cancel()
            await asyncio.gather(*watchers, return_exceptions=True)

            for record in records:
                await self._teardown(record.name, record.client, record.process)

        if records:
            logger.info("Cleaned up %d servers", len(records))

    # -- internals --------------------------------------------------------

    async def _watch_exit(self, record: ConnectionRecord) -> None:
        code = await record.process.wait()
        async with self._lock:
            if self._records.get(record.name) is not record:
                return
            del self._records[record.name]
            logger.warning("Server %s exited with code %s; removed from registry", record.name, code)
            try:
                await record.client.close()
            except Exception:
                logger.exception("Error closing client for exited server %s", record.name)

    async def _teardown(self, name: str, client: Client, process: ServerProcess) -> None:
        try:
            await client.close()
        except Exception:
            logger.exception("Error closing client for server %s", name)
        try:
            code = await process.terminate(self._shutdown_grace)
        except Exception:
            logger.exception("Error terminating server %s", name)
        else:
            logger.debug("Server %s terminated with code %s", name, code)


def _coerce_config(config: MCPConfig | Mapping[str, Any] | str | Path) -> MCPConfig:
    if isinstance(config, MCPConfig):
        return config
    if isinstance(config, (str, Path)):
        return load_config(config)
    return parse_config(config)
