"""mcplink — bidirectional JSON-RPC tool servers and clients over pipes and HTTP-SSE."""

from __future__ import annotations

from typing import TYPE_CHECKING

__version__ = "0.1.0"

if TYPE_CHECKING:
    from mcplink.client import Client as Client
    from mcplink.manager.connection_manager import ConnectionManager as ConnectionManager
    from mcplink.server.dispatch import Server as Server
    from mcplink.transport.http_sse import HttpSseTransport as HttpSseTransport
    from mcplink.transport.stdio import StdioTransport as StdioTransport

_EXPORTS = {
    "Client": "mcplink.client",
    "ConnectionManager": "mcplink.manager.connection_manager",
    "Server": "mcplink.server.dispatch",
    "HttpSseTransport": "mcplink.transport.http_sse",
    "StdioTransport": "mcplink.transport.stdio",
}


def __getattr__(name: str) -> object:
    module_path = _EXPORTS.get(name)
    if module_path is not None:
        import importlib

        mod = importlib.import_module(module_path)
        return getattr(mod, name)
    raise AttributeError(f"module 'mcplink' has no attribute {name!r}")
