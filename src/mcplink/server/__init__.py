"""Server side — request validation, routing and the session state machine."""

from mcplink.server.dispatch import Server, SessionState
from mcplink.server.registry import ResourceRegistry, ToolRegistry

__all__ = [
    "ResourceRegistry",
    "Server",
    "SessionState",
    "ToolRegistry",
]
