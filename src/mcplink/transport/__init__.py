"""Transports — duplex message channels carrying framed JSON-RPC messages."""

from mcplink.transport.base import (
    MessageReceived,
    Transport,
    TransportClosed,
    TransportEvent,
    TransportFailed,
)
from mcplink.transport.http_sse import HttpSseTransport
from mcplink.transport.stdio import LineFramer, StdioTransport

__all__ = [
    "HttpSseTransport",
    "LineFramer",
    "MessageReceived",
    "StdioTransport",
    "Transport",
    "TransportClosed",
    "TransportEvent",
    "TransportFailed",
]
