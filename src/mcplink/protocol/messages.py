"""Protocol models — JSON-RPC 2.0 envelopes and MCP payloads.

Every message on the wire is one of four envelopes (request, response,
error response, notification).  The MCP payload models describe what the
``initialize``, ``tools/*`` and ``resources/*`` methods carry.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

JSONRPC_VERSION = "2.0"
PROTOCOL_VERSION = "2024-11-05"

RequestId = int | str

# ---------------------------------------------------------------------------
# JSON-RPC 2.0 envelope
# ---------------------------------------------------------------------------


class JsonRpcRequest(BaseModel):
    """A request; the peer must answer with a response or error response."""

    jsonrpc: str = JSONRPC_VERSION
    id: RequestId
    method: str
    params: dict[str, Any] = {}


class JsonRpcNotification(BaseModel):
    """A one-way message; never answered, not even with an error."""

    jsonrpc: str = JSONRPC_VERSION
    method: str
    params: dict[str, Any] = {}


class JsonRpcError(BaseModel):
    """A JSON-RPC 2.0 error object."""

    code: int
    message: str
    data: Any = None


class JsonRpcResponse(BaseModel):
    """A successful reply."""

    jsonrpc: str = JSONRPC_VERSION
    id: RequestId
    result: Any = None


class JsonRpcErrorResponse(BaseModel):
    """A failed reply.  ``id`` is ``None`` only when the request id was unreadable."""

    jsonrpc: str = JSONRPC_VERSION
    id: RequestId | None
    error: JsonRpcError


Message = JsonRpcRequest | JsonRpcNotification | JsonRpcResponse | JsonRpcErrorResponse


# ---------------------------------------------------------------------------
# MCP-specific payloads
# ---------------------------------------------------------------------------


class ToolDescriptor(BaseModel):
    """A tool definition as returned by ``tools/list``."""

    model_config = {"populate_by_name": True, "frozen": True}

    name: str
    description: str = ""
    input_schema: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}},
        alias="inputSchema",
    )


class ResourceDescriptor(BaseModel):
    """A readable resource as returned by ``resources/list``."""

    model_config = {"populate_by_name": True, "frozen": True}

    uri: str
    name: str
    description: str = ""
    mime_type: str | None = Field(default=None, alias="mimeType")


class InitializeResult(BaseModel):
    """The server's reply to ``initialize``."""

    model_config = {"populate_by_name": True}

    protocol_version: str = Field(alias="protocolVersion")
    capabilities: dict[str, Any] = {}
    server_info: dict[str, Any] = Field(default_factory=dict, alias="serverInfo")


class ToolCallResult(BaseModel):
    """The reply to ``tools/call``.

    ``value`` is the handler's raw return value; ``content`` carries the same
    value rendered as MCP text content.
    """

    model_config = {"populate_by_name": True}

    content: list[dict[str, Any]] = []
    value: Any = Field(default=None, alias="result")
    is_error: bool = Field(default=False, alias="isError")

    @property
    def text(self) -> str:
        """Concatenate all text content items."""
        parts = [str(item.get("text", "")) for item in self.content if item.get("type") == "text"]
        return "\n".join(parts)
