"""Protocol layer — wire models, codec and error taxonomy."""

from mcplink.protocol.codec import decode, encode
from mcplink.protocol.errors import (
    ApplicationError,
    ConfigError,
    ConnectionClosedError,
    DecodeError,
    HandshakeError,
    InvalidParamsError,
    InvalidRequestError,
    MCPError,
    MethodNotFoundError,
    NotInitializedError,
    ProtocolError,
    RequestTimeoutError,
    RpcError,
    TransportError,
)
from mcplink.protocol.messages import (
    JsonRpcError,
    JsonRpcErrorResponse,
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResponse,
    Message,
    ResourceDescriptor,
    ToolCallResult,
    ToolDescriptor,
)

__all__ = [
    "ApplicationError",
    "ConfigError",
    "ConnectionClosedError",
    "DecodeError",
    "HandshakeError",
    "InvalidParamsError",
    "InvalidRequestError",
    "JsonRpcError",
    "JsonRpcErrorResponse",
    "JsonRpcNotification",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "MCPError",
    "Message",
    "MethodNotFoundError",
    "NotInitializedError",
    "ProtocolError",
    "RequestTimeoutError",
    "ResourceDescriptor",
    "RpcError",
    "ToolCallResult",
    "ToolDescriptor",
    "TransportError",
    "decode",
    "encode",
]
