"""Error types for the protocol engine.

Errors that travel over the wire as JSON-RPC error objects derive from
:class:`RpcError` and carry ``code``/``message``/``data``.  Everything else
describes a local failure of the channel or of the configuration.
"""

from __future__ import annotations

from typing import Any

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
SERVER_NOT_INITIALIZED = -32002
APPLICATION_ERROR = -32000


class MCPError(Exception):
    """Base error for everything raised by mcplink."""


class TransportError(MCPError):
    """The channel could not be opened, a write failed, or the medium closed."""


class ConnectionClosedError(TransportError):
    """The connection ended before a reply arrived."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__("Connection closed" + (f": {detail}" if detail else ""))


class DecodeError(MCPError):
    """A received unit did not parse as a valid message.

    When the unit was recognisably a request, ``invalid_request`` holds the
    error to send back and ``request_id`` the id to send it with (``None``
    when the id itself was malformed).
    """

    def __init__(
        self,
        detail: str,
        *,
        invalid_request: InvalidRequestError | None = None,
        request_id: int | str | None = None,
    ) -> None:
        self.detail = detail
        self.invalid_request = invalid_request
        self.request_id = request_id
        super().__init__(f"Failed to decode message: {detail}")


class HandshakeError(MCPError):
    """The ``initialize`` exchange was rejected or never completed."""


class RequestTimeoutError(MCPError):
    """No reply arrived within the client's request timeout."""

    def __init__(self, method: str, timeout: float) -> None:
        self.method = method
        self.timeout = timeout
        super().__init__(f"Request {method!r} timed out after {timeout}s")


class ConfigError(MCPError):
    """A server configuration document is unreadable or invalid."""


class RpcError(MCPError):
    """An error that is encoded as a JSON-RPC error object."""

    default_code = APPLICATION_ERROR

    def __init__(self, message: str, *, code: int | None = None, data: Any = None) -> None:
        self.code = self.default_code if code is None else code
        self.message = message
        self.data = data
        super().__init__(f"[{self.code}] {message}")

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            payload["data"] = self.data
        return payload


class ProtocolError(RpcError):
    """A well-formed message broke the protocol rules."""

    default_code = INVALID_REQUEST


class ParseError(ProtocolError):
    default_code = PARSE_ERROR


class InvalidRequestError(ProtocolError):
    default_code = INVALID_REQUEST


class MethodNotFoundError(ProtocolError):
    default_code = METHOD_NOT_FOUND

    @classmethod
    def for_method(cls, method: str) -> MethodNotFoundError:
        return cls(f"Method not found: {method}", data={"method": method})


class InvalidParamsError(ProtocolError):
    default_code = INVALID_PARAMS


class NotInitializedError(ProtocolError):
    default_code = SERVER_NOT_INITIALIZED

    @classmethod
    def for_method(cls, method: str) -> NotInitializedError:
        return cls(f"Server not initialized (received {method!r})", data={"method": method})


class ApplicationError(RpcError):
    """A handler's own business-logic failure, e.g. division by zero."""

    default_code = APPLICATION_ERROR


_BY_CODE: dict[int, type[RpcError]] = {
    PARSE_ERROR: ParseError,
    INVALID_REQUEST: InvalidRequestError,
    METHOD_NOT_FOUND: MethodNotFoundError,
    INVALID_PARAMS: InvalidParamsError,
    SERVER_NOT_INITIALIZED: NotInitializedError,
}


def rpc_error_from_payload(code: int, message: str, data: Any = None) -> RpcError:
    """Rebuild the matching :class:`RpcError` subclass from a received error object.

    Codes outside the protocol set (including internal errors) come back as
    :class:`ApplicationError`.
    """
    cls = _BY_CODE.get(code, ApplicationError)
    return cls(message, code=code, data=data)
