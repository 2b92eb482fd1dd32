"""Message codec — turns envelopes into bytes and back.

Framing (newline, SSE event) is the transport's job; the codec only deals
with one complete encoded unit at a time.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ValidationError

from mcplink.protocol.errors import DecodeError, InvalidRequestError
from mcplink.protocol.messages import (
    JsonRpcErrorResponse,
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResponse,
    Message,
)


def to_wire(message: Message) -> dict[str, Any]:
    """Return the JSON-ready dict for *message*."""
    data = message.model_dump(by_alias=True)
    if isinstance(message, JsonRpcErrorResponse) and data["error"].get("data") is None:
        data["error"].pop("data", None)
    return data


def encode(message: Message) -> bytes:
    """Encode *message* as compact UTF-8 JSON without a trailing terminator."""
    return json.dumps(to_wire(message), separators=(",", ":")).encode("utf-8")


def decode(raw: bytes | str) -> Message:
    """Parse one encoded unit into a message.

    Raises:
        DecodeError: If *raw* is not JSON or matches no envelope shape.
    """
    try:
        data: Any = json.loads(raw)
    except ValueError as exc:
        raise DecodeError(str(exc)) from exc
    if not isinstance(data, dict):
        raise DecodeError(f"expected a JSON object, got {type(data).__name__}")
    return from_wire(data)


def from_wire(data: dict[str, Any]) -> Message:
    """Classify and validate an already-parsed JSON object."""
    has_id = "id" in data

    if "method" in data:
        if not isinstance(data["method"], str):
            raise DecodeError("'method' must be a string")
        if not has_id:
            return _validate(JsonRpcNotification, data)
        request_id = data["id"]
        if not _is_valid_id(request_id):
            raise DecodeError(
                f"invalid request id {request_id!r}",
                invalid_request=InvalidRequestError("Request id must be a string or an integer"),
            )
        try:
            return JsonRpcRequest.model_validate(data)
        except ValidationError as exc:
            raise DecodeError(
                str(exc),
                invalid_request=InvalidRequestError(f"Malformed request: {exc.errors()[0]['msg']}"),
                request_id=request_id,
            ) from exc

    if has_id and "error" in data:
        return _validate(JsonRpcErrorResponse, data)
    if has_id and "result" in data:
        return _validate(JsonRpcResponse, data)
    raise DecodeError("not a request, response or notification")


def _is_valid_id(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    return isinstance(value, (int, str))


def _validate(model: type[BaseModel], data: dict[str, Any]) -> Any:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise DecodeError(str(exc)) from exc
