"""Server — validates inbound requests and routes them to handlers.

A session moves ``UNINITIALIZED → INITIALIZED → CLOSED`` and never back.
``initialize`` is handled inline by the read loop so the state change is
visible to the very next message.  Every other request is checked against
the session state as it is read, then runs in its own task; all replies
funnel through the transport's single-writer ``send``.
"""

from __future__ import annotations

import asyncio
import base64
import inspect
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from mcplink.protocol.errors import (
    INTERNAL_ERROR,
    ApplicationError,
    DecodeError,
    InvalidParamsError,
    InvalidRequestError,
    MethodNotFoundError,
    NotInitializedError,
    RpcError,
    TransportError,
)
from mcplink.protocol.messages import (
    PROTOCOL_VERSION,
    JsonRpcErrorResponse,
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResponse,
    Message,
    RequestId,
    ResourceDescriptor,
    ToolDescriptor,
)
from mcplink.server.registry import ResourceReader, ResourceRegistry, ToolHandler, ToolRegistry
from mcplink.transport.base import MessageReceived, Transport, TransportFailed
from mcplink.transport.stdio import StdioTransport
from mcplink.utils.telemetry import ATTR_METHOD, ATTR_REQUEST_ID, ATTR_TOOL_NAME, get_tracer, record_rpc_error

logger = logging.getLogger(__name__)

_tracer = get_tracer(__name__)

MethodHandler = Callable[[dict[str, Any]], Awaitable[Any]]


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    CLOSED = "closed"


class Server:
    """Serves registered tools and resources over one transport.

    Usage::

        server = Server("calculator")

        @server.tool(
            description="Double a number.",
            input_schema={"type": "object", "properties": {"a": {"type": "number"}}},
        )
        def double(params: dict) -> float:
            return params["a"] * 2

        await server.run_stdio()

    Plain-function handlers run on the event loop; long-running work belongs
    in ``async`` handlers.
    """

    def __init__(self, name: str, version: str = "0.1.0") -> None:
        self.name = name
        self.version = version
        self.tools = ToolRegistry()
        self.resources = ResourceRegistry()
        self.client_info: dict[str, Any] = {}
        self._state = SessionState.UNINITIALIZED
        self._transport: Transport | None = None
        self._inflight: set[asyncio.Task[None]] = set()
        self._methods: dict[str, MethodHandler] = {
            "initialize": self._handle_initialize,
            "ping": self._handle_ping,
            "tools/list": self._handle_list_tools,
            "tools/call": self._handle_call_tool,
            "resources/list": self._handle_list_resources,
            "resources/read": self._handle_read_resource,
        }

    @property
    def state(self) -> SessionState:
        return self._state

    # -- registration -----------------------------------------------------

    def add_tool(self, descriptor: ToolDescriptor, handler: ToolHandler) -> None:
        self.tools.register(descriptor, handler)

    def tool(
        self,
        name: str | None = None,
        *,
        description: str | None = None,
        input_schema: dict[str, Any] | None = None,
    ) -> Callable[[ToolHandler], ToolHandler]:
        """Decorator registering a function as a tool.

        The name defaults to the function name and the description to the
        first line of its docstring.
        """

        def decorator(func: ToolHandler) -> ToolHandler:
            doc = inspect.getdoc(func) or ""
            fields: dict[str, Any] = {
                "name": name or getattr(func, "__name__", "tool"),
                "description": description if description is not None else doc.split("\n", 1)[0],
            }
            if input_schema is not None:
                fields["input_schema"] = input_schema
            self.add_tool(ToolDescriptor(**fields), func)
            return func

        return decorator

    def add_resource(self, descriptor: ResourceDescriptor, reader: ResourceReader) -> None:
        self.resources.register(descriptor, reader)

    def capabilities(self) -> dict[str, Any]:
        return {
            "tools": {"listChanged": False},
            "resources": {"subscribe": False, "listChanged": False},
            "prompts": {},
        }

    # -- serving ----------------------------------------------------------

    async def serve(self, transport: Transport) -> None:
        """Process messages from *transport* until it closes or :meth:`close` is called."""
        if self._transport is not None:
            msg = f"Server {self.name!r} is already serving"
            raise RuntimeError(msg)
        self._transport = transport
        await transport.start()
        try:
            async for event in transport.events():
                if self._state is SessionState.CLOSED:
                    continue
                if isinstance(event, MessageReceived):
                    await self._on_message(event.message)
                elif isinstance(event, TransportFailed):
                    await self._on_fault(event)
        finally:
            self._state = SessionState.CLOSED
            await self._cancel_inflight()
            await transport.close()

    async def run_stdio(self) -> None:
        """Serve over this process's own stdin/stdout."""
        transport = await StdioTransport.open_pipes(sys.stdin, sys.stdout, name=self.name)
        await self.serve(transport)

    async def close(self) -> None:
        """Stop processing requests and close the transport."""
        if self._state is SessionState.CLOSED:
            return
        self._state = SessionState.CLOSED
        if self._transport is not None:
            await self._transport.close()

    async def _on_message(self, message: Message) -> None:
        if isinstance(message, JsonRpcNotification):
            self._on_notification(message)
        elif isinstance(message, (JsonRpcResponse, JsonRpcErrorResponse)):
            logger.debug("%s: ignoring unsolicited reply (id=%r)", self.name, message.id)
        elif message.method == "initialize":
            await self._handle_request(message)
        elif self._state is SessionState.UNINITIALIZED:
            await self._send_error(message.id, NotInitializedError.for_method(message.method))
        else:
            task = asyncio.create_task(self._handle_request(message), name=f"{self.name}-{message.method}")
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)

    async def _on_fault(self, event: TransportFailed) -> None:
        error = event.error
        if isinstance(error, DecodeError) and error.invalid_request is not None:
            await self._send_error(error.request_id, error.invalid_request)
        elif event.fatal:
            logger.warning("%s: transport failed: %s", self.name, error)

    def _on_notification(self, notification: JsonRpcNotification) -> None:
        if notification.method in self._methods:
            logger.warning(
                "%s: %s received without an id; requests need an id, dropping it",
                self.name,
                notification.method,
            )
        else:
            logger.debug("%s: notification %s", self.name, notification.method)

    async def _handle_request(self, request: JsonRpcRequest) -> None:
        with _tracer.start_as_current_span("mcp.dispatch") as span:
            span.set_attribute(ATTR_METHOD, request.method)
            span.set_attribute(ATTR_REQUEST_ID, str(request.id))
            try:
                result = await self._dispatch(request)
            except RpcError as exc:
                record_rpc_error(span, exc.code, exc.message)
                await self._send_error(request.id, exc)
                return
            except Exception as exc:
                logger.exception("%s: handler for %s failed", self.name, request.method)
                record_rpc_error(span, INTERNAL_ERROR, str(exc))
                await self._send_error(request.id, ApplicationError(f"Internal error: {exc}", code=INTERNAL_ERROR))
                return
        await self._send(JsonRpcResponse(id=request.id, result=result))

    async def _dispatch(self, request: JsonRpcRequest) -> Any:
        handler = self._methods.get(request.method)
        if handler is None:
            raise MethodNotFoundError.for_method(request.method)
        return await handler(request.params)

    async def _send(self, message: JsonRpcResponse | JsonRpcErrorResponse) -> None:
        if self._transport is None:
            return
        try:
            await self._transport.send(message)
        except TransportError as exc:
            logger.warning("%s: cannot send reply (id=%r): %s", self.name, message.id, exc)
        except (TypeError, ValueError) as exc:
            if not isinstance(message, JsonRpcResponse):
                raise
            logger.error("%s: result for id=%r is not JSON-serializable: %s", self.name, message.id, exc)
            await self._send_error(
                message.id, ApplicationError(f"Internal error: unserializable result: {exc}", code=INTERNAL_ERROR)
            )

    async def _send_error(self, request_id: RequestId | None, error: RpcError) -> None:
        await self._send(JsonRpcErrorResponse.model_validate({"id": request_id, "error": error.to_payload()}))

    async def _cancel_inflight(self) -> None:
        tasks = list(self._inflight)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # -- method handlers --------------------------------------------------

    async def _handle_initialize(self, params: dict[str, Any]) -> dict[str, Any]:
        if self._state is not SessionState.UNINITIALIZED:
            msg = "Server already initialized"
            raise InvalidRequestError(msg)
        client_info = params.get("clientInfo")
        self.client_info = dict(client_info) if isinstance(client_info, dict) else {}
        self.tools.freeze()
        self.resources.freeze()
        self._state = SessionState.INITIALIZED
        logger.info("%s: session initialized by %s", self.name, self.client_info.get("name", "unknown client"))
        return {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": self.capabilities(),
            "serverInfo": {"name": self.name, "version": self.version},
        }

    async def _handle_ping(self, params: dict[str, Any]) -> dict[str, Any]:
        return {}

    async def _handle_list_tools(self, params: dict[str, Any]) -> dict[str, Any]:
        return {"tools": [tool.model_dump(by_alias=True) for tool in self.tools.descriptors()]}

    async def _handle_call_tool(self, params: dict[str, Any]) -> dict[str, Any]:
        name = params.get("name")
        if not isinstance(name, str) or not name:
            msg = "tools/call requires a string 'name'"
            raise InvalidParamsError(msg)
        arguments = params.get("params", params.get("arguments"))
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            msg = f"Parameters for tool {name!r} must be an object"
            raise InvalidParamsError(msg)
        registration = self.tools.get(name)
        if registration is None:
            raise InvalidParamsError(f"Unknown tool: {name}", data={"name": name})

        with _tracer.start_as_current_span("mcp.tool") as span:
            span.set_attribute(ATTR_TOOL_NAME, name)
            value = registration.handler(arguments)
            if inspect.isawaitable(value):
                value = await value

        text = value if isinstance(value, str) else json.dumps(value)
        return {"content": [{"type": "text", "text": text}], "result": value}

    async def _handle_list_resources(self, params: dict[str, Any]) -> dict[str, Any]:
        return {
            "resources": [
                resource.model_dump(by_alias=True, exclude_none=True) for resource in self.resources.descriptors()
            ]
        }

    async def _handle_read_resource(self, params: dict[str, Any]) -> dict[str, Any]:
        uri = params.get("uri")
        if not isinstance(uri, str):
            msg = "resources/read requires a string 'uri'"
            raise InvalidParamsError(msg)
        registration = self.resources.get(uri)
        if registration is None:
            raise InvalidParamsError(f"Unknown resource: {uri}", data={"uri": uri})

        content = registration.handler()
        if inspect.isawaitable(content):
            content = await content

        entry: dict[str, Any] = {"uri": uri}
        if registration.descriptor.mime_type:
            entry["mimeType"] = registration.descriptor.mime_type
        if isinstance(content, bytes):
            entry["blob"] = base64.b64encode(content).decode("ascii")
        elif isinstance(content, str):
            entry["text"] = content
        else:
            msg = f"Reader for {uri} returned {type(content).__name__}, expected str or bytes"
            raise ApplicationError(msg, code=INTERNAL_ERROR)
        return {"contents": [entry]}
