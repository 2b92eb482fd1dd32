"""Client — correlates requests and replies over one :class:`Transport`.

One receive loop per client drains the transport's event queue and resolves
pending calls by id.  Replies may come back in any order; each call
completes when its own reply arrives.  Notification handlers and answers to
server-initiated requests run as their own tasks, so a slow handler never
holds up a reply, and :meth:`Client.close` cancels whatever is still running.
"""

from __future__ import annotations

import asyncio
import inspect
import itertools
import logging
import time
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from mcplink.protocol.errors import (
    ApplicationError,
    ConnectionClosedError,
    HandshakeError,
    MethodNotFoundError,
    ProtocolError,
    RequestTimeoutError,
    RpcError,
    TransportError,
    rpc_error_from_payload,
)
from mcplink.protocol.messages import (
    PROTOCOL_VERSION,
    InitializeResult,
    JsonRpcErrorResponse,
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResponse,
    Message,
    RequestId,
    ResourceDescriptor,
    ToolCallResult,
    ToolDescriptor,
)
from mcplink.transport.base import MessageReceived, Transport, TransportClosed, TransportFailed
from mcplink.utils.telemetry import ATTR_METHOD, ATTR_REQUEST_ID, ATTR_TOOL_NAME, ATTR_TRANSPORT, get_tracer, record_rpc_error

logger = logging.getLogger(__name__)

_tracer = get_tracer(__name__)

NotificationHandler = Callable[[dict[str, Any]], Awaitable[None] | None]


@dataclass
class PendingCall:
    id: RequestId
    method: str
    issued_at: float
    future: asyncio.Future[JsonRpcResponse | JsonRpcErrorResponse] = field(repr=False)


class Client:
    """Async context manager speaking to one server over *transport*.

    Usage::

        async with Client(StdioTransport.for_process(proc)) as client:
            tools = await client.list_tools()
            result = await client.call_tool("calculator", {"operation": "add", "a": 5, "b": 3})
            assert result.value == 8
    """

    def __init__(
        self,
        transport: Transport,
        *,
        client_name: str = "mcplink",
        client_version: str = "0.1.0",
        capabilities: dict[str, Any] | None = None,
        request_timeout: float | None = None,
    ) -> None:
        self._transport = transport
        self._client_info = {"name": client_name, "version": client_version}
        self._capabilities = capabilities or {}
        self._request_timeout = request_timeout
        self._ids = itertools.count(1)
        self._pending: dict[RequestId, PendingCall] = {}
        self._notification_handlers: dict[str, list[NotificationHandler]] = {}
        self._receive_task: asyncio.Task[None] | None = None
        self._background: set[asyncio.Task[None]] = set()
        self._initialize_result: InitializeResult | None = None
        self._ready = False
        self._closed = False
        self._lost_reason: str | None = None
        self._finished = asyncio.Event()

    async def __aenter__(self) -> Client:
        await self.connect()
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def connected(self) -> bool:
        return self._ready and not self._closed and self._lost_reason is None

    @property
    def server_capabilities(self) -> dict[str, Any]:
        return dict(self._initialize_result.capabilities) if self._initialize_result else {}

    @property
    def server_info(self) -> dict[str, Any]:
        return dict(self._initialize_result.server_info) if self._initialize_result else {}

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    # -- lifecycle --------------------------------------------------------

    async def connect(self) -> InitializeResult:
        """Start the transport and perform the ``initialize`` handshake.

        Raises:
            HandshakeError: If the transport cannot start, the server rejects
                the handshake, or the connection ends before it completes.
        """
        if self._closed:
            msg = "Client is closed"
            raise HandshakeError(msg)
        if self._receive_task is not None:
            msg = "Client already connected"
            raise HandshakeError(msg)

        try:
            await self._transport.start()
        except TransportError as exc:
            raise HandshakeError(f"Cannot start transport: {exc}") from exc
        self._receive_task = asyncio.create_task(self._receive_loop(), name=f"{self._transport.name}-client")

        try:
            raw = await self._request(
                "initialize",
                {
                    "protocolVersion": PROTOCOL_VERSION,
                    "capabilities": self._capabilities,
                    "clientInfo": self._client_info,
                },
            )
            result = InitializeResult.model_validate(raw)
            await self._transport.send(JsonRpcNotification(method="notifications/initialized"))
        except RpcError as exc:
            await self.close()
            raise HandshakeError(f"Server rejected initialize: {exc.message}") from exc
        except ValidationError as exc:
            await self.close()
            raise HandshakeError(f"Malformed initialize result: {exc}") from exc
        except (TransportError, RequestTimeoutError) as exc:
            await self.close()
            raise HandshakeError(f"Connection lost during handshake: {exc}") from exc
        except asyncio.CancelledError:
            await self.close()
            raise

        self._initialize_result = result
        self._ready = True
        logger.debug(
            "%s: connected to %s (protocol %s)",
            self._transport.name,
            result.server_info.get("name", "?"),
            result.protocol_version,
        )
        return result

    async def close(self) -> None:
        """Close the transport and fail every outstanding call.  Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._ready = False
        try:
            await self._transport.close()
            if self._receive_task is not None and self._receive_task is not asyncio.current_task():
                await self._receive_task
        finally:
            self._fail_pending("client closed")
            await self._cancel_background()
            self._finished.set()

    async def wait_closed(self) -> None:
        """Wait until the connection ends, locally or remotely."""
        await self._finished.wait()

    def on_notification(self, method: str, handler: NotificationHandler) -> None:
        """Call *handler* with the params of every *method* notification from the server."""
        self._notification_handlers.setdefault(method, []).append(handler)

    # -- calls ------------------------------------------------------------

    async def request(self, method: str, params: dict[str, Any] | None = None) -> Any:
        """Send a request after the handshake and return its ``result``.

        Raises:
            RpcError: The server answered with an error object.
            ConnectionClosedError: The connection ended before the reply.
        """
        if self._closed or self._lost_reason is not None:
            raise ConnectionClosedError(self._lost_reason or "client closed")
        if not self._ready:
            msg = "Client not connected"
            raise TransportError(msg)
        return await self._request(method, params)

    async def ping(self) -> None:
        await self.request("ping")

    async def list_tools(self) -> list[ToolDescriptor]:
        """Send ``tools/list`` and return the published tool descriptors."""
        result = await self.request("tools/list")
        return self._parse_list(result, "tools", ToolDescriptor)

    async def list_resources(self) -> list[ResourceDescriptor]:
        """Send ``resources/list`` and return the published resource descriptors."""
        result = await self.request("resources/list")
        return self._parse_list(result, "resources", ResourceDescriptor)

    async def read_resource(self, uri: str) -> list[dict[str, Any]]:
        """Send ``resources/read`` and return the resource contents."""
        result = await self.request("resources/read", {"uri": uri})
        contents = result.get("contents", []) if isinstance(result, dict) else []
        return list(contents)

    async def call_tool(self, name: str, params: dict[str, Any] | None = None) -> ToolCallResult:
        """Invoke tool *name* with *params*.

        Raises:
            ApplicationError: The tool failed; carries the server's code and message.
            ProtocolError: The call itself was invalid (unknown tool, bad params).
            ConnectionClosedError: The connection ended before the reply.
        """
        with _tracer.start_as_current_span("mcp.call_tool") as span:
            span.set_attribute(ATTR_TOOL_NAME, name)
            result = await self.request("tools/call", {"name": name, "params": params or {}})

        if isinstance(result, dict) and ("content" in result or "result" in result):
            try:
                call_result = ToolCallResult.model_validate(result)
            except ValidationError as exc:
                raise ProtocolError(f"Malformed tools/call result: {exc}") from exc
        else:
            call_result = ToolCallResult(content=[{"type": "text", "text": str(result)}], value=result)

        if call_result.is_error:
            raise ApplicationError(call_result.text or f"Tool {name!r} reported an error", data=call_result.value)
        return call_result

    # -- internals --------------------------------------------------------

    async def _request(self, method: str, params: dict[str, Any] | None = None) -> Any:
        if self._lost_reason is not None:
            raise ConnectionClosedError(self._lost_reason)
        if self._closed:
            raise ConnectionClosedError("client closed")

        timeout = self._request_timeout
        request_id = next(self._ids)
        future: asyncio.Future[JsonRpcResponse | JsonRpcErrorResponse] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = PendingCall(request_id, method, time.monotonic(), future)

        with _tracer.start_as_current_span("mcp.request") as span:
            span.set_attribute(ATTR_METHOD, method)
            span.set_attribute(ATTR_REQUEST_ID, str(request_id))
            span.set_attribute(ATTR_TRANSPORT, self._transport.name)
            try:
                await self._transport.send(JsonRpcRequest(id=request_id, method=method, params=params or {}))
                if timeout is None:
                    reply = await future
                else:
                    reply = await asyncio.wait_for(future, timeout=timeout)
            except asyncio.TimeoutError:
                raise RequestTimeoutError(method, timeout) from None
            finally:
                self._pending.pop(request_id, None)

            if isinstance(reply, JsonRpcErrorResponse):
                error = reply.error
                record_rpc_error(span, error.code, error.message)
                raise rpc_error_from_payload(error.code, error.message, error.data)
        return reply.result

    async def _receive_loop(self) -> None:
        failure: str | None = None
        reason = "connection closed"
        try:
            async for event in self._transport.events():
                if isinstance(event, MessageReceived):
                    await self._handle_message(event.message)
                elif isinstance(event, TransportFailed):
                    if event.fatal:
                        failure = str(event.error)
                        logger.warning("%s: transport failed: %s", self._transport.name, event.error)
                    else:
                        logger.warning("%s: ignoring transport fault: %s", self._transport.name, event.error)
                elif isinstance(event, TransportClosed):
                    reason = failure or event.reason or reason
        finally:
            self._lost_reason = reason
            self._ready = False
            self._fail_pending(reason)
            self._finished.set()

    async def _handle_message(self, message: Message) -> None:
        if isinstance(message, (JsonRpcResponse, JsonRpcErrorResponse)):
            self._resolve(message)
        elif isinstance(message, JsonRpcNotification):
            if message.method in self._notification_handlers:
                self._spawn(self._dispatch_notification(message), f"notify-{message.method}")
        else:
            self._spawn(self._answer_server_request(message), f"answer-{message.method}")

    def _spawn(self, coro: Coroutine[Any, Any, None], label: str) -> None:
        task = asyncio.create_task(coro, name=f"{self._transport.name}-{label}")
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _resolve(self, reply: JsonRpcResponse | JsonRpcErrorResponse) -> None:
        pending = self._pending.pop(reply.id, None) if reply.id is not None else None
        if pending is None:
            if isinstance(reply, JsonRpcErrorResponse):
                logger.warning(
                    "%s: discarding uncorrelated error reply (id=%r): %s",
                    self._transport.name,
                    reply.id,
                    reply.error.message,
                )
            else:
                logger.warning("%s: discarding reply with unknown id %r", self._transport.name, reply.id)
            return
        if not pending.future.done():
            pending.future.set_result(reply)

    async def _dispatch_notification(self, notification: JsonRpcNotification) -> None:
        for handler in self._notification_handlers.get(notification.method, []):
            try:
                outcome = handler(notification.params)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:
                logger.exception("%s: notification handler for %s failed", self._transport.name, notification.method)

    async def _answer_server_request(self, request: JsonRpcRequest) -> None:
        reply: JsonRpcResponse | JsonRpcErrorResponse
        if request.method == "ping":
            reply = JsonRpcResponse(id=request.id, result={})
        else:
            error = MethodNotFoundError.for_method(request.method)
            reply = JsonRpcErrorResponse.model_validate({"id": request.id, "error": error.to_payload()})
        try:
            await self._transport.send(reply)
        except TransportError as exc:
            logger.warning("%s: cannot answer server request %s: %s", self._transport.name, request.method, exc)

    async def _cancel_background(self) -> None:
        current = asyncio.current_task()
        tasks = [task for task in self._background if task is not current]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _fail_pending(self, reason: str) -> None:
        pending, self._pending = self._pending, {}
        for call in pending.values():
            if not call.future.done():
                call.future.set_exception(ConnectionClosedError(reason))

    @staticmethod
    def _parse_list(result: Any, key: str, model: type[Any]) -> list[Any]:
        items = result.get(key, []) if isinstance(result, dict) else result
        if not isinstance(items, list):
            raise ProtocolError(f"Malformed {key} list: expected an array")
        try:
            return [model.model_validate(item) for item in items]
        except ValidationError as exc:
            raise ProtocolError(f"Malformed {key} list: {exc}") from exc
