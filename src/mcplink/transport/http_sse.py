"""HTTP-push transport — POST per outbound message, Server-Sent Events inbound.

The client opens one long-lived ``GET`` carrying ``text/event-stream``.
Each default (``message``) event holds one JSON message.  An ``endpoint``
event, when the server sends one, names the URL subsequent POSTs go to.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

import httpx

from mcplink.protocol.errors import TransportError
from mcplink.transport.base import Transport

logger = logging.getLogger(__name__)


@dataclass
class ServerSentEvent:
    event: str = "message"
    data: str = ""
    id: str | None = None


class SseParser:
    """Incremental parser for the ``text/event-stream`` line format."""

    def __init__(self) -> None:
        self._event = ""
        self._data: list[str] = []
        self._id: str | None = None

    def feed_line(self, line: str) -> ServerSentEvent | None:
        """Consume one line (without terminator); return an event on blank lines."""
        if not line:
            return self._dispatch()
        if line.startswith(":"):
            return None
        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "event":
            self._event = value
        elif name == "data":
            self._data.append(value)
        elif name == "id":
            self._id = value
        return None

    def _dispatch(self) -> ServerSentEvent | None:
        event: ServerSentEvent | None = None
        if self._data:
            event = ServerSentEvent(event=self._event or "message", data="\n".join(self._data), id=self._id)
        self._event = ""
        self._data = []
        return event


class HttpSseTransport(Transport):
    """Talks to a remote server over HTTP POST + an SSE push stream.

    Usage::

        transport = HttpSseTransport("https://tools.example.com/sse", headers={"X-Team": "a"})
        async with Client(transport) as client:
            tools = await client.list_tools()
    """

    def __init__(
        self,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        post_url: str | None = None,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
        name: str = "http-sse",
    ) -> None:
        super().__init__(name=name)
        self._url = url
        self._post_url = post_url or url
        self._headers = dict(headers or {})
        self._timeout = timeout
        self._client = http_client
        self._owns_client = http_client is None
        self._stream: httpx.Response | None = None
        self._read_task: asyncio.Task[None] | None = None

    @property
    def post_url(self) -> str:
        return self._post_url

    async def _open(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self._timeout, read=None))
        request = self._client.build_request(
            "GET",
            self._url,
            headers={**self._headers, "Accept": "text/event-stream"},
        )
        try:
            response = await self._client.send(request, stream=True)
        except httpx.HTTPError as exc:
            await self._release_client()
            raise TransportError(f"{self.name}: cannot open event stream: {exc}") from exc
        if not response.is_success:
            await response.aclose()
            await self._release_client()
            msg = f"{self.name}: event stream rejected: HTTP {response.status_code} {response.reason_phrase}"
            raise TransportError(msg)
        self._stream = response
        self._read_task = asyncio.create_task(self._read_loop(response), name=f"{self.name}-reader")

    async def _write(self, data: bytes) -> None:
        client = self._client
        if client is None:
            raise TransportError(f"{self.name}: no open HTTP client")
        try:
            response = await client.post(
                self._post_url,
                content=data,
                headers={"Content-Type": "application/json", **self._headers},
            )
        except httpx.HTTPError as exc:
            raise TransportError(f"{self.name}: failed to send message: {exc}") from exc
        if not response.is_success:
            msg = f"{self.name}: failed to send message: HTTP {response.status_code} {response.reason_phrase}"
            raise TransportError(msg)
        # Some servers answer inline instead of over the stream.
        if response.headers.get("content-type", "").startswith("application/json") and response.content:
            self._deliver(response.content)

    async def _shutdown(self) -> None:
        if self._read_task is not None and not self._read_task.done():
            self._read_task.cancel()
            try:
                await self._read_task
            except asyncio.CancelledError:
                pass
        self._read_task = None
        if self._stream is not None:
            await self._stream.aclose()
            self._stream = None
        await self._release_client()

    async def _release_client(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _read_loop(self, response: httpx.Response) -> None:
        parser = SseParser()
        reason = "event stream ended"
        try:
            async for line in response.aiter_lines():
                event = parser.feed_line(line.rstrip("\r\n"))
                if event is not None:
                    self._handle_event(event)
        except httpx.HTTPError as exc:
            reason = f"event stream failed: {exc}"
        self._emit_error(TransportError(f"{self.name}: {reason}"), fatal=True)
        self._emit_closed(reason)

    def _handle_event(self, event: ServerSentEvent) -> None:
        if event.event == "endpoint":
            self._post_url = str(httpx.URL(self._url).join(event.data.strip()))
            logger.debug("%s: posting to %s", self.name, self._post_url)
        elif event.event == "message":
            self._deliver(event.data)
        else:
            logger.debug("%s: ignoring %r event", self.name, event.event)
