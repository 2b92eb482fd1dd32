"""Transport base — a duplex message channel that reports through an event queue.

Concrete transports only implement ``_open``, ``_write`` and ``_shutdown``
and feed inbound units to ``_deliver``.  Everything a consumer needs to
observe (messages, faults, closure) arrives as a :data:`TransportEvent` on
one queue, which exactly one loop per connection drains.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass

from mcplink.protocol.codec import decode, encode
from mcplink.protocol.errors import ConnectionClosedError, DecodeError, MCPError, TransportError
from mcplink.protocol.messages import Message

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MessageReceived:
    message: Message


@dataclass(frozen=True)
class TransportFailed:
    """A fault on the channel.  Non-fatal faults leave the stream open."""

    error: MCPError
    fatal: bool = False


@dataclass(frozen=True)
class TransportClosed:
    reason: str = ""


TransportEvent = MessageReceived | TransportFailed | TransportClosed


class Transport(ABC):
    """Base class for all transports.

    ``send`` is serialized by a lock so two concurrent senders never
    interleave bytes.  :class:`TransportClosed` is queued exactly once,
    after any fatal :class:`TransportFailed`.
    """

    def __init__(self, *, name: str = "transport") -> None:
        self.name = name
        self._events: asyncio.Queue[TransportEvent] = asyncio.Queue()
        self._send_lock = asyncio.Lock()
        self._started = False
        self._closed = False
        self._close_queued = False
        self._close_consumed = False
        self._shut_down = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def start(self) -> None:
        """Open the underlying channel.

        Raises:
            TransportError: If the channel cannot be established.
        """
        if self._started:
            msg = f"{self.name}: transport already started"
            raise TransportError(msg)
        if self._closed:
            raise ConnectionClosedError(f"{self.name} is closed")
        try:
            await self._open()
        except TransportError:
            raise
        except Exception as exc:
            raise TransportError(f"{self.name}: failed to start: {exc}") from exc
        self._started = True

    async def send(self, message: Message) -> None:
        """Encode and write one message, waiting for any send in progress."""
        if not self._started:
            msg = f"{self.name}: transport not started"
            raise TransportError(msg)
        data = encode(message)
        async with self._send_lock:
            if self._closed:
                raise ConnectionClosedError(f"{self.name} is closed")
            try:
                await self._write(data)
            except TransportError:
                raise
            except Exception as exc:
                error = TransportError(f"{self.name}: write failed: {exc}")
                self._emit_error(error)
                raise error from exc

    async def close(self) -> None:
        """Release the channel.  No message events are delivered afterwards."""
        if self._shut_down:
            return
        self._shut_down = True
        self._closed = True
        self._drop_pending_messages()
        try:
            await self._shutdown()
        finally:
            self._emit_closed("closed locally")

    async def next_event(self) -> TransportEvent:
        """Wait for the next event.

        Raises:
            ConnectionClosedError: If the closed event was already consumed.
        """
        if self._close_consumed:
            raise ConnectionClosedError(f"{self.name} is closed")
        event = await self._events.get()
        if isinstance(event, TransportClosed):
            self._close_consumed = True
        return event

    async def events(self) -> AsyncIterator[TransportEvent]:
        """Yield events up to and including :class:`TransportClosed`."""
        while not self._close_consumed:
            yield await self.next_event()

    # -- for subclasses ---------------------------------------------------

    @abstractmethod
    async def _open(self) -> None: ...

    @abstractmethod
    async def _write(self, data: bytes) -> None: ...

    @abstractmethod
    async def _shutdown(self) -> None: ...

    def _deliver(self, raw: bytes | str) -> None:
        """Decode one complete unit and queue the result."""
        try:
            message = decode(raw)
        except DecodeError as exc:
            logger.warning("%s: discarding undecodable message: %s", self.name, exc.detail)
            self._emit_error(exc)
            return
        self._emit_message(message)

    def _emit_message(self, message: Message) -> None:
        if self._closed:
            return
        self._events.put_nowait(MessageReceived(message))

    def _emit_error(self, error: MCPError, *, fatal: bool = False) -> None:
        if self._close_queued:
            return
        self._events.put_nowait(TransportFailed(error, fatal=fatal))

    def _emit_closed(self, reason: str) -> None:
        self._closed = True
        if self._close_queued:
            return
        self._close_queued = True
        logger.debug("%s: closed (%s)", self.name, reason)
        self._events.put_nowait(TransportClosed(reason))

    def _drop_pending_messages(self) -> None:
        kept: list[TransportEvent] = []
        while not self._events.empty():
            event = self._events.get_nowait()
            if not isinstance(event, MessageReceived):
                kept.append(event)
        for event in kept:
            self._events.put_nowait(event)
