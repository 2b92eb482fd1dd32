"""Process-pipe transport — newline-delimited JSON over a pair of byte streams.

Used on the client side over a subprocess's stdin/stdout and on the server
side over the process's own stdin/stdout.
"""

from __future__ import annotations

import asyncio
import logging
from typing import IO, Any

from mcplink.protocol.errors import TransportError
from mcplink.transport.base import Transport

logger = logging.getLogger(__name__)

_READ_SIZE = 64 * 1024


class LineFramer:
    """Reassembles newline-terminated units from arbitrarily split chunks."""

    def __init__(self) -> None:
        self._buffer = bytearray()

    def feed(self, chunk: bytes) -> list[bytes]:
        """Add *chunk* and return every unit it completed (blank lines skipped)."""
        self._buffer.extend(chunk)
        lines: list[bytes] = []
        while True:
            idx = self._buffer.find(b"\n")
            if idx < 0:
                break
            line = bytes(self._buffer[:idx]).rstrip(b"\r")
            del self._buffer[: idx + 1]
            if line.strip():
                lines.append(line)
        return lines

    def flush(self) -> bytes | None:
        """Return the unterminated tail, if any, and reset."""
        tail = bytes(self._buffer).strip()
        self._buffer.clear()
        return tail or None

    @property
    def pending(self) -> int:
        return len(self._buffer)


class StdioTransport(Transport):
    """Frames each message as one JSON line over a reader/writer pair.

    Usage::

        proc = await asyncio.create_subprocess_exec(..., stdin=PIPE, stdout=PIPE)
        transport = StdioTransport.for_process(proc, name="calculator")
        await transport.start()
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        *,
        name: str = "stdio",
        wait_closed: bool = True,
    ) -> None:
        super().__init__(name=name)
        self._reader = reader
        self._writer = writer
        self._wait_closed = wait_closed
        self._framer = LineFramer()
        self._read_task: asyncio.Task[None] | None = None

    @classmethod
    def for_process(cls, process: asyncio.subprocess.Process, *, name: str = "stdio") -> StdioTransport:
        """Wire a transport to a subprocess spawned with piped stdin/stdout."""
        if process.stdin is None or process.stdout is None:
            msg = f"{name}: subprocess was not started with piped stdin/stdout"
            raise TransportError(msg)
        return cls(process.stdout, process.stdin, name=name)

    @classmethod
    async def open_pipes(
        cls,
        read_file: IO[Any],
        write_file: IO[Any],
        *,
        name: str = "stdio",
    ) -> StdioTransport:
        """Wrap two pipe file objects (e.g. ``sys.stdin``/``sys.stdout``) in streams."""
        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader()
        try:
            await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), read_file)
            write_transport, write_protocol = await loop.connect_write_pipe(
                asyncio.streams.FlowControlMixin, write_file
            )
        except (OSError, ValueError) as exc:
            raise TransportError(f"{name}: cannot attach to pipes: {exc}") from exc
        writer = asyncio.StreamWriter(write_transport, write_protocol, reader, loop)
        # Plain pipe protocols cannot report close completion.
        return cls(reader, writer, name=name, wait_closed=False)

    async def _open(self) -> None:
        self._read_task = asyncio.create_task(self._read_loop(), name=f"{self.name}-reader")

    async def _write(self, data: bytes) -> None:
        if self._writer.is_closing():
            msg = f"{self.name}: output stream is closed"
            raise TransportError(msg)
        self._writer.write(data + b"\n")
        await self._writer.drain()

    async def _shutdown(self) -> None:
        if self._read_task is not None and not self._read_task.done():
            self._read_task.cancel()
            try:
                await self._read_task
            except asyncio.CancelledError:
                pass
        self._read_task = None
        if not self._writer.is_closing():
            self._writer.close()
            if self._wait_closed:
                try:
                    await self._writer.wait_closed()
                except (OSError, ConnectionError) as exc:
                    logger.debug("%s: error while closing output stream: %s", self.name, exc)

    async def _read_loop(self) -> None:
        reason = "end of stream"
        try:
            while True:
                chunk = await self._reader.read(_READ_SIZE)
                if not chunk:
                    break
                for line in self._framer.feed(chunk):
                    self._deliver(line)
            tail = self._framer.flush()
            if tail is not None:
                self._deliver(tail)
        except (OSError, ConnectionError) as exc:
            reason = f"read failed: {exc}"
            self._emit_error(TransportError(f"{self.name}: {reason}"), fatal=True)
        self._emit_closed(reason)
