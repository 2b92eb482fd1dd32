"""Tests for the newline-framed pipe transport."""

from __future__ import annotations

import asyncio
import json
import os
from unittest.mock import AsyncMock, MagicMock

import pytest

from mcplink.protocol.errors import DecodeError, TransportError
from mcplink.protocol.messages import JsonRpcRequest, JsonRpcResponse
from mcplink.transport.base import MessageReceived, TransportClosed, TransportFailed
from mcplink.transport.stdio import LineFramer, StdioTransport


def _mock_writer() -> MagicMock:
    writer = MagicMock()
    writer.is_closing = MagicMock(return_value=False)
    writer.drain = AsyncMock()
    writer.wait_closed = AsyncMock()
    return writer


async def _next(transport: StdioTransport):
    return await asyncio.wait_for(transport.next_event(), timeout=5)


class TestLineFramer:
    def test_single_line(self) -> None:
        framer = LineFramer()
        assert framer.feed(b'{"a":1}\n') == [b'{"a":1}']
        assert framer.pending == 0

    def test_split_across_chunks(self) -> None:
        framer = LineFramer()
        assert framer.feed(b'{"jsonrpc":"2.0",') == []
        assert framer.pending > 0
        assert framer.feed(b'"id":1,"result":8}\n') == [b'{"jsonrpc":"2.0","id":1,"result":8}']

    def test_many_in_one_chunk(self) -> None:
        framer = LineFramer()
        assert framer.feed(b"a\nb\nc") == [b"a", b"b"]
        assert framer.flush() == b"c"
        assert framer.flush() is None

    def test_crlf_and_blank_lines(self) -> None:
        framer = LineFramer()
        assert framer.feed(b"a\r\n\r\n\nb\n") == [b"a", b"b"]

    def test_split_inside_multibyte_character(self) -> None:
        framer = LineFramer()
        data = '{"t":"✓"}\n'.encode()
        assert framer.feed(data[:7]) == []
        assert framer.feed(data[7:]) == [b'{"t":"\xe2\x9c\x93"}']


class TestStdioTransport:
    async def test_message_split_across_reads(self) -> None:
        reader = asyncio.StreamReader()
        transport = StdioTransport(reader, _mock_writer(), name="split")
        await transport.start()

        raw = b'{"jsonrpc":"2.0","id":4,"result":{"value":8}}\n'
        reader.feed_data(raw[:13])
        await asyncio.sleep(0)
        reader.feed_data(raw[13:])

        event = await _next(transport)
        assert isinstance(event, MessageReceived)
        assert event.message == JsonRpcResponse(id=4, result={"value": 8})
        await transport.close()

    async def test_eof_closes(self) -> None:
        reader = asyncio.StreamReader()
        transport = StdioTransport(reader, _mock_writer())
        await transport.start()
        reader.feed_eof()

        event = await _next(transport)
        assert isinstance(event, TransportClosed)
        assert event.reason == "end of stream"
        assert transport.closed

    async def test_unterminated_tail_delivered_at_eof(self) -> None:
        reader = asyncio.StreamReader()
        transport = StdioTransport(reader, _mock_writer())
        await transport.start()
        reader.feed_data(b'{"jsonrpc":"2.0","method":"bye"}')
        reader.feed_eof()

        assert isinstance(await _next(transport), MessageReceived)
        assert isinstance(await _next(transport), TransportClosed)

    async def test_garbage_line_does_not_close(self) -> None:
        reader = asyncio.StreamReader()
        transport = StdioTransport(reader, _mock_writer())
        await transport.start()
        reader.feed_data(b"Starting server...\n")
        reader.feed_data(b'{"jsonrpc":"2.0","id":1,"result":{}}\n')

        failed = await _next(transport)
        assert isinstance(failed, TransportFailed)
        assert isinstance(failed.error, DecodeError)
        assert isinstance(await _next(transport), MessageReceived)
        await transport.close()

    async def test_send_writes_one_line(self) -> None:
        writer = _mock_writer()
        transport = StdioTransport(asyncio.StreamReader(), writer)
        await transport.start()

        await transport.send(JsonRpcRequest(id=1, method="tools/list"))

        written = writer.write.call_args[0][0]
        assert written.endswith(b"\n")
        assert written.count(b"\n") == 1
        assert json.loads(written)["method"] == "tools/list"
        writer.drain.assert_awaited_once()
        await transport.close()

    async def test_close_closes_writer(self) -> None:
        writer = _mock_writer()
        transport = StdioTransport(asyncio.StreamReader(), writer)
        await transport.start()
        await transport.close()
        await transport.close()

        writer.close.assert_called_once()
        writer.wait_closed.assert_awaited_once()

    async def test_closing_writer_rejects_send(self) -> None:
        writer = _mock_writer()
        writer.is_closing.return_value = True
        transport = StdioTransport(asyncio.StreamReader(), writer)
        await transport.start()
        with pytest.raises(TransportError, match="closed"):
            await transport.send(JsonRpcRequest(id=1, method="ping"))
        await transport.close()

    def test_for_process_requires_pipes(self) -> None:
        process = MagicMock()
        process.stdin = None
        with pytest.raises(TransportError, match="piped"):
            StdioTransport.for_process(process, name="calc")


class TestOpenPipes:
    async def test_round_trip_over_os_pipes(self) -> None:
        in_read, in_write = os.pipe()
        out_read, out_write = os.pipe()
        read_file = open(in_read, "rb", buffering=0)  # noqa: SIM115
        write_file = open(out_write, "wb", buffering=0)  # noqa: SIM115
        try:
            transport = await StdioTransport.open_pipes(read_file, write_file, name="pipes")
            await transport.start()

            os.write(in_write, b'{"jsonrpc":"2.0","id":1,')
            os.write(in_write, b'"method":"ping"}\n')
            event = await _next(transport)
            assert isinstance(event, MessageReceived)
            assert event.message == JsonRpcRequest(id=1, method="ping")

            await transport.send(JsonRpcResponse(id=1, result={}))
            assert os.read(out_read, 4096) == b'{"jsonrpc":"2.0","id":1,"result":{}}\n'

            os.close(in_write)
            in_write = -1
            assert isinstance(await _next(transport), TransportClosed)
            await transport.close()
        finally:
            if in_write >= 0:
                os.close(in_write)
            os.close(out_read)
            read_file.close()
            write_file.close()
