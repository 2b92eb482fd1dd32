"""Tests for the bundled calculator server."""

from __future__ import annotations

import asyncio

import pytest

from mcplink.client import Client
from mcplink.protocol.errors import ApplicationError, InvalidParamsError
from mcplink.servers.calculator import CALCULATOR_TOOL, build_server, calculate


class TestCalculate:
    @pytest.mark.parametrize(
        ("operation", "a", "b", "expected"),
        [
            ("add", 5, 3, 8),
            ("subtract", 5, 3, 2),
            ("multiply", 4, 6, 24),
            ("divide", 10, 4, 2.5),
            ("add", 0.5, 0.25, 0.75),
        ],
    )
    def test_operations(self, operation: str, a: float, b: float, expected: float) -> None:
        assert calculate({"operation": operation, "a": a, "b": b}) == expected

    def test_divide_by_zero(self) -> None:
        with pytest.raises(ApplicationError, match="Division by zero") as exc_info:
            calculate({"operation": "divide", "a": 1, "b": 0})
        assert exc_info.value.code == -32000

    def test_unknown_operation(self) -> None:
        with pytest.raises(ApplicationError, match="Unknown operation: modulo"):
            calculate({"operation": "modulo", "a": 1, "b": 2})

    @pytest.mark.parametrize("bad", ["5", None, True, [1]])
    def test_non_number_operand(self, bad: object) -> None:
        with pytest.raises(InvalidParamsError, match="'a' must be a number"):
            calculate({"operation": "add", "a": bad, "b": 1})

    def test_missing_second_operand(self) -> None:
        with pytest.raises(InvalidParamsError, match="'b' must be a number"):
            calculate({"operation": "add", "a": 1})

    def test_descriptor(self) -> None:
        assert CALCULATOR_TOOL.name == "calculator"
        assert CALCULATOR_TOOL.input_schema["required"] == ["operation", "a", "b"]


class TestCalculatorSession:
    async def test_calls_over_a_session(self, linked_pair) -> None:
        client_end, server_end = linked_pair()
        task = asyncio.create_task(build_server().serve(server_end))

        async with Client(client_end) as client:
            tools = await client.list_tools()
            added = await client.call_tool("calculator", {"operation": "add", "a": 5, "b": 3})
            multiplied = await client.call_tool("calculator", {"operation": "multiply", "a": 4, "b": 6})

        assert [tool.name for tool in tools] == ["calculator"]
        assert added.value == 8
        assert added.text == "8"
        assert multiplied.value == 24
        await asyncio.wait_for(task, timeout=5)

    async def test_division_by_zero_keeps_connection_usable(self, linked_pair) -> None:
        client_end, server_end = linked_pair()
        task = asyncio.create_task(build_server().serve(server_end))

        async with Client(client_end) as client:
            with pytest.raises(ApplicationError, match="Division by zero") as exc_info:
                await client.call_tool("calculator", {"operation": "divide", "a": 1, "b": 0})
            assert exc_info.value.data == {"operation": "divide", "a": 1, "b": 0}

            assert client.connected
            result = await client.call_tool("calculator", {"operation": "subtract", "a": 10, "b": 4})
            assert result.value == 6

        await asyncio.wait_for(task, timeout=5)
