"""Calculator server — one ``calculator`` tool doing basic arithmetic.

Run it as a stdio server::

    python -m mcplink.servers.calculator
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Any

from mcplink.protocol.errors import ApplicationError, InvalidParamsError
from mcplink.protocol.messages import ToolDescriptor
from mcplink.server.dispatch import Server

CALCULATOR_TOOL = ToolDescriptor(
    name="calculator",
    description="Performs basic arithmetic calculations",
    input_schema={
        "type": "object",
        "properties": {
            "operation": {"type": "string", "enum": ["add", "subtract", "multiply", "divide"]},
            "a": {"type": "number"},
            "b": {"type": "number"},
        },
        "required": ["operation", "a", "b"],
    },
)


def _number(params: dict[str, Any], label: str) -> int | float:
    value = params.get(label)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        msg = f"'{label}' must be a number"
        raise InvalidParamsError(msg)
    return value


def calculate(params: dict[str, Any]) -> int | float:
    """Apply ``operation`` to ``a`` and ``b``."""
    operation = params.get("operation")
    a = _number(params, "a")
    b = _number(params, "b")

    if operation == "add":
        return a + b
    if operation == "subtract":
        return a - b
    if operation == "multiply":
        return a * b
    if operation == "divide":
        if b == 0:
            msg = "Division by zero"
            raise ApplicationError(msg, data={"operation": operation, "a": a, "b": b})
        return a / b
    raise ApplicationError(f"Unknown operation: {operation}", data={"operation": operation})


def build_server() -> Server:
    server = Server("calculator", "0.1.0")
    server.add_tool(CALCULATOR_TOOL, calculate)
    return server


def main() -> None:
    # stdout carries the protocol; diagnostics go to stderr.
    logging.basicConfig(stream=sys.stderr, level=logging.WARNING)
    asyncio.run(build_server().run_stdio())


if __name__ == "__main__":
    main()
