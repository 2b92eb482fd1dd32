"""Shared CLI output formatters."""

from __future__ import annotations

import json
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from mcplink.manager.connection_manager import InitializeReport  # noqa: TC001
from mcplink.protocol.messages import ToolCallResult, ToolDescriptor  # noqa: TC001

console = Console()


def print_tools_table(tools: list[ToolDescriptor], *, server: str = "") -> None:
    """Pretty-print tool descriptors as a table."""
    table = Table(title=f"Tools on {server}" if server else "Tools")
    table.add_column("Name", style="cyan")
    table.add_column("Description")
    table.add_column("Parameters")

    for tool in tools:
        properties = tool.input_schema.get("properties", {})
        required = set(tool.input_schema.get("required", []))
        params = ", ".join(f"{p}*" if p in required else p for p in properties) or "-"
        table.add_row(escape(tool.name), escape(_truncate(tool.description)), params)

    console.print(table)


def print_status_table(report: InitializeReport, pids: dict[str, int]) -> None:
    """Pretty-print which servers connected and which failed."""
    table = Table(title="Servers")
    table.add_column("Name", style="cyan")
    table.add_column("Status")
    table.add_column("Detail")

    for name in report.connected:
        table.add_row(name, "[green]connected[/green]", f"pid {pids[name]}" if name in pids else "")
    for name, reason in report.failed.items():
        table.add_row(name, "[red]failed[/red]", escape(_truncate(reason)))

    console.print(table)


def print_tool_result(result: ToolCallResult, *, as_json: bool = False) -> None:
    """Print the value of a tool call."""
    if as_json:
        console.print_json(json.dumps(result.value, default=str))
        return
    console.print(result.text if result.value is None else result.value, markup=False, highlight=False)


def _truncate(text: str, max_len: int = 80) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."
