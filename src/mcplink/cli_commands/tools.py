"""``mcplink tools`` — list and call tools on a configured server."""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, TypeVar

import click
from rich.markup import escape

from mcplink.cli_commands._output import console, print_tool_result, print_tools_table

if TYPE_CHECKING:
    from mcplink.client import Client

T = TypeVar("T")


@click.group()
def tools() -> None:
    """Discover and call tools."""


@tools.command("list")
@click.argument("config", type=click.Path(exists=True))
@click.argument("server")
def list_cmd(config: str, server: str) -> None:
    """List the tools SERVER (a name in CONFIG) exposes."""
    try:
        discovered = asyncio.run(_with_client(config, server, lambda client: client.list_tools()))
    except Exception as exc:
        console.print(f"[red]Discovery error:[/red] {escape(str(exc))}")
        sys.exit(1)

    if not discovered:
        console.print("[yellow]No tools discovered.[/yellow]")
        return

    print_tools_table(discovered, server=server)


@tools.command("call")
@click.argument("config", type=click.Path(exists=True))
@click.argument("server")
@click.argument("tool")
@click.option("--params", "-p", "params_json", default="{}", help="Tool parameters as a JSON object.")
@click.option("--json", "as_json", is_flag=True, help="Print the result value as JSON.")
def call_cmd(config: str, server: str, tool: str, params_json: str, as_json: bool) -> None:
    """Call TOOL on SERVER (a name in CONFIG) and print its result."""
    try:
        params: Any = json.loads(params_json)
    except json.JSONDecodeError as exc:
        console.print(f"[red]Invalid --params:[/red] {escape(str(exc))}")
        sys.exit(2)
    if not isinstance(params, dict):
        console.print("[red]Invalid --params:[/red] expected a JSON object")
        sys.exit(2)

    try:
        result = asyncio.run(_with_client(config, server, lambda client: client.call_tool(tool, params)))
    except Exception as exc:
        console.print(f"[red]Call failed:[/red] {escape(str(exc))}")
        sys.exit(1)

    print_tool_result(result, as_json=as_json)


async def _with_client(config: str, server: str, action: Callable[[Client], Awaitable[T]]) -> T:
    """Connect only *server* from *config*, run *action*, and shut everything down."""
    from mcplink.manager.config import load_config
    from mcplink.manager.connection_manager import ConnectionManager

    mcp_config = load_config(config)
    server_config = mcp_config.servers.get(server)
    if server_config is None:
        known = ", ".join(sorted(mcp_config.servers)) or "none"
        msg = f"Unknown server {server!r} (configured: {known})"
        raise click.ClickException(msg)

    async with ConnectionManager() as manager:
        client = await manager.connect_server(server, server_config)
        return await action(client)
