"""``mcplink servers`` — start configured servers and report their status."""

from __future__ import annotations

import asyncio
import sys

import click
from rich.markup import escape

from mcplink.cli_commands._output import console, print_status_table


@click.group()
def servers() -> None:
    """Inspect configured servers."""


@servers.command("status")
@click.argument("config", type=click.Path(exists=True))
@click.option("--timeout", default=30.0, show_default=True, help="Handshake timeout in seconds.")
def status(config: str, timeout: float) -> None:
    """Start every server in CONFIG, handshake, and report which connected."""
    from mcplink.manager.config import load_config
    from mcplink.manager.connection_manager import ConnectionManager, InitializeReport

    try:
        mcp_config = load_config(config)
    except Exception as exc:
        console.print(f"[red]Config error:[/red] {escape(str(exc))}")
        sys.exit(1)

    if not mcp_config.servers:
        console.print("[yellow]No servers configured.[/yellow]")
        return

    async def _status() -> tuple[InitializeReport, dict[str, int]]:
        async with ConnectionManager(handshake_timeout=timeout) as manager:
            report = await manager.initialize(mcp_config)
            pids = {}
            for name in manager.server_names:
                record = manager.get_record(name)
                if record is not None:
                    pids[name] = record.process.pid
            return report, pids

    report, pids = asyncio.run(_status())
    print_status_table(report, pids)
    if report.failed:
        sys.exit(1)
