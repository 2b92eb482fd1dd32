"""``mcplink serve`` — run a bundled server on stdin/stdout."""

from __future__ import annotations

import asyncio
import importlib

import click

_BUNDLED = {
    "calculator": "mcplink.servers.calculator",
}


@click.command()
@click.argument("name", type=click.Choice(sorted(_BUNDLED)))
def serve(name: str) -> None:
    """Serve the bundled NAME server over stdio until stdin closes."""
    module = importlib.import_module(_BUNDLED[name])
    asyncio.run(module.build_server().run_stdio())
