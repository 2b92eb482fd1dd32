"""mcplink CLI entrypoint."""

from __future__ import annotations

import logging

import click

from mcplink import __version__


@click.group()
@click.version_option(version=__version__, prog_name="mcplink")
@click.option("--verbose", "-v", is_flag=True, help="Log protocol activity to stderr.")
@click.option("--otlp-endpoint", default=None, help="Export traces via OTLP/gRPC (needs mcplink[otel]).")
def main(verbose: bool, otlp_endpoint: str | None) -> None:
    """mcplink — talk to tool servers over stdio and HTTP-SSE."""
    if verbose:
        from rich.console import Console
        from rich.logging import RichHandler

        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        )

    if otlp_endpoint:
        from mcplink.utils.telemetry import configure_telemetry

        configure_telemetry(otlp_endpoint=otlp_endpoint)


# Register subcommands
from mcplink.cli_commands import register_commands  # noqa: E402

register_commands(main)

if __name__ == "__main__":
    main()
