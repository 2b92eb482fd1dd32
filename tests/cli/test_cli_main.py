"""Tests for the ``mcplink`` group and ``mcplink serve``."""

from __future__ import annotations

import logging
from unittest.mock import patch

from click.testing import CliRunner

from mcplink.cli import main


def _close_coroutine(coro: object) -> None:
    coro.close()  # type: ignore[attr-defined]


class TestMain:
    def test_version(self) -> None:
        result = CliRunner().invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_help_lists_commands(self) -> None:
        result = CliRunner().invoke(main, ["--help"])
        assert result.exit_code == 0
        for command in ("servers", "tools", "serve"):
            assert command in result.output

    def test_verbose_installs_rich_handler(self) -> None:
        with (
            patch("mcplink.cli.logging.basicConfig") as basic_config,
            patch("mcplink.cli_commands.serve.asyncio.run", side_effect=_close_coroutine),
        ):
            result = CliRunner().invoke(main, ["--verbose", "serve", "calculator"])

        assert result.exit_code == 0, result.output
        kwargs = basic_config.call_args.kwargs
        assert kwargs["level"] == logging.DEBUG
        assert type(kwargs["handlers"][0]).__name__ == "RichHandler"

    def test_otlp_endpoint_configures_telemetry(self) -> None:
        with (
            patch("mcplink.utils.telemetry.configure_telemetry") as configure,
            patch("mcplink.cli_commands.serve.asyncio.run", side_effect=_close_coroutine),
        ):
            result = CliRunner().invoke(main, ["--otlp-endpoint", "http://collector:4317", "serve", "calculator"])

        assert result.exit_code == 0, result.output
        configure.assert_called_once_with(otlp_endpoint="http://collector:4317")


class TestServe:
    def test_serves_calculator(self) -> None:
        with patch("mcplink.cli_commands.serve.asyncio.run", side_effect=_close_coroutine) as run:
            result = CliRunner().invoke(main, ["serve", "calculator"])

        assert result.exit_code == 0, result.output
        run.assert_called_once()

    def test_unknown_server(self) -> None:
        result = CliRunner().invoke(main, ["serve", "weather"])
        assert result.exit_code == 2
