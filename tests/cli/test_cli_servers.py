"""Tests for ``mcplink servers`` CLI command."""

from __future__ import annotations

import json
import sys
from pathlib import Path

from click.testing import CliRunner

from mcplink.cli import main

_CALCULATOR = {"command": sys.executable, "args": ["-m", "mcplink.servers.calculator"]}


def _write_config(tmp_path: Path, servers: dict) -> str:
    path = tmp_path / "servers.json"
    path.write_text(json.dumps({"mcpServers": servers}))
    return str(path)


class TestServersStatus:
    def test_all_connected(self, tmp_path: Path) -> None:
        config = _write_config(tmp_path, {"calc": _CALCULATOR})

        result = CliRunner().invoke(main, ["servers", "status", config])

        assert result.exit_code == 0, result.output
        assert "calc" in result.output
        assert "connected" in result.output

    def test_reports_failures(self, tmp_path: Path) -> None:
        config = _write_config(tmp_path, {"calc": _CALCULATOR, "ghost": {"command": "/nonexistent/mcplink-x"}})

        result = CliRunner().invoke(main, ["servers", "status", config])

        assert result.exit_code == 1
        assert "connected" in result.output
        assert "failed" in result.output
        assert "ghost" in result.output

    def test_invalid_config(self, tmp_path: Path) -> None:
        path = tmp_path / "servers.json"
        path.write_text("{not json")

        result = CliRunner().invoke(main, ["servers", "status", str(path)])

        assert result.exit_code == 1
        assert "Config error" in result.output

    def test_no_servers(self, tmp_path: Path) -> None:
        config = _write_config(tmp_path, {})

        result = CliRunner().invoke(main, ["servers", "status", config])

        assert result.exit_code == 0
        assert "No servers configured" in result.output

    def test_missing_file(self) -> None:
        result = CliRunner().invoke(main, ["servers", "status", "/nonexistent/servers.yaml"])
        assert result.exit_code == 2
