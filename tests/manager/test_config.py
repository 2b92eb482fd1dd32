"""Tests for server configuration loading."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from mcplink.manager.config import MCPConfig, ServerConfig, load_config, parse_config
from mcplink.protocol.errors import ConfigError

_YAML = """\
mcpServers:
  calculator:
    command: python
    args: ["-m", "mcplink.servers.calculator"]
  memory:
    command: npx
    args: ["-y", "@mcp/memory"]
    env:
      TOKEN: ${MCPLINK_TEST_TOKEN}
"""


class TestParseConfig:
    def test_alias(self) -> None:
        config = parse_config({"mcpServers": {"calc": {"command": "python"}}})
        assert config.servers["calc"] == ServerConfig(command="python")
        assert config.servers["calc"].args == []
        assert config.servers["calc"].env is None

    def test_field_name(self) -> None:
        config = parse_config({"servers": {"calc": {"command": "python", "args": ["-V"]}}})
        assert config.servers["calc"].args == ["-V"]

    def test_passes_models_through(self) -> None:
        config = MCPConfig(servers={})
        assert parse_config(config) is config

    def test_not_a_mapping(self) -> None:
        with pytest.raises(ConfigError, match="mapping"):
            parse_config(["calc"])

    def test_missing_servers_key(self) -> None:
        with pytest.raises(ConfigError, match="mcpServers"):
            parse_config({"servers_typo": {}})

    def test_missing_command(self) -> None:
        with pytest.raises(ConfigError, match="command"):
            parse_config({"mcpServers": {"calc": {"args": []}}})

    def test_empty_command(self) -> None:
        with pytest.raises(ConfigError):
            parse_config({"mcpServers": {"calc": {"command": ""}}})


class TestMergedEnv:
    def test_overlay(self) -> None:
        server = ServerConfig(command="x", env={"B": "2", "C": "3"})
        assert server.merged_env({"A": "1", "B": "old"}) == {"A": "1", "B": "2", "C": "3"}

    def test_defaults_to_process_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MCPLINK_TEST_INHERITED", "yes")
        assert ServerConfig(command="x").merged_env()["MCPLINK_TEST_INHERITED"] == "yes"


class TestLoadConfig:
    def test_yaml_with_env_expansion(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MCPLINK_TEST_TOKEN", "s3cret")
        path = tmp_path / "servers.yaml"
        path.write_text(_YAML)

        config = load_config(path)

        assert list(config.servers) == ["calculator", "memory"]
        assert config.servers["memory"].env == {"TOKEN": "s3cret"}

    def test_json(self, tmp_path: Path) -> None:
        path = tmp_path / "servers.json"
        path.write_text(json.dumps({"mcpServers": {"calc": {"command": "python", "args": ["-m", "x"]}}}))

        config = load_config(str(path))
        assert config.servers["calc"].args == ["-m", "x"]

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Cannot read"):
            load_config(tmp_path / "absent.yaml")

    def test_invalid_json(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.json"
        path.write_text("{")
        with pytest.raises(ConfigError, match="Cannot parse"):
            load_config(path)

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.yaml"
        path.write_text("mcpServers: [unclosed")
        with pytest.raises(ConfigError, match="Cannot parse"):
            load_config(path)

    def test_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("")
        with pytest.raises(ConfigError, match="mapping"):
            load_config(path)
