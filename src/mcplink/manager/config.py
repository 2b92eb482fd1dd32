"""Server configuration — the ``mcpServers`` document and its loader.

Example (JSON or YAML)::

    {
      "mcpServers": {
        "calculator": {"command": "python", "args": ["-m", "mcplink.servers.calculator"]},
        "memory": {"command": "npx", "args": ["-y", "@mcp/memory"], "env": {"TOKEN": "${TOKEN}"}}
      }
    }
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from mcplink.protocol.errors import ConfigError


class ServerConfig(BaseModel):
    """How to launch one server subprocess."""

    command: str = Field(min_length=1)
    args: list[str] = []
    env: dict[str, str] | None = None

    def merged_env(self, base: Mapping[str, str] | None = None) -> dict[str, str]:
        """Return *base* (default: ``os.environ``) overlaid with this server's ``env``."""
        merged = dict(os.environ if base is None else base)
        merged.update(self.env or {})
        return merged


class MCPConfig(BaseModel):
    """The whole document: server name → :class:`ServerConfig`."""

    model_config = {"populate_by_name": True}

    servers: dict[str, ServerConfig] = Field(default_factory=dict, alias="mcpServers")


def parse_config(data: Any) -> MCPConfig:
    """Validate an already-parsed document.

    Raises:
        ConfigError: If *data* is not a mapping or fails validation.
    """
    if isinstance(data, MCPConfig):
        return data
    if not isinstance(data, Mapping):
        msg = "Server configuration must be a mapping"
        raise ConfigError(msg)
    if "mcpServers" not in data and "servers" not in data:
        msg = "Server configuration must contain an 'mcpServers' mapping"
        raise ConfigError(msg)
    try:
        return MCPConfig.model_validate(dict(data))
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc


def load_config(path: str | Path) -> MCPConfig:
    """Read a JSON or YAML configuration file.

    Environment variables in the form ``${VAR}`` or ``$VAR`` are expanded
    with :func:`os.path.expandvars` before parsing.  Files ending in
    ``.json`` are parsed as JSON, everything else as YAML (a superset of
    JSON).

    Raises:
        ConfigError: On read, parse or validation failures.
    """
    p = Path(path)
    try:
        raw = p.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read {p}: {exc}") from exc

    expanded = os.path.expandvars(raw)

    try:
        data: Any = json.loads(expanded) if p.suffix == ".json" else yaml.safe_load(expanded)
    except (ValueError, yaml.YAMLError) as exc:
        raise ConfigError(f"Cannot parse {p}: {exc}") from exc

    return parse_config(data)
