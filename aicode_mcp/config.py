"""
Configuration for the MCP client.

Two layers:
  - ClientConfig: protocol and process settings used by sessions
  - Settings: what a host reads at startup, merged from
    ``.aicode/config.json`` and its own command-line values

Example ``.aicode/config.json``:

    {
        "logLevel": "info",
        "logFile": "logs/aicode.log",
        "mcp": ["npx -y @modelcontextprotocol/server-everything"],
        "requestTimeout": 30
    }
"""

from __future__ import annotations

import json
import logging
import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

logger = logging.getLogger(__name__)

CONFIG_DIR = ".aicode"
CONFIG_FILE = "config.json"

PROTOCOL_VERSION = "2024-11-05"


@dataclass
class ClientConfig:
    """Settings shared by every session a manager starts."""
    protocol_version: str = PROTOCOL_VERSION
    client_name: str = "aicode"
    client_version: str = "1.0.0"
    request_timeout: float | None = 60.0  # None = wait forever
    shutdown_timeout: float = 5.0
    tool_prefix: str = "mcp_"
    env: dict[str, str] | None = None

    def client_info(self) -> dict[str, str]:
        return {"name": self.client_name, "version": self.client_version}


@dataclass
class Settings:
    """Host settings after merging the config file with CLI values."""
    log_level: str = "warn"
    log_file: str | None = None
    model: str | None = None
    provider: str | None = None
    ignore_patterns: list[str] = field(default_factory=list)
    mcp_servers: list[str] = field(default_factory=list)
    client: ClientConfig = field(default_factory=ClientConfig)
    config_source: str | None = None


def config_path(start_dir: str | os.PathLike | None = None) -> Path:
    return Path(start_dir or os.getcwd()) / CONFIG_DIR / CONFIG_FILE


def load_config(start_dir: str | os.PathLike | None = None) -> dict[str, Any]:
    """Read ``.aicode/config.json`` under start_dir. Missing or broken → {}."""
    path = config_path(start_dir)
    if not path.exists():
        return {}
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Could not load {path}: {e}")
        return {}
    if not isinstance(data, dict):
        logger.warning(f"Ignoring {path}: top level must be an object")
        return {}
    return data


def parse_configuration(
    cli_args: Mapping[str, Any] | None = None,
    start_dir: str | os.PathLike | None = None,
) -> Settings:
    """
    Merge CLI values over the config file.

    Scalars from the CLI win; ``ignore`` and ``mcp`` lists are concatenated
    (file entries first). CLI keys use the host's flag names:
    ``log-level``, ``log-file``, ``model``, ``provider``, ``ignore``, ``mcp``.
    """
    cli_args = cli_args or {}
    config = load_config(start_dir)

    client = ClientConfig()
    request_timeout = _seconds(config, "requestTimeout")
    if request_timeout is not None:
        client.request_timeout = request_timeout or None
    shutdown_timeout = _seconds(config, "shutdownTimeout")
    if shutdown_timeout is not None:
        client.shutdown_timeout = shutdown_timeout

    return Settings(
        log_level=cli_args.get("log-level") or config.get("logLevel") or "warn",
        log_file=cli_args.get("log-file") or config.get("logFile"),
        model=cli_args.get("model") or config.get("model"),
        provider=cli_args.get("provider") or config.get("provider"),
        ignore_patterns=_as_list(config.get("ignore")) + _as_list(cli_args.get("ignore")),
        mcp_servers=_as_list(config.get("mcp")) + _as_list(cli_args.get("mcp")),
        client=client,
        config_source=str(config_path(start_dir)) if config else None,
    )


def _as_list(value: Any) -> list[str]:
    if value is None or value is False:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    return [str(value)]


def _seconds(config: Mapping[str, Any], key: str) -> float | None:
    """A non-negative number of seconds from the config file, or None if absent or invalid."""
    value = config.get(key)
    if value is None:
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring {key}={value!r} in config: not a number")
        return None
    if isinstance(value, bool) or seconds < 0 or math.isnan(seconds):
        logger.warning(f"Ignoring {key}={value!r} in config: not a valid duration")
        return None
    return seconds
