"""Configuration file for koko.

The file holds named Kodi hosts and an optional default::

    {
      "default": "living-room",
      "listen_port": 8000,
      "hosts": {
        "living-room": {"hostname": "kodi.local", "username": "kodi", "password": "..."}
      }
    }
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_HTTP_PORT = 8080
DEFAULT_WS_PORT = 9090
LOCALHOST = "localhost"


class ConfigError(Exception):
    """The configuration is unreadable or does not identify a host."""


def default_config_path() -> Path:
    """Return ``$XDG_CONFIG_HOME/koko/config.json`` (``~/.config`` by default)."""
    base = os.environ.get("XDG_CONFIG_HOME") or Path.home() / ".config"
    return Path(base) / "koko" / "config.json"


@dataclass
class HostConfig:
    """How to reach one Kodi instance."""

    hostname: str | None = None
    discovery: bool = False
    port: int = DEFAULT_HTTP_PORT
    ws_port: int = DEFAULT_WS_PORT
    username: str | None = None
    password: str | None = None
    listen_port: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to a dictionary for serialization, leaving out unset values."""
        data: dict[str, Any] = {
            "hostname": self.hostname,
            "discovery": self.discovery,
            "port": self.port,
            "ws_port": self.ws_port,
            "username": self.username,
            "password": self.password,
            "listen_port": self.listen_port,
        }
        return {key: value for key, value in data.items() if value is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HostConfig:
        """Create a host from a dictionary."""
        return cls(
            hostname=data.get("hostname"),
            discovery=bool(data.get("discovery", False)),
            port=int(data.get("port", DEFAULT_HTTP_PORT)),
            ws_port=int(data.get("ws_port", DEFAULT_WS_PORT)),
            username=data.get("username"),
            password=data.get("password"),
            listen_port=None if data.get("listen_port") is None else int(data["listen_port"]),
        )


@dataclass
class Config:
    """All configured hosts."""

    default: str | None = None
    hosts: dict[str, HostConfig] = field(default_factory=dict)
    listen_port: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to a dictionary for serialization."""
        data: dict[str, Any] = {"hosts": {label: h.to_dict() for label, h in self.hosts.items()}}
        if self.default is not None:
            data["default"] = self.default
        if self.listen_port is not None:
            data["listen_port"] = self.listen_port
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Config:
        """Create a config from a dictionary."""
        hosts = data.get("hosts", {})
        if not isinstance(hosts, dict):
            raise ConfigError("'hosts' must be an object")
        return cls(
            default=data.get("default"),
            hosts={label: HostConfig.from_dict(h) for label, h in hosts.items()},
            listen_port=None if data.get("listen_port") is None else int(data["listen_port"]),
        )

    def get_host(self, label: str | None = None) -> HostConfig:
        """Pick the host to use.

        Args:
            label: Host label or host name from the command line, if any.

        Returns:
            The configured host for ``label``; a host whose name is ``label``
            when it is not configured; otherwise the default host, the only
            configured host, or localhost.

        Raises:
            ConfigError: No label, no default and several configured hosts,
                or a default that names no configured host.
        """
        if label is not None:
            host = self.hosts.get(label)
            if host is None:
                return HostConfig(hostname=label)
            logger.debug("Using the host config named %s", label)
            return host

        if self.default is None:
            if len(self.hosts) > 1:
                raise ConfigError(
                    "No default host is set, several hosts are configured, "
                    "and no Kodi host was given with -k"
                )
            if not self.hosts:
                return HostConfig(hostname=LOCALHOST)
            host = next(iter(self.hosts.values()))
            return host if host.hostname else replace(host, hostname=LOCALHOST)

        host = self.hosts.get(self.default)
        if host is None:
            raise ConfigError(f"Default host {self.default!r} is not configured")
        return host if host.hostname else replace(host, hostname=self.default)


def load_config(path: Path) -> Config:
    """Load the config file; a missing file gives an empty config.

    Raises:
        ConfigError: The file cannot be read or parsed.
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        logger.debug("No config file at %s", path)
        return Config()
    except OSError as err:
        raise ConfigError(f"Failed to read {path}: {err}") from err
    except json.JSONDecodeError as err:
        raise ConfigError(f"Failed to parse {path}: {err}") from err

    if not isinstance(data, dict):
        raise ConfigError(f"Failed to parse {path}: expected an object")
    try:
        config = Config.from_dict(data)
    except (AttributeError, TypeError, ValueError) as err:
        raise ConfigError(f"Failed to parse {path}: {err}") from err
    logger.info("Loaded config from %s", path)
    return config


def save_config(config: Config, path: Path) -> None:
    """Write the config file atomically."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(config.to_dict(), f, indent=2)
            f.write("\n")
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    logger.debug("Saved config to %s", path)
