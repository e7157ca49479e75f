"""Proxy configuration.

Settings come from three places, later ones winning:
- Defaults on ``ProxyConfig``
- A TOML file with a ``[socks5_relay]`` table
- Command-line options (which Typer also fills from ``SOCKS5_RELAY_*`` variables)

Example:
    config = load_config(Path("relay.toml")).merged(port=1081)
    config.validate()
"""

import ipaddress
import sys
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Final

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from socks5_relay.core.exceptions import ConfigError

DEFAULT_HOST: Final = "0.0.0.0"
DEFAULT_PORT: Final = 1080
DEFAULT_BUFFER_SIZE: Final = 4096
CONFIG_TABLE: Final = "socks5_relay"

# TOML value type expected for each setting
SETTING_TYPES: Final = {
    "host": str,
    "port": int,
    "buffer_size": int,
    "nameservers": list,
    "log_level": str,
    "log_file": str,
}


@dataclass(frozen=True)
class ProxyConfig:
    """Runtime settings for the proxy server.

    Attributes:
        host: Address the listener binds to
        port: Port the listener binds to (0 picks a free port)
        buffer_size: Maximum chunk size read by each relay direction
        nameservers: IPv4 nameservers to query instead of the system resolver
        log_level: Level of the stderr log sink
        log_file: Optional path of a rotating log file
    """

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    buffer_size: int = DEFAULT_BUFFER_SIZE
    nameservers: tuple[str, ...] = field(default_factory=tuple)
    log_level: str = "INFO"
    log_file: Path | None = None

    def merged(self, **overrides: Any) -> "ProxyConfig":
        """Return a copy with every non-``None`` override applied."""
        changes = {key: value for key, value in overrides.items() if value is not None}
        if "nameservers" in changes:
            changes["nameservers"] = tuple(changes["nameservers"])
            if not changes["nameservers"]:
                del changes["nameservers"]
        if "log_file" in changes:
            changes["log_file"] = Path(changes["log_file"])
        return replace(self, **changes)

    def validate(self) -> "ProxyConfig":
        """Check value ranges.

        Raises:
            ConfigError: If any setting is out of range
        """
        if not 0 <= self.port <= 65535:
            msg = f"port must be between 0 and 65535, got {self.port}"
            raise ConfigError(msg)
        if self.buffer_size <= 0:
            msg = f"buffer_size must be positive, got {self.buffer_size}"
            raise ConfigError(msg)
        for nameserver in self.nameservers:
            try:
                ipaddress.IPv4Address(nameserver)
            except ValueError as e:
                msg = f"nameserver {nameserver!r} is not an IPv4 address"
                raise ConfigError(msg) from e
        return self


def _check_types(table: dict[str, Any], path: Path) -> None:
    for key, value in table.items():
        expected = SETTING_TYPES[key]
        # bool is an int subclass but never a valid port or size
        if not isinstance(value, expected) or isinstance(value, bool):
            msg = f"{key} must be {expected.__name__}, got {type(value).__name__} (in {path})"
            raise ConfigError(msg)
        if key == "nameservers" and not all(isinstance(item, str) for item in value):
            msg = f"nameservers must be a list of str (in {path})"
            raise ConfigError(msg)


def load_config(path: Path | None = None) -> ProxyConfig:
    """Load settings from a TOML file.

    Args:
        path: File to read; defaults are returned when ``None``

    Raises:
        ConfigError: If the file cannot be read or holds unknown keys or mistyped values
    """
    if path is None:
        return ProxyConfig()

    try:
        with path.open("rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        msg = f"cannot read config file {path}: {e}"
        raise ConfigError(msg) from e

    table = data.get(CONFIG_TABLE, {})
    known = {f.name for f in fields(ProxyConfig)}
    unknown = sorted(set(table) - known)
    if unknown:
        msg = f"unknown settings in {path}: {', '.join(unknown)}"
        raise ConfigError(msg)
    _check_types(table, path)
    return ProxyConfig().merged(**table)
