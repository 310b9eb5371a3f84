"""Server configuration: defaults, ``config.yml`` overlay, CLI overrides."""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

DEFAULT_HTTP = ":3333"
DEFAULT_DEBOUNCE_MS = 500
DEFAULT_SHUTDOWN_GRACE = 10.0

CONFIG_FILENAME = "config.yml"
AUTOINDEX_FILENAME = "autoindex"


class ConfigError(Exception):
    """Raised when configuration is malformed."""


@dataclass
class ServeConfig:
    """Settings for ``doctree serve``."""

    data_dir: Path
    http: str = DEFAULT_HTTP
    cloud_mode: bool = False
    recursive_watch: bool = False
    debounce_ms: int = DEFAULT_DEBOUNCE_MS
    max_concurrent_reindexes: int = 1
    shutdown_grace: float = DEFAULT_SHUTDOWN_GRACE

    @property
    def autoindex_path(self) -> Path:
        return self.data_dir / AUTOINDEX_FILENAME

    @property
    def index_dir(self) -> Path:
        return self.data_dir / "index"


def default_data_dir() -> Path:
    """Return ``$DOCTREE_DATA_DIR`` or ``~/.doctree``."""
    env = os.environ.get("DOCTREE_DATA_DIR")
    if env:
        return Path(env).expanduser()
    return Path.home() / ".doctree"


# YAML key path -> (ServeConfig field, accepted types)
_YAML_KEYS: dict[tuple[str, ...], tuple[str, tuple[type, ...]]] = {
    ("http",): ("http", (str,)),
    ("cloud",): ("cloud_mode", (bool,)),
    ("watch", "recursive"): ("recursive_watch", (bool,)),
    ("watch", "debounce_ms"): ("debounce_ms", (int,)),
    ("reindex", "max_concurrent"): ("max_concurrent_reindexes", (int,)),
    ("shutdown_grace",): ("shutdown_grace", (int, float)),
}


def _flatten(data: dict[str, Any], prefix: tuple[str, ...] = ()) -> dict[tuple[str, ...], Any]:
    flat: dict[tuple[str, ...], Any] = {}
    for key, value in data.items():
        path = (*prefix, str(key))
        if isinstance(value, dict):
            flat.update(_flatten(value, path))
        else:
            flat[path] = value
    return flat


def _read_config_file(path: Path) -> dict[str, Any]:
    """Read ``config.yml`` into ``{field_name: value}``; missing file is empty."""
    import yaml

    if not path.is_file():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"cannot read {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be a mapping")

    values: dict[str, Any] = {}
    for key_path, value in _flatten(data).items():
        dotted = ".".join(key_path)
        if key_path not in _YAML_KEYS:
            raise ConfigError(f"{path}: unknown key '{dotted}'")
        field_name, types = _YAML_KEYS[key_path]
        # bool is an int subclass; don't accept `true` for numeric settings.
        if not isinstance(value, types) or (isinstance(value, bool) and bool not in types):
            raise ConfigError(f"{path}: '{dotted}' has invalid value {value!r}")
        values[field_name] = value
    return values


def load_config(data_dir: Path | None = None, **overrides: Any) -> ServeConfig:
    """Build a :class:`ServeConfig`.

    Precedence: *overrides* (``None`` values are ignored) > ``config.yml``
    in the data directory > defaults.
    """
    data_dir = (data_dir or default_data_dir()).expanduser()
    known = {f.name for f in fields(ServeConfig)}

    values = _read_config_file(data_dir / CONFIG_FILENAME)
    for name, value in overrides.items():
        if name not in known or name == "data_dir":
            raise ConfigError(f"unknown setting '{name}'")
        if value is not None:
            values[name] = value

    config = ServeConfig(data_dir=data_dir, **values)
    if config.debounce_ms < 0:
        raise ConfigError("debounce must be >= 0 ms")
    if config.max_concurrent_reindexes < 1:
        raise ConfigError("reindex.max_concurrent must be >= 1")
    if config.shutdown_grace < 0:
        raise ConfigError("shutdown_grace must be >= 0")
    parse_address(config.http)
    return config


def parse_address(addr: str) -> tuple[str, int]:
    """Split a ``host:port`` bind address.

    An empty host (``":3333"``) binds every interface. IPv6 hosts must be
    bracketed (``"[::1]:3333"``).
    """
    host, sep, port_str = addr.rpartition(":")
    if not sep or not port_str.isdigit():
        raise ConfigError(f"invalid bind address '{addr}' (expected host:port)")
    port = int(port_str)
    if not 0 < port < 65536:
        raise ConfigError(f"invalid port in bind address '{addr}'")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    elif ":" in host:
        raise ConfigError(f"IPv6 host must be bracketed in '{addr}'")
    return host or "0.0.0.0", port
