"""
Configuration management for audiodb.

This module loads database and scanner settings from TOML files. Values not
present in a user file fall back to the packaged `defaults.toml`.
"""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Final

logger = logging.getLogger(__name__)

# Path to the config directory
CONFIG_DIR = Path(__file__).parent

# Pragma values are interpolated into SQL, so only these are accepted.
JOURNAL_MODES: Final[frozenset[str]] = frozenset(
    {"DELETE", "TRUNCATE", "PERSIST", "MEMORY", "WAL", "OFF"}
)
SYNCHRONOUS_MODES: Final[frozenset[str]] = frozenset({"OFF", "NORMAL", "FULL", "EXTRA"})


@dataclass
class DatabaseConfig:
    """Where the library lives and how the connection is set up."""

    path: str = "audiodb.sqlite3"
    journal_mode: str = "WAL"
    synchronous: str = "NORMAL"
    dedupe_unknown_artist_albums: bool = False


@dataclass
class ScanSettings:
    """Which files a scan picks up."""

    extensions: frozenset[str] = field(default_factory=frozenset)
    follow_symlinks: bool = False
    max_concurrency: int = 8


@dataclass
class AudioDbConfig:
    """Loaded configuration."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    scan: ScanSettings = field(default_factory=ScanSettings)


def _pragma_value(value: object, allowed: frozenset[str], default: str, key: str) -> str:
    v = str(value).upper()
    if v not in allowed:
        logger.warning("Invalid %s %r in config, using %s", key, value, default)
        return default
    return v


def _bool_value(value: object, default: bool, key: str) -> bool:
    if not isinstance(value, bool):
        logger.warning("Invalid %s %r in config, using %s", key, value, default)
        return default
    return value


def _parse_database(data: dict[str, Any]) -> DatabaseConfig:
    defaults = DatabaseConfig()
    return DatabaseConfig(
        path=str(data.get("path", defaults.path)),
        journal_mode=_pragma_value(
            data.get("journal_mode", defaults.journal_mode),
            JOURNAL_MODES,
            defaults.journal_mode,
            "journal_mode",
        ),
        synchronous=_pragma_value(
            data.get("synchronous", defaults.synchronous),
            SYNCHRONOUS_MODES,
            defaults.synchronous,
            "synchronous",
        ),
        dedupe_unknown_artist_albums=_bool_value(
            data.get("dedupe_unknown_artist_albums", defaults.dedupe_unknown_artist_albums),
            defaults.dedupe_unknown_artist_albums,
            "dedupe_unknown_artist_albums",
        ),
    )


def _parse_scan(data: dict[str, Any]) -> ScanSettings:
    extensions = frozenset(
        e.lower() if e.startswith(".") else f".{e.lower()}"
        for e in (str(x) for x in data.get("extensions", []))
    )
    return ScanSettings(
        extensions=extensions,
        follow_symlinks=_bool_value(data.get("follow_symlinks", False), False, "follow_symlinks"),
        max_concurrency=max(1, int(data.get("max_concurrency", 8))),
    )


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _read_toml(path: Path) -> dict[str, Any]:
    with path.open("rb") as f:
        return tomllib.load(f)


def load_config(config_path: Path | None = None) -> AudioDbConfig:
    """
    Load configuration from TOML.

    Args:
        config_path: User config file. If None, only the packaged defaults are used.

    Returns:
        Loaded AudioDbConfig instance.
    """
    data = _read_toml(CONFIG_DIR / "defaults.toml")
    if config_path is not None:
        logger.debug("Loading config from %s", config_path)
        data = _merge(data, _read_toml(config_path))

    return AudioDbConfig(
        database=_parse_database(data.get("database", {})),
        scan=_parse_scan(data.get("scan", {})),
    )


# Global singleton instance (lazy loaded)
_config: AudioDbConfig | None = None


def get_config() -> AudioDbConfig:
    """
    Get the global configuration (lazy loaded singleton).

    Returns:
        The AudioDbConfig instance.
    """
    global _config

    if _config is None:
        _config = load_config()

    return _config


def reload_config(config_path: Path | None = None) -> AudioDbConfig:
    """
    Force reload of the configuration.

    Returns:
        The newly loaded AudioDbConfig instance.
    """
    global _config
    _config = load_config(config_path)
    return _config
