"""
bracketeer/config.py - Local configuration management

Reads user config from a platform-appropriate config directory:
  - macOS/Linux: ~/.bracketeer/config.toml
  - Windows: %APPDATA%\\bracketeer\\config.toml

Example:
    [server]
    host = "127.0.0.1"
    port = 8000
    db = "~/brackets/bracketeer.db"

    [bracket]
    mode = "manual"          # or "random"
    max_competitors = 64
    tournament_id = "spring-cup"
    timer_seconds = 180
"""

import logging
import os
import sys
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

from .bracket import BracketMode
from .roster import MAX_COMPETITORS
from .scoring import DEFAULT_TIMER_SECONDS

logger = logging.getLogger(__name__)

# ============================================================================
# Constants
# ============================================================================


def _get_config_dir() -> Path:
    """Get platform-appropriate config directory."""
    if sys.platform == "win32":
        appdata = os.environ.get("APPDATA")
        if appdata:
            return Path(appdata) / "bracketeer"
    return Path.home() / ".bracketeer"


CONFIG_DIR = _get_config_dir()
CONFIG_PATH = CONFIG_DIR / "config.toml"

DEFAULT_DB_PATH = "bracketeer.db"
DEFAULT_TOURNAMENT_ID = "default"


# ============================================================================
# Data Types
# ============================================================================


@dataclass
class ServerConfig:
    """Where the HTTP server listens and keeps its data."""

    host: str = "0.0.0.0"
    port: int = 8000
    db_path: str = DEFAULT_DB_PATH


@dataclass
class BracketConfig:
    """Defaults for new brackets."""

    mode: BracketMode = BracketMode.MANUAL
    max_competitors: int = MAX_COMPETITORS
    tournament_id: str = DEFAULT_TOURNAMENT_ID
    timer_seconds: int = DEFAULT_TIMER_SECONDS


@dataclass
class BracketeerConfig:
    """Top-level configuration."""

    server: ServerConfig = field(default_factory=ServerConfig)
    bracket: BracketConfig = field(default_factory=BracketConfig)


# ============================================================================
# Parsing
# ============================================================================


def _expand(path: str | None) -> str | None:
    """Expand ~ in a path string."""
    if path is None:
        return None
    return str(Path(path).expanduser())


def _parse_server(data: dict) -> ServerConfig:
    defaults = ServerConfig()
    return ServerConfig(
        host=data.get("host", defaults.host),
        port=int(data.get("port", defaults.port)),
        db_path=_expand(data.get("db")) or defaults.db_path,
    )


def _parse_bracket(data: dict) -> BracketConfig:
    defaults = BracketConfig()
    mode = data.get("mode", defaults.mode.value)
    try:
        mode = BracketMode(mode)
    except ValueError:
        logger.warning(f"Unknown bracket mode {mode!r}, using {defaults.mode.value}")
        mode = defaults.mode

    max_competitors = int(data.get("max_competitors", defaults.max_competitors))
    if not 2 <= max_competitors <= MAX_COMPETITORS:
        logger.warning(
            f"max_competitors={max_competitors} outside 2..{MAX_COMPETITORS}, using {defaults.max_competitors}"
        )
        max_competitors = defaults.max_competitors

    timer_seconds = int(data.get("timer_seconds", defaults.timer_seconds))
    if timer_seconds < 0:
        logger.warning(f"timer_seconds={timer_seconds} is negative, using {defaults.timer_seconds}")
        timer_seconds = defaults.timer_seconds

    return BracketConfig(
        mode=mode,
        max_competitors=max_competitors,
        tournament_id=str(data.get("tournament_id", defaults.tournament_id)),
        timer_seconds=timer_seconds,
    )


def load_config(path: Path | None = None) -> BracketeerConfig:
    """
    Read config from TOML file.

    Args:
        path: Override config file path (default: ~/.bracketeer/config.toml)

    Returns:
        BracketeerConfig. Missing file or bad TOML returns defaults.
    """
    config_path = path or CONFIG_PATH

    if not config_path.exists():
        return BracketeerConfig()

    try:
        with open(config_path, "rb") as f:
            raw = tomllib.load(f)
    except Exception as e:
        logger.warning(f"Failed to parse {config_path}: {e}")
        return BracketeerConfig()

    config = BracketeerConfig()
    if isinstance(raw.get("server"), dict):
        config.server = _parse_server(raw["server"])
    if isinstance(raw.get("bracket"), dict):
        config.bracket = _parse_bracket(raw["bracket"])
    return config
