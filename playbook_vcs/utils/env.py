"""Helpers for loading environment configuration."""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Optional, Tuple, Union

_ENV_LOADED = False

_LOGGER = logging.getLogger(__name__)


def load_dotenv(dotenv_path: Union[str, Path] = ".env") -> None:
    """Load environment variables from a simple ``.env`` file if present."""
    global _ENV_LOADED
    if _ENV_LOADED:
        return

    path = Path(dotenv_path)
    if path.exists():
        for line in path.read_text().splitlines():
            parsed = _parse_line(line)
            if parsed:
                key, value = parsed
                os.environ.setdefault(key, value)

    _ENV_LOADED = True


def _parse_line(line: str) -> Optional[Tuple[str, str]]:
    stripped = line.strip()
    if not stripped or stripped.startswith("#"):
        return None

    if "=" not in stripped:
        return None

    key, value = stripped.split("=", 1)
    return (key.strip(), value.strip().strip("\"'"))


def _truthy(value: Optional[str]) -> bool:
    if value is None:
        return False
    lowered = value.strip().lower()
    return lowered in {"1", "true", "yes", "on"}


def env_flag(name: str) -> bool:
    """Return True when the named variable holds a truthy value."""

    load_dotenv()
    return _truthy(os.environ.get(name))


def read_setting(name: str, default: Optional[str] = None) -> Optional[str]:
    """Return a stripped environment setting, treating blanks as unset."""

    load_dotenv()
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


def validate_runtime_environment() -> None:
    """Exit the process when logging is requested but cannot be written."""

    load_dotenv()

    level_raw = os.environ.get("LOG_LEVEL", "0").strip() or "0"
    log_path_raw = os.environ.get("LOG_FILE", "").strip()

    def _fail(message: str) -> None:
        _LOGGER.error("Environment validation failed: %s", message)
        print(f"Environment validation failed: {message}", file=sys.stderr)
        raise SystemExit(1)

    try:
        level = int(level_raw)
    except ValueError:
        _fail(f"LOG_LEVEL must be an integer, got {level_raw!r}")
        return

    if level <= 0:
        return

    if not log_path_raw:
        _fail("LOG_LEVEL is set but LOG_FILE is empty or unset")

    log_path = Path(log_path_raw)
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        with open(log_path, "a", encoding="utf-8"):
            pass
    except Exception as error:  # noqa: BLE001 - convert to friendly message
        _fail(f"LOG_FILE is not writable: {error}")

    if not log_path.suffix:
        _LOGGER.warning(
            "LOG_FILE has no extension; continuing but consider using .log",
        )
