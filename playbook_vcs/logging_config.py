"""Logging setup for the ``playbook_vcs`` package logger."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

PACKAGE_LOGGER = "playbook_vcs"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_CONFIGURED = False


def configure_logging() -> logging.Logger:
    """Route ``playbook_vcs.*`` records according to LOG_LEVEL and LOG_FILE.

    Level 1 appends INFO and above to LOG_FILE, level 2 and above adds
    DEBUG. Level 0, an unparsable level or a missing LOG_FILE attach only a
    NullHandler, so nothing reaches the last-resort stderr handler. The
    root logger is never touched. Later calls return the logger unchanged.
    """
    global _CONFIGURED
    logger = logging.getLogger(PACKAGE_LOGGER)
    if _CONFIGURED:
        return logger

    level = _read_level(os.getenv("LOG_LEVEL", "0"))
    log_path = os.getenv("LOG_FILE")

    if level is None or level <= 0 or not log_path:
        logger.addHandler(logging.NullHandler())
        _CONFIGURED = True
        return logger

    log_file = Path(log_path)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(_map_level(level))
    _CONFIGURED = True
    logger.debug("Logging to %s at level %d", log_file, level)
    return logger


def _read_level(raw: str) -> Optional[int]:
    try:
        return int(raw)
    except ValueError:
        return None


def _map_level(level: int) -> int:
    if level >= 2:
        return logging.DEBUG
    return logging.INFO
