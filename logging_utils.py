"""Tagged logging helper shared by every Speaker Align module.

Messages are written as ``[LEVEL][Tag] message | key=value ...`` so capture,
transport and analysis output can be filtered by tag.
"""
from __future__ import annotations

import logging
from typing import Any

LOGGER_NAME = "speakeralign"

_logger = logging.getLogger(LOGGER_NAME)
if not _logger.handlers:
    handler = logging.StreamHandler()
    formatter = logging.Formatter("%(asctime)s [%(levelname)s][%(tag)s] %(message)s", "%H:%M:%S")
    handler.setFormatter(formatter)
    _logger.addHandler(handler)
    _logger.setLevel(logging.INFO)
    _logger.propagate = False


class _TagAdapter(logging.LoggerAdapter):
    def process(self, msg: Any, kwargs: dict[str, Any]):
        tag = kwargs.pop("tag", "Core")
        kwargs.setdefault("extra", {})["tag"] = tag
        return msg, kwargs


_logger_adapter = _TagAdapter(_logger, {})


def _level_value(level: str | None) -> int:
    level_name = (level or "INFO").upper()
    if level_name == "WARN":
        level_name = "WARNING"
    value = logging.getLevelName(level_name)
    return value if isinstance(value, int) else logging.INFO


def log_event(level: str, tag: str, message: str, **fields: Any) -> None:
    """Log a message with level+tag, appending key=value fields when provided."""
    if fields:
        extras = " ".join(f"{k}={v}" for k, v in fields.items())
        message = f"{message} | {extras}"
    _logger_adapter.log(_level_value(level), message, tag=tag)


def set_log_level(level: str) -> None:
    """Set global log level (DEBUG/INFO/WARNING/ERROR)."""
    _logger.setLevel(_level_value(level))


def get_log_level() -> str:
    """Return current global log level name."""
    return logging.getLevelName(_logger.level)
