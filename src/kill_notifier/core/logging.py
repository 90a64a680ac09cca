"""
Kill Notifier Logging

Every module logs through get_logger(__name__). Loggers share a single
stderr handler whose format follows KILL_NOTIFIER_LOG_JSON:

    text:  [NOTIFIER WARNING] [enricher] Could not resolve system 30000142: ...
    json:  {"timestamp": "...", "level": "WARNING", "logger": "...", "message": "...", ...}

Values passed through ``extra=`` appear as top-level keys in JSON output.
"""

from __future__ import annotations

import json
import logging
import sys
import traceback
from datetime import datetime, timezone
from typing import Any, Optional

from .config import get_settings

ROOT_LOGGER_NAME = "kill_notifier"

# Attributes every LogRecord carries; anything else came in through extra=
_STANDARD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}


class NotifierFormatter(logging.Formatter):
    """Text or JSON-lines formatter for notifier records."""

    def __init__(self, json_output: bool = False) -> None:
        super().__init__()
        self.json_output = json_output

    def format(self, record: logging.LogRecord) -> str:
        exc = "".join(traceback.format_exception(*record.exc_info)) if record.exc_info else None

        if not self.json_output:
            short_name = record.name.rpartition(".")[2]
            line = f"[NOTIFIER {record.levelname}] [{short_name}] {record.getMessage()}"
            return f"{line}\n{exc}" if exc else line

        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(timespec="seconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(
            (key, value) for key, value in vars(record).items() if key not in _STANDARD_ATTRS
        )
        if exc:
            payload["exception"] = exc
        return json.dumps(payload, default=str)


class _Registry:
    """Loggers handed out by get_logger and the handler they share."""

    def __init__(self) -> None:
        self.loggers: dict[str, logging.Logger] = {}
        self.handler: Optional[logging.Handler] = None

    def shared_handler(self) -> logging.Handler:
        if self.handler is None:
            self.handler = logging.StreamHandler(sys.stderr)
            self.handler.setFormatter(NotifierFormatter(json_output=get_settings().log_json))
        return self.handler


_registry = _Registry()


def get_logger(name: str) -> logging.Logger:
    """
    Get the logger for a module, attaching the shared handler on first use.

    Args:
        name: Module name (typically __name__)
    """
    logger = _registry.loggers.get(name)
    if logger is None:
        logger = logging.getLogger(name)
        logger.setLevel(get_settings().log_level_int)
        logger.addHandler(_registry.shared_handler())
        logger.propagate = False
        _registry.loggers[name] = logger
    return logger


def set_log_level(level: int) -> None:
    """Change the level of every logger created so far."""
    for logger in _registry.loggers.values():
        logger.setLevel(level)


def debug_enabled() -> bool:
    return get_settings().log_level_int <= logging.DEBUG


def reset_logging() -> None:
    """
    Hand kill_notifier.* records back to the root logger.

    Used by tests so caplog sees them: levels go to NOTSET, propagation
    is restored, and the shared handler is detached and discarded.
    """
    for name, entry in list(logging.Logger.manager.loggerDict.items()):
        if not isinstance(entry, logging.Logger):
            continue
        if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
            entry.propagate = True
            entry.setLevel(logging.NOTSET)

    if _registry.handler is not None:
        for logger in _registry.loggers.values():
            logger.removeHandler(_registry.handler)
    _registry.handler = None
