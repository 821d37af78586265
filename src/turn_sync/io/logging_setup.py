"""Logger wiring for the turn_sync package.

The level and log file arrive already resolved (app.settings owns their
defaults and overrides); this module only attaches handlers to the
"turn_sync" logger. Every run appends to the same file and rotation keeps
it bounded.

// [LAW:single-enforcer] Logger handler wiring is enforced in this module only.
// [LAW:one-way-deps] Values come from callers; io never reads app settings.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path

ROOT_LOGGER = "turn_sync"
STREAM_FORMAT = "[%(name)s] %(levelname)s %(message)s"
FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
MAX_BYTES = 20 * 1024 * 1024
BACKUP_COUNT = 5


@dataclass(frozen=True)
class LoggingRuntime:
    level_name: str
    level: int
    file_path: str | None


_RUNTIME: LoggingRuntime | None = None


def default_log_path() -> str:
    return os.path.expanduser("~/.local/share/turn-sync/logs/turn-sync.log")


def level_number(name: str) -> int:
    """Numeric level for a standard level name. Unknown names raise ValueError."""
    level = logging.getLevelName(str(name).strip().upper())
    if not isinstance(level, int):
        raise ValueError(f"unknown log level {name!r}")
    return level


def _open_log_file(file_path: str, level: int) -> logging.Handler:
    Path(file_path).parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(file_path, maxBytes=MAX_BYTES, backupCount=BACKUP_COUNT, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S"))
    return handler


def configure(level: str = "INFO", file_path: str | None = None, *, stderr: bool = True) -> LoggingRuntime:
    """Attach handlers to the turn_sync logger and return what was configured.

    Idempotent: repeated calls return the first runtime unchanged.
    stderr=False keeps the terminal clean while a full-screen app owns it.
    A log file that cannot be opened is skipped with a warning; the runtime
    then reports file_path=None.
    """
    global _RUNTIME
    if _RUNTIME is not None:
        return _RUNTIME

    number = level_number(level)
    target = file_path or default_log_path()

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(number)
    logger.propagate = False
    logger.handlers.clear()
    if stderr:
        stream = logging.StreamHandler()
        stream.setLevel(number)
        stream.setFormatter(logging.Formatter(STREAM_FORMAT))
        logger.addHandler(stream)

    opened: str | None = target
    try:
        logger.addHandler(_open_log_file(target, number))
    except OSError as exc:
        opened = None
        logger.warning("log file %s unavailable: %s", target, exc)

    logging.captureWarnings(True)

    _RUNTIME = LoggingRuntime(level_name=logging.getLevelName(number), level=number, file_path=opened)
    return _RUNTIME


def get_runtime() -> LoggingRuntime | None:
    return _RUNTIME


def reset() -> None:
    """Detach and close handlers and forget the runtime."""
    global _RUNTIME
    logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
    _RUNTIME = None
