"""Settings file I/O. JSON object on disk; unreadable files read as empty."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


def settings_path() -> Path:
    raw = os.environ.get("TURN_SYNC_SETTINGS_PATH")
    if raw:
        return Path(raw).expanduser()
    return Path(os.path.expanduser("~/.config/turn-sync/settings.json"))


def load_settings(path: Path | None = None) -> dict:
    """Read the settings object. Missing file -> {}; malformed file -> {} with a warning."""
    target = path or settings_path()
    try:
        raw = target.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError:
        logger.warning("Failed to read settings from %s", target, exc_info=True)
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Ignoring malformed settings file %s", target)
        return {}
    return data if isinstance(data, dict) else {}


def save_settings(data: dict, path: Path | None = None) -> Path:
    """Write settings atomically (temp file + replace)."""
    target = path or settings_path()
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=".settings-", suffix=".json", dir=target.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2, sort_keys=True)
        os.replace(tmp_name, target)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    return target
