"""Settings schema and resolution.

// [LAW:one-source-of-truth] All known settings and their defaults live in SCHEMA.
// [LAW:single-enforcer] Disk/env/override precedence is resolved only in _merged().
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

import turn_sync.io.logging_setup
import turn_sync.io.settings
from turn_sync.app.turn_ui_state import ToolCallExpansion

logger = logging.getLogger(__name__)

SCHEMA: dict[str, object] = {
    "tool_call_expansion": ToolCallExpansion.COLLAPSED.value,
    "text_justification_activity": False,
    "show_reasoning_traces": True,
    "context_cache_limit": 500,
    "log_level": "INFO",
    "log_file": "",
}

# env var -> settings key
ENV_OVERRIDES: dict[str, str] = {
    "TURN_SYNC_TOOL_CALL_EXPANSION": "tool_call_expansion",
    "TURN_SYNC_CONTEXT_CACHE_LIMIT": "context_cache_limit",
    "TURN_SYNC_LOG_LEVEL": "log_level",
    "TURN_SYNC_LOG_FILE": "log_file",
}


@dataclass(frozen=True)
class GroupingSettings:
    tool_call_expansion: ToolCallExpansion = ToolCallExpansion.COLLAPSED
    text_justification_activity: bool = False
    show_reasoning_traces: bool = True
    context_cache_limit: int = 500

    @classmethod
    def from_mapping(cls, data: dict) -> GroupingSettings:
        """Coerce raw values; invalid ones fall back to defaults with a warning."""
        defaults = cls()

        raw_expansion = data.get("tool_call_expansion", defaults.tool_call_expansion)
        try:
            expansion = ToolCallExpansion.parse(raw_expansion)
        except ValueError:
            logger.warning(
                "Unknown tool_call_expansion %r, using %s",
                raw_expansion,
                defaults.tool_call_expansion.value,
            )
            expansion = defaults.tool_call_expansion

        raw_limit = data.get("context_cache_limit", defaults.context_cache_limit)
        try:
            limit = int(raw_limit)
        except (TypeError, ValueError):
            logger.warning("Invalid context_cache_limit %r, using %d", raw_limit, defaults.context_cache_limit)
            limit = defaults.context_cache_limit

        return cls(
            tool_call_expansion=expansion,
            text_justification_activity=_as_bool(
                data.get("text_justification_activity", defaults.text_justification_activity)
            ),
            show_reasoning_traces=_as_bool(
                data.get("show_reasoning_traces", defaults.show_reasoning_traces)
            ),
            context_cache_limit=max(1, limit),
        )


@dataclass(frozen=True)
class LogSettings:
    level: str = "INFO"
    file: str | None = None

    @classmethod
    def from_mapping(cls, data: dict) -> LogSettings:
        raw_level = str(data.get("log_level") or cls.level).strip().upper()
        try:
            turn_sync.io.logging_setup.level_number(raw_level)
        except ValueError:
            logger.warning("Unknown log_level %r, using %s", raw_level, cls.level)
            raw_level = cls.level
        raw_file = data.get("log_file")
        file = os.path.expanduser(raw_file) if isinstance(raw_file, str) and raw_file.strip() else None
        return cls(level=raw_level, file=file)


def _as_bool(value: object) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _merged(overrides: dict | None, path: Path | None) -> dict:
    """SCHEMA defaults < disk < environment < overrides."""
    disk_data = turn_sync.io.settings.load_settings(path)
    merged = {k: disk_data.get(k, default) for k, default in SCHEMA.items()}
    for env_name, key in ENV_OVERRIDES.items():
        raw = os.environ.get(env_name)
        if raw is not None and raw.strip():
            merged[key] = raw.strip()
    if overrides:
        merged.update({k: v for k, v in overrides.items() if k in SCHEMA and v is not None})
    return merged


def load(overrides: dict | None = None, *, path: Path | None = None) -> GroupingSettings:
    """Resolve grouping settings: SCHEMA defaults < disk < environment < overrides."""
    return GroupingSettings.from_mapping(_merged(overrides, path))


def load_log_settings(overrides: dict | None = None, *, path: Path | None = None) -> LogSettings:
    """Level and file for io.logging_setup.configure(), resolved like load()."""
    return LogSettings.from_mapping(_merged(overrides, path))


def persist(settings: GroupingSettings, *, path: Path | None = None) -> None:
    """Write settings to disk. Catches and logs I/O errors."""
    snapshot = {
        "tool_call_expansion": settings.tool_call_expansion.value,
        "text_justification_activity": settings.text_justification_activity,
        "show_reasoning_traces": settings.show_reasoning_traces,
        "context_cache_limit": settings.context_cache_limit,
    }
    try:
        existing = turn_sync.io.settings.load_settings(path)
        existing.update(snapshot)
        turn_sync.io.settings.save_settings(existing, path)
    except Exception:
        logger.exception("Failed to persist settings to disk")
