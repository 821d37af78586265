"""Pytest configuration and shared fixtures for turn-sync tests."""

import pytest

import turn_sync.io.logging_setup
import turn_sync.io.perf_logging


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path, monkeypatch):
    """Keep settings/log files under tmp_path and logging handlers per-test."""
    monkeypatch.setenv("TURN_SYNC_SETTINGS_PATH", str(tmp_path / "settings.json"))
    monkeypatch.setenv("TURN_SYNC_LOG_FILE", str(tmp_path / "logs" / "turn-sync.log"))
    for name in ("TURN_SYNC_TOOL_CALL_EXPANSION", "TURN_SYNC_CONTEXT_CACHE_LIMIT", "TURN_SYNC_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    turn_sync.io.logging_setup.reset()
    yield
    turn_sync.io.logging_setup.reset()
    turn_sync.io.perf_logging.set_enabled(True)


@pytest.fixture
def settings_file(tmp_path):
    return tmp_path / "settings.json"
