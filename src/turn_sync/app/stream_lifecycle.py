"""Per-message phase overrides and live stream ids.

Owns the explicit lifecycle override consumed by the phase resolver, and the
"which message is streaming in this session" pointer.

// [LAW:one-source-of-truth] session_id -> streaming message id lives here only.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from turn_sync.core.stream_phase import SessionActivity, StreamPhase

logger = logging.getLogger(__name__)


@dataclass
class MessageStreamLifecycle:
    phase: StreamPhase
    started_at: float
    last_update_at: float
    completed_at: float | None = None


class StreamLifecycleRegistry:
    def __init__(self) -> None:
        self._lifecycles: dict[str, MessageStreamLifecycle] = {}
        self._message_sessions: dict[str, str] = {}
        self._streaming_ids: dict[str, str] = {}

    def touch(self, session_id: str, message_id: str, now: float) -> MessageStreamLifecycle:
        """Record incoming content for message_id; marks it streaming."""
        lifecycle = self._lifecycles.get(message_id)
        if lifecycle is None:
            lifecycle = MessageStreamLifecycle(
                phase=StreamPhase.STREAMING,
                started_at=now,
                last_update_at=now,
            )
            self._lifecycles[message_id] = lifecycle
        else:
            lifecycle.phase = StreamPhase.STREAMING
            lifecycle.last_update_at = now
        self._message_sessions[message_id] = session_id
        if self._streaming_ids.get(session_id) != message_id:
            logger.debug("streaming id session=%s message=%s", session_id, message_id)
            self._streaming_ids[session_id] = message_id
        return lifecycle

    def begin_cooldown(self, message_id: str, now: float) -> bool:
        lifecycle = self._lifecycles.get(message_id)
        if lifecycle is None:
            return False
        lifecycle.phase = StreamPhase.COOLDOWN
        lifecycle.last_update_at = now
        return True

    def complete(self, session_id: str, message_id: str, now: float) -> None:
        """Finish a message: clear the session pointer if it matches, drop the override."""
        if self._streaming_ids.get(session_id) == message_id:
            del self._streaming_ids[session_id]
        lifecycle = self._lifecycles.pop(message_id, None)
        if lifecycle is not None:
            lifecycle.phase = StreamPhase.COMPLETED
            lifecycle.completed_at = now
        self._message_sessions.pop(message_id, None)

    def settle(self, message_id: str) -> None:
        """Host finished animating message_id; the override no longer applies."""
        self._lifecycles.pop(message_id, None)

    def forget(self, message_ids: Iterable[str]) -> None:
        """Drop all bookkeeping for messages that left the timeline."""
        for mid in message_ids:
            self._lifecycles.pop(mid, None)
            session_id = self._message_sessions.pop(mid, None)
            if session_id is not None and self._streaming_ids.get(session_id) == mid:
                del self._streaming_ids[session_id]

    # ─── Read-only accessors ──────────────────────────────────────────

    def phase_override(self, message_id: str) -> StreamPhase | None:
        lifecycle = self._lifecycles.get(message_id)
        return lifecycle.phase if lifecycle is not None else None

    def get(self, message_id: str) -> MessageStreamLifecycle | None:
        return self._lifecycles.get(message_id)

    def streaming_message_id(self, session_id: str) -> str | None:
        return self._streaming_ids.get(session_id)

    def is_streaming_in_session(self, session_id: str, message_id: str) -> bool:
        if self._streaming_ids.get(session_id) == message_id:
            return True
        return (
            self._message_sessions.get(message_id) == session_id
            and message_id in self._lifecycles
        )

    def session_activity(self, session_id: str, *, is_working: bool) -> SessionActivity:
        return SessionActivity(
            is_working=is_working,
            streaming_message_id=self._streaming_ids.get(session_id),
        )
