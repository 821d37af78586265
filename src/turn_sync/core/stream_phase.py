"""Streaming phase resolution per message.

// [LAW:single-enforcer] Phase priority order is decided only in resolve_stream_phase.
// [LAW:one-source-of-truth] "Is this turn working" reads TurnIndex.last_turn_id only.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from turn_sync.core.messages import MessageEntry, completed_at, message_id
from turn_sync.core.turns import TurnIndex


class StreamPhase(Enum):
    STREAMING = "streaming"
    COOLDOWN = "cooldown"
    COMPLETED = "completed"


@dataclass(frozen=True)
class SessionActivity:
    """Session-wide activity signal delivered by the session layer."""

    is_working: bool = False
    streaming_message_id: str | None = None


IDLE_SESSION = SessionActivity()


def resolve_stream_phase(
    completed: float | None,
    lifecycle_phase: StreamPhase | None,
    is_streaming_message: bool,
) -> StreamPhase:
    """Completion timestamp > lifecycle override > live stream > completed.

    A positive completion timestamp is terminal. A message with no timestamp
    that is not the live stream reads as settled rather than stuck.
    """
    if completed is not None and completed > 0:
        return StreamPhase.COMPLETED
    if lifecycle_phase is not None:
        return lifecycle_phase
    return StreamPhase.STREAMING if is_streaming_message else StreamPhase.COMPLETED


def phase_for_message(
    entry: MessageEntry,
    *,
    lifecycle_phase: StreamPhase | None = None,
    streaming_message_id: str | None = None,
) -> StreamPhase:
    mid = message_id(entry)
    return resolve_stream_phase(
        completed_at(entry),
        lifecycle_phase,
        bool(mid) and mid == streaming_message_id,
    )


def is_turn_working(index: TurnIndex, turn_id: str, session_is_working: bool) -> bool:
    """Only the last turn can be working; earlier turns are always settled."""
    return session_is_working and index.last_turn_id == turn_id
