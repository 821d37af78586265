"""Partition the message timeline into turns.

A turn is one user message plus the run of assistant messages after it, up to
the next user message. There is no close marker; the last turn stays open.

// [LAW:dataflow-not-control-flow] build_turn_index() is a pure function: entries in, index out.
// [LAW:one-source-of-truth] "Which turn is last" is answered only by TurnIndex.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from turn_sync.core.messages import MessageEntry, message_id, resolve_role


@dataclass(frozen=True)
class Turn:
    turn_id: str
    user_message: MessageEntry
    assistant_messages: tuple[MessageEntry, ...] = ()

    @property
    def members(self) -> tuple[MessageEntry, ...]:
        """User message followed by assistant messages, in source order."""
        return (self.user_message, *self.assistant_messages)


@dataclass(frozen=True)
class Neighbors:
    previous: MessageEntry | None = None
    next: MessageEntry | None = None


_NO_NEIGHBORS = Neighbors()


def detect_turns(messages: Sequence[MessageEntry]) -> tuple[Turn, ...]:
    """Single left-to-right scan. Assistant messages before any user are dropped."""
    turns: list[Turn] = []
    open_user: MessageEntry | None = None
    assistants: list[MessageEntry] = []

    def _close() -> None:
        if open_user is not None:
            turns.append(
                Turn(
                    turn_id=message_id(open_user),
                    user_message=open_user,
                    assistant_messages=tuple(assistants),
                )
            )

    for entry in messages:
        role = resolve_role(entry.info)
        if role == "user":
            _close()
            open_user = entry
            assistants = []
        elif role == "assistant" and open_user is not None:
            assistants.append(entry)
    _close()
    return tuple(turns)


@dataclass(frozen=True)
class TurnIndex:
    turns: tuple[Turn, ...] = ()
    message_to_turn: dict[str, Turn] = field(default_factory=dict)
    neighbor_map: dict[str, Neighbors] = field(default_factory=dict)

    @property
    def last_turn(self) -> Turn | None:
        return self.turns[-1] if self.turns else None

    @property
    def last_turn_id(self) -> str | None:
        last = self.last_turn
        return last.turn_id if last is not None else None

    @property
    def last_turn_message_ids(self) -> frozenset[str]:
        last = self.last_turn
        if last is None:
            return frozenset()
        return frozenset(message_id(m) for m in last.members)

    def turn_for(self, msg_id: str) -> Turn | None:
        return self.message_to_turn.get(msg_id)

    def is_in_last_turn(self, msg_id: str) -> bool:
        turn = self.message_to_turn.get(msg_id)
        return turn is not None and turn is self.last_turn

    def neighbors(self, msg_id: str) -> Neighbors:
        return self.neighbor_map.get(msg_id, _NO_NEIGHBORS)


EMPTY_INDEX = TurnIndex()


def build_turn_index(messages: Sequence[MessageEntry]) -> TurnIndex:
    """Build turns plus message-id lookups. Total on any input."""
    turns = detect_turns(messages)

    message_to_turn: dict[str, Turn] = {}
    for turn in turns:
        message_to_turn[turn.turn_id] = turn
        for entry in turn.assistant_messages:
            message_to_turn[message_id(entry)] = turn

    neighbor_map: dict[str, Neighbors] = {}
    count = len(messages)
    for i, entry in enumerate(messages):
        neighbor_map[message_id(entry)] = Neighbors(
            previous=messages[i - 1] if i > 0 else None,
            next=messages[i + 1] if i < count - 1 else None,
        )

    return TurnIndex(turns=turns, message_to_turn=message_to_turn, neighbor_map=neighbor_map)
