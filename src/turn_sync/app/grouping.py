"""Turn grouping provider — static/dynamic partition of per-message turn context.

Every message outside the last turn reads a memoized static context that is
built once per message-list identity and never depends on session activity.
Messages of the last turn read a dynamic context that also reflects the
session "is working" signal.

Activity info is reused per turn while the turn's member entries are the same
objects as before, so tokens streaming into the last turn never re-aggregate
earlier turns. The last turn, and the turn that was last before the update,
are always re-aggregated because their entries can grow in place.

// [LAW:one-source-of-truth] The static/dynamic boundary is TurnIndex.last_turn only.
// [LAW:single-enforcer] TurnGroupingContext values are assembled only in _build_context.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from functools import partial

from turn_sync.app.settings import GroupingSettings
from turn_sync.app.turn_ui_state import ToolCallExpansion, TurnUiStateStore
from turn_sync.core.activity import (
    EMPTY_ACTIVITY,
    TurnActivityGroup,
    TurnActivityInfo,
    TurnActivityPart,
    TurnDiffStats,
    get_turn_activity_info,
)
from turn_sync.core.messages import MessageEntry, created_at, message_id
from turn_sync.core.stream_phase import IDLE_SESSION, SessionActivity, is_turn_working
from turn_sync.core.turns import EMPTY_INDEX, Neighbors, Turn, TurnIndex, build_turn_index
from turn_sync.io.perf_logging import monitor_slow_path

logger = logging.getLogger(__name__)


Aggregate = Callable[..., TurnActivityInfo]


class RenderPath(Enum):
    STATIC = "static"
    DYNAMIC = "dynamic"


@dataclass(frozen=True, eq=False)
class TurnGroupingContext:
    """Per-assistant-message view of its turn, handed to the presentation layer."""

    turn_id: str
    is_first_assistant_in_turn: bool
    is_last_assistant_in_turn: bool
    header_message_id: str | None
    summary_body: str | None
    activity_parts: tuple[TurnActivityPart, ...]
    activity_segments: tuple[TurnActivityGroup, ...]
    has_tools: bool
    has_reasoning: bool
    diff_stats: TurnDiffStats | None
    user_message_created_at: float | None
    is_working: bool
    is_group_expanded: bool
    previewed_part_ids: frozenset[str]
    toggle_group: Callable[[], None]
    mark_parts_previewed: Callable[[Iterable[str]], None]


def _same_members(a: tuple[MessageEntry, ...], b: tuple[MessageEntry, ...]) -> bool:
    return len(a) == len(b) and all(x is y for x, y in zip(a, b))


class TurnGroupingProvider:
    """Owns the static snapshot, the context caches and the turn UI store.

    Callbacks (host registers):
        on_static_changed(index)  after a new message list was indexed
        on_turn_invalidated(turn_id | None)  a turn's context changed without
            a new message list (UI toggle, session activity); None = all turns
    """

    def __init__(
        self,
        settings: GroupingSettings | None = None,
        ui_store: TurnUiStateStore | None = None,
        *,
        aggregate: Aggregate = get_turn_activity_info,
    ):
        self._settings = settings or GroupingSettings()
        self._ui = ui_store or TurnUiStateStore(self._settings.tool_call_expansion)
        self._ui.on_change = self._on_ui_change
        self._aggregate = aggregate

        self._messages: Sequence[MessageEntry] | None = None
        self._index: TurnIndex = EMPTY_INDEX
        self._activity: dict[str, TurnActivityInfo] = {}
        self._turn_members: dict[str, tuple[MessageEntry, ...]] = {}
        self._session = IDLE_SESSION

        self._static_contexts: dict[str, TurnGroupingContext] = {}
        self._dynamic_contexts: OrderedDict[tuple, TurnGroupingContext] = OrderedDict()

        self.static_rebuilds = 0
        self.on_static_changed: Callable[[TurnIndex], None] | None = None
        self.on_turn_invalidated: Callable[[str | None], None] | None = None

    # ─── Inputs ───────────────────────────────────────────────────────

    def update_messages(self, messages: Sequence[MessageEntry]) -> bool:
        """Index a new message list. Same list object -> no-op, returns False."""
        if messages is self._messages:
            return False

        previous_last = self._index.last_turn_id
        with monitor_slow_path(
            "grouping.rebuild_static",
            logger=logger,
            context=lambda: {"messages": len(messages), "turns": len(index.turns)},
        ):
            index = build_turn_index(messages)
            activity: dict[str, TurnActivityInfo] = {}
            members_by_turn: dict[str, tuple[MessageEntry, ...]] = {}
            reused: set[str] = set()
            live = {index.last_turn_id, previous_last}
            for turn in index.turns:
                members = turn.members
                previous = self._turn_members.get(turn.turn_id)
                # The last turn may grow in place; only settled turns reuse by identity.
                if (
                    turn.turn_id not in live
                    and previous is not None
                    and _same_members(previous, members)
                ):
                    activity[turn.turn_id] = self._activity[turn.turn_id]
                    reused.add(turn.turn_id)
                else:
                    activity[turn.turn_id] = self._aggregate_turn(turn)
                members_by_turn[turn.turn_id] = members

        departed = set(self._turn_members) - set(members_by_turn)
        if departed:
            self._ui.discard(departed)

        # Static contexts survive only for turns that were already static and unchanged.
        self._static_contexts = {
            mid: ctx
            for mid, ctx in self._static_contexts.items()
            if ctx.turn_id in reused
        }
        self._dynamic_contexts.clear()

        self._messages = messages
        self._index = index
        self._activity = activity
        self._turn_members = members_by_turn
        self.static_rebuilds += 1
        logger.debug(
            "indexed %d messages into %d turns (%d reused)",
            len(messages), len(index.turns), len(reused),
        )
        if self.on_static_changed is not None:
            self.on_static_changed(index)
        return True

    def set_session_activity(self, activity: SessionActivity) -> bool:
        if activity == self._session:
            return False
        self._session = activity
        last = self._index.last_turn_id
        if last is not None and self.on_turn_invalidated is not None:
            self.on_turn_invalidated(last)
        return True

    def set_density(self, density: ToolCallExpansion) -> None:
        self._ui.set_density(density)

    def _aggregate_turn(self, turn: Turn) -> TurnActivityInfo:
        with monitor_slow_path(
            "grouping.aggregate_turn",
            logger=logger,
            context=lambda: {"turn_id": turn.turn_id, "assistants": len(turn.assistant_messages)},
        ):
            return self._aggregate(
                turn,
                include_justification=self._settings.text_justification_activity,
            )

    # ─── Read side ────────────────────────────────────────────────────

    @property
    def index(self) -> TurnIndex:
        return self._index

    @property
    def session(self) -> SessionActivity:
        return self._session

    @property
    def settings(self) -> GroupingSettings:
        return self._settings

    @property
    def ui_store(self) -> TurnUiStateStore:
        return self._ui

    def activity_for_turn(self, turn_id: str) -> TurnActivityInfo:
        return self._activity.get(turn_id, EMPTY_ACTIVITY)

    def neighbors(self, msg_id: str) -> Neighbors:
        return self._index.neighbors(msg_id)

    def render_path(self, msg_id: str) -> RenderPath:
        return RenderPath.DYNAMIC if self._index.is_in_last_turn(msg_id) else RenderPath.STATIC

    def context_for_message(self, msg_id: str) -> TurnGroupingContext | None:
        """Turn context for an assistant message; None for user or ungrouped messages."""
        turn = self._index.turn_for(msg_id)
        if turn is None or msg_id == turn.turn_id:
            return None
        if not any(message_id(m) == msg_id for m in turn.assistant_messages):
            return None

        if turn is not self._index.last_turn:
            cached = self._static_contexts.get(msg_id)
            if cached is None:
                cached = self._build_context(turn, msg_id, is_working=False)
                self._static_contexts[msg_id] = cached
            return cached

        key = (msg_id, turn.turn_id, self._session.is_working, self._ui.version)
        cached = self._dynamic_contexts.get(key)
        if cached is not None:
            return cached
        context = self._build_context(
            turn,
            msg_id,
            is_working=is_turn_working(self._index, turn.turn_id, self._session.is_working),
        )
        if len(self._dynamic_contexts) >= self._settings.context_cache_limit:
            self._dynamic_contexts.popitem(last=False)
        self._dynamic_contexts[key] = context
        return context

    # ─── Mutators handed out through contexts ─────────────────────────

    def toggle_group(self, turn_id: str) -> None:
        self._ui.toggle(turn_id)

    def mark_parts_previewed(self, turn_id: str, part_ids: Iterable[str]) -> None:
        self._ui.mark_previewed(turn_id, part_ids)

    # ─── Internals ────────────────────────────────────────────────────

    def _build_context(self, turn: Turn, msg_id: str, *, is_working: bool) -> TurnGroupingContext:
        info = self._activity.get(turn.turn_id, EMPTY_ACTIVITY)
        ui = self._ui.get(turn.turn_id)
        assistant_ids = [message_id(m) for m in turn.assistant_messages]
        first_id = assistant_ids[0] if assistant_ids else None
        last_id = assistant_ids[-1] if assistant_ids else None
        return TurnGroupingContext(
            turn_id=turn.turn_id,
            is_first_assistant_in_turn=msg_id == first_id,
            is_last_assistant_in_turn=msg_id == last_id,
            header_message_id=first_id,
            summary_body=info.summary_body,
            activity_parts=info.activity_parts,
            activity_segments=info.activity_segments,
            has_tools=info.has_tools,
            has_reasoning=info.has_reasoning,
            diff_stats=info.diff_stats,
            user_message_created_at=created_at(turn.user_message),
            is_working=is_working,
            is_group_expanded=ui.is_expanded,
            previewed_part_ids=ui.previewed_part_ids,
            toggle_group=partial(self.toggle_group, turn.turn_id),
            mark_parts_previewed=partial(self.mark_parts_previewed, turn.turn_id),
        )

    def _on_ui_change(self, turn_id: str | None) -> None:
        if turn_id is None:
            self._static_contexts.clear()
        else:
            self._static_contexts = {
                mid: ctx for mid, ctx in self._static_contexts.items() if ctx.turn_id != turn_id
            }
        if self.on_turn_invalidated is not None:
            self.on_turn_invalidated(turn_id)
