"""Per-turn tools, reasoning, summary text and diff stats.

Runs on partial turns: a turn that has not reached a stop yet has no
summary_body, and that is "not summarizable yet", not an error.

// [LAW:dataflow-not-control-flow] get_turn_activity_info() is a pure function of one Turn.
// [LAW:one-source-of-truth] Synthetic activity ids are minted only in collect_activity_parts.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

from turn_sync.core.messages import (
    MessageEntry,
    Part,
    finish_of,
    finish_reason,
    has_stop_step_finish,
    message_id,
    part_ended_at,
    part_has_text,
    part_id,
    part_text,
    part_type,
    summary_diffs,
    tool_ended_at,
    tool_name,
)
from turn_sync.core.turns import Turn


class TurnActivityKind(Enum):
    TOOL = "tool"
    REASONING = "reasoning"
    JUSTIFICATION = "justification"


@dataclass(frozen=True)
class TurnActivityPart:
    id: str
    turn_id: str
    message_id: str
    kind: TurnActivityKind
    part: Part
    ended_at: float | None = None


@dataclass(frozen=True)
class TurnDiffStats:
    additions: int
    deletions: int
    files: int


@dataclass(frozen=True)
class TurnActivityGroup:
    """Activity between two standalone tools, anchored on one assistant message."""

    id: str
    anchor_message_id: str
    after_tool_part_id: str | None
    parts: tuple[TurnActivityPart, ...]


@dataclass(frozen=True)
class TurnActivityInfo:
    activity_parts: tuple[TurnActivityPart, ...] = ()
    activity_segments: tuple[TurnActivityGroup, ...] = ()
    has_tools: bool = False
    has_reasoning: bool = False
    summary_body: str | None = None
    diff_stats: TurnDiffStats | None = None


EMPTY_ACTIVITY = TurnActivityInfo()

# Tools that start a new activity segment instead of joining one.
STANDALONE_TOOL_NAMES = frozenset({"task"})


def is_standalone_tool(part: Part) -> bool:
    name = tool_name(part)
    return name is not None and name.lower() in STANDALONE_TOOL_NAMES


# ─── Summary ──────────────────────────────────────────────────────────────────


def _first_text_part(entry: MessageEntry) -> Part | None:
    for part in entry.parts:
        if part_type(part) == "text":
            return part
    return None


def extract_final_assistant_text(turn: Turn) -> str | None:
    """Text of the first assistant message that reached a stop.

    A message qualifies when it carries a step-finish part with reason "stop"
    or its own finish is "stop", and its first text part is non-blank.
    The earliest qualifying message wins, not the latest.
    """
    for entry in turn.assistant_messages:
        stopped = finish_of(entry) == "stop" or any(
            part_type(p) == "step-finish" and finish_reason(p) == "stop"
            for p in entry.parts
        )
        if not stopped:
            continue
        text_part = _first_text_part(entry)
        if text_part is None:
            continue
        text = part_text(text_part)
        if text is not None and text.strip():
            return text
    return None


# ─── Diff stats ───────────────────────────────────────────────────────────────


def _count(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return int(value)


def compute_diff_stats(user_message: MessageEntry) -> TurnDiffStats | None:
    """Sum the user message's summary.diffs; None unless a file changed."""
    diffs = summary_diffs(user_message)
    if not diffs:
        return None

    additions = deletions = files = 0
    for diff in diffs:
        if not isinstance(diff, Mapping):
            continue
        diff_additions = _count(diff.get("additions"))
        diff_deletions = _count(diff.get("deletions"))
        if diff_additions != 0 or diff_deletions != 0:
            files += 1
        additions += diff_additions
        deletions += diff_deletions

    if files == 0:
        return None
    return TurnDiffStats(additions=additions, deletions=deletions, files=files)


# ─── Activity parts ───────────────────────────────────────────────────────────


def _turn_flags(turn: Turn) -> tuple[bool, bool]:
    has_tools = has_reasoning = False
    for entry in turn.assistant_messages:
        for part in entry.parts:
            kind = part_type(part)
            if kind == "tool":
                has_tools = True
            elif kind == "reasoning":
                has_reasoning = True
    return has_tools, has_reasoning


def collect_activity_parts(
    turn: Turn,
    *,
    include_justification: bool = False,
) -> tuple[TurnActivityPart, ...]:
    """Walk assistant parts in message order, then part order.

    Parts without an id get `{message_id}-activity-{n}`; n counts every
    id-less part in the turn, so ids are stable for the same content.
    """
    has_tools, has_reasoning = _turn_flags(turn)
    result: list[TurnActivityPart] = []
    synthetic_counter = 0

    for entry in turn.assistant_messages:
        mid = message_id(entry)
        allow_justification = (
            include_justification
            and (has_tools or has_reasoning)
            and not has_stop_step_finish(entry.parts)
        )

        for part in entry.parts:
            pid = part_id(part)
            if pid is None:
                pid = f"{mid}-activity-{synthetic_counter}"
                synthetic_counter += 1

            kind = part_type(part)
            if kind == "tool":
                activity_kind = TurnActivityKind.TOOL
                ended = tool_ended_at(part)
            elif kind == "reasoning" and part_has_text(part):
                activity_kind = TurnActivityKind.REASONING
                ended = part_ended_at(part)
            elif kind == "text" and allow_justification and part_has_text(part):
                activity_kind = TurnActivityKind.JUSTIFICATION
                ended = part_ended_at(part)
            else:
                continue

            result.append(
                TurnActivityPart(
                    id=pid,
                    turn_id=turn.turn_id,
                    message_id=mid,
                    kind=activity_kind,
                    part=part,
                    ended_at=ended,
                )
            )
    return tuple(result)


# ─── Segments ─────────────────────────────────────────────────────────────────


def _pick_start_anchor(turn: Turn, parts: list[TurnActivityPart]) -> str | None:
    """First message where cumulative activity reaches 2, else first with any."""
    counts: dict[str, int] = {}
    for activity in parts:
        counts[activity.message_id] = counts.get(activity.message_id, 0) + 1

    first_with_any: str | None = None
    cumulative = 0
    for entry in turn.assistant_messages:
        mid = message_id(entry)
        count = counts.get(mid, 0)
        if count > 0 and first_with_any is None:
            first_with_any = mid
        cumulative += count
        if cumulative >= 2:
            return mid
    return first_with_any


def build_activity_segments(
    turn: Turn,
    activity_parts: tuple[TurnActivityPart, ...],
) -> tuple[TurnActivityGroup, ...]:
    """Split activity at standalone tools (e.g. task) into anchored segments."""
    by_part = {id(a.part): a for a in activity_parts}

    task_message_by_id: dict[str, str] = {}
    task_order: list[str] = []
    parts_after: dict[str | None, list[TurnActivityPart]] = {}
    current: str | None = None

    for entry in turn.assistant_messages:
        mid = message_id(entry)
        for part in entry.parts:
            if part_type(part) == "tool" and is_standalone_tool(part):
                tool_part_id = part_id(part) or f"{mid}-task-{len(task_order) + 1}"
                if tool_part_id not in task_message_by_id:
                    task_message_by_id[tool_part_id] = mid
                    task_order.append(tool_part_id)
                current = tool_part_id
                continue

            activity = by_part.get(id(part))
            if activity is None:
                continue
            parts_after.setdefault(current, []).append(activity)

    segments: list[TurnActivityGroup] = []
    for after_tool in [None, *task_order]:
        segment_parts = parts_after.get(after_tool, [])
        if not segment_parts:
            continue
        if after_tool is None:
            anchor = _pick_start_anchor(turn, segment_parts)
        else:
            anchor = task_message_by_id.get(after_tool)
        if not anchor:
            continue
        segments.append(
            TurnActivityGroup(
                id=f"{turn.turn_id}:{anchor}:{after_tool or 'start'}",
                anchor_message_id=anchor,
                after_tool_part_id=after_tool,
                parts=tuple(segment_parts),
            )
        )
    return tuple(segments)


# ─── Entry point ──────────────────────────────────────────────────────────────


def get_turn_activity_info(turn: Turn, *, include_justification: bool = False) -> TurnActivityInfo:
    has_tools, has_reasoning = _turn_flags(turn)
    activity_parts = collect_activity_parts(turn, include_justification=include_justification)
    return TurnActivityInfo(
        activity_parts=activity_parts,
        activity_segments=build_activity_segments(turn, activity_parts),
        has_tools=has_tools,
        has_reasoning=has_reasoning,
        summary_body=extract_final_assistant_text(turn),
        diff_stats=compute_diff_stats(turn.user_message),
    )
