"""Message and part accessors over transport-shaped records.

Messages arrive as `{info, parts}` JSON-shaped dicts. Every accessor here is
total: missing or mistyped fields read as None/empty, never raise.

// [LAW:one-source-of-truth] Field names of the transport shape live here only.
// [LAW:single-enforcer] Role resolution (clientRole override) happens only in resolve_role.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field


Part = Mapping[str, object]


@dataclass(frozen=True, eq=False)
class MessageEntry:
    """One message as delivered by the transport.

    Compared by identity: caches downstream rely on the transport handing out
    the same entry object until that message changes.
    """

    info: Mapping[str, object]
    parts: Sequence[Part] = field(default_factory=tuple)


def _get(mapping: object, key: str) -> object:
    if isinstance(mapping, Mapping):
        return mapping.get(key)
    return None


def _number(value: object) -> float | None:
    # bool is an int subclass; a True timestamp is not a timestamp
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    return None


def _nonblank(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    return None


# ─── Message info ─────────────────────────────────────────────────────────────


def resolve_role(info: Mapping[str, object]) -> str | None:
    """Return clientRole when present, else the raw role."""
    client_role = _get(info, "clientRole")
    if client_role is not None:
        return client_role if isinstance(client_role, str) else None
    role = _get(info, "role")
    return role if isinstance(role, str) else None


def message_id(entry: MessageEntry) -> str:
    value = _get(entry.info, "id")
    return value if isinstance(value, str) else ""


def completed_at(entry: MessageEntry) -> float | None:
    return _number(_get(_get(entry.info, "time"), "completed"))


def created_at(entry: MessageEntry) -> float | None:
    return _number(_get(_get(entry.info, "time"), "created"))


def finish_of(entry: MessageEntry) -> str | None:
    value = _get(entry.info, "finish")
    return value if isinstance(value, str) else None


def is_animation_settled(entry: MessageEntry) -> bool:
    return bool(_get(entry.info, "animationSettled"))


def summary_diffs(entry: MessageEntry) -> list | None:
    """Return `info.summary.diffs` when it is a list."""
    diffs = _get(_get(entry.info, "summary"), "diffs")
    return diffs if isinstance(diffs, list) else None


# ─── Parts ────────────────────────────────────────────────────────────────────


def part_type(part: Part) -> str | None:
    value = _get(part, "type")
    return value if isinstance(value, str) else None


def part_id(part: Part) -> str | None:
    """Return the part id when it is a non-blank string."""
    return _nonblank(_get(part, "id"))


def part_text(part: Part) -> str | None:
    """Return `text`, falling back to `content` when text is absent."""
    text = _get(part, "text")
    if text is None:
        text = _get(part, "content")
    return text if isinstance(text, str) else None


def part_has_text(part: Part) -> bool:
    text = part_text(part)
    return text is not None and bool(text.strip())


def tool_name(part: Part) -> str | None:
    value = _get(part, "tool")
    return value if isinstance(value, str) else None


def tool_ended_at(part: Part) -> float | None:
    return _number(_get(_get(_get(part, "state"), "time"), "end"))


def part_ended_at(part: Part) -> float | None:
    return _number(_get(_get(part, "time"), "end"))


def finish_reason(part: Part) -> str | None:
    value = _get(part, "reason")
    return value if isinstance(value, str) else None


def has_stop_step_finish(parts: Iterable[Part]) -> bool:
    return any(
        part_type(p) == "step-finish" and finish_reason(p) == "stop"
        for p in parts
    )


def filter_visible_parts(parts: Sequence[Part], *, include_reasoning: bool) -> Sequence[Part]:
    """Hide reasoning parts when reasoning traces are switched off."""
    if include_reasoning:
        return parts
    return tuple(p for p in parts if part_type(p) != "reasoning")


# ─── Display list normalization ───────────────────────────────────────────────


def coerce_entry(raw: object) -> MessageEntry | None:
    """Build a MessageEntry from a transport dict; None when it has no info."""
    if isinstance(raw, MessageEntry):
        return raw
    info = _get(raw, "info")
    if not isinstance(info, Mapping):
        return None
    parts = _get(raw, "parts")
    if not isinstance(parts, list):
        parts = []
    return MessageEntry(
        info=info,
        parts=tuple(p for p in parts if isinstance(p, Mapping)),
    )


def normalize_display_messages(entries: Iterable[MessageEntry]) -> list[MessageEntry]:
    """Drop repeated ids and synthetic parts.

    An entry without synthetic parts is returned as the same object.
    """
    seen: set[str] = set()
    result: list[MessageEntry] = []
    for entry in entries:
        mid = message_id(entry)
        if mid:
            if mid in seen:
                continue
            seen.add(mid)
        kept = tuple(p for p in entry.parts if not _get(p, "synthetic"))
        if len(kept) == len(entry.parts):
            result.append(entry)
        else:
            result.append(MessageEntry(info=entry.info, parts=kept))
    return result
