"""Rich rendering of transcript messages with their turn grouping context.

Activity groups render on their anchor message only. A collapsed group shows
a one-line header; an expanded group lists its parts.

# [LAW:single-enforcer] Expansion is read from TurnGroupingContext.is_group_expanded only.
"""

from __future__ import annotations

from collections.abc import Callable

from rich.text import Text

from turn_sync.app.grouping import TurnGroupingContext
from turn_sync.core.activity import TurnActivityKind, TurnActivityPart, TurnDiffStats, is_standalone_tool
from turn_sync.core.messages import (
    MessageEntry,
    Part,
    filter_visible_parts,
    message_id,
    part_text,
    part_type,
    resolve_role,
    tool_name,
)

_KIND_STYLES: dict[TurnActivityKind, str] = {
    TurnActivityKind.TOOL: "cyan",
    TurnActivityKind.REASONING: "magenta",
    TurnActivityKind.JUSTIFICATION: "yellow",
}

PREVIEW_CHARS = 72


def _first_line(text: str | None, limit: int = PREVIEW_CHARS) -> str:
    if not text:
        return ""
    line = text.strip().splitlines()[0] if text.strip() else ""
    return line if len(line) <= limit else line[: limit - 1] + "…"


def format_diff_stats(stats: TurnDiffStats | None) -> str:
    if stats is None:
        return ""
    noun = "file" if stats.files == 1 else "files"
    return f"+{stats.additions} -{stats.deletions} ({stats.files} {noun})"


def activity_label(item: TurnActivityPart) -> str:
    if item.kind is TurnActivityKind.TOOL:
        return tool_name(item.part) or "tool"
    return _first_line(part_text(item.part)) or item.kind.value


def render_activity_header(context: TurnGroupingContext) -> Text:
    t = Text()
    marker = "▾" if context.is_group_expanded else "▸"
    t.append(f"{marker} ", style="bold")
    count = len(context.activity_parts)
    t.append(f"{count} activity item{'s' if count != 1 else ''}", style="bold")
    flags = [name for name, on in (("tools", context.has_tools), ("reasoning", context.has_reasoning)) if on]
    if flags:
        t.append(f"  [{', '.join(flags)}]", style="dim")
    diff = format_diff_stats(context.diff_stats)
    if diff:
        t.append(f"  {diff}", style="green")
    if context.is_working:
        t.append("  working…", style="italic yellow")
    return t


def render_activity_items(context: TurnGroupingContext, anchor_message_id: str) -> Text:
    t = Text()
    for segment in context.activity_segments:
        if segment.anchor_message_id != anchor_message_id:
            continue
        for item in segment.parts:
            seen = item.id in context.previewed_part_ids
            style = "dim" if seen else _KIND_STYLES[item.kind]
            t.append("\n  • ", style="dim")
            t.append(f"{item.kind.value}: ", style=style)
            t.append(activity_label(item), style="dim" if seen else "")
    return t


def _render_text(part: Part) -> Text:
    return Text(part_text(part) or "")


def _render_reasoning(part: Part) -> Text:
    return Text(_first_line(part_text(part)), style="italic dim")


def _render_tool(part: Part) -> Text:
    return Text(f"⚙ {tool_name(part) or 'tool'}", style="cyan")


PART_RENDERERS: dict[str, Callable[[Part], Text]] = {
    "text": _render_text,
    "reasoning": _render_reasoning,
    "tool": _render_tool,
}


def render_message(
    entry: MessageEntry,
    context: TurnGroupingContext | None,
    *,
    include_reasoning: bool = True,
) -> Text:
    """Rich Text for one message.

    With a context, tools and reasoning are shown through the activity group
    instead of inline, except standalone tools which stay inline.
    """
    role = resolve_role(entry.info) or "unknown"
    mid = message_id(entry)
    out = Text()
    out.append(role, style="bold blue" if role == "user" else "bold green")

    if context is not None and context.activity_parts:
        if context.is_first_assistant_in_turn:
            out.append("\n")
            out.append_text(render_activity_header(context))
        if context.is_group_expanded:
            out.append_text(render_activity_items(context, mid))

    for part in filter_visible_parts(entry.parts, include_reasoning=include_reasoning):
        kind = part_type(part)
        renderer = PART_RENDERERS.get(kind or "")
        if renderer is None:
            continue
        if context is not None and kind != "text" and not (kind == "tool" and is_standalone_tool(part)):
            continue
        rendered = renderer(part)
        if rendered.plain:
            out.append("\n")
            out.append_text(rendered)
    return out
