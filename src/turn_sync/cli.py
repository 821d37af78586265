"""CLI entry point for turn-sync."""

import argparse
import json
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

import turn_sync.app.settings
import turn_sync.io.logging_setup
from turn_sync.app.grouping import TurnGroupingProvider
from turn_sync.app.turn_ui_state import ToolCallExpansion
from turn_sync.core.messages import MessageEntry, coerce_entry, normalize_display_messages
from turn_sync.tui.app import TurnViewerApp
from turn_sync.tui.rendering import format_diff_stats

logger = logging.getLogger(__name__)

EXIT_INPUT_ERROR = 2


class TranscriptError(ValueError):
    """Transcript file missing, unreadable, or not a message list."""


def load_transcript(path: Path) -> list[MessageEntry]:
    """Read a JSON transcript: a list of {info, parts} or {"messages": [...]}."""
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise TranscriptError(f"cannot read {path}: {exc}") from exc
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise TranscriptError(f"{path} is not valid JSON: {exc}") from exc
    if isinstance(data, dict):
        data = data.get("messages")
    if not isinstance(data, list):
        raise TranscriptError(f"{path} does not contain a message list")

    entries = []
    skipped = 0
    for item in data:
        entry = coerce_entry(item)
        if entry is None:
            skipped += 1
            continue
        entries.append(entry)
    if skipped:
        logger.warning("skipped %d transcript items without info", skipped)
    return normalize_display_messages(entries)


def summarize_turns(provider: TurnGroupingProvider) -> list[dict]:
    rows = []
    for turn in provider.index.turns:
        info = provider.activity_for_turn(turn.turn_id)
        diff = info.diff_stats
        rows.append({
            "turn_id": turn.turn_id,
            "assistant_messages": len(turn.assistant_messages),
            "activity_parts": len(info.activity_parts),
            "segments": len(info.activity_segments),
            "has_tools": info.has_tools,
            "has_reasoning": info.has_reasoning,
            "diff": None if diff is None else {
                "additions": diff.additions,
                "deletions": diff.deletions,
                "files": diff.files,
            },
            "summary": info.summary_body,
            "expanded": provider.ui_store.peek(turn.turn_id).is_expanded,
        })
    return rows


def _summary_table(rows: list[dict], provider: TurnGroupingProvider) -> Table:
    table = Table(title=f"Turns ({provider.ui_store.density.value})")
    table.add_column("Turn", style="bold")
    table.add_column("Msgs", justify="right")
    table.add_column("Activity", justify="right")
    table.add_column("Kinds")
    table.add_column("Diff", style="green")
    table.add_column("Summary", overflow="fold")
    for turn, row in zip(provider.index.turns, rows):
        kinds = ", ".join(k for k in ("tools", "reasoning") if row[f"has_{k}"])
        table.add_row(
            row["turn_id"],
            str(row["assistant_messages"]),
            str(row["activity_parts"]),
            kinds or "-",
            format_diff_stats(provider.activity_for_turn(turn.turn_id).diff_stats) or "-",
            row["summary"] or "",
        )
    return table


def _load_settings(args):
    return turn_sync.app.settings.load({"tool_call_expansion": args.density})


def cmd_summarize(args) -> int:
    messages = load_transcript(Path(args.file))
    provider = TurnGroupingProvider(_load_settings(args))
    provider.update_messages(messages)
    rows = summarize_turns(provider)
    if args.json:
        print(json.dumps(rows, indent=2))
    else:
        Console().print(_summary_table(rows, provider))
    return 0


def cmd_view(args) -> int:
    messages = load_transcript(Path(args.file))
    TurnViewerApp(messages, _load_settings(args)).run()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="turn-sync",
        description="Group chat transcripts into turns and inspect their activity",
    )
    sub = parser.add_subparsers(dest="command", required=True)
    densities = [d.value for d in ToolCallExpansion]

    summarize = sub.add_parser("summarize", help="Print one row per turn")
    summarize.add_argument("file", help="Transcript JSON file")
    summarize.add_argument(
        "--density", choices=densities, default=None,
        help="Tool call expansion (default: from settings)",
    )
    summarize.add_argument("--json", action="store_true", help="Emit JSON instead of a table")
    summarize.set_defaults(func=cmd_summarize, stderr_logs=True)

    view = sub.add_parser("view", help="Open the transcript viewer")
    view.add_argument("file", help="Transcript JSON file")
    view.add_argument("--density", choices=densities, default=None)
    view.set_defaults(func=cmd_view, stderr_logs=False)
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    # [LAW:single-enforcer] Runtime logger configuration is centralized in io.logging_setup.
    log_settings = turn_sync.app.settings.load_log_settings()
    log_runtime = turn_sync.io.logging_setup.configure(
        log_settings.level, log_settings.file, stderr=args.stderr_logs
    )
    logger.debug(
        "logging configured level=%s file=%s",
        log_runtime.level_name,
        log_runtime.file_path,
    )

    try:
        return args.func(args)
    except TranscriptError as exc:
        print(f"turn-sync: {exc}", file=sys.stderr)
        return EXIT_INPUT_ERROR


if __name__ == "__main__":
    sys.exit(main())
