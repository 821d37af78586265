"""Repeatable benchmark for per-token turn grouping cost.

Builds a transcript with N finished turns, then streams M parts into a new
last turn, calling TurnGroupingProvider.update_messages() and reading every
last-turn context after each part, the way a host re-renders per token.

Usage:
    uv run python benchmarks/bench_grouping.py                # 200 turns, 500 parts
    uv run python benchmarks/bench_grouping.py --turns 1000 --parts 2000
    uv run python benchmarks/bench_grouping.py --json         # machine-readable output
"""

import argparse
import json
import statistics
import sys
import time
import tracemalloc

from turn_sync.app.grouping import TurnGroupingProvider
from turn_sync.core.activity import get_turn_activity_info
from turn_sync.core.messages import MessageEntry
from turn_sync.core.stream_phase import SessionActivity
from turn_sync.io import perf_logging


def _user(mid: str, text: str) -> MessageEntry:
    return MessageEntry(
        info={"id": mid, "role": "user", "time": {"created": 0}},
        parts=({"id": f"{mid}-t", "type": "text", "text": text},),
    )


def _assistant(mid: str, parts: tuple) -> MessageEntry:
    return MessageEntry(info={"id": mid, "role": "assistant", "time": {"created": 0}}, parts=parts)


def generate_history(n_turns: int) -> list[MessageEntry]:
    """N finished turns: user, assistant(tool, reasoning, text, stop)."""
    messages: list[MessageEntry] = []
    for n in range(n_turns):
        messages.append(_user(f"u{n}", f"question {n}"))
        messages.append(_assistant(f"a{n}", (
            {"id": f"a{n}-r", "type": "reasoning", "text": "thinking about it"},
            {"id": f"a{n}-tool", "type": "tool", "tool": "bash",
             "state": {"status": "completed", "time": {"start": 1, "end": 2}}},
            {"id": f"a{n}-text", "type": "text", "text": f"answer {n}"},
            {"type": "step-finish", "reason": "stop"},
        )))
    return messages


class _CountingAggregate:
    def __init__(self):
        self.calls = 0

    def __call__(self, turn, **kwargs):
        self.calls += 1
        return get_turn_activity_info(turn, **kwargs)


def _percentile(samples: list[float], pct: float) -> float:
    if not samples:
        return 0.0
    ordered = sorted(samples)
    k = min(len(ordered) - 1, int(round(pct / 100 * (len(ordered) - 1))))
    return ordered[k]


def _stats(samples_us: list[float]) -> dict:
    return {
        "count": len(samples_us),
        "min_us": round(min(samples_us), 2),
        "max_us": round(max(samples_us), 2),
        "mean_us": round(statistics.fmean(samples_us), 2),
        "p50_us": round(_percentile(samples_us, 50), 2),
        "p95_us": round(_percentile(samples_us, 95), 2),
        "p99_us": round(_percentile(samples_us, 99), 2),
    }


def run_benchmark(n_turns: int, n_parts: int) -> dict:
    """Run the streaming grouping benchmark and return results dict."""
    # Threshold warnings would dominate the timing of large runs.
    perf_logging.set_enabled(False)
    aggregate = _CountingAggregate()
    provider = TurnGroupingProvider(aggregate=aggregate)

    history = generate_history(n_turns)
    history.append(_user("live", "keep going"))
    provider.update_messages(list(history))
    provider.set_session_activity(SessionActivity(is_working=True, streaming_message_id="live-a"))
    baseline_calls = aggregate.calls

    tracemalloc.start()
    mem_before = tracemalloc.get_traced_memory()

    update_us: list[float] = []
    context_us: list[float] = []
    parts: list[dict] = []
    wall_start = time.monotonic_ns()

    for i in range(n_parts):
        parts.append({"id": f"live-{i}", "type": "tool", "tool": "bash", "state": {"status": "running"}})
        messages = [*history, _assistant("live-a", tuple(parts))]

        start = time.monotonic_ns()
        provider.update_messages(messages)
        update_us.append((time.monotonic_ns() - start) / 1_000)

        start = time.monotonic_ns()
        provider.context_for_message("live-a")
        context_us.append((time.monotonic_ns() - start) / 1_000)

    wall_elapsed_ns = time.monotonic_ns() - wall_start
    mem_after = tracemalloc.get_traced_memory()
    tracemalloc.stop()
    perf_logging.set_enabled(True)

    return {
        "n_turns": n_turns,
        "n_parts": n_parts,
        "wall_time_ms": wall_elapsed_ns / 1_000_000,
        "mem_peak_kb": mem_after[1] / 1024,
        "mem_current_kb": mem_after[0] / 1024,
        "mem_before_kb": mem_before[0] / 1024,
        "aggregations_while_streaming": aggregate.calls - baseline_calls,
        "stages": {
            "update_messages": _stats(update_us),
            "context_for_message": _stats(context_us),
        },
    }


def print_report(results: dict) -> None:
    """Print a human-readable benchmark report."""
    print(f"\n{'='*60}")
    print("  Turn Grouping Streaming Benchmark")
    print(f"{'='*60}")
    print(f"  History:    {results['n_turns']} turns, {results['n_parts']} streamed parts")
    print(f"  Wall time:  {results['wall_time_ms']:.1f} ms")
    print(f"  Memory:     {results['mem_peak_kb']:.0f} KB peak, "
          f"{results['mem_current_kb']:.0f} KB current")
    print(f"  Aggregations while streaming: {results['aggregations_while_streaming']} "
          f"(expected {results['n_parts']})")
    print()

    for stage_name, stats in results["stages"].items():
        print(f"  [{stage_name}] ({stats['count']} samples)")
        print(f"    min={stats['min_us']:.1f}us  "
              f"p50={stats['p50_us']:.1f}us  "
              f"p95={stats['p95_us']:.1f}us  "
              f"p99={stats['p99_us']:.1f}us  "
              f"max={stats['max_us']:.1f}us")
        print()

    print(f"{'='*60}\n")


def main() -> None:
    parser = argparse.ArgumentParser(description="Turn grouping streaming benchmark")
    parser.add_argument("--turns", type=int, default=200,
                        help="Number of finished turns before the live turn (default: 200)")
    parser.add_argument("--parts", type=int, default=500,
                        help="Number of parts streamed into the live turn (default: 500)")
    parser.add_argument("--json", action="store_true",
                        help="Output machine-readable JSON")
    args = parser.parse_args()

    results = run_benchmark(args.turns, args.parts)

    if args.json:
        json.dump(results, sys.stdout, indent=2)
        sys.stdout.write("\n")
    else:
        print_report(results)


if __name__ == "__main__":
    main()
