"""Test harness for turn-sync.

Re-exports builders for convenient imports:
    from tests.harness import user, assistant, tool_part, ...
"""

from tests.harness.builders import (
    assistant,
    diff,
    raw,
    reasoning_part,
    simple_conversation,
    step_finish,
    step_start,
    synthetic,
    text_part,
    tool_part,
    user,
)
from tests.harness.fakes import FakeScheduler, FakeSizeObserver, FakeElement

__all__ = [
    "assistant",
    "diff",
    "raw",
    "reasoning_part",
    "simple_conversation",
    "step_finish",
    "step_start",
    "synthetic",
    "text_part",
    "tool_part",
    "user",
    "FakeScheduler",
    "FakeSizeObserver",
    "FakeElement",
]
