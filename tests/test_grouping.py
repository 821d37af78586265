"""Tests for the grouping provider: static/dynamic partition, caches, UI wiring."""

import logging

import pytest

import turn_sync.io.perf_logging as perf
from turn_sync.app.grouping import RenderPath, TurnGroupingProvider
from turn_sync.app.settings import GroupingSettings
from turn_sync.app.turn_ui_state import ToolCallExpansion
from turn_sync.core.activity import get_turn_activity_info
from turn_sync.core.messages import MessageEntry
from turn_sync.core.stream_phase import SessionActivity

from tests.harness import assistant, diff, simple_conversation, text_part, tool_part, user


class CountingAggregate:
    def __init__(self):
        self.calls = []

    def __call__(self, turn, **kwargs):
        self.calls.append(turn.turn_id)
        return get_turn_activity_info(turn, **kwargs)


@pytest.fixture
def counting():
    return CountingAggregate()


@pytest.fixture
def provider(counting):
    return TurnGroupingProvider(aggregate=counting)


def test_same_list_object_is_noop(provider):
    messages = simple_conversation(2)
    assert provider.update_messages(messages) is True
    assert provider.update_messages(messages) is False
    assert provider.static_rebuilds == 1


def test_render_path_partition(provider):
    provider.update_messages(simple_conversation(3))
    assert provider.render_path("a0") is RenderPath.STATIC
    assert provider.render_path("u1") is RenderPath.STATIC
    assert provider.render_path("u2") is RenderPath.DYNAMIC
    assert provider.render_path("a2") is RenderPath.DYNAMIC
    assert provider.render_path("unknown") is RenderPath.STATIC


def test_context_only_for_assistant_messages(provider):
    provider.update_messages(simple_conversation(2))
    assert provider.context_for_message("u0") is None
    assert provider.context_for_message("missing") is None
    ctx = provider.context_for_message("a0")
    assert ctx.turn_id == "u0"
    assert ctx.summary_body == "answer 0"


def test_first_and_last_flags():
    provider = TurnGroupingProvider()
    provider.update_messages([user("u1"), assistant("a1"), assistant("a2"), assistant("a3")])
    flags = {
        mid: (ctx.is_first_assistant_in_turn, ctx.is_last_assistant_in_turn, ctx.header_message_id)
        for mid in ("a1", "a2", "a3")
        for ctx in [provider.context_for_message(mid)]
    }
    assert flags == {
        "a1": (True, False, "a1"),
        "a2": (False, False, "a1"),
        "a3": (False, True, "a1"),
    }


def test_context_carries_turn_facts():
    provider = TurnGroupingProvider()
    provider.update_messages([
        user("u1", created=123, diffs=[diff(4, 2)]),
        assistant("a1", tool_part("read", pid="t1"), text_part("ok"), finish="stop"),
    ])
    ctx = provider.context_for_message("a1")
    assert ctx.user_message_created_at == 123
    assert ctx.diff_stats.additions == 4
    assert ctx.has_tools and not ctx.has_reasoning
    assert [p.id for p in ctx.activity_parts] == ["t1"]


class TestSessionActivity:
    def test_static_contexts_ignore_working_signal(self, provider):
        provider.update_messages(simple_conversation(2))
        before = provider.context_for_message("a0")
        provider.set_session_activity(SessionActivity(is_working=True))
        after = provider.context_for_message("a0")
        assert after is before
        assert after.is_working is False

    def test_last_turn_reflects_working_signal(self, provider):
        provider.update_messages(simple_conversation(2))
        assert provider.context_for_message("a1").is_working is False
        provider.set_session_activity(SessionActivity(is_working=True))
        assert provider.context_for_message("a1").is_working is True

    def test_activity_change_invalidates_last_turn_only(self, provider):
        provider.update_messages(simple_conversation(2))
        seen = []
        provider.on_turn_invalidated = seen.append
        assert provider.set_session_activity(SessionActivity(is_working=True))
        assert not provider.set_session_activity(SessionActivity(is_working=True))
        assert seen == ["u1"]

    def test_activity_change_does_not_rebuild_static(self, provider, counting):
        provider.update_messages(simple_conversation(3))
        provider.set_session_activity(SessionActivity(is_working=True, streaming_message_id="a2"))
        provider.set_session_activity(SessionActivity(is_working=False))
        assert provider.static_rebuilds == 1
        assert len(counting.calls) == 3


def test_streaming_into_last_turn_does_not_reaggregate_earlier_turns(provider, counting):
    messages = simple_conversation(3)
    provider.update_messages(messages)
    early_ctx = provider.context_for_message("a0")
    counting.calls.clear()

    head = messages[:-1]
    parts = []
    for n in range(50):
        parts.append(tool_part("bash", pid=f"stream-{n}"))
        streamed = assistant("a2", *parts)
        provider.update_messages([*head, streamed])

    assert counting.calls == ["u2"] * 50
    assert provider.context_for_message("a0") is early_ctx
    assert len(provider.context_for_message("a2").activity_parts) == 50


def test_new_user_message_moves_previous_turn_to_static(provider, counting):
    messages = simple_conversation(2)
    provider.update_messages(messages)
    assert provider.render_path("a1") is RenderPath.DYNAMIC
    counting.calls.clear()

    provider.update_messages([*messages, user("u2")])
    assert provider.render_path("a1") is RenderPath.STATIC
    assert counting.calls == ["u1", "u2"]
    assert provider.context_for_message("a1").is_working is False


def test_parts_appended_in_place_reach_last_turn(provider):
    parts = [text_part("looking")]
    streaming = MessageEntry(info={"id": "a1", "role": "assistant"}, parts=parts)
    prompt = user("u1")
    provider.update_messages([prompt, streaming])
    assert provider.context_for_message("a1").has_tools is False

    parts.append(tool_part("read", pid="t1"))
    provider.update_messages([prompt, streaming])
    ctx = provider.context_for_message("a1")
    assert ctx.has_tools is True
    assert [p.id for p in ctx.activity_parts] == ["t1"]


def test_settled_turn_reaggregated_once_when_it_stops_being_last(provider, counting):
    messages = simple_conversation(2)
    provider.update_messages(messages)
    grown = [*messages, user("u2")]
    provider.update_messages(grown)
    counting.calls.clear()

    provider.update_messages([*grown, assistant("a2")])
    assert counting.calls == ["u2"]


def test_vanished_turns_lose_ui_state(provider):
    messages = simple_conversation(3)
    provider.update_messages(messages)
    provider.toggle_group("u0")
    provider.update_messages(messages[2:])
    assert "u0" not in provider.ui_store.known_turn_ids()


def test_static_changed_callback(provider):
    seen = []
    provider.on_static_changed = seen.append
    provider.update_messages(simple_conversation(1))
    assert len(seen) == 1
    assert seen[0].last_turn_id == "u0"


class TestUiWiring:
    def test_toggle_through_context(self, provider):
        provider.update_messages(simple_conversation(2))
        ctx = provider.context_for_message("a0")
        assert ctx.is_group_expanded is False
        ctx.toggle_group()
        updated = provider.context_for_message("a0")
        assert updated is not ctx
        assert updated.is_group_expanded is True

    def test_toggle_notifies_turn(self, provider):
        provider.update_messages(simple_conversation(2))
        seen = []
        provider.on_turn_invalidated = seen.append
        provider.context_for_message("a1").toggle_group()
        assert seen == ["u1"]

    def test_toggle_of_one_turn_keeps_other_static_contexts(self, provider):
        provider.update_messages(simple_conversation(3))
        a0 = provider.context_for_message("a0")
        provider.toggle_group("u1")
        assert provider.context_for_message("a0") is a0

    def test_mark_previewed_through_context(self, provider):
        provider.update_messages(simple_conversation(2))
        provider.context_for_message("a1").mark_parts_previewed(["a1-tool-0"])
        assert provider.context_for_message("a1").previewed_part_ids == frozenset({"a1-tool-0"})

    def test_density_switch_resets_expansion(self, provider):
        provider.update_messages(simple_conversation(2))
        seen = []
        provider.on_turn_invalidated = seen.append
        provider.set_density(ToolCallExpansion.DETAILED)
        assert seen == [None]
        assert provider.context_for_message("a0").is_group_expanded is True
        assert provider.context_for_message("a1").is_group_expanded is True


def test_density_from_settings():
    provider = TurnGroupingProvider(GroupingSettings(tool_call_expansion=ToolCallExpansion.DETAILED))
    provider.update_messages(simple_conversation(1))
    assert provider.context_for_message("a0").is_group_expanded is True


def test_justification_setting_reaches_aggregation():
    provider = TurnGroupingProvider(GroupingSettings(text_justification_activity=True))
    provider.update_messages([user("u1"), assistant("a1", text_part("checking", pid="j"), tool_part(pid="t"))])
    assert [p.id for p in provider.context_for_message("a1").activity_parts] == ["j", "t"]


def test_dynamic_cache_is_bounded():
    provider = TurnGroupingProvider(GroupingSettings(context_cache_limit=2))
    provider.update_messages([user("u1"), assistant("a1"), assistant("a2"), assistant("a3")])
    first = provider.context_for_message("a1")
    provider.context_for_message("a2")
    provider.context_for_message("a3")
    assert provider.context_for_message("a1") is not first
    assert provider.context_for_message("a3") is provider.context_for_message("a3")


def test_rebuild_emits_perf_warning_when_slow(caplog, monkeypatch, provider):
    monkeypatch.setitem(perf.SLOW_STAGE_THRESHOLDS_MS, "grouping.rebuild_static", 0.0)
    with caplog.at_level(logging.WARNING, logger="turn_sync.app.grouping"):
        provider.update_messages(simple_conversation(1))
    assert "perf threshold exceeded stage=grouping.rebuild_static" in caplog.text
    assert "messages=2" in caplog.text
