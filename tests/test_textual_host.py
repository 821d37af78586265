"""In-process Textual tests for the viewer and the host adapters."""

from types import SimpleNamespace

import pytest
from textual.geometry import Size

from turn_sync.app.stream_lifecycle import StreamLifecycleRegistry
from turn_sync.app.turn_ui_state import ToolCallExpansion
from turn_sync.tui.app import TurnViewerApp
from turn_sync.tui.host import MessageContainer, TextualFrameScheduler, WidgetSizeObserver

from tests.harness import assistant, simple_conversation, text_part, tool_part, user

pytestmark = pytest.mark.textual


def _containers(app):
    return {c.message_id: c for c in app.query(MessageContainer)}


async def test_one_container_per_message():
    app = TurnViewerApp(simple_conversation(2))
    async with app.run_test(size=(100, 40)) as pilot:
        await pilot.pause()
        assert sorted(_containers(app)) == ["a0", "a1", "u0", "u1"]
        assert _containers(app)["u0"].has_class("-user")
        assert _containers(app)["a1"].has_class("-dynamic")
        assert not _containers(app)["a0"].has_class("-dynamic")


async def test_e_toggles_last_turn_group():
    app = TurnViewerApp(simple_conversation(2))
    async with app.run_test(size=(100, 40)) as pilot:
        await pilot.pause()
        store = app.provider.ui_store
        assert store.get("u1").is_expanded is False
        before = app.render_counts["a1"]
        await pilot.press("e")
        await pilot.pause()
        assert store.get("u1").is_expanded is True
        assert store.get("u0").is_expanded is False
        assert app.render_counts["a1"] > before


async def test_d_cycles_density():
    app = TurnViewerApp(simple_conversation(1))
    async with app.run_test(size=(100, 40)) as pilot:
        await pilot.pause()
        await pilot.press("d")
        await pilot.pause()
        assert app.provider.ui_store.density is ToolCallExpansion.ACTIVITY
        await pilot.press("d", "d")
        await pilot.pause()
        assert app.provider.ui_store.density is ToolCallExpansion.COLLAPSED


async def test_streaming_rerenders_only_last_turn():
    messages = simple_conversation(3)
    app = TurnViewerApp(messages)
    async with app.run_test(size=(100, 40)) as pilot:
        await pilot.pause()
        head = messages[:-1]
        parts = []
        for n in range(5):
            parts.append(tool_part("bash", pid=f"s{n}"))
            app.set_messages([*head, assistant("a2", *parts)])
        await pilot.pause()
        assert app.render_counts["a0"] == 1
        assert app.render_counts["u1"] == 1
        assert app.render_counts["a2"] == 6


async def test_new_message_is_mounted_and_old_removed():
    messages = simple_conversation(2)
    app = TurnViewerApp(messages)
    async with app.run_test(size=(100, 40)) as pilot:
        await pilot.pause()
        app.set_messages(messages[2:])
        await pilot.pause()
        assert sorted(_containers(app)) == ["a1", "u1"]


async def test_text_message_in_last_turn_requests_reservation():
    streaming = assistant("a1", text_part("typing"))
    app = TurnViewerApp([*simple_conversation(1), user("u1", "next"), streaming])
    async with app.run_test(size=(100, 40)) as pilot:
        await pilot.pause()
        assert ("a1", "streaming_candidate") in app.render_events
        assert ("a0", "streaming_candidate") not in app.render_events


async def test_animation_start_settles_lifecycle():
    lifecycle = StreamLifecycleRegistry()
    lifecycle.touch("ses_1", "a1", now=1.0)
    lifecycle.begin_cooldown("a1", now=2.0)
    app = TurnViewerApp([user("u1"), assistant("a1", text_part("done"))], lifecycle=lifecycle)
    async with app.run_test(size=(100, 40)) as pilot:
        await pilot.pause()
        assert ("a1", "animation_start") in app.render_events
        assert lifecycle.phase_override("a1") is None


async def test_finished_tools_announce_structural_change_once():
    app = TurnViewerApp(simple_conversation(1))
    async with app.run_test(size=(100, 40)) as pilot:
        await pilot.pause()
        await pilot.press("e")
        await pilot.pause()
        assert app.render_events.count(("a0", "content_change:structural")) == 1


async def test_frame_scheduler_runs_and_cancels():
    app = TurnViewerApp()
    async with app.run_test() as pilot:
        scheduler = TextualFrameScheduler(app)
        calls = []
        scheduler.schedule(lambda: calls.append("ran"))
        cancel = scheduler.schedule(lambda: calls.append("cancelled"))
        cancel()
        await pilot.pause(0.1)
        assert calls == ["ran"]


async def test_container_reports_resize_to_listeners():
    app = TurnViewerApp(simple_conversation(1))
    async with app.run_test() as pilot:
        await pilot.pause()
        container = _containers(app)["a0"]
        heights = []
        remove = WidgetSizeObserver().observe(container, heights.append)
        container.on_resize(SimpleNamespace(size=Size(40, 7)))
        remove()
        container.on_resize(SimpleNamespace(size=Size(40, 9)))
        assert heights == [7.0]


def test_size_observer_rejects_other_objects():
    with pytest.raises(TypeError):
        WidgetSizeObserver().observe(object(), lambda h: None)
