"""Textual transcript viewer driven by TurnGroupingProvider.

One MessageContainer per message. Assistant messages get a
RenderSyncCoordinator whose notifications keep the view pinned to the bottom
while the last turn grows.

Only messages whose entry object changed, plus the last turn, are re-rendered
when a new message list arrives.

// [LAW:single-enforcer] on_key is the sole key dispatcher.
// [LAW:one-way-deps] Widgets read TurnGroupingContext; they never aggregate turns.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Sequence
from functools import partial

from textual.app import App, ComposeResult
from textual.containers import VerticalScroll
from textual.css.query import NoMatches

from turn_sync.app.grouping import RenderPath, TurnGroupingProvider
from turn_sync.app.render_sync import AnimationHandlers, RenderSyncCoordinator, build_render_inputs
from turn_sync.app.settings import GroupingSettings
from turn_sync.app.stream_lifecycle import StreamLifecycleRegistry
from turn_sync.app.turn_ui_state import ToolCallExpansion
from turn_sync.core.messages import (
    MessageEntry,
    message_id,
    normalize_display_messages,
    part_type,
    resolve_role,
    tool_ended_at,
)
from turn_sync.core.stream_phase import SessionActivity, phase_for_message
from turn_sync.tui.host import MessageContainer, TextualFrameScheduler, WidgetSizeObserver
from turn_sync.tui.rendering import render_message

logger = logging.getLogger(__name__)

# [LAW:one-source-of-truth] Key -> action mapping.
KEYMAP: dict[str, str] = {
    "e": "toggle_last_group",
    "d": "cycle_density",
    "q": "quit",
}

_DENSITY_CYCLE = (
    ToolCallExpansion.COLLAPSED,
    ToolCallExpansion.ACTIVITY,
    ToolCallExpansion.DETAILED,
)


def _slot_key(entry: MessageEntry, position: int) -> str:
    return message_id(entry) or f"#{position}"


def _tools_finished(entry: MessageEntry) -> bool:
    tools = [p for p in entry.parts if part_type(p) == "tool"]
    return bool(tools) and all(tool_ended_at(p) is not None for p in tools)


class TurnViewerApp(App):
    CSS = """
    #messages {
        height: 1fr;
    }
    """

    def __init__(
        self,
        messages: Sequence[MessageEntry] = (),
        settings: GroupingSettings | None = None,
        *,
        session_id: str = "",
        lifecycle: StreamLifecycleRegistry | None = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self._settings = settings or GroupingSettings()
        self._provider = TurnGroupingProvider(self._settings)
        self._provider.on_turn_invalidated = self._on_turn_invalidated
        self._lifecycle = lifecycle or StreamLifecycleRegistry()
        self._session_id = session_id
        self._initial = list(messages)

        self._entries: dict[str, MessageEntry] = {}
        self._order: list[str] = []
        self._containers: dict[str, MessageContainer] = {}
        self._coordinators: dict[str, RenderSyncCoordinator] = {}
        self._scheduler = TextualFrameScheduler(self)
        self._size_observer = WidgetSizeObserver()
        self.follow = True

        self.render_counts: Counter[str] = Counter()
        self.render_events: list[tuple[str, str]] = []

    @property
    def provider(self) -> TurnGroupingProvider:
        return self._provider

    @property
    def lifecycle(self) -> StreamLifecycleRegistry:
        return self._lifecycle

    def compose(self) -> ComposeResult:
        yield VerticalScroll(id="messages")

    def on_mount(self) -> None:
        self.set_messages(self._initial)

    def _scroll(self) -> VerticalScroll | None:
        try:
            return self.query_one("#messages", VerticalScroll)
        except NoMatches:
            return None

    # ─── Inputs ───────────────────────────────────────────────────────

    def set_messages(self, messages: Sequence[MessageEntry]) -> None:
        entries = normalize_display_messages(messages)
        previous_last = set(self._provider.index.last_turn_message_ids)
        if not self._provider.update_messages(entries):
            return

        keys = [_slot_key(entry, i) for i, entry in enumerate(entries)]
        new_entries = dict(zip(keys, entries))

        vanished = [k for k in self._order if k not in new_entries]
        for key in vanished:
            self._drop_slot(key)
        if vanished:
            self._lifecycle.forget(vanished)

        scroll = self._scroll()
        surviving = [k for k in self._order if k in new_entries]
        rebuild = keys[: len(surviving)] != surviving
        if rebuild and scroll is not None:
            scroll.remove_children()
            self._containers.clear()

        dirty: set[str] = set(previous_last) | set(self._provider.index.last_turn_message_ids)
        for key, entry in new_entries.items():
            if key not in self._containers:
                container = MessageContainer(message_id=key)
                container.set_class(resolve_role(entry.info) == "user", "-user")
                self._containers[key] = container
                if scroll is not None:
                    scroll.mount(container)
                dirty.add(key)
            elif self._entries.get(key) is not entry:
                dirty.add(key)

        self._entries = new_entries
        self._order = keys
        for key in keys:
            if key in dirty:
                self._render_slot(key)

    def set_session_activity(self, activity: SessionActivity) -> None:
        self._provider.set_session_activity(activity)

    # ─── Rendering ────────────────────────────────────────────────────

    def _render_slot(self, key: str) -> None:
        entry = self._entries.get(key)
        container = self._containers.get(key)
        if entry is None or container is None:
            return
        mid = message_id(entry)
        context = self._provider.context_for_message(mid) if mid else None
        path = self._provider.render_path(mid)
        container.update(
            render_message(entry, context, include_reasoning=self._settings.show_reasoning_traces)
        )
        container.set_class(path is RenderPath.DYNAMIC, "-dynamic")
        self.render_counts[key] += 1

        if resolve_role(entry.info) != "assistant":
            return
        coordinator = self._coordinators.get(key)
        if coordinator is None:
            coordinator = RenderSyncCoordinator(
                self._handlers_for(key),
                scheduler=self._scheduler,
                size_observer=self._size_observer,
            )
            self._coordinators[key] = coordinator
        phase = phase_for_message(
            entry,
            lifecycle_phase=self._lifecycle.phase_override(mid),
            streaming_message_id=self._provider.session.streaming_message_id,
        )
        inputs = build_render_inputs(
            entry,
            context,
            stream_phase=phase,
            should_animate=path is RenderPath.DYNAMIC,
            include_reasoning=self._settings.show_reasoning_traces,
        )
        coordinator.sync(inputs, container)
        if _tools_finished(entry):
            coordinator.announce_auxiliary_complete()

    def _render_turn(self, turn_id: str | None) -> None:
        if turn_id is None:
            for key in self._order:
                self._render_slot(key)
            return
        turn = self._provider.index.turn_for(turn_id)
        if turn is None:
            return
        for entry in turn.members:
            self._render_slot(message_id(entry))

    def _drop_slot(self, key: str) -> None:
        coordinator = self._coordinators.pop(key, None)
        if coordinator is not None:
            coordinator.unmount()
        container = self._containers.pop(key, None)
        if container is not None and container.is_attached:
            container.remove()

    def _on_turn_invalidated(self, turn_id: str | None) -> None:
        self._render_turn(turn_id)

    # ─── Render-sync handlers ─────────────────────────────────────────

    def _handlers_for(self, key: str) -> AnimationHandlers:
        return AnimationHandlers(
            on_streaming_candidate=partial(self._record, key, "streaming_candidate"),
            on_reservation_cancelled=partial(self._record, key, "reservation_cancelled"),
            on_reasoning_block=partial(self._record, key, "reasoning_block"),
            on_animation_start=partial(self._on_animation_start, key),
            on_animated_height_change=self._on_height_change,
            on_content_change=partial(self._on_content_change, key),
        )

    def _record(self, key: str, event: str) -> None:
        logger.debug("render-sync %s %s", key, event)
        self.render_events.append((key, event))

    def _on_animation_start(self, key: str) -> None:
        # Terminal output lands in one frame, so the animation is already settled.
        self._record(key, "animation_start")
        self._lifecycle.settle(key)

    def _on_height_change(self, height: float) -> None:
        if self.follow:
            self._scroll_to_end()

    def _on_content_change(self, key: str, reason: str) -> None:
        self._record(key, f"content_change:{reason}")
        if self.follow:
            self._scroll_to_end()

    def _scroll_to_end(self) -> None:
        scroll = self._scroll()
        if scroll is not None:
            scroll.scroll_end(animate=False)

    # ─── Actions ──────────────────────────────────────────────────────

    async def on_key(self, event) -> None:
        action = KEYMAP.get(event.key)
        if action is None:
            return
        event.prevent_default()
        await self.run_action(action)

    def action_toggle_last_group(self) -> None:
        turn_id = self._provider.index.last_turn_id
        if turn_id is not None:
            self._provider.toggle_group(turn_id)

    def action_cycle_density(self) -> None:
        current = self._provider.ui_store.density
        following = _DENSITY_CYCLE[(_DENSITY_CYCLE.index(current) + 1) % len(_DENSITY_CYCLE)]
        logger.info("density %s -> %s", current.value, following.value)
        self._provider.set_density(following)
