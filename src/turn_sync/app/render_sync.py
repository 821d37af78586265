"""Render-sync coordinator — reservation/animation notifications per rendered message.

Tells the host renderer when to pre-allocate space for text that is about to
animate in, and forwards live height changes while that matters.

Protocol state is a tagged value (ProtocolState) owned per message id. A new
message id starts a new epoch from INITIAL_STATE; every notification below
fires at most once per epoch.

Frame scheduling and size observation are injected capabilities. Without a
scheduler, height notifications are synchronous; without an observer, the
height is measured once when tracking starts. With an observer, the current
height is reported as soon as observation begins.

// [LAW:single-enforcer] All host notifications are emitted from RenderSyncCoordinator.
// [LAW:one-way-deps] No widget imports; hosts adapt through FrameScheduler/SizeObserver.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

from turn_sync.core.messages import (
    MessageEntry,
    Part,
    filter_visible_parts,
    is_animation_settled,
    message_id,
    part_type,
    resolve_role,
)
from turn_sync.core.stream_phase import StreamPhase

if TYPE_CHECKING:
    from turn_sync.app.grouping import TurnGroupingContext

logger = logging.getLogger(__name__)


Cancel = Callable[[], None]


class FrameScheduler(Protocol):
    def schedule(self, callback: Callable[[], None]) -> Cancel:
        """Run callback on the next frame; the returned callable cancels it."""
        ...


class SizeObserver(Protocol):
    def observe(self, element: Any, callback: Callable[[float], None]) -> Cancel:
        """Call callback(height) on size changes; the returned callable unobserves."""
        ...


@dataclass(frozen=True)
class AnimationHandlers:
    """Host callbacks. Any of them may be absent."""

    on_streaming_candidate: Callable[[], None] | None = None
    on_reservation_cancelled: Callable[[], None] | None = None
    on_reasoning_block: Callable[[], None] | None = None
    on_animation_start: Callable[[], None] | None = None
    on_animated_height_change: Callable[[float], None] | None = None
    on_content_change: Callable[[str], None] | None = None


NO_HANDLERS = AnimationHandlers()


# ─── Protocol state ───────────────────────────────────────────────────────────


class ReservationStage(Enum):
    IDLE = "idle"  # never requested in this epoch
    REQUESTED = "requested"  # candidate fired, reservation held
    RELEASED = "released"  # cancelled or handed to a reasoning block; never re-requested


class TrackingMode(Enum):
    IDLE = "idle"
    REQUESTED = "requested"
    ALLOWED = "allowed"
    BOTH = "both"


@dataclass(frozen=True)
class ProtocolState:
    reservation: ReservationStage = ReservationStage.IDLE
    animation_started: bool = False
    auxiliary_announced: bool = False


INITIAL_STATE = ProtocolState()


@dataclass(frozen=True)
class RenderInputs:
    message_id: str
    is_assistant: bool
    should_animate: bool
    animation_settled: bool = False
    stream_phase: StreamPhase = StreamPhase.COMPLETED
    has_text_parts: bool = False
    coordinated: bool = False
    has_reasoning: bool = False

    @property
    def is_candidate(self) -> bool:
        """Text that will animate in on its own (not laid out with tools)."""
        return (
            self.is_assistant
            and self.should_animate
            and self.has_text_parts
            and not self.coordinated
        )

    @property
    def allow_animation(self) -> bool:
        return (
            self.is_assistant
            and self.should_animate
            and not self.animation_settled
            and self.stream_phase is not StreamPhase.STREAMING
        )


def tracking_mode(state: ProtocolState, inputs: RenderInputs) -> TrackingMode:
    requested = state.reservation is ReservationStage.REQUESTED
    allowed = inputs.allow_animation
    if requested and allowed:
        return TrackingMode.BOTH
    if requested:
        return TrackingMode.REQUESTED
    if allowed:
        return TrackingMode.ALLOWED
    return TrackingMode.IDLE


# ─── Input derivation ─────────────────────────────────────────────────────────


def is_coordinated_rendering(parts: Sequence[Part]) -> bool:
    """Text and tools laid out together, or a step still open."""
    has_text = has_tool = False
    step_starts = step_finishes = 0
    for part in parts:
        kind = part_type(part)
        if kind == "text":
            has_text = True
        elif kind == "tool":
            has_tool = True
        elif kind == "step-start":
            step_starts += 1
        elif kind == "step-finish":
            step_finishes += 1
    if has_text and has_tool:
        return True
    return step_starts > step_finishes


def build_render_inputs(
    entry: MessageEntry,
    context: TurnGroupingContext | None,
    *,
    stream_phase: StreamPhase,
    should_animate: bool,
    include_reasoning: bool = True,
) -> RenderInputs:
    visible = filter_visible_parts(entry.parts, include_reasoning=include_reasoning)
    is_assistant = resolve_role(entry.info) == "assistant"
    turn_has_reasoning = context is not None and context.has_reasoning
    return RenderInputs(
        message_id=message_id(entry),
        is_assistant=is_assistant,
        should_animate=should_animate,
        animation_settled=is_animation_settled(entry),
        stream_phase=stream_phase,
        has_text_parts=any(part_type(p) == "text" for p in visible),
        coordinated=is_assistant and is_coordinated_rendering(visible),
        has_reasoning=is_assistant and (
            turn_has_reasoning or any(part_type(p) == "reasoning" for p in visible)
        ),
    )


def _default_measure(element: Any) -> float:
    """Height of a widget-like element: `.size.height`, else `.height`, else 0."""
    size = getattr(element, "size", None)
    height = getattr(size, "height", None)
    if height is None:
        height = getattr(element, "height", 0)
    try:
        return float(height)
    except (TypeError, ValueError):
        return 0.0


# ─── Coordinator ──────────────────────────────────────────────────────────────


class RenderSyncCoordinator:
    """One per rendered message slot. Call sync() on every render."""

    def __init__(
        self,
        handlers: AnimationHandlers = NO_HANDLERS,
        *,
        scheduler: FrameScheduler | None = None,
        size_observer: SizeObserver | None = None,
        measure: Callable[[Any], float] | None = None,
    ):
        self._handlers = handlers
        self._scheduler = scheduler
        self._size_observer = size_observer
        self._measure = measure or _default_measure
        self._subject: str | None = None
        self._state = INITIAL_STATE
        self._tracked_element: Any = None
        self._unobserve: Cancel | None = None
        self._cancel_frame: Cancel | None = None

    @property
    def state(self) -> ProtocolState:
        return self._state

    @property
    def subject(self) -> str | None:
        return self._subject

    @property
    def is_tracking_height(self) -> bool:
        return self._tracked_element is not None

    def sync(self, inputs: RenderInputs, element: Any = None) -> ProtocolState:
        """Run the protocol for the current render of inputs.message_id."""
        if inputs.message_id != self._subject:
            self._begin_epoch(inputs.message_id)
        self._sync_reservation(inputs)
        self._sync_animation_start(inputs)
        self._sync_height_tracking(inputs, element)
        return self._state

    def announce_auxiliary_complete(self, *, is_assistant: bool = True) -> bool:
        """Auxiliary content (e.g. tool output) finished; ask host to re-scroll once."""
        if not is_assistant or self._state.auxiliary_announced:
            return False
        self._state = replace(self._state, auxiliary_announced=True)
        if self._handlers.on_content_change is not None:
            self._handlers.on_content_change("structural")
        return True

    def unmount(self) -> None:
        """The message left the rendered set; drop tracking and protocol state."""
        self._stop_tracking()
        self._subject = None
        self._state = INITIAL_STATE

    # ─── Transitions ──────────────────────────────────────────────────

    def _begin_epoch(self, subject: str) -> None:
        self._stop_tracking()
        if self._subject is not None:
            logger.debug("render-sync reset %s -> %s", self._subject, subject)
        self._subject = subject
        self._state = INITIAL_STATE

    def _sync_reservation(self, inputs: RenderInputs) -> None:
        stage = self._state.reservation
        if not inputs.is_candidate:
            if stage is ReservationStage.REQUESTED:
                self._state = replace(self._state, reservation=ReservationStage.RELEASED)
                if inputs.has_reasoning and self._handlers.on_reasoning_block is not None:
                    logger.debug("reservation handed to reasoning block %s", self._subject)
                    self._handlers.on_reasoning_block()
                elif self._handlers.on_reservation_cancelled is not None:
                    logger.debug("reservation cancelled %s", self._subject)
                    self._handlers.on_reservation_cancelled()
            return

        if stage is not ReservationStage.IDLE or self._handlers.on_streaming_candidate is None:
            return
        self._state = replace(self._state, reservation=ReservationStage.REQUESTED)
        logger.debug("reservation requested %s", self._subject)
        self._handlers.on_streaming_candidate()

    def _sync_animation_start(self, inputs: RenderInputs) -> None:
        if not inputs.allow_animation or self._state.animation_started:
            return
        self._state = replace(self._state, animation_started=True)
        if self._handlers.on_animation_start is not None:
            self._handlers.on_animation_start()

    # ─── Height tracking ──────────────────────────────────────────────

    def _sync_height_tracking(self, inputs: RenderInputs, element: Any) -> None:
        mode = tracking_mode(self._state, inputs)
        handler = self._handlers.on_animated_height_change
        if mode is TrackingMode.IDLE or handler is None or element is None:
            self._stop_tracking()
            return
        if element is self._tracked_element:
            return

        self._stop_tracking()
        self._tracked_element = element
        if self._size_observer is None:
            handler(self._measure(element))
            return
        self._unobserve = self._size_observer.observe(element, self._notify_height)
        self._notify_height(self._measure(element))

    def _notify_height(self, height: float) -> None:
        if self._scheduler is None:
            self._emit_height(height)
            return
        if self._cancel_frame is not None:
            self._cancel_frame()
        self._cancel_frame = self._scheduler.schedule(lambda: self._flush_height(height))

    def _flush_height(self, height: float) -> None:
        self._cancel_frame = None
        self._emit_height(height)

    def _emit_height(self, height: float) -> None:
        handler = self._handlers.on_animated_height_change
        if handler is not None:
            handler(height)

    def _stop_tracking(self) -> None:
        if self._cancel_frame is not None:
            self._cancel_frame()
            self._cancel_frame = None
        if self._unobserve is not None:
            self._unobserve()
            self._unobserve = None
        self._tracked_element = None
