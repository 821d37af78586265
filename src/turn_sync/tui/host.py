"""Textual adapters for the render-sync capabilities.

TextualFrameScheduler maps "next frame" onto a one-shot Textual timer.
MessageContainer reports its own height changes from on_resize, and
WidgetSizeObserver exposes that as a SizeObserver.
"""

from __future__ import annotations

from collections.abc import Callable

from textual.widgets import Static

FRAME_INTERVAL = 1 / 60


class TextualFrameScheduler:
    """FrameScheduler backed by node.set_timer()."""

    def __init__(self, node, *, interval: float = FRAME_INTERVAL):
        self._node = node
        self._interval = interval

    def schedule(self, callback: Callable[[], None]) -> Callable[[], None]:
        timer = self._node.set_timer(self._interval, callback)
        return timer.stop


class MessageContainer(Static):
    """One rendered message. Size listeners receive the new height on resize."""

    DEFAULT_CSS = """
    MessageContainer {
        height: auto;
        padding: 0 1;
        margin-bottom: 1;
    }

    MessageContainer.-user {
        background: $boost;
    }

    MessageContainer.-dynamic {
        border-left: tall $accent;
    }
    """

    def __init__(self, *args, message_id: str = "", **kwargs):
        super().__init__(*args, **kwargs)
        self.message_id = message_id
        self._size_listeners: list[Callable[[float], None]] = []

    def add_size_listener(self, callback: Callable[[float], None]) -> Callable[[], None]:
        self._size_listeners.append(callback)

        def _remove() -> None:
            if callback in self._size_listeners:
                self._size_listeners.remove(callback)

        return _remove

    @property
    def size_listener_count(self) -> int:
        return len(self._size_listeners)

    def on_resize(self, event) -> None:
        height = float(event.size.height)
        for listener in list(self._size_listeners):
            listener(height)


class WidgetSizeObserver:
    """SizeObserver over MessageContainer widgets."""

    def observe(self, element, callback: Callable[[float], None]) -> Callable[[], None]:
        if not isinstance(element, MessageContainer):
            raise TypeError(f"cannot observe {type(element).__name__}; expected MessageContainer")
        return element.add_size_listener(callback)
