"""Turn UI state store — per-turn expansion and previewed activity ids.

Owned by the rendering layer. Keyed by turn id only, so re-deriving activity
info for a turn never resets its UI state.

// [LAW:one-source-of-truth] Default expansion is a pure function of the density passed in.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace
from enum import Enum

logger = logging.getLogger(__name__)


class ToolCallExpansion(Enum):
    COLLAPSED = "collapsed"
    ACTIVITY = "activity"
    DETAILED = "detailed"

    @classmethod
    def parse(cls, value: object, default: "ToolCallExpansion | None" = None) -> "ToolCallExpansion":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            if default is None:
                raise
            return default


def default_expanded(density: ToolCallExpansion) -> bool:
    """Only the detailed density opens activity groups by default."""
    return density is ToolCallExpansion.DETAILED


@dataclass(frozen=True)
class TurnUiState:
    is_expanded: bool
    previewed_part_ids: frozenset[str] = field(default_factory=frozenset)


class TurnUiStateStore:
    """Create-on-read per-turn UI state.

    on_change(turn_id) fires after every mutation; turn_id is None when all
    state was cleared.
    """

    def __init__(self, density: ToolCallExpansion = ToolCallExpansion.COLLAPSED):
        self._density = density
        self._states: dict[str, TurnUiState] = {}
        self._version = 0
        self.on_change: Callable[[str | None], None] | None = None

    @property
    def density(self) -> ToolCallExpansion:
        return self._density

    @property
    def version(self) -> int:
        """Monotonic mutation counter for cache keys."""
        return self._version

    def _default(self) -> TurnUiState:
        return TurnUiState(is_expanded=default_expanded(self._density))

    def get(self, turn_id: str) -> TurnUiState:
        state = self._states.get(turn_id)
        if state is None:
            state = self._default()
            self._states[turn_id] = state
        return state

    def peek(self, turn_id: str) -> TurnUiState:
        """Like get() without creating an entry."""
        return self._states.get(turn_id) or self._default()

    def toggle(self, turn_id: str) -> TurnUiState:
        current = self.get(turn_id)
        updated = replace(current, is_expanded=not current.is_expanded)
        self._states[turn_id] = updated
        logger.debug("turn %s expanded=%s", turn_id, updated.is_expanded)
        self._changed(turn_id)
        return updated

    def mark_previewed(self, turn_id: str, part_ids: Iterable[str]) -> TurnUiState:
        ids = {pid for pid in part_ids if isinstance(pid, str) and pid.strip()}
        current = self.get(turn_id)
        if not ids or ids <= current.previewed_part_ids:
            return current
        updated = replace(current, previewed_part_ids=current.previewed_part_ids | ids)
        self._states[turn_id] = updated
        self._changed(turn_id)
        return updated

    def set_density(self, density: ToolCallExpansion) -> None:
        """Switch density; every turn falls back to the new default."""
        if density is self._density:
            return
        self._density = density
        self._states.clear()
        self._changed(None)

    def discard(self, turn_ids: Iterable[str]) -> None:
        """Forget turns that left the rendered set. No notification."""
        for turn_id in turn_ids:
            self._states.pop(turn_id, None)

    def known_turn_ids(self) -> tuple[str, ...]:
        return tuple(self._states)

    def _changed(self, turn_id: str | None) -> None:
        self._version += 1
        if self.on_change is not None:
            self.on_change(turn_id)

    # ─── State transfer ───────────────────────────────────────────────

    def get_state(self) -> dict:
        return {
            "density": self._density.value,
            "turns": {
                tid: {
                    "expanded": state.is_expanded,
                    "previewed": sorted(state.previewed_part_ids),
                }
                for tid, state in self._states.items()
            },
        }

    def restore_state(self, state: dict) -> None:
        self._density = ToolCallExpansion.parse(state.get("density"), self._density)
        self._states.clear()
        turns = state.get("turns", {})
        if isinstance(turns, dict):
            for tid, entry in turns.items():
                if not isinstance(entry, dict):
                    continue
                previewed = entry.get("previewed", [])
                self._states[str(tid)] = TurnUiState(
                    is_expanded=bool(entry.get("expanded", default_expanded(self._density))),
                    previewed_part_ids=frozenset(
                        p for p in previewed if isinstance(p, str)
                    ) if isinstance(previewed, list) else frozenset(),
                )
        self._changed(None)
