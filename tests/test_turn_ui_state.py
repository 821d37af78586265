"""Tests for the per-turn UI state store."""

import pytest

from turn_sync.app.turn_ui_state import (
    ToolCallExpansion,
    TurnUiStateStore,
    default_expanded,
)


@pytest.mark.parametrize(
    "density, expanded",
    [
        (ToolCallExpansion.COLLAPSED, False),
        (ToolCallExpansion.ACTIVITY, False),
        (ToolCallExpansion.DETAILED, True),
    ],
)
def test_default_expansion_per_density(density, expanded):
    assert default_expanded(density) is expanded
    assert TurnUiStateStore(density).get("u1").is_expanded is expanded


def test_parse_accepts_strings_and_members():
    assert ToolCallExpansion.parse(" Detailed ") is ToolCallExpansion.DETAILED
    assert ToolCallExpansion.parse(ToolCallExpansion.ACTIVITY) is ToolCallExpansion.ACTIVITY
    assert ToolCallExpansion.parse("bogus", ToolCallExpansion.COLLAPSED) is ToolCallExpansion.COLLAPSED
    with pytest.raises(ValueError):
        ToolCallExpansion.parse("bogus")


def test_get_creates_state_once():
    store = TurnUiStateStore()
    first = store.get("u1")
    assert store.get("u1") is first
    assert store.known_turn_ids() == ("u1",)


def test_peek_does_not_create():
    store = TurnUiStateStore()
    assert store.peek("u1").is_expanded is False
    assert store.known_turn_ids() == ()


def test_toggle_flips_and_notifies():
    store = TurnUiStateStore()
    seen = []
    store.on_change = seen.append
    assert store.toggle("u1").is_expanded is True
    assert store.toggle("u1").is_expanded is False
    assert seen == ["u1", "u1"]
    assert store.version == 2


class TestMarkPreviewed:
    def test_adds_ids(self):
        store = TurnUiStateStore()
        state = store.mark_previewed("u1", ["p1", "p2"])
        assert state.previewed_part_ids == frozenset({"p1", "p2"})

    def test_empty_and_blank_ids_are_noops(self):
        store = TurnUiStateStore()
        seen = []
        store.on_change = seen.append
        store.mark_previewed("u1", [])
        store.mark_previewed("u1", ["", "  "])
        assert seen == []
        assert store.version == 0

    def test_already_previewed_is_noop(self):
        store = TurnUiStateStore()
        store.mark_previewed("u1", ["p1", "p2"])
        version = store.version
        store.mark_previewed("u1", ["p2"])
        assert store.version == version

    def test_previewed_survives_toggle(self):
        store = TurnUiStateStore()
        store.mark_previewed("u1", ["p1"])
        store.toggle("u1")
        assert store.get("u1").previewed_part_ids == frozenset({"p1"})


def test_set_density_resets_all_turns():
    store = TurnUiStateStore(ToolCallExpansion.COLLAPSED)
    seen = []
    store.on_change = seen.append
    store.toggle("u1")
    store.set_density(ToolCallExpansion.DETAILED)
    assert seen == ["u1", None]
    assert store.get("u1").is_expanded is True
    assert store.get("u2").is_expanded is True


def test_set_same_density_is_noop():
    store = TurnUiStateStore(ToolCallExpansion.ACTIVITY)
    store.toggle("u1")
    store.set_density(ToolCallExpansion.ACTIVITY)
    assert store.get("u1").is_expanded is True


def test_discard_forgets_turns():
    store = TurnUiStateStore()
    store.toggle("u1")
    store.discard(["u1", "never-seen"])
    assert store.known_turn_ids() == ()
    assert store.get("u1").is_expanded is False


def test_state_transfer_round_trip():
    store = TurnUiStateStore(ToolCallExpansion.ACTIVITY)
    store.toggle("u1")
    store.mark_previewed("u2", ["p1"])
    snapshot = store.get_state()

    restored = TurnUiStateStore()
    restored.restore_state(snapshot)
    assert restored.density is ToolCallExpansion.ACTIVITY
    assert restored.get("u1").is_expanded is True
    assert restored.get("u2").previewed_part_ids == frozenset({"p1"})


def test_restore_tolerates_garbage():
    store = TurnUiStateStore()
    store.restore_state({"density": "weird", "turns": {"u1": "nope", "u2": {"previewed": "x"}}})
    assert store.density is ToolCallExpansion.COLLAPSED
    assert store.known_turn_ids() == ("u2",)
    assert store.get("u2").previewed_part_ids == frozenset()
