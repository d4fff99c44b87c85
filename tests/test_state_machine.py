"""Tests for the per-song generation state machine and selection tracker."""
from __future__ import annotations

import pytest

from huggnote.compose.selection import SelectionTracker, can_checkout
from huggnote.compose.state_machine import (
    InvalidTransitionError,
    SongStatus,
    assert_transition,
    can_retry,
    is_busy,
)


@pytest.mark.parametrize("from_state,to_state", [
    (SongStatus.IDLE, SongStatus.GENERATING),
    (SongStatus.IDLE, SongStatus.WAITING),
    (SongStatus.IDLE, SongStatus.READY),
    (SongStatus.GENERATING, SongStatus.WAITING),
    (SongStatus.GENERATING, SongStatus.ERROR),
    (SongStatus.WAITING, SongStatus.READY),
    (SongStatus.WAITING, SongStatus.ERROR),
    (SongStatus.ERROR, SongStatus.IDLE),
])
def test_valid_transitions(from_state, to_state):
    assert_transition(from_state, to_state)


@pytest.mark.parametrize("from_state,to_state", [
    (SongStatus.READY, SongStatus.IDLE),
    (SongStatus.READY, SongStatus.GENERATING),
    (SongStatus.WAITING, SongStatus.GENERATING),
    (SongStatus.ERROR, SongStatus.GENERATING),
    (SongStatus.GENERATING, SongStatus.READY),
])
def test_invalid_transitions(from_state, to_state):
    with pytest.raises(InvalidTransitionError) as exc_info:
        assert_transition(from_state, to_state)
    assert exc_info.value.from_state == from_state
    assert exc_info.value.to_state == to_state


def test_busy_and_retry_flags():
    assert is_busy(SongStatus.GENERATING)
    assert is_busy(SongStatus.WAITING)
    assert not is_busy(SongStatus.READY)
    assert can_retry(SongStatus.ERROR)
    assert not can_retry(SongStatus.WAITING)


# =============================================================================
# Selection tracker
# =============================================================================

def test_selection_rejects_out_of_range():
    tracker = SelectionTracker(2)
    with pytest.raises(ValueError):
        tracker.select(2, 1)
    with pytest.raises(ValueError):
        tracker.select(0, 4)


def test_selection_missing_and_complete():
    tracker = SelectionTracker(2)
    tracker.select(0, 2)
    assert tracker.missing() == [1]
    assert not tracker.complete()
    tracker.select(1, 3)
    assert tracker.complete()


def test_checkout_gating_requires_auth_and_all_selections():
    tracker = SelectionTracker(2, {0: 1})
    assert not can_checkout(tracker, authenticated=True)
    tracker.select(1, 1)
    assert not can_checkout(tracker, authenticated=False)
    assert can_checkout(tracker, authenticated=True)
