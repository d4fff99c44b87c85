"""
Per-song generation state machine.

Explicit state transitions for one song's variation lifecycle.
Never mutate a song's status directly; always go through assert_transition().

States:
    IDLE       — Nothing requested in this session yet
    GENERATING — Variation requests are being issued
    WAITING    — All requests issued (or resumed); polling for results
    READY      — Every expected variation has audio
    ERROR      — Batch failed, every request failed, or the watcher timed out

Invariants:
    1. A song leaves IDLE at most once per session unless retried.
    2. Retry is only allowed from ERROR, and goes back through IDLE.
    3. READY is final for the session.
"""

from __future__ import annotations

import logging
from enum import Enum

from huggnote.compose.errors import HuggnoteError

logger = logging.getLogger(__name__)


class SongStatus(str, Enum):
    """Per-song lifecycle states."""

    IDLE = "idle"
    GENERATING = "generating"
    WAITING = "waiting"
    READY = "ready"
    ERROR = "error"


# Allowed transitions: from_state -> set of valid to_states.
_TRANSITIONS: dict[SongStatus, frozenset[SongStatus]] = {
    SongStatus.IDLE: frozenset({
        SongStatus.GENERATING,
        # Resume: task ids already persisted by this or another session.
        SongStatus.WAITING,
        SongStatus.READY,
        SongStatus.ERROR,
    }),
    SongStatus.GENERATING: frozenset({
        SongStatus.WAITING,
        SongStatus.ERROR,
    }),
    SongStatus.WAITING: frozenset({
        SongStatus.READY,
        SongStatus.ERROR,
    }),
    SongStatus.READY: frozenset(),
    SongStatus.ERROR: frozenset({
        SongStatus.IDLE,
    }),
}


class InvalidTransitionError(HuggnoteError):
    """Raised when a state transition violates the state machine."""

    def __init__(self, from_state: SongStatus, to_state: SongStatus):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Invalid transition: {from_state.value} → {to_state.value}"
        )


def assert_transition(
    from_state: SongStatus,
    to_state: SongStatus,
) -> None:
    """
    Validate that a state transition is allowed.

    Raises InvalidTransitionError if the transition violates the state machine.
    """
    allowed = _TRANSITIONS.get(from_state, frozenset())
    if to_state not in allowed:
        raise InvalidTransitionError(from_state, to_state)


def is_busy(status: SongStatus) -> bool:
    """Check if a song has generation in flight."""
    return status in {SongStatus.GENERATING, SongStatus.WAITING}


def can_retry(status: SongStatus) -> bool:
    """Check if a song can be retried from the given status."""
    return status == SongStatus.ERROR
