"""Selection Tracker: which variation the customer picked for each song."""
from __future__ import annotations

from huggnote.models.records import VARIATION_IDS


class SelectionTracker:
    """Song index → chosen variation id, for an order of ``song_count`` songs."""

    def __init__(self, song_count: int, selections: dict[int, int] | None = None) -> None:
        self.song_count = song_count
        self.selections: dict[int, int] = dict(selections or {})

    def select(self, song_index: int, variation_id: int) -> None:
        if not 0 <= song_index < self.song_count:
            raise ValueError(f"Song index {song_index} out of range (0..{self.song_count - 1})")
        if variation_id not in VARIATION_IDS:
            raise ValueError(f"Unknown variation id {variation_id}")
        self.selections[song_index] = variation_id

    def missing(self) -> list[int]:
        return [i for i in range(self.song_count) if i not in self.selections]

    def complete(self) -> bool:
        return self.song_count >= 1 and not self.missing()


def can_checkout(tracker: SelectionTracker, authenticated: bool) -> bool:
    """Checkout is allowed once every song has a selection and a user is known."""
    return authenticated and tracker.complete()
