"""Pydantic models for the Huggnote API and compose client."""
from __future__ import annotations

from huggnote.models.forms import GeneratedPrompt, OrderForm, SongSpec, new_form_id
from huggnote.models.records import (
    OrderPatch,
    OrderRecord,
    VariationSlot,
    completion_counts,
    is_song_ready,
    merge_record,
)

__all__ = [
    "GeneratedPrompt",
    "OrderForm",
    "SongSpec",
    "new_form_id",
    "OrderPatch",
    "OrderRecord",
    "VariationSlot",
    "completion_counts",
    "is_song_ready",
    "merge_record",
]
