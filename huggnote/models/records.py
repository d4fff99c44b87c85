"""
Order record: the synchronisation point between sessions.

The same record shape lives in two places: the server's ``compose_forms``
row and the client's local mirror. Both sides apply partial updates through
``merge_record()`` so the rules are identical everywhere:

    task_ids    write-once per (song, variation) slot, including the
                ``None`` "request failed" marker
    audio_urls  incoming non-empty values win per slot; never erased
    lyrics      same as audio_urls
    prompts     overwrite per song index
    selections  overwrite per song index

Slot semantics for ``task_ids[song][variation]``:
    key absent          → not requested yet
    key present, None   → requested and permanently failed
    key present, str    → requested; the external task handle
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from huggnote.config import VARIATIONS_PER_SONG
from huggnote.models.base import CamelModel
from huggnote.models.forms import GeneratedPrompt, OrderForm

TaskIdMap = dict[int, dict[int, Optional[str]]]
TextMap = dict[int, dict[int, str]]

# Display label and the style flavour appended to the song's music_style.
VARIATION_STYLES: dict[int, tuple[str, str]] = {
    1: ("Poetic & Romantic", "poetic, romantic"),
    2: ("Upbeat & Playful", "upbeat, playful"),
    3: ("Heartfelt & Emotional", "heartfelt, emotional"),
}

VARIATION_IDS: tuple[int, ...] = tuple(range(1, VARIATIONS_PER_SONG + 1))


class OrderRecord(CamelModel):
    """Full persisted order record."""

    form_id: str
    package_type: str = "solo-serenade"
    song_count: int = 1
    form_data: Optional[OrderForm] = None
    generated_prompts: dict[int, GeneratedPrompt] = {}
    task_ids: TaskIdMap = {}
    audio_urls: TextMap = {}
    lyrics: TextMap = {}
    selections: dict[int, int] = {}
    status: str = "prompts_generated"
    user_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def song_task_ids(self, song_index: int) -> dict[int, Optional[str]]:
        return dict(self.task_ids.get(song_index, {}))

    def slot(self, song_index: int, variation_id: int) -> "VariationSlot":
        label, _ = VARIATION_STYLES.get(variation_id, (f"Variation {variation_id}", ""))
        return VariationSlot(
            variation_id=variation_id,
            style_label=label,
            requested=variation_id in self.task_ids.get(song_index, {}),
            task_id=self.task_ids.get(song_index, {}).get(variation_id),
            audio_url=self.audio_urls.get(song_index, {}).get(variation_id),
            lyrics=self.lyrics.get(song_index, {}).get(variation_id),
        )

    def slots(self, song_index: int) -> list["VariationSlot"]:
        return [self.slot(song_index, vid) for vid in VARIATION_IDS]


class OrderPatch(CamelModel):
    """Partial update. ``None`` fields are left untouched."""

    form_data: Optional[OrderForm] = None
    package_type: Optional[str] = None
    song_count: Optional[int] = None
    generated_prompts: Optional[dict[int, GeneratedPrompt]] = None
    task_ids: Optional[TaskIdMap] = None
    audio_urls: Optional[TextMap] = None
    lyrics: Optional[TextMap] = None
    selections: Optional[dict[int, int]] = None
    status: Optional[str] = None
    user_id: Optional[str] = None


@dataclass(frozen=True)
class VariationSlot:
    """Typed view of one (song, variation) cell of the record."""

    variation_id: int
    style_label: str
    requested: bool
    task_id: Optional[str]
    audio_url: Optional[str]
    lyrics: Optional[str]

    @property
    def failed(self) -> bool:
        return self.requested and self.task_id is None

    @property
    def ready(self) -> bool:
        """Ready iff audio is present; lyrics may arrive earlier or later."""
        return bool(self.audio_url)


# ---------------------------------------------------------------------------
# Merge rules
# ---------------------------------------------------------------------------


def merge_task_ids(existing: TaskIdMap, incoming: TaskIdMap) -> TaskIdMap:
    """Union of both maps; an existing slot is never replaced or nulled."""
    merged = {song: dict(slots) for song, slots in existing.items()}
    for song, slots in incoming.items():
        target = merged.setdefault(song, {})
        for vid, tid in slots.items():
            if vid not in target:
                target[vid] = tid
    return merged


def merge_text(existing: TextMap, incoming: TextMap) -> TextMap:
    """Per-slot merge where non-empty incoming values win."""
    merged = {song: dict(slots) for song, slots in existing.items()}
    for song, slots in incoming.items():
        target = merged.setdefault(song, {})
        for vid, value in slots.items():
            if value:
                target[vid] = value
    return merged


def merge_record(record: OrderRecord, patch: OrderPatch) -> OrderRecord:
    """Apply ``patch`` to ``record`` and return the merged copy."""
    update: dict = {}
    if patch.form_data is not None:
        update["form_data"] = patch.form_data
        update["song_count"] = len(patch.form_data.songs)
    if patch.package_type is not None:
        update["package_type"] = patch.package_type
    if patch.song_count is not None and patch.form_data is None:
        update["song_count"] = patch.song_count
    if patch.generated_prompts:
        update["generated_prompts"] = {**record.generated_prompts, **patch.generated_prompts}
    if patch.task_ids:
        update["task_ids"] = merge_task_ids(record.task_ids, patch.task_ids)
    if patch.audio_urls:
        update["audio_urls"] = merge_text(record.audio_urls, patch.audio_urls)
    if patch.lyrics:
        update["lyrics"] = merge_text(record.lyrics, patch.lyrics)
    if patch.selections:
        update["selections"] = {**record.selections, **patch.selections}
    if patch.status is not None:
        update["status"] = patch.status
    if patch.user_id is not None:
        update["user_id"] = patch.user_id
    return record.model_copy(update=update)


def reconcile(local: OrderRecord, remote: OrderRecord) -> OrderRecord:
    """Fold the local copy into the server copy.

    The server record is the base; local-only results (task ids written
    before a failed round-trip, audio copied on an earlier poll) survive.
    """
    patch = OrderPatch(
        generated_prompts={
            k: v for k, v in local.generated_prompts.items()
            if k not in remote.generated_prompts
        } or None,
        task_ids=local.task_ids or None,
        audio_urls=local.audio_urls or None,
        lyrics=local.lyrics or None,
        selections={
            k: v for k, v in local.selections.items() if k not in remote.selections
        } or None,
    )
    merged = merge_record(remote, patch)
    if merged.form_data is None and local.form_data is not None:
        merged = merged.model_copy(
            update={"form_data": local.form_data, "song_count": local.song_count}
        )
    return merged


def missing_on_remote(local: OrderRecord, remote: OrderRecord) -> Optional[OrderPatch]:
    """Patch carrying what ``local`` holds and ``remote`` lacks, or ``None``.

    Covers task ids (including failed markers), results, prompts and
    selections. Status and form data are left to the server.
    """
    def missing_slots(mine: dict, theirs: dict, present) -> dict:
        out: dict = {}
        for song, slots in mine.items():
            other = theirs.get(song, {})
            extra = {vid: v for vid, v in slots.items() if present(vid, v, other)}
            if extra:
                out[song] = extra
        return out

    task_ids = missing_slots(local.task_ids, remote.task_ids, lambda vid, v, other: vid not in other)
    audio_urls = missing_slots(local.audio_urls, remote.audio_urls, lambda vid, v, other: v and not other.get(vid))
    lyrics = missing_slots(local.lyrics, remote.lyrics, lambda vid, v, other: v and not other.get(vid))
    prompts = {k: v for k, v in local.generated_prompts.items() if k not in remote.generated_prompts}
    selections = {k: v for k, v in local.selections.items() if k not in remote.selections}

    if not (task_ids or audio_urls or lyrics or prompts or selections):
        return None
    return OrderPatch(
        task_ids=task_ids or None,
        audio_urls=audio_urls or None,
        lyrics=lyrics or None,
        generated_prompts=prompts or None,
        selections=selections or None,
    )


def clear_song(record: OrderRecord, song_index: int) -> OrderRecord:
    """Drop task ids, audio and lyrics of one song (explicit retry reset)."""
    return record.model_copy(update={
        "task_ids": {k: v for k, v in record.task_ids.items() if k != song_index},
        "audio_urls": {k: v for k, v in record.audio_urls.items() if k != song_index},
        "lyrics": {k: v for k, v in record.lyrics.items() if k != song_index},
        "selections": {k: v for k, v in record.selections.items() if k != song_index},
    })


# ---------------------------------------------------------------------------
# Completion accounting
# ---------------------------------------------------------------------------


def completion_counts(record: OrderRecord, song_index: int) -> tuple[int, int]:
    """Return ``(received, expected)`` for a song.

    ``expected`` counts non-null task ids only, so a failed variation never
    blocks the others. ``received`` counts those slots that have audio.
    """
    task_ids = record.task_ids.get(song_index, {})
    audio = record.audio_urls.get(song_index, {})
    expected = [vid for vid, tid in task_ids.items() if tid]
    received = [vid for vid in expected if audio.get(vid)]
    return len(received), len(expected)


def is_song_ready(record: OrderRecord, song_index: int) -> bool:
    received, expected = completion_counts(record, song_index)
    return expected >= 1 and received >= expected


def all_requested_failed(record: OrderRecord, song_index: int) -> bool:
    """True when every requested slot of a fully requested song failed."""
    task_ids = record.task_ids.get(song_index, {})
    return len(task_ids) >= len(VARIATION_IDS) and not any(task_ids.values())
