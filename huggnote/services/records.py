"""
Order record service: ``compose_forms`` rows behind the typed ``OrderRecord``.

Every write goes through ``merge_record()`` so the server applies exactly the
same rules as the client mirror (write-once task ids, non-empty results win,
nothing erased by a partial update). The only exception is
``reset_song()``, the explicit retry reset.

Task ids are also registered in ``music_generations`` so the MusicGPT webhook
can find the (form, song, variation) slot its result belongs to.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from huggnote.db.models import ComposeForm, GenerationClaim, MusicGeneration
from huggnote.models.records import OrderPatch, OrderRecord, clear_song, merge_record
from huggnote.models.requests import CreateFormRequest
from huggnote.models.webhooks import MusicGPTWebhook

logger = logging.getLogger(__name__)

_WEBHOOK_STATUS = {
    "COMPLETED": "completed",
    "FAILED": "failed",
    "IN_PROGRESS": "in_progress",
}


# ---------------------------------------------------------------------------
# Row <-> record conversion
# ---------------------------------------------------------------------------


def row_to_record(row: ComposeForm) -> OrderRecord:
    return OrderRecord.model_validate({
        "form_id": row.id,
        "package_type": row.package_type,
        "song_count": row.song_count,
        "form_data": row.form_data,
        "generated_prompts": row.generated_prompts or {},
        "task_ids": row.task_ids or {},
        "audio_urls": row.audio_urls or {},
        "lyrics": row.lyrics or {},
        "selections": row.selections or {},
        "status": row.status,
        "user_id": row.user_id,
        "created_at": row.created_at,
        "updated_at": row.updated_at,
    })


def store_record(row: ComposeForm, record: OrderRecord) -> None:
    """Write a merged record back onto its row (new JSON objects each time)."""
    dumped = record.model_dump(mode="json", by_alias=True)
    row.package_type = record.package_type
    row.song_count = record.song_count
    row.status = record.status
    row.user_id = record.user_id
    row.form_data = dumped["formData"]
    row.generated_prompts = dumped["generatedPrompts"]
    row.task_ids = dumped["taskIds"]
    row.audio_urls = dumped["audioUrls"]
    row.lyrics = dumped["lyrics"]
    row.selections = dumped["selections"]


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


async def get_form(db: AsyncSession, form_id: str) -> Optional[ComposeForm]:
    return await db.get(ComposeForm, form_id)


async def list_forms(db: AsyncSession, user_id: str) -> list[ComposeForm]:
    result = await db.execute(
        select(ComposeForm)
        .where(ComposeForm.user_id == user_id)
        .order_by(ComposeForm.created_at.desc())
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


async def create_form(
    db: AsyncSession,
    req: CreateFormRequest,
    user_id: Optional[str] = None,
) -> ComposeForm:
    """Create the order record, or merge into it if the id already exists."""
    patch = OrderPatch(
        form_data=req.form_data,
        package_type=req.package_type,
        song_count=req.song_count,
        generated_prompts=req.generated_prompts,
        status="prompts_generated",
    )
    row = await get_form(db, req.form_id)
    if row is not None:
        logger.info("[%s] Form already exists, merging resubmission", req.form_id[:8])
        return await patch_form(db, row, patch, user_id)

    row = ComposeForm(id=req.form_id)
    record = merge_record(OrderRecord(form_id=req.form_id, user_id=user_id), patch)
    store_record(row, record)
    db.add(row)
    await db.flush()
    logger.info(
        "✅ [%s] Created form (%d song(s), %s)",
        req.form_id[:8], record.song_count, record.package_type,
    )
    return row


async def patch_form(
    db: AsyncSession,
    row: ComposeForm,
    patch: OrderPatch,
    user_id: Optional[str] = None,
) -> ComposeForm:
    """Merge a partial update and register any newly written task ids."""
    record = row_to_record(row)
    before = record.task_ids
    merged = merge_record(record, patch)
    if user_id and merged.user_id is None:
        merged = merged.model_copy(update={"user_id": user_id})

    for song, slots in merged.task_ids.items():
        for vid, task_id in slots.items():
            if task_id and before.get(song, {}).get(vid) != task_id:
                merged = await _attach_generation(db, merged, song, vid, task_id)

    store_record(row, merged)
    await db.flush()
    return row


async def _attach_generation(
    db: AsyncSession,
    record: OrderRecord,
    song_index: int,
    variation_id: int,
    task_id: str,
) -> OrderRecord:
    """Bind a task id to its slot; fold in results that arrived first."""
    generation = await db.get(MusicGeneration, task_id)
    if generation is None:
        db.add(MusicGeneration(
            task_id=task_id,
            form_id=record.form_id,
            song_index=song_index,
            variation_id=variation_id,
        ))
        return record

    generation.form_id = record.form_id
    generation.song_index = song_index
    generation.variation_id = variation_id
    if generation.audio_url or generation.lyrics:
        logger.info("[%s] Task %s finished before it was saved", record.form_id[:8], task_id[:8])
        record = merge_record(record, _result_patch(song_index, variation_id, generation))
    return record


async def register_task(db: AsyncSession, task_id: str, conversion_id: Optional[str]) -> None:
    """Remember a freshly submitted task before any order references it."""
    if await db.get(MusicGeneration, task_id) is None:
        db.add(MusicGeneration(task_id=task_id, conversion_id=conversion_id))
        await db.flush()


async def claim_song(db: AsyncSession, row: ComposeForm, song_index: int) -> bool:
    """Take the generation claim for a song.

    Refused when the song already has task ids or another session holds
    the claim. Concurrent claims are decided by the unique constraint.
    """
    if row_to_record(row).task_ids.get(song_index):
        return False
    existing = await db.execute(
        select(GenerationClaim.id).where(
            GenerationClaim.form_id == row.id,
            GenerationClaim.song_index == song_index,
        )
    )
    if existing.scalar_one_or_none() is not None:
        return False

    db.add(GenerationClaim(form_id=row.id, song_index=song_index))
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        logger.info("[%s] Lost claim race for song %d", row.id[:8], song_index + 1)
        return False
    logger.info("✅ [%s] Claimed song %d", row.id[:8], song_index + 1)
    return True


async def reset_song(db: AsyncSession, row: ComposeForm, song_index: int) -> ComposeForm:
    """Retry reset: drop the song's task ids, results, selection and claim."""
    store_record(row, clear_song(row_to_record(row), song_index))
    await db.execute(
        delete(GenerationClaim).where(
            GenerationClaim.form_id == row.id,
            GenerationClaim.song_index == song_index,
        )
    )
    await db.flush()
    logger.info("[%s] Reset song %d", row.id[:8], song_index + 1)
    return row


async def purge_expired_forms(db: AsyncSession, now: Optional[datetime] = None) -> int:
    """Delete unpaid forms past ``expires_at`` with their claims and tasks.

    Paid orders are kept: their generations back the share links.
    """
    now = now or datetime.now(timezone.utc)
    result = await db.execute(
        select(ComposeForm.id).where(
            ComposeForm.expires_at < now,
            ComposeForm.status != "paid",
        )
    )
    expired = list(result.scalars().all())
    if not expired:
        return 0
    await db.execute(delete(GenerationClaim).where(GenerationClaim.form_id.in_(expired)))
    await db.execute(delete(MusicGeneration).where(MusicGeneration.form_id.in_(expired)))
    await db.execute(delete(ComposeForm).where(ComposeForm.id.in_(expired)))
    await db.flush()
    logger.info("Purged %d expired unpaid form(s)", len(expired))
    return len(expired)


# ---------------------------------------------------------------------------
# MusicGPT webhook
# ---------------------------------------------------------------------------


def _result_patch(song_index: int, variation_id: int, generation: MusicGeneration) -> OrderPatch:
    return OrderPatch(
        audio_urls={song_index: {variation_id: generation.audio_url}} if generation.audio_url else None,
        lyrics={song_index: {variation_id: generation.lyrics}} if generation.lyrics else None,
    )


def _apply_completion(generation: MusicGeneration, payload: MusicGPTWebhook) -> None:
    conversion: dict[str, Any] = payload.conversion or {}
    generation.audio_url = conversion.get("conversion_path_1") or payload.audio_url or generation.audio_url
    generation.audio_url_wav = conversion.get("conversion_path_wav_1") or generation.audio_url_wav
    duration = conversion.get("conversion_duration_1")
    if isinstance(duration, (int, float)):
        generation.duration = float(duration)
    generation.title = conversion.get("title_1") or payload.title or generation.title
    generation.lyrics = conversion.get("lyrics_1") or generation.lyrics
    if conversion.get("lyrics_timestamped_1"):
        generation.lyrics_timestamped = conversion["lyrics_timestamped_1"]
    if conversion.get("album_cover_path"):
        generation.album_cover_url = conversion["album_cover_path"]
    if conversion.get("conversion_id_1") and not generation.conversion_id:
        generation.conversion_id = conversion["conversion_id_1"]


def _apply_lyrics(generation: MusicGeneration, payload: MusicGPTWebhook) -> bool:
    """Store per-conversion lyrics; False when they belong to the other take."""
    if generation.conversion_id and generation.conversion_id != payload.conversion_id:
        logger.warning(
            "⚠️ Lyrics for conversion %s do not match task %s, ignoring",
            (payload.conversion_id or "")[:8], generation.task_id[:8],
        )
        return False
    if payload.lyrics_timestamped:
        generation.lyrics_timestamped = payload.lyrics_timestamped
    if payload.lyrics:
        generation.lyrics = payload.lyrics
    return True


async def apply_webhook(db: AsyncSession, payload: MusicGPTWebhook) -> MusicGeneration:
    """Record a MusicGPT callback and copy results into the order record."""
    assert payload.task_id is not None
    generation = await db.get(MusicGeneration, payload.task_id)
    if generation is None:
        logger.warning("⚠️ Webhook for unknown task %s, storing unattached", payload.task_id[:8])
        generation = MusicGeneration(task_id=payload.task_id)
        db.add(generation)

    if payload.subtype == "album_cover_generation":
        if payload.success and payload.image_path:
            generation.album_cover_url = payload.image_path
            logger.info("[webhook] Album cover for task %s", payload.task_id[:8])
        await db.flush()
        return generation

    if payload.conversion_id and (payload.lyrics or payload.lyrics_timestamped) and not payload.status:
        if not _apply_lyrics(generation, payload):
            await db.flush()
            return generation
    elif payload.status:
        generation.status = _WEBHOOK_STATUS.get(payload.status, payload.status.lower())
        if generation.status == "completed":
            _apply_completion(generation, payload)
            logger.info("✅ [webhook] Task %s completed", payload.task_id[:8])
        elif generation.status == "failed":
            logger.error("❌ [webhook] Task %s failed", payload.task_id[:8])

    await _copy_to_record(db, generation)
    await db.flush()
    return generation


async def _copy_to_record(db: AsyncSession, generation: MusicGeneration) -> None:
    if generation.form_id is None or generation.song_index is None or generation.variation_id is None:
        return
    if not (generation.audio_url or generation.lyrics):
        return
    row = await get_form(db, generation.form_id)
    if row is None:
        return
    record = row_to_record(row)
    # A retried song has new task ids; late results of the old ones are dropped.
    slot_task = record.task_ids.get(generation.song_index, {}).get(generation.variation_id)
    if slot_task != generation.task_id:
        return
    merged = merge_record(
        record, _result_patch(generation.song_index, generation.variation_id, generation)
    )
    store_record(row, merged)
