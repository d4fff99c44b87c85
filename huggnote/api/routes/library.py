"""Purchased songs: public share playback and the user's library."""
from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from huggnote.auth.dependencies import require_user
from huggnote.db import ComposeForm, MusicGeneration, get_db
from huggnote.models.responses import LibrarySong, PlayResponse
from huggnote.services.share import share_url

router = APIRouter()


def _recipient(form: Optional[ComposeForm], song_index: Optional[int]) -> Optional[str]:
    if form is None or not form.form_data or song_index is None:
        return None
    songs = form.form_data.get("songs") or []
    if song_index >= len(songs):
        return None
    return songs[song_index].get("recipientName")


def _title(generation: MusicGeneration, recipient: Optional[str]) -> str:
    if generation.title:
        return generation.title
    return f"A song for {recipient}" if recipient else "Your Huggnote song"


@router.get("/play/{slug}")
async def play(slug: str, db: AsyncSession = Depends(get_db)) -> PlayResponse:
    """Public playback data for a share link (purchased songs only)."""
    result = await db.execute(
        select(MusicGeneration).where(MusicGeneration.share_slug == slug)
    )
    generation = result.scalar_one_or_none()
    if generation is None or not generation.audio_url:
        raise HTTPException(status_code=404, detail="Song not found")

    form = await db.get(ComposeForm, generation.form_id) if generation.form_id else None
    recipient = _recipient(form, generation.song_index)
    return PlayResponse(
        slug=slug,
        title=_title(generation, recipient),
        audio_url=generation.audio_url,
        audio_url_wav=generation.audio_url_wav,
        lyrics=generation.lyrics,
        lyrics_timestamped=generation.lyrics_timestamped,
        duration=round(generation.duration) if generation.duration is not None else None,
        album_cover_url=generation.album_cover_url,
        recipient_name=recipient,
        created_at=generation.created_at.isoformat(),
    )


@router.get("/history")
async def history(
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(require_user),
) -> dict[str, Any]:
    """The authenticated user's purchased songs, newest first."""
    result = await db.execute(
        select(MusicGeneration, ComposeForm)
        .outerjoin(ComposeForm, MusicGeneration.form_id == ComposeForm.id)
        .where(
            MusicGeneration.user_id == user_id,
            MusicGeneration.share_slug.is_not(None),
        )
        .order_by(MusicGeneration.purchased_at.desc())
    )
    songs = []
    for generation, form in result.all():
        recipient = _recipient(form, generation.song_index)
        songs.append(LibrarySong(
            form_id=generation.form_id or "",
            song_index=generation.song_index or 0,
            variation_id=generation.variation_id or 0,
            title=_title(generation, recipient),
            recipient_name=recipient,
            share_url=share_url(generation.share_slug or ""),
            audio_url=generation.audio_url,
            created_at=(generation.purchased_at or generation.created_at).isoformat(),
        ).model_dump(mode="json", by_alias=True))
    return {"history": songs}
