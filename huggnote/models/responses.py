"""Response models for the Huggnote API."""
from __future__ import annotations

from typing import Any, Optional

from huggnote.models.base import CamelModel


class SongPromptResponse(CamelModel):
    success: bool
    prompt: str
    music_style: str
    regenerated: bool = False
    regeneration_attempts: int = 0


class GenerateResponse(CamelModel):
    task_id: str
    eta: Optional[int] = None


class ClaimResponse(CamelModel):
    claimed: bool
    form_id: str
    song_index: int


class CheckoutResponse(CamelModel):
    url: str
    session_id: str


class PlayResponse(CamelModel):
    """Public playback data behind a share link."""

    slug: str
    title: str
    audio_url: str
    audio_url_wav: Optional[str] = None
    lyrics: Optional[str] = None
    lyrics_timestamped: Optional[Any] = None
    duration: Optional[int] = None
    album_cover_url: Optional[str] = None
    recipient_name: Optional[str] = None
    created_at: str


class LibrarySong(CamelModel):
    """One purchased song in the user's library."""

    form_id: str
    song_index: int
    variation_id: int
    title: str
    recipient_name: Optional[str] = None
    share_url: str
    audio_url: Optional[str] = None
    created_at: str
