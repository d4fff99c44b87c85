"""Inbound webhook payloads."""
from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class MusicGPTWebhook(BaseModel):
    """MusicGPT callback body (snake_case on the wire).

    Three shapes share this model: task status/completion (``status`` plus
    ``conversion`` or top-level ``audio_url``), per-conversion lyrics
    (``conversion_id`` plus ``lyrics``/``lyrics_timestamped``, no status)
    and album covers (``subtype == "album_cover_generation"``).
    """

    model_config = ConfigDict(extra="allow")

    task_id: Optional[str] = None
    status: Optional[str] = None
    subtype: Optional[str] = None
    success: Optional[bool] = None
    audio_url: Optional[str] = None
    title: Optional[str] = None
    image_path: Optional[str] = None
    conversion: Optional[dict[str, Any]] = None
    conversion_id: Optional[str] = None
    lyrics: Optional[str] = None
    lyrics_timestamped: Optional[Any] = None
