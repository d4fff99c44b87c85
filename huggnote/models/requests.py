"""Request models for the Huggnote API."""
from __future__ import annotations

from typing import Optional

from pydantic import Field

from huggnote.models.base import CamelModel
from huggnote.models.forms import GeneratedPrompt, OrderForm, SongSpec


class SongPromptRequest(SongSpec):
    """Body of ``POST /create-song-prompt``: one song plus sender fields."""

    sender_name: Optional[str] = None
    sender_email: Optional[str] = None
    sender_phone: Optional[str] = None


class GenerateRequest(CamelModel):
    """Body of ``POST /generate`` (one variation request)."""

    prompt: str = Field(..., min_length=1, max_length=2_000)
    music_style: str = ""
    voice_hint: Optional[str] = None
    instrumental: bool = False


class CreateFormRequest(CamelModel):
    """Body of ``POST /compose/forms``."""

    form_id: str = Field(..., min_length=1, max_length=64)
    package_type: str
    song_count: int = Field(..., ge=1, le=5)
    form_data: OrderForm
    generated_prompts: dict[int, GeneratedPrompt]


class CheckoutRequest(CamelModel):
    """Body of ``POST /checkout``."""

    form_id: str = Field(..., min_length=1)
    selections: dict[int, int]
    task_ids: dict[int, str]
    package_id: Optional[str] = None
