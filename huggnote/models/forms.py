"""
Order form models.

An order (a "form" on the wire) is one customer's song commission: global
sender fields plus one ``SongSpec`` per recipient (up to five). Field names
are snake_case in Python and camelCase on the wire, matching the web app's
form payloads (``recipientName``, ``senderEmail``...).
"""
from __future__ import annotations

import random
import string
import time
from typing import Literal, Optional

from pydantic import EmailStr, Field

from huggnote.config import MAX_SONGS_PER_ORDER
from huggnote.models.base import CamelModel

DeliverySpeed = Literal["standard", "express"]


class SongSpec(CamelModel):
    """Recipient/occasion description for one song."""

    recipient_name: str = Field(..., min_length=1, description="Recipient's name")
    recipient_nickname: Optional[str] = None
    relationship: str = Field(..., min_length=1)
    pronunciation: Optional[str] = None
    sender_message: str = Field(..., min_length=1, description="Short personal message")
    theme: str = Field(..., min_length=1)
    about_them: str = Field(..., min_length=10, description="What makes them special")
    more_info: Optional[str] = None
    voice_type: Optional[str] = None
    genre_style: Optional[str] = None
    instrument_preferences: Optional[str] = None
    vibe: str = Field(..., min_length=1)
    style: Optional[str] = None
    festive_sound_level: Optional[str] = None


class OrderForm(CamelModel):
    """The customer's submitted form: sender fields plus per-song specs."""

    sender_name: str = Field(..., min_length=1)
    sender_email: EmailStr
    sender_phone: str = Field(..., min_length=1)
    delivery_speed: DeliverySpeed = "standard"
    songs: list[SongSpec] = Field(..., min_length=1, max_length=MAX_SONGS_PER_ORDER)

    def prompt_inputs(self, song_index: int) -> dict:
        """Everything that determines the prompt for ``song_index``.

        Two submissions with equal inputs produce the same prompt, so the
        cached prompt is reused.
        """
        return {
            "song": self.songs[song_index].model_dump(mode="json"),
            "sender_name": self.sender_name,
            "sender_email": self.sender_email,
        }


class GeneratedPrompt(CamelModel):
    """Prompt-builder output for one song."""

    prompt: str
    music_style: str = ""


def new_form_id() -> str:
    """Client-generated order id: ``form_<epoch ms>_<9 base36 chars>``."""
    alphabet = string.ascii_lowercase + string.digits
    suffix = "".join(random.choices(alphabet, k=9))
    return f"form_{int(time.time() * 1000)}_{suffix}"
