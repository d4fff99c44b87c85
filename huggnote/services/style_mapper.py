"""
Music style mapping.

Turns the form's ``style`` and ``festive_sound_level`` choices into the
MusicGPT ``music_style`` string plus instrumentation, tempo and mood hints
for the prompt builder.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

_STYLE_BASES: dict[str, str] = {
    "soft-heartfelt": "intimate acoustic ballad",
    "warm-cosy": "cozy folk",
    "bright-uplifting": "upbeat festive pop",
    "classic-timeless": "traditional Christmas carol",
    "romantic-heartfelt": "romantic piano ballad",
    "orchestral-festive": "grand orchestral Christmas",
}
_DEFAULT_STYLE_BASE = "Christmas song"

_FESTIVE_ELEMENTS: dict[str, str] = {
    "festive": "sleigh bells, choir, full orchestra",
    "lightly-festive": "light bells, strings, acoustic piano",
    "non-festive": "",
}
_DEFAULT_FESTIVE_ELEMENTS = "light bells, strings"

# (instrumentation, tempo, mood)
_STYLE_DETAILS: dict[str, tuple[str, str, str]] = {
    "soft-heartfelt": (
        "acoustic guitar, piano, soft strings",
        "Slow to moderate",
        "Gentle, intimate, warm, soothing, tender, expressive",
    ),
    "warm-cosy": (
        "acoustic guitar, piano, light percussion",
        "Moderate",
        "Cozy, homey, snuggly, relaxing, gentle but joyful, familiar",
    ),
    "bright-uplifting": (
        "light percussion, bells, strings",
        "Upbeat",
        "Joyful, celebratory, optimistic, feel-good, energetic",
    ),
    "classic-timeless": (
        "strings, brass, choir",
        "Slow to moderate",
        "Elegant, majestic, reverent, traditional, timeless",
    ),
    "romantic-heartfelt": (
        "soft piano, strings, guitar",
        "Slow to moderate",
        "Intimate, heartfelt, romantic, tender, sincere, personal",
    ),
    "orchestral-festive": (
        "strings, brass, timpani, choir, piano",
        "Slow to moderate with powerful crescendos",
        "Majestic, elegant, celebratory, grand, formal",
    ),
}

_LYRICAL_GUIDANCE: dict[str, str] = {
    "soft-heartfelt": (
        "Focus on intimate, heartfelt lyrics with minimal use of literal festive "
        "references. Emphasize warmth and tenderness."
    ),
    "warm-cosy": (
        "Create lyrics with a homely, familiar feeling. Include cozy imagery like "
        "fireside moments and family gatherings."
    ),
    "bright-uplifting": (
        "Write upbeat, playful lyrics with feel-good energy. Keep the tone "
        "celebratory and optimistic."
    ),
    "classic-timeless": (
        "Craft elegant, reverent lyrics inspired by classic Christmas carols. "
        "Use poetic, timeless language."
    ),
    "romantic-heartfelt": (
        "Write deeply emotional, romantic lyrics that feel personal and sincere. "
        "Focus on love and togetherness."
    ),
    "orchestral-festive": (
        "Create majestic, grand lyrics suitable for a formal celebration. "
        "Use rich, elegant language."
    ),
}
_DEFAULT_LYRICAL_GUIDANCE = (
    "Create heartfelt, personalized lyrics that feel authentic and meaningful."
)


@dataclass(frozen=True)
class StyleMapping:
    music_style: str
    instrumentation: str
    tempo: str
    mood: str


def music_style(style: Optional[str], festive_sound_level: Optional[str]) -> str:
    """MusicGPT ``music_style``: style base, plus festive elements if any."""
    base = _STYLE_BASES.get(style or "", _DEFAULT_STYLE_BASE)
    festive = _FESTIVE_ELEMENTS.get(festive_sound_level or "", _DEFAULT_FESTIVE_ELEMENTS)
    if festive:
        return f"{base} with {festive}"
    return base


def style_mapping(style: Optional[str], festive_sound_level: Optional[str]) -> StyleMapping:
    instrumentation, tempo, mood = _STYLE_DETAILS.get(
        style or "", _STYLE_DETAILS["soft-heartfelt"]
    )
    if festive_sound_level == "festive":
        instrumentation += ", sleigh bells, choir elements"
    elif festive_sound_level == "lightly-festive":
        instrumentation += ", subtle bells"
    return StyleMapping(
        music_style=music_style(style, festive_sound_level or "lightly-festive"),
        instrumentation=instrumentation,
        tempo=tempo,
        mood=mood,
    )


def instrumentation_hints(style: Optional[str], festive_sound_level: Optional[str]) -> str:
    mapping = style_mapping(style, festive_sound_level)
    return f"{mapping.instrumentation}. {mapping.tempo} tempo. {mapping.mood} mood."


def lyrical_guidance(style: Optional[str]) -> str:
    return _LYRICAL_GUIDANCE.get(style or "", _DEFAULT_LYRICAL_GUIDANCE)
