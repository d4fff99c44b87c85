"""Song prompt builder.

Turns one song's form inputs into a short text prompt for MusicGPT using the
LLM, and derives the ``music_style`` from the style mapper. MusicGPT rejects
long prompts, so an over-long reply is sent back to the LLM to be shortened
(up to ``prompt_max_regenerations`` times, keeping only replies that really
are shorter) and finally hard-truncated.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from huggnote.config import settings
from huggnote.models.forms import SongSpec
from huggnote.services.llm_client import LLMClient
from huggnote.services.style_mapper import (
    instrumentation_hints,
    lyrical_guidance,
    music_style,
)

logger = logging.getLogger(__name__)

_ELLIPSIS = "..."


class PromptBuilderError(Exception):
    """The LLM returned no usable prompt."""


@dataclass
class PromptResult:
    prompt: str
    music_style: str
    regenerated: bool
    regeneration_attempts: int


def compose_instructions(song: SongSpec, max_chars: int) -> str:
    """The LLM instruction for a song's first prompt."""
    nickname = f' (nickname: "{song.recipient_nickname}")' if song.recipient_nickname else ""
    pronunciation = (
        f'\n- Pronounce the name as: "{song.pronunciation}"' if song.pronunciation else ""
    )
    more_info = f"\n- Additional details: {song.more_info}" if song.more_info else ""
    voice = f", {song.voice_type} voice" if song.voice_type else ""
    instruments = (
        f", featuring {song.instrument_preferences}" if song.instrument_preferences else ""
    )
    style_notes = ""
    if song.style or song.festive_sound_level:
        style_notes = (
            f"\n- Sound: {instrumentation_hints(song.style, song.festive_sound_level)}"
            f"\n- Lyrics: {lyrical_guidance(song.style)}"
        )

    return (
        "You are an expert song prompt engineer for AI music generation.\n"
        f"Create a concise, personalized prompt (max {max_chars} characters) for an AI "
        "music generator that will create a heartfelt, customized song.\n\n"
        "IMPORTANT: Include these specific details in the prompt:\n"
        f'- Recipient\'s name: "{song.recipient_name}"{nickname}{pronunciation}\n'
        f"- Relationship: {song.relationship}\n"
        f"- Theme: {song.theme}\n"
        f"- What makes them special: {song.about_them}{more_info}\n"
        f'- Sender\'s message: "{song.sender_message}"\n'
        f"- Musical style: {song.genre_style or 'versatile'}{voice}{instruments}\n"
        f"- Overall vibe: {song.vibe}{style_notes}\n\n"
        "Create a prompt that captures the personal connection, mentions the recipient "
        f"by name, references their qualities ({song.about_them}), and reflects the "
        f"{song.theme} theme with a {song.vibe} tone.\n\n"
        f"Output only the prompt string (max {max_chars} chars). Make it personal and "
        "specific to this relationship. Be concise."
    )


def shorten_instructions(prompt: str, max_chars: int) -> str:
    return (
        f"The following song prompt is {len(prompt)} characters, but it must be "
        f"MAXIMUM {max_chars} characters.\n\n"
        f'Original prompt:\n"{prompt}"\n\n'
        "Rewrite this prompt to be EXACTLY the same meaning but MUCH shorter "
        f"(max {max_chars} characters). Keep the recipient's name, relationship, theme, "
        "and key details. Remove unnecessary words. Be extremely concise.\n\n"
        f"Output ONLY the shortened prompt (max {max_chars} chars):"
    )


def _strip_quotes(text: str) -> str:
    text = text.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "\"'":
        return text[1:-1].strip()
    return text


async def build_song_prompt(song: SongSpec, llm: LLMClient) -> PromptResult:
    """Generate the MusicGPT prompt and music style for one song.

    Raises ``PromptBuilderError`` when the LLM answers with nothing usable;
    ``LLMError`` propagates for transport failures.
    """
    max_chars = settings.prompt_max_chars
    prompt = _strip_quotes(await llm.complete(compose_instructions(song, max_chars)))
    if not prompt:
        raise PromptBuilderError("LLM returned an empty prompt")
    logger.info("[prompt] Initial prompt for %s: %d chars", song.recipient_name, len(prompt))

    attempts = 0
    while len(prompt) > max_chars and attempts < settings.prompt_max_regenerations:
        attempts += 1
        logger.warning(
            "⚠️ [prompt] Too long (%d chars), shortening %d/%d",
            len(prompt), attempts, settings.prompt_max_regenerations,
        )
        shorter = _strip_quotes(await llm.complete(
            shorten_instructions(prompt, max_chars),
            temperature=0.5,
            max_tokens=120,
        ))
        if not shorter or len(shorter) >= len(prompt):
            logger.warning("⚠️ [prompt] Shortening did not help, keeping previous prompt")
            break
        prompt = shorter

    if len(prompt) > max_chars:
        prompt = prompt[: max_chars - len(_ELLIPSIS)] + _ELLIPSIS

    logger.info("✅ [prompt] Final prompt: %d chars", len(prompt))
    return PromptResult(
        prompt=prompt,
        music_style=music_style(song.style, song.festive_sound_level),
        regenerated=attempts > 0,
        regeneration_attempts=attempts,
    )
