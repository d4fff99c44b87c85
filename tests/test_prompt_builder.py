"""Tests for the song prompt builder (LLM mocked)."""
from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from huggnote.models.forms import SongSpec
from huggnote.services.prompt_builder import (
    PromptBuilderError,
    build_song_prompt,
    compose_instructions,
)


@pytest.fixture
def song(make_form_payload) -> SongSpec:
    return SongSpec.model_validate(make_form_payload(1)["songs"][0])


def _llm(*replies: str) -> MagicMock:
    llm = MagicMock()
    llm.complete = AsyncMock(side_effect=list(replies))
    return llm


def test_instructions_include_personal_details(song):
    text = compose_instructions(song, 250)
    assert '"Anna"' in text
    assert "sister" in text
    assert "max 250 characters" in text
    assert "Sound:" in text


async def test_short_prompt_is_used_as_is(song):
    result = await build_song_prompt(song, _llm('"A festive pop song for Anna"'))
    assert result.prompt == "A festive pop song for Anna"
    assert result.music_style == "upbeat festive pop with sleigh bells, choir, full orchestra"
    assert not result.regenerated
    assert result.regeneration_attempts == 0


async def test_long_prompt_is_shortened(song):
    llm = _llm("x" * 400, "y" * 200)
    result = await build_song_prompt(song, llm)
    assert result.prompt == "y" * 200
    assert result.regenerated
    assert result.regeneration_attempts == 1
    shorten_call = llm.complete.await_args_list[1]
    assert shorten_call.kwargs["temperature"] == 0.5
    assert shorten_call.kwargs["max_tokens"] == 120


async def test_shortening_that_does_not_help_falls_back_to_truncation(song):
    llm = _llm("x" * 400, "z" * 500)
    result = await build_song_prompt(song, llm)
    assert len(result.prompt) == 250
    assert result.prompt.endswith("...")
    assert llm.complete.await_count == 2


async def test_shortening_is_bounded(song):
    llm = _llm("a" * 400, "b" * 350, "c" * 300)
    result = await build_song_prompt(song, llm)
    assert result.regeneration_attempts == 2
    assert result.prompt == "c" * 247 + "..."


async def test_empty_reply_raises(song):
    with pytest.raises(PromptBuilderError):
        await build_song_prompt(song, _llm('""'))
