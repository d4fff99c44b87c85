"""Song prompt endpoint: one song's form inputs in, MusicGPT prompt out."""
from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from huggnote.config import settings
from huggnote.models.requests import SongPromptRequest
from huggnote.models.responses import SongPromptResponse
from huggnote.services.llm_client import LLMError, get_llm_client
from huggnote.services.prompt_builder import PromptBuilderError, build_song_prompt

router = APIRouter()
logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address)


@router.post("/create-song-prompt")
@limiter.limit(settings.prompt_rate_limit)
async def create_song_prompt(
    request: Request,
    body: SongPromptRequest,
) -> SongPromptResponse:
    """Build the generation prompt and music style for a single song."""
    llm = get_llm_client()
    if not llm.configured:
        raise HTTPException(status_code=500, detail="LLM API key not configured")

    try:
        result = await build_song_prompt(body, llm)
    except (LLMError, PromptBuilderError) as e:
        logger.error("❌ Prompt generation failed for %s: %s", body.recipient_name, e)
        raise HTTPException(status_code=502, detail=f"Failed to generate song prompt: {e}")

    return SongPromptResponse(
        success=True,
        prompt=result.prompt,
        music_style=result.music_style,
        regenerated=result.regenerated,
        regeneration_attempts=result.regeneration_attempts,
    )
