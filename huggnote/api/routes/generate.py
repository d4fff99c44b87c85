"""Generation endpoint: submit one variation to MusicGPT."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession

from huggnote.config import settings
from huggnote.db import get_db
from huggnote.models.requests import GenerateRequest
from huggnote.models.responses import GenerateResponse
from huggnote.services.musicgpt import MusicGPTError, get_musicgpt_client
from huggnote.services.records import register_task

router = APIRouter()
logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address)


@router.post("/generate")
@limiter.limit(settings.generate_rate_limit)
async def generate(
    request: Request,
    body: GenerateRequest,
    db: AsyncSession = Depends(get_db),
) -> GenerateResponse:
    """
    Start one MusicGPT task and return its task id.

    The task is registered immediately so a webhook that arrives before the
    client saves the task id into its order can still be matched later.
    A MusicGPT 429 is passed through unchanged; the caller paces and retries.
    """
    try:
        task = await get_musicgpt_client().submit(
            prompt=body.prompt,
            music_style=body.music_style,
            voice_hint=body.voice_hint,
            instrumental=body.instrumental,
        )
    except MusicGPTError as e:
        status = e.status_code if e.status_code in (429, 500) else 502
        raise HTTPException(status_code=status, detail=str(e))

    await register_task(db, task.task_id, task.conversion_id)
    return GenerateResponse(task_id=task.task_id, eta=task.eta)
