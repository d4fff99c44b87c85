"""MusicGPT webhook receiver."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from huggnote.db import get_db
from huggnote.models.webhooks import MusicGPTWebhook
from huggnote.services.records import apply_webhook

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/webhooks/musicgpt")
async def musicgpt_webhook(
    payload: MusicGPTWebhook,
    db: AsyncSession = Depends(get_db),
) -> dict[str, bool]:
    """
    Receive a MusicGPT callback.

    MusicGPT sends several callbacks per task (status updates, the finished
    audio, per-conversion lyrics, the album cover). Each is stored on the
    task and, when the task belongs to an order slot, copied into the
    order record where the client watchers pick it up.
    """
    if not payload.task_id:
        raise HTTPException(status_code=400, detail="Missing task_id")
    await apply_webhook(db, payload)
    return {"success": True}
