"""
Order record endpoints.

The order record is the synchronisation point between a customer's sessions
(tabs, devices, reloads). Form ids are client-generated and unguessable, so
reading and patching a single form does not require a login; listing a
user's forms does.

All writes go through ``huggnote.services.records`` which applies the same
merge rules as the client mirror.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from huggnote.auth.dependencies import optional_user, require_user
from huggnote.config import MAX_SONGS_PER_ORDER
from huggnote.db import ComposeForm, get_db
from huggnote.models.records import OrderPatch
from huggnote.models.requests import CreateFormRequest
from huggnote.models.responses import ClaimResponse
from huggnote.services import records

router = APIRouter(prefix="/compose/forms")
logger = logging.getLogger(__name__)


def _form_payload(row: ComposeForm) -> dict[str, Any]:
    return records.row_to_record(row).model_dump(mode="json", by_alias=True)


async def _get_or_404(db: AsyncSession, form_id: str) -> ComposeForm:
    row = await records.get_form(db, form_id)
    if row is None:
        raise HTTPException(status_code=404, detail="Form not found")
    return row


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_form(
    body: CreateFormRequest,
    db: AsyncSession = Depends(get_db),
    user_id: Optional[str] = Depends(optional_user),
) -> dict[str, Any]:
    """Create an order record (a resubmission with the same id is merged)."""
    if len(body.form_data.songs) != body.song_count:
        raise HTTPException(
            status_code=400,
            detail=f"songCount is {body.song_count} but the form has {len(body.form_data.songs)} song(s)",
        )
    existing = await records.get_form(db, body.form_id)
    if existing is not None and existing.status == "paid":
        raise HTTPException(status_code=409, detail="Paid orders cannot be changed")
    row = await records.create_form(db, body, user_id)
    return {"form": _form_payload(row)}


@router.get("")
async def list_forms(
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(require_user),
) -> dict[str, Any]:
    """The authenticated user's order records, newest first."""
    rows = await records.list_forms(db, user_id)
    return {"forms": [_form_payload(row) for row in rows]}


@router.get("/{form_id}")
async def get_form(form_id: str, db: AsyncSession = Depends(get_db)) -> dict[str, Any]:
    row = await _get_or_404(db, form_id)
    return {"form": _form_payload(row)}


@router.patch("/{form_id}")
async def patch_form(
    form_id: str,
    patch: OrderPatch,
    db: AsyncSession = Depends(get_db),
    user_id: Optional[str] = Depends(optional_user),
) -> dict[str, Any]:
    """Merge a partial update into the record and return the merged result."""
    row = await _get_or_404(db, form_id)
    if row.status == "paid":
        raise HTTPException(status_code=409, detail="Paid orders cannot be changed")
    row = await records.patch_form(db, row, patch, user_id)
    return {"form": _form_payload(row)}


@router.post("/{form_id}/songs/{song_index}/claim")
async def claim_song(
    form_id: str,
    song_index: int = Path(..., ge=0, lt=MAX_SONGS_PER_ORDER),
    db: AsyncSession = Depends(get_db),
) -> ClaimResponse:
    """
    Take the generation claim for one song.

    200 means the caller may request the song's variations; 409 means another
    session already did (or is doing) so and the caller should only watch.
    """
    row = await _get_or_404(db, form_id)
    if song_index >= row.song_count:
        raise HTTPException(status_code=400, detail="Song index out of range")
    if not await records.claim_song(db, row, song_index):
        raise HTTPException(status_code=409, detail="Generation already started for this song")
    return ClaimResponse(claimed=True, form_id=form_id, song_index=song_index)


@router.delete("/{form_id}/songs/{song_index}")
async def reset_song(
    form_id: str,
    song_index: int = Path(..., ge=0, lt=MAX_SONGS_PER_ORDER),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Retry reset: clear the song's task ids, results, selection and claim."""
    row = await _get_or_404(db, form_id)
    if song_index >= row.song_count:
        raise HTTPException(status_code=400, detail="Song index out of range")
    if row.status == "paid":
        raise HTTPException(status_code=409, detail="Paid orders cannot be regenerated")
    row = await records.reset_song(db, row, song_index)
    return {"form": _form_payload(row)}
