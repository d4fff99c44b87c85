"""Stripe Checkout endpoints."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from huggnote.auth.dependencies import require_user
from huggnote.db import get_db
from huggnote.models.requests import CheckoutRequest
from huggnote.models.responses import CheckoutResponse
from huggnote.services import payments
from huggnote.services.records import get_form

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/checkout")
async def create_checkout(
    body: CheckoutRequest,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(require_user),
) -> CheckoutResponse:
    """Start payment for an order whose songs all have a selected variation."""
    form = await get_form(db, body.form_id)
    if form is None:
        raise HTTPException(status_code=404, detail="Form not found")
    if form.status == "paid":
        raise HTTPException(status_code=409, detail="Order already paid")
    if form.user_id and form.user_id != user_id:
        raise HTTPException(status_code=403, detail="Form belongs to another user")

    try:
        url, session_id = await payments.create_checkout_session(
            form,
            selections=body.selections,
            task_ids=body.task_ids,
            user_id=user_id,
            package_id=body.package_id,
        )
    except payments.PaymentError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return CheckoutResponse(url=url, session_id=session_id)


@router.post("/stripe/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(default=None, alias="stripe-signature"),
    db: AsyncSession = Depends(get_db),
) -> dict[str, bool]:
    """Handle Stripe events; only ``checkout.session.completed`` has an effect."""
    payload = await request.body()
    try:
        event = payments.construct_event(payload, stripe_signature)
    except payments.PaymentError as e:
        logger.warning("⚠️ [stripe] Rejected webhook: %s", e)
        raise HTTPException(status_code=e.status_code, detail=str(e))

    if event["type"] == "checkout.session.completed":
        session = event["data"]["object"]
        try:
            await payments.complete_checkout(db, session)
        except payments.PaymentError as e:
            raise HTTPException(status_code=e.status_code, detail=str(e))
    else:
        logger.debug("[stripe] Ignoring event %s", event["type"])

    return {"received": True}
