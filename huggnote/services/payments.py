"""Stripe Checkout integration.

``create_checkout_session`` turns an order's selections into a one-off
payment session; ``complete_checkout`` handles ``checkout.session.completed``
(idempotent per Stripe session id): the order becomes ``paid``, a purchase is
recorded and every selected take gets its share slug.

The ``stripe`` library is synchronous, so calls run in a worker thread.
"""
from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

import stripe
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from huggnote.config import PACKAGES, settings
from huggnote.db.models import ComposeForm, MusicGeneration, Purchase
from huggnote.models.records import OrderPatch, merge_record
from huggnote.services.records import row_to_record, store_record
from huggnote.services.share import new_share_slug

logger = logging.getLogger(__name__)


class PaymentError(Exception):
    """Checkout could not be created or a webhook could not be verified."""

    def __init__(self, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.status_code = status_code


def _validate_order(
    form: ComposeForm,
    selections: dict[int, int],
    task_ids: dict[int, str],
    package_id: Optional[str],
) -> str:
    """Check the selections against the stored record; return the package id."""
    record = row_to_record(form)
    missing = [i for i in range(record.song_count) if i not in selections]
    if missing:
        songs = ", ".join(str(i + 1) for i in missing)
        raise PaymentError(f"Please select a variation for every song (missing: song {songs}).")

    for song, vid in selections.items():
        stored = record.task_ids.get(song, {}).get(vid)
        if not stored:
            raise PaymentError(f"Song {song + 1} variation {vid} has not been generated.")
        if task_ids.get(song) and task_ids[song] != stored:
            raise PaymentError(f"Task id for song {song + 1} does not match the order.")

    package = package_id or record.package_type
    spec = PACKAGES.get(package)
    if spec is None:
        raise PaymentError(f"Unknown package: {package}")
    if not spec["min_songs"] <= record.song_count <= spec["max_songs"]:
        raise PaymentError(
            f"Package {package} covers {spec['min_songs']}-{spec['max_songs']} songs, "
            f"order has {record.song_count}."
        )
    return package


async def create_checkout_session(
    form: ComposeForm,
    selections: dict[int, int],
    task_ids: dict[int, str],
    user_id: str,
    package_id: Optional[str] = None,
) -> tuple[str, str]:
    """Create a Stripe Checkout session. Returns ``(url, session_id)``."""
    if not settings.stripe_secret_key:
        raise PaymentError("Stripe is not configured on the server.", status_code=500)

    package = _validate_order(form, selections, task_ids, package_id)
    spec = PACKAGES[package]
    record = row_to_record(form)
    customer_email = record.form_data.sender_email if record.form_data else None
    app_url = settings.app_url.rstrip("/")

    params: dict[str, Any] = {
        "mode": "payment",
        "line_items": [{
            "price_data": {
                "currency": settings.stripe_currency,
                "product_data": {
                    "name": spec["name"],
                    "description": spec["description"],
                },
                "unit_amount": spec["unit_amount"],
            },
            "quantity": 1,
        }],
        "success_url": f"{app_url}/success?session_id={{CHECKOUT_SESSION_ID}}",
        "cancel_url": f"{app_url}/create?canceled=true",
        "client_reference_id": user_id,
        "metadata": {
            "formId": form.id,
            "userId": user_id,
            "packageId": package,
            "selections": json.dumps({str(k): v for k, v in selections.items()}),
        },
        "api_key": settings.stripe_secret_key,
    }
    if customer_email:
        params["customer_email"] = customer_email

    try:
        session = await asyncio.to_thread(stripe.checkout.Session.create, **params)
    except stripe.StripeError as exc:
        logger.error("❌ [%s] Stripe checkout failed: %s", form.id[:8], exc)
        raise PaymentError("Failed to create checkout session", status_code=502) from exc

    logger.info("✅ [%s] Checkout session %s created (%s)", form.id[:8], session.id[:12], package)
    return session.url, session.id


def construct_event(payload: bytes, signature: Optional[str]) -> Any:
    """Verify a Stripe webhook and return the event. Raises ``PaymentError``."""
    if not settings.stripe_webhook_secret:
        raise PaymentError("Webhook secret not configured", status_code=500)
    if not signature:
        raise PaymentError("No signature header")
    try:
        return stripe.Webhook.construct_event(
            payload=payload,
            sig_header=signature,
            secret=settings.stripe_webhook_secret,
        )
    except ValueError as exc:
        raise PaymentError("Invalid payload") from exc
    except stripe.SignatureVerificationError as exc:
        raise PaymentError(f"Webhook Error: {exc}") from exc


async def complete_checkout(db: AsyncSession, session: dict[str, Any]) -> Optional[Purchase]:
    """Record a paid session. Returns None when it was already processed."""
    session_id = session["id"]
    existing = await db.execute(
        select(Purchase.id).where(Purchase.stripe_session_id == session_id)
    )
    if existing.scalar_one_or_none() is not None:
        logger.info("[stripe] Session %s already processed", session_id[:12])
        return None

    metadata = session.get("metadata") or {}
    form_id = metadata.get("formId")
    if not form_id:
        raise PaymentError("Missing metadata in Stripe session")
    selections = {int(k): int(v) for k, v in json.loads(metadata.get("selections") or "{}").items()}
    user_id = metadata.get("userId")

    purchase = Purchase(
        stripe_session_id=session_id,
        form_id=form_id,
        user_id=user_id,
        package_id=metadata.get("packageId") or "solo-serenade",
        amount_total=session.get("amount_total"),
        currency=session.get("currency"),
        selections={str(k): v for k, v in selections.items()},
    )
    db.add(purchase)

    form = await db.get(ComposeForm, form_id)
    if form is None:
        logger.error("❌ [stripe] Paid session %s for unknown form %s", session_id[:12], form_id[:8])
        await db.flush()
        return purchase

    record = merge_record(row_to_record(form), OrderPatch(selections=selections, status="paid"))
    store_record(form, record)

    now = datetime.now(timezone.utc)
    for song, vid in sorted(selections.items()):
        task_id = record.task_ids.get(song, {}).get(vid)
        if not task_id:
            logger.warning("⚠️ [%s] No task for paid song %d v%d", form_id[:8], song + 1, vid)
            continue
        generation = await db.get(MusicGeneration, task_id)
        if generation is None:
            generation = MusicGeneration(
                task_id=task_id, form_id=form_id, song_index=song, variation_id=vid
            )
            db.add(generation)
        if not generation.share_slug:
            generation.share_slug = new_share_slug()
        generation.user_id = user_id
        generation.purchased_at = now

    await db.flush()
    logger.info("✅ [%s] Order paid (session %s)", form_id[:8], session_id[:12])
    return purchase
