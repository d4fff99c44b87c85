"""
SQLAlchemy ORM models for Huggnote.

Tables:
- compose_forms: Order records (form inputs, prompts, task ids, results, picks)
- generation_claims: One row per (form, song) once generation has started
- music_generations: One row per MusicGPT task, mapping it back to its slot
- purchases: Completed Stripe Checkout sessions

Nested maps on ``compose_forms`` are stored as JSON with string keys (song
index, then variation id); ``huggnote.services.records`` converts them to and
from the typed ``OrderRecord``.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import (
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.types import JSON
from sqlalchemy.orm import Mapped, mapped_column

from huggnote.db.database import Base

# Unpaid forms are kept for a week.
FORM_TTL = timedelta(days=7)


def generate_uuid() -> str:
    """Generate a new UUID string."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(timezone.utc)


def form_expiry() -> datetime:
    return utc_now() + FORM_TTL


class ComposeForm(Base):
    """
    Persisted order record.

    ``id`` is the client-generated form id so the browser (or CLI) can keep
    addressing the same order across reloads before the server ever answers.
    """
    __tablename__ = "compose_forms"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    package_type: Mapped[str] = mapped_column(String(32), default="solo-serenade", nullable=False)
    song_count: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    status: Mapped[str] = mapped_column(String(32), default="prompts_generated", nullable=False)

    form_data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    generated_prompts: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    task_ids: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    audio_urls: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    lyrics: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    selections: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=form_expiry,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<ComposeForm {self.id} status={self.status} songs={self.song_count}>"


class GenerationClaim(Base):
    """
    Idempotency key: generation for (form, song) has been started.

    The unique constraint is the whole point: the second insert for the same
    song fails, so two sessions can never both request its variations.
    """
    __tablename__ = "generation_claims"
    __table_args__ = (
        UniqueConstraint("form_id", "song_index", name="uq_generation_claims_form_song"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    form_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("compose_forms.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    song_index: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )


class MusicGeneration(Base):
    """
    One MusicGPT task and its results.

    Created when a task id is first written to an order record (or by the
    webhook, if the result beats the client's save; the slot is attached
    later); filled in by the MusicGPT webhook; given a share slug when the
    order is paid.
    """
    __tablename__ = "music_generations"

    task_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    form_id: Mapped[str | None] = mapped_column(
        String(64),
        ForeignKey("compose_forms.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    song_index: Mapped[int | None] = mapped_column(Integer, nullable=True)
    variation_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    conversion_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    status: Mapped[str] = mapped_column(String(32), default="pending", nullable=False)

    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    audio_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    audio_url_wav: Mapped[str | None] = mapped_column(Text, nullable=True)
    lyrics: Mapped[str | None] = mapped_column(Text, nullable=True)
    lyrics_timestamped: Mapped[Any | None] = mapped_column(JSON, nullable=True)
    duration: Mapped[float | None] = mapped_column(Float, nullable=True)
    album_cover_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    share_slug: Mapped[str | None] = mapped_column(String(16), unique=True, nullable=True)
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    purchased_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<MusicGeneration {self.task_id[:8]} form={(self.form_id or '-')[:8]} "
            f"song={self.song_index} v{self.variation_id} {self.status}>"
        )


class Purchase(Base):
    """A completed Stripe Checkout session (one per session id)."""
    __tablename__ = "purchases"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    stripe_session_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    form_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    package_id: Mapped[str] = mapped_column(String(32), nullable=False)
    amount_total: Mapped[int | None] = mapped_column(Integer, nullable=True)
    currency: Mapped[str | None] = mapped_column(String(8), nullable=True)
    selections: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )
