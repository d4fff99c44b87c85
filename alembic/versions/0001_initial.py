"""Initial schema: order records, generation claims, MusicGPT tasks, purchases.

Revision ID: 0001
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates:
  - compose_forms (order records, nested maps as JSON)
  - generation_claims (one per form/song; unique pair)
  - music_generations (one per MusicGPT task; share slug once purchased)
  - purchases (one per Stripe Checkout session)

Fresh install:
  alembic upgrade head
"""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "compose_forms",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=True),
        sa.Column("package_type", sa.String(32), nullable=False, server_default="solo-serenade"),
        sa.Column("song_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("status", sa.String(32), nullable=False, server_default="prompts_generated"),
        sa.Column("form_data", sa.JSON(), nullable=True),
        sa.Column("generated_prompts", sa.JSON(), nullable=False),
        sa.Column("task_ids", sa.JSON(), nullable=False),
        sa.Column("audio_urls", sa.JSON(), nullable=False),
        sa.Column("lyrics", sa.JSON(), nullable=False),
        sa.Column("selections", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_compose_forms_user_id", "compose_forms", ["user_id"])

    op.create_table(
        "generation_claims",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("form_id", sa.String(64), nullable=False),
        sa.Column("song_index", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["form_id"], ["compose_forms.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("form_id", "song_index", name="uq_generation_claims_form_song"),
    )
    op.create_index("ix_generation_claims_form_id", "generation_claims", ["form_id"])

    op.create_table(
        "music_generations",
        sa.Column("task_id", sa.String(128), nullable=False),
        sa.Column("form_id", sa.String(64), nullable=True),
        sa.Column("song_index", sa.Integer(), nullable=True),
        sa.Column("variation_id", sa.Integer(), nullable=True),
        sa.Column("conversion_id", sa.String(128), nullable=True),
        sa.Column("status", sa.String(32), nullable=False, server_default="pending"),
        sa.Column("title", sa.String(255), nullable=True),
        sa.Column("audio_url", sa.Text(), nullable=True),
        sa.Column("audio_url_wav", sa.Text(), nullable=True),
        sa.Column("lyrics", sa.Text(), nullable=True),
        sa.Column("lyrics_timestamped", sa.JSON(), nullable=True),
        sa.Column("duration", sa.Float(), nullable=True),
        sa.Column("album_cover_url", sa.Text(), nullable=True),
        sa.Column("share_slug", sa.String(16), nullable=True),
        sa.Column("user_id", sa.String(64), nullable=True),
        sa.Column("purchased_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["form_id"], ["compose_forms.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("task_id"),
        sa.UniqueConstraint("share_slug"),
    )
    op.create_index("ix_music_generations_form_id", "music_generations", ["form_id"])
    op.create_index("ix_music_generations_user_id", "music_generations", ["user_id"])

    op.create_table(
        "purchases",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("stripe_session_id", sa.String(255), nullable=False),
        sa.Column("form_id", sa.String(64), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=True),
        sa.Column("package_id", sa.String(32), nullable=False),
        sa.Column("amount_total", sa.Integer(), nullable=True),
        sa.Column("currency", sa.String(8), nullable=True),
        sa.Column("selections", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("stripe_session_id"),
    )
    op.create_index("ix_purchases_form_id", "purchases", ["form_id"])
    op.create_index("ix_purchases_user_id", "purchases", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_purchases_user_id", table_name="purchases")
    op.drop_index("ix_purchases_form_id", table_name="purchases")
    op.drop_table("purchases")

    op.drop_index("ix_music_generations_user_id", table_name="music_generations")
    op.drop_index("ix_music_generations_form_id", table_name="music_generations")
    op.drop_table("music_generations")

    op.drop_index("ix_generation_claims_form_id", table_name="generation_claims")
    op.drop_table("generation_claims")

    op.drop_index("ix_compose_forms_user_id", table_name="compose_forms")
    op.drop_table("compose_forms")
