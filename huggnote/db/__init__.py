"""
Database module for Huggnote.

Provides async SQLAlchemy support with PostgreSQL and SQLite.
"""
from __future__ import annotations

from huggnote.db.database import (
    Base,
    get_db,
    init_db,
    close_db,
    session_scope,
)
from huggnote.db.models import ComposeForm, GenerationClaim, MusicGeneration, Purchase

__all__ = [
    "Base",
    "get_db",
    "init_db",
    "close_db",
    "session_scope",
    "ComposeForm",
    "GenerationClaim",
    "MusicGeneration",
    "Purchase",
]
