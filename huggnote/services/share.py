"""Share links for purchased songs (``/play/{slug}``)."""
from __future__ import annotations

import secrets

from huggnote.config import settings

SLUG_LENGTH = 10


def new_share_slug() -> str:
    """10-character URL-safe slug (A-Z, a-z, 0-9, ``-``, ``_``)."""
    return secrets.token_urlsafe(SLUG_LENGTH)[:SLUG_LENGTH]


def share_url(slug: str) -> str:
    return f"{settings.app_url.rstrip('/')}/play/{slug}"
