"""Huggnote: personalised AI songs, composed to order."""
from __future__ import annotations
