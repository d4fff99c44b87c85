"""API route modules."""
from __future__ import annotations

from huggnote.api.routes import checkout, forms, generate, health, library, prompts, webhooks

__all__ = ["checkout", "forms", "generate", "health", "library", "prompts", "webhooks"]
