"""Form submission: order id, prompt generation with reuse, first save.

Prompts are the expensive, non-deterministic part of a submission, so a song
whose inputs are unchanged since the last submission of the same order keeps
its previous prompt. "Unchanged" is a full structural comparison of the song
spec plus the sender name and email (``OrderForm.prompt_inputs``).
"""
from __future__ import annotations

import logging
from typing import Any

from huggnote.compose.api_client import HuggnoteClient
from huggnote.compose.local_store import LocalStore
from huggnote.compose.mirror import PersistenceMirror
from huggnote.config import package_for_song_count
from huggnote.models.forms import GeneratedPrompt, OrderForm, new_form_id
from huggnote.models.records import OrderRecord

logger = logging.getLogger(__name__)


class PromptCache:
    """Per-order memory of the inputs each cached prompt was built from."""

    def __init__(self, local: LocalStore) -> None:
        self.local = local

    def lookup(
        self,
        form_id: str,
        song_index: int,
        inputs: dict[str, Any],
        previous: OrderRecord | None,
    ) -> GeneratedPrompt | None:
        if previous is None:
            return None
        cached = previous.generated_prompts.get(song_index)
        if cached is None:
            return None
        if self.local.prompt_inputs(form_id).get(song_index) != inputs:
            return None
        return cached

    def remember(self, form_id: str, inputs: dict[int, dict[str, Any]]) -> None:
        self.local.save_prompt_inputs(form_id, inputs)


async def build_prompts(
    form_id: str,
    form: OrderForm,
    api: HuggnoteClient,
    cache: PromptCache,
    previous: OrderRecord | None,
) -> dict[int, GeneratedPrompt]:
    """Return one prompt per song, calling the prompt builder only on change."""
    prompts: dict[int, GeneratedPrompt] = {}
    inputs: dict[int, dict[str, Any]] = {}
    for i in range(len(form.songs)):
        inputs[i] = form.prompt_inputs(i)
        cached = cache.lookup(form_id, i, inputs[i], previous)
        if cached is not None:
            logger.info("[%s] Using cached prompt for song %d", form_id[:8], i + 1)
            prompts[i] = cached
            continue
        logger.info("[%s] Composing prompt for song %d of %d", form_id[:8], i + 1, len(form.songs))
        prompts[i] = await api.create_song_prompt(form, i)
    cache.remember(form_id, inputs)
    return prompts


async def submit_form(
    form: OrderForm,
    mirror: PersistenceMirror,
    form_id: str | None = None,
) -> OrderRecord:
    """Submit (or resubmit) an order form.

    Reuses the session's current form id so "edit and come back" keeps the
    same order. Raises ``RecordServiceError`` if the server save fails, and
    ``PromptBuildError`` if a prompt cannot be produced.
    """
    local = mirror.local
    form_id = form_id or local.current_form_id() or new_form_id()
    previous = local.load(form_id)

    prompts = await build_prompts(form_id, form, mirror.api, PromptCache(local), previous)
    record = await mirror.create(
        form_id,
        package_for_song_count(len(form.songs)),
        form,
        prompts,
    )
    local.set_current_form_id(form_id)
    return record
