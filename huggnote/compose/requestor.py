"""Generation Requestor: three paced variation requests per song.

Each request returns a task id (or ``None`` after a failed retry) and the
result is written through the Persistence Mirror before the next request is
issued, so a crash between requests never loses a task id and a reload never
requests an already-requested slot again.
"""
from __future__ import annotations

import logging
from typing import Optional

from huggnote.compose.api_client import HuggnoteClient
from huggnote.compose.clock import Clock, SystemClock
from huggnote.compose.errors import GenerationRequestError, RateLimitedError
from huggnote.compose.mirror import PersistenceMirror
from huggnote.config import settings
from huggnote.models.records import VARIATION_IDS, VARIATION_STYLES, OrderPatch

logger = logging.getLogger(__name__)

_ELLIPSIS = "..."

# Two attempts total: the first call and one retry after the backoff.
_MAX_ATTEMPTS = 2


def truncate_prompt(prompt: str, max_chars: int) -> str:
    """Cut ``prompt`` to ``max_chars`` including a trailing ellipsis."""
    if len(prompt) <= max_chars:
        return prompt
    return prompt[: max_chars - len(_ELLIPSIS)] + _ELLIPSIS


def variation_style(music_style: str, variation_id: int) -> str:
    """Append the variation's flavour to the song's base music style."""
    _, flavour = VARIATION_STYLES[variation_id]
    if not music_style:
        return flavour
    return f"{music_style}, {flavour}"


class GenerationRequestor:
    """Issues variation requests and persists each task id as it arrives."""

    def __init__(
        self,
        api: HuggnoteClient,
        mirror: PersistenceMirror,
        clock: Clock | None = None,
        pacing_seconds: float | None = None,
        backoff_seconds: float | None = None,
        max_prompt_chars: int | None = None,
    ) -> None:
        self.api = api
        self.mirror = mirror
        self.clock = clock or SystemClock()
        self.pacing_seconds = (
            settings.request_pacing_seconds if pacing_seconds is None else pacing_seconds
        )
        self.backoff_seconds = (
            settings.request_retry_backoff_seconds if backoff_seconds is None else backoff_seconds
        )
        self.max_prompt_chars = max_prompt_chars or settings.max_prompt_chars

    async def request_variation(
        self,
        prompt: str,
        style_hint: str,
        voice_hint: str | None = None,
    ) -> Optional[str]:
        """Request one variation. Returns the task id, or None after two failures."""
        prompt = truncate_prompt(prompt, self.max_prompt_chars)
        for attempt in range(1, _MAX_ATTEMPTS + 1):
            try:
                return await self.api.generate(prompt, style_hint, voice_hint)
            except RateLimitedError:
                logger.warning("⚠️ Rate limited (attempt %d/%d)", attempt, _MAX_ATTEMPTS)
            except GenerationRequestError as exc:
                logger.warning(
                    "⚠️ Generation request failed (attempt %d/%d): %s",
                    attempt, _MAX_ATTEMPTS, exc,
                )
            if attempt < _MAX_ATTEMPTS:
                await self.clock.sleep(self.backoff_seconds)
        logger.error("❌ Giving up on variation request after %d attempts", _MAX_ATTEMPTS)
        return None

    async def request_batch(
        self,
        form_id: str,
        song_index: int,
        prompt: str,
        music_style: str,
        voice_hint: str | None = None,
    ) -> dict[int, Optional[str]]:
        """Request every not-yet-requested variation of one song, in order.

        Returns the song's full slot map after the batch. Slots already
        present in the local record (task id or failure marker) are skipped.
        """
        existing = self.mirror.load_local(form_id)
        slots = existing.song_task_ids(song_index) if existing is not None else {}
        pending = [vid for vid in VARIATION_IDS if vid not in slots]
        if not pending:
            logger.info("[%s] Song %d already fully requested", form_id[:8], song_index + 1)
            return slots

        for n, vid in enumerate(pending):
            task_id = await self.request_variation(
                prompt, variation_style(music_style, vid), voice_hint
            )
            if task_id:
                logger.info(
                    "✅ [%s] Song %d variation %d → task %s",
                    form_id[:8], song_index + 1, vid, task_id[:8],
                )
            else:
                logger.error(
                    "❌ [%s] Song %d variation %d failed", form_id[:8], song_index + 1, vid
                )
            slots[vid] = task_id
            await self.mirror.save(
                form_id, OrderPatch(task_ids={song_index: {vid: task_id}})
            )
            if n < len(pending) - 1:
                await self.clock.sleep(self.pacing_seconds)
        return slots
