"""Persistence Mirror: one order record kept locally and on the server.

The local copy (``LocalStore``) is written first on every save so progress
survives a crash or a lost connection; the server copy is then patched with
the same partial update. The server is the synchronisation point between
sessions, so reads prefer it and fold any local-only data back in.

Remote write failures are retried once and then logged: the flow carries on
with local state. The next successful save or load pushes whatever the
server is still missing.
"""
from __future__ import annotations

import logging

from huggnote.compose.api_client import HuggnoteClient
from huggnote.compose.errors import RecordServiceError
from huggnote.compose.local_store import LocalStore
from huggnote.models.forms import GeneratedPrompt, OrderForm
from huggnote.models.records import (
    OrderPatch,
    OrderRecord,
    clear_song,
    merge_record,
    missing_on_remote,
    reconcile,
)

logger = logging.getLogger(__name__)

# One synchronous retry before degrading to local-only persistence.
_REMOTE_SAVE_ATTEMPTS = 2


class PersistenceMirror:
    """Dual local/server storage for in-progress orders."""

    def __init__(self, api: HuggnoteClient, local: LocalStore) -> None:
        self.api = api
        self.local = local

    async def load(self, form_id: str) -> OrderRecord | None:
        """Return the reconciled record, or ``None`` if neither side has it."""
        local = self.local.load(form_id)
        try:
            remote = await self.api.get_form(form_id)
        except RecordServiceError as exc:
            logger.warning("⚠️ [%s] Server record unavailable, using local copy: %s", form_id[:8], exc)
            return local
        if remote is None:
            return local
        if local is None:
            self.local.save(remote)
            return remote
        merged = reconcile(local, remote)
        self.local.save(merged)
        return await self._push_backlog(form_id, merged, remote)

    async def fetch_remote(self, form_id: str) -> OrderRecord | None:
        """Read the server record only. Raises ``RecordServiceError``."""
        return await self.api.get_form(form_id)

    def load_local(self, form_id: str) -> OrderRecord | None:
        return self.local.load(form_id)

    def save_local(self, form_id: str, patch: OrderPatch) -> OrderRecord:
        """Merge ``patch`` into the local copy only."""
        base = self.local.load(form_id) or OrderRecord(form_id=form_id)
        merged = merge_record(base, patch)
        self.local.save(merged)
        return merged

    async def save(self, form_id: str, patch: OrderPatch) -> OrderRecord:
        """Merge ``patch`` locally, then mirror it to the server.

        Returns the local view after the merge (reconciled with the server
        response when the remote write succeeded).
        """
        merged = self.save_local(form_id, patch)

        last_error: RecordServiceError | None = None
        for attempt in range(_REMOTE_SAVE_ATTEMPTS):
            try:
                remote = await self.api.patch_form(form_id, patch)
            except RecordServiceError as exc:
                last_error = exc
                logger.warning(
                    "⚠️ [%s] Server save failed (attempt %d/%d): %s",
                    form_id[:8], attempt + 1, _REMOTE_SAVE_ATTEMPTS, exc,
                )
                continue
            merged = reconcile(merged, remote)
            self.local.save(merged)
            return await self._push_backlog(form_id, merged, remote)

        logger.error(
            "❌ [%s] Server save gave up, continuing with local state: %s",
            form_id[:8], last_error,
        )
        return merged

    async def _push_backlog(
        self, form_id: str, merged: OrderRecord, remote: OrderRecord
    ) -> OrderRecord:
        """Send local-only data (from earlier failed saves) to the server."""
        backlog = missing_on_remote(merged, remote)
        if backlog is None:
            return merged
        logger.info("[%s] Pushing local-only data to the server", form_id[:8])
        try:
            remote = await self.api.patch_form(form_id, backlog)
        except RecordServiceError as exc:
            logger.warning("⚠️ [%s] Server catch-up failed, will retry on next save: %s", form_id[:8], exc)
            return merged
        merged = reconcile(merged, remote)
        self.local.save(merged)
        return merged

    async def create(
        self,
        form_id: str,
        package_type: str,
        form_data: OrderForm,
        generated_prompts: dict[int, GeneratedPrompt],
    ) -> OrderRecord:
        """Persist a newly submitted form on both sides.

        Unlike ``save`` this is blocking: the caller must not move on to
        generation until the server holds the record. Raises
        ``RecordServiceError`` on failure (the local copy is kept).
        """
        record = OrderRecord(
            form_id=form_id,
            package_type=package_type,
            song_count=len(form_data.songs),
            form_data=form_data,
            generated_prompts=generated_prompts,
        )
        existing = self.local.load(form_id)
        if existing is not None:
            record = merge_record(existing, OrderPatch(
                form_data=form_data,
                package_type=package_type,
                generated_prompts=generated_prompts,
            ))
        self.local.save(record)

        remote = await self.api.get_form(form_id)
        if remote is None:
            remote = await self.api.create_form(form_id, package_type, form_data, generated_prompts)
        else:
            remote = await self.api.patch_form(form_id, OrderPatch(
                form_data=form_data,
                package_type=package_type,
                generated_prompts=generated_prompts,
                status="prompts_generated",
            ))
        merged = reconcile(record, remote)
        self.local.save(merged)
        logger.info("✅ [%s] Saved form (%d song(s))", form_id[:8], len(form_data.songs))
        return merged

    async def claim_generation(self, form_id: str, song_index: int) -> bool:
        """Take the idempotency claim for generating ``song_index``.

        Returns False when another session already holds it. When the server
        is unreachable the local claim decides.
        """
        try:
            claimed = await self.api.claim_song(form_id, song_index)
        except RecordServiceError as exc:
            logger.warning(
                "⚠️ [%s] Claim for song %d not confirmed by server, using local claim: %s",
                form_id[:8], song_index, exc,
            )
            return self.local.add_claim(form_id, song_index)
        if claimed:
            self.local.add_claim(form_id, song_index)
        return claimed

    async def reset_song(self, form_id: str, song_index: int) -> OrderRecord | None:
        """Clear one song's task ids, audio, lyrics and claim on both sides."""
        local = self.local.load(form_id)
        if local is not None:
            local = clear_song(local, song_index)
            self.local.save(local)
        self.local.remove_claim(form_id, song_index)
        try:
            remote = await self.api.reset_song(form_id, song_index)
        except RecordServiceError as exc:
            logger.warning("⚠️ [%s] Server reset of song %d failed: %s", form_id[:8], song_index, exc)
            return local
        merged = reconcile(local, remote) if local is not None else remote
        self.local.save(merged)
        return merged

    def history(self) -> list[OrderRecord]:
        """Every locally known order, oldest first."""
        return self.local.records()
