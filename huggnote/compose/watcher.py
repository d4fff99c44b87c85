"""Completion Watcher: polls the order record until a song's audio is in.

Results reach the server record through the MusicGPT webhook; the client
only ever learns about them by re-reading the record. One watcher per song
runs as an ``asyncio.Task``: it checks immediately, then every
``poll_interval_seconds``, and stops itself when the song is ready, when
every requested variation failed, or when the wall-clock timeout expires.

``check_once()`` is the unit of work and can be called directly in tests.
"""
from __future__ import annotations

import asyncio
import logging
from enum import Enum

from huggnote.compose.clock import Clock, SystemClock
from huggnote.compose.errors import RecordServiceError
from huggnote.compose.mirror import PersistenceMirror
from huggnote.config import settings
from huggnote.models.records import (
    OrderPatch,
    OrderRecord,
    all_requested_failed,
    completion_counts,
    is_song_ready,
)

logger = logging.getLogger(__name__)


class WatchStatus(str, Enum):
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    STOPPED = "stopped"


class CompletionWatcher:
    """Polls one song of one order for completed variations."""

    def __init__(
        self,
        mirror: PersistenceMirror,
        form_id: str,
        song_index: int,
        clock: Clock | None = None,
        interval: float | None = None,
        timeout: float | None = None,
    ) -> None:
        self.mirror = mirror
        self.form_id = form_id
        self.song_index = song_index
        self.clock = clock or SystemClock()
        self.interval = settings.poll_interval_seconds if interval is None else interval
        self.timeout = settings.watch_timeout_seconds if timeout is None else timeout
        self.record: OrderRecord | None = None
        self.status = WatchStatus.PENDING
        self._task: asyncio.Task[WatchStatus] | None = None
        self._stopped = False
        self._sleeping = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def check_once(self) -> WatchStatus:
        """Re-read the server record, copy results locally, evaluate the song."""
        try:
            remote = await self.mirror.fetch_remote(self.form_id)
        except RecordServiceError as exc:
            logger.warning("⚠️ [%s] Poll failed, will retry: %s", self.form_id[:8], exc)
            return WatchStatus.PENDING

        i = self.song_index
        if remote is not None:
            self.record = self.mirror.save_local(self.form_id, OrderPatch(
                task_ids={i: remote.song_task_ids(i)} if remote.task_ids.get(i) else None,
                audio_urls={i: remote.audio_urls[i]} if remote.audio_urls.get(i) else None,
                lyrics={i: remote.lyrics[i]} if remote.lyrics.get(i) else None,
            ))
        else:
            self.record = self.mirror.load_local(self.form_id)
        if self.record is None:
            return WatchStatus.PENDING

        received, expected = completion_counts(self.record, i)
        logger.debug(
            "[%s] Song %d: %d/%d variations ready", self.form_id[:8], i + 1, received, expected
        )
        if is_song_ready(self.record, i):
            return WatchStatus.READY
        if all_requested_failed(self.record, i):
            return WatchStatus.FAILED
        return WatchStatus.PENDING

    async def run(self) -> WatchStatus:
        """Poll until a terminal status; the body of the watcher task."""
        started = self.clock.monotonic()
        while not self._stopped:
            status = await self.check_once()
            if status is not WatchStatus.PENDING:
                return self._finish(status)
            if self.clock.monotonic() - started >= self.timeout:
                return self._finish(WatchStatus.TIMED_OUT)
            self._sleeping = True
            try:
                await self.clock.sleep(self.interval)
            except asyncio.CancelledError:
                if not self._stopped:
                    raise
            finally:
                self._sleeping = False
        return self._finish(WatchStatus.STOPPED)

    def _finish(self, status: WatchStatus) -> WatchStatus:
        self.status = status
        if status is WatchStatus.READY:
            logger.info("✅ [%s] Song %d variations ready", self.form_id[:8], self.song_index + 1)
        elif status in (WatchStatus.FAILED, WatchStatus.TIMED_OUT):
            logger.error(
                "❌ [%s] Song %d watcher ended: %s",
                self.form_id[:8], self.song_index + 1, status.value,
            )
        return status

    def start(self) -> asyncio.Task[WatchStatus]:
        """Launch the polling task (no-op if already running)."""
        if self.running:
            assert self._task is not None
            return self._task
        self._stopped = False
        self.status = WatchStatus.PENDING
        self._task = asyncio.create_task(self.run())
        return self._task

    def stop(self) -> None:
        """Stop polling. An in-flight record read is allowed to finish."""
        self._stopped = True
        if self._task is not None and self._sleeping:
            self._task.cancel()

    async def wait(self) -> WatchStatus:
        if self._task is None:
            return self.status
        try:
            return await self._task
        except asyncio.CancelledError:
            self.status = WatchStatus.STOPPED
            return self.status
