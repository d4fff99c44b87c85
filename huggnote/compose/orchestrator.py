"""
Variation Orchestrator: drives every song of one order from prompt to pick.

For each song index the orchestrator owns a ``SongStatus`` state machine, a
``CompletionWatcher`` and (while generating) one ``request_batch`` call.
Songs are independent: a failure or timeout in one never affects another.

Generation for a song starts at most once per order across sessions:

    1. task ids already persisted        → resume (waiting or ready)
    2. generation claim held elsewhere   → wait for the other session's ids
    3. otherwise take the claim          → request the three variations

``retry()`` is the only way back from ERROR; it clears the song's task ids,
results and claim on both sides, then activates the song again.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from huggnote.compose.api_client import HuggnoteClient
from huggnote.compose.clock import Clock, SystemClock
from huggnote.compose.errors import (
    CheckoutError,
    HuggnoteError,
    MissingSelectionError,
    NotAuthenticatedError,
    RecordServiceError,
)
from huggnote.compose.mirror import PersistenceMirror
from huggnote.compose.requestor import GenerationRequestor
from huggnote.compose.selection import SelectionTracker, can_checkout
from huggnote.compose.state_machine import (
    InvalidTransitionError,
    SongStatus,
    assert_transition,
    can_retry,
)
from huggnote.compose.watcher import CompletionWatcher, WatchStatus
from huggnote.models.records import (
    OrderPatch,
    OrderRecord,
    VariationSlot,
    all_requested_failed,
    is_song_ready,
)

logger = logging.getLogger(__name__)

MSG_GENERATING = "Generating your song variations..."
MSG_WAITING = "Your song is being composed. This usually takes a few minutes."
MSG_READY = "Your variations are ready. Pick your favourite!"
MSG_NO_PROMPT = "No prompt found for this song. Please go back and resubmit the form."
MSG_BATCH_FAILED = "Failed to generate song variations. Please try again."
MSG_ALL_FAILED = "All variations failed to generate. Please try again."
MSG_TIMEOUT = (
    "Generation is taking longer than expected. "
    "Please refresh the page or contact support."
)


@dataclass
class SongView:
    """Read-only snapshot of one song for display."""

    song_index: int
    status: SongStatus
    message: Optional[str]
    selected: Optional[int]
    slots: list[VariationSlot] = field(default_factory=list)


class VariationOrchestrator:
    """Per-order coordinator of generation, polling and selection."""

    def __init__(
        self,
        api: HuggnoteClient,
        mirror: PersistenceMirror,
        form_id: str,
        clock: Clock | None = None,
        requestor: GenerationRequestor | None = None,
        poll_interval: float | None = None,
        watch_timeout: float | None = None,
    ) -> None:
        self.api = api
        self.mirror = mirror
        self.form_id = form_id
        self.clock = clock or SystemClock()
        self.requestor = requestor or GenerationRequestor(api, mirror, clock=self.clock)
        self._poll_interval = poll_interval
        self._watch_timeout = watch_timeout

        self.record: OrderRecord | None = None
        self.selection = SelectionTracker(0)
        self.states: dict[int, SongStatus] = {}
        self.messages: dict[int, str] = {}
        self.watchers: dict[int, CompletionWatcher] = {}
        self._followers: dict[int, asyncio.Task[None]] = {}
        self._in_flight: set[int] = set()

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load(self) -> OrderRecord:
        """Load the order (server first, local fallback) and reset song states."""
        record = await self.mirror.load(self.form_id)
        if record is None:
            raise RecordServiceError(f"Order {self.form_id} not found", 404)
        self.record = record
        self.selection = SelectionTracker(record.song_count, record.selections)
        self.states = {i: SongStatus.IDLE for i in range(record.song_count)}
        self.messages = {}
        logger.info(
            "✅ [%s] Loaded order: %d song(s), status=%s",
            self.form_id[:8], record.song_count, record.status,
        )
        return record

    def _require_record(self) -> OrderRecord:
        if self.record is None:
            raise HuggnoteError("Order not loaded; call load() first")
        return self.record

    def _refresh_local(self) -> OrderRecord:
        self.record = self.mirror.load_local(self.form_id) or self._require_record()
        return self.record

    def _transition(self, song_index: int, to_state: SongStatus, message: str | None = None) -> None:
        from_state = self.states.get(song_index, SongStatus.IDLE)
        assert_transition(from_state, to_state)
        self.states[song_index] = to_state
        if message:
            self.messages[song_index] = message
        else:
            self.messages.pop(song_index, None)
        logger.debug(
            "[%s] Song %d: %s → %s",
            self.form_id[:8], song_index + 1, from_state.value, to_state.value,
        )

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    async def activate(self, song_index: int) -> SongStatus:
        """Bring a song to ``waiting`` or ``ready``, generating if needed.

        Returns once the song's requests (if any) are issued; polling
        continues in the background. Calling this again for a song that is
        already active does nothing.
        """
        record = self._require_record()
        if not 0 <= song_index < record.song_count:
            raise ValueError(f"Song index {song_index} out of range")
        if song_index in self._in_flight or self.states.get(song_index) != SongStatus.IDLE:
            return self.states[song_index]

        self._in_flight.add(song_index)
        try:
            await self._activate(song_index)
        finally:
            self._in_flight.discard(song_index)
        return self.states[song_index]

    async def _activate(self, i: int) -> None:
        record = self._refresh_local()

        if i in record.task_ids:
            if is_song_ready(record, i):
                self._transition(i, SongStatus.READY, MSG_READY)
            elif all_requested_failed(record, i):
                self._transition(i, SongStatus.ERROR, MSG_ALL_FAILED)
            else:
                logger.info("[%s] Song %d already requested, resuming", self.form_id[:8], i + 1)
                self._transition(i, SongStatus.WAITING, MSG_WAITING)
                self._watch(i)
            return

        if not await self.mirror.claim_generation(self.form_id, i):
            logger.info(
                "[%s] Song %d is being generated by another session, waiting",
                self.form_id[:8], i + 1,
            )
            self._transition(i, SongStatus.WAITING, MSG_WAITING)
            self._watch(i)
            return

        prompt = record.generated_prompts.get(i)
        if prompt is None:
            self._transition(i, SongStatus.ERROR, MSG_NO_PROMPT)
            return

        self._transition(i, SongStatus.GENERATING, MSG_GENERATING)
        if record.status == "prompts_generated":
            await self.mirror.save(self.form_id, OrderPatch(status="generating"))

        voice_hint = None
        if record.form_data is not None and i < len(record.form_data.songs):
            voice_hint = record.form_data.songs[i].voice_type
        try:
            await self.requestor.request_batch(
                self.form_id, i, prompt.prompt, prompt.music_style, voice_hint
            )
        except HuggnoteError as exc:
            logger.error("❌ [%s] Song %d batch failed: %s", self.form_id[:8], i + 1, exc)
            self._transition(i, SongStatus.ERROR, MSG_BATCH_FAILED)
            return

        self._refresh_local()
        self._transition(i, SongStatus.WAITING, MSG_WAITING)
        self._watch(i)

    def _watch(self, i: int) -> None:
        watcher = CompletionWatcher(
            self.mirror,
            self.form_id,
            i,
            clock=self.clock,
            interval=self._poll_interval,
            timeout=self._watch_timeout,
        )
        self.watchers[i] = watcher
        watcher.start()
        self._followers[i] = asyncio.create_task(self._follow(i, watcher))

    async def _follow(self, i: int, watcher: CompletionWatcher) -> None:
        status = await watcher.wait()
        if watcher.record is not None:
            self.record = watcher.record
        if self.states.get(i) != SongStatus.WAITING:
            return
        if status is WatchStatus.READY:
            self._transition(i, SongStatus.READY, MSG_READY)
            if all(s == SongStatus.READY for s in self.states.values()):
                await self.mirror.save(self.form_id, OrderPatch(status="variations_ready"))
        elif status is WatchStatus.FAILED:
            self._transition(i, SongStatus.ERROR, MSG_ALL_FAILED)
        elif status is WatchStatus.TIMED_OUT:
            self._transition(i, SongStatus.ERROR, MSG_TIMEOUT)

    async def wait(self, song_index: int) -> SongStatus:
        """Block until the song's watcher (if any) has finished."""
        follower = self._followers.get(song_index)
        if follower is not None:
            await follower
        return self.states[song_index]

    async def wait_all(self) -> dict[int, SongStatus]:
        followers = list(self._followers.values())
        if followers:
            await asyncio.gather(*followers)
        return dict(self.states)

    async def retry(self, song_index: int) -> SongStatus:
        """Clear a failed song and generate it again."""
        state = self.states.get(song_index, SongStatus.IDLE)
        if not can_retry(state):
            raise InvalidTransitionError(state, SongStatus.IDLE)
        watcher = self.watchers.pop(song_index, None)
        if watcher is not None:
            watcher.stop()
        self._transition(song_index, SongStatus.IDLE)
        logger.info("[%s] Retrying song %d", self.form_id[:8], song_index + 1)
        record = await self.mirror.reset_song(self.form_id, song_index)
        if record is not None:
            self.record = record
        self.selection.selections.pop(song_index, None)
        return await self.activate(song_index)

    # ------------------------------------------------------------------
    # Selection & checkout
    # ------------------------------------------------------------------

    async def select(self, song_index: int, variation_id: int) -> None:
        """Choose a variation; only variations with audio can be picked."""
        record = self._require_record()
        if not record.slot(song_index, variation_id).ready:
            raise ValueError(
                f"Variation {variation_id} of song {song_index + 1} is not ready yet"
            )
        self.selection.select(song_index, variation_id)
        await self.mirror.save(
            self.form_id, OrderPatch(selections={song_index: variation_id})
        )

    def can_checkout(self) -> bool:
        return can_checkout(self.selection, self.api.authenticated)

    async def checkout(self) -> str:
        """Validate selections, record them, and return the payment URL."""
        record = self._require_record()
        missing = self.selection.missing()
        if missing:
            raise MissingSelectionError(missing)
        if not self.api.authenticated:
            raise NotAuthenticatedError()

        selections = dict(self.selection.selections)
        task_ids: dict[int, str] = {}
        for i, vid in selections.items():
            task_id = record.task_ids.get(i, {}).get(vid)
            if not task_id:
                raise CheckoutError(f"No generated track for song {i + 1}, variation {vid}")
            task_ids[i] = task_id

        await self.mirror.save(
            self.form_id,
            OrderPatch(selections=selections, status="payment_initiated"),
        )
        url = await self.api.create_checkout(self.form_id, selections, task_ids)
        logger.info("✅ [%s] Checkout session created", self.form_id[:8])
        return url

    # ------------------------------------------------------------------
    # Inspection & shutdown
    # ------------------------------------------------------------------

    def snapshot(self) -> list[SongView]:
        record = self._require_record()
        return [
            SongView(
                song_index=i,
                status=self.states.get(i, SongStatus.IDLE),
                message=self.messages.get(i),
                selected=self.selection.selections.get(i),
                slots=record.slots(i),
            )
            for i in range(record.song_count)
        ]

    async def close(self) -> None:
        """Stop every watcher and wait for the follow-up tasks to settle."""
        for watcher in self.watchers.values():
            watcher.stop()
        if self._followers:
            await asyncio.gather(*self._followers.values(), return_exceptions=True)
