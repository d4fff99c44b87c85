"""
Compose client: variation generation and selection for one order.

Layers, leaves first:
    local_store / api_client → mirror → requestor, watcher → orchestrator

The CLI (``huggnote.cli``) is the only caller that wires them together; tests
build the same stack around an ``httpx.MockTransport`` and a virtual clock.
"""
from huggnote.compose.api_client import HuggnoteClient
from huggnote.compose.clock import Clock, SystemClock
from huggnote.compose.errors import (
    CheckoutError,
    GenerationRequestError,
    HuggnoteError,
    MissingSelectionError,
    NotAuthenticatedError,
    PromptBuildError,
    RateLimitedError,
    RecordServiceError,
)
from huggnote.compose.local_store import LocalStore
from huggnote.compose.mirror import PersistenceMirror
from huggnote.compose.orchestrator import SongView, VariationOrchestrator
from huggnote.compose.requestor import GenerationRequestor
from huggnote.compose.selection import SelectionTracker, can_checkout
from huggnote.compose.state_machine import InvalidTransitionError, SongStatus
from huggnote.compose.submission import PromptCache, submit_form
from huggnote.compose.watcher import CompletionWatcher, WatchStatus

__all__ = [
    "CheckoutError",
    "Clock",
    "CompletionWatcher",
    "GenerationRequestError",
    "GenerationRequestor",
    "HuggnoteClient",
    "HuggnoteError",
    "InvalidTransitionError",
    "LocalStore",
    "MissingSelectionError",
    "NotAuthenticatedError",
    "PersistenceMirror",
    "PromptBuildError",
    "PromptCache",
    "RateLimitedError",
    "RecordServiceError",
    "SelectionTracker",
    "SongStatus",
    "SongView",
    "SystemClock",
    "VariationOrchestrator",
    "WatchStatus",
    "can_checkout",
    "submit_form",
]
