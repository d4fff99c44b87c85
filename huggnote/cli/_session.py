"""Shared wiring for CLI commands: API client, local store, mirror."""
from __future__ import annotations

import contextlib
from collections.abc import AsyncIterator

import typer

from huggnote.cli.errors import ExitCode
from huggnote.compose.api_client import HuggnoteClient
from huggnote.compose.local_store import LocalStore
from huggnote.compose.mirror import PersistenceMirror
from huggnote.config import settings

_NO_FORM_MSG = "No order in progress. Run `huggnote create <form.json>` first."


def open_local_store() -> LocalStore:
    return LocalStore(settings.state_dir)


def resolve_form_id(local: LocalStore, form_id: str | None) -> str:
    """Return the explicit form id or the session's current one.

    Raises :class:`typer.Exit` (FORM_NOT_FOUND) when neither is available.
    """
    resolved = form_id or local.current_form_id()
    if not resolved:
        typer.echo(_NO_FORM_MSG)
        raise typer.Exit(code=int(ExitCode.FORM_NOT_FOUND))
    return resolved


@contextlib.asynccontextmanager
async def compose_session() -> AsyncIterator[PersistenceMirror]:
    """Yield a mirror bound to an open API client and the local state dir."""
    async with HuggnoteClient() as api:
        yield PersistenceMirror(api, open_local_store())
