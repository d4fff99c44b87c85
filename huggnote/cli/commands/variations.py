"""huggnote variations — generate, resume and show the three takes per song.

Loads the current order, activates every song (or just ``--song N``) and,
unless ``--no-wait`` is given, polls until each song is ready, failed or
timed out. Running it again never requests a song twice: songs that already
have task ids (or are being generated by another session) are resumed.

Exit codes:
  0 — every activated song is ready (or still pending with --no-wait)
  1 — at least one song ended in error (use --retry to regenerate it)
  2 — no order in progress
  3 — record service error
"""
from __future__ import annotations

import asyncio
import logging

import typer

from huggnote.cli._session import compose_session, open_local_store, resolve_form_id
from huggnote.cli.errors import ExitCode
from huggnote.compose.errors import HuggnoteError, RecordServiceError
from huggnote.compose.orchestrator import SongView, VariationOrchestrator
from huggnote.compose.state_machine import SongStatus

logger = logging.getLogger(__name__)

app = typer.Typer()

_STATUS_ICON = {
    SongStatus.IDLE: "·",
    SongStatus.GENERATING: "⏳",
    SongStatus.WAITING: "⏳",
    SongStatus.READY: "✅",
    SongStatus.ERROR: "❌",
}


def render_song(view: SongView) -> list[str]:
    """Human-readable lines for one song."""
    lines = [f"{_STATUS_ICON[view.status]} Song {view.song_index + 1}: {view.status.value}"]
    if view.message:
        lines.append(f"   {view.message}")
    for slot in view.slots:
        marker = "*" if view.selected == slot.variation_id else " "
        if slot.ready:
            state = slot.audio_url
        elif slot.failed:
            state = "failed"
        elif slot.requested:
            state = "composing…"
        else:
            state = "not requested"
        lines.append(f"  {marker}[{slot.variation_id}] {slot.style_label}: {state}")
    return lines


async def _retry_failed(
    orchestrator: VariationOrchestrator, indices: list[int], done: set[int]
) -> list[int]:
    """Regenerate songs in error that have not been retried in this run."""
    failed = [
        i for i in indices
        if orchestrator.states[i] == SongStatus.ERROR and i not in done
    ]
    done.update(failed)
    await asyncio.gather(*(orchestrator.retry(i) for i in failed))
    return failed


async def _variations_async(
    *,
    form_id: str,
    song: int | None,
    wait: bool,
    retry: bool,
) -> list[SongView]:
    async with compose_session() as mirror:
        orchestrator = VariationOrchestrator(mirror.api, mirror, form_id)
        record = await orchestrator.load()
        indices = [song - 1] if song is not None else list(range(record.song_count))
        for i in indices:
            if not 0 <= i < record.song_count:
                typer.echo(f"❌ Song {i + 1} does not exist (order has {record.song_count}).")
                raise typer.Exit(code=int(ExitCode.USER_ERROR))

        retried: set[int] = set()
        await asyncio.gather(*(orchestrator.activate(i) for i in indices))
        if retry:
            await _retry_failed(orchestrator, indices, retried)

        try:
            if wait:
                typer.echo("⏳ Waiting for variations (this usually takes a few minutes)…")
                await asyncio.gather(*(orchestrator.wait(i) for i in indices))
                # A resumed song only shows its timeout after waiting again.
                if retry and await _retry_failed(orchestrator, indices, retried):
                    await asyncio.gather(*(orchestrator.wait(i) for i in indices))
        finally:
            await orchestrator.close()
        return [v for v in orchestrator.snapshot() if v.song_index in indices]


@app.callback(invoke_without_command=True)
def variations(
    ctx: typer.Context,
    form_id: str | None = typer.Option(
        None, "--form-id", help="Order to work on. Defaults to the current one."
    ),
    song: int | None = typer.Option(
        None, "--song", "-s", min=1, help="Only this song (1-based)."
    ),
    wait: bool = typer.Option(
        True, "--wait/--no-wait", help="Poll until every song finishes."
    ),
    retry: bool = typer.Option(
        False, "--retry", help="Regenerate songs that are in error or time out again."
    ),
) -> None:
    """Generate (or resume) the variations of every song in the order.

    Example::

        huggnote variations
        huggnote variations --song 2 --retry
        huggnote variations --no-wait
    """
    resolved = resolve_form_id(open_local_store(), form_id)
    try:
        views = asyncio.run(
            _variations_async(form_id=resolved, song=song, wait=wait, retry=retry)
        )
    except typer.Exit:
        raise
    except RecordServiceError as exc:
        typer.echo(f"❌ {exc}")
        code = ExitCode.FORM_NOT_FOUND if exc.status_code == 404 else ExitCode.INTERNAL_ERROR
        raise typer.Exit(code=int(code))
    except HuggnoteError as exc:
        typer.echo(f"❌ {exc}")
        raise typer.Exit(code=int(ExitCode.INTERNAL_ERROR))

    for view in views:
        for line in render_song(view):
            typer.echo(line)
    if any(v.status == SongStatus.ERROR for v in views):
        raise typer.Exit(code=int(ExitCode.USER_ERROR))
