"""huggnote select — pick the variation to keep for a song.

Exit codes:
  0 — selection saved
  1 — unknown song/variation, or the variation has no audio yet
  2 — no order in progress
  3 — record service error
"""
from __future__ import annotations

import asyncio
import logging

import typer

from huggnote.cli._session import compose_session, open_local_store, resolve_form_id
from huggnote.cli.errors import ExitCode
from huggnote.compose.errors import HuggnoteError
from huggnote.compose.orchestrator import VariationOrchestrator

logger = logging.getLogger(__name__)


async def _select_async(form_id: str, song_index: int, variation_id: int) -> list[int]:
    async with compose_session() as mirror:
        orchestrator = VariationOrchestrator(mirror.api, mirror, form_id)
        await orchestrator.load()
        await orchestrator.select(song_index, variation_id)
        return orchestrator.selection.missing()


def select(
    song: int = typer.Argument(..., min=1, help="Song number (1-based)."),
    variation: int = typer.Argument(..., min=1, max=3, help="Variation number (1-3)."),
    form_id: str | None = typer.Option(
        None, "--form-id", help="Order to work on. Defaults to the current one."
    ),
) -> None:
    """Select a variation for one song of the current order.

    Example::

        huggnote select 1 2
    """
    resolved = resolve_form_id(open_local_store(), form_id)
    try:
        missing = asyncio.run(_select_async(resolved, song - 1, variation))
    except ValueError as exc:
        typer.echo(f"❌ {exc}")
        raise typer.Exit(code=int(ExitCode.USER_ERROR))
    except HuggnoteError as exc:
        typer.echo(f"❌ {exc}")
        raise typer.Exit(code=int(ExitCode.INTERNAL_ERROR))

    typer.echo(f"✅ Song {song}: variation {variation} selected")
    if missing:
        songs = ", ".join(str(i + 1) for i in missing)
        typer.echo(f"Still to choose: song {songs}")
    else:
        typer.echo("All songs chosen. Next: `huggnote checkout`.")
