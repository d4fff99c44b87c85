"""huggnote history — list orders and purchased songs.

Local orders come from the state directory index. When an access token is
configured the account's orders on other machines and the purchased-song
library are fetched from the server as well.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any

import typer

from huggnote.cli._session import compose_session, open_local_store
from huggnote.cli.errors import ExitCode
from huggnote.compose.errors import RecordServiceError
from huggnote.models.records import OrderRecord

logger = logging.getLogger(__name__)

app = typer.Typer()


def _order_line(record: OrderRecord, marker: str = " ") -> str:
    return (
        f"{marker} {record.form_id}  {record.status:<18} "
        f"{record.song_count} song(s), {len(record.selections)} selected"
    )


async def _account_async() -> tuple[list[OrderRecord], list[dict[str, Any]]]:
    async with compose_session() as mirror:
        if not mirror.api.authenticated:
            return [], []
        return await mirror.api.list_forms(), await mirror.api.history()


@app.callback(invoke_without_command=True)
def history(
    ctx: typer.Context,
    local_only: bool = typer.Option(
        False, "--local", help="Skip the server lookups."
    ),
) -> None:
    """Show local orders and, when logged in, your account's orders and songs."""
    local = open_local_store()
    current = local.current_form_id()
    records = local.records()

    if not records:
        typer.echo("No orders on this machine yet.")
    for record in records:
        typer.echo(_order_line(record, "*" if record.form_id == current else " "))

    if local_only:
        return
    try:
        remote, library = asyncio.run(_account_async())
    except RecordServiceError as exc:
        typer.echo(f"⚠️  Account unavailable: {exc}")
        raise typer.Exit(code=int(ExitCode.INTERNAL_ERROR))

    known = {r.form_id for r in records}
    elsewhere = [r for r in remote if r.form_id not in known]
    if elsewhere:
        typer.echo("")
        typer.echo("Other orders on your account:")
        for record in elsewhere:
            typer.echo(_order_line(record))
    if library:
        typer.echo("")
        typer.echo("Purchased songs:")
        for song in library:
            typer.echo(f"  {song.get('title') or 'Untitled'}  {song.get('shareUrl', '')}")
