"""One-time code maintenance CLI commands."""

import asyncio

import typer

from ballot_api.core.config import get_settings
from ballot_api.core.database import dispose_engine, init_engine, session_scope
from ballot_api.services import otp_service

otp_app = typer.Typer()


@otp_app.command("sweep")
def sweep() -> None:
    """Delete expired codes and used codes past the retention window."""
    asyncio.run(_sweep())


async def _sweep() -> None:
    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)

    try:
        result = await otp_service.run_code_sweep(settings)
    finally:
        await dispose_engine()

    if result.skipped:
        typer.echo("Sweep skipped: database unavailable", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Deleted {result.expired_deleted} expired and {result.used_deleted} old used code(s)")


@otp_app.command("stats")
def stats() -> None:
    """Show counts of issued codes by state."""
    asyncio.run(_stats())


async def _stats() -> None:
    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)

    try:
        async with session_scope() as session:
            counts = await otp_service.get_code_statistics(session)
    finally:
        await dispose_engine()

    typer.echo(f"{'Total':<14} {counts.total}")
    typer.echo(f"{'Active':<14} {counts.active}")
    typer.echo(f"{'Expired':<14} {counts.expired}")
    typer.echo(f"{'Used':<14} {counts.used}")
    typer.echo(f"{'Created today':<14} {counts.created_today}")
