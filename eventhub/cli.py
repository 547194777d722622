"""Typer CLI for eventhub."""

from __future__ import annotations

import json
from pathlib import Path

from sqlalchemy.exc import OperationalError
import typer
import uvicorn

from .config import (
    load_settings,
    settings,
    settings_as_dict,
    update_config_file,
)
from .scheduler import start_scheduler, stop_scheduler
from .seed import seed_fake_data
from .storage import init_db, upgrade_database
from .sweep import run_phase_sweep, vacuum_database

app = typer.Typer(help="eventhub command-line interface")


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """Show help when no subcommand is provided."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


@app.command("upgrade-db")
def upgrade_db(
    no_backup: bool = typer.Option(
        False,
        "--no-backup",
        help="Skip creating a .bak copy of the database before upgrading",
    ),
) -> None:
    """Upgrade the SQLite database schema if needed."""
    try:
        actions = upgrade_database(make_backup=not no_backup)
    except OperationalError as exc:
        message = str(getattr(exc, "orig", exc)).lower()
        if "readonly" in message or "read-only" in message:
            typer.secho(
                "Unable to upgrade because the database is read-only. "
                f"Ensure write access to {settings.database_path}.",
                err=True,
                fg=typer.colors.RED,
            )
            raise typer.Exit(code=1)
        raise

    if not actions:
        typer.echo("Database already up to date.")
        return

    typer.echo("Database upgrade complete:")
    for action in actions:
        typer.echo(f"- {action}")


@app.command("sweep")
def sweep(
    vacuum: bool = typer.Option(
        False,
        "--vacuum",
        help="Run SQLite VACUUM after the sweep completes",
    ),
) -> None:
    """Write the current phase of every non-cancelled event to the database."""
    init_db()
    stats = run_phase_sweep()
    typer.echo(f"Sweep complete: {stats}")
    if vacuum:
        vacuum_database()
        typer.echo("Database vacuum complete.")


@app.command("runserver")
def runserver(
    host: str = typer.Option(settings.app_host, "--host", help="Host to bind"),
    port: int = typer.Option(settings.app_port, "--port", help="Port to bind"),
):
    """Start FastAPI with APScheduler."""
    init_db()
    if settings.enable_scheduler:
        start_scheduler()
    config = uvicorn.Config(
        "eventhub.api:app",
        host=host,
        port=port,
        reload=False,
        proxy_headers=True,
        forwarded_allow_ips="*",
    )
    server = uvicorn.Server(config)
    try:
        typer.echo(f"Starting eventhub on {host}:{port}")
        server.run()
    finally:
        stop_scheduler()


@app.command("seed-data")
def seed_data(
    events: int = typer.Option(
        settings.seed_events, "--events", min=0, help="Number of events to create"
    ),
    max_members: int = typer.Option(
        settings.seed_members_per_event,
        "--max-members",
        min=0,
        help="Maximum members to attach to each event (besides the owner)",
    ),
    public_percent: int = typer.Option(
        settings.seed_public_percent,
        "--public-percent",
        min=0,
        max=100,
        help="Percentage of events that should be public (0-100)",
    ),
):
    """Populate the database with fake events and memberships for testing."""
    stats = seed_fake_data(
        event_count=events,
        max_members_per_event=max_members,
        public_percentage=public_percent,
    )
    typer.echo(
        f"Seed complete: {stats['events']} events, {stats['members']} memberships created."
    )


@app.command("config")
def configure(
    show: bool = typer.Option(
        False, "--show", help="Show the current effective configuration"
    ),
    join_code_bytes: int | None = typer.Option(
        None,
        "--join-code-bytes",
        min=1,
        help="Random bytes per join code (two hex characters each)",
    ),
    join_code_attempts: int | None = typer.Option(
        None, "--join-code-attempts", min=1, help="Join code generation attempts"
    ),
    events_per_page: int | None = typer.Option(
        None, "--events-per-page", min=1, help="Default public listing page size"
    ),
    max_events_per_page: int | None = typer.Option(
        None, "--max-events-per-page", min=1, help="Upper bound for page size"
    ),
    sweep_minutes: int | None = typer.Option(
        None, "--sweep-minutes", min=1, help="Minutes between phase sweeps"
    ),
    max_pending_writes: int | None = typer.Option(
        None,
        "--max-pending-writes",
        min=1,
        help="Background phase writes allowed in flight before dropping",
    ),
    vacuum_hours: int | None = typer.Option(
        None, "--vacuum-hours", help="Hours between SQLite VACUUM runs"
    ),
    enable_scheduler: bool | None = typer.Option(
        None,
        "--enable-scheduler/--disable-scheduler",
        help="Toggle background scheduler (phase writes/sweep/vacuum)",
    ),
    seed_events: int | None = typer.Option(
        None, "--seed-events", min=0, help="Default seed-data events"
    ),
    seed_members_per_event: int | None = typer.Option(
        None, "--seed-members-per-event", min=0, help="Default seed-data members"
    ),
    seed_public_percent: int | None = typer.Option(
        None,
        "--seed-public-percent",
        min=0,
        max=100,
        help="Default percent of public events for seed-data",
    ),
    host: str | None = typer.Option(None, "--host", help="Default host for runserver"),
    port: int | None = typer.Option(None, "--port", help="Default port for runserver"),
    config_path: Path | None = typer.Option(
        None, "--config-path", help="Path to eventhub.toml (default: ./eventhub.toml)"
    ),
):
    """View or update the persistent configuration file."""

    updates = {
        "join_code_bytes": join_code_bytes,
        "join_code_attempts": join_code_attempts,
        "events_per_page": events_per_page,
        "max_events_per_page": max_events_per_page,
        "phase_sweep_minutes": sweep_minutes,
        "phase_write_max_pending": max_pending_writes,
        "sqlite_vacuum_hours": vacuum_hours,
        "enable_scheduler": enable_scheduler,
        "seed_events": seed_events,
        "seed_members_per_event": seed_members_per_event,
        "seed_public_percent": seed_public_percent,
        "app_host": host,
        "app_port": port,
    }
    clean_updates = {k: v for k, v in updates.items() if v is not None}

    settings_ref = settings
    target_path = config_path or settings.config_path
    if clean_updates:
        settings_ref = update_config_file(clean_updates, path=target_path)
        typer.echo(f"Updated configuration in {target_path}")
    else:
        settings_ref = load_settings(target_path)
    if show or not clean_updates:
        effective = settings_as_dict(settings_ref)
        effective["config_path"] = str(target_path)
        typer.echo(json.dumps(effective, indent=2))


if __name__ == "__main__":
    app()
