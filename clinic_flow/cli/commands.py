"""CLI commands for ClinicFlow."""

import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from clinic_flow import __version__
from clinic_flow.config import get_settings

app = typer.Typer(
    name="clinic-flow",
    help="Encounter workflow engine for walk-in clinics",
    add_completion=False,
)
console = Console()

DatabaseOption = typer.Option(None, "--database-url", help="Override DATABASE_URL")


def _build_db_engine(database_url: Optional[str]):
    from sqlalchemy.pool import NullPool

    from clinic_flow.core.database import build_engine

    url = database_url or get_settings().database_url
    # One-shot commands do not need a pool; SQLite files also dislike sharing one
    return build_engine(url, poolclass=NullPool)


async def _with_engine(database_url: Optional[str], fn):
    from clinic_flow.workflow.engine import WorkflowEngine

    db_engine = _build_db_engine(database_url)
    try:
        return await fn(WorkflowEngine.from_engine(db_engine), db_engine)
    finally:
        await db_engine.dispose()


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", "-h", help="Host to bind"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port to bind"),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload"),
):
    """Start the REST API server."""
    import uvicorn

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port

    console.print(f"Starting ClinicFlow API server on {host}:{port}")
    uvicorn.run(
        "clinic_flow.api.app:create_app",
        host=host,
        port=port,
        reload=reload,
        factory=True,
    )


@app.command("init-db")
def init_db(
    rooms: Optional[int] = typer.Option(None, "--rooms", help="Exam rooms to seed"),
    beds: Optional[int] = typer.Option(None, "--beds", help="Short-stay beds to seed"),
    database_url: Optional[str] = DatabaseOption,
):
    """Create tables and seed exam rooms and short-stay beds."""
    from clinic_flow.core.database import create_tables

    async def run(engine, db_engine):
        await create_tables(db_engine)
        return await engine.seed_resources(rooms=rooms, beds=beds)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        task = progress.add_task("Creating tables and seeding resources...", total=None)
        new_rooms, new_beds = asyncio.run(_with_engine(database_url, run))
        progress.update(task, completed=True)

    console.print(f"[green]Database ready: {new_rooms} rooms and {new_beds} beds added[/green]")


@app.command("sync-rooms")
def sync_rooms(database_url: Optional[str] = DatabaseOption):
    """Recompute room and bed availability from active encounters."""

    async def run(engine, db_engine):
        return await engine.sync_resource_availability(actor_id="cli")

    corrections = asyncio.run(_with_engine(database_url, run))
    if not corrections:
        console.print("[green]All rooms and beds are consistent[/green]")
        return

    table = Table(title=f"Corrected {len(corrections)} resources")
    table.add_column("Kind")
    table.add_column("Identifier")
    table.add_column("Was available")
    table.add_column("Now available")
    table.add_column("Encounter")
    for fix in corrections:
        table.add_row(
            fix.kind,
            fix.identifier,
            str(fix.was_available),
            str(fix.is_available),
            str(fix.current_encounter_id or "-"),
        )
    console.print(table)


@app.command()
def board(database_url: Optional[str] = DatabaseOption):
    """Show room and bed occupancy."""

    async def run(engine, db_engine):
        rooms = await engine.list_rooms()
        beds = await engine.list_beds()
        active = {e.id: e for e in await engine.list_encounters(active_only=True, limit=500)}
        return rooms, beds, active

    rooms, beds, active = asyncio.run(_with_engine(database_url, run))

    table = Table(title="Clinic board")
    table.add_column("Resource")
    table.add_column("Status")
    table.add_column("Patient")
    table.add_column("Encounter status")

    for label, rows in (("Room", rooms), ("Bed", beds)):
        for row in rows:
            identifier = row.room_number if label == "Room" else row.bed_number
            encounter = active.get(row.current_encounter_id)
            table.add_row(
                f"{label} {identifier}",
                "[green]free[/green]" if row.is_available else "[red]occupied[/red]",
                encounter.patient_id if encounter else "-",
                encounter.status.value if encounter else "-",
            )

    console.print(table)
    waiting = [e for e in active.values() if e.room_id is None]
    console.print(f"{len(active)} active encounters, {len(waiting)} without a room")


@app.command()
def version():
    """Show version information."""
    console.print(f"ClinicFlow v{__version__}")
