"""RoadCalc CLI.

Commands:
- init: Initialize database schema
- evaluate: Evaluate a quantity formula against ad-hoc values
- seed-actual: Clone a project's CONTRACT BOQ sheet into its ACTUAL sheet
- bind: Replace the BOQ items bound to a phase item
- progress: Show completion per road and phase (or per phase across roads)
- web serve: Run the HTTP API
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import typer
from rich.console import Console
from rich.table import Table

from roadcalc.boq.bindings import BoqBindingManager
from roadcalc.boq.sheets import seed_actual_sheet
from roadcalc.config import get_config
from roadcalc.core.logging import configure_logging
from roadcalc.db.connection import close_db, get_engine, get_session
from roadcalc.db.models import Base
from roadcalc.errors import RoadCalcError
from roadcalc.formula.evaluator import evaluate as evaluate_expression
from roadcalc.formula.normalize import normalize_input_values
from roadcalc.progress.aggregator import rollup_by_phase_definition
from roadcalc.progress.service import load_project_progress
from roadcalc.repository.sqlalchemy import SqlAlchemyRepository

T = TypeVar("T")

app = typer.Typer(
    name="roadcalc",
    help="RoadCalc - Quantity formulas, BOQ bindings and progress for road works",
    no_args_is_help=True,
)

web_cli = typer.Typer(help="Web API")
app.add_typer(web_cli, name="web")

console = Console()


def _run(factory: Callable[[], Awaitable[T]]) -> T:
    """Run an async command body, reporting RoadCalc errors as a failed exit."""

    async def _main() -> T:
        try:
            return await factory()
        finally:
            await close_db()

    try:
        return asyncio.run(_main())
    except RoadCalcError as exc:
        console.print(f"[bold red]✗[/bold red] {exc.message}")
        raise typer.Exit(code=1) from exc


def _percent(ratio) -> str:
    return "-" if ratio is None else f"{ratio * 100:.1f}%"


@app.callback()
def main_callback(
    log_level: str | None = typer.Option(None, "--log-level", help="Override LOG_LEVEL"),
):
    configure_logging(level=log_level, log_format="text")


@app.command()
def init(
    drop: bool = typer.Option(False, "--drop", help="Drop existing tables"),
):
    """Initialize database schema."""
    config = get_config()
    console.print(f"[bold]Initializing database:[/bold] {config.db.url}")

    async def _init():
        engine = get_engine()
        async with engine.begin() as conn:
            if drop:
                console.print("[yellow]Dropping existing tables...[/yellow]")
                await conn.run_sync(Base.metadata.drop_all)
            console.print("[green]Creating tables...[/green]")
            await conn.run_sync(Base.metadata.create_all)

    _run(_init)
    console.print("[bold green]✓[/bold green] Database initialized")


@app.command()
def evaluate(
    expression: str = typer.Argument(..., help='Formula, e.g. "length * width"'),
    var: list[str] = typer.Option(
        [], "--var", "-v", help="Variable as name=value (repeatable)"
    ),
):
    """Evaluate a formula without touching the database."""
    raw: dict[str, str] = {}
    for entry in var:
        name, sep, value = entry.partition("=")
        if not sep:
            console.print(f"[bold red]✗[/bold red] --var expects name=value, got '{entry}'")
            raise typer.Exit(code=2)
        raw[name] = value

    variables = normalize_input_values(raw)
    dropped = sorted(set(raw) - set(variables))
    if dropped:
        console.print(f"[yellow]Ignoring non-numeric values:[/yellow] {', '.join(dropped)}")

    result = evaluate_expression(expression, variables)
    if result.error is not None:
        console.print(f"[bold red]{result.error.kind.value}:[/bold red] {result.error.message}")
        raise typer.Exit(code=1)
    console.print(f"[bold green]=[/bold green] {result.value}")


@app.command(name="seed-actual")
def seed_actual(
    project_id: int = typer.Option(..., "--project", help="Project ID"),
):
    """Clone the CONTRACT BOQ sheet into the ACTUAL sheet (once per project)."""

    async def _seed():
        async with get_session() as session:
            return await seed_actual_sheet(SqlAlchemyRepository(session), project_id)

    result = _run(_seed)
    if result.created:
        console.print(f"[bold green]✓[/bold green] Created {len(result.items)} ACTUAL rows")
    elif result.items:
        console.print(f"[yellow]ACTUAL sheet already has {len(result.items)} rows[/yellow]")
    else:
        console.print("[yellow]No CONTRACT rows to copy[/yellow]")


@app.command()
def bind(
    phase_item_id: int = typer.Argument(..., help="Phase item ID"),
    boq_item_ids: list[int] = typer.Argument(None, help="BOQ item IDs (none clears all)"),
):
    """Replace the set of BOQ items bound to a phase item."""
    batch_limit = get_config().quantity.batch_interval_limit

    async def _bind():
        async with get_session() as session:
            manager = BoqBindingManager(SqlAlchemyRepository(session), batch_limit)
            return await manager.set_bindings(phase_item_id, list(boq_item_ids or []))

    change = _run(_bind)
    console.print(
        f"[bold green]✓[/bold green] Active: {change.active or '-'} "
        f"(added {change.added or '-'}, removed {change.removed or '-'})"
    )


@app.command()
def progress(
    project_id: int | None = typer.Option(None, "--project", help="Project ID (default: all)"),
    by_phase: bool = typer.Option(False, "--by-phase", help="Sum each phase across roads"),
):
    """Show completion progress."""

    async def _load():
        async with get_session() as session:
            return await load_project_progress(SqlAlchemyRepository(session), project_id)

    roads = _run(_load)
    if not roads:
        console.print("[yellow]No roads found[/yellow]")
        return

    if by_phase:
        table = Table(title="Progress by Phase")
        table.add_column("Phase", style="cyan")
        table.add_column("Measure")
        table.add_column("Completed", justify="right")
        table.add_column("Target", justify="right")
        table.add_column("Progress", justify="right", style="green")
        table.add_column("Unmeasured", justify="right", style="yellow")
        table.add_column("Roads")
        for rollup in rollup_by_phase_definition(roads):
            table.add_row(
                rollup.name,
                rollup.measure.value,
                str(rollup.completed_quantity),
                str(rollup.target_quantity),
                _percent(rollup.display_ratio),
                str(rollup.unmeasured_count),
                ", ".join(rollup.road_names),
            )
        console.print(table)
        return

    table = Table(title="Progress by Road")
    table.add_column("Road / Phase", style="cyan")
    table.add_column("Completed", justify="right")
    table.add_column("Target", justify="right")
    table.add_column("Progress", justify="right", style="green")
    table.add_column("Measured", justify="right")
    table.add_column("Unmeasured", justify="right", style="yellow")
    for road in roads:
        table.add_row(
            f"[bold]{road.name}[/bold]",
            str(road.completed_quantity),
            str(road.target_quantity),
            _percent(road.display_ratio),
            str(road.measured_count),
            str(road.unmeasured_count),
        )
        for phase in road.phases:
            flag = " [red](over)[/red]" if phase.over_completed else ""
            table.add_row(
                f"  {phase.name}{flag}",
                str(phase.completed_quantity),
                str(phase.target_quantity),
                _percent(phase.display_ratio),
                str(phase.measured_count),
                str(phase.unmeasured_count),
            )
    console.print(table)


@web_cli.command("serve")
def web_serve(
    host: str = typer.Option("0.0.0.0", help="Host to bind"),
    port: int = typer.Option(8001, help="Port to bind"),
    reload: bool = typer.Option(False, help="Enable autoreload (dev only)"),
):
    """Run the FastAPI app."""
    import uvicorn

    typer.echo(f"Starting RoadCalc API on http://{host}:{port}")
    uvicorn.run("roadcalc.web.app:app", host=host, port=port, reload=reload, workers=1)


def main():
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
