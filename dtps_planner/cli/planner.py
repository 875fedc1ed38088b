# (Functional) **Command-line interface** (Typer app) exposing the planner.

"""
Main Command-Line Interface for the meal-plan scheduler.

Dietitians and support staff use it to inspect a client's chain of phases and
to run the same create / pause / extend / freeze commands the HTTP API offers.
"""
from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING, Callable, List, Optional, TypeVar

import typer
from rich.console import Console
from rich.table import Table
from typer import Argument, Option
from typing_extensions import Annotated

from dtps_planner.application.exceptions import ApplicationError
from dtps_planner.cli.status import DEFAULT_TIMEOUT_SECONDS, render_results, run_status_checks
from dtps_planner.domain.chain_view import effective_status
from dtps_planner.domain.date_math import parse_iso_date
from dtps_planner.domain.errors import SchedulingError
from dtps_planner.domain.events import CommandResult
from dtps_planner.infrastructure import log_utils

if TYPE_CHECKING:  # pragma: no cover - import for type checking only
    from dtps_planner.application.services import PlanningService

T = TypeVar("T")

console = Console()

app = typer.Typer(
    name="dtps",
    help="Schedule meal-plan phases: allowance, overlap checks, freezes and cascades.",
    add_completion=False,
)


def _build_service() -> "PlanningService":
    """Lazy import helper so ``--help`` works without a database."""
    from dtps_planner.application.services import PlanningService
    from dtps_planner.infrastructure.di_container import get_container

    return get_container().resolve(PlanningService)


def _run(action: Callable[[], T]) -> T:
    try:
        return action()
    except (SchedulingError, ApplicationError) as exc:
        log_utils.warn(f"CLI command failed: {exc}")
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)


def _parse_date(value: Optional[str]) -> Optional[date]:
    if value is None:
        return None
    return _run(lambda: parse_iso_date(value))


def _print_result(result: CommandResult) -> None:
    for phase in result.phases:
        console.print(
            f"[green]{phase.phase_id}[/green] {phase.start_date.isoformat()} -> "
            f"{phase.end_date.isoformat()} ({phase.status.value})"
        )
    for event in result.events:
        console.print(f"[cyan]{event.type.value}[/cyan] {event.phase_id}")


@app.command()
def chain(client_id: Annotated[str, Argument(help="Client identifier.")]) -> None:
    """List a client's phases in chain order."""
    service = _build_service()
    phases = _run(lambda: service.client_chain(client_id))
    if not phases:
        console.print("[yellow]No phases.[/yellow]")
        raise typer.Exit(code=0)

    today = service.clock()
    table = Table(header_style="bold cyan")
    for column in ("Phase", "Name", "Start", "End", "Days", "Frozen", "Status"):
        table.add_column(column)
    for phase in phases:
        table.add_row(
            phase.phase_id,
            phase.name or "",
            phase.start_date.isoformat(),
            phase.end_date.isoformat(),
            str(phase.original_duration_days),
            str(phase.total_freeze_count),
            effective_status(phase, today).value,
        )
    console.print(table)


@app.command()
def view(
    client_id: Annotated[str, Argument(help="Client identifier.")],
    today: Annotated[Optional[str], Option("--today", help="Reference date (YYYY-MM-DD).")] = None,
) -> None:
    """Show which phase the client is on: running, upcoming or completed."""
    reference = _parse_date(today)
    service = _build_service()
    result = _run(lambda: service.current_view(client_id, reference))
    if result.phase is None:
        typer.echo(result.label.value)
        raise typer.Exit(code=0)
    typer.echo(
        f"{result.label.value}: {result.phase.phase_id} "
        f"{result.phase.start_date.isoformat()} -> {result.phase.end_date.isoformat()}"
    )


@app.command()
def allowance(
    client_id: Annotated[str, Argument(help="Client identifier.")],
    days: Annotated[int, Option("--days", help="Length of the phase you want to create.")] = 1,
) -> None:
    """Check whether the client can afford another phase."""
    service = _build_service()
    report = _run(lambda: service.allowance_check(client_id, days))
    colour = "green" if report["can_create"] else "red"
    console.print(
        f"[{colour}]{report['message']}[/{colour}] "
        f"(used {report['days_used']}/{report['total_purchased_days']}, "
        f"remaining {report['remaining_days']})"
    )
    if not report["can_create"]:
        raise typer.Exit(code=1)


@app.command()
def create(
    purchase_id: Annotated[str, Argument(help="Purchase to draw plan-days from.")],
    days: Annotated[int, Option("--days", help="Phase duration in days.")],
    start_date: Annotated[
        Optional[str],
        Option("--start-date", help="Start date in YYYY-MM-DD format. Defaults to the next free day."),
    ] = None,
    name: Annotated[Optional[str], Option("--name", help="Display name for the phase.")] = None,
) -> None:
    """Create a new phase."""
    start = _parse_date(start_date)
    service = _build_service()
    result = _run(lambda: service.create_phase(purchase_id, start, days, name=name))
    _print_result(result)


@app.command()
def pause(
    phase_id: Annotated[str, Argument(help="Phase identifier.")],
    days: Annotated[int, Option("--days", help="Number of days to pause.")],
) -> None:
    """Pause a phase. A running phase gets its end date pushed back."""
    service = _build_service()
    _print_result(_run(lambda: service.pause_phase(phase_id, days)))


@app.command()
def resume(phase_id: Annotated[str, Argument(help="Phase identifier.")]) -> None:
    """Resume a paused phase."""
    service = _build_service()
    _print_result(_run(lambda: service.resume_phase(phase_id)))


@app.command()
def extend(
    phase_id: Annotated[str, Argument(help="Phase identifier.")],
    start_date: Annotated[str, Option("--start-date", help="New start date (YYYY-MM-DD).")],
) -> None:
    """Move a phase to a new start date and re-date the rest of the chain."""
    start = _parse_date(start_date)
    service = _build_service()
    _print_result(_run(lambda: service.extend_phase(phase_id, start)))


@app.command()
def freeze(
    phase_id: Annotated[str, Argument(help="Phase identifier.")],
    dates: Annotated[List[str], Argument(help="Dates to freeze (YYYY-MM-DD), in make-up order.")],
) -> None:
    """Freeze days of a phase and append make-up days."""
    service = _build_service()
    _print_result(_run(lambda: service.freeze_dates(phase_id, [parse_iso_date(d) for d in dates])))


@app.command()
def unfreeze(
    phase_id: Annotated[str, Argument(help="Phase identifier.")],
    dates: Annotated[List[str], Argument(help="Frozen dates to release (YYYY-MM-DD).")],
) -> None:
    """Release frozen days and pull the end date back."""
    service = _build_service()
    _print_result(_run(lambda: service.unfreeze_dates(phase_id, [parse_iso_date(d) for d in dates])))


@app.command()
def duplicate(
    phase_id: Annotated[str, Argument(help="Phase to copy.")],
    start_date: Annotated[
        Optional[str],
        Option("--start-date", help="Start date of the copy. Defaults to the next free day."),
    ] = None,
) -> None:
    """Create a new phase seeded with another phase's day content."""
    start = _parse_date(start_date)
    service = _build_service()
    _print_result(_run(lambda: service.duplicate_phase(phase_id, start)))


@app.command()
def delete(
    phase_id: Annotated[str, Argument(help="Phase identifier.")],
    yes: Annotated[bool, Option("--yes", "-y", help="Skip the confirmation prompt.")] = False,
) -> None:
    """Delete a phase. Used plan-days are not returned to the purchase."""
    if not yes and not typer.confirm(f"Delete phase {phase_id}?"):
        raise typer.Exit(code=1)
    service = _build_service()
    _print_result(_run(lambda: service.delete_phase(phase_id)))


@app.command(name="freeze-info")
def freeze_info(phase_id: Annotated[str, Argument(help="Phase identifier.")]) -> None:
    """Show the freeze quota and frozen days of a phase."""
    service = _build_service()
    summary = _run(lambda: service.freeze_info(phase_id))
    scope = "shared" if summary.shared else "phase"
    typer.echo(
        f"Freeze days: {summary.total_freeze_count}/{summary.allowed_freeze_days} used, "
        f"{summary.remaining_freeze_days} remaining ({scope} ledger)"
    )
    if summary.entries:
        table = Table(header_style="bold cyan")
        table.add_column("Frozen")
        table.add_column("Made up on")
        for entry in summary.entries:
            table.add_row(entry.frozen_date.isoformat(), entry.appended_date.isoformat())
        console.print(table)


@app.command(name="init-db")
def init_db() -> None:
    """Create the planner tables when they are missing."""
    from dtps_planner.infrastructure.di_container import get_container
    from dtps_planner.infrastructure.postgres_dal import PostgresDal

    dal = get_container().resolve(PostgresDal)
    dal.ensure_schema()
    typer.echo("Schema ready.")


@app.command()
def status(
    timeout: Annotated[float, Option("--timeout", help="Override per-dependency timeout in seconds.")] = DEFAULT_TIMEOUT_SECONDS,
) -> None:
    """Quick health check for the database, schema and log directory."""
    results = run_status_checks(timeout=timeout)
    typer.echo(render_results(results))
    exit_code = 0 if all(result.ok for result in results) else 1
    raise typer.Exit(code=exit_code)


if __name__ == "__main__":
    app()
