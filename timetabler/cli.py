"""
Command-line interface for the timetabling engine.

Usage:
    python -m timetabler solve input.json -o output.json --algorithm csp
    python -m timetabler validate input.json
    python -m timetabler view output.json --teacher T001
    python -m timetabler metrics output.json
    python -m timetabler generate sample.json --size medium --seed 7
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table
from rich.text import Text

from .data.generator import (
    generate_medium_institution,
    generate_small_institution,
    get_generation_stats,
    save_generated_institution,
)
from .data.loader import load_timetable_input, validate_timetable_input
from .data.models import TimetableInput, Weekday
from .engine import OptimizationEngine
from .errors import DataValidationError
from .output.schema import EntryOutput, TimetableOutput
from .strategies import Algorithm

# Create Typer app
app = typer.Typer(
    name="timetabler",
    help="Institutional timetable optimizer with greedy, search and metaheuristic strategies.",
    add_completion=False,
)

# Rich console for pretty output
console = Console()


# =============================================================================
# Helper Functions
# =============================================================================

def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=verbose)],
        force=True,
    )


def load_input(input_path: Path) -> TimetableInput:
    """Load and validate input data."""
    if not input_path.exists():
        console.print(f"[red]Error:[/red] Input file not found: {input_path}")
        raise typer.Exit(code=1)

    try:
        return load_timetable_input(input_path)
    except json.JSONDecodeError as e:
        console.print(f"[red]Invalid JSON:[/red] {e}")
        raise typer.Exit(code=1)
    except DataValidationError as e:
        console.print("[red]Error loading input:[/red]")
        for issue in e.issues:
            console.print(f"  - {issue}")
        raise typer.Exit(code=1)


def load_output(output_path: Path) -> TimetableOutput:
    """Load output JSON file."""
    if not output_path.exists():
        console.print(f"[red]Error:[/red] Output file not found: {output_path}")
        raise typer.Exit(code=1)

    try:
        with open(output_path) as f:
            return TimetableOutput.model_validate(json.load(f))
    except (json.JSONDecodeError, ValueError) as e:
        console.print(f"[red]Error loading output:[/red] {e}")
        raise typer.Exit(code=1)


def print_summary(output: TimetableOutput) -> None:
    """Print solution summary to console."""
    status_color = "green" if output.success else "red"
    status_text = Text("SUCCESS" if output.success else "FAILED", style=f"bold {status_color}")
    duration = output.metrics.get("total_duration_ms", output.metrics.get("duration_ms", 0))

    console.print(Panel(
        status_text,
        title=f"Solution Status ({output.algorithm or 'n/a'})",
        subtitle=f"Solved in {duration / 1000:.2f}s",
    ))

    if not output.success:
        console.print(f"[red]Reason:[/red] {output.reason}")
        for issue in output.validation_errors:
            console.print(f"  - {issue}")

    table = Table(title="Summary", show_header=False, box=None)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="white")

    table.add_row("Scheduled Sessions", str(len(output.solution)))
    table.add_row("Unscheduled Sessions", str(len(output.unscheduled)))
    table.add_row("Conflicts", str(len(output.conflicts)))
    if output.views is not None:
        table.add_row("Teachers", str(len(output.views.by_teacher)))
        table.add_row("Classrooms Used", str(len(output.views.by_classroom)))
        table.add_row("Days", str(len(output.views.by_day)))
    if output.quality is not None:
        table.add_row("Quality Score", f"{output.quality.overall_score:.1f} ({output.quality.grade})")

    console.print(table)


# =============================================================================
# Commands
# =============================================================================

@app.command()
def solve(
    input_file: Path = typer.Argument(
        ...,
        help="Path to input JSON file with teachers, classrooms and courses",
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output", "-o",
        help="Path to write output JSON file",
    ),
    algorithm: Optional[str] = typer.Option(
        None,
        "--algorithm", "-a",
        help=f"Strategy: {', '.join(a.value for a in Algorithm)}",
    ),
    seed: Optional[int] = typer.Option(
        None,
        "--seed", "-s",
        help="Random seed for reproducible runs",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Enable debug logging",
    ),
) -> None:
    """
    Optimize a timetable.

    Loads the input data, runs the selected strategy, and outputs the solution.

    Example:
        python -m timetabler solve input.json -o output.json --algorithm genetic --seed 42
    """
    configure_logging(verbose)
    console.print(f"\n[bold]Loading input from:[/bold] {input_file}")

    input_data = load_input(input_file)
    console.print(
        f"[green]Loaded:[/green] {len(input_data.courses)} courses, "
        f"{len(input_data.teachers)} teachers, {len(input_data.classrooms)} classrooms"
    )

    updates = {}
    if algorithm:
        updates["algorithm"] = algorithm
    if seed is not None:
        updates["random_seed"] = seed
    settings = input_data.settings.model_copy(update=updates)
    engine = OptimizationEngine(settings)

    console.print(f"\n[bold]Optimizing with {settings.algorithm}...[/bold]")
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.percentage:>3.0f}%"),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Starting...", total=100)

        def report(percent: float, message: str, **extras) -> None:
            progress.update(task, completed=percent, description=message)

        result = engine.optimize(
            input_data.teachers,
            input_data.classrooms,
            input_data.courses,
            progress=report,
        )

    timetable_output = result.to_output(
        teacher_names={t.id: t.name for t in input_data.teachers if t.name},
        classroom_names={r.id: r.name for r in input_data.classrooms if r.name},
    )

    console.print()
    print_summary(timetable_output)

    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        with open(output, "w") as f:
            f.write(timetable_output.to_json())
        console.print(f"\n[green]Solution saved to:[/green] {output}")

    if not result.success:
        raise typer.Exit(code=1)
    console.print()


@app.command()
def validate(
    input_file: Path = typer.Argument(
        ...,
        help="Path to input JSON file to validate",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Show detailed validation results",
    ),
) -> None:
    """
    Validate input data.

    Checks for:
    - Valid JSON structure
    - Schema compliance
    - Completeness (subjects, availability, capacities, assignments)

    Example:
        python -m timetabler validate input.json
    """
    configure_logging(verbose)
    console.print(f"\n[bold]Validating:[/bold] {input_file}\n")

    if not input_file.exists():
        console.print(f"[red]Error:[/red] File not found: {input_file}")
        raise typer.Exit(code=1)

    # Step 1: JSON parsing
    console.print("[cyan]1. Checking JSON syntax...[/cyan]")
    try:
        with open(input_file) as f:
            json.load(f)
        console.print("   [green]JSON syntax is valid[/green]")
    except json.JSONDecodeError as e:
        console.print(f"   [red]Invalid JSON:[/red] {e}")
        raise typer.Exit(code=1)

    # Step 2: Schema validation
    console.print("[cyan]2. Validating against schema...[/cyan]")
    try:
        input_data = load_timetable_input(input_file)
        console.print("   [green]Schema validation passed[/green]")
    except DataValidationError as e:
        console.print("   [red]Schema validation failed:[/red]")
        for issue in e.issues:
            console.print(f"   - {issue}")
        raise typer.Exit(code=1)

    # Step 3: Completeness
    console.print("[cyan]3. Checking completeness...[/cyan]")
    report = validate_timetable_input(input_data)
    if report.warnings:
        console.print("   [yellow]Warnings found:[/yellow]")
        for w in report.warnings:
            console.print(f"   - {w}")
    if report.errors:
        console.print("   [red]Issues found:[/red]")
        for issue in report.errors:
            console.print(f"   - {issue}")
    elif not report.warnings:
        console.print("   [green]No completeness issues[/green]")

    # Summary
    console.print("\n[bold]Summary:[/bold]")
    table = Table(show_header=False, box=None)
    table.add_column("Entity", style="cyan")
    table.add_column("Count", style="white")
    for name, value in input_data.summary().items():
        table.add_row(name.replace("_", " ").capitalize(), str(value))
    console.print(table)

    if verbose:
        stats = get_generation_stats(input_data)
        console.print("\n[bold]Detailed breakdown:[/bold]")
        console.print(f"  Time slots per week: {stats['time_slots']}")
        console.print(f"  Room utilization needed: {stats['utilization_percent']}%")

    if not report.is_valid:
        console.print("\n[red]Validation failed.[/red]\n")
        raise typer.Exit(code=1)
    console.print("\n[green]Validation complete.[/green]\n")


@app.command()
def view(
    output_file: Path = typer.Argument(
        ...,
        help="Path to output JSON file",
    ),
    teacher: Optional[str] = typer.Option(
        None,
        "--teacher", "-T",
        help="Show schedule for specific teacher ID",
    ),
    room: Optional[str] = typer.Option(
        None,
        "--room", "-R",
        help="Show schedule for specific classroom ID",
    ),
    day: Optional[str] = typer.Option(
        None,
        "--day", "-D",
        help="Show schedule for specific day (monday, tuesday, etc.)",
    ),
) -> None:
    """
    Display specific views of a timetable solution.

    Examples:
        python -m timetabler view output.json --teacher T001
        python -m timetabler view output.json --room LH01
        python -m timetabler view output.json --day monday
    """
    output = load_output(output_file)
    if output.views is None:
        console.print("[red]Error:[/red] Output has no schedule to view")
        raise typer.Exit(code=1)

    if teacher:
        _show_entity(output.views.by_teacher, teacher, "Teacher")
    elif room:
        _show_entity(output.views.by_classroom, room, "Classroom")
    elif day:
        _show_day(output, day)
    else:
        _show_overview(output)


def _show_entity(views: dict[str, list[EntryOutput]], entity_id: str, label: str) -> None:
    entries = views.get(entity_id)
    if not entries:
        console.print(f"[red]Error:[/red] {label} '{entity_id}' not found")
        console.print(f"Available: {', '.join(views.keys())}")
        raise typer.Exit(code=1)

    name = entries[0].teacher_name if label == "Teacher" else entries[0].classroom_name
    console.print(Panel(f"[bold]{name or entity_id}[/bold] ({entity_id})", title=f"{label} Schedule"))
    _print_entries(entries, show_day=True)


def _show_day(output: TimetableOutput, day_name: str) -> None:
    try:
        day = Weekday(day_name.strip().capitalize())
    except ValueError:
        console.print(f"[red]Error:[/red] Invalid day '{day_name}'")
        console.print(f"Valid days: {', '.join(d.value.lower() for d in Weekday)}")
        raise typer.Exit(code=1)

    entries = output.views.by_day.get(day.value)
    if not entries:
        console.print(f"[yellow]No sessions scheduled for {day.value}[/yellow]")
        return
    console.print(Panel(f"[bold]{day.value}[/bold]", title="Daily Schedule"))
    _print_entries(entries, show_day=False)


def _show_overview(output: TimetableOutput) -> None:
    """Summary plus a week grid counting sessions per start time."""
    print_summary(output)

    start_times = sorted({e.start_time for e in output.solution})
    days = list(output.views.by_day.keys())
    if not start_times or not days:
        console.print("[yellow]No sessions scheduled[/yellow]")
        return

    table = Table(title="Week Grid", show_header=True, header_style="bold cyan")
    table.add_column("Time", style="dim")
    for day in days:
        table.add_column(day[:3], justify="center")
    for start in start_times:
        row = [start]
        for day in days:
            count = sum(1 for e in output.views.by_day[day] if e.start_time == start)
            row.append(str(count) if count else "-")
        table.add_row(*row)
    console.print(table)


def _print_entries(entries: list[EntryOutput], show_day: bool) -> None:
    table = Table(show_header=True, header_style="bold")
    if show_day:
        table.add_column("Day", style="cyan")
    table.add_column("Time")
    table.add_column("Course")
    table.add_column("Type")
    table.add_column("Group")
    table.add_column("Teacher")
    table.add_column("Classroom")

    for entry in entries:
        row = [entry.day] if show_day else []
        row += [
            f"{entry.start_time}-{entry.end_time}",
            entry.course_code,
            entry.session_type,
            "/".join(filter(None, [entry.division_id, entry.batch_id])) or "-",
            entry.teacher_name or entry.teacher_id,
            entry.classroom_name or entry.classroom_id,
        ]
        table.add_row(*row)
    console.print(table)


@app.command()
def metrics(
    output_file: Path = typer.Argument(
        ...,
        help="Path to output JSON file",
    ),
    format: str = typer.Option(
        "table",
        "--format", "-f",
        help="Output format: table or json",
    ),
) -> None:
    """
    Display quality metrics, conflicts and recommendations of a solution.

    Examples:
        python -m timetabler metrics output.json
        python -m timetabler metrics output.json --format json
    """
    output = load_output(output_file)
    if output.quality is None:
        console.print("[red]Error:[/red] Output has no quality metrics")
        raise typer.Exit(code=1)

    if format == "json":
        console.print_json(json.dumps({
            "quality": output.quality.model_dump(by_alias=True),
            "recommendations": [r.model_dump() for r in output.recommendations],
        }))
        return

    console.print(Panel("[bold]Timetable Quality Metrics[/bold]"))
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Metric")
    table.add_column("Score")

    quality = output.quality
    for label, value in [
        ("Constraint Compliance", quality.constraint_compliance),
        ("Room Utilization", quality.room_utilization),
        ("Schedule Balance", quality.schedule_balance),
        ("Teacher Satisfaction", quality.teacher_satisfaction),
        ("Student Convenience", quality.student_convenience),
    ]:
        color = "green" if value >= 80 else "yellow" if value >= 60 else "red"
        table.add_row(label, f"[{color}]{value:.1f}[/{color}]")
    table.add_row("[bold]Overall Score[/bold]", f"[bold]{quality.overall_score:.1f} ({quality.grade})[/bold]")
    console.print(table)

    if output.conflicts:
        console.print(f"\n[bold red]Conflicts ({len(output.conflicts)}):[/bold red]")
        for conflict in output.conflicts:
            console.print(f"  [red]*[/red] {conflict.message}")

    if output.recommendations:
        console.print("\n[bold yellow]Recommendations:[/bold yellow]")
        for rec in output.recommendations:
            console.print(f"  [yellow]*[/yellow] [{rec.priority}] {rec.message}. {rec.action}")


@app.command()
def generate(
    output_file: Path = typer.Argument(
        ...,
        help="Path to write the generated input JSON",
    ),
    size: str = typer.Option(
        "small",
        "--size",
        help="Institution size: small or medium",
    ),
    seed: Optional[int] = typer.Option(
        None,
        "--seed", "-s",
        help="Random seed for reproducible data",
    ),
) -> None:
    """
    Generate a synthetic institution for testing.

    Example:
        python -m timetabler generate sample.json --size medium --seed 7
    """
    generators = {"small": generate_small_institution, "medium": generate_medium_institution}
    if size not in generators:
        console.print(f"[red]Error:[/red] Unknown size '{size}' (choose small or medium)")
        raise typer.Exit(code=1)

    data = generators[size](seed=seed)
    save_generated_institution(data, output_file)

    stats = get_generation_stats(data)
    table = Table(title="Generated Institution", show_header=False, box=None)
    table.add_column("Entity", style="cyan")
    table.add_column("Count", style="white")
    for name, value in stats.items():
        table.add_row(name.replace("_", " ").capitalize(), str(value))
    console.print(table)
    console.print(f"\n[green]Data saved to:[/green] {output_file}")


# =============================================================================
# Main Entry Point
# =============================================================================

def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
