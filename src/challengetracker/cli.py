"""Command-line interface for challengetracker.

Built with Typer for commands and Rich for output.
"""

import json
import logging
from datetime import date, datetime
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .config import LOG_LEVELS, get_config
from .db import get_db

# Create the main app
app = typer.Typer(
    name="challengetracker",
    help="Track challenge progress, points and leaderboards.",
    no_args_is_help=True,
)

# Rich console for pretty output
console = Console()

MEDALS = {1: "🥇", 2: "🥈", 3: "🥉"}


# ============================================================================
# Helper Functions
# ============================================================================


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[bold red]Error:[/bold red] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[bold green]Success:[/bold green] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[bold yellow]Warning:[/bold yellow] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[dim]{message}[/dim]")


def configure_logging(level: str = "WARNING") -> None:
    """Route package logs through Rich on stderr."""
    if level not in LOG_LEVELS:
        level = "WARNING"
    logger = logging.getLogger("challengetracker")
    logger.setLevel(level)
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        logger.addHandler(RichHandler(console=Console(stderr=True), show_path=False))


def get_manager():
    from .challenges import ChallengeManager

    return ChallengeManager(get_db())


def require_challenge(manager, challenge_id: str):
    challenge = manager.get_challenge(challenge_id)
    if not challenge:
        print_error(f"Challenge not found: {challenge_id}")
        raise typer.Exit(1)
    return challenge


def resolve_objective(challenge, ref: str):
    """Find an objective by id, 1-based number or title."""
    for objective in challenge.objectives:
        if objective.id == ref:
            return objective
    if ref.isdigit() and 1 <= int(ref) <= len(challenge.objectives):
        return challenge.objectives[int(ref) - 1]
    for objective in challenge.objectives:
        if objective.title.lower() == ref.lower():
            return objective
    print_error(f"Objective not found: {ref}")
    raise typer.Exit(1)


def parse_day(value: Optional[str], option: str) -> Optional[date]:
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        print_error(f"Invalid {option} date: {value} (expected YYYY-MM-DD)")
        raise typer.Exit(1)


def format_number(value: float) -> str:
    return f"{value:g}"


def progress_bar(percent: float, width: int = 20) -> str:
    filled = int((percent / 100) * width)
    return "[green]" + "#" * filled + "[/green]" + "-" * (width - filled)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    """Track challenge progress, points and leaderboards."""
    configure_logging("DEBUG" if verbose else get_config().log_level)


# ============================================================================
# Challenge Commands
# ============================================================================


@app.command()
def create(
    file: Path = typer.Argument(..., help="JSON file with the challenge definition"),
) -> None:
    """Create a challenge from a JSON definition.

    The file holds the challenge fields (title, challenge_type, start_date,
    end_date, caped_points, is_repeating, is_collaborative) and a list of
    objectives (title, target_value, unit, points_per_unit).
    """
    from .challenges import ChallengeCreate

    if not file.exists():
        print_error(f"File not found: {file}")
        raise typer.Exit(1)

    try:
        data = ChallengeCreate.model_validate_json(file.read_text(encoding="utf-8"))
    except ValidationError as e:
        print_error(f"Invalid challenge definition:\n{escape(str(e))}")
        raise typer.Exit(1)

    manager = get_manager()
    try:
        challenge = manager.create_challenge(data)
    except ValueError as e:
        print_error(escape(str(e)))
        raise typer.Exit(1)

    print_success(f"Created challenge: {challenge.title}")
    print_info(f"ID: {challenge.id}")


@app.command("list")
def list_challenges(
    user: Optional[str] = typer.Option(None, "--user", "-u", help="Only challenges this user joined"),
) -> None:
    """List challenges."""
    manager = get_manager()
    challenges = manager.list_challenges(user_id=user)

    if not challenges:
        console.print("[dim]No challenges found. Create one with 'create FILE'[/dim]")
        return

    table = Table(title="Challenges", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim")
    table.add_column("Title", style="cyan")
    table.add_column("Type", style="yellow")
    table.add_column("Dates")
    table.add_column("Objectives", justify="right")
    table.add_column("Participants", justify="right")
    table.add_column("Points", justify="right")

    for ch in challenges:
        dates = f"{ch.start_date or '?'} → {ch.end_date or 'open'}"
        table.add_row(
            ch.id,
            ch.title,
            ch.challenge_type,
            dates,
            str(len(ch.objectives)),
            str(len(ch.participants)),
            format_number(ch.total_points),
        )

    console.print(table)


@app.command()
def show(
    challenge_id: str = typer.Argument(..., help="Challenge ID"),
    as_json: bool = typer.Option(False, "--json", help="Print the challenge as JSON"),
) -> None:
    """Show a challenge with its objectives and participants."""
    from .challenges import ChallengeResponse

    manager = get_manager()
    challenge = require_challenge(manager, challenge_id)

    if as_json:
        response = ChallengeResponse.model_validate(challenge)
        console.print_json(response.model_dump_json())
        return

    flags = [
        name
        for name, on in (
            ("capped", challenge.caped_points),
            ("repeating", challenge.is_repeating),
            ("collaborative", challenge.is_collaborative),
        )
        if on
    ]
    lines = [
        f"[bold]{challenge.title}[/bold]",
        challenge.description or "",
        f"Type: {challenge.challenge_type}",
        f"Dates: {challenge.start_date or '?'} → {challenge.end_date or 'open'}",
        f"Total points: {format_number(challenge.total_points)}",
    ]
    if flags:
        lines.append(f"Flags: {', '.join(flags)}")
    console.print(Panel("\n".join(lines), title="Challenge", style="cyan"))

    table = Table(title="Objectives", show_header=True, header_style="bold magenta")
    table.add_column("#", justify="right")
    table.add_column("ID", style="dim")
    table.add_column("Title", style="cyan")
    table.add_column("Target", justify="right")
    table.add_column("Unit")
    table.add_column("Points/unit", justify="right")
    for i, objective in enumerate(challenge.objectives, 1):
        table.add_row(
            str(i),
            objective.id,
            objective.title,
            format_number(objective.target_value),
            objective.unit or "-",
            format_number(objective.points_per_unit),
        )
    console.print(table)

    if challenge.participants:
        console.print(f"\n[bold]Participants ({len(challenge.participants)}):[/bold]")
        for p in challenge.participants:
            window = f" ({p.start_date} → {p.end_date or 'open'})" if p.start_date else ""
            console.print(f"  - {p.user_id}{window}")


@app.command()
def delete(
    challenge_id: str = typer.Argument(..., help="Challenge ID"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Delete a challenge and all of its entries."""
    manager = get_manager()
    challenge = require_challenge(manager, challenge_id)

    if not yes and not typer.confirm(f"Delete '{challenge.title}'?", default=False):
        print_info("Cancelled")
        return

    manager.delete_challenge(challenge_id)
    print_success(f"Deleted challenge: {challenge.title}")


# ============================================================================
# Participant Commands
# ============================================================================


@app.command()
def join(
    challenge_id: str = typer.Argument(..., help="Challenge ID"),
    user: str = typer.Argument(..., help="User ID"),
    start: Optional[str] = typer.Option(None, "--start", "-s", help="Start date for repeating challenges (YYYY-MM-DD)"),
) -> None:
    """Join a challenge."""
    manager = get_manager()
    try:
        participant = manager.join_challenge(challenge_id, user, parse_day(start, "start"))
    except ValueError as e:
        print_error(escape(str(e)))
        raise typer.Exit(1)

    print_success(f"{user} joined the challenge")
    if participant.start_date:
        print_info(f"Window: {participant.start_date} → {participant.end_date or 'open'}")


@app.command()
def leave(
    challenge_id: str = typer.Argument(..., help="Challenge ID"),
    user: str = typer.Argument(..., help="User ID"),
) -> None:
    """Leave a challenge. Logged entries are kept."""
    manager = get_manager()
    if not manager.leave_challenge(challenge_id, user):
        print_error(f"{user} is not a participant of {challenge_id}")
        raise typer.Exit(1)
    print_success(f"{user} left the challenge")


# ============================================================================
# Entry Commands
# ============================================================================


@app.command()
def log(
    challenge_id: str = typer.Argument(..., help="Challenge ID"),
    user: str = typer.Argument(..., help="User ID"),
    objective: str = typer.Argument(..., help="Objective ID, number or title"),
    value: float = typer.Argument(1.0, help="Amount of progress"),
    notes: Optional[str] = typer.Option(None, "--notes", "-n", help="Notes for the entry"),
    at: Optional[str] = typer.Option(None, "--at", help="Entry timestamp (ISO 8601, default now)"),
) -> None:
    """Log progress against an objective."""
    from .challenges import EntryCreate

    manager = get_manager()
    challenge = require_challenge(manager, challenge_id)
    target = resolve_objective(challenge, objective)

    created_at = None
    if at:
        try:
            created_at = datetime.fromisoformat(at)
        except ValueError:
            print_error(f"Invalid timestamp: {at}")
            raise typer.Exit(1)
        if created_at.tzinfo is None:
            # Naive timestamps are local time
            if manager.tz:
                created_at = created_at.replace(tzinfo=manager.tz)
            else:
                created_at = created_at.astimezone()

    try:
        data = EntryCreate(
            user_id=user,
            challenge_id=challenge.id,
            objective_id=target.id,
            value=value,
            created_at=created_at,
            notes=notes,
        )
        manager.log_progress(data)
    except ValueError as e:
        print_error(escape(str(e)))
        raise typer.Exit(1)

    amount = f"{format_number(value)} {target.unit}" if target.unit else format_number(value)
    print_success(f"Logged {amount} for '{target.title}'")

    if challenge.challenge_type == "bingo":
        line = manager.check_bingo(user, challenge.id)
        if line:
            console.print(f"[bold magenta]BINGO![/bold magenta] Completed {line}")


@app.command()
def reset(
    challenge_id: str = typer.Argument(..., help="Challenge ID"),
    user: str = typer.Argument(..., help="User ID"),
    objective: str = typer.Argument(..., help="Objective ID, number or title"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Delete all of a user's entries for one objective."""
    manager = get_manager()
    challenge = require_challenge(manager, challenge_id)
    target = resolve_objective(challenge, objective)

    if not yes and not typer.confirm(f"Reset '{target.title}' for {user}?", default=False):
        print_info("Cancelled")
        return

    count = manager.reset_objective(user, challenge.id, target.id)
    print_success(f"Removed {count} entries from '{target.title}'")


# ============================================================================
# Progress Commands
# ============================================================================


@app.command()
def progress(
    challenge_id: str = typer.Argument(..., help="Challenge ID"),
    user: str = typer.Argument(..., help="User ID"),
) -> None:
    """Show a user's progress in a challenge."""
    from .engine.points import points_earned

    manager = get_manager()
    challenge = require_challenge(manager, challenge_id)

    rows = manager.get_user_progress(user, challenge.id)
    summary = manager.get_progress_summary(user, challenge.id)
    finished_at = manager.get_completion_time(user, challenge.id)

    table = Table(title=f"{challenge.title}: {user}", show_header=True, header_style="bold magenta")
    table.add_column("Objective", style="cyan")
    table.add_column("Current", justify="right")
    table.add_column("Target", justify="right")
    table.add_column("Points", justify="right")

    definition = manager.to_definition(challenge)
    for objective, row in zip(definition.objectives, rows):
        current = row.current_value
        table.add_row(
            objective.title,
            format_number(current),
            format_number(objective.target_value),
            format_number(points_earned(objective, current, challenge.caped_points)),
        )
    console.print(table)

    console.print(
        f"\n  Progress: [{progress_bar(summary.percent)}] {summary.percent:.1f}%"
        f"  ({format_number(summary.current)} / {format_number(summary.total)})"
    )
    if finished_at:
        console.print(f"  [bold green]Completed[/bold green] at {finished_at.isoformat()}")


@app.command()
def leaderboard(
    challenge_id: str = typer.Argument(..., help="Challenge ID"),
) -> None:
    """Show the challenge leaderboard."""
    manager = get_manager()
    challenge = require_challenge(manager, challenge_id)

    rows = manager.get_leaderboard(challenge.id)
    if not rows:
        console.print("[dim]No participants yet. Join with 'join ID USER'[/dim]")
        return

    table = Table(title=f"Leaderboard: {challenge.title}", show_header=True, header_style="bold magenta")
    table.add_column("Pos", justify="right")
    table.add_column("User", style="cyan")
    table.add_column("Score", justify="right")
    if challenge.caped_points:
        table.add_column("Uncapped", justify="right")
    table.add_column("Finished")
    table.add_column("")

    for row in rows:
        cells = [str(row.position), row.user_id, format_number(row.score)]
        if challenge.caped_points:
            cells.append(format_number(row.uncapped_score))
        cells.append(row.completion_time.strftime("%Y-%m-%d %H:%M") if row.completion_time else "-")
        cells.append(MEDALS.get(row.completion_order, ""))
        table.add_row(*cells)

    console.print(table)


@app.command()
def bingo(
    challenge_id: str = typer.Argument(..., help="Challenge ID"),
    user: str = typer.Argument(..., help="User ID"),
) -> None:
    """Show a bingo card and announce any new line."""
    from .engine.aggregation import bingo_completion_count
    from .engine.bingo import GRID_SIZE, completed_objective_ids, is_bingo_grid

    manager = get_manager()
    challenge = require_challenge(manager, challenge_id)
    definition = manager.to_definition(challenge)

    if not is_bingo_grid(definition):
        print_error(f"Not a {GRID_SIZE}x{GRID_SIZE} bingo card: {len(definition.objectives)} objectives")
        raise typer.Exit(1)

    values = manager.get_progress(user, challenge.id)
    done = completed_objective_ids(definition, values)

    table = Table(title=f"Bingo: {challenge.title}", show_header=False, show_lines=True)
    for _ in range(GRID_SIZE):
        table.add_column(justify="center", max_width=16)
    for r in range(GRID_SIZE):
        cells = []
        for objective in definition.objectives[r * GRID_SIZE : (r + 1) * GRID_SIZE]:
            count = bingo_completion_count(values.get(objective.id, 0.0), objective.target_value)
            if objective.id in done:
                mark = "[bold green]✓[/bold green]" + (f" x{count}" if count > 1 else "")
                cells.append(f"{mark}\n{objective.title}")
            else:
                cells.append(f"[dim]{objective.title}[/dim]")
        table.add_row(*cells)
    console.print(table)

    line = manager.check_bingo(user, challenge.id)
    if line:
        console.print(f"[bold magenta]BINGO![/bold magenta] Completed {line}")
    else:
        announced = manager.get_announced_lines(user, challenge.id)
        print_info(f"Lines so far: {', '.join(announced) if announced else 'none'}")


@app.command()
def days(
    challenge_id: str = typer.Argument(..., help="Challenge ID"),
    user: str = typer.Argument(..., help="User ID"),
    show_all: bool = typer.Option(False, "--all", "-a", help="Show every day of the window"),
) -> None:
    """List the days on which every objective was logged."""
    manager = get_manager()
    challenge = require_challenge(manager, challenge_id)

    if show_all:
        calendar = manager.get_day_calendar(user, challenge.id)
        if not calendar:
            print_info("No days in this challenge window yet")
            return

        table = Table(title=f"Calendar: {user}", show_header=True, header_style="bold magenta")
        table.add_column("Date", style="cyan")
        table.add_column("Weekday")
        table.add_column("Done", justify="center")
        for d, done in calendar:
            table.add_row(d.isoformat(), d.strftime("%A"), "[green]✓[/green]" if done else "-")
        console.print(table)
        print_info(f"{sum(1 for _, done in calendar if done)} of {len(calendar)} day(s) completed")
        return

    completed = manager.get_completed_days(user, challenge.id)
    if not completed:
        console.print("[dim]No completed days yet[/dim]")
        return

    table = Table(title=f"Completed days: {user}", show_header=True, header_style="bold magenta")
    table.add_column("Date", style="cyan")
    table.add_column("Weekday")
    for d in completed:
        table.add_row(d.isoformat(), d.strftime("%A"))
    console.print(table)
    print_info(f"{len(completed)} day(s) completed")


@app.command()
def version() -> None:
    """Show version information."""
    from . import __version__

    console.print(f"challengetracker version {__version__}")


@app.command("config")
def show_config() -> None:
    """Show the active configuration."""
    config = get_config()
    settings = {
        "db_path": str(config.db_path),
        "timezone": config.timezone or "system",
        "cache_ttl": config.cache_ttl,
        "log_level": config.log_level,
    }
    console.print_json(json.dumps(settings))
    for error in config.validate():
        print_warning(error)


# ============================================================================
# Main Entry Point
# ============================================================================


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
