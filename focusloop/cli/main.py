"""
Typer CLI for the focusloop engine.

Commands:
    focusloop next STUDENT        - Show the learner's next mission
    focusloop practice STUDENT    - Answer the next mission's questions interactively
    focusloop skills STUDENT      - Show the learner's skill ledger
    focusloop notes STUDENT       - Show behavioral notes
    focusloop sweep               - Cancel stale focus sessions
    focusloop serve               - Run the HTTP API
    focusloop db init             - Initialize database tables

Usage:
    focusloop --help
    focusloop next student-1 --style visual
    focusloop serve --port 8100
"""

from __future__ import annotations

import time

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.prompt import Prompt
from rich.table import Table

from focusloop import __version__
from focusloop.config import get_settings
from focusloop.core.errors import FocusloopError
from focusloop.core.logging import configure_logging
from focusloop.engine import MissionService

app = typer.Typer(
    help="focusloop CLI: adaptive mastery tracking and focus sessions",
    no_args_is_help=True,
)

console = Console()


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level"),
) -> None:
    settings = get_settings()
    configure_logging("DEBUG" if verbose else settings.log_level, settings.log_file)


def _service() -> MissionService:
    return MissionService.from_settings()


# ========================================
# Missions
# ========================================


@app.command("next")
def next_mission(
    student_id: str = typer.Argument(..., help="Learner identifier"),
    style: str | None = typer.Option(None, "--style", help="Learning style (visual, kinesthetic, logical)"),
) -> None:
    """Pick the learner's most urgent skill and show the mission."""
    try:
        mission = _service().next_mission(student_id, learning_style=style)
    except FocusloopError as e:
        rprint(f"[red]✗[/red] {e.message}")
        raise typer.Exit(code=1)

    skill = mission.target_skill
    rprint(f"[bold cyan]{mission.goal}[/bold cyan]")
    rprint(
        f"  Skill: {skill.display_name or skill.domain}  "
        f"Mastery: {skill.mastery:.0f}  Difficulty: {mission.difficulty.value}  "
        f"Format: {mission.question_format}"
    )
    rprint(f"  Session: [dim]{mission.session_id}[/dim]")

    for number, question in enumerate(mission.questions, start=1):
        rprint(f"  {number}. {question.text}")


@app.command("practice")
def practice(
    student_id: str = typer.Argument(..., help="Learner identifier"),
    style: str | None = typer.Option(None, "--style", help="Learning style"),
) -> None:
    """Answer the next mission's questions; each answer is graded immediately."""
    service = _service()
    try:
        mission = service.next_mission(student_id, learning_style=style)
    except FocusloopError as e:
        rprint(f"[red]✗[/red] {e.message}")
        raise typer.Exit(code=1)

    rprint(f"[bold cyan]{mission.goal}[/bold cyan]\n")
    skill = mission.target_skill

    for question in mission.questions:
        started = time.monotonic()
        answer = Prompt.ask(question.text)
        elapsed = time.monotonic() - started

        try:
            result = service.grade_attempt(
                mission.session_id, skill.id, question.text, answer, elapsed
            )
        except FocusloopError as e:
            rprint(f"[red]✗[/red] {e.message}")
            raise typer.Exit(code=1)

        color = "green" if result.mastery_delta > 0 else "red" if result.mastery_delta < 0 else "yellow"
        rprint(
            f"  [{color}]{result.mastery_delta:+g}[/{color}] mastery -> {result.new_mastery:.0f}"
            f"  {result.evaluation.feedback}"
        )
        if result.note is not None:
            rprint(f"  [magenta]Note:[/magenta] {result.note.comment}")

    for event in service.drain_events():
        logger.debug(f"Event {event.name}: {event.payload}")


@app.command("skills")
def show_skills(student_id: str = typer.Argument(..., help="Learner identifier")) -> None:
    """Show the learner's skills, most urgent first."""
    from focusloop.adaptive.urgency_ranker import rank

    service = _service()
    ranked = rank(service.list_skills(student_id), service.clock.now())
    if not ranked:
        rprint(f"[yellow]⚠[/yellow] No skills recorded for {student_id}")
        return

    table = Table(title=f"Skills for {student_id}", show_header=True)
    table.add_column("Skill", style="cyan")
    table.add_column("Mastery", justify="right", style="green")
    table.add_column("Confidence")
    table.add_column("Decay", justify="right")
    table.add_column("Days Since", justify="right", style="dim")
    table.add_column("Urgency", justify="right", style="yellow")

    for entry in ranked:
        skill = entry.skill
        table.add_row(
            skill.display_name or skill.domain,
            f"{skill.mastery:.0f}",
            skill.confidence.value,
            f"{skill.decay_rate:.2f}",
            f"{entry.days_since_seen:.1f}",
            f"{entry.urgency:.1f}",
        )

    console.print(table)


@app.command("notes")
def show_notes(student_id: str = typer.Argument(..., help="Learner identifier")) -> None:
    """Show behavioral notes raised while grading."""
    notes = _service().list_notes(student_id)
    if not notes:
        rprint(f"[dim]No notes for {student_id}[/dim]")
        return

    table = Table(title=f"Notes for {student_id}", show_header=True)
    table.add_column("When", style="dim")
    table.add_column("Type", style="cyan")
    table.add_column("Priority")
    table.add_column("Comment")

    for note in notes:
        table.add_row(
            note.created_at.strftime("%Y-%m-%d %H:%M") if note.created_at else "",
            note.note_type.value,
            note.priority.value,
            note.comment,
        )

    console.print(table)


# ========================================
# Maintenance
# ========================================


@app.command("sweep")
def sweep() -> None:
    """Cancel open focus sessions that ran past their duration plus grace."""
    service = _service()
    recovered = service.orchestrator.recover()
    cancelled = service.sweep()
    rprint(f"[green]✓[/green] Checked {recovered} open sessions, cancelled {len(cancelled)}")
    for session_id in cancelled:
        rprint(f"  [dim]{session_id}[/dim]")


@app.command("serve")
def serve(
    host: str | None = typer.Option(None, "--host", help="Bind address (default: from config)"),
    port: int | None = typer.Option(None, "--port", help="Port (default: from config)"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
) -> None:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "focusloop.api.main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=reload,
    )


db_app = typer.Typer(help="Database management")
app.add_typer(db_app, name="db")


@db_app.command("init")
def db_init() -> None:
    """
    Initialize database tables from SQLAlchemy models.

    Safe to run multiple times (idempotent).
    """
    from focusloop.db.database import init_db

    logger.info("Initializing database tables...")
    init_db()
    rprint("[green]✓[/green] Database initialized!")


@app.command("version")
def show_version() -> None:
    """Show version information."""
    rprint(f"[bold]focusloop[/bold] v{__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
