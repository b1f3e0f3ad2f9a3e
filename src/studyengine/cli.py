"""
studyengine: terminal front-end for flashcard study.

A Rich terminal interface over StudyEngine and the local SQLite store.

Commands:
- studyengine study     - Review due cards
- studyengine add       - Create a card
- studyengine stats     - Show counts, mastery, streak and weekly activity
- studyengine streak    - Check and show the study streak
- studyengine goal      - Show or change study goals
- studyengine reset     - Put a card back to New
- studyengine delete    - Delete a card
"""
from __future__ import annotations

import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Optional

import typer
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table

from .activity import ActivityState, ActivityTracker, days_studied, format_minutes
from .card import Card, MasteryLevel, Quality
from .clock import SystemClock
from .config import Settings, get_settings
from .engine import StudyEngine
from .errors import CardNotFoundError, PersistFailedError
from .review_log import ReviewLog
from .state_store import StateStore
from .telemetry import SessionSummary

# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="studyengine",
    help="studyengine: spaced repetition flashcards in the terminal",
    no_args_is_help=True,
)
console = Console()

QUALITY_STYLES = {
    Quality.AGAIN: "bold red",
    Quality.HARD: "yellow",
    Quality.GOOD: "green",
    Quality.EASY: "bold cyan",
}


@contextmanager
def open_engine(settings: Settings | None = None) -> Iterator[tuple[StudyEngine, StateStore]]:
    """Build an engine over the configured SQLite store and close it afterwards."""
    settings = settings or get_settings()
    clock = SystemClock(settings.study_timezone)
    store = StateStore(settings.study_db_path, tz=clock.tz)
    try:
        tracker = ActivityTracker(
            store,
            clock,
            defaults=ActivityState(
                daily_goal_minutes=settings.study_daily_goal_minutes,
                weekly_goal_days=settings.study_weekly_goal_days,
            ),
        )
        engine = StudyEngine(
            repository=store,
            activity=tracker,
            review_log=ReviewLog(store),
            history=store,
            clock=clock,
            due_limit=settings.study_due_limit,
            persist_retries=settings.study_persist_retries,
        )
        yield engine, store
    finally:
        store.close()


# =============================================================================
# Display Helpers
# =============================================================================


def display_card_front(card: Card, index: int, total: int) -> None:
    """Display the front of a card."""
    level = card.mastery
    header = f"Card {index}/{total}  |  [{level.color}]{level.value}[/{level.color}]"
    if card.scope:
        header += f"  |  {card.scope}"

    console.print(Panel(
        card.front,
        title=header,
        title_align="left",
        border_style="cyan",
        padding=(1, 2),
    ))


def display_card_back(card: Card, previews: dict[Quality, str]) -> None:
    """Display the answer and the interval each rating would give."""
    content = card.back
    if card.source_page is not None:
        content += f"\n\n[dim]Source: page {card.source_page}[/dim]"
    console.print(Panel(content, border_style="white", padding=(1, 2)))

    options = "   ".join(
        f"[{QUALITY_STYLES[q]}]{q.shortcut} {q.display_name}[/{QUALITY_STYLES[q]}] [dim]({previews[q]})[/dim]"
        for q in Quality
    )
    console.print(options)


def display_summary(summary: SessionSummary | None, engine: StudyEngine) -> None:
    if summary is None or summary.cards_processed == 0:
        console.print("[dim]No cards rated.[/dim]")
        return

    activity = engine.activity.state
    console.print(Panel(
        f"[bold]Session Complete![/bold]\n\n"
        f"Duration: {format_minutes(summary.minutes)}\n"
        f"Cards reviewed: {summary.cards_processed}\n"
        f"Cards skipped: {summary.cards_skipped}\n"
        f"Streak: {activity.current_streak} day(s)\n"
        f"Daily goal: {engine.activity.formatted_today_time} / "
        f"{format_minutes(activity.daily_goal_minutes)} ({engine.goal_progress * 100:.0f}%)",
        title="Summary",
        border_style="green",
    ))


def display_streak(engine: StudyEngine) -> None:
    activity = engine.activity.state
    flame = "[bold yellow]*[/bold yellow]" if engine.activity.has_studied_today else "[dim]-[/dim]"
    console.print(
        f"{flame} Current streak: [bold]{activity.current_streak}[/bold] day(s)  "
        f"[dim](longest {activity.longest_streak})[/dim]"
    )


# =============================================================================
# Commands
# =============================================================================


@app.command()
def study(
    book: Optional[str] = typer.Option(
        None,
        "--book", "-b",
        help="Only study cards from this book",
    ),
) -> None:
    """Start a study session over the due cards."""
    with open_engine() as (engine, _store):
        engine.check_streak_status()
        queue = engine.start_session(book)

        if queue.remaining() == 0:
            console.print("[green]No cards due. Nothing to study right now.[/green]")
            engine.end_session()
            raise typer.Exit(0)

        console.print(f"\n[bold cyan]{queue.remaining()} card(s) due[/bold cyan]\n")

        while (card := queue.current()) is not None and not queue.current_is_rated:
            display_card_front(card, queue.cursor + 1, len(queue))

            action = Prompt.ask(
                "[dim]Enter[/dim] show answer  [dim]s[/dim] skip  [dim]d[/dim] delete  [dim]q[/dim] quit",
                choices=["s", "d", "q"],
                default="",
                show_choices=False,
                show_default=False,
            )
            if action == "q":
                break
            if action == "s":
                engine.skip()
                continue
            if action == "d":
                if Confirm.ask("Delete this card?", default=False):
                    engine.delete(queue.cursor)
                    console.print("[yellow]Card deleted.[/yellow]")
                continue

            display_card_back(card, engine.preview_intervals(card))
            choice = Prompt.ask("Rate", choices=[q.shortcut for q in Quality])
            try:
                engine.rate(Quality.from_shortcut(choice))
            except PersistFailedError as exc:
                console.print(f"[bold yellow]{exc}. It will be saved again on the next action.[/bold yellow]")
            console.print(f"[dim]{engine.session_clock}[/dim]\n")

        summary = engine.end_session()
        display_summary(summary, engine)


@app.command()
def add(
    front: str = typer.Argument(..., help="Question side"),
    back: str = typer.Argument(..., help="Answer side"),
    book: Optional[str] = typer.Option(None, "--book", "-b", help="Book the card belongs to"),
    page: Optional[int] = typer.Option(None, "--page", "-p", help="Source page"),
) -> None:
    """Add a new flashcard (due immediately)."""
    with open_engine() as (engine, _store):
        card = engine.add_card(front, back, scope=book, source_page=page)
    console.print(f"[green]Added card[/green] [bold]{card.id}[/bold]")


@app.command()
def stats(
    book: Optional[str] = typer.Option(None, "--book", "-b", help="Limit card counts to one book"),
) -> None:
    """Show card counts, mastery, streak, goals and recent activity."""
    with open_engine() as (engine, store):
        engine.check_streak_status()
        counts = engine.counts(book)
        mastery = engine.mastery_counts(book)
        db_stats = store.get_stats(engine.clock.now())
        week = engine.weekly_activity()
        activity = engine.activity.state
        tracker = engine.activity
        sessions = store.get_session_history(limit=5)

    console.print("\n[bold cyan]Study Statistics[/bold cyan]")
    console.print("=" * 40)

    table = Table(show_header=False, box=None)
    table.add_column("Metric", style="dim")
    table.add_column("Value", style="bold")

    table.add_row("New", str(counts.new))
    table.add_row("Learning", str(counts.learning))
    table.add_row("Due", str(counts.due))
    table.add_row("Total reviews", str(db_stats["total_reviews"]))
    table.add_row("Retention rate", f"{db_stats['retention_rate_percent']:.1f}%")
    table.add_row("Current streak", f"{activity.current_streak} day(s)")
    table.add_row("Longest streak", f"{activity.longest_streak} day(s)")
    table.add_row(
        "Today",
        f"{tracker.formatted_today_time} / {format_minutes(activity.daily_goal_minutes)}"
        f" ({tracker.goal_progress * 100:.0f}%)",
    )
    studied = days_studied(week)
    table.add_row(
        "This week",
        f"{studied} / {activity.weekly_goal_days} days ({tracker.weekly_progress(studied) * 100:.0f}%)",
    )
    table.add_row("Total study time", tracker.formatted_total_time)

    console.print(table)

    mastery_table = Table(title="Mastery")
    for level in MasteryLevel:
        mastery_table.add_column(f"[{level.color}]{level.value}[/{level.color}]", justify="right")
    mastery_table.add_row(*(str(mastery[level]) for level in MasteryLevel))
    console.print(mastery_table)

    week_table = Table(title="Last 7 Days")
    week_table.add_column("Day")
    week_table.add_column("Minutes", justify="right")
    week_table.add_column("Cards", justify="right")
    for day in week:
        marker = "[green]*[/green]" if day.studied else " "
        week_table.add_row(f"{marker} {day.day:%a %d}", str(day.minutes), str(day.cards))
    console.print(week_table)

    if sessions:
        console.print("\n[bold]Recent Sessions[/bold]")
        session_table = Table()
        session_table.add_column("Date")
        session_table.add_column("Book")
        session_table.add_column("Cards")
        session_table.add_column("Duration")

        for s in sessions:
            session_table.add_row(
                s.started_at.strftime("%Y-%m-%d %H:%M"),
                s.scope or "all",
                str(s.cards_processed),
                format_minutes(s.duration_seconds // 60),
            )

        console.print(session_table)


@app.command()
def streak() -> None:
    """Check the study streak (lapses it after a missed day) and show it."""
    with open_engine() as (engine, _store):
        engine.check_streak_status()
        display_streak(engine)


@app.command()
def goal(
    daily: Optional[int] = typer.Option(None, "--daily", "-d", help="Daily goal in minutes (5-480)"),
    weekly: Optional[int] = typer.Option(None, "--weekly", "-w", help="Weekly goal in days (1-7)"),
) -> None:
    """Show or change the daily and weekly study goals."""
    with open_engine() as (engine, _store):
        if daily is not None:
            engine.update_daily_goal(daily)
        if weekly is not None:
            engine.update_weekly_goal(weekly)

        activity = engine.activity.state
        console.print(f"Daily goal: [bold]{format_minutes(activity.daily_goal_minutes)}[/bold]")
        console.print(f"Weekly goal: [bold]{activity.weekly_goal_days}[/bold] day(s)")


@app.command()
def reset(
    card_id: str = typer.Argument(..., help="Card to reset"),
) -> None:
    """Put a card back to the New stage, due now."""
    with open_engine() as (engine, _store):
        try:
            engine.reset_card(card_id)
        except CardNotFoundError as exc:
            console.print(f"[red]{exc}[/red]")
            raise typer.Exit(1)
    console.print(f"[green]Card {card_id} reset.[/green]")


@app.command()
def delete(
    card_id: str = typer.Argument(..., help="Card to delete"),
    confirm: bool = typer.Option(
        False,
        "--yes", "-y",
        help="Skip confirmation",
    ),
) -> None:
    """Delete a card."""
    if not confirm and not Confirm.ask(f"Delete card {card_id}?", default=False):
        raise typer.Exit(0)

    with open_engine() as (engine, store):
        if store.get(card_id) is None:
            console.print(f"[red]{CardNotFoundError(card_id)}[/red]")
            raise typer.Exit(1)
        engine.delete_card(card_id)
    console.print(f"[green]Card {card_id} deleted.[/green]")


# =============================================================================
# Entry Point
# =============================================================================

def main() -> None:
    """CLI entry point."""
    settings = get_settings()

    # Configure logging
    logger.remove()
    logger.add(
        sys.stderr,
        level=settings.log_level,
        format="<level>{message}</level>",
    )

    app()


if __name__ == "__main__":
    main()
