"""
Cadence CLI.

A thin Rich terminal layer over the LearningEngine, useful for inspecting
scheduling decisions without a frontend.

Commands:
- cadence plan          - Build a session plan from a curriculum and saved item state
- cadence review        - Show SM-2 transitions for a sequence of grades
- cadence replay        - Replay recorded biometric samples through a live session
- cadence achievements  - List milestone definitions
"""
from __future__ import annotations

import asyncio
import json
import sys
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import typer
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from config import get_settings
from src.adaptive.learning_engine import LearningEngine
from src.adaptive.live_session import StepKind
from src.core.clock import FixedClock
from src.core.exceptions import CadenceError
from src.delivery.scheduler import MemoryItemScheduler, SM2Config
from src.learning.achievements import DEFAULT_ACHIEVEMENTS

# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="cadence",
    help="Cadence: adaptive review scheduling",
    no_args_is_help=True,
)
console = Console()

STYLES = {
    "stress_break": "bold red",
    "reduce_cognitive_load": "bold yellow",
    "engagement_boost": "bold magenta",
}


@app.callback()
def configure(verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs")) -> None:
    """Configure logging for every command."""
    settings = get_settings()
    logger.remove()
    logger.add(
        sys.stderr,
        level="DEBUG" if verbose else settings.log_level,
        format="<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}",
    )


def _load_json(path: Path | None, default):
    if path is None:
        return default
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[red]Cannot read {path}: {e}[/red]")
        raise typer.Exit(1)


def _parse_time(value: str | None) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    try:
        moment = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        console.print(f"[red]Not an ISO timestamp: {value}[/red]")
        raise typer.Exit(1)
    return moment if moment.tzinfo else moment.replace(tzinfo=timezone.utc)


async def _engine_with_state(
    user: str,
    curriculum: list,
    state: list,
    clock: FixedClock,
) -> LearningEngine:
    engine = LearningEngine(
        clock=clock,
        curriculum=[entry["id"] if isinstance(entry, dict) else str(entry) for entry in curriculum],
    )
    if state:
        await engine.profiles.import_items(user, state, clock.now())
    return engine


# =============================================================================
# Commands
# =============================================================================


@app.command()
def plan(
    user: str = typer.Option("learner", "--user", "-u", help="Learner id"),
    curriculum: Optional[Path] = typer.Option(None, "--curriculum", "-c", help="JSON list of content ids"),
    state: Optional[Path] = typer.Option(None, "--state", "-s", help="JSON list of saved memory items"),
    signals: Optional[str] = typer.Option(None, "--signals", help="Context signals as a JSON object"),
    at: Optional[str] = typer.Option(None, "--at", help="Learner-local ISO timestamp"),
    hour: Optional[int] = typer.Option(None, "--hour", min=0, max=23, help="Override local hour"),
    age_group: Optional[str] = typer.Option(None, "--age-group", help="child, adolescent, adult or senior"),
    as_json: bool = typer.Option(False, "--json", help="Print the plan as JSON"),
) -> None:
    """Build and display a session plan."""
    try:
        context = json.loads(signals) if signals else None
    except json.JSONDecodeError:
        console.print("[yellow]Ignoring unreadable --signals[/yellow]")
        context = None

    now = _parse_time(at)
    clock = FixedClock(now)

    async def build():
        engine = await _engine_with_state(user, _load_json(curriculum, []), _load_json(state, []), clock)
        await engine.create_profile(user, age_group)
        return await engine.request_session_plan(user, now, context, local_hour=hour)

    try:
        session_plan = asyncio.run(build())
    except CadenceError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    if as_json:
        console.print_json(json.dumps(session_plan.to_dict()))
        return

    header = (
        f"{session_plan.time_of_day.value} | load {session_plan.cognitive_load_level.value} | "
        f"~{session_plan.estimated_minutes} min"
    )
    table = Table(title=f"Session plan for {user}", caption=header)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Content")
    table.add_column("Kind")
    table.add_column("Due", style="dim")
    table.add_column("Difficulty", justify="right")
    curve = session_plan.difficulty_progression
    for index, item in enumerate(session_plan.items, 1):
        due = item.next_review_at.strftime("%Y-%m-%d") if item.next_review_at else "-"
        style = "cyan" if item.kind == "review" else "green"
        difficulty = f"{curve[index - 1]:.2f}" if index <= len(curve) else "-"
        table.add_row(str(index), item.content_id, f"[{style}]{item.kind}[/{style}]", due, difficulty)
    console.print(table)
    if session_plan.methods:
        console.print(f"  [dim]Methods: {', '.join(session_plan.methods)}[/dim]")

    for pause in session_plan.break_intervals:
        console.print(f"  [dim]BREAK at {pause.offset_seconds // 60} min ({pause.duration_seconds // 60} min)[/dim]")
    for activity in session_plan.consolidation_activities:
        console.print(f"  [green]CONSOLIDATION[/green] {len(activity.content_ids)} items")


@app.command()
def review(
    grades: str = typer.Argument(..., help="Comma-separated grades, e.g. 4,4,2"),
    easiness: float = typer.Option(2.5, "--easiness", help="Starting easiness factor"),
) -> None:
    """Show how an item's schedule evolves over a sequence of grades."""
    scheduler = MemoryItemScheduler(SM2Config.from_settings(get_settings()))
    now = datetime.now(timezone.utc)
    item = scheduler.new_item("item", now)
    item = replace(item, easiness_factor=easiness)

    table = Table(title="SM-2 transitions")
    table.add_column("Grade", justify="right")
    table.add_column("Interval (d)", justify="right")
    table.add_column("Repetitions", justify="right")
    table.add_column("Easiness", justify="right")
    table.add_column("Next review")

    try:
        for raw in grades.split(","):
            grade = float(raw) if "." in raw else int(raw)
            item = scheduler.record_review(item, grade, now)
            table.add_row(
                raw.strip(),
                str(item.interval_days),
                str(item.repetition_count),
                f"{item.easiness_factor:.2f}",
                item.next_review_at.strftime("%Y-%m-%d"),
            )
            now = item.next_review_at
    except ValueError:
        console.print(f"[red]Not a grade: {raw!r}[/red]")
        raise typer.Exit(1)
    except CadenceError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    console.print(table)


@app.command()
def replay(
    samples: Path = typer.Argument(..., help="JSON list of biometric samples"),
    user: str = typer.Option("learner", "--user", "-u", help="Learner id"),
    curriculum: Optional[Path] = typer.Option(None, "--curriculum", "-c", help="JSON list of content ids"),
    seed: Optional[int] = typer.Option(None, "--seed", help="Seed for gamified element choice"),
) -> None:
    """
    Replay samples through a live session and show the adjustments issued.

    A sample may carry a ``performance`` key, or a timed answer as
    ``correct`` plus ``response_ms``; the current step is then completed
    with that grade after the sample is processed.
    """
    records = _load_json(samples, [])
    if not isinstance(records, list):
        console.print("[red]Samples file must contain a JSON list[/red]")
        raise typer.Exit(1)

    first = next((r.get("captured_at") for r in records if isinstance(r, dict) and r.get("captured_at")), None)
    clock = FixedClock(_parse_time(first))

    async def run():
        engine = await _engine_with_state(user, _load_json(curriculum, []), [], clock)
        if seed is not None:
            engine.rng.seed(seed)
        session_plan = await engine.request_session_plan(user, clock.now())
        session_id = await engine.open_session(session_plan)
        rows = []
        try:
            for index, record in enumerate(records, 1):
                if isinstance(record, dict) and record.get("captured_at"):
                    clock.set(_parse_time(record["captured_at"]))
                issued = await engine.submit_biometric_sample(session_id, record)
                rows.append((index, clock.now(), issued))
                if isinstance(record, dict) and ("performance" in record or "correct" in record):
                    step = engine.current_step(session_id)
                    if step is None:
                        continue
                    if step.kind not in (StepKind.REVIEW, StepKind.NEW):
                        await engine.complete_item(session_id)
                    elif "performance" in record:
                        await engine.complete_item(session_id, record["performance"])
                    else:
                        await engine.complete_item(
                            session_id, is_correct=bool(record["correct"]), response_ms=record.get("response_ms")
                        )
        finally:
            summary = await engine.close_session(session_id)
        return rows, summary

    try:
        rows, summary = asyncio.run(run())
    except CadenceError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    table = Table(title="Adjustments")
    table.add_column("Sample", justify="right", style="dim")
    table.add_column("Time")
    table.add_column("Issued")
    for index, moment, issued in rows:
        kinds = ", ".join(
            f"[{STYLES[a.kind.value]}]{a.kind.value}[/{STYLES[a.kind.value]}]" for a in issued
        ) or "[dim]-[/dim]"
        table.add_row(str(index), moment.strftime("%H:%M:%S"), kinds)
    console.print(table)
    console.print(
        Panel(
            f"Items completed: {summary.items_completed}\n"
            f"Breaks taken: {summary.breaks_taken}\n"
            f"Adjustments: {len(summary.adjustments)}\n"
            f"Study time: {summary.study_seconds // 60} min",
            title="[bold]Session summary[/bold]",
            border_style="cyan",
        )
    )


@app.command()
def achievements() -> None:
    """List milestone definitions."""
    table = Table(title="Achievements")
    table.add_column("Id")
    table.add_column("Title")
    table.add_column("Metric")
    table.add_column("Threshold", justify="right")
    for achievement in DEFAULT_ACHIEVEMENTS:
        table.add_row(achievement.achievement_id, achievement.title, achievement.metric, str(achievement.threshold))
    console.print(table)


# =============================================================================
# Entry Point
# =============================================================================


def run() -> None:
    """Console script entry point."""
    app()


if __name__ == "__main__":
    run()
