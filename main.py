"""Entry point for the journey tracker.

Usage:
    python main.py start --goal-id g1 --goal-id g2    # New journey after plan generation
    python main.py status --tasks tasks.json          # Reconcile from a goal export
    python main.py status --api                       # Reconcile from the goal API
    python main.py validate --tasks tasks.json --day 5
    python main.py history --limit 10
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys

import click

from goals.client import GoalsAPIError, GoalsClient
from goals.models import TaskRecord, tasks_from_goals
from journey import (
    can_progress_to_next_day,
    journey_summary,
    parse_iso,
    program_from_config,
    resolve_tasks,
    stage_for_day,
    validate,
)
from journey.stages import day_in_stage, is_reflection_day, stage_progress
from tracker.config import load_config
from tracker.core import JourneyService, ReconcileResult
from tracker.memory import ProgressionState, StoreError


def _setup_logging(verbose: bool = False, log_file: str | None = None) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    fmt = "%(asctime)s — %(name)s — %(levelname)s — %(message)s"

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(level=level, format=fmt, handlers=handlers)

    # Quiet down noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def _read_tasks(path: str) -> list[TaskRecord]:
    with open(path, encoding="utf-8") as f:
        try:
            payload = json.load(f)
        except ValueError as e:
            raise click.ClickException(f"{path} is not valid JSON: {e}") from e
    return tasks_from_goals(payload)


def _echo_result(service: JourneyService, result: ReconcileResult) -> None:
    state = result.state
    program = service.program
    stage = stage_for_day(state.current_day, program)
    progress = stage_progress(stage, state.current_day)
    check = can_progress_to_next_day(result.instance.tasks, state.current_day)
    summary = journey_summary(result.instance.tasks, program)

    click.echo(f"\n  Day {state.current_day}/{program.total_days}")
    if is_reflection_day(state.current_day, program):
        click.echo(f"  Stage {stage.id} of {len(program.stages)} • reflection day")
    else:
        click.echo(
            f"  Stage {stage.id} of {len(program.stages)} • "
            f"Day {day_in_stage(stage, state.current_day)} of {len(stage.work_days)} "
            f"({progress['percentage']}% of stage)"
        )
    click.echo(f"  Streak: {state.streak} days • XP: {state.xp}")
    click.echo(
        f"  Tasks: {summary.completed_tasks}/{summary.total_tasks} • "
        f"Overall: {summary.completion_percentage}%"
    )
    click.echo(f"  Next day: {'yes' if check.can_progress else 'no'} - {check.reason}")

    if result.validation.new_journey:
        click.echo(f"  New journey ({result.validation.signal})")
    for repair in result.validation.repairs:
        click.echo(f"  Repaired [{repair.check}]: {repair.reason}")
    for warning in result.validation.warnings:
        click.echo(f"  Warning: {warning}")
    if not result.persisted:
        click.echo("  Progress not saved yet - will retry on next sync.")
    click.echo("")


@click.group()
@click.option("--verbose", is_flag=True, help="Enable debug logging")
@click.option("--config-dir", type=click.Path(), default=None, help="Config directory")
@click.pass_context
def main(ctx: click.Context, verbose: bool, config_dir: str | None) -> None:
    """21-day journey tracker. Keeps progression consistent with your tasks."""
    cfg = load_config(config_dir)
    _setup_logging(verbose=verbose, log_file=cfg.get("storage", {}).get("log_file"))
    ctx.obj = cfg


@main.command()
@click.option("--goal-id", "goal_ids", multiple=True, help="Goal ids of the generated plan")
@click.pass_obj
def start(cfg: dict, goal_ids: tuple[str, ...]) -> None:
    """Start a fresh journey at day 1."""
    service = JourneyService(cfg)
    try:
        instance = asyncio.run(service.start_journey(goal_ids=goal_ids))
    except StoreError as e:
        raise click.ClickException(str(e)) from e
    click.echo(f"Journey {instance.journey_id} started: Day 1, Streak 0, XP 0")


@main.command()
@click.option("--tasks", "tasks_path", type=click.Path(exists=True, dir_okay=False), default=None,
              help="JSON export of goals/tasks")
@click.option("--api", "use_api", is_flag=True, help="Fetch tasks from the goal API")
@click.option("--interactions", type=int, default=None, help="Caller's interaction count")
@click.pass_obj
def status(cfg: dict, tasks_path: str | None, use_api: bool, interactions: int | None) -> None:
    """Reconcile progression with the current tasks and show it."""
    if not tasks_path and not use_api:
        raise click.UsageError("Specify --tasks FILE or --api.")

    service = JourneyService(cfg)

    async def _run() -> ReconcileResult:
        if use_api:
            api_cfg = cfg.get("api", {})
            async with GoalsClient(
                api_cfg.get("base_url", ""),
                token=cfg["_secrets"]["goals_api_token"],
                timeout=float(api_cfg.get("timeout", 30)),
            ) as client:
                return await service.sync_from_api(client, interaction_count=interactions)
        return await service.reconcile(_read_tasks(tasks_path), interaction_count=interactions)

    try:
        result = asyncio.run(_run())
    except (GoalsAPIError, StoreError) as e:
        raise click.ClickException(str(e)) from e
    _echo_result(service, result)


@main.command(name="validate")
@click.option("--tasks", "tasks_path", type=click.Path(exists=True, dir_okay=False), required=True)
@click.option("--day", type=int, required=True, help="Current day to check")
@click.option("--streak", type=int, default=0)
@click.option("--xp", type=int, default=0)
@click.option("--start-date", default=None, help="Journey start (ISO-8601) for date-based tasks")
@click.pass_obj
def validate_cmd(
    cfg: dict,
    tasks_path: str,
    day: int,
    streak: int,
    xp: int,
    start_date: str | None,
) -> None:
    """Check an externally stored state against the tasks, without saving."""
    if start_date and parse_iso(start_date) is None:
        raise click.BadParameter(f"not an ISO-8601 timestamp: {start_date}", param_hint="--start-date")

    resolved = resolve_tasks(_read_tasks(tasks_path), start_date)
    state = ProgressionState(current_day=day, streak=streak, xp=xp)
    result = validate(state, resolved, program_from_config(cfg))

    click.echo(json.dumps(
        {
            "state": result.state.to_dict(),
            "repairs": [repair.to_dict() for repair in result.repairs],
            "warnings": result.warnings,
        },
        indent=2,
    ))


@main.command()
@click.option("--limit", type=int, default=10, show_default=True)
@click.pass_obj
def history(cfg: dict, limit: int) -> None:
    """Show recent repairs and journey events."""
    service = JourneyService(cfg)
    rows = asyncio.run(service.recent_history(limit))

    click.echo("\n  Repairs:")
    for row in rows["repairs"]:
        click.echo(f"  {row['created_at']}  [{row['check_name']}] {row['reason']}")
    click.echo("\n  Events:")
    for row in rows["events"]:
        click.echo(f"  {row['created_at']}  {row['event_type']}: {row['description']}")
    click.echo("")


if __name__ == "__main__":
    main()
