"""Command line entry points for WillPowr."""

from __future__ import annotations

import json
from dataclasses import asdict
from datetime import date, datetime
from enum import Enum
from typing import Any

import click

from .config import BaseConfig
from .logging_config import setup_logging
from .services.snapshots import HabitNotFound


def _jsonable(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


@click.group()
@click.pass_context
def main(ctx: click.Context) -> None:
    """Habit progress and sync tools."""

    ctx.ensure_object(dict)
    ctx.obj.setdefault("config", BaseConfig())


@main.command("init-db")
@click.pass_context
def init_db(ctx: click.Context) -> None:
    """Create the database schema."""

    from .infra.database import bootstrap_database

    config = ctx.obj["config"]
    setup_logging(config, process_name="cli")
    engine, _ = bootstrap_database(config)
    engine.dispose()
    click.echo(f"Database ready: {config.DATABASE_URL}")


@main.command("habits")
@click.pass_context
def list_habits(ctx: click.Context) -> None:
    """List habits with their current streak (read-only)."""

    from .context import create_widget_provider

    provider = create_widget_provider(ctx.obj["config"])
    summaries = provider.list_habits()
    if not summaries:
        click.echo("No habits yet.")
        return
    for summary in summaries:
        mark = "x" if summary.completed_today else " "
        click.echo(f"[{mark}] {summary.habit_id}  {summary.name}  streak={summary.current_streak}")


@main.command("snapshot")
@click.argument("habit_id")
@click.option("--days", type=int, default=None, help="Activity window in days")
@click.pass_context
def snapshot(ctx: click.Context, habit_id: str, days: int | None) -> None:
    """Print one habit's snapshot as JSON, the way the widget reads it."""

    from .context import create_widget_provider

    provider = create_widget_provider(ctx.obj["config"])
    result = provider.snapshot(habit_id, days)
    if isinstance(result, HabitNotFound):
        raise click.ClickException(f"Habit not found: {habit_id}")
    payload = asdict(result)
    click.echo(json.dumps(_jsonable(payload), indent=2))


@main.command("seed-history")
@click.option("--days", type=int, default=30, show_default=True, help="Past days to backfill")
@click.pass_context
def seed_history(ctx: click.Context, days: int) -> None:
    """Create preset habits and fill them with random past history."""

    from .context import create_app_context
    from .services.seed import seed_demo

    config = ctx.obj["config"]
    setup_logging(config, process_name="cli")
    app = create_app_context(config)
    try:
        summary = seed_demo(app.habits, days)
    finally:
        app.shutdown()
    click.echo(f"Seeded {summary.habits_created} habits and {summary.entries_written} entries.")


@main.command("repair-streaks")
@click.pass_context
def repair_streaks(ctx: click.Context) -> None:
    """Compact the store and recompute every habit's cached streak counters."""

    from .context import create_app_context

    config = ctx.obj["config"]
    setup_logging(config, process_name="cli")
    app = create_app_context(config)
    try:
        removed = app.habits.compact_store()
        if removed:
            click.echo(f"Removed {removed} stale entries.")
        for habit in app.habits.list_habits():
            summary = app.habits.repair_streak(habit.id)
            click.echo(f"{habit.name}: streak={summary.current} longest={summary.longest}")
    finally:
        app.shutdown()


if __name__ == "__main__":  # pragma: no cover
    main()
