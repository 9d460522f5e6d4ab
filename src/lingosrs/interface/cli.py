"""lingosrs CLI: operator commands over the local learner store."""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Annotated, Any

import typer
from pydantic import ValidationError

from lingosrs.application.config import AppConfig, resolve_config
from lingosrs.application.factory import get_scheduling_service
from lingosrs.application.logging_setup import setup_logging
from lingosrs.consts import VERSION
from lingosrs.domain.errors import SchedulingError

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="lingosrs: spaced-repetition scheduling for bite-size lessons.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

config_app = typer.Typer(help="Manage lingosrs configuration.")
app.add_typer(config_app, name="config")

LearnerOption = Annotated[str, typer.Option("--learner", "-l", help="Learner id.")]
JsonOption = Annotated[bool, typer.Option("--json", help="Output as JSON.")]


# ---------------------------------------------------------------------------
# Global callback
# ---------------------------------------------------------------------------


@app.callback()
def main_callback(
    ctx: typer.Context,
    backend: Annotated[
        str | None, typer.Option("--backend", help="Store backend: memory or sqlite.")
    ] = None,
    db_path: Annotated[Path | None, typer.Option("--db", help="SQLite database path.")] = None,
    log_level: Annotated[
        str | None, typer.Option("--log-level", help="DEBUG, INFO, WARNING or ERROR.")
    ] = None,
):
    """Global settings for lingosrs."""
    ctx.ensure_object(dict)
    ctx.obj["overrides"] = {
        "store_backend": backend,
        "db_path": db_path,
        "log_level": log_level.upper() if log_level else None,
    }


def _config(ctx: typer.Context) -> AppConfig:
    overrides: dict[str, Any] = (ctx.obj or {}).get("overrides", {})
    try:
        return resolve_config(overrides)
    except ValidationError as e:
        typer.secho(f"Invalid configuration: {e}", fg="red")
        raise typer.Exit(2) from e


def _run(ctx: typer.Context, action):
    """Build the service from config, run one coroutine and map domain errors."""
    config = _config(ctx)
    setup_logging(config)
    service = get_scheduling_service(config)
    try:
        return asyncio.run(action(service))
    except SchedulingError as e:
        typer.secho(f"{type(e).__name__}: {e}", fg="red")
        raise typer.Exit(1) from e


def _dump(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2, default=str))


# ---------------------------------------------------------------------------
# Root commands
# ---------------------------------------------------------------------------


@app.command()
def version():
    """Print the lingosrs version."""
    typer.echo(VERSION)


@app.command()
def due(ctx: typer.Context, learner: LearnerOption, json_output: JsonOption = False):
    """Show the lessons due today and the advisory item counts."""
    from lingosrs.server import DueScheduleResponse

    plan = _run(ctx, lambda service: service.get_due_schedule(learner))
    if json_output:
        _dump(DueScheduleResponse.from_domain(plan).model_dump(mode="json"))
        return

    typer.echo(f"Due lessons: {len(plan.due_lessons)}")
    for lesson in plan.due_lessons:
        color = "red" if lesson.priority.value == "high" else None
        typer.secho(
            f"  {lesson.lesson_id}  score={lesson.last_score}  "
            f"due={lesson.next_review_at:%Y-%m-%d %H:%M}  [{lesson.priority.value}]",
            fg=color,
        )
    typer.echo(f"Due items: {plan.due_item_count}")
    typer.echo(
        f"Today: {plan.new_cards_today} new (cap {plan.daily_new_cap}), "
        f"{plan.reviews_due_today} reviews (cap {plan.daily_review_cap})"
    )
    typer.echo(f"Estimated: {plan.estimated_minutes} min")
    if plan.urgency.value != "normal":
        typer.secho(f"Urgency: {plan.urgency.value}", fg="yellow")


@app.command()
def stats(ctx: typer.Context, learner: LearnerOption, json_output: JsonOption = False):
    """Show the learner's progress snapshot."""
    from lingosrs.server import ProgressResponse

    snap = _run(ctx, lambda service: service.get_progress(learner))
    if json_output:
        _dump(ProgressResponse.from_domain(snap).model_dump(mode="json"))
        return

    typer.echo(f"Streak: {snap.current_streak} (longest {snap.longest_streak})")
    typer.echo(f"Lessons this period: {snap.lessons_completed_this_period}")
    typer.echo(
        f"Items: {snap.items.total} total, {snap.items.mastered} mastered, "
        f"{snap.items.learning} learning, {snap.items.new} new, {snap.items.due} due"
    )
    typer.echo(f"Lapse rate: {snap.items.lapse_rate}")
    typer.echo(
        "Levels: " + ", ".join(f"{lvl}={n}" for lvl, n in snap.level_distribution.items())
    )
    typer.echo("Last 7 days:")
    for day in snap.weekly_activity:
        typer.echo(f"  {day.day.isoformat()}  lessons={day.lessons}  reviews={day.reviews}")


@app.command()
def recommend(ctx: typer.Context, learner: LearnerOption, json_output: JsonOption = False):
    """Suggest what the learner should drill, skip and add today."""
    from lingosrs.server import StudyPlanResponse

    plan = _run(ctx, lambda service: service.get_recommendations(learner))
    if json_output:
        _dump(StudyPlanResponse.from_domain(plan).model_dump(mode="json"))
        return

    typer.echo(f"Focus areas: {', '.join(plan.focus_areas) or 'none'}")
    typer.echo(f"Review first: {', '.join(plan.review_first) or 'none'}")
    typer.echo(f"Skip today: {', '.join(plan.skip_today) or 'none'}")
    typer.echo(f"Session: {plan.suggested_minutes} min, difficulty {plan.difficulty.value}")
    typer.echo(f"New words today: {plan.new_words_limit}")
    typer.echo(f"Next level: {plan.next_level_target}")


@app.command()
def complete(
    ctx: typer.Context,
    event_file: Annotated[
        Path, typer.Argument(help="JSON completion event (same body as the HTTP API).")
    ],
    learner: LearnerOption,
):
    """Submit a lesson completion event from a JSON file."""
    from lingosrs.server import CompletionRequest

    try:
        req = CompletionRequest.model_validate_json(event_file.read_text(encoding="utf-8"))
    except (OSError, ValidationError) as e:
        typer.secho(f"Cannot read completion event {event_file}: {e}", fg="red")
        raise typer.Exit(2) from e

    result = _run(ctx, lambda service: service.submit_completion(learner, req.to_event()))
    if result.replayed:
        typer.secho(f"Completion {result.completion_id} was already recorded.", fg="yellow")
    else:
        typer.secho(f"Recorded completion {result.completion_id}.", fg="green")
    typer.echo(
        f"Lesson {result.progress.lesson_id}: next review "
        f"{result.progress.next_review_at:%Y-%m-%d} ({result.progress.review_interval_days}d)"
    )
    typer.echo(f"Items updated: {result.items_updated}, streak: {result.current_streak}")


@app.command()
def caps(
    ctx: typer.Context,
    learner: LearnerOption,
    new: Annotated[int | None, typer.Option("--new", help="Daily new-item cap.")] = None,
    reviews: Annotated[int | None, typer.Option("--reviews", help="Daily review cap.")] = None,
):
    """Set the learner's advisory daily caps."""
    profile = _run(ctx, lambda service: service.set_daily_caps(learner, new, reviews))
    typer.echo(f"Caps: {profile.daily_new_cap} new, {profile.daily_review_cap} reviews")


@app.command()
def erase(
    ctx: typer.Context,
    learner: LearnerOption,
    force: Annotated[
        bool, typer.Option("--force", "-f", help="Bypass confirmation for destructive actions.")
    ] = False,
):
    """Delete every record stored for a learner."""
    if not force:
        typer.confirm(f"Erase all data for learner {learner!r}?", abort=True)
    removed = _run(ctx, lambda service: service.erase_learner(learner))
    typer.secho(f"Erased {removed} records.", fg="green")


@app.command()
def serve(
    ctx: typer.Context,
    host: Annotated[str | None, typer.Option(help="Bind address.")] = None,
    port: Annotated[int | None, typer.Option(help="Bind port.")] = None,
    reload: Annotated[bool, typer.Option("--reload", help="Auto-reload on code changes.")] = False,
):
    """Run the HTTP API server."""
    import uvicorn

    config = _config(ctx)
    setup_logging(config)
    bind_host = host or config.host
    bind_port = port or config.port
    logger.info(f"Serving lingosrs API on http://{bind_host}:{bind_port}")
    uvicorn.run(
        "lingosrs.server:app",
        host=bind_host,
        port=bind_port,
        reload=reload,
        log_level=config.log_level.lower(),
    )


# ---------------------------------------------------------------------------
# Config subgroup
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show(ctx: typer.Context):
    """Display final resolved configuration."""
    config = _config(ctx)
    d = {k: str(v) if isinstance(v, Path) else v for k, v in config.model_dump().items()}
    # Tokens are secrets
    d["api_tokens"] = sorted(set(d.get("api_tokens", {}).values()))
    typer.echo(json.dumps(d, indent=2))


if __name__ == "__main__":
    app()
