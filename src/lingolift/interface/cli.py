"""LingoLift CLI: sync, review and lesson commands."""

import asyncio
import json
import logging
from enum import Enum
from pathlib import Path
from typing import Annotated, Any

import typer
from pydantic import ValidationError

from lingolift.application.config import AppConfig, resolve_config
from lingolift.application.log_setup import setup_logging
from lingolift.application.srs import Grade
from lingolift.domain.errors import LingoLiftError

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="lingolift: offline-first flashcard lessons with multi-device sync.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

lessons_app = typer.Typer(help="Manage local lessons.", no_args_is_help=True)
app.add_typer(lessons_app, name="lessons")

review_app = typer.Typer(help="Study due cards.", no_args_is_help=True)
app.add_typer(review_app, name="review")

config_app = typer.Typer(help="Manage lingolift configuration.")
app.add_typer(config_app, name="config")

logger = logging.getLogger(__name__)


class GradeChoice(str, Enum):
    AGAIN = "again"
    HARD = "hard"
    GOOD = "good"
    EASY = "easy"


class AuthorityChoice(str, Enum):
    SERVER = "server"
    LOCAL = "local"


def _resolve_with_overrides(ctx: typer.Context | None = None, **overrides: Any) -> AppConfig:
    if ctx is not None and ctx.obj:
        overrides.setdefault("verbose", ctx.obj.get("verbose_bonus"))
    try:
        return resolve_config({k: v for k, v in overrides.items() if v is not None})
    except ValidationError as e:
        typer.secho(f"Error: invalid configuration: {e}", fg="red", err=True)
        raise typer.Exit(1) from e


def _run(coro) -> Any:
    """Run a coroutine, turning library failures into a red message and exit code 1."""
    try:
        return asyncio.run(coro)
    except LingoLiftError as e:
        typer.secho(f"Error: {e}", fg="red", err=True)
        raise typer.Exit(1) from e


# ---------------------------------------------------------------------------
# Global callback
# ---------------------------------------------------------------------------


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose", "-v", count=True, help="Increase verbosity. Repeat for more detail."
        ),
    ] = 1,
):
    """Global settings for lingolift."""
    ctx.ensure_object(dict)
    ctx.obj["verbose_bonus"] = verbose


# ---------------------------------------------------------------------------
# Sync
# ---------------------------------------------------------------------------


@app.command()
def sync(
    ctx: typer.Context,
    server_url: Annotated[str | None, typer.Option(help="Sync server base URL.")] = None,
    api_key: Annotated[str | None, typer.Option(help="Bearer token for the server.")] = None,
    reset: Annotated[
        bool, typer.Option("--reset", help="Zero the watermark first (full resync).")
    ] = False,
    multi_user: Annotated[
        bool | None,
        typer.Option("--multi-user/--single-user", help="Sync variant for this device."),
    ] = None,
    content_authority: Annotated[
        AuthorityChoice | None,
        typer.Option(help="Who wins card text conflicts: server or local."),
    ] = None,
):
    """[bold green]Sync[/bold green] local lessons and review progress with the server."""
    config = _resolve_with_overrides(
        ctx,
        server_url=server_url,
        api_key=api_key,
        multi_user=multi_user,
        content_authority=content_authority.value if content_authority else None,
    )
    setup_logging(config.log_dir, config.verbose)

    from lingolift.application.factory import build_orchestrator, build_transport

    async def run():
        async with build_transport(config) as transport:
            orchestrator = build_orchestrator(config, transport=transport)
            if reset:
                await orchestrator.reset_sync()
            return await orchestrator.sync_lessons()

    outcome = _run(run())

    if not outcome.had_changes:
        typer.secho("Nothing to sync.", fg="green")
        return
    typer.secho(
        f"Synced: pushed {outcome.pushed_progress} progress, {outcome.pushed_created} new cards, "
        f"{outcome.pushed_deleted_cards + outcome.pushed_deleted_lessons} deletions; "
        f"received {len(outcome.lessons_written)} lessons, "
        f"removed {len(outcome.lessons_removed)}.",
        fg="green",
    )
    if outcome.skipped_card_ids:
        typer.secho(f"Skipped inconsistent cards: {outcome.skipped_card_ids}", fg="yellow")


@app.command("reset-sync")
def reset_sync(ctx: typer.Context):
    """Forget the last sync time so the next sync transfers everything."""
    config = _resolve_with_overrides(ctx)

    from lingolift.application.factory import build_orchestrator, build_transport

    async def run():
        async with build_transport(config) as transport:
            await build_orchestrator(config, transport=transport).reset_sync()

    _run(run())
    typer.echo("Sync watermark reset.")


# ---------------------------------------------------------------------------
# Lessons subgroup
# ---------------------------------------------------------------------------


@lessons_app.command("list")
def lessons_list(
    ctx: typer.Context,
    tag: Annotated[str | None, typer.Option(help="Only lessons with this tag.")] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """List lessons in the local store."""
    from lingolift.application.factory import build_store

    config = _resolve_with_overrides(ctx)
    lessons = _run(build_store(config).get_all_lessons(tag))

    if json_output:
        typer.echo(
            json.dumps(
                [
                    {
                        "id": lesson.id,
                        "title": lesson.title,
                        "tags": lesson.tags,
                        "cards": len(lesson.flashcards),
                        "userCards": sum(1 for c in lesson.flashcards if c.is_user_created),
                    }
                    for lesson in lessons
                ],
                indent=2,
            )
        )
        return

    if not lessons:
        typer.secho("No lessons.", fg="yellow")
        return
    for lesson in lessons:
        tags = f"  [{', '.join(lesson.tags)}]" if lesson.tags else ""
        typer.echo(f"{lesson.id}  {lesson.title}  ({len(lesson.flashcards)} cards){tags}")


@lessons_app.command("import")
def lessons_import(
    ctx: typer.Context,
    path: Annotated[Path, typer.Argument(help="YAML file with a 'lessons' list.")],
):
    """Author lessons locally from a YAML file."""
    from lingolift.application.factory import build_store
    from lingolift.application.lesson_import import load_lessons_from_yaml

    config = _resolve_with_overrides(ctx)
    store = build_store(config)

    async def run():
        lessons = load_lessons_from_yaml(path)
        for lesson in lessons:
            await store.save_lesson(lesson)
        return lessons

    lessons = _run(run())
    typer.secho(f"Imported {len(lessons)} lessons.", fg="green")


@lessons_app.command("delete")
def lessons_delete(
    ctx: typer.Context,
    lesson_id: Annotated[str, typer.Argument(help="Lesson id.")],
):
    """Delete a lesson; the deletion propagates on the next sync."""
    from lingolift.application.factory import build_store
    from lingolift.application.review_service import ReviewService

    config = _resolve_with_overrides(ctx)
    _run(ReviewService(build_store(config)).delete_lesson(lesson_id))
    typer.echo(f"Deleted {lesson_id}.")


# ---------------------------------------------------------------------------
# Review subgroup
# ---------------------------------------------------------------------------


@review_app.command("due")
def review_due(
    ctx: typer.Context,
    tag: Annotated[str | None, typer.Option(help="Only lessons with this tag.")] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """Show cards due for review across all lessons."""
    from lingolift.application.factory import build_store
    from lingolift.application.review_service import ReviewService

    config = _resolve_with_overrides(ctx)
    service = ReviewService(build_store(config))
    due = _run(service.due_cards(tag=tag))

    if json_output:
        typer.echo(
            json.dumps(
                [
                    {
                        "lessonId": d.lesson_id,
                        "cardId": d.card.id,
                        "front": d.card.front,
                        "preview": {
                            g.name.lower(): label for g, label in service.preview(d.card).items()
                        },
                    }
                    for d in due
                ],
                indent=2,
            )
        )
        return

    typer.echo(f"Due cards: {len(due)}")
    for d in due:
        typer.echo(f"  {d.lesson_id}  {d.card.id}  {d.card.front}")


@review_app.command("grade")
def review_grade(
    ctx: typer.Context,
    lesson_id: Annotated[str, typer.Argument(help="Lesson id.")],
    card_id: Annotated[str, typer.Argument(help="Card id.")],
    grade: Annotated[GradeChoice, typer.Argument(help="Recall quality.")],
):
    """Grade one card and reschedule it."""
    from lingolift.application.factory import build_store
    from lingolift.application.review_service import ReviewService
    from lingolift.domain.errors import CardNotFoundError
    from lingolift.domain.models import DueCard

    config = _resolve_with_overrides(ctx)
    store = build_store(config)
    service = ReviewService(store)

    async def run():
        lesson = await store.get_lesson(lesson_id)
        card = lesson.find_card(card_id) if lesson else None
        if card is None:
            raise CardNotFoundError(card_id)
        return await service.record_review(DueCard(lesson_id, card), Grade[grade.name])

    updated = _run(run())
    typer.echo(f"Next review in {updated.interval}d (efactor {updated.efactor:.2f}).")


@review_app.command("add")
def review_add(
    ctx: typer.Context,
    lesson_id: Annotated[str, typer.Argument(help="Lesson id.")],
    front: Annotated[str, typer.Argument(help="Card front.")],
    back: Annotated[str, typer.Argument(help="Card back.")],
):
    """Add your own card to a lesson."""
    from lingolift.application.factory import build_store
    from lingolift.application.review_service import ReviewService

    config = _resolve_with_overrides(ctx)
    card = _run(ReviewService(build_store(config)).add_card(lesson_id, front, back))
    typer.echo(f"Added {card.id}.")


# ---------------------------------------------------------------------------
# Config subgroup
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show():
    """Display final resolved configuration."""
    config = _resolve_with_overrides()
    d = {k: str(v) if isinstance(v, Path) else v for k, v in config.model_dump().items()}
    typer.echo(json.dumps(d, indent=2))


# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------


@app.command()
def serve(
    host: Annotated[str | None, typer.Option(help="Host to bind the server to.")] = None,
    port: Annotated[int | None, typer.Option(help="Port to bind the server to.")] = None,
    reload: Annotated[bool, typer.Option(help="Enable auto-reload.")] = False,
):
    """Run the reference sync server; its library is kept in `server_db_path`."""
    import uvicorn

    config = _resolve_with_overrides(server_host=host, server_port=port)
    typer.secho(
        f"Starting LingoLift server on http://{config.server_host}:{config.server_port}",
        fg="green",
    )
    uvicorn.run(
        "lingolift.server:app",
        host=config.server_host,
        port=config.server_port,
        reload=reload,
    )
