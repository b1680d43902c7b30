"""Command line entry point for provisioning the learning database.

Why:
    Lessons and tasks are authored elsewhere; operators load them into the
    engine from a YAML content file. The same CLI applies the schema so a
    fresh database can be prepared without extra tooling.

Usage:
    python -m backend.tools.learning_content apply-schema --db-dsn postgresql://...
    python -m backend.tools.learning_content seed --file content.yaml --db-dsn postgresql://...
    python -m backend.tools.learning_content seed --file content.yaml --dry-run
"""
from __future__ import annotations

import logging

import click

from backend.learning.content_loader import load_content_file, seed_repo
from backend.learning.errors import ConflictError

logger = logging.getLogger("lessonwork.tools")


def _db_repo(db_dsn: str | None):
    # Imported lazily so `--dry-run` works without a database driver.
    from backend.learning.repo_db import DBLearningRepo

    try:
        return DBLearningRepo(dsn=db_dsn)
    except RuntimeError as exc:
        click.echo(f"Cannot open learning database: {exc}", err=True)
        raise click.Abort() from exc


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
def cli() -> None:
    """Provision lessons, tasks and the learning schema."""


@cli.command("apply-schema")
@click.option("--db-dsn", required=False, help="DSN of the learning database (defaults to LEARNING_DATABASE_URL/DATABASE_URL).")
def apply_schema(db_dsn: str | None) -> None:
    """Create the learning tables when missing (idempotent)."""
    repo = _db_repo(db_dsn)
    repo.apply_schema()
    click.echo("Schema applied.")


@cli.command("seed")
@click.option(
    "--file",
    "content_file",
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help="YAML content file with lessons and their tasks.",
)
@click.option("--db-dsn", required=False, help="DSN of the learning database (defaults to LEARNING_DATABASE_URL/DATABASE_URL).")
@click.option(
    "--dry-run",
    is_flag=True,
    default=False,
    help="Validate the content file without writing anything.",
)
def seed(content_file: str, db_dsn: str | None, dry_run: bool) -> None:
    """Load lessons and tasks from a content file.

    Behaviour:
        - Invalid content aborts before any write and names the offending task.
        - Existing lessons and tasks are updated in place; a task whose
          submission type would change after learners submitted is refused.
    """
    try:
        lessons, tasks = load_content_file(content_file)
    except ValueError as exc:
        click.echo(f"Invalid content: {exc}", err=True)
        raise click.Abort() from exc

    click.echo(f"Content: {len(lessons)} lessons, {len(tasks)} tasks")
    if dry_run:
        for task in tasks:
            click.echo(f"  {task.lesson_id}/{task.id} {task.submission_type.value} required={task.required}")
        click.echo("Dry-run complete; nothing was written.")
        return

    repo = _db_repo(db_dsn)
    try:
        seed_repo(repo, lessons, tasks)
    except ConflictError as exc:
        logger.warning("seed refused: %s", exc.code)
        click.echo(f"Seed refused: {exc.code}", err=True)
        raise click.Abort() from exc
    click.echo("Seed finished successfully.")


if __name__ == "__main__":  # pragma: no cover
    cli()
