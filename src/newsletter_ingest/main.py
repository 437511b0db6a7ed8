"""CLI entrypoint for newsletter-ingest."""

import logging
from pathlib import Path

import rich_click as click

from newsletter_ingest import __version__
from newsletter_ingest.ingestion.controllers import (
    IngestionCliController,
    ListArticlesCommand,
    SyncAllCommand,
    SyncPublicationCommand,
)
from newsletter_ingest.ingestion.sources.base import SourceError
from newsletter_ingest.scheduler.controllers import SchedulerCliController, SchedulerRunCommand

click.rich_click.USE_MARKDOWN = True
INGESTION_CONTROLLER = IngestionCliController()
SCHEDULER_CONTROLLER = SchedulerCliController()
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@click.group()
@click.version_option(version=__version__, prog_name="newsletter-ingest")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging verbosity.",
)
def newsletter_ingest(log_level: str) -> None:
    """Newsletter issue ingestion CLI."""

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@newsletter_ingest.group()
def sync() -> None:
    """Sync issues from the publishing API."""


@sync.command("publication")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--publication-id", required=True, help="Configured publication id.")
def sync_publication(db_path: Path | None, publication_id: str) -> None:
    """Ingest the latest published issue(s) of one publication."""

    try:
        lines = INGESTION_CONTROLLER.sync_publication(
            SyncPublicationCommand(db_path=db_path, publication_id=publication_id),
        )
    except (SourceError, ValueError) as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


@sync.command("all")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def sync_all(db_path: Path | None) -> None:
    """Ingest every configured publication, one after another."""

    try:
        lines = INGESTION_CONTROLLER.sync_all(SyncAllCommand(db_path=db_path))
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


@newsletter_ingest.group()
def articles() -> None:
    """Inspect ingested articles."""


@articles.command("list")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--issue-id", default=None, help="Only articles extracted from this issue.")
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=1000),
    default=100,
    show_default=True,
    help="Max number of articles to print.",
)
def articles_list(db_path: Path | None, issue_id: str | None, limit: int) -> None:
    """List stored articles, newest first."""

    _emit_lines(
        INGESTION_CONTROLLER.list_articles(
            ListArticlesCommand(db_path=db_path, issue_id=issue_id, limit=limit),
        ),
    )


@newsletter_ingest.group()
def scheduler() -> None:
    """Periodic sync scheduler."""


@scheduler.command("run")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--interval-hours",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Override NEWSLETTER_INGEST_SCHEDULER_INTERVAL_HOURS.",
)
@click.option("--run-now", is_flag=True, default=False, help="Run one pass immediately.")
def scheduler_run(db_path: Path | None, interval_hours: float | None, run_now: bool) -> None:
    """Run the scheduler in the foreground until interrupted (Ctrl+C)."""

    try:
        lines = SCHEDULER_CONTROLLER.run(
            SchedulerRunCommand(db_path=db_path, interval_hours=interval_hours, run_now=run_now),
        )
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    newsletter_ingest()
