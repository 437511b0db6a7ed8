"""Controllers for ingestion CLI commands."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from newsletter_ingest.config import Settings
from newsletter_ingest.ingestion.models import (
    ArticleRecord,
    PublicationSyncResult,
    SyncAllResult,
)
from newsletter_ingest.ingestion.pipeline import IngestionOrchestrator, SyncPassError
from newsletter_ingest.ingestion.repository import DEFAULT_LIST_LIMIT, SQLiteRepository
from newsletter_ingest.ingestion.sources.beehiiv import BeehiivSource


@dataclass(slots=True)
class SyncPublicationCommand:
    """CLI inputs for single-publication sync command."""

    db_path: Path | None
    publication_id: str


@dataclass(slots=True)
class SyncAllCommand:
    """CLI inputs for all-publications sync command."""

    db_path: Path | None


@dataclass(slots=True)
class ListArticlesCommand:
    """CLI inputs for article listing command."""

    db_path: Path | None
    issue_id: str | None
    limit: int = DEFAULT_LIST_LIMIT


@dataclass(slots=True)
class IngestionRuntime:
    """Wired collaborators for one process lifetime."""

    settings: Settings
    repository: SQLiteRepository
    source: BeehiivSource
    orchestrator: IngestionOrchestrator


class IngestionCliController:
    """Coordinates ingestion command execution."""

    def sync_publication(self, command: SyncPublicationCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        settings.validate_for_sync()
        with open_runtime(settings) as runtime:
            result = runtime.orchestrator.sync_publication(command.publication_id)
        return format_publication_result(result)

    def sync_all(self, command: SyncAllCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        settings.validate_for_sync()
        with open_runtime(settings) as runtime:
            try:
                result = runtime.orchestrator.sync_all()
            except SyncPassError as error:
                result = error.result
        return format_sync_all_result(result)

    def list_articles(self, command: ListArticlesCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            articles = repository.list_articles(
                issue_external_id=command.issue_id,
                limit=command.limit,
            )
        if not articles:
            return ["No articles found."]
        return [f"Articles: {len(articles)}", *(_format_article(article) for article in articles)]


@contextmanager
def open_runtime(settings: Settings) -> Iterator[IngestionRuntime]:
    with _repository(settings) as repository, BeehiivSource(settings.source) as source:
        yield IngestionRuntime(
            settings=settings,
            repository=repository,
            source=source,
            orchestrator=IngestionOrchestrator(
                settings=settings,
                repository=repository,
                source=source,
            ),
        )


@contextmanager
def _repository(settings: Settings) -> Iterator[SQLiteRepository]:
    repository = SQLiteRepository(settings.db_path)
    try:
        repository.init_schema()
        yield repository
    finally:
        repository.close()


def format_publication_result(result: PublicationSyncResult) -> list[str]:
    status = "ok" if result.success else "failed"
    lines = [
        f"Publication {result.publication_name} ({result.publication_id}): "
        f"status={status} failed_articles={result.failed_articles}",
        f"  {result.message}",
    ]
    for issue in result.issues:
        lines.append(f"  issue={issue.issue_external_id} strategy={issue.strategy.value}")
        for outcome in issue.outcomes:
            line = (
                f"    [{outcome.sequence_index}] {outcome.kind.value} "
                f"slug={outcome.slug or '-'} title={outcome.title}"
            )
            if outcome.error:
                line += f" error={outcome.error}"
            lines.append(line)
    return lines


def format_sync_all_result(result: SyncAllResult) -> list[str]:
    lines = [
        f"Sync pass {'succeeded' if result.success else 'failed'}: "
        f"{result.succeeded_count}/{len(result.results)} publications succeeded",
    ]
    for item in result.results:
        lines.extend(format_publication_result(item))
    return lines


def _format_article(article: ArticleRecord) -> str:
    return (
        f"- {article.slug} [{article.category}] status={article.editorial_status} "
        f"issue={article.issue_external_id}#{article.sequence_index} "
        f"blocks={len(article.blocks)} title={article.title}"
    )
