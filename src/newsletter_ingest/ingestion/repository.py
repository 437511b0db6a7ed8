"""SQLModel-backed article store for the ingestion pipeline."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Protocol
from uuid import uuid4

from sqlmodel import Session, col, select

from newsletter_ingest.ingestion.models import (
    ArticleRecord,
    ContentBlock,
    EditorialStatus,
    ExternalLink,
    ExtractedArticle,
    IssueRecord,
    RawIssue,
    UpsertAction,
    UpsertResult,
    is_protected_status,
)
from newsletter_ingest.ingestion.storage.alembic_runner import upgrade_head
from newsletter_ingest.ingestion.storage.common import (
    build_sqlite_engine,
    to_db_datetime,
    to_utc_aware,
    utc_now,
)
from newsletter_ingest.ingestion.storage.sqlmodel_models import Article, NewsletterIssue

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 100


class ArticleStore(Protocol):
    """Persistence collaborator consumed by the ingestion orchestrator."""

    def find_issue_by_external_id(self, external_id: str) -> IssueRecord | None:
        raise NotImplementedError

    def create_issue(self, issue: RawIssue, *, publication_id: str) -> IssueRecord:
        raise NotImplementedError

    def find_article_by_external_source_id(self, key: tuple[str, int]) -> ArticleRecord | None:
        raise NotImplementedError

    def find_article_by_slug(self, slug: str) -> ArticleRecord | None:
        raise NotImplementedError

    def list_articles_for_issue(self, issue_external_id: str) -> list[ArticleRecord]:
        raise NotImplementedError

    def upsert_article(self, article: ExtractedArticle) -> UpsertResult:
        raise NotImplementedError


class SQLiteRepository:
    """Facade that persists issues and articles using SQLModel and Alembic."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path)

    def close(self) -> None:
        self.engine.dispose()

    def init_schema(self) -> None:
        upgrade_head(self.db_path)

    def find_issue_by_external_id(self, external_id: str) -> IssueRecord | None:
        with Session(self.engine) as session:
            row = session.exec(
                select(NewsletterIssue).where(NewsletterIssue.external_id == external_id),
            ).one_or_none()
            return _issue_record(row) if row is not None else None

    def create_issue(self, issue: RawIssue, *, publication_id: str) -> IssueRecord:
        """Insert the issue row once; later calls return the existing record."""

        with Session(self.engine) as session:
            existing = session.exec(
                select(NewsletterIssue).where(NewsletterIssue.external_id == issue.external_id),
            ).one_or_none()
            if existing is not None:
                return _issue_record(existing)

            row = NewsletterIssue(
                issue_id=str(uuid4()),
                external_id=issue.external_id,
                publication_id=publication_id,
                title=issue.title,
                status=issue.status,
                published_at=to_db_datetime(issue.published_at),
                html=issue.html,
                thumbnail_url=issue.thumbnail_url,
                source_url=issue.source_url,
                preview_text=issue.preview_text,
                tags_json=json.dumps(list(issue.tags), ensure_ascii=False),
                created_at=utc_now(),
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _issue_record(row)

    def find_article_by_external_source_id(self, key: tuple[str, int]) -> ArticleRecord | None:
        issue_external_id, sequence_index = key
        with Session(self.engine) as session:
            row = session.exec(
                select(Article).where(
                    Article.issue_external_id == issue_external_id,
                    Article.sequence_index == sequence_index,
                ),
            ).one_or_none()
            return _article_record(row) if row is not None else None

    def find_article_by_slug(self, slug: str) -> ArticleRecord | None:
        with Session(self.engine) as session:
            row = session.exec(select(Article).where(Article.slug == slug)).one_or_none()
            return _article_record(row) if row is not None else None

    def list_articles_for_issue(self, issue_external_id: str) -> list[ArticleRecord]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(Article)
                .where(Article.issue_external_id == issue_external_id)
                .order_by(col(Article.sequence_index)),
            ).all()
            return [_article_record(row) for row in rows]

    def list_articles(
        self,
        *,
        issue_external_id: str | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> list[ArticleRecord]:
        with Session(self.engine) as session:
            statement = select(Article)
            if issue_external_id:
                statement = statement.where(Article.issue_external_id == issue_external_id)
            rows = session.exec(
                statement.order_by(
                    col(Article.created_at).desc(),
                    col(Article.issue_external_id),
                    col(Article.sequence_index),
                ).limit(limit),
            ).all()
            return [_article_record(row) for row in rows]

    def upsert_article(self, article: ExtractedArticle) -> UpsertResult:
        """Insert by composite key, or update every field except identity and editorial status.

        Protected rows are left untouched and reported as skipped.
        """

        with Session(self.engine) as session:
            existing = session.exec(
                select(Article).where(
                    Article.issue_external_id == article.issue_external_id,
                    Article.sequence_index == article.sequence_index,
                ),
            ).one_or_none()
            now = utc_now()

            if existing is None:
                row = Article(
                    article_id=str(uuid4()),
                    issue_external_id=article.issue_external_id,
                    sequence_index=article.sequence_index,
                    editorial_status=EditorialStatus.PENDING_REVIEW.value,
                    created_at=now,
                    updated_at=now,
                    title=article.title,
                    slug=article.slug,
                    category=article.category,
                )
                _apply_article_fields(row, article)
                session.add(row)
                session.commit()
                return UpsertResult(article_id=row.article_id, action=UpsertAction.INSERTED)

            if is_protected_status(existing.editorial_status):
                logger.warning(
                    "Refusing to overwrite protected article %s (status=%s)",
                    existing.article_id,
                    existing.editorial_status,
                )
                return UpsertResult(article_id=existing.article_id, action=UpsertAction.SKIPPED)

            _apply_article_fields(existing, article)
            existing.updated_at = now
            session.add(existing)
            session.commit()
            return UpsertResult(article_id=existing.article_id, action=UpsertAction.UPDATED)

    def set_editorial_status(self, article_id: str, status: EditorialStatus | str) -> ArticleRecord:
        if not isinstance(status, EditorialStatus):
            status = EditorialStatus(status)
        value = status.value
        with Session(self.engine) as session:
            row = session.get(Article, article_id)
            if row is None:
                raise LookupError(f"Article not found: {article_id}")
            row.editorial_status = value
            row.updated_at = utc_now()
            session.add(row)
            session.commit()
            session.refresh(row)
            return _article_record(row)


def _apply_article_fields(row: Article, article: ExtractedArticle) -> None:
    row.title = article.title
    row.slug = article.slug
    row.excerpt = article.excerpt
    row.category = article.category
    row.blocks_json = json.dumps(
        [block.to_dict() for block in article.blocks],
        ensure_ascii=False,
    )
    row.featured_image = article.featured_image
    row.image_credit = article.image_credit
    row.source_url = article.source_url
    row.tags_json = json.dumps(list(article.tags), ensure_ascii=False)
    row.newsletter_name = article.newsletter_name
    row.external_links_json = json.dumps(
        [{"url": link.url, "text": link.text} for link in article.external_links],
        ensure_ascii=False,
    )
    row.is_sponsored = article.is_sponsored
    row.word_count = article.word_count
    row.reading_time_minutes = article.reading_time_minutes


def _issue_record(row: NewsletterIssue) -> IssueRecord:
    return IssueRecord(
        issue_id=row.issue_id,
        external_id=row.external_id,
        publication_id=row.publication_id,
        title=row.title,
        status=row.status,
        published_at=to_utc_aware(row.published_at) if row.published_at is not None else None,
        created_at=to_utc_aware(row.created_at),
    )


def _article_record(row: Article) -> ArticleRecord:
    return ArticleRecord(
        article_id=row.article_id,
        issue_external_id=row.issue_external_id,
        sequence_index=row.sequence_index,
        title=row.title,
        slug=row.slug,
        excerpt=row.excerpt,
        category=row.category,
        blocks=[ContentBlock.from_dict(item) for item in json.loads(row.blocks_json or "[]")],
        featured_image=row.featured_image,
        source_url=row.source_url,
        tags=list(json.loads(row.tags_json or "[]")),
        newsletter_name=row.newsletter_name,
        editorial_status=row.editorial_status,
        created_at=to_utc_aware(row.created_at),
        updated_at=to_utc_aware(row.updated_at),
        external_links=[
            ExternalLink(url=str(item.get("url", "")), text=str(item.get("text", "")))
            for item in json.loads(row.external_links_json or "[]")
        ],
        is_sponsored=row.is_sponsored,
        image_credit=row.image_credit,
        word_count=row.word_count,
        reading_time_minutes=row.reading_time_minutes,
    )
