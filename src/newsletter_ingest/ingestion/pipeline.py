"""End-to-end ingestion pipeline orchestration."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import replace

from newsletter_ingest.config import SPONSORED_CATEGORY, Publication, Settings
from newsletter_ingest.ingestion.blocks import (
    BlockIdFactory,
    convert_html_to_blocks,
    measure_blocks,
    text_paragraph_blocks,
)
from newsletter_ingest.ingestion.classifier import CategoryClassifier, Classification
from newsletter_ingest.ingestion.models import (
    ArticleOutcome,
    ArticleOutcomeKind,
    ExtractedArticle,
    IssueSyncResult,
    NewsItem,
    PublicationSyncResult,
    RawIssue,
    SegmentationStrategy,
    SyncAllResult,
    UpsertAction,
)
from newsletter_ingest.ingestion.notifications import LoggingNotifier, Notifier
from newsletter_ingest.ingestion.repository import ArticleStore
from newsletter_ingest.ingestion.sanitizer import html_to_text, make_excerpt, sanitize_html
from newsletter_ingest.ingestion.segmentation import IssueSegmenter
from newsletter_ingest.ingestion.slugs import generate_slug, generate_unique_slug
from newsletter_ingest.ingestion.sources.base import IssueSource, SourceError

logger = logging.getLogger(__name__)

_OUTCOME_BY_ACTION = {
    UpsertAction.INSERTED: ArticleOutcomeKind.CREATED,
    UpsertAction.UPDATED: ArticleOutcomeKind.UPDATED,
    UpsertAction.SKIPPED: ArticleOutcomeKind.SKIPPED_PROTECTED,
}


class SyncPassError(RuntimeError):
    """No configured publication completed its sync pass."""

    def __init__(self, result: SyncAllResult) -> None:
        failures = "; ".join(
            f"{item.publication_name}: {item.message}" for item in result.results
        )
        super().__init__(
            f"Sync pass failed for all {len(result.results)} publications"
            + (f" ({failures})" if failures else ""),
        )
        self.result = result


class IngestionOrchestrator:
    """Drives sync passes: fetch, segment, classify, slug, and upsert issue articles."""

    def __init__(
        self,
        *,
        settings: Settings,
        repository: ArticleStore,
        source: IssueSource,
        notifier: Notifier | None = None,
        classifier: CategoryClassifier | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings
        self.repository = repository
        self.source = source
        self.notifier = notifier if notifier is not None else LoggingNotifier()
        self.classifier = (
            classifier
            if classifier is not None
            else CategoryClassifier(category_labels=settings.ingestion.category_labels)
        )
        self.segmenter = IssueSegmenter(settings.ingestion)
        self._sleep = sleep

    def sync_all(self) -> SyncAllResult:
        """Sync every configured publication in order; raise if none succeeded."""

        delay = self.settings.ingestion.inter_publication_delay_seconds
        results: list[PublicationSyncResult] = []
        for index, publication in enumerate(self.settings.source.publications):
            if index > 0 and delay > 0:
                self._sleep(delay)
            try:
                results.append(self.sync_publication(publication.publication_id))
            except SourceError as exc:
                logger.warning("Sync failed for publication %s: %s", publication.name, exc)
                results.append(_failed_publication(publication, str(exc)))
            except Exception as exc:  # noqa: BLE001
                logger.exception("Unexpected sync failure for publication %s", publication.name)
                results.append(_failed_publication(publication, str(exc)))

        result = SyncAllResult(
            success=any(item.success for item in results),
            results=results,
        )
        logger.info(
            "Sync pass finished: %d/%d publications succeeded",
            result.succeeded_count,
            len(results),
        )
        if not result.success:
            raise SyncPassError(result)
        return result

    def sync_publication(self, publication_id: str) -> PublicationSyncResult:
        """Fetch the latest published issues of one publication and ingest each.

        Source errors propagate to the caller.
        """

        publication = self.settings.source.resolve_publication(publication_id)
        if publication is None:
            logger.warning("Unknown publication %s", publication_id)
            return PublicationSyncResult(
                publication_id=publication_id,
                publication_name=publication_id,
                success=False,
                message=f"Unknown publication: {publication_id}",
            )

        page = self.source.fetch_issues(publication, self.settings.source.issues_per_sync)
        if not page.issues:
            logger.info("No published issues for %s", publication.name)
            return PublicationSyncResult(
                publication_id=publication.publication_id,
                publication_name=publication.name,
                success=True,
                message="No published issues found",
            )

        issues = [self.sync_issue(publication, issue) for issue in page.issues]
        return PublicationSyncResult(
            publication_id=publication.publication_id,
            publication_name=publication.name,
            success=True,
            message="; ".join(issue.message for issue in issues),
            issues=issues,
        )

    def sync_issue(self, publication: Publication, issue: RawIssue) -> IssueSyncResult:
        was_known = self.repository.find_issue_by_external_id(issue.external_id) is not None
        if was_known:
            protected = self._fully_protected_outcomes(issue)
            if protected:
                result = IssueSyncResult(
                    issue_external_id=issue.external_id,
                    issue_title=issue.title,
                    was_known=True,
                    strategy=SegmentationStrategy.WHOLE_DOCUMENT,
                    outcomes=protected,
                )
                logger.info(result.message)
                return result

        strategy, candidates = self.extract_articles(issue, newsletter_name=publication.name)
        if not was_known:
            self.repository.create_issue(issue, publication_id=publication.publication_id)

        result = IssueSyncResult(
            issue_external_id=issue.external_id,
            issue_title=issue.title,
            was_known=was_known,
            strategy=strategy,
        )
        reserved_slugs: set[str] = set()
        for candidate in candidates:
            result.outcomes.append(self._persist_candidate(candidate, reserved_slugs))

        self._notify(result.created_count, publication.name)
        logger.info(result.message)
        return result

    def extract_articles(
        self,
        issue: RawIssue,
        *,
        newsletter_name: str,
    ) -> tuple[SegmentationStrategy, list[ExtractedArticle]]:
        """Pure extraction of candidate articles; always yields at least one."""

        try:
            cleaned = sanitize_html(issue.html)
            segmentation = self.segmenter.segment(
                cleaned,
                issue_title=issue.title,
                source_url=issue.source_url,
                thumbnail_url=issue.thumbnail_url,
            )
            articles = [
                self._build_article(
                    issue,
                    index,
                    item,
                    newsletter_name=newsletter_name,
                    strategy=segmentation.strategy,
                )
                for index, item in enumerate(segmentation.items)
            ]
            if articles:
                return segmentation.strategy, articles
        except Exception:  # noqa: BLE001
            logger.exception(
                "Extraction failed for issue %s, using whole-issue fallback",
                issue.external_id,
            )
        return SegmentationStrategy.WHOLE_DOCUMENT, [
            self._fallback_article(issue, newsletter_name=newsletter_name),
        ]

    def _build_article(
        self,
        issue: RawIssue,
        index: int,
        item: NewsItem,
        *,
        newsletter_name: str,
        strategy: SegmentationStrategy,
    ) -> ExtractedArticle:
        blocks = convert_html_to_blocks(
            item.body_html,
            ids=BlockIdFactory(f"{issue.external_id}:{index}"),
            min_paragraph_chars=self.settings.ingestion.min_fallback_paragraph_chars,
        )
        whole_document = strategy == SegmentationStrategy.WHOLE_DOCUMENT
        if whole_document:
            classification = Classification(
                category=self.classifier.fallback_category,
                explicit=True,
            )
        else:
            classification = self.classifier.classify(
                item.title,
                html_to_text(item.body_html),
                item.category_label,
            )
        excerpt = issue.preview_text if whole_document and issue.preview_text else item.excerpt
        word_count, reading_time = measure_blocks(blocks)
        return ExtractedArticle(
            issue_external_id=issue.external_id,
            sequence_index=index,
            title=item.title,
            slug=generate_slug(item.title),
            excerpt=excerpt,
            category=classification.category,
            blocks=blocks,
            featured_image=item.image_url or None,
            source_url=issue.source_url,
            tags=list(issue.tags),
            newsletter_name=newsletter_name,
            external_links=list(item.links),
            is_sponsored=item.is_sponsored or classification.category == SPONSORED_CATEGORY,
            image_credit=item.image_credit,
            word_count=word_count,
            reading_time_minutes=reading_time,
        )

    def _fallback_article(self, issue: RawIssue, *, newsletter_name: str) -> ExtractedArticle:
        title = issue.title.strip() or "Untitled"
        try:
            cleaned = sanitize_html(issue.html)
        except Exception:  # noqa: BLE001
            logger.exception("Sanitizing failed for issue %s, using plain text", issue.external_id)
            cleaned = html_to_text(issue.html)
        blocks = text_paragraph_blocks(cleaned, ids=BlockIdFactory(f"{issue.external_id}:0"))
        word_count, reading_time = measure_blocks(blocks)
        return ExtractedArticle(
            issue_external_id=issue.external_id,
            sequence_index=0,
            title=title,
            slug=generate_slug(title),
            excerpt=issue.preview_text or make_excerpt(
                cleaned,
                self.settings.ingestion.excerpt_chars,
            ),
            category=self.classifier.fallback_category,
            blocks=blocks,
            featured_image=issue.thumbnail_url or None,
            source_url=issue.source_url,
            tags=list(issue.tags),
            newsletter_name=newsletter_name,
            word_count=word_count,
            reading_time_minutes=reading_time,
        )

    def _fully_protected_outcomes(self, issue: RawIssue) -> list[ArticleOutcome]:
        existing = self.repository.list_articles_for_issue(issue.external_id)
        if not existing or not all(article.is_protected for article in existing):
            return []
        return [
            ArticleOutcome(
                sequence_index=article.sequence_index,
                title=article.title,
                slug=article.slug,
                kind=ArticleOutcomeKind.SKIPPED_PROTECTED,
            )
            for article in existing
        ]

    def _persist_candidate(
        self,
        candidate: ExtractedArticle,
        reserved_slugs: set[str],
    ) -> ArticleOutcome:
        try:
            existing = self.repository.find_article_by_external_source_id(
                candidate.external_source_id,
            )
            if existing is not None and existing.is_protected:
                logger.info(
                    "Skipping protected article %s (status=%s)",
                    existing.slug,
                    existing.editorial_status,
                )
                return ArticleOutcome(
                    sequence_index=candidate.sequence_index,
                    title=existing.title,
                    slug=existing.slug,
                    kind=ArticleOutcomeKind.SKIPPED_PROTECTED,
                )

            if existing is not None:
                slug = existing.slug
            else:
                slug = generate_unique_slug(
                    candidate.slug,
                    lambda value: value in reserved_slugs
                    or self.repository.find_article_by_slug(value) is not None,
                )
            reserved_slugs.add(slug)
            candidate = replace(candidate, slug=slug)
            upsert = self.repository.upsert_article(candidate)
        except Exception as exc:  # noqa: BLE001
            logger.exception(
                "Failed to persist article %d of issue %s",
                candidate.sequence_index,
                candidate.issue_external_id,
            )
            return ArticleOutcome(
                sequence_index=candidate.sequence_index,
                title=candidate.title,
                slug=None,
                kind=ArticleOutcomeKind.FAILED,
                error=str(exc),
            )

        return ArticleOutcome(
            sequence_index=candidate.sequence_index,
            title=candidate.title,
            slug=candidate.slug,
            kind=_OUTCOME_BY_ACTION[upsert.action],
        )

    def _notify(self, created_count: int, newsletter_name: str) -> None:
        try:
            self.notifier.notify_new_articles(
                created_count=created_count,
                newsletter_name=newsletter_name,
            )
        except Exception:  # noqa: BLE001
            logger.exception("Notification failed for %s", newsletter_name)


def _failed_publication(publication: Publication, message: str) -> PublicationSyncResult:
    return PublicationSyncResult(
        publication_id=publication.publication_id,
        publication_name=publication.name,
        success=False,
        message=message,
    )
