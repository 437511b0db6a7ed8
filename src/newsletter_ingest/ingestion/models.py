"""Domain models for issue ingestion, segmentation, and persistence."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class IssueStatus(str, Enum):
    """Lifecycle states of an issue on the publishing platform."""

    DRAFT = "draft"
    CONFIRMED = "confirmed"
    SENT = "sent"
    ARCHIVED = "archived"


class BlockType(str, Enum):
    """Supported content block kinds."""

    HEADING = "heading"
    PARAGRAPH = "paragraph"
    IMAGE = "image"
    QUOTE = "quote"
    LIST = "list"
    DIVIDER = "divider"


class EditorialStatus(str, Enum):
    """Downstream editorial states known to the ingestion pipeline."""

    PENDING_REVIEW = "pending_review"
    DRAFT = "draft"
    IN_REVIEW = "in_review"
    APPROVED = "approved"
    SCHEDULED = "scheduled"
    PUBLISHED = "published"
    ARCHIVED = "archived"


PROTECTED_EDITORIAL_STATUSES = frozenset(
    {
        EditorialStatus.PUBLISHED.value,
        EditorialStatus.SCHEDULED.value,
        EditorialStatus.IN_REVIEW.value,
        EditorialStatus.APPROVED.value,
    },
)


def is_protected_status(status: str) -> bool:
    return status in PROTECTED_EDITORIAL_STATUSES


class UpsertAction(str, Enum):
    """Operation result for article upsert."""

    INSERTED = "inserted"
    UPDATED = "updated"
    SKIPPED = "skipped"


class ArticleOutcomeKind(str, Enum):
    """What happened to one candidate article during a sync pass."""

    CREATED = "created"
    UPDATED = "updated"
    SKIPPED_PROTECTED = "skipped_protected"
    FAILED = "failed"


@dataclass(slots=True, frozen=True)
class RawIssue:
    """One newsletter send as returned by the publishing API."""

    external_id: str
    title: str
    status: str
    published_at: datetime | None
    html: str
    thumbnail_url: str = ""
    source_url: str = ""
    tags: tuple[str, ...] = ()
    subtitle: str = ""
    preview_text: str = ""
    subject_line: str = ""
    meta_description: str = ""
    created_at: datetime | None = None
    raw_payload: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)


@dataclass(slots=True)
class IssuePage:
    """One page of issues plus total-count metadata."""

    issues: list[RawIssue]
    total: int
    page: int = 0


@dataclass(slots=True, frozen=True)
class ContentBlock:
    """Immutable typed content block."""

    id: str
    type: BlockType
    data: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "type": self.type.value, "data": _plain(self.data)}

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> ContentBlock:
        data = dict(payload.get("data") or {})
        if "items" in data:
            data["items"] = tuple(data["items"])
        return cls(id=str(payload["id"]), type=BlockType(payload["type"]), data=data)


@dataclass(slots=True, frozen=True)
class ExternalLink:
    """Outbound hyperlink found in an item body."""

    url: str
    text: str


@dataclass(slots=True)
class Section:
    """Intermediate segmentation artifact, never persisted."""

    id: str
    category: str | None
    title: str
    body_html: str
    images: list[str] = field(default_factory=list)
    is_sponsored: bool = False


@dataclass(slots=True)
class NewsItem:
    """One retained news item with the metadata segmentation derives for it."""

    title: str
    category_label: str | None
    body_html: str
    image_url: str
    image_credit: str
    links: list[ExternalLink]
    excerpt: str
    is_sponsored: bool = False


class SegmentationStrategy(str, Enum):
    """Which tier of the fallback chain produced the items."""

    CATEGORY_MARKERS = "category_markers"
    RULE_CHUNKS = "rule_chunks"
    WHOLE_DOCUMENT = "whole_document"


@dataclass(slots=True)
class SegmentationResult:
    """Items produced by the winning segmentation strategy."""

    strategy: SegmentationStrategy
    items: list[NewsItem]


@dataclass(slots=True)
class ExtractedArticle:
    """Unit of pipeline output, keyed by (issue external id, sequence index)."""

    issue_external_id: str
    sequence_index: int
    title: str
    slug: str
    excerpt: str
    category: str
    blocks: list[ContentBlock]
    featured_image: str | None
    source_url: str
    tags: list[str]
    newsletter_name: str
    external_links: list[ExternalLink] = field(default_factory=list)
    is_sponsored: bool = False
    image_credit: str = ""
    word_count: int = 0
    reading_time_minutes: int = 1

    @property
    def external_source_id(self) -> tuple[str, int]:
        return (self.issue_external_id, self.sequence_index)


@dataclass(slots=True)
class IssueRecord:
    """Persisted view of an ingested issue."""

    issue_id: str
    external_id: str
    publication_id: str
    title: str
    status: str
    published_at: datetime | None
    created_at: datetime


@dataclass(slots=True)
class ArticleRecord:
    """Persisted view of an article owned by the downstream store."""

    article_id: str
    issue_external_id: str
    sequence_index: int
    title: str
    slug: str
    excerpt: str
    category: str
    blocks: list[ContentBlock]
    featured_image: str | None
    source_url: str
    tags: list[str]
    newsletter_name: str
    editorial_status: str
    created_at: datetime
    updated_at: datetime
    external_links: list[ExternalLink] = field(default_factory=list)
    is_sponsored: bool = False
    image_credit: str = ""
    word_count: int = 0
    reading_time_minutes: int = 1

    @property
    def is_protected(self) -> bool:
        return is_protected_status(self.editorial_status)


@dataclass(slots=True)
class UpsertResult:
    """Result of persisting an extracted article."""

    article_id: str
    action: UpsertAction


@dataclass(slots=True)
class ArticleOutcome:
    """Per-article result of one sync pass."""

    sequence_index: int
    title: str
    slug: str | None
    kind: ArticleOutcomeKind
    error: str | None = None


@dataclass(slots=True)
class IssueSyncResult:
    """Result of ingesting one issue."""

    issue_external_id: str
    issue_title: str
    was_known: bool
    strategy: SegmentationStrategy
    outcomes: list[ArticleOutcome] = field(default_factory=list)

    def count(self, kind: ArticleOutcomeKind) -> int:
        return sum(1 for outcome in self.outcomes if outcome.kind == kind)

    @property
    def created_count(self) -> int:
        return self.count(ArticleOutcomeKind.CREATED)

    @property
    def updated_count(self) -> int:
        return self.count(ArticleOutcomeKind.UPDATED)

    @property
    def skipped_count(self) -> int:
        return self.count(ArticleOutcomeKind.SKIPPED_PROTECTED)

    @property
    def failed_count(self) -> int:
        return self.count(ArticleOutcomeKind.FAILED)

    @property
    def message(self) -> str:
        if self.outcomes and self.skipped_count == len(self.outcomes):
            return f"Issue skipped, protected: {self.issue_title}"
        parts = [
            f"created={self.created_count}",
            f"updated={self.updated_count}",
            f"skipped_protected={self.skipped_count}",
            f"failed={self.failed_count}",
        ]
        verb = "Issue updated" if self.was_known else "Issue ingested"
        return f"{verb}: {self.issue_title} ({' '.join(parts)})"


@dataclass(slots=True)
class PublicationSyncResult:
    """Result of one publication's sync pass."""

    publication_id: str
    publication_name: str
    success: bool
    message: str
    issues: list[IssueSyncResult] = field(default_factory=list)

    @property
    def failed_articles(self) -> int:
        return sum(issue.failed_count for issue in self.issues)


@dataclass(slots=True)
class SyncAllResult:
    """Aggregated result of syncing every configured publication."""

    success: bool
    results: list[PublicationSyncResult]

    @property
    def succeeded_count(self) -> int:
        return sum(1 for result in self.results if result.success)


def _plain(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    return value
