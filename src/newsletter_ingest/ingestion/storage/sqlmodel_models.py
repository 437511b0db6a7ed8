"""SQLModel ORM tables for ingestion storage."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, Text, UniqueConstraint
from sqlmodel import Field, SQLModel

DEFAULT_EDITORIAL_STATUS = "pending_review"


class NewsletterIssue(SQLModel, table=True):
    __tablename__ = "newsletter_issues"  # type: ignore[bad-override]

    issue_id: str = Field(primary_key=True)
    external_id: str = Field(unique=True, index=True)
    publication_id: str = Field(index=True)
    title: str
    status: str
    published_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    html: str = Field(default="", sa_column=Column(Text, nullable=False, server_default=""))
    thumbnail_url: str = ""
    source_url: str = ""
    preview_text: str = ""
    tags_json: str = Field(
        default="[]",
        sa_column=Column(Text, nullable=False, server_default="[]"),
    )
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class Article(SQLModel, table=True):
    __tablename__ = "articles"  # type: ignore[bad-override]
    __table_args__ = (
        UniqueConstraint(
            "issue_external_id",
            "sequence_index",
            name="uq_articles_issue_sequence",
        ),
    )

    article_id: str = Field(primary_key=True)
    issue_external_id: str = Field(index=True)
    sequence_index: int
    title: str
    slug: str = Field(unique=True, index=True)
    excerpt: str = Field(default="", sa_column=Column(Text, nullable=False, server_default=""))
    category: str = Field(index=True)
    blocks_json: str = Field(
        default="[]",
        sa_column=Column(Text, nullable=False, server_default="[]"),
    )
    featured_image: str | None = None
    image_credit: str = ""
    source_url: str = ""
    tags_json: str = Field(
        default="[]",
        sa_column=Column(Text, nullable=False, server_default="[]"),
    )
    newsletter_name: str = ""
    external_links_json: str = Field(
        default="[]",
        sa_column=Column(Text, nullable=False, server_default="[]"),
    )
    is_sponsored: bool = False
    word_count: int = 0
    reading_time_minutes: int = 1
    editorial_status: str = Field(default=DEFAULT_EDITORIAL_STATUS, index=True)
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
