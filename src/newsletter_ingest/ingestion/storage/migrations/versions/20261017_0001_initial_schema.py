"""Initial newsletter issue and article schema."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261017_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "newsletter_issues",
        sa.Column("issue_id", sa.String(), nullable=False),
        sa.Column("external_id", sa.String(), nullable=False),
        sa.Column("publication_id", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("html", sa.Text(), nullable=False, server_default=""),
        sa.Column("thumbnail_url", sa.String(), nullable=False, server_default=""),
        sa.Column("source_url", sa.String(), nullable=False, server_default=""),
        sa.Column("preview_text", sa.String(), nullable=False, server_default=""),
        sa.Column("tags_json", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("issue_id"),
    )
    op.create_index(
        "ix_newsletter_issues_external_id",
        "newsletter_issues",
        ["external_id"],
        unique=True,
    )
    op.create_index(
        "ix_newsletter_issues_publication_id",
        "newsletter_issues",
        ["publication_id"],
    )

    op.create_table(
        "articles",
        sa.Column("article_id", sa.String(), nullable=False),
        sa.Column("issue_external_id", sa.String(), nullable=False),
        sa.Column("sequence_index", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("slug", sa.String(), nullable=False),
        sa.Column("excerpt", sa.Text(), nullable=False, server_default=""),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("blocks_json", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("featured_image", sa.String(), nullable=True),
        sa.Column("image_credit", sa.String(), nullable=False, server_default=""),
        sa.Column("source_url", sa.String(), nullable=False, server_default=""),
        sa.Column("tags_json", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("newsletter_name", sa.String(), nullable=False, server_default=""),
        sa.Column("external_links_json", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("is_sponsored", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("word_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("reading_time_minutes", sa.Integer(), nullable=False, server_default="1"),
        sa.Column(
            "editorial_status",
            sa.String(),
            nullable=False,
            server_default="pending_review",
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("article_id"),
        sa.UniqueConstraint(
            "issue_external_id",
            "sequence_index",
            name="uq_articles_issue_sequence",
        ),
    )
    op.create_index("ix_articles_issue_external_id", "articles", ["issue_external_id"])
    op.create_index("ix_articles_slug", "articles", ["slug"], unique=True)
    op.create_index("ix_articles_category", "articles", ["category"])
    op.create_index("ix_articles_editorial_status", "articles", ["editorial_status"])


def downgrade() -> None:
    op.drop_index("ix_articles_editorial_status", table_name="articles")
    op.drop_index("ix_articles_category", table_name="articles")
    op.drop_index("ix_articles_slug", table_name="articles")
    op.drop_index("ix_articles_issue_external_id", table_name="articles")
    op.drop_table("articles")
    op.drop_index("ix_newsletter_issues_publication_id", table_name="newsletter_issues")
    op.drop_index("ix_newsletter_issues_external_id", table_name="newsletter_issues")
    op.drop_table("newsletter_issues")
