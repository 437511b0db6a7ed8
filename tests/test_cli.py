from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import pytest
from click.testing import CliRunner

from newsletter_ingest.config import Publication
from newsletter_ingest.ingestion.models import IssuePage, RawIssue
from newsletter_ingest.ingestion.sources.base import IssueFetchError
from newsletter_ingest.ingestion.sources.beehiiv import BeehiivSource
from newsletter_ingest.main import newsletter_ingest

_ISSUE = RawIssue(
    external_id="post_1",
    title="Morning Brief",
    status="confirmed",
    published_at=datetime(2026, 10, 17, 8, 0, tzinfo=UTC),
    html=(
        "<h6>WORLD</h6><h1>Storm hits coast</h1>"
        "<p>First paragraph of the world story.</p>"
        "<h6>BUSINESS</h6><h1>Markets rally</h1>"
        "<p>First paragraph of the market story.</p>"
    ),
)


def _fetch_issues(_self: BeehiivSource, _publication: Publication, _limit: int) -> IssuePage:
    return IssuePage(issues=[_ISSUE], total=1)


def test_sync_publication_then_list_articles(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("NEWSLETTER_INGEST_PUBLICATIONS", "pub_1|Daily Brief|tok-1")
    monkeypatch.setattr(BeehiivSource, "fetch_issues", _fetch_issues)
    db_path = tmp_path / "cli.db"
    runner = CliRunner()

    synced = runner.invoke(
        newsletter_ingest,
        ["sync", "publication", "--db-path", str(db_path), "--publication-id", "pub_1"],
    )

    assert synced.exit_code == 0, synced.output
    assert "Publication Daily Brief (pub_1): status=ok failed_articles=0" in synced.output
    assert "strategy=category_markers" in synced.output
    assert "created slug=storm-hits-coast" in synced.output

    listed = runner.invoke(newsletter_ingest, ["articles", "list", "--db-path", str(db_path)])

    assert listed.exit_code == 0, listed.output
    assert "Articles: 2" in listed.output
    assert "[international] status=pending_review issue=post_1#0" in listed.output

    filtered = runner.invoke(
        newsletter_ingest,
        ["articles", "list", "--db-path", str(db_path), "--issue-id", "post_9"],
    )
    assert "No articles found." in filtered.output


def test_sync_all_reports_failed_pass(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NEWSLETTER_INGEST_PUBLICATIONS", "pub_1|Daily Brief")
    monkeypatch.setenv("NEWSLETTER_INGEST_API_KEY", "shared-key")
    monkeypatch.setenv("NEWSLETTER_INGEST_INTER_PUBLICATION_DELAY_SECONDS", "0")

    def _failing(_self: BeehiivSource, _publication: Publication, _limit: int) -> IssuePage:
        raise IssueFetchError(message="Publishing API error", status_code=503, body="busy")

    monkeypatch.setattr(BeehiivSource, "fetch_issues", _failing)

    result = CliRunner().invoke(
        newsletter_ingest,
        ["sync", "all", "--db-path", str(tmp_path / "a.db")],
    )

    assert result.exit_code == 0, result.output
    assert "Sync pass failed: 0/1 publications succeeded" in result.output
    assert "HTTP 503 - busy" in result.output


def test_sync_publication_source_error_is_cli_error(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("NEWSLETTER_INGEST_PUBLICATIONS", "pub_1|Daily Brief|tok-1")

    def _unauthorized(_self: BeehiivSource, _publication: Publication, _limit: int) -> IssuePage:
        raise IssueFetchError(message="Publishing API error", status_code=401, body="denied")

    monkeypatch.setattr(BeehiivSource, "fetch_issues", _unauthorized)

    result = CliRunner().invoke(
        newsletter_ingest,
        ["sync", "publication", "--db-path", str(tmp_path / "e.db"), "--publication-id", "pub_1"],
    )

    assert result.exit_code == 1
    assert "HTTP 401" in result.output


def test_sync_requires_configured_publications(tmp_path: Path) -> None:
    result = CliRunner().invoke(
        newsletter_ingest,
        ["sync", "all", "--db-path", str(tmp_path / "x.db")],
    )

    assert result.exit_code == 1
    assert "At least one publication" in result.output


def test_version_option() -> None:
    result = CliRunner().invoke(newsletter_ingest, ["--version"])

    assert result.exit_code == 0
    assert "newsletter-ingest" in result.output
