from __future__ import annotations

from pathlib import Path

import allure
import pytest

from newsletter_ingest.config import (
    Publication,
    SchedulerSettings,
    Settings,
    SourceSettings,
)

pytestmark = [
    allure.epic("Issue Ingestion"),
    allure.feature("Configuration"),
]


def test_from_env_parses_publications_and_shared_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NEWSLETTER_INGEST_API_KEY", "shared")
    monkeypatch.setenv(
        "NEWSLETTER_INGEST_PUBLICATIONS",
        "pub_1|Daily Brief|tok-1, pub_2|Tech Weekly, pub_3, pub_1|Duplicate",
    )

    settings = Settings.from_env(db_path=Path("x.db"))

    assert settings.db_path == Path("x.db")
    assert settings.source.publications == (
        Publication(publication_id="pub_1", name="Daily Brief", api_token="tok-1"),
        Publication(publication_id="pub_2", name="Tech Weekly", api_token="shared"),
        Publication(publication_id="pub_3", name="Publication pub_3", api_token="shared"),
    )
    settings.validate_for_sync()


def test_from_env_rejects_malformed_publication_entry(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NEWSLETTER_INGEST_PUBLICATIONS", "a|b|c|d")

    with pytest.raises(ValueError, match="Invalid NEWSLETTER_INGEST_PUBLICATIONS entry"):
        Settings.from_env()


def test_from_env_merges_category_label_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NEWSLETTER_INGEST_CATEGORY_LABELS", "radar=Science, world=global")

    labels = Settings.from_env().ingestion.category_labels

    assert labels["RADAR"] == "science"
    assert labels["WORLD"] == "global"
    assert labels["BUSINESS"] == "economy"


def test_from_env_rejects_invalid_numbers_and_booleans(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NEWSLETTER_INGEST_ISSUES_PER_SYNC", "many")
    with pytest.raises(ValueError, match="Invalid integer value"):
        Settings.from_env()

    monkeypatch.delenv("NEWSLETTER_INGEST_ISSUES_PER_SYNC")
    monkeypatch.setenv("NEWSLETTER_INGEST_SCHEDULER_ENABLED", "maybe")
    with pytest.raises(ValueError, match="Invalid boolean value"):
        Settings.from_env()


def test_from_env_reads_scheduler_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NEWSLETTER_INGEST_SCHEDULER_INTERVAL_HOURS", "12")
    monkeypatch.setenv("NEWSLETTER_INGEST_SCHEDULER_ENABLED", "off")
    monkeypatch.setenv("NEWSLETTER_INGEST_SCHEDULER_MAX_RETRIES", "5")

    scheduler = Settings.from_env().scheduler

    assert scheduler.interval_hours == 12.0
    assert scheduler.enabled is False
    assert scheduler.max_retries == 5
    assert scheduler.retry_delay_minutes == 30.0


def test_validate_for_sync_requires_publications() -> None:
    with pytest.raises(ValueError, match="At least one publication is required"):
        Settings().validate_for_sync()


def test_validate_for_sync_requires_token() -> None:
    settings = Settings(source=SourceSettings(publications=(Publication("pub_1", "Daily"),)))

    with pytest.raises(ValueError, match="No API token"):
        settings.validate_for_sync()


def test_validate_for_sync_rejects_invalid_base_url() -> None:
    settings = Settings(
        source=SourceSettings(
            api_base_url="ftp://api.example.com",
            publications=(Publication("pub_1", "Daily", "tok"),),
        ),
    )

    with pytest.raises(ValueError, match="Invalid NEWSLETTER_INGEST_API_BASE_URL"):
        settings.validate_for_sync()


def test_resolve_publication_falls_back_to_shared_key() -> None:
    source = SourceSettings(api_key="shared", publications=(Publication("pub_1", "Daily"),))

    assert source.resolve_publication("pub_1") == Publication("pub_1", "Daily", "shared")
    assert source.resolve_publication("missing") is None


@pytest.mark.parametrize(
    ("field", "value", "message"),
    [
        ("interval_hours", 0, "INTERVAL_HOURS"),
        ("max_retries", -1, "MAX_RETRIES"),
        ("retry_delay_minutes", -1, "RETRY_DELAY_MINUTES"),
        ("history_capacity", 0, "HISTORY_CAPACITY"),
    ],
)
def test_scheduler_settings_validation(field: str, value: float, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        SchedulerSettings(**{field: value}).validate()
