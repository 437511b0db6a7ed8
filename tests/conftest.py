"""Shared test fixtures."""

from __future__ import annotations

import os
from collections.abc import Iterator
from pathlib import Path

import pytest

from newsletter_ingest.config import Publication, Settings, SourceSettings
from newsletter_ingest.ingestion.repository import SQLiteRepository


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep developer NEWSLETTER_INGEST_* variables out of tests."""
    for name in list(os.environ):
        if name.startswith("NEWSLETTER_INGEST_"):
            monkeypatch.delenv(name)


@pytest.fixture()
def repository(tmp_path: Path) -> Iterator[SQLiteRepository]:
    repo = SQLiteRepository(tmp_path / "ingest.db")
    repo.init_schema()
    yield repo
    repo.close()


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        db_path=tmp_path / "ingest.db",
        source=SourceSettings(
            api_key="test-key",
            publications=(
                Publication(publication_id="pub_1", name="Daily Brief", api_token="tok-1"),
            ),
        ),
    )
