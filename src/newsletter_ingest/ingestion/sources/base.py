"""Common issue source contracts."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from newsletter_ingest.config import Publication
from newsletter_ingest.ingestion.models import IssuePage


@dataclass(slots=True)
class SourceError(Exception):
    """Base issue fetch error."""

    message: str
    code: str = "source_error"

    def __str__(self) -> str:
        return self.message


@dataclass(slots=True)
class IssueFetchError(SourceError):
    """Publishing API answered with a non-2xx status."""

    status_code: int = 0
    body: str = ""

    def __str__(self) -> str:
        return f"{self.message}: HTTP {self.status_code} - {self.body}"


@dataclass(slots=True)
class SourceTransportError(SourceError):
    """Publishing API could not be reached (timeout, connection reset, DNS)."""


class IssueSource(Protocol):
    """Interface for newsletter issue sources."""

    name: str

    def fetch_issues(self, publication: Publication, limit: int) -> IssuePage:
        """Fetch the latest published issues of one publication, newest first."""
        raise NotImplementedError
