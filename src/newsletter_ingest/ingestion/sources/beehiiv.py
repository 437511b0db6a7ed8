"""Beehiiv publishing API issue source."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

import httpx

from newsletter_ingest.config import Publication, SourceSettings
from newsletter_ingest.ingestion.models import IssuePage, RawIssue
from newsletter_ingest.ingestion.sources.base import (
    IssueFetchError,
    SourceError,
    SourceTransportError,
)

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "newsletter-ingest/0.1 (+https://github.com/newsletter-ingest)"
MAX_ERROR_BODY_CHARS = 2000


class BeehiivSource:
    """Fetch issues from ``GET /publications/{id}/posts``."""

    name = "beehiiv"

    def __init__(
        self,
        settings: SourceSettings,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.settings = settings
        self._client = httpx.Client(
            base_url=settings.api_base_url.rstrip("/"),
            timeout=httpx.Timeout(settings.request_timeout_seconds, connect=10.0),
            headers={"Accept": "application/json", "User-Agent": DEFAULT_USER_AGENT},
            transport=transport or httpx.HTTPTransport(retries=settings.max_retries),
        )

    def fetch_issues(self, publication: Publication, limit: int) -> IssuePage:
        token = publication.api_token or self.settings.api_key
        params: dict[str, str | int] = {
            "page": 0,
            "limit": limit,
            "order_by": self.settings.order_by,
            "direction": self.settings.direction,
            "expand": self.settings.expand,
        }
        if self.settings.status_filter:
            params["status"] = self.settings.status_filter

        path = f"/publications/{publication.publication_id}/posts"
        logger.info(
            "Fetching latest issues for publication %s (limit=%d)",
            publication.publication_id,
            limit,
        )
        try:
            response = self._client.get(
                path,
                params=params,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.TimeoutException as exc:
            raise SourceTransportError(
                message=f"Timeout fetching issues for {publication.publication_id}",
                code="timeout",
            ) from exc
        except httpx.HTTPError as exc:
            raise SourceTransportError(
                message=f"Transport error fetching issues for {publication.publication_id}: {exc}",
                code="transport",
            ) from exc

        if not response.is_success:
            raise IssueFetchError(
                message="Publishing API error",
                code=str(response.status_code),
                status_code=response.status_code,
                body=response.text[:MAX_ERROR_BODY_CHARS],
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise SourceError(
                message=f"Publishing API returned invalid JSON for {publication.publication_id}",
                code="invalid_json",
            ) from exc

        issues = [
            _parse_issue(item) for item in payload.get("data") or [] if isinstance(item, dict)
        ]
        if self.settings.status_filter:
            kept = [issue for issue in issues if issue.status == self.settings.status_filter]
            if len(kept) != len(issues):
                logger.info(
                    "Ignoring %d issues not in status %s",
                    len(issues) - len(kept),
                    self.settings.status_filter,
                )
            issues = kept

        return IssuePage(
            issues=issues,
            total=int(payload.get("total_results") or len(issues)),
            page=int(payload.get("page") or 0),
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> BeehiivSource:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


def _parse_issue(item: dict[str, Any]) -> RawIssue:
    return RawIssue(
        external_id=str(item.get("id") or ""),
        title=_string(item.get("title")),
        status=_string(item.get("status")),
        published_at=_from_timestamp(item.get("publish_date")),
        html=_issue_html(item.get("content")),
        thumbnail_url=_string(item.get("thumbnail_url")),
        source_url=_string(item.get("web_url")),
        tags=tuple(_string(tag) for tag in item.get("content_tags") or () if _string(tag)),
        subtitle=_string(item.get("subtitle")),
        preview_text=_string(item.get("preview_text")),
        subject_line=_string(item.get("subject_line")),
        meta_description=_string(item.get("meta_default_description")),
        created_at=_from_timestamp(item.get("created")),
        raw_payload=item,
    )


def _issue_html(content: object) -> str:
    if not isinstance(content, dict):
        return ""
    free = content.get("free")
    if isinstance(free, dict) and free.get("rss"):
        return str(free["rss"])
    if content.get("rss"):
        return str(content["rss"])
    if isinstance(free, dict) and free.get("web"):
        return str(free["web"])
    return ""


def _from_timestamp(value: object) -> datetime | None:
    if value is None or value == "":
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=UTC)  # type: ignore[arg-type]
    except (TypeError, ValueError, OverflowError):
        logger.warning("Unparseable issue timestamp %r", value)
        return None


def _string(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, dict):
        return str(value.get("name") or value.get("title") or "").strip()
    return str(value).strip()
