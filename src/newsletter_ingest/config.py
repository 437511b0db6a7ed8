"""Runtime configuration for newsletter ingestion and scheduling."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

DEFAULT_API_BASE_URL = "https://api.beehiiv.com/v2"

DEFAULT_CATEGORY_LABELS: dict[str, str] = {
    "WORLD": "international",
    "INTERNATIONAL": "international",
    "NATIONAL": "national",
    "POLITICS": "politics",
    "TECHNOLOGY": "technology",
    "TECH": "technology",
    "BUSINESS": "economy",
    "ECONOMY": "economy",
    "MARKETS": "economy",
    "SCIENCE": "science",
    "HEALTH": "health",
    "SPORTS": "sports",
    "CULTURE": "entertainment",
    "ENTERTAINMENT": "entertainment",
    "MISC": "general",
    "GENERAL": "general",
    "SPONSORED": "sponsored",
    "PRESENTED BY": "sponsored",
    "MUNDO": "international",
    "BRASIL": "national",
    "TECNOLOGIA": "technology",
    "ECONOMIA": "economy",
    "NEGÓCIOS": "economy",
    "VARIEDADES": "general",
    "APRESENTADO POR": "sponsored",
}
SPONSORED_CATEGORY = "sponsored"
FALLBACK_CATEGORY = "general"

DEFAULT_IGNORED_LABELS: tuple[str, ...] = (
    "FOOTER",
    "ABOUT US",
    "WHO WE ARE",
    "GIVEAWAY",
    "READER OPINION",
    "RODAPÉ",
    "QUEM SOMOS",
    "OPINIÃO DO LEITOR",
    "DICAS DO FINAL DE SEMANA",
)

DEFAULT_PLACEHOLDER_TITLES: tuple[str, ...] = (
    "título",
    "titulo",
    "headline",
    "your headline here",
    "title goes here",
    "untitled",
    "edição de hoje",
    "giro por",
)


@dataclass(slots=True, frozen=True)
class Publication:
    """One configured external publication and its credentials."""

    publication_id: str
    name: str
    api_token: str = ""


@dataclass(slots=True)
class SourceSettings:
    """Publishing API settings."""

    api_base_url: str = DEFAULT_API_BASE_URL
    api_key: str = ""
    publications: tuple[Publication, ...] = ()
    issues_per_sync: int = 1
    order_by: str = "created_timestamp"
    direction: str = "desc"
    status_filter: str = "confirmed"
    expand: str = "free_rss_content"
    request_timeout_seconds: float = 30.0
    max_retries: int = 3

    def resolve_publication(self, publication_id: str) -> Publication | None:
        for publication in self.publications:
            if publication.publication_id == publication_id:
                if publication.api_token or not self.api_key:
                    return publication
                return Publication(
                    publication_id=publication.publication_id,
                    name=publication.name,
                    api_token=self.api_key,
                )
        return None


@dataclass(slots=True)
class IngestionSettings:
    """Segmentation, classification, and sync-pass settings."""

    inter_publication_delay_seconds: float = 1.0
    min_item_chars: int = 20
    excerpt_chars: int = 200
    min_fallback_paragraph_chars: int = 10
    own_domains: tuple[str, ...] = ()
    category_labels: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_CATEGORY_LABELS))
    ignored_labels: tuple[str, ...] = DEFAULT_IGNORED_LABELS
    placeholder_titles: tuple[str, ...] = DEFAULT_PLACEHOLDER_TITLES


@dataclass(slots=True)
class SchedulerSettings:
    """Periodic sync scheduler settings."""

    interval_hours: float = 6.0
    enabled: bool = True
    max_retries: int = 3
    retry_delay_minutes: float = 30.0
    warmup_seconds: float = 60.0
    history_capacity: int = 50
    single_flight: bool = False

    def validate(self) -> None:
        if self.interval_hours <= 0:
            raise ValueError("NEWSLETTER_INGEST_SCHEDULER_INTERVAL_HOURS must be > 0.")
        if self.max_retries < 0:
            raise ValueError("NEWSLETTER_INGEST_SCHEDULER_MAX_RETRIES must be >= 0.")
        if self.retry_delay_minutes < 0:
            raise ValueError("NEWSLETTER_INGEST_SCHEDULER_RETRY_DELAY_MINUTES must be >= 0.")
        if self.warmup_seconds < 0:
            raise ValueError("NEWSLETTER_INGEST_SCHEDULER_WARMUP_SECONDS must be >= 0.")
        if self.history_capacity <= 0:
            raise ValueError("NEWSLETTER_INGEST_SCHEDULER_HISTORY_CAPACITY must be > 0.")


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = Path(".newsletter_ingest.db")
    source: SourceSettings = field(default_factory=SourceSettings)
    ingestion: IngestionSettings = field(default_factory=IngestionSettings)
    scheduler: SchedulerSettings = field(default_factory=SchedulerSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        api_key = os.getenv("NEWSLETTER_INGEST_API_KEY", "").strip()
        return cls(
            db_path=db_path
            or Path(os.getenv("NEWSLETTER_INGEST_DB_PATH", ".newsletter_ingest.db")),
            source=SourceSettings(
                api_base_url=os.getenv(
                    "NEWSLETTER_INGEST_API_BASE_URL",
                    DEFAULT_API_BASE_URL,
                ).rstrip("/"),
                api_key=api_key,
                publications=_collect_publications(api_key),
                issues_per_sync=_env_int("NEWSLETTER_INGEST_ISSUES_PER_SYNC", 1),
                order_by=os.getenv("NEWSLETTER_INGEST_ORDER_BY", "created_timestamp"),
                direction=os.getenv("NEWSLETTER_INGEST_DIRECTION", "desc"),
                status_filter=os.getenv("NEWSLETTER_INGEST_STATUS_FILTER", "confirmed"),
                expand=os.getenv("NEWSLETTER_INGEST_EXPAND", "free_rss_content"),
                request_timeout_seconds=_env_float(
                    "NEWSLETTER_INGEST_REQUEST_TIMEOUT_SECONDS",
                    30.0,
                ),
                max_retries=_env_int("NEWSLETTER_INGEST_HTTP_MAX_RETRIES", 3),
            ),
            ingestion=IngestionSettings(
                inter_publication_delay_seconds=_env_float(
                    "NEWSLETTER_INGEST_INTER_PUBLICATION_DELAY_SECONDS",
                    1.0,
                ),
                min_item_chars=_env_int("NEWSLETTER_INGEST_MIN_ITEM_CHARS", 20),
                excerpt_chars=_env_int("NEWSLETTER_INGEST_EXCERPT_CHARS", 200),
                own_domains=_env_csv("NEWSLETTER_INGEST_OWN_DOMAINS"),
                category_labels=_collect_category_labels(),
            ),
            scheduler=SchedulerSettings(
                interval_hours=_env_float("NEWSLETTER_INGEST_SCHEDULER_INTERVAL_HOURS", 6.0),
                enabled=_env_bool("NEWSLETTER_INGEST_SCHEDULER_ENABLED", default=True),
                max_retries=_env_int("NEWSLETTER_INGEST_SCHEDULER_MAX_RETRIES", 3),
                retry_delay_minutes=_env_float(
                    "NEWSLETTER_INGEST_SCHEDULER_RETRY_DELAY_MINUTES",
                    30.0,
                ),
                warmup_seconds=_env_float("NEWSLETTER_INGEST_SCHEDULER_WARMUP_SECONDS", 60.0),
                history_capacity=_env_int("NEWSLETTER_INGEST_SCHEDULER_HISTORY_CAPACITY", 50),
                single_flight=_env_bool("NEWSLETTER_INGEST_SCHEDULER_SINGLE_FLIGHT", default=False),
            ),
        )

    def validate_for_sync(self) -> None:
        """Raise configuration error if the publishing API cannot be reached as configured."""

        parsed = urlparse(self.source.api_base_url)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError(
                "Invalid NEWSLETTER_INGEST_API_BASE_URL: "
                f"{self.source.api_base_url!r}. Expected an absolute http(s) URL.",
            )
        if not self.source.publications:
            raise ValueError(
                "At least one publication is required. Set NEWSLETTER_INGEST_PUBLICATIONS.",
            )
        for publication in self.source.publications:
            if not (publication.api_token or self.source.api_key):
                raise ValueError(
                    f"No API token for publication {publication.publication_id!r}. "
                    "Set NEWSLETTER_INGEST_API_KEY or use the 'id|name|token' form.",
                )
        if self.source.issues_per_sync <= 0:
            raise ValueError("NEWSLETTER_INGEST_ISSUES_PER_SYNC must be a positive integer.")
        if self.ingestion.inter_publication_delay_seconds < 0:
            raise ValueError("NEWSLETTER_INGEST_INTER_PUBLICATION_DELAY_SECONDS must be >= 0.")
        self.scheduler.validate()


def _collect_publications(api_key: str) -> tuple[Publication, ...]:
    raw = os.getenv("NEWSLETTER_INGEST_PUBLICATIONS", "").strip()
    if not raw:
        return ()

    publications: list[Publication] = []
    seen: set[str] = set()
    for part in raw.split(","):
        token = part.strip()
        if not token:
            continue
        fields = [value.strip() for value in token.split("|")]
        if len(fields) > 3 or not fields[0]:
            raise ValueError(
                "Invalid NEWSLETTER_INGEST_PUBLICATIONS entry: "
                f"{token!r}. Expected '<id>', '<id>|<name>' or '<id>|<name>|<token>'.",
            )
        publication_id = fields[0]
        if publication_id in seen:
            continue
        seen.add(publication_id)
        name = fields[1] if len(fields) > 1 and fields[1] else f"Publication {publication_id}"
        token_value = fields[2] if len(fields) > 2 else ""
        publications.append(
            Publication(
                publication_id=publication_id,
                name=name,
                api_token=token_value or api_key,
            ),
        )
    return tuple(publications)


def _collect_category_labels() -> dict[str, str]:
    labels = dict(DEFAULT_CATEGORY_LABELS)
    raw = os.getenv("NEWSLETTER_INGEST_CATEGORY_LABELS", "").strip()
    if not raw:
        return labels

    for part in raw.split(","):
        token = part.strip()
        if not token:
            continue
        if "=" not in token:
            raise ValueError(
                "Invalid NEWSLETTER_INGEST_CATEGORY_LABELS entry: "
                f"{token!r}. Expected format '<LABEL>=<category>'.",
            )
        label, category = token.split("=", 1)
        label = label.strip().upper()
        category = category.strip().lower()
        if not label or not category:
            raise ValueError(f"Invalid NEWSLETTER_INGEST_CATEGORY_LABELS entry: {token!r}")
        labels[label] = category
    return labels


def _env_csv(name: str) -> tuple[str, ...]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return ()
    values: list[str] = []
    for part in raw.split(","):
        normalized = part.strip().lower()
        if normalized and normalized not in values:
            values.append(normalized)
    return tuple(values)


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {value!r}") from error


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError as error:
        raise ValueError(f"Invalid number value for {name}: {value!r}") from error


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
