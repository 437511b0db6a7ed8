"""Scheduler job model."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from newsletter_ingest.ingestion.models import SyncAllResult


class JobStatus(str, Enum):
    """Lifecycle states of one scheduled sync job."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    RETRYING = "retrying"


ACTIVE_JOB_STATUSES = frozenset({JobStatus.RUNNING, JobStatus.RETRYING})


class JobTrigger(str, Enum):
    """What created the job."""

    AUTOMATIC = "automatic"
    MANUAL = "manual"


@dataclass(slots=True)
class SyncJob:
    """One sync pass owned by the scheduler; retries reuse the same job."""

    id: str
    scheduled_at: datetime
    trigger: JobTrigger = JobTrigger.AUTOMATIC
    status: JobStatus = JobStatus.PENDING
    executed_at: datetime | None = None
    completed_at: datetime | None = None
    retry_count: int = 0
    results: SyncAllResult | None = None
    error: str | None = None
    status_history: list[JobStatus] = field(default_factory=lambda: [JobStatus.PENDING])

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_JOB_STATUSES

    def transition(self, status: JobStatus) -> None:
        self.status = status
        self.status_history.append(status)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "trigger": self.trigger.value,
            "status": self.status.value,
            "scheduled_at": _iso(self.scheduled_at),
            "executed_at": _iso(self.executed_at),
            "completed_at": _iso(self.completed_at),
            "retry_count": self.retry_count,
            "error": self.error,
            "results": _results_dict(self.results),
        }


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _results_dict(result: SyncAllResult | None) -> dict[str, Any] | None:
    if result is None:
        return None
    return {
        "success": result.success,
        "publications": [
            {
                "publication_id": item.publication_id,
                "publication_name": item.publication_name,
                "success": item.success,
                "message": item.message,
                "articles_created": sum(issue.created_count for issue in item.issues),
                "articles_updated": sum(issue.updated_count for issue in item.issues),
                "articles_skipped": sum(issue.skipped_count for issue in item.issues),
                "articles_failed": item.failed_articles,
            }
            for item in result.results
        ],
    }
