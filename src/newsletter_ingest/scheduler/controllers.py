"""Control surface and CLI controller for the sync scheduler."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from newsletter_ingest.config import Settings
from newsletter_ingest.ingestion.controllers import open_runtime
from newsletter_ingest.ingestion.models import PublicationSyncResult
from newsletter_ingest.ingestion.sources.base import SourceError
from newsletter_ingest.scheduler.models import JobStatus
from newsletter_ingest.scheduler.service import SyncScheduler

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 20


class SchedulerController:
    """JSON-ready wrappers over the scheduler and single-publication sync."""

    def __init__(
        self,
        *,
        scheduler: SyncScheduler,
        sync_one: Callable[[str], PublicationSyncResult],
    ) -> None:
        self.scheduler = scheduler
        self._sync_one = sync_one

    def trigger_one(self, publication_id: str) -> dict[str, Any]:
        try:
            result = self._sync_one(publication_id)
        except SourceError as exc:
            logger.warning("Manual sync of %s failed: %s", publication_id, exc)
            return {"success": False, "publication_id": publication_id, "message": str(exc)}
        return {
            "success": result.success,
            "publication_id": result.publication_id,
            "publication_name": result.publication_name,
            "message": result.message,
            "failed_articles": result.failed_articles,
        }

    def trigger_all(self) -> dict[str, Any]:
        job = self.scheduler.trigger_manual_sync()
        return {"success": job.status == JobStatus.COMPLETED, "job": job.to_dict()}

    def get_status(self) -> dict[str, Any]:
        last_job = self.scheduler.last_job()
        jobs = self.scheduler.store.all()
        return {
            "enabled": self.scheduler.settings.enabled,
            "running": self.scheduler.is_running,
            "config": asdict(self.scheduler.settings),
            "active_job_count": sum(1 for job in jobs if job.is_active),
            "total_job_count": len(jobs),
            "last_job": last_job.to_dict() if last_job is not None else None,
            "next_sync_in_minutes": self.scheduler.next_sync_in_minutes(),
        }

    def get_job_history(self, limit: int = DEFAULT_HISTORY_LIMIT) -> dict[str, Any]:
        jobs = self.scheduler.store.list_recent(limit)
        return {"jobs": [job.to_dict() for job in jobs], "count": len(jobs)}

    def update_config(self, **changes: Any) -> dict[str, Any]:
        try:
            settings = self.scheduler.update_config(**changes)
        except ValueError as exc:
            return {"success": False, "error": str(exc)}
        return {"success": True, "config": asdict(settings)}

    def start(self) -> dict[str, Any]:
        started = self.scheduler.start()
        return {"success": started, "running": self.scheduler.is_running}

    def stop(self) -> dict[str, Any]:
        self.scheduler.stop()
        return {"success": True, "running": self.scheduler.is_running}


@dataclass(slots=True)
class SchedulerRunCommand:
    """CLI inputs for the long-running scheduler command."""

    db_path: Path | None
    interval_hours: float | None = None
    run_now: bool = False


class SchedulerCliController:
    """Runs the scheduler in the foreground until interrupted."""

    def run(
        self,
        command: SchedulerRunCommand,
        *,
        stop_event: threading.Event | None = None,
        on_started: Callable[[SchedulerController], None] | None = None,
    ) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        if command.interval_hours is not None:
            settings.scheduler.interval_hours = command.interval_hours
        settings.validate_for_sync()
        stop_event = stop_event or threading.Event()

        with open_runtime(settings) as runtime:
            scheduler = SyncScheduler(
                sync_all=runtime.orchestrator.sync_all,
                settings=settings.scheduler,
            )
            controller = SchedulerController(
                scheduler=scheduler,
                sync_one=runtime.orchestrator.sync_publication,
            )
            if not scheduler.start():
                return ["Scheduler is disabled (NEWSLETTER_INGEST_SCHEDULER_ENABLED=false)."]
            try:
                if command.run_now:
                    controller.trigger_all()
                if on_started is not None:
                    on_started(controller)
                while not stop_event.wait(timeout=1.0):
                    pass
            except KeyboardInterrupt:
                logger.info("Interrupted, stopping scheduler")
            finally:
                scheduler.stop()
            status = controller.get_status()

        return [
            "Scheduler stopped: "
            f"total_jobs={status['total_job_count']} "
            f"last_status={status['last_job']['status'] if status['last_job'] else '-'}",
        ]
