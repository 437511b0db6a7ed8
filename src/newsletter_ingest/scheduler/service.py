"""Interval scheduler that runs sync passes with bounded retries."""

from __future__ import annotations

import logging
import math
import threading
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any
from uuid import uuid4

from newsletter_ingest.config import SchedulerSettings
from newsletter_ingest.ingestion.models import SyncAllResult
from newsletter_ingest.ingestion.pipeline import SyncPassError
from newsletter_ingest.scheduler.clock import (
    Clock,
    SystemClock,
    ThreadingTimerFactory,
    TimerFactory,
    TimerHandle,
)
from newsletter_ingest.scheduler.models import JobStatus, JobTrigger, SyncJob
from newsletter_ingest.scheduler.store import InMemoryJobStore, JobStore

logger = logging.getLogger(__name__)

CONFIG_FIELDS = frozenset(
    {
        "interval_hours",
        "enabled",
        "max_retries",
        "retry_delay_minutes",
        "warmup_seconds",
        "single_flight",
    },
)


class SyncScheduler:
    """Runs ``sync_all`` after a warm-up delay, then every configured interval.

    A failed job is retried on its own timer until ``max_retries`` is reached.
    ``stop()`` cancels every pending timer but never interrupts a pass that is
    already executing.
    """

    def __init__(
        self,
        *,
        sync_all: Callable[[], SyncAllResult],
        settings: SchedulerSettings,
        store: JobStore | None = None,
        clock: Clock | None = None,
        timers: TimerFactory | None = None,
    ) -> None:
        settings.validate()
        self.settings = settings
        self.store = store if store is not None else InMemoryJobStore(settings.history_capacity)
        self._sync_all = sync_all
        self._clock = clock if clock is not None else SystemClock()
        self._timers = timers if timers is not None else ThreadingTimerFactory()
        self._lock = threading.RLock()
        self._pass_lock = threading.Lock()
        self._running = False
        self._accepting_retries = True
        self._main_timer: TimerHandle | None = None
        self._retry_timers: dict[str, TimerHandle] = {}
        self._next_tick_at: datetime | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> bool:
        with self._lock:
            if self._running:
                logger.info("Scheduler already running")
                return False
            if not self.settings.enabled:
                logger.info("Scheduler disabled, not starting")
                return False
            self._running = True
            self._accepting_retries = True
            self._schedule_tick(self.settings.warmup_seconds)
        logger.info(
            "Scheduler started: first pass in %.0fs, then every %.2fh",
            self.settings.warmup_seconds,
            self.settings.interval_hours,
        )
        return True

    def stop(self) -> None:
        with self._lock:
            was_running = self._running
            self._running = False
            self._accepting_retries = False
            if self._main_timer is not None:
                self._main_timer.cancel()
                self._main_timer = None
            for job_id in list(self._retry_timers):
                job = self.store.get(job_id)
                if job is not None:
                    self._abandon_retry(job, "Retry cancelled: scheduler stopped")
                else:
                    self._retry_timers.pop(job_id).cancel()
            self._next_tick_at = None
        if was_running:
            logger.info("Scheduler stopped")

    def trigger_manual_sync(self) -> SyncJob:
        return self.execute_sync(trigger=JobTrigger.MANUAL)

    def execute_sync(self, *, trigger: JobTrigger = JobTrigger.AUTOMATIC) -> SyncJob:
        """Create a job and run one pass synchronously."""

        now = self._clock.now()
        job = SyncJob(
            id=f"sync_{int(now.timestamp() * 1000)}_{uuid4().hex[:6]}",
            scheduled_at=now,
            trigger=trigger,
        )
        self._register(job)
        self._run_job(job)
        return job

    def update_config(self, **changes: Any) -> SchedulerSettings:
        unknown = set(changes) - CONFIG_FIELDS
        if unknown:
            raise ValueError(f"Unknown scheduler settings: {', '.join(sorted(unknown))}")
        updates = {key: value for key, value in changes.items() if value is not None}
        new_settings = replace(self.settings, **updates)
        new_settings.validate()

        with self._lock:
            interval_changed = new_settings.interval_hours != self.settings.interval_hours
            self.settings = new_settings
            was_running = self._running
        logger.info("Scheduler settings updated: %s", updates)

        if was_running and not new_settings.enabled:
            self.stop()
        elif was_running and interval_changed:
            self.stop()
            self.start()
        return new_settings

    def next_sync_in_minutes(self) -> int | None:
        with self._lock:
            next_at = self._next_tick_at
        if next_at is None:
            last = self.last_job()
            if last is None:
                return None
            next_at = last.scheduled_at + timedelta(hours=self.settings.interval_hours)
        remaining = (next_at - self._clock.now()).total_seconds()
        return max(0, math.ceil(remaining / 60))

    def last_job(self) -> SyncJob | None:
        recent = self.store.list_recent(1)
        return recent[0] if recent else None

    def _schedule_tick(self, delay_seconds: float) -> None:
        self._next_tick_at = self._clock.now() + timedelta(seconds=delay_seconds)
        self._main_timer = self._timers.call_later(delay_seconds, self._on_tick)

    def _on_tick(self) -> None:
        with self._lock:
            if not self._running:
                return
            self._schedule_tick(self.settings.interval_hours * 3600)
        self.execute_sync(trigger=JobTrigger.AUTOMATIC)

    def _register(self, job: SyncJob) -> None:
        evicted = self.store.add(job)
        if not evicted:
            return
        with self._lock:
            for old in evicted:
                if old.id in self._retry_timers:
                    self._abandon_retry(old, "Retry cancelled: job evicted from history")
                    logger.info("Evicted job %s with pending retry", old.id)

    def _run_job(self, job: SyncJob) -> None:
        job.executed_at = self._clock.now()
        job.transition(JobStatus.RUNNING)

        holds_pass_lock = False
        if self.settings.single_flight:
            if not self._pass_lock.acquire(blocking=False):
                job.error = "Another sync pass is already running"
                job.completed_at = self._clock.now()
                job.transition(JobStatus.FAILED)
                logger.warning("Job %s rejected: %s", job.id, job.error)
                return
            holds_pass_lock = True

        try:
            result = self._sync_all()
        except Exception as exc:  # noqa: BLE001
            job.results = exc.result if isinstance(exc, SyncPassError) else None
            job.error = str(exc)
            job.completed_at = self._clock.now()
            job.transition(JobStatus.FAILED)
            logger.warning("Job %s failed (retry %d): %s", job.id, job.retry_count, exc)
            self._schedule_retry(job)
        else:
            job.results = result
            job.completed_at = self._clock.now()
            job.transition(JobStatus.COMPLETED)
            logger.info("Job %s completed", job.id)
        finally:
            if holds_pass_lock:
                self._pass_lock.release()

    def _schedule_retry(self, job: SyncJob) -> None:
        with self._lock:
            if not self._accepting_retries:
                return
            if job.retry_count >= self.settings.max_retries:
                logger.error(
                    "Job %s exhausted %d retries: %s",
                    job.id,
                    self.settings.max_retries,
                    job.error,
                )
                return
            job.retry_count += 1
            job.transition(JobStatus.RETRYING)
            delay = self.settings.retry_delay_minutes * 60
            self._retry_timers[job.id] = self._timers.call_later(
                delay,
                lambda: self._on_retry(job.id),
            )
        logger.info("Job %s retry %d scheduled in %.0fs", job.id, job.retry_count, delay)

    def _abandon_retry(self, job: SyncJob, reason: str) -> None:
        """Cancel a pending retry timer and leave the job in a terminal state."""

        handle = self._retry_timers.pop(job.id, None)
        if handle is not None:
            handle.cancel()
        if job.status == JobStatus.RETRYING:
            job.error = f"{reason} (last error: {job.error})" if job.error else reason
            job.completed_at = self._clock.now()
            job.transition(JobStatus.FAILED)

    def _on_retry(self, job_id: str) -> None:
        with self._lock:
            self._retry_timers.pop(job_id, None)
            if not self._accepting_retries:
                return
        job = self.store.get(job_id)
        if job is None:
            return
        self._run_job(job)
