from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import allure
import pytest

from newsletter_ingest.config import SchedulerSettings
from newsletter_ingest.ingestion.models import PublicationSyncResult, SyncAllResult
from newsletter_ingest.ingestion.pipeline import SyncPassError
from newsletter_ingest.ingestion.sources.base import SourceTransportError
from newsletter_ingest.scheduler.models import JobStatus, JobTrigger
from newsletter_ingest.scheduler.service import SyncScheduler
from newsletter_ingest.scheduler.store import InMemoryJobStore

pytestmark = [
    allure.epic("Scheduling"),
    allure.feature("Sync Scheduler"),
]


class FakeClock:
    def __init__(self) -> None:
        self.current = datetime(2026, 10, 17, 12, 0, tzinfo=UTC)

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


@dataclass
class FakeTimer:
    delay: float
    callback: Callable[[], None]
    cancelled: bool = False
    fired: bool = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeTimers:
    def __init__(self) -> None:
        self.timers: list[FakeTimer] = []

    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(delay=delay_seconds, callback=callback)
        self.timers.append(timer)
        return timer

    def pending(self) -> list[FakeTimer]:
        return [timer for timer in self.timers if not timer.cancelled and not timer.fired]

    def fire_next(self) -> None:
        timer = self.pending()[0]
        timer.fired = True
        timer.callback()


class ScriptedSync:
    """Fails while ``failures`` is positive, then succeeds."""

    def __init__(self, failures: int = 0) -> None:
        self.failures = failures
        self.calls = 0

    def __call__(self) -> SyncAllResult:
        self.calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise SourceTransportError(message="publishing API down", code="transport")
        return SyncAllResult(
            success=True,
            results=[
                PublicationSyncResult(
                    publication_id="pub_1",
                    publication_name="Daily Brief",
                    success=True,
                    message="ok",
                ),
            ],
        )


def _scheduler(
    sync_all: Callable[[], SyncAllResult],
    clock: FakeClock | None = None,
    timers: FakeTimers | None = None,
    **settings: object,
) -> SyncScheduler:
    return SyncScheduler(
        sync_all=sync_all,
        settings=SchedulerSettings(**settings),  # type: ignore[arg-type]
        clock=clock or FakeClock(),
        timers=timers or FakeTimers(),
    )


def test_failed_job_retries_until_max_retries_then_fails() -> None:
    timers = FakeTimers()
    scheduler = _scheduler(ScriptedSync(failures=10), timers=timers, max_retries=2)

    job = scheduler.execute_sync()
    assert job.status == JobStatus.RETRYING
    assert job.retry_count == 1
    assert [timer.delay for timer in timers.pending()] == [30 * 60]

    timers.fire_next()
    assert job.status == JobStatus.RETRYING
    assert job.retry_count == 2

    timers.fire_next()
    assert job.status == JobStatus.FAILED
    assert job.retry_count == 2
    assert job.error == "publishing API down"
    assert timers.pending() == []
    assert job.status_history == [
        JobStatus.PENDING,
        JobStatus.RUNNING,
        JobStatus.FAILED,
        JobStatus.RETRYING,
        JobStatus.RUNNING,
        JobStatus.FAILED,
        JobStatus.RETRYING,
        JobStatus.RUNNING,
        JobStatus.FAILED,
    ]
    assert len(scheduler.store) == 1


def test_retry_that_succeeds_completes_the_same_job() -> None:
    timers = FakeTimers()
    clock = FakeClock()
    scheduler = _scheduler(ScriptedSync(failures=1), clock=clock, timers=timers)

    job = scheduler.execute_sync(trigger=JobTrigger.MANUAL)
    clock.advance(1800)
    timers.fire_next()

    assert job.status == JobStatus.COMPLETED
    assert job.retry_count == 1
    assert job.results is not None
    assert job.results.success is True
    assert job.completed_at == clock.now()
    assert job.trigger == JobTrigger.MANUAL


def test_zero_max_retries_fails_immediately() -> None:
    timers = FakeTimers()
    scheduler = _scheduler(ScriptedSync(failures=1), timers=timers, max_retries=0)

    job = scheduler.execute_sync()

    assert job.status == JobStatus.FAILED
    assert timers.pending() == []


def test_sync_pass_error_keeps_partial_results() -> None:
    failed = SyncAllResult(
        success=False,
        results=[
            PublicationSyncResult(
                publication_id="pub_1",
                publication_name="Daily Brief",
                success=False,
                message="HTTP 500",
            ),
        ],
    )

    def sync_all() -> SyncAllResult:
        raise SyncPassError(failed)

    job = _scheduler(sync_all, max_retries=0).execute_sync()

    assert job.results is failed
    assert job.to_dict()["results"]["publications"][0]["message"] == "HTTP 500"


def test_start_runs_after_warmup_then_every_interval() -> None:
    timers = FakeTimers()
    sync = ScriptedSync()
    scheduler = _scheduler(sync, timers=timers, interval_hours=6, warmup_seconds=60)

    assert scheduler.next_sync_in_minutes() is None
    assert scheduler.start() is True
    assert scheduler.start() is False
    assert [timer.delay for timer in timers.pending()] == [60]
    assert scheduler.next_sync_in_minutes() == 1

    timers.fire_next()

    assert sync.calls == 1
    assert [timer.delay for timer in timers.pending()] == [6 * 3600]
    assert scheduler.next_sync_in_minutes() == 360
    last = scheduler.last_job()
    assert last is not None
    assert last.trigger == JobTrigger.AUTOMATIC
    assert last.status == JobStatus.COMPLETED


def test_disabled_scheduler_does_not_start() -> None:
    timers = FakeTimers()
    scheduler = _scheduler(ScriptedSync(), timers=timers, enabled=False)

    assert scheduler.start() is False
    assert scheduler.is_running is False
    assert timers.timers == []


def test_stop_cancels_main_and_retry_timers_and_blocks_late_retries() -> None:
    timers = FakeTimers()
    sync = ScriptedSync(failures=5)
    scheduler = _scheduler(sync, timers=timers)
    scheduler.start()
    job = scheduler.execute_sync()
    main_timer, retry_timer = timers.timers

    scheduler.stop()

    assert scheduler.is_running is False
    assert main_timer.cancelled is True
    assert retry_timer.cancelled is True
    history_length = len(job.status_history)
    retry_timer.callback()
    main_timer.callback()
    assert len(job.status_history) == history_length
    assert sync.calls == 1


def test_stop_marks_jobs_awaiting_retry_as_failed() -> None:
    timers = FakeTimers()
    clock = FakeClock()
    scheduler = _scheduler(ScriptedSync(failures=5), clock=clock, timers=timers, max_retries=2)
    job = scheduler.trigger_manual_sync()
    assert job.status == JobStatus.RETRYING

    clock.advance(5)
    scheduler.stop()

    assert job.status == JobStatus.FAILED
    assert job.is_active is False
    assert job.completed_at == clock.now()
    assert job.error == "Retry cancelled: scheduler stopped (last error: publishing API down)"
    assert job.status_history[-2:] == [JobStatus.RETRYING, JobStatus.FAILED]
    assert timers.pending() == []
    assert sum(1 for stored in scheduler.store.all() if stored.is_active) == 0


def test_interval_change_abandons_pending_retries() -> None:
    timers = FakeTimers()
    scheduler = _scheduler(ScriptedSync(failures=5), timers=timers)
    scheduler.start()
    job = scheduler.execute_sync()
    assert job.status == JobStatus.RETRYING

    scheduler.update_config(interval_hours=1)

    assert job.status == JobStatus.FAILED
    assert scheduler.is_running is True
    assert [timer.delay for timer in timers.pending()] == [scheduler.settings.warmup_seconds]


def test_evicted_job_loses_its_pending_retry() -> None:
    timers = FakeTimers()
    sync = ScriptedSync(failures=1)
    scheduler = _scheduler(sync, timers=timers, history_capacity=2)

    first = scheduler.execute_sync()
    retry_timer = timers.pending()[0]
    scheduler.execute_sync()
    scheduler.execute_sync()

    assert len(scheduler.store) == 2
    assert scheduler.store.get(first.id) is None
    assert retry_timer.cancelled is True
    assert first.status == JobStatus.FAILED
    assert first.error.startswith("Retry cancelled: job evicted from history")


def test_update_config_restarts_on_interval_change_and_stops_when_disabled() -> None:
    timers = FakeTimers()
    scheduler = _scheduler(ScriptedSync(), timers=timers)
    scheduler.start()
    original = timers.timers[0]

    settings = scheduler.update_config(interval_hours=2, max_retries=None)

    assert settings.interval_hours == 2
    assert settings.max_retries == 3
    assert original.cancelled is True
    assert len(timers.pending()) == 1
    assert scheduler.is_running is True

    scheduler.update_config(enabled=False)

    assert scheduler.is_running is False
    assert timers.pending() == []


def test_update_config_rejects_unknown_and_invalid_values() -> None:
    scheduler = _scheduler(ScriptedSync())

    with pytest.raises(ValueError, match="Unknown scheduler settings"):
        scheduler.update_config(cron="* * * * *")
    with pytest.raises(ValueError):
        scheduler.update_config(interval_hours=0)
    assert scheduler.settings.interval_hours == 6.0


def test_single_flight_rejects_overlapping_pass_without_retry() -> None:
    timers = FakeTimers()
    inner_jobs = []

    def sync_all() -> SyncAllResult:
        inner_jobs.append(scheduler.execute_sync(trigger=JobTrigger.MANUAL))
        return SyncAllResult(success=True, results=[])

    scheduler = _scheduler(sync_all, timers=timers, single_flight=True)

    outer = scheduler.execute_sync()

    assert outer.status == JobStatus.COMPLETED
    assert inner_jobs[0].status == JobStatus.FAILED
    assert inner_jobs[0].error == "Another sync pass is already running"
    assert timers.pending() == []


def test_job_history_is_newest_first_and_bounded() -> None:
    clock = FakeClock()
    store = InMemoryJobStore(capacity=3)
    scheduler = SyncScheduler(
        sync_all=ScriptedSync(),
        settings=SchedulerSettings(),
        store=store,
        clock=clock,
        timers=FakeTimers(),
    )

    assert scheduler.store is store

    ids = []
    for _ in range(4):
        ids.append(scheduler.execute_sync().id)
        clock.advance(60)

    assert [job.id for job in store.list_recent(10)] == list(reversed(ids[1:]))
    assert [job.id for job in store.list_recent(1)] == [ids[-1]]


def test_job_store_rejects_non_positive_capacity() -> None:
    with pytest.raises(ValueError):
        InMemoryJobStore(capacity=0)
