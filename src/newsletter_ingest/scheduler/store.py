"""Bounded in-memory job history."""

from __future__ import annotations

import threading
from collections import OrderedDict
from typing import Protocol

from newsletter_ingest.scheduler.models import SyncJob


class JobStore(Protocol):
    """Job history with oldest-first eviction."""

    def add(self, job: SyncJob) -> list[SyncJob]:
        """Store ``job`` and return the jobs evicted to stay within capacity."""
        raise NotImplementedError

    def get(self, job_id: str) -> SyncJob | None:
        raise NotImplementedError

    def list_recent(self, limit: int) -> list[SyncJob]:
        raise NotImplementedError

    def all(self) -> list[SyncJob]:
        raise NotImplementedError


class InMemoryJobStore:
    """Insertion-ordered job history capped at ``capacity`` entries."""

    def __init__(self, capacity: int = 50) -> None:
        if capacity <= 0:
            raise ValueError("Job history capacity must be > 0")
        self.capacity = capacity
        self._jobs: OrderedDict[str, SyncJob] = OrderedDict()
        self._lock = threading.Lock()

    def add(self, job: SyncJob) -> list[SyncJob]:
        with self._lock:
            self._jobs[job.id] = job
            evicted: list[SyncJob] = []
            while len(self._jobs) > self.capacity:
                _, oldest = self._jobs.popitem(last=False)
                evicted.append(oldest)
            return evicted

    def get(self, job_id: str) -> SyncJob | None:
        with self._lock:
            return self._jobs.get(job_id)

    def list_recent(self, limit: int) -> list[SyncJob]:
        with self._lock:
            jobs = list(reversed(self._jobs.values()))
        jobs.sort(key=lambda job: job.scheduled_at, reverse=True)
        return jobs[: max(0, limit)]

    def all(self) -> list[SyncJob]:
        with self._lock:
            return list(self._jobs.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)
