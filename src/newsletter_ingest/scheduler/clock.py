"""Injectable clock and timer abstractions for the scheduler."""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        raise NotImplementedError


class TimerHandle(Protocol):
    def cancel(self) -> None:
        raise NotImplementedError


class TimerFactory(Protocol):
    """Schedules a one-shot callback after a delay."""

    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> TimerHandle:
        raise NotImplementedError


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(tz=UTC)


class ThreadingTimerFactory:
    """One daemon ``threading.Timer`` per scheduled callback."""

    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> TimerHandle:
        timer = threading.Timer(max(0.0, delay_seconds), callback)
        timer.daemon = True
        timer.start()
        return timer
