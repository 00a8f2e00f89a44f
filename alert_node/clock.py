"""Monotonic time source and one-shot timer scheduling."""

from __future__ import annotations

import threading
import time
from typing import Callable, Protocol

Clock = Callable[[], int]


def monotonic_ms() -> int:
    """Return a monotonic timestamp in integer milliseconds."""
    return time.monotonic_ns() // 1_000_000


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


Scheduler = Callable[[float, Callable[[], None]], TimerHandle]


def thread_scheduler(delay_s: float, callback: Callable[[], None]) -> TimerHandle:
    """Run ``callback`` once on a daemon timer thread after ``delay_s``."""
    timer = threading.Timer(max(0.0, delay_s), callback)
    timer.name = "alert-auto-stop"
    timer.daemon = True
    timer.start()
    return timer


__all__ = ["Clock", "Scheduler", "TimerHandle", "monotonic_ms", "thread_scheduler"]
