"""Shared fakes for alert node tests."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List

import pytest

from alert_node.alert_sink import AlertSinkError
from alert_node.cadence import CadenceConfig
from alert_node.engine import CadenceEngine


@dataclass
class FakeTimer:
    delay_s: float
    callback: Callable[[], None]
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


@dataclass
class FakeScheduler:
    """Collects timers instead of starting threads."""

    timers: List[FakeTimer] = field(default_factory=list)

    def __call__(self, delay_s: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(delay_s, callback)
        self.timers.append(timer)
        return timer

    def fire(self, index: int = -1) -> None:
        """Run a timer callback even if it was cancelled, like a late thread."""
        self.timers[index].callback()


@dataclass
class FakeSink:
    fail: bool = False
    calls: List[str] = field(default_factory=list)

    def start(self) -> None:
        if self.fail:
            raise AlertSinkError("no audio device")
        self.calls.append("start")

    def stop(self) -> None:
        self.calls.append("stop")

    def close(self) -> None:
        self.calls.append("close")


@dataclass
class FakeClock:
    now_ms: int = 0

    def __call__(self) -> int:
        return self.now_ms


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def sink() -> FakeSink:
    return FakeSink()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def engine(sink: FakeSink, clock: FakeClock, scheduler: FakeScheduler) -> CadenceEngine:
    eng = CadenceEngine(CadenceConfig(), sink, clock=clock, scheduler=scheduler)
    eng.set_active(True)
    return eng
