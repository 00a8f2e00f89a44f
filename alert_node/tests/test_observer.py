"""Tests for the observer loop and its snapshot printer."""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from time import perf_counter

import pytest

from alert_node.configuration import ConfigWatcher, load_config
from alert_node.engine import CadenceEngine
from alert_node.main import SnapshotPrinter, observer_loop
from alert_node.tap_client import TapClient

OBSERVER_YAML = """
osc:
  host: 127.0.0.1
  port: 9100
engine:
  poll_interval_s: 0.01
  watchdog_s: 3.0
  auto_activate: true
cadence:
  trigger_threshold: {threshold}
"""


@pytest.fixture
def event_loop() -> asyncio.AbstractEventLoop:
    loop = asyncio.new_event_loop()
    yield loop
    loop.close()


def _write(path: Path, threshold: int) -> Path:
    path.write_text(OBSERVER_YAML.format(threshold=threshold), encoding="utf-8")
    return path


async def _eventually(predicate, timeout: float = 2.0) -> bool:
    deadline = perf_counter() + timeout
    while perf_counter() < deadline:
        if predicate():
            return True
        await asyncio.sleep(0.01)
    return predicate()


def test_printer_only_renders_new_versions(engine, caplog) -> None:
    printer = SnapshotPrinter()
    caplog.set_level(logging.INFO, logger="alert_node.main")

    engine.record_tap(0)
    assert printer.render(engine.snapshot()) is True
    assert printer.render(engine.snapshot()) is False

    engine.record_tap(10)
    assert printer.render(engine.snapshot()) is True

    messages = [record.getMessage() for record in caplog.records]
    assert "Tap #1 (Consecutive: 1)" in messages
    assert "ALERT PLAYING" in messages
    assert "[ACTIVE] Taps: 2 | Consecutive: 0/2 | ALERT" in messages


def test_observer_loop_activates_and_reloads(
    tmp_path: Path, event_loop, sink, clock, scheduler, caplog
) -> None:
    caplog.set_level(logging.INFO, logger="alert_node.main")
    path = _write(tmp_path / "config.yaml", threshold=3)
    app_config = load_config(path)
    engine = CadenceEngine(app_config.cadence, sink, clock=clock, scheduler=scheduler)
    client = TapClient("127.0.0.1", 9100, engine, watchdog_s=3.0, loop=event_loop)
    watcher = ConfigWatcher(path)

    async def scenario() -> None:
        task = asyncio.create_task(observer_loop(engine, client, app_config, watcher))

        # No heartbeat yet, so auto-activation waits.
        await asyncio.sleep(0.05)
        assert engine.snapshot().active is False

        client._on_alive("/alive", 1)
        assert await _eventually(lambda: engine.snapshot().active)

        # Auto-activation happens once; an operator deactivation sticks.
        engine.set_active(False)
        await asyncio.sleep(0.05)
        assert engine.snapshot().active is False

        _write(path, threshold=4)
        stat = path.stat()
        os.utime(path, (stat.st_atime, stat.st_mtime + 5))
        assert await _eventually(lambda: engine.config.trigger_threshold == 4)
        assert engine.snapshot().trigger_threshold == 4

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    event_loop.run_until_complete(scenario())

    messages = [record.getMessage() for record in caplog.records]
    assert "[ACTIVE] Taps: 0 | Consecutive: 0/3" in messages
    assert "Observer loop cancelled" in messages
