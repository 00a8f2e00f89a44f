"""Entrypoint for the alert node asyncio application."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
from pathlib import Path
from time import perf_counter
from typing import Optional

from .alert_sink import AlertSink, open_alert_sink
from .configuration import (
    AppConfig,
    ConfigWatcher,
    default_config_path,
    load_config,
)
from .engine import CadenceEngine
from .state import EngineSnapshot
from .tap_client import TapClient

LOGGER = logging.getLogger(__name__)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Alert node: tap cadence detection and alert playback.")
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to configuration YAML. Defaults to bundled config.yaml if omitted.",
    )
    return parser.parse_args()


class SnapshotPrinter:
    """Logs the status line and latest log entry whenever the snapshot changes."""

    def __init__(self) -> None:
        self._last_version: Optional[int] = None
        self._last_top: Optional[str] = None

    def render(self, snapshot: EngineSnapshot) -> bool:
        if snapshot.version == self._last_version:
            return False
        top = snapshot.recent_log[0] if snapshot.recent_log else None
        if top is not None and top != self._last_top:
            LOGGER.info("%s", top)
        LOGGER.info(
            "[%s] %s%s",
            "ACTIVE" if snapshot.active else "inactive",
            snapshot.status_line,
            " | ALERT" if snapshot.is_alert_playing else "",
        )
        self._last_version = snapshot.version
        self._last_top = top
        return True


async def observer_loop(
    engine: CadenceEngine,
    tap_client: TapClient,
    app_config: AppConfig,
    watcher: Optional[ConfigWatcher] = None,
) -> None:
    """Poll the engine snapshot at a fixed interval until cancelled."""
    interval = app_config.engine.poll_interval_s
    printer = SnapshotPrinter()
    auto_activate_pending = app_config.engine.auto_activate
    next_tick = perf_counter()
    try:
        while True:
            next_tick += interval
            if auto_activate_pending and tap_client.source_available():
                tap_client.request_active(True)
                auto_activate_pending = False
            if watcher is not None:
                updated = watcher.poll()
                if updated is not None:
                    engine.update_config(updated)
            printer.render(engine.snapshot())
            sleep_time = max(0.0, next_tick - perf_counter())
            if sleep_time:
                await asyncio.sleep(sleep_time)
    except asyncio.CancelledError:
        LOGGER.info("Observer loop cancelled")
        raise


def _build_sink(app_config: AppConfig) -> AlertSink:
    alert = app_config.alert
    return open_alert_sink(
        alert.port,
        channel=alert.channel,
        note=alert.note,
        velocity=alert.velocity,
        program=alert.program,
    )


async def async_main(args: argparse.Namespace) -> None:
    config_path = args.config or default_config_path()
    config = load_config(config_path)
    logging.basicConfig(level=getattr(logging, config.logging.level.upper(), logging.INFO))

    sink = _build_sink(config)
    engine = CadenceEngine(config.cadence, sink)
    tap_client = TapClient(
        config.osc.host,
        config.osc.port,
        engine,
        watchdog_s=config.engine.watchdog_s,
        loop=asyncio.get_running_loop(),
    )
    watcher = ConfigWatcher(config_path) if config.engine.config_reload else None

    loop_task: asyncio.Task[None] | None = None
    try:
        await tap_client.start()
        LOGGER.info("OSC receiver started on %s:%s", config.osc.host, config.osc.port)
        loop_task = asyncio.create_task(observer_loop(engine, tap_client, config, watcher))
        await loop_task
    except asyncio.CancelledError:
        if loop_task is not None:
            loop_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await loop_task
        raise
    finally:
        await tap_client.stop()
        engine.set_active(False)
        sink.close()


def main() -> None:
    args = parse_args()
    try:
        asyncio.run(async_main(args))
    except KeyboardInterrupt:
        LOGGER.info("Interrupted by user")


if __name__ == "__main__":
    main()
