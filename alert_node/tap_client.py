"""OSC receiver that feeds taps and operator commands into the engine."""

from __future__ import annotations

import asyncio
import logging
from time import perf_counter
from typing import Optional, Tuple

from pythonosc import dispatcher
from pythonosc.osc_server import AsyncIOOSCUDPServer

from .engine import CadenceEngine
from .state import TapOutcome, TapStatus

LOGGER = logging.getLogger(__name__)


class TapClient:
    """Receives OSC messages from the tap node and forwards them to the engine.

    Messages:
        ``/tap <timestamp_ms> <press_ms>`` -- a negative value means "absent".
        ``/alive <seq>`` -- heartbeat used for the activation prerequisite.
        ``/active <0|1>`` -- operator gate command.
        ``/stop`` -- manual alert stop.
    """

    def __init__(
        self,
        host: str,
        port: int,
        engine: CadenceEngine,
        watchdog_s: float,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self._loop = loop or asyncio.get_event_loop()
        self._address = (host, port)
        self._engine = engine
        self._watchdog_s = watchdog_s
        self._last_rx_ts: Optional[float] = None
        self._dispatcher = dispatcher.Dispatcher()
        self._dispatcher.map("/tap", self._on_tap)
        self._dispatcher.map("/alive", self._on_alive)
        self._dispatcher.map("/active", self._on_active)
        self._dispatcher.map("/stop", self._on_stop)
        self._server = AsyncIOOSCUDPServer(self._address, self._dispatcher, self._loop)
        self._transport: Optional[asyncio.BaseTransport] = None
        self._protocol = None

    async def start(self) -> None:
        """Start listening for OSC messages."""
        if self._transport is not None:
            return
        self._transport, self._protocol = await self._server.create_serve_endpoint()
        LOGGER.info("TapClient listening on %s:%s", *self.address)

    async def stop(self) -> None:
        """Stop the OSC server."""
        if self._transport is None:
            return
        self._transport.close()
        self._transport = None
        self._protocol = None

    @property
    def address(self) -> Tuple[str, int]:
        """Return the configured OSC address tuple."""
        return self._address

    def source_available(self, now: Optional[float] = None) -> bool:
        """Return ``True`` if the tap source was heard within the watchdog."""
        if self._last_rx_ts is None:
            return False
        now = perf_counter() if now is None else now
        return now - self._last_rx_ts < self._watchdog_s

    def request_active(self, active: bool) -> bool:
        """Apply an operator gate command; activation needs a live source."""
        if active and not self.source_available():
            LOGGER.warning("Activation refused: tap source not heard within %.1fs", self._watchdog_s)
            return False
        return self._engine.set_active(active)

    def on_tap(self, timestamp_ms: Optional[int], press_ms: Optional[int] = None) -> TapOutcome:
        """Forward a tap to the engine; safe to call from any thread."""
        self._mark_rx()
        outcome = self._engine.record_tap(timestamp_ms, press_ms)
        if outcome.status is TapStatus.REJECTED_INACTIVE:
            LOGGER.debug("Tap ignored: engine inactive")
        elif outcome.playback_unavailable:
            LOGGER.warning("Trigger fired but alert playback is unavailable")
        return outcome

    # Handlers -----------------------------------------------------------------

    def _mark_rx(self) -> None:
        self._last_rx_ts = perf_counter()

    def _on_tap(self, _addr: str, *values: object) -> None:
        try:
            timestamp_ms = int(values[0])  # type: ignore[call-overload]
            press_ms = int(values[1]) if len(values) > 1 else -1  # type: ignore[call-overload]
        except (IndexError, TypeError, ValueError):
            LOGGER.debug("Ignoring malformed tap payload: %s", values)
            return
        self.on_tap(
            timestamp_ms if timestamp_ms >= 0 else None,
            press_ms if press_ms >= 0 else None,
        )

    def _on_alive(self, _addr: str, *_values: object) -> None:
        self._mark_rx()

    def _on_active(self, _addr: str, value: object = 1) -> None:
        try:
            active = bool(int(value))  # type: ignore[arg-type]
        except (TypeError, ValueError):
            LOGGER.debug("Ignoring non-int active payload: %s", value)
            return
        self.request_active(active)

    def _on_stop(self, _addr: str, *_values: object) -> None:
        if self._engine.manual_stop_alert():
            LOGGER.info("Alert stopped by operator")


__all__ = ["TapClient"]
