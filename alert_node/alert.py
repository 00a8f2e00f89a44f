"""Alert playback lifecycle with a cancellable auto-stop timer."""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Callable, Optional

from .alert_sink import AlertSink, AlertSinkError
from .clock import Scheduler, TimerHandle, thread_scheduler
from .state import AlertState

LOGGER = logging.getLogger(__name__)

AutoStopCallback = Callable[[int], None]


def _log_event(event: str, **fields: object) -> None:
    LOGGER.info(json.dumps({"event": event, **fields}))


class FireResult(str, Enum):
    STARTED = "started"
    ALREADY_PLAYING = "already_playing"
    PLAYBACK_UNAVAILABLE = "playback_unavailable"


class AlertController:
    """Owns ``AlertState`` and the pending auto-stop timer.

    The controller is not thread-safe on its own: every call, including the
    timer callback, must be serialized by the owner (the engine facade). The
    timer does not call back into the controller directly; it invokes
    ``on_auto_stop(generation)`` so the owner can take its lock first and
    then call :meth:`auto_stop`.
    """

    def __init__(
        self,
        sink: AlertSink,
        on_auto_stop: AutoStopCallback,
        scheduler: Scheduler = thread_scheduler,
    ) -> None:
        self._sink = sink
        self._on_auto_stop = on_auto_stop
        self._scheduler = scheduler
        self._state = AlertState()
        self._timer: Optional[TimerHandle] = None

    @property
    def state(self) -> AlertState:
        return self._state

    @property
    def is_playing(self) -> bool:
        return self._state.is_playing

    def fire(self, now_ms: int, auto_stop_ms: int) -> FireResult:
        """Start playback unless an alert is already sounding."""
        if self._state.is_playing:
            return FireResult.ALREADY_PLAYING

        try:
            self._sink.start()
        except (AlertSinkError, OSError) as exc:
            _log_event("alert_playback_unavailable", error=str(exc))
            return FireResult.PLAYBACK_UNAVAILABLE

        self._state.generation += 1
        self._state.is_playing = True
        self._state.auto_stop_deadline_ms = now_ms + auto_stop_ms
        generation = self._state.generation
        self._timer = self._scheduler(
            auto_stop_ms / 1000.0, lambda: self._on_auto_stop(generation)
        )
        _log_event("alert_started", generation=generation, auto_stop_ms=auto_stop_ms)
        return FireResult.STARTED

    def manual_stop(self) -> bool:
        """Stop a sounding alert; returns ``False`` when nothing was playing."""
        return self._stop("manual")

    def force_stop(self) -> bool:
        """Stop unconditionally on deactivation; stale timers become no-ops."""
        stopped = self._stop("forced")
        if not stopped:
            # Invalidate any timer that may still be in flight.
            self._state.generation += 1
            self._cancel_timer()
        return stopped

    def auto_stop(self, generation: int) -> bool:
        """Timer entry point; ignored unless ``generation`` is still current."""
        if generation != self._state.generation or not self._state.is_playing:
            LOGGER.debug(
                "Ignoring stale auto-stop generation=%s current=%s",
                generation,
                self._state.generation,
            )
            return False
        self._timer = None
        return self._stop("auto")

    # Internal helpers -----------------------------------------------------

    def _stop(self, reason: str) -> bool:
        if not self._state.is_playing:
            return False
        self._state.generation += 1
        self._state.is_playing = False
        self._state.auto_stop_deadline_ms = None
        self._cancel_timer()
        try:
            self._sink.stop()
        except (AlertSinkError, OSError) as exc:
            _log_event("alert_stop_error", reason=reason, error=str(exc))
        _log_event("alert_stopped", reason=reason)
        return True

    def _cancel_timer(self) -> None:
        if self._timer is None:
            return
        self._timer.cancel()
        self._timer = None


__all__ = ["AlertController", "FireResult"]
