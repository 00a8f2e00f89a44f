"""Thread-safe facade over cadence counting, activation, and alert playback."""

from __future__ import annotations

import json
import logging
import threading
from collections import deque
from typing import Callable, Deque, List, Optional, Tuple

from .alert import AlertController, FireResult
from .alert_sink import AlertSink
from .cadence import CadenceConfig, CadenceInvariantError, transition
from .clock import Clock, Scheduler, monotonic_ms, thread_scheduler
from .state import (
    CadenceState,
    Effect,
    EffectKind,
    EngineSnapshot,
    TapEvent,
    TapOutcome,
    TapStatus,
)

LOGGER = logging.getLogger(__name__)

SnapshotListener = Callable[[EngineSnapshot], None]


def _log_event(event: str, **fields: object) -> None:
    LOGGER.info(json.dumps({"event": event, **fields}))


class CadenceEngine:
    """Single entry point shared by the tap source, poller, and timers.

    Every mutation runs under one lock and ends by publishing a frozen
    :class:`EngineSnapshot`. Readers call :meth:`snapshot`, which returns the
    last published object without locking.
    """

    def __init__(
        self,
        config: CadenceConfig,
        sink: AlertSink,
        clock: Clock = monotonic_ms,
        scheduler: Scheduler = thread_scheduler,
    ) -> None:
        self._config = config
        self._clock = clock
        self._lock = threading.Lock()
        self._active = False
        self._cadence = CadenceState()
        self._log: Deque[str] = deque(maxlen=config.log_capacity)
        self._alert = AlertController(sink, self._on_auto_stop, scheduler)
        self._listeners: List[SnapshotListener] = []
        # Reentrant so a listener may call back into the engine.
        self._notify_lock = threading.RLock()
        self._delivered_version = 0
        self._version = 0
        self._snapshot = self._build_snapshot()

    # Readers -------------------------------------------------------------

    def snapshot(self) -> EngineSnapshot:
        """Return the most recently published consistent state."""
        return self._snapshot

    @property
    def config(self) -> CadenceConfig:
        return self._config

    def subscribe(self, listener: SnapshotListener) -> None:
        """Register a callback invoked with new snapshots in version order.

        Callbacks run outside the engine lock, one delivery at a time. A
        snapshot superseded before its turn is skipped, so the last call a
        listener sees always carries the current state.
        """
        with self._lock:
            self._listeners.append(listener)

    # Mutators ------------------------------------------------------------

    def record_tap(
        self,
        timestamp_ms: Optional[int] = None,
        press_duration_ms: Optional[int] = None,
    ) -> TapOutcome:
        """Count one tap and fire the alert when the run reaches the threshold."""
        if timestamp_ms is None:
            timestamp_ms = self._clock()
        event = TapEvent(timestamp_ms=int(timestamp_ms), press_duration_ms=press_duration_ms)

        with self._lock:
            if not self._active:
                return TapOutcome(
                    status=TapStatus.REJECTED_INACTIVE,
                    total_taps=self._cadence.total_taps,
                    consecutive_taps=self._cadence.consecutive_taps,
                )

            try:
                new_state, effects = transition(self._cadence, self._config, event)
            except CadenceInvariantError as exc:
                _log_event("cadence_inconsistent", error=str(exc))
                self._deactivate_locked("fail_safe")
                snapshot = self._publish_locked()
                outcome = TapOutcome(status=TapStatus.FAILED_SAFE)
            else:
                self._cadence = new_state
                outcome = self._apply_effects_locked(effects)
                snapshot = self._publish_locked()

        self._notify(snapshot)
        return outcome

    def set_active(self, active: bool) -> bool:
        """Open or close the activation gate; returns ``True`` on a state change.

        The caller is responsible for verifying the tap source is available
        before activating.
        """
        with self._lock:
            if active == self._active:
                return False
            if active:
                self._active = True
                _log_event("engine_activated")
            else:
                self._deactivate_locked("operator")
            snapshot = self._publish_locked()
        self._notify(snapshot)
        return True

    def manual_stop_alert(self) -> bool:
        """Silence the alert; repeated calls are no-ops."""
        with self._lock:
            stopped = self._alert.manual_stop()
            if not stopped:
                return False
            self._append_log_locked("Alert stopped (manual)")
            snapshot = self._publish_locked()
        self._notify(snapshot)
        return True

    def update_config(self, config: CadenceConfig) -> None:
        """Swap configuration for future taps without touching live counters.

        A lowered threshold that the current run already satisfies does not
        fire; only the next tap is evaluated against the new values.
        """
        with self._lock:
            previous = self._config
            self._config = config
            if config.log_capacity != previous.log_capacity:
                newest = list(self._log)[: config.log_capacity]
                self._log = deque(newest, maxlen=config.log_capacity)
            _log_event(
                "config_updated",
                trigger_threshold=config.trigger_threshold,
                consecutive_window_ms=config.consecutive_window_ms,
                alert_auto_stop_ms=config.alert_auto_stop_ms,
            )
            snapshot = self._publish_locked()
        self._notify(snapshot)

    # Internal helpers -----------------------------------------------------

    def _apply_effects_locked(self, effects: Tuple[Effect, ...]) -> TapOutcome:
        status = TapStatus.COUNTED
        playback_unavailable = False

        for effect in effects:
            if effect.kind is EffectKind.NON_MONOTONIC_TIMESTAMP:
                _log_event("non_monotonic_timestamp", detail=effect.detail)
            elif effect.kind is EffectKind.COUNTER_RESET:
                LOGGER.debug("Consecutive run reset (%s)", effect.detail)
            elif effect.kind is EffectKind.SYMBOL_CLASSIFIED:
                self._append_log_locked(f"Symbol: {effect.detail}")

        self._append_log_locked(
            f"Tap #{self._cadence.total_taps} "
            f"(Consecutive: {self._cadence.consecutive_taps})"
        )

        if any(effect.kind is EffectKind.TRIGGER_FIRED for effect in effects):
            status = TapStatus.TRIGGERED
            result = self._alert.fire(self._clock(), self._config.alert_auto_stop_ms)
            if result is FireResult.STARTED:
                self._append_log_locked("ALERT PLAYING")
            elif result is FireResult.PLAYBACK_UNAVAILABLE:
                playback_unavailable = True
                self._append_log_locked("Alert unavailable")
            _log_event(
                "trigger_fired",
                total_taps=self._cadence.total_taps,
                threshold=self._config.trigger_threshold,
                result=result.value,
            )

        return TapOutcome(
            status=status,
            effects=effects,
            total_taps=self._cadence.total_taps,
            consecutive_taps=self._cadence.consecutive_taps,
            playback_unavailable=playback_unavailable,
        )

    def _deactivate_locked(self, reason: str) -> None:
        self._active = False
        self._alert.force_stop()
        self._cadence = CadenceState()
        self._log.clear()
        _log_event("engine_deactivated", reason=reason)

    def _on_auto_stop(self, generation: int) -> None:
        with self._lock:
            if not self._alert.auto_stop(generation):
                return
            self._append_log_locked("Alert stopped (auto)")
            snapshot = self._publish_locked()
        self._notify(snapshot)

    def _append_log_locked(self, entry: str) -> None:
        self._log.appendleft(entry)

    def _build_snapshot(self) -> EngineSnapshot:
        return EngineSnapshot(
            active=self._active,
            total_taps=self._cadence.total_taps,
            consecutive_taps=self._cadence.consecutive_taps,
            is_alert_playing=self._alert.is_playing,
            recent_log=tuple(self._log),
            trigger_threshold=self._config.trigger_threshold,
            version=self._version,
        )

    def _publish_locked(self) -> EngineSnapshot:
        self._version += 1
        self._snapshot = self._build_snapshot()
        return self._snapshot

    def _notify(self, snapshot: EngineSnapshot) -> None:
        """Deliver *snapshot* unless a newer one already reached listeners.

        Mutators publish under the engine lock but notify after releasing it,
        so two threads can arrive here out of version order. Delivery is
        serialized and the older snapshot is dropped.
        """
        with self._notify_lock:
            for listener in list(self._listeners):
                if snapshot.version < self._delivered_version:
                    return
                self._delivered_version = snapshot.version
                listener(snapshot)


__all__ = ["CadenceEngine", "SnapshotListener"]
