"""Consecutive-tap counting and dot/dash classification."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import List, Tuple

from .state import CadenceState, Effect, EffectKind, TapEvent

MIN_TRIGGER_THRESHOLD = 1
MAX_TRIGGER_THRESHOLD = 10

DOT = "dot"
DASH = "dash"


class ConfigInvalid(ValueError):
    """Raised when a cadence configuration is outside the allowed range."""


class CadenceInvariantError(RuntimeError):
    """Raised when the cadence state handed to ``transition`` is corrupt."""


@dataclass(frozen=True)
class CadenceConfig:
    """Timing parameters for tap counting and alert playback."""

    consecutive_window_ms: int = 3000
    trigger_threshold: int = 2
    dot_threshold_ms: int = 250
    alert_auto_stop_ms: int = 5000
    log_capacity: int = 50

    def __post_init__(self) -> None:
        if self.consecutive_window_ms <= 0:
            raise ConfigInvalid("consecutive_window_ms must be greater than zero")
        if not MIN_TRIGGER_THRESHOLD <= self.trigger_threshold <= MAX_TRIGGER_THRESHOLD:
            raise ConfigInvalid(
                f"trigger_threshold must be {MIN_TRIGGER_THRESHOLD}-"
                f"{MAX_TRIGGER_THRESHOLD}, got {self.trigger_threshold}"
            )
        if self.dot_threshold_ms <= 0:
            raise ConfigInvalid("dot_threshold_ms must be greater than zero")
        if self.alert_auto_stop_ms <= 0:
            raise ConfigInvalid("alert_auto_stop_ms must be greater than zero")
        if self.log_capacity <= 0:
            raise ConfigInvalid("log_capacity must be greater than zero")


def classify_press(duration_ms: int, dot_threshold_ms: int) -> str:
    """Return ``"dot"`` for presses strictly shorter than the threshold."""
    if duration_ms < dot_threshold_ms:
        return DOT
    return DASH


def transition(
    state: CadenceState,
    config: CadenceConfig,
    event: TapEvent,
) -> Tuple[CadenceState, Tuple[Effect, ...]]:
    """Apply one tap to ``state`` and return the new state plus effects.

    The input state is left untouched. Effects are ordered: gap diagnostics
    first, then symbol classification, then the trigger.
    """
    _check_state(state)

    effects: List[Effect] = []
    total = state.total_taps + 1
    consecutive = state.consecutive_taps
    advanced = True

    if state.last_tap_ms is None:
        consecutive = 1
    else:
        gap = event.timestamp_ms - state.last_tap_ms
        if gap <= 0:
            # Out-of-order or duplicate timestamp: counted but not consecutive.
            advanced = False
            effects.append(Effect(EffectKind.NON_MONOTONIC_TIMESTAMP, f"gap_ms={gap}"))
        elif gap < config.consecutive_window_ms:
            consecutive += 1
        else:
            if consecutive > 0:
                effects.append(Effect(EffectKind.COUNTER_RESET, f"gap_ms={gap}"))
            consecutive = 1

    if event.press_duration_ms is not None:
        symbol = classify_press(event.press_duration_ms, config.dot_threshold_ms)
        effects.append(Effect(EffectKind.SYMBOL_CLASSIFIED, symbol))

    if advanced and consecutive >= config.trigger_threshold:
        effects.append(Effect(EffectKind.TRIGGER_FIRED, f"taps={consecutive}"))
        consecutive = 0

    new_state = replace(
        state,
        last_tap_ms=event.timestamp_ms,
        total_taps=total,
        consecutive_taps=consecutive,
    )
    return new_state, tuple(effects)


def _check_state(state: CadenceState) -> None:
    if state.total_taps < 0 or state.consecutive_taps < 0:
        raise CadenceInvariantError(f"negative counters in {state!r}")
    if state.consecutive_taps > state.total_taps:
        raise CadenceInvariantError(f"consecutive exceeds total in {state!r}")
    if state.last_tap_ms is None and state.consecutive_taps:
        raise CadenceInvariantError(f"run without a last tap in {state!r}")


def initial_state() -> CadenceState:
    return CadenceState()


__all__ = [
    "CadenceConfig",
    "CadenceInvariantError",
    "ConfigInvalid",
    "DASH",
    "DOT",
    "MAX_TRIGGER_THRESHOLD",
    "MIN_TRIGGER_THRESHOLD",
    "classify_press",
    "initial_state",
    "transition",
]
