"""Dataclasses modelling tap events, cadence state, and engine snapshots."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple


@dataclass(frozen=True)
class TapEvent:
    """A single tap reported by the event source."""

    timestamp_ms: int
    press_duration_ms: Optional[int] = None


@dataclass
class CadenceState:
    """Mutable counters owned by the engine facade."""

    last_tap_ms: Optional[int] = None
    total_taps: int = 0
    consecutive_taps: int = 0


@dataclass
class AlertState:
    """Playback state owned by the alert controller."""

    is_playing: bool = False
    auto_stop_deadline_ms: Optional[int] = None
    generation: int = field(default=0, repr=False)


class EffectKind(str, Enum):
    SYMBOL_CLASSIFIED = "symbol_classified"
    TRIGGER_FIRED = "trigger_fired"
    COUNTER_RESET = "counter_reset"
    NON_MONOTONIC_TIMESTAMP = "non_monotonic_timestamp"


@dataclass(frozen=True)
class Effect:
    kind: EffectKind
    detail: Optional[str] = None


class TapStatus(str, Enum):
    """Result of feeding one tap to the engine."""

    REJECTED_INACTIVE = "rejected_inactive"
    COUNTED = "counted"
    TRIGGERED = "triggered"
    FAILED_SAFE = "failed_safe"


@dataclass(frozen=True)
class TapOutcome:
    status: TapStatus
    effects: Tuple[Effect, ...] = ()
    total_taps: int = 0
    consecutive_taps: int = 0
    playback_unavailable: bool = False

    @property
    def accepted(self) -> bool:
        return self.status in (TapStatus.COUNTED, TapStatus.TRIGGERED)

    @property
    def symbol(self) -> Optional[str]:
        for effect in self.effects:
            if effect.kind is EffectKind.SYMBOL_CLASSIFIED:
                return effect.detail
        return None

    def has(self, kind: EffectKind) -> bool:
        return any(effect.kind is kind for effect in self.effects)


@dataclass(frozen=True)
class EngineSnapshot:
    """Immutable view published after every engine mutation."""

    active: bool
    total_taps: int
    consecutive_taps: int
    is_alert_playing: bool
    recent_log: Tuple[str, ...]
    trigger_threshold: int
    version: int = 0

    @property
    def status_line(self) -> str:
        return (
            f"Taps: {self.total_taps} | "
            f"Consecutive: {self.consecutive_taps}/{self.trigger_threshold}"
        )


__all__ = [
    "AlertState",
    "CadenceState",
    "Effect",
    "EffectKind",
    "EngineSnapshot",
    "TapEvent",
    "TapOutcome",
    "TapStatus",
]
