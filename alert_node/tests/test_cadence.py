"""Unit tests for the pure cadence transition."""

from __future__ import annotations

import pytest

from alert_node.cadence import (
    CadenceConfig,
    CadenceInvariantError,
    ConfigInvalid,
    classify_press,
    initial_state,
    transition,
)
from alert_node.state import CadenceState, EffectKind, TapEvent


def _run(config: CadenceConfig, times, state=None):
    state = state or initial_state()
    results = []
    for t in times:
        state, effects = transition(state, config, TapEvent(timestamp_ms=t))
        results.append((state, effects))
    return results


def _fired(effects) -> bool:
    return any(effect.kind is EffectKind.TRIGGER_FIRED for effect in effects)


def test_two_quick_taps_fire() -> None:
    config = CadenceConfig(consecutive_window_ms=3000, trigger_threshold=2)
    (first, first_fx), (second, second_fx) = _run(config, [0, 1000])

    assert first.consecutive_taps == 1
    assert not _fired(first_fx)
    assert _fired(second_fx)
    assert second.consecutive_taps == 0
    assert second.total_taps == 2


def test_slow_taps_start_new_run() -> None:
    config = CadenceConfig(consecutive_window_ms=3000, trigger_threshold=2)
    _, (second, effects) = _run(config, [0, 4000])

    assert not _fired(effects)
    assert second.consecutive_taps == 1
    assert any(effect.kind is EffectKind.COUNTER_RESET for effect in effects)


def test_gap_equal_to_window_resets() -> None:
    config = CadenceConfig(consecutive_window_ms=3000, trigger_threshold=2)
    _, (second, effects) = _run(config, [0, 3000])

    assert not _fired(effects)
    assert second.consecutive_taps == 1


def test_threshold_three_fires_on_third_tap_only() -> None:
    config = CadenceConfig(trigger_threshold=3)
    results = _run(config, [0, 500, 900])

    assert [_fired(fx) for _, fx in results] == [False, False, True]
    assert [st.consecutive_taps for st, _ in results] == [1, 2, 0]


@pytest.mark.parametrize("threshold", [1, 2, 3, 5, 10])
def test_fast_taps_fire_on_multiples_of_threshold(threshold: int) -> None:
    config = CadenceConfig(trigger_threshold=threshold)
    times = [i * 100 for i in range(1, 31)]

    for n, (state, effects) in enumerate(_run(config, times), start=1):
        assert state.total_taps == n
        if n % threshold == 0:
            assert _fired(effects)
            assert state.consecutive_taps == 0
        else:
            assert not _fired(effects)
            assert state.consecutive_taps == n % threshold


def test_total_counts_every_tap_regardless_of_gaps() -> None:
    config = CadenceConfig(trigger_threshold=2)
    times = [0, 100, 5000, 5100, 5200, 20000, 19000, 19000]
    results = _run(config, times)
    assert [st.total_taps for st, _ in results] == list(range(1, len(times) + 1))


def test_non_monotonic_tap_counted_but_not_consecutive() -> None:
    config = CadenceConfig(trigger_threshold=3)
    results = _run(config, [1000, 1500, 1500, 1200])

    states = [st for st, _ in results]
    assert [st.total_taps for st in states] == [1, 2, 3, 4]
    assert [st.consecutive_taps for st in states] == [1, 2, 2, 2]
    for _, effects in results[2:]:
        assert effects[0].kind is EffectKind.NON_MONOTONIC_TIMESTAMP
        assert not _fired(effects)
    assert states[-1].last_tap_ms == 1200


def test_transition_does_not_mutate_input() -> None:
    state = CadenceState(last_tap_ms=100, total_taps=3, consecutive_taps=1)
    new_state, _ = transition(state, CadenceConfig(), TapEvent(timestamp_ms=200))

    assert state == CadenceState(last_tap_ms=100, total_taps=3, consecutive_taps=1)
    assert new_state is not state


def test_press_duration_classified_without_affecting_count() -> None:
    config = CadenceConfig(dot_threshold_ms=250, trigger_threshold=3)
    state = initial_state()
    state, dot_fx = transition(state, config, TapEvent(0, press_duration_ms=249))
    state, dash_fx = transition(state, config, TapEvent(400, press_duration_ms=250))

    assert [e.detail for e in dot_fx if e.kind is EffectKind.SYMBOL_CLASSIFIED] == ["dot"]
    assert [e.detail for e in dash_fx if e.kind is EffectKind.SYMBOL_CLASSIFIED] == ["dash"]
    assert state.consecutive_taps == 2


def test_classify_press_boundary() -> None:
    assert classify_press(0, 250) == "dot"
    assert classify_press(249, 250) == "dot"
    assert classify_press(250, 250) == "dash"


def test_trigger_follows_symbol_effect() -> None:
    config = CadenceConfig(trigger_threshold=1)
    _, effects = transition(initial_state(), config, TapEvent(0, press_duration_ms=100))
    assert [e.kind for e in effects] == [
        EffectKind.SYMBOL_CLASSIFIED,
        EffectKind.TRIGGER_FIRED,
    ]


def test_corrupt_state_raises() -> None:
    with pytest.raises(CadenceInvariantError):
        transition(
            CadenceState(last_tap_ms=None, total_taps=0, consecutive_taps=4),
            CadenceConfig(),
            TapEvent(0),
        )


@pytest.mark.parametrize(
    "overrides",
    [
        {"trigger_threshold": 0},
        {"trigger_threshold": 11},
        {"consecutive_window_ms": 0},
        {"alert_auto_stop_ms": -1},
        {"dot_threshold_ms": 0},
        {"log_capacity": 0},
    ],
)
def test_invalid_config_rejected(overrides) -> None:
    with pytest.raises(ConfigInvalid):
        CadenceConfig(**overrides)


def test_config_invalid_is_value_error() -> None:
    assert issubclass(ConfigInvalid, ValueError)
