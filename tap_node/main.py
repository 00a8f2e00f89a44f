"""Main entry-point for the tap source node."""

from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
import time
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

import yaml

from .sources import RawTap, StdinTapSource, TapSourceSim, monotonic_ms
from .symbols import classify_gap, press_to_symbol, sensitivity_label
from .tap_sender import TapTx

LOGGER = logging.getLogger(__name__)
DEFAULT_CONFIG = Path(__file__).resolve().with_name("config.yaml")


def _log_event(event: str, **fields: object) -> None:
    LOGGER.info(json.dumps({"event": event, **fields}))


def parse_args(argv: Optional[Iterable[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Tap source node: observes taps and forwards them over OSC."
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to configuration YAML (defaults to tap_node/config.yaml).",
    )
    parser.add_argument(
        "--source",
        choices=("sim", "stdin"),
        help="Override the configured tap source.",
    )
    parser.add_argument(
        "--activate",
        action="store_true",
        help="Ask the alert node to open its activation gate on startup.",
    )
    return parser.parse_args(list(argv) if argv is not None else None)


def load_config(path: Optional[Path]) -> Dict[str, Any]:
    config_path = path or DEFAULT_CONFIG
    with config_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    return raw


def _deep_update(base: Dict[str, Any], updates: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in updates.items():
        if (
            isinstance(value, dict)
            and key in base
            and isinstance(base[key], dict)
        ):
            _deep_update(base[key], value)
        else:
            base[key] = value
    return base


def _with_defaults(raw: Dict[str, Any]) -> Dict[str, Any]:
    defaults: Dict[str, Any] = {
        "cycle_hz": 200.0,
        "source": "sim",
        "osc": {"engine_ip": "127.0.0.1", "port": 9000, "queue_size": 64},
        "timing": {
            "dot_ms": 250,
            "dash_ms": 750,
            "pause_ms": 500,
            "window_ms": 3000,
        },
        "simulator": {"pattern": None},
        "stdin": {"dot_press_ms": 100, "dash_press_ms": 600},
        "logging": {"level": "INFO"},
        "print_taps": True,
    }
    return _deep_update(defaults, raw)


def _install_signal_handlers(stop_flag: Dict[str, bool]) -> None:
    def handler(signum: int, _frame: object) -> None:
        _log_event("signal_received", signal=signum)
        stop_flag["stop"] = True

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            signal.signal(sig, handler)
        except ValueError:  # pragma: no cover - not available on all platforms
            continue


def build_source(config: Dict[str, Any]) -> Any:
    kind = str(config.get("source", "sim"))
    if kind == "sim":
        return TapSourceSim(config["simulator"].get("pattern"))
    if kind == "stdin":
        stdin_cfg = config["stdin"]
        return StdinTapSource(
            dot_press_ms=int(stdin_cfg.get("dot_press_ms", 100)),
            dash_press_ms=int(stdin_cfg.get("dash_press_ms", 600)),
        )
    raise ValueError(f"Unknown tap source {kind!r}")


def describe_tap(
    tap: RawTap,
    last_ms: Optional[int],
    timing: Dict[str, Any],
) -> Dict[str, object]:
    """Summarise a tap for the console: symbol and gap class."""
    fields: Dict[str, object] = {"t_ms": tap.timestamp_ms}
    symbol = press_to_symbol(tap.press_ms, int(timing["dot_ms"]), int(timing["dash_ms"]))
    if symbol is not None:
        fields["symbol"] = symbol
    if last_ms is not None:
        gap = tap.timestamp_ms - last_ms
        fields["gap_ms"] = gap
        fields["gap"] = classify_gap(gap, int(timing["pause_ms"]), int(timing["window_ms"]))
    return fields


def dispatch_command(tx: TapTx, command: str) -> bool:
    """Forward an operator command to the alert node; returns ``True`` if queued."""
    if command == "stop":
        sent = tx.send_stop()
    elif command == "activate":
        sent = tx.send_active(True)
    elif command == "deactivate":
        sent = tx.send_active(False)
    else:
        LOGGER.warning("Unknown operator command %r", command)
        return False
    _log_event("command", command=command, sent=sent)
    return sent


def run(config: Dict[str, Any], activate: bool = False) -> None:
    stop_flag = {"stop": False}
    _install_signal_handlers(stop_flag)

    osc_cfg = config["osc"]
    cycle_hz = float(config["cycle_hz"])
    if cycle_hz <= 0.0:
        raise ValueError("cycle_hz must be greater than zero")

    tx = TapTx(osc_cfg["engine_ip"], int(osc_cfg["port"]), int(osc_cfg.get("queue_size", 64)))
    source = build_source(config)

    _log_event(
        "tap_node_started",
        cycle_hz=cycle_hz,
        source=config["source"],
        sensitivity=sensitivity_label(int(config["timing"]["dot_ms"])),
    )

    try:
        tx.send_alive(0)
        if activate:
            tx.send_active(True)
        _run_loop(
            tx=tx,
            source=source,
            cycle_hz=cycle_hz,
            timing=config["timing"],
            print_taps=bool(config.get("print_taps", False)),
            stop_flag=stop_flag,
        )
    finally:
        source.close()
        tx.close()
        _log_event("tap_node_stopped")


def _run_loop(
    *,
    tx: TapTx,
    source: Any,
    cycle_hz: float,
    timing: Dict[str, Any],
    print_taps: bool,
    stop_flag: Dict[str, bool],
) -> None:
    period = 1.0 / cycle_hz
    next_tick = time.monotonic()
    next_alive = next_tick + 1.0
    alive_seq = 0
    last_ms: Optional[int] = None

    while not stop_flag["stop"]:
        now = time.monotonic()
        sleep_time = next_tick - now
        if sleep_time > 0:
            time.sleep(sleep_time)
        now = time.monotonic()
        next_tick += period

        tap = source.read_tap(monotonic_ms())
        while tap is not None:
            tx.send_tap(tap.timestamp_ms, tap.press_ms)
            if print_taps:
                _log_event("tap", **describe_tap(tap, last_ms, timing))
            last_ms = tap.timestamp_ms
            tap = source.read_tap(monotonic_ms())

        command = source.read_command()
        while command is not None:
            dispatch_command(tx, command)
            command = source.read_command()

        while now >= next_alive:
            alive_seq += 1
            tx.send_alive(alive_seq)
            next_alive += 1.0


def main(argv: Optional[Iterable[str]] = None) -> None:
    args = parse_args(argv)
    raw_config = load_config(args.config)
    config = _with_defaults(raw_config)
    if args.source:
        config["source"] = args.source

    logging_level = getattr(
        logging, str(config["logging"].get("level", "INFO")).upper(), logging.INFO
    )
    logging.basicConfig(level=logging_level, format="%(message)s")

    try:
        run(config, activate=args.activate)
    except KeyboardInterrupt:
        _log_event("keyboard_interrupt")
    except Exception as exc:  # pragma: no cover - top-level guard
        _log_event("fatal_error", error=str(exc))
        raise


if __name__ == "__main__":
    main(sys.argv[1:])
