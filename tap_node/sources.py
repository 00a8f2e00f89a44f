"""Tap sources: scripted simulator and interactive stdin reader."""

from __future__ import annotations

import json
import logging
import sys
import threading
import time
from collections import deque
from dataclasses import dataclass
from itertools import cycle
from typing import Deque, Iterable, Optional, Sequence, TextIO, Tuple

LOGGER = logging.getLogger(__name__)

# "tap-tap ... tap-tap-tap" with mixed dots and dashes.
DEFAULT_PATTERN: Tuple[Tuple[int, int], ...] = (
    (1200, 120),
    (400, 600),
    (3500, 120),
    (300, 120),
    (300, 600),
)

# Stdin lines that are operator commands rather than taps.
COMMAND_LINES = {"s": "stop", "on": "activate", "off": "deactivate"}


def _log_event(event: str, **fields: object) -> None:
    LOGGER.info(json.dumps({"event": event, **fields}))


def monotonic_ms() -> int:
    return time.monotonic_ns() // 1_000_000


@dataclass(frozen=True)
class RawTap:
    """A tap as observed by the source, before transmission."""

    timestamp_ms: int
    press_ms: Optional[int] = None


class TapSourceSim:
    """Software tap source replaying ``(gap_ms, press_ms)`` pairs forever."""

    def __init__(
        self,
        pattern: Optional[Iterable[Sequence[int]]] = None,
        start_ms: Optional[int] = None,
    ) -> None:
        source = DEFAULT_PATTERN if pattern is None else pattern
        steps = tuple((int(gap), int(press)) for gap, press in source)
        if not steps:
            raise ValueError("Simulator pattern must contain at least one step")
        if any(gap <= 0 for gap, _ in steps):
            raise ValueError("Simulator gaps must be greater than zero")
        self._steps = cycle(steps)
        gap, self._next_press = next(self._steps)
        self._next_due = (monotonic_ms() if start_ms is None else start_ms) + gap
        _log_event("tap_sim_started", steps=len(steps))

    def read_tap(self, now_ms: int) -> Optional[RawTap]:
        """Return the next scripted tap once its due time has passed."""
        if now_ms < self._next_due:
            return None
        tap = RawTap(timestamp_ms=self._next_due, press_ms=self._next_press)
        gap, self._next_press = next(self._steps)
        self._next_due += gap
        return tap

    def read_command(self) -> Optional[str]:
        return None

    def close(self) -> None:
        _log_event("tap_sim_stopped")


class StdinTapSource:
    """Each line read from ``stream`` is a tap or an operator command.

    A line of ``.`` or ``-`` reports a dot- or dash-length press. The lines
    in ``COMMAND_LINES`` (``s``, ``on``, ``off``) are queued as operator
    commands instead. Any other line is an instantaneous tap.
    """

    def __init__(
        self,
        stream: TextIO = sys.stdin,
        dot_press_ms: int = 100,
        dash_press_ms: int = 600,
    ) -> None:
        self._stream = stream
        self._dot_press_ms = dot_press_ms
        self._dash_press_ms = dash_press_ms
        self._lock = threading.Lock()
        self._pending: Deque[RawTap] = deque()
        self._commands: Deque[str] = deque()
        self._closed = False
        self._thread = threading.Thread(target=self._run, name="stdin-taps", daemon=True)
        self._thread.start()
        _log_event("stdin_source_started")

    def read_tap(self, now_ms: int) -> Optional[RawTap]:
        """Consume the oldest pending tap, if any."""
        with self._lock:
            if not self._pending:
                return None
            return self._pending.popleft()

    def read_command(self) -> Optional[str]:
        """Consume the oldest pending operator command, if any."""
        with self._lock:
            if not self._commands:
                return None
            return self._commands.popleft()

    def close(self) -> None:
        with self._lock:
            self._closed = True
        _log_event("stdin_source_stopped")

    def push_line(self, line: str) -> None:
        """Record a tap or command for ``line``; used by the reader thread."""
        text = line.strip()
        command = COMMAND_LINES.get(text.lower())
        if command is not None:
            with self._lock:
                if not self._closed:
                    self._commands.append(command)
            return
        press: Optional[int] = None
        if text == ".":
            press = self._dot_press_ms
        elif text == "-":
            press = self._dash_press_ms
        with self._lock:
            if self._closed:
                return
            self._pending.append(RawTap(timestamp_ms=monotonic_ms(), press_ms=press))

    # Internal -----------------------------------------------------------------

    def _run(self) -> None:
        for line in self._stream:
            with self._lock:
                if self._closed:
                    return
            self.push_line(line)


__all__ = ["COMMAND_LINES", "DEFAULT_PATTERN", "RawTap", "StdinTapSource", "TapSourceSim", "monotonic_ms"]
