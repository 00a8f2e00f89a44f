"""Alert playback sinks driven by the alert controller."""

from __future__ import annotations

import logging
from typing import Optional, Protocol

import mido

LOGGER = logging.getLogger(__name__)


class AlertSinkError(RuntimeError):
    """Raised by a sink that cannot start playback."""


class AlertSink(Protocol):
    """Fire-and-forget playback target. ``start`` raises on failure."""

    def start(self) -> None:
        ...

    def stop(self) -> None:
        ...

    def close(self) -> None:
        ...


class MidiPort(Protocol):
    """Subset of the mido output port API used by the alert sink."""

    def send(self, message: mido.Message) -> None:
        ...

    def close(self) -> None:
        ...


def _zero_based_channel(channel: int) -> int:
    """Convert 1-based user channel numbers to 0-based MIDI channels."""
    if not 1 <= channel <= 16:
        raise ValueError(f"MIDI channel must be 1-16, got {channel}")
    return channel - 1


class MidiAlertSink:
    """Sounds the alert as a held MIDI note on an output port.

    A program change is sent before the first note so the receiving synth
    plays a ring-like patch.
    """

    def __init__(
        self,
        port: Optional[MidiPort],
        channel: int,
        note: int,
        velocity: int,
        program: Optional[int] = None,
    ) -> None:
        self._port = port
        self._channel = _zero_based_channel(channel)
        self._note = int(note)
        self._velocity = int(velocity)
        self._program = program
        self._program_sent = False

    def start(self) -> None:
        if self._port is None:
            raise AlertSinkError("MIDI alert port is not open")
        if self._program is not None and not self._program_sent:
            self._port.send(
                mido.Message("program_change", channel=self._channel, program=int(self._program))
            )
            self._program_sent = True
        self._port.send(
            mido.Message(
                "note_on", channel=self._channel, note=self._note, velocity=self._velocity
            )
        )

    def stop(self) -> None:
        if self._port is None:
            return
        self._port.send(
            mido.Message("note_off", channel=self._channel, note=self._note, velocity=0)
        )

    def close(self) -> None:
        if self._port is None:
            return
        self._port.close()
        self._port = None


class LogAlertSink:
    """Sink that only logs; used when no MIDI port is configured."""

    def __init__(self) -> None:
        self.playing = False

    def start(self) -> None:
        self.playing = True
        LOGGER.warning("ALERT PLAYING")

    def stop(self) -> None:
        self.playing = False
        LOGGER.info("Alert silenced")

    def close(self) -> None:
        self.playing = False


def _open_output(port_name: str) -> Optional[MidiPort]:
    """Open a MIDI output port, returning ``None`` when it is unavailable."""
    try:
        return mido.open_output(port_name)
    except (IOError, OSError) as exc:  # pragma: no cover - depends on system ports
        available = ", ".join(mido.get_output_names())
        LOGGER.error(
            "Failed to open MIDI output %r (%s). Available ports: %s",
            port_name,
            exc,
            available,
        )
        return None


def open_alert_sink(
    port_name: Optional[str],
    channel: int = 1,
    note: int = 76,
    velocity: int = 110,
    program: Optional[int] = None,
) -> AlertSink:
    """Build the configured sink; an empty port name selects logging only."""
    if not port_name:
        return LogAlertSink()
    return MidiAlertSink(_open_output(port_name), channel, note, velocity, program)


__all__ = [
    "AlertSink",
    "AlertSinkError",
    "LogAlertSink",
    "MidiAlertSink",
    "MidiPort",
    "open_alert_sink",
]
