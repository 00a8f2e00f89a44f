"""Tests for the MIDI and logging alert sinks."""

from __future__ import annotations

from dataclasses import dataclass, field

import pytest

from alert_node.alert_sink import (
    AlertSinkError,
    LogAlertSink,
    MidiAlertSink,
    open_alert_sink,
)


@dataclass
class FakePort:
    messages: list = field(default_factory=list)
    closed: bool = False

    def send(self, message) -> None:
        self.messages.append(message)

    def close(self) -> None:
        self.closed = True


def test_midi_sink_holds_note_until_stop() -> None:
    port = FakePort()
    sink = MidiAlertSink(port, channel=2, note=76, velocity=100, program=124)

    sink.start()
    sink.stop()
    sink.start()

    types = [message.type for message in port.messages]
    assert types == ["program_change", "note_on", "note_off", "note_on"]
    assert port.messages[1].channel == 1
    assert port.messages[1].note == 76


def test_midi_sink_without_port_is_unavailable() -> None:
    sink = MidiAlertSink(None, channel=1, note=76, velocity=100)
    with pytest.raises(AlertSinkError):
        sink.start()
    sink.stop()


def test_midi_sink_rejects_bad_channel() -> None:
    with pytest.raises(ValueError):
        MidiAlertSink(FakePort(), channel=17, note=76, velocity=100)


def test_close_releases_port() -> None:
    port = FakePort()
    sink = MidiAlertSink(port, channel=1, note=76, velocity=100)
    sink.close()
    assert port.closed
    with pytest.raises(AlertSinkError):
        sink.start()


def test_empty_port_name_selects_log_sink() -> None:
    sink = open_alert_sink("")
    assert isinstance(sink, LogAlertSink)
    sink.start()
    assert sink.playing
    sink.stop()
    assert not sink.playing
