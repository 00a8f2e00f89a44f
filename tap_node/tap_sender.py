"""Asynchronous OSC transmission of taps and operator commands."""

from __future__ import annotations

import json
import logging
import threading
from collections import deque
from typing import Any, Deque, Iterable, Optional, Tuple

from pythonosc.udp_client import SimpleUDPClient

LOGGER = logging.getLogger(__name__)

NO_VALUE = -1


def _log_event(event: str, **fields: object) -> None:
    LOGGER.info(json.dumps({"event": event, **fields}))


class TapTx:
    """Non-blocking OSC transmitter with a bounded queue.

    Taps are never dropped in favour of heartbeats: when the queue is full
    the oldest ``/alive`` message is evicted to make room for a tap.
    """

    def __init__(
        self,
        ip: str,
        port: int,
        queue_size: int = 64,
        client: Optional[Any] = None,
    ) -> None:
        self._client = client if client is not None else SimpleUDPClient(ip, port)
        self._queue_size = max(1, queue_size)
        self._queue: Deque[Tuple[str, Tuple[object, ...]]] = deque()
        self._lock = threading.Lock()
        self._not_empty = threading.Condition(self._lock)
        self._closed = False
        self._thread = threading.Thread(target=self._run, name="tap-tx", daemon=True)
        self._thread.start()
        _log_event("tap_tx_started", ip=ip, port=port, queue_size=self._queue_size)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._not_empty.notify_all()
        self._thread.join(timeout=1.0)
        _log_event("tap_tx_stopped")

    def send_tap(self, timestamp_ms: int, press_ms: Optional[int] = None) -> bool:
        press = NO_VALUE if press_ms is None else max(0, int(press_ms))
        sent = self._enqueue("/tap", (int(timestamp_ms), press), evict_alive=True)
        if not sent:
            _log_event("tap_tx_drop_tap", timestamp_ms=timestamp_ms)
        return sent

    def send_alive(self, seq: int) -> bool:
        seq = int(seq)
        sent = self._enqueue("/alive", (seq,))
        if not sent:
            _log_event("tap_tx_drop_alive", seq=seq)
        return sent

    def send_active(self, active: bool) -> bool:
        return self._enqueue("/active", (1 if active else 0,), evict_alive=True)

    def send_stop(self) -> bool:
        return self._enqueue("/stop", (), evict_alive=True)

    # Internal -----------------------------------------------------------------

    def _enqueue(
        self,
        address: str,
        payload: Iterable[object],
        evict_alive: bool = False,
    ) -> bool:
        with self._lock:
            if self._closed:
                return False
            if len(self._queue) >= self._queue_size:
                if evict_alive and self._drop_oldest_alive_locked():
                    _log_event("tap_tx_evict_alive")
                else:
                    return False
            self._queue.append((address, tuple(payload)))
            self._not_empty.notify()
            return True

    def _drop_oldest_alive_locked(self) -> bool:
        for idx, (address, _) in enumerate(self._queue):
            if address == "/alive":
                del self._queue[idx]
                return True
        return False

    def _run(self) -> None:
        while True:
            with self._lock:
                while not self._queue and not self._closed:
                    self._not_empty.wait()
                if self._closed and not self._queue:
                    return
                address, payload = self._queue.popleft()
            try:
                self._client.send_message(address, list(payload))
            except OSError as exc:  # pragma: no cover - network dependent
                _log_event("tap_tx_send_error", address=address, error=str(exc))


__all__ = ["NO_VALUE", "TapTx"]
