from __future__ import annotations

import threading
from datetime import datetime, timedelta


class TimestampSequencer:
    """Stamps events with run-wide unique timestamps.

    ``next(base)`` returns ``base + offset`` where ``offset`` grows by one
    millisecond on every call for the lifetime of the sequencer. Events sharing
    a logical instant (e.g. seven builds on the same day) therefore never
    collide on the collection service's (owner, timestamp) key.

    The step is fixed at 1 ms: scenarios space their base timestamps minutes
    apart, and a wider step would push later events onto earlier keys.
    """

    def __init__(self) -> None:
        self._counter = 0
        self._lock = threading.Lock()

    @property
    def issued(self) -> int:
        return self._counter

    def next(self, base: datetime) -> datetime:
        with self._lock:
            offset = self._counter
            self._counter += 1
        return base + timedelta(milliseconds=offset)
