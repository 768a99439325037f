"""
History Store - bounded in-memory ring of recent readings

One instance is created at startup and shared (injected) between the MQTT
subscriber, which writes, and the HTTP handlers, which read. Nothing is
persisted; history is lost on restart.
"""

import threading
from collections import deque
from dataclasses import dataclass

from climate_monitor.models.reading import Reading


DEFAULT_CAPACITY = 100


@dataclass(frozen=True)
class HistorySnapshot:
    """Immutable copy of the store taken under the lock."""

    current: Reading | None
    readings: tuple[Reading, ...]
    total: int  # Ring size at snapshot time, regardless of limit


class HistoryStore:
    """Fixed-capacity FIFO of readings plus the latest reading."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity <= 0:
            raise ValueError(f"History capacity must be positive, got {capacity}")
        self._capacity = capacity
        self._lock = threading.Lock()
        self._history: deque[Reading] = deque(maxlen=capacity)
        self._current: Reading | None = None

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        with self._lock:
            return len(self._history)

    def record(self, reading: Reading) -> None:
        """Make `reading` current and append it, evicting the oldest entry when full."""
        with self._lock:
            # deque(maxlen) drops the leftmost item inside the same append
            self._history.append(reading)
            self._current = reading

    def current(self) -> Reading | None:
        with self._lock:
            return self._current

    def snapshot(self, limit: int | None = None) -> HistorySnapshot:
        """
        Copy the most recent `limit` readings, oldest first, plus the current one.

        A `limit` of None returns the whole ring; zero or negative returns none.
        Readings are frozen, so a shallow tuple copy is enough to keep callers
        from reaching store state.
        """
        with self._lock:
            items = tuple(self._history)
            current = self._current

        total = len(items)
        if limit is not None:
            items = items[-limit:] if limit > 0 else ()

        return HistorySnapshot(current=current, readings=items, total=total)

    def clear(self) -> None:
        with self._lock:
            self._history.clear()
            self._current = None
