"""
core/counter.py -- Lock-protected in-memory counter.

Used for process-lifetime counters that handlers share across concurrent
requests. Sync handlers run in a threadpool, so the increment must be atomic
across threads, not only across asyncio tasks.
"""

import threading


class AtomicCounter:
    def __init__(self, start: int = 0) -> None:
        self._value = start
        self._lock = threading.Lock()

    def next(self) -> int:
        """Return the current value and increment it (post-increment)."""
        with self._lock:
            value = self._value
            self._value += 1
            return value

    @property
    def value(self) -> int:
        return self._value
