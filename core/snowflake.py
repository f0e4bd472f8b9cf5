"""
core/snowflake.py -- Process-scoped unique identifier ("snowflake") generator.

Bit layout (64 bits, compatible with flake-idgen):

    | 42 bits: ms since epoch | 10 bits: node id | 12 bits: sequence |

Guarantees:
  - unique within the process (lock-protected counter),
  - non-decreasing for sequential callers (a clock that steps backwards is
    clamped to the last timestamp seen),
  - unique across processes with distinct node ids.

Sequence overflow policy: when 4096 ids have been issued within one
millisecond, next_int() waits for the clock to advance for at most
overflow_wait seconds and raises ExhaustionError if it does not. Pass
overflow_wait=0 to fail immediately.

An IdGenerator is an explicit object, not module state. The app factory
builds one from Settings (SERVER_ID, SNOWFLAKE_EPOCH_MS) and injects it.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from typing import Optional

from core.config import DEFAULT_EPOCH_MS
from core.errors import ExhaustionError

TIMESTAMP_BITS = 42
NODE_BITS = 10
SEQUENCE_BITS = 12

MAX_NODE_ID = (1 << NODE_BITS) - 1
MAX_SEQUENCE = (1 << SEQUENCE_BITS) - 1
MAX_ELAPSED_MS = (1 << TIMESTAMP_BITS) - 1

_NODE_SHIFT = SEQUENCE_BITS
_TIMESTAMP_SHIFT = SEQUENCE_BITS + NODE_BITS


def _wall_clock_ms() -> int:
    return time.time_ns() // 1_000_000


class IdGenerator:
    def __init__(
        self,
        node_id: int = 0,
        epoch_ms: int = DEFAULT_EPOCH_MS,
        clock: Optional[Callable[[], int]] = None,
        overflow_wait: float = 0.05,
    ) -> None:
        if not 0 <= node_id <= MAX_NODE_ID:
            raise ValueError(f"node_id must be between 0 and {MAX_NODE_ID}, got {node_id}")
        self.node_id = node_id
        self.epoch_ms = epoch_ms
        self._clock = clock or _wall_clock_ms
        self._overflow_wait = overflow_wait
        self._lock = threading.Lock()
        self._last_ms = -1
        self._sequence = 0

    def next_int(self) -> int:
        with self._lock:
            now = max(self._clock(), self._last_ms)
            if now == self._last_ms:
                if self._sequence >= MAX_SEQUENCE:
                    now = self._wait_for_next_ms()
                    self._sequence = 0
                else:
                    self._sequence += 1
            else:
                self._sequence = 0
            self._last_ms = now

            elapsed = now - self.epoch_ms
            if elapsed < 0:
                raise ExhaustionError("clock is earlier than the snowflake epoch")
            if elapsed > MAX_ELAPSED_MS:
                raise ExhaustionError("timestamp no longer fits in 42 bits")
            return (elapsed << _TIMESTAMP_SHIFT) | (self.node_id << _NODE_SHIFT) | self._sequence

    def next_id(self) -> str:
        """Return the next identifier as a decimal string."""
        return str(self.next_int())

    def _wait_for_next_ms(self) -> int:
        # Called with the lock held; other callers would block on the same
        # millisecond anyway.
        deadline = time.monotonic() + self._overflow_wait
        while True:
            now = self._clock()
            if now > self._last_ms:
                return now
            if time.monotonic() >= deadline:
                raise ExhaustionError(
                    f"sequence exhausted: {MAX_SEQUENCE + 1} ids issued within one millisecond"
                )
            time.sleep(0.0001)


def decompose(snowflake: int | str, epoch_ms: int = DEFAULT_EPOCH_MS) -> dict[str, int]:
    """Split a snowflake into its timestamp, node id and sequence parts."""
    value = int(snowflake)
    return {
        "timestamp_ms": (value >> _TIMESTAMP_SHIFT) + epoch_ms,
        "node_id": (value >> _NODE_SHIFT) & MAX_NODE_ID,
        "sequence": value & MAX_SEQUENCE,
    }
