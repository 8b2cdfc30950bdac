"""Block height sources.

The registry only ever reads the clock; advancing it is the host's job.
"""

from __future__ import annotations

import threading
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Supplies the current sequence number (block height)."""

    def now(self) -> Any:
        ...


class BlockClock:
    """Monotonic block counter advanced by the host runtime."""

    def __init__(self, height: int = 1):
        if not isinstance(height, int) or height < 0:
            raise ValueError("height must be a non-negative integer")
        self._height = height
        self._lock = threading.Lock()

    def now(self) -> int:
        with self._lock:
            return self._height

    def advance(self, count: int = 1) -> int:
        """Move forward by count blocks and return the new height."""
        if not isinstance(count, int) or count < 0:
            raise ValueError("count must be a non-negative integer")
        with self._lock:
            self._height += count
            return self._height

    def set(self, height: int) -> None:
        with self._lock:
            if not isinstance(height, int) or height < self._height:
                raise ValueError(
                    f"Block height cannot move backwards: {self._height} -> {height}"
                )
            self._height = height

    def __repr__(self) -> str:
        return f"BlockClock(height={self.now()})"


class FixedClock:
    """Clock pinned to a value, for deterministic tests."""

    def __init__(self, value: Any):
        self.value = value

    def now(self) -> Any:
        return self.value


__all__ = ["Clock", "BlockClock", "FixedClock"]
