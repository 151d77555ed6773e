"""Admission control over the number of in-flight actions."""

from __future__ import annotations

import threading


class AdmissionController:
    """Counting gate that caps concurrently non-terminal tasks at ``max_parallel``."""

    def __init__(self, max_parallel: int) -> None:
        if max_parallel <= 0:
            raise ValueError(f"max_parallel must be a positive integer, got {max_parallel!r}")
        self._max_parallel = max_parallel
        self._lock = threading.Lock()
        self._in_flight = 0
        self._high_water_mark = 0

    @property
    def max_parallel(self) -> int:
        return self._max_parallel

    @property
    def in_flight(self) -> int:
        with self._lock:
            return self._in_flight

    @property
    def high_water_mark(self) -> int:
        with self._lock:
            return self._high_water_mark

    def try_admit(self) -> bool:
        """Reserve a slot if one is free; never blocks."""

        with self._lock:
            if self._in_flight >= self._max_parallel:
                return False
            self._in_flight += 1
            self._high_water_mark = max(self._high_water_mark, self._in_flight)
            return True

    def release(self) -> None:
        """Return a slot reserved by ``try_admit``."""

        with self._lock:
            if self._in_flight <= 0:
                raise RuntimeError("release() called with no reserved slot")
            self._in_flight -= 1
