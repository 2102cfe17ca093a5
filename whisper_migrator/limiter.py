"""Bounded admission gate shared by file extraction and batch writes."""

from __future__ import annotations

import threading


class ConcurrencyLimiter:
    """Admit at most ``limit`` concurrent holders.

    ``acquire`` blocks while ``limit`` holders are admitted; ``release``
    frees one slot. Usable as a context manager so the slot is returned on
    every exit path of the protected block.
    """

    def __init__(self, limit: int) -> None:
        if limit < 1:
            raise ValueError("limit must be >= 1")
        self.limit = limit
        self._active = 0
        self._cond = threading.Condition()

    @property
    def active(self) -> int:
        with self._cond:
            return self._active

    def acquire(self) -> None:
        with self._cond:
            while self._active >= self.limit:
                self._cond.wait()
            self._active += 1

    def release(self) -> None:
        with self._cond:
            if self._active == 0:
                raise RuntimeError("release() called more times than acquire()")
            self._active -= 1
            self._cond.notify()

    def __enter__(self) -> "ConcurrencyLimiter":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
