"""Tests for the bounded admission gate."""

from __future__ import annotations

import threading
import time

import pytest

from whisper_migrator.limiter import ConcurrencyLimiter


def test_never_admits_more_than_limit():
    limiter = ConcurrencyLimiter(3)
    lock = threading.Lock()
    state = {"active": 0, "peak": 0}

    def worker():
        limiter.acquire()
        try:
            with lock:
                state["active"] += 1
                state["peak"] = max(state["peak"], state["active"])
            time.sleep(0.01)
            with lock:
                state["active"] -= 1
        finally:
            limiter.release()

    threads = [threading.Thread(target=worker) for _ in range(20)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert 1 <= state["peak"] <= 3
    assert limiter.active == 0


def test_acquire_blocks_until_release():
    limiter = ConcurrencyLimiter(1)
    limiter.acquire()
    admitted = threading.Event()

    def waiter():
        limiter.acquire()
        admitted.set()
        limiter.release()

    thread = threading.Thread(target=waiter)
    thread.start()
    assert not admitted.wait(0.05)

    limiter.release()
    assert admitted.wait(2)
    thread.join(timeout=2)


def test_context_manager_releases_on_error():
    limiter = ConcurrencyLimiter(1)

    with pytest.raises(RuntimeError, match="boom"):
        with limiter:
            assert limiter.active == 1
            raise RuntimeError("boom")

    assert limiter.active == 0


def test_release_without_acquire_is_an_error():
    with pytest.raises(RuntimeError):
        ConcurrencyLimiter(2).release()


def test_limit_must_be_positive():
    with pytest.raises(ValueError):
        ConcurrencyLimiter(0)
