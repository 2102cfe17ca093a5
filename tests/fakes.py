"""Shared fakes for the migrator tests."""

from __future__ import annotations

import threading
from typing import Dict, Iterable, List, Sequence, Tuple


class FakeResponse:
    def __init__(self, status_code: int, text: str = "", headers: dict | None = None, payload=None) -> None:
        self.status_code = status_code
        self.text = text
        self.headers = headers or {}
        self._payload = payload

    def json(self):
        if self._payload is None:
            raise ValueError("no json body")
        return self._payload


class FakeSession:
    """Thread-safe stand-in for ``requests.Session`` replaying responses."""

    def __init__(self, responses: Sequence[object] = (), default: object | None = None) -> None:
        self._responses = list(responses)
        self._default = default
        self._lock = threading.Lock()
        self.verify = True
        self.calls: List[dict] = []
        self.closed = False

    def post(self, url, params=None, data=None, headers=None, auth=None, timeout=None):
        with self._lock:
            action = self._responses.pop(0) if self._responses else self._default
            if isinstance(action, Exception):
                raise action
            self.calls.append(
                {"url": url, "params": params, "data": data, "headers": headers, "auth": auth, "timeout": timeout}
            )
        return action

    def bodies(self) -> List[List[str]]:
        return [call["data"].decode("utf-8").split("\n") for call in self.calls]

    def close(self):
        self.closed = True


class FakeArchiveInfo:
    def __init__(self, retention_seconds: int, samples: Iterable[Tuple[int, float]]) -> None:
        self.retention_seconds = retention_seconds
        self.samples = list(samples)


class FakeArchive:
    def __init__(self, archives: Sequence[FakeArchiveInfo], fail_on: int | None = None, on_close=None) -> None:
        self.archives = list(archives)
        self.fail_on = fail_on
        self.closed = False
        self._on_close = on_close

    def dump_archive(self, info: FakeArchiveInfo):
        if self.fail_on is not None and self.archives.index(info) == self.fail_on:
            raise OSError("archive unreadable")
        yield from info.samples

    def close(self) -> None:
        self.closed = True
        if self._on_close is not None:
            self._on_close()


def fake_opener(layout: Dict[str, object]):
    """Build an opener returning archives by file basename.

    Values are ``FakeArchive`` instances or exceptions to raise on open.
    """

    def _open(path: str):
        name = path.rsplit("/", 1)[-1]
        entry = layout[name]
        if isinstance(entry, Exception):
            raise entry
        return entry

    return _open
