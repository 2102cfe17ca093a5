"""Per-file extraction of whisper samples into output points."""

from __future__ import annotations

import logging
import math
import os
import queue
import threading
from typing import Callable, Iterator, Optional

from .archive import open_archive
from .errors import ExtractionError, NoMatch
from .points import OutputPoint, SourcePoint, apply_stub, series_key_from_path
from .rules import RuleSet

logger = logging.getLogger(__name__)

_END = object()

ErrorReporter = Callable[[Exception], None]


def _log_only(exc: Exception) -> None:
    logger.warning("%s", exc)


class FileExtractor:
    """Turn one whisper file into a lazy stream of :class:`OutputPoint`.

    Every call to :meth:`extract` starts a background thread that resolves
    the file's stub, dumps each archive and pushes converted points into a
    bounded queue, so a slow consumer throttles the reader.
    """

    def __init__(
        self,
        rules: RuleSet,
        *,
        report: Optional[ErrorReporter] = None,
        root: Optional[str] = None,
        suffix: str = ".wsp",
        queue_size: int = 10_000,
        opener: Callable[[str], object] = open_archive,
    ) -> None:
        if queue_size < 1:
            raise ValueError("queue_size must be >= 1")
        self.rules = rules
        self.report = report or _log_only
        self.root = root
        self.suffix = suffix
        self.queue_size = queue_size
        self._open = opener

    def series_key(self, path: str) -> str:
        relative = os.path.relpath(path, self.root) if self.root else path
        return series_key_from_path(relative, self.suffix)

    def extract(self, path: str) -> Iterator[OutputPoint]:
        out: "queue.Queue[object]" = queue.Queue(maxsize=self.queue_size)
        worker = threading.Thread(
            target=self._produce,
            args=(str(path), out),
            name=f"extract:{os.path.basename(str(path))}",
            daemon=True,
        )
        worker.start()
        return self._drain(out)

    @staticmethod
    def _drain(out: "queue.Queue[object]") -> Iterator[OutputPoint]:
        while True:
            item = out.get()
            if item is _END:
                return
            yield item  # type: ignore[misc]

    def _produce(self, path: str, out: "queue.Queue[object]") -> None:
        try:
            self._extract_into(path, out)
        finally:
            out.put(_END)

    def _extract_into(self, path: str, out: "queue.Queue[object]") -> None:
        key = self.series_key(path)
        try:
            stub = self.rules.match(key, report=self.report)
        except NoMatch:
            self.report(NoMatch(key, path))
            return

        try:
            archive = self._open(path)
        except Exception as exc:
            self.report(ExtractionError(path, exc))
            return

        emitted = 0
        non_finite = 0
        try:
            for info in archive.archives:
                retention = info.retention_seconds
                for timestamp, value in archive.dump_archive(info):
                    point = SourcePoint(key, retention, value, timestamp)
                    if point.is_sentinel:
                        continue
                    if not math.isfinite(point.value):
                        non_finite += 1
                        continue
                    out.put(apply_stub(stub, point))
                    emitted += 1
        except Exception as exc:
            self.report(ExtractionError(path, exc))
        finally:
            archive.close()
        if non_finite:
            logger.warning("Skipped %d NaN or infinite samples in %s", non_finite, path)
        logger.debug("Extracted %d points from %s as %s", emitted, path, stub.measurement)
