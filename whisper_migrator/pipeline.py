"""Migration orchestrator: discovery, per-file fan-out, merge and drain."""

from __future__ import annotations

import logging
import os
import queue
import threading
from dataclasses import replace
from typing import Callable, Iterable, Iterator, List, Optional, Sequence

from .archive import open_archive
from .config.schema import MigratorConfig
from .durations import format_seconds
from .extractor import FileExtractor
from .limiter import ConcurrencyLimiter
from .metrics import MigrationMetrics, MigrationSummary
from .points import OutputPoint
from .rules import RuleSet
from .sinks import PointSink, WriteResult, build_sink

logger = logging.getLogger(__name__)

_END = object()


def discover_files(root: str, suffix: str = ".wsp") -> List[str]:
    """Return every ``suffix`` file below ``root``, sorted.

    A missing root yields no files. Entries vanishing mid-walk are ignored;
    every other ``OSError`` propagates.
    """

    def _on_error(exc: OSError) -> None:
        if isinstance(exc, FileNotFoundError):
            logger.debug("Ignoring missing path during discovery: %s", exc.filename)
            return
        raise exc

    found: List[str] = []
    for dirpath, dirnames, filenames in os.walk(root, onerror=_on_error):
        dirnames.sort()
        for name in sorted(filenames):
            if name.endswith(suffix):
                found.append(os.path.join(dirpath, name))
    return found


class Migrator:
    """Run one migration from a whisper tree into a point sink."""

    def __init__(
        self,
        config: MigratorConfig,
        *,
        sink: Optional[PointSink] = None,
        retention_policies: Optional[Sequence[str]] = None,
        opener: Callable[[str], object] = open_archive,
        metrics: Optional[MigrationMetrics] = None,
    ) -> None:
        self.config = config
        self.settings = config.migration
        self.rules = RuleSet.from_settings(config.rules)
        if sink is None:
            influx = config.influx
            if not influx.default_retention_policy and self.settings.default_retention_policy:
                influx = replace(influx, default_retention_policy=self.settings.default_retention_policy)
            sink = build_sink(influx, retention_policies)
        self.sink = sink
        self.metrics = metrics or MigrationMetrics()
        self._opener = opener
        self._errors: "queue.Queue[Exception]" = queue.Queue()

    def report(self, error: Exception) -> None:
        """Record a non-fatal error; safe to call from any thread."""

        logger.warning("%s", error)
        self._errors.put(error)

    def run(self, root: str) -> MigrationSummary:
        files = discover_files(root, self.settings.archive_suffix)
        self.metrics.record_files(len(files))
        logger.info("Discovered %d whisper files under %s", len(files), root)

        extractor = FileExtractor(
            self.rules,
            report=self.report,
            root=root,
            suffix=self.settings.archive_suffix,
            queue_size=self.settings.queue_size,
            opener=self._opener,
        )
        merged: "queue.Queue[object]" = queue.Queue(maxsize=self.settings.merge_queue_size)
        dispatcher = threading.Thread(
            target=self._dispatch, args=(files, extractor, merged), name="dispatcher", daemon=True
        )
        dispatcher.start()

        for outcome in self.sink.send(self._counted(self._merged(merged))):
            if isinstance(outcome, WriteResult):
                self.metrics.record_outcome(outcome)
            else:
                self.report(outcome)
            self._collect_errors()

        dispatcher.join()
        self._collect_errors()
        return self._finalize()

    # Fan-out / fan-in --------------------------------------------------------
    def _dispatch(self, files: Iterable[str], extractor: FileExtractor, merged: "queue.Queue[object]") -> None:
        limiter = ConcurrencyLimiter(self.settings.max_concurrent_files)
        forwarders: List[threading.Thread] = []
        try:
            for path in files:
                limiter.acquire()
                forwarder = threading.Thread(
                    target=self._forward,
                    args=(extractor, path, merged, limiter),
                    name=f"forward:{os.path.basename(path)}",
                    daemon=True,
                )
                forwarder.start()
                forwarders = [item for item in forwarders if item.is_alive()]
                forwarders.append(forwarder)
            for forwarder in forwarders:
                forwarder.join()
        finally:
            merged.put(_END)

    @staticmethod
    def _forward(
        extractor: FileExtractor,
        path: str,
        merged: "queue.Queue[object]",
        limiter: ConcurrencyLimiter,
    ) -> None:
        try:
            for point in extractor.extract(path):
                merged.put(point)
        finally:
            limiter.release()

    @staticmethod
    def _merged(merged: "queue.Queue[object]") -> Iterator[OutputPoint]:
        while True:
            item = merged.get()
            if item is _END:
                return
            yield item  # type: ignore[misc]

    def _counted(self, points: Iterator[OutputPoint]) -> Iterator[OutputPoint]:
        count = 0
        try:
            for point in points:
                count += 1
                yield point
        finally:
            self.metrics.increment_points_extracted(count)

    # Finalize ----------------------------------------------------------------
    def _collect_errors(self) -> None:
        while True:
            try:
                error = self._errors.get_nowait()
            except queue.Empty:
                return
            self.metrics.record_error(error)

    def _finalize(self) -> MigrationSummary:
        summary = self.metrics.summary()
        self.metrics.maybe_log(force=True)
        logger.info(
            "Total points = %d written in %d batches, avg latency = %s",
            summary.points_written,
            summary.batches_written,
            format_seconds(summary.avg_write_latency_s),
        )
        for error in summary.errors:
            logger.error("Error: %s", error)
        return summary


def migrate(config: MigratorConfig, root: str, **kwargs) -> MigrationSummary:
    """Convenience wrapper running a single :class:`Migrator`."""

    migrator = Migrator(config, **kwargs)
    try:
        return migrator.run(root)
    finally:
        migrator.sink.close()
