import json
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, List

from .errors import ExtractionError, InvalidRule, NoMatch
from .sinks.base import WriteError, WriteResult


@dataclass
class MigrationSummary:
    files_discovered: int = 0
    files_skipped: int = 0
    files_failed: int = 0
    points_extracted: int = 0
    points_written: int = 0
    batches_written: int = 0
    batches_failed: int = 0
    avg_write_latency_s: float = 0.0
    elapsed_s: float = 0.0
    errors: List[Exception] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "files_discovered": self.files_discovered,
            "files_skipped": self.files_skipped,
            "files_failed": self.files_failed,
            "points_extracted": self.points_extracted,
            "points_written": self.points_written,
            "batches_written": self.batches_written,
            "batches_failed": self.batches_failed,
            "avg_write_latency_s": round(self.avg_write_latency_s, 6),
            "elapsed_s": round(self.elapsed_s, 3),
            "errors": len(self.errors),
        }


class MigrationMetrics:
    """Thread-safe accumulator for extraction and write counters."""

    def __init__(self, log_interval_s: float = 30.0, logger: logging.Logger | None = None) -> None:
        self.log_interval_s = max(0.0, float(log_interval_s))
        self._logger = logger or logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._start_time = time.time()
        self._last_log_time = self._start_time
        self._counters = self._initial_counters()
        self._latencies: List[float] = []
        self._errors: List[Exception] = []

    @staticmethod
    def _initial_counters() -> Dict[str, int]:
        return {
            "files_discovered": 0,
            "files_skipped": 0,
            "files_failed": 0,
            "invalid_rules": 0,
            "points_extracted": 0,
            "points_written": 0,
            "batches_written": 0,
            "batches_failed": 0,
            "write_retries": 0,
        }

    def record_files(self, count: int) -> None:
        with self._lock:
            self._counters["files_discovered"] += count

    def increment_points_extracted(self, count: int = 1) -> None:
        with self._lock:
            self._counters["points_extracted"] += count

    def record_outcome(self, outcome: object) -> None:
        if isinstance(outcome, WriteResult):
            with self._lock:
                self._counters["batches_written"] += 1
                self._counters["points_written"] += outcome.point_count
                self._counters["write_retries"] += max(0, outcome.attempts - 1)
                self._latencies.append(outcome.duration_s)
            self.maybe_log()
        elif isinstance(outcome, Exception):
            self.record_error(outcome)

    def record_error(self, error: Exception) -> None:
        with self._lock:
            if isinstance(error, NoMatch):
                self._counters["files_skipped"] += 1
            elif isinstance(error, ExtractionError):
                self._counters["files_failed"] += 1
            elif isinstance(error, InvalidRule):
                self._counters["invalid_rules"] += 1
            elif isinstance(error, WriteError):
                self._counters["batches_failed"] += 1
                self._counters["write_retries"] += max(0, error.attempts - 1)
            self._errors.append(error)

    @property
    def counters(self) -> Dict[str, int]:
        with self._lock:
            return self._counters.copy()

    def average_latency(self) -> float:
        with self._lock:
            if not self._latencies:
                return 0.0
            return sum(self._latencies) / len(self._latencies)

    def maybe_log(self, force: bool = False) -> None:
        now = time.time()
        with self._lock:
            interval = now - self._last_log_time
            if not force and (self.log_interval_s == 0.0 or interval < self.log_interval_s):
                return
            payload = {
                "type": "migration_metrics",
                "uptime_s": round(now - self._start_time, 3),
                "counters": self._counters.copy(),
            }
            self._last_log_time = now
        self._logger.info("migration_metrics %s", json.dumps(payload, sort_keys=True))

    def summary(self) -> MigrationSummary:
        avg = self.average_latency()
        with self._lock:
            counters = self._counters.copy()
            errors = list(self._errors)
            elapsed = time.time() - self._start_time
        return MigrationSummary(
            files_discovered=counters["files_discovered"],
            files_skipped=counters["files_skipped"],
            files_failed=counters["files_failed"],
            points_extracted=counters["points_extracted"],
            points_written=counters["points_written"],
            batches_written=counters["batches_written"],
            batches_failed=counters["batches_failed"],
            avg_write_latency_s=avg,
            elapsed_s=elapsed,
            errors=errors,
        )
