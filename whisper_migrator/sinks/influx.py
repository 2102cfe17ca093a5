"""Batching sink writing output points to the InfluxDB 1.x HTTP API."""

from __future__ import annotations

import itertools
import logging
import queue
import threading
import time
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, TYPE_CHECKING

import requests

from whisper_migrator.limiter import ConcurrencyLimiter
from whisper_migrator.points import OutputPoint

from .base import Batch, BatcherError, WriteError, WriteOutcome, WriteResult

if TYPE_CHECKING:  # pragma: no cover - hints only
    from whisper_migrator.config.schema import InfluxSettings


logger = logging.getLogger("sender")

# The write endpoint answers 204 only when every line was stored.
SUCCESS_STATUS = 204

_DONE = object()


class InfluxBatchSink:
    """Group points per retention policy and write them concurrently.

    ``send`` consumes the point stream on a background thread. Every
    ``batch_size`` points (across all policies) each open batch is handed
    to its own writer thread, gated by a :class:`ConcurrencyLimiter`.
    Failed writes are retried with an additive backoff.
    """

    def __init__(
        self,
        settings: "InfluxSettings",
        *,
        retention_policies: Optional[Sequence[str]] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.settings = settings
        self.enabled = settings.enabled
        self.batch_size = settings.batch_size
        self.precision = settings.precision
        self.timeout = settings.timeout_s
        self.batch_interval_s = settings.batch_interval_s
        self.max_attempts = settings.retry.max_attempts
        self.base_backoff = settings.retry.base_delay_s
        self.backoff_increment = settings.retry.increment_s
        self.default_policy = settings.default_retention_policy
        self.known_policies = set(retention_policies) if retention_policies is not None else None
        self._addresses = itertools.cycle(list(settings.addresses) or ["http://localhost:8086"])
        self._auth = (
            (settings.username, settings.password or "") if settings.username else None
        )
        self.session = session or requests.Session()
        self.session.verify = settings.verify_ssl
        self._sleep = time.sleep
        self._clock = time.monotonic

    # PointSink API -----------------------------------------------------------
    def send(self, points: Iterable[OutputPoint]) -> Iterator[WriteOutcome]:
        if not self.enabled:
            discarded = sum(1 for _ in points)
            logger.info("Influx sink disabled; discarded %d points without writing.", discarded)
            return iter(())

        results: "queue.Queue[object]" = queue.Queue()
        consumer = threading.Thread(
            target=self._consume, args=(points, results), name="influx-batcher", daemon=True
        )
        consumer.start()
        return self._drain(results)

    def close(self) -> None:
        self.session.close()

    # Batching ----------------------------------------------------------------
    @staticmethod
    def _drain(results: "queue.Queue[object]") -> Iterator[WriteOutcome]:
        while True:
            item = results.get()
            if item is _DONE:
                return
            yield item  # type: ignore[misc]

    def _consume(self, points: Iterable[OutputPoint], results: "queue.Queue[object]") -> None:
        limiter = ConcurrencyLimiter(self.settings.write_concurrency)
        writers: List[threading.Thread] = []
        batches = self._fresh_batches(())
        stream = iter(points)
        count = 0
        try:
            for point in stream:
                self._route(batches, point)
                count += 1
                if count % self.batch_size == 0:
                    batches = self._flush(batches, limiter, writers, results)
            self._flush(batches, limiter, writers, results)
        except Exception as exc:
            logger.exception("InfluxSender batcher failed after %d points; draining the stream.", count)
            results.put(BatcherError(count, exc))
            # Producers upstream block on bounded queues until the stream ends.
            discarded = sum(1 for _ in stream)
            logger.warning("InfluxSender discarded %d points after the batcher failed.", discarded)
        finally:
            logger.debug("Batcher consumed %d points; waiting for %d writers.", count, len(writers))
            for writer in writers:
                writer.join()
            results.put(_DONE)

    def _fresh_batches(self, keys: Iterable[str]) -> Dict[str, Batch]:
        names = set(keys)
        if self.known_policies is not None:
            names.update(self.known_policies)
            names.add(self.default_policy)
        return {name: Batch(name) for name in names}

    def _route(self, batches: Dict[str, Batch], point: OutputPoint) -> None:
        batch = batches.get(point.retention_policy)
        if batch is None:
            if self.known_policies is None:
                batch = batches[point.retention_policy] = Batch(point.retention_policy)
            else:
                batch = batches[self.default_policy]
        batch.append(point)

    def _flush(
        self,
        batches: Dict[str, Batch],
        limiter: ConcurrencyLimiter,
        writers: List[threading.Thread],
        results: "queue.Queue[object]",
    ) -> Dict[str, Batch]:
        """Hand ``batches`` to writer threads and return an empty replacement."""

        fresh = self._fresh_batches(batches.keys())
        writers[:] = [writer for writer in writers if writer.is_alive()]
        for batch in batches.values():
            if not batch:
                continue
            limiter.acquire()
            address = next(self._addresses)
            writer = threading.Thread(
                target=self._write_task,
                args=(batch, address, limiter, results),
                name=f"influx-write:{batch.retention_policy or 'default'}",
                daemon=True,
            )
            writer.start()
            writers.append(writer)
        return fresh

    def _write_task(
        self,
        batch: Batch,
        address: str,
        limiter: ConcurrencyLimiter,
        results: "queue.Queue[object]",
    ) -> None:
        try:
            outcome: WriteOutcome = self.write_batch(batch, address)
        except Exception as exc:
            logger.exception("InfluxSender writer crashed for policy %s", batch.retention_policy)
            outcome = WriteError(batch.retention_policy, len(batch), 0, exc)
        finally:
            limiter.release()
        results.put(outcome)

    # HTTP --------------------------------------------------------------------
    def write_batch(self, batch: Batch, address: str) -> WriteOutcome:
        """Write ``batch`` to ``address``, retrying until success or the cap."""

        body = "\n".join(point.to_line(self.precision) for point in batch.points)
        params = {"db": self.settings.database, "precision": self.precision}
        if batch.retention_policy:
            params["rp"] = batch.retention_policy
        url = f"{address}/write"
        limit = self.max_attempts or "inf"
        delay = self.base_backoff
        attempt = 0
        while True:
            attempt += 1
            started = self._clock()
            try:
                response = self.session.post(
                    url,
                    params=params,
                    data=body.encode("utf-8"),
                    headers={"Content-Type": "text/plain; charset=utf-8"},
                    auth=self._auth,
                    timeout=self.timeout,
                )
            except requests.RequestException as exc:
                reason = f"{type(exc).__name__}: {exc}"
                log_message = "InfluxSender write attempt %d/%s raised %s"
                payload: tuple = (attempt, limit, reason)
            else:
                elapsed = self._clock() - started
                if response.status_code == SUCCESS_STATUS:
                    if attempt > 1:
                        logger.info("InfluxSender write succeeded after %d attempts.", attempt)
                    self._pause()
                    return WriteResult(
                        retention_policy=batch.retention_policy,
                        point_count=len(batch),
                        duration_s=elapsed,
                        attempts=attempt,
                        address=address,
                    )
                reason = f"HTTP {response.status_code}"
                log_message = "InfluxSender write attempt %d/%s failed (%s). status=%s headers=%s body=%s"
                payload = (
                    attempt,
                    limit,
                    reason,
                    response.status_code,
                    dict(response.headers),
                    self._extract_body(response),
                )

            self._pause()
            if self.max_attempts and attempt >= self.max_attempts:
                logger.error(log_message, *payload)
                return WriteError(batch.retention_policy, len(batch), attempt, reason)

            logger.warning(log_message + "; retrying in %.2fs.", *payload, delay)
            self._sleep(delay)
            delay += self.backoff_increment

    def _pause(self) -> None:
        if self.batch_interval_s > 0:
            self._sleep(self.batch_interval_s)

    @staticmethod
    def _extract_body(response: requests.Response, limit: int = 512) -> str:
        try:
            body = response.text or ""
        except Exception as exc:  # pragma: no cover - undecodable payload
            return f"<unable to decode body: {exc}>"
        if len(body) <= limit:
            return body
        return f"{body[:limit]}... [truncated {len(body) - limit} chars]"
