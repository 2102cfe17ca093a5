"""Interfaces and value types shared by the point sinks."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Iterator, List, Protocol, Union, runtime_checkable

from whisper_migrator.errors import MigrationError
from whisper_migrator.points import OutputPoint


@dataclass(frozen=True)
class WriteResult:
    """Outcome of one successfully written batch."""

    retention_policy: str
    point_count: int
    duration_s: float
    attempts: int = 1
    address: str = ""


class WriteError(MigrationError):
    """A batch that could not be written once its retries ran out."""

    def __init__(self, retention_policy: str, point_count: int, attempts: int, cause: object) -> None:
        self.retention_policy = retention_policy
        self.point_count = point_count
        self.attempts = attempts
        self.cause = cause
        policy = retention_policy or "<default>"
        super().__init__(
            f"dropping batch of {point_count} points for policy {policy} after {attempts} attempts: {cause}"
        )


class BatcherError(MigrationError):
    """The batching stage itself failed; the remaining points were discarded."""

    def __init__(self, points_consumed: int, cause: BaseException) -> None:
        self.points_consumed = points_consumed
        self.cause = cause
        super().__init__(f"batching stopped after {points_consumed} points: {type(cause).__name__}: {cause}")


WriteOutcome = Union[WriteResult, WriteError, BatcherError]


@dataclass
class Batch:
    """Points accumulated for one retention policy since the last flush."""

    retention_policy: str
    points: List[OutputPoint] = field(default_factory=list)

    def append(self, point: OutputPoint) -> None:
        self.points.append(point)

    def __len__(self) -> int:
        return len(self.points)

    def __bool__(self) -> bool:
        return bool(self.points)


@runtime_checkable
class PointSink(Protocol):
    """Minimal contract for migration sinks."""

    def send(self, points: Iterable[OutputPoint]) -> Iterator[WriteOutcome]:
        """Consume ``points`` and yield one outcome per written batch."""

    def close(self) -> None:
        """Release the resources held by the sink."""
