"""Point sinks and construction helpers."""

from __future__ import annotations

from typing import Optional, Sequence

from whisper_migrator.config.schema import InfluxSettings

from .base import Batch, BatcherError, PointSink, WriteError, WriteOutcome, WriteResult
from .influx import InfluxBatchSink

__all__ = [
    "Batch",
    "BatcherError",
    "InfluxBatchSink",
    "PointSink",
    "WriteError",
    "WriteOutcome",
    "WriteResult",
    "build_sink",
]


def build_sink(
    settings: InfluxSettings, retention_policies: Optional[Sequence[str]] = None
) -> PointSink:
    """Initialise the sink described by the configuration."""

    return InfluxBatchSink(settings, retention_policies=retention_policies)
