"""Point types, the point transformer and the line protocol encoder."""

from __future__ import annotations

import math
import os
from dataclasses import dataclass
from typing import Tuple

from .durations import retention_policy_name

# Seconds -> target precision multipliers for the write endpoint.
PRECISION_MULTIPLIERS = {
    "s": 1,
    "ms": 1_000,
    "u": 1_000_000,
    "ns": 1_000_000_000,
}


@dataclass(frozen=True)
class Tag:
    key: str
    value: str


@dataclass(frozen=True)
class Field:
    key: str
    value: float = 0.0


@dataclass(frozen=True)
class SourcePoint:
    """A raw archive sample tagged with the series it belongs to."""

    series_key: str
    retention_seconds: int
    value: float
    timestamp_seconds: int

    @property
    def is_sentinel(self) -> bool:
        """Fixed-size archives leave never-written slots with timestamp 0."""

        return self.timestamp_seconds == 0


@dataclass(frozen=True)
class OutputPoint:
    """A structured point ready to be batched and written to InfluxDB."""

    measurement: str
    retention_policy: str
    tags: Tuple[Tag, ...]
    field: Field
    timestamp_seconds: int

    def to_line(self, precision: str = "s") -> str:
        multiplier = PRECISION_MULTIPLIERS.get(precision)
        if multiplier is None:
            raise ValueError(f"unsupported precision: {precision!r}")
        return to_line(
            self.measurement,
            self.tags,
            self.field,
            self.timestamp_seconds * multiplier,
        )


def series_key_from_path(path: str, suffix: str = ".wsp") -> str:
    """Flatten a whisper file path into its dotted series key."""

    key = str(path)
    if suffix and key.endswith(suffix):
        key = key[: -len(suffix)]
    key = key.replace(os.sep, ".")
    if os.sep != "/":
        key = key.replace("/", ".")
    return key.replace(" ", "_")


def apply_stub(stub, point: SourcePoint) -> OutputPoint:
    """Build the output point for ``point`` from a resolved ``MatchStub``."""

    return OutputPoint(
        measurement=stub.measurement,
        retention_policy=retention_policy_name(point.retention_seconds),
        tags=tuple(stub.tags),
        field=Field(key=stub.field_key, value=float(point.value)),
        timestamp_seconds=int(point.timestamp_seconds),
    )


def _escape_key(value: str) -> str:
    """Escape measurement, tag and field keys for Influx line protocol."""

    return (
        str(value)
        .replace("\\", "\\\\")
        .replace(",", "\\,")
        .replace(" ", "\\ ")
        .replace("=", "\\=")
    )


def _escape_measurement(value: str) -> str:
    return str(value).replace("\\", "\\\\").replace(",", "\\,").replace(" ", "\\ ")


def _format_field_value(value: float) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return f"{value}i"
    value = float(value)
    if not math.isfinite(value):
        raise ValueError(f"line protocol cannot encode field value {value!r}")
    return repr(value)


def to_line(measurement: str, tags, field: Field, timestamp: int) -> str:
    """Encode a single point in the Influx line protocol."""

    parts = [_escape_measurement(measurement)]
    for tag in tags:
        parts.append(f"{_escape_key(tag.key)}={_escape_key(tag.value)}")
    head = ",".join(parts)
    return f"{head} {_escape_key(field.key)}={_format_field_value(field.value)} {int(timestamp)}"
