"""Duration parsing and retention-policy naming helpers."""

from __future__ import annotations

import math
import re
from typing import Union

_UNIT_SECONDS = {
    "ns": 1e-9,
    "u": 1e-6,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
    "d": 86400.0,
    "w": 604800.0,
}

_TOKEN = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|u|s|m|h|d|w)")

_INFLUXQL_DURATION = re.compile(r"(?:\d+(?:ns|u|µ|ms|s|m|h|d|w))+")

# The server refuses shorter retention policies; 0 means keep forever.
MIN_POLICY_SECONDS = 3600

# Largest unit first; names are built from the first unit dividing evenly.
_POLICY_UNITS = (("d", 86400), ("h", 3600), ("m", 60), ("s", 1))


def parse_duration(text: Union[str, int, float]) -> float:
    """Parse ``"500ms"``, ``"1h30m"``, ``"7d"`` or ``"INF"`` into seconds.

    Bare numbers are read as seconds. Raises ``ValueError`` for anything
    else, including negative values.
    """

    if isinstance(text, bool):
        raise ValueError(f"invalid duration: {text!r}")
    if isinstance(text, (int, float)):
        if text < 0:
            raise ValueError(f"invalid duration: {text!r}")
        return float(text)

    raw = str(text).strip()
    if not raw:
        raise ValueError("invalid duration: empty string")
    if raw.lower() == "inf":
        return math.inf

    pos = 0
    total = 0.0
    for match in _TOKEN.finditer(raw):
        if match.start() != pos:
            raise ValueError(f"invalid duration: {raw!r}")
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        pos = match.end()
    if pos != len(raw):
        try:
            number = float(raw)
        except ValueError:
            raise ValueError(f"invalid duration: {raw!r}") from None
        if pos or number < 0:
            raise ValueError(f"invalid duration: {raw!r}")
        return number
    return total


def retention_policy_name(retention_seconds: Union[int, float]) -> str:
    """Return the canonical policy name for an archive retention.

    The name doubles as an InfluxQL duration literal, e.g. ``86400 -> "1d"``,
    ``5400 -> "90m"``, ``45 -> "45s"``.
    """

    seconds = int(retention_seconds)
    if seconds < 0:
        raise ValueError(f"retention must be >= 0, got {retention_seconds!r}")
    if seconds == 0:
        return "0s"
    for suffix, size in _POLICY_UNITS:
        if seconds % size == 0:
            return f"{seconds // size}{suffix}"
    return f"{seconds}s"  # pragma: no cover - "s" always divides


def validate_policy_duration(text: str) -> str:
    """Check ``text`` is usable as an InfluxQL retention ``DURATION``.

    Accepts ``INF`` or integer/unit literals such as ``7d`` and ``1h30m``
    of at least one hour (``0s`` meaning infinite). Returns ``text``.
    """

    raw = str(text).strip()
    if raw.upper() == "INF":
        return raw
    if not _INFLUXQL_DURATION.fullmatch(raw):
        raise ValueError(f"invalid InfluxQL duration: {raw!r}")
    seconds = parse_duration(raw.replace("µ", "us"))
    if 0 < seconds < MIN_POLICY_SECONDS:
        raise ValueError(f"retention duration must be at least 1h or 0, got {raw!r}")
    return raw


def format_seconds(seconds: float) -> str:
    """Human readable rendering used in log lines (``1.250s``, ``15ms``)."""

    if seconds >= 1.0 or seconds == 0:
        return f"{seconds:.3f}s"
    return f"{seconds * 1000:.0f}ms"
