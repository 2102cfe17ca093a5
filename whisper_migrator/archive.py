"""Adapter over the graphite ``whisper`` library for raw archive dumps."""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Set, Tuple

import whisper

logger = logging.getLogger(__name__)

Sample = Tuple[int, float]


@dataclass(frozen=True)
class ArchiveInfo:
    index: int
    offset: int
    seconds_per_point: int
    points: int

    @property
    def retention_seconds(self) -> int:
        return self.seconds_per_point * self.points

    @property
    def size(self) -> int:
        return self.points * whisper.pointSize


class WhisperArchiveFile:
    """Read-only view of a whisper file exposing every fixed-size slot."""

    def __init__(self, path: str) -> None:
        self.path = str(path)
        header = whisper.info(self.path)
        if header is None:
            raise whisper.CorruptWhisperFile("unable to read header", self.path)
        self.archives: List[ArchiveInfo] = [
            ArchiveInfo(
                index=index,
                offset=int(archive["offset"]),
                seconds_per_point=int(archive["secondsPerPoint"]),
                points=int(archive["points"]),
            )
            for index, archive in enumerate(header["archives"])
        ]
        self._fh = open(self.path, "rb")

    def dump_archive(self, archive: ArchiveInfo) -> Iterator[Sample]:
        """Yield ``(timestamp, value)`` for every slot, unused slots included."""

        self._fh.seek(archive.offset)
        data = self._fh.read(archive.size)
        if len(data) != archive.size:
            raise whisper.CorruptWhisperFile(
                f"archive {archive.index} truncated ({len(data)}/{archive.size} bytes)", self.path
            )
        for timestamp, value in struct.iter_unpack(whisper.pointFormat, data):
            yield int(timestamp), value

    def close(self) -> None:
        self._fh.close()

    def __enter__(self) -> "WhisperArchiveFile":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def open_archive(path: str) -> WhisperArchiveFile:
    return WhisperArchiveFile(path)


def retention_durations(paths: Iterable[str]) -> Set[int]:
    """Distinct archive retentions (seconds) across ``paths``.

    Files whose header cannot be read are logged and skipped.
    """

    found: Set[int] = set()
    for path in paths:
        try:
            header = whisper.info(str(path))
        except (OSError, whisper.WhisperException) as exc:
            logger.warning("Cannot read whisper header of %s: %s", path, exc)
            continue
        if not header:
            continue
        for archive in header["archives"]:
            found.add(int(archive["retention"]))
    return found
