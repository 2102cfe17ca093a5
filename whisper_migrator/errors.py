"""Exception hierarchy shared by the migration components."""

from __future__ import annotations

from typing import Optional


class MigrationError(Exception):
    """Base class for every non-configuration failure raised by the migrator."""


class NoMatch(MigrationError):
    """No conversion rule matched a series key."""

    def __init__(self, series_key: str, path: Optional[str] = None) -> None:
        self.series_key = series_key
        self.path = path
        where = f" (file {path})" if path else ""
        super().__init__(f"skipping series {series_key!r}{where}: no rule pattern matched")


class InvalidRule(MigrationError):
    """A rule could not produce a usable stub for a series key."""

    def __init__(self, pattern: str, series_key: str, reason: str) -> None:
        self.pattern = pattern
        self.series_key = series_key
        self.reason = reason
        super().__init__(f"rule {pattern!r} rejected for {series_key!r}: {reason}")


class ExtractionError(MigrationError):
    """A whisper file could not be opened or one of its archives read."""

    def __init__(self, path: str, cause: BaseException) -> None:
        self.path = path
        self.cause = cause
        super().__init__(f"cannot read {path}: {type(cause).__name__}: {cause}")


class AdminError(MigrationError):
    """An administrative query (database or retention policy) failed."""
