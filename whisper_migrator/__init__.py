"""Migrate graphite whisper archives into InfluxDB."""

from .errors import AdminError, ExtractionError, InvalidRule, MigrationError, NoMatch
from .limiter import ConcurrencyLimiter
from .pipeline import Migrator, discover_files, migrate
from .rules import ConversionRule, MatchStub, RuleSet

__all__ = [
    "AdminError",
    "ConcurrencyLimiter",
    "ConversionRule",
    "ExtractionError",
    "InvalidRule",
    "MatchStub",
    "MigrationError",
    "Migrator",
    "NoMatch",
    "RuleSet",
    "discover_files",
    "migrate",
]
