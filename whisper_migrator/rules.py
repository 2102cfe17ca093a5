"""Rule engine mapping graphite series keys onto Influx measurements."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Mapping, Optional, Pattern, Sequence, Tuple

from .errors import InvalidRule, NoMatch
from .points import Tag

logger = logging.getLogger(__name__)

CAPTURE_PREFIX = "?"


def expand_template(template: str, captures: Mapping[str, str]) -> str:
    """Resolve ``?name`` against the named captures; other values are literal."""

    if template.startswith(CAPTURE_PREFIX):
        return captures.get(template[len(CAPTURE_PREFIX):]) or ""
    return template


@dataclass(frozen=True)
class MatchStub:
    """Resolved transformation for one series, reused for all its samples."""

    measurement: str
    tags: Tuple[Tag, ...]
    field_key: str


@dataclass(frozen=True)
class ConversionRule:
    pattern: str
    measurement: str
    tags: Tuple[Tuple[str, str], ...] = ()
    field_template: str = ""
    _compiled: Optional[Pattern[str]] = field(default=None, init=False, repr=False, compare=False)

    def compiled(self) -> Pattern[str]:
        if self._compiled is None:
            object.__setattr__(self, "_compiled", re.compile(self.pattern))
        return self._compiled  # type: ignore[return-value]

    def match(self, series_key: str) -> Optional[MatchStub]:
        """Return a stub for ``series_key``, ``None`` when the pattern misses.

        Raises ``InvalidRule`` when the rule is unusable or its templates
        expand to empty values for this key.
        """

        if not self.pattern:
            raise InvalidRule(self.pattern, series_key, "pattern is empty")
        try:
            regex = self.compiled()
        except re.error as exc:
            raise InvalidRule(self.pattern, series_key, f"pattern does not compile: {exc}") from exc

        found = regex.search(series_key)
        if found is None:
            return None
        captures = {name: value for name, value in found.groupdict().items() if value is not None}

        measurement = expand_template(self.measurement or "", captures)
        if not measurement:
            raise InvalidRule(self.pattern, series_key, "measurement is empty or not captured")

        tags = []
        for key, value in self.tags:
            if not key or not value:
                raise InvalidRule(self.pattern, series_key, "tag key and value must not be empty")
            resolved = expand_template(value, captures)
            if not resolved:
                raise InvalidRule(self.pattern, series_key, f"tag {key!r} is empty or not captured")
            tags.append(Tag(key=key, value=resolved))

        if not self.field_template:
            raise InvalidRule(self.pattern, series_key, "field key is empty")
        field_key = expand_template(self.field_template, captures)
        if not field_key:
            raise InvalidRule(self.pattern, series_key, "field key is empty or not captured")

        return MatchStub(measurement=measurement, tags=tuple(tags), field_key=field_key)


class RuleSet:
    """Ordered rule list scanned linearly; the first usable match wins."""

    def __init__(self, rules: Sequence[ConversionRule]) -> None:
        self.rules = list(rules)

    @classmethod
    def from_settings(cls, settings: Sequence) -> "RuleSet":
        return cls(
            [
                ConversionRule(
                    pattern=item.pattern,
                    measurement=item.measurement,
                    tags=tuple(item.tags),
                    field_template=item.field,
                )
                for item in settings
            ]
        )

    def __len__(self) -> int:
        return len(self.rules)

    def match(
        self,
        series_key: str,
        report: Optional[Callable[[Exception], None]] = None,
    ) -> MatchStub:
        """Resolve ``series_key`` against the rules in declaration order.

        Rules failing with ``InvalidRule`` are handed to ``report`` and the
        scan continues. Raises ``NoMatch`` when no rule produced a stub.
        """

        for rule in self.rules:
            try:
                stub = rule.match(series_key)
            except InvalidRule as exc:
                logger.debug("Rule rejected: %s", exc)
                if report is not None:
                    report(exc)
                continue
            if stub is not None:
                return stub
        raise NoMatch(series_key)
