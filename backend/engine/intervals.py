"""
Half-open date intervals and the interval-consistency check.

Every dated record in the lease core (version effective ranges, rent periods,
option notice windows, concession applicability) is a DateInterval: start is
inclusive, end is exclusive. Two intervals that touch (a.end == b.start) do not
overlap.

Text form follows the PostgreSQL daterange literal, e.g. "[2024-01-01,2025-01-01)".
Any bound markers are accepted and canonicalised to "[)" the same way
PostgreSQL canonicalises discrete ranges.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Callable, Hashable, Iterable, Optional, TypeVar

CANONICAL_BOUNDS = "[)"

_RANGE_RE = re.compile(
    r"^\s*(?P<lo>[\[\(])\s*(?P<start>\d{4}-\d{2}-\d{2})\s*,\s*(?P<end>\d{4}-\d{2}-\d{2})\s*(?P<hi>[\]\)])\s*$"
)

T = TypeVar("T")


class IntervalFormatError(ValueError):
    """Raised for malformed, empty or inverted interval input."""


@dataclass(frozen=True, order=True)
class DateInterval:
    start: date
    end: date

    def __post_init__(self) -> None:
        if not isinstance(self.start, date) or not isinstance(self.end, date):
            raise IntervalFormatError("interval bounds must be dates")
        if isinstance(self.start, datetime) or isinstance(self.end, datetime):
            raise IntervalFormatError("interval bounds must be calendar dates, not datetimes")
        if self.start >= self.end:
            raise IntervalFormatError(
                f"interval start {self.start.isoformat()} must be before end {self.end.isoformat()}"
            )

    @classmethod
    def from_bounds(cls, start: date, end: date, bounds: str = CANONICAL_BOUNDS) -> "DateInterval":
        """Build from explicit bound markers, shifting inclusive ends / exclusive starts by a day."""
        if len(bounds) != 2 or bounds[0] not in "[(" or bounds[1] not in ")]":
            raise IntervalFormatError(f"invalid bounds marker {bounds!r}")
        if bounds[0] == "(":
            start = start + timedelta(days=1)
        if bounds[1] == "]":
            end = end + timedelta(days=1)
        return cls(start, end)

    @classmethod
    def parse(cls, value: Any) -> "DateInterval":
        """Accept a daterange literal, a {"start", "end"[, "bounds"]} mapping, or a DateInterval."""
        if isinstance(value, DateInterval):
            return value
        if isinstance(value, dict):
            try:
                start = _to_date(value["start"])
                end = _to_date(value["end"])
            except KeyError as e:
                raise IntervalFormatError(f"interval is missing {e.args[0]!r}") from e
            return cls.from_bounds(start, end, value.get("bounds") or CANONICAL_BOUNDS)
        if not isinstance(value, str):
            raise IntervalFormatError(
                'interval must be a daterange string such as "[2024-01-01,2025-01-01)"'
            )
        m = _RANGE_RE.match(value)
        if not m:
            raise IntervalFormatError(
                f'invalid daterange {value!r}; expected e.g. "[2024-01-01,2025-01-01)"'
            )
        start = _to_date(m.group("start"))
        end = _to_date(m.group("end"))
        return cls.from_bounds(start, end, m.group("lo") + m.group("hi"))

    @property
    def bounds(self) -> str:
        return CANONICAL_BOUNDS

    @property
    def last_day(self) -> date:
        """Last calendar day covered by the interval."""
        return self.end - timedelta(days=1)

    @property
    def days(self) -> int:
        return (self.end - self.start).days

    def contains(self, day: date) -> bool:
        return self.start <= day < self.end

    def overlaps(self, other: "DateInterval") -> bool:
        return overlaps(self, other)

    def to_literal(self) -> str:
        return f"[{self.start.isoformat()},{self.end.isoformat()})"

    def to_dict(self) -> dict[str, Any]:
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "bounds": self.bounds,
            "literal": self.to_literal(),
        }

    def __str__(self) -> str:
        return self.to_literal()


def _to_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError as e:
        raise IntervalFormatError(f"invalid date {value!r}") from e


def overlaps(a: DateInterval, b: DateInterval) -> bool:
    return a.start < b.end and b.start < a.end


def find_conflict(
    candidate: DateInterval,
    partition_key: Hashable,
    existing: Iterable[T],
    *,
    key_of: Callable[[T], Hashable],
    interval_of: Callable[[T], Optional[DateInterval]],
    id_of: Callable[[T], Hashable],
    exclude_id: Hashable | None = None,
) -> Optional[T]:
    """
    Return the first record in `existing` that shares `partition_key` and whose
    interval overlaps `candidate`, skipping `exclude_id` (the record being updated).
    Records without an interval never conflict. Pure; no I/O.
    """
    for record in existing:
        if key_of(record) != partition_key:
            continue
        if exclude_id is not None and id_of(record) == exclude_id:
            continue
        interval = interval_of(record)
        if interval is not None and overlaps(candidate, interval):
            return record
    return None
