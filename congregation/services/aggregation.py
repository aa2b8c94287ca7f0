"""Folding filtered records into keyed buckets for charts and counters.

Every aggregation is a single pass over an in-memory collection.  Each
record contributes either ``1`` (count mode) or its amount (sum mode) to
the bucket for its key.  The result is a :class:`BucketSummary`, which also
carries the derived figures the dashboard needs for proportional bars and
rings: the total, the largest bucket and each bucket's percentage share.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from django.utils import timezone

from .windows import KeyType, resolve_getter

__all__ = [
    'BucketSummary',
    'count_by',
    'month_buckets',
    'month_keys',
    'month_labels',
    'percentage',
    'sum_by',
    'trailing_streak',
]


def percentage(part, whole, places: int = 1) -> float:
    """Return ``part / whole`` as a percentage, or 0 when ``whole`` is empty."""

    if not whole:
        return 0.0
    return round(float(part) / float(whole) * 100.0, places)


@dataclass
class BucketSummary:
    """Ordered mapping of bucket key to value plus derived statistics."""

    values: Dict[str, Any] = field(default_factory=dict)
    labels: Dict[str, str] = field(default_factory=dict)

    @property
    def total(self):
        return sum(self.values.values(), 0)

    @property
    def maximum(self):
        return max(self.values.values(), default=0)

    def share(self, key: str) -> float:
        return percentage(self.values.get(key, 0), self.total)

    def shares(self) -> Dict[str, float]:
        total = self.total
        return {key: percentage(value, total) for key, value in self.values.items()}

    def sorted_desc(self) -> 'BucketSummary':
        ordered = dict(sorted(self.values.items(), key=lambda item: item[1], reverse=True))
        return BucketSummary(values=ordered, labels=dict(self.labels))

    def as_rows(self) -> List[Dict[str, Any]]:
        """Rows of ``key``/``label``/``value``/``percentage`` for JSON payloads."""

        total = self.total
        return [
            {
                'key': key,
                'label': self.labels.get(key, key),
                'value': _jsonable(value),
                'percentage': percentage(value, total),
            }
            for key, value in self.values.items()
        ]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'rows': self.as_rows(),
            'total': _jsonable(self.total),
            'max': _jsonable(self.maximum),
        }


def _jsonable(value):
    if isinstance(value, (int, float)):
        return value
    return float(value)


def _accumulate(
    records: Iterable[Any],
    key: KeyType,
    weight: Callable[[Any], Any],
    seed: Optional[Sequence[str]] = None,
) -> BucketSummary:
    getter = resolve_getter(key)
    values: Dict[str, Any] = {name: 0 for name in (seed or [])}
    for record in records:
        bucket = getter(record)
        if bucket is None:
            continue
        bucket = str(bucket)
        values[bucket] = values.get(bucket, 0) + weight(record)
    return BucketSummary(values=values)


def count_by(records: Iterable[Any], key: KeyType, seed: Optional[Sequence[str]] = None) -> BucketSummary:
    """Count records per key.  ``seed`` keys appear even when empty."""

    return _accumulate(records, key, lambda _record: 1, seed)


def sum_by(
    records: Iterable[Any],
    key: KeyType,
    amount: KeyType = 'amount',
    seed: Optional[Sequence[str]] = None,
) -> BucketSummary:
    """Sum each record's amount per key."""

    amount_getter = resolve_getter(amount)
    return _accumulate(records, key, lambda record: amount_getter(record) or 0, seed)


def month_keys(months: int, today: Optional[date] = None) -> List[date]:
    """First day of each of the trailing ``months`` months, oldest first."""

    today = today or timezone.localdate()
    year, month = today.year, today.month
    firsts: List[date] = []
    for _ in range(max(months, 0)):
        firsts.append(date(year, month, 1))
        month -= 1
        if month == 0:
            month = 12
            year -= 1
    firsts.reverse()
    return firsts


def month_labels(months: int, today: Optional[date] = None, label_format: str = '%b') -> List[str]:
    """Short month names for the trailing window, oldest first."""

    return [first.strftime(label_format) for first in month_keys(months, today)]


def _month_of(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        if timezone.is_aware(value):
            value = timezone.localtime(value)
        value = value.date()
    if isinstance(value, date):
        return f"{value.year:04d}-{value.month:02d}"
    text = str(value)
    return text[:7] if len(text) >= 7 else None


def month_buckets(
    records: Iterable[Any],
    date_key: KeyType,
    months: int = 6,
    amount: Optional[KeyType] = None,
    today: Optional[date] = None,
    label_format: str = '%b',
) -> BucketSummary:
    """Aggregate records into a fixed trailing window of calendar months.

    Exactly ``months`` buckets are returned, oldest first, keyed ``YYYY-MM``.
    Months without activity keep a zero value.  Records outside the window
    are ignored.  With ``amount`` set the buckets hold sums, otherwise counts.
    """

    firsts = month_keys(months, today)
    keys = [f"{first.year:04d}-{first.month:02d}" for first in firsts]
    date_getter = resolve_getter(date_key)
    amount_getter = resolve_getter(amount) if amount is not None else None

    values: Dict[str, Any] = {key: 0 for key in keys}
    for record in records:
        bucket = _month_of(date_getter(record))
        if bucket not in values:
            continue
        increment = (amount_getter(record) or 0) if amount_getter else 1
        values[bucket] = values[bucket] + increment
    labels = {key: first.strftime(label_format) for key, first in zip(keys, firsts)}
    return BucketSummary(values=values, labels=labels)


def trailing_streak(summary: BucketSummary) -> int:
    """Consecutive non-zero buckets counted back from the most recent one."""

    streak = 0
    for value in reversed(list(summary.values.values())):
        if not value:
            break
        streak += 1
    return streak
