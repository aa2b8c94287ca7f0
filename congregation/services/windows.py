"""Time-window filtering for dated records.

Dashboards let staff pick a reporting period ("7 Days", "30 Days", "90
Days", "All Time").  The helpers here turn that selection into a lower
bound and filter collections of records against it.  Records can be model
instances, dictionaries or event instances; the date is located through a
``key`` that is either an attribute/dict key name or a callable.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from enum import Enum
from operator import attrgetter
from typing import Any, Callable, Iterable, List, Optional, Union

from django.utils import timezone

__all__ = [
    'Period',
    'filter_by_period',
    'filter_by_range',
    'period_threshold',
    'resolve_getter',
]

KeyType = Union[str, Callable[[Any], Any]]


class Period(str, Enum):
    SEVEN_DAYS = '7d'
    THIRTY_DAYS = '30d'
    NINETY_DAYS = '90d'
    ALL_TIME = 'all'

    @property
    def days(self) -> Optional[int]:
        return {'7d': 7, '30d': 30, '90d': 90}.get(self.value)

    @property
    def label(self) -> str:
        return 'All Time' if self is Period.ALL_TIME else f'{self.days} Days'

    @classmethod
    def parse(cls, value: Any, default: Optional['Period'] = None) -> 'Period':
        """Return the matching period, or ``default`` for unknown input."""

        fallback = default if default is not None else cls.THIRTY_DAYS
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or '').strip().lower())
        except ValueError:
            return fallback

    @classmethod
    def choices(cls) -> List[dict]:
        return [{'value': period.value, 'label': period.label} for period in cls]


def resolve_getter(key: KeyType) -> Callable[[Any], Any]:
    """Build a callable reading ``key`` from a record."""

    if callable(key):
        return key
    attribute = attrgetter(key)

    def getter(record: Any) -> Any:
        if isinstance(record, dict):
            return record.get(key)
        return attribute(record)

    return getter


def period_threshold(period: Period, now: Optional[datetime] = None) -> Optional[datetime]:
    """Return ``now - N days`` for bounded periods, ``None`` for all time."""

    days = Period.parse(period).days
    if days is None:
        return None
    now = now or timezone.now()
    return now - timedelta(days=days)


def _comparable(value, reference):
    """Coerce ``value`` so it can be compared with ``reference``."""

    if isinstance(value, datetime):
        if isinstance(reference, datetime):
            if timezone.is_naive(value) and timezone.is_aware(reference):
                return timezone.make_aware(value, reference.tzinfo)
            if timezone.is_aware(value) and timezone.is_naive(reference):
                return timezone.make_naive(value, timezone.get_current_timezone())
            return value
        return value.date()
    if isinstance(value, date) and isinstance(reference, datetime):
        moment = datetime.combine(value, time.min)
        if timezone.is_aware(reference):
            moment = timezone.make_aware(moment, reference.tzinfo)
        return moment
    return value


def filter_by_period(
    records: Iterable[Any],
    period: Period,
    key: KeyType,
    now: Optional[datetime] = None,
) -> List[Any]:
    """Keep records dated on or after the period's threshold.

    ``Period.ALL_TIME`` returns every record, including undated ones.
    """

    items = list(records)
    threshold = period_threshold(period, now)
    if threshold is None:
        return items
    getter = resolve_getter(key)
    kept: List[Any] = []
    for record in items:
        value = getter(record)
        if value is None:
            continue
        if _comparable(value, threshold) >= threshold:
            kept.append(record)
    return kept


def filter_by_range(records: Iterable[Any], start, end, key: KeyType) -> List[Any]:
    """Keep records whose date lies in the inclusive ``[start, end]`` range.

    Either bound may be ``None`` to leave that side open.
    """

    getter = resolve_getter(key)
    kept: List[Any] = []
    for record in records:
        value = getter(record)
        if value is None:
            continue
        if start is not None and _comparable(value, start) < start:
            continue
        if end is not None and _comparable(value, end) > end:
            continue
        kept.append(record)
    return kept
