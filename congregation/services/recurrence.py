"""Expansion of repeating calendar events into dated occurrences.

A repeating ``CalendarEvent`` is stored once.  Views that need concrete
dates (calendar grids, registration lists, reminder scheduling) call
:func:`expand_event` with a bounded window and receive a list of
:class:`EventInstance` objects that are never persisted.

Occurrences are always computed from the template's own start date, so the
``n``-th occurrence has the same synthetic identifier (``<id>_<n>``) no
matter which window is queried.  Monthly and quarterly rules use
``dateutil.relativedelta`` anchored to the template start: the day of month
is clamped to the end of shorter months (Jan 31 -> Feb 29 -> Mar 31) and the
series never drifts.  Stepping happens in local wall-clock time, so
occurrences keep their hour of day across daylight saving changes.

Nothing in this module raises on odd input.  A template without a start
yields no occurrences and an unknown rule is treated as non-repeating.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Iterable, List, Optional

from dateutil.relativedelta import relativedelta
from django.utils import timezone

__all__ = [
    'EventInstance',
    'RECURRENCE_RULES',
    'advance',
    'expand_event',
    'expand_events',
    'normalise_rule',
]

# Fixed step per rule: (days, months).  Exactly one component is non-zero.
_STEPS = {
    'daily': (1, 0),
    'weekly': (7, 0),
    'biweekly': (14, 0),
    'monthly': (0, 1),
    'quarterly': (0, 3),
}

RECURRENCE_RULES = ('none', *_STEPS.keys())


@dataclass
class EventInstance:
    """One concrete occurrence of a calendar event template.

    Attributes not defined on the instance (``title``, ``category``,
    ``capacity`` ...) are read from the template.
    """

    id: str
    series_id: Optional[str]
    occurrence_index: int
    start: Any
    end: Any
    template: Any

    def __getattr__(self, name: str) -> Any:
        # Only reached for attributes missing on the dataclass itself.
        if name == 'template':
            raise AttributeError(name)
        return getattr(self.template, name)

    @property
    def is_recurring(self) -> bool:
        return self.series_id is not None


def normalise_rule(rule: Optional[str]) -> str:
    """Return a known rule name; unknown or empty values become ``none``."""

    value = (rule or '').strip().lower()
    return value if value in _STEPS else 'none'


def _step(value, rule: str, steps: int):
    days, months = _STEPS.get(rule, (0, 0))
    if months:
        return value + relativedelta(months=months * steps)
    if days:
        return value + timedelta(days=days * steps)
    return value


def _is_aware(value) -> bool:
    return isinstance(value, datetime) and timezone.is_aware(value)


def _wall_clock(value):
    """Local wall-clock form of an aware datetime; other values unchanged."""

    if _is_aware(value):
        return timezone.make_naive(value)
    return value


def advance(value, rule: Optional[str], steps: int = 1):
    """Return ``value`` moved forward by ``steps`` increments of ``rule``.

    Aware datetimes are stepped in local wall-clock time, so a 10:00 event
    stays at 10:00 across daylight saving changes.  Non-repeating rules
    return ``value`` unchanged.
    """

    rule = normalise_rule(rule)
    if rule == 'none':
        return value
    stepped = _step(_wall_clock(value), rule, steps)
    return timezone.make_aware(stepped) if _is_aware(value) else stepped


def _day(value) -> date:
    return value.date() if isinstance(value, datetime) else value


def _align_bound(bound, like, *, upper: bool):
    """Make a window bound comparable with occurrence starts of type ``like``.

    A plain date compared against datetime starts covers that whole local
    day.
    """

    if bound is None:
        return None
    if isinstance(like, datetime) and not isinstance(bound, datetime):
        return datetime.combine(bound, time.max if upper else time.min)
    if not isinstance(like, datetime) and isinstance(bound, datetime):
        return bound.date()
    return bound


def _template_id(template) -> str:
    identifier = getattr(template, 'pk', None)
    if identifier is None:
        identifier = getattr(template, 'id', '')
    return str(identifier)


def _duration(template, start):
    end = getattr(template, 'end', None)
    if end is None:
        return None
    try:
        return _wall_clock(end) - start
    except TypeError:
        return None


def _first_candidate_index(start, lower, step_days: int) -> int:
    """Skip whole steps that certainly end before the window opens."""

    if not step_days or lower is None or lower <= start:
        return 0
    gap = lower - start
    gap_days = gap.days if isinstance(gap, timedelta) else 0
    return max(gap_days // step_days - 1, 0)


def expand_event(template, window_start, window_end) -> List[EventInstance]:
    """Produce the occurrences of ``template`` inside the inclusive window.

    Aware starts are expanded in the current time zone and each occurrence
    is made aware again.  Without a window end or a repetition end only the
    first occurrence at or after the window start is produced.
    """

    start = getattr(template, 'start', None)
    if start is None:
        return []

    aware = _is_aware(start)
    local_start = _wall_clock(start)
    lower = _align_bound(_wall_clock(window_start), local_start, upper=False)
    upper = _align_bound(_wall_clock(window_end), local_start, upper=True)
    duration = _duration(template, local_start)
    template_id = _template_id(template)
    rule = normalise_rule(getattr(template, 'recurrence', None))

    if rule == 'none':
        if (lower is not None and local_start < lower) or (upper is not None and local_start > upper):
            return []
        return [
            EventInstance(
                id=template_id,
                series_id=None,
                occurrence_index=0,
                start=start,
                end=getattr(template, 'end', None),
                template=template,
            )
        ]

    repeat_until = getattr(template, 'recurrence_end', None)
    repeat_until = _day(repeat_until) if repeat_until is not None else None
    step_days, _ = _STEPS[rule]

    def localise(value):
        return timezone.make_aware(value) if aware else value

    instances: List[EventInstance] = []
    index = _first_candidate_index(local_start, lower, step_days)
    while True:
        current = _step(local_start, rule, index)
        if upper is not None and current > upper:
            break
        if repeat_until is not None and _day(current) > repeat_until:
            break
        if lower is None or current >= lower:
            instances.append(
                EventInstance(
                    id=f"{template_id}_{index}",
                    series_id=template_id,
                    occurrence_index=index,
                    start=localise(current),
                    end=localise(current + duration) if duration is not None else None,
                    template=template,
                )
            )
            if upper is None and repeat_until is None:
                break
        index += 1
    return instances


def expand_events(templates: Iterable[Any], window_start, window_end) -> List[EventInstance]:
    """Expand every template and return all occurrences ordered by start."""

    instances: List[EventInstance] = []
    for template in templates:
        instances.extend(expand_event(template, window_start, window_end))
    instances.sort(key=lambda instance: (instance.start, instance.id))
    return instances
