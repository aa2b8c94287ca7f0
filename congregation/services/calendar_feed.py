"""iCalendar export of stored calendar events.

Each repeating event is exported once with an ``RRULE`` so subscribing
calendar apps expand the series themselves.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone as dt_timezone
from typing import Any, Dict, Iterable, Optional

from django.utils import timezone
from icalendar import Calendar, Event

from .recurrence import normalise_rule

PRODID = '-//Grace CRM//Church Calendar//EN'

RRULES: Dict[str, Dict[str, Any]] = {
    'daily': {'freq': 'DAILY'},
    'weekly': {'freq': 'WEEKLY'},
    'biweekly': {'freq': 'WEEKLY', 'interval': 2},
    'monthly': {'freq': 'MONTHLY'},
    'quarterly': {'freq': 'MONTHLY', 'interval': 3},
}

CATEGORY_NAMES = {
    'service': 'CHURCH SERVICE',
    'meeting': 'MEETING',
    'event': 'EVENT',
    'small-group': 'SMALL GROUP',
    'holiday': 'HOLIDAY',
    'other': 'OTHER',
}

DEFAULT_DURATION = timedelta(hours=1)


def _utc(value: datetime) -> datetime:
    if timezone.is_naive(value):
        value = timezone.make_aware(value, timezone.get_current_timezone())
    return value.astimezone(dt_timezone.utc)


def _local_date(value) -> date:
    if isinstance(value, datetime):
        return timezone.localtime(value).date() if timezone.is_aware(value) else value.date()
    return value


def recurrence_rule(rule: Optional[str], until: Optional[date], all_day: bool) -> Optional[Dict[str, Any]]:
    """``RRULE`` properties for ``rule``; ``None`` for one-off events."""

    base = RRULES.get(normalise_rule(rule))
    if base is None:
        return None
    recur = dict(base)
    if until is not None:
        if all_day:
            recur['until'] = until
        else:
            last_moment = datetime.combine(until, time(23, 59, 59))
            recur['until'] = _utc(last_moment)
    return recur


def event_component(event, domain: str, stamp: datetime) -> Event:
    component = Event()
    component.add('uid', f"{event.pk}@{domain}")
    component.add('dtstamp', _utc(stamp))

    start = event.start
    end = event.end
    if event.all_day:
        first_day = _local_date(start)
        last_day = _local_date(end) if end else first_day
        component.add('dtstart', first_day)
        # All-day end dates are exclusive.
        component.add('dtend', last_day + timedelta(days=1))
    else:
        component.add('dtstart', _utc(start))
        component.add('dtend', _utc(end) if end else _utc(start) + DEFAULT_DURATION)

    component.add('summary', event.title)
    if event.description:
        component.add('description', event.description)
    if event.location:
        component.add('location', event.location)

    rrule = recurrence_rule(event.recurrence, event.recurrence_end, event.all_day)
    if rrule:
        component.add('rrule', rrule)
    component.add('categories', [CATEGORY_NAMES.get(event.category, 'EVENT')])
    return component


def build_ical(
    events: Iterable[Any],
    calendar_name: str,
    domain: str,
    now: Optional[datetime] = None,
) -> str:
    """Render ``events`` as a complete ``VCALENDAR`` document."""

    stamp = now or timezone.now()
    calendar = Calendar()
    calendar.add('prodid', PRODID)
    calendar.add('version', '2.0')
    calendar.add('calscale', 'GREGORIAN')
    calendar.add('method', 'PUBLISH')
    calendar.add('x-wr-calname', calendar_name)
    for event in events:
        calendar.add_component(event_component(event, domain, stamp))
    return calendar.to_ical().decode('utf-8')
