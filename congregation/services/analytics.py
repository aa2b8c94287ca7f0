"""Congregation analytics built on the window filter and the aggregator.

``build_dashboard_metrics`` produces the payload behind the analytics
dashboard: people by status, giving by fund and method, task and prayer
counters, interaction mix, attendance check-ins, six month trends and an
overall health score.
``build_donor_stats`` and ``build_donor_overview`` produce the per-member
giving statistics shown on the giving pages.

The functions accept in-memory collections so they can be exercised
without a database; when a collection is omitted it is loaded from the ORM.
All figures are recomputed on every call.
"""

from __future__ import annotations

import logging
import math
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence

from django.utils import timezone

from ..models import Attendance, CalendarEvent, Giving, Interaction, Person, PrayerRequest, Task
from .aggregation import (
    BucketSummary,
    count_by,
    month_buckets,
    percentage,
    sum_by,
    trailing_streak,
)
from .recurrence import expand_events
from .windows import Period, filter_by_period, filter_by_range

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = ('visitor', 'regular', 'member', 'leader')
STATUS_KEYS = ACTIVE_STATUSES + ('inactive',)
PRIORITY_KEYS = ('high', 'medium', 'low')
UPCOMING_EVENT_DAYS = 90
TREND_MONTHS = 6
DONOR_TREND_MONTHS = 12
ACTIVITY_FEED_LIMIT = 15


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _money(value) -> float:
    return float(value or 0)


def _labelled(summary: BucketSummary, choices: Sequence) -> BucketSummary:
    summary.labels = {str(key): str(label) for key, label in choices}
    return summary


def _local_today(now: datetime) -> date:
    if timezone.is_aware(now):
        return timezone.localtime(now).date()
    return now.date()


def _load(collection: Optional[Iterable[Any]], queryset) -> List[Any]:
    return list(queryset) if collection is None else list(collection)


def _trend_rows(summary: BucketSummary, value_name: str) -> List[Dict[str, Any]]:
    return [
        {'month': key, 'label': summary.labels.get(key, key), value_name: _money(value) if value_name == 'amount' else value}
        for key, value in summary.values.items()
    ]


def health_scores(
    status_counts: Dict[str, int],
    people_count: int,
    interaction_count: int,
    donor_count: int,
    task_completion_rate: int,
) -> Dict[str, int]:
    """Combine retention, engagement, giving and task scores (0-100 each)."""

    total_active = sum(status_counts.get(status, 0) for status in ACTIVE_STATUSES)
    inactive = status_counts.get('inactive', 0)
    retention = (
        min((total_active - inactive) / (total_active + inactive) * 100, 100)
        if total_active > 0
        else 0
    )
    engagement = min(interaction_count / people_count * 25, 100) if people_count else 0
    giving = min(donor_count / people_count * 100, 100) if people_count else 0
    overall = _round_half_up((retention + engagement + giving + task_completion_rate) / 4)
    return {
        'score': overall,
        'retention': _round_half_up(retention),
        'engagement': _round_half_up(engagement),
        'giving': _round_half_up(giving),
        'tasks': task_completion_rate,
    }


def build_dashboard_metrics(
    period: Any = Period.THIRTY_DAYS,
    now: Optional[datetime] = None,
    *,
    people: Optional[Iterable[Person]] = None,
    gifts: Optional[Iterable[Giving]] = None,
    tasks: Optional[Iterable[Task]] = None,
    prayers: Optional[Iterable[PrayerRequest]] = None,
    interactions: Optional[Iterable[Interaction]] = None,
    events: Optional[Iterable[CalendarEvent]] = None,
    attendance: Optional[Iterable[Attendance]] = None,
) -> Dict[str, Any]:
    """Return the analytics dashboard payload for ``period``."""

    period = Period.parse(period)
    now = now or timezone.now()
    today = _local_today(now)

    people = _load(people, Person.objects.all())
    gifts = _load(gifts, Giving.objects.all())
    tasks = _load(tasks, Task.objects.all())
    prayers = _load(prayers, PrayerRequest.objects.all())
    interactions = _load(interactions, Interaction.objects.all())
    events = _load(events, CalendarEvent.objects.all())
    attendance = _load(attendance, Attendance.objects.all())

    # People
    status_summary = _labelled(count_by(people, 'status', seed=STATUS_KEYS), Person.Status.choices)
    status_counts = dict(status_summary.values)
    total_active = sum(status_counts[status] for status in ACTIVE_STATUSES)
    conversion_rate = (
        _round_half_up((status_counts['member'] + status_counts['leader']) / total_active * 100)
        if total_active
        else 0
    )
    new_people = (
        filter_by_period(people, period, 'added_on', now)
        if period is not Period.ALL_TIME
        else []
    )

    # Giving
    gifts_in_period = filter_by_period(gifts, period, 'date', now)
    total_giving = sum((gift.amount for gift in gifts_in_period), Decimal('0'))
    average_gift = total_giving / len(gifts_in_period) if gifts_in_period else Decimal('0')
    by_fund = _labelled(sum_by(gifts_in_period, 'fund'), Giving.Fund.choices).sorted_desc()
    by_method = _labelled(sum_by(gifts_in_period, 'method'), Giving.Method.choices).sorted_desc()
    recurring_total = sum((gift.amount for gift in gifts_in_period if gift.is_recurring), Decimal('0'))
    unique_donors = len({gift.person_id for gift in gifts_in_period if gift.person_id})
    giving_trend = month_buckets(gifts, 'date', months=TREND_MONTHS, amount='amount', today=today)

    # Tasks
    tasks_in_period = filter_by_period(tasks, period, 'created_at', now)
    completed_tasks = [task for task in tasks_in_period if task.completed]
    task_completion_rate = (
        _round_half_up(len(completed_tasks) / len(tasks_in_period) * 100) if tasks_in_period else 0
    )
    overdue = [task for task in tasks if not task.completed and task.due_date and task.due_date < today]
    by_category = _labelled(count_by(tasks_in_period, 'category'), Task.Category.choices)
    open_by_priority = _labelled(
        count_by([task for task in tasks if not task.completed], 'priority', seed=PRIORITY_KEYS),
        Task.Priority.choices,
    )

    # Prayer
    prayers_in_period = filter_by_period(prayers, period, 'created_at', now)
    answered = [prayer for prayer in prayers_in_period if prayer.is_answered]
    active_prayers = [prayer for prayer in prayers if not prayer.is_answered]

    # Interactions
    interactions_in_period = filter_by_period(interactions, period, 'created_at', now)
    by_type = _labelled(count_by(interactions_in_period, 'type'), Interaction.Type.choices).sorted_desc()

    # Attendance
    checkins = filter_by_period(attendance, period, 'date', now)
    by_service = _labelled(
        count_by(checkins, 'event_type', seed=[key for key, _ in Attendance.EventType.choices]),
        Attendance.EventType.choices,
    )
    attendance_trend = month_buckets(attendance, 'date', months=TREND_MONTHS, today=today)

    # Events
    upcoming = expand_events(events, now, now + timedelta(days=UPCOMING_EVENT_DAYS))

    growth_trend = month_buckets(people, 'added_on', months=TREND_MONTHS, today=today)

    health = health_scores(
        status_counts,
        len(people),
        len(interactions_in_period),
        unique_donors,
        task_completion_rate,
    )

    logger.debug(
        "Dashboard metrics computed for %s: %d people, %d gifts, %d tasks",
        period.value,
        len(people),
        len(gifts_in_period),
        len(tasks_in_period),
    )

    return {
        'period': {'value': period.value, 'label': period.label},
        'people': {
            'total': len(people),
            'status': status_summary.to_dict(),
            'total_active': total_active,
            'conversion_rate': conversion_rate,
            'new_in_period': len(new_people),
        },
        'giving': {
            'total': _money(total_giving),
            'average': round(_money(average_gift), 2),
            'count': len(gifts_in_period),
            'by_fund': by_fund.to_dict(),
            'by_method': by_method.to_dict(),
            'recurring_total': _money(recurring_total),
            'unique_donors': unique_donors,
            'trend': _trend_rows(giving_trend, 'amount'),
        },
        'tasks': {
            'in_period': len(tasks_in_period),
            'completed': len(completed_tasks),
            'completion_rate': task_completion_rate,
            'overdue': len(overdue),
            'by_category': by_category.to_dict(),
            'open_by_priority': open_by_priority.to_dict(),
        },
        'prayer': {
            'in_period': len(prayers_in_period),
            'answered': len(answered),
            'active': len(active_prayers),
        },
        'interactions': {
            'total': len(interactions_in_period),
            'by_type': by_type.to_dict(),
        },
        'attendance': {
            'checkins': len(checkins),
            'unique_attendees': len({record.person_id for record in checkins}),
            'by_service': by_service.to_dict(),
            'trend': _trend_rows(attendance_trend, 'count'),
        },
        'events': {
            'upcoming': len(upcoming),
            'next': [
                {'id': instance.id, 'title': instance.title, 'start': instance.start.isoformat()}
                for instance in upcoming[:5]
            ],
        },
        'growth': _trend_rows(growth_trend, 'count'),
        'health': health,
        'activity': build_activity_feed(
            now,
            people=people,
            tasks=tasks,
            interactions=interactions,
            prayers=prayers,
            gifts=gifts,
        ),
    }


def _as_moment(value, now: datetime) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        moment = value
    else:
        moment = datetime.combine(value, datetime.min.time())
    if timezone.is_aware(now) and timezone.is_naive(moment):
        moment = timezone.make_aware(moment, timezone.get_current_timezone())
    return moment


def build_activity_feed(
    now: datetime,
    *,
    people: Sequence[Person],
    tasks: Sequence[Task],
    interactions: Sequence[Interaction],
    prayers: Sequence[PrayerRequest],
    gifts: Sequence[Giving],
    limit: int = ACTIVITY_FEED_LIMIT,
) -> List[Dict[str, Any]]:
    """Most recent congregation activity, newest first.

    New people are listed for 30 days, prayer requests for 14 days and
    completed tasks, interactions and named gifts for 7 days.
    """

    people_by_id = {person.pk: person for person in people}
    items: List[Dict[str, Any]] = []

    def add(kind: str, identifier, title: str, subtitle: str, moment, person_id=None) -> None:
        items.append({
            'id': f"{kind}-{identifier}",
            'type': kind,
            'title': title,
            'subtitle': subtitle,
            'timestamp': moment,
            'person_id': person_id,
        })

    for person in filter_by_range(people, now - timedelta(days=30), None, lambda p: _as_moment(p.added_on, now)):
        subtitle = 'New visitor' if person.status == Person.Status.VISITOR else 'New member'
        add('new_person', person.pk, f"{person.full_name} was added", subtitle, _as_moment(person.added_on, now), person.pk)

    week_ago = now - timedelta(days=7)
    for task in filter_by_range([t for t in tasks if t.completed], week_ago, None, 'created_at'):
        person = people_by_id.get(task.person_id)
        add('task_completed', task.pk, task.title, person.full_name if person else '', task.created_at, task.person_id)

    for interaction in filter_by_range(interactions, week_ago, None, 'created_at'):
        person = people_by_id.get(interaction.person_id)
        if person is None:
            continue
        title = f"{interaction.get_type_display()} with {person.first_name}"
        add('interaction', interaction.pk, title, (interaction.content or '')[:50], interaction.created_at, person.pk)

    for prayer in filter_by_range(prayers, now - timedelta(days=14), None, 'created_at'):
        person = people_by_id.get(prayer.person_id)
        content = prayer.content or ''
        title = content[:60] + ('...' if len(content) > 60 else '')
        add('prayer', prayer.pk, title, f"From {person.first_name}" if person else '', prayer.created_at, prayer.person_id)

    for gift in filter_by_range(gifts, week_ago, None, lambda g: _as_moment(g.date, now)):
        person = people_by_id.get(gift.person_id)
        if person is None:
            continue
        add('giving', gift.pk, f"${_money(gift.amount):.0f} donation", person.full_name, _as_moment(gift.date, now), person.pk)

    items.sort(key=lambda item: item['timestamp'], reverse=True)
    for item in items:
        item['timestamp'] = item['timestamp'].isoformat()
    return items[:limit]


def _year_change(this_year: Decimal, last_year: Decimal) -> float:
    if last_year > 0:
        return round(float((this_year - last_year) / last_year * 100), 1)
    return 100.0 if this_year > 0 else 0.0


def build_donor_stats(
    person: Person,
    gifts: Optional[Iterable[Giving]] = None,
    today: Optional[date] = None,
) -> Optional[Dict[str, Any]]:
    """Lifetime giving statistics for ``person``; ``None`` without any gifts."""

    today = today or timezone.localdate()
    if gifts is None:
        gifts = Giving.objects.filter(person=person)
    gifts = [gift for gift in gifts if gift.person_id == person.pk]
    if not gifts:
        return None

    this_year = sum((g.amount for g in gifts if g.date.year == today.year), Decimal('0'))
    last_year = sum((g.amount for g in gifts if g.date.year == today.year - 1), Decimal('0'))
    lifetime = sum((g.amount for g in gifts), Decimal('0'))
    ordered = sorted(gifts, key=lambda g: g.date)

    method_counts = count_by(gifts, 'method').sorted_desc()
    fund_totals = _labelled(sum_by(gifts, 'fund'), Giving.Fund.choices).sorted_desc()
    monthly = month_buckets(gifts, 'date', months=DONOR_TREND_MONTHS, amount='amount', today=today, label_format='%b %Y')

    return {
        'person_id': person.pk,
        'name': person.full_name,
        'total_lifetime': _money(lifetime),
        'total_this_year': _money(this_year),
        'total_last_year': _money(last_year),
        'average_gift': round(_money(lifetime) / len(gifts), 2),
        'largest_gift': _money(max(g.amount for g in gifts)),
        'gift_count': len(gifts),
        'first_gift_date': ordered[0].date.isoformat(),
        'last_gift_date': ordered[-1].date.isoformat(),
        'preferred_method': next(iter(method_counts.values), None),
        'preferred_fund': next(iter(fund_totals.values), None),
        'year_over_year_change': _year_change(this_year, last_year),
        'monthly_giving': _trend_rows(monthly, 'amount'),
        'fund_breakdown': fund_totals.as_rows(),
        'giving_streak': trailing_streak(monthly),
    }


def build_donor_overview(
    gifts: Optional[Iterable[Giving]] = None,
    people: Optional[Iterable[Person]] = None,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """Totals across every donor plus each donor's statistics.

    Donors are ordered by lifetime giving, largest first; the first one is
    reported as the top donor.
    """

    today = today or timezone.localdate()
    gifts = _load(gifts, Giving.objects.all())
    people = _load(people, Person.objects.all())

    gifts_by_person: Dict[Any, List[Giving]] = {}
    for gift in gifts:
        if gift.person_id:
            gifts_by_person.setdefault(gift.person_id, []).append(gift)

    donors: List[Dict[str, Any]] = []
    for person in people:
        stats = build_donor_stats(person, gifts_by_person.get(person.pk, []), today)
        if stats is not None:
            donors.append(stats)
    donors.sort(key=lambda stats: stats['total_lifetime'], reverse=True)

    new_this_year = sum(
        1 for person_gifts in gifts_by_person.values()
        if min(g.date for g in person_gifts).year == today.year
    )
    total_donors = len(gifts_by_person)
    grand_total = sum((g.amount for g in gifts), Decimal('0'))
    top = donors[0] if donors else None

    return {
        'total_donors': total_donors,
        'new_donors_this_year': new_this_year,
        'average_per_donor': round(_money(grand_total) / total_donors, 2) if total_donors else 0,
        'top_donor': {'person_id': top['person_id'], 'name': top['name'], 'amount': top['total_lifetime']} if top else None,
        'donors': donors,
        'fund_shares': {key: percentage(value, grand_total) for key, value in sum_by(gifts, 'fund').values.items()},
    }
