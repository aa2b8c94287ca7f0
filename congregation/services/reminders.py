"""Reminder rules and the reminders they schedule.

A :class:`ReminderRule` says *what* to remind about (birthdays, events,
tasks ...), *how* (email, SMS or both) and *how far ahead*.  Rules are
stored through :class:`congregation.services.preferences.ReminderRuleRepository`;
this module only turns rules plus congregation data into concrete
:class:`Reminder` records.  Dispatch happens in the ``dispatch_reminders``
management command.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, Iterable, List, Optional

from django.utils import timezone

from ..models import CalendarEvent, Person, PrayerRequest, Task
from .recurrence import expand_events

logger = logging.getLogger(__name__)

REMINDER_TYPES = ('task', 'event', 'birthday', 'anniversary', 'prayer', 'follow-up')
REMINDER_CHANNELS = ('email', 'sms', 'both')
REMINDER_TIMINGS = ('1hour', '1day', '3days', '1week', '2weeks', 'custom')
RECIPIENT_KINDS = ('person', 'staff', 'custom')

TIMING_LABELS = {
    '1hour': '1 hour before',
    '1day': '1 day before',
    '3days': '3 days before',
    '1week': '1 week before',
    '2weeks': '2 weeks before',
    'custom': 'Custom',
}

_TIMING_OFFSETS = {
    '1hour': timedelta(hours=1),
    '1day': timedelta(days=1),
    '3days': timedelta(days=3),
    '1week': timedelta(weeks=1),
    '2weeks': timedelta(weeks=2),
}

PENDING_HORIZON = timedelta(days=30)


class ReminderRuleError(ValueError):
    """Raised when reminder rule data is invalid."""


@dataclass
class ReminderRule:
    id: str
    name: str
    type: str
    channel: str = 'email'
    timing: str = '1day'
    enabled: bool = True
    recipients: str = 'staff'
    custom_days: Optional[int] = None
    custom_recipients: List[str] = field(default_factory=list)
    message_template: str = ''

    @property
    def offset(self) -> timedelta:
        if self.timing == 'custom':
            return timedelta(days=self.custom_days or 0)
        return _TIMING_OFFSETS[self.timing]

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload['timing_label'] = TIMING_LABELS.get(self.timing, self.timing)
        return payload

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ReminderRule':
        """Build a validated rule, raising :class:`ReminderRuleError`."""

        if not isinstance(data, dict):
            raise ReminderRuleError('Reminder rule must be an object.')
        name = str(data.get('name') or '').strip()
        if not name:
            raise ReminderRuleError('Reminder rule name is required.')
        rule_type = data.get('type')
        if rule_type not in REMINDER_TYPES:
            raise ReminderRuleError(f'Unknown reminder type: {rule_type!r}.')
        channel = data.get('channel', 'email')
        if channel not in REMINDER_CHANNELS:
            raise ReminderRuleError(f'Unknown reminder channel: {channel!r}.')
        timing = data.get('timing', '1day')
        if timing not in REMINDER_TIMINGS:
            raise ReminderRuleError(f'Unknown reminder timing: {timing!r}.')
        recipients = data.get('recipients', 'staff')
        if recipients not in RECIPIENT_KINDS:
            raise ReminderRuleError(f'Unknown recipient kind: {recipients!r}.')
        custom_days = data.get('custom_days')
        if timing == 'custom':
            try:
                custom_days = int(custom_days)
            except (TypeError, ValueError):
                raise ReminderRuleError('Custom timing needs a whole number of days.') from None
            if custom_days < 0:
                raise ReminderRuleError('Custom timing needs a whole number of days.')
        else:
            custom_days = None
        custom_recipients = data.get('custom_recipients') or []
        if not isinstance(custom_recipients, list):
            raise ReminderRuleError('custom_recipients must be a list.')
        return cls(
            id=str(data.get('id') or ''),
            name=name,
            type=rule_type,
            channel=channel,
            timing=timing,
            enabled=bool(data.get('enabled', True)),
            recipients=recipients,
            custom_days=custom_days,
            custom_recipients=[str(value) for value in custom_recipients],
            message_template=str(data.get('message_template') or ''),
        )


DEFAULT_REMINDER_RULES: List[Dict[str, Any]] = [
    {
        'id': 'birthday-reminder',
        'name': 'Birthday Reminders',
        'type': 'birthday',
        'channel': 'email',
        'timing': '1week',
        'enabled': True,
        'recipients': 'staff',
        'message_template': (
            "Reminder: {{name}}'s birthday is coming up on {{date}}. "
            "Consider sending a card or personal message!"
        ),
    },
    {
        'id': 'event-reminder',
        'name': 'Event Reminders',
        'type': 'event',
        'channel': 'email',
        'timing': '1day',
        'enabled': True,
        'recipients': 'person',
        'message_template': 'Reminder: {{event}} is tomorrow at {{time}}. We look forward to seeing you!',
    },
    {
        'id': 'task-reminder',
        'name': 'Task Due Reminders',
        'type': 'task',
        'channel': 'email',
        'timing': '1day',
        'enabled': True,
        'recipients': 'staff',
        'message_template': 'Reminder: Task "{{task}}" is due tomorrow. Please complete it or update its status.',
    },
    {
        'id': 'visitor-followup',
        'name': 'New Visitor Follow-up',
        'type': 'follow-up',
        'channel': 'email',
        'timing': '3days',
        'enabled': False,
        'recipients': 'person',
        'message_template': 'Hi {{name}}, it was great meeting you at our service! We hope you felt welcome.',
    },
    {
        'id': 'prayer-update',
        'name': 'Prayer Request Check-in',
        'type': 'prayer',
        'channel': 'email',
        'timing': '1week',
        'enabled': False,
        'recipients': 'person',
        'message_template': 'Hi {{name}}, we wanted to check in on your prayer request. How are things going?',
    },
    {
        'id': 'anniversary-reminder',
        'name': 'Member Anniversary Reminders',
        'type': 'anniversary',
        'channel': 'email',
        'timing': '1week',
        'enabled': False,
        'recipients': 'staff',
        'message_template': (
            '{{name}} will celebrate {{years}} years as a member on {{date}}. '
            'Consider acknowledging this milestone!'
        ),
    },
]


def default_rules() -> List[ReminderRule]:
    return [ReminderRule.from_dict(data) for data in DEFAULT_REMINDER_RULES]


@dataclass
class Reminder:
    """A reminder scheduled for ``scheduled_for`` about ``target_at``."""

    key: str
    rule_id: str
    rule_name: str
    type: str
    channel: str
    scheduled_for: datetime
    target_at: datetime
    recipient_name: str
    subject: str
    message: str
    recipient_email: str = ''
    recipient_phone: str = ''
    person_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload['scheduled_for'] = self.scheduled_for.isoformat()
        payload['target_at'] = self.target_at.isoformat()
        return payload


def render_template(template: str, context: Dict[str, Any]) -> str:
    """Replace ``{{name}}`` style placeholders with values from ``context``."""

    rendered = template
    for name, value in context.items():
        rendered = rendered.replace('{{%s}}' % name, str(value))
    return rendered


def _at_start_of_day(value: date, tz) -> datetime:
    return timezone.make_aware(datetime.combine(value, time.min), tz)


def _next_yearly(anchor: date, today: date) -> date:
    """Next anniversary of ``anchor`` on or after ``today``; Feb 29 falls back to Feb 28."""

    for year in (today.year, today.year + 1):
        try:
            candidate = anchor.replace(year=year)
        except ValueError:
            candidate = date(year, 2, 28)
        if candidate >= today:
            return candidate
    return candidate


def build_reminders(
    rules: Iterable[ReminderRule],
    now: Optional[datetime] = None,
    *,
    people: Iterable[Any] = (),
    tasks: Iterable[Any] = (),
    events: Iterable[Any] = (),
    prayers: Iterable[Any] = (),
) -> List[Reminder]:
    """Produce the reminders implied by the enabled ``rules``.

    Every reminder's target lies in the future relative to ``now``; the
    reminder itself is scheduled ``rule.offset`` before the target.
    """

    now = now or timezone.now()
    tz = timezone.get_current_timezone()
    today = timezone.localtime(now, tz).date()
    people = list(people)
    tasks = list(tasks)
    events = list(events)
    prayers = list(prayers)
    reminders: List[Reminder] = []

    def add(rule: ReminderRule, suffix, target_at: datetime, scheduled_for: Optional[datetime] = None, **values) -> None:
        context = values.pop('context')
        reminders.append(
            Reminder(
                key=f"{rule.id}-{suffix}",
                rule_id=rule.id,
                rule_name=rule.name,
                type=rule.type,
                channel=rule.channel,
                scheduled_for=scheduled_for or target_at - rule.offset,
                target_at=target_at,
                message=render_template(rule.message_template, context),
                **values,
            )
        )

    for rule in rules:
        if not rule.enabled:
            continue
        if rule.type == 'birthday':
            for person in people:
                if not person.birth_date:
                    continue
                birthday = _next_yearly(person.birth_date, today)
                add(
                    rule,
                    f"{person.pk}-{birthday.year}",
                    _at_start_of_day(birthday, tz),
                    recipient_name=person.full_name,
                    recipient_email=person.email,
                    recipient_phone=person.phone,
                    person_id=person.pk,
                    subject=f"Birthday Reminder: {person.full_name}",
                    context={'name': person.full_name, 'date': birthday.strftime('%B %d')},
                )
        elif rule.type == 'anniversary':
            for person in people:
                if not person.join_date:
                    continue
                anniversary = _next_yearly(person.join_date, today)
                years = anniversary.year - person.join_date.year
                if years < 1:
                    continue
                add(
                    rule,
                    f"{person.pk}-{anniversary.year}",
                    _at_start_of_day(anniversary, tz),
                    recipient_name=person.full_name,
                    recipient_email=person.email,
                    recipient_phone=person.phone,
                    person_id=person.pk,
                    subject=f"Membership Anniversary: {person.full_name}",
                    context={'name': person.full_name, 'years': years, 'date': anniversary.strftime('%B %d')},
                )
        elif rule.type == 'event':
            for instance in expand_events(events, now, now + PENDING_HORIZON + rule.offset):
                if instance.start <= now:
                    continue
                local_start = timezone.localtime(instance.start, tz)
                add(
                    rule,
                    instance.id,
                    instance.start,
                    recipient_name='All Attendees',
                    subject=f"Event Reminder: {instance.title}",
                    context={
                        'event': instance.title,
                        'time': local_start.strftime('%I:%M %p').lstrip('0'),
                        'date': local_start.strftime('%B %d'),
                    },
                )
        elif rule.type == 'task':
            for task in tasks:
                if task.completed or not task.due_date:
                    continue
                due_at = _at_start_of_day(task.due_date, tz)
                assignee = getattr(task, 'assigned_to', None)
                add(
                    rule,
                    task.pk,
                    due_at,
                    recipient_name=(assignee.get_full_name() or assignee.username) if assignee else 'Staff',
                    recipient_email=assignee.email if assignee else '',
                    person_id=task.person_id,
                    subject=f"Task Due: {task.title}",
                    context={'task': task.title, 'date': task.due_date.strftime('%B %d')},
                )
        elif rule.type == 'follow-up':
            for person in people:
                if person.status != 'visitor' or not person.first_visit:
                    continue
                # Follow-ups go out ``offset`` after the visit and lapse one offset later.
                send_at = _at_start_of_day(person.first_visit, tz) + rule.offset
                add(
                    rule,
                    person.pk,
                    send_at + rule.offset,
                    scheduled_for=send_at,
                    recipient_name=person.full_name,
                    recipient_email=person.email,
                    recipient_phone=person.phone,
                    person_id=person.pk,
                    subject=f"Welcome Follow-up: {person.full_name}",
                    context={'name': person.first_name},
                )
        elif rule.type == 'prayer':
            for prayer in prayers:
                if prayer.is_answered:
                    continue
                person = prayer.person
                send_at = prayer.created_at + rule.offset
                add(
                    rule,
                    prayer.pk,
                    send_at + rule.offset,
                    scheduled_for=send_at,
                    recipient_name=person.full_name,
                    recipient_email=person.email,
                    recipient_phone=person.phone,
                    person_id=person.pk,
                    subject=f"Prayer Check-in: {person.full_name}",
                    context={'name': person.first_name},
                )

    reminders.sort(key=lambda reminder: (reminder.scheduled_for, reminder.key))
    logger.debug("Built %d reminders from %d people, %d tasks, %d events", len(reminders), len(people), len(tasks), len(events))
    return reminders


def pending_reminders(reminders: Iterable[Reminder], now: Optional[datetime] = None) -> List[Reminder]:
    """Reminders scheduled after ``now`` and within the next 30 days."""

    now = now or timezone.now()
    horizon = now + PENDING_HORIZON
    return [reminder for reminder in reminders if now < reminder.scheduled_for < horizon]


def due_reminders(reminders: Iterable[Reminder], now: Optional[datetime] = None) -> List[Reminder]:
    """Reminders whose send time has arrived while the target is still ahead."""

    now = now or timezone.now()
    return [
        reminder
        for reminder in reminders
        if reminder.scheduled_for <= now < reminder.target_at
    ]


def load_reminders(rules: Iterable[ReminderRule], now: Optional[datetime] = None) -> List[Reminder]:
    """Run :func:`build_reminders` over the congregation data in the database."""

    return build_reminders(
        rules,
        now,
        people=Person.objects.exclude(status=Person.Status.INACTIVE),
        tasks=Task.objects.filter(completed=False).select_related('assigned_to'),
        events=CalendarEvent.objects.all(),
        prayers=PrayerRequest.objects.filter(is_answered=False).select_related('person'),
    )
