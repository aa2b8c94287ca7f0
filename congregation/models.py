"""Data models for the Grace CRM application.

This module defines the database schema using Django's ORM.  People are
the centre of the schema: giving, attendance, tasks, prayer requests and
pastoral interactions all hang off a ``Person``.  Calendar events are
stored once per series; repeating occurrences are derived on demand by
``congregation.services.recurrence`` and never persisted.  Registrations
reference a concrete occurrence through its synthetic identifier so they
can always be reconciled back to the series.
"""

from __future__ import annotations

from django.contrib.auth.models import User
from django.db import models
from django.utils import timezone


class RecurrenceChoices(models.TextChoices):
    NONE = 'none', 'Does not repeat'
    DAILY = 'daily', 'Daily'
    WEEKLY = 'weekly', 'Weekly'
    BIWEEKLY = 'biweekly', 'Every 2 weeks'
    MONTHLY = 'monthly', 'Monthly'
    QUARTERLY = 'quarterly', 'Quarterly'


class Person(models.Model):
    """Represents an individual known to the congregation."""

    class Status(models.TextChoices):
        VISITOR = 'visitor', 'Visitor'
        REGULAR = 'regular', 'Regular'
        MEMBER = 'member', 'Member'
        LEADER = 'leader', 'Leader'
        INACTIVE = 'inactive', 'Inactive'

    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=32, blank=True)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.VISITOR)
    address = models.CharField(max_length=255, blank=True)
    city = models.CharField(max_length=100, blank=True)
    state = models.CharField(max_length=64, blank=True)
    zip_code = models.CharField(max_length=16, blank=True)
    birth_date = models.DateField(null=True, blank=True)
    join_date = models.DateField(null=True, blank=True)
    first_visit = models.DateField(null=True, blank=True)
    notes = models.TextField(blank=True)
    tags = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['last_name', 'first_name']

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def added_on(self):
        """Date the person first appeared: first visit, else join date."""

        return self.first_visit or self.join_date

    def __str__(self) -> str:  # pragma: no cover
        return self.full_name


class SmallGroup(models.Model):
    """A small group (home group, Bible study, ministry team)."""

    name = models.CharField(max_length=150)
    description = models.TextField(blank=True)
    leader = models.ForeignKey(
        Person,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='led_groups',
    )
    meeting_day = models.CharField(max_length=16, blank=True)
    meeting_time = models.CharField(max_length=16, blank=True)
    location = models.CharField(max_length=255, blank=True)
    members = models.ManyToManyField(Person, related_name='small_groups', blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['name']

    def __str__(self) -> str:  # pragma: no cover
        return self.name


class Giving(models.Model):
    """A single contribution."""

    class Fund(models.TextChoices):
        TITHE = 'tithe', 'Tithe'
        OFFERING = 'offering', 'Offering'
        MISSIONS = 'missions', 'Missions'
        BUILDING = 'building', 'Building'
        BENEVOLENCE = 'benevolence', 'Benevolence'
        OTHER = 'other', 'Other'

    class Method(models.TextChoices):
        CASH = 'cash', 'Cash'
        CHECK = 'check', 'Check'
        CARD = 'card', 'Card'
        ONLINE = 'online', 'Online'
        BANK = 'bank', 'Bank Transfer'

    person = models.ForeignKey(
        Person,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='gifts',
    )
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    fund = models.CharField(max_length=16, choices=Fund.choices, default=Fund.TITHE)
    date = models.DateField()
    method = models.CharField(max_length=16, choices=Method.choices, default=Method.CASH)
    is_recurring = models.BooleanField(default=False)
    note = models.TextField(blank=True)

    class Meta:
        ordering = ['-date']

    def __str__(self) -> str:  # pragma: no cover
        return f"Giving<{self.amount} {self.fund} {self.date:%Y-%m-%d}>"


class Task(models.Model):
    """A follow-up, care or admin task, optionally repeating."""

    class Priority(models.TextChoices):
        LOW = 'low', 'Low'
        MEDIUM = 'medium', 'Medium'
        HIGH = 'high', 'High'

    class Category(models.TextChoices):
        FOLLOW_UP = 'follow-up', 'Follow-Up'
        CARE = 'care', 'Care'
        ADMIN = 'admin', 'Admin'
        OUTREACH = 'outreach', 'Outreach'

    person = models.ForeignKey(
        Person,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='tasks',
    )
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    due_date = models.DateField()
    completed = models.BooleanField(default=False)
    completed_at = models.DateTimeField(null=True, blank=True)
    priority = models.CharField(max_length=8, choices=Priority.choices, default=Priority.MEDIUM)
    category = models.CharField(max_length=16, choices=Category.choices, default=Category.FOLLOW_UP)
    assigned_to = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='assigned_tasks',
    )
    created_at = models.DateTimeField(default=timezone.now)
    recurrence = models.CharField(
        max_length=16,
        choices=RecurrenceChoices.choices,
        default=RecurrenceChoices.NONE,
    )
    # Recurring tasks spawn a fresh row when completed; every spawned row
    # points back at the first task of the chain.
    original_task = models.ForeignKey(
        'self',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='recurrences',
    )

    class Meta:
        ordering = ['due_date', 'pk']

    def __str__(self) -> str:  # pragma: no cover
        return self.title


class Attendance(models.Model):
    """A check-in record for a service or gathering."""

    class EventType(models.TextChoices):
        SUNDAY = 'sunday', 'Sunday Service'
        WEDNESDAY = 'wednesday', 'Wednesday Service'
        SMALL_GROUP = 'small-group', 'Small Group'
        SPECIAL = 'special', 'Special Event'

    person = models.ForeignKey(Person, on_delete=models.CASCADE, related_name='attendance')
    event_type = models.CharField(max_length=16, choices=EventType.choices, default=EventType.SUNDAY)
    event_name = models.CharField(max_length=255, blank=True)
    date = models.DateField()
    checked_in_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['-checked_in_at']

    def __str__(self) -> str:  # pragma: no cover
        return f"Attendance<{self.person_id} {self.event_type} {self.date:%Y-%m-%d}>"


class Interaction(models.Model):
    """Pastoral touchpoint with a person.

    ``sent_via`` distinguishes messages that were actually delivered through a
    provider from touchpoints that were merely logged by staff.
    """

    class Type(models.TextChoices):
        NOTE = 'note', 'Note'
        CALL = 'call', 'Call'
        EMAIL = 'email', 'Email'
        VISIT = 'visit', 'Visit'
        TEXT = 'text', 'Text'
        PRAYER = 'prayer', 'Prayer'

    person = models.ForeignKey(Person, on_delete=models.CASCADE, related_name='interactions')
    type = models.CharField(max_length=16, choices=Type.choices, default=Type.NOTE)
    content = models.TextField(blank=True)
    created_at = models.DateTimeField(default=timezone.now)
    created_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='interactions',
    )
    sent_via = models.CharField(max_length=16, blank=True)
    message_id = models.CharField(max_length=64, blank=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self) -> str:  # pragma: no cover
        return f"Interaction<{self.type} {self.person_id}>"


class PrayerRequest(models.Model):
    person = models.ForeignKey(Person, on_delete=models.CASCADE, related_name='prayer_requests')
    content = models.TextField()
    is_private = models.BooleanField(default=False)
    is_answered = models.BooleanField(default=False)
    testimony = models.TextField(blank=True)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self) -> str:  # pragma: no cover
        return f"PrayerRequest<{self.person_id}>"


class CalendarEvent(models.Model):
    """Stored definition of a possibly repeating calendar event.

    A repeating event is a single row; concrete occurrences are generated
    inside a query window by ``expand_event`` and carry this row's primary
    key as their series identifier.
    """

    class Category(models.TextChoices):
        SERVICE = 'service', 'Service'
        MEETING = 'meeting', 'Meeting'
        EVENT = 'event', 'Event'
        SMALL_GROUP = 'small-group', 'Small Group'
        HOLIDAY = 'holiday', 'Holiday'
        OTHER = 'other', 'Other'

    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    start = models.DateTimeField()
    end = models.DateTimeField(null=True, blank=True)
    all_day = models.BooleanField(default=False)
    location = models.CharField(max_length=255, blank=True)
    category = models.CharField(max_length=16, choices=Category.choices, default=Category.EVENT)
    recurrence = models.CharField(
        max_length=16,
        choices=RecurrenceChoices.choices,
        default=RecurrenceChoices.NONE,
    )
    recurrence_end = models.DateField(null=True, blank=True)
    capacity = models.PositiveIntegerField(null=True, blank=True)
    registration_deadline = models.DateField(null=True, blank=True)
    requires_registration = models.BooleanField(default=False)
    is_private = models.BooleanField(default=False)
    created_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='calendar_events_created',
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['start']

    def __str__(self) -> str:  # pragma: no cover
        return f"Event<{self.title} {self.start:%Y-%m-%d}>"


class EventRegistration(models.Model):
    """Registration of a person for one occurrence (or a whole series)."""

    class Status(models.TextChoices):
        REGISTERED = 'registered', 'Registered'
        WAITLIST = 'waitlist', 'Waitlist'
        CANCELLED = 'cancelled', 'Cancelled'

    event = models.ForeignKey(CalendarEvent, on_delete=models.CASCADE, related_name='registrations')
    # Synthetic occurrence identifier (``<event id>_<index>``) or the bare
    # event id when registering for a non-repeating event or a whole series.
    occurrence_id = models.CharField(max_length=64)
    person = models.ForeignKey(Person, on_delete=models.CASCADE, related_name='registrations')
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.REGISTERED)
    guest_count = models.PositiveIntegerField(default=0)
    notes = models.TextField(blank=True)
    registered_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['registered_at', 'pk']
        indexes = [
            models.Index(fields=['event', 'occurrence_id'], name='registration_occurrence_idx'),
        ]

    @property
    def seats(self) -> int:
        return 1 + self.guest_count

    def __str__(self) -> str:  # pragma: no cover
        return f"Registration<{self.occurrence_id} {self.person_id} {self.status}>"


class Preference(models.Model):
    """Key/value persistence backing the preference store.

    ``scope`` is either ``global`` or ``user:<id>`` so that settings shared
    by the whole staff and per-user view preferences live side by side.
    """

    scope = models.CharField(max_length=64, default='global')
    key = models.CharField(max_length=150)
    value = models.JSONField(default=dict, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = ('scope', 'key')

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.scope}:{self.key}"


class SentReminder(models.Model):
    """Records reminders that were dispatched so each is sent only once."""

    reminder_key = models.CharField(max_length=150, unique=True)
    channel = models.CharField(max_length=16)
    status = models.CharField(max_length=16)
    detail = models.TextField(blank=True)
    sent_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['-sent_at']

    def __str__(self) -> str:  # pragma: no cover
        return f"SentReminder<{self.reminder_key} {self.status}>"


class Notification(models.Model):
    """Stores staff facing notifications triggered by application events."""

    class EventType(models.TextChoices):
        EVENT_REMINDER = 'event_reminder', 'Event Reminder'
        REMINDER = 'reminder', 'Reminder'
        REGISTRATION = 'registration', 'New Registration'
        WAITLIST_PROMOTED = 'waitlist_promoted', 'Waitlist Promoted'

    recipient = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='notifications',
    )
    message = models.TextField()
    event_type = models.CharField(max_length=50, choices=EventType.choices)
    is_read = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    metadata = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self) -> str:  # pragma: no cover
        return f"Notification<{self.recipient.username} {self.event_type}>"


class ActivityLog(models.Model):
    """Tracks staff actions within the application.

    Each log entry records the user who performed the action, a short
    description of the action, optional details and the timestamp.
    """

    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='activity_logs')
    action = models.CharField(max_length=255)
    details = models.TextField(blank=True, null=True)
    timestamp = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-timestamp']

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.timestamp:%Y-%m-%d %H:%M:%S} - {self.user}: {self.action}"
