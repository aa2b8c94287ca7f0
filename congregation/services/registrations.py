"""Registration of people for calendar event occurrences.

Occurrences of a repeating event are never stored, so a registration keeps
the synthetic occurrence identifier (``<event id>_<index>``) next to a
foreign key to the stored event.  A registration made with the bare event
identifier applies to the whole series and counts against every
occurrence's capacity, so it only fits while the busiest occurrence has
room.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, List, Optional

from django.db import transaction
from django.db.models import Q, QuerySet
from django.utils import timezone

from ..models import CalendarEvent, EventRegistration, Person
from . import notifications
from .recurrence import advance, normalise_rule

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = (EventRegistration.Status.REGISTERED, EventRegistration.Status.WAITLIST)


class RegistrationError(Exception):
    """Raised when a registration cannot be created or changed."""


def series_id_from_occurrence(occurrence_id: str) -> str:
    """Return the event identifier an occurrence identifier belongs to."""

    occurrence_id = str(occurrence_id)
    series, separator, index = occurrence_id.rpartition('_')
    if separator and series and index.isdigit():
        return series
    return occurrence_id


def occurrence_index(occurrence_id: str) -> Optional[int]:
    series, separator, index = str(occurrence_id).rpartition('_')
    if separator and series and index.isdigit():
        return int(index)
    return None


def occurrence_start(event: CalendarEvent, occurrence_id: str) -> Optional[datetime]:
    """Start of the identified occurrence, or ``None`` if it does not exist."""

    if series_id_from_occurrence(occurrence_id) != str(event.pk):
        return None
    index = occurrence_index(occurrence_id)
    if index is None:
        return event.start
    if normalise_rule(event.recurrence) == 'none':
        return event.start if index == 0 else None
    start = advance(event.start, event.recurrence, index)
    if event.recurrence_end and timezone.localtime(start).date() > event.recurrence_end:
        return None
    return start


def is_series_scope(occurrence_id: str) -> bool:
    """True when ``occurrence_id`` names a whole series rather than one date."""

    return occurrence_index(occurrence_id) is None


def registrations_for_occurrence(occurrence_id: str) -> QuerySet:
    """Registrations that overlap ``occurrence_id``.

    For a single occurrence these are its own registrations plus the
    series-wide ones.  For a series every registration of the event overlaps.
    """

    series_id = series_id_from_occurrence(occurrence_id)
    registrations = EventRegistration.objects.filter(event_id=series_id)
    if not is_series_scope(occurrence_id):
        registrations = registrations.filter(Q(occurrence_id=occurrence_id) | Q(occurrence_id=series_id))
    return registrations.select_related('person', 'event')


def occupied_seats(occurrence_id: str) -> int:
    """Registered seats on ``occurrence_id``.

    A series-wide registration takes a seat on every occurrence, so the
    occupancy of a series is its own seats plus those of its busiest
    occurrence.
    """

    series_id = series_id_from_occurrence(occurrence_id)
    registered = registrations_for_occurrence(occurrence_id).filter(
        status=EventRegistration.Status.REGISTERED
    )
    series_seats = 0
    per_occurrence: Dict[str, int] = {}
    for registration in registered:
        if registration.occurrence_id == series_id:
            series_seats += registration.seats
        else:
            per_occurrence[registration.occurrence_id] = (
                per_occurrence.get(registration.occurrence_id, 0) + registration.seats
            )
    return series_seats + max(per_occurrence.values(), default=0)


def remaining_capacity(event: CalendarEvent, occurrence_id: str) -> Optional[int]:
    """Seats left for the occurrence; ``None`` when capacity is unlimited."""

    if not event.capacity:
        return None
    return max(event.capacity - occupied_seats(occurrence_id), 0)


def register_person(
    event: CalendarEvent,
    occurrence_id: str,
    person: Person,
    guest_count: int = 0,
    notes: str = '',
    now: Optional[datetime] = None,
) -> EventRegistration:
    """Register ``person`` (and guests) for an occurrence of ``event``.

    The registration is waitlisted when the event has a capacity and the
    requested seats do not fit.
    """

    now = now or timezone.now()
    if not event.requires_registration:
        raise RegistrationError('This event does not take registrations.')
    if guest_count < 0:
        raise RegistrationError('Guest count cannot be negative.')
    start = occurrence_start(event, occurrence_id)
    if start is None:
        raise RegistrationError('Unknown occurrence for this event.')
    if event.registration_deadline and timezone.localtime(now).date() > event.registration_deadline:
        raise RegistrationError('Registration for this event has closed.')

    with transaction.atomic():
        event = CalendarEvent.objects.select_for_update().get(pk=event.pk)
        existing = registrations_for_occurrence(occurrence_id).filter(
            person=person, status__in=ACTIVE_STATUSES
        )
        if existing.exists():
            raise RegistrationError(f'{person.full_name} is already registered.')

        seats = 1 + guest_count
        remaining = remaining_capacity(event, occurrence_id)
        status = EventRegistration.Status.REGISTERED
        if remaining is not None and seats > remaining:
            status = EventRegistration.Status.WAITLIST

        registration = EventRegistration.objects.create(
            event=event,
            occurrence_id=str(occurrence_id),
            person=person,
            status=status,
            guest_count=guest_count,
            notes=notes,
            registered_at=now,
        )

    logger.info(
        "Registration %s for %s: person=%s seats=%d status=%s",
        registration.pk,
        occurrence_id,
        person.pk,
        seats,
        status,
    )
    notifications.notify_registration(registration)
    return registration


def cancel_registration(registration: EventRegistration) -> List[EventRegistration]:
    """Cancel ``registration`` and promote waitlisted people who now fit.

    Waitlisted registrations overlapping the cancelled one are considered
    oldest first; each one that now fits its own occurrence, or every
    occurrence for a series-wide registration, is promoted.  Returns the
    promoted registrations.
    """

    if registration.status == EventRegistration.Status.CANCELLED:
        raise RegistrationError('Registration is already cancelled.')

    was_registered = registration.status == EventRegistration.Status.REGISTERED
    promoted: List[EventRegistration] = []
    with transaction.atomic():
        event = CalendarEvent.objects.select_for_update().get(pk=registration.event_id)
        registration.status = EventRegistration.Status.CANCELLED
        registration.save(update_fields=['status'])

        if was_registered and event.capacity:
            waitlist = registrations_for_occurrence(registration.occurrence_id).filter(
                status=EventRegistration.Status.WAITLIST
            ).order_by('registered_at', 'pk')
            for candidate in waitlist:
                # Seats are counted against the candidate's own scope.
                if candidate.seats > (remaining_capacity(event, candidate.occurrence_id) or 0):
                    continue
                candidate.status = EventRegistration.Status.REGISTERED
                candidate.save(update_fields=['status'])
                promoted.append(candidate)

    logger.info(
        "Registration %s cancelled; %d promoted from waitlist",
        registration.pk,
        len(promoted),
    )
    for candidate in promoted:
        notifications.notify_waitlist_promoted(candidate)
    return promoted


def registration_summary(event: CalendarEvent, occurrence_id: str) -> dict:
    registrations = list(registrations_for_occurrence(occurrence_id))
    registered = [r for r in registrations if r.status == EventRegistration.Status.REGISTERED]
    waitlisted = [r for r in registrations if r.status == EventRegistration.Status.WAITLIST]
    taken = occupied_seats(occurrence_id)
    return {
        'occurrence_id': str(occurrence_id),
        'capacity': event.capacity,
        'registered_seats': taken,
        'remaining': max(event.capacity - taken, 0) if event.capacity else None,
        'is_full': bool(event.capacity) and taken >= event.capacity,
        'registered': len(registered),
        'waitlisted': len(waitlisted),
    }
