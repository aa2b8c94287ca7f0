"""Utility helpers for creating and dispatching staff notifications."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Sequence

from django.contrib.auth.models import User

from congregation.models import EventRegistration, Notification


def _format_datetime(dt) -> str:
    return dt.strftime('%Y-%m-%d %H:%M')


def create_notification(
    recipient: User,
    *,
    message: str,
    event_type: str,
    extra_metadata: Dict[str, Any] | None = None,
) -> Notification:
    """Create a notification for ``recipient``."""

    return Notification.objects.create(
        recipient=recipient,
        message=message,
        event_type=event_type,
        metadata=dict(extra_metadata or {}),
    )


def staff_recipients() -> List[User]:
    """Active staff accounts that receive congregation-wide notices."""

    return list(User.objects.filter(is_active=True, is_staff=True).order_by('pk'))


def _registration_context(registration: EventRegistration) -> Dict[str, Any]:
    return {
        'event_id': registration.event_id,
        'occurrence_id': registration.occurrence_id,
        'registration_id': registration.pk,
        'person_id': registration.person_id,
    }


def notify_registration(registration: EventRegistration) -> Notification | None:
    """Tell the event's creator that someone registered or joined the waitlist."""

    event = registration.event
    if event.created_by is None:
        return None
    person = registration.person
    verb = (
        'joined the waitlist for'
        if registration.status == EventRegistration.Status.WAITLIST
        else 'registered for'
    )
    guests = f" (+{registration.guest_count} guests)" if registration.guest_count else ''
    return create_notification(
        event.created_by,
        message=f'{person.full_name} {verb} "{event.title}"{guests}.',
        event_type=Notification.EventType.REGISTRATION,
        extra_metadata=_registration_context(registration),
    )


def notify_waitlist_promoted(registration: EventRegistration) -> Notification | None:
    """Tell the event's creator that a waitlisted registration got a seat."""

    event = registration.event
    if event.created_by is None:
        return None
    return create_notification(
        event.created_by,
        message=f'{registration.person.full_name} moved from the waitlist into "{event.title}".',
        event_type=Notification.EventType.WAITLIST_PROMOTED,
        extra_metadata=_registration_context(registration),
    )


def notify_reminder(
    recipients: Sequence[User],
    *,
    message: str,
    reminder_key: str,
    reminder_type: str,
    scheduled_for=None,
) -> List[Notification]:
    """Deliver a reminder message to each recipient as an in-app notice."""

    created: List[Notification] = []
    metadata: Dict[str, Any] = {'reminder_key': reminder_key, 'reminder_type': reminder_type}
    if scheduled_for is not None:
        metadata['scheduled_for'] = _format_datetime(scheduled_for)
    event_type = (
        Notification.EventType.EVENT_REMINDER
        if reminder_type == 'event'
        else Notification.EventType.REMINDER
    )
    for recipient in recipients:
        created.append(
            create_notification(
                recipient,
                message=message,
                event_type=event_type,
                extra_metadata=metadata,
            )
        )
    return created


def mark_notifications_read(recipient: User, notification_ids: Iterable[int] | None = None) -> int:
    """Mark notifications as read for the recipient."""

    qs = Notification.objects.filter(recipient=recipient, is_read=False)
    if notification_ids is not None:
        ids = list(notification_ids)
        if not ids:
            return 0
        qs = qs.filter(pk__in=ids)
    updated = qs.update(is_read=True)
    return int(updated)
