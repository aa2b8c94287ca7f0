"""JSON endpoints for the Grace CRM front end.

Every view here answers with JSON (the calendar feed answers with
``text/calendar``).  Payloads are parsed with :func:`_load_json_body` and
validated through the forms in :mod:`congregation.forms`; service level
exceptions are turned into ``{'ok': False, 'message': ...}`` or
``{'error': ...}`` responses with a 4xx/5xx status.  The dashboard and
giving reports live in :mod:`congregation.views_analytics`.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from dateutil.relativedelta import relativedelta
from django.conf import settings
from django.contrib.auth.decorators import login_required
from django.contrib.auth.models import User
from django.db import transaction
from django.db.models import Q
from django.forms.models import model_to_dict
from django.http import Http404, HttpRequest, HttpResponse, JsonResponse
from django.shortcuts import get_object_or_404
from django.utils import timezone
from django.views.decorators.http import require_http_methods, require_POST

from .forms import AttendanceForm, CalendarEventForm, PeopleImportForm, PersonForm, RegistrationForm, TaskForm
from .models import ActivityLog, Attendance, CalendarEvent, EventRegistration, Interaction, Notification, Person, Task
from .services.aggregation import count_by
from .services.analytics import build_donor_stats
from .services.calendar_feed import build_ical
from .services.notifications import mark_notifications_read
from .services.people_import import (
    PERSON_FIELDS,
    PeopleImportError,
    guess_mappings,
    import_people,
    preview_people,
    read_table,
    validate_mappings,
)
from .services.preferences import (
    ModelPreferenceStore,
    ReminderRuleRepository,
    SavedFilterRepository,
    ViewPreferences,
)
from .services.recurrence import advance, expand_events, normalise_rule
from .services.registrations import (
    RegistrationError,
    cancel_registration,
    register_person,
    registration_summary,
    registrations_for_occurrence,
    series_id_from_occurrence,
)
from .services.reminders import ReminderRuleError, load_reminders, pending_reminders
from .services.sms import SmsError, SmsNotConfiguredError, TwilioClient
from .services.windows import Period, filter_by_period

logger = logging.getLogger(__name__)

DEFAULT_CALENDAR_MONTHS = 3


def log_activity(user: User, action: str, details: str = '') -> None:
    """Create a log entry recording the specified action.

    Args:
        user: The user who performed the action.  May be None if the
            action occurred anonymously.
        action: A short description of the action (e.g., "Created event").
        details: Optional additional information about the action.
    """
    try:
        ActivityLog.objects.create(user=user, action=action, details=details)
    except Exception:
        # Auditing must never break the request that triggered it.
        logger.exception("Could not record activity %r for %s", action, user)


def _load_json_body(request: HttpRequest) -> Dict[str, Any] | None:
    try:
        payload = json.loads(request.body.decode('utf-8') or '{}')
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    return payload if isinstance(payload, dict) else None


def _invalid_payload() -> JsonResponse:
    return JsonResponse({'ok': False, 'message': 'Invalid payload.'}, status=400)


def _form_errors(form) -> JsonResponse:
    errors = {field: [str(message) for message in messages] for field, messages in form.errors.items()}
    return JsonResponse({'ok': False, 'message': 'Please correct the highlighted fields.', 'errors': errors}, status=400)


def _parse_iso_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed)
    return parsed


def _isoformat(value) -> Optional[str]:
    return value.isoformat() if value else None


def _user_label(user: User | None) -> Optional[str]:
    if user is None:
        return None
    return user.get_full_name() or user.username


# ---------------------------------------------------------------------------
# People
# ---------------------------------------------------------------------------


def _serialise_person(person: Person) -> Dict[str, Any]:
    return {
        'id': person.pk,
        'first_name': person.first_name,
        'last_name': person.last_name,
        'name': person.full_name,
        'email': person.email,
        'phone': person.phone,
        'status': person.status,
        'address': person.address,
        'city': person.city,
        'state': person.state,
        'zip_code': person.zip_code,
        'birth_date': _isoformat(person.birth_date),
        'join_date': _isoformat(person.join_date),
        'first_visit': _isoformat(person.first_visit),
        'notes': person.notes,
        'tags': person.tags,
    }


@login_required
@require_http_methods(["GET", "POST"])
def people(request: HttpRequest) -> JsonResponse:
    if request.method == 'GET':
        qs = Person.objects.all()
        status = request.GET.get('status')
        if status:
            qs = qs.filter(status=status)
        query = (request.GET.get('q') or '').strip()
        if query:
            qs = qs.filter(
                Q(first_name__icontains=query)
                | Q(last_name__icontains=query)
                | Q(email__icontains=query)
                | Q(phone__icontains=query)
            )
        records = list(qs)
        tag = (request.GET.get('tag') or '').strip()
        if tag:
            records = [person for person in records if tag in (person.tags or [])]
        if request.GET.get('period'):
            records = filter_by_period(records, Period.parse(request.GET['period']), 'added_on')
        return JsonResponse({'people': [_serialise_person(person) for person in records], 'count': len(records)})

    payload = _load_json_body(request)
    if payload is None:
        return _invalid_payload()
    form = PersonForm(payload)
    if not form.is_valid():
        return _form_errors(form)
    person = form.save()
    log_activity(request.user, 'Created person', f'Person {person.pk}: {person.full_name}')
    return JsonResponse({'ok': True, 'person': _serialise_person(person)}, status=201)


@login_required
@require_http_methods(["GET"])
def person_detail(request: HttpRequest, person_id: int) -> JsonResponse:
    person = get_object_or_404(Person, pk=person_id)
    interactions = [
        {
            'id': item.pk,
            'type': item.type,
            'content': item.content,
            'created_at': item.created_at.isoformat(),
            'created_by': _user_label(item.created_by),
            'sent_via': item.sent_via,
        }
        for item in person.interactions.select_related('created_by')[:20]
    ]
    return JsonResponse(
        {
            'person': _serialise_person(person),
            'giving': build_donor_stats(person),
            'interactions': interactions,
            'small_groups': list(person.small_groups.values_list('name', flat=True)),
        }
    )


def _serialise_attendance(record: Attendance) -> Dict[str, Any]:
    return {
        'id': record.pk,
        'person': {'id': record.person_id, 'name': record.person.full_name},
        'event_type': record.event_type,
        'event_name': record.event_name,
        'date': record.date.isoformat(),
        'checked_in_at': record.checked_in_at.isoformat(),
    }


@login_required
@require_http_methods(["GET", "POST"])
def attendance(request: HttpRequest) -> JsonResponse:
    """List check-ins for a period or record a new one."""

    if request.method == 'GET':
        qs = Attendance.objects.select_related('person')
        event_type = request.GET.get('event_type')
        if event_type:
            qs = qs.filter(event_type=event_type)
        person_id = request.GET.get('person')
        if person_id and person_id.isdigit():
            qs = qs.filter(person_id=int(person_id))
        records = filter_by_period(qs, Period.parse(request.GET.get('period'), default=Period.ALL_TIME), 'date')
        by_service = count_by(records, 'event_type', seed=[key for key, _ in Attendance.EventType.choices])
        by_service.labels = {key: str(label) for key, label in Attendance.EventType.choices}
        return JsonResponse(
            {
                'attendance': [_serialise_attendance(record) for record in records],
                'count': len(records),
                'by_service': by_service.to_dict(),
            }
        )

    payload = _load_json_body(request)
    if payload is None:
        return _invalid_payload()
    form = AttendanceForm(payload)
    if not form.is_valid():
        return _form_errors(form)
    record = form.cleaned_data
    if Attendance.objects.filter(
        person=record['person'], event_type=record['event_type'], date=record['date']
    ).exists():
        return JsonResponse({'ok': False, 'message': 'This person is already checked in.'}, status=400)
    checkin = form.save()
    log_activity(request.user, 'Recorded attendance', f'Person {checkin.person_id} on {checkin.date:%Y-%m-%d}')
    return JsonResponse({'ok': True, 'attendance': _serialise_attendance(checkin)}, status=201)


def _read_import_upload(request: HttpRequest):
    """Shared validation for the two import steps.

    Returns ``(frame, mappings, None)`` or ``(None, None, error_response)``.
    """

    raw_mappings = request.POST.get('mappings')
    data = {'mappings': raw_mappings} if raw_mappings else {}
    form = PeopleImportForm(data, request.FILES)
    if not form.is_valid():
        return None, None, _form_errors(form)
    upload = form.cleaned_data['file']
    try:
        frame = read_table(upload, upload.name)
    except PeopleImportError as exc:
        return None, None, JsonResponse({'ok': False, 'message': str(exc)}, status=400)
    mappings = form.cleaned_data.get('mappings') or guess_mappings(frame.columns)
    return frame, mappings, None


@login_required
@require_POST
def people_import_preview(request: HttpRequest) -> JsonResponse:
    frame, mappings, error = _read_import_upload(request)
    if error is not None:
        return error
    return JsonResponse(
        {
            'ok': True,
            'columns': list(frame.columns),
            'row_count': len(frame.index),
            'mappings': mappings,
            'fields': [{'value': value, 'label': label} for value, label in PERSON_FIELDS],
            'mapping_errors': validate_mappings(mappings),
            'preview': preview_people(frame, mappings),
        }
    )


@login_required
@require_POST
def people_import(request: HttpRequest) -> JsonResponse:
    frame, mappings, error = _read_import_upload(request)
    if error is not None:
        return error
    try:
        result = import_people(frame, mappings)
    except PeopleImportError as exc:
        return JsonResponse({'ok': False, 'message': str(exc)}, status=400)
    log_activity(request.user, 'Imported people', f'{result.created} created, {len(result.errors)} rows skipped')
    return JsonResponse({'ok': True, 'created': result.created, 'errors': result.errors})


# ---------------------------------------------------------------------------
# Calendar
# ---------------------------------------------------------------------------


def _visible_events(user: User):
    return CalendarEvent.objects.filter(Q(is_private=False) | Q(created_by=user)).select_related('created_by')


def _serialise_calendar_event(event: CalendarEvent, viewer: User) -> Dict[str, Any]:
    return {
        'id': str(event.pk),
        'title': event.title,
        'description': event.description,
        'start': event.start.isoformat(),
        'end': _isoformat(event.end),
        'all_day': event.all_day,
        'location': event.location,
        'category': event.category,
        'recurrence': event.recurrence,
        'recurrence_end': _isoformat(event.recurrence_end),
        'capacity': event.capacity,
        'registration_deadline': _isoformat(event.registration_deadline),
        'requires_registration': event.requires_registration,
        'is_private': event.is_private,
        'creator': {'id': event.created_by_id, 'name': _user_label(event.created_by)},
        'can_edit': event.created_by_id in (None, viewer.pk) or viewer.is_staff,
    }


def _serialise_instance(instance, viewer: User) -> Dict[str, Any]:
    data = _serialise_calendar_event(instance.template, viewer)
    data.update(
        {
            'id': instance.id,
            'series_id': instance.series_id,
            'occurrence_index': instance.occurrence_index,
            'start': instance.start.isoformat(),
            'end': _isoformat(instance.end),
            'is_recurring': instance.is_recurring,
        }
    )
    return data


def _window_bounds(request: HttpRequest):
    start = _parse_iso_datetime(request.GET.get('start')) or timezone.now()
    end = _parse_iso_datetime(request.GET.get('end')) or start + relativedelta(months=DEFAULT_CALENDAR_MONTHS)
    return start, end


@login_required
@require_http_methods(["GET", "POST"])
def calendar_events(request: HttpRequest) -> JsonResponse:
    if request.method == 'GET':
        start, end = _window_bounds(request)
        if end < start:
            return JsonResponse({'ok': False, 'message': 'The window end must not be before its start.'}, status=400)
        templates = _visible_events(request.user).filter(start__lte=end).exclude(
            Q(recurrence='none') & Q(start__lt=start)
        ).exclude(recurrence_end__lt=timezone.localdate(start))
        category = request.GET.get('category')
        if category:
            templates = templates.filter(category=category)
        query = (request.GET.get('q') or '').strip()
        if query:
            templates = templates.filter(
                Q(title__icontains=query) | Q(description__icontains=query) | Q(location__icontains=query)
            )
        instances = expand_events(templates, start, end)
        return JsonResponse(
            {
                'events': [_serialise_instance(instance, request.user) for instance in instances],
                'start': start.isoformat(),
                'end': end.isoformat(),
            }
        )

    payload = _load_json_body(request)
    if payload is None:
        return _invalid_payload()
    form = CalendarEventForm(payload)
    if not form.is_valid():
        return _form_errors(form)
    event = form.save(commit=False)
    event.created_by = request.user
    event.save()
    log_activity(request.user, 'Created calendar event', f'Event {event.pk}: {event.title}')
    return JsonResponse({'ok': True, 'event': _serialise_calendar_event(event, request.user)}, status=201)


@login_required
@require_http_methods(["GET", "PUT", "PATCH", "DELETE"])
def calendar_event_detail(request: HttpRequest, event_id: int) -> JsonResponse:
    event = get_object_or_404(_visible_events(request.user), pk=event_id)
    if request.method == 'GET':
        return JsonResponse({'event': _serialise_calendar_event(event, request.user)})

    if event.created_by_id not in (None, request.user.pk) and not request.user.is_staff:
        return JsonResponse({'ok': False, 'message': 'Only the event owner can change this item.'}, status=403)

    if request.method == 'DELETE':
        event.delete()
        log_activity(request.user, 'Deleted calendar event', f'Event {event_id}')
        return JsonResponse({'ok': True})

    payload = _load_json_body(request)
    if payload is None:
        return _invalid_payload()
    data = payload
    if request.method == 'PATCH':
        data = model_to_dict(event, fields=CalendarEventForm.Meta.fields)
        data.update(payload)
    form = CalendarEventForm(data, instance=event)
    if not form.is_valid():
        return _form_errors(form)
    event = form.save()
    log_activity(request.user, 'Updated calendar event', f'Event {event.pk}')
    return JsonResponse({'ok': True, 'event': _serialise_calendar_event(event, request.user)})


@require_http_methods(["GET"])
def calendar_ical(request: HttpRequest) -> HttpResponse:
    """Public subscription feed of the non-private calendar."""

    events = CalendarEvent.objects.filter(is_private=False).order_by('start')
    body = build_ical(events, settings.CHURCH_NAME, settings.CALENDAR_FEED_DOMAIN)
    response = HttpResponse(body, content_type='text/calendar; charset=utf-8')
    response['Content-Disposition'] = 'attachment; filename="calendar.ics"'
    return response


# ---------------------------------------------------------------------------
# Registrations
# ---------------------------------------------------------------------------


def _serialise_registration(registration: EventRegistration) -> Dict[str, Any]:
    return {
        'id': registration.pk,
        'event_id': str(registration.event_id),
        'occurrence_id': registration.occurrence_id,
        'person': {'id': registration.person_id, 'name': registration.person.full_name},
        'status': registration.status,
        'guest_count': registration.guest_count,
        'seats': registration.seats,
        'notes': registration.notes,
        'registered_at': registration.registered_at.isoformat(),
    }


@login_required
@require_http_methods(["GET", "POST"])
def occurrence_registrations(request: HttpRequest, occurrence_id: str) -> JsonResponse:
    series_id = series_id_from_occurrence(occurrence_id)
    if not series_id.isdigit():
        raise Http404('Unknown occurrence.')
    event = get_object_or_404(_visible_events(request.user), pk=int(series_id))

    if request.method == 'GET':
        registrations = registrations_for_occurrence(occurrence_id).exclude(
            status=EventRegistration.Status.CANCELLED
        )
        return JsonResponse(
            {
                'summary': registration_summary(event, occurrence_id),
                'registrations': [_serialise_registration(item) for item in registrations],
            }
        )

    payload = _load_json_body(request)
    if payload is None:
        return _invalid_payload()
    form = RegistrationForm(payload)
    if not form.is_valid():
        return _form_errors(form)
    try:
        registration = register_person(
            event,
            occurrence_id,
            form.cleaned_data['person'],
            guest_count=form.cleaned_data['guest_count'],
            notes=form.cleaned_data.get('notes') or '',
        )
    except RegistrationError as exc:
        return JsonResponse({'ok': False, 'message': str(exc)}, status=400)
    log_activity(
        request.user,
        'Registered for event',
        f'Registration {registration.pk}: person {registration.person_id} for {occurrence_id} ({registration.status})',
    )
    return JsonResponse(
        {
            'ok': True,
            'registration': _serialise_registration(registration),
            'summary': registration_summary(event, occurrence_id),
        },
        status=201,
    )


@login_required
@require_POST
def registration_cancel(request: HttpRequest, registration_id: int) -> JsonResponse:
    registration = get_object_or_404(EventRegistration.objects.select_related('person', 'event'), pk=registration_id)
    try:
        promoted = cancel_registration(registration)
    except RegistrationError as exc:
        return JsonResponse({'ok': False, 'message': str(exc)}, status=400)
    log_activity(request.user, 'Cancelled registration', f'Registration {registration.pk}')
    return JsonResponse(
        {
            'ok': True,
            'registration': _serialise_registration(registration),
            'promoted': [_serialise_registration(item) for item in promoted],
        }
    )


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


def _serialise_task(task: Task) -> Dict[str, Any]:
    return {
        'id': task.pk,
        'title': task.title,
        'description': task.description,
        'person_id': task.person_id,
        'due_date': task.due_date.isoformat(),
        'completed': task.completed,
        'completed_at': _isoformat(task.completed_at),
        'priority': task.priority,
        'category': task.category,
        'assigned_to': task.assigned_to_id,
        'recurrence': task.recurrence,
        'original_task_id': task.original_task_id,
    }


@login_required
@require_http_methods(["GET", "POST"])
def tasks(request: HttpRequest) -> JsonResponse:
    if request.method == 'GET':
        qs = Task.objects.select_related('assigned_to')
        state = request.GET.get('status')
        if state == 'open':
            qs = qs.filter(completed=False)
        elif state == 'completed':
            qs = qs.filter(completed=True)
        if request.GET.get('mine'):
            qs = qs.filter(assigned_to=request.user)
        records = list(qs)
        if request.GET.get('period'):
            records = filter_by_period(records, Period.parse(request.GET['period']), 'created_at')
        return JsonResponse({'tasks': [_serialise_task(task) for task in records]})

    payload = _load_json_body(request)
    if payload is None:
        return _invalid_payload()
    form = TaskForm(payload)
    if not form.is_valid():
        return _form_errors(form)
    task = form.save()
    log_activity(request.user, 'Created task', f'Task {task.pk}: {task.title}')
    return JsonResponse({'ok': True, 'task': _serialise_task(task)}, status=201)


def _spawn_next_task(task: Task) -> Optional[Task]:
    """Create the following task of a repeating chain, once."""

    if normalise_rule(task.recurrence) == 'none':
        return None
    root = task.original_task or task
    next_due = advance(task.due_date, task.recurrence)
    if Task.objects.filter(Q(original_task=root) | Q(pk=root.pk), due_date=next_due).exists():
        return None
    return Task.objects.create(
        person=task.person,
        title=task.title,
        description=task.description,
        due_date=next_due,
        priority=task.priority,
        category=task.category,
        assigned_to=task.assigned_to,
        recurrence=task.recurrence,
        original_task=root,
    )


@login_required
@require_POST
def task_toggle(request: HttpRequest, task_id: int) -> JsonResponse:
    with transaction.atomic():
        task = get_object_or_404(Task.objects.select_for_update(), pk=task_id)
        task.completed = not task.completed
        task.completed_at = timezone.now() if task.completed else None
        task.save(update_fields=['completed', 'completed_at'])
        next_task = _spawn_next_task(task) if task.completed else None
    log_activity(
        request.user,
        'Completed task' if task.completed else 'Reopened task',
        f'Task {task.pk}: {task.title}',
    )
    return JsonResponse(
        {
            'ok': True,
            'task': _serialise_task(task),
            'next_task': _serialise_task(next_task) if next_task else None,
        }
    )


# ---------------------------------------------------------------------------
# SMS
# ---------------------------------------------------------------------------


def _record_text(request: HttpRequest, person_id, body: str, message_id: Optional[str]) -> None:
    person = Person.objects.filter(pk=person_id).first() if person_id else None
    if person is None:
        return
    Interaction.objects.create(
        person=person,
        type=Interaction.Type.TEXT,
        content=body,
        created_by=request.user,
        sent_via='twilio',
        message_id=message_id or '',
    )


@login_required
@require_POST
def sms_send(request: HttpRequest) -> JsonResponse:
    payload = _load_json_body(request)
    if payload is None:
        return JsonResponse({'error': 'Invalid payload.'}, status=400)
    try:
        result = TwilioClient.from_settings().send(payload.get('to'), payload.get('message'))
    except SmsNotConfiguredError as exc:
        return JsonResponse({'error': str(exc)}, status=503)
    except SmsError as exc:
        return JsonResponse({'error': str(exc)}, status=400)
    if not result.success:
        return JsonResponse({'error': result.error}, status=result.http_status)
    _record_text(request, payload.get('person_id'), payload.get('message'), result.message_id)
    log_activity(request.user, 'Sent SMS', f'Message {result.message_id}')
    return JsonResponse(result.to_dict())


@login_required
@require_POST
def sms_send_bulk(request: HttpRequest) -> JsonResponse:
    payload = _load_json_body(request)
    if payload is None:
        return JsonResponse({'error': 'Invalid payload.'}, status=400)
    messages = payload.get('messages')
    if not isinstance(messages, list):
        return JsonResponse({'error': 'Messages array is required'}, status=400)
    try:
        outcome = TwilioClient.from_settings().send_bulk(messages, payload.get('delay_ms'))
    except SmsNotConfiguredError as exc:
        return JsonResponse({'error': str(exc)}, status=503)
    except (SmsError, TypeError, ValueError) as exc:
        return JsonResponse({'error': str(exc)}, status=400)
    for message, result in zip(messages, outcome.results):
        if result.success:
            _record_text(request, message.get('person_id'), message.get('message'), result.message_id)
    log_activity(request.user, 'Sent bulk SMS', f'{outcome.successful} of {outcome.total} delivered')
    return JsonResponse(outcome.to_dict())


@login_required
@require_http_methods(["GET"])
def sms_status(request: HttpRequest, message_id: str) -> JsonResponse:
    try:
        result = TwilioClient.from_settings().status(message_id)
    except SmsNotConfiguredError as exc:
        return JsonResponse({'error': str(exc)}, status=503)
    except SmsError as exc:
        return JsonResponse({'error': str(exc)}, status=400)
    if not result.success:
        return JsonResponse({'error': result.error}, status=result.http_status)
    return JsonResponse(result.to_dict())


# ---------------------------------------------------------------------------
# Reminders and preferences
# ---------------------------------------------------------------------------


def _rule_repository() -> ReminderRuleRepository:
    return ReminderRuleRepository(ModelPreferenceStore())


@login_required
@require_http_methods(["GET", "POST"])
def reminder_rules(request: HttpRequest) -> JsonResponse:
    repository = _rule_repository()
    if request.method == 'GET':
        return JsonResponse({'rules': [rule.to_dict() for rule in repository.list()]})

    payload = _load_json_body(request)
    if payload is None:
        return _invalid_payload()
    try:
        rule = repository.create(payload)
    except ReminderRuleError as exc:
        return JsonResponse({'ok': False, 'message': str(exc)}, status=400)
    log_activity(request.user, 'Created reminder rule', f'Rule {rule.id}: {rule.name}')
    return JsonResponse({'ok': True, 'rule': rule.to_dict()}, status=201)


@login_required
@require_http_methods(["PUT", "PATCH", "DELETE"])
def reminder_rule_detail(request: HttpRequest, rule_id: str) -> JsonResponse:
    repository = _rule_repository()
    if request.method == 'DELETE':
        try:
            repository.delete(rule_id)
        except KeyError:
            return JsonResponse({'ok': False, 'message': 'Reminder rule not found.'}, status=404)
        log_activity(request.user, 'Deleted reminder rule', f'Rule {rule_id}')
        return JsonResponse({'ok': True})

    payload = _load_json_body(request)
    if payload is None:
        return _invalid_payload()
    try:
        if payload.get('toggle'):
            rule = repository.toggle(rule_id)
        else:
            rule = repository.update(rule_id, payload)
    except KeyError:
        return JsonResponse({'ok': False, 'message': 'Reminder rule not found.'}, status=404)
    except ReminderRuleError as exc:
        return JsonResponse({'ok': False, 'message': str(exc)}, status=400)
    log_activity(request.user, 'Updated reminder rule', f'Rule {rule.id}')
    return JsonResponse({'ok': True, 'rule': rule.to_dict()})


@login_required
@require_http_methods(["GET"])
def reminders_pending(request: HttpRequest) -> JsonResponse:
    now = timezone.now()
    upcoming = pending_reminders(load_reminders(_rule_repository().list(), now), now)
    return JsonResponse({'reminders': [reminder.to_dict() for reminder in upcoming], 'count': len(upcoming)})


@login_required
@require_http_methods(["GET", "POST", "DELETE"])
def saved_filters(request: HttpRequest, table_id: str) -> JsonResponse:
    repository = SavedFilterRepository(ModelPreferenceStore.for_user(request.user), table_id)
    if request.method == 'GET':
        return JsonResponse({'filters': repository.list()})

    payload = _load_json_body(request)
    if payload is None:
        return _invalid_payload()
    if request.method == 'DELETE':
        filter_id = payload.get('id') or request.GET.get('id')
        if not filter_id or not repository.delete(str(filter_id)):
            return JsonResponse({'ok': False, 'message': 'Saved filter not found.'}, status=404)
        return JsonResponse({'ok': True, 'filters': repository.list()})

    try:
        item = repository.save(payload.get('name'), payload.get('filters'))
    except ValueError as exc:
        return JsonResponse({'ok': False, 'message': str(exc)}, status=400)
    return JsonResponse({'ok': True, 'filter': item, 'filters': repository.list()})


@login_required
@require_http_methods(["GET", "POST"])
def view_preferences(request: HttpRequest) -> JsonResponse:
    preferences = ViewPreferences(ModelPreferenceStore.for_user(request.user))
    if request.method == 'POST':
        payload = _load_json_body(request)
        if payload is None:
            return _invalid_payload()
        view = str(payload.get('view') or '').strip()
        if not view:
            return JsonResponse({'ok': False, 'message': 'A view name is required.'}, status=400)
        try:
            preferences.set(view, payload.get('mode'))
        except ValueError as exc:
            return JsonResponse({'ok': False, 'message': str(exc)}, status=400)
    return JsonResponse({'views': preferences.all(), 'default': preferences.default_mode})


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


@login_required
@require_http_methods(["GET"])
def notifications_unread(request: HttpRequest) -> JsonResponse:
    """Return unread notifications for the current user."""

    unread_qs = Notification.objects.filter(recipient=request.user, is_read=False).order_by('-created_at')
    total = unread_qs.count()
    items: List[Dict[str, Any]] = [
        {
            'id': note.pk,
            'message': note.message,
            'eventType': note.event_type,
            'createdAt': note.created_at.isoformat(),
            'metadata': note.metadata,
        }
        for note in unread_qs[:50]
    ]
    return JsonResponse({'notifications': items, 'count': total})


@login_required
@require_POST
def notifications_mark_read(request: HttpRequest) -> JsonResponse:
    """Mark notifications as read for the current user."""

    payload = _load_json_body(request)
    if payload is None:
        return _invalid_payload()

    if payload.get('all'):
        updated = mark_notifications_read(request.user, None)
    else:
        ids = payload.get('ids')
        if not isinstance(ids, list):
            return JsonResponse({'ok': False, 'message': 'No notifications specified.'}, status=400)
        try:
            id_list = [int(value) for value in ids]
        except (TypeError, ValueError):
            return JsonResponse({'ok': False, 'message': 'Invalid notification identifiers.'}, status=400)
        updated = mark_notifications_read(request.user, id_list)

    return JsonResponse({'ok': True, 'updated': updated})
