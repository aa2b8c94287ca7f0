"""URL declarations for the congregation application.

Every route here serves JSON for the single-page front end, apart from
the calendar subscription feed which serves ``text/calendar``.
"""

from django.urls import path

from . import views
from . import views_analytics as analytics

urlpatterns = [
    # Analytics
    path('api/dashboard/', analytics.dashboard, name='dashboard'),
    path('api/giving/summary/', analytics.giving_summary, name='giving_summary'),
    path('api/giving/donors/', analytics.giving_donors, name='giving_donors'),
    path('api/giving/donors/<int:person_id>/', analytics.giving_donor_detail, name='giving_donor_detail'),
    # People
    path('api/people/', views.people, name='people'),
    path('api/people/<int:person_id>/', views.person_detail, name='person_detail'),
    path('api/people/import/preview/', views.people_import_preview, name='people_import_preview'),
    path('api/people/import/', views.people_import, name='people_import'),
    path('api/attendance/', views.attendance, name='attendance'),
    # Calendar
    path('api/calendar/events/', views.calendar_events, name='calendar_events'),
    path('api/calendar/events/<int:event_id>/', views.calendar_event_detail, name='calendar_event_detail'),
    path('api/calendar/ical/', views.calendar_ical, name='calendar_ical'),
    path(
        'api/calendar/occurrences/<str:occurrence_id>/registrations/',
        views.occurrence_registrations,
        name='occurrence_registrations',
    ),
    path('api/registrations/<int:registration_id>/cancel/', views.registration_cancel, name='registration_cancel'),
    # Tasks
    path('api/tasks/', views.tasks, name='tasks'),
    path('api/tasks/<int:task_id>/toggle/', views.task_toggle, name='task_toggle'),
    # SMS
    path('api/sms/send/', views.sms_send, name='sms_send'),
    path('api/sms/send-bulk/', views.sms_send_bulk, name='sms_send_bulk'),
    path('api/sms/status/<str:message_id>/', views.sms_status, name='sms_status'),
    # Reminders and preferences
    path('api/reminders/rules/', views.reminder_rules, name='reminder_rules'),
    path('api/reminders/rules/<str:rule_id>/', views.reminder_rule_detail, name='reminder_rule_detail'),
    path('api/reminders/pending/', views.reminders_pending, name='reminders_pending'),
    path('api/filters/<str:table_id>/', views.saved_filters, name='saved_filters'),
    path('api/preferences/views/', views.view_preferences, name='view_preferences'),
    # Notifications
    path('api/notifications/unread/', views.notifications_unread, name='notifications_unread'),
    path('api/notifications/mark-read/', views.notifications_mark_read, name='notifications_mark_read'),
]
