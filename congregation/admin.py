"""Django admin configuration for congregation models."""

from django.contrib import admin

from .models import (
    ActivityLog,
    Attendance,
    CalendarEvent,
    EventRegistration,
    Giving,
    Interaction,
    Notification,
    Person,
    Preference,
    PrayerRequest,
    SentReminder,
    SmallGroup,
    Task,
)


class EventRegistrationInline(admin.TabularInline):
    """Registrations shown on the event page."""
    model = EventRegistration
    extra = 0
    fields = ('occurrence_id', 'person', 'status', 'guest_count', 'registered_at')


@admin.register(Person)
class PersonAdmin(admin.ModelAdmin):
    list_display = ('last_name', 'first_name', 'status', 'email', 'phone')
    list_filter = ('status',)
    search_fields = ('first_name', 'last_name', 'email', 'phone')


@admin.register(CalendarEvent)
class CalendarEventAdmin(admin.ModelAdmin):
    list_display = ('title', 'start', 'category', 'recurrence', 'requires_registration')
    list_filter = ('category', 'recurrence', 'is_private')
    search_fields = ('title', 'location')
    inlines = (EventRegistrationInline,)


@admin.register(Giving)
class GivingAdmin(admin.ModelAdmin):
    list_display = ('date', 'person', 'amount', 'fund', 'method')
    list_filter = ('fund', 'method', 'is_recurring')
    date_hierarchy = 'date'


@admin.register(Task)
class TaskAdmin(admin.ModelAdmin):
    list_display = ('title', 'due_date', 'priority', 'category', 'completed')
    list_filter = ('completed', 'priority', 'category')


admin.site.register(SmallGroup)
admin.site.register(Attendance)
admin.site.register(Interaction)
admin.site.register(PrayerRequest)
admin.site.register(Preference)
admin.site.register(SentReminder)
admin.site.register(Notification)
admin.site.register(ActivityLog)
