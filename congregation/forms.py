"""Forms used by the congregation application.

The front end posts JSON, and the views feed the decoded payload into these
forms so field validation stays in one place.  Each ModelForm covers the
fields staff may edit; system managed columns (timestamps, creators,
recurrence links) are set by the views.
"""

from __future__ import annotations

from django import forms
from django.core.validators import FileExtensionValidator

from .models import Attendance, CalendarEvent, Giving, Person, Task
from .services.people_import import split_tags


class PersonForm(forms.ModelForm):
    """Create or edit a person.

    ``tags`` accepts either a JSON list or a comma/semicolon separated string.
    """

    tags = forms.Field(required=False)

    class Meta:
        model = Person
        fields = [
            'first_name',
            'last_name',
            'email',
            'phone',
            'status',
            'address',
            'city',
            'state',
            'zip_code',
            'birth_date',
            'join_date',
            'first_visit',
            'notes',
            'tags',
        ]

    def clean_tags(self) -> list[str]:
        raw = self.cleaned_data.get('tags')
        if raw in (None, ''):
            return []
        if isinstance(raw, str):
            return split_tags(raw)
        if isinstance(raw, list):
            return [str(tag).strip() for tag in raw if str(tag).strip()]
        raise forms.ValidationError('Tags must be a list or a comma separated string.')


class CalendarEventForm(forms.ModelForm):
    class Meta:
        model = CalendarEvent
        fields = [
            'title',
            'description',
            'start',
            'end',
            'all_day',
            'location',
            'category',
            'recurrence',
            'recurrence_end',
            'capacity',
            'registration_deadline',
            'requires_registration',
            'is_private',
        ]

    def clean(self) -> dict:
        cleaned_data = super().clean()
        start = cleaned_data.get('start')
        end = cleaned_data.get('end')
        recurrence_end = cleaned_data.get('recurrence_end')
        if start and end and end < start:
            self.add_error('end', 'The end must not be before the start.')
        if start and recurrence_end and recurrence_end < start.date():
            self.add_error('recurrence_end', 'The series cannot end before the first occurrence.')
        if cleaned_data.get('recurrence') == 'none':
            cleaned_data['recurrence_end'] = None
        return cleaned_data


class GivingForm(forms.ModelForm):
    class Meta:
        model = Giving
        fields = ['person', 'amount', 'fund', 'date', 'method', 'is_recurring', 'note']

    def clean_amount(self):
        amount = self.cleaned_data['amount']
        if amount is not None and amount <= 0:
            raise forms.ValidationError('Amount must be greater than zero.')
        return amount


class TaskForm(forms.ModelForm):
    class Meta:
        model = Task
        fields = [
            'person',
            'title',
            'description',
            'due_date',
            'priority',
            'category',
            'assigned_to',
            'recurrence',
        ]


class AttendanceForm(forms.ModelForm):
    class Meta:
        model = Attendance
        fields = ['person', 'event_type', 'event_name', 'date']


class RegistrationForm(forms.Form):
    """Register a person (plus guests) for an event occurrence."""

    person = forms.ModelChoiceField(queryset=Person.objects.all())
    guest_count = forms.IntegerField(min_value=0, max_value=50, required=False)
    notes = forms.CharField(required=False, max_length=2000)

    def clean_guest_count(self) -> int:
        return self.cleaned_data.get('guest_count') or 0


class PeopleImportForm(forms.Form):
    """Upload of a people spreadsheet plus an optional column mapping.

    ``mappings`` is a JSON object of ``column -> field``.  When omitted the
    guessed mapping is used.
    """

    file = forms.FileField(validators=[FileExtensionValidator(['csv', 'xlsx', 'xlsm'])])
    mappings = forms.JSONField(required=False)

    def clean_mappings(self) -> dict[str, str] | None:
        raw = self.cleaned_data.get('mappings')
        if raw in (None, '', {}):
            return None
        if not isinstance(raw, dict):
            raise forms.ValidationError('Mappings must be an object of column to field.')
        return {str(column): str(field) for column, field in raw.items()}
