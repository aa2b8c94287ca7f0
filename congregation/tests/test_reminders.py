from datetime import date, datetime, timedelta
from types import SimpleNamespace

from django.test import SimpleTestCase
from django.utils import timezone

from congregation.services.reminders import (
    ReminderRule,
    _next_yearly,
    build_reminders,
    default_rules,
    due_reminders,
    pending_reminders,
    render_template,
)


def person(**overrides):
    values = {
        'pk': 1,
        'first_name': 'Ann',
        'full_name': 'Ann Lee',
        'email': 'ann@example.com',
        'phone': '5551234567',
        'status': 'member',
        'birth_date': None,
        'join_date': None,
        'first_visit': None,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


class BuildRemindersTests(SimpleTestCase):
    def setUp(self) -> None:
        self.now = timezone.make_aware(datetime(2024, 5, 5, 12, 0))
        self.rules = default_rules()

    def test_birthday_reminder_is_due_a_week_ahead(self) -> None:
        reminders = build_reminders(self.rules, self.now, people=[person(birth_date=date(1990, 5, 10))])
        self.assertEqual(len(reminders), 1)
        reminder = reminders[0]
        self.assertEqual(reminder.key, 'birthday-reminder-1-2024')
        self.assertEqual(timezone.localtime(reminder.target_at).date(), date(2024, 5, 10))
        self.assertEqual(reminder.target_at - reminder.scheduled_for, timedelta(weeks=1))
        self.assertIn("Ann Lee's birthday is coming up on May 10", reminder.message)
        self.assertEqual(due_reminders(reminders, self.now), [reminder])

    def test_event_reminders_use_expanded_occurrences(self) -> None:
        event = SimpleNamespace(
            pk=9,
            title='Sunday Service',
            start=timezone.make_aware(datetime(2024, 4, 8, 10, 0)),
            end=None,
            recurrence='weekly',
            recurrence_end=None,
        )
        reminders = build_reminders(self.rules, self.now, events=[event])
        keys = [reminder.key for reminder in reminders]
        self.assertEqual(keys[0], 'event-reminder-9_4')
        self.assertEqual(reminders[0].message, 'Reminder: Sunday Service is tomorrow at 10:00 AM. We look forward to seeing you!')
        self.assertEqual([r.key for r in due_reminders(reminders, self.now)], ['event-reminder-9_4'])
        self.assertIn('event-reminder-9_5', [r.key for r in pending_reminders(reminders, self.now)])

    def test_open_tasks_only(self) -> None:
        tasks = [
            SimpleNamespace(pk=3, title='Call Ann', due_date=date(2024, 5, 6), completed=False, assigned_to=None, person_id=1),
            SimpleNamespace(pk=4, title='Done', due_date=date(2024, 5, 6), completed=True, assigned_to=None, person_id=1),
        ]
        reminders = build_reminders(self.rules, self.now, tasks=tasks)
        self.assertEqual([reminder.key for reminder in reminders], ['task-reminder-3'])
        self.assertEqual(reminders[0].recipient_name, 'Staff')
        self.assertEqual(reminders[0].subject, 'Task Due: Call Ann')

    def test_disabled_rules_are_ignored(self) -> None:
        visitor = person(status='visitor', first_visit=date(2024, 5, 1))
        self.assertEqual(build_reminders(self.rules, self.now, people=[visitor]), [])

    def test_follow_up_goes_out_after_the_visit(self) -> None:
        rule = ReminderRule.from_dict(
            {'id': 'welcome', 'name': 'Welcome', 'type': 'follow-up', 'timing': '3days', 'message_template': 'Hi {{name}}'}
        )
        visitor = person(status='visitor', first_visit=date(2024, 5, 1))
        reminders = build_reminders([rule], self.now, people=[visitor])
        self.assertEqual(len(reminders), 1)
        self.assertEqual(timezone.localtime(reminders[0].scheduled_for).date(), date(2024, 5, 4))
        self.assertEqual(reminders[0].message, 'Hi Ann')
        self.assertEqual(len(due_reminders(reminders, self.now)), 1)

    def test_prayer_check_in(self) -> None:
        rule = ReminderRule.from_dict({'id': 'prayer', 'name': 'Prayer', 'type': 'prayer', 'timing': '1week'})
        prayers = [
            SimpleNamespace(pk=2, person=person(), created_at=self.now - timedelta(days=10), is_answered=False),
            SimpleNamespace(pk=3, person=person(), created_at=self.now - timedelta(days=10), is_answered=True),
        ]
        reminders = build_reminders([rule], self.now, prayers=prayers)
        self.assertEqual([reminder.key for reminder in reminders], ['prayer-2'])
        self.assertEqual(reminders[0].scheduled_for, self.now - timedelta(days=3))


class HelperTests(SimpleTestCase):
    def test_leap_day_falls_back_to_february_28(self) -> None:
        self.assertEqual(_next_yearly(date(2000, 2, 29), date(2025, 1, 1)), date(2025, 2, 28))
        self.assertEqual(_next_yearly(date(2000, 2, 29), date(2024, 1, 1)), date(2024, 2, 29))
        self.assertEqual(_next_yearly(date(1990, 1, 5), date(2024, 3, 1)), date(2025, 1, 5))

    def test_render_template(self) -> None:
        self.assertEqual(render_template('{{name}} turns {{years}}', {'name': 'Ann', 'years': 40}), 'Ann turns 40')
        self.assertEqual(render_template('No placeholders', {'name': 'Ann'}), 'No placeholders')

    def test_rule_payload_round_trip_keeps_label(self) -> None:
        rule = default_rules()[0]
        payload = rule.to_dict()
        self.assertEqual(payload['timing_label'], '1 week before')
        self.assertEqual(ReminderRule.from_dict(payload).name, rule.name)
