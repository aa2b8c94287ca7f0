import json
from datetime import date
from io import StringIO
from unittest.mock import MagicMock, patch

from django.contrib.auth.models import User
from django.core.management import call_command
from django.test import TestCase, override_settings
from django.urls import reverse

from congregation.models import Interaction, Notification, Person, SentReminder, Task


def _post_json(client, url, payload):
    return client.post(url, json.dumps(payload), content_type='application/json')


class TaskToggleTest(TestCase):
    def setUp(self) -> None:
        self.user = User.objects.create_user(username='deacon', password='pass')
        self.client.force_login(self.user)
        self.task = Task.objects.create(title='Visit shut-ins', due_date=date(2030, 3, 5), recurrence='weekly')

    def test_completing_a_repeating_task_spawns_the_next_one_once(self) -> None:
        url = reverse('task_toggle', args=[self.task.pk])
        data = self.client.post(url).json()
        self.assertTrue(data['task']['completed'])
        self.assertEqual(data['next_task']['due_date'], '2030-03-12')
        self.assertEqual(data['next_task']['original_task_id'], self.task.pk)

        reopened = self.client.post(url).json()
        self.assertFalse(reopened['task']['completed'])
        self.assertIsNone(reopened['next_task'])
        again = self.client.post(url).json()
        self.assertIsNone(again['next_task'])
        self.assertEqual(Task.objects.count(), 2)

    def test_one_off_task_has_no_successor(self) -> None:
        task = Task.objects.create(title='Order hymnals', due_date=date(2030, 3, 5))
        data = self.client.post(reverse('task_toggle', args=[task.pk])).json()
        self.assertIsNone(data['next_task'])

    def test_create_and_filter(self) -> None:
        payload = {
            'title': 'Call Ann',
            'due_date': '2030-03-06',
            'priority': 'high',
            'category': 'care',
            'recurrence': 'none',
        }
        response = _post_json(self.client, reverse('tasks'), payload)
        self.assertEqual(response.status_code, 201)
        self.client.post(reverse('task_toggle', args=[self.task.pk]))
        open_titles = [task['title'] for task in self.client.get(reverse('tasks'), {'status': 'open'}).json()['tasks']]
        self.assertIn('Call Ann', open_titles)
        self.assertNotIn(self.task.pk, [task['id'] for task in self.client.get(reverse('tasks'), {'status': 'open'}).json()['tasks']])


class SmsViewsTest(TestCase):
    def setUp(self) -> None:
        self.user = User.objects.create_user(username='secretary', password='pass')
        self.client.force_login(self.user)
        self.person = Person.objects.create(first_name='Ann', last_name='Lee', phone='555-123-4567')

    @override_settings(TWILIO_ACCOUNT_SID='', TWILIO_AUTH_TOKEN='', TWILIO_FROM_NUMBER='')
    def test_unconfigured_service(self) -> None:
        response = _post_json(self.client, reverse('sms_send'), {'to': '5551234567', 'message': 'Hello'})
        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json(), {'error': 'SMS service not configured'})

    @override_settings(TWILIO_ACCOUNT_SID='AC123', TWILIO_AUTH_TOKEN='secret', TWILIO_FROM_NUMBER='+15550000000')
    def test_send_records_an_interaction(self) -> None:
        session = MagicMock()
        session.post.return_value = MagicMock(ok=True, status_code=201, **{'json.return_value': {'sid': 'SM1', 'status': 'queued'}})
        with patch('congregation.services.sms.requests.Session', return_value=session):
            response = _post_json(
                self.client,
                reverse('sms_send'),
                {'to': '555-123-4567', 'message': 'See you Sunday', 'person_id': self.person.pk},
            )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {'success': True, 'message_id': 'SM1', 'status': 'queued'})
        interaction = Interaction.objects.get(person=self.person)
        self.assertEqual(interaction.type, 'text')
        self.assertEqual(interaction.message_id, 'SM1')

    @override_settings(TWILIO_ACCOUNT_SID='AC123', TWILIO_AUTH_TOKEN='secret', TWILIO_FROM_NUMBER='+15550000000')
    def test_bad_input(self) -> None:
        response = _post_json(self.client, reverse('sms_send'), {'to': '12', 'message': 'Hello'})
        self.assertEqual(response.status_code, 400)
        response = _post_json(self.client, reverse('sms_send_bulk'), {'messages': 'nope'})
        self.assertEqual(response.status_code, 400)


class ReminderAndPreferenceViewsTest(TestCase):
    def setUp(self) -> None:
        self.user = User.objects.create_user(username='secretary', password='pass')
        self.client.force_login(self.user)

    def test_rule_endpoints(self) -> None:
        self.assertEqual(len(self.client.get(reverse('reminder_rules')).json()['rules']), 6)
        response = _post_json(self.client, reverse('reminder_rules'), {'name': 'Choir practice', 'type': 'event', 'channel': 'sms'})
        self.assertEqual(response.status_code, 201)
        rule_id = response.json()['rule']['id']

        url = reverse('reminder_rule_detail', args=[rule_id])
        toggled = self.client.patch(url, json.dumps({'toggle': True}), content_type='application/json').json()
        self.assertFalse(toggled['rule']['enabled'])
        bad = self.client.patch(url, json.dumps({'channel': 'pigeon'}), content_type='application/json')
        self.assertEqual(bad.status_code, 400)
        self.assertEqual(self.client.delete(url).status_code, 200)
        self.assertEqual(self.client.delete(url).status_code, 404)

    def test_pending_reminders(self) -> None:
        data = self.client.get(reverse('reminders_pending')).json()
        self.assertEqual(data, {'reminders': [], 'count': 0})

    def test_saved_filters_are_per_user(self) -> None:
        url = reverse('saved_filters', args=['people'])
        saved = _post_json(self.client, url, {'name': 'Members', 'filters': {'status': 'member'}}).json()
        self.assertEqual(saved['filter']['name'], 'Members')

        other = User.objects.create_user(username='volunteer', password='pass')
        self.client.force_login(other)
        self.assertEqual(self.client.get(url).json()['filters'], [])

        self.client.force_login(self.user)
        response = self.client.delete(url, json.dumps({'id': saved['filter']['id']}), content_type='application/json')
        self.assertEqual(response.json()['filters'], [])

    def test_view_preferences(self) -> None:
        url = reverse('view_preferences')
        self.assertEqual(self.client.get(url).json(), {'views': {}, 'default': 'list'})
        response = _post_json(self.client, url, {'view': 'tasks', 'mode': 'kanban'})
        self.assertEqual(response.json()['views'], {'tasks': 'kanban'})
        self.assertEqual(_post_json(self.client, url, {'view': 'tasks', 'mode': 'carousel'}).status_code, 400)


class NotificationViewsTest(TestCase):
    def setUp(self) -> None:
        self.user = User.objects.create_user(username='pastor', password='pass')
        self.client.force_login(self.user)
        self.first = Notification.objects.create(recipient=self.user, message='One', event_type='reminder')
        self.second = Notification.objects.create(recipient=self.user, message='Two', event_type='registration')

    def test_unread_and_mark_read(self) -> None:
        self.assertEqual(self.client.get(reverse('notifications_unread')).json()['count'], 2)
        response = _post_json(self.client, reverse('notifications_mark_read'), {'ids': [self.first.pk]})
        self.assertEqual(response.json(), {'ok': True, 'updated': 1})
        data = self.client.get(reverse('notifications_unread')).json()
        self.assertEqual([item['message'] for item in data['notifications']], ['Two'])
        self.assertEqual(_post_json(self.client, reverse('notifications_mark_read'), {'all': True}).json()['updated'], 1)
        self.assertEqual(_post_json(self.client, reverse('notifications_mark_read'), {'ids': ['x']}).status_code, 400)


@override_settings(TWILIO_ACCOUNT_SID='', TWILIO_AUTH_TOKEN='', TWILIO_FROM_NUMBER='')
class DispatchRemindersCommandTest(TestCase):
    def setUp(self) -> None:
        self.staff = User.objects.create_user(username='pastor', password='pass', is_staff=True)
        self.task = Task.objects.create(title='Prepare bulletin', due_date=date(2030, 3, 5))

    def _run(self, *args):
        out = StringIO()
        call_command('dispatch_reminders', '--now', '2030-03-04T12:00:00', *args, stdout=out)
        return out.getvalue()

    def test_dry_run_sends_nothing(self) -> None:
        output = self._run('--dry-run')
        self.assertIn(f'task-reminder-{self.task.pk}', output)
        self.assertFalse(SentReminder.objects.exists())
        self.assertFalse(Notification.objects.exists())

    def test_each_reminder_goes_out_once(self) -> None:
        output = self._run()
        self.assertIn('Dispatched 1 of 1', output)
        record = SentReminder.objects.get()
        self.assertEqual(record.reminder_key, f'task-reminder-{self.task.pk}')
        self.assertEqual(record.status, 'sent')
        notice = Notification.objects.get(recipient=self.staff)
        self.assertIn('Prepare bulletin', notice.message)

        self.assertIn('No reminders are due.', self._run())
        self.assertEqual(SentReminder.objects.count(), 1)
