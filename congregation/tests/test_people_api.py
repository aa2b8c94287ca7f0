import json
from datetime import timedelta

from django.contrib.auth.models import User
from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import TestCase
from django.urls import reverse
from django.utils import timezone

from congregation.models import ActivityLog, Person

CSV = b"First Name,Last Name,Email,Status\nAnn,Lee,ann@example.com,member\n,Nofirst,,\n"


class PeopleAPITest(TestCase):
    def setUp(self) -> None:
        self.user = User.objects.create_user(username='secretary', password='pass')
        self.client.force_login(self.user)

    def _upload(self, name='people.csv', content=CSV, **extra):
        data = {'file': SimpleUploadedFile(name, content, content_type='text/csv')}
        data.update(extra)
        return data

    def test_create_and_list(self) -> None:
        payload = {'first_name': 'Ann', 'last_name': 'Lee', 'status': 'member', 'tags': 'choir, youth'}
        response = self.client.post(reverse('people'), json.dumps(payload), content_type='application/json')
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()['person']['tags'], ['choir', 'youth'])
        Person.objects.create(first_name='Ben', last_name='Ortiz', status='visitor')

        members = self.client.get(reverse('people'), {'status': 'member'}).json()
        self.assertEqual([person['name'] for person in members['people']], ['Ann Lee'])
        tagged = self.client.get(reverse('people'), {'tag': 'youth'}).json()
        self.assertEqual(tagged['count'], 1)
        self.assertEqual(self.client.get(reverse('people'), {'q': 'ortiz'}).json()['count'], 1)

    def test_missing_last_name_is_rejected(self) -> None:
        response = self.client.post(
            reverse('people'), json.dumps({'first_name': 'Ann'}), content_type='application/json'
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn('last_name', response.json()['errors'])

    def test_detail_without_gifts(self) -> None:
        person = Person.objects.create(first_name='Ann', last_name='Lee')
        data = self.client.get(reverse('person_detail', args=[person.pk])).json()
        self.assertEqual(data['person']['name'], 'Ann Lee')
        self.assertIsNone(data['giving'])
        self.assertEqual(data['interactions'], [])

    def test_import_preview_guesses_mappings(self) -> None:
        data = self.client.post(reverse('people_import_preview'), self._upload()).json()
        self.assertEqual(data['row_count'], 2)
        self.assertEqual(data['mappings']['Email'], 'email')
        self.assertEqual(data['mapping_errors'], [])
        self.assertFalse(Person.objects.exists())

    def test_import_creates_people(self) -> None:
        data = self.client.post(reverse('people_import'), self._upload()).json()
        self.assertEqual(data['created'], 1)
        self.assertEqual(len(data['errors']), 1)
        self.assertEqual(Person.objects.get().email, 'ann@example.com')
        self.assertTrue(ActivityLog.objects.filter(action='Imported people').exists())

    def test_import_rejects_other_file_types(self) -> None:
        response = self.client.post(reverse('people_import'), self._upload(name='people.txt'))
        self.assertEqual(response.status_code, 400)
        self.assertIn('file', response.json()['errors'])


class AttendanceAPITest(TestCase):
    def setUp(self) -> None:
        self.user = User.objects.create_user(username='usher', password='pass')
        self.client.force_login(self.user)
        self.ann = Person.objects.create(first_name='Ann', last_name='Lee')

    def _check_in(self, **overrides):
        payload = {'person': self.ann.pk, 'event_type': 'sunday', 'date': timezone.localdate().isoformat()}
        payload.update(overrides)
        return self.client.post(reverse('attendance'), json.dumps(payload), content_type='application/json')

    def test_check_in_once_per_service(self) -> None:
        self.assertEqual(self._check_in().status_code, 201)
        self.assertEqual(self._check_in().status_code, 400)
        self.assertEqual(self._check_in(event_type='wednesday').status_code, 201)

    def test_list_by_period(self) -> None:
        self._check_in()
        self._check_in(date=(timezone.localdate() - timedelta(days=60)).isoformat())
        recent = self.client.get(reverse('attendance'), {'period': '30d'}).json()
        self.assertEqual(recent['count'], 1)
        everything = self.client.get(reverse('attendance')).json()
        self.assertEqual(everything['count'], 2)
        sunday = everything['by_service']['rows'][0]
        self.assertEqual((sunday['key'], sunday['label'], sunday['value']), ('sunday', 'Sunday Service', 2))
