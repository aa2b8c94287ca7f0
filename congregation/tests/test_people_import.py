from datetime import date
from io import BytesIO

from django.test import SimpleTestCase, TestCase
from openpyxl import Workbook

from congregation.models import Person
from congregation.services.people_import import (
    PeopleImportError,
    guess_field_mapping,
    guess_mappings,
    import_people,
    normalise_status,
    preview_people,
    read_table,
    validate_mappings,
)

CSV = (
    b"First Name,Last Name,E-mail Address,DOB,Member Status,Tags,Favourite Hymn\n"
    b"Ann,Lee,ann@example.com,1990-05-01,member,choir; youth,Amazing Grace\n"
    b",Nofirst,,,,,\n"
    b"Ben,Ortiz,,not a date,guest,,\n"
)


class MappingTests(SimpleTestCase):
    def test_header_guesses(self) -> None:
        self.assertEqual(guess_field_mapping('First Name'), 'first_name')
        self.assertEqual(guess_field_mapping('E-mail Address'), 'email')
        self.assertEqual(guess_field_mapping('DOB'), 'birth_date')
        self.assertEqual(guess_field_mapping('Zip Code'), 'zip_code')
        self.assertEqual(guess_field_mapping('Favourite Hymn'), 'skip')

    def test_status_aliases(self) -> None:
        self.assertEqual(normalise_status('Guest'), 'visitor')
        self.assertEqual(normalise_status('Pastor'), 'leader')
        self.assertEqual(normalise_status('lapsed'), 'inactive')
        self.assertEqual(normalise_status('unknown'), 'visitor')

    def test_validate_mappings(self) -> None:
        self.assertEqual(validate_mappings({'A': 'first_name', 'B': 'last_name'}), [])
        self.assertEqual(validate_mappings({'A': 'first_name'}), ['Last Name is required'])
        self.assertIn(
            'Duplicate mapping: email',
            validate_mappings({'A': 'first_name', 'B': 'last_name', 'C': 'email', 'D': 'email'}),
        )

    def test_read_csv_and_preview(self) -> None:
        frame = read_table(BytesIO(CSV), 'people.csv')
        mappings = guess_mappings(frame.columns)
        self.assertEqual(mappings['Member Status'], 'status')
        preview = preview_people(frame, mappings, limit=2)
        self.assertEqual(len(preview), 2)
        self.assertEqual(preview[0]['data']['birth_date'], '1990-05-01')
        self.assertEqual(preview[0]['data']['tags'], ['choir', 'youth'])
        self.assertNotIn('first_name', preview[1]['data'])

    def test_read_excel(self) -> None:
        workbook = Workbook()
        sheet = workbook.active
        sheet.append(['Given Name', 'Surname', 'Mobile'])
        sheet.append(['Cara', 'Diaz', '555-123-0000'])
        buffer = BytesIO()
        workbook.save(buffer)
        buffer.seek(0)
        frame = read_table(buffer, 'people.xlsx')
        self.assertEqual(guess_mappings(frame.columns), {'Given Name': 'first_name', 'Surname': 'last_name', 'Mobile': 'phone'})
        self.assertEqual(frame.iloc[0]['Surname'], 'Diaz')

    def test_empty_upload_is_rejected(self) -> None:
        with self.assertRaises(PeopleImportError):
            read_table(BytesIO(b''), 'people.csv')


class ImportPeopleTests(TestCase):
    def test_valid_rows_are_created_and_problems_reported(self) -> None:
        frame = read_table(BytesIO(CSV), 'people.csv')
        result = import_people(frame, guess_mappings(frame.columns))
        self.assertEqual(result.created, 2)
        self.assertIn('Row 3: Missing required first or last name', result.errors)
        self.assertTrue(any(error.startswith('Row 4: Could not read birth date') for error in result.errors))

        ann = Person.objects.get(first_name='Ann')
        self.assertEqual(ann.status, 'member')
        self.assertEqual(ann.email, 'ann@example.com')
        self.assertEqual(ann.birth_date, date(1990, 5, 1))
        self.assertEqual(ann.tags, ['choir', 'youth'])
        ben = Person.objects.get(first_name='Ben')
        self.assertEqual(ben.status, 'visitor')
        self.assertIsNone(ben.birth_date)

    def test_nothing_valid_raises(self) -> None:
        frame = read_table(BytesIO(b"First Name,Last Name\n,Lee\n"), 'people.csv')
        with self.assertRaises(PeopleImportError):
            import_people(frame, guess_mappings(frame.columns))
        self.assertFalse(Person.objects.exists())

    def test_bad_mapping_raises(self) -> None:
        frame = read_table(BytesIO(CSV), 'people.csv')
        with self.assertRaises(PeopleImportError):
            import_people(frame, {'First Name': 'first_name'})
