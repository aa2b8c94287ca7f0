"""Helpers for importing people from CSV or Excel spreadsheets.

The import runs in three steps, matching the wizard in the front end:

1. :func:`read_table` parses the upload into a ``pandas.DataFrame`` of strings
   and :func:`guess_mappings` proposes a person field for every column.
2. The user adjusts the mapping; :func:`validate_mappings` checks it and
   :func:`preview_people` shows the first few rows as they would be saved.
3. :func:`import_people` creates the ``Person`` rows.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd
from django.db import transaction

from ..models import Person

logger = logging.getLogger(__name__)

SKIP = 'skip'

PERSON_FIELDS: List[Tuple[str, str]] = [
    ('first_name', 'First Name'),
    ('last_name', 'Last Name'),
    ('email', 'Email'),
    ('phone', 'Phone'),
    ('status', 'Status'),
    ('address', 'Address'),
    ('city', 'City'),
    ('state', 'State'),
    ('zip_code', 'ZIP Code'),
    ('birth_date', 'Birth Date'),
    ('join_date', 'Join Date'),
    ('first_visit', 'First Visit'),
    ('notes', 'Notes'),
    ('tags', 'Tags (comma/semicolon separated)'),
]
REQUIRED_FIELDS = ('first_name', 'last_name')
DATE_FIELDS = ('birth_date', 'join_date', 'first_visit')

HEADER_ALIASES = {
    'firstname': 'first_name',
    'first': 'first_name',
    'fname': 'first_name',
    'givenname': 'first_name',
    'lastname': 'last_name',
    'last': 'last_name',
    'lname': 'last_name',
    'surname': 'last_name',
    'familyname': 'last_name',
    'email': 'email',
    'emailaddress': 'email',
    'mail': 'email',
    'phone': 'phone',
    'telephone': 'phone',
    'mobile': 'phone',
    'cell': 'phone',
    'phonenumber': 'phone',
    'status': 'status',
    'memberstatus': 'status',
    'type': 'status',
    'address': 'address',
    'streetaddress': 'address',
    'street': 'address',
    'address1': 'address',
    'city': 'city',
    'town': 'city',
    'state': 'state',
    'province': 'state',
    'region': 'state',
    'zip': 'zip_code',
    'zipcode': 'zip_code',
    'postalcode': 'zip_code',
    'postal': 'zip_code',
    'birthday': 'birth_date',
    'birthdate': 'birth_date',
    'dob': 'birth_date',
    'dateofbirth': 'birth_date',
    'joindate': 'join_date',
    'membershipdate': 'join_date',
    'joined': 'join_date',
    'firstvisit': 'first_visit',
    'visitdate': 'first_visit',
    'notes': 'notes',
    'comments': 'notes',
    'note': 'notes',
    'tags': 'tags',
    'groups': 'tags',
    'categories': 'tags',
}

STATUS_ALIASES = {
    'visitor': Person.Status.VISITOR,
    'guest': Person.Status.VISITOR,
    'new': Person.Status.VISITOR,
    'regular': Person.Status.REGULAR,
    'attendee': Person.Status.REGULAR,
    'member': Person.Status.MEMBER,
    'active': Person.Status.MEMBER,
    'leader': Person.Status.LEADER,
    'staff': Person.Status.LEADER,
    'pastor': Person.Status.LEADER,
    'inactive': Person.Status.INACTIVE,
    'former': Person.Status.INACTIVE,
    'lapsed': Person.Status.INACTIVE,
}

EXCEL_SUFFIXES = ('.xlsx', '.xlsm')
_TAG_SPLIT = re.compile(r'[,;]')


class PeopleImportError(Exception):
    """Raised when an uploaded people file cannot be imported."""


@dataclass
class ImportResult:
    created: int
    errors: List[str] = field(default_factory=list)
    people: List[Person] = field(default_factory=list)


def guess_field_mapping(header: Any) -> str:
    """Best-guess person field for a column header, or ``skip``."""

    normalised = re.sub(r'[^a-z]', '', str(header or '').lower())
    return HEADER_ALIASES.get(normalised, SKIP)


def guess_mappings(columns) -> Dict[str, str]:
    return {str(column): guess_field_mapping(column) for column in columns}


def normalise_status(value: Any) -> str:
    return STATUS_ALIASES.get(str(value or '').strip().lower(), Person.Status.VISITOR)


def split_tags(value: str) -> List[str]:
    return [tag.strip() for tag in _TAG_SPLIT.split(value) if tag.strip()]


def read_table(upload, filename: Optional[str] = None) -> pd.DataFrame:
    """Parse a CSV or Excel upload into a frame of stripped strings."""

    name = (filename or getattr(upload, 'name', '') or '').lower()
    try:
        if hasattr(upload, 'seek'):
            upload.seek(0)
        if name.endswith(EXCEL_SUFFIXES):
            frame = pd.read_excel(upload, dtype=str, engine='openpyxl')
        else:
            frame = pd.read_csv(upload, dtype=str, keep_default_na=False, skipinitialspace=True)
    except (ValueError, UnicodeDecodeError, pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
        raise PeopleImportError('The uploaded file could not be read.') from exc

    frame = frame.fillna('')
    frame.columns = [str(column).strip() for column in frame.columns]
    for column in frame.columns:
        frame[column] = frame[column].astype(str).str.strip()
    if frame.empty:
        raise PeopleImportError('The uploaded file does not contain any rows.')
    return frame


def validate_mappings(mappings: Dict[str, str]) -> List[str]:
    """Return a list of problems with ``mappings``; empty when usable."""

    errors: List[str] = []
    labels = dict(PERSON_FIELDS)
    used = [target for target in mappings.values() if target != SKIP]
    for required in REQUIRED_FIELDS:
        if required not in used:
            errors.append(f"{labels[required]} is required")
    unknown = sorted({target for target in used if target not in labels})
    if unknown:
        errors.append(f"Unknown field: {', '.join(unknown)}")
    duplicates: List[str] = []
    seen = set()
    for target in used:
        if target in seen and target not in duplicates:
            duplicates.append(target)
        seen.add(target)
    if duplicates:
        errors.append(f"Duplicate mapping: {', '.join(duplicates)}")
    return errors


def _parse_date(value: str) -> Optional[date]:
    parsed = pd.to_datetime(value, errors='coerce')
    if pd.isna(parsed):
        return None
    return parsed.date()


def _row_values(row: Dict[str, str], mappings: Dict[str, str], row_label: str, warnings: List[str]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for column, target in mappings.items():
        if target == SKIP:
            continue
        value = str(row.get(column, '') or '').strip()
        if not value:
            continue
        if target == 'status':
            values['status'] = normalise_status(value)
        elif target == 'tags':
            values['tags'] = split_tags(value)
        elif target in DATE_FIELDS:
            parsed = _parse_date(value)
            if parsed is None:
                warnings.append(f"{row_label}: Could not read {target.replace('_', ' ')} '{value}'")
            else:
                values[target] = parsed
        else:
            values[target] = value
    return values


def _rows(frame: pd.DataFrame):
    for position, record in enumerate(frame.to_dict(orient='records')):
        # Row numbers match the spreadsheet: the header is row 1.
        yield position + 2, record


def preview_people(frame: pd.DataFrame, mappings: Dict[str, str], limit: int = 5) -> List[Dict[str, Any]]:
    """The first ``limit`` rows as the field values they would import as."""

    preview: List[Dict[str, Any]] = []
    for row_number, record in _rows(frame.head(limit)):
        warnings: List[str] = []
        values = _row_values(record, mappings, f"Row {row_number}", warnings)
        preview.append({
            'row': row_number - 1,
            'data': {key: value.isoformat() if isinstance(value, date) else value for key, value in values.items()},
            'warnings': warnings,
        })
    return preview


def import_people(frame: pd.DataFrame, mappings: Dict[str, str]) -> ImportResult:
    """Create a ``Person`` for every row that has both names."""

    problems = validate_mappings(mappings)
    if problems:
        raise PeopleImportError('; '.join(problems))

    people: List[Person] = []
    errors: List[str] = []
    for row_number, record in _rows(frame):
        label = f"Row {row_number}"
        values = _row_values(record, mappings, label, errors)
        if not values.get('first_name') or not values.get('last_name'):
            errors.append(f"{label}: Missing required first or last name")
            continue
        values.setdefault('status', Person.Status.VISITOR)
        values.setdefault('tags', [])
        people.append(Person(**values))

    if not people:
        raise PeopleImportError('No valid records found to import')

    with transaction.atomic():
        created = Person.objects.bulk_create(people)

    logger.info("Imported %d people (%d rows with problems)", len(created), len(errors))
    return ImportResult(created=len(created), errors=errors, people=created)
