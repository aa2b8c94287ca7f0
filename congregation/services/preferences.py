"""Key/value persistence for staff settings.

Reminder rules, saved people filters and per-view display modes are small
JSON documents.  They are read and written through a :class:`KeyValueStore`
so callers never touch storage directly: production code uses
:class:`ModelPreferenceStore` (the ``Preference`` table) and tests can pass
a :class:`MemoryPreferenceStore`.

Stored documents are validated on every read.  Anything malformed is
logged and replaced by the documented default instead of raising.
"""

from __future__ import annotations

import copy
import logging
import uuid
from typing import Any, Dict, List, Optional, Protocol

from django.utils import timezone

from ..models import Preference
from .reminders import ReminderRule, ReminderRuleError, default_rules

logger = logging.getLogger(__name__)

REMINDER_RULES_KEY = 'reminder-rules'
SAVED_FILTERS_KEY = 'saved-filters:{table_id}'
VIEW_MODES_KEY = 'view-modes'
VIEW_MODES = ('list', 'grid', 'kanban', 'table')


class KeyValueStore(Protocol):
    def get(self, key: str, default: Any = None) -> Any:
        ...

    def set(self, key: str, value: Any) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class MemoryPreferenceStore:
    """Dictionary backed store; values are copied in and out."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self._data: Dict[str, Any] = copy.deepcopy(initial or {})

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self._data:
            return default
        return copy.deepcopy(self._data[key])

    def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class ModelPreferenceStore:
    """Store backed by the ``Preference`` model, partitioned by scope."""

    def __init__(self, scope: str = 'global') -> None:
        self.scope = scope

    @classmethod
    def for_user(cls, user) -> 'ModelPreferenceStore':
        return cls(scope=f'user:{user.pk}')

    def get(self, key: str, default: Any = None) -> Any:
        row = Preference.objects.filter(scope=self.scope, key=key).first()
        return default if row is None else row.value

    def set(self, key: str, value: Any) -> None:
        Preference.objects.update_or_create(scope=self.scope, key=key, defaults={'value': value})

    def delete(self, key: str) -> None:
        Preference.objects.filter(scope=self.scope, key=key).delete()


class ReminderRuleRepository:
    """CRUD over the reminder rule list kept in a key/value store."""

    def __init__(self, store: KeyValueStore, key: str = REMINDER_RULES_KEY) -> None:
        self.store = store
        self.key = key

    def list(self) -> List[ReminderRule]:
        raw = self.store.get(self.key)
        if raw is None:
            return default_rules()
        if not isinstance(raw, list):
            logger.warning("Stored reminder rules are not a list; using defaults")
            return default_rules()
        try:
            return [ReminderRule.from_dict(item) for item in raw]
        except ReminderRuleError as exc:
            logger.warning("Stored reminder rules are invalid (%s); using defaults", exc)
            return default_rules()

    def _save(self, rules: List[ReminderRule]) -> None:
        self.store.set(self.key, [_rule_payload(rule) for rule in rules])

    def get(self, rule_id: str) -> Optional[ReminderRule]:
        return next((rule for rule in self.list() if rule.id == rule_id), None)

    def create(self, data: Dict[str, Any]) -> ReminderRule:
        payload = dict(data)
        payload['id'] = f"rule-{uuid.uuid4().hex[:12]}"
        rule = ReminderRule.from_dict(payload)
        rules = self.list()
        rules.append(rule)
        self._save(rules)
        return rule

    def update(self, rule_id: str, data: Dict[str, Any]) -> ReminderRule:
        rules = self.list()
        for position, rule in enumerate(rules):
            if rule.id == rule_id:
                merged = _rule_payload(rule)
                merged.update(data)
                merged['id'] = rule_id
                rules[position] = ReminderRule.from_dict(merged)
                self._save(rules)
                return rules[position]
        raise KeyError(rule_id)

    def toggle(self, rule_id: str) -> ReminderRule:
        rule = self.get(rule_id)
        if rule is None:
            raise KeyError(rule_id)
        return self.update(rule_id, {'enabled': not rule.enabled})

    def delete(self, rule_id: str) -> None:
        rules = self.list()
        remaining = [rule for rule in rules if rule.id != rule_id]
        if len(remaining) == len(rules):
            raise KeyError(rule_id)
        self._save(remaining)


def _rule_payload(rule: ReminderRule) -> Dict[str, Any]:
    payload = rule.to_dict()
    payload.pop('timing_label', None)
    return payload


class SavedFilterRepository:
    """Named filter presets for one table (people list, tasks list ...)."""

    def __init__(self, store: KeyValueStore, table_id: str) -> None:
        self.store = store
        self.table_id = table_id
        self.key = SAVED_FILTERS_KEY.format(table_id=table_id)

    def list(self) -> List[Dict[str, Any]]:
        raw = self.store.get(self.key, [])
        if not isinstance(raw, list):
            logger.warning("Saved filters for %s are malformed; ignoring them", self.table_id)
            return []
        return [
            item for item in raw
            if isinstance(item, dict) and item.get('id') and item.get('name')
            and isinstance(item.get('filters'), dict)
        ]

    def save(self, name: str, filters: Dict[str, Any]) -> Dict[str, Any]:
        """Create a preset, or replace the filters of the preset with this name."""

        name = (name or '').strip()
        if not name:
            raise ValueError('Filter name is required.')
        if not isinstance(filters, dict):
            raise ValueError('Filters must be an object.')
        items = self.list()
        for item in items:
            if item['name'] == name:
                item['filters'] = filters
                self.store.set(self.key, items)
                return item
        item = {
            'id': f"filter-{uuid.uuid4().hex[:12]}",
            'name': name,
            'filters': filters,
            'created_at': timezone.now().isoformat(),
        }
        items.append(item)
        self.store.set(self.key, items)
        return item

    def delete(self, filter_id: str) -> bool:
        items = self.list()
        remaining = [item for item in items if item['id'] != filter_id]
        if len(remaining) == len(items):
            return False
        self.store.set(self.key, remaining)
        return True


class ViewPreferences:
    """Remembered display mode per screen."""

    def __init__(self, store: KeyValueStore, default_mode: str = 'list') -> None:
        self.store = store
        self.default_mode = default_mode

    def all(self) -> Dict[str, str]:
        raw = self.store.get(VIEW_MODES_KEY, {})
        if not isinstance(raw, dict):
            return {}
        return {str(view): mode for view, mode in raw.items() if mode in VIEW_MODES}

    def get(self, view: str) -> str:
        return self.all().get(view, self.default_mode)

    def set(self, view: str, mode: str) -> None:
        if mode not in VIEW_MODES:
            raise ValueError(f'Unknown view mode: {mode!r}.')
        modes = self.all()
        modes[view] = mode
        self.store.set(VIEW_MODES_KEY, modes)
