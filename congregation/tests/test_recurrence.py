from datetime import date, datetime, timedelta, timezone as dt_timezone
from types import SimpleNamespace

from django.test import SimpleTestCase, override_settings
from django.utils import timezone

from congregation.services.recurrence import advance, expand_event, expand_events, normalise_rule


def make_template(**overrides):
    values = {
        'pk': 7,
        'title': 'Sunday Service',
        'start': datetime(2024, 1, 1, 10, 0),
        'end': datetime(2024, 1, 1, 11, 30),
        'recurrence': 'none',
        'recurrence_end': None,
        'category': 'service',
    }
    values.update(overrides)
    return SimpleNamespace(**values)


class ExpandEventTests(SimpleTestCase):
    def test_weekly_series_stops_at_repetition_end(self) -> None:
        template = make_template(recurrence='weekly', recurrence_end=date(2024, 1, 22))
        instances = expand_event(template, date(2024, 1, 1), date(2024, 3, 1))
        self.assertEqual(
            [instance.start.date() for instance in instances],
            [date(2024, 1, 1), date(2024, 1, 8), date(2024, 1, 15), date(2024, 1, 22)],
        )
        self.assertEqual([instance.id for instance in instances], ['7_0', '7_1', '7_2', '7_3'])
        self.assertTrue(all(instance.series_id == '7' for instance in instances))
        self.assertEqual(instances[2].end - instances[2].start, timedelta(hours=1, minutes=30))

    def test_no_instance_after_repetition_end(self) -> None:
        template = make_template(recurrence='daily', recurrence_end=date(2024, 1, 10))
        instances = expand_event(template, date(2024, 1, 1), date(2024, 2, 1))
        self.assertEqual(len(instances), 10)
        self.assertLessEqual(max(instance.start.date() for instance in instances), date(2024, 1, 10))

    def test_non_repeating_event_inside_window(self) -> None:
        template = make_template()
        instances = expand_event(template, date(2023, 12, 1), date(2024, 1, 31))
        self.assertEqual(len(instances), 1)
        self.assertEqual(instances[0].id, '7')
        self.assertIsNone(instances[0].series_id)
        self.assertFalse(instances[0].is_recurring)
        self.assertEqual(instances[0].start, template.start)

    def test_non_repeating_event_outside_window(self) -> None:
        template = make_template()
        self.assertEqual(expand_event(template, date(2024, 2, 1), date(2024, 2, 28)), [])
        self.assertEqual(expand_event(template, date(2023, 1, 1), date(2023, 12, 31)), [])

    def test_unknown_rule_is_treated_as_not_repeating(self) -> None:
        template = make_template(recurrence='every-full-moon')
        instances = expand_event(template, date(2024, 1, 1), date(2024, 12, 31))
        self.assertEqual([instance.id for instance in instances], ['7'])
        self.assertEqual(normalise_rule('every-full-moon'), 'none')
        self.assertEqual(normalise_rule(None), 'none')
        self.assertEqual(normalise_rule(' Weekly '), 'weekly')

    def test_template_without_start_yields_nothing(self) -> None:
        template = make_template(start=None, recurrence='weekly')
        self.assertEqual(expand_event(template, date(2024, 1, 1), date(2024, 3, 1)), [])

    def test_identifiers_are_stable_across_windows(self) -> None:
        template = make_template(recurrence='weekly')
        first = expand_event(template, date(2024, 1, 1), date(2024, 2, 15))
        second = expand_event(template, date(2024, 1, 20), date(2024, 3, 31))
        first_ids = {instance.start: instance.id for instance in first}
        second_ids = {instance.start: instance.id for instance in second}
        shared = set(first_ids) & set(second_ids)
        self.assertTrue(shared)
        for start in shared:
            self.assertEqual(first_ids[start], second_ids[start])
        self.assertEqual(second[0].id, '7_3')

    def test_monthly_series_clamps_to_month_end_without_drift(self) -> None:
        template = make_template(start=datetime(2024, 1, 31, 9, 0), end=None, recurrence='monthly')
        instances = expand_event(template, date(2024, 1, 1), date(2024, 5, 31))
        self.assertEqual(
            [instance.start.date() for instance in instances],
            [date(2024, 1, 31), date(2024, 2, 29), date(2024, 3, 31), date(2024, 4, 30), date(2024, 5, 31)],
        )
        self.assertIsNone(instances[0].end)

    def test_quarterly_and_biweekly_steps(self) -> None:
        quarterly = make_template(recurrence='quarterly')
        self.assertEqual(
            [i.start.date() for i in expand_event(quarterly, date(2024, 1, 1), date(2024, 12, 31))],
            [date(2024, 1, 1), date(2024, 4, 1), date(2024, 7, 1), date(2024, 10, 1)],
        )
        biweekly = make_template(recurrence='biweekly')
        self.assertEqual(
            [i.start.date() for i in expand_event(biweekly, date(2024, 1, 1), date(2024, 2, 1))],
            [date(2024, 1, 1), date(2024, 1, 15), date(2024, 1, 29)],
        )

    def test_window_starting_late_in_a_long_series(self) -> None:
        template = make_template(recurrence='daily')
        instances = expand_event(template, date(2024, 6, 1), date(2024, 6, 3))
        self.assertEqual([instance.start.date() for instance in instances], [date(2024, 6, 1), date(2024, 6, 2), date(2024, 6, 3)])
        self.assertEqual(instances[0].occurrence_index, 152)

    def test_instance_reads_template_attributes(self) -> None:
        template = make_template(recurrence='weekly')
        instance = expand_event(template, date(2024, 1, 8), date(2024, 1, 8))[0]
        self.assertEqual(instance.title, 'Sunday Service')
        self.assertEqual(instance.category, 'service')

    def test_expand_events_orders_by_start(self) -> None:
        weekly = make_template(pk=1, recurrence='weekly', start=datetime(2024, 1, 3, 19, 0), end=None)
        single = make_template(pk=2, start=datetime(2024, 1, 5, 8, 0), end=None)
        instances = expand_events([weekly, single], date(2024, 1, 1), date(2024, 1, 14))
        self.assertEqual([instance.id for instance in instances], ['1_0', '2', '1_1'])

    def test_open_ended_window_yields_the_first_occurrence_it_reaches(self) -> None:
        template = make_template(recurrence='weekly')
        later = expand_event(template, date(2024, 2, 1), None)
        self.assertEqual([(instance.id, instance.start) for instance in later], [('7_5', datetime(2024, 2, 5, 10, 0))])
        self.assertEqual([instance.id for instance in expand_event(template, None, None)], ['7_0'])


class AdvanceTests(SimpleTestCase):
    def test_advance_by_rule(self) -> None:
        self.assertEqual(advance(date(2024, 1, 31), 'monthly'), date(2024, 2, 29))
        self.assertEqual(advance(date(2024, 1, 31), 'monthly', 2), date(2024, 3, 31))
        self.assertEqual(advance(date(2024, 1, 1), 'weekly', 3), date(2024, 1, 22))
        self.assertEqual(advance(date(2024, 11, 30), 'quarterly'), date(2025, 2, 28))
        self.assertEqual(advance(date(2024, 1, 1), 'none'), date(2024, 1, 1))


def stored(*args):
    """A local Chicago time as the database returns it, in UTC."""

    return timezone.make_aware(datetime(*args)).astimezone(dt_timezone.utc)


@override_settings(TIME_ZONE='America/Chicago')
class LocalTimeExpansionTests(SimpleTestCase):
    def test_weekly_service_keeps_its_hour_after_daylight_saving_starts(self) -> None:
        template = make_template(
            start=stored(2024, 1, 7, 10, 0), end=stored(2024, 1, 7, 11, 30), recurrence='weekly'
        )
        instances = expand_event(template, date(2024, 4, 1), date(2024, 4, 10))
        self.assertEqual(len(instances), 1)
        start = timezone.localtime(instances[0].start)
        end = timezone.localtime(instances[0].end)
        self.assertEqual((start.date(), start.hour, start.minute), (date(2024, 4, 7), 10, 0))
        self.assertEqual((end.hour, end.minute), (11, 30))
        self.assertEqual(instances[0].id, '7_13')

    def test_monthly_clamping_and_date_bounds_use_local_days(self) -> None:
        template = make_template(start=stored(2024, 1, 31, 19, 0), end=None, recurrence='monthly')
        instances = expand_event(template, date(2024, 2, 1), date(2024, 3, 15))
        self.assertEqual(
            [timezone.localtime(instance.start).replace(tzinfo=None) for instance in instances],
            [datetime(2024, 2, 29, 19, 0)],
        )

    def test_advance_steps_aware_values_in_local_time(self) -> None:
        stepped = timezone.localtime(advance(stored(2024, 3, 9, 10, 0), 'daily'))
        self.assertEqual((stepped.date(), stepped.hour), (date(2024, 3, 10), 10))
