from datetime import date, datetime
from decimal import Decimal

from django.test import SimpleTestCase
from django.utils import timezone

from congregation.models import Attendance, CalendarEvent, Giving, Person, Task
from congregation.services.analytics import (
    build_dashboard_metrics,
    build_donor_overview,
    build_donor_stats,
    health_scores,
)


def aware(*args):
    return timezone.make_aware(datetime(*args))


class DashboardMetricsTests(SimpleTestCase):
    def setUp(self) -> None:
        self.now = aware(2024, 5, 15, 12, 0)
        self.ann = Person(pk=1, first_name='Ann', last_name='Lee', status='member', join_date=date(2024, 5, 1))
        self.ben = Person(pk=2, first_name='Ben', last_name='Ortiz', status='visitor', first_visit=date(2024, 5, 10))
        self.cara = Person(pk=3, first_name='Cara', last_name='Diaz', status='member', join_date=date(2023, 1, 1))
        self.dan = Person(pk=4, first_name='Dan', last_name='Cho', status='inactive')
        self.gifts = [
            Giving(pk=1, person=self.ann, amount=Decimal('100'), fund='tithe', method='online',
                   date=date(2024, 5, 12), is_recurring=True),
            Giving(pk=2, person=self.ben, amount=Decimal('40'), fund='missions', method='cash', date=date(2024, 5, 1)),
            Giving(pk=3, person=self.cara, amount=Decimal('500'), fund='building', method='check', date=date(2024, 1, 1)),
        ]
        self.tasks = [
            Task(pk=1, title='Welcome call', due_date=date(2024, 5, 4), completed=True,
                 created_at=aware(2024, 5, 2, 9, 0)),
            Task(pk=2, title='Hospital visit', due_date=date(2024, 5, 1), created_at=aware(2024, 5, 3, 9, 0)),
            Task(pk=3, title='Budget review', due_date=date(2024, 6, 1), priority='high',
                 created_at=aware(2024, 1, 1, 9, 0)),
        ]
        self.attendance = [
            Attendance(pk=1, person=self.ann, event_type='sunday', date=date(2024, 5, 12)),
            Attendance(pk=2, person=self.ben, event_type='wednesday', date=date(2024, 5, 8)),
            Attendance(pk=3, person=self.ann, event_type='sunday', date=date(2024, 3, 1)),
        ]
        self.events = [CalendarEvent(pk=7, title='Sunday Service', start=aware(2024, 5, 12, 10, 0), recurrence='weekly')]

    def _metrics(self, period='30d'):
        return build_dashboard_metrics(
            period,
            self.now,
            people=[self.ann, self.ben, self.cara, self.dan],
            gifts=self.gifts,
            tasks=self.tasks,
            prayers=[],
            interactions=[],
            events=self.events,
            attendance=self.attendance,
        )

    def test_people_section(self) -> None:
        people = self._metrics()['people']
        self.assertEqual(people['total'], 4)
        self.assertEqual(people['total_active'], 3)
        self.assertEqual(people['conversion_rate'], 67)
        self.assertEqual(people['new_in_period'], 2)

    def test_giving_section_only_counts_the_period(self) -> None:
        giving = self._metrics()['giving']
        self.assertEqual(giving['total'], 140.0)
        self.assertEqual(giving['average'], 70.0)
        self.assertEqual(giving['count'], 2)
        self.assertEqual(giving['unique_donors'], 2)
        self.assertEqual(giving['recurring_total'], 100.0)
        self.assertEqual(giving['by_fund']['rows'][0]['key'], 'tithe')
        self.assertEqual(len(giving['trend']), 6)
        self.assertEqual(giving['trend'][-1], {'month': '2024-05', 'label': 'May', 'amount': 140.0})

        all_time = self._metrics('all')['giving']
        self.assertEqual(all_time['total'], 640.0)

    def test_tasks_and_attendance(self) -> None:
        metrics = self._metrics()
        self.assertEqual(metrics['tasks']['in_period'], 2)
        self.assertEqual(metrics['tasks']['completion_rate'], 50)
        self.assertEqual(metrics['tasks']['overdue'], 1)
        self.assertEqual(metrics['attendance']['checkins'], 2)
        self.assertEqual(metrics['attendance']['unique_attendees'], 2)
        self.assertEqual(metrics['attendance']['trend'][-3]['count'], 1)

    def test_upcoming_events_are_expanded(self) -> None:
        events = self._metrics()['events']
        self.assertEqual(events['upcoming'], 13)
        self.assertEqual(events['next'][0]['id'], '7_1')

    def test_growth_and_activity(self) -> None:
        metrics = self._metrics()
        self.assertEqual(metrics['growth'][-1]['count'], 2)
        self.assertEqual([item['type'] for item in metrics['activity']], ['giving', 'new_person', 'new_person'])
        self.assertEqual(metrics['activity'][0]['title'], '$100 donation')


class HealthScoreTests(SimpleTestCase):
    def test_components_are_averaged(self) -> None:
        status_counts = {'visitor': 1, 'regular': 0, 'member': 2, 'leader': 1, 'inactive': 1}
        scores = health_scores(status_counts, people_count=5, interaction_count=2, donor_count=2, task_completion_rate=50)
        self.assertEqual(scores, {'score': 40, 'retention': 60, 'engagement': 10, 'giving': 40, 'tasks': 50})

    def test_empty_congregation(self) -> None:
        self.assertEqual(health_scores({}, 0, 0, 0, 0)['score'], 0)


class DonorStatsTests(SimpleTestCase):
    def setUp(self) -> None:
        self.ann = Person(pk=1, first_name='Ann', last_name='Lee')
        self.ben = Person(pk=2, first_name='Ben', last_name='Ortiz')
        self.today = date(2024, 5, 20)
        self.gifts = [
            Giving(pk=1, person=self.ann, amount=Decimal('100'), fund='tithe', method='online', date=date(2024, 5, 12)),
            Giving(pk=2, person=self.ann, amount=Decimal('60'), fund='missions', method='cash', date=date(2023, 5, 1)),
            Giving(pk=3, person=self.ann, amount=Decimal('40'), fund='tithe', method='online', date=date(2024, 3, 10)),
            Giving(pk=4, person=self.ben, amount=Decimal('25'), fund='tithe', method='card', date=date(2024, 4, 2)),
        ]

    def test_member_statistics(self) -> None:
        stats = build_donor_stats(self.ann, self.gifts, self.today)
        self.assertEqual(stats['total_lifetime'], 200.0)
        self.assertEqual(stats['total_this_year'], 140.0)
        self.assertEqual(stats['total_last_year'], 60.0)
        self.assertEqual(stats['year_over_year_change'], 133.3)
        self.assertEqual(stats['average_gift'], 66.67)
        self.assertEqual(stats['largest_gift'], 100.0)
        self.assertEqual(stats['first_gift_date'], '2023-05-01')
        self.assertEqual(stats['last_gift_date'], '2024-05-12')
        self.assertEqual(stats['preferred_method'], 'online')
        self.assertEqual(stats['preferred_fund'], 'tithe')
        self.assertEqual(len(stats['monthly_giving']), 12)
        self.assertEqual(stats['giving_streak'], 1)

    def test_new_donor_change_and_no_gifts(self) -> None:
        stats = build_donor_stats(self.ben, self.gifts, self.today)
        self.assertEqual(stats['year_over_year_change'], 100.0)
        self.assertIsNone(build_donor_stats(Person(pk=9, first_name='No', last_name='Gifts'), self.gifts, self.today))

    def test_overview(self) -> None:
        overview = build_donor_overview(self.gifts, [self.ben, self.ann], self.today)
        self.assertEqual(overview['total_donors'], 2)
        self.assertEqual(overview['new_donors_this_year'], 1)
        self.assertEqual(overview['average_per_donor'], 112.5)
        self.assertEqual(overview['top_donor']['name'], 'Ann Lee')
        self.assertEqual(overview['fund_shares'], {'tithe': 73.3, 'missions': 26.7})
