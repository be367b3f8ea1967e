# apps/reports/tests.py

from datetime import datetime, timedelta, timezone as dt_timezone
from io import BytesIO
from zipfile import ZipFile

from django.test import TestCase, override_settings
from django.urls import reverse
from django.utils import timezone

from apps.core.mappers import map_personal_todo, map_project, map_task
from apps.core.models import PERSONAL_TODOS, PROJECTS, TASKS
from apps.core.tests import make_user
from apps.store.client import SERVER_TIMESTAMP, store

from .utils import build_calendar_events, calculate_dashboard_metrics, calculate_project_stats

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=dt_timezone.utc)


def task(doc_id, **data):
    return map_task(doc_id, data)


class ProjectStatsTests(TestCase):

    def test_counts_by_status(self):
        tasks = [
            task('a', status='completed'),
            task('b', status='in-progress'),
            task('c', status='todo'),
            task('d', status='review'),
        ]

        stats = calculate_project_stats(tasks, now=NOW)

        self.assertEqual(stats, {'total': 4, 'completed': 1, 'in_progress': 1, 'todo': 1, 'overdue': 0})

    def test_overdue_needs_past_end_date_and_open_status(self):
        yesterday = (NOW - timedelta(days=1)).isoformat()
        tasks = [
            task('a', status='todo', endDate=yesterday),
            task('b', status='completed', endDate=yesterday),
            task('c', status='todo', endDate=(NOW + timedelta(days=1)).isoformat()),
            task('d', status='todo'),
        ]

        self.assertEqual(calculate_project_stats(tasks, now=NOW)['overdue'], 1)

    def test_dashboard_metrics(self):
        projects = [map_project('p1', {'name': 'Apollo'}), map_project('p2', {'name': 'Gemini', 'status': 'on-hold'})]
        tasks = [
            task('a', projectId='p1', status='completed', priority='high', assignedTo=['u1']),
            task('b', projectId='p1', status='todo', assignedTo=['u1', 'u2']),
            task('c', projectId='p2', status='todo', priority='urgent', assignedTo=['u2'],
                 dueDate=(NOW - timedelta(hours=1)).isoformat()),
        ]

        metrics = calculate_dashboard_metrics(projects, tasks, users={'u1': 'Ada'}, now=NOW)

        self.assertEqual(metrics['totals']['projects'], 2)
        self.assertEqual(metrics['totals']['active_projects'], 1)
        self.assertEqual(metrics['totals']['completion_rate'], 33.3)
        self.assertEqual(metrics['tasks_by_status']['todo'], 2)
        self.assertEqual(metrics['tasks_by_priority']['medium'], 1)
        self.assertEqual(metrics['overdue'], 1)
        self.assertEqual(metrics['projects'][0]['id'], 'p1')
        self.assertEqual(metrics['projects'][0]['stats']['total'], 2)
        self.assertEqual(metrics['top_assignees'][0]['assigned'], 2)
        self.assertEqual(
            {row['id']: row['completed'] for row in metrics['top_assignees']},
            {'u1': 1, 'u2': 0}
        )

    def test_metrics_without_tasks(self):
        metrics = calculate_dashboard_metrics([], [], now=NOW)

        self.assertEqual(metrics['totals']['completion_rate'], 0)
        self.assertEqual(metrics['top_assignees'], [])


class CalendarEventTests(TestCase):

    def test_events_use_dates_with_fallbacks(self):
        due = NOW + timedelta(days=2)
        tasks = [
            task('spans', title='Spans', startDate=NOW.isoformat(), endDate=(NOW + timedelta(days=3)).isoformat()),
            task('due', title='Due only', dueDate=due.isoformat()),
            task('undated', title='Undated'),
        ]
        todos = [
            map_personal_todo('t1', {'title': 'Dentist', 'dueDate': (NOW + timedelta(days=1)).isoformat()}),
            map_personal_todo('t2', {'title': 'Someday'}),
        ]

        events = build_calendar_events(tasks, todos)

        self.assertEqual([event['id'] for event in events], ['task-spans', 'todo-t1', 'task-due'])
        self.assertEqual(events[2]['start'], events[2]['end'])
        self.assertEqual(events[1]['kind'], 'todo')

    def test_window_filters_events(self):
        tasks = [
            task('early', startDate=(NOW - timedelta(days=10)).isoformat(),
                 endDate=(NOW - timedelta(days=9)).isoformat()),
            task('overlapping', startDate=(NOW - timedelta(days=1)).isoformat(),
                 endDate=(NOW + timedelta(days=1)).isoformat()),
            task('late', dueDate=(NOW + timedelta(days=30)).isoformat()),
        ]

        events = build_calendar_events(tasks, [], start=NOW, end=NOW + timedelta(days=7))

        self.assertEqual([event['id'] for event in events], ['task-overlapping'])


class ReportViewTests(TestCase):

    def setUp(self):
        self.boss = make_user('boss@example.com', name='Boss', role='manager')
        self.ada = make_user('ada@example.com', name='Ada')
        self.bob = make_user('bob@example.com', name='Bob')

        self.project_id = store.add(PROJECTS, {
            'name': 'Apollo Launch',
            'managerId': self.boss.uid,
            'status': 'active',
            'startDate': SERVER_TIMESTAMP,
            'createdAt': SERVER_TIMESTAMP,
        })
        soon = (timezone.now() + timedelta(days=2)).isoformat()
        self.ada_task = store.add(TASKS, {
            'title': 'Fuel check',
            'projectId': self.project_id,
            'assignedTo': [self.ada.uid],
            'assignedBy': self.boss.uid,
            'status': 'completed',
            'priority': 'high',
            'dueDate': soon,
            'createdAt': SERVER_TIMESTAMP,
        })
        self.bob_task = store.add(TASKS, {
            'title': 'Telemetry',
            'projectId': self.project_id,
            'assignedTo': [self.bob.uid],
            'assignedBy': self.boss.uid,
            'status': 'todo',
            'dueDate': soon,
            'createdAt': SERVER_TIMESTAMP,
        })

    def test_metrics_require_manager(self):
        self.assertEqual(self.client.get(reverse('reports:api_metrics')).status_code, 401)

        self.client.force_login(self.ada)
        self.assertEqual(self.client.get(reverse('reports:api_metrics')).status_code, 403)

    def test_metrics_for_manager(self):
        self.client.force_login(self.boss)

        response = self.client.get(reverse('reports:api_metrics'))

        self.assertEqual(response.status_code, 200)
        metrics = response.json()['metrics']
        self.assertEqual(metrics['totals']['tasks'], 2)
        self.assertEqual(metrics['projects'][0]['stats']['completed'], 1)
        self.assertEqual(sorted(row['name'] for row in metrics['top_assignees']), ['Ada', 'Bob'])

    def test_calendar_shows_own_items_to_users(self):
        store.add(PERSONAL_TODOS, {
            'title': 'Dentist',
            'userId': self.ada.uid,
            'completed': False,
            'dueDate': (timezone.now() + timedelta(days=1)).isoformat(),
            'createdAt': SERVER_TIMESTAMP,
        })
        self.client.force_login(self.ada)

        events = self.client.get(reverse('reports:calendar')).json()['events']

        self.assertEqual(sorted(event['title'] for event in events), ['Dentist', 'Fuel check'])

    def test_calendar_shows_every_task_to_managers(self):
        self.client.force_login(self.boss)

        events = self.client.get(reverse('reports:calendar')).json()['events']

        self.assertEqual(sorted(event['title'] for event in events), ['Fuel check', 'Telemetry'])

    def test_calendar_rejects_inverted_window(self):
        self.client.force_login(self.ada)

        response = self.client.get(reverse('reports:calendar'), {'start': '2026-05-10', 'end': '2026-05-01'})

        self.assertEqual(response.status_code, 400)

    def test_csv_export(self):
        self.client.force_login(self.boss)

        response = self.client.get(reverse('reports:project_csv', args=[self.project_id]))

        self.assertEqual(response.status_code, 200)
        self.assertIn('project_Apollo_Launch.csv', response['Content-Disposition'])
        lines = response.content.decode('utf-8-sig').splitlines()
        self.assertEqual(lines[0].split(',')[0], 'ID')
        self.assertEqual(len(lines), 3)
        self.assertTrue(any('Ada' in line and 'Fuel check' in line for line in lines))

    @override_settings(ORBIT_REPORTS_MAX_ITEMS=1)
    def test_export_is_capped(self):
        self.client.force_login(self.boss)

        response = self.client.get(reverse('reports:project_csv', args=[self.project_id]))

        self.assertEqual(len(response.content.decode('utf-8-sig').splitlines()), 2)

    def test_xlsx_export(self):
        self.client.force_login(self.boss)

        response = self.client.get(reverse('reports:project_xlsx', args=[self.project_id]))

        self.assertEqual(response.status_code, 200)
        self.assertIn('spreadsheetml', response['Content-Type'])
        with ZipFile(BytesIO(response.content)) as archive:
            workbook = archive.read('xl/workbook.xml').decode()
        self.assertIn('Summary', workbook)
        self.assertIn('Tasks', workbook)

    def test_export_of_missing_project(self):
        self.client.force_login(self.boss)

        response = self.client.get(reverse('reports:project_csv', args=['missing']))

        self.assertEqual(response.status_code, 404)

    def test_export_requires_manager(self):
        self.client.force_login(self.ada)

        response = self.client.get(reverse('reports:project_xlsx', args=[self.project_id]))

        self.assertEqual(response.status_code, 403)
