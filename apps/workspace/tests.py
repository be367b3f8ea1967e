# apps/workspace/tests.py

import json
from datetime import datetime, timedelta
from io import StringIO
from unittest import mock

from asgiref.sync import async_to_sync
from channels.db import database_sync_to_async
from channels.routing import URLRouter
from channels.testing import WebsocketCommunicator
from django.contrib.auth.models import AnonymousUser
from django.core.exceptions import PermissionDenied, ValidationError
from django.core.management import call_command
from django.test import TestCase, TransactionTestCase
from django.urls import reverse
from django.utils import timezone

from apps.core.models import NOTIFICATIONS, PERSONAL_TODOS, PROJECTS, TASKS
from apps.core.session import SessionContext
from apps.core.tests import make_user
from apps.store.client import store
from apps.store.exceptions import StoreError, StoreErrorKind

from .controllers import NotificationController, PersonalTodoController, ProjectController, TaskController
from .routing import websocket_urlpatterns


def session_for(account):
    return SessionContext.for_identity(account)


def notifications_of(user_id):
    return store.query(store.collection(NOTIFICATIONS).where('userId', '==', user_id))


class PersonalTodoControllerTests(TestCase):

    def setUp(self):
        self.ada = make_user('ada@example.com', name='Ada')
        self.session = session_for(self.ada)

    def test_buy_milk(self):
        with PersonalTodoController(self.session) as todos:
            todo_id = todos.add('Buy milk', priority='high')

            self.assertEqual(len(todos.items), 1)
            self.assertFalse(todos.items[0].completed)
            self.assertEqual(todos.items[0].priority, 'high')

            todos.toggle(todo_id)
            self.assertTrue(todos.items[0].completed)

            todos.delete(todo_id)
            self.assertEqual(todos.items, [])

    def test_add_defaults_to_medium(self):
        with PersonalTodoController(self.session) as todos:
            todos.add('  Water plants  ')

            self.assertEqual(len(todos.items), 1)
            self.assertEqual(todos.items[0].title, 'Water plants')
            self.assertEqual(todos.items[0].priority, 'medium')
            self.assertFalse(todos.loading)
            self.assertEqual(todos.notices.last_message, 'Personal todo added!')

    def test_empty_title_writes_nothing(self):
        todos = PersonalTodoController(self.session)

        with self.assertRaises(ValidationError):
            todos.add('   ')

        self.assertEqual(store.query(todos.build_query()).size, 0)

    def test_toggle_twice_restores_and_refreshes_updated_at(self):
        todos = PersonalTodoController(self.session)
        todo_id = todos.add('Call mom')

        def updated_at():
            return datetime.fromisoformat(store.get(PERSONAL_TODOS, todo_id).data['updatedAt'])

        created_at = store.get(PERSONAL_TODOS, todo_id).data['createdAt']
        first = updated_at()

        self.assertTrue(todos.toggle(todo_id))
        second = updated_at()
        self.assertFalse(todos.toggle(todo_id))
        third = updated_at()

        self.assertFalse(store.get(PERSONAL_TODOS, todo_id).data['completed'])
        self.assertLess(first, second)
        self.assertLess(second, third)
        self.assertEqual(store.get(PERSONAL_TODOS, todo_id).data['createdAt'], created_at)

    def test_incomplete_first_then_newest(self):
        with PersonalTodoController(self.session) as todos:
            first = todos.add('first')
            second = todos.add('second')
            third = todos.add('third')
            todos.toggle(second)

            self.assertEqual([todo.id for todo in todos.items], [third, first, second])

            todos.toggle(third)
            self.assertEqual([todo.id for todo in todos.items], [first, third, second])

    def test_delete_removes_exactly_one(self):
        with PersonalTodoController(self.session) as todos:
            keep = todos.add('keep')
            drop = todos.add('drop')

            todos.delete(drop)

            self.assertEqual([todo.id for todo in todos.items], [keep])

    def test_edit_writes_only_given_fields(self):
        todos = PersonalTodoController(self.session)
        todo_id = todos.add('Draft', description='notes', priority='low')
        before = store.get(PERSONAL_TODOS, todo_id).data

        todos.edit(todo_id, title='Final')

        after = store.get(PERSONAL_TODOS, todo_id).data
        self.assertEqual(after['title'], 'Final')
        self.assertEqual(after['description'], 'notes')
        self.assertEqual(after['priority'], 'low')
        self.assertEqual(after['createdAt'], before['createdAt'])
        self.assertEqual(after['userId'], self.ada.uid)

    def test_only_own_todos_are_listed_and_editable(self):
        bob = make_user('bob@example.com', name='Bob')
        bobs_todo = PersonalTodoController(session_for(bob)).add('secret')

        with PersonalTodoController(self.session) as todos:
            todos.add('mine')
            self.assertEqual(len(todos.items), 1)

            with self.assertRaises(PermissionDenied):
                todos.delete(bobs_todo)

    def test_subscription_error_keeps_last_list(self):
        with PersonalTodoController(self.session) as todos:
            todos.add('survivor')

            failure = StoreError(StoreErrorKind.UNAVAILABLE, 'database went away')
            with mock.patch.object(store, 'query', side_effect=failure):
                todos.add('lost update')

            self.assertFalse(todos.live)
            self.assertFalse(todos.loading)
            self.assertIs(todos.error, failure)
            self.assertEqual([todo.title for todo in todos.items], ['survivor'])
            self.assertIn('Failed to load todos', [notice.message for notice in todos.notices])

    def test_write_failure_becomes_a_notice(self):
        todos = PersonalTodoController(self.session)

        with mock.patch.object(store, 'add', side_effect=StoreError(StoreErrorKind.UNAVAILABLE)):
            self.assertIsNone(todos.add('nope'))

        self.assertTrue(todos.notices.has_errors)
        self.assertEqual(todos.notices.last_message, 'Failed to add todo')

    def test_listeners_receive_every_published_list(self):
        published = []
        with PersonalTodoController(self.session) as todos:
            todos.add_listener(published.append)
            todos.add('one')
            todos.add('two')

        self.assertEqual([len(items) for items in published], [1, 2])

    def test_close_stops_updates(self):
        todos = PersonalTodoController(self.session).open()
        todos.close()

        PersonalTodoController(self.session).add('later')

        self.assertEqual(todos.items, [])
        self.assertEqual(store.subscription_count(PERSONAL_TODOS), 0)

    def test_anonymous_session_is_refused(self):
        with self.assertRaises(PermissionDenied):
            PersonalTodoController(SessionContext.for_identity(AnonymousUser()))


class ProjectAndTaskControllerTests(TestCase):

    def setUp(self):
        self.boss = make_user('boss@example.com', name='Boss', role='manager')
        self.ada = make_user('ada@example.com', name='Ada')
        self.bob = make_user('bob@example.com', name='Bob')
        self.manager_session = session_for(self.boss)
        self.project_id = ProjectController(self.manager_session).create('Apollo', description='Moon')

    def create_task(self, **overrides):
        data = {'title': 'Build rocket', 'project_id': self.project_id, 'assigned_to': [self.ada.uid]}
        data.update(overrides)
        return TaskController(self.manager_session).create(**data)

    def test_users_cannot_manage_projects(self):
        with self.assertRaises(PermissionDenied):
            ProjectController(session_for(self.ada)).create('Gemini')

    def test_project_end_before_start_is_rejected(self):
        start = timezone.now()
        with self.assertRaises(ValidationError):
            ProjectController(self.manager_session).create('Gemini', start_date=start, end_date=start - timedelta(days=1))

    def test_project_dates_accept_plain_dates(self):
        projects = ProjectController(self.manager_session)
        today = timezone.now().date()

        with self.assertRaises(ValidationError):
            projects.update(self.project_id, {'end_date': today - timedelta(days=1)})

        self.assertTrue(projects.update(self.project_id, {'end_date': today + timedelta(days=2)}))
        self.assertEqual(projects.load(self.project_id).end_date.date(), today + timedelta(days=2))

    def test_project_manager_is_the_creator(self):
        project = ProjectController(self.manager_session).load(self.project_id)

        self.assertEqual(project.manager_id, self.boss.uid)
        self.assertEqual(project.status, 'active')

    def test_project_update_never_touches_manager(self):
        projects = ProjectController(self.manager_session)

        projects.update(self.project_id, {'name': 'Apollo 11', 'manager_id': self.ada.uid})

        project = projects.load(self.project_id)
        self.assertEqual(project.name, 'Apollo 11')
        self.assertEqual(project.manager_id, self.boss.uid)

    def test_project_delete_keeps_tasks(self):
        task_id = self.create_task()

        ProjectController(self.manager_session).delete(self.project_id)

        self.assertTrue(store.get(TASKS, task_id).exists)

    def test_create_task_notifies_assignees_except_creator(self):
        self.create_task(assigned_to=[self.ada.uid, self.boss.uid, self.ada.uid])

        ada_notifications = notifications_of(self.ada.uid)
        self.assertEqual(ada_notifications.size, 1)
        self.assertEqual(ada_notifications.docs[0].data['type'], 'task-assigned')
        self.assertIn('"Apollo"', ada_notifications.docs[0].data['message'])
        self.assertEqual(notifications_of(self.boss.uid).size, 0)

    def test_failed_project_lookup_writes_no_task(self):
        real_get = store.get

        def get_without_projects(collection, doc_id):
            if collection == PROJECTS:
                raise StoreError(StoreErrorKind.UNAVAILABLE, 'down')
            return real_get(collection, doc_id)

        tasks = TaskController(self.manager_session)
        with mock.patch.object(store, 'get', side_effect=get_without_projects):
            task_id = tasks.create('Build rocket', self.project_id, assigned_to=[self.ada.uid])

        self.assertIsNone(task_id)
        self.assertEqual([notice.message for notice in tasks.notices], ['Failed to create task'])
        self.assertEqual(store.query(store.collection(TASKS)).size, 0)
        self.assertEqual(notifications_of(self.ada.uid).size, 0)

    def test_assigned_to_has_no_duplicates(self):
        task_id = self.create_task(assigned_to=[self.ada.uid, self.ada.uid, self.bob.uid])

        self.assertEqual(store.get(TASKS, task_id).data['assignedTo'], [self.ada.uid, self.bob.uid])

    def test_users_cannot_create_tasks(self):
        with self.assertRaises(PermissionDenied):
            TaskController(session_for(self.ada)).create('Sneaky', self.project_id)

    def test_users_only_see_their_tasks(self):
        mine = self.create_task(title='mine')
        self.create_task(title='theirs', assigned_to=[self.bob.uid])

        ada_tasks = TaskController(session_for(self.ada)).refresh()
        boss_tasks = TaskController(self.manager_session).refresh()

        self.assertEqual([task.id for task in ada_tasks], [mine])
        self.assertEqual(len(boss_tasks), 2)

    def test_tasks_are_newest_first(self):
        older = self.create_task(title='older')
        newer = self.create_task(title='newer')

        tasks = TaskController(self.manager_session, project_id=self.project_id).refresh()

        self.assertEqual([task.id for task in tasks], [newer, older])

    def test_assignee_cannot_reassign(self):
        task_id = self.create_task()

        TaskController(session_for(self.ada)).update(task_id, {
            'title': 'Build bigger rocket',
            'assigned_to': [self.bob.uid],
        })

        data = store.get(TASKS, task_id).data
        self.assertEqual(data['title'], 'Build bigger rocket')
        self.assertEqual(data['assignedTo'], [self.ada.uid])
        self.assertEqual(data['assignedBy'], self.boss.uid)

    def test_others_cannot_edit(self):
        task_id = self.create_task()

        with self.assertRaises(PermissionDenied):
            TaskController(session_for(self.bob)).update_status(task_id, 'completed')

    def test_completion_notifies_the_assigner(self):
        task_id = self.create_task()

        TaskController(session_for(self.ada)).update_status(task_id, 'completed')

        boss_notifications = notifications_of(self.boss.uid)
        self.assertEqual(boss_notifications.size, 1)
        self.assertEqual(boss_notifications.docs[0].data['type'], 'task-completed')
        self.assertIn('Ada', boss_notifications.docs[0].data['message'])

    def test_assigner_completing_is_not_notified(self):
        task_id = self.create_task()

        TaskController(self.manager_session).update_status(task_id, 'completed')

        self.assertEqual(notifications_of(self.boss.uid).size, 0)

    def test_missing_task(self):
        tasks = TaskController(self.manager_session)

        with self.assertRaises(StoreError) as ctx:
            tasks.update_status('ghost', 'review')

        self.assertEqual(ctx.exception.kind, StoreErrorKind.NOT_FOUND)
        self.assertEqual(tasks.notices.last_message, 'Task not found')


class NotificationControllerTests(TestCase):

    def setUp(self):
        self.ada = make_user('ada@example.com', name='Ada')
        self.bob = make_user('bob@example.com', name='Bob')
        self.controller = NotificationController(session_for(self.ada))
        for index in range(3):
            store.add(NOTIFICATIONS, {'userId': self.ada.uid, 'type': 'general', 'title': f'n{index}',
                                      'message': '', 'read': False})
        self.foreign = store.add(NOTIFICATIONS, {'userId': self.bob.uid, 'type': 'general', 'title': 'bob',
                                                 'message': '', 'read': False})

    def test_unread_count_and_mark_all(self):
        self.controller.refresh()
        self.assertEqual(self.controller.unread_count, 3)

        self.assertEqual(self.controller.mark_all_read(), 3)

        self.controller.refresh()
        self.assertEqual(self.controller.unread_count, 0)
        self.assertFalse(store.get(NOTIFICATIONS, self.foreign).data['read'])

    def test_delete_selected(self):
        ids = [notification.id for notification in self.controller.refresh()][:2]

        self.assertEqual(self.controller.delete_selected(ids), 2)

        self.assertEqual(len(self.controller.refresh()), 1)
        self.assertEqual(self.controller.notices.last_message, '2 notifications deleted')

    def test_foreign_notifications_are_refused(self):
        with self.assertRaises(PermissionDenied):
            self.controller.mark_read(self.foreign)

        with self.assertRaises(PermissionDenied):
            self.controller.delete_selected([self.foreign])

        self.assertTrue(store.get(NOTIFICATIONS, self.foreign).exists)

    def test_clear_all(self):
        self.assertEqual(self.controller.clear_all(), 3)
        self.assertEqual(self.controller.refresh(), [])


class WorkspaceViewTests(TestCase):

    def setUp(self):
        self.boss = make_user('boss@example.com', name='Boss', role='manager')
        self.ada = make_user('ada@example.com', name='Ada')

    def post_json(self, url, data=None):
        return self.client.post(url, data=json.dumps(data or {}), content_type='application/json')

    def test_requires_sign_in(self):
        self.assertEqual(self.client.get(reverse('workspace:todo_list')).status_code, 401)

    def test_todo_flow(self):
        self.client.force_login(self.ada)

        added = self.post_json(reverse('workspace:todo_add'), {'title': 'Buy milk', 'priority': 'high'})
        self.assertEqual(added.status_code, 200)
        todo_id = added.json()['id']

        listing = self.client.get(reverse('workspace:todo_list')).json()
        self.assertEqual(listing['items'][0]['priority'], 'high')
        self.assertEqual(listing['stats']['pending'], 1)

        toggled = self.post_json(reverse('workspace:todo_toggle', args=[todo_id]))
        self.assertTrue(toggled.json()['completed'])
        self.assertEqual(toggled.json()['message'], 'Todo completed!')

        self.post_json(reverse('workspace:todo_delete', args=[todo_id]))
        self.assertEqual(self.client.get(reverse('workspace:todo_list')).json()['items'], [])

    def test_empty_title_is_a_notice(self):
        self.client.force_login(self.ada)

        response = self.post_json(reverse('workspace:todo_add'), {'title': ''})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'Title is required')

    def test_htmx_requests_get_a_client_event(self):
        self.client.force_login(self.ada)

        response = self.client.post(reverse('workspace:todo_add'), {'title': 'From htmx'}, HTTP_HX_REQUEST='true')

        self.assertIn('notice', json.loads(response['HX-Trigger']))

    def test_task_creation_is_for_managers(self):
        self.client.force_login(self.boss)
        project_id = self.post_json(reverse('workspace:project_create'), {'name': 'Apollo'}).json()['id']

        self.client.force_login(self.ada)
        refused = self.post_json(reverse('workspace:task_create'), {'title': 'x', 'project_id': project_id})
        self.assertEqual(refused.status_code, 403)

        self.client.force_login(self.boss)
        created = self.post_json(reverse('workspace:task_create'), {
            'title': 'Build rocket',
            'project_id': project_id,
            'assigned_to': [self.ada.uid],
            'due_date': '2030-01-01T12:00:00Z',
        })
        self.assertEqual(created.status_code, 200)

        projects = self.client.get(reverse('workspace:project_list')).json()['items']
        self.assertEqual(projects[0]['task_count'], 1)

        self.client.force_login(self.ada)
        notifications = self.client.get(reverse('workspace:notification_list')).json()
        self.assertEqual(notifications['unread_count'], 1)

    def test_unknown_task_is_404(self):
        self.client.force_login(self.boss)

        response = self.post_json(reverse('workspace:task_status', args=['ghost']), {'status': 'review'})

        self.assertEqual(response.status_code, 404)


class DeadlineReminderCommandTests(TestCase):

    def setUp(self):
        self.ada = make_user('ada@example.com', name='Ada')
        soon = (timezone.now() + timedelta(hours=6)).isoformat()
        later = (timezone.now() + timedelta(days=10)).isoformat()
        store.add(TASKS, {'title': 'soon', 'assignedTo': [self.ada.uid], 'status': 'todo', 'dueDate': soon})
        store.add(TASKS, {'title': 'later', 'assignedTo': [self.ada.uid], 'status': 'todo', 'dueDate': later})
        store.add(TASKS, {'title': 'done', 'assignedTo': [self.ada.uid], 'status': 'completed', 'dueDate': soon})

    def test_dry_run_writes_nothing(self):
        out = StringIO()
        call_command('send_deadline_reminders', '--dry-run', stdout=out)

        self.assertIn('would notify', out.getvalue())
        self.assertEqual(notifications_of(self.ada.uid).size, 0)

    def test_reminders_are_sent(self):
        call_command('send_deadline_reminders', stdout=StringIO())

        reminders = notifications_of(self.ada.uid)
        self.assertEqual(reminders.size, 1)
        self.assertEqual(reminders.docs[0].data['type'], 'deadline-reminder')
        self.assertIn('"soon"', reminders.docs[0].data['message'])


class LiveFeedTests(TransactionTestCase):

    def test_snapshot_on_connect_and_after_changes(self):
        ada = make_user('ada@example.com', name='Ada')
        async_to_sync(self.run_feed)(ada)

    def test_anonymous_connection_is_rejected(self):
        async_to_sync(self.run_anonymous)()

    async def run_feed(self, user):
        baseline = store.subscription_count(PERSONAL_TODOS)
        communicator = WebsocketCommunicator(URLRouter(websocket_urlpatterns), '/ws/lists/todos/')
        communicator.scope['user'] = user

        connected, _ = await communicator.connect()
        self.assertTrue(connected)

        first = await communicator.receive_json_from(timeout=5)
        self.assertEqual(first['type'], 'snapshot')
        self.assertEqual(first['items'], [])
        self.assertEqual(store.subscription_count(PERSONAL_TODOS), baseline + 1)

        await database_sync_to_async(store.add)(PERSONAL_TODOS, {
            'title': 'Live one', 'userId': user.uid, 'completed': False, 'priority': 'low',
        })

        second = await communicator.receive_json_from(timeout=5)
        self.assertEqual([item['title'] for item in second['items']], ['Live one'])

        await communicator.send_json_to({'type': 'ping'})
        pong = await communicator.receive_json_from(timeout=5)
        self.assertEqual(pong['type'], 'pong')

        await communicator.disconnect()
        self.assertEqual(store.subscription_count(PERSONAL_TODOS), baseline)

    async def run_anonymous(self):
        communicator = WebsocketCommunicator(URLRouter(websocket_urlpatterns), '/ws/lists/tasks/')
        communicator.scope['user'] = AnonymousUser()

        connected, _ = await communicator.connect()

        self.assertFalse(connected)

    def test_failed_feed_stays_silent_after_changes(self):
        ada = make_user('ada@example.com', name='Ada')
        async_to_sync(self.run_failing_feed)(ada)

    async def run_failing_feed(self, user):
        baseline = store.subscription_count(PERSONAL_TODOS)
        communicator = WebsocketCommunicator(URLRouter(websocket_urlpatterns), '/ws/lists/todos/')
        communicator.scope['user'] = user

        with mock.patch.object(store, 'query', side_effect=StoreError(StoreErrorKind.UNAVAILABLE, 'down')):
            connected, _ = await communicator.connect()
            self.assertTrue(connected)
            first = await communicator.receive_json_from(timeout=5)

        self.assertEqual(first['type'], 'error')
        self.assertEqual(first['message'], 'Failed to load todos')
        self.assertEqual(store.subscription_count(PERSONAL_TODOS), baseline)

        await database_sync_to_async(store.add)(PERSONAL_TODOS, {
            'title': 'Written after the failure', 'userId': user.uid, 'completed': False,
        })
        self.assertTrue(await communicator.receive_nothing(timeout=0.5))

        await communicator.send_json_to({'type': 'refresh'})
        self.assertTrue(await communicator.receive_nothing(timeout=0.5))

        await communicator.disconnect()
