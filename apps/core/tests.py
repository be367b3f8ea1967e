# apps/core/tests.py

import json
from datetime import datetime, timezone as dt_timezone
from io import StringIO
from unittest import mock

from django.core.exceptions import ValidationError
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import RequestFactory, TestCase
from django.urls import reverse
from django.utils import timezone

from apps.store.client import SERVER_TIMESTAMP, store
from apps.store.exceptions import StoreError, StoreErrorKind
from apps.store.models import Document

from .auth_service import AuthError, AuthErrorKind, auth_service
from .mappers import map_notification, map_personal_todo, map_project, map_task, map_user, to_datetime
from .models import TASKS, USERS, Account
from .notices import NoticeBoard
from .session import SessionContext

PASSWORD = 'Tr1cky-pass!'


def make_user(email, name='Someone', role='user', password=PASSWORD):
    """Account plus profile document, written the way registration does"""
    account = Account.objects.create_user(username=email, email=email, password=password)
    store.set(USERS, account.uid, {'name': name, 'email': email, 'role': role, 'createdAt': SERVER_TIMESTAMP})
    return account


class MapperTests(TestCase):

    def test_task_defaults(self):
        task = map_task('t1', {})

        self.assertEqual(task.title, '')
        self.assertEqual(task.priority, 'medium')
        self.assertEqual(task.status, 'todo')
        self.assertEqual(task.assigned_to, [])
        self.assertIsNone(task.due_date)
        self.assertIsNotNone(task.created_at)

    def test_assigned_to_is_normalized_to_a_list(self):
        self.assertEqual(map_task('t1', {'assignedTo': 'u1'}).assigned_to, ['u1'])
        self.assertEqual(map_task('t1', {'assignedTo': ['u1', '', None, 'u2']}).assigned_to, ['u1', 'u2'])

    def test_unknown_enumerations_fall_back(self):
        task = map_task('t1', {'priority': 'whenever', 'status': 'lost'})
        project = map_project('p1', {'status': 'archived'})

        self.assertEqual(task.priority, 'medium')
        self.assertEqual(task.status, 'todo')
        self.assertEqual(project.status, 'active')

    def test_missing_created_at_defaults_to_now(self):
        before = timezone.now()
        todo = map_personal_todo('p1', {'title': 'x'})

        self.assertGreaterEqual(todo.created_at, before)
        self.assertFalse(todo.completed)

    def test_malformed_timestamp(self):
        self.assertIsNone(to_datetime('not a date'))
        self.assertIsNone(to_datetime('2024-13-45'))
        self.assertIsNone(map_task('t1', {'dueDate': 'garbage'}).due_date)

    def test_well_formed_timestamps(self):
        todo = map_personal_todo('p1', {'createdAt': '2024-05-01T10:00:00+00:00', 'dueDate': '2024-05-03'})

        self.assertEqual(todo.created_at, datetime(2024, 5, 1, 10, tzinfo=dt_timezone.utc))
        self.assertEqual(todo.due_date, datetime(2024, 5, 3, tzinfo=dt_timezone.utc))

    def test_project_start_date_defaults_to_now(self):
        project = map_project('p1', {'name': 'Apollo'})

        self.assertIsNotNone(project.start_date)
        self.assertIsNone(project.end_date)

    def test_user_and_notification_defaults(self):
        user = map_user('u1', {'email': 'a@b.c'})
        notification = map_notification('n1', {'type': 'weird'})

        self.assertEqual(user.role, 'user')
        self.assertEqual(notification.type, 'general')
        self.assertFalse(notification.read)
        self.assertIsNone(notification.link)

    def test_overdue(self):
        past = '2000-01-01T00:00:00+00:00'

        self.assertTrue(map_task('t1', {'dueDate': past}).is_overdue())
        self.assertFalse(map_task('t1', {'dueDate': past, 'status': 'completed'}).is_overdue())
        self.assertFalse(map_task('t1', {}).is_overdue())


class RegistrationTests(TestCase):

    def registration(self, **overrides):
        data = {
            'name': 'Ada Lovelace',
            'email': 'ada@example.com',
            'password': PASSWORD,
            'confirm_password': PASSWORD,
        }
        data.update(overrides)
        return data

    def test_mismatched_passwords_write_nothing(self):
        with self.assertRaises(ValidationError) as ctx:
            auth_service.register(self.registration(confirm_password='Other-pass-9'))

        self.assertEqual(ctx.exception.messages, ['Passwords do not match'])
        self.assertEqual(Account.objects.count(), 0)
        self.assertEqual(Document.objects.count(), 0)

    def test_short_password_writes_nothing(self):
        with self.assertRaises(ValidationError):
            auth_service.register(self.registration(password='ab1', confirm_password='ab1'))

        self.assertEqual(Document.objects.count(), 0)

    def test_common_passwords_meet_the_length_rule(self):
        for index, password in enumerate(['password', '123456', 'qwerty12']):
            account = auth_service.register(self.registration(
                email=f'user{index}@example.com', password=password, confirm_password=password,
            ))

            self.assertTrue(account.check_password(password))
            self.assertEqual(store.get(USERS, account.uid).data['role'], 'user')

    def test_registration_always_creates_a_user_profile(self):
        account = auth_service.register(self.registration(role='admin'))

        profile = store.get(USERS, account.uid)
        self.assertEqual(profile.data['role'], 'user')
        self.assertEqual(profile.data['name'], 'Ada Lovelace')
        self.assertIn('createdAt', profile.data)

    def test_duplicate_email(self):
        auth_service.register(self.registration())

        with self.assertRaises(AuthError) as ctx:
            auth_service.register(self.registration(name='Other Ada'))

        self.assertEqual(ctx.exception.kind, AuthErrorKind.EMAIL_ALREADY_IN_USE)

    def test_invalid_email(self):
        with self.assertRaises(AuthError) as ctx:
            auth_service.register(self.registration(email='not-an-email'))

        self.assertEqual(ctx.exception.kind, AuthErrorKind.INVALID_EMAIL)
        self.assertEqual(Document.objects.count(), 0)

    def test_create_admin(self):
        account = auth_service.create_admin('Root', 'root@example.com', PASSWORD)

        profile = store.get(USERS, account.uid).data
        self.assertEqual(profile['role'], 'admin')
        self.assertTrue(profile['isInitialAdmin'])

    def test_init_admin_command(self):
        out = StringIO()
        call_command('init_admin', name='Root', email='root@example.com', password=PASSWORD, stdout=out)

        account = Account.objects.get(email='root@example.com')
        self.assertTrue(account.is_staff)
        self.assertEqual(store.get(USERS, account.uid).data['role'], 'admin')
        self.assertIn('Administrator created', out.getvalue())

    def test_init_admin_leaves_existing_role(self):
        existing = make_user('root@example.com', name='Root')
        out = StringIO()

        call_command('init_admin', name='Root', email='root@example.com', password=PASSWORD, stdout=out)

        self.assertEqual(store.get(USERS, existing.uid).data['role'], 'user')
        self.assertIn('already registered', out.getvalue())

    def test_init_admin_short_password(self):
        with self.assertRaises(CommandError):
            call_command('init_admin', name='Root', email='root@example.com', password='abc', stdout=StringIO())


class SessionContextTests(TestCase):

    def test_resolves_role_flags(self):
        manager = make_user('boss@example.com', name='Boss', role='manager')

        session = SessionContext.for_identity(manager)

        self.assertEqual(session.role, 'manager')
        self.assertTrue(session.is_manager)
        self.assertFalse(session.is_admin)
        self.assertEqual(session.display_name, 'Boss')

    def test_admin_is_also_manager(self):
        admin = make_user('root@example.com', role='admin')

        session = SessionContext.for_identity(admin)

        self.assertTrue(session.is_manager)
        self.assertTrue(session.is_admin)

    def test_fetch_failure_leaves_profile_unresolved(self):
        account = make_user('ada@example.com')
        failing_store = mock.Mock()
        failing_store.get.side_effect = StoreError(StoreErrorKind.UNAVAILABLE)

        session = SessionContext.for_identity(account, store=failing_store)

        self.assertTrue(session.is_authenticated)
        self.assertIsNone(session.role)
        self.assertFalse(session.is_manager)
        self.assertEqual(session.notices.last_message, 'Failed to load user data')

    def test_sign_out_clears_immediately(self):
        session = SessionContext.for_identity(make_user('ada@example.com'))

        session.on_auth_state_changed(None)

        self.assertFalse(session.is_authenticated)
        self.assertIsNone(session.profile)


class NoticeBoardTests(TestCase):

    def test_notice_response_with_htmx_trigger(self):
        from .notices import notice_response

        request = RequestFactory().post('/', HTTP_HX_REQUEST='true')
        request.htmx = True
        notices = NoticeBoard()
        notices.success('Saved')

        response = notice_response(request, notices, payload={'id': 'x'})

        body = json.loads(response.content)
        self.assertTrue(body['success'])
        self.assertEqual(body['message'], 'Saved')
        self.assertEqual(body['id'], 'x')
        self.assertIn('notice', json.loads(response['HX-Trigger']))
        self.assertEqual(len(notices), 0)


class AccountViewTests(TestCase):

    def post_json(self, url, data):
        return self.client.post(url, data=json.dumps(data), content_type='application/json')

    def test_register_signs_in(self):
        response = self.post_json(reverse('core:register'), {
            'name': 'Ada Lovelace',
            'email': 'ada@example.com',
            'password': PASSWORD,
            'confirm_password': PASSWORD,
            'role': 'admin',
        })

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()['user']['role'], 'user')

        me = self.client.get(reverse('core:me'))
        self.assertEqual(me.json()['user']['email'], 'ada@example.com')

    def test_register_mismatch_is_rejected(self):
        response = self.post_json(reverse('core:register'), {
            'name': 'Ada',
            'email': 'ada@example.com',
            'password': PASSWORD,
            'confirm_password': 'nope-nope-1',
        })

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'Passwords do not match')
        self.assertEqual(Account.objects.count(), 0)

    def test_login_and_logout(self):
        make_user('ada@example.com', name='Ada', role='manager')

        response = self.post_json(reverse('core:login'), {'email': 'ada@example.com', 'password': PASSWORD})

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()['user']['is_manager'])
        self.assertEqual(response['X-User-Role'], 'manager')

        self.client.post(reverse('core:logout'))
        self.assertEqual(self.client.get(reverse('core:me')).status_code, 401)

    def test_login_with_bad_password(self):
        make_user('ada@example.com')

        response = self.post_json(reverse('core:login'), {'email': 'ada@example.com', 'password': 'wrong-pass-1'})

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()['code'], AuthErrorKind.INVALID_CREDENTIAL.value)

    def test_health(self):
        response = self.client.get(reverse('core:health'))

        self.assertEqual(response.json()['status'], 'healthy')


class UserAdministrationTests(TestCase):

    def setUp(self):
        self.admin = make_user('root@example.com', name='Root', role='admin')
        self.manager = make_user('boss@example.com', name='Boss', role='manager')
        self.user = make_user('ada@example.com', name='Ada')

    def test_users_list_requires_manager(self):
        self.client.force_login(self.user)
        self.assertEqual(self.client.get(reverse('core:users')).status_code, 403)

        self.client.force_login(self.manager)
        response = self.client.get(reverse('core:users'))
        self.assertEqual(response.json()['count'], 3)

    def test_users_list_counts_tasks(self):
        store.add(TASKS, {'title': 'a', 'assignedTo': [self.user.uid], 'status': 'completed'})
        store.add(TASKS, {'title': 'b', 'assignedTo': [self.user.uid, self.manager.uid], 'status': 'todo'})
        self.client.force_login(self.admin)

        users = {row['email']: row for row in self.client.get(reverse('core:users')).json()['users']}

        self.assertEqual(users['ada@example.com']['assigned_tasks'], 2)
        self.assertEqual(users['ada@example.com']['completed_tasks'], 1)
        self.assertEqual(users['boss@example.com']['pending_tasks'], 1)

    def test_admin_changes_role(self):
        self.client.force_login(self.admin)

        response = self.client.post(reverse('core:change_role', args=[self.user.uid]), {'role': 'manager'})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(store.get(USERS, self.user.uid).data['role'], 'manager')

    def test_admin_cannot_change_own_role(self):
        self.client.force_login(self.admin)

        response = self.client.post(reverse('core:change_role', args=[self.admin.uid]), {'role': 'user'})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(store.get(USERS, self.admin.uid).data['role'], 'admin')

    def test_manager_cannot_change_roles(self):
        self.client.force_login(self.manager)

        response = self.client.post(reverse('core:change_role', args=[self.user.uid]), {'role': 'admin'})

        self.assertEqual(response.status_code, 403)

    def test_delete_user_unassigns_tasks(self):
        shared = store.add(TASKS, {'title': 'shared', 'assignedTo': [self.user.uid, self.manager.uid]})
        solo = store.add(TASKS, {'title': 'solo', 'assignedTo': [self.user.uid]})
        self.client.force_login(self.admin)

        response = self.client.post(reverse('core:delete_user', args=[self.user.uid]))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['tasks_updated'], 1)
        self.assertEqual(response.json()['tasks_deleted'], 1)
        self.assertEqual(store.get(TASKS, shared).data['assignedTo'], [self.manager.uid])
        self.assertFalse(store.get(TASKS, solo).exists)
        self.assertFalse(store.get(USERS, self.user.uid).exists)
        self.assertFalse(Account.objects.filter(email='ada@example.com').exists())

    def test_admin_cannot_delete_self(self):
        self.client.force_login(self.admin)

        response = self.client.post(reverse('core:delete_user', args=[self.admin.uid]))

        self.assertEqual(response.status_code, 400)
        self.assertTrue(Account.objects.filter(pk=self.admin.pk).exists())
