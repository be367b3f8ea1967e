# apps/workspace/controllers.py

"""
List synchronization controllers

Each controller owns one live list: it subscribes to a filtered
collection, maps every snapshot to typed records, sorts them and
publishes the whole list again. Writes go straight to the store; the
list catches up through the next snapshot.

Principles applied:
- A snapshot always replaces the list, never patches it
- Store failures become notices; the last known list is kept
- Validation happens before any write
"""

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from django.core.exceptions import PermissionDenied, ValidationError

from apps.core.mappers import (
    DEFAULT_PRIORITY, PRIORITIES, PROJECT_STATUSES, TASK_STATUSES,
    map_notification, map_personal_todo, map_project, map_task, to_datetime,
)
from apps.core.models import NOTIFICATIONS, PERSONAL_TODOS, PROJECTS, TASKS
from apps.core.notices import NoticeBoard
from apps.core.permissions import RolePermissions
from apps.store.client import SERVER_TIMESTAMP, DocumentStore, Query, QuerySnapshot, store as default_store
from apps.store.exceptions import StoreError, StoreErrorKind

from .notifications import NotificationService

logger = logging.getLogger(__name__)

# Marks an optional argument the caller did not pass
UNSET = object()


def _newest_first(records):
    return sorted(records, key=lambda record: record.created_at, reverse=True)


def _clean_title(title, label='Title') -> str:
    title = (title or '').strip()
    if not title:
        raise ValidationError(f'{label} is required', code='required')
    return title


def _clean_choice(value, allowed, label) -> str:
    if value not in allowed:
        raise ValidationError(f'Invalid {label}: {value}', code='invalid_choice')
    return value


class LiveListController:
    """
    Base controller of one live, sorted list

    Subclasses define collection, mapper, build_query() and sort().
    Use as a context manager so the subscription is always released:

        with PersonalTodoController(session) as todos:
            todos.add('Buy milk', priority='high')
            todos.items
    """

    collection: str = ''
    mapper: Callable = None
    entity_label = 'item'

    def __init__(self, session, notices: Optional[NoticeBoard] = None,
                 store: Optional[DocumentStore] = None):
        if not session.is_authenticated:
            raise PermissionDenied('Sign in to see this list')

        self.session = session
        self.notices = notices if notices is not None else NoticeBoard()
        self._store = store or default_store
        self._subscription = None
        self._listeners: List[Callable[[List[Any]], None]] = []

        self.items: List[Any] = []
        self.loading = True
        self.error: Optional[StoreError] = None

    # === Reading ===

    def build_query(self) -> Query:
        raise NotImplementedError

    def sort(self, records: List[Any]) -> List[Any]:
        return _newest_first(records)

    def open(self) -> 'LiveListController':
        """Starts the live subscription; the first snapshot arrives right away"""
        if self._subscription is not None and self._subscription.active:
            return self

        self.loading = True
        try:
            self._subscription = self._store.subscribe(
                self.build_query(), self._handle_snapshot, self._handle_error
            )
        except StoreError as e:
            self._handle_error(e)
        return self

    def close(self):
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None

    @property
    def live(self) -> bool:
        return self._subscription is not None and self._subscription.active

    def refresh(self) -> List[Any]:
        """One-shot evaluation, handled exactly like a pushed snapshot"""
        try:
            snapshot = self._store.query(self.build_query())
        except StoreError as e:
            self._handle_error(e)
        else:
            self._handle_snapshot(snapshot)
        return self.items

    def resync(self) -> List[Any]:
        """
        Re-runs the query through the live subscription

        A subscription that failed stays dead: the last known list is
        returned and nothing is queried until the controller is reopened.
        """
        if self.live:
            self._subscription.deliver()
        return self.items

    def add_listener(self, callback: Callable[[List[Any]], None]):
        """Called with the new list after every snapshot"""
        self._listeners.append(callback)

    def find(self, item_id: str):
        return next((item for item in self.items if item.id == item_id), None)

    def _handle_snapshot(self, snapshot: QuerySnapshot):
        records = [type(self).mapper(doc.id, doc.data) for doc in snapshot]
        self.items = self.sort(records)
        self.loading = False
        self.error = None

        for callback in self._listeners:
            callback(self.items)

    def _handle_error(self, error: StoreError):
        # Keeps the last known list; the subscription is not re-created
        self.loading = False
        self.error = error
        logger.error(f"❌ Error loading {self.collection} for {self.session.uid}: {error}")
        self.notices.error(f'Failed to load {self.entity_label}s')

    # === Writing ===

    def _write(self, operation: Callable[[], Any], success: Optional[str], failure: str):
        """
        Runs one store write and reports it as a notice

        Returns:
            The operation result, or None when the store refused it
        """
        try:
            result = operation()
        except StoreError as e:
            logger.error(f"❌ {failure} ({self.collection}): {e}")
            self.notices.error(failure)
            return None

        if success:
            self.notices.success(success)
        return result

    def load(self, item_id: str):
        """Current stored version of one of this list's documents"""
        snapshot = self._store.get(self.collection, item_id)
        if not snapshot.exists:
            self.notices.error(f'{self.entity_label.capitalize()} not found')
            raise StoreError(StoreErrorKind.NOT_FOUND, f'No {self.collection}/{item_id}')
        return type(self).mapper(snapshot.id, snapshot.data)

    def __enter__(self):
        return self.open()

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


class PersonalTodoController(LiveListController):
    """Personal todo list of the signed-in user"""

    collection = PERSONAL_TODOS
    mapper = staticmethod(map_personal_todo)
    entity_label = 'todo'

    def build_query(self) -> Query:
        return self._store.collection(PERSONAL_TODOS).where('userId', '==', self.session.uid)

    def sort(self, records):
        # Incomplete first; newest first inside each group
        return sorted(_newest_first(records), key=lambda todo: todo.completed)

    @property
    def stats(self) -> Dict[str, int]:
        return {
            'total': len(self.items),
            'completed': sum(1 for todo in self.items if todo.completed),
            'pending': sum(1 for todo in self.items if not todo.completed),
            'urgent': sum(1 for todo in self.items if todo.priority == 'urgent' and not todo.completed),
        }

    def add(self, title: str, description: str = '', priority: str = DEFAULT_PRIORITY,
            due_date=None) -> Optional[str]:
        title = _clean_title(title)
        priority = _clean_choice(priority or DEFAULT_PRIORITY, PRIORITIES, 'priority')

        fields = {
            'title': title,
            'description': (description or '').strip(),
            'userId': self.session.uid,
            'completed': False,
            'priority': priority,
            'dueDate': due_date,
            'createdAt': SERVER_TIMESTAMP,
            'updatedAt': SERVER_TIMESTAMP,
        }
        return self._write(
            lambda: self._store.add(PERSONAL_TODOS, fields),
            'Personal todo added!', 'Failed to add todo'
        )

    def toggle(self, todo_id: str) -> Optional[bool]:
        """
        Flips completion

        Returns:
            The new completed value, or None when the write failed
        """
        todo = self._owned(todo_id)
        completed = not todo.completed

        written = self._write(
            lambda: self._store.update(PERSONAL_TODOS, todo_id, {
                'completed': completed,
                'updatedAt': SERVER_TIMESTAMP,
            }) or True,
            'Todo completed!' if completed else 'Todo marked as incomplete',
            'Failed to update todo'
        )
        return completed if written else None

    def edit(self, todo_id: str, title=UNSET, description=UNSET, priority=UNSET, due_date=UNSET) -> bool:
        """Writes only the given fields plus a fresh updatedAt"""
        self._owned(todo_id)

        changes = {}
        if title is not UNSET:
            changes['title'] = _clean_title(title)
        if description is not UNSET:
            changes['description'] = (description or '').strip()
        if priority is not UNSET:
            changes['priority'] = _clean_choice(priority, PRIORITIES, 'priority')
        if due_date is not UNSET:
            changes['dueDate'] = due_date

        if not changes:
            self.notices.info('Nothing to update')
            return False

        changes['updatedAt'] = SERVER_TIMESTAMP
        return bool(self._write(
            lambda: self._store.update(PERSONAL_TODOS, todo_id, changes) or True,
            'Todo updated', 'Failed to update todo'
        ))

    def delete(self, todo_id: str) -> bool:
        self._owned(todo_id)
        return bool(self._write(
            lambda: self._store.delete(PERSONAL_TODOS, todo_id) or True,
            'Todo deleted', 'Failed to delete todo'
        ))

    def _owned(self, todo_id: str):
        todo = self.load(todo_id)
        if todo.user_id != self.session.uid:
            raise PermissionDenied('This todo belongs to someone else')
        return todo


class ProjectController(LiveListController):
    """Every project, newest first; writes are for managers"""

    collection = PROJECTS
    mapper = staticmethod(map_project)
    entity_label = 'project'

    EDITABLE = {
        'name': 'name',
        'description': 'description',
        'status': 'status',
        'start_date': 'startDate',
        'end_date': 'endDate',
    }

    def build_query(self) -> Query:
        return self._store.collection(PROJECTS)

    def create(self, name: str, description: str = '', status: str = 'active',
               start_date=None, end_date=None) -> Optional[str]:
        self._require_manager()
        name = _clean_title(name, 'Project name')
        status = _clean_choice(status or 'active', PROJECT_STATUSES, 'status')
        self._check_dates(start_date, end_date)

        fields = {
            'name': name,
            'description': (description or '').strip(),
            'managerId': self.session.uid,
            'status': status,
            'startDate': start_date or SERVER_TIMESTAMP,
            'endDate': end_date,
            'createdAt': SERVER_TIMESTAMP,
            'updatedAt': SERVER_TIMESTAMP,
        }
        return self._write(
            lambda: self._store.add(PROJECTS, fields),
            'Project created successfully!', 'Failed to create project'
        )

    def update(self, project_id: str, changes: Dict[str, Any]) -> bool:
        """
        Partial update of a project

        Args:
            changes: snake_case keys among name, description, status,
                     start_date, end_date; managerId never changes
        """
        self._require_manager()
        project = self.load(project_id)

        fields = {}
        for key, value in changes.items():
            if key not in self.EDITABLE:
                logger.warning(f"⚠️ Ignoring non editable project field {key!r}")
                continue
            if key == 'name':
                value = _clean_title(value, 'Project name')
            elif key == 'description':
                value = (value or '').strip()
            elif key == 'status':
                value = _clean_choice(value, PROJECT_STATUSES, 'status')
            fields[self.EDITABLE[key]] = value

        if not fields:
            self.notices.info('Nothing to update')
            return False

        self._check_dates(changes.get('start_date', project.start_date),
                          changes.get('end_date', project.end_date))

        fields['updatedAt'] = SERVER_TIMESTAMP
        return bool(self._write(
            lambda: self._store.update(PROJECTS, project_id, fields) or True,
            'Project updated successfully!', 'Failed to update project'
        ))

    def update_status(self, project_id: str, status: str) -> bool:
        self._require_manager()
        status = _clean_choice(status, PROJECT_STATUSES, 'status')
        self.load(project_id)
        return bool(self._write(
            lambda: self._store.update(PROJECTS, project_id, {
                'status': status,
                'updatedAt': SERVER_TIMESTAMP,
            }) or True,
            'Project status updated', 'Failed to update project status'
        ))

    def delete(self, project_id: str) -> bool:
        """Deletes the project only; its tasks stay"""
        self._require_manager()
        self.load(project_id)
        return bool(self._write(
            lambda: self._store.delete(PROJECTS, project_id) or True,
            'Project deleted successfully!', 'Failed to delete project'
        ))

    def _require_manager(self):
        if not RolePermissions.can_manage_projects(self.session):
            raise PermissionDenied('Only managers and administrators can manage projects')

    @staticmethod
    def _check_dates(start_date, end_date):
        start_date, end_date = to_datetime(start_date), to_datetime(end_date)
        if start_date and end_date and end_date < start_date:
            raise ValidationError('End date must be after the start date', code='invalid_dates')


class TaskController(LiveListController):
    """
    Tasks visible to the session, newest first

    Managers see every task; everybody else only the tasks assigned to
    them. With project_id the list is limited to one project.
    """

    collection = TASKS
    mapper = staticmethod(map_task)
    entity_label = 'task'

    # Fields an assignee may change; managers may also move and reassign
    ASSIGNEE_FIELDS = {
        'title': 'title',
        'description': 'description',
        'priority': 'priority',
        'status': 'status',
        'start_date': 'startDate',
        'end_date': 'endDate',
        'due_date': 'dueDate',
    }
    MANAGER_FIELDS = {
        'project_id': 'projectId',
        'assigned_to': 'assignedTo',
    }

    def __init__(self, session, project_id: Optional[str] = None, notices: Optional[NoticeBoard] = None,
                 store: Optional[DocumentStore] = None):
        super().__init__(session, notices=notices, store=store)
        self.project_id = project_id
        self.notifier = NotificationService(self._store)

    def build_query(self) -> Query:
        query = self._store.collection(TASKS)
        if self.project_id:
            query = query.where('projectId', '==', self.project_id)
        if not self.session.is_manager:
            query = query.where('assignedTo', 'array-contains', self.session.uid)
        return query

    def create(self, title: str, project_id: str, assigned_to: Iterable[str] = (),
               description: str = '', priority: str = DEFAULT_PRIORITY, status: str = 'todo',
               start_date=None, end_date=None, due_date=None) -> Optional[str]:
        """
        Creates a task and notifies its assignees

        Notifications are written after the task; failing ones only add
        a warning notice.
        """
        if not RolePermissions.can_manage_tasks(self.session):
            raise PermissionDenied('Only managers and administrators can create tasks')

        title = _clean_title(title)
        if not project_id:
            raise ValidationError('Project is required', code='required')
        priority = _clean_choice(priority or DEFAULT_PRIORITY, PRIORITIES, 'priority')
        status = _clean_choice(status or 'todo', TASK_STATUSES, 'status')
        assignees = _unique(assigned_to)

        fields = {
            'title': title,
            'description': (description or '').strip(),
            'projectId': project_id,
            'assignedTo': assignees,
            'assignedBy': self.session.uid,
            'priority': priority,
            'status': status,
            'startDate': start_date,
            'endDate': end_date,
            'dueDate': due_date,
            'createdAt': SERVER_TIMESTAMP,
            'updatedAt': SERVER_TIMESTAMP,
        }
        # Nothing is written when the project lookup fails
        project = self._write(lambda: self._store.get(PROJECTS, project_id), None, 'Failed to create task')
        if project is None:
            return None

        task_id = self._write(
            lambda: self._store.add(TASKS, fields),
            'Task created successfully!', 'Failed to create task'
        )
        if task_id is None:
            return None

        failed = self.notifier.task_assigned(
            self.session.uid, self.session.display_name, assignees,
            title, project.get('name', ''), link=f'/workspace/projects/{project_id}/',
        )
        if failed:
            self.notices.warning(f'{len(failed)} assignee(s) could not be notified')

        return task_id

    def update(self, task_id: str, changes: Dict[str, Any]) -> bool:
        """
        Partial update; assignees may only touch their own task fields

        createdAt and assignedBy are never written.
        """
        task = self._editable(task_id)

        allowed = dict(self.ASSIGNEE_FIELDS)
        if self.session.is_manager:
            allowed.update(self.MANAGER_FIELDS)

        fields = {}
        for key, value in changes.items():
            if key not in allowed:
                logger.warning(f"⚠️ {self.session.uid} cannot change task field {key!r}; ignored")
                continue
            if key == 'title':
                value = _clean_title(value)
            elif key == 'description':
                value = (value or '').strip()
            elif key == 'priority':
                value = _clean_choice(value, PRIORITIES, 'priority')
            elif key == 'status':
                value = _clean_choice(value, TASK_STATUSES, 'status')
            elif key == 'assigned_to':
                value = _unique(value)
            elif key == 'project_id' and not value:
                raise ValidationError('Project is required', code='required')
            fields[allowed[key]] = value

        if not fields:
            self.notices.info('Nothing to update')
            return False

        fields['updatedAt'] = SERVER_TIMESTAMP
        written = bool(self._write(
            lambda: self._store.update(TASKS, task_id, fields) or True,
            'Task updated successfully!', 'Failed to update task'
        ))
        if written and fields.get('status') == 'completed' and task.status != 'completed':
            self._notify_completion(task)
        return written

    def update_status(self, task_id: str, status: str) -> bool:
        status = _clean_choice(status, TASK_STATUSES, 'status')
        task = self._editable(task_id)

        written = bool(self._write(
            lambda: self._store.update(TASKS, task_id, {
                'status': status,
                'updatedAt': SERVER_TIMESTAMP,
            }) or True,
            'Task status updated', 'Failed to update task status'
        ))
        if written and status == 'completed' and task.status != 'completed':
            self._notify_completion(task)
        return written

    def delete(self, task_id: str) -> bool:
        if not RolePermissions.can_manage_tasks(self.session):
            raise PermissionDenied('Only managers and administrators can delete tasks')
        self.load(task_id)
        return bool(self._write(
            lambda: self._store.delete(TASKS, task_id) or True,
            'Task deleted successfully!', 'Failed to delete task'
        ))

    def _editable(self, task_id: str):
        task = self.load(task_id)
        if not RolePermissions.can_edit_task(self.session, task):
            raise PermissionDenied('You can only edit tasks assigned to you')
        return task

    def _notify_completion(self, task):
        if not task.assigned_by or task.assigned_by == self.session.uid:
            return
        try:
            self.notifier.task_completed(
                task.assigned_by, self.session.display_name, task.title,
                link=f'/workspace/projects/{task.project_id}/',
            )
        except StoreError as e:
            logger.error(f"❌ Could not notify {task.assigned_by} about completion of {task.id}: {e}")
            self.notices.warning('The task owner could not be notified')


class NotificationController(LiveListController):
    """Notifications of the signed-in user, newest first"""

    collection = NOTIFICATIONS
    mapper = staticmethod(map_notification)
    entity_label = 'notification'

    def build_query(self) -> Query:
        return self._store.collection(NOTIFICATIONS).where('userId', '==', self.session.uid)

    @property
    def unread_count(self) -> int:
        return sum(1 for notification in self.items if not notification.read)

    def mark_read(self, notification_id: str) -> bool:
        self._owned_ids([notification_id])
        return bool(self._write(
            lambda: self._store.update(NOTIFICATIONS, notification_id, {'read': True}) or True,
            None, 'Failed to mark as read'
        ))

    def mark_selected_read(self, notification_ids: Iterable[str]) -> int:
        ids = self._owned_ids(notification_ids)
        return self._batch(ids, lambda batch, doc_id: batch.update(NOTIFICATIONS, doc_id, {'read': True}),
                           '{} notifications marked as read', 'Failed to mark notifications as read')

    def mark_all_read(self) -> int:
        ids = [doc.id for doc in self._mine() if not doc.data.get('read', False)]
        return self._batch(ids, lambda batch, doc_id: batch.update(NOTIFICATIONS, doc_id, {'read': True}),
                           'All notifications marked as read', 'Failed to mark all as read')

    def delete(self, notification_id: str) -> bool:
        self._owned_ids([notification_id])
        return bool(self._write(
            lambda: self._store.delete(NOTIFICATIONS, notification_id) or True,
            'Notification deleted', 'Failed to delete notification'
        ))

    def delete_selected(self, notification_ids: Iterable[str]) -> int:
        ids = self._owned_ids(notification_ids)
        return self._batch(ids, lambda batch, doc_id: batch.delete(NOTIFICATIONS, doc_id),
                           '{} notifications deleted', 'Failed to delete notifications')

    def clear_all(self) -> int:
        ids = [doc.id for doc in self._mine()]
        return self._batch(ids, lambda batch, doc_id: batch.delete(NOTIFICATIONS, doc_id),
                           'All notifications cleared', 'Failed to clear notifications')

    def _mine(self) -> QuerySnapshot:
        return self._store.query(self.build_query())

    def _owned_ids(self, notification_ids: Iterable[str]) -> List[str]:
        requested = _unique(notification_ids)
        mine = {doc.id for doc in self._mine()}
        foreign = [doc_id for doc_id in requested if doc_id not in mine]
        if foreign:
            raise PermissionDenied('Some notifications do not belong to you')
        return requested

    def _batch(self, ids: List[str], stage: Callable, success: str, failure: str) -> int:
        """Applies one staged write per id in a single batch"""
        if not ids:
            self.notices.info('No notifications to update')
            return 0

        batch = self._store.batch()
        for doc_id in ids:
            stage(batch, doc_id)

        written = self._write(lambda: batch.commit() or True, success.format(len(ids)), failure)
        return len(ids) if written else 0


def _unique(values: Iterable[str]) -> List[str]:
    if isinstance(values, str):
        values = [values]
    unique: List[str] = []
    for value in values or ():
        if value and value not in unique:
            unique.append(value)
    return unique


CONTROLLERS = {
    'todos': PersonalTodoController,
    'projects': ProjectController,
    'tasks': TaskController,
    'notifications': NotificationController,
}
