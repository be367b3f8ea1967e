# apps/workspace/views.py

import logging
from collections import Counter
from functools import wraps

from django.core.exceptions import PermissionDenied, ValidationError
from django.views.decorators.http import require_GET, require_POST

from apps.core.mappers import to_payload
from apps.core.notices import NoticeBoard, notice_response
from apps.core.permissions import session_required
from apps.core.utils import form_error_message, read_payload, validation_messages
from apps.store.exceptions import StoreError, StoreErrorKind

from .controllers import (
    UNSET, NotificationController, PersonalTodoController, ProjectController, TaskController,
)
from .forms import (
    PersonalTodoForm, ProjectForm, ProjectStatusForm, SelectionForm, TaskForm, TaskStatusForm,
)

logger = logging.getLogger(__name__)


class FormRejected(Exception):
    """Submitted data did not pass the form"""


def workspace_action(view_func):
    """
    Turns the exceptions of a controller action into a notice response

    The wrapped view receives a fresh NoticeBoard and returns a payload
    dict; the decorator builds the JSON answer.
    """

    @wraps(view_func)
    def wrapped_view(request, *args, **kwargs):
        notices = NoticeBoard()
        status = None

        try:
            payload = view_func(request, notices, *args, **kwargs)
        except FormRejected as e:
            notices.error(str(e))
            payload = None
        except ValidationError as e:
            notices.error(validation_messages(e)[0])
            payload = None
        except PermissionDenied as e:
            notices.error(str(e) or 'Access denied')
            payload, status = None, 403
        except StoreError as e:
            if not notices.has_errors:
                notices.error('Operation failed. Try again.')
            payload = None
            status = 404 if e.kind == StoreErrorKind.NOT_FOUND else 503

        return notice_response(request, notices, payload=payload, status=status)

    return session_required(wrapped_view)


def _bound_form(request, form_class):
    try:
        form = form_class(read_payload(request))
    except ValidationError as e:
        raise FormRejected(validation_messages(e)[0])

    if not form.is_valid():
        raise FormRejected(form_error_message(form))
    return form


def _items(controller):
    return [to_payload(item) for item in controller.refresh()]


# === PERSONAL TODOS ===

@require_GET
@workspace_action
def todo_list(request, notices):
    todos = PersonalTodoController(request.session_context, notices=notices)
    items = _items(todos)
    return {'items': items, 'stats': todos.stats}


@require_POST
@workspace_action
def todo_add(request, notices):
    form = _bound_form(request, PersonalTodoForm)
    data = form.cleaned_data

    todos = PersonalTodoController(request.session_context, notices=notices)
    todo_id = todos.add(
        data['title'],
        description=data['description'],
        priority=data['priority'] or 'medium',
        due_date=data['due_date'],
    )
    return {'id': todo_id}


@require_POST
@workspace_action
def todo_toggle(request, notices, todo_id):
    todos = PersonalTodoController(request.session_context, notices=notices)
    return {'id': todo_id, 'completed': todos.toggle(todo_id)}


@require_POST
@workspace_action
def todo_edit(request, notices, todo_id):
    changes = _bound_form(request, PersonalTodoForm).changed_fields()

    todos = PersonalTodoController(request.session_context, notices=notices)
    todos.edit(
        todo_id,
        title=changes.get('title', UNSET),
        description=changes.get('description', UNSET),
        priority=changes.get('priority', UNSET),
        due_date=changes.get('due_date', UNSET),
    )
    return {'id': todo_id}


@require_POST
@workspace_action
def todo_delete(request, notices, todo_id):
    PersonalTodoController(request.session_context, notices=notices).delete(todo_id)
    return {'id': todo_id}


# === PROJECTS ===

@require_GET
@workspace_action
def project_list(request, notices):
    """Projects with their task counts"""
    session = request.session_context
    projects = _items(ProjectController(session, notices=notices))
    tasks = TaskController(session, notices=notices).refresh()

    totals = Counter(task.project_id for task in tasks)
    completed = Counter(task.project_id for task in tasks if task.status == 'completed')
    for project in projects:
        project['task_count'] = totals[project['id']]
        project['completed_tasks'] = completed[project['id']]

    return {'items': projects}


@require_GET
@workspace_action
def project_detail(request, notices, project_id):
    session = request.session_context
    project = ProjectController(session, notices=notices).load(project_id)
    tasks = _items(TaskController(session, project_id=project_id, notices=notices))
    return {'project': to_payload(project), 'tasks': tasks}


@require_POST
@workspace_action
def project_create(request, notices):
    data = _bound_form(request, ProjectForm).cleaned_data

    projects = ProjectController(request.session_context, notices=notices)
    project_id = projects.create(
        data['name'],
        description=data['description'],
        status=data['status'] or 'active',
        start_date=data['start_date'],
        end_date=data['end_date'],
    )
    return {'id': project_id}


@require_POST
@workspace_action
def project_update(request, notices, project_id):
    changes = _bound_form(request, ProjectForm).changed_fields()
    ProjectController(request.session_context, notices=notices).update(project_id, changes)
    return {'id': project_id}


@require_POST
@workspace_action
def project_status(request, notices, project_id):
    status = _bound_form(request, ProjectStatusForm).cleaned_data['status']
    ProjectController(request.session_context, notices=notices).update_status(project_id, status)
    return {'id': project_id, 'status': status}


@require_POST
@workspace_action
def project_delete(request, notices, project_id):
    ProjectController(request.session_context, notices=notices).delete(project_id)
    return {'id': project_id}


# === TASKS ===

@require_GET
@workspace_action
def task_list(request, notices):
    tasks = TaskController(request.session_context, project_id=request.GET.get('project') or None, notices=notices)
    return {'items': _items(tasks)}


@require_POST
@workspace_action
def task_create(request, notices):
    data = _bound_form(request, TaskForm).cleaned_data

    tasks = TaskController(request.session_context, notices=notices)
    task_id = tasks.create(
        data['title'],
        data['project_id'],
        assigned_to=data['assigned_to'],
        description=data['description'],
        priority=data['priority'] or 'medium',
        status=data['status'] or 'todo',
        start_date=data['start_date'],
        end_date=data['end_date'],
        due_date=data['due_date'],
    )
    return {'id': task_id}


@require_POST
@workspace_action
def task_update(request, notices, task_id):
    changes = _bound_form(request, TaskForm).changed_fields()
    TaskController(request.session_context, notices=notices).update(task_id, changes)
    return {'id': task_id}


@require_POST
@workspace_action
def task_status(request, notices, task_id):
    status = _bound_form(request, TaskStatusForm).cleaned_data['status']
    TaskController(request.session_context, notices=notices).update_status(task_id, status)
    return {'id': task_id, 'status': status}


@require_POST
@workspace_action
def task_delete(request, notices, task_id):
    TaskController(request.session_context, notices=notices).delete(task_id)
    return {'id': task_id}


# === NOTIFICATIONS ===

@require_GET
@workspace_action
def notification_list(request, notices):
    notifications = NotificationController(request.session_context, notices=notices)
    items = _items(notifications)
    return {'items': items, 'unread_count': notifications.unread_count}


@require_POST
@workspace_action
def notification_read(request, notices, notification_id):
    NotificationController(request.session_context, notices=notices).mark_read(notification_id)
    return {'id': notification_id}


@require_POST
@workspace_action
def notification_read_selected(request, notices):
    ids = _bound_form(request, SelectionForm).cleaned_data['ids']
    count = NotificationController(request.session_context, notices=notices).mark_selected_read(ids)
    return {'count': count}


@require_POST
@workspace_action
def notification_read_all(request, notices):
    count = NotificationController(request.session_context, notices=notices).mark_all_read()
    return {'count': count}


@require_POST
@workspace_action
def notification_delete(request, notices, notification_id):
    NotificationController(request.session_context, notices=notices).delete(notification_id)
    return {'id': notification_id}


@require_POST
@workspace_action
def notification_delete_selected(request, notices):
    ids = _bound_form(request, SelectionForm).cleaned_data['ids']
    count = NotificationController(request.session_context, notices=notices).delete_selected(ids)
    return {'count': count}


@require_POST
@workspace_action
def notification_clear(request, notices):
    count = NotificationController(request.session_context, notices=notices).clear_all()
    return {'count': count}
