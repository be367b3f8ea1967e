# apps/reports/utils.py

from collections import Counter
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from django.utils import timezone

from apps.core.mappers import PRIORITIES, TASK_STATUSES, PersonalTodo, Project, Task


def calculate_project_stats(tasks: Iterable[Task], now: Optional[datetime] = None) -> Dict[str, int]:
    """
    Counts the tasks of one project by progress

    A task is overdue when it is not completed and its end date has passed.
    """
    tasks = list(tasks)
    now = now or timezone.now()

    return {
        'total': len(tasks),
        'completed': sum(1 for task in tasks if task.status == 'completed'),
        'in_progress': sum(1 for task in tasks if task.status == 'in-progress'),
        'todo': sum(1 for task in tasks if task.status == 'todo'),
        'overdue': sum(
            1 for task in tasks
            if task.end_date and task.status != 'completed' and task.end_date < now
        ),
    }


def calculate_dashboard_metrics(projects: List[Project], tasks: List[Task],
                                users: Optional[Dict[str, str]] = None,
                                top: int = 5, now: Optional[datetime] = None) -> Dict:
    """
    Aggregated numbers of the manager dashboard

    Args:
        projects: Visible projects
        tasks: Visible tasks
        users: uid -> display name, used for the top assignees
        top: How many assignees to rank
    """
    now = now or timezone.now()
    users = users or {}

    by_status = Counter(task.status for task in tasks)
    by_priority = Counter(task.priority for task in tasks)

    tasks_by_project: Dict[str, List[Task]] = {}
    for task in tasks:
        tasks_by_project.setdefault(task.project_id, []).append(task)

    per_project = []
    for project in projects:
        per_project.append({
            'id': project.id,
            'name': project.name,
            'status': project.status,
            'stats': calculate_project_stats(tasks_by_project.get(project.id, []), now=now),
        })
    # Busiest projects first
    per_project.sort(key=lambda item: item['stats']['total'], reverse=True)

    assigned = Counter(user_id for task in tasks for user_id in task.assigned_to)
    completed = Counter(
        user_id for task in tasks if task.status == 'completed' for user_id in task.assigned_to
    )
    top_assignees = [
        {
            'id': user_id,
            'name': users.get(user_id, ''),
            'assigned': count,
            'completed': completed[user_id],
        }
        for user_id, count in assigned.most_common(top)
    ]

    total = len(tasks)
    return {
        'totals': {
            'projects': len(projects),
            'active_projects': sum(1 for project in projects if project.status == 'active'),
            'tasks': total,
            'completion_rate': round(by_status['completed'] * 100 / total, 1) if total else 0,
        },
        'tasks_by_status': {status: by_status[status] for status in TASK_STATUSES},
        'tasks_by_priority': {priority: by_priority[priority] for priority in PRIORITIES},
        'overdue': sum(1 for task in tasks if task.is_overdue(now)),
        'projects': per_project,
        'top_assignees': top_assignees,
    }


def _event(kind: str, record, start: datetime, end: datetime, **extra) -> Dict:
    return {
        'id': f'{kind}-{record.id}',
        'kind': kind,
        'title': record.title,
        'start': start.isoformat(),
        'end': end.isoformat(),
        'priority': record.priority,
        **extra,
    }


def build_calendar_events(tasks: Iterable[Task], todos: Iterable[PersonalTodo],
                          start: Optional[datetime] = None, end: Optional[datetime] = None) -> List[Dict]:
    """
    Calendar entries for every dated task and personal todo

    A task spans startDate..endDate, falling back to dueDate on either
    side; a one-sided task becomes a single-point event. Events outside
    [start, end] are left out when a window is given.
    """
    spans = []

    for task in tasks:
        event_start = task.start_date or task.due_date or task.end_date
        event_end = task.end_date or task.due_date or task.start_date
        if event_start is None:
            continue
        spans.append((event_start, event_end, _event(
            'task', task, event_start, event_end,
            status=task.status, project_id=task.project_id,
            completed=task.status == 'completed',
        )))

    for todo in todos:
        if todo.due_date is None:
            continue
        spans.append((todo.due_date, todo.due_date, _event(
            'todo', todo, todo.due_date, todo.due_date, completed=todo.completed,
        )))

    if start is not None:
        spans = [span for span in spans if span[1] >= start]
    if end is not None:
        spans = [span for span in spans if span[0] <= end]

    return [event for _start, _end, event in sorted(spans, key=lambda span: span[0])]
