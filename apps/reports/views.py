# apps/reports/views.py

import csv
import logging
from io import BytesIO

import xlsxwriter
from django.conf import settings
from django.http import HttpResponse, JsonResponse
from django.utils import timezone
from django.views.decorators.http import require_GET

from apps.core.mappers import map_user, to_datetime
from apps.core.models import USERS
from apps.core.notices import NoticeBoard
from apps.core.permissions import manager_required, session_required
from apps.store.client import store
from apps.store.exceptions import StoreError, StoreErrorKind
from apps.workspace.controllers import PersonalTodoController, ProjectController, TaskController

from .utils import build_calendar_events, calculate_dashboard_metrics, calculate_project_stats

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = [
    'ID', 'Title', 'Description', 'Assigned To', 'Priority', 'Status',
    'Start Date', 'End Date', 'Due Date', 'Created At', 'Overdue',
]


def _store_failure(e: StoreError) -> JsonResponse:
    if e.kind == StoreErrorKind.NOT_FOUND:
        return JsonResponse({'success': False, 'error': 'Project not found'}, status=404)
    logger.error(f"❌ Report failed: {e}")
    return JsonResponse({'success': False, 'error': 'Failed to build the report'}, status=503)


def _user_names():
    """uid -> display name of every profile"""
    return {
        doc.id: map_user(doc.id, doc.data).name or doc.get('email', '')
        for doc in store.query(store.collection(USERS))
    }


def _max_items():
    return getattr(settings, 'ORBIT_REPORTS_MAX_ITEMS', 10000)


def _project_with_tasks(request, project_id):
    """Loads the project and its tasks, capped at ORBIT_REPORTS_MAX_ITEMS"""
    session = request.session_context
    notices = NoticeBoard()

    project = ProjectController(session, notices=notices).load(project_id)
    tasks = TaskController(session, project_id=project_id, notices=notices)
    tasks.refresh()
    if tasks.error:
        raise tasks.error

    limit = _max_items()
    if len(tasks.items) > limit:
        logger.warning(f"⚠️ Export of project {project_id} truncated to {limit} tasks")
    return project, tasks.items[:limit]


def _export_filename(project, extension):
    name = project.name.replace(' ', '_') or project.id
    return f'project_{name}.{extension}'


def _date(value):
    return value.strftime('%Y-%m-%d') if value else ''


@require_GET
@manager_required
def api_metrics(request):
    """
    API for dashboard charts
    Returns metrics in JSON format
    """
    session = request.session_context
    notices = NoticeBoard()

    try:
        projects = ProjectController(session, notices=notices)
        tasks = TaskController(session, notices=notices)
        projects.refresh()
        tasks.refresh()
        for controller in (projects, tasks):
            if controller.error:
                raise controller.error
        users = _user_names()
    except StoreError as e:
        return _store_failure(e)

    metrics = calculate_dashboard_metrics(projects.items, tasks.items, users=users)
    metrics['generated_at'] = timezone.now().isoformat()

    return JsonResponse({'success': True, 'metrics': metrics})


@require_GET
@session_required
def calendar(request):
    """
    Dated tasks and personal todos as calendar events

    Optional ?start= and ?end= (ISO-8601) limit the window. Managers see
    every task; other users only the tasks assigned to them.
    """
    session = request.session_context
    notices = NoticeBoard()

    start = to_datetime(request.GET.get('start'))
    end = to_datetime(request.GET.get('end'))
    if start and end and end < start:
        return JsonResponse({'success': False, 'error': 'End must be after start'}, status=400)

    try:
        tasks = TaskController(session, notices=notices)
        todos = PersonalTodoController(session, notices=notices)
        tasks.refresh()
        todos.refresh()
        for controller in (tasks, todos):
            if controller.error:
                raise controller.error
    except StoreError as e:
        return _store_failure(e)

    events = build_calendar_events(tasks.items, todos.items, start=start, end=end)
    return JsonResponse({'success': True, 'events': events[:_max_items()]})


@require_GET
@manager_required
def project_csv(request, project_id):
    """
    Exports the tasks of a project to CSV
    """
    try:
        project, tasks = _project_with_tasks(request, project_id)
        users = _user_names()
    except StoreError as e:
        return _store_failure(e)

    response = HttpResponse(content_type='text/csv; charset=utf-8')
    response['Content-Disposition'] = f'attachment; filename="{_export_filename(project, "csv")}"'
    response.write('\ufeff')  # UTF-8 BOM

    writer = csv.writer(response)
    writer.writerow(EXPORT_COLUMNS)

    now = timezone.now()
    for task in tasks:
        writer.writerow([
            task.id,
            task.title,
            task.description,
            ', '.join(users.get(user_id, user_id) for user_id in task.assigned_to),
            task.priority,
            task.status,
            _date(task.start_date),
            _date(task.end_date),
            _date(task.due_date),
            _date(task.created_at),
            'yes' if task.is_overdue(now) else 'no',
        ])

    logger.info(f"📄 CSV export of project {project_id}: {len(tasks)} tasks")
    return response


@require_GET
@manager_required
def project_xlsx(request, project_id):
    """
    Exports a project to Excel
    Summary sheet plus one row per task
    """
    try:
        project, tasks = _project_with_tasks(request, project_id)
        users = _user_names()
    except StoreError as e:
        return _store_failure(e)

    output = BytesIO()
    workbook = xlsxwriter.Workbook(output, {'in_memory': True, 'remove_timezone': True})

    # Formats
    header_format = workbook.add_format({
        'bold': True,
        'font_color': 'white',
        'bg_color': '#366092',
        'border': 1
    })
    cell_format = workbook.add_format({'border': 1})
    date_format = workbook.add_format({'num_format': 'yyyy-mm-dd', 'border': 1})

    # Sheet 1: Summary
    stats = calculate_project_stats(tasks)

    summary_sheet = workbook.add_worksheet('Summary')
    summary_sheet.write('A1', 'PROJECT REPORT', header_format)
    summary_sheet.write('A3', 'Name:', header_format)
    summary_sheet.write('B3', project.name, cell_format)
    summary_sheet.write('A4', 'Status:', header_format)
    summary_sheet.write('B4', project.status, cell_format)
    summary_sheet.write('A5', 'Manager:', header_format)
    summary_sheet.write('B5', users.get(project.manager_id, project.manager_id), cell_format)
    summary_sheet.write('A6', 'Start Date:', header_format)
    summary_sheet.write_datetime('B6', project.start_date, date_format)
    summary_sheet.write('A7', 'End Date:', header_format)
    if project.end_date:
        summary_sheet.write_datetime('B7', project.end_date, date_format)
    else:
        summary_sheet.write('B7', '', cell_format)

    summary_sheet.write('A9', 'STATISTICS', header_format)
    for row, (label, key) in enumerate([
        ('Total Tasks:', 'total'),
        ('Completed:', 'completed'),
        ('In Progress:', 'in_progress'),
        ('To Do:', 'todo'),
        ('Overdue:', 'overdue'),
    ], start=9):
        summary_sheet.write(row, 0, label, header_format)
        summary_sheet.write(row, 1, stats[key], cell_format)

    summary_sheet.set_column('A:A', 16)
    summary_sheet.set_column('B:B', 32)

    # Sheet 2: Tasks
    tasks_sheet = workbook.add_worksheet('Tasks')
    for col, header in enumerate(EXPORT_COLUMNS):
        tasks_sheet.write(0, col, header, header_format)

    now = timezone.now()
    for row, task in enumerate(tasks, start=1):
        tasks_sheet.write(row, 0, task.id, cell_format)
        tasks_sheet.write(row, 1, task.title, cell_format)
        tasks_sheet.write(row, 2, task.description, cell_format)
        tasks_sheet.write(row, 3, ', '.join(users.get(user_id, user_id) for user_id in task.assigned_to), cell_format)
        tasks_sheet.write(row, 4, task.priority, cell_format)
        tasks_sheet.write(row, 5, task.status, cell_format)
        for col, value in enumerate([task.start_date, task.end_date, task.due_date, task.created_at], start=6):
            if value:
                tasks_sheet.write_datetime(row, col, value, date_format)
            else:
                tasks_sheet.write(row, col, '', cell_format)
        tasks_sheet.write(row, 10, 'yes' if task.is_overdue(now) else 'no', cell_format)

    tasks_sheet.set_column('B:D', 30)
    tasks_sheet.set_column('E:K', 14)

    workbook.close()
    output.seek(0)

    response = HttpResponse(
        output.read(),
        content_type='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
    )
    response['Content-Disposition'] = f'attachment; filename="{_export_filename(project, "xlsx")}"'

    logger.info(f"📊 Excel export of project {project_id}: {len(tasks)} tasks")
    return response
