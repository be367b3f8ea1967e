# apps/core/mappers.py

"""
Entity view-model mappers

Pure functions from a raw stored document (dict + id) to typed records.
Missing fields fall back to type-appropriate defaults; stored timestamps
become aware datetimes only when present and well-formed. A document
without createdAt/updatedAt is shown as created "now".
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, time, timezone as dt_timezone
from typing import Any, Dict, List, Optional

from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime

logger = logging.getLogger(__name__)

PRIORITIES = ('low', 'medium', 'high', 'urgent')
TASK_STATUSES = ('todo', 'in-progress', 'review', 'completed')
PROJECT_STATUSES = ('active', 'completed', 'on-hold')
NOTIFICATION_TYPES = ('task-assigned', 'task-completed', 'project-update', 'deadline-reminder', 'general')

DEFAULT_PRIORITY = 'medium'


@dataclass
class UserProfile:
    id: str
    email: str = ''
    name: str = ''
    role: str = 'user'
    created_at: datetime = None


@dataclass
class Project:
    id: str
    name: str = ''
    description: str = ''
    manager_id: str = ''
    status: str = 'active'
    start_date: datetime = None
    end_date: Optional[datetime] = None
    created_at: datetime = None
    updated_at: datetime = None


@dataclass
class Task:
    id: str
    title: str = ''
    description: str = ''
    project_id: str = ''
    assigned_to: List[str] = field(default_factory=list)
    assigned_by: str = ''
    priority: str = DEFAULT_PRIORITY
    status: str = 'todo'
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    created_at: datetime = None
    updated_at: datetime = None

    @property
    def deadline(self) -> Optional[datetime]:
        return self.due_date or self.end_date

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        if self.status == 'completed' or self.deadline is None:
            return False
        return self.deadline < (now or timezone.now())


@dataclass
class PersonalTodo:
    id: str
    title: str = ''
    description: str = ''
    user_id: str = ''
    completed: bool = False
    priority: str = DEFAULT_PRIORITY
    due_date: Optional[datetime] = None
    created_at: datetime = None
    updated_at: datetime = None


@dataclass
class Notification:
    id: str
    user_id: str = ''
    type: str = 'general'
    title: str = ''
    message: str = ''
    read: bool = False
    link: Optional[str] = None
    created_at: datetime = None


# === Timestamp conversion ===

def to_datetime(value: Any) -> Optional[datetime]:
    """
    Converts a stored timestamp into an aware datetime

    Accepts datetimes, dates and ISO-8601 strings. Returns None for
    anything missing or malformed.
    """
    if value is None or value == '':
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    elif isinstance(value, str):
        try:
            parsed = parse_datetime(value)
            if parsed is None:
                day = parse_date(value)
                parsed = datetime.combine(day, time.min) if day else None
        except ValueError:
            parsed = None
    else:
        parsed = None

    if parsed is not None and timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed, dt_timezone.utc)
    return parsed


def _timestamp_or_now(data: Dict[str, Any], key: str, doc_id: str) -> datetime:
    value = to_datetime(data.get(key))
    if value is None:
        logger.debug(f"⏱️ Document {doc_id} has no valid {key}; showing current time")
        return timezone.now()
    return value


def _choice(value: Any, allowed, default: str) -> str:
    return value if value in allowed else default


# === Mappers ===

def map_user(doc_id: str, data: Dict[str, Any]) -> UserProfile:
    return UserProfile(
        id=doc_id,
        email=data.get('email') or '',
        name=data.get('name') or '',
        role=data.get('role') or 'user',
        created_at=_timestamp_or_now(data, 'createdAt', doc_id),
    )


def map_project(doc_id: str, data: Dict[str, Any]) -> Project:
    return Project(
        id=doc_id,
        name=data.get('name') or '',
        description=data.get('description') or '',
        manager_id=data.get('managerId') or '',
        status=_choice(data.get('status'), PROJECT_STATUSES, 'active'),
        start_date=_timestamp_or_now(data, 'startDate', doc_id),
        end_date=to_datetime(data.get('endDate')),
        created_at=_timestamp_or_now(data, 'createdAt', doc_id),
        updated_at=_timestamp_or_now(data, 'updatedAt', doc_id),
    )


def map_task(doc_id: str, data: Dict[str, Any]) -> Task:
    assigned_to = data.get('assignedTo')
    if not isinstance(assigned_to, list):
        assigned_to = [assigned_to]

    return Task(
        id=doc_id,
        title=data.get('title') or '',
        description=data.get('description') or '',
        project_id=data.get('projectId') or '',
        assigned_to=[user_id for user_id in assigned_to if user_id],
        assigned_by=data.get('assignedBy') or '',
        priority=_choice(data.get('priority'), PRIORITIES, DEFAULT_PRIORITY),
        status=_choice(data.get('status'), TASK_STATUSES, 'todo'),
        start_date=to_datetime(data.get('startDate')),
        end_date=to_datetime(data.get('endDate')),
        due_date=to_datetime(data.get('dueDate')),
        created_at=_timestamp_or_now(data, 'createdAt', doc_id),
        updated_at=_timestamp_or_now(data, 'updatedAt', doc_id),
    )


def map_personal_todo(doc_id: str, data: Dict[str, Any]) -> PersonalTodo:
    return PersonalTodo(
        id=doc_id,
        title=data.get('title') or '',
        description=data.get('description') or '',
        user_id=data.get('userId') or '',
        completed=bool(data.get('completed', False)),
        priority=_choice(data.get('priority'), PRIORITIES, DEFAULT_PRIORITY),
        due_date=to_datetime(data.get('dueDate')),
        created_at=_timestamp_or_now(data, 'createdAt', doc_id),
        updated_at=_timestamp_or_now(data, 'updatedAt', doc_id),
    )


def map_notification(doc_id: str, data: Dict[str, Any]) -> Notification:
    return Notification(
        id=doc_id,
        user_id=data.get('userId') or '',
        type=_choice(data.get('type'), NOTIFICATION_TYPES, 'general'),
        title=data.get('title') or '',
        message=data.get('message') or '',
        read=bool(data.get('read', False)),
        link=data.get('link') or None,
        created_at=_timestamp_or_now(data, 'createdAt', doc_id),
    )


def to_payload(record) -> Dict[str, Any]:
    """JSON-ready dict of a record (datetimes as ISO-8601)"""
    payload = asdict(record)
    for key, value in payload.items():
        if isinstance(value, datetime):
            payload[key] = value.isoformat()
    return payload
