# apps/core/notices.py

"""
Transient user notices (the "toasts" of the dashboard)

Controllers and services report success/failure here; views attach the
collected notices to their JSON response and, for htmx requests, to an
HX-Trigger client event.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from django.http import JsonResponse
from django_htmx.http import trigger_client_event


class NoticeLevel(str, Enum):
    SUCCESS = 'success'
    INFO = 'info'
    WARNING = 'warning'
    ERROR = 'error'


@dataclass(frozen=True)
class Notice:
    level: NoticeLevel
    message: str

    def as_dict(self) -> Dict[str, str]:
        return {'level': self.level.value, 'message': self.message}


class NoticeBoard:
    """Ordered collection of notices produced while handling one action"""

    def __init__(self):
        self._notices: List[Notice] = []

    def add(self, level: NoticeLevel, message: str):
        self._notices.append(Notice(level, message))

    def success(self, message: str):
        self.add(NoticeLevel.SUCCESS, message)

    def info(self, message: str):
        self.add(NoticeLevel.INFO, message)

    def warning(self, message: str):
        self.add(NoticeLevel.WARNING, message)

    def error(self, message: str):
        self.add(NoticeLevel.ERROR, message)

    @property
    def has_errors(self) -> bool:
        return any(notice.level == NoticeLevel.ERROR for notice in self._notices)

    @property
    def last_message(self) -> str:
        return self._notices[-1].message if self._notices else ''

    def drain(self) -> List[Notice]:
        """Returns and forgets the pending notices"""
        notices, self._notices = self._notices, []
        return notices

    def __iter__(self):
        return iter(self._notices)

    def __len__(self):
        return len(self._notices)


def notice_response(request, notices: NoticeBoard, payload: Optional[Dict] = None,
                    success: Optional[bool] = None, status: Optional[int] = None) -> JsonResponse:
    """
    Builds the standard JSON answer of a dashboard action

    {"success": bool, "message"/"error": str, "notices": [...], **payload}
    """
    if success is None:
        success = not notices.has_errors

    body = {'success': success}
    if success:
        body['message'] = notices.last_message
    else:
        body['error'] = notices.last_message or 'Operation failed'

    drained = [notice.as_dict() for notice in notices.drain()]
    body['notices'] = drained
    body.update(payload or {})

    response = JsonResponse(body, status=status or (200 if success else 400))

    if getattr(request, 'htmx', False) and drained:
        trigger_client_event(response, 'notice', {'notices': drained})

    return response
