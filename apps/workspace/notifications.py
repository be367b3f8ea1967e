# apps/workspace/notifications.py

"""
Notification service - writes notifications/<id> documents

Notifications are independent writes: a failure here never undoes the
action that triggered it.
"""

import logging
from typing import Iterable, List, Optional

from apps.core.models import NOTIFICATIONS
from apps.core.mappers import NOTIFICATION_TYPES
from apps.store.client import SERVER_TIMESTAMP, DocumentStore, store as default_store
from apps.store.exceptions import StoreError, StoreErrorKind

logger = logging.getLogger(__name__)


class NotificationService:

    def __init__(self, store: Optional[DocumentStore] = None):
        self._store = store or default_store

    def notify(self, user_id: str, type: str, title: str, message: str,
               link: Optional[str] = None) -> str:
        """Creates one unread notification and returns its id"""
        if type not in NOTIFICATION_TYPES:
            raise StoreError(StoreErrorKind.INVALID_ARGUMENT, f'Unknown notification type: {type}')

        fields = {
            'userId': user_id,
            'type': type,
            'title': title,
            'message': message,
            'read': False,
            'createdAt': SERVER_TIMESTAMP,
        }
        if link:
            fields['link'] = link

        notification_id = self._store.add(NOTIFICATIONS, fields)
        logger.debug(f"🔔 {type} notification for {user_id}: {title}")
        return notification_id

    def task_assigned(self, actor_id: str, actor_name: str, assignees: Iterable[str],
                      task_title: str, project_name: str, link: Optional[str] = None) -> List[str]:
        """
        Tells every assignee (except whoever assigned) about a new task

        Returns:
            User ids that could not be notified
        """
        failed = []
        for user_id in assignees:
            if user_id == actor_id:
                continue
            try:
                self.notify(
                    user_id,
                    'task-assigned',
                    'New Task Assigned',
                    f'{actor_name} assigned you a new task: "{task_title}" in project "{project_name}"',
                    link=link,
                )
            except StoreError as e:
                logger.error(f"❌ Could not notify {user_id} about task {task_title!r}: {e}")
                failed.append(user_id)
        return failed

    def task_completed(self, assigner_id: str, actor_name: str, task_title: str,
                       link: Optional[str] = None) -> str:
        return self.notify(
            assigner_id,
            'task-completed',
            'Task Completed',
            f'{actor_name} completed the task: "{task_title}"',
            link=link,
        )

    def deadline_reminder(self, user_id: str, task_title: str, due_label: str,
                          link: Optional[str] = None) -> str:
        return self.notify(
            user_id,
            'deadline-reminder',
            'Deadline Approaching',
            f'The task "{task_title}" is due {due_label}',
            link=link,
        )


# Global service instance (Singleton pattern)
notification_service = NotificationService()
