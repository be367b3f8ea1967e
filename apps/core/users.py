# apps/core/users.py

"""
User directory - administration of profiles and accounts

Role changes and removals are admin-only operations. Removing a user
also takes them off every task they were assigned to; tasks left without
any assignee are removed in the same batch.
"""

import logging
from collections import Counter
from typing import Dict, List, Optional

from django.core.exceptions import PermissionDenied, ValidationError

from apps.store.client import SERVER_TIMESTAMP, DocumentStore, store as default_store
from apps.store.exceptions import StoreError, StoreErrorKind

from .mappers import UserProfile, map_task, map_user, to_payload
from .models import ROLE_CHOICES, TASKS, USERS, Account
from .notices import NoticeBoard
from .permissions import RolePermissions
from .utils import role_badge, user_initials

logger = logging.getLogger(__name__)

VALID_ROLES = {value for value, _label in ROLE_CHOICES}


class UserDirectory:
    """
    Args:
        session: SessionContext of the acting user
        notices: Where success/failure notices go
    """

    def __init__(self, session, notices: Optional[NoticeBoard] = None,
                 store: Optional[DocumentStore] = None):
        self.session = session
        self.notices = notices if notices is not None else session.notices
        self._store = store or default_store

    def list_users(self) -> List[Dict]:
        """Every profile, by name, with its task statistics"""
        if not RolePermissions.can_view_users(self.session):
            raise PermissionDenied('Only managers and administrators can list users')

        users = [map_user(doc.id, doc.data) for doc in self._store.query(self._store.collection(USERS))]
        tasks = [map_task(doc.id, doc.data) for doc in self._store.query(self._store.collection(TASKS))]

        assigned = Counter()
        completed = Counter()
        for task in tasks:
            for user_id in task.assigned_to:
                assigned[user_id] += 1
                if task.status == 'completed':
                    completed[user_id] += 1

        rows = []
        for user in sorted(users, key=lambda profile: (profile.name.lower(), profile.email)):
            row = to_payload(user)
            row.update({
                'initials': user_initials(user.name),
                'badge': role_badge(user.role),
                'assigned_tasks': assigned[user.id],
                'completed_tasks': completed[user.id],
                'pending_tasks': assigned[user.id] - completed[user.id],
            })
            rows.append(row)
        return rows

    def change_role(self, user_id: str, role: str) -> UserProfile:
        if not RolePermissions.is_admin(self.session):
            raise PermissionDenied('Only administrators can change roles')

        if user_id == self.session.uid:
            raise ValidationError('You cannot change your own role', code='own_role')

        if role not in VALID_ROLES:
            raise ValidationError(f'Invalid role: {role}', code='invalid_role')

        try:
            self._store.update(USERS, user_id, {'role': role, 'updatedAt': SERVER_TIMESTAMP})
        except StoreError as e:
            logger.error(f"❌ Error changing role of {user_id}: {e}")
            message = 'User not found' if e.kind == StoreErrorKind.NOT_FOUND else 'Failed to update role'
            self.notices.error(message)
            raise

        profile = map_user(user_id, self._store.get(USERS, user_id).data)
        logger.info(f"🛡️ {self.session.uid} set role of {user_id} to {role}")
        self.notices.success(f"{profile.name or profile.email} is now {role}")
        return profile

    def delete_user(self, user_id: str) -> Dict[str, int]:
        """
        Removes the profile, the task assignments and the account

        Returns:
            Counts of tasks updated and deleted
        """
        if not RolePermissions.is_admin(self.session):
            raise PermissionDenied('Only administrators can delete users')

        if user_id == self.session.uid:
            raise ValidationError('You cannot delete your own account', code='own_account')

        profile = self._store.get(USERS, user_id)
        account = Account.objects.filter(pk=user_id).first() if user_id.isdigit() else None
        if not profile.exists and account is None:
            self.notices.error('User not found')
            raise StoreError(StoreErrorKind.NOT_FOUND, f'No user {user_id}')

        assigned = self._store.query(self._store.collection(TASKS).where('assignedTo', 'array-contains', user_id))

        batch = self._store.batch()
        updated = deleted = 0
        for doc in assigned:
            remaining = [uid for uid in doc.data.get('assignedTo', []) if uid != user_id]
            if remaining:
                batch.update(TASKS, doc.id, {'assignedTo': remaining, 'updatedAt': SERVER_TIMESTAMP})
                updated += 1
            else:
                batch.delete(TASKS, doc.id)
                deleted += 1
        batch.delete(USERS, user_id)

        try:
            batch.commit()
        except StoreError as e:
            logger.error(f"❌ Error deleting user {user_id}: {e}")
            self.notices.error('Failed to delete user')
            raise

        if account is not None:
            account.delete()

        logger.info(f"🗑️ User {user_id} deleted ({updated} tasks updated, {deleted} tasks deleted)")
        self.notices.success('User deleted')
        return {'tasks_updated': updated, 'tasks_deleted': deleted}
