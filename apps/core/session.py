# apps/core/session.py

"""
Session / identity resolver

A SessionContext is created explicitly (per request by the middleware, per
connection by the WebSocket consumers) and passed to whoever needs the
resolved identity. It is never stored as module-level state.
"""

import logging
from typing import Optional

from apps.store.client import DocumentStore, store as default_store
from apps.store.exceptions import StoreError

from .mappers import UserProfile, map_user
from .models import MANAGER_ROLES, ROLE_ADMIN, USERS
from .notices import NoticeBoard

logger = logging.getLogger(__name__)


class SessionContext:
    """
    Resolved identity of one session

    Exposes identity, profile, role, is_manager and is_admin. A failed
    profile fetch leaves the profile unresolved and records a notice; it is
    not retried.
    """

    def __init__(self, store: Optional[DocumentStore] = None, notices: Optional[NoticeBoard] = None):
        self._store = store or default_store
        self.notices = notices if notices is not None else NoticeBoard()
        self.identity = None
        self.profile: Optional[UserProfile] = None
        self.error: Optional[StoreError] = None

    @classmethod
    def for_identity(cls, identity, store: Optional[DocumentStore] = None,
                     notices: Optional[NoticeBoard] = None) -> 'SessionContext':
        return cls(store=store, notices=notices).on_auth_state_changed(identity)

    # === Derived state ===

    @property
    def is_authenticated(self) -> bool:
        return self.identity is not None

    @property
    def uid(self) -> Optional[str]:
        return self.identity.uid if self.identity is not None else None

    @property
    def role(self) -> Optional[str]:
        return self.profile.role if self.profile else None

    @property
    def is_manager(self) -> bool:
        return self.role in MANAGER_ROLES

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def display_name(self) -> str:
        if self.profile and self.profile.name:
            return self.profile.name
        return getattr(self.identity, 'email', '') or 'Someone'

    # === Transitions ===

    def on_auth_state_changed(self, identity) -> 'SessionContext':
        """
        Called on every sign-in/sign-out transition

        Args:
            identity: The authenticated account, or None/anonymous on sign-out
        """
        if identity is None or not getattr(identity, 'is_authenticated', False):
            self.clear()
            return self

        self.identity = identity
        self.profile = None
        self.error = None

        try:
            document = self._store.get(USERS, identity.uid)
        except StoreError as e:
            self.error = e
            logger.error(f"❌ Error fetching user data for {identity.uid}: {e}")
            self.notices.error('Failed to load user data')
            return self

        if document.exists:
            self.profile = map_user(document.id, document.data)
        else:
            logger.warning(f"⚠️ No profile document for identity {identity.uid}")

        return self

    def clear(self):
        """Sign-out: drop identity and profile immediately"""
        self.identity = None
        self.profile = None
        self.error = None

    def as_dict(self) -> dict:
        return {
            'uid': self.uid,
            'email': getattr(self.identity, 'email', None),
            'name': self.profile.name if self.profile else None,
            'role': self.role,
            'is_manager': self.is_manager,
            'is_admin': self.is_admin,
            'profile_loaded': self.profile is not None,
        }

    def __repr__(self):
        return f"<SessionContext uid={self.uid} role={self.role}>"
