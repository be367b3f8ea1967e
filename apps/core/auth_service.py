# apps/core/auth_service.py

"""
Authentication service - encapsulates every auth flow of the system

Principles applied:
- Local validation happens before any provider or store call
- Provider failures surface as AuthError with a closed AuthErrorKind
- Self-registration always creates a plain "user" profile
"""

import logging
from enum import Enum
from typing import Dict, Optional

from django.conf import settings
from django.contrib.auth import authenticate, login, logout
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError
from django.core.validators import validate_email
from django.db import IntegrityError, transaction

from apps.store.client import SERVER_TIMESTAMP, DocumentStore, store as default_store

from .models import ROLE_ADMIN, ROLE_USER, USERS, Account

logger = logging.getLogger(__name__)


class AuthErrorKind(str, Enum):
    """Documented provider error codes"""

    EMAIL_ALREADY_IN_USE = 'auth/email-already-in-use'
    WEAK_PASSWORD = 'auth/weak-password'
    INVALID_EMAIL = 'auth/invalid-email'
    INVALID_CREDENTIAL = 'auth/invalid-credential'
    USER_DISABLED = 'auth/user-disabled'
    UNKNOWN = 'auth/unknown'


PROVIDER_MESSAGES = {
    AuthErrorKind.EMAIL_ALREADY_IN_USE: 'The email address is already in use by another account.',
    AuthErrorKind.WEAK_PASSWORD: 'The password is too weak.',
    AuthErrorKind.INVALID_EMAIL: 'The email address is badly formatted.',
    AuthErrorKind.INVALID_CREDENTIAL: 'Invalid email or password.',
    AuthErrorKind.USER_DISABLED: 'This account has been disabled.',
    AuthErrorKind.UNKNOWN: 'Authentication failed. Try again.',
}


class AuthError(Exception):
    """Failure reported by the authentication provider"""

    def __init__(self, kind: AuthErrorKind, message: Optional[str] = None):
        self.kind = kind
        self.message = message or PROVIDER_MESSAGES[kind]
        super().__init__(f"{kind.value}: {self.message}")


class AuthenticationService:
    """
    Encapsulated service to manage registration, sign-in and sign-out

    Args:
        store: Document store holding the users/<uid> profiles
    """

    def __init__(self, store: Optional[DocumentStore] = None):
        self._store = store or default_store

    @property
    def min_password_length(self) -> int:
        return getattr(settings, 'ORBIT_MIN_PASSWORD_LENGTH', 6)

    def register(self, data: Dict, request=None) -> Account:
        """
        Creates an account and its "user" profile document

        Args:
            data: Dict with name, email, password, confirm_password.
                  Any "role" key is ignored.
            request: When given, the new account is signed in

        Returns:
            The created account

        Raises:
            ValidationError: local validation failed (nothing written)
            AuthError: the provider refused the account
            StoreError: the profile document could not be written
        """
        if data.get('role') not in (None, '', ROLE_USER):
            logger.warning(f"⚠️ Registration tried to request role {data.get('role')!r}; ignored")

        name, email, password = self._validate_registration(data)

        account = self._create_account(email, password)
        self._create_profile(account, name=name, email=email, role=ROLE_USER)

        logger.info(f"✅ Account registered: {email}")

        if request is not None:
            login(request, account, backend='django.contrib.auth.backends.ModelBackend')

        return account

    def sign_in(self, request, email: str, password: str) -> Account:
        """
        Signs an account in

        Raises:
            AuthError: INVALID_CREDENTIAL or USER_DISABLED
        """
        email = (email or '').strip().lower()
        account = authenticate(request, username=email, password=password or '')

        if account is None:
            self._log_failed_attempt(email)
            if self._is_disabled(email, password):
                raise AuthError(AuthErrorKind.USER_DISABLED)
            raise AuthError(AuthErrorKind.INVALID_CREDENTIAL)

        login(request, account)
        logger.info(f"🔑 Signed in: {email}")
        return account

    def sign_out(self, request) -> bool:
        """Signs the current account out"""
        email = getattr(request.user, 'email', '')
        logout(request)
        logger.info(f"👋 Signed out: {email or 'anonymous'}")
        return True

    def create_admin(self, name: str, email: str, password: str) -> Account:
        """
        Creates the initial administrator (privileged path, never exposed
        through self-registration)
        """
        email = (email or '').strip().lower()
        if len(password or '') < self.min_password_length:
            raise ValidationError(
                f"Password must be at least {self.min_password_length} characters",
                code='password_too_short'
            )

        account = self._create_account(email, password, is_staff=True)
        self._create_profile(account, name=name.strip(), email=email, role=ROLE_ADMIN, initial_admin=True)
        logger.info(f"🛡️ Initial admin created: {email}")
        return account

    # =================== PRIVATE METHODS (ENCAPSULATED) ===================

    def _validate_registration(self, data: Dict):
        """Local checks; raises ValidationError before any write"""
        name = (data.get('name') or '').strip()
        email = (data.get('email') or '').strip().lower()
        password = data.get('password') or ''
        confirm_password = data.get('confirm_password') or ''

        if not name:
            raise ValidationError('Name is required', code='required')

        if not email:
            raise ValidationError('Email is required', code='required')

        if password != confirm_password:
            raise ValidationError('Passwords do not match', code='password_mismatch')

        if len(password) < self.min_password_length:
            raise ValidationError(
                f"Password must be at least {self.min_password_length} characters",
                code='password_too_short'
            )

        return name, email, password

    def _create_account(self, email: str, password: str, is_staff: bool = False) -> Account:
        """Provider side: creates the credential record"""
        try:
            validate_email(email)
        except ValidationError:
            raise AuthError(AuthErrorKind.INVALID_EMAIL)

        if Account.objects.filter(email__iexact=email).exists():
            raise AuthError(AuthErrorKind.EMAIL_ALREADY_IN_USE)

        candidate = Account(username=email, email=email, is_staff=is_staff)
        try:
            validate_password(password, user=candidate)
        except ValidationError as e:
            raise AuthError(AuthErrorKind.WEAK_PASSWORD, ' '.join(e.messages))

        candidate.set_password(password)
        try:
            with transaction.atomic():
                candidate.save()
        except IntegrityError:
            raise AuthError(AuthErrorKind.EMAIL_ALREADY_IN_USE)

        return candidate

    def _create_profile(self, account: Account, name: str, email: str, role: str,
                        initial_admin: bool = False):
        """Store side: writes users/<uid>"""
        profile = {
            'name': name,
            'email': email,
            'role': role,
            'createdAt': SERVER_TIMESTAMP,
        }
        if initial_admin:
            profile['isInitialAdmin'] = True

        try:
            self._store.set(USERS, account.uid, profile)
        except Exception:
            # No atomicity between provider and store: the account stays
            logger.error(f"❌ Account {email} created but its profile could not be written")
            raise

    def _is_disabled(self, email: str, password: str) -> bool:
        account = Account.objects.filter(email__iexact=email).first()
        return bool(account and not account.is_active and account.check_password(password or ''))

    def _log_failed_attempt(self, email: str):
        logger.warning(f"⚠️ Failed sign-in attempt for: {email}")


# Global service instance (Singleton pattern)
auth_service = AuthenticationService()
