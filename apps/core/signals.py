# apps/core/signals.py

import logging

from django.contrib.auth.signals import user_logged_in, user_logged_out
from django.dispatch import receiver

logger = logging.getLogger(__name__)


@receiver(user_logged_in)
def resolve_session_on_sign_in(sender, request, user, **kwargs):
    """
    Sign-in transition: resolve the profile of the new identity
    """
    context = getattr(request, 'session_context', None)
    if context is not None:
        context.on_auth_state_changed(user)
        logger.debug(f"🔐 Session resolved for {user.uid}: role={context.role}")


@receiver(user_logged_out)
def clear_session_on_sign_out(sender, request, user, **kwargs):
    """
    Sign-out transition: drop the resolved profile immediately
    """
    context = getattr(request, 'session_context', None)
    if context is not None:
        context.clear()
