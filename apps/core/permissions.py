# apps/core/permissions.py

from functools import wraps

from django.http import JsonResponse


class RolePermissions:
    """
    Custom permission system of Orbit Board
    Based on profile roles: admin, manager, user
    """

    @staticmethod
    def is_admin(session):
        """Is an administrator"""
        return session.is_authenticated and session.is_admin

    @staticmethod
    def is_manager(session):
        """Is a manager or an administrator"""
        return session.is_authenticated and session.is_manager

    @staticmethod
    def can_manage_projects(session):
        """Can create, edit and delete projects"""
        return RolePermissions.is_manager(session)

    @staticmethod
    def can_manage_tasks(session):
        """Can create and delete tasks, and reassign them"""
        return RolePermissions.is_manager(session)

    @staticmethod
    def can_edit_task(session, task):
        """Managers edit any task; assignees edit their own"""
        if not session.is_authenticated:
            return False

        if session.is_manager:
            return True

        return session.uid in task.assigned_to

    @staticmethod
    def can_view_users(session):
        return RolePermissions.is_manager(session)

    @staticmethod
    def can_administer_user(session, target_uid):
        """Only admins change roles or remove accounts, never their own"""
        return RolePermissions.is_admin(session) and session.uid != target_uid

    @staticmethod
    def can_view_reports(session):
        return RolePermissions.is_manager(session)


# Decorators for JSON views

def _denied(message, status):
    return JsonResponse({'success': False, 'error': message}, status=status)


def session_required(view_func):
    """Requires a signed-in identity"""

    @wraps(view_func)
    def wrapped_view(request, *args, **kwargs):
        if not request.user.is_authenticated:
            return _denied('Authentication required.', 401)
        return view_func(request, *args, **kwargs)

    return wrapped_view


def manager_required(view_func):
    """Requires a manager or admin profile"""

    @wraps(view_func)
    def wrapped_view(request, *args, **kwargs):
        if not request.user.is_authenticated:
            return _denied('Authentication required.', 401)
        if not RolePermissions.is_manager(request.session_context):
            return _denied('Access denied. Only managers and administrators.', 403)
        return view_func(request, *args, **kwargs)

    return wrapped_view


def admin_required(view_func):
    """Requires an admin profile"""

    @wraps(view_func)
    def wrapped_view(request, *args, **kwargs):
        if not request.user.is_authenticated:
            return _denied('Authentication required.', 401)
        if not RolePermissions.is_admin(request.session_context):
            return _denied('Access denied. Only administrators.', 403)
        return view_func(request, *args, **kwargs)

    return wrapped_view
