# apps/core/views.py

import logging

from django.core.cache import cache
from django.core.exceptions import PermissionDenied, ValidationError
from django.http import JsonResponse
from django.utils import timezone
from django.views.decorators.http import require_GET, require_POST

from apps.store.exceptions import StoreError, StoreErrorKind
from apps.store.models import Document

from .auth_service import AuthError, auth_service
from .forms import LoginForm, RegistrationForm, RoleForm
from .mappers import to_payload
from .notices import NoticeBoard, notice_response
from .permissions import admin_required, manager_required, session_required
from .session import SessionContext
from .users import UserDirectory
from .utils import form_error_message, read_payload, validation_messages

logger = logging.getLogger(__name__)

VERSION = '0.1.0'


# === AUTHENTICATION ===

@require_POST
def register_view(request):
    """
    Self-registration; the new account is signed in on success

    The authentication service does every check, the view only maps the
    outcome to a response.
    """
    notices = NoticeBoard()

    try:
        payload = read_payload(request)
    except ValidationError as e:
        notices.error(validation_messages(e)[0])
        return notice_response(request, notices)

    form = RegistrationForm(payload)

    if not form.is_valid():
        notices.error(form_error_message(form))
        return notice_response(request, notices)

    data = dict(form.cleaned_data)
    data['role'] = payload.get('role')

    try:
        account = auth_service.register(data, request=request)
    except ValidationError as e:
        notices.error(validation_messages(e)[0])
        return notice_response(request, notices)
    except AuthError as e:
        notices.error(e.message)
        return notice_response(request, notices, payload={'code': e.kind.value})
    except StoreError:
        notices.error('Account created but the profile could not be saved')
        return notice_response(request, notices, status=503)

    notices.success('Account created successfully!')
    session = getattr(request, 'session_context', None) or SessionContext.for_identity(account)
    return notice_response(request, notices, payload={'user': session.as_dict()}, status=201)


@require_POST
def login_view(request):
    notices = NoticeBoard()

    try:
        form = LoginForm(read_payload(request))
    except ValidationError as e:
        notices.error(validation_messages(e)[0])
        return notice_response(request, notices)

    if not form.is_valid():
        notices.error(form_error_message(form))
        return notice_response(request, notices)

    try:
        auth_service.sign_in(request, form.cleaned_data['email'], form.cleaned_data['password'])
    except AuthError as e:
        notices.error(e.message)
        return notice_response(request, notices, payload={'code': e.kind.value}, status=401)

    session = request.session_context
    for notice in session.notices.drain():
        notices.add(notice.level, notice.message)
    notices.success(f"Welcome back, {session.display_name}!")
    return notice_response(request, notices, payload={'user': session.as_dict()}, success=True)


@require_POST
def logout_view(request):
    notices = NoticeBoard()
    auth_service.sign_out(request)
    notices.info('You have been signed out.')
    return notice_response(request, notices)


@session_required
@require_GET
def me_view(request):
    session = request.session_context
    body = {'success': True, 'user': session.as_dict()}
    if session.profile is not None:
        body['profile'] = to_payload(session.profile)
    body['notices'] = [notice.as_dict() for notice in session.notices.drain()]
    return JsonResponse(body)


# === USERS ADMINISTRATION ===

@manager_required
@require_GET
def users_list(request):
    directory = UserDirectory(request.session_context, notices=NoticeBoard())
    try:
        users = directory.list_users()
    except StoreError as e:
        logger.error(f"❌ Error listing users: {e}")
        return JsonResponse({'success': False, 'error': 'Failed to load users'}, status=503)

    return JsonResponse({'success': True, 'users': users, 'count': len(users)})


@admin_required
@require_POST
def change_user_role(request, user_id):
    notices = NoticeBoard()

    try:
        form = RoleForm(read_payload(request))
    except ValidationError as e:
        notices.error(validation_messages(e)[0])
        return notice_response(request, notices)

    if not form.is_valid():
        notices.error(form_error_message(form))
        return notice_response(request, notices)

    directory = UserDirectory(request.session_context, notices=notices)
    try:
        profile = directory.change_role(user_id, form.cleaned_data['role'])
    except ValidationError as e:
        notices.error(validation_messages(e)[0])
        return notice_response(request, notices)
    except PermissionDenied as e:
        notices.error(str(e))
        return notice_response(request, notices, status=403)
    except StoreError as e:
        return notice_response(request, notices, status=404 if e.kind == StoreErrorKind.NOT_FOUND else 503)

    return notice_response(request, notices, payload={'user': to_payload(profile)})


@admin_required
@require_POST
def delete_user(request, user_id):
    notices = NoticeBoard()
    directory = UserDirectory(request.session_context, notices=notices)

    try:
        summary = directory.delete_user(user_id)
    except ValidationError as e:
        notices.error(validation_messages(e)[0])
        return notice_response(request, notices)
    except PermissionDenied as e:
        notices.error(str(e))
        return notice_response(request, notices, status=403)
    except StoreError as e:
        return notice_response(request, notices, status=404 if e.kind == StoreErrorKind.NOT_FOUND else 503)

    return notice_response(request, notices, payload=summary)


# === MONITORING ===

@require_GET
def health_check(request):
    """
    Health check for monitoring
    """
    try:
        # Store and database
        Document.objects.exists()

        # Cache (Redis when configured)
        cache.set('health_check', 'ok', 60)
        cache.get('health_check')

        status = {
            'status': 'healthy',
            'database': 'ok',
            'cache': 'ok',
            'timestamp': timezone.now().isoformat(),
            'version': VERSION
        }

        return JsonResponse(status)

    except Exception as e:
        logger.error(f"❌ Health check failed: {e}")
        status = {
            'status': 'unhealthy',
            'error': str(e),
            'timestamp': timezone.now().isoformat(),
            'version': VERSION
        }

        return JsonResponse(status, status=500)
