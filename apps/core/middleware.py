# apps/core/middleware.py

from django.utils.functional import SimpleLazyObject

from .session import SessionContext


class SessionContextMiddleware:
    """
    Attaches an explicitly-owned SessionContext to each request

    The profile document is only fetched when a view (or the response
    headers below) first touches request.session_context.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        request.session_context = SimpleLazyObject(
            lambda: SessionContext.for_identity(request.user)
        )

        response = self.get_response(request)

        # Role header for the client
        if hasattr(request, 'user') and request.user.is_authenticated:
            role = request.session_context.role
            if role:
                response['X-User-Role'] = role

        return response
