# config/asgi.py

import os
from django.core.asgi import get_asgi_application
from channels.routing import ProtocolTypeRouter, URLRouter
from channels.auth import AuthMiddlewareStack
from channels.security.websocket import AllowedHostsOriginValidator

# Django settings
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings.development')

# Load Django before importing the WebSocket routes
django_asgi_app = get_asgi_application()

from apps.workspace.routing import websocket_urlpatterns  # noqa: E402

# ASGI configuration
application = ProtocolTypeRouter({
    # Plain HTTP
    "http": django_asgi_app,

    # Authenticated WebSocket live feeds
    "websocket": AllowedHostsOriginValidator(
        AuthMiddlewareStack(
            URLRouter(websocket_urlpatterns)
        )
    ),
})
