"""
ASGI config for the Django application.

This file exposes the ASGI callable as a module-level variable named
`application`. It routes:
- HTTP requests to Django (REST API, admin, docs)
- WebSocket connections to the chat stream consumer

Live delivery is in-process: every WebSocket listener lives in this
process's ListenerRegistry, so messages posted through another process are
not pushed to these sockets. Run a single ASGI worker per deployment.

For more information on this file, see:
https://docs.djangoproject.com/en/5.2/howto/deployment/asgi/
"""

import os

from django.core.asgi import get_asgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

# Initialize Django before importing anything that touches models
django_asgi_app = get_asgi_application()

from channels.routing import ProtocolTypeRouter, URLRouter  # noqa: E402
from channels.security.websocket import AllowedHostsOriginValidator  # noqa: E402

from chat.middleware import JWTAuthMiddleware  # noqa: E402
from chat.routing import websocket_urlpatterns  # noqa: E402

application = ProtocolTypeRouter(
    {
        "http": django_asgi_app,
        # Origin check, then JWT authentication, then consumer routing
        "websocket": AllowedHostsOriginValidator(
            JWTAuthMiddleware(URLRouter(websocket_urlpatterns))
        ),
    }
)
