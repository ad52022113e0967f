"""
WSGI config for the Django application.

WSGI serves the REST API only. Live chat delivery needs the WebSocket
route, which exists only in the ASGI application (config.asgi).

This file exposes the WSGI callable as a module-level variable named `application`.

For more information on this file, see:
https://docs.djangoproject.com/en/5.2/howto/deployment/wsgi/
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

application = get_wsgi_application()
