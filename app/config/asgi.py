"""
ASGI entry point for the billing service.

Only plain HTTP is served; there are no WebSocket routes. Uvicorn can use
this module instead of the WSGI entry point when running the service behind
an async-capable server.

See https://docs.djangoproject.com/en/5.2/howto/deployment/asgi/
"""

import os

from django.core.asgi import get_asgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

application = get_asgi_application()
