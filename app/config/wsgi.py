"""
WSGI entry point for the billing service.

Gunicorn (or any WSGI server) serves the webhook endpoint and the operator
API through the module-level `application` callable.

See https://docs.djangoproject.com/en/5.2/howto/deployment/wsgi/
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

application = get_wsgi_application()
