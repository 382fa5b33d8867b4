"""
Celery application for the billing service.

Background work in this project:
- Nightly reconciliation scan (billing.tasks.scan_unlinked_subscriptions),
  scheduled through django-celery-beat's DatabaseScheduler
- On-demand customer resync (billing.tasks.sync_customer_billing),
  enqueued from the Django admin

Redis is both the broker and the result backend. Tasks are auto-discovered
from the tasks.py module of every installed app.

Usage:
    from billing.tasks import sync_customer_billing

    sync_customer_billing.delay("cus_123")

See https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

app.autodiscover_tasks()
