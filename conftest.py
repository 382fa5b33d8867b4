"""
Root pytest configuration for the Django project.

This module configures pytest-django and provides project-wide defaults.
App-specific fixtures are defined in each app's tests/conftest.py.

Tests run against SQLite and a local-memory cache so they need neither
PostgreSQL nor Redis. Any of the defaults below can be overridden from
the environment.
"""

import os
import sys
from pathlib import Path

import django

APP_DIR = Path(__file__).resolve().parent / "app"
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

# Ensure Django settings are configured before any tests run
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("DATABASE_URL", "sqlite://:memory:")
os.environ.setdefault("DEBUG", "False")
os.environ.setdefault("SECURE_SSL_REDIRECT", "False")
os.environ.setdefault("SESSION_COOKIE_SECURE", "False")
os.environ.setdefault("CSRF_COOKIE_SECURE", "False")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_dummy")
os.environ.setdefault("ENV_FILE", str(APP_DIR / ".env.test"))


def pytest_configure():
    """Configure Django settings before tests run."""
    from django.conf import settings

    # Idempotency records and other cache users get an isolated in-process cache
    settings.CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
            "LOCATION": "billing-tests",
        }
    }

    # Use fast password hasher for tests
    settings.PASSWORD_HASHERS = [
        "django.contrib.auth.hashers.MD5PasswordHasher",
    ]

    # Tasks run inline when called with .delay() from the admin action
    settings.CELERY_TASK_ALWAYS_EAGER = True

    django.setup()
