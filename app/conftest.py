"""
App-level pytest configuration.

Marks tests by file name and resets shared state between tests.
App-specific fixtures are defined in each app's tests/conftest.py.
"""

import pytest


def pytest_collection_modifyitems(items):
    """
    Auto-mark tests based on filename patterns.

    Mapping:
    - test_views.py, test_handlers.py, test_tasks.py, etc. → integration
    - test_models.py, test_metadata.py, test_stripe_adapter.py, etc. → unit
    - Unmatched files → integration (safe default for Django)

    Explicit markers on test functions/classes take precedence.
    """
    integration_patterns = [
        "test_views.py",
        "test_api.py",
        "test_services.py",
        "test_tasks.py",
        "test_handlers.py",
        "test_sync_service.py",
        "test_reconciliation_service.py",
        "test_ledger.py",
        "test_backfill.py",
        "test_profit_share.py",
        "test_admin.py",
    ]

    unit_patterns = [
        "test_models.py",
        "test_metadata.py",
        "test_idempotency.py",
        "test_identity_resolver.py",
        "test_stripe_adapter.py",
        "test_states.py",
        "test_helpers.py",
    ]

    for item in items:
        # Skip if test already has unit/integration marker
        existing_markers = {m.name for m in item.iter_markers()}
        if existing_markers & {"unit", "integration"}:
            continue

        filename = str(item.fspath).split("/")[-1]

        if any(pattern in filename for pattern in integration_patterns):
            item.add_marker(pytest.mark.integration)
        elif any(pattern in filename for pattern in unit_patterns):
            item.add_marker(pytest.mark.unit)
        else:
            # Default: integration (safe for Django where most tests hit DB)
            item.add_marker(pytest.mark.integration)


@pytest.fixture(autouse=True)
def clear_cache():
    """Start every test with an empty cache (idempotency records live there)."""
    from django.core.cache import cache

    cache.clear()
    yield
    cache.clear()
