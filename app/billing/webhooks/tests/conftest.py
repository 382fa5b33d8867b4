"""
Pytest fixtures for webhook tests.

Events are built from plain payload dicts, the same shape Stripe posts,
and routed through a WebhookEventRouter wired to a fake Stripe adapter.
"""

import pytest

from billing.engine import build_engine
from billing.tests.factories import (
    CustomerResultFactory,
    PayerFactory,
    make_fake_stripe,
)
from billing.webhooks.router import WebhookEventRouter
from billing.webhooks.types import WebhookEvent

# 2025-03-05 10:00:00 UTC
MARCH_5_2025 = 1741168800


def make_event(event_type: str, data_object: dict, event_id: str = "evt_test_1", **extra):
    """Build a WebhookEvent from a Stripe-shaped payload."""
    payload = {
        "id": event_id,
        "type": event_type,
        "created": MARCH_5_2025,
        "data": {"object": data_object},
        **extra,
    }
    return WebhookEvent.from_payload(payload)


@pytest.fixture
def fake_stripe():
    return make_fake_stripe()


@pytest.fixture
def customer():
    return CustomerResultFactory()


@pytest.fixture
def engine(db, fake_stripe):
    return build_engine(stripe=fake_stripe)


@pytest.fixture
def router(engine):
    """Router wired to the fake Stripe adapter."""
    return WebhookEventRouter(engine)


@pytest.fixture
def payer(db, customer):
    return PayerFactory(
        name=customer.name,
        email=customer.email,
        stripe_customer_id=customer.id,
    )
