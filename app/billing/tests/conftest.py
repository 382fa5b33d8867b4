"""
Pytest fixtures for billing tests.

The Stripe adapter is replaced by a MagicMock with the adapter's method
names. Every list call returns an empty list unless a test says
otherwise, so a test only configures the calls it cares about.

Usage:
    def test_sync_creates_payer(engine, fake_stripe, customer):
        fake_stripe.retrieve_customer.return_value = customer
        result = engine.synchronizer.sync(customer.id)
        assert result.payer_created
"""

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from billing.engine import build_engine
from billing.tests.factories import (
    CustomerResultFactory,
    PayerFactory,
    StudentFactory,
    make_fake_stripe,
)


# =============================================================================
# Stripe Fixtures
# =============================================================================


@pytest.fixture
def fake_stripe():
    """Fake Stripe adapter."""
    return make_fake_stripe()


@pytest.fixture
def customer():
    """The default Stripe customer, not yet known locally."""
    return CustomerResultFactory()


@pytest.fixture
def engine(db, fake_stripe):
    """BillingEngine wired to the fake Stripe adapter."""
    return build_engine(stripe=fake_stripe)


# =============================================================================
# Model Fixtures
# =============================================================================


@pytest.fixture
def payer(db, customer):
    """A payer already linked to the default Stripe customer."""
    return PayerFactory(
        name=customer.name,
        email=customer.email,
        stripe_customer_id=customer.id,
    )


@pytest.fixture
def student(db):
    """A registered student with no Stripe linkage."""
    return StudentFactory(name="Ana Lima", email="ana.lima@example.com")


@pytest.fixture
def sibling(db):
    """A second registered student from the same family."""
    return StudentFactory(name="Ben Lima", email="ben.lima@example.com")


# =============================================================================
# API Client Fixtures
# =============================================================================


@pytest.fixture
def api_client():
    """Unauthenticated API client."""
    return APIClient()


@pytest.fixture
def staff_user(db):
    return get_user_model().objects.create_user(
        username="operator",
        email="operator@example.com",
        password="operator-pass-123",
        is_staff=True,
    )


@pytest.fixture
def staff_client(staff_user):
    """API client authenticated as a staff operator."""
    client = APIClient()
    client.force_authenticate(user=staff_user)
    return client
