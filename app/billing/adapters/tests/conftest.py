"""
Pytest fixtures for Stripe adapter tests.

Stripe resources are patched at the module level (stripe.Customer,
stripe.Subscription, ...) and return lightweight stand-ins for Stripe
objects, so no request ever leaves the process.

Sections:
    - Mock Stripe Objects
    - Mock Stripe Error Fixtures
    - Mock Stripe Client Fixtures
"""

from dataclasses import dataclass, field
from typing import Any
from unittest.mock import patch

import pytest
import stripe


# =============================================================================
# Mock Stripe Objects
# =============================================================================


@dataclass
class MockStripeObject:
    """Mock Stripe API object with to_dict support."""

    data: dict[str, Any]

    def __getattr__(self, name: str) -> Any:
        if name == "data":
            return self.__dict__["data"]
        return self.data.get(name)

    def to_dict(self) -> dict[str, Any]:
        return self.data


@dataclass
class MockStripeList:
    """Mock Stripe list response supporting auto-pagination."""

    items: list[Any] = field(default_factory=list)
    has_more: bool = False

    @property
    def data(self) -> list[Any]:
        return self.items

    def auto_paging_iter(self):
        return iter(self.items)


# =============================================================================
# Mock Stripe Error Fixtures
# =============================================================================


@pytest.fixture
def invalid_request_error():
    """Create a Stripe InvalidRequestError."""

    def _create(
        message: str = "No such customer: 'cus_missing'",
        param: str | None = "id",
        code: str = "resource_missing",
    ) -> stripe.InvalidRequestError:
        return stripe.InvalidRequestError(message, param, code=code)

    return _create


@pytest.fixture
def rate_limit_error():
    return stripe.RateLimitError("Too many requests hit the API too quickly.")


@pytest.fixture
def api_connection_error():
    return stripe.APIConnectionError("Could not connect to Stripe.")


@pytest.fixture
def timeout_error():
    return stripe.APIConnectionError("Request to Stripe timed out.")


@pytest.fixture
def api_error():
    return stripe.APIError("Something went wrong on Stripe's end.")


@pytest.fixture
def authentication_error():
    return stripe.AuthenticationError("Invalid API Key provided.")


# =============================================================================
# Mock Stripe Client Fixtures
# =============================================================================


@pytest.fixture
def mock_stripe_customer():
    """Mock stripe.Customer API."""
    with patch("stripe.Customer") as mock:
        mock.retrieve.return_value = MockStripeObject(
            {
                "id": "cus_test123",
                "object": "customer",
                "email": "parent@example.com",
                "name": "Pat Parent",
                "phone": "+15550109999",
                "metadata": {},
            }
        )
        yield mock


@pytest.fixture
def mock_stripe_subscription():
    """Mock stripe.Subscription API."""
    with patch("stripe.Subscription") as mock:
        mock.list.return_value = MockStripeList()
        yield mock


@pytest.fixture
def mock_stripe_invoice():
    """Mock stripe.Invoice API."""
    with patch("stripe.Invoice") as mock:
        yield mock


@pytest.fixture
def mock_stripe_invoice_item():
    """Mock stripe.InvoiceItem API."""
    with patch("stripe.InvoiceItem") as mock:
        mock.list.return_value = MockStripeList()
        yield mock
