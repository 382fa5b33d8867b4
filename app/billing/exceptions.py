"""
Billing-specific exceptions.

Exception Hierarchy:
    BillingError (base for the billing domain)
    ├── BillingConfigurationError - Missing/invalid required setting (fatal at call site)
    ├── WebhookPayloadError - Malformed webhook payload (log and drop)
    └── StripeError - Base for all Stripe API errors
        ├── StripeInvalidRequestError - Invalid request params (permanent)
        ├── StripeAuthenticationError - Bad API key (permanent)
        ├── StripeRateLimitError - Rate limited (transient, retry)
        ├── StripeAPIUnavailableError - API unavailable (transient, retry)
        └── StripeTimeoutError - Request timeout (transient, retry)

Retry policy:
    Transient errors propagate out of the webhook router so the view answers
    500 and Stripe redelivers the event. Permanent errors drop the event.
    Nothing in this app retries a Stripe call in a loop; the SDK's own
    network retries are the only inner retries.

Usage:
    from billing.exceptions import StripeError

    try:
        synchronizer.sync(customer_id)
    except StripeError as e:
        if e.is_retryable:
            raise  # let the webhook be redelivered
        logger.error("Permanent Stripe failure", extra={"error_code": e.error_code})
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import BaseApplicationError, ValidationError

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Billing Domain Exceptions
# =============================================================================


class BillingError(BaseApplicationError):
    """Base exception for all billing operations."""

    default_error_code: str = "BILLING_ERROR"


class BillingConfigurationError(BillingError):
    """
    A required billing setting is missing or invalid.

    Raised at the call site that needs the setting (for example the first
    Stripe call without STRIPE_SECRET_KEY), never at import time, so the
    rest of the service keeps running.
    """

    default_error_code: str = "BILLING_CONFIGURATION_ERROR"


class WebhookPayloadError(BillingError, ValidationError):
    """
    A webhook payload is missing a required field or is malformed.

    Not retryable: redelivery would carry the same payload.
    """

    default_error_code: str = "INVALID_WEBHOOK_PAYLOAD"


# =============================================================================
# Stripe-Specific Exceptions
# =============================================================================


class StripeError(BillingError):
    """
    Base exception for all Stripe-related errors.

    Attributes:
        stripe_code: Stripe's internal error code
        is_retryable: True for transient errors (safe to redo later)
    """

    default_error_code: str = "STRIPE_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        stripe_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if stripe_code:
            details["stripe_code"] = stripe_code
        super().__init__(message, error_code=error_code, details=details)
        self.stripe_code = stripe_code


# -----------------------------------------------------------------------------
# Permanent Errors (do not retry)
# -----------------------------------------------------------------------------


class StripeInvalidRequestError(StripeError):
    """
    Invalid request parameters, unknown object, or bad webhook signature.

    Permanent: the same request will fail again.
    """

    default_error_code: str = "STRIPE_INVALID_REQUEST"
    is_retryable: bool = False


class StripeAuthenticationError(StripeError):
    """The configured API key was rejected. Operational issue."""

    default_error_code: str = "STRIPE_AUTHENTICATION_ERROR"
    is_retryable: bool = False


# -----------------------------------------------------------------------------
# Transient Errors (retry later)
# -----------------------------------------------------------------------------


class StripeRateLimitError(StripeError):
    """Too many requests; retry after backing off."""

    default_error_code: str = "STRIPE_RATE_LIMIT"
    is_retryable: bool = True


class StripeAPIUnavailableError(StripeError):
    """Network failure or Stripe 5xx."""

    default_error_code: str = "STRIPE_API_UNAVAILABLE"
    is_retryable: bool = True


class StripeTimeoutError(StripeError):
    """The request exceeded STRIPE_API_TIMEOUT_SECONDS."""

    default_error_code: str = "STRIPE_TIMEOUT"
    is_retryable: bool = True
