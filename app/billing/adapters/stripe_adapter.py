"""
Stripe API adapter for billing operations.

This module provides the StripeAdapter class which encapsulates all
Stripe API interactions. All Stripe calls go through this adapter to
ensure consistent error handling, timeouts and observability.

Features:
- Configurable timeouts on all API calls
- Automatic error translation to domain exceptions
- Structured logging with timing metrics
- Results returned as plain dataclasses (no Stripe objects leak out)

Configuration (via settings):
- STRIPE_SECRET_KEY: Stripe API secret key (required at call time)
- STRIPE_WEBHOOK_SECRET: Webhook signing secret
- STRIPE_API_TIMEOUT_SECONDS: API call timeout (default: 10)
- STRIPE_MAX_RETRIES: SDK network retries (default: 2)

Dependency injection:
    Services take the adapter as a constructor argument and default to
    the StripeAdapter class itself (all methods are classmethods). Tests
    pass a MagicMock with the same method names.

Usage:
    from billing.adapters import StripeAdapter

    customer = StripeAdapter.retrieve_customer("cus_123")
    for subscription in StripeAdapter.list_customer_subscriptions("cus_123"):
        print(subscription.id, subscription.status)
"""

from __future__ import annotations

import calendar
import functools
import hashlib
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone as dt_timezone
from typing import Any

import stripe
from django.conf import settings

from billing.exceptions import (
    BillingConfigurationError,
    StripeAPIUnavailableError,
    StripeAuthenticationError,
    StripeError,
    StripeInvalidRequestError,
    StripeRateLimitError,
    StripeTimeoutError,
)


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class CustomerResult:
    """
    Result from Stripe Customer operations.

    Attributes:
        id: Customer ID (cus_xxx)
        email: Customer email (None if not set)
        name: Customer name
        phone: Customer phone
        deleted: True if the customer was deleted in Stripe
        metadata: Attached metadata
        raw_response: Full Stripe response dict (for debugging)
    """

    id: str
    email: str | None = None
    name: str | None = None
    phone: str | None = None
    deleted: bool = False
    metadata: dict[str, str] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class SubscriptionResult:
    """
    Result from Stripe Subscription operations.

    Attributes:
        id: Subscription ID (sub_xxx)
        customer_id: Owning customer ID
        status: Stripe status string (active, past_due, ...)
        current_period_start: Start of the current billing period
        current_period_end: End of the current billing period
        metadata: Attached metadata (studentIds, studentRates, ...)
        customer: Expanded customer, when requested
        latest_invoice_id: ID of the latest invoice
        checkout_session_id: Checkout session recorded on the latest
            invoice's payment intent metadata, when expanded
        raw_response: Full Stripe response dict
    """

    id: str
    customer_id: str
    status: str
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    customer: CustomerResult | None = None
    latest_invoice_id: str | None = None
    checkout_session_id: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class InvoiceLineResult:
    """One invoice line item with its billing period."""

    id: str
    type: str | None = None
    parent_type: str | None = None
    amount_cents: int = 0
    period_start: datetime | None = None
    period_end: datetime | None = None

    @property
    def is_subscription_line(self) -> bool:
        return (
            self.type == "subscription"
            or self.parent_type == "subscription_item_details"
        )


@dataclass
class InvoiceResult:
    """
    Result from Stripe Invoice operations.

    Attributes:
        id: Invoice ID (in_xxx)
        customer_id: Billed customer
        subscription_id: Subscription the invoice belongs to (None for one-off invoices)
        status: Invoice status (draft, open, paid, ...)
        amount_paid_cents: Amount actually paid
        total_cents: Invoice total
        created: Creation time
        paid_at: When the invoice was paid (None if unpaid)
        lines: Line items
        raw_response: Full Stripe response dict
    """

    id: str
    customer_id: str | None
    subscription_id: str | None
    status: str | None = None
    amount_paid_cents: int = 0
    total_cents: int = 0
    created: datetime | None = None
    paid_at: datetime | None = None
    lines: list[InvoiceLineResult] = field(default_factory=list)
    raw_response: dict[str, Any] = field(default_factory=dict)

    def subscription_period_line(self) -> InvoiceLineResult | None:
        """Return the first subscription line that carries a billing period."""
        for line in self.lines:
            if line.is_subscription_line and line.period_start and line.period_end:
                return line
        return None


@dataclass
class InvoiceItemResult:
    """Result from Stripe InvoiceItem operations."""

    id: str
    customer_id: str
    description: str | None
    amount_cents: int
    currency: str
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class CheckoutSessionResult:
    """
    Result from Stripe Checkout Session operations.

    Attributes:
        custom_fields: Custom checkout fields keyed by field key; text
            fields map to their text value, numeric fields to their digits
    """

    id: str
    mode: str | None = None
    customer_id: str | None = None
    subscription_id: str | None = None
    customer_email: str | None = None
    customer_name: str | None = None
    custom_fields: dict[str, str | None] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class PayoutResult:
    """Result from Stripe Payout operations."""

    id: str
    amount_cents: int
    currency: str
    status: str
    arrival_date: datetime | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class BalanceTransactionResult:
    """
    A balance transaction included in a payout.

    For charge transactions, the charge and its customer are expanded so
    the customer can be matched against local payers.
    """

    id: str
    reporting_category: str | None
    amount_cents: int
    net_cents: int
    charge_id: str | None = None
    charge_paid: bool = False
    invoice_id: str | None = None
    customer_id: str | None = None
    customer_email: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Parsing Helpers
# =============================================================================


def to_datetime(timestamp: int | float | None) -> datetime | None:
    """Convert a Stripe unix timestamp into an aware UTC datetime."""
    if timestamp in (None, ""):
        return None
    return datetime.fromtimestamp(int(timestamp), tz=dt_timezone.utc)


def to_timestamp(value: datetime) -> int:
    """Convert an aware datetime into a unix timestamp."""
    return calendar.timegm(value.utctimetuple())


def _as_dict(obj: Any) -> dict[str, Any]:
    """Return a plain dict for a Stripe object, dict or None."""
    if obj is None:
        return {}
    if isinstance(obj, dict):
        return obj
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return {}


def stripe_object_id(value: Any) -> str | None:
    """Return the id of an expandable field (string id or expanded object)."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return _as_dict(value).get("id")


def parse_customer(data: dict[str, Any]) -> CustomerResult:
    return CustomerResult(
        id=data["id"],
        email=data.get("email"),
        name=data.get("name"),
        phone=data.get("phone"),
        deleted=bool(data.get("deleted", False)),
        metadata=dict(data.get("metadata") or {}),
        raw_response=data,
    )


def parse_subscription(data: dict[str, Any]) -> SubscriptionResult:
    """
    Build a SubscriptionResult from a Stripe subscription dict.

    Period boundaries moved from the subscription to its items in newer
    Stripe API versions; both shapes are accepted.
    """
    period_start = data.get("current_period_start")
    period_end = data.get("current_period_end")
    if period_start is None or period_end is None:
        items = _as_dict(data.get("items")).get("data") or []
        if items:
            first_item = _as_dict(items[0])
            period_start = first_item.get("current_period_start")
            period_end = first_item.get("current_period_end")

    raw_customer = data.get("customer")
    customer = None
    if raw_customer is not None and not isinstance(raw_customer, str):
        customer = parse_customer(_as_dict(raw_customer))

    raw_invoice = data.get("latest_invoice")
    checkout_session_id = None
    if raw_invoice is not None and not isinstance(raw_invoice, str):
        payment_intent = _as_dict(_as_dict(raw_invoice).get("payment_intent"))
        checkout_session_id = (payment_intent.get("metadata") or {}).get(
            "checkout_session"
        )

    return SubscriptionResult(
        id=data["id"],
        customer_id=stripe_object_id(raw_customer) or "",
        status=data.get("status") or "",
        current_period_start=to_datetime(period_start),
        current_period_end=to_datetime(period_end),
        metadata=dict(data.get("metadata") or {}),
        customer=customer,
        latest_invoice_id=stripe_object_id(raw_invoice),
        checkout_session_id=checkout_session_id,
        raw_response=data,
    )


def parse_invoice(data: dict[str, Any]) -> InvoiceResult:
    """
    Build an InvoiceResult from a Stripe invoice dict.

    The subscription id lives on invoice.subscription in older API
    versions and under invoice.parent.subscription_details in newer ones.
    """
    subscription_id = stripe_object_id(data.get("subscription"))
    if not subscription_id:
        parent = _as_dict(data.get("parent"))
        details = _as_dict(parent.get("subscription_details"))
        subscription_id = stripe_object_id(details.get("subscription"))

    lines = []
    for raw_line in _as_dict(data.get("lines")).get("data") or []:
        line = _as_dict(raw_line)
        period = _as_dict(line.get("period"))
        lines.append(
            InvoiceLineResult(
                id=line.get("id") or "",
                type=line.get("type"),
                parent_type=_as_dict(line.get("parent")).get("type"),
                amount_cents=int(line.get("amount") or 0),
                period_start=to_datetime(period.get("start")),
                period_end=to_datetime(period.get("end")),
            )
        )

    transitions = _as_dict(data.get("status_transitions"))

    return InvoiceResult(
        id=data["id"],
        customer_id=stripe_object_id(data.get("customer")),
        subscription_id=subscription_id,
        status=data.get("status"),
        amount_paid_cents=int(data.get("amount_paid") or 0),
        total_cents=int(data.get("total") or 0),
        created=to_datetime(data.get("created")),
        paid_at=to_datetime(transitions.get("paid_at")),
        lines=lines,
        raw_response=data,
    )


def parse_checkout_session(data: dict[str, Any]) -> CheckoutSessionResult:
    custom_fields: dict[str, str | None] = {}
    for raw_field in data.get("custom_fields") or []:
        custom_field = _as_dict(raw_field)
        key = custom_field.get("key")
        if not key:
            continue
        field_type = custom_field.get("type")
        value = _as_dict(custom_field.get(field_type)).get("value") if field_type else None
        custom_fields[key] = value

    details = _as_dict(data.get("customer_details"))
    return CheckoutSessionResult(
        id=data["id"],
        mode=data.get("mode"),
        customer_id=stripe_object_id(data.get("customer")),
        subscription_id=stripe_object_id(data.get("subscription")),
        customer_email=details.get("email") or data.get("customer_email"),
        customer_name=details.get("name"),
        custom_fields=custom_fields,
        raw_response=data,
    )


def parse_balance_transaction(data: dict[str, Any]) -> BalanceTransactionResult:
    source = data.get("source")
    charge = _as_dict(source) if not isinstance(source, str) else {}
    customer = charge.get("customer")
    customer_data = _as_dict(customer) if not isinstance(customer, str) else {}
    return BalanceTransactionResult(
        id=data["id"],
        reporting_category=data.get("reporting_category"),
        amount_cents=int(data.get("amount") or 0),
        net_cents=int(data.get("net") or 0),
        charge_id=stripe_object_id(source),
        charge_paid=bool(charge.get("paid", False)),
        invoice_id=stripe_object_id(charge.get("invoice")),
        customer_id=stripe_object_id(customer),
        customer_email=customer_data.get("email"),
        raw_response=data,
    )


# =============================================================================
# Idempotency Key Generator
# =============================================================================


class IdempotencyKeyGenerator:
    """
    Generate idempotency keys for Stripe write calls.

    Format: "{operation}:{entity_id}:{hash}"

    The same operation on the same entity always yields the same key, so a
    redelivered webhook that repeats a write is collapsed by Stripe.

    Example:
        key = IdempotencyKeyGenerator.generate("late_fee", "cus_123:2025-03")
        # "late_fee:cus_123:2025-03:a1b2c3d4"
    """

    @staticmethod
    def generate(operation: str, entity_id: str) -> str:
        hash_input = f"{operation}:{entity_id}:{settings.SECRET_KEY}"
        short_hash = hashlib.sha256(hash_input.encode()).hexdigest()[:8]
        return f"{operation}:{entity_id}:{short_hash}"


# =============================================================================
# Stripe Adapter
# =============================================================================


@functools.lru_cache(maxsize=None)
def _http_client(timeout: int) -> stripe.RequestsClient:
    """One pooled HTTP client per timeout value, shared by every call."""
    return stripe.RequestsClient(timeout=timeout)


class StripeAdapter:
    """
    Adapter for Stripe API operations.

    All methods are classmethods - no instance state is maintained.
    Thread-safe for use from Celery workers.

    Failed calls are never retried here beyond the SDK's own network
    retries; the caller aborts and relies on webhook redelivery or a
    scanner re-run.
    """

    # =========================================================================
    # Configuration
    # =========================================================================

    @staticmethod
    def _configure_stripe() -> None:
        """
        Configure the Stripe client with API key, timeout and retries.

        Raises:
            BillingConfigurationError: STRIPE_SECRET_KEY is not set
        """
        api_key = getattr(settings, "STRIPE_SECRET_KEY", "")
        if not api_key:
            raise BillingConfigurationError(
                "STRIPE_SECRET_KEY is not configured",
                details={"setting": "STRIPE_SECRET_KEY"},
            )
        stripe.api_key = api_key
        stripe.max_network_retries = getattr(settings, "STRIPE_MAX_RETRIES", 2)
        timeout = getattr(settings, "STRIPE_API_TIMEOUT_SECONDS", 10)
        stripe.default_http_client = _http_client(timeout)

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Get logger for this adapter."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    # =========================================================================
    # Customers & Subscriptions
    # =========================================================================

    @classmethod
    def retrieve_customer(cls, customer_id: str) -> CustomerResult:
        """
        Retrieve a Customer by ID.

        Deleted customers are returned with deleted=True rather than raising,
        so callers can report a "source gone" outcome.

        Raises:
            StripeInvalidRequestError: Customer never existed
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "retrieve_customer",
            "customer_id": customer_id,
        }

        start_time = time.time()
        logger.debug("Starting Stripe operation", extra=log_context)

        try:
            customer = stripe.Customer.retrieve(customer_id)

            duration_ms = (time.time() - start_time) * 1000
            logger.debug(
                "Stripe operation completed",
                extra={**log_context, "duration_ms": duration_ms},
            )

            return parse_customer(_as_dict(customer))

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    @classmethod
    def list_customer_subscriptions(cls, customer_id: str) -> list[SubscriptionResult]:
        """
        List every subscription of a customer, in all statuses.

        Pages through the full list; canceled subscriptions are included
        so their status can be mirrored.
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "list_customer_subscriptions",
            "customer_id": customer_id,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            subscriptions = stripe.Subscription.list(
                customer=customer_id,
                status="all",
                limit=100,
            )
            results = [
                parse_subscription(_as_dict(subscription))
                for subscription in subscriptions.auto_paging_iter()
            ]

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "count": len(results),
                    "duration_ms": duration_ms,
                },
            )

            return results

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    @classmethod
    def retrieve_subscription(cls, subscription_id: str) -> SubscriptionResult:
        """
        Retrieve a Subscription by ID.

        Raises:
            StripeInvalidRequestError: Subscription not found
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "retrieve_subscription",
            "subscription_id": subscription_id,
        }

        start_time = time.time()
        logger.debug("Starting Stripe operation", extra=log_context)

        try:
            subscription = stripe.Subscription.retrieve(subscription_id)

            duration_ms = (time.time() - start_time) * 1000
            logger.debug(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "status": subscription.status,
                    "duration_ms": duration_ms,
                },
            )

            return parse_subscription(_as_dict(subscription))

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    @classmethod
    def list_active_subscriptions(cls) -> list[SubscriptionResult]:
        """
        List all active subscriptions for the reconciliation scan.

        The customer and the latest invoice's payment intent are expanded
        so each result carries the customer email and the checkout session
        id without extra calls.
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {"operation": "list_active_subscriptions"}

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            subscriptions = stripe.Subscription.list(
                status="active",
                limit=100,
                expand=["data.customer", "data.latest_invoice.payment_intent"],
            )
            results = [
                parse_subscription(_as_dict(subscription))
                for subscription in subscriptions.auto_paging_iter()
            ]

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "count": len(results),
                    "duration_ms": duration_ms,
                },
            )

            return results

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    # =========================================================================
    # Invoices & Invoice Items
    # =========================================================================

    @classmethod
    def retrieve_invoice(cls, invoice_id: str) -> InvoiceResult:
        """
        Retrieve an Invoice by ID.

        Line items (first page) are embedded in the invoice response.

        Raises:
            StripeInvalidRequestError: Invoice not found
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "retrieve_invoice",
            "invoice_id": invoice_id,
        }

        start_time = time.time()
        logger.debug("Starting Stripe operation", extra=log_context)

        try:
            invoice = stripe.Invoice.retrieve(invoice_id)

            duration_ms = (time.time() - start_time) * 1000
            logger.debug(
                "Stripe operation completed",
                extra={**log_context, "duration_ms": duration_ms},
            )

            return parse_invoice(_as_dict(invoice))

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    @classmethod
    def list_subscription_invoices(
        cls,
        subscription_id: str,
        status: str = "paid",
        limit: int | None = None,
    ) -> list[InvoiceResult]:
        """
        List invoices of a subscription, newest first.

        Args:
            subscription_id: Stripe Subscription ID
            status: Invoice status filter (default: paid)
            limit: Return at most this many (None pages through all)
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "list_subscription_invoices",
            "subscription_id": subscription_id,
            "status": status,
            "limit": limit,
        }

        start_time = time.time()
        logger.debug("Starting Stripe operation", extra=log_context)

        try:
            if limit is not None:
                invoices = stripe.Invoice.list(
                    subscription=subscription_id,
                    status=status,
                    limit=min(limit, 100),
                )
                raw_invoices = list(invoices.data)
            else:
                invoices = stripe.Invoice.list(
                    subscription=subscription_id,
                    status=status,
                    limit=100,
                )
                raw_invoices = list(invoices.auto_paging_iter())

            results = [parse_invoice(_as_dict(invoice)) for invoice in raw_invoices]

            duration_ms = (time.time() - start_time) * 1000
            logger.debug(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "count": len(results),
                    "duration_ms": duration_ms,
                },
            )

            return results

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    @classmethod
    def list_pending_invoice_items(cls, customer_id: str) -> list[InvoiceItemResult]:
        """List invoice items not yet attached to an invoice for a customer."""
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "list_pending_invoice_items",
            "customer_id": customer_id,
        }

        start_time = time.time()
        logger.debug("Starting Stripe operation", extra=log_context)

        try:
            items = stripe.InvoiceItem.list(
                customer=customer_id,
                pending=True,
                limit=100,
            )
            results = []
            for raw_item in items.auto_paging_iter():
                item = _as_dict(raw_item)
                results.append(
                    InvoiceItemResult(
                        id=item["id"],
                        customer_id=stripe_object_id(item.get("customer")) or customer_id,
                        description=item.get("description"),
                        amount_cents=int(item.get("amount") or 0),
                        currency=item.get("currency") or "",
                        raw_response=item,
                    )
                )

            duration_ms = (time.time() - start_time) * 1000
            logger.debug(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "count": len(results),
                    "duration_ms": duration_ms,
                },
            )

            return results

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    @classmethod
    def create_invoice_item(
        cls,
        customer_id: str,
        amount_cents: int,
        currency: str,
        description: str,
        idempotency_key: str,
    ) -> InvoiceItemResult:
        """
        Create a pending invoice item (added to the customer's next invoice).

        Args:
            customer_id: Customer to bill
            amount_cents: Amount in cents
            currency: ISO 4217 currency code
            description: Line description shown on the invoice
            idempotency_key: Stripe idempotency key for safe retries
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "create_invoice_item",
            "customer_id": customer_id,
            "amount_cents": amount_cents,
            "description": description,
            "idempotency_key": idempotency_key,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            item = stripe.InvoiceItem.create(
                customer=customer_id,
                amount=amount_cents,
                currency=currency,
                description=description,
                idempotency_key=idempotency_key,
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "invoice_item_id": item.id,
                    "duration_ms": duration_ms,
                },
            )

            data = _as_dict(item)
            return InvoiceItemResult(
                id=data["id"],
                customer_id=customer_id,
                description=data.get("description"),
                amount_cents=int(data.get("amount") or amount_cents),
                currency=data.get("currency") or currency,
                raw_response=data,
            )

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    # =========================================================================
    # Checkout Sessions
    # =========================================================================

    @classmethod
    def retrieve_checkout_session(cls, session_id: str) -> CheckoutSessionResult:
        """Retrieve a Checkout Session by ID (includes custom fields)."""
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "retrieve_checkout_session",
            "checkout_session_id": session_id,
        }

        start_time = time.time()
        logger.debug("Starting Stripe operation", extra=log_context)

        try:
            session = stripe.checkout.Session.retrieve(session_id)

            duration_ms = (time.time() - start_time) * 1000
            logger.debug(
                "Stripe operation completed",
                extra={**log_context, "duration_ms": duration_ms},
            )

            return parse_checkout_session(_as_dict(session))

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    @classmethod
    def list_checkout_sessions(
        cls,
        subscription_id: str,
        limit: int = 1,
    ) -> list[CheckoutSessionResult]:
        """List checkout sessions that created the given subscription."""
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "list_checkout_sessions",
            "subscription_id": subscription_id,
        }

        start_time = time.time()
        logger.debug("Starting Stripe operation", extra=log_context)

        try:
            sessions = stripe.checkout.Session.list(
                subscription=subscription_id,
                limit=min(limit, 100),
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.debug(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "count": len(sessions.data),
                    "duration_ms": duration_ms,
                },
            )

            return [
                parse_checkout_session(_as_dict(session)) for session in sessions.data
            ]

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    # =========================================================================
    # Payouts & Balance Transactions
    # =========================================================================

    @classmethod
    def list_paid_payouts(
        cls,
        arrival_start: datetime,
        arrival_end: datetime,
    ) -> list[PayoutResult]:
        """
        List paid payouts whose arrival date is in [arrival_start, arrival_end).
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "list_paid_payouts",
            "arrival_start": to_timestamp(arrival_start),
            "arrival_end": to_timestamp(arrival_end),
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            payouts = stripe.Payout.list(
                arrival_date={
                    "gte": log_context["arrival_start"],
                    "lt": log_context["arrival_end"],
                },
                status="paid",
                limit=100,
            )
            results = []
            for raw_payout in payouts.auto_paging_iter():
                payout = _as_dict(raw_payout)
                results.append(
                    PayoutResult(
                        id=payout["id"],
                        amount_cents=int(payout.get("amount") or 0),
                        currency=payout.get("currency") or "",
                        status=payout.get("status") or "",
                        arrival_date=to_datetime(payout.get("arrival_date")),
                        raw_response=payout,
                    )
                )

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "count": len(results),
                    "duration_ms": duration_ms,
                },
            )

            return results

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    @classmethod
    def list_payout_balance_transactions(
        cls, payout_id: str
    ) -> list[BalanceTransactionResult]:
        """List the balance transactions settled by a payout (charges expanded)."""
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "list_payout_balance_transactions",
            "payout_id": payout_id,
        }

        start_time = time.time()
        logger.debug("Starting Stripe operation", extra=log_context)

        try:
            transactions = stripe.BalanceTransaction.list(
                payout=payout_id,
                limit=100,
                expand=["data.source.customer"],
            )
            results = [
                parse_balance_transaction(_as_dict(transaction))
                for transaction in transactions.auto_paging_iter()
            ]

            duration_ms = (time.time() - start_time) * 1000
            logger.debug(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "count": len(results),
                    "duration_ms": duration_ms,
                },
            )

            return results

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    @classmethod
    def verify_webhook_signature(
        cls,
        payload: bytes,
        signature: str,
    ) -> dict[str, Any]:
        """
        Verify and parse a Stripe webhook event.

        Args:
            payload: Raw webhook payload bytes
            signature: Stripe-Signature header value

        Returns:
            Parsed event data dict

        Raises:
            StripeInvalidRequestError: Invalid signature
            BillingConfigurationError: STRIPE_WEBHOOK_SECRET is not set
        """
        secret = getattr(settings, "STRIPE_WEBHOOK_SECRET", "")
        if not secret:
            raise BillingConfigurationError(
                "STRIPE_WEBHOOK_SECRET is not configured",
                details={"setting": "STRIPE_WEBHOOK_SECRET"},
            )
        try:
            event = stripe.Webhook.construct_event(payload, signature, secret)
            return _as_dict(event)
        except stripe.SignatureVerificationError as e:
            raise StripeInvalidRequestError(
                "Invalid webhook signature",
                stripe_code="signature_verification_failed",
                details={"error": str(e)},
            ) from e

    # =========================================================================
    # Error Handling
    # =========================================================================

    @classmethod
    def _handle_stripe_error(
        cls,
        error: Exception,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate Stripe exceptions to domain exceptions.

        Domain exceptions raised inside the try block (for example
        BillingConfigurationError) pass through untouched.

        Raises:
            StripeInvalidRequestError: Invalid request parameters or unknown object
            StripeAuthenticationError: API key rejected
            StripeRateLimitError: Rate limited
            StripeTimeoutError: Request timed out
            StripeAPIUnavailableError: API unavailable or unexpected error
        """
        logger = cls.get_logger()

        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, (StripeError, BillingConfigurationError)):
            return

        if isinstance(error, stripe.InvalidRequestError):
            logger.error(
                "Invalid request to Stripe",
                extra={**log_context, "stripe_code": error.code},
            )
            raise StripeInvalidRequestError(
                str(error),
                stripe_code=error.code,
            ) from error

        elif isinstance(error, stripe.RateLimitError):
            logger.warning("Rate limited by Stripe", extra=log_context)
            raise StripeRateLimitError(
                "Stripe rate limit exceeded. Please retry.",
                stripe_code="rate_limit",
            ) from error

        elif isinstance(error, stripe.APIConnectionError):
            if "timed out" in str(error).lower() or "timeout" in str(error).lower():
                logger.error("Stripe request timed out", extra=log_context)
                raise StripeTimeoutError(
                    "Stripe request timed out. Please retry.",
                    stripe_code="timeout",
                ) from error
            logger.error(
                "Connection error to Stripe",
                extra=log_context,
                exc_info=True,
            )
            raise StripeAPIUnavailableError(
                "Could not connect to Stripe. Please retry.",
                stripe_code="api_connection_error",
            ) from error

        elif isinstance(error, stripe.AuthenticationError):
            logger.critical(
                "Stripe authentication failed - check API key",
                extra=log_context,
            )
            raise StripeAuthenticationError(
                "Stripe authentication failed",
                stripe_code="authentication_error",
            ) from error

        elif isinstance(error, stripe.APIError):
            logger.error("Stripe API error", extra=log_context, exc_info=True)
            raise StripeAPIUnavailableError(
                "Stripe service error. Please retry.",
                stripe_code="api_error",
            ) from error

        else:
            logger.error(
                f"Unexpected error from Stripe: {type(error).__name__}",
                extra=log_context,
                exc_info=True,
            )
            raise StripeAPIUnavailableError(
                f"Unexpected Stripe error: {error}",
                stripe_code="unknown_error",
            ) from error
