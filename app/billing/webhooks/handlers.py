"""
Webhook event handlers for Stripe billing events.

Each handler takes the event and the BillingEngine and returns a
ServiceResult. Handlers never trust the event snapshot for subscription
state: they re-fetch from Stripe and converge through the synchronizer.

Return and raise contract:
    - ServiceResult.success: the event is applied (or is a no-op)
    - ServiceResult.failure(error_code="INVALID_WEBHOOK_PAYLOAD"): the
      payload can never be applied; the router logs and drops it
    - Exception (StripeError, BillingConfigurationError, database error):
      nothing is committed for the failing step and the router lets
      Stripe redeliver

Every handler is safe to run more than once for the same event.

Usage:
    from billing.webhooks.handlers import get_handler, register_handler

    @register_handler("customer.created")
    def handle_customer_created(event: WebhookEvent, engine: BillingEngine) -> ServiceResult:
        ...

    handler = get_handler(event.type)
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from datetime import timezone as dt_timezone
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from core.helpers import digits_only
from core.services import ServiceResult

from billing.adapters import IdempotencyKeyGenerator, InvoiceItemResult
from billing.adapters.stripe_adapter import parse_checkout_session
from billing.exceptions import BillingConfigurationError
from billing.ledger import InvoicePayment
from billing.metadata import parse_subscription_metadata
from billing.models import Student, Subscription
from billing.services.identity_resolver import CHECKOUT_STRATEGIES, IdentityQuery
from billing.services.sync_service import SyncOutcome
from billing.state_machines import (
    StripeSubscriptionStatus,
    StudentStatus,
    SubscriptionStatus,
)
from billing.webhooks.types import WebhookEvent

if TYPE_CHECKING:
    from billing.engine import BillingEngine


logger = logging.getLogger(__name__)

INVALID_WEBHOOK_PAYLOAD = "INVALID_WEBHOOK_PAYLOAD"
LATE_FEE_DESCRIPTION_SUFFIX = "Failed Payment Fee"


# =============================================================================
# Handler Registry
# =============================================================================


Handler = Callable[[WebhookEvent, "BillingEngine"], ServiceResult]

# Maps event type strings to handler functions
WEBHOOK_HANDLERS: dict[str, Handler] = {}


def register_handler(event_type: str) -> Callable[[Handler], Handler]:
    """
    Decorator to register a webhook event handler.

    Args:
        event_type: The Stripe event type (e.g., "invoice.payment_succeeded")
    """

    def decorator(func: Handler) -> Handler:
        WEBHOOK_HANDLERS[event_type] = func
        logger.debug(f"Registered webhook handler for {event_type}")
        return func

    return decorator


def get_handler(event_type: str) -> Handler | None:
    """Return the handler registered for event_type, or None."""
    return WEBHOOK_HANDLERS.get(event_type)


def _invalid_payload(event: WebhookEvent, message: str) -> ServiceResult:
    logger.error(
        f"{event.type}: {message}",
        extra={"event_id": event.id, "event_type": event.type},
    )
    return ServiceResult.failure(message, error_code=INVALID_WEBHOOK_PAYLOAD)


# =============================================================================
# Checkout
# =============================================================================


@register_handler("checkout.session.completed")
def handle_checkout_session_completed(
    event: WebhookEvent, engine: BillingEngine
) -> ServiceResult:
    """
    Link a completed subscription checkout to a registered student.

    The student is found among unlinked students by the checkout custom
    fields (student name, then phone) and finally the payer email. Only a
    single unambiguous match is linked; anything else is logged for manual
    review and acknowledged.
    """
    if not event.object_id:
        return _invalid_payload(event, "Could not extract checkout session id")

    session = parse_checkout_session(event.data_object)
    log_context = {
        "event_id": event.id,
        "checkout_session_id": session.id,
        "customer_id": session.customer_id,
        "subscription_id": session.subscription_id,
    }

    if (
        session.mode != "subscription"
        or not session.subscription_id
        or not session.customer_id
    ):
        logger.info("Ignoring non-subscription checkout session", extra=log_context)
        return ServiceResult.success({"action": "ignored"})

    if Student.objects.linked_to_subscription(session.subscription_id).exists():
        logger.info("Checkout subscription already linked", extra=log_context)
        return ServiceResult.success({"action": "already_linked"})

    phone = digits_only(session.custom_fields.get(settings.BILLING_CHECKOUT_PHONE_FIELD_KEY))
    query = IdentityQuery(
        email=session.customer_email,
        customer_id=session.customer_id,
        subscription_id=session.subscription_id,
        student_name=session.custom_fields.get(settings.BILLING_CHECKOUT_NAME_FIELD_KEY),
        phone=phone or None,
    )
    resolution = engine.resolver.resolve(
        query,
        students=Student.objects.unlinked(),
        strategies=CHECKOUT_STRATEGIES,
        include_payers=False,
    )

    if not resolution.is_matched or resolution.student is None:
        logger.warning(
            "Checkout could not be linked to a student; manual review required",
            extra={
                **log_context,
                **query.signals(),
                "outcome": resolution.outcome.value,
                "candidate_ids": [str(c) for c in resolution.candidate_ids],
            },
        )
        return ServiceResult.success(
            {"action": "manual_review", "resolution": resolution.to_dict()}
        )

    with transaction.atomic():
        student = Student.objects.select_for_update().get(id=resolution.student.id)
        if student.stripe_subscription_id:
            logger.info(
                "Student was linked concurrently; leaving existing link",
                extra={**log_context, "student_id": str(student.id)},
            )
            return ServiceResult.success({"action": "already_linked"})

        student.stripe_customer_id = session.customer_id
        student.stripe_subscription_id = session.subscription_id
        student.subscription_status = StripeSubscriptionStatus.ACTIVE
        student.status = StudentStatus.ENROLLED
        update_fields = [
            "stripe_customer_id",
            "stripe_subscription_id",
            "subscription_status",
            "status",
            "updated_at",
        ]
        if session.customer_email:
            student.email = session.customer_email
            update_fields.append("email")
        student.save(update_fields=update_fields)

    logger.info(
        "Linked checkout to student",
        extra={
            **log_context,
            "student_id": str(student.id),
            "strategy": resolution.strategy.value if resolution.strategy else None,
        },
    )

    sync_result = engine.synchronizer.sync(session.customer_id)
    return ServiceResult.success(
        {
            "action": "linked",
            "student_id": str(student.id),
            "sync": sync_result.to_dict(),
        }
    )


# =============================================================================
# Invoice Handlers
# =============================================================================


@register_handler("invoice.payment_succeeded")
def handle_invoice_payment_succeeded(
    event: WebhookEvent, engine: BillingEngine
) -> ServiceResult:
    """
    Record a paid subscription invoice in the payment ledger.

    One StudentPayment row per covered student (skip-duplicates), paid_until
    moved to the end of the paid period, then the customer is synced.
    """
    invoice_id = event.object_id
    if not invoice_id:
        return _invalid_payload(event, "Could not extract invoice id")

    invoice = engine.stripe.retrieve_invoice(invoice_id)
    log_context = {
        "event_id": event.id,
        "invoice_id": invoice.id,
        "subscription_id": invoice.subscription_id,
        "customer_id": invoice.customer_id,
    }

    if not invoice.subscription_id:
        logger.info("Invoice is not for a subscription; nothing to record", extra=log_context)
        return ServiceResult.success({"action": "ignored"})

    line = invoice.subscription_period_line()
    if line is None or line.period_start is None:
        return _invalid_payload(event, f"Invoice {invoice.id} has no subscription period line")

    subscription = engine.stripe.retrieve_subscription(invoice.subscription_id)
    students = list(engine.synchronizer.covered_students(subscription))
    paid_at = invoice.paid_at or invoice.created or timezone.now()

    with transaction.atomic():
        ledger_result = engine.ledger.record_invoice_payment(
            InvoicePayment(
                invoice_id=invoice.id,
                total_paid_cents=invoice.amount_paid_cents,
                period_start=line.period_start,
                paid_at=paid_at,
            ),
            students,
        )
        Student.objects.filter(id__in=[student.id for student in students]).update(
            paid_until=line.period_end,
            subscription_status=StripeSubscriptionStatus.ACTIVE,
            updated_at=timezone.now(),
        )

    logger.info(
        "Recorded subscription invoice payment",
        extra={
            **log_context,
            "student_count": len(students),
            "created_count": ledger_result.created_count,
            "skipped_count": ledger_result.skipped_count,
        },
    )

    customer_id = invoice.customer_id or subscription.customer_id
    sync_result = engine.synchronizer.sync(customer_id)
    return ServiceResult.success(
        {
            "action": "recorded",
            "created_count": ledger_result.created_count,
            "skipped_count": ledger_result.skipped_count,
            "sync": sync_result.to_dict(),
        }
    )


@register_handler("invoice.payment_failed")
def handle_invoice_payment_failed(
    event: WebhookEvent, engine: BillingEngine
) -> ServiceResult:
    """
    Sync the customer (status becomes PAST_DUE) and add one late fee.

    The fee is a pending invoice item described "<Month YYYY> Failed
    Payment Fee" for the invoice's month. An existing pending item with
    that description means the fee is already in place.
    """
    customer_id = event.customer_id
    created = event.get("created")
    if not event.object_id or not customer_id or created is None:
        return _invalid_payload(event, "Invoice payload is missing id, customer or created")

    sync_result = engine.synchronizer.sync(customer_id)
    if sync_result.outcome == SyncOutcome.SOURCE_GONE:
        return ServiceResult.success({"action": "source_gone"})

    billing_month = datetime.fromtimestamp(int(created), tz=dt_timezone.utc)
    fee = ensure_late_fee(engine, customer_id, billing_month, event_id=event.id)

    return ServiceResult.success(
        {
            "action": "late_fee_created" if fee else "late_fee_exists",
            "invoice_item_id": fee.id if fee else None,
            "sync": sync_result.to_dict(),
        }
    )


def late_fee_description(billing_month: datetime) -> str:
    return f"{billing_month:%B %Y} {LATE_FEE_DESCRIPTION_SUFFIX}"


def ensure_late_fee(
    engine: BillingEngine,
    customer_id: str,
    billing_month: datetime,
    event_id: str | None = None,
) -> InvoiceItemResult | None:
    """
    Create the month's late-fee invoice item unless one is already pending.

    Returns:
        The created item, or None if the fee already existed

    Raises:
        BillingConfigurationError: BILLING_LATE_FEE_AMOUNT_CENTS is not positive
    """
    amount_cents = settings.BILLING_LATE_FEE_AMOUNT_CENTS
    if amount_cents <= 0:
        raise BillingConfigurationError(
            "BILLING_LATE_FEE_AMOUNT_CENTS must be positive",
            details={"setting": "BILLING_LATE_FEE_AMOUNT_CENTS", "value": amount_cents},
        )

    description = late_fee_description(billing_month)
    log_context = {
        "event_id": event_id,
        "customer_id": customer_id,
        "description": description,
    }

    pending = engine.stripe.list_pending_invoice_items(customer_id)
    if any(item.description == description for item in pending):
        logger.info("Late fee already pending", extra=log_context)
        return None

    fee = engine.stripe.create_invoice_item(
        customer_id=customer_id,
        amount_cents=amount_cents,
        currency=settings.BILLING_LATE_FEE_CURRENCY,
        description=description,
        idempotency_key=IdempotencyKeyGenerator.generate(
            "late_fee", f"{customer_id}:{billing_month:%Y-%m}"
        ),
    )
    logger.info(
        "Created late fee",
        extra={**log_context, "invoice_item_id": fee.id, "amount_cents": amount_cents},
    )
    return fee


# =============================================================================
# Subscription Handlers
# =============================================================================


@register_handler("customer.subscription.updated")
def handle_subscription_updated(
    event: WebhookEvent, engine: BillingEngine
) -> ServiceResult:
    """Re-sync the owning customer; the payload snapshot is not used."""
    customer_id = event.customer_id
    if not customer_id:
        return _invalid_payload(event, "Could not extract customer id")

    sync_result = engine.synchronizer.sync(customer_id)
    return ServiceResult.success({"action": "synced", "sync": sync_result.to_dict()})


@register_handler("customer.subscription.deleted")
def handle_subscription_deleted(
    event: WebhookEvent, engine: BillingEngine
) -> ServiceResult:
    """
    Unlink students from a deleted subscription.

    A deleted subscription can no longer be listed for its customer, so
    this does not sync. Students linked to it (and unlinked siblings named
    in its metadata) lose the link and paid-until date and drop back to
    REGISTERED; the local Subscription row becomes CANCELED.
    """
    subscription_id = event.object_id
    if not subscription_id:
        return _invalid_payload(event, "Could not extract subscription id")

    metadata = parse_subscription_metadata(
        event.get("metadata") or {}, subscription_id=subscription_id
    )
    now = timezone.now()

    with transaction.atomic():
        students = Student.objects.filter(
            Q(stripe_subscription_id=subscription_id)
            | Q(id__in=metadata.student_ids, stripe_subscription_id__isnull=True)
        )
        student_ids = list(students.values_list("id", flat=True))
        Student.objects.filter(id__in=student_ids).update(
            subscription_status=StripeSubscriptionStatus.CANCELED,
            stripe_subscription_id=None,
            paid_until=None,
            status=StudentStatus.REGISTERED,
            updated_at=now,
        )
        subscriptions_updated = (
            Subscription.objects.filter(stripe_subscription_id=subscription_id)
            .exclude(status=SubscriptionStatus.CANCELED)
            .update(
                status=SubscriptionStatus.CANCELED,
                grace_period_ends_at=None,
                updated_at=now,
            )
        )

    logger.info(
        "Unlinked students from deleted subscription",
        extra={
            "event_id": event.id,
            "subscription_id": subscription_id,
            "customer_id": event.customer_id,
            "student_count": len(student_ids),
            "subscription_rows_canceled": subscriptions_updated,
        },
    )
    return ServiceResult.success(
        {
            "action": "unlinked",
            "student_ids": [str(student_id) for student_id in student_ids],
        }
    )
