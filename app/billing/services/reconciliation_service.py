"""
Reconciliation scanner for Stripe subscriptions with no correct local link.

The scanner lists every active Stripe subscription and reports the ones
whose local state is missing or wrong. It only reads. Linking is a
separate operator action, reconcile(), which records the link and then
runs the synchronizer.

Per subscription:
    - Local Subscription already CANCELED: excluded.
    - A student's email equals the customer email:
        consistent (recorded, same status, student covered) -> skipped
        otherwise -> item with needs_reconciliation=True
    - Subscription already linked locally by id: skipped.
    - Otherwise the identity resolver runs over unlinked students, using
      checkout custom fields fetched for this subscription only now:
        matched   -> item with needs_reconciliation=True
        ambiguous -> item with is_unmatched=True and the candidate ids
        unmatched -> item with is_unmatched=True and full customer detail

Failures:
    A Stripe or billing error on one subscription becomes an error
    ItemResult in the report and the scan continues, so callers can tell
    "nothing to do" apart from "could not check". A failure listing the
    subscriptions fails the whole scan.

Usage:
    from billing.services.reconciliation_service import ReconciliationScanner

    scanner = ReconciliationScanner()
    report = scanner.scan()
    for item in report.items:
        ...

    result = scanner.reconcile(student_id, "sub_123")
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from django.conf import settings

from core.helpers import digits_only
from core.services import BaseService, ServiceResult

from billing.adapters import StripeAdapter
from billing.exceptions import BillingError
from billing.metadata import SubscriptionMetadata, parse_subscription_metadata
from billing.models import Student, Subscription
from billing.services.identity_resolver import (
    DEFAULT_STRATEGIES,
    IdentityQuery,
    IdentityResolver,
    MatchStrategy,
    Resolution,
)
from billing.services.sync_service import SubscriptionSynchronizer
from billing.state_machines import SubscriptionStatus, map_stripe_status

if TYPE_CHECKING:
    from typing import Any

    from billing.adapters import CustomerResult, SubscriptionResult


# Stored linkage is handled before the resolver runs
SCAN_STRATEGIES: tuple[MatchStrategy, ...] = tuple(
    strategy for strategy in DEFAULT_STRATEGIES if strategy != MatchStrategy.STORED_LINKAGE
)


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class ScanItem:
    """
    One subscription needing operator attention.

    Attributes:
        subscription_id: Stripe Subscription ID
        customer_id: Stripe Customer ID
        customer_email: Customer email from Stripe
        customer_name: Customer name from Stripe
        customer_phone: Customer phone from Stripe
        subscription_status: Raw Stripe status
        needs_reconciliation: A student was identified; reconcile() can link it
        is_unmatched: No single student could be identified
        student_id: The identified student (None when unmatched)
        reasons: Why the item was emitted
        resolution: Resolver outcome, when the resolver ran
        last_payment_date: Date of the newest paid invoice
        metadata: Parsed subscription metadata
        checkout_student_name: Student name typed at checkout
        checkout_phone: Phone typed at checkout (digits only)
    """

    subscription_id: str
    customer_id: str
    customer_email: str | None = None
    customer_name: str | None = None
    customer_phone: str | None = None
    subscription_status: str | None = None
    needs_reconciliation: bool = False
    is_unmatched: bool = False
    student_id: uuid.UUID | None = None
    reasons: list[str] = field(default_factory=list)
    resolution: Resolution | None = None
    last_payment_date: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    checkout_student_name: str | None = None
    checkout_phone: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "subscription_id": self.subscription_id,
            "customer_id": self.customer_id,
            "customer_email": self.customer_email,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "subscription_status": self.subscription_status,
            "needs_reconciliation": self.needs_reconciliation,
            "is_unmatched": self.is_unmatched,
            "student_id": str(self.student_id) if self.student_id else None,
            "reasons": self.reasons,
            "resolution": self.resolution.to_dict() if self.resolution else None,
            "last_payment_date": (
                self.last_payment_date.isoformat() if self.last_payment_date else None
            ),
            "metadata": self.metadata,
            "checkout_student_name": self.checkout_student_name,
            "checkout_phone": self.checkout_phone,
        }


@dataclass
class ItemResult:
    """
    Outcome of scanning one subscription.

    Exactly one of: an item, a skip (item is None, no error), or an error.
    """

    subscription_id: str
    item: ScanItem | None = None
    error: str | None = None
    error_code: str | None = None

    @classmethod
    def emitted(cls, item: ScanItem) -> ItemResult:
        return cls(subscription_id=item.subscription_id, item=item)

    @classmethod
    def skipped(cls, subscription_id: str) -> ItemResult:
        return cls(subscription_id=subscription_id)

    @classmethod
    def failed(cls, subscription_id: str, exc: Exception) -> ItemResult:
        return cls(
            subscription_id=subscription_id,
            error=str(exc),
            error_code=getattr(exc, "error_code", exc.__class__.__name__.upper()),
        )

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "subscription_id": self.subscription_id,
            "error": self.error,
            "error_code": self.error_code,
        }


@dataclass
class ScanReport:
    """Batch result of one scan."""

    items: list[ScanItem] = field(default_factory=list)
    errors: list[ItemResult] = field(default_factory=list)
    scanned_count: int = 0
    skipped_count: int = 0

    @property
    def matched_count(self) -> int:
        return sum(1 for item in self.items if not item.is_unmatched)

    @property
    def unmatched_count(self) -> int:
        return sum(1 for item in self.items if item.is_unmatched)

    def add(self, result: ItemResult) -> None:
        self.scanned_count += 1
        if not result.ok:
            self.errors.append(result)
        elif result.item is None:
            self.skipped_count += 1
        else:
            self.items.append(result.item)

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": [item.to_dict() for item in self.items],
            "errors": [error.to_dict() for error in self.errors],
            "scanned_count": self.scanned_count,
            "skipped_count": self.skipped_count,
            "matched_count": self.matched_count,
            "unmatched_count": self.unmatched_count,
        }


# =============================================================================
# Scanner
# =============================================================================


class ReconciliationScanner(BaseService):
    """
    Finds Stripe subscriptions whose local linkage is missing or wrong.

    Args:
        stripe: Stripe adapter (class or instance); defaults to StripeAdapter
        resolver: IdentityResolver used for subscriptions with no email match
        synchronizer: SubscriptionSynchronizer used by reconcile()
    """

    def __init__(
        self,
        stripe: Any = None,
        resolver: IdentityResolver | None = None,
        synchronizer: SubscriptionSynchronizer | None = None,
    ):
        self.stripe = stripe if stripe is not None else StripeAdapter
        self.resolver = resolver or IdentityResolver(include_payers=False)
        self.synchronizer = synchronizer or SubscriptionSynchronizer(stripe=self.stripe)

    def scan(self) -> ScanReport:
        """
        Scan every active Stripe subscription.

        Raises:
            StripeError: If the subscription list itself cannot be fetched
        """
        logger = self.get_logger()
        logger.info("Starting reconciliation scan")

        subscriptions = self.stripe.list_active_subscriptions()
        local_rows = {
            row.stripe_subscription_id: row
            for row in Subscription.objects.select_related("payer").filter(
                stripe_subscription_id__in=[s.id for s in subscriptions]
            )
        }

        report = ScanReport()
        for subscription in subscriptions:
            report.add(self.scan_subscription(subscription, local_rows.get(subscription.id)))

        logger.info(
            "Reconciliation scan completed",
            extra={
                "scanned_count": report.scanned_count,
                "skipped_count": report.skipped_count,
                "matched_count": report.matched_count,
                "unmatched_count": report.unmatched_count,
                "error_count": len(report.errors),
            },
        )
        return report

    def scan_subscription(
        self,
        subscription: SubscriptionResult,
        local: Subscription | None = None,
    ) -> ItemResult:
        """Scan one subscription; billing errors become an error result."""
        try:
            item = self._evaluate(subscription, local)
        except BillingError as e:
            self.get_logger().error(
                "Failed to scan subscription",
                extra={
                    "subscription_id": subscription.id,
                    "customer_id": subscription.customer_id,
                    "error_code": e.error_code,
                },
                exc_info=True,
            )
            return ItemResult.failed(subscription.id, e)

        if item is None:
            return ItemResult.skipped(subscription.id)
        return ItemResult.emitted(item)

    # =========================================================================
    # Evaluation
    # =========================================================================

    def _evaluate(
        self,
        subscription: SubscriptionResult,
        local: Subscription | None,
    ) -> ScanItem | None:
        if local is not None and local.status == SubscriptionStatus.CANCELED:
            return None

        customer = subscription.customer or self.stripe.retrieve_customer(
            subscription.customer_id
        )
        metadata = parse_subscription_metadata(
            subscription.metadata, subscription_id=subscription.id
        )

        email_matches = []
        if customer.email:
            email_matches = list(Student.objects.filter(email__iexact=customer.email))

        if email_matches:
            reasons = self._inconsistencies(subscription, local, email_matches, metadata)
            if not reasons:
                return None
            linked = [s for s in email_matches if s.stripe_subscription_id == subscription.id]
            student = linked[0] if linked else email_matches[0]
            return self._build_item(
                subscription,
                customer,
                metadata,
                needs_reconciliation=True,
                student_id=student.id,
                reasons=reasons,
            )

        if local is not None or Student.objects.linked_to_subscription(subscription.id).exists():
            return None

        student_name, phone = self._checkout_signals(subscription)
        resolution = self.resolver.resolve(
            IdentityQuery(
                email=customer.email,
                customer_id=customer.id,
                subscription_id=subscription.id,
                student_name=student_name,
                phone=phone,
            ),
            students=Student.objects.unlinked(),
            strategies=SCAN_STRATEGIES,
            include_payers=False,
        )

        if resolution.is_matched and resolution.student is not None:
            return self._build_item(
                subscription,
                customer,
                metadata,
                needs_reconciliation=True,
                student_id=resolution.student.id,
                reasons=["unlinked_match"],
                resolution=resolution,
                checkout=(student_name, phone),
            )

        reason = "ambiguous_identity" if resolution.is_ambiguous else "no_student_match"
        return self._build_item(
            subscription,
            customer,
            metadata,
            is_unmatched=True,
            reasons=[reason],
            resolution=resolution,
            checkout=(student_name, phone),
        )

    def _inconsistencies(
        self,
        subscription: SubscriptionResult,
        local: Subscription | None,
        students: list[Student],
        metadata: SubscriptionMetadata,
    ) -> list[str]:
        reasons = []
        if local is None:
            reasons.append("subscription_not_recorded")
        else:
            if local.status != map_stripe_status(subscription.status):
                reasons.append("status_mismatch")
            if local.payer.stripe_customer_id != subscription.customer_id:
                reasons.append("customer_mismatch")

        covered = any(
            student.stripe_subscription_id == subscription.id
            or student.id in metadata.student_ids
            for student in students
        )
        if not covered:
            reasons.append("student_not_linked")
        return reasons

    def _checkout_signals(self, subscription: SubscriptionResult) -> tuple[str | None, str | None]:
        """Student name and phone from the checkout session that created the subscription."""
        if subscription.checkout_session_id:
            session = self.stripe.retrieve_checkout_session(subscription.checkout_session_id)
        else:
            sessions = self.stripe.list_checkout_sessions(subscription.id, limit=1)
            session = sessions[0] if sessions else None

        if session is None:
            return None, None

        name = session.custom_fields.get(settings.BILLING_CHECKOUT_NAME_FIELD_KEY)
        phone = digits_only(session.custom_fields.get(settings.BILLING_CHECKOUT_PHONE_FIELD_KEY))
        return (name or None), (phone or None)

    def _build_item(
        self,
        subscription: SubscriptionResult,
        customer: CustomerResult,
        metadata: SubscriptionMetadata,
        needs_reconciliation: bool = False,
        is_unmatched: bool = False,
        student_id: uuid.UUID | None = None,
        reasons: list[str] | None = None,
        resolution: Resolution | None = None,
        checkout: tuple[str | None, str | None] = (None, None),
    ) -> ScanItem:
        invoices = self.stripe.list_subscription_invoices(subscription.id, limit=1)
        last_payment_date = None
        if invoices:
            last_payment_date = invoices[0].paid_at or invoices[0].created

        return ScanItem(
            subscription_id=subscription.id,
            customer_id=subscription.customer_id,
            customer_email=customer.email,
            customer_name=customer.name,
            customer_phone=customer.phone,
            subscription_status=subscription.status,
            needs_reconciliation=needs_reconciliation,
            is_unmatched=is_unmatched,
            student_id=student_id,
            reasons=reasons or [],
            resolution=resolution,
            last_payment_date=last_payment_date,
            metadata=metadata.to_dict(),
            checkout_student_name=checkout[0],
            checkout_phone=checkout[1],
        )

    # =========================================================================
    # Reconcile
    # =========================================================================

    def reconcile(self, student_id: uuid.UUID | str, subscription_id: str) -> ServiceResult:
        """
        Link a student to a Stripe subscription and sync the customer.

        The student gets the payer and customer id. It also takes the
        subscription id unless another student already holds it (siblings
        are covered through metadata instead).

        Returns:
            ServiceResult with the student id and sync summary

        Raises:
            StripeError: Stripe could not be reached; nothing was written
        """
        logger = self.get_logger()
        log_context = {"student_id": str(student_id), "subscription_id": subscription_id}

        student = Student.objects.filter(id=student_id).first()
        if student is None:
            return ServiceResult.failure("Student not found", error_code="NOT_FOUND")

        subscription = self.stripe.retrieve_subscription(subscription_id)
        customer = subscription.customer or self.stripe.retrieve_customer(
            subscription.customer_id
        )
        if customer.deleted:
            logger.warning("Cannot reconcile a deleted Stripe customer", extra=log_context)
            return ServiceResult.failure(
                "Stripe customer has been deleted",
                error_code="SOURCE_GONE",
            )

        with self.atomic():
            payer, _ = self.synchronizer.find_or_create_payer(customer)
            student = Student.objects.select_for_update().get(id=student.id)
            student.payer = payer
            student.stripe_customer_id = customer.id
            update_fields = ["payer", "stripe_customer_id", "updated_at"]

            held_elsewhere = (
                Student.objects.linked_to_subscription(subscription_id)
                .exclude(id=student.id)
                .exists()
            )
            if not held_elsewhere:
                student.stripe_subscription_id = subscription_id
                update_fields.append("stripe_subscription_id")
            student.save(update_fields=update_fields)

        logger.info(
            "Reconciled student to subscription",
            extra={
                **log_context,
                "customer_id": customer.id,
                "payer_id": str(payer.id),
                "subscription_linked": not held_elsewhere,
            },
        )

        sync_result = self.synchronizer.sync(customer.id)
        return ServiceResult.success(
            {
                "student_id": str(student.id),
                "subscription_id": subscription_id,
                "subscription_linked": not held_elsewhere,
                "sync": sync_result.to_dict(),
            }
        )
