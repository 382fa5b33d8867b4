"""
Subscription state synchronization from Stripe.

SubscriptionSynchronizer.sync(customer_id) makes the local Payer,
Subscription and Student rows for one Stripe customer match what Stripe
reports right now. Every webhook handler and the operator "reconcile"
action end here.

Algorithm:
    1. Find the Payer by Stripe customer id. If there is none, retrieve the
       customer: a deleted customer ends the sync as SOURCE_GONE; an
       existing Payer with the customer's email adopts the customer id;
       otherwise a Payer is created from the customer's details.
    2. List every subscription of the customer (all statuses).
    3. In one transaction:
       - upsert one Subscription row per Stripe subscription
       - update the students each subscription covers (metadata studentIds
         plus the student directly linked by subscription id)
       - mark local subscriptions Stripe no longer lists as CANCELED and
         move their linked students back to REGISTERED
       - a student still covered by a live subscription drops its canceled
         subscription id (taking the live one when it is free)

Convergence:
    Every field is derived from Stripe state (plus the stored grace-period
    end, which is kept once set), and rows are only written when a value
    changes. Running sync twice with no change in Stripe leaves every row
    byte-identical.

Failure semantics:
    All Stripe calls happen before the transaction opens. A Stripe error
    propagates to the caller with nothing written, so the webhook is
    redelivered and the sync re-run later.

Usage:
    from billing.services.sync_service import SubscriptionSynchronizer

    result = SubscriptionSynchronizer().sync("cus_123")
    if result.outcome == SyncOutcome.SOURCE_GONE:
        ...
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING

from django.conf import settings
from django.db.models import Q
from django.utils import timezone

from core.services import BaseService

from billing.adapters import StripeAdapter
from billing.metadata import parse_subscription_metadata
from billing.models import Payer, Student, Subscription
from billing.state_machines import (
    StripeSubscriptionStatus,
    StudentStatus,
    SubscriptionStatus,
    map_stripe_status,
    mirror_stripe_status,
)

if TYPE_CHECKING:
    from typing import Any

    from django.db.models import QuerySet

    from billing.adapters import CustomerResult, SubscriptionResult


# =============================================================================
# Constants
# =============================================================================

UNKNOWN_PAYER_NAME = "Unknown"
DEFAULT_RELATIONSHIP = "Parent"

# Which subscription wins when a student is covered by several
_STATUS_PRIORITY = {
    SubscriptionStatus.ACTIVE: 4,
    SubscriptionStatus.PAST_DUE: 3,
    SubscriptionStatus.TRIALING: 2,
    SubscriptionStatus.INCOMPLETE: 1,
    SubscriptionStatus.INACTIVE: 1,
    SubscriptionStatus.CANCELED: 0,
}

STUDENT_SYNC_FIELDS = [
    "payer",
    "status",
    "subscription_status",
    "next_payment_due",
]


# =============================================================================
# Data Types
# =============================================================================


class SyncOutcome(str, Enum):
    SYNCED = "synced"
    SOURCE_GONE = "source_gone"


@dataclass
class SyncResult:
    """
    Summary of one sync() call.

    Attributes:
        customer_id: Stripe Customer ID
        outcome: SYNCED or SOURCE_GONE
        payer_id: Local payer (None when SOURCE_GONE)
        payer_created: True if the payer was created by this sync
        synced_subscription_ids: Stripe subscriptions mirrored
        canceled_subscription_ids: Local subscriptions marked CANCELED
        updated_student_ids: Students whose billing fields changed
    """

    customer_id: str
    outcome: SyncOutcome = SyncOutcome.SYNCED
    payer_id: uuid.UUID | None = None
    payer_created: bool = False
    synced_subscription_ids: list[str] = field(default_factory=list)
    canceled_subscription_ids: list[str] = field(default_factory=list)
    updated_student_ids: list[uuid.UUID] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "customer_id": self.customer_id,
            "outcome": self.outcome.value,
            "payer_id": str(self.payer_id) if self.payer_id else None,
            "payer_created": self.payer_created,
            "synced_subscription_ids": self.synced_subscription_ids,
            "canceled_subscription_ids": self.canceled_subscription_ids,
            "updated_student_ids": [str(sid) for sid in self.updated_student_ids],
        }


@dataclass
class _StudentTarget:
    """Desired billing state of one student, and the subscription it came from."""

    priority: tuple[int, datetime]
    subscription_id: str
    payer: Payer
    status: str
    subscription_status: str | None
    next_payment_due: datetime | None


# =============================================================================
# Synchronizer
# =============================================================================


class SubscriptionSynchronizer(BaseService):
    """
    Overwrites local billing state for one customer from Stripe.

    Args:
        stripe: Stripe adapter (class or instance); defaults to StripeAdapter
        clock: Callable returning the current aware datetime
        grace_days: Past-due grace window (defaults to BILLING_PAST_DUE_GRACE_DAYS)
    """

    def __init__(
        self,
        stripe: Any = None,
        clock: Callable[[], datetime] | None = None,
        grace_days: int | None = None,
    ):
        self.stripe = stripe if stripe is not None else StripeAdapter
        self.clock = clock or timezone.now
        if grace_days is None:
            grace_days = getattr(settings, "BILLING_PAST_DUE_GRACE_DAYS", 7)
        self.grace_period = timedelta(days=grace_days)

    def sync(self, customer_id: str) -> SyncResult:
        """
        Make local state for customer_id match Stripe.

        Returns:
            SyncResult (outcome SOURCE_GONE if the customer was deleted)

        Raises:
            StripeError: Any Stripe failure; nothing has been written
        """
        logger = self.get_logger()
        result = SyncResult(customer_id=customer_id)

        log_context = {"customer_id": customer_id}
        logger.info("Starting subscription sync", extra=log_context)

        # Stripe reads first, so a failure leaves the database untouched
        payer = Payer.objects.filter(stripe_customer_id=customer_id).first()
        customer: CustomerResult | None = None
        if payer is None:
            customer = self.stripe.retrieve_customer(customer_id)
            if customer.deleted:
                logger.warning(
                    "Stripe customer deleted; nothing to sync",
                    extra=log_context,
                )
                result.outcome = SyncOutcome.SOURCE_GONE
                return result

        subscriptions = self.stripe.list_customer_subscriptions(customer_id)
        now = self.clock()

        with self.atomic():
            if payer is None:
                payer, result.payer_created = self.find_or_create_payer(customer)
            result.payer_id = payer.id

            targets: dict[uuid.UUID, _StudentTarget] = {}
            for subscription in subscriptions:
                status = self._upsert_subscription(payer, subscription, now)
                result.synced_subscription_ids.append(subscription.id)
                self._collect_student_targets(
                    targets, payer, subscription, status, now
                )

            canceled_ids = self._cancel_missing_subscriptions(
                payer, [s.id for s in subscriptions], now
            )
            result.canceled_subscription_ids = canceled_ids

            result.updated_student_ids = self._apply_student_targets(targets, now)
            for student_id in self._relink_covered_students(targets, now):
                if student_id not in result.updated_student_ids:
                    result.updated_student_ids.append(student_id)
            result.updated_student_ids += self._release_canceled_students(
                canceled_ids, exclude_ids=set(targets), now=now
            )

        logger.info(
            "Subscription sync completed",
            extra={
                **log_context,
                "payer_id": str(payer.id),
                "payer_created": result.payer_created,
                "synced_count": len(result.synced_subscription_ids),
                "canceled_count": len(result.canceled_subscription_ids),
                "students_updated": len(result.updated_student_ids),
            },
        )

        return result

    # =========================================================================
    # Payer
    # =========================================================================

    def find_or_create_payer(self, customer: CustomerResult) -> tuple[Payer, bool]:
        """
        Return the payer for a Stripe customer, creating it if needed.

        Lookup order is customer id, then email. A payer found by email
        adopts the customer id; this covers a parent whose Stripe customer
        was re-created. Call inside a transaction.

        Returns:
            (payer, created)
        """
        logger = self.get_logger()

        payer = Payer.objects.filter(stripe_customer_id=customer.id).first()
        if payer is not None:
            return payer, False

        if customer.email:
            existing = (
                Payer.objects.select_for_update()
                .filter(email__iexact=customer.email)
                .first()
            )
            if existing is not None:
                previous_customer_id = existing.stripe_customer_id
                existing.stripe_customer_id = customer.id
                existing.save(update_fields=["stripe_customer_id", "updated_at"])
                logger.info(
                    "Linked existing payer to Stripe customer by email",
                    extra={
                        "payer_id": str(existing.id),
                        "customer_id": customer.id,
                        "previous_customer_id": previous_customer_id,
                    },
                )
                return existing, False

        payer = Payer.objects.create(
            name=customer.name or UNKNOWN_PAYER_NAME,
            email=customer.email or f"unknown-{customer.id}@example.com",
            phone=customer.phone or "",
            stripe_customer_id=customer.id,
            relationship=DEFAULT_RELATIONSHIP,
        )
        logger.info(
            "Created payer for Stripe customer",
            extra={"payer_id": str(payer.id), "customer_id": customer.id},
        )
        return payer, True

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def _upsert_subscription(
        self,
        payer: Payer,
        subscription: SubscriptionResult,
        now: datetime,
    ) -> SubscriptionStatus:
        status = map_stripe_status(subscription.status)
        existing = (
            Subscription.objects.select_for_update()
            .filter(stripe_subscription_id=subscription.id)
            .first()
        )

        grace_period_ends_at = None
        if status == SubscriptionStatus.PAST_DUE:
            if (
                existing is not None
                and existing.status == SubscriptionStatus.PAST_DUE
                and existing.grace_period_ends_at is not None
            ):
                grace_period_ends_at = existing.grace_period_ends_at
            else:
                grace_period_ends_at = now + self.grace_period

        if status == SubscriptionStatus.ACTIVE:
            last_payment_date = subscription.current_period_start
        else:
            last_payment_date = existing.last_payment_date if existing else None

        values = {
            "payer": payer,
            "status": status.value,
            "current_period_start": subscription.current_period_start,
            "current_period_end": subscription.current_period_end,
            "next_payment_date": subscription.current_period_end,
            "grace_period_ends_at": grace_period_ends_at,
            "last_payment_date": last_payment_date,
        }

        if existing is None:
            Subscription.objects.create(
                stripe_subscription_id=subscription.id, **values
            )
            return status

        changed = [
            name for name, value in values.items() if not _matches(existing, name, value)
        ]
        if changed:
            for name in changed:
                setattr(existing, name, values[name])
            existing.save(update_fields=[*changed, "updated_at"])
        return status

    def _cancel_missing_subscriptions(
        self,
        payer: Payer,
        fetched_ids: list[str],
        now: datetime,
    ) -> list[str]:
        missing = (
            Subscription.objects.filter(payer=payer)
            .exclude(stripe_subscription_id__in=fetched_ids)
            .exclude(status=SubscriptionStatus.CANCELED)
        )
        canceled_ids = list(missing.values_list("stripe_subscription_id", flat=True))
        if canceled_ids:
            Subscription.objects.filter(stripe_subscription_id__in=canceled_ids).update(
                status=SubscriptionStatus.CANCELED,
                grace_period_ends_at=None,
                updated_at=now,
            )
            self.get_logger().info(
                "Marked subscriptions missing from Stripe as canceled",
                extra={
                    "payer_id": str(payer.id),
                    "subscription_ids": canceled_ids,
                },
            )
        return canceled_ids

    # =========================================================================
    # Students
    # =========================================================================

    @staticmethod
    def covered_students(subscription: SubscriptionResult) -> QuerySet[Student]:
        """
        Students a subscription pays for.

        The union of the students named in its studentIds metadata and the
        student whose stored subscription id equals it.
        """
        metadata = parse_subscription_metadata(
            subscription.metadata, subscription_id=subscription.id
        )
        return Student.objects.filter(
            Q(id__in=metadata.student_ids) | Q(stripe_subscription_id=subscription.id)
        )

    def _collect_student_targets(
        self,
        targets: dict[uuid.UUID, _StudentTarget],
        payer: Payer,
        subscription: SubscriptionResult,
        status: SubscriptionStatus,
        now: datetime,
    ) -> None:
        """Record the desired state of every student this subscription covers."""
        student_ids = set(
            self.covered_students(subscription).values_list("id", flat=True)
        )

        priority = (
            _STATUS_PRIORITY.get(status, 0),
            subscription.current_period_end or datetime.min.replace(tzinfo=now.tzinfo),
        )
        target = _StudentTarget(
            priority=priority,
            subscription_id=subscription.id,
            payer=payer,
            status=self._student_status(subscription, status, now),
            subscription_status=mirror_stripe_status(subscription.status),
            next_payment_due=subscription.current_period_end,
        )
        for student_id in student_ids:
            current = targets.get(student_id)
            if current is None or target.priority > current.priority:
                targets[student_id] = target

    def _student_status(
        self,
        subscription: SubscriptionResult,
        status: SubscriptionStatus,
        now: datetime,
    ) -> str:
        """ENROLLED while active or inside the past-due grace window."""
        if subscription.status == StripeSubscriptionStatus.ACTIVE:
            return StudentStatus.ENROLLED.value
        if status == SubscriptionStatus.PAST_DUE:
            grace_end = (
                Subscription.objects.filter(stripe_subscription_id=subscription.id)
                .values_list("grace_period_ends_at", flat=True)
                .first()
            )
            if grace_end is not None and grace_end > now:
                return StudentStatus.ENROLLED.value
        return StudentStatus.REGISTERED.value

    def _apply_student_targets(
        self,
        targets: dict[uuid.UUID, _StudentTarget],
        now: datetime,
    ) -> list[uuid.UUID]:
        if not targets:
            return []

        changed_students = []
        for student in Student.objects.select_for_update().filter(id__in=targets):
            target = targets[student.id]
            desired = {
                "payer": target.payer,
                "status": target.status,
                "subscription_status": target.subscription_status,
                "next_payment_due": target.next_payment_due,
            }
            if all(_matches(student, name, value) for name, value in desired.items()):
                continue
            for name, value in desired.items():
                setattr(student, name, value)
            student.updated_at = now
            changed_students.append(student)

        if changed_students:
            Student.objects.bulk_update(
                changed_students, [*STUDENT_SYNC_FIELDS, "updated_at"]
            )
        return [student.id for student in changed_students]

    def _relink_covered_students(
        self,
        targets: dict[uuid.UUID, _StudentTarget],
        now: datetime,
    ) -> list[uuid.UUID]:
        """
        Move covered students off canceled subscription ids.

        A student covered by a live subscription's metadata may still hold
        the id of a canceled one. It takes over the covering subscription's
        id when no other student holds it, otherwise the stale id is cleared.
        """
        if not targets:
            return []

        canceled_ids = Subscription.objects.filter(
            status=SubscriptionStatus.CANCELED
        ).values("stripe_subscription_id")
        stale = list(
            Student.objects.select_for_update()
            .filter(id__in=targets, stripe_subscription_id__in=canceled_ids)
            .order_by("created_at", "id")
        )
        if not stale:
            return []

        covering_ids = {targets[student.id].subscription_id for student in stale}
        taken = set(
            Student.objects.filter(stripe_subscription_id__in=covering_ids)
            .values_list("stripe_subscription_id", flat=True)
        )
        for student in stale:
            covering_id = targets[student.id].subscription_id
            if covering_id in taken:
                student.stripe_subscription_id = None
            else:
                student.stripe_subscription_id = covering_id
                taken.add(covering_id)
            student.updated_at = now

        Student.objects.bulk_update(stale, ["stripe_subscription_id", "updated_at"])
        self.get_logger().info(
            "Moved covered students off canceled subscriptions",
            extra={"student_ids": [str(student.id) for student in stale]},
        )
        return [student.id for student in stale]

    def _release_canceled_students(
        self,
        canceled_ids: list[str],
        exclude_ids: set[uuid.UUID],
        now: datetime,
    ) -> list[uuid.UUID]:
        """Students still linked to a canceled subscription drop to REGISTERED."""
        if not canceled_ids:
            return []

        students = (
            Student.objects.filter(stripe_subscription_id__in=canceled_ids)
            .exclude(id__in=exclude_ids)
            .exclude(
                status=StudentStatus.REGISTERED,
                subscription_status=StripeSubscriptionStatus.CANCELED,
            )
        )
        student_ids = list(students.values_list("id", flat=True))
        if student_ids:
            Student.objects.filter(id__in=student_ids).update(
                status=StudentStatus.REGISTERED,
                subscription_status=StripeSubscriptionStatus.CANCELED,
                updated_at=now,
            )
        return student_ids


def _matches(instance: Any, name: str, value: Any) -> bool:
    """Compare foreign keys by id so related rows are not refetched."""
    if name == "payer":
        return instance.payer_id == (value.pk if value is not None else None)
    return getattr(instance, name) == value
