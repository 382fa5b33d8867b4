"""
Student model.

Students are created by registration. The billing engine only ever
touches their billing linkage: payer, Stripe ids, subscription status,
enrollment status and payment dates.

Usage:
    from billing.models import Student
    from billing.state_machines import StudentStatus

    enrolled = Student.objects.filter(status=StudentStatus.ENROLLED)
    unlinked = Student.objects.unlinked()
"""

from __future__ import annotations

from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from billing.state_machines import StripeSubscriptionStatus, StudentStatus


class StudentQuerySet(models.QuerySet):
    """QuerySet helpers used by identity resolution and the scanner."""

    def unlinked(self) -> StudentQuerySet:
        """Students not yet holding a Stripe subscription id."""
        return self.filter(
            models.Q(stripe_subscription_id__isnull=True)
            | models.Q(stripe_subscription_id="")
        )

    def linked_to_subscription(self, subscription_id: str) -> StudentQuerySet:
        """Students whose stored Stripe subscription id equals subscription_id."""
        return self.filter(stripe_subscription_id=subscription_id)


class Student(UUIDPrimaryKeyMixin, BaseModel):
    """
    A student and their billing linkage.

    Invariant: at most one Student references a given
    stripe_subscription_id (enforced by the unique constraint; NULL
    values do not collide). Siblings covered by the same subscription are
    found through the subscription's studentIds metadata instead.

    Fields:
        name: Student full name
        email: Student email (optional; overwritten with payer email on checkout)
        phone: Student phone (optional, free text)
        stripe_customer_id: Stripe Customer paying for this student
        stripe_subscription_id: Stripe Subscription directly linked to this student
        subscription_status: Raw Stripe subscription status
        status: Enrollment status
        paid_until: End of the last paid billing period
        next_payment_due: End of the current billing period
        payer: Billing-responsible party
        sibling_group: Family grouping (informational)
    """

    name = models.CharField(
        max_length=255,
        help_text="Student full name",
    )

    email = models.EmailField(
        null=True,
        blank=True,
        db_index=True,
        help_text="Student email address",
    )

    phone = models.CharField(
        max_length=50,
        blank=True,
        default="",
        help_text="Student phone number (free text)",
    )

    # ==========================================================================
    # Stripe Linkage
    # ==========================================================================

    stripe_customer_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        db_index=True,
        help_text="Stripe Customer ID (cus_xxx) paying for this student",
    )

    stripe_subscription_id = models.CharField(
        max_length=255,
        unique=True,
        null=True,
        blank=True,
        help_text="Stripe Subscription ID (sub_xxx) linked to this student",
    )

    subscription_status = models.CharField(
        max_length=32,
        choices=StripeSubscriptionStatus.choices,
        null=True,
        blank=True,
        help_text="Stripe subscription status, mirrored verbatim",
    )

    # ==========================================================================
    # Enrollment & Payment Dates
    # ==========================================================================

    status = models.CharField(
        max_length=20,
        choices=StudentStatus.choices,
        default=StudentStatus.REGISTERED,
        db_index=True,
        help_text="Enrollment status",
    )

    paid_until = models.DateTimeField(
        null=True,
        blank=True,
        help_text="End of the last paid billing period",
    )

    next_payment_due = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the next subscription payment is due",
    )

    # ==========================================================================
    # Relationships
    # ==========================================================================

    payer = models.ForeignKey(
        "billing.Payer",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="students",
        help_text="Billing-responsible party",
    )

    sibling_group = models.ForeignKey(
        "billing.SiblingGroup",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="students",
        help_text="Family grouping",
    )

    objects = StudentQuerySet.as_manager()

    class Meta:
        ordering = ["name"]
        verbose_name = "Student"
        verbose_name_plural = "Students"
        indexes = [
            models.Index(
                fields=["status", "subscription_status"],
                name="billing_stu_status_7c1e2a_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.name} ({self.status})"
