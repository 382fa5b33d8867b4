"""
StudentPayment model.

Append-only payment ledger. One row per (student, Stripe invoice); the
rows for one invoice together account for the invoice's paid amount.
Rows are written by billing.ledger.PaymentLedgerWriter only.
"""

from __future__ import annotations

from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class StudentPayment(UUIDPrimaryKeyMixin, BaseModel):
    """
    A student's share of one paid invoice.

    Entries are immutable once created; save() refuses to update an
    existing row. Corrections belong in Stripe, followed by a backfill.

    Fields:
        student: Student the payment is attributed to
        stripe_invoice_id: Stripe Invoice ID (in_xxx)
        amount_cents: This student's share in cents
        year/month: Billing period the payment covers (UTC)
        paid_at: When Stripe marked the invoice paid
    """

    student = models.ForeignKey(
        "billing.Student",
        on_delete=models.CASCADE,
        related_name="payments",
        help_text="Student the payment is attributed to",
    )

    stripe_invoice_id = models.CharField(
        max_length=255,
        db_index=True,
        help_text="Stripe Invoice ID (in_xxx)",
    )

    amount_cents = models.PositiveIntegerField(
        help_text="This student's share of the invoice in cents",
    )

    year = models.PositiveSmallIntegerField(
        help_text="Year of the billing period start (UTC)",
    )

    month = models.PositiveSmallIntegerField(
        help_text="Month (1-12) of the billing period start (UTC)",
    )

    paid_at = models.DateTimeField(
        help_text="When the invoice was paid",
    )

    class Meta:
        ordering = ["-paid_at"]
        verbose_name = "Student payment"
        verbose_name_plural = "Student payments"
        constraints = [
            models.UniqueConstraint(
                fields=["student", "stripe_invoice_id"],
                name="unique_student_invoice_payment",
            ),
            models.CheckConstraint(
                condition=models.Q(month__gte=1) & models.Q(month__lte=12),
                name="student_payment_month_range",
            ),
        ]
        indexes = [
            models.Index(
                fields=["year", "month"],
                name="billing_stu_year_3f8a51_idx",
            ),
        ]

    def __str__(self) -> str:
        return (
            f"StudentPayment({self.student_id}, {self.stripe_invoice_id}, "
            f"{self.amount_cents})"
        )

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("StudentPayment entries are append-only")
        super().save(*args, **kwargs)
