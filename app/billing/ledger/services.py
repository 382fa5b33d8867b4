"""
Payment ledger writer.

Records one StudentPayment row per covered student for a paid invoice.

Split rule:
    Each student gets floor(total_paid / student_count) cents. Any
    remainder is not attributed to anyone and is reported on the result as
    remainder_cents. This matches how the figures have always been
    recorded; changing it would make old and new months disagree.

Idempotency:
    Rows are keyed on (student, invoice) by a unique constraint and
    inserted with ignore_conflicts, so recording the same invoice twice
    is a no-op.

Usage:
    from billing.ledger import InvoicePayment, PaymentLedgerWriter

    result = PaymentLedgerWriter().record_invoice_payment(
        InvoicePayment(
            invoice_id="in_123",
            total_paid_cents=29000,
            period_start=period_start,
            paid_at=paid_at,
        ),
        students=[student_a, student_b],
    )
    result.amount_per_student_cents  # 14500
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import timezone as dt_timezone

from core.services import BaseService

from billing.ledger.types import InvoicePayment, LedgerWriteResult
from billing.models import Student, StudentPayment


class PaymentLedgerWriter(BaseService):
    """Appends StudentPayment rows; never updates or deletes them."""

    def record_invoice_payment(
        self,
        payment: InvoicePayment,
        students: Iterable[Student],
    ) -> LedgerWriteResult:
        """
        Split a paid invoice across students and insert the rows.

        Args:
            payment: The paid invoice
            students: Students covered by the invoice's subscription

        Returns:
            LedgerWriteResult with created and skipped student ids
        """
        logger = self.get_logger()

        # Stable ordering so the split is reproducible across deliveries
        unique_students = {student.pk: student for student in students}
        ordered = sorted(unique_students.values(), key=lambda s: str(s.pk))
        result = LedgerWriteResult(invoice_id=payment.invoice_id)

        if not ordered:
            logger.info(
                "No students to record invoice payment for",
                extra={"invoice_id": payment.invoice_id},
            )
            return result

        count = len(ordered)
        result.amount_per_student_cents = payment.total_paid_cents // count
        result.remainder_cents = payment.total_paid_cents - (
            result.amount_per_student_cents * count
        )

        period_start = payment.period_start.astimezone(dt_timezone.utc)

        with self.atomic():
            existing = set(
                StudentPayment.objects.filter(
                    stripe_invoice_id=payment.invoice_id,
                    student_id__in=[student.pk for student in ordered],
                ).values_list("student_id", flat=True)
            )

            rows = []
            for student in ordered:
                if student.pk in existing:
                    result.skipped_student_ids.append(student.pk)
                    continue
                rows.append(
                    StudentPayment(
                        student=student,
                        stripe_invoice_id=payment.invoice_id,
                        amount_cents=result.amount_per_student_cents,
                        year=period_start.year,
                        month=period_start.month,
                        paid_at=payment.paid_at,
                    )
                )
                result.created_student_ids.append(student.pk)

            StudentPayment.objects.bulk_create(rows, ignore_conflicts=True)

        logger.info(
            "Recorded invoice payment",
            extra={
                "invoice_id": payment.invoice_id,
                "student_count": count,
                "amount_per_student_cents": result.amount_per_student_cents,
                "remainder_cents": result.remainder_cents,
                "created_count": result.created_count,
                "skipped_count": result.skipped_count,
            },
        )

        return result
