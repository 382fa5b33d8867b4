"""
Tests for the payment ledger writer.

Tests cover:
- Splitting an invoice across covered students
- Rounding remainder reporting
- Skip-duplicates on re-recording
- Append-only rows
"""

import logging
from datetime import datetime, timedelta, timezone

import pytest

from billing.ledger import InvoicePayment, PaymentLedgerWriter
from billing.models import StudentPayment
from billing.tests.factories import PERIOD_START, StudentFactory, StudentPaymentFactory


def make_payment(invoice_id="in_1", total=29000, period_start=PERIOD_START):
    return InvoicePayment(
        invoice_id=invoice_id,
        total_paid_cents=total,
        period_start=period_start,
        paid_at=period_start + timedelta(hours=2),
    )


@pytest.mark.django_db
class TestRecordInvoicePayment:
    def test_splits_evenly_across_students(self):
        first, second = StudentFactory(), StudentFactory()

        result = PaymentLedgerWriter().record_invoice_payment(
            make_payment(), [first, second]
        )

        assert result.amount_per_student_cents == 14500
        assert result.remainder_cents == 0
        assert result.created_count == 2
        rows = StudentPayment.objects.filter(stripe_invoice_id="in_1")
        assert sorted(row.amount_cents for row in rows) == [14500, 14500]
        assert {(row.year, row.month) for row in rows} == {(2025, 3)}

    def test_reports_rounding_remainder(self):
        students = [StudentFactory() for _ in range(3)]

        result = PaymentLedgerWriter().record_invoice_payment(
            make_payment(total=10000), students
        )

        assert result.amount_per_student_cents == 3333
        assert result.remainder_cents == 1
        assert sum(
            StudentPayment.objects.values_list("amount_cents", flat=True)
        ) == 9999

    def test_recording_twice_is_a_no_op(self):
        first, second = StudentFactory(), StudentFactory()
        writer = PaymentLedgerWriter()
        writer.record_invoice_payment(make_payment(), [first, second])

        result = writer.record_invoice_payment(make_payment(), [first, second])

        assert result.created_count == 0
        assert result.skipped_count == 2
        assert StudentPayment.objects.count() == 2

    def test_new_student_on_same_invoice_is_added(self):
        first, second = StudentFactory(), StudentFactory()
        writer = PaymentLedgerWriter()
        writer.record_invoice_payment(make_payment(), [first])

        result = writer.record_invoice_payment(make_payment(), [first, second])

        assert result.created_student_ids == [second.id]
        assert StudentPayment.objects.filter(student=second).exists()

    def test_duplicate_students_counted_once(self):
        student = StudentFactory()

        result = PaymentLedgerWriter().record_invoice_payment(
            make_payment(), [student, student]
        )

        assert result.amount_per_student_cents == 29000
        assert StudentPayment.objects.count() == 1

    def test_no_students_writes_nothing(self):
        result = PaymentLedgerWriter().record_invoice_payment(make_payment(), [])

        assert result.created_count == 0
        assert StudentPayment.objects.count() == 0

    def test_month_is_taken_in_utc(self):
        student = StudentFactory()
        local_evening = datetime(
            2025, 3, 31, 21, 0, tzinfo=timezone(timedelta(hours=-5))
        )

        PaymentLedgerWriter().record_invoice_payment(
            make_payment(period_start=local_evening), [student]
        )

        row = StudentPayment.objects.get(student=student)
        assert (row.year, row.month) == (2025, 4)

    def test_logs_counts_at_info(self, caplog):
        first, second = StudentFactory(), StudentFactory()
        logger = PaymentLedgerWriter.get_logger()
        logger.addHandler(caplog.handler)

        try:
            with caplog.at_level(logging.INFO, logger=logger.name):
                PaymentLedgerWriter().record_invoice_payment(
                    make_payment(), [first, second]
                )
        finally:
            logger.removeHandler(caplog.handler)

        [record] = [r for r in caplog.records if r.message == "Recorded invoice payment"]
        assert record.created_count == 2
        assert record.skipped_count == 0
        assert StudentPayment.objects.count() == 2


class TestInvoicePayment:
    def test_requires_invoice_id(self):
        with pytest.raises(ValueError):
            make_payment(invoice_id="")

    def test_rejects_negative_total(self):
        with pytest.raises(ValueError):
            make_payment(total=-1)


@pytest.mark.django_db
class TestAppendOnly:
    def test_existing_row_cannot_be_saved(self):
        row = StudentPaymentFactory()
        row.amount_cents = 1

        with pytest.raises(ValueError, match="append-only"):
            row.save()
