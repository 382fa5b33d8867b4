"""
Tests for the backfill_student_payments management command.

Tests cover:
- Rows recorded per covered student for every paid invoice
- Re-runs skipping existing rows
- --dry-run writing nothing
- Fallback to linked students when Stripe no longer has the subscription
- Failures reported through CommandError after the remaining subscriptions run
"""

from datetime import datetime, timezone
from io import StringIO
from unittest.mock import patch

import pytest
from django.core.management import CommandError, call_command

from billing.exceptions import StripeAPIUnavailableError, StripeInvalidRequestError
from billing.models import StudentPayment
from billing.tests.factories import (
    InvoiceLineResultFactory,
    InvoiceResultFactory,
    StudentFactory,
    SubscriptionResultFactory,
    make_fake_stripe,
    student_ids_metadata,
)

COMMAND_STRIPE = "billing.management.commands.backfill_student_payments.Command.stripe"

FEBRUARY = datetime(2025, 2, 1, tzinfo=timezone.utc)
MARCH = datetime(2025, 3, 1, tzinfo=timezone.utc)


def run_backfill(fake_stripe, *args):
    out = StringIO()
    with patch(COMMAND_STRIPE, fake_stripe):
        call_command("backfill_student_payments", *args, stdout=out)
    return out.getvalue()


@pytest.fixture
def fake_stripe():
    return make_fake_stripe()


@pytest.fixture
def family(db, fake_stripe):
    """Two siblings on sub_1 with February and March paid."""
    holder = StudentFactory(stripe_subscription_id="sub_1")
    sibling = StudentFactory()
    fake_stripe.retrieve_subscription.return_value = SubscriptionResultFactory(
        id="sub_1", metadata=student_ids_metadata(holder, sibling)
    )
    fake_stripe.list_subscription_invoices.return_value = [
        InvoiceResultFactory(
            id="in_march",
            paid_at=MARCH,
            lines=[InvoiceLineResultFactory(period_start=MARCH)],
        ),
        InvoiceResultFactory(
            id="in_february",
            paid_at=FEBRUARY,
            lines=[InvoiceLineResultFactory(period_start=FEBRUARY, period_end=MARCH)],
        ),
    ]
    return holder, sibling


@pytest.mark.django_db
class TestBackfillStudentPayments:
    def test_records_each_invoice_per_student(self, fake_stripe, family):
        output = run_backfill(fake_stripe)

        assert StudentPayment.objects.count() == 4
        assert set(StudentPayment.objects.values_list("month", flat=True)) == {2, 3}
        assert "rows created: 4" in output
        fake_stripe.list_subscription_invoices.assert_called_once_with("sub_1", status="paid")

    def test_rerun_skips_existing_rows(self, fake_stripe, family):
        run_backfill(fake_stripe)

        output = run_backfill(fake_stripe)

        assert StudentPayment.objects.count() == 4
        assert "rows created: 0, rows already present: 4" in output

    def test_dry_run_writes_nothing(self, fake_stripe, family):
        output = run_backfill(fake_stripe, "--dry-run")

        assert StudentPayment.objects.count() == 0
        assert "[dry-run] in_march: 29000 cents across 2 students" in output

    def test_missing_subscription_uses_linked_students(self, fake_stripe, family):
        holder, _ = family
        fake_stripe.retrieve_subscription.side_effect = StripeInvalidRequestError(
            "No such subscription"
        )

        run_backfill(fake_stripe)

        assert set(StudentPayment.objects.values_list("student_id", flat=True)) == {holder.id}

    def test_invoice_without_period_line_is_skipped(self, fake_stripe, family):
        fake_stripe.list_subscription_invoices.return_value = [
            InvoiceResultFactory(id="in_odd", lines=[])
        ]

        output = run_backfill(fake_stripe)

        assert StudentPayment.objects.count() == 0
        assert "in_odd: no subscription period line" in output

    def test_failed_subscription_raises_after_others_run(self, fake_stripe, family):
        StudentFactory(stripe_subscription_id="sub_0_broken")

        def list_invoices(subscription_id, status="paid"):
            if subscription_id == "sub_0_broken":
                raise StripeAPIUnavailableError("down")
            return family_invoices

        family_invoices = fake_stripe.list_subscription_invoices.return_value
        fake_stripe.list_subscription_invoices.side_effect = list_invoices

        with pytest.raises(CommandError, match="sub_0_broken"):
            run_backfill(fake_stripe)

        assert StudentPayment.objects.count() == 4
