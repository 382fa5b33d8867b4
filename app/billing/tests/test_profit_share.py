"""
Tests for ProfitShareCalculator.

Tests cover:
- Month boundaries (including December)
- Charges matched by student customer id, payer customer id and email
- Refunds, unpaid charges and unrelated customers excluded
"""

from datetime import datetime, timezone

import pytest

from billing.services.profit_share import ProfitShareCalculator, month_bounds
from billing.tests.factories import (
    BalanceTransactionResultFactory,
    PayerFactory,
    PayoutResultFactory,
    StudentFactory,
)


class TestMonthBounds:
    def test_regular_month(self):
        assert month_bounds(2025, 3) == (
            datetime(2025, 3, 1, tzinfo=timezone.utc),
            datetime(2025, 4, 1, tzinfo=timezone.utc),
        )

    def test_december_rolls_into_next_year(self):
        assert month_bounds(2024, 12)[1] == datetime(2025, 1, 1, tzinfo=timezone.utc)

    @pytest.mark.parametrize("month", [0, 13])
    def test_invalid_month(self, month):
        with pytest.raises(ValueError):
            month_bounds(2025, month)


@pytest.mark.django_db
class TestProfitShareCalculator:
    @pytest.fixture
    def calculator(self, fake_stripe):
        return ProfitShareCalculator(stripe=fake_stripe)

    def test_matches_charges_of_selected_students(self, calculator, fake_stripe):
        payer = PayerFactory(stripe_customer_id="cus_payer", email="payer@example.com")
        by_student_id = StudentFactory(stripe_customer_id="cus_student")
        by_payer = StudentFactory(payer=payer)
        by_email = StudentFactory(email="Family@Example.com")

        fake_stripe.list_paid_payouts.return_value = [
            PayoutResultFactory(id="po_1", amount_cents=100000),
            PayoutResultFactory(id="po_2", amount_cents=50000),
        ]
        fake_stripe.list_payout_balance_transactions.side_effect = lambda payout_id: {
            "po_1": [
                BalanceTransactionResultFactory(
                    id="txn_student", customer_id="cus_student", net_cents=14000
                ),
                BalanceTransactionResultFactory(
                    id="txn_payer", customer_id="cus_payer", net_cents=28000
                ),
                BalanceTransactionResultFactory(
                    id="txn_other", customer_id="cus_other", net_cents=99000
                ),
            ],
            "po_2": [
                BalanceTransactionResultFactory(
                    id="txn_email",
                    customer_id="cus_unknown",
                    customer_email="family@example.com",
                    net_cents=9000,
                ),
            ],
        }[payout_id]

        report = calculator.calculate(2025, 3, [by_student_id, by_payer, by_email])

        assert report.payouts_found == 2
        assert report.total_payout_cents == 150000
        assert report.total_deductions_cents == 14000 + 28000 + 9000
        assert [c.balance_transaction_id for c in report.matched_charges] == [
            "txn_student",
            "txn_payer",
            "txn_email",
        ]
        assert report.matched_charges[2].payout_id == "po_2"
        fake_stripe.list_paid_payouts.assert_called_once_with(
            datetime(2025, 3, 1, tzinfo=timezone.utc),
            datetime(2025, 4, 1, tzinfo=timezone.utc),
        )

    def test_refunds_and_unpaid_charges_are_excluded(self, calculator, fake_stripe):
        student = StudentFactory(stripe_customer_id="cus_student")
        fake_stripe.list_paid_payouts.return_value = [PayoutResultFactory(id="po_1")]
        fake_stripe.list_payout_balance_transactions.return_value = [
            BalanceTransactionResultFactory(
                reporting_category="refund", customer_id="cus_student", net_cents=-14500
            ),
            BalanceTransactionResultFactory(
                charge_paid=False, customer_id="cus_student", net_cents=14500
            ),
        ]

        report = calculator.calculate(2025, 3, [student])

        assert report.total_deductions_cents == 0
        assert report.matched_charges == []

    def test_customer_without_email_is_not_matched_by_email(self, calculator, fake_stripe):
        student = StudentFactory(email="")
        fake_stripe.list_paid_payouts.return_value = [PayoutResultFactory(id="po_1")]
        fake_stripe.list_payout_balance_transactions.return_value = [
            BalanceTransactionResultFactory(customer_id=None, customer_email=None)
        ]

        report = calculator.calculate(2025, 3, [student])

        assert report.matched_charges == []

    def test_no_payouts(self, calculator):
        report = calculator.calculate(2025, 3, [])

        assert report.to_dict() == {
            "year": 2025,
            "month": 3,
            "total_payout_cents": 0,
            "total_deductions_cents": 0,
            "payouts_found": 0,
            "matched_charges": [],
        }
