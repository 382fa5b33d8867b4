"""
Profit-share calculation from Stripe payouts.

For a calendar month, sums what Stripe paid out and how much of it came
from charges by a chosen set of students' customers. Charges are tied to
students through the Stripe customer id (student or payer linkage) or,
when the charge carries no known customer, the customer email.

Only balance transactions with reporting category "charge" on a paid
charge count. Amounts are net of Stripe fees.

Usage:
    from billing.services.profit_share import ProfitShareCalculator

    report = ProfitShareCalculator().calculate(
        year=2024,
        month=3,
        students=Student.objects.filter(id__in=ids),
    )
    report.total_deductions_cents
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from datetime import timezone as dt_timezone
from typing import TYPE_CHECKING

from core.services import BaseService

from billing.adapters import StripeAdapter

if TYPE_CHECKING:
    from typing import Any

    from billing.models import Student


CHARGE_CATEGORY = "charge"


@dataclass
class MatchedCharge:
    """One charge attributed to the selected students."""

    balance_transaction_id: str
    payout_id: str
    charge_id: str | None
    customer_id: str | None
    customer_email: str | None
    net_cents: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "balance_transaction_id": self.balance_transaction_id,
            "payout_id": self.payout_id,
            "charge_id": self.charge_id,
            "customer_id": self.customer_id,
            "customer_email": self.customer_email,
            "net_cents": self.net_cents,
        }


@dataclass
class ProfitShareReport:
    """
    Attributes:
        year, month: Month the payouts arrived in
        total_payout_cents: Sum of all paid payouts in the month
        total_deductions_cents: Net amount of the matched charges
        payouts_found: Number of payouts in the month
        matched_charges: The charges attributed to the students
    """

    year: int
    month: int
    total_payout_cents: int = 0
    total_deductions_cents: int = 0
    payouts_found: int = 0
    matched_charges: list[MatchedCharge] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "year": self.year,
            "month": self.month,
            "total_payout_cents": self.total_payout_cents,
            "total_deductions_cents": self.total_deductions_cents,
            "payouts_found": self.payouts_found,
            "matched_charges": [charge.to_dict() for charge in self.matched_charges],
        }


def month_bounds(year: int, month: int) -> tuple[datetime, datetime]:
    """Return [start, end) of a calendar month in UTC."""
    if not 1 <= month <= 12:
        raise ValueError(f"month must be between 1 and 12, got {month}")
    start = datetime(year, month, 1, tzinfo=dt_timezone.utc)
    if month == 12:
        end = datetime(year + 1, 1, 1, tzinfo=dt_timezone.utc)
    else:
        end = datetime(year, month + 1, 1, tzinfo=dt_timezone.utc)
    return start, end


class ProfitShareCalculator(BaseService):
    """
    Args:
        stripe: Stripe adapter (class or instance); defaults to StripeAdapter
    """

    def __init__(self, stripe: Any = None):
        self.stripe = stripe if stripe is not None else StripeAdapter

    def calculate(
        self,
        year: int,
        month: int,
        students: Iterable[Student],
    ) -> ProfitShareReport:
        """
        Compute the profit-share figures for one month.

        Raises:
            ValueError: month outside 1..12
            StripeError: Stripe could not be reached
        """
        logger = self.get_logger()
        arrival_start, arrival_end = month_bounds(year, month)
        customer_ids, emails = self._student_identities(students)

        report = ProfitShareReport(year=year, month=month)
        payouts = self.stripe.list_paid_payouts(arrival_start, arrival_end)
        report.payouts_found = len(payouts)

        for payout in payouts:
            report.total_payout_cents += payout.amount_cents
            for transaction in self.stripe.list_payout_balance_transactions(payout.id):
                if transaction.reporting_category != CHARGE_CATEGORY:
                    continue
                if not transaction.charge_paid:
                    continue
                email = (transaction.customer_email or "").lower()
                if transaction.customer_id not in customer_ids and email not in emails:
                    continue
                report.total_deductions_cents += transaction.net_cents
                report.matched_charges.append(
                    MatchedCharge(
                        balance_transaction_id=transaction.id,
                        payout_id=payout.id,
                        charge_id=transaction.charge_id,
                        customer_id=transaction.customer_id,
                        customer_email=transaction.customer_email,
                        net_cents=transaction.net_cents,
                    )
                )

        logger.info(
            "Calculated profit share",
            extra={
                "year": year,
                "month": month,
                "payouts_found": report.payouts_found,
                "total_payout_cents": report.total_payout_cents,
                "total_deductions_cents": report.total_deductions_cents,
                "matched_charges": len(report.matched_charges),
            },
        )
        return report

    @staticmethod
    def _student_identities(students: Iterable[Student]) -> tuple[set[str], set[str]]:
        customer_ids: set[str] = set()
        emails: set[str] = set()
        for student in students:
            if student.stripe_customer_id:
                customer_ids.add(student.stripe_customer_id)
            if student.email:
                emails.add(student.email.lower())
            payer = student.payer
            if payer is not None:
                if payer.stripe_customer_id:
                    customer_ids.add(payer.stripe_customer_id)
                if payer.email:
                    emails.add(payer.email.lower())
        # An empty string never identifies anyone
        emails.discard("")
        return customer_ids, emails
