"""
Data types for payment ledger operations.

Types:
    InvoicePayment: A paid invoice to be split across students
    LedgerWriteResult: What a ledger write did
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class InvoicePayment:
    """
    A paid Stripe invoice to be recorded in the ledger.

    Attributes:
        invoice_id: Stripe Invoice ID (in_xxx)
        total_paid_cents: Amount paid on the invoice
        period_start: Start of the billing period the invoice pays for
        paid_at: When the invoice was paid
    """

    invoice_id: str
    total_paid_cents: int
    period_start: datetime
    paid_at: datetime

    def __post_init__(self) -> None:
        if not self.invoice_id:
            raise ValueError("invoice_id is required")
        if self.total_paid_cents < 0:
            raise ValueError("total_paid_cents must not be negative")


@dataclass
class LedgerWriteResult:
    """
    Outcome of recording one invoice.

    Attributes:
        invoice_id: Stripe Invoice ID
        amount_per_student_cents: floor(total / student count)
        created_student_ids: Students that received a new row
        skipped_student_ids: Students that already had a row for the invoice
        remainder_cents: Cents not attributed to anyone (rounding)
    """

    invoice_id: str
    amount_per_student_cents: int = 0
    created_student_ids: list[uuid.UUID] = field(default_factory=list)
    skipped_student_ids: list[uuid.UUID] = field(default_factory=list)
    remainder_cents: int = 0

    @property
    def created_count(self) -> int:
        return len(self.created_student_ids)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped_student_ids)
