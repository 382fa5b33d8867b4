"""
Append-only per-student payment ledger.

Usage:
    from billing.ledger import InvoicePayment, PaymentLedgerWriter
"""

from billing.ledger.services import PaymentLedgerWriter
from billing.ledger.types import InvoicePayment, LedgerWriteResult

__all__ = [
    "InvoicePayment",
    "LedgerWriteResult",
    "PaymentLedgerWriter",
]
