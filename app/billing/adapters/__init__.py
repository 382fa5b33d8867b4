"""
External service adapters for the billing app.

Usage:
    from billing.adapters import StripeAdapter, SubscriptionResult
"""

from billing.adapters.stripe_adapter import (
    BalanceTransactionResult,
    CheckoutSessionResult,
    CustomerResult,
    IdempotencyKeyGenerator,
    InvoiceItemResult,
    InvoiceLineResult,
    InvoiceResult,
    PayoutResult,
    StripeAdapter,
    SubscriptionResult,
)

__all__ = [
    "BalanceTransactionResult",
    "CheckoutSessionResult",
    "CustomerResult",
    "IdempotencyKeyGenerator",
    "InvoiceItemResult",
    "InvoiceLineResult",
    "InvoiceResult",
    "PayoutResult",
    "StripeAdapter",
    "SubscriptionResult",
]
