"""
Wiring of the billing engine's collaborators.

BillingEngine bundles the components a webhook handler or operator action
needs. build_engine() assembles the production defaults; tests build one
with a fake Stripe adapter and a local-memory cache instead.

Usage:
    from billing.engine import build_engine

    engine = build_engine()
    engine.synchronizer.sync("cus_123")

    # In tests
    engine = build_engine(stripe=MagicMock())
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from core.protocols import CacheBackend

from billing.adapters import StripeAdapter
from billing.idempotency import IdempotencyTracker
from billing.ledger import PaymentLedgerWriter
from billing.services.identity_resolver import IdentityResolver
from billing.services.reconciliation_service import ReconciliationScanner
from billing.services.sync_service import SubscriptionSynchronizer


@dataclass
class BillingEngine:
    """
    Attributes:
        stripe: Stripe adapter (StripeAdapter class or a fake)
        tracker: Processed-webhook tracker
        resolver: Identity resolver
        synchronizer: Subscription state synchronizer
        ledger: Payment ledger writer
        scanner: Reconciliation scanner
    """

    stripe: Any
    tracker: IdempotencyTracker
    resolver: IdentityResolver
    synchronizer: SubscriptionSynchronizer
    ledger: PaymentLedgerWriter
    scanner: ReconciliationScanner


def build_engine(
    stripe: Any = None,
    cache: CacheBackend | None = None,
    clock: Callable[[], datetime] | None = None,
) -> BillingEngine:
    """
    Build a BillingEngine, defaulting every collaborator.

    Args:
        stripe: Stripe adapter (defaults to StripeAdapter)
        cache: Cache for the idempotency tracker (defaults to Django's cache)
        clock: Clock for the synchronizer (defaults to timezone.now)
    """
    stripe = stripe if stripe is not None else StripeAdapter
    resolver = IdentityResolver()
    synchronizer = SubscriptionSynchronizer(stripe=stripe, clock=clock)
    return BillingEngine(
        stripe=stripe,
        tracker=IdempotencyTracker(cache=cache),
        resolver=resolver,
        synchronizer=synchronizer,
        ledger=PaymentLedgerWriter(),
        scanner=ReconciliationScanner(
            stripe=stripe,
            resolver=IdentityResolver(include_payers=False),
            synchronizer=synchronizer,
        ),
    )
