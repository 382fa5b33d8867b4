"""
Billing services.

- IdentityResolver: maps Stripe identities to students and payers
- SubscriptionSynchronizer: overwrites local billing state from Stripe
- ReconciliationScanner: finds and repairs unlinked Stripe subscriptions
- ProfitShareCalculator: attributes monthly payouts to students

Usage:
    from billing.services import SubscriptionSynchronizer

    SubscriptionSynchronizer().sync("cus_123")
"""

from billing.services.identity_resolver import (
    CHECKOUT_STRATEGIES,
    DEFAULT_STRATEGIES,
    IdentityQuery,
    IdentityResolver,
    MatchConfidence,
    MatchStrategy,
    Resolution,
    ResolutionOutcome,
    normalize_email,
)
from billing.services.profit_share import ProfitShareCalculator, ProfitShareReport
from billing.services.reconciliation_service import (
    ItemResult,
    ReconciliationScanner,
    ScanItem,
    ScanReport,
)
from billing.services.sync_service import (
    SubscriptionSynchronizer,
    SyncOutcome,
    SyncResult,
)

__all__ = [
    "CHECKOUT_STRATEGIES",
    "DEFAULT_STRATEGIES",
    "IdentityQuery",
    "IdentityResolver",
    "ItemResult",
    "MatchConfidence",
    "MatchStrategy",
    "ProfitShareCalculator",
    "ProfitShareReport",
    "ReconciliationScanner",
    "Resolution",
    "ResolutionOutcome",
    "ScanItem",
    "ScanReport",
    "SubscriptionSynchronizer",
    "SyncOutcome",
    "SyncResult",
    "normalize_email",
]
