"""
Status enums and the Stripe status mapping for billing models.
"""

from billing.state_machines.states import (
    StripeSubscriptionStatus,
    StudentStatus,
    SubscriptionStatus,
    map_stripe_status,
    mirror_stripe_status,
)

__all__ = [
    "StripeSubscriptionStatus",
    "StudentStatus",
    "SubscriptionStatus",
    "map_stripe_status",
    "mirror_stripe_status",
]
