"""
Status enums for billing models.

These are Django TextChoices for database storage and admin integration.
None of them is a guarded state machine: every status is overwritten
from freshly fetched Stripe state, so any transition is legal.

Status Overview:

SubscriptionStatus (internal mirror of a Stripe subscription):
    ACTIVE, PAST_DUE, CANCELED, INACTIVE, INCOMPLETE, TRIALING
    Derived from the Stripe status string by map_stripe_status().

StripeSubscriptionStatus (raw Stripe vocabulary, stored on Student):
    active, past_due, canceled, unpaid, incomplete, incomplete_expired,
    trialing, paused

StudentStatus (enrollment):
    registered → enrolled (subscription active or within grace period)
    enrolled → registered (subscription lapsed or canceled)
    on_leave, withdrawn are set by staff only
"""

from django.db import models


class SubscriptionStatus(models.TextChoices):
    """
    Internal status of a Subscription row.

    Terminal in practice: CANCELED (Stripe never reactivates a canceled
    subscription; a new one is created instead).
    """

    ACTIVE = "ACTIVE", "Active"
    PAST_DUE = "PAST_DUE", "Past due"
    CANCELED = "CANCELED", "Canceled"
    INACTIVE = "INACTIVE", "Inactive"
    INCOMPLETE = "INCOMPLETE", "Incomplete"
    TRIALING = "TRIALING", "Trialing"


class StripeSubscriptionStatus(models.TextChoices):
    """Stripe's own subscription status vocabulary."""

    ACTIVE = "active", "Active"
    PAST_DUE = "past_due", "Past due"
    CANCELED = "canceled", "Canceled"
    UNPAID = "unpaid", "Unpaid"
    INCOMPLETE = "incomplete", "Incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired", "Incomplete (expired)"
    TRIALING = "trialing", "Trialing"
    PAUSED = "paused", "Paused"


class StudentStatus(models.TextChoices):
    """Enrollment status of a Student."""

    REGISTERED = "registered", "Registered"
    ENROLLED = "enrolled", "Enrolled"
    ON_LEAVE = "on_leave", "On leave"
    WITHDRAWN = "withdrawn", "Withdrawn"


_STRIPE_TO_INTERNAL: dict[str, str] = {
    "active": SubscriptionStatus.ACTIVE.value,
    "past_due": SubscriptionStatus.PAST_DUE.value,
    "canceled": SubscriptionStatus.CANCELED.value,
    "unpaid": SubscriptionStatus.INACTIVE.value,
    "incomplete": SubscriptionStatus.INCOMPLETE.value,
    "incomplete_expired": SubscriptionStatus.INCOMPLETE.value,
    "trialing": SubscriptionStatus.TRIALING.value,
    "paused": SubscriptionStatus.INACTIVE.value,
}


def map_stripe_status(stripe_status: str | None) -> SubscriptionStatus:
    """
    Map a Stripe subscription status string to SubscriptionStatus.

    Total function: unknown or missing values map to INCOMPLETE.

    Example:
        map_stripe_status("unpaid")  # SubscriptionStatus.INACTIVE
    """
    return SubscriptionStatus(
        _STRIPE_TO_INTERNAL.get(stripe_status or "", SubscriptionStatus.INCOMPLETE)
    )


def mirror_stripe_status(stripe_status: str | None) -> str | None:
    """
    Return the Stripe status if it is part of the known vocabulary.

    Used for Student.subscription_status, which stores the raw value.
    """
    if stripe_status in StripeSubscriptionStatus.values:
        return str(stripe_status)
    return None
