"""
Subscription model.

Internal mirror of one Stripe subscription. Rows are written only by the
SubscriptionSynchronizer (and the subscription-deleted webhook), always by
overwriting from freshly fetched Stripe state.

Usage:
    from billing.models import Subscription
    from billing.state_machines import SubscriptionStatus

    Subscription.objects.filter(payer=payer).exclude(
        status=SubscriptionStatus.CANCELED
    )
"""

from __future__ import annotations

from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from billing.state_machines import SubscriptionStatus


class Subscription(UUIDPrimaryKeyMixin, BaseModel):
    """
    Local copy of a Stripe subscription.

    Lifecycle:
        Created on the first sync that sees the Stripe subscription,
        overwritten on every later sync, and marked CANCELED (never
        deleted) once Stripe no longer lists it for the customer.

    Fields:
        stripe_subscription_id: Stripe Subscription ID (sub_xxx), one row per id
        payer: Owning payer
        status: Internal status (see map_stripe_status)
        current_period_start/end: Current billing period
        last_payment_date: Start of the last paid period
        next_payment_date: End of the current period
        grace_period_ends_at: Set while PAST_DUE, otherwise NULL
    """

    stripe_subscription_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe Subscription ID (sub_xxx)",
    )

    payer = models.ForeignKey(
        "billing.Payer",
        on_delete=models.PROTECT,
        related_name="subscriptions",
        help_text="Payer that owns this subscription",
    )

    status = models.CharField(
        max_length=20,
        choices=SubscriptionStatus.choices,
        default=SubscriptionStatus.INCOMPLETE,
        db_index=True,
        help_text="Internal status derived from the Stripe status",
    )

    # ==========================================================================
    # Billing Period
    # ==========================================================================

    current_period_start = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Start of current billing period",
    )

    current_period_end = models.DateTimeField(
        null=True,
        blank=True,
        help_text="End of current billing period",
    )

    last_payment_date = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Start of the most recent paid period",
    )

    next_payment_date = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the next payment is due (period end)",
    )

    grace_period_ends_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="End of the past-due grace window (PAST_DUE only)",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Subscription"
        verbose_name_plural = "Subscriptions"
        indexes = [
            models.Index(
                fields=["payer", "status"],
                name="billing_sub_payer_i_4b9d0e_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"Subscription({self.stripe_subscription_id}, {self.status})"

    @property
    def is_canceled(self) -> bool:
        return self.status == SubscriptionStatus.CANCELED
