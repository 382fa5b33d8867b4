"""
Payer model.

A Payer is the billing-responsible party (usually a parent) for one or
more students. It maps one-to-one onto a Stripe Customer once linked.

Usage:
    from billing.models import Payer

    payer = Payer.objects.filter(stripe_customer_id="cus_123").first()
    payer.students.all()
"""

from __future__ import annotations

from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class Payer(UUIDPrimaryKeyMixin, BaseModel):
    """
    The paying party behind one or more students.

    Fields:
        name: Display name (from the Stripe customer when auto-created)
        email: Globally unique contact email
        phone: Contact phone (free text)
        stripe_customer_id: Stripe Customer ID (cus_xxx), unique when set
        relationship: Relationship to the students (e.g. "Parent")
    """

    name = models.CharField(
        max_length=255,
        help_text="Payer display name",
    )

    email = models.EmailField(
        unique=True,
        help_text="Contact email (globally unique)",
    )

    phone = models.CharField(
        max_length=50,
        blank=True,
        default="",
        help_text="Contact phone number",
    )

    stripe_customer_id = models.CharField(
        max_length=255,
        unique=True,
        null=True,
        blank=True,
        help_text="Stripe Customer ID (cus_xxx)",
    )

    relationship = models.CharField(
        max_length=50,
        default="Parent",
        help_text="Relationship to the students this payer pays for",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payer"
        verbose_name_plural = "Payers"

    def __str__(self) -> str:
        return f"{self.name} <{self.email}>"
