"""
Reusable abstract model mixins.

Mixins:
    UUIDPrimaryKeyMixin: UUID primary key instead of an auto-increment integer

Usage:
    from core.model_mixins import UUIDPrimaryKeyMixin
    from core.models import BaseModel

    class Student(UUIDPrimaryKeyMixin, BaseModel):
        name = models.CharField(max_length=255)
"""

from __future__ import annotations

import uuid

from django.db import models


class UUIDPrimaryKeyMixin(models.Model):
    """
    Use a UUID as primary key.

    Student ids travel through Stripe subscription metadata, so they must
    be opaque and safe to generate before the row is written.

    Fields:
        id: UUIDField primary key (auto-generated)
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record",
    )

    class Meta:
        abstract = True
