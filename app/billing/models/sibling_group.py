"""
SiblingGroup model.

Groups students who belong to the same family so staff can see them
together. Billing itself does not depend on the group: siblings share a
subscription through the subscription's studentIds metadata.
"""

from __future__ import annotations

from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class SiblingGroup(UUIDPrimaryKeyMixin, BaseModel):
    """A family of students, managed by staff."""

    name = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Optional display label for the family",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Sibling group"
        verbose_name_plural = "Sibling groups"

    def __str__(self) -> str:
        return self.name or f"SiblingGroup({self.id})"
