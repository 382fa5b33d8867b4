"""
Idempotency tracking for Stripe webhook events.

Stripe delivers webhooks at least once. The tracker remembers which event
ids have been fully applied so the router can skip redeliveries.

Records live in the Django cache (Redis in production) under
"stripe:webhook:<event id>" and expire after
BILLING_WEBHOOK_IDEMPOTENCY_TTL_SECONDS (30 days by default).

Failure policy:
    has_processed() fails open: if the cache cannot be read the event is
    treated as not yet processed. Every handler is safe to re-run, so the
    worst case is redundant work; the alternative would be a dropped event.

Usage:
    from billing.idempotency import IdempotencyTracker

    tracker = IdempotencyTracker()
    if not tracker.has_processed(event.id):
        ...  # apply the event
        tracker.mark_processed(event.id, event.type, event.customer_id)
"""

from __future__ import annotations

import logging
from typing import Any

from django.conf import settings
from django.core.cache import cache as default_cache
from django.utils import timezone

from core.protocols import CacheBackend

logger = logging.getLogger(__name__)

KEY_PREFIX = "stripe:webhook:"
DEFAULT_TTL_SECONDS = 30 * 24 * 60 * 60


class IdempotencyTracker:
    """
    Records processed webhook event ids with a fixed time-to-live.

    Args:
        cache: Cache backend (defaults to Django's default cache)
        ttl_seconds: Record lifetime (defaults to the setting)
    """

    def __init__(
        self,
        cache: CacheBackend | None = None,
        ttl_seconds: int | None = None,
    ):
        self.cache = cache if cache is not None else default_cache
        self.ttl_seconds = ttl_seconds or getattr(
            settings,
            "BILLING_WEBHOOK_IDEMPOTENCY_TTL_SECONDS",
            DEFAULT_TTL_SECONDS,
        )

    @staticmethod
    def key_for(event_id: str) -> str:
        return f"{KEY_PREFIX}{event_id}"

    def has_processed(self, event_id: str) -> bool:
        """
        Return True if a live record exists for event_id.

        Any cache error is logged and reported as "not processed".
        """
        try:
            return self.cache.get(self.key_for(event_id)) is not None
        except Exception:
            logger.warning(
                "Idempotency check failed; treating event as unprocessed",
                extra={"event_id": event_id},
                exc_info=True,
            )
            return False

    def get_record(self, event_id: str) -> dict[str, Any] | None:
        """Return the stored record for event_id, or None."""
        try:
            return self.cache.get(self.key_for(event_id))
        except Exception:
            logger.warning(
                "Idempotency record lookup failed",
                extra={"event_id": event_id},
                exc_info=True,
            )
            return None

    def mark_processed(
        self,
        event_id: str,
        event_type: str,
        customer_id: str | None = None,
    ) -> bool:
        """
        Store the processed-event record.

        Concurrent marks for the same id simply overwrite each other. A
        failed write is logged and reported as False; the event's effects
        are already committed and a redelivery would re-run idempotently.

        Returns:
            True if the record was written
        """
        record = {
            "processed_at": timezone.now().isoformat(),
            "event_type": event_type,
            "customer_id": customer_id,
        }
        try:
            self.cache.set(self.key_for(event_id), record, timeout=self.ttl_seconds)
        except Exception:
            logger.error(
                "Failed to record processed webhook event",
                extra={"event_id": event_id, "event_type": event_type},
                exc_info=True,
            )
            return False
        return True
