"""
Tests for the webhook idempotency tracker.

Tests cover:
- Recording and checking processed event ids
- Record expiry
- Fail-open behavior when the cache is unavailable
"""

from unittest.mock import MagicMock

from django.core.cache import cache
from freezegun import freeze_time

from billing.idempotency import KEY_PREFIX, IdempotencyTracker


class TestIdempotencyTracker:
    """Tests against the test cache (local memory)."""

    def test_unknown_event_is_not_processed(self):
        tracker = IdempotencyTracker()

        assert tracker.has_processed("evt_unknown") is False
        assert tracker.get_record("evt_unknown") is None

    def test_mark_then_check(self):
        tracker = IdempotencyTracker()

        assert tracker.mark_processed("evt_1", "invoice.payment_succeeded", "cus_1") is True

        assert tracker.has_processed("evt_1") is True
        record = tracker.get_record("evt_1")
        assert record["event_type"] == "invoice.payment_succeeded"
        assert record["customer_id"] == "cus_1"
        assert "processed_at" in record

    def test_key_uses_prefix(self):
        tracker = IdempotencyTracker()
        tracker.mark_processed("evt_1", "customer.subscription.updated")

        assert IdempotencyTracker.key_for("evt_1") == f"{KEY_PREFIX}evt_1"
        assert cache.get(f"{KEY_PREFIX}evt_1") is not None

    def test_marking_twice_overwrites(self):
        tracker = IdempotencyTracker()
        tracker.mark_processed("evt_1", "invoice.payment_failed", "cus_1")
        tracker.mark_processed("evt_1", "invoice.payment_failed", "cus_2")

        assert tracker.get_record("evt_1")["customer_id"] == "cus_2"

    def test_record_expires_after_ttl(self):
        with freeze_time("2025-03-01 12:00:00") as frozen:
            tracker = IdempotencyTracker(ttl_seconds=60)
            tracker.mark_processed("evt_1", "invoice.payment_succeeded")
            assert tracker.has_processed("evt_1") is True

            frozen.tick(61)

            assert tracker.has_processed("evt_1") is False

    def test_default_ttl_comes_from_settings(self, settings):
        settings.BILLING_WEBHOOK_IDEMPOTENCY_TTL_SECONDS = 1234

        assert IdempotencyTracker().ttl_seconds == 1234


class TestCacheFailures:
    """The tracker must never turn a cache outage into a dropped event."""

    def test_has_processed_fails_open(self):
        broken = MagicMock()
        broken.get.side_effect = ConnectionError("redis down")

        tracker = IdempotencyTracker(cache=broken)

        assert tracker.has_processed("evt_1") is False
        assert tracker.get_record("evt_1") is None

    def test_mark_processed_reports_failure(self):
        broken = MagicMock()
        broken.set.side_effect = ConnectionError("redis down")

        tracker = IdempotencyTracker(cache=broken)

        assert tracker.mark_processed("evt_1", "invoice.payment_failed") is False

    def test_ttl_is_passed_to_cache(self):
        fake_cache = MagicMock()
        tracker = IdempotencyTracker(cache=fake_cache, ttl_seconds=99)

        tracker.mark_processed("evt_1", "invoice.payment_failed", "cus_1")

        fake_cache.set.assert_called_once()
        assert fake_cache.set.call_args.kwargs["timeout"] == 99
