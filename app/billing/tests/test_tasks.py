"""
Tests for billing Celery tasks.

Tests cover:
- scan_unlinked_subscriptions summary and failure reporting
- sync_customer_billing results, retry on transient errors, and
  failure on permanent errors
"""

from unittest.mock import patch

import pytest
from celery.exceptions import Retry

from billing.exceptions import StripeInvalidRequestError, StripeRateLimitError
from billing.services.reconciliation_service import ItemResult, ScanItem, ScanReport
from billing.services.sync_service import SyncOutcome, SyncResult
from billing.tasks import scan_unlinked_subscriptions, sync_customer_billing


# =============================================================================
# scan_unlinked_subscriptions
# =============================================================================


class TestScanUnlinkedSubscriptions:
    def test_returns_summary(self):
        report = ScanReport()
        report.add(ItemResult.skipped("sub_ok"))
        report.add(
            ItemResult.emitted(
                ScanItem(subscription_id="sub_new", customer_id="cus_1", is_unmatched=True)
            )
        )
        report.add(ItemResult.failed("sub_bad", StripeRateLimitError("slow down")))

        with patch("billing.tasks.ReconciliationScanner") as mock_scanner:
            mock_scanner.return_value.scan.return_value = report

            result = scan_unlinked_subscriptions()

        assert result == {
            "status": "completed",
            "scanned_count": 3,
            "skipped_count": 1,
            "matched_count": 0,
            "unmatched_count": 1,
            "error_count": 1,
        }

    def test_list_failure_is_reported(self):
        with patch("billing.tasks.ReconciliationScanner") as mock_scanner:
            mock_scanner.return_value.scan.side_effect = StripeRateLimitError("slow down")

            result = scan_unlinked_subscriptions()

        assert result["status"] == "failed"
        assert result["error_code"] == "STRIPE_RATE_LIMIT"


# =============================================================================
# sync_customer_billing
# =============================================================================


class TestSyncCustomerBilling:
    def test_returns_sync_summary(self):
        with patch("billing.tasks.SubscriptionSynchronizer") as mock_sync:
            mock_sync.return_value.sync.return_value = SyncResult(
                customer_id="cus_1", synced_subscription_ids=["sub_1"]
            )

            result = sync_customer_billing("cus_1")

        assert result["status"] == "synced"
        assert result["synced_subscription_ids"] == ["sub_1"]
        mock_sync.return_value.sync.assert_called_once_with("cus_1")

    def test_deleted_customer_is_skipped(self):
        with patch("billing.tasks.SubscriptionSynchronizer") as mock_sync:
            mock_sync.return_value.sync.return_value = SyncResult(
                customer_id="cus_1", outcome=SyncOutcome.SOURCE_GONE
            )

            result = sync_customer_billing("cus_1")

        assert result == {
            "status": "skipped",
            "customer_id": "cus_1",
            "reason": "source_gone",
        }

    def test_transient_error_retries_with_backoff(self):
        error = StripeRateLimitError("slow down")

        with patch("billing.tasks.SubscriptionSynchronizer") as mock_sync, patch.object(
            sync_customer_billing, "retry", side_effect=Retry()
        ) as mock_retry:
            mock_sync.return_value.sync.side_effect = error

            with pytest.raises(Retry):
                sync_customer_billing("cus_1")

        mock_retry.assert_called_once_with(exc=error, countdown=10)

    def test_permanent_error_is_raised(self):
        with patch("billing.tasks.SubscriptionSynchronizer") as mock_sync, patch.object(
            sync_customer_billing, "retry"
        ) as mock_retry:
            mock_sync.return_value.sync.side_effect = StripeInvalidRequestError("bad id")

            with pytest.raises(StripeInvalidRequestError):
                sync_customer_billing("cus_1")

        mock_retry.assert_not_called()

    def test_task_is_registered_with_retries(self):
        assert sync_customer_billing.max_retries == 5
