"""
Celery tasks for the billing engine.

This module provides async tasks for:
- Running the reconciliation scanner (nightly via celery-beat)
- Re-syncing one customer's billing state from Stripe

Usage:
    from billing.tasks import sync_customer_billing

    # Queue a resync for a customer
    sync_customer_billing.delay("cus_123")

    # Scan for unlinked subscriptions (typically via celery-beat)
    from billing.tasks import scan_unlinked_subscriptions
    scan_unlinked_subscriptions.delay()
"""

from __future__ import annotations

import logging

from celery import shared_task

from billing.exceptions import StripeError
from billing.services.reconciliation_service import ReconciliationScanner
from billing.services.sync_service import SubscriptionSynchronizer, SyncOutcome

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

MAX_SYNC_RETRIES = 5
SYNC_RETRY_BACKOFF_MAX_SECONDS = 300


# =============================================================================
# Reconciliation Tasks
# =============================================================================


@shared_task(bind=True)
def scan_unlinked_subscriptions(self) -> dict:
    """
    Run the reconciliation scanner and log a summary.

    The scanner never writes, so this task only reports. Operators act on
    the results through the reconciliation API.

    Returns:
        Dict with status and counts
    """
    logger.info("Starting scheduled reconciliation scan")

    try:
        report = ReconciliationScanner().scan()
    except StripeError as e:
        logger.error(
            "Reconciliation scan failed",
            extra={"error_code": e.error_code, "retryable": e.is_retryable},
            exc_info=True,
        )
        return {"status": "failed", "error": str(e), "error_code": e.error_code}

    summary = {
        "status": "completed",
        "scanned_count": report.scanned_count,
        "skipped_count": report.skipped_count,
        "matched_count": report.matched_count,
        "unmatched_count": report.unmatched_count,
        "error_count": len(report.errors),
    }
    if report.unmatched_count or report.errors:
        logger.warning("Reconciliation scan found items for review", extra=summary)
    else:
        logger.info("Reconciliation scan completed", extra=summary)
    return summary


# =============================================================================
# Sync Tasks
# =============================================================================


@shared_task(bind=True, max_retries=MAX_SYNC_RETRIES)
def sync_customer_billing(self, customer_id: str) -> dict:
    """
    Sync one customer's billing state from Stripe.

    Transient Stripe errors are retried with exponential backoff; other
    errors fail the task.

    Args:
        customer_id: Stripe Customer ID

    Returns:
        Dict with status and the sync summary
    """
    logger.info("Syncing customer billing", extra={"customer_id": customer_id})

    try:
        result = SubscriptionSynchronizer().sync(customer_id)
    except StripeError as e:
        if not e.is_retryable:
            logger.error(
                "Customer billing sync failed",
                extra={"customer_id": customer_id, "error_code": e.error_code},
            )
            raise
        countdown = min(2**self.request.retries * 10, SYNC_RETRY_BACKOFF_MAX_SECONDS)
        logger.warning(
            "Transient Stripe error during sync, retrying",
            extra={
                "customer_id": customer_id,
                "error_code": e.error_code,
                "retry_count": self.request.retries,
                "countdown": countdown,
            },
        )
        raise self.retry(exc=e, countdown=countdown)

    if result.outcome == SyncOutcome.SOURCE_GONE:
        return {"status": "skipped", "customer_id": customer_id, "reason": "source_gone"}

    return {"status": "synced", **result.to_dict()}
