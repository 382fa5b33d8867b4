"""
Webhook event router.

Routes a verified WebhookEvent to its handler exactly once per event id:

    1. Already recorded by the IdempotencyTracker  -> DUPLICATE
    2. No handler registered for the event type    -> IGNORED
    3. Handler succeeds                            -> PROCESSED, recorded
    4. Handler reports an invalid payload, or      -> DROPPED, recorded
       raises a permanent Stripe error
    5. Handler raises anything else                -> exception propagates,
                                                      nothing recorded

Case 5 is how transient Stripe failures reach the HTTP layer: the view
answers 500 and Stripe redelivers the event later.

Usage:
    from billing.webhooks.router import WebhookEventRouter

    outcome = WebhookEventRouter(engine).route(event)
    outcome.status  # RoutingStatus.PROCESSED
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from core.services import BaseService, ServiceResult

from billing.engine import BillingEngine, build_engine
from billing.exceptions import StripeError, WebhookPayloadError
from billing.webhooks.handlers import get_handler
from billing.webhooks.types import WebhookEvent

if TYPE_CHECKING:
    from typing import Any


class RoutingStatus(str, Enum):
    PROCESSED = "processed"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    DROPPED = "dropped"


@dataclass
class RoutingOutcome:
    event_id: str
    event_type: str
    status: RoutingStatus
    data: Any = None
    error: str | None = None
    error_code: str | None = None

    def to_dict(self) -> dict[str, Any]:
        response: dict[str, Any] = {"status": self.status.value}
        if self.error_code:
            response["error_code"] = self.error_code
        return response


class WebhookEventRouter(BaseService):
    """
    Args:
        engine: Collaborators handed to every handler (defaults to build_engine())
    """

    def __init__(self, engine: BillingEngine | None = None):
        self.engine = engine or build_engine()

    def route(self, event: WebhookEvent) -> RoutingOutcome:
        """
        Apply event once.

        Raises:
            Retryable StripeError, BillingConfigurationError, DatabaseError:
            the event was not applied and must be redelivered
        """
        logger = self.get_logger()
        tracker = self.engine.tracker
        log_context = {
            "event_id": event.id,
            "event_type": event.type,
            "customer_id": event.customer_id,
        }

        if tracker.has_processed(event.id):
            logger.info("Webhook event already processed", extra=log_context)
            return RoutingOutcome(event.id, event.type, RoutingStatus.DUPLICATE)

        handler = get_handler(event.type)
        if handler is None:
            logger.info(
                f"No handler registered for event type: {event.type}",
                extra=log_context,
            )
            return RoutingOutcome(event.id, event.type, RoutingStatus.IGNORED)

        logger.info(f"Dispatching {event.type} to handler", extra=log_context)
        start_time = time.time()

        try:
            result = handler(event, self.engine)
        except WebhookPayloadError as e:
            result = ServiceResult.from_exception(e)
        except StripeError as e:
            if e.is_retryable:
                logger.error(
                    f"Webhook handler failed: {type(e).__name__}",
                    extra={
                        **log_context,
                        "error_code": e.error_code,
                        "retryable": True,
                        "duration_ms": (time.time() - start_time) * 1000,
                    },
                    exc_info=True,
                )
                raise
            # Redelivery would fail the same way
            result = ServiceResult.from_exception(e)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"Webhook handler failed: {type(e).__name__}",
                extra={
                    **log_context,
                    "error_code": getattr(e, "error_code", None),
                    "retryable": getattr(e, "is_retryable", None),
                    "duration_ms": duration_ms,
                },
                exc_info=True,
            )
            raise

        duration_ms = (time.time() - start_time) * 1000
        tracker.mark_processed(event.id, event.type, event.customer_id)

        if result.success:
            logger.info(
                "Webhook event processed",
                extra={**log_context, "duration_ms": duration_ms},
            )
            return RoutingOutcome(
                event.id, event.type, RoutingStatus.PROCESSED, data=result.data
            )

        logger.error(
            "Dropping webhook event that cannot be applied",
            extra={
                **log_context,
                "error": result.error,
                "error_code": result.error_code,
                "duration_ms": duration_ms,
            },
        )
        return RoutingOutcome(
            event.id,
            event.type,
            RoutingStatus.DROPPED,
            error=result.error,
            error_code=result.error_code,
        )
