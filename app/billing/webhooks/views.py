"""
Webhook endpoint view for Stripe.

The view:
1. Verifies the webhook signature
2. Parses the event
3. Routes it synchronously through WebhookEventRouter
4. Answers 200 once the event is applied, skipped or dropped, and 500
   when it failed and should be redelivered

Processing is synchronous so the response code tells Stripe whether the
event is durably applied.

Usage:
    # In urls.py
    from billing.webhooks.views import stripe_webhook

    urlpatterns = [
        path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
    ]
"""

from __future__ import annotations

import logging

from django.http import HttpRequest, HttpResponse, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from billing.adapters import StripeAdapter
from billing.exceptions import StripeInvalidRequestError, WebhookPayloadError
from billing.webhooks.router import WebhookEventRouter
from billing.webhooks.types import WebhookEvent

logger = logging.getLogger(__name__)


@csrf_exempt
@require_POST
def stripe_webhook(request: HttpRequest) -> HttpResponse:
    """
    Receive and apply a Stripe webhook event.

    Returns:
        HttpResponse with status:
        - 200: Event processed, duplicate, ignored or dropped
        - 400: Missing or invalid signature, or invalid payload
        - 500: Processing failed; Stripe will redeliver

    Example Stripe-Signature header:
        t=1614556800,v1=xxx,v0=yyy
    """
    payload = request.body
    signature = request.headers.get("Stripe-Signature", "")

    if not signature:
        logger.warning("Webhook received without Stripe-Signature header")
        return HttpResponse("Missing signature", status=400)

    try:
        event_data = StripeAdapter.verify_webhook_signature(payload, signature)
    except StripeInvalidRequestError as e:
        logger.warning(
            "Webhook signature verification failed",
            extra={"error": str(e)},
        )
        return HttpResponse("Invalid signature", status=400)
    except Exception as e:
        logger.error(
            f"Unexpected error verifying webhook: {type(e).__name__}",
            exc_info=True,
        )
        return HttpResponse("Verification error", status=400)

    try:
        event = WebhookEvent.from_payload(event_data)
    except WebhookPayloadError:
        logger.warning("Webhook missing required fields")
        return HttpResponse("Invalid payload", status=400)

    logger.info(
        f"Received Stripe webhook: {event.type}",
        extra={"event_id": event.id, "event_type": event.type},
    )

    try:
        outcome = WebhookEventRouter().route(event)
    except Exception:
        # Already logged by the router; Stripe redelivers on non-2xx
        return JsonResponse({"status": "error"}, status=500)

    return JsonResponse(outcome.to_dict(), status=200)
