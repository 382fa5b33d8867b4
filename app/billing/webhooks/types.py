"""
Typed view of a verified Stripe webhook event.

Usage:
    from billing.webhooks.types import WebhookEvent

    event = WebhookEvent.from_payload(verified_payload)
    event.type          # "invoice.payment_succeeded"
    event.object_id     # "in_123"
    event.customer_id   # "cus_123"
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from billing.adapters.stripe_adapter import stripe_object_id, to_datetime
from billing.exceptions import WebhookPayloadError


@dataclass(frozen=True)
class WebhookEvent:
    """
    Attributes:
        id: Stripe Event ID (evt_xxx), the idempotency key
        type: Stripe event type
        data_object: The event's data.object
        payload: The full event body
        created: Event creation time
    """

    id: str
    type: str
    data_object: dict[str, Any] = field(default_factory=dict)
    payload: dict[str, Any] = field(default_factory=dict)
    created: datetime | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> WebhookEvent:
        """
        Build a WebhookEvent from a verified event body.

        Raises:
            WebhookPayloadError: id or type is missing
        """
        event_id = payload.get("id")
        event_type = payload.get("type")
        if not event_id or not event_type:
            raise WebhookPayloadError(
                "Webhook event is missing id or type",
                details={"event_id": event_id, "event_type": event_type},
            )
        data_object = (payload.get("data") or {}).get("object") or {}
        return cls(
            id=event_id,
            type=event_type,
            data_object=dict(data_object),
            payload=payload,
            created=to_datetime(payload.get("created")),
        )

    @property
    def object_id(self) -> str | None:
        """ID of the object the event is about."""
        return self.data_object.get("id")

    @property
    def customer_id(self) -> str | None:
        """Stripe Customer ID on the event object, if any."""
        return stripe_object_id(self.data_object.get("customer"))

    def get(self, key: str, default: Any = None) -> Any:
        """Read a field of the event object."""
        return self.data_object.get(key, default)
