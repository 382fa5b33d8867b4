"""
Typed view of the metadata stored on Stripe subscriptions.

Registration writes the covered students onto each Stripe subscription:

    metadata = {
        "schemaVersion": "1",                       # optional, defaults to 1
        "studentIds": '["<uuid>", "<uuid>"]',       # JSON-encoded array
        "studentRates": '{"<uuid>": 14500}',        # JSON-encoded object, cents
        "studentId": "<uuid>",                      # legacy single-student field
    }

Parsing fails closed: malformed JSON, wrong types and ids that are not
UUIDs are dropped (and logged) instead of raising, so a bad blob means
"covers no students" rather than a crashed webhook.

Usage:
    from billing.metadata import parse_subscription_metadata

    meta = parse_subscription_metadata(subscription.metadata)
    Student.objects.filter(id__in=meta.student_ids)
"""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from core.helpers import parse_uuid

logger = logging.getLogger(__name__)

CURRENT_SCHEMA_VERSION = 1

STUDENT_IDS_KEY = "studentIds"
LEGACY_STUDENT_ID_KEY = "studentId"
STUDENT_RATES_KEY = "studentRates"
SCHEMA_VERSION_KEY = "schemaVersion"


@dataclass(frozen=True)
class SubscriptionMetadata:
    """
    Parsed subscription metadata.

    Attributes:
        version: Schema version written by registration
        student_ids: Covered students, in the order they were listed
        student_rates: Per-student monthly rate in cents
    """

    version: int = CURRENT_SCHEMA_VERSION
    student_ids: list[uuid.UUID] = field(default_factory=list)
    student_rates: dict[uuid.UUID, int] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.student_ids

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly form used in scan reports."""
        return {
            "version": self.version,
            "student_ids": [str(student_id) for student_id in self.student_ids],
            "student_rates": {
                str(student_id): rate for student_id, rate in self.student_rates.items()
            },
        }


def _load_json(raw: Any, key: str, context: dict[str, Any]) -> Any:
    if raw is None or raw == "":
        return None
    if not isinstance(raw, str):
        return raw
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        logger.warning(
            "Malformed JSON in subscription metadata",
            extra={**context, "metadata_key": key},
        )
        return None


def _parse_version(raw: Any) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        return CURRENT_SCHEMA_VERSION


def _parse_student_ids(metadata: Mapping[str, Any], context: dict[str, Any]) -> list[uuid.UUID]:
    raw_ids = _load_json(metadata.get(STUDENT_IDS_KEY), STUDENT_IDS_KEY, context)

    candidates: list[Any]
    if isinstance(raw_ids, list):
        candidates = raw_ids
    elif raw_ids is not None:
        logger.warning(
            "studentIds metadata is not a list",
            extra={**context, "metadata_key": STUDENT_IDS_KEY},
        )
        candidates = []
    else:
        candidates = []

    if not candidates and metadata.get(LEGACY_STUDENT_ID_KEY):
        candidates = [metadata.get(LEGACY_STUDENT_ID_KEY)]

    student_ids: list[uuid.UUID] = []
    for candidate in candidates:
        student_id = parse_uuid(candidate)
        if student_id is None:
            logger.warning(
                "Dropping non-UUID student id from subscription metadata",
                extra={**context, "student_id": str(candidate)},
            )
            continue
        if student_id not in student_ids:
            student_ids.append(student_id)
    return student_ids


def _parse_student_rates(
    metadata: Mapping[str, Any], context: dict[str, Any]
) -> dict[uuid.UUID, int]:
    raw_rates = _load_json(metadata.get(STUDENT_RATES_KEY), STUDENT_RATES_KEY, context)
    if not isinstance(raw_rates, dict):
        return {}

    rates: dict[uuid.UUID, int] = {}
    for raw_id, raw_rate in raw_rates.items():
        student_id = parse_uuid(raw_id)
        if student_id is None or isinstance(raw_rate, bool):
            continue
        if isinstance(raw_rate, int) or (isinstance(raw_rate, str) and raw_rate.isdigit()):
            rates[student_id] = int(raw_rate)
    return rates


def parse_subscription_metadata(
    metadata: Mapping[str, Any] | None,
    subscription_id: str | None = None,
) -> SubscriptionMetadata:
    """
    Parse Stripe subscription metadata into SubscriptionMetadata.

    Args:
        metadata: The subscription's metadata mapping (may be None)
        subscription_id: Used for log context only

    Returns:
        SubscriptionMetadata; empty when nothing usable is present
    """
    if not metadata:
        return SubscriptionMetadata()

    context = {"subscription_id": subscription_id}
    return SubscriptionMetadata(
        version=_parse_version(metadata.get(SCHEMA_VERSION_KEY)),
        student_ids=_parse_student_ids(metadata, context),
        student_rates=_parse_student_rates(metadata, context),
    )
