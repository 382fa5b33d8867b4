"""
Identity resolution of Stripe customers to local students and payers.

Stripe customers are created by hosted checkout pages, so the only signals
tying one back to a registered student are imperfect: a stored id from an
earlier link, the checkout email, the phone and name typed into checkout
custom fields. The resolver tries them in a fixed order and stops at the
first stage that decides.

Stages (default order):
    1. STORED_LINKAGE   - a student or payer already carries the Stripe id (certain)
    2. EXACT_EMAIL      - case-insensitive email equality (certain)
    3. NORMALIZED_EMAIL - dots removed and "+tag" dropped from the local part (heuristic)
    4. PHONE            - digits-only phone equality (heuristic)
    5. NAME             - case-insensitive student name equality (heuristic)

Decision rule:
    A stage with exactly one candidate decides MATCHED. A stage with more
    than one candidate decides AMBIGUOUS and resolution stops: ambiguity is
    escalated to an operator, never resolved by picking one. If no stage
    produces a candidate the result is UNMATCHED.

Usage:
    from billing.services.identity_resolver import IdentityQuery, IdentityResolver

    resolution = IdentityResolver().resolve(
        IdentityQuery(email="parent@example.com", customer_id="cus_123"),
    )
    if resolution.is_matched and resolution.is_certain:
        student = resolution.student
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from core.helpers import digits_only
from core.services import BaseService

from billing.models import Payer, Student

if TYPE_CHECKING:
    from typing import Any

    from django.db.models import QuerySet


logger = logging.getLogger(__name__)


# =============================================================================
# Data Types
# =============================================================================


class MatchStrategy(str, Enum):
    """Resolution stages, in their default precedence."""

    STORED_LINKAGE = "stored_linkage"
    EXACT_EMAIL = "exact_email"
    NORMALIZED_EMAIL = "normalized_email"
    PHONE = "phone"
    NAME = "name"


class ResolutionOutcome(str, Enum):
    MATCHED = "matched"
    AMBIGUOUS = "ambiguous"
    UNMATCHED = "unmatched"


class MatchConfidence(str, Enum):
    """CERTAIN matches may be applied automatically; HEURISTIC ones are best effort."""

    CERTAIN = "certain"
    HEURISTIC = "heuristic"


STRATEGY_CONFIDENCE = {
    MatchStrategy.STORED_LINKAGE: MatchConfidence.CERTAIN,
    MatchStrategy.EXACT_EMAIL: MatchConfidence.CERTAIN,
    MatchStrategy.NORMALIZED_EMAIL: MatchConfidence.HEURISTIC,
    MatchStrategy.PHONE: MatchConfidence.HEURISTIC,
    MatchStrategy.NAME: MatchConfidence.HEURISTIC,
}

DEFAULT_STRATEGIES: tuple[MatchStrategy, ...] = (
    MatchStrategy.STORED_LINKAGE,
    MatchStrategy.EXACT_EMAIL,
    MatchStrategy.NORMALIZED_EMAIL,
    MatchStrategy.PHONE,
    MatchStrategy.NAME,
)

# Checkout custom fields are typed by the payer for one specific student,
# so they outrank the payer's own email.
CHECKOUT_STRATEGIES: tuple[MatchStrategy, ...] = (
    MatchStrategy.NAME,
    MatchStrategy.PHONE,
    MatchStrategy.EXACT_EMAIL,
)


@dataclass
class IdentityQuery:
    """
    Signals describing one Stripe billing identity.

    Attributes:
        email: Stripe customer (or checkout) email
        customer_id: Stripe Customer ID
        subscription_id: Stripe Subscription ID
        student_name: Free-text student name hint (checkout custom field)
        phone: Phone hint in any format (compared digits-only)
    """

    email: str | None = None
    customer_id: str | None = None
    subscription_id: str | None = None
    student_name: str | None = None
    phone: str | None = None

    def signals(self) -> dict[str, Any]:
        """All signals, for manual-review logs."""
        return {
            "email": self.email,
            "customer_id": self.customer_id,
            "subscription_id": self.subscription_id,
            "student_name": self.student_name,
            "phone_digits": digits_only(self.phone) or None,
        }


@dataclass
class Resolution:
    """
    Outcome of one resolve() call.

    Attributes:
        outcome: MATCHED, AMBIGUOUS or UNMATCHED
        strategy: Stage that decided (None when UNMATCHED)
        confidence: CERTAIN or HEURISTIC for MATCHED outcomes
        student: Matched student, if the match is a student
        payer: Matched payer, if the match is a payer
        candidate_ids: Every candidate of the deciding stage
        attempted: Stages tried, in order
        signals: The query's signals
    """

    outcome: ResolutionOutcome
    strategy: MatchStrategy | None = None
    confidence: MatchConfidence | None = None
    student: Student | None = None
    payer: Payer | None = None
    candidate_ids: list[uuid.UUID] = field(default_factory=list)
    attempted: list[MatchStrategy] = field(default_factory=list)
    signals: dict[str, Any] = field(default_factory=dict)

    @property
    def is_matched(self) -> bool:
        return self.outcome == ResolutionOutcome.MATCHED

    @property
    def is_ambiguous(self) -> bool:
        return self.outcome == ResolutionOutcome.AMBIGUOUS

    @property
    def is_certain(self) -> bool:
        return self.is_matched and self.confidence == MatchConfidence.CERTAIN

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "strategy": self.strategy.value if self.strategy else None,
            "confidence": self.confidence.value if self.confidence else None,
            "student_id": str(self.student.id) if self.student else None,
            "payer_id": str(self.payer.id) if self.payer else None,
            "candidate_ids": [str(candidate) for candidate in self.candidate_ids],
            "attempted": [strategy.value for strategy in self.attempted],
        }


# =============================================================================
# Normalization
# =============================================================================


def normalize_email(email: str | None) -> str:
    """
    Normalize an email for duplicate detection.

    Lower-cases the address, then removes dots from the local part and
    drops everything from the first "+" in the local part. The domain is
    kept so addresses at different providers never collide.

    Example:
        normalize_email("Jane.Doe+stripe@Example.com")  # "janedoe@example.com"
    """
    if not email:
        return ""
    local, at, domain = email.strip().lower().partition("@")
    local = local.split("+", 1)[0].replace(".", "")
    return f"{local}{at}{domain}"


# =============================================================================
# Identity Resolver
# =============================================================================


class IdentityResolver(BaseService):
    """
    Resolves a Stripe identity to exactly one Student or Payer.

    Args:
        include_payers: Also consider Payer records in the linkage and
            email stages (students always win within a stage)
    """

    def __init__(self, include_payers: bool = True):
        self.include_payers = include_payers
        self._matchers = {
            MatchStrategy.STORED_LINKAGE: self._match_stored_linkage,
            MatchStrategy.EXACT_EMAIL: self._match_exact_email,
            MatchStrategy.NORMALIZED_EMAIL: self._match_normalized_email,
            MatchStrategy.PHONE: self._match_phone,
            MatchStrategy.NAME: self._match_name,
        }

    def resolve(
        self,
        query: IdentityQuery,
        students: QuerySet[Student] | None = None,
        strategies: Sequence[MatchStrategy] = DEFAULT_STRATEGIES,
        include_payers: bool | None = None,
    ) -> Resolution:
        """
        Run the cascade for query.

        Args:
            query: Identity signals
            students: Candidate students (default: all students)
            strategies: Stages to run, in order
            include_payers: Override the instance setting for this call

        Returns:
            Resolution describing the outcome
        """
        candidates = students if students is not None else Student.objects.all()
        use_payers = self.include_payers if include_payers is None else include_payers
        attempted: list[MatchStrategy] = []
        signals = query.signals()

        for strategy in strategies:
            attempted.append(strategy)
            student_matches, payer_matches = self._matchers[strategy](
                query, candidates, use_payers
            )

            matches: list[Student] | list[Payer] = student_matches or payer_matches
            if not matches:
                continue

            if len(matches) > 1:
                candidate_ids = [match.id for match in matches]
                self.get_logger().warning(
                    "Ambiguous identity; manual review required",
                    extra={
                        **signals,
                        "strategy": strategy.value,
                        "candidate_ids": [str(c) for c in candidate_ids],
                    },
                )
                return Resolution(
                    outcome=ResolutionOutcome.AMBIGUOUS,
                    strategy=strategy,
                    candidate_ids=candidate_ids,
                    attempted=attempted,
                    signals=signals,
                )

            match = matches[0]
            return Resolution(
                outcome=ResolutionOutcome.MATCHED,
                strategy=strategy,
                confidence=STRATEGY_CONFIDENCE[strategy],
                student=match if isinstance(match, Student) else None,
                payer=match if isinstance(match, Payer) else None,
                candidate_ids=[match.id],
                attempted=attempted,
                signals=signals,
            )

        self.get_logger().warning(
            "Identity unmatched",
            extra={**signals, "attempted": [s.value for s in attempted]},
        )
        return Resolution(
            outcome=ResolutionOutcome.UNMATCHED,
            attempted=attempted,
            signals=signals,
        )

    # =========================================================================
    # Stages
    # =========================================================================

    def _match_stored_linkage(
        self, query: IdentityQuery, students: QuerySet[Student], use_payers: bool
    ) -> tuple[list[Student], list[Payer]]:
        if query.subscription_id:
            linked = list(students.filter(stripe_subscription_id=query.subscription_id))
            if linked:
                return linked, []
        if not query.customer_id:
            return [], []

        linked = list(students.filter(stripe_customer_id=query.customer_id))
        if linked:
            return linked, []
        if use_payers:
            return [], list(Payer.objects.filter(stripe_customer_id=query.customer_id))
        return [], []

    def _match_exact_email(
        self, query: IdentityQuery, students: QuerySet[Student], use_payers: bool
    ) -> tuple[list[Student], list[Payer]]:
        email = (query.email or "").strip()
        if not email:
            return [], []
        matched = list(students.filter(email__iexact=email))
        if matched or not use_payers:
            return matched, []
        return [], list(Payer.objects.filter(email__iexact=email))

    def _match_normalized_email(
        self, query: IdentityQuery, students: QuerySet[Student], use_payers: bool
    ) -> tuple[list[Student], list[Payer]]:
        target = normalize_email(query.email)
        if not target:
            return [], []
        matched = _filter_by_normalized_email(
            students.exclude(email__isnull=True).exclude(email=""), target
        )
        if matched or not use_payers:
            return matched, []
        return [], _filter_by_normalized_email(Payer.objects.all(), target)

    def _match_phone(
        self, query: IdentityQuery, students: QuerySet[Student], use_payers: bool
    ) -> tuple[list[Student], list[Payer]]:
        target = digits_only(query.phone)
        if not target:
            return [], []
        matched = [
            student
            for student in students.exclude(phone="")
            if digits_only(student.phone) == target
        ]
        return matched, []

    def _match_name(
        self, query: IdentityQuery, students: QuerySet[Student], use_payers: bool
    ) -> tuple[list[Student], list[Payer]]:
        name = (query.student_name or "").strip()
        if not name:
            return [], []
        return list(students.filter(name__iexact=name)), []


def _filter_by_normalized_email(records: Iterable[Any], target: str) -> list[Any]:
    return [record for record in records if normalize_email(record.email) == target]
