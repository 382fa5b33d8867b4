"""
Billing domain models.

- Student: student identity plus Stripe billing linkage
- Payer: billing-responsible party, one per Stripe Customer
- Subscription: local mirror of a Stripe subscription
- StudentPayment: append-only per-student payment ledger
- SiblingGroup: family grouping of students
"""

from billing.models.payer import Payer
from billing.models.sibling_group import SiblingGroup
from billing.models.student import Student
from billing.models.student_payment import StudentPayment
from billing.models.subscription import Subscription

__all__ = [
    "Payer",
    "SiblingGroup",
    "Student",
    "StudentPayment",
    "Subscription",
]
