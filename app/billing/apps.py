"""
Billing app configuration.

The billing app is the reconciliation engine between the local
student/payer database and Stripe:
- Webhook intake with idempotent event routing
- Subscription state synchronization
- Identity resolution for new Stripe customers
- Per-student payment ledger
- Reconciliation scanning for manual repair
"""

from django.apps import AppConfig


class BillingConfig(AppConfig):
    """Configuration for the billing application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "billing"
    verbose_name = "Billing"
