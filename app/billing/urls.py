"""
URL configuration for the billing app.

Routes:
    - POST /webhooks/stripe/ - Stripe webhook endpoint
    - GET /reconciliation/ - Reconciliation scan
    - POST /reconciliation/reconcile/ - Reconcile one subscription
    - GET /profit-share/ - Profit-share report

All routes are prefixed with /api/v1/billing/ when included in the main URLconf.
"""

from django.urls import path

from billing.views import ProfitShareView, ReconcileView, ReconciliationScanView
from billing.webhooks.views import stripe_webhook

app_name = "billing"

urlpatterns = [
    # Webhook endpoints
    path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
    # Operator endpoints
    path("reconciliation/", ReconciliationScanView.as_view(), name="reconciliation-scan"),
    path(
        "reconciliation/reconcile/",
        ReconcileView.as_view(),
        name="reconciliation-reconcile",
    ),
    path("profit-share/", ProfitShareView.as_view(), name="profit-share"),
]
