"""
Stripe webhook handling for the billing engine.

Webhooks are verified, routed once per event id and applied
synchronously. Handlers converge on the subscription synchronizer.

Usage:
    # In urls.py
    from billing.webhooks.views import stripe_webhook

    urlpatterns = [
        path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
    ]
"""
