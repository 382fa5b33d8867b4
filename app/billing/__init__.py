"""
Billing app: keeps students, payers and subscriptions consistent with Stripe.

This app handles:
- Stripe webhook intake (checkout, invoices, subscription lifecycle)
- Subscription state synchronization from Stripe
- Identity resolution of Stripe customers to students and payers
- Per-student payment ledger
- Reconciliation scans and operator repair
- Profit-share reporting over Stripe payouts

Related modules:
- billing.adapters.stripe_adapter: all Stripe API calls
- billing.services: synchronizer, identity resolver, scanner, profit share
- billing.webhooks: webhook view, router and handlers
"""
