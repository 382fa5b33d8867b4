"""
Backfill the StudentPayment ledger from Stripe invoice history.

For every Stripe subscription held by a student, lists the subscription's
paid invoices and records each one through PaymentLedgerWriter. Rows that
already exist are skipped, so the command can be re-run safely.

Usage:
    python manage.py backfill_student_payments
    python manage.py backfill_student_payments --dry-run
"""

import logging

from django.core.management.base import BaseCommand, CommandError

from billing.adapters import StripeAdapter
from billing.exceptions import StripeError, StripeInvalidRequestError
from billing.ledger import InvoicePayment, PaymentLedgerWriter
from billing.models import Student
from billing.services.sync_service import SubscriptionSynchronizer

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Backfills per-student payment rows from paid Stripe invoices."

    stripe = StripeAdapter

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Report what would be recorded without writing anything.",
        )

    def handle(self, *args, **options):
        dry_run = options["dry_run"]
        ledger = PaymentLedgerWriter()

        subscription_ids = list(
            Student.objects.exclude(stripe_subscription_id__isnull=True)
            .exclude(stripe_subscription_id="")
            .values_list("stripe_subscription_id", flat=True)
            .distinct()
            .order_by("stripe_subscription_id")
        )
        self.stdout.write(f"Backfilling {len(subscription_ids)} subscriptions...")

        created = 0
        skipped = 0
        invoices_seen = 0
        failed = []

        for subscription_id in subscription_ids:
            try:
                students = self._covered_students(subscription_id)
                invoices = self.stripe.list_subscription_invoices(subscription_id, status="paid")
            except StripeError as e:
                logger.error(
                    "Backfill failed for subscription",
                    extra={"subscription_id": subscription_id, "error_code": e.error_code},
                )
                self.stdout.write(self.style.ERROR(f"{subscription_id}: {e.message}"))
                failed.append(subscription_id)
                continue

            for invoice in invoices:
                line = invoice.subscription_period_line()
                if line is None or line.period_start is None:
                    self.stdout.write(
                        self.style.WARNING(f"{invoice.id}: no subscription period line, skipped")
                    )
                    continue
                invoices_seen += 1

                if dry_run:
                    self.stdout.write(
                        f"[dry-run] {invoice.id}: {invoice.amount_paid_cents} cents "
                        f"across {len(students)} students"
                    )
                    continue

                result = ledger.record_invoice_payment(
                    InvoicePayment(
                        invoice_id=invoice.id,
                        total_paid_cents=invoice.amount_paid_cents,
                        period_start=line.period_start,
                        paid_at=invoice.paid_at or invoice.created or line.period_start,
                    ),
                    students,
                )
                created += result.created_count
                skipped += result.skipped_count

        summary = (
            f"Invoices: {invoices_seen}, rows created: {created}, "
            f"rows already present: {skipped}"
        )
        if dry_run:
            summary = f"[dry-run] {summary}"
        self.stdout.write(self.style.SUCCESS(summary))

        if failed:
            raise CommandError(f"Backfill failed for {len(failed)} subscriptions: {', '.join(failed)}")

    def _covered_students(self, subscription_id: str) -> list[Student]:
        """Students paid for by the subscription; metadata is read when Stripe still has it."""
        try:
            subscription = self.stripe.retrieve_subscription(subscription_id)
        except StripeInvalidRequestError:
            logger.warning(
                "Subscription not retrievable; using linked students only",
                extra={"subscription_id": subscription_id},
            )
            return list(Student.objects.linked_to_subscription(subscription_id))
        return list(SubscriptionSynchronizer.covered_students(subscription))
