"""
Tests for ReconciliationScanner.

Tests cover:
- Email-matched subscriptions: consistent ones skipped, inconsistencies reported
- Unlinked subscriptions resolved from checkout custom fields
- Ambiguous and unmatched subscriptions reported for manual review
- Canceled and already-linked subscriptions excluded
- Per-subscription failures reported without stopping the scan
- reconcile(): linking, sibling subscriptions, deleted customers
"""

import uuid

import pytest

from billing.exceptions import StripeAPIUnavailableError
from billing.state_machines import StudentStatus, SubscriptionStatus
from billing.tests.factories import (
    PERIOD_START,
    CheckoutSessionResultFactory,
    CustomerResultFactory,
    InvoiceResultFactory,
    PayerFactory,
    StudentFactory,
    SubscriptionFactory,
    SubscriptionResultFactory,
    student_ids_metadata,
)


def checkout_fields(settings, name=None, phone=None):
    return {
        settings.BILLING_CHECKOUT_NAME_FIELD_KEY: name,
        settings.BILLING_CHECKOUT_PHONE_FIELD_KEY: phone,
    }


@pytest.fixture
def scanner(engine):
    return engine.scanner


@pytest.fixture
def stripe_subscription(fake_stripe, customer):
    """An active Stripe subscription with the customer expanded."""
    subscription = SubscriptionResultFactory(id="sub_1", customer=customer)
    fake_stripe.list_active_subscriptions.return_value = [subscription]
    return subscription


# =============================================================================
# Email-Matched Subscriptions
# =============================================================================


@pytest.mark.django_db
class TestScanEmailMatch:
    def test_consistent_subscription_is_skipped(
        self, scanner, fake_stripe, payer, stripe_subscription
    ):
        SubscriptionFactory(stripe_subscription_id="sub_1", payer=payer)
        StudentFactory(email="parent@example.com", stripe_subscription_id="sub_1")

        report = scanner.scan()

        assert report.scanned_count == 1
        assert report.skipped_count == 1
        assert report.items == []
        fake_stripe.list_subscription_invoices.assert_not_called()

    def test_unrecorded_subscription_is_reported(
        self, scanner, fake_stripe, stripe_subscription
    ):
        student = StudentFactory(email="Parent@Example.com")
        fake_stripe.list_subscription_invoices.return_value = [
            InvoiceResultFactory(paid_at=PERIOD_START)
        ]

        report = scanner.scan()

        [item] = report.items
        assert item.needs_reconciliation is True
        assert item.is_unmatched is False
        assert item.student_id == student.id
        assert item.reasons == ["subscription_not_recorded", "student_not_linked"]
        assert item.customer_email == "parent@example.com"
        assert item.last_payment_date == PERIOD_START
        fake_stripe.list_subscription_invoices.assert_called_once_with("sub_1", limit=1)

    def test_status_mismatch(self, scanner, payer, stripe_subscription):
        SubscriptionFactory(
            stripe_subscription_id="sub_1",
            payer=payer,
            status=SubscriptionStatus.PAST_DUE,
        )
        StudentFactory(email="parent@example.com", stripe_subscription_id="sub_1")

        report = scanner.scan()

        assert report.items[0].reasons == ["status_mismatch"]

    def test_customer_mismatch(self, scanner, stripe_subscription):
        SubscriptionFactory(
            stripe_subscription_id="sub_1",
            payer=PayerFactory(stripe_customer_id="cus_other"),
        )
        StudentFactory(email="parent@example.com", stripe_subscription_id="sub_1")

        report = scanner.scan()

        assert report.items[0].reasons == ["customer_mismatch"]

    def test_student_covered_by_metadata_is_consistent(
        self, scanner, payer, fake_stripe, customer
    ):
        student = StudentFactory(email="parent@example.com")
        SubscriptionFactory(stripe_subscription_id="sub_1", payer=payer)
        fake_stripe.list_active_subscriptions.return_value = [
            SubscriptionResultFactory(
                id="sub_1",
                customer=customer,
                metadata=student_ids_metadata(student),
            )
        ]

        report = scanner.scan()

        assert report.skipped_count == 1

    def test_item_to_dict(self, scanner, stripe_subscription):
        StudentFactory(email="parent@example.com")

        data = scanner.scan().to_dict()

        assert data["matched_count"] == 1
        assert data["unmatched_count"] == 0
        assert data["items"][0]["subscription_id"] == "sub_1"
        assert data["items"][0]["last_payment_date"] is None


# =============================================================================
# Unlinked Subscriptions
# =============================================================================


@pytest.mark.django_db
class TestScanUnlinked:
    def test_match_by_checkout_phone(self, scanner, fake_stripe, stripe_subscription, settings):
        student = StudentFactory(name="Ana Lima", phone="555-010-2000")
        fake_stripe.list_checkout_sessions.return_value = [
            CheckoutSessionResultFactory(
                custom_fields=checkout_fields(settings, phone="(555) 010-2000")
            )
        ]

        report = scanner.scan()

        [item] = report.items
        assert item.needs_reconciliation is True
        assert item.student_id == student.id
        assert item.reasons == ["unlinked_match"]
        assert item.checkout_phone == "5550102000"
        assert item.resolution.strategy.value == "phone"
        fake_stripe.list_checkout_sessions.assert_called_once_with("sub_1", limit=1)

    def test_checkout_session_from_subscription_is_retrieved(
        self, scanner, fake_stripe, customer, settings
    ):
        StudentFactory(name="Ana Lima")
        fake_stripe.list_active_subscriptions.return_value = [
            SubscriptionResultFactory(
                id="sub_1", customer=customer, checkout_session_id="cs_known"
            )
        ]
        fake_stripe.retrieve_checkout_session.return_value = CheckoutSessionResultFactory(
            custom_fields=checkout_fields(settings, name="Ana Lima")
        )

        report = scanner.scan()

        assert report.items[0].checkout_student_name == "Ana Lima"
        fake_stripe.retrieve_checkout_session.assert_called_once_with("cs_known")
        fake_stripe.list_checkout_sessions.assert_not_called()

    def test_ambiguous_match_is_unmatched(
        self, scanner, fake_stripe, stripe_subscription, settings
    ):
        first = StudentFactory(name="Ana Lima")
        second = StudentFactory(name="Ana Lima")
        fake_stripe.list_checkout_sessions.return_value = [
            CheckoutSessionResultFactory(
                custom_fields=checkout_fields(settings, name="ana lima")
            )
        ]

        report = scanner.scan()

        [item] = report.items
        assert item.is_unmatched is True
        assert item.student_id is None
        assert item.reasons == ["ambiguous_identity"]
        assert set(item.resolution.candidate_ids) == {first.id, second.id}

    def test_no_match_reports_customer_details(self, scanner, stripe_subscription):
        report = scanner.scan()

        [item] = report.items
        assert item.is_unmatched is True
        assert item.reasons == ["no_student_match"]
        assert item.customer_name == "Pat Parent"
        assert item.customer_phone == "+1 555 010 9999"
        assert report.unmatched_count == 1

    def test_linked_students_are_not_candidates(
        self, scanner, fake_stripe, stripe_subscription, settings
    ):
        StudentFactory(name="Ana Lima", stripe_subscription_id="sub_other")
        fake_stripe.list_checkout_sessions.return_value = [
            CheckoutSessionResultFactory(
                custom_fields=checkout_fields(settings, name="Ana Lima")
            )
        ]

        report = scanner.scan()

        assert report.items[0].reasons == ["no_student_match"]

    def test_unexpanded_customer_is_retrieved(self, scanner, fake_stripe, customer):
        fake_stripe.list_active_subscriptions.return_value = [
            SubscriptionResultFactory(id="sub_1", customer=None)
        ]
        fake_stripe.retrieve_customer.return_value = customer

        report = scanner.scan()

        assert report.items[0].customer_email == customer.email
        fake_stripe.retrieve_customer.assert_called_once_with("cus_test_parent")


# =============================================================================
# Exclusions and Failures
# =============================================================================


@pytest.mark.django_db
class TestScanExclusions:
    def test_canceled_local_subscription_is_excluded(
        self, scanner, payer, stripe_subscription
    ):
        SubscriptionFactory(
            stripe_subscription_id="sub_1",
            payer=payer,
            status=SubscriptionStatus.CANCELED,
        )
        StudentFactory(email="parent@example.com")

        report = scanner.scan()

        assert report.skipped_count == 1
        assert report.items == []

    def test_subscription_linked_by_id_is_excluded(
        self, scanner, fake_stripe, stripe_subscription
    ):
        StudentFactory(email="someone.else@example.com", stripe_subscription_id="sub_1")

        report = scanner.scan()

        assert report.skipped_count == 1
        fake_stripe.list_checkout_sessions.assert_not_called()

    def test_failure_on_one_subscription_does_not_stop_scan(self, scanner, fake_stripe):
        fake_stripe.list_active_subscriptions.return_value = [
            SubscriptionResultFactory(id="sub_broken", customer_id="cus_broken"),
            SubscriptionResultFactory(id="sub_ok", customer=CustomerResultFactory()),
        ]
        fake_stripe.retrieve_customer.side_effect = StripeAPIUnavailableError("down")

        report = scanner.scan()

        assert report.scanned_count == 2
        [error] = report.errors
        assert error.subscription_id == "sub_broken"
        assert error.error_code == "STRIPE_API_UNAVAILABLE"
        assert [item.subscription_id for item in report.items] == ["sub_ok"]

    def test_list_failure_fails_the_scan(self, scanner, fake_stripe):
        fake_stripe.list_active_subscriptions.side_effect = StripeAPIUnavailableError("down")

        with pytest.raises(StripeAPIUnavailableError):
            scanner.scan()


# =============================================================================
# reconcile()
# =============================================================================


@pytest.mark.django_db
class TestReconcile:
    @pytest.fixture
    def stripe_state(self, fake_stripe, customer):
        subscription = SubscriptionResultFactory(id="sub_1", customer=customer)
        fake_stripe.retrieve_subscription.return_value = subscription
        fake_stripe.list_customer_subscriptions.return_value = [subscription]
        fake_stripe.retrieve_customer.return_value = customer
        return subscription

    def test_links_student_and_syncs(self, scanner, student, stripe_state):
        result = scanner.reconcile(student.id, "sub_1")

        assert result.success
        assert result.data["subscription_linked"] is True
        assert result.data["sync"]["payer_created"] is False
        student.refresh_from_db()
        assert student.stripe_subscription_id == "sub_1"
        assert student.stripe_customer_id == "cus_test_parent"
        assert student.payer.email == "parent@example.com"
        assert student.status == StudentStatus.ENROLLED

    def test_accepts_string_id(self, scanner, student, stripe_state):
        result = scanner.reconcile(str(student.id), "sub_1")

        assert result.success

    def test_sibling_keeps_existing_holder(self, scanner, student, sibling, stripe_state):
        StudentFactory(stripe_subscription_id="sub_1")

        result = scanner.reconcile(sibling.id, "sub_1")

        assert result.data["subscription_linked"] is False
        sibling.refresh_from_db()
        assert sibling.stripe_subscription_id is None
        assert sibling.payer is not None
        assert sibling.stripe_customer_id == "cus_test_parent"

    def test_unknown_student(self, scanner, fake_stripe):
        result = scanner.reconcile(uuid.uuid4(), "sub_1")

        assert not result.success
        assert result.error_code == "NOT_FOUND"
        fake_stripe.retrieve_subscription.assert_not_called()

    def test_deleted_customer(self, scanner, student, fake_stripe):
        fake_stripe.retrieve_subscription.return_value = SubscriptionResultFactory(
            id="sub_1", customer=None
        )
        fake_stripe.retrieve_customer.return_value = CustomerResultFactory(deleted=True)

        result = scanner.reconcile(student.id, "sub_1")

        assert result.error_code == "SOURCE_GONE"
        student.refresh_from_db()
        assert student.stripe_subscription_id is None
        assert student.payer is None

    def test_stripe_failure_writes_nothing(self, scanner, student, fake_stripe):
        fake_stripe.retrieve_subscription.side_effect = StripeAPIUnavailableError("down")

        with pytest.raises(StripeAPIUnavailableError):
            scanner.reconcile(student.id, "sub_1")

        student.refresh_from_db()
        assert student.payer is None
