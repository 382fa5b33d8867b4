"""
Tests for billing admin actions and permissions.
"""

from unittest.mock import MagicMock, patch

import pytest
from django.contrib.admin.sites import AdminSite
from django.test import RequestFactory

from billing.admin import PayerAdmin, StudentPaymentAdmin, SubscriptionAdmin
from billing.models import Payer, StudentPayment, Subscription
from billing.tests.factories import PayerFactory


@pytest.mark.django_db
class TestPayerAdmin:
    def test_resync_queues_one_task_per_linked_payer(self, staff_user):
        first = PayerFactory(stripe_customer_id="cus_a")
        second = PayerFactory(stripe_customer_id="cus_b")
        PayerFactory(stripe_customer_id=None)
        model_admin = PayerAdmin(Payer, AdminSite())
        request = RequestFactory().post("/admin/billing/payer/")
        request.user = staff_user

        with patch("billing.admin.sync_customer_billing") as mock_task, patch.object(
            model_admin, "message_user"
        ) as mock_message:
            model_admin.resync_from_stripe(request, Payer.objects.all())

        queued = sorted(call.args[0] for call in mock_task.delay.call_args_list)
        assert queued == [first.stripe_customer_id, second.stripe_customer_id]
        mock_message.assert_called_once_with(request, "Queued Stripe resync for 2 payers.")


class TestReadOnlyAdmins:
    def test_ledger_rows_cannot_be_added_or_deleted(self):
        model_admin = StudentPaymentAdmin(StudentPayment, AdminSite())
        request = MagicMock()

        assert model_admin.has_add_permission(request) is False
        assert model_admin.has_delete_permission(request) is False

    def test_subscriptions_are_read_only(self):
        model_admin = SubscriptionAdmin(Subscription, AdminSite())

        readonly = model_admin.get_readonly_fields(MagicMock())

        assert "status" in readonly
        assert "grace_period_ends_at" in readonly
        assert model_admin.has_add_permission(MagicMock()) is False
