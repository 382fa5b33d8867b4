"""
Tests for the billing operator API.

Tests cover:
- Staff-only access
- Reconciliation scan (200, 502 on Stripe failure)
- Reconcile (200, 400 on validation, 404/409 on failure, 502 on Stripe failure)
- Profit share (200, 400 on bad query, 502 on Stripe failure)
"""

import uuid
from unittest.mock import patch

import pytest
from django.contrib.auth import get_user_model
from django.urls import reverse
from rest_framework import status

from core.services import ServiceResult

from billing.exceptions import StripeAPIUnavailableError
from billing.services.profit_share import ProfitShareReport
from billing.services.reconciliation_service import ScanReport
from billing.tests.factories import StudentFactory

SCANNER_PATH = "billing.views.ReconciliationScanner"
CALCULATOR_PATH = "billing.views.ProfitShareCalculator"


# =============================================================================
# Permissions
# =============================================================================


@pytest.mark.django_db
class TestPermissions:
    @pytest.mark.parametrize(
        "url_name", ["billing:reconciliation-scan", "billing:profit-share"]
    )
    def test_anonymous_is_rejected(self, api_client, url_name):
        response = api_client.get(reverse(url_name))

        assert response.status_code in (
            status.HTTP_401_UNAUTHORIZED,
            status.HTTP_403_FORBIDDEN,
        )

    def test_non_staff_is_forbidden(self, api_client):
        user = get_user_model().objects.create_user(username="parent", password="pass-123")
        api_client.force_authenticate(user=user)

        with patch(SCANNER_PATH) as mock_scanner:
            response = api_client.get(reverse("billing:reconciliation-scan"))

        assert response.status_code == status.HTTP_403_FORBIDDEN
        mock_scanner.assert_not_called()


# =============================================================================
# Reconciliation Scan
# =============================================================================


@pytest.mark.django_db
class TestReconciliationScanView:
    def test_returns_report(self, staff_client):
        with patch(SCANNER_PATH) as mock_scanner:
            mock_scanner.return_value.scan.return_value = ScanReport(scanned_count=3, skipped_count=3)

            response = staff_client.get(reverse("billing:reconciliation-scan"))

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["scanned_count"] == 3
        assert response.json()["items"] == []

    def test_stripe_failure_returns_502(self, staff_client):
        with patch(SCANNER_PATH) as mock_scanner:
            mock_scanner.return_value.scan.side_effect = StripeAPIUnavailableError("down")

            response = staff_client.get(reverse("billing:reconciliation-scan"))

        assert response.status_code == status.HTTP_502_BAD_GATEWAY
        assert response.json()["error_code"] == "STRIPE_API_UNAVAILABLE"
        assert response.json()["retryable"] is True


# =============================================================================
# Reconcile
# =============================================================================


@pytest.mark.django_db
class TestReconcileView:
    url = "billing:reconciliation-reconcile"

    def test_reconciles_student(self, staff_client, student):
        with patch(SCANNER_PATH) as mock_scanner:
            mock_scanner.return_value.reconcile.return_value = ServiceResult.success(
                {
                    "student_id": str(student.id),
                    "subscription_id": "sub_1",
                    "subscription_linked": True,
                    "sync": {},
                }
            )

            response = staff_client.post(
                reverse(self.url),
                {"student_id": str(student.id), "subscription_id": " sub_1 "},
                format="json",
            )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["subscription_linked"] is True
        mock_scanner.return_value.reconcile.assert_called_once_with(student.id, "sub_1")

    def test_unknown_student_is_rejected(self, staff_client):
        response = staff_client.post(
            reverse(self.url),
            {"student_id": str(uuid.uuid4()), "subscription_id": "sub_1"},
            format="json",
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert "student_id" in response.json()

    def test_subscription_id_must_look_like_stripe(self, staff_client, student):
        response = staff_client.post(
            reverse(self.url),
            {"student_id": str(student.id), "subscription_id": "cus_1"},
            format="json",
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert "subscription_id" in response.json()

    def test_deleted_customer_returns_409(self, staff_client, student):
        with patch(SCANNER_PATH) as mock_scanner:
            mock_scanner.return_value.reconcile.return_value = ServiceResult.failure(
                "Stripe customer has been deleted", error_code="SOURCE_GONE"
            )

            response = staff_client.post(
                reverse(self.url),
                {"student_id": str(student.id), "subscription_id": "sub_1"},
                format="json",
            )

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["error_code"] == "SOURCE_GONE"

    def test_student_removed_meanwhile_returns_404(self, staff_client, student):
        with patch(SCANNER_PATH) as mock_scanner:
            mock_scanner.return_value.reconcile.return_value = ServiceResult.failure(
                "Student not found", error_code="NOT_FOUND"
            )

            response = staff_client.post(
                reverse(self.url),
                {"student_id": str(student.id), "subscription_id": "sub_1"},
                format="json",
            )

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_stripe_failure_returns_502(self, staff_client, student):
        with patch(SCANNER_PATH) as mock_scanner:
            mock_scanner.return_value.reconcile.side_effect = StripeAPIUnavailableError("down")

            response = staff_client.post(
                reverse(self.url),
                {"student_id": str(student.id), "subscription_id": "sub_1"},
                format="json",
            )

        assert response.status_code == status.HTTP_502_BAD_GATEWAY


# =============================================================================
# Profit Share
# =============================================================================


@pytest.mark.django_db
class TestProfitShareView:
    def test_returns_report_for_selected_students(self, staff_client):
        selected = StudentFactory()
        StudentFactory()

        with patch(CALCULATOR_PATH) as mock_calculator:
            mock_calculator.return_value.calculate.return_value = ProfitShareReport(
                year=2025, month=3, total_payout_cents=100000, payouts_found=1
            )

            response = staff_client.get(
                reverse("billing:profit-share"),
                {"year": 2025, "month": 3, "student_ids": f"{selected.id}, "},
            )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["total_payout_cents"] == 100000
        call_kwargs = mock_calculator.return_value.calculate.call_args.kwargs
        assert call_kwargs["year"] == 2025
        assert call_kwargs["month"] == 3
        assert list(call_kwargs["students"]) == [selected]

    @pytest.mark.parametrize(
        "params",
        [
            {"year": 2025, "month": 13, "student_ids": str(uuid.uuid4())},
            {"year": 2025, "month": 3, "student_ids": "not-a-uuid"},
            {"year": 2025, "month": 3, "student_ids": " , "},
            {"month": 3, "student_ids": str(uuid.uuid4())},
        ],
    )
    def test_invalid_query_returns_400(self, staff_client, params):
        response = staff_client.get(reverse("billing:profit-share"), params)

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_stripe_failure_returns_502(self, staff_client):
        with patch(CALCULATOR_PATH) as mock_calculator:
            mock_calculator.return_value.calculate.side_effect = StripeAPIUnavailableError(
                "down"
            )

            response = staff_client.get(
                reverse("billing:profit-share"),
                {"year": 2025, "month": 3, "student_ids": str(uuid.uuid4())},
            )

        assert response.status_code == status.HTTP_502_BAD_GATEWAY
