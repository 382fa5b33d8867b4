"""
Operator API views for the billing engine.

Endpoints:
    GET  /api/v1/billing/reconciliation/           - Run the reconciliation scanner
    POST /api/v1/billing/reconciliation/reconcile/ - Link a student to a subscription
    GET  /api/v1/billing/profit-share/             - Monthly profit-share figures

Security:
    - Staff only (IsAdminUser)
    - The Stripe webhook lives in billing.webhooks.views

Stripe failures are reported as 502 with a retryable flag so the admin UI
can offer a retry.
"""

from __future__ import annotations

import logging

from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import IsAdminUser
from rest_framework.response import Response
from rest_framework.views import APIView

from billing.exceptions import StripeError
from billing.models import Student
from billing.serializers import (
    ProfitShareQuerySerializer,
    ProfitShareReportSerializer,
    ReconcileRequestSerializer,
    ReconcileResponseSerializer,
    ScanReportSerializer,
)
from billing.services.profit_share import ProfitShareCalculator
from billing.services.reconciliation_service import ReconciliationScanner

logger = logging.getLogger(__name__)


def stripe_error_response(error: StripeError) -> Response:
    return Response(
        {
            "detail": error.message,
            "error_code": error.error_code,
            "retryable": error.is_retryable,
        },
        status=status.HTTP_502_BAD_GATEWAY,
    )


class ReconciliationScanView(APIView):
    """
    Run the reconciliation scanner.

    GET /api/v1/billing/reconciliation/

    Returns:
        The scan report: items needing attention, per-item errors and counts
    """

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="scan_reconciliation",
        summary="Scan Stripe subscriptions",
        description=(
            "Lists active Stripe subscriptions whose local linkage is missing "
            "or inconsistent. Read-only."
        ),
        responses={
            200: ScanReportSerializer,
            502: OpenApiResponse(description="Stripe unavailable"),
        },
        tags=["Billing - Reconciliation"],
    )
    def get(self, request):
        try:
            report = ReconciliationScanner().scan()
        except StripeError as e:
            logger.error("Reconciliation scan failed", extra={"error_code": e.error_code})
            return stripe_error_response(e)
        return Response(report.to_dict())


class ReconcileView(APIView):
    """
    Link a student to a Stripe subscription and sync the customer.

    POST /api/v1/billing/reconciliation/reconcile/

    Request body:
        {"student_id": "<uuid>", "subscription_id": "sub_xxx"}
    """

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="reconcile_subscription",
        summary="Reconcile a subscription",
        request=ReconcileRequestSerializer,
        responses={
            200: ReconcileResponseSerializer,
            400: OpenApiResponse(description="Validation error"),
            409: OpenApiResponse(description="Stripe customer deleted"),
            502: OpenApiResponse(description="Stripe unavailable"),
        },
        tags=["Billing - Reconciliation"],
    )
    def post(self, request):
        serializer = ReconcileRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            result = ReconciliationScanner().reconcile(
                serializer.validated_data["student_id"],
                serializer.validated_data["subscription_id"],
            )
        except StripeError as e:
            return stripe_error_response(e)

        if not result.success:
            response_status = (
                status.HTTP_404_NOT_FOUND
                if result.error_code == "NOT_FOUND"
                else status.HTTP_409_CONFLICT
            )
            return Response(
                {"detail": result.error, "error_code": result.error_code},
                status=response_status,
            )

        logger.info(
            "Operator reconciled subscription",
            extra={
                "user_id": request.user.pk,
                "student_id": result.data["student_id"],
                "subscription_id": result.data["subscription_id"],
            },
        )
        return Response(result.data)


class ProfitShareView(APIView):
    """
    Monthly profit-share figures for a set of students.

    GET /api/v1/billing/profit-share/?year=2024&month=3&student_ids=<uuid>,<uuid>
    """

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="profit_share",
        summary="Calculate profit share",
        parameters=[
            OpenApiParameter(name="year", type=int, location=OpenApiParameter.QUERY),
            OpenApiParameter(name="month", type=int, location=OpenApiParameter.QUERY),
            OpenApiParameter(
                name="student_ids",
                type=str,
                location=OpenApiParameter.QUERY,
                description="Comma-separated student UUIDs",
            ),
        ],
        responses={
            200: ProfitShareReportSerializer,
            400: OpenApiResponse(description="Validation error"),
            502: OpenApiResponse(description="Stripe unavailable"),
        },
        tags=["Billing - Reports"],
    )
    def get(self, request):
        serializer = ProfitShareQuerySerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        students = Student.objects.select_related("payer").filter(id__in=data["student_ids"])

        try:
            report = ProfitShareCalculator().calculate(
                year=data["year"],
                month=data["month"],
                students=students,
            )
        except StripeError as e:
            return stripe_error_response(e)

        return Response(report.to_dict())
