"""
DRF serializers for the billing operator API.

This module provides serializers for:
- Reconcile requests
- Profit-share query parameters
- Scan report and reconcile responses (schema only)

Related files:
    - views.py: Operator API views
    - services/reconciliation_service.py: ScanReport, reconcile()

Usage:
    serializer = ReconcileRequestSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
"""

from __future__ import annotations

from rest_framework import serializers

from billing.models import Student


# =============================================================================
# Requests
# =============================================================================


class ReconcileRequestSerializer(serializers.Serializer):
    """
    Body of POST /reconciliation/reconcile/.

    Fields:
        student_id: Student to link
        subscription_id: Stripe Subscription ID (sub_xxx)
    """

    student_id = serializers.UUIDField()
    subscription_id = serializers.CharField(max_length=255)

    def validate_student_id(self, value):
        if not Student.objects.filter(id=value).exists():
            raise serializers.ValidationError("Student not found.")
        return value

    def validate_subscription_id(self, value: str) -> str:
        value = value.strip()
        if not value.startswith("sub_"):
            raise serializers.ValidationError("Expected a Stripe subscription id (sub_...).")
        return value


class ProfitShareQuerySerializer(serializers.Serializer):
    """
    Query parameters of GET /profit-share/.

    student_ids is a comma-separated list of student UUIDs.
    """

    year = serializers.IntegerField(min_value=2000, max_value=2100)
    month = serializers.IntegerField(min_value=1, max_value=12)
    student_ids = serializers.CharField()

    def validate_student_ids(self, value: str) -> list:
        field = serializers.UUIDField()
        raw_ids = [part.strip() for part in value.split(",") if part.strip()]
        if not raw_ids:
            raise serializers.ValidationError("At least one student id is required.")
        return [field.to_internal_value(raw_id) for raw_id in raw_ids]


# =============================================================================
# Responses (schema)
# =============================================================================


class ResolutionSerializer(serializers.Serializer):
    outcome = serializers.ChoiceField(choices=["matched", "ambiguous", "unmatched"])
    strategy = serializers.CharField(allow_null=True)
    confidence = serializers.CharField(allow_null=True)
    student_id = serializers.UUIDField(allow_null=True)
    payer_id = serializers.UUIDField(allow_null=True)
    candidate_ids = serializers.ListField(child=serializers.UUIDField())
    attempted = serializers.ListField(child=serializers.CharField())


class ScanItemSerializer(serializers.Serializer):
    subscription_id = serializers.CharField()
    customer_id = serializers.CharField()
    customer_email = serializers.EmailField(allow_null=True)
    customer_name = serializers.CharField(allow_null=True)
    customer_phone = serializers.CharField(allow_null=True)
    subscription_status = serializers.CharField(allow_null=True)
    needs_reconciliation = serializers.BooleanField()
    is_unmatched = serializers.BooleanField()
    student_id = serializers.UUIDField(allow_null=True)
    reasons = serializers.ListField(child=serializers.CharField())
    resolution = ResolutionSerializer(allow_null=True)
    last_payment_date = serializers.DateTimeField(allow_null=True)
    metadata = serializers.DictField()
    checkout_student_name = serializers.CharField(allow_null=True)
    checkout_phone = serializers.CharField(allow_null=True)


class ScanErrorSerializer(serializers.Serializer):
    subscription_id = serializers.CharField()
    error = serializers.CharField()
    error_code = serializers.CharField(allow_null=True)


class ScanReportSerializer(serializers.Serializer):
    items = ScanItemSerializer(many=True)
    errors = ScanErrorSerializer(many=True)
    scanned_count = serializers.IntegerField()
    skipped_count = serializers.IntegerField()
    matched_count = serializers.IntegerField()
    unmatched_count = serializers.IntegerField()


class ReconcileResponseSerializer(serializers.Serializer):
    student_id = serializers.UUIDField()
    subscription_id = serializers.CharField()
    subscription_linked = serializers.BooleanField()
    sync = serializers.DictField()


class ProfitShareReportSerializer(serializers.Serializer):
    year = serializers.IntegerField()
    month = serializers.IntegerField()
    total_payout_cents = serializers.IntegerField()
    total_deductions_cents = serializers.IntegerField()
    payouts_found = serializers.IntegerField()
    matched_charges = serializers.ListField(child=serializers.DictField())
