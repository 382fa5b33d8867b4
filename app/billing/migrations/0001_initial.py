import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Payer",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("name", models.CharField(help_text="Payer display name", max_length=255)),
                (
                    "email",
                    models.EmailField(
                        help_text="Contact email (globally unique)",
                        max_length=254,
                        unique=True,
                    ),
                ),
                (
                    "phone",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Contact phone number",
                        max_length=50,
                    ),
                ),
                (
                    "stripe_customer_id",
                    models.CharField(
                        blank=True,
                        help_text="Stripe Customer ID (cus_xxx)",
                        max_length=255,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "relationship",
                    models.CharField(
                        default="Parent",
                        help_text="Relationship to the students this payer pays for",
                        max_length=50,
                    ),
                ),
            ],
            options={
                "verbose_name": "Payer",
                "verbose_name_plural": "Payers",
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="SiblingGroup",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "name",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Optional display label for the family",
                        max_length=255,
                    ),
                ),
            ],
            options={
                "verbose_name": "Sibling group",
                "verbose_name_plural": "Sibling groups",
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="Student",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("name", models.CharField(help_text="Student full name", max_length=255)),
                (
                    "email",
                    models.EmailField(
                        blank=True,
                        db_index=True,
                        help_text="Student email address",
                        max_length=254,
                        null=True,
                    ),
                ),
                (
                    "phone",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Student phone number (free text)",
                        max_length=50,
                    ),
                ),
                (
                    "stripe_customer_id",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        help_text="Stripe Customer ID (cus_xxx) paying for this student",
                        max_length=255,
                        null=True,
                    ),
                ),
                (
                    "stripe_subscription_id",
                    models.CharField(
                        blank=True,
                        help_text="Stripe Subscription ID (sub_xxx) linked to this student",
                        max_length=255,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "subscription_status",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("active", "Active"),
                            ("past_due", "Past due"),
                            ("canceled", "Canceled"),
                            ("unpaid", "Unpaid"),
                            ("incomplete", "Incomplete"),
                            ("incomplete_expired", "Incomplete (expired)"),
                            ("trialing", "Trialing"),
                            ("paused", "Paused"),
                        ],
                        help_text="Stripe subscription status, mirrored verbatim",
                        max_length=32,
                        null=True,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("registered", "Registered"),
                            ("enrolled", "Enrolled"),
                            ("on_leave", "On leave"),
                            ("withdrawn", "Withdrawn"),
                        ],
                        db_index=True,
                        default="registered",
                        help_text="Enrollment status",
                        max_length=20,
                    ),
                ),
                (
                    "paid_until",
                    models.DateTimeField(
                        blank=True,
                        help_text="End of the last paid billing period",
                        null=True,
                    ),
                ),
                (
                    "next_payment_due",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the next subscription payment is due",
                        null=True,
                    ),
                ),
                (
                    "payer",
                    models.ForeignKey(
                        blank=True,
                        help_text="Billing-responsible party",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="students",
                        to="billing.payer",
                    ),
                ),
                (
                    "sibling_group",
                    models.ForeignKey(
                        blank=True,
                        help_text="Family grouping",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="students",
                        to="billing.siblinggroup",
                    ),
                ),
            ],
            options={
                "verbose_name": "Student",
                "verbose_name_plural": "Students",
                "ordering": ["name"],
                "indexes": [
                    models.Index(
                        fields=["status", "subscription_status"],
                        name="billing_stu_status_7c1e2a_idx",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="Subscription",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "stripe_subscription_id",
                    models.CharField(
                        help_text="Stripe Subscription ID (sub_xxx)",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("ACTIVE", "Active"),
                            ("PAST_DUE", "Past due"),
                            ("CANCELED", "Canceled"),
                            ("INACTIVE", "Inactive"),
                            ("INCOMPLETE", "Incomplete"),
                            ("TRIALING", "Trialing"),
                        ],
                        db_index=True,
                        default="INCOMPLETE",
                        help_text="Internal status derived from the Stripe status",
                        max_length=20,
                    ),
                ),
                (
                    "current_period_start",
                    models.DateTimeField(
                        blank=True,
                        help_text="Start of current billing period",
                        null=True,
                    ),
                ),
                (
                    "current_period_end",
                    models.DateTimeField(
                        blank=True,
                        help_text="End of current billing period",
                        null=True,
                    ),
                ),
                (
                    "last_payment_date",
                    models.DateTimeField(
                        blank=True,
                        help_text="Start of the most recent paid period",
                        null=True,
                    ),
                ),
                (
                    "next_payment_date",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the next payment is due (period end)",
                        null=True,
                    ),
                ),
                (
                    "grace_period_ends_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="End of the past-due grace window (PAST_DUE only)",
                        null=True,
                    ),
                ),
                (
                    "payer",
                    models.ForeignKey(
                        help_text="Payer that owns this subscription",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="subscriptions",
                        to="billing.payer",
                    ),
                ),
            ],
            options={
                "verbose_name": "Subscription",
                "verbose_name_plural": "Subscriptions",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["payer", "status"],
                        name="billing_sub_payer_i_4b9d0e_idx",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="StudentPayment",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "stripe_invoice_id",
                    models.CharField(
                        db_index=True,
                        help_text="Stripe Invoice ID (in_xxx)",
                        max_length=255,
                    ),
                ),
                (
                    "amount_cents",
                    models.PositiveIntegerField(
                        help_text="This student's share of the invoice in cents"
                    ),
                ),
                (
                    "year",
                    models.PositiveSmallIntegerField(
                        help_text="Year of the billing period start (UTC)"
                    ),
                ),
                (
                    "month",
                    models.PositiveSmallIntegerField(
                        help_text="Month (1-12) of the billing period start (UTC)"
                    ),
                ),
                (
                    "paid_at",
                    models.DateTimeField(help_text="When the invoice was paid"),
                ),
                (
                    "student",
                    models.ForeignKey(
                        help_text="Student the payment is attributed to",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="payments",
                        to="billing.student",
                    ),
                ),
            ],
            options={
                "verbose_name": "Student payment",
                "verbose_name_plural": "Student payments",
                "ordering": ["-paid_at"],
                "indexes": [
                    models.Index(
                        fields=["year", "month"],
                        name="billing_stu_year_3f8a51_idx",
                    )
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("student", "stripe_invoice_id"),
                        name="unique_student_invoice_payment",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("month__gte", 1), ("month__lte", 12)),
                        name="student_payment_month_range",
                    ),
                ],
            },
        ),
    ]
