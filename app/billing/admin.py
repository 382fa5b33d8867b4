"""
Billing admin configuration.

Registers the billing models with the Django admin. Billing fields are
owned by Stripe and the synchronizer, so they are read-only here; staff
edit identity and enrollment fields only.
"""

from django.contrib import admin

from billing.models import Payer, SiblingGroup, Student, StudentPayment, Subscription
from billing.tasks import sync_customer_billing

STRIPE_OWNED_STUDENT_FIELDS = [
    "stripe_customer_id",
    "stripe_subscription_id",
    "subscription_status",
    "paid_until",
    "next_payment_due",
]


class StudentInline(admin.TabularInline):
    model = Student
    fields = ["name", "email", "status", "subscription_status", "paid_until"]
    readonly_fields = fields
    extra = 0
    can_delete = False
    show_change_link = True


@admin.register(Payer)
class PayerAdmin(admin.ModelAdmin):
    """
    Admin configuration for Payer.

    The "Resync from Stripe" action queues a sync for each selected payer.
    """

    list_display = ["name", "email", "phone", "stripe_customer_id", "relationship", "created_at"]
    search_fields = ["name", "email", "phone", "stripe_customer_id"]
    readonly_fields = ["id", "created_at", "updated_at"]
    ordering = ["-created_at"]
    inlines = [StudentInline]
    actions = ["resync_from_stripe"]

    @admin.action(description="Resync from Stripe")
    def resync_from_stripe(self, request, queryset):
        customer_ids = list(
            queryset.exclude(stripe_customer_id__isnull=True)
            .exclude(stripe_customer_id="")
            .values_list("stripe_customer_id", flat=True)
        )
        for customer_id in customer_ids:
            sync_customer_billing.delay(customer_id)
        self.message_user(request, f"Queued Stripe resync for {len(customer_ids)} payers.")


@admin.register(Student)
class StudentAdmin(admin.ModelAdmin):
    list_display = [
        "name",
        "email",
        "status",
        "subscription_status",
        "stripe_subscription_id",
        "paid_until",
        "payer",
    ]
    list_filter = ["status", "subscription_status"]
    search_fields = ["name", "email", "phone", "stripe_customer_id", "stripe_subscription_id"]
    readonly_fields = ["id", "created_at", "updated_at", *STRIPE_OWNED_STUDENT_FIELDS]
    list_select_related = ["payer"]
    autocomplete_fields = ["payer", "sibling_group"]

    fieldsets = (
        (None, {"fields": ("id", "name", "email", "phone", "status")}),
        ("Family", {"fields": ("payer", "sibling_group")}),
        ("Stripe", {"fields": tuple(STRIPE_OWNED_STUDENT_FIELDS)}),
        ("Timestamps", {"fields": ("created_at", "updated_at")}),
    )


@admin.register(Subscription)
class SubscriptionAdmin(admin.ModelAdmin):
    list_display = [
        "stripe_subscription_id",
        "payer",
        "status",
        "current_period_end",
        "grace_period_ends_at",
        "updated_at",
    ]
    list_filter = ["status"]
    search_fields = ["stripe_subscription_id", "payer__email", "payer__stripe_customer_id"]
    list_select_related = ["payer"]

    def get_readonly_fields(self, request, obj=None):
        """Subscriptions are mirrored from Stripe; nothing is editable."""
        return [field.name for field in self.model._meta.fields]

    def has_add_permission(self, request) -> bool:
        return False


@admin.register(StudentPayment)
class StudentPaymentAdmin(admin.ModelAdmin):
    list_display = ["student", "stripe_invoice_id", "amount_cents", "year", "month", "paid_at"]
    list_filter = ["year", "month"]
    search_fields = ["stripe_invoice_id", "student__name", "student__email"]
    date_hierarchy = "paid_at"
    list_select_related = ["student"]

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]

    def has_add_permission(self, request) -> bool:
        """Ledger rows are written from paid invoices only."""
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for ledger rows (append-only)."""
        return False


@admin.register(SiblingGroup)
class SiblingGroupAdmin(admin.ModelAdmin):
    list_display = ["__str__", "created_at"]
    search_fields = ["name", "students__name"]
    inlines = [StudentInline]
