from django.contrib import admin
from drivers.models import (
    DriverProfile,
    DriverSubscription,
    DriverWallet,
    DriverWalletTransaction,
)


@admin.register(DriverProfile)
class DriverProfileAdmin(admin.ModelAdmin):
    """Admin panel for managing Driver Profiles"""

    list_display = [
        "user",
        "vehicle_number",
        "vehicle_type",
        "status",
        "current_latitude",
        "current_longitude",
        "last_location_update",
    ]

    list_filter = [
        "status",
        "vehicle_type",
    ]

    search_fields = [
        "user__username",
        "vehicle_number",
    ]

    readonly_fields = [
        "last_location_update",
    ]

    ordering = ("user__username",)


@admin.register(DriverSubscription)
class DriverSubscriptionAdmin(admin.ModelAdmin):
    list_display = ["driver", "start_time", "expire", "status", "last_overtime_billing_at"]
    list_filter = ["status"]
    search_fields = ["driver__username"]
    readonly_fields = ["last_overtime_billing_at", "created_at"]


class DriverWalletTransactionInline(admin.TabularInline):
    """Ledger entries are shown read-only; they are never edited."""
    model = DriverWalletTransaction
    extra = 0
    can_delete = False
    fields = ["created_at", "type", "amount", "balance_before", "balance_after",
              "description", "reference_type", "reference_id"]
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(DriverWallet)
class DriverWalletAdmin(admin.ModelAdmin):
    list_display = ["driver", "balance", "currency", "updated_at"]
    search_fields = ["driver__username"]
    readonly_fields = ["balance", "created_at", "updated_at"]
    inlines = [DriverWalletTransactionInline]
