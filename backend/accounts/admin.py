from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from accounts.models import User
from drivers.models import DriverProfile


class DriverProfileInline(admin.StackedInline):
    """Vehicle and availability shown on the driver's account page"""
    model = DriverProfile
    can_delete = False
    extra = 0
    fields = ("vehicle_number", "vehicle_type", "status", "last_location_update")
    readonly_fields = ("last_location_update",)


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ("username", "role", "phone_number", "driver_status", "is_active")
    list_filter = ("role", "is_active")
    search_fields = ("username", "phone_number")
    inlines = [DriverProfileInline]

    fieldsets = BaseUserAdmin.fieldsets + (
        ("Role", {"fields": ("role", "phone_number")}),
    )
    add_fieldsets = BaseUserAdmin.add_fieldsets + (
        ("Role", {"fields": ("role", "phone_number")}),
    )

    @admin.display(description="Driver status")
    def driver_status(self, obj):
        profile = getattr(obj, "driver_profile", None)
        return profile.status if profile else "-"
