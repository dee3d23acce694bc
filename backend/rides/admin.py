"""Tells what to show in the Django admin interface for rides app"""

from django.contrib import admin
from .models import RideRequest, DriverCancellationStrike, DriverValidReasonCancel

@admin.register(RideRequest)
class RideRequestAdmin(admin.ModelAdmin):
    """Ride Request admin"""
    list_display = ['id', 'passenger', 'driver', 'status', 'cancellation_category',
                    'rider_charged_amount', 'driver_strike_type', 'requested_at', 'cancelled_at']
    list_filter = ['status', 'cancellation_category', 'driver_strike_type', 'requested_at']
    search_fields = ['passenger__username', 'driver__username', 'pickup_address']
    readonly_fields = ['requested_at', 'accepted_at', 'completed_at', 'cancelled_at',
                       'cancellation_category', 'rider_charged_amount',
                       'driver_compensation_amount', 'driver_strike_type',
                       'driver_cancellation_reason_type']
    date_hierarchy = 'requested_at'


@admin.register(DriverCancellationStrike)
class DriverCancellationStrikeAdmin(admin.ModelAdmin):
    list_display = ("driver", "ride", "strike_type", "cancelled_at", "created_at")
    list_filter = ("strike_type",)
    search_fields = ("driver__username", "ride__id")


@admin.register(DriverValidReasonCancel)
class DriverValidReasonCancelAdmin(admin.ModelAdmin):
    list_display = ("driver", "ride", "reason_type", "cancelled_at")
    list_filter = ("reason_type",)
    search_fields = ("driver__username", "ride__id")
