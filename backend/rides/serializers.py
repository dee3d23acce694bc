from rest_framework import serializers

from drivers.serializers import DriverBasicSerializer
from .models import RideRequest


class RideRequestSerializer(serializers.ModelSerializer):
    """Serializer for Ride Requests"""
    passenger = serializers.CharField(source='passenger.username', read_only=True)
    driver = DriverBasicSerializer(read_only=True, source='driver.driver_profile')
    
    class Meta:
        model = RideRequest
        fields = ['id', 'passenger', 'driver', 'pickup_latitude', 'pickup_longitude',
                  'pickup_address', 'dropoff_address', 'requested_vehicle_type',
                  'status', 'requested_at', 'accepted_at', 'driver_arrived_at_pickup_at',
                  'rider_call_attempted_at', 'completed_at', 'cancelled_at',
                  'cancellation_reason', 'cancellation_category', 'rider_charged_amount',
                  'driver_compensation_amount', 'driver_strike_type',
                  'driver_cancellation_reason_type']
        read_only_fields = fields


class DriverPositionSerializer(serializers.Serializer):
    """Optional driver position sent with a ride action"""
    latitude = serializers.DecimalField(max_digits=9, decimal_places=6, required=False)
    longitude = serializers.DecimalField(max_digits=9, decimal_places=6, required=False)

    def validate(self, attrs):
        if ('latitude' in attrs) != ('longitude' in attrs):
            raise serializers.ValidationError("latitude and longitude must be sent together")
        return attrs


class DriverCancelSerializer(DriverPositionSerializer):
    """Serializer for ride cancellation by driver"""
    reason = serializers.CharField(required=False, allow_blank=True, default="")
    # Free text is allowed; only the whitelisted tags waive the penalty.
    reason_type = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=40)

    def validate_reason_type(self, value):
        return value or None


class CancellationOutcomeSerializer(serializers.Serializer):
    rider_charged_amount = serializers.IntegerField()
    driver_compensation_amount = serializers.IntegerField()
    driver_strike_type = serializers.CharField()
    driver_cancellation_reason_type = serializers.CharField(allow_null=True)
    category = serializers.CharField()
    message = serializers.CharField()
