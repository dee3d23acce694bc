from rest_framework import serializers
from drivers.models import (
    DriverProfile,
    DriverSubscription,
    DriverWallet,
    DriverWalletTransaction,
)


class DriverBasicSerializer(serializers.ModelSerializer):
    """
    Lite version of driver info for ride details 
    (sent to passengers with ride events).
    """
    username = serializers.CharField(source="user.username", read_only=True)
    phone_number = serializers.CharField(source="user.phone_number", read_only=True)

    class Meta:
        model = DriverProfile
        fields = [
            "id",
            "username",
            "phone_number",
            "vehicle_number",
            "vehicle_type",
            "current_latitude",
            "current_longitude",
        ]


class DriverStatusSerializer(serializers.Serializer):
    """
    Serializer for updating driver availability (available/offline).
    """
    status = serializers.ChoiceField(choices=["available", "offline"])


class LocationUpdateSerializer(serializers.Serializer):
    """
    Serializer for updating driver GPS location.
    """
    latitude = serializers.DecimalField(max_digits=9, decimal_places=6)
    longitude = serializers.DecimalField(max_digits=9, decimal_places=6)


class DriverWalletSerializer(serializers.ModelSerializer):
    class Meta:
        model = DriverWallet
        fields = ["balance", "currency", "updated_at"]


class DriverWalletTransactionSerializer(serializers.ModelSerializer):
    class Meta:
        model = DriverWalletTransaction
        fields = [
            "id",
            "type",
            "amount",
            "balance_before",
            "balance_after",
            "description",
            "reference_type",
            "reference_id",
            "created_at",
        ]


class DriverSubscriptionSerializer(serializers.ModelSerializer):
    class Meta:
        model = DriverSubscription
        fields = [
            "id",
            "start_time",
            "expire",
            "amount_paid",
            "status",
            "last_overtime_billing_at",
        ]


class OvertimeResultSerializer(serializers.Serializer):
    """Serializer for services.billing.OvertimeResult"""
    charged = serializers.DecimalField(max_digits=12, decimal_places=2)
    hours = serializers.IntegerField()
    wallet_balance_after = serializers.DecimalField(max_digits=12, decimal_places=2)
    grace_period_ended = serializers.BooleanField()
    grace_hours_remaining = serializers.FloatField()
