from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from drivers.models import DriverProfile, DriverWalletTransaction
from drivers.serializers import (
    DriverStatusSerializer,
    LocationUpdateSerializer,
    DriverWalletSerializer,
    DriverWalletTransactionSerializer,
    DriverSubscriptionSerializer,
    OvertimeResultSerializer,
)
from services.billing import (
    GracePeriodEndedError,
    apply_overtime_billing,
    get_or_create_wallet,
)

from drivers import services

# Utility: Ensure request.user is a driver
def require_driver(user):
    if user.role != "driver":
        return False, Response({"error": "Only drivers allowed"}, status=403)
    try:
        profile = user.driver_profile
        return True, profile
    except DriverProfile.DoesNotExist:
        return False, Response({"error": "Driver profile not found"}, status=404)


def _parse_int(value, default):
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


class DriverStatusView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        ok, profile = require_driver(request.user)
        if ok is False:
            return profile

        return Response({"status": profile.status})

    def put(self, request):
        ok, profile = require_driver(request.user)
        if ok is False:
            return profile

        serializer = DriverStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        new_status = serializer.validated_data["status"]

        try:
            _, overtime = services.update_driver_status(profile, new_status)
        except GracePeriodEndedError as e:
            return Response({"error": str(e), "grace_period_ended": True}, status=403)

        data = {
            "message": f"Status updated to {new_status}",
            "status": new_status,
        }
        if overtime is not None:
            data["overtime"] = OvertimeResultSerializer(overtime).data
        return Response(data)


class DriverLocationUpdateView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        ok, profile = require_driver(request.user)
        if ok is False:
            return profile

        return Response({
            "latitude": float(profile.current_latitude) if profile.current_latitude is not None else None,
            "longitude": float(profile.current_longitude) if profile.current_longitude is not None else None,
            "last_updated": profile.last_location_update,
            "status": profile.status,
        })

    def post(self, request):
        ok, profile = require_driver(request.user)
        if ok is False:
            return profile

        serializer = LocationUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        lat = serializer.validated_data["latitude"]
        lon = serializer.validated_data["longitude"]

        services.update_driver_location(profile, lat, lon)

        return Response({
            "message": "Location updated",
            "latitude": float(lat),
            "longitude": float(lon),
            "status": profile.status
        })


class DriverSubscriptionView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        ok, profile = require_driver(request.user)
        if ok is False:
            return profile

        subscription, grace = services.get_subscription_status(request.user.id)
        if subscription is None:
            return Response({"message": "No subscription found", "subscription": None})

        data = DriverSubscriptionSerializer(subscription).data
        data["in_grace_period"] = grace.in_grace if grace else False
        data["grace_hours_remaining"] = grace.grace_hours_remaining if grace else 0

        if grace is None:
            message = "Subscription active"
        elif grace.in_grace:
            message = "Subscription expired; grace period active"
        else:
            message = "Subscription has expired"
        return Response({"message": message, "subscription": data})


class DriverOvertimeView(APIView):
    """On-demand overtime billing (normally run by the periodic sweep)."""
    permission_classes = [IsAuthenticated]

    def post(self, request):
        ok, profile = require_driver(request.user)
        if ok is False:
            return profile

        result = apply_overtime_billing(request.user.id)
        if result is None:
            return Response({"message": "Nothing to bill", "overtime": None})

        return Response({
            "message": "Overtime billed" if result.hours else "No full overtime hour to bill yet",
            "overtime": OvertimeResultSerializer(result).data,
        })


class DriverWalletView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        ok, profile = require_driver(request.user)
        if ok is False:
            return profile

        wallet = get_or_create_wallet(request.user.id)
        return Response(DriverWalletSerializer(wallet).data)


class DriverWalletTransactionsView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        ok, profile = require_driver(request.user)
        if ok is False:
            return profile

        limit = min(max(_parse_int(request.query_params.get("limit"), 50), 1), 100)
        offset = max(_parse_int(request.query_params.get("offset"), 0), 0)

        wallet = get_or_create_wallet(request.user.id)
        transactions = DriverWalletTransaction.objects.filter(wallet=wallet)
        total = transactions.count()
        page = transactions[offset:offset + limit]

        return Response({
            "count": total,
            "limit": limit,
            "offset": offset,
            "transactions": DriverWalletTransactionSerializer(page, many=True).data,
        })
