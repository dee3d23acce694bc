import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from services import ride_management
from services.ride_management import (
    RideNotFoundError,
    RideNotAvailableError,
    DriverNotAvailableError,
    DriverLocationUnavailableError,
)
from .serializers import (
    RideRequestSerializer,
    DriverPositionSerializer,
    DriverCancelSerializer,
    CancellationOutcomeSerializer,
)

logger = logging.getLogger(__name__)


def _driver_only(request, action):
    if request.user.role != 'driver':
        return Response(
            {'error': f'Only drivers can {action}'},
            status=status.HTTP_403_FORBIDDEN
        )
    return None


# ==================== Driver Ride APIs ====================

@api_view(['POST'])
@permission_classes([IsAuthenticated])
def accept_ride(request, ride_id):
    """Accept a pending ride; the driver's position is stored as the accept point"""
    denied = _driver_only(request, 'accept rides')
    if denied:
        return denied

    serializer = DriverPositionSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        result = ride_management.accept_ride(
            request.user,
            ride_id,
            latitude=serializer.validated_data.get('latitude'),
            longitude=serializer.validated_data.get('longitude'),
        )
    except DriverNotAvailableError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    except RideNotAvailableError as e:
        return Response({'error': str(e)}, status=status.HTTP_409_CONFLICT)
    except RideNotFoundError as e:
        return Response({'error': str(e)}, status=status.HTTP_404_NOT_FOUND)

    return Response({
        'success': True,
        'message': result.message,
        'ride': RideRequestSerializer(result.ride).data,
        'driver_status': 'busy',
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def arrived_at_pickup(request, ride_id):
    """Driver marks arrival at the pickup point (starts the no-show wait)"""
    denied = _driver_only(request, 'mark arrival')
    if denied:
        return denied

    try:
        result = ride_management.mark_arrived_at_pickup(request.user, ride_id)
    except RideNotFoundError as e:
        return Response({'error': str(e)}, status=status.HTTP_404_NOT_FOUND)

    return Response({
        'success': True,
        'message': result.message,
        'arrived_at': result.ride.driver_arrived_at_pickup_at,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def rider_call_attempt(request, ride_id):
    """Driver reports that they tried to call the rider"""
    denied = _driver_only(request, 'record call attempts')
    if denied:
        return denied

    try:
        result = ride_management.record_rider_call_attempt(request.user, ride_id)
    except RideNotFoundError as e:
        return Response({'error': str(e)}, status=status.HTTP_404_NOT_FOUND)

    return Response({
        'success': True,
        'message': result.message,
        'rider_call_attempted_at': result.ride.rider_call_attempted_at,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def driver_cancel_ride(request, ride_id):
    """
    Cancel ride by driver - marks ride as cancelled_driver

    The cancellation policy decides the rider charge, driver compensation
    and strike; the decision is stored on the ride and returned here.
    """
    denied = _driver_only(request, 'cancel rides')
    if denied:
        return denied

    serializer = DriverCancelSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    try:
        result = ride_management.cancel_ride_by_driver(
            request.user,
            ride_id,
            reason=data.get('reason', ''),
            reason_type=data.get('reason_type'),
            latitude=data.get('latitude'),
            longitude=data.get('longitude'),
        )
    except RideNotFoundError as e:
        return Response({'error': str(e)}, status=status.HTTP_404_NOT_FOUND)
    except DriverLocationUnavailableError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    ride = result.ride
    return Response({
        'success': True,
        'message': result.message,
        'ride_id': ride.id,
        'status': ride.status,
        'cancelled_at': ride.cancelled_at,
        'outcome': CancellationOutcomeSerializer(result.extra['outcome'].as_dict()).data,
        'valid_reason_cancels_last_7_days': result.extra['valid_reason_cancels_last_7_days'],
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def driver_current_ride(request):
    """Driver's current accepted ride, if any"""
    denied = _driver_only(request, 'view their current ride')
    if denied:
        return denied

    ride = ride_management.get_current_driver_ride(request.user)
    if not ride:
        return Response({'message': 'No active ride'}, status=status.HTTP_404_NOT_FOUND)

    return Response(RideRequestSerializer(ride, context={'request': request}).data)
