from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from common.utils.responses import error_response
from services.exceptions import RideServiceError
from services import ride_management
from .serializers import OtpSerializer, RideCancelSerializer, RideSerializer


def _driver_only(request):
    if getattr(request.user, 'role', None) != 'driver':
        return Response(
            {'success': False, 'error': 'forbidden', 'message': 'Only drivers can perform this action'},
            status=status.HTTP_403_FORBIDDEN
        )
    return None


def _ride_response(result, message=None):
    return Response({
        'success': result.success,
        'message': message or result.message,
        'ride': RideSerializer(result.ride).data,
        **(result.extra or {}),
    })


# ==================== Driver Ride Actions ====================

@api_view(['POST'])
@permission_classes([IsAuthenticated])
def accept_ride(request, ride_id):
    """Accept a ride request; the first driver to get here wins."""
    denied = _driver_only(request)
    if denied:
        return denied

    try:
        result = ride_management.accept_ride(request.user, ride_id)
    except RideServiceError as exc:
        return error_response(exc)

    return _ride_response(result, 'Ride Accepted Successfully! Navigate to pickup location.')


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def driver_arrived(request, ride_id):
    denied = _driver_only(request)
    if denied:
        return denied

    try:
        result = ride_management.mark_driver_arrived(request.user, ride_id)
    except RideServiceError as exc:
        return error_response(exc)

    return _ride_response(result)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def start_ride(request, ride_id):
    """Start the trip with the rider's start OTP."""
    denied = _driver_only(request)
    if denied:
        return denied

    serializer = OtpSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    try:
        result = ride_management.start_ride(request.user, ride_id, serializer.validated_data['otp'])
    except RideServiceError as exc:
        return error_response(exc)

    return _ride_response(result)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def complete_ride(request, ride_id):
    """Finish the trip with the rider's stop OTP; the fare is recalculated."""
    denied = _driver_only(request)
    if denied:
        return denied

    serializer = OtpSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    try:
        result = ride_management.complete_ride(request.user, ride_id, serializer.validated_data['otp'])
    except RideServiceError as exc:
        return error_response(exc)

    return _ride_response(result)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def driver_cancel_ride(request, ride_id):
    denied = _driver_only(request)
    if denied:
        return denied

    serializer = RideCancelSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    try:
        result = ride_management.cancel_ride(
            ride_id,
            'driver',
            reason=serializer.validated_data['reason'],
            actor=request.user,
        )
    except RideServiceError as exc:
        return error_response(exc)

    return _ride_response(result, 'Ride cancelled')


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def upcoming_bookings(request):
    """Accepted scheduled bookings for this driver, soonest first."""
    denied = _driver_only(request)
    if denied:
        return denied

    rides = ride_management.get_upcoming_bookings(request.user)
    return Response({
        'count': len(rides),
        'results': RideSerializer(rides, many=True).data,
    })
