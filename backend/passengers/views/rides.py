# passengers/views/rides.py

from rest_framework import status
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import AllowAny, IsAuthenticated

from common.utils.responses import error_response
from rides.models import Ride
from rides.serializers import (
    FareQuoteSerializer,
    RideCancelSerializer,
    RideCreateSerializer,
    RideSerializer,
    SharedRideSerializer,
)
from services.exceptions import RideServiceError
from services import ride_management
from ..permissions import IsRider
from ..serializers import RideUpdateSerializer


class PassengerCreateRideView(APIView):
    """
    POST: Rider books a ride. The OTPs are returned only here.
    """
    permission_classes = [IsAuthenticated, IsRider]

    def post(self, request):
        serializer = RideCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            result = ride_management.create_ride(request.user, serializer.validated_data)
        except RideServiceError as exc:
            return error_response(exc)

        ride = result.ride
        return Response({
            "ride": RideSerializer(ride).data,
            "start_otp": ride.start_otp,
            "stop_otp": ride.stop_otp,
            "share_token": ride.share_token,
            "message": "Searching for nearby drivers...",
        }, status=status.HTTP_201_CREATED)


class FareQuoteView(APIView):
    """
    POST: Fare for every available vehicle service between two points.
    """
    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = FareQuoteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            quotes = ride_management.quote_fares(serializer.validated_data)
        except RideServiceError as exc:
            return error_response(exc)

        return Response(quotes)


class PassengerCurrentRideView(APIView):
    """
    GET: Rider polling endpoint for the active ride.
    """
    permission_classes = [IsAuthenticated, IsRider]

    def get(self, request):
        ride = ride_management.get_current_rider_ride(request.user)

        if not ride:
            return Response({
                "has_active_ride": False,
                "message": "No active ride found"
            })

        resp = {
            "has_active_ride": True,
            "ride": RideSerializer(ride).data,
            "status": ride.status,
            "driver_assigned": ride.driver_id is not None,
        }

        if ride.status == "requested":
            resp["message"] = "Searching for nearby drivers..."
        elif ride.status == "accepted":
            resp["message"] = "Driver is on the way!"
        elif ride.status == "arrived":
            resp["message"] = "Your driver has arrived."
        else:
            resp["message"] = "Enjoy your ride."

        return Response(resp)


class PassengerRideDetailView(APIView):
    """
    PATCH: Rider edits passenger details or addresses of their ride.
    """
    permission_classes = [IsAuthenticated, IsRider]

    def patch(self, request, ride_id: int):
        if not Ride.objects.filter(pk=ride_id, rider=request.user).exists():
            return Response({"success": False, "error": "ride_not_found", "message": "Ride not found"}, status=404)

        serializer = RideUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        try:
            ride = ride_management.update_ride(ride_id, serializer.validated_data)
        except RideServiceError as exc:
            return error_response(exc)

        return Response({"success": True, "ride": RideSerializer(ride).data})


class PassengerCancelRideView(APIView):
    """
    POST: Rider cancels a ride. A fee applies once a driver has committed.
    """
    permission_classes = [IsAuthenticated, IsRider]

    def post(self, request, ride_id: int):
        serializer = RideCancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            result = ride_management.cancel_ride(
                ride_id,
                "rider",
                reason=serializer.validated_data["reason"],
                actor=request.user,
            )
        except RideServiceError as exc:
            return error_response(exc)

        return Response({
            "success": True,
            "message": "Ride cancelled successfully",
            "ride": RideSerializer(result.ride).data,
            "refund": (result.extra or {}).get("refund"),
        })


class SharedRideView(APIView):
    """
    GET: Trip details for someone following a share link.
    """
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request, token: str):
        try:
            ride = ride_management.get_shared_ride(token)
        except RideServiceError as exc:
            return error_response(exc)

        return Response(SharedRideSerializer(ride).data)
