from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from common.utils.responses import error_response
from drivers.models import DriverProfile
from drivers.serializers import (
    DriverProfileSerializer,
    DriverStatusSerializer,
    LocationUpdateSerializer,
)
from rides.serializers import RideSerializer
from services.exceptions import RideServiceError
from services.ride_management import get_current_driver_ride

from drivers import services


# Utility: Ensure request.user is a driver
def require_driver(user):
    if getattr(user, "role", None) != "driver":
        return False, Response({"error": "Only drivers allowed"}, status=403)
    try:
        profile = user.driver_profile
        return True, profile
    except DriverProfile.DoesNotExist:
        return False, Response({"error": "Driver profile not found"}, status=404)


class DriverStatusView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        ok, profile = require_driver(request.user)
        if ok is False:
            return profile

        return Response(DriverProfileSerializer(profile).data)

    def put(self, request):
        ok, profile = require_driver(request.user)
        if ok is False:
            return profile

        serializer = DriverStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            profile = services.update_driver_status(
                profile,
                serializer.validated_data["is_online"],
                serializer.validated_data.get("session_id"),
            )
        except RideServiceError as exc:
            return error_response(exc)

        return Response({
            "message": "You are online" if profile.is_online else "You are offline",
            "is_online": profile.is_online,
            "is_busy": profile.is_busy,
        })


#    Location feeds the candidate search; WS clients may post it too.
class DriverLocationUpdateView(APIView):
    permission_classes = [IsAuthenticated]

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
        })


class DriverCurrentRideView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        ok, profile = require_driver(request.user)
        if ok is False:
            return profile

        # Reconcile a stale busy flag before answering
        services.validate_and_fix_driver_status(request.user.id)

        ride = get_current_driver_ride(request.user)
        if ride is None:
            return Response({"has_active_ride": False, "message": "No active ride"})

        return Response({
            "has_active_ride": True,
            "ride": RideSerializer(ride).data,
            "status": ride.status,
        })
