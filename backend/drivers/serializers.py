from rest_framework import serializers
from drivers.models import DriverProfile


class DriverProfileSerializer(serializers.ModelSerializer):
    """
    Driver availability and vehicle details
    """
    username = serializers.CharField(source="user.username", read_only=True)

    class Meta:
        model = DriverProfile
        fields = [
            "id",
            "username",
            "vehicle_number",
            "vehicle_type",
            "is_active",
            "is_online",
            "is_busy",
            "busy_until",
            "current_latitude",
            "current_longitude",
            "last_location_update",
        ]
        read_only_fields = fields


class DriverBasicSerializer(serializers.ModelSerializer):
    """
    Lite version of driver info for ride details (sent to riders).
    """
    user_id = serializers.IntegerField(source="user.id", read_only=True)
    username = serializers.CharField(source="user.username", read_only=True)
    phone_number = serializers.CharField(source="user.phone_number", read_only=True)

    class Meta:
        model = DriverProfile
        fields = [
            "user_id",
            "username",
            "phone_number",
            "vehicle_number",
            "vehicle_type",
            "current_latitude",
            "current_longitude",
        ]


class DriverStatusSerializer(serializers.Serializer):
    """
    Going online/offline. ``session_id`` is the live channel handle.
    """
    is_online = serializers.BooleanField()
    session_id = serializers.CharField(required=False, allow_blank=True, max_length=255)


class LocationUpdateSerializer(serializers.Serializer):
    """
    Serializer for updating driver GPS location.
    """
    latitude = serializers.DecimalField(max_digits=9, decimal_places=6, min_value=-90, max_value=90)
    longitude = serializers.DecimalField(max_digits=9, decimal_places=6, min_value=-180, max_value=180)
