from rest_framework import serializers
from django.contrib.auth import get_user_model

from rides.serializers import PassengerSerializer

User = get_user_model()


class RideUpdateSerializer(serializers.Serializer):
    """
    Partial ride update sent by the rider.

    OTP fields are accepted here only so the service can reject them with a
    clear error instead of silently dropping them.
    """
    rider = serializers.PrimaryKeyRelatedField(queryset=User.objects.filter(role='rider'), required=False)
    passenger = PassengerSerializer(required=False)
    pickup_address = serializers.CharField(required=False, allow_blank=True)
    dropoff_address = serializers.CharField(required=False, allow_blank=True)
    start_otp = serializers.CharField(required=False)
    stop_otp = serializers.CharField(required=False)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError("No changes supplied.")
        return attrs
