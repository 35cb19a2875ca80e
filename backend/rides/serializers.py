from rest_framework import serializers

from accounts.serializers import UserBasicSerializer
from drivers.serializers import DriverBasicSerializer
from .models import Ride, RideOffer


class RideSerializer(serializers.ModelSerializer):
    """Ride as shown to riders and drivers. OTPs are never included here."""
    rider = UserBasicSerializer(read_only=True)
    driver = serializers.SerializerMethodField()

    class Meta:
        model = Ride
        fields = [
            'id', 'rider', 'driver',
            'pickup_latitude', 'pickup_longitude', 'pickup_address',
            'dropoff_latitude', 'dropoff_longitude', 'dropoff_address',
            'distance_in_km', 'service', 'vehicle_type',
            'fare', 'fare_breakdown', 'promo_code', 'discount',
            'payment_method', 'payment_status', 'cancellation_fee', 'refund_amount',
            'status', 'booking_type', 'booking_meta',
            'scheduled_start_time', 'scheduled_end_time',
            'estimated_duration', 'actual_start_time', 'actual_end_time', 'actual_duration',
            'ride_for', 'passenger', 'is_shared',
            'cancelled_by', 'cancellation_reason',
            'requested_at', 'accepted_at', 'driver_arrived_at', 'completed_at', 'cancelled_at',
        ]
        read_only_fields = fields

    def get_driver(self, obj):
        if not obj.driver_id:
            return None
        profile = getattr(obj.driver, 'driver_profile', None)
        if profile is None:
            return UserBasicSerializer(obj.driver).data
        return DriverBasicSerializer(profile).data


class SharedRideSerializer(serializers.ModelSerializer):
    """Limited view for people following a shared trip link"""
    driver = serializers.SerializerMethodField()

    class Meta:
        model = Ride
        fields = [
            'id', 'status', 'passenger',
            'pickup_latitude', 'pickup_longitude', 'pickup_address',
            'dropoff_latitude', 'dropoff_longitude', 'dropoff_address',
            'driver', 'actual_start_time', 'share_token_expires_at',
        ]
        read_only_fields = fields

    def get_driver(self, obj):
        profile = getattr(obj.driver, 'driver_profile', None) if obj.driver_id else None
        return DriverBasicSerializer(profile).data if profile else None


class LocationSerializer(serializers.Serializer):
    latitude = serializers.DecimalField(max_digits=9, decimal_places=6, min_value=-90, max_value=90)
    longitude = serializers.DecimalField(max_digits=9, decimal_places=6, min_value=-180, max_value=180)
    address = serializers.CharField(required=False, allow_blank=True, default='')


class PassengerSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=100)
    phone = serializers.CharField(max_length=15)


class RideCreateSerializer(serializers.Serializer):
    """Input for creating a ride"""
    pickup_location = LocationSerializer()
    dropoff_location = LocationSerializer()
    service = serializers.CharField(max_length=30)
    booking_type = serializers.ChoiceField(choices=[c[0] for c in Ride.BOOKING_TYPE_CHOICES], default='INSTANT')
    booking_meta = serializers.DictField(required=False, default=dict)
    promo_code = serializers.CharField(required=False, allow_blank=True, default='')
    estimated_duration = serializers.IntegerField(required=False, min_value=0)
    distance_in_km = serializers.DecimalField(max_digits=8, decimal_places=2, required=False)
    ride_for = serializers.ChoiceField(choices=[c[0] for c in Ride.RIDE_FOR_CHOICES], default='SELF')
    passenger = PassengerSerializer(required=False)
    payment_method = serializers.ChoiceField(choices=[c[0] for c in Ride.PAYMENT_METHOD_CHOICES], default='CASH')
    wallet_amount_used = serializers.DecimalField(max_digits=10, decimal_places=2, required=False, default=0)
    gateway_amount_paid = serializers.DecimalField(max_digits=10, decimal_places=2, required=False, default=0)
    gateway_payment_id = serializers.CharField(required=False, allow_blank=True, default='')

    def validate(self, attrs):
        if attrs.get('ride_for') == 'OTHER' and not attrs.get('passenger'):
            raise serializers.ValidationError({"passenger": "Passenger details are required when booking for someone else."})
        return attrs


class FareQuoteSerializer(serializers.Serializer):
    pickup_location = LocationSerializer()
    dropoff_location = LocationSerializer()
    estimated_duration = serializers.IntegerField(required=False, min_value=0)
    distance_in_km = serializers.DecimalField(max_digits=8, decimal_places=2, required=False)


class RideCancelSerializer(serializers.Serializer):
    """Serializer for ride cancellation"""
    reason = serializers.CharField(required=False, allow_blank=True, default='')


class OtpSerializer(serializers.Serializer):
    otp = serializers.RegexField(r'^\d{4}$', error_messages={'invalid': 'OTP must be 4 digits.'})


class RideOfferSerializer(serializers.ModelSerializer):
    class Meta:
        model = RideOffer
        fields = ['id', 'ride', 'driver', 'order', 'distance_km', 'search_radius_km', 'status', 'sent_at', 'responded_at']
        read_only_fields = fields
