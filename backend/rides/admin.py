"""Tells what to show in the Django admin interface for rides app"""

from django.contrib import admin
from .models import Ride, RideEarning, RideOffer, RideReminder


@admin.register(Ride)
class RideAdmin(admin.ModelAdmin):
    """Ride admin. OTPs are not editable."""
    list_display = ['id', 'rider', 'driver', 'status', 'booking_type', 'service', 'fare', 'payment_status', 'requested_at']
    list_filter = ['status', 'booking_type', 'payment_method', 'payment_status', 'requested_at']
    search_fields = ['rider__username', 'driver__username', 'pickup_address', 'dropoff_address']
    readonly_fields = [
        'start_otp', 'stop_otp', 'fare_breakdown', 'share_token',
        'requested_at', 'accepted_at', 'driver_arrived_at', 'completed_at', 'cancelled_at',
    ]
    date_hierarchy = 'requested_at'


@admin.register(RideOffer)
class RideOfferAdmin(admin.ModelAdmin):
    list_display = ("ride", "driver", "order", "distance_km", "status", "sent_at", "responded_at")
    list_filter = ("status",)
    search_fields = ("ride__id", "driver__username")


@admin.register(RideReminder)
class RideReminderAdmin(admin.ModelAdmin):
    list_display = ("ride", "threshold_minutes", "sent_at")


@admin.register(RideEarning)
class RideEarningAdmin(admin.ModelAdmin):
    list_display = ("ride", "driver", "gross_fare", "platform_fee", "driver_earning", "adjusted", "created_at")
    list_filter = ("adjusted",)
    search_fields = ("ride__id", "driver__username")
