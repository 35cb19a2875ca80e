from django.db import models
from django.utils import timezone
from django.conf import settings

User = settings.AUTH_USER_MODEL


class DriverProfile(models.Model):
    """Driver availability, location and vehicle details used for dispatch"""
    VEHICLE_TYPE_CHOICES = [
        ('hatchback', 'Hatchback'),
        ('sedan', 'Sedan'),
        ('suv', 'SUV'),
        ('auto', 'Auto'),
    ]

    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='driver_profile')

    # Vehicle details
    vehicle_number = models.CharField(max_length=20, unique=True)
    vehicle_type = models.CharField(max_length=20, choices=VEHICLE_TYPE_CHOICES, default='sedan')

    # Availability
    is_active = models.BooleanField(default=True)
    is_online = models.BooleanField(default=False)
    is_busy = models.BooleanField(default=False)
    busy_until = models.DateTimeField(null=True, blank=True)

    # Live transport handle (Channels channel name); empty when unreachable
    session_id = models.CharField(max_length=255, blank=True, default='')

    # Location
    current_latitude = models.DecimalField(max_digits=10, decimal_places=6, null=True, blank=True)
    current_longitude = models.DecimalField(max_digits=10, decimal_places=6, null=True, blank=True)
    last_location_update = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = 'driver_profiles'
        indexes = [
            models.Index(fields=['is_active', 'is_online', 'is_busy'], name='driver_dispatch_idx'),
            models.Index(fields=['current_latitude', 'current_longitude'], name='driver_location_idx'),
        ]

    def __str__(self):
        return f"{self.user.username} - {self.vehicle_number}"
