from django.db import models
from django.db.models import Q
from django.conf import settings


class Ride(models.Model):
    """A ride from request to completion or cancellation"""

    STATUS_CHOICES = [
        ('requested', 'Requested'),
        ('accepted', 'Accepted'),
        ('arrived', 'Driver Arrived'),
        ('in_progress', 'In Progress'),
        ('completed', 'Completed'),
        ('cancelled', 'Cancelled'),
    ]

    BOOKING_TYPE_CHOICES = [
        ('INSTANT', 'Instant'),
        ('FULL_DAY', 'Full Day'),
        ('RENTAL', 'Rental'),
        ('DATE_WISE', 'Date Wise'),
    ]

    PAYMENT_METHOD_CHOICES = [
        ('CASH', 'Cash'),
        ('WALLET', 'Wallet'),
        ('RAZORPAY', 'Razorpay'),
        ('hybrid', 'Wallet + Razorpay'),
    ]

    PAYMENT_STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('paid', 'Paid'),
        ('refunded', 'Refunded'),
    ]

    CANCELLED_BY_CHOICES = [
        ('rider', 'Rider'),
        ('driver', 'Driver'),
        ('system', 'System'),
    ]

    RIDE_FOR_CHOICES = [
        ('SELF', 'Self'),
        ('OTHER', 'Someone else'),
    ]

    # Parties
    rider = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='rides'
    )

    driver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='driven_rides'
    )

    # Pickup / dropoff
    pickup_latitude = models.DecimalField(max_digits=9, decimal_places=6)
    pickup_longitude = models.DecimalField(max_digits=9, decimal_places=6)
    pickup_address = models.TextField(blank=True, default='')
    dropoff_latitude = models.DecimalField(max_digits=9, decimal_places=6)
    dropoff_longitude = models.DecimalField(max_digits=9, decimal_places=6)
    dropoff_address = models.TextField(blank=True, default='')
    distance_in_km = models.DecimalField(max_digits=8, decimal_places=2, default=0)

    # Service
    service = models.CharField(max_length=30)
    vehicle_type = models.CharField(max_length=20, blank=True, default='')

    # Fare
    fare = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    fare_breakdown = models.JSONField(default=dict, blank=True)
    promo_code = models.CharField(max_length=30, blank=True, default='')
    discount = models.DecimalField(max_digits=10, decimal_places=2, default=0)

    # Payment
    payment_method = models.CharField(max_length=10, choices=PAYMENT_METHOD_CHOICES, default='CASH')
    payment_status = models.CharField(max_length=10, choices=PAYMENT_STATUS_CHOICES, default='pending')
    wallet_amount_used = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    gateway_amount_paid = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    gateway_payment_id = models.CharField(max_length=64, blank=True, default='')
    gateway_refund_id = models.CharField(max_length=64, blank=True, default='')
    gateway_refund_status = models.CharField(max_length=20, blank=True, default='')
    cancellation_fee = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    refund_amount = models.DecimalField(max_digits=10, decimal_places=2, default=0)

    # Lifecycle
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='requested')
    booking_type = models.CharField(max_length=20, choices=BOOKING_TYPE_CHOICES, default='INSTANT')
    booking_meta = models.JSONField(default=dict, blank=True)
    scheduled_start_time = models.DateTimeField(null=True, blank=True)
    scheduled_end_time = models.DateTimeField(null=True, blank=True)

    # Verification codes, set once at creation
    start_otp = models.CharField(max_length=4, editable=False)
    stop_otp = models.CharField(max_length=4, editable=False)

    # Timing
    estimated_duration = models.PositiveIntegerField(default=0)
    actual_start_time = models.DateTimeField(null=True, blank=True)
    actual_end_time = models.DateTimeField(null=True, blank=True)
    actual_duration = models.PositiveIntegerField(null=True, blank=True)

    # Riding for someone else
    ride_for = models.CharField(max_length=10, choices=RIDE_FOR_CHOICES, default='SELF')
    passenger = models.JSONField(default=dict, blank=True)
    share_token = models.CharField(max_length=64, null=True, blank=True, unique=True)
    share_token_expires_at = models.DateTimeField(null=True, blank=True)
    is_shared = models.BooleanField(default=False)

    # Cancellation
    cancelled_by = models.CharField(max_length=10, choices=CANCELLED_BY_CHOICES, blank=True, default='')
    cancellation_reason = models.TextField(blank=True, default='')

    # Timestamps
    requested_at = models.DateTimeField(auto_now_add=True)
    accepted_at = models.DateTimeField(null=True, blank=True)
    driver_arrived_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'rides'
        ordering = ['-requested_at']
        indexes = [
            models.Index(fields=['status', 'booking_type', 'scheduled_start_time'], name='ride_schedule_idx'),
            models.Index(fields=['driver', 'status'], name='ride_driver_status_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['rider'],
                condition=Q(status__in=['requested', 'accepted', 'arrived', 'in_progress']),
                name='one_active_ride_per_rider'
            )
        ]

    def __str__(self):
        return f"Ride #{self.id} - {self.rider} - {self.status}"


class RideOffer(models.Model):
    """Tracks which drivers were notified about a ride and how it ended for them."""

    ride = models.ForeignKey(
        Ride,
        on_delete=models.CASCADE,
        related_name='offers'
    )

    driver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        limit_choices_to={'role': 'driver'}
    )

    order = models.PositiveIntegerField()  # 0 = closest driver
    distance_km = models.DecimalField(max_digits=6, decimal_places=2, default=0)
    search_radius_km = models.PositiveIntegerField(default=0)

    status = models.CharField(
        max_length=20,
        choices=[
            ('sent', 'Sent'),
            ('accepted', 'Accepted'),
            ('expired', 'Expired'),
        ],
        default='sent',
    )

    sent_at = models.DateTimeField(auto_now_add=True)
    responded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'ride_offers'
        ordering = ['order']
        constraints = [
            models.UniqueConstraint(
                fields=['ride', 'driver'],
                name='unique_ride_driver'
            )
        ]

    def __str__(self):
        return f"Offer #{self.id} - Ride {self.ride_id} -> Driver {self.driver_id}"


class RideReminder(models.Model):
    """Marker that a pre-start reminder threshold has already been sent for a ride."""

    ride = models.ForeignKey(Ride, on_delete=models.CASCADE, related_name='reminders')
    threshold_minutes = models.PositiveIntegerField()
    sent_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'ride_reminders'
        constraints = [
            models.UniqueConstraint(
                fields=['ride', 'threshold_minutes'],
                name='unique_ride_reminder_threshold'
            )
        ]

    def __str__(self):
        return f"Ride {self.ride_id} reminded at {self.threshold_minutes}m"


class RideEarning(models.Model):
    """Platform / driver split recorded when a ride completes."""

    ride = models.OneToOneField(Ride, on_delete=models.CASCADE, related_name='earning')
    driver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name='ride_earnings'
    )

    gross_fare = models.DecimalField(max_digits=10, decimal_places=2)
    platform_fee = models.DecimalField(max_digits=10, decimal_places=2)
    driver_earning = models.DecimalField(max_digits=10, decimal_places=2)
    adjusted = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'ride_earnings'
        ordering = ['-created_at']

    def __str__(self):
        return f"Earning for ride {self.ride_id}: {self.driver_earning}"
