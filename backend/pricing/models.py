from django.conf import settings
from django.db import models


class PricingSettings(models.Model):
    """Pricing values read by the fare engine. The newest row is authoritative."""

    per_km_rate = models.DecimalField(max_digits=8, decimal_places=2, default=12)
    minimum_fare = models.DecimalField(max_digits=8, decimal_places=2, default=100)
    cancellation_fee = models.DecimalField(max_digits=8, decimal_places=2, default=50)

    # Whole-number percentages (10 means 10%)
    platform_fee_percent = models.DecimalField(max_digits=5, decimal_places=2, default=10)
    driver_commission_percent = models.DecimalField(
        max_digits=5, decimal_places=2, null=True, blank=True, default=90
    )

    # Flat rates for scheduled bookings
    full_day_rate = models.DecimalField(max_digits=8, decimal_places=2, default=1500)
    rental_per_day_rate = models.DecimalField(max_digits=8, decimal_places=2, default=700)
    date_wise_per_date_rate = models.DecimalField(max_digits=8, decimal_places=2, default=500)

    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'pricing_settings'
        ordering = ['-updated_at', '-id']
        verbose_name_plural = 'pricing settings'

    def __str__(self):
        return f"Pricing #{self.id} ({self.per_km_rate}/km, min {self.minimum_fare})"


class VehicleService(models.Model):
    """A bookable vehicle tier (small / medium / large)"""

    key = models.CharField(max_length=30, unique=True)
    name = models.CharField(max_length=60)
    base_price = models.DecimalField(max_digits=8, decimal_places=2)
    per_minute_rate = models.DecimalField(max_digits=6, decimal_places=2)
    seats = models.PositiveIntegerField(default=4)
    enabled = models.BooleanField(default=True)

    class Meta:
        db_table = 'vehicle_services'
        ordering = ['base_price']

    def __str__(self):
        return f"{self.name} ({self.key})"


class Coupon(models.Model):
    """Promo code. Only discount application and usage recording live here."""
    TYPE_CHOICES = [
        ('fixed', 'Fixed amount'),
        ('percentage', 'Percentage'),
        ('new_user', 'New user'),
    ]

    code = models.CharField(max_length=30, unique=True)
    coupon_type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    description = models.CharField(max_length=255, blank=True)

    discount_value = models.DecimalField(max_digits=8, decimal_places=2)
    max_discount_amount = models.DecimalField(max_digits=8, decimal_places=2, null=True, blank=True)
    min_order_amount = models.DecimalField(max_digits=8, decimal_places=2, default=0)

    start_date = models.DateTimeField()
    valid_until = models.DateTimeField()

    # None means unlimited
    max_usage = models.PositiveIntegerField(null=True, blank=True)
    max_usage_per_user = models.PositiveIntegerField(default=1)
    usage_count = models.PositiveIntegerField(default=0)

    is_active = models.BooleanField(default=True)

    # Empty list means applicable everywhere
    applicable_services = models.JSONField(default=list, blank=True)
    applicable_ride_types = models.JSONField(default=list, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'coupons'
        ordering = ['-created_at']

    def save(self, *args, **kwargs):
        self.code = self.code.strip().upper()
        super().save(*args, **kwargs)

    def __str__(self):
        return self.code


class CouponUsage(models.Model):
    """One row per ride that consumed a coupon"""

    coupon = models.ForeignKey(Coupon, on_delete=models.CASCADE, related_name='usages')
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='coupon_usages')
    ride = models.ForeignKey('rides.Ride', on_delete=models.SET_NULL, null=True, blank=True, related_name='coupon_usages')

    discount_amount = models.DecimalField(max_digits=8, decimal_places=2)
    original_fare = models.DecimalField(max_digits=10, decimal_places=2)
    final_fare = models.DecimalField(max_digits=10, decimal_places=2)
    used_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'coupon_usages'
        ordering = ['-used_at']

    def __str__(self):
        return f"{self.coupon.code} by {self.user_id} on ride {self.ride_id}"
