from django.contrib import admin

from pricing.models import Coupon, CouponUsage, PricingSettings, VehicleService


@admin.register(PricingSettings)
class PricingSettingsAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "per_km_rate",
        "minimum_fare",
        "cancellation_fee",
        "platform_fee_percent",
        "driver_commission_percent",
        "updated_at",
    ]


@admin.register(VehicleService)
class VehicleServiceAdmin(admin.ModelAdmin):
    list_display = ["key", "name", "base_price", "per_minute_rate", "enabled"]
    list_filter = ["enabled"]


@admin.register(Coupon)
class CouponAdmin(admin.ModelAdmin):
    list_display = [
        "code",
        "coupon_type",
        "discount_value",
        "usage_count",
        "max_usage",
        "valid_until",
        "is_active",
    ]
    list_filter = ["coupon_type", "is_active"]
    search_fields = ["code"]
    readonly_fields = ["usage_count"]


@admin.register(CouponUsage)
class CouponUsageAdmin(admin.ModelAdmin):
    list_display = ["coupon", "user", "ride", "discount_amount", "used_at"]
    search_fields = ["coupon__code", "user__username"]
