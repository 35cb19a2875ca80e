"""
Database-backed providers for the fare engine.

Reads pricing settings and coupons into the plain snapshots the fare engine
works on, and records coupon usage once a ride is stored.
"""

import logging
from typing import Optional, Tuple

from django.db import DatabaseError, transaction
from django.db.models import F
from django.utils import timezone

from pricing.models import Coupon, CouponUsage, PricingSettings, VehicleService
from services.exceptions import ExternalServiceError, PricingUnavailableError
from .fare_engine import PricingSnapshot, VehicleTier
from .promo import PromoContext, PromoSnapshot, money

logger = logging.getLogger(__name__)


# Vehicle types (and legacy service names) -> vehicle service key
SERVICE_ALIASES = {
    "hatchback": "cerca_small",
    "auto": "cerca_small",
    "sedan": "cerca_medium",
    "suv": "cerca_large",
}


def resolve_service(service: str) -> Tuple[str, str]:
    """
    Map a requested service to (vehicle service key, vehicle type filter).

    A vehicle type ("sedan") restricts dispatch to that type; a service key
    ("cerca_medium") does not.
    """
    service = (service or "").strip().lower()
    if service in SERVICE_ALIASES:
        return SERVICE_ALIASES[service], service
    return service, ""


def get_pricing_snapshot() -> PricingSnapshot:
    """
    Read the current pricing configuration.

    Raises:
        PricingUnavailableError: No settings row exists or the database failed.
    """
    try:
        config = PricingSettings.objects.order_by("-updated_at", "-id").first()
        services = list(VehicleService.objects.all())
    except DatabaseError as exc:
        logger.exception("Failed to read pricing settings")
        raise PricingUnavailableError("Pricing configuration could not be read") from exc

    if config is None:
        raise PricingUnavailableError("Pricing configuration is not set up")

    tiers = {
        service.key: VehicleTier(
            key=service.key,
            name=service.name,
            base_price=money(service.base_price),
            per_minute_rate=money(service.per_minute_rate),
            enabled=service.enabled,
        )
        for service in services
    }

    return PricingSnapshot(
        per_km_rate=money(config.per_km_rate),
        minimum_fare=money(config.minimum_fare),
        cancellation_fee=money(config.cancellation_fee),
        platform_fee_percent=money(config.platform_fee_percent),
        driver_commission_percent=(
            money(config.driver_commission_percent)
            if config.driver_commission_percent is not None else None
        ),
        full_day_rate=money(config.full_day_rate),
        rental_per_day_rate=money(config.rental_per_day_rate),
        date_wise_per_date_rate=money(config.date_wise_per_date_rate),
        tiers=tiers,
    )


def load_promo(
    code: str,
    user,
    service: str,
    booking_type: str,
    now=None,
    exclude_ride_id: Optional[int] = None,
) -> Tuple[Optional[PromoSnapshot], Optional[PromoContext]]:
    """
    Build promo snapshot and context for ``code``.

    ``exclude_ride_id`` leaves that ride's own usage out of the counts, so a
    promo consumed at booking still validates when the same ride is repriced.
    Returns (None, None) for unknown codes.

    Raises:
        ExternalServiceError: coupon storage could not be read.
    """
    if not code:
        return None, None

    try:
        coupon = Coupon.objects.filter(code=code.strip().upper()).first()
        if coupon is None:
            return None, None

        usages = CouponUsage.objects.filter(coupon=coupon, user=user)
        own_usage = 0
        if exclude_ride_id is not None:
            own_usage = usages.filter(ride_id=exclude_ride_id).count()
            usages = usages.exclude(ride_id=exclude_ride_id)
        user_usage_count = usages.count()
    except DatabaseError as exc:
        logger.exception("Failed to read coupon %s", code)
        raise ExternalServiceError("Promo validation is unavailable") from exc

    snapshot = PromoSnapshot(
        code=coupon.code,
        coupon_type=coupon.coupon_type,
        discount_value=money(coupon.discount_value),
        start_date=coupon.start_date,
        valid_until=coupon.valid_until,
        max_discount_amount=(
            money(coupon.max_discount_amount) if coupon.max_discount_amount is not None else None
        ),
        min_order_amount=money(coupon.min_order_amount),
        max_usage=coupon.max_usage,
        usage_count=max(0, coupon.usage_count - own_usage),
        max_usage_per_user=coupon.max_usage_per_user,
        is_active=coupon.is_active,
        applicable_services=list(coupon.applicable_services or []),
        applicable_ride_types=list(coupon.applicable_ride_types or []),
    )
    context = PromoContext(
        user_id=user.id,
        now=now or timezone.now(),
        service=service,
        booking_type=booking_type,
        user_usage_count=user_usage_count,
        user_completed_rides=getattr(user, "completed_rides", 0) or 0,
    )
    return snapshot, context


def record_coupon_usage(code: str, ride, discount, original_fare) -> Optional[CouponUsage]:
    """Write a usage row and bump the coupon's global counter."""
    coupon = Coupon.objects.filter(code=code.strip().upper()).first()
    if coupon is None:
        return None

    with transaction.atomic():
        usage = CouponUsage.objects.create(
            coupon=coupon,
            user=ride.rider,
            ride=ride,
            discount_amount=money(discount),
            original_fare=money(original_fare),
            final_fare=money(ride.fare),
        )
        Coupon.objects.filter(pk=coupon.pk).update(usage_count=F("usage_count") + 1)

    logger.info("Coupon %s used on ride %s (discount %s)", coupon.code, ride.id, discount)
    return usage
