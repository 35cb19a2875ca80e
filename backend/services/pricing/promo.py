"""
Promo code eligibility and discount calculation.

Operates on ``PromoSnapshot``/``PromoContext`` values only; loading coupons
and recording their use happens in ``services.pricing.providers``.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Tuple

TWO_PLACES = Decimal("0.01")


def money(value) -> Decimal:
    """Round to paise, halves away from zero."""
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PromoSnapshot:
    code: str
    coupon_type: str  # fixed | percentage | new_user
    discount_value: Decimal
    start_date: datetime
    valid_until: datetime
    max_discount_amount: Optional[Decimal] = None
    min_order_amount: Decimal = Decimal("0")
    max_usage: Optional[int] = None
    usage_count: int = 0
    max_usage_per_user: int = 1
    is_active: bool = True
    applicable_services: List[str] = field(default_factory=list)
    applicable_ride_types: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class PromoContext:
    """Who is using the promo, on what, and when."""
    user_id: int
    now: datetime
    service: str = ""
    booking_type: str = "INSTANT"
    user_usage_count: int = 0
    user_completed_rides: int = 0


def check_promo_eligibility(promo: PromoSnapshot, context: PromoContext, amount) -> Tuple[bool, str]:
    """
    Returns (eligible, reason). ``reason`` is empty when eligible.
    """
    if not promo.is_active:
        return False, "Coupon is not active"
    if context.now < promo.start_date:
        return False, "Coupon is not valid yet"
    if context.now > promo.valid_until:
        return False, "Coupon has expired"
    if promo.max_usage is not None and promo.usage_count >= promo.max_usage:
        return False, "Coupon usage limit reached"
    if context.user_usage_count >= promo.max_usage_per_user:
        return False, "You have reached the usage limit for this coupon"
    if promo.coupon_type == "new_user" and context.user_completed_rides > 0:
        return False, "Coupon is only valid on your first ride"
    if promo.applicable_services and context.service not in promo.applicable_services:
        return False, "Coupon is not applicable to this service"
    if promo.applicable_ride_types and context.booking_type not in promo.applicable_ride_types:
        return False, "Coupon is not applicable to this booking type"
    if money(amount) < money(promo.min_order_amount):
        return False, f"Minimum order amount of {money(promo.min_order_amount)} required"
    return True, ""


def calculate_discount(promo: PromoSnapshot, amount) -> Decimal:
    """Discount for ``amount``, clamped to [0, amount]."""
    amount = money(amount)
    value = Decimal(str(promo.discount_value))

    if promo.coupon_type == "percentage":
        discount = amount * value / Decimal("100")
        if promo.max_discount_amount is not None:
            discount = min(discount, Decimal(str(promo.max_discount_amount)))
    else:
        # fixed and new_user are flat amounts
        discount = value

    return money(max(Decimal("0"), min(discount, amount)))
