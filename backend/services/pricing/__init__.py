"""
Fare engine and its providers.

    - fare_engine: quote, promo application, recalculation, earnings split
    - promo: coupon eligibility and discount maths
    - providers: pricing settings / coupon snapshots from the database
"""

from .fare_engine import (
    FareBreakdown,
    PricingSnapshot,
    VehicleTier,
    PromoResult,
    EarningsSplit,
    quote,
    apply_promo,
    with_promo,
    flat_fare,
    recalculate,
    split_earnings,
    estimate_duration_minutes,
    resolve_actual_duration,
)
from .promo import PromoSnapshot, PromoContext, money
from .providers import (
    get_pricing_snapshot,
    load_promo,
    record_coupon_usage,
    resolve_service,
)

__all__ = [
    "FareBreakdown",
    "PricingSnapshot",
    "VehicleTier",
    "PromoResult",
    "EarningsSplit",
    "PromoSnapshot",
    "PromoContext",
    "money",
    "quote",
    "apply_promo",
    "with_promo",
    "flat_fare",
    "recalculate",
    "split_earnings",
    "estimate_duration_minutes",
    "resolve_actual_duration",
    "get_pricing_snapshot",
    "load_promo",
    "record_coupon_usage",
    "resolve_service",
]
