"""
Core ride lifecycle operations.

Business logic for creating, assigning, progressing and cancelling rides,
kept out of the views layer so the API, Celery tasks and management
commands all share it.
"""

import logging
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.db.models import F, Q
from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime

from common.utils import haversine_km, is_valid_coordinate
from drivers.models import DriverProfile
from drivers.services import release_driver
from payments.services import debit_wallet
from realtime.notifications import (
    notify_driver_event,
    notify_rider_event,
    publish_earnings_event,
    publish_ride_status_event,
)
from rides.models import Ride, RideEarning
from services.concurrency import LockBackendUnavailable, RideLockManager, get_lock_manager
from services.exceptions import (
    ActiveRideExistsError,
    InvalidOtpError,
    InvalidRideStateError,
    PricingUnavailableError,
    RideLockHeldError,
    RideNotAvailableError,
    RideNotFoundError,
    RideServiceError,
    RideValidationError,
)
from services.matching.assignment import assign_driver
from services.matching.offer_dispatch import settle_offers_after_assignment, withdraw_open_offers
from services.pricing import (
    FareBreakdown,
    PricingSnapshot,
    apply_promo,
    estimate_duration_minutes,
    flat_fare,
    get_pricing_snapshot,
    load_promo,
    money,
    quote,
    recalculate,
    record_coupon_usage,
    resolve_actual_duration,
    resolve_service,
    split_earnings,
    with_promo,
)
from services.refunds import RefundOrchestrator
from .state_machine import ACTIVE_STATUSES, can_transition, transition

User = get_user_model()
logger = logging.getLogger(__name__)

MAX_CLIENT_DISTANCE_KM = Decimal("1000")
SHARE_TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9_-]{43}$")
SCHEDULED_BOOKING_TYPES = ("FULL_DAY", "RENTAL", "DATE_WISE")

# update_ride guardrails
UPDATABLE_FIELDS = {"rider", "passenger", "pickup_address", "dropoff_address"}
IMMUTABLE_FIELDS = {"start_otp", "stop_otp"}
RIDER_LOCKED_STATUSES = ("accepted", "arrived", "in_progress", "completed")


@dataclass
class RideResult:
    """Result object for ride operations."""
    success: bool
    ride: Optional[Ride] = None
    message: str = ""
    error_code: Optional[str] = None
    extra: Optional[Dict[str, Any]] = None


def generate_otp() -> str:
    """4 digit code, 1000-9999."""
    return str(secrets.randbelow(9000) + 1000)


def generate_share_token() -> str:
    return secrets.token_urlsafe(32)


def _lock_manager(lock_manager: Optional[RideLockManager]) -> RideLockManager:
    return lock_manager or get_lock_manager()


def _clear_ride_keys(ride_id, lock_manager: Optional[RideLockManager] = None) -> None:
    try:
        _lock_manager(lock_manager).clear_ride_keys(ride_id)
    except Exception:
        logger.exception("Failed to clear lock keys for ride %s", ride_id)


# ===================== Rider Operations =====================

def check_active_ride(rider) -> Optional[Ride]:
    """Check if rider has an active ride."""
    return Ride.objects.filter(rider=rider, status__in=ACTIVE_STATUSES).first()


def _location(data: Dict[str, Any], key: str) -> Tuple[Decimal, Decimal, str]:
    location = data.get(key) or {}
    lat, lon = location.get("latitude"), location.get("longitude")
    if lat is None or lon is None or not is_valid_coordinate(lat, lon):
        raise RideValidationError(f"A valid {key.replace('_', ' ')} is required")
    return Decimal(str(lat)), Decimal(str(lon)), location.get("address") or ""


def resolve_distance_km(pickup: Tuple, dropoff: Tuple, client_distance=None) -> Decimal:
    """
    Client supplied distance when it is plausible (0 < d <= 1000 km),
    otherwise the great-circle distance between the two points.
    """
    if client_distance is not None:
        distance = Decimal(str(client_distance))
        if Decimal("0") < distance <= MAX_CLIENT_DISTANCE_KM:
            return money(distance)
        logger.warning("Ignoring implausible client distance %s km", client_distance)
    return money(haversine_km(float(pickup[0]), float(pickup[1]), float(dropoff[0]), float(dropoff[1])))


def _parse_when(value, name: str) -> datetime:
    if isinstance(value, datetime):
        when = value
    else:
        try:
            when = parse_datetime(str(value or ""))
        except ValueError:
            when = None
        if when is None:
            raise RideValidationError(f"{name} must be an ISO 8601 datetime")
    if timezone.is_naive(when):
        when = timezone.make_aware(when)
    return when


def build_booking_schedule(
    booking_type: str,
    booking_meta: Dict[str, Any],
    now: Optional[datetime] = None,
) -> Tuple[Dict[str, Any], Optional[datetime], Optional[datetime]]:
    """
    Validate booking meta and derive the scheduled window.

        FULL_DAY  -> start_time and end_time
        RENTAL    -> start_time and days; end = start + days
        DATE_WISE -> dates (YYYY-MM-DD), optional start_time on the first date

    Returns:
        (cleaned meta, scheduled start, scheduled end)
    """
    if booking_type == "INSTANT":
        return {}, None, None

    now = now or timezone.now()
    meta = dict(booking_meta or {})

    if booking_type == "FULL_DAY":
        if not meta.get("start_time") or not meta.get("end_time"):
            raise RideValidationError("Full day bookings need start_time and end_time")
        start = _parse_when(meta["start_time"], "start_time")
        end = _parse_when(meta["end_time"], "end_time")
        if end <= start:
            raise RideValidationError("end_time must be after start_time")

    elif booking_type == "RENTAL":
        if not meta.get("start_time"):
            raise RideValidationError("Rental bookings need a start_time")
        try:
            days = int(meta.get("days") or 0)
        except (TypeError, ValueError):
            raise RideValidationError("days must be a whole number")
        if days < 1:
            raise RideValidationError("Rental bookings need at least one day")
        start = _parse_when(meta["start_time"], "start_time")
        end = start + timedelta(days=days)
        meta["days"] = days

    elif booking_type == "DATE_WISE":
        raw_dates = meta.get("dates") or []
        if not isinstance(raw_dates, list) or not raw_dates:
            raise RideValidationError("Date-wise bookings need at least one date")
        dates = []
        for raw in raw_dates:
            try:
                parsed = parse_date(str(raw))
            except ValueError:
                parsed = None
            if parsed is None:
                raise RideValidationError(f"Invalid date: {raw}")
            dates.append(parsed)
        dates = sorted(set(dates))
        meta["dates"] = [d.isoformat() for d in dates]

        if meta.get("start_time"):
            start = _parse_when(meta["start_time"], "start_time")
        else:
            start = timezone.make_aware(datetime.combine(dates[0], time.min))
        end = timezone.make_aware(datetime.combine(dates[-1], time.max))

    else:
        raise RideValidationError(f"Unknown booking type: {booking_type}")

    if start < now:
        raise RideValidationError("Scheduled start time is in the past")

    meta["start_time"] = start.isoformat()
    if booking_type != "DATE_WISE":
        meta["end_time"] = end.isoformat()
    return meta, start, end


def _price_request(
    rider,
    data: Dict[str, Any],
    service_key: str,
    distance_km: Decimal,
    estimated_duration: int,
    pricing: PricingSnapshot,
    now: datetime,
) -> Tuple[FareBreakdown, Dict[str, Any], Optional[datetime], Optional[datetime], str]:
    booking_type = data.get("booking_type") or "INSTANT"

    tier = pricing.tier(service_key)
    if tier is None:
        raise RideValidationError(f"Unknown service: {data.get('service')}", code="unknown_service")
    if not tier.enabled:
        raise RideValidationError(f"Service {tier.key} is not available", code="service_disabled")

    if booking_type == "INSTANT":
        meta, start, end = {}, None, None
        breakdown = quote(tier, distance_km, estimated_duration, pricing)
    else:
        meta, start, end = build_booking_schedule(booking_type, data.get("booking_meta") or {}, now)
        breakdown = flat_fare(booking_type, meta, pricing)

    promo_code = (data.get("promo_code") or "").strip().upper()
    if promo_code:
        promo, context = load_promo(promo_code, rider, service_key, booking_type, now=now)
        if promo is None:
            raise RideValidationError("Invalid promo code", code="invalid_promo")
        result = apply_promo(breakdown, promo, context)
        if result.reason:
            raise RideValidationError(result.reason, code="promo_not_applicable")
        breakdown = with_promo(breakdown, result)

    return breakdown, meta, start, end, promo_code


def _payment_fields(data: Dict[str, Any], fare: Decimal) -> Dict[str, Any]:
    method = data.get("payment_method") or "CASH"
    gateway_payment_id = (data.get("gateway_payment_id") or "").strip()
    fields = {"payment_method": method, "gateway_payment_id": gateway_payment_id}

    if method == "WALLET":
        fields["wallet_amount_used"] = fare
    elif method == "RAZORPAY":
        if gateway_payment_id:
            fields["gateway_amount_paid"] = fare
    elif method == "hybrid":
        wallet_part = money(data.get("wallet_amount_used") or 0)
        if not Decimal("0") < wallet_part < fare:
            raise RideValidationError("Hybrid payments need a wallet amount between 0 and the fare")
        if not gateway_payment_id:
            raise RideValidationError("Hybrid payments need a gateway payment id")
        fields["wallet_amount_used"] = wallet_part
        fields["gateway_amount_paid"] = money(fare - wallet_part)
    return fields


def _capture_payment(ride: Ride) -> None:
    """Debit the wallet share and mark the ride paid when it is fully covered."""
    if ride.payment_method == "CASH":
        return

    if ride.wallet_amount_used > 0:
        debit_wallet(
            ride.rider_id,
            ride.wallet_amount_used,
            ride=ride,
            description=f"Payment for ride #{ride.pk}",
        )

    paid = ride.payment_method == "WALLET" or bool(ride.gateway_payment_id)
    if paid:
        Ride.objects.filter(pk=ride.pk).update(payment_status="paid")
        ride.payment_status = "paid"


def create_ride(
    rider,
    data: Dict[str, Any],
    lock_manager: Optional[RideLockManager] = None,
    pricing: Optional[PricingSnapshot] = None,
    now: Optional[datetime] = None,
) -> RideResult:
    """
    Create a ride and queue driver discovery for it.

    Args:
        rider: User creating the ride
        data: Validated RideCreateSerializer data
        lock_manager: Lock manager for the per-rider creation lock
        pricing: Pricing snapshot; read from the database when omitted
        now: Clock override

    Returns:
        RideResult with the created ride

    Raises:
        RideLockHeldError: Another creation for this rider is in flight
        ActiveRideExistsError: Rider already has an active ride
        RideValidationError: Bad locations, service, booking meta, promo or balance
        PricingUnavailableError: No pricing configuration
    """
    lock_manager = _lock_manager(lock_manager)
    lock_key = lock_manager.creation_key(rider.id)
    acquired = False

    try:
        acquired = lock_manager.acquire_creation_lock(rider.id)
    except LockBackendUnavailable as exc:
        logger.warning(
            "Degraded mode: creation lock unavailable for rider %s, relying on database checks: %s",
            rider.id, exc,
        )
    else:
        if not acquired:
            raise RideLockHeldError("Another ride request is already being processed. Please wait.")

    try:
        lock_manager.cleanup_stale(rider.id)

        existing = check_active_ride(rider)
        if existing:
            raise ActiveRideExistsError(f"You already have an active ride (#{existing.id})")

        ride, original_fare = _create_ride_record(rider, data, pricing, now or timezone.now())
    finally:
        if acquired:
            lock_manager.release(lock_key)

    if ride.promo_code:
        try:
            record_coupon_usage(ride.promo_code, ride, ride.discount, original_fare)
        except Exception:
            logger.exception("Failed to record coupon usage for ride %s", ride.id)

    publish_ride_status_event(ride, previous_status="")
    logger.info("Ride %s created by rider %s (%s, %s)", ride.id, rider.id, ride.booking_type, ride.service)
    return RideResult(success=True, ride=ride, message="Ride created")


def _create_ride_record(rider, data: Dict[str, Any], pricing: Optional[PricingSnapshot], now: datetime):
    pickup = _location(data, "pickup_location")
    dropoff = _location(data, "dropoff_location")

    pricing = pricing or get_pricing_snapshot()
    service_key, vehicle_type = resolve_service(data.get("service"))

    distance_km = resolve_distance_km(pickup, dropoff, data.get("distance_in_km"))
    estimated_duration = data.get("estimated_duration")
    if estimated_duration is None:
        estimated_duration = estimate_duration_minutes(distance_km)

    breakdown, meta, start, end, promo_code = _price_request(
        rider, data, service_key, distance_km, estimated_duration, pricing, now,
    )
    fare = breakdown.final

    ride_for = data.get("ride_for") or "SELF"
    passenger = dict(data.get("passenger") or {})
    if ride_for == "OTHER" and not (passenger.get("name") and passenger.get("phone")):
        raise RideValidationError("Passenger name and phone are required when booking for someone else")

    share_fields = {}
    if ride_for == "OTHER":
        share_fields = {
            "share_token": generate_share_token(),
            "share_token_expires_at": now + timedelta(hours=getattr(settings, "SHARE_TOKEN_TTL_HOURS", 24)),
            "is_shared": True,
        }

    with transaction.atomic():
        try:
            with transaction.atomic():
                ride = Ride.objects.create(
                    rider=rider,
                    pickup_latitude=pickup[0],
                    pickup_longitude=pickup[1],
                    pickup_address=pickup[2],
                    dropoff_latitude=dropoff[0],
                    dropoff_longitude=dropoff[1],
                    dropoff_address=dropoff[2],
                    distance_in_km=distance_km,
                    service=service_key,
                    vehicle_type=vehicle_type,
                    fare=fare,
                    fare_breakdown=breakdown.as_dict(),
                    promo_code=promo_code,
                    discount=breakdown.discount,
                    booking_type=data.get("booking_type") or "INSTANT",
                    booking_meta=meta,
                    scheduled_start_time=start,
                    scheduled_end_time=end,
                    estimated_duration=estimated_duration,
                    start_otp=generate_otp(),
                    stop_otp=generate_otp(),
                    ride_for=ride_for,
                    passenger=passenger if ride_for == "OTHER" else {},
                    **share_fields,
                    **_payment_fields(data, fare),
                )
        except IntegrityError:
            # one_active_ride_per_rider caught a concurrent creation
            raise ActiveRideExistsError("You already have an active ride")

        _capture_payment(ride)

        ride_id = ride.id
        transaction.on_commit(lambda: _enqueue_discovery(ride_id))

    return ride, breakdown.after_minimum


def _enqueue_discovery(ride_id) -> None:
    from services.matching.booking_queue import enqueue_ride_discovery
    enqueue_ride_discovery(ride_id)


def update_ride(ride_id, changes: Dict[str, Any]) -> Ride:
    """
    Apply a partial update under the mutation guardrails.

        - OTPs can never be changed
        - rider is fixed once the ride is accepted
        - passenger details are fixed once a driver accepted

    Raises:
        RideValidationError: Unknown or immutable fields
        RideNotFoundError: Unknown ride
        InvalidRideStateError: Field is frozen in the ride's current status
    """
    keys = set(changes)
    if keys & IMMUTABLE_FIELDS:
        raise RideValidationError("OTPs cannot be changed", code="otp_immutable")
    unknown = keys - UPDATABLE_FIELDS
    if unknown:
        raise RideValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

    try:
        ride = Ride.objects.get(pk=ride_id)
    except Ride.DoesNotExist:
        raise RideNotFoundError(f"Ride {ride_id} not found")

    fields = {}
    if "rider" in changes:
        new_rider_id = getattr(changes["rider"], "id", changes["rider"])
        if str(new_rider_id) != str(ride.rider_id):
            if ride.status in RIDER_LOCKED_STATUSES:
                raise InvalidRideStateError(f"Rider cannot change once the ride is {ride.status}")
            fields["rider_id"] = new_rider_id

    if "passenger" in changes:
        if ride.status in RIDER_LOCKED_STATUSES or ride.accepted_at is not None:
            raise InvalidRideStateError("Passenger details cannot change after a driver accepted")
        fields["passenger"] = dict(changes["passenger"] or {})

    for name in ("pickup_address", "dropoff_address"):
        if name in changes:
            if ride.status != "requested":
                raise InvalidRideStateError(f"{name} can only change before a driver accepts")
            fields[name] = changes[name] or ""

    if not fields:
        return ride

    updated = Ride.objects.filter(pk=ride.pk, status=ride.status).update(updated_at=timezone.now(), **fields)
    if not updated:
        raise InvalidRideStateError("Ride changed while updating, please retry")
    return Ride.objects.select_related("rider", "driver").get(pk=ride.pk)


# ===================== Driver Operations =====================

def _get_ride_for_driver(ride_id, driver) -> Ride:
    try:
        ride = Ride.objects.select_related("rider").get(pk=ride_id)
    except Ride.DoesNotExist:
        raise RideNotFoundError(f"Ride {ride_id} not found")
    if ride.driver_id != driver.id:
        raise RideNotAvailableError("This ride is not assigned to you")
    return ride


def accept_ride(driver, ride_id, lock_manager: Optional[RideLockManager] = None) -> RideResult:
    """
    Driver accepts a requested ride.

    Raises:
        RideConflictError subclasses when another driver won or the ride moved on
    """
    ride = assign_driver(ride_id, driver, lock_manager=lock_manager)
    settle_offers_after_assignment(ride, driver.id)

    notify_rider_event("ride_accepted", ride, message="A driver accepted your ride")
    publish_ride_status_event(ride, previous_status="requested")
    return RideResult(success=True, ride=ride, message="Ride accepted")


def mark_driver_arrived(driver, ride_id) -> RideResult:
    ride = transition(
        ride_id,
        "arrive",
        conditions={"driver_id": driver.id},
        driver_arrived_at=timezone.now(),
    )
    notify_rider_event("driver_arrived", ride, message="Your driver has arrived")
    publish_ride_status_event(ride, previous_status="accepted")
    return RideResult(success=True, ride=ride, message="Driver arrived")


def start_ride(driver, ride_id, otp: str) -> RideResult:
    """
    Verify the start OTP and move the ride to in_progress.

    Raises:
        InvalidOtpError: OTP mismatch
        InvalidRideStateError: Ride is not accepted/arrived
    """
    ride = _get_ride_for_driver(ride_id, driver)
    if ride.status not in ("accepted", "arrived"):
        raise InvalidRideStateError(f"Cannot start a ride that is {ride.status}")
    if str(otp) != ride.start_otp:
        raise InvalidOtpError("Invalid start OTP")

    previous = ride.status
    ride = transition(
        ride_id,
        "start",
        conditions={"driver_id": driver.id},
        actual_start_time=timezone.now(),
    )
    DriverProfile.objects.filter(user_id=driver.id).update(is_busy=True)

    notify_rider_event("ride_started", ride, message="Your ride has started")
    publish_ride_status_event(ride, previous_status=previous)
    return RideResult(success=True, ride=ride, message="Ride started")


def _final_fare(ride: Ride, pricing: Optional[PricingSnapshot]) -> Tuple[FareBreakdown, Optional[PricingSnapshot]]:
    """Re-price from the persisted ride; keep the booked fare if pricing cannot be read."""
    stored = FareBreakdown.from_dict(ride.fare_breakdown) if ride.fare_breakdown else None
    try:
        pricing = pricing or get_pricing_snapshot()
        promo, context = (None, None)
        if ride.promo_code:
            promo, context = load_promo(
                ride.promo_code,
                ride.rider,
                ride.service,
                ride.booking_type,
                exclude_ride_id=ride.pk,
            )
        duration = resolve_actual_duration(ride.actual_duration, ride.actual_start_time, ride.actual_end_time)
        return recalculate(ride, duration, pricing, promo, context), pricing
    except RideServiceError as exc:
        logger.warning("Keeping booked fare for ride %s, recalculation failed: %s", ride.pk, exc)
        fare = money(ride.fare)
        if stored is None:
            stored = FareBreakdown(
                base=fare, distance=Decimal("0.00"), time=Decimal("0.00"),
                subtotal=fare, after_minimum=fare, final=fare,
            )
        return stored, None


def _record_earnings(ride: Ride, breakdown: FareBreakdown, pricing: Optional[PricingSnapshot]) -> Optional[RideEarning]:
    if pricing is None:
        try:
            pricing = get_pricing_snapshot()
        except PricingUnavailableError:
            logger.error("Earnings for ride %s not recorded: pricing unavailable", ride.pk)
            return None

    split = split_earnings(breakdown.final, pricing.platform_fee_percent, pricing.driver_commission_percent)
    earning, _ = RideEarning.objects.update_or_create(
        ride=ride,
        defaults={
            "driver_id": ride.driver_id,
            "gross_fare": breakdown.final,
            "platform_fee": split.platform_fee,
            "driver_earning": split.driver_earning,
            "adjusted": split.adjusted,
        },
    )
    publish_earnings_event(
        ride,
        breakdown.as_dict(),
        {"platform_fee": split.platform_fee, "driver_earning": split.driver_earning},
    )
    return earning


def complete_ride(
    driver,
    ride_id,
    otp: str,
    pricing: Optional[PricingSnapshot] = None,
    lock_manager: Optional[RideLockManager] = None,
) -> RideResult:
    """
    Verify the stop OTP and finish the ride.

    Order matters: end time and duration are stored first, the fare is
    recalculated from the stored row, the ride is marked completed, and only
    then is the driver freed and the earnings written.
    """
    ride = _get_ride_for_driver(ride_id, driver)
    if ride.status != "in_progress":
        raise InvalidRideStateError(f"Cannot complete a ride that is {ride.status}")
    if str(otp) != ride.stop_otp:
        raise InvalidOtpError("Invalid stop OTP")

    end = timezone.now()
    duration = 0
    if ride.actual_start_time:
        duration = max(0, round((end - ride.actual_start_time) / timedelta(minutes=1)))

    updated = Ride.objects.filter(pk=ride.pk, status="in_progress").update(
        actual_end_time=end,
        actual_duration=duration,
    )
    if not updated:
        raise InvalidRideStateError("Ride is no longer in progress")
    ride.refresh_from_db()

    breakdown, pricing = _final_fare(ride, pricing)

    completion = {
        "fare": breakdown.final,
        "fare_breakdown": breakdown.as_dict(),
        "discount": breakdown.discount,
        "completed_at": end,
        "is_shared": False,
    }
    if ride.share_token:
        completion["share_token_expires_at"] = end
    if ride.payment_method == "CASH":
        completion["payment_status"] = "paid"

    ride = transition(ride.pk, "complete", conditions={"driver_id": driver.id}, **completion)

    release_driver(driver.id)
    User.objects.filter(pk__in=[ride.rider_id, driver.id]).update(completed_rides=F("completed_rides") + 1)

    _record_earnings(ride, breakdown, pricing)
    _clear_ride_keys(ride.pk, lock_manager)

    notify_rider_event("ride_completed", ride, message="Your ride is complete", extra={"fare": float(ride.fare)})
    publish_ride_status_event(ride, previous_status="in_progress")
    logger.info("Ride %s completed by driver %s, fare %s", ride.pk, driver.id, ride.fare)
    return RideResult(success=True, ride=ride, message="Ride completed")


# ===================== Cancellation =====================

def cancel_ride(
    ride_id,
    cancelled_by: str,
    reason: str = "",
    actor=None,
    lock_manager: Optional[RideLockManager] = None,
    refund_orchestrator: Optional[RefundOrchestrator] = None,
) -> RideResult:
    """
    Cancel an active ride and refund what the rider paid.

    Args:
        ride_id: Ride primary key
        cancelled_by: rider, driver or system
        reason: Free text or a system reason code (NO_DRIVER_FOUND, ...)
        actor: Requesting user; must be the ride's rider/driver when given
        lock_manager: Lock manager whose keys get cleared
        refund_orchestrator: Refund implementation

    Returns:
        RideResult with ``extra["refund"]`` describing the refund

    Raises:
        RideNotFoundError: Unknown ride or not one of the actor's rides
        InvalidRideStateError: Ride already completed/cancelled
    """
    original = None
    for _ in range(3):
        try:
            original = Ride.objects.select_related("rider").get(pk=ride_id)
        except Ride.DoesNotExist:
            raise RideNotFoundError(f"Ride {ride_id} not found")

        if actor is not None:
            owner_id = original.rider_id if cancelled_by == "rider" else original.driver_id
            if owner_id != actor.id:
                raise RideNotFoundError(f"Ride {ride_id} not found")

        if not can_transition("cancel", original.status):
            raise InvalidRideStateError(f"Ride is already {original.status}")

        now = timezone.now()
        fields = {
            "cancelled_by": cancelled_by,
            "cancellation_reason": reason or "",
            "cancelled_at": now,
            "is_shared": False,
        }
        if original.share_token:
            fields["share_token_expires_at"] = now
        try:
            ride = transition(ride_id, "cancel", conditions={"status": original.status}, **fields)
            break
        except InvalidRideStateError:
            # Status moved between read and update; re-read and try again
            continue
    else:
        raise InvalidRideStateError("Ride status keeps changing, please retry")

    original_status = original.status
    logger.info("Ride %s cancelled by %s from %s (%s)", ride.pk, cancelled_by, original_status, reason)

    if original.driver_id:
        release_driver(original.driver_id)
    withdraw_open_offers(ride)
    _clear_ride_keys(ride.pk, lock_manager)

    refund = None
    try:
        refund = (refund_orchestrator or RefundOrchestrator()).refund(
            original, original_status, cancelled_by, reason,
        )
    except Exception:
        logger.exception("Refund failed for cancelled ride %s", ride.pk)
    ride.refresh_from_db()

    if cancelled_by != "rider":
        notify_rider_event("ride_cancelled", ride, message="Your ride was cancelled", extra={"reason": reason})
    if original.driver_id and cancelled_by != "driver":
        notify_driver_event("ride_cancelled", ride, original.driver_id, message="Ride was cancelled")
    publish_ride_status_event(ride, previous_status=original_status)

    return RideResult(
        success=True,
        ride=ride,
        message="Ride cancelled",
        extra={"refund": refund.as_dict() if refund else None},
    )


# ===================== Scheduled Bookings =====================

def start_scheduled_ride(ride_id, now: Optional[datetime] = None) -> RideResult:
    """Move an accepted scheduled booking to in_progress at its start time."""
    now = now or timezone.now()
    ride = transition(
        ride_id,
        "start",
        conditions={"booking_type__in": SCHEDULED_BOOKING_TYPES, "driver__isnull": False},
        from_statuses=("accepted",),
        actual_start_time=now,
    )
    DriverProfile.objects.filter(user_id=ride.driver_id).update(is_busy=True)

    notify_driver_event("booking_started", ride, ride.driver_id, message="Your booking has started")
    notify_rider_event("booking_started", ride, message="Your booking has started")
    publish_ride_status_event(ride, previous_status="accepted")
    return RideResult(success=True, ride=ride, message="Booking started")


# ===================== Queries =====================

def get_current_rider_ride(rider) -> Optional[Ride]:
    return (
        Ride.objects.select_related("driver", "driver__driver_profile")
        .filter(rider=rider, status__in=ACTIVE_STATUSES)
        .first()
    )


def get_current_driver_ride(driver) -> Optional[Ride]:
    """Ride the driver is on right now; scheduled bookings count only once started."""
    return (
        Ride.objects.select_related("rider")
        .filter(driver=driver)
        .filter(
            Q(status="in_progress")
            | Q(status__in=("accepted", "arrived"), booking_type="INSTANT")
        )
        .first()
    )


def get_upcoming_bookings(driver, now: Optional[datetime] = None) -> List[Ride]:
    now = now or timezone.now()
    return list(
        Ride.objects.select_related("rider")
        .filter(
            driver=driver,
            status="accepted",
            booking_type__in=SCHEDULED_BOOKING_TYPES,
            scheduled_start_time__gte=now,
        )
        .order_by("scheduled_start_time")
    )


def get_shared_ride(token: str, now: Optional[datetime] = None) -> Ride:
    """
    Resolve a share link.

    Raises:
        RideValidationError: Malformed token
        RideNotFoundError: No ride with this token
        InvalidRideStateError: Link expired or sharing ended
    """
    if not token or not SHARE_TOKEN_PATTERN.match(token):
        raise RideValidationError("Invalid share token")
    try:
        ride = Ride.objects.select_related("driver", "driver__driver_profile").get(share_token=token)
    except Ride.DoesNotExist:
        raise RideNotFoundError("Shared ride not found")

    now = now or timezone.now()
    if not ride.is_shared or (ride.share_token_expires_at and ride.share_token_expires_at <= now):
        raise InvalidRideStateError("Share link has expired")
    return ride


def quote_fares(data: Dict[str, Any], pricing: Optional[PricingSnapshot] = None) -> Dict[str, Any]:
    """Instant fare for every enabled vehicle service."""
    pickup = _location(data, "pickup_location")
    dropoff = _location(data, "dropoff_location")
    pricing = pricing or get_pricing_snapshot()

    distance_km = resolve_distance_km(pickup, dropoff, data.get("distance_in_km"))
    duration = data.get("estimated_duration")
    if duration is None:
        duration = estimate_duration_minutes(distance_km)

    quotes = []
    for key in sorted(pricing.tiers):
        tier = pricing.tiers[key]
        if not tier.enabled:
            continue
        breakdown = quote(tier, distance_km, duration, pricing)
        quotes.append({
            "service": tier.key,
            "name": tier.name,
            "fare": float(breakdown.final),
            "fare_breakdown": breakdown.as_dict(),
        })

    return {
        "distance_in_km": float(distance_km),
        "estimated_duration": duration,
        "quotes": quotes,
    }
