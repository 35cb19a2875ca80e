"""Shared fixtures for the service tests."""

from datetime import timedelta
from decimal import Decimal
from itertools import count

import redis
from django.contrib.auth import get_user_model
from django.utils import timezone

from drivers.models import DriverProfile
from pricing.models import PricingSettings, VehicleService
from rides.models import Ride

User = get_user_model()

PICKUP = (28.6139, 77.2090)
DROPOFF = (28.6129, 77.2295)

_plates = count(1000)


class FakeRedis:
	"""In-process stand-in for the few redis commands the lock manager uses."""

	def __init__(self):
		self.store = {}
		self.ttls = {}

	def set(self, key, value, nx=False, ex=None):
		if nx and key in self.store:
			return None
		self.store[key] = value
		self.ttls[key] = ex
		return True

	def delete(self, *keys):
		removed = 0
		for key in keys:
			if self.store.pop(key, None) is not None:
				removed += 1
			self.ttls.pop(key, None)
		return removed

	def exists(self, key):
		return int(key in self.store)


class BrokenRedis:
	def set(self, *args, **kwargs):
		raise redis.ConnectionError("connection refused")

	def delete(self, *args, **kwargs):
		raise redis.ConnectionError("connection refused")

	def exists(self, *args, **kwargs):
		raise redis.ConnectionError("connection refused")


def make_rider(username="rider", wallet=Decimal("0")):
	return User.objects.create_user(
		username=username,
		password="pass1234",
		role="rider",
		phone_number="9000000000",
		wallet_balance=wallet,
	)


def make_driver(username="driver", lat=PICKUP[0], lon=PICKUP[1], vehicle_type="sedan", **profile_fields):
	user = User.objects.create_user(
		username=username,
		password="driver1234",
		role="driver",
		phone_number="9000000001",
	)
	defaults = {
		"vehicle_number": f"DL-{next(_plates)}",
		"vehicle_type": vehicle_type,
		"is_active": True,
		"is_online": True,
		"is_busy": False,
		"session_id": f"specific.{username}",
		"current_latitude": lat,
		"current_longitude": lon,
	}
	defaults.update(profile_fields)
	DriverProfile.objects.create(user=user, **defaults)
	return user


def make_pricing():
	PricingSettings.objects.create(
		per_km_rate=Decimal("12"),
		minimum_fare=Decimal("100"),
		cancellation_fee=Decimal("50"),
		platform_fee_percent=Decimal("10"),
		driver_commission_percent=Decimal("90"),
	)
	VehicleService.objects.create(key="cerca_small", name="Cerca Small", base_price=Decimal("50"), per_minute_rate=Decimal("1.50"), seats=4)
	VehicleService.objects.create(key="cerca_medium", name="Cerca Medium", base_price=Decimal("80"), per_minute_rate=Decimal("2"), seats=4)
	VehicleService.objects.create(key="cerca_large", name="Cerca Large", base_price=Decimal("120"), per_minute_rate=Decimal("3"), seats=6)


def ride_request(**overrides):
	data = {
		"pickup_location": {"latitude": PICKUP[0], "longitude": PICKUP[1], "address": "Connaught Place"},
		"dropoff_location": {"latitude": DROPOFF[0], "longitude": DROPOFF[1], "address": "India Gate"},
		"service": "cerca_medium",
		"distance_in_km": 10,
		"estimated_duration": 20,
	}
	data.update(overrides)
	return data


def make_ride(rider, **fields):
	"""Stored ride without going through create_ride."""
	values = {
		"pickup_latitude": PICKUP[0],
		"pickup_longitude": PICKUP[1],
		"dropoff_latitude": DROPOFF[0],
		"dropoff_longitude": DROPOFF[1],
		"distance_in_km": Decimal("10"),
		"service": "cerca_medium",
		"fare": Decimal("300"),
		"start_otp": "1234",
		"stop_otp": "5678",
		"estimated_duration": 20,
	}
	values.update(fields)
	return Ride.objects.create(rider=rider, **values)


def in_minutes(minutes):
	return timezone.now() + timedelta(minutes=minutes)
