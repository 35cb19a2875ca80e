"""Common utility functions."""

from .geo import bounding_box, haversine_km, is_valid_coordinate

__all__ = [
    "bounding_box",
    "haversine_km",
    "is_valid_coordinate",
]
