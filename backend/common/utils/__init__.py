"""Common utility functions."""

from .geo import calculate_distance, distance_toward_pickup

__all__ = [
    "calculate_distance",
    "distance_toward_pickup",
]
