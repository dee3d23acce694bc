"""
Geographic utility functions.

This module provides the geospatial calculations used by the cancellation
policy and the ride handlers. Every distance goes through the same haversine
formula so that accept-to-pickup and current-to-pickup legs are comparable.
"""

from math import radians, cos, sin, atan2, sqrt

EARTH_RADIUS_KM = 6371.0


def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate distance between two points in meters using Haversine formula.
    
    Args:
        lat1: Latitude of first point
        lon1: Longitude of first point
        lat2: Latitude of second point
        lon2: Longitude of second point
    
    Returns:
        Distance in meters
    """
    lat1, lon1, lat2, lon2 = map(radians, [float(lat1), float(lon1), float(lat2), float(lon2)])
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    c = 2 * atan2(sqrt(a), sqrt(1 - a))
    return EARTH_RADIUS_KM * c * 1000


def distance_toward_pickup(
    accept_lat: float,
    accept_lng: float,
    current_lat: float,
    current_lng: float,
    pickup_lat: float,
    pickup_lng: float,
) -> float:
    """
    How much closer (in meters) the driver got to the pickup since accepting.

    Moving away from the pickup never counts as progress, so the result is
    floored at zero.
    """
    from_accept = calculate_distance(accept_lat, accept_lng, pickup_lat, pickup_lng)
    from_current = calculate_distance(current_lat, current_lng, pickup_lat, pickup_lng)
    return max(0.0, from_accept - from_current)
