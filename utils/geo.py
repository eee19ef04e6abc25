"""Geodesic helpers for location tracking."""
import math

EARTH_RADIUS_M = 6371000.0


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """
    Great-circle distance between two coordinates in meters (Haversine formula).

    Args:
        lat1, lng1: First point in degrees
        lat2, lng2: Second point in degrees

    Returns:
        float: Distance in meters
    """
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c
