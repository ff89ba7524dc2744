import math
from typing import Optional

from civic_reporter.core.errors import ValidationError
from civic_reporter.crud.report import EARTH_RADIUS_M


def validate_coordinates(lat: Optional[float], lng: Optional[float]) -> None:
    if lat is None or lng is None:
        raise ValidationError("Location coordinates are required")
    if not (math.isfinite(lat) and -90 <= lat <= 90):
        raise ValidationError("Latitude must be between -90 and 90")
    if not (math.isfinite(lng) and -180 <= lng <= 180):
        raise ValidationError("Longitude must be between -180 and 180")


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in meters."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlmb = math.radians(lng2 - lng1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(a)))
