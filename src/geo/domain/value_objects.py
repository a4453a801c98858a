from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Tuple

from geopy.distance import great_circle

from src.shared.exceptions import InvalidCoordinate

# mean Earth radius used for every distance in the system
EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True, slots=True)
class Coordinate:
    """WGS84 point. Construction fails with InvalidCoordinate outside the valid ranges."""
    lat: float
    lng: float

    def __post_init__(self) -> None:
        try:
            lat, lng = float(self.lat), float(self.lng)
        except (TypeError, ValueError):
            raise InvalidCoordinate(details={"lat": self.lat, "lng": self.lng}) from None
        if not (math.isfinite(lat) and math.isfinite(lng)) or not (-90.0 <= lat <= 90.0) or not (-180.0 <= lng <= 180.0):
            raise InvalidCoordinate(details={"lat": self.lat, "lng": self.lng})
        object.__setattr__(self, "lat", lat)
        object.__setattr__(self, "lng", lng)

    @classmethod
    def maybe(cls, lat: Optional[float], lng: Optional[float]) -> Optional["Coordinate"]:
        """None when either part is missing; stored records without a location are not at (0, 0)."""
        if lat is None or lng is None:
            return None
        return cls(lat, lng)

    def as_tuple(self) -> Tuple[float, float]:
        return (self.lat, self.lng)


def distance_km(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance on a sphere of EARTH_RADIUS_KM."""
    return great_circle(a.as_tuple(), b.as_tuple(), radius=EARTH_RADIUS_KM).km


Bounds = Tuple[float, float, Optional[float], Optional[float]]


def bounding_box(center: Coordinate, radius_km: float) -> Bounds:
    """
    Coarse (min_lat, max_lat, min_lng, max_lng) enclosing the circle.
    Longitude bounds are None when the box touches a pole or wraps the antimeridian.
    """
    km_per_degree = EARTH_RADIUS_KM * math.pi / 180.0
    dlat = radius_km / km_per_degree
    min_lat, max_lat = center.lat - dlat, center.lat + dlat
    if min_lat <= -90.0 or max_lat >= 90.0:
        return max(min_lat, -90.0), min(max_lat, 90.0), None, None
    # widest point of the circle is at the box edge nearest the pole
    cos_lat = math.cos(math.radians(max(abs(min_lat), abs(max_lat))))
    dlng = radius_km / (km_per_degree * cos_lat)
    min_lng, max_lng = center.lng - dlng, center.lng + dlng
    if min_lng < -180.0 or max_lng > 180.0:
        return min_lat, max_lat, None, None
    return min_lat, max_lat, min_lng, max_lng
