# SiteTrack - Geofence Evaluation
# Great-circle distance and point-in-radius membership for work sites

import logging
import math
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional, Union


logger = logging.getLogger(__name__)

EARTH_RADIUS_METERS = 6371000

# Absorbs float round-off so a point built at exactly the radius stays inside
BOUNDARY_TOLERANCE = 1e-6  # meters

Coordinate = Union[float, int, Decimal, str, None]


@dataclass(frozen=True)
class GeofenceResult:
    """Outcome of a geofence check."""

    is_within: bool
    distance: float  # meters; inf when coordinates are unusable
    effective_radius: float  # radius + buffer actually applied


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Great-circle distance between two points, in meters.

    Planar approximations drift by several meters at the 50-2000m radii
    used for work sites, which is enough to flip boundary decisions.
    """
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_METERS * c


def parse_coordinate(value: Coordinate) -> Optional[float]:
    """
    Convert a stored or submitted coordinate to float.

    Accepts floats, ints, Decimals (database columns) and numeric strings
    (form/JSON input). Returns None for anything unusable, including NaN
    and infinities.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, str):
        value = value.strip()
        if value in ("", "null", "undefined"):
            return None

    try:
        parsed = float(value)
    except (TypeError, ValueError, InvalidOperation):
        return None

    if not math.isfinite(parsed):
        return None
    return parsed


def correct_swapped(lat: float, lon: float) -> tuple[float, float, bool]:
    """
    Undo an obvious latitude/longitude swap.

    A latitude outside [-90, 90] that is still a valid longitude, paired
    with a longitude that is a valid latitude, was almost certainly
    entered in the wrong order.
    """
    if (lat < -90 or lat > 90) and -180 <= lat <= 180 and -90 <= lon <= 90:
        return lon, lat, True
    return lat, lon, False


def _valid(lat: float, lon: float) -> bool:
    return -90 <= lat <= 90 and -180 <= lon <= 180


def evaluate(
    latitude: Coordinate,
    longitude: Coordinate,
    site_latitude: Coordinate,
    site_longitude: Coordinate,
    radius: float,
    buffer: float = 0,
) -> GeofenceResult:
    """
    Decide whether a point lies inside a site's geofence.

    The boundary is inclusive: a point exactly `radius + buffer` meters
    from the center is inside. Unparseable or out-of-range coordinates
    are never inside.
    """
    effective_radius = float(radius) + float(buffer)

    points = [parse_coordinate(v) for v in (latitude, longitude, site_latitude, site_longitude)]
    if any(p is None for p in points):
        logger.warning(
            "Unusable coordinates for geofence check: point=(%r, %r) site=(%r, %r)",
            latitude, longitude, site_latitude, site_longitude,
        )
        return GeofenceResult(False, math.inf, effective_radius)

    lat, lon, swapped = correct_swapped(points[0], points[1])
    site_lat, site_lon, site_swapped = correct_swapped(points[2], points[3])
    if swapped or site_swapped:
        logger.warning(
            "Corrected swapped coordinates (point=%s, site=%s)", swapped, site_swapped
        )

    if not (_valid(lat, lon) and _valid(site_lat, site_lon)):
        logger.warning(
            "Out-of-range coordinates for geofence check: point=(%s, %s) site=(%s, %s)",
            lat, lon, site_lat, site_lon,
        )
        return GeofenceResult(False, math.inf, effective_radius)

    distance = haversine_distance(lat, lon, site_lat, site_lon)
    is_within = distance <= effective_radius + BOUNDARY_TOLERANCE

    logger.debug(
        "Geofence: %.1fm from (%.6f, %.6f), radius %sm + buffer %sm -> %s",
        distance, site_lat, site_lon, radius, buffer, "inside" if is_within else "outside",
    )
    return GeofenceResult(is_within, distance, effective_radius)


def is_within_geofence(
    latitude: Coordinate,
    longitude: Coordinate,
    site_latitude: Coordinate,
    site_longitude: Coordinate,
    radius: float,
) -> bool:
    """On-site test used for the isOnSite / isWithinGeofence flags (no buffer)."""
    return evaluate(latitude, longitude, site_latitude, site_longitude, radius).is_within


def offset_point(latitude: float, longitude: float, distance: float, bearing: float = 0.0) -> tuple[float, float]:
    """
    Point `distance` meters from (latitude, longitude) along `bearing` degrees.

    Inverse of haversine_distance on the same sphere; used to build
    test fixtures and to draw geofence outlines.
    """
    phi1 = math.radians(latitude)
    lambda1 = math.radians(longitude)
    theta = math.radians(bearing)
    delta = distance / EARTH_RADIUS_METERS

    phi2 = math.asin(
        math.sin(phi1) * math.cos(delta) + math.cos(phi1) * math.sin(delta) * math.cos(theta)
    )
    lambda2 = lambda1 + math.atan2(
        math.sin(theta) * math.sin(delta) * math.cos(phi1),
        math.cos(delta) - math.sin(phi1) * math.sin(phi2),
    )
    return math.degrees(phi2), (math.degrees(lambda2) + 540) % 360 - 180
