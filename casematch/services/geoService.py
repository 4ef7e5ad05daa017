"""
Geo Service
===========

Geographic utility functions for distance calculations and radius/band
filtering. Used by the location search job to notify nearby providers
first and widen the ring once the expansion gate opens.

Uses the haversine formula for great-circle distance between two points
on Earth's surface, with every coordinate converted to radians first.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Protocol, Sequence

# Earth's mean radius in kilometres
EARTH_RADIUS_KM: float = 6371.0


def haversine_distance(
    lat1: float,
    lon1: float,
    lat2: float,
    lon2: float,
) -> float:
    """Calculate the great-circle distance between two points using the
    haversine formula.

    Args:
        lat1: Latitude of point 1 in decimal degrees.
        lon1: Longitude of point 1 in decimal degrees.
        lat2: Latitude of point 2 in decimal degrees.
        lon2: Longitude of point 2 in decimal degrees.

    Returns:
        Distance in kilometres.
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lon = math.radians(lon2 - lon1)

    a = (
        math.sin(delta_lat / 2) ** 2
        + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


class HasLocation(Protocol):
    """Protocol for objects that have latitude and longitude attributes."""

    latitude: Decimal | None
    longitude: Decimal | None


@dataclass
class ProviderDistance:
    """A provider paired with their calculated distance from a reference point."""

    provider: Any
    distance_km: float


def has_coordinates(obj: HasLocation) -> bool:
    return obj.latitude is not None and obj.longitude is not None


def filter_by_radius(
    providers: Sequence[Any],
    center_lat: float,
    center_lon: float,
    radius_km: float,
    *,
    min_distance_km: float | None = None,
) -> list[ProviderDistance]:
    """Filter providers to those within ``radius_km`` of a center point.

    When ``min_distance_km`` is given, only the ring
    ``min_distance_km < distance <= radius_km`` is kept. The expanded sweep
    uses this to reach the 5-10 km band without touching the inner disc.

    Args:
        providers: Sequence of objects with ``latitude`` and ``longitude``.
        center_lat: Latitude of the case location.
        center_lon: Longitude of the case location.
        radius_km: Outer radius (inclusive) in km.
        min_distance_km: Optional inner radius (exclusive) in km.

    Returns:
        List of ProviderDistance objects sorted by distance (closest first).
    """
    results: list[ProviderDistance] = []

    for provider in providers:
        # Skip providers without location data
        if not has_coordinates(provider):
            continue

        distance = haversine_distance(
            center_lat,
            center_lon,
            float(provider.latitude),
            float(provider.longitude),
        )

        if distance > radius_km:
            continue
        if min_distance_km is not None and distance <= min_distance_km:
            continue
        results.append(ProviderDistance(provider=provider, distance_km=distance))

    results.sort(key=lambda pd: pd.distance_km)

    return results
