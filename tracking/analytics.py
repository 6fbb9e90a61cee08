"""
Trip statistics over a vehicle's GPS track.

Everything here is pure: no database access, no settings, no mutation of the
samples passed in.
"""
from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Dict, Iterable, Tuple

EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class GpsSample:
    latitude: float
    longitude: float
    speed_kmh: float
    timestamp: datetime

    @property
    def position(self) -> Tuple[float, float]:
        return self.latitude, self.longitude


@dataclass(frozen=True)
class TripStatistics:
    record_count: int = 0
    average_speed_kmh: float = 0.0
    max_speed_kmh: float = 0.0
    total_distance_km: float = 0.0

    def as_dict(self) -> Dict[str, float]:
        return asdict(self)


def haversine_km(start: Tuple[float, float], end: Tuple[float, float]) -> float:
    """
    Compute the great-circle distance between two coordinates in kilometres.
    """
    lat1, lng1 = map(math.radians, start)
    lat2, lng2 = map(math.radians, end)
    d_lat = lat2 - lat1
    d_lng = lng2 - lng1
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def compute_statistics(samples: Iterable[GpsSample]) -> TripStatistics:
    """
    Summarise a track: sample count, average and top speed, path length.

    Samples may arrive in any order (history queries hand them over newest
    first); distance is always accumulated between chronological neighbours.
    """
    ordered = sorted(samples, key=lambda sample: sample.timestamp)
    if not ordered:
        return TripStatistics()

    speeds = [sample.speed_kmh for sample in ordered]
    max_speed = max(speeds)
    # A float mean of equal values can land one ulp above them.
    average_speed = min(math.fsum(speeds) / len(speeds), max_speed)

    distance = math.fsum(
        haversine_km(previous.position, current.position)
        for previous, current in zip(ordered[:-1], ordered[1:])
    )

    return TripStatistics(
        record_count=len(ordered),
        average_speed_kmh=average_speed,
        max_speed_kmh=max_speed,
        total_distance_km=distance,
    )
