"""
Fleet tracking operations shared by the HTML views and the JSON API.

Every entry point takes the acting user explicitly and only ever touches
rows that belong to that user.
"""
from __future__ import annotations

import logging
import random
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional, Tuple

from django.conf import settings
from django.db import transaction
from django.db.models import Q
from django.utils import timezone
from shapely.geometry import LineString, Point, mapping

from .analytics import TripStatistics, compute_statistics
from .models import Alert, Geofence, Profile, TrackingRecord, Vehicle

logger = logging.getLogger(__name__)

DEFAULT_BASE_LOCATION: Tuple[float, float] = (-23.5505, -46.6333)  # São Paulo, Brazil


def _config(key, default):
    return getattr(settings, "TRACKING_CONFIG", {}).get(key, default)


def get_profile(user) -> Profile:
    profile, _ = Profile.objects.get_or_create(user=user)
    return profile


def update_profile(user, full_name: str) -> Profile:
    profile = get_profile(user)
    profile.full_name = full_name.strip()
    profile.save(update_fields=["full_name", "updated_at"])
    return profile


def user_vehicles(user, search: str = "", status: Optional[str] = None):
    vehicles = Vehicle.objects.filter(user=user)
    search = (search or "").strip()
    if search:
        vehicles = vehicles.filter(
            Q(license_plate__icontains=search)
            | Q(brand__icontains=search)
            | Q(model__icontains=search)
        )
    if status:
        vehicles = vehicles.filter(status=status)
    return vehicles


def get_vehicle(user, pk) -> Vehicle:
    return Vehicle.objects.get(pk=pk, user=user)


def dashboard_summary(user) -> Dict[str, int]:
    vehicles = Vehicle.objects.filter(user=user)
    return {
        "total_vehicles": vehicles.count(),
        "active_vehicles": vehicles.filter(status="active").count(),
        "maintenance_vehicles": vehicles.filter(status="maintenance").count(),
        "unread_alerts": Alert.objects.filter(user=user, is_read=False).count(),
    }


def recent_records(vehicle: Vehicle, limit: Optional[int] = None) -> List[TrackingRecord]:
    if limit is None:
        limit = _config("live_feed_limit", 50)
    return list(vehicle.tracking_records.all()[:limit])


def history_window(
    start_date: Optional[date] = None, end_date: Optional[date] = None
) -> Tuple[datetime, datetime]:
    """
    Expand a pair of calendar days into an inclusive datetime window.

    Missing bounds default to the last ``history_default_days`` days ending
    today, in the current time zone.
    """
    today = timezone.localdate()
    if end_date is None:
        end_date = today
    if start_date is None:
        start_date = end_date - timedelta(days=_config("history_default_days", 7))
    if start_date > end_date:
        raise ValueError("History start date must not be after the end date.")

    tz = timezone.get_current_timezone()
    start = timezone.make_aware(datetime.combine(start_date, time.min), tz)
    end = timezone.make_aware(datetime.combine(end_date, time.max), tz)
    return start, end


def vehicle_history(
    user,
    vehicle_pk,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> Tuple[List[TrackingRecord], TripStatistics, Tuple[datetime, datetime]]:
    """Records newest first, their statistics and the window that was queried."""
    vehicle = get_vehicle(user, vehicle_pk)
    start, end = history_window(start_date, end_date)
    records = list(
        vehicle.tracking_records.filter(timestamp__gte=start, timestamp__lte=end).order_by("-timestamp")
    )
    statistics = compute_statistics(record.as_sample() for record in records)
    return records, statistics, (start, end)


def track_geometry(records) -> Optional[Dict]:
    """GeoJSON geometry of a track, drawn in chronological order."""
    ordered = sorted(records, key=lambda record: record.timestamp)
    coords = [(record.longitude, record.latitude) for record in ordered]
    if not coords:
        return None
    if len(coords) == 1:
        return mapping(Point(coords[0]))
    return mapping(LineString(coords))


def _speed_alert(vehicle: Vehicle, speed: float) -> Optional[Alert]:
    limit = _config("speed_limit_kmh", 80.0)
    if speed <= limit:
        return None
    severity = "critical" if speed >= limit * 1.25 else "warning"
    return Alert(
        user=vehicle.user,
        vehicle=vehicle,
        type="speed",
        severity=severity,
        title=f"{vehicle.license_plate} exceeded {limit:.0f} km/h",
        message=f"Recorded speed {speed:.1f} km/h.",
    )


def _geofence_alerts(vehicle: Vehicle, previous, current) -> List[Alert]:
    if previous is None:
        return []

    alerts: List[Alert] = []
    for fence in Geofence.objects.filter(user=vehicle.user, is_active=True):
        was_inside = fence.contains(*previous)
        is_inside = fence.contains(*current)
        if was_inside == is_inside:
            continue
        verb = "entered" if is_inside else "left"
        alerts.append(
            Alert(
                user=vehicle.user,
                vehicle=vehicle,
                type="geofence",
                severity="info" if is_inside else "warning",
                title=f"{vehicle.license_plate} {verb} {fence.name}",
                message=f"Position ({current[0]:.5f}, {current[1]:.5f}).",
            )
        )
    return alerts


@transaction.atomic
def record_ping(
    vehicle: Vehicle,
    latitude: float,
    longitude: float,
    speed: float,
    heading: Optional[float] = None,
    altitude: Optional[float] = None,
    accuracy: Optional[float] = None,
    timestamp: Optional[datetime] = None,
) -> TrackingRecord:
    """
    Store one GPS reading, move the vehicle's last known position and raise
    any speed or geofence alerts the reading triggers.
    """
    timestamp = timestamp or timezone.now()
    previous = vehicle.last_position

    record = TrackingRecord.objects.create(
        vehicle=vehicle,
        latitude=latitude,
        longitude=longitude,
        speed=speed,
        heading=heading,
        altitude=altitude,
        accuracy=accuracy,
        timestamp=timestamp,
    )

    vehicle.last_location_lat = latitude
    vehicle.last_location_lng = longitude
    vehicle.last_seen = timestamp
    vehicle.save(update_fields=["last_location_lat", "last_location_lng", "last_seen", "updated_at"])

    alerts = _geofence_alerts(vehicle, previous, (latitude, longitude))
    speed_alert = _speed_alert(vehicle, speed)
    if speed_alert is not None:
        alerts.append(speed_alert)
    for alert in alerts:
        alert.triggered_at = timestamp
        alert.save()
        logger.info("Raised %s alert for %s: %s", alert.type, vehicle.license_plate, alert.title)

    logger.info(
        "Recorded ping for %s at (%.5f, %.5f), %.1f km/h",
        vehicle.license_plate,
        latitude,
        longitude,
        speed,
    )
    return record


def simulate_ping(vehicle: Vehicle, rng: Optional[random.Random] = None) -> TrackingRecord:
    """
    Fabricate a plausible ping near the configured base location.

    Pass a seeded ``random.Random`` to get the same ping every time.
    """
    if vehicle.status != "active":
        raise ValueError(f"Vehicle {vehicle.license_plate} is not active.")

    rng = rng or random.Random()
    base_lat, base_lng = _config("simulation_base", DEFAULT_BASE_LOCATION)
    spread = _config("simulation_spread_deg", 0.1)

    logger.info("Simulating ping for %s", vehicle.license_plate)
    return record_ping(
        vehicle,
        latitude=base_lat + (rng.random() - 0.5) * spread,
        longitude=base_lng + (rng.random() - 0.5) * spread,
        speed=rng.random() * 80 + 20,
        heading=rng.random() * 360,
        altitude=rng.random() * 100 + 700,
        accuracy=rng.random() * 10 + 5,
    )


def user_alerts(user, unread_only: bool = False):
    alerts = Alert.objects.filter(user=user).select_related("vehicle")
    if unread_only:
        alerts = alerts.filter(is_read=False)
    return alerts


def mark_alert_read(user, pk) -> Alert:
    alert = Alert.objects.get(pk=pk, user=user)
    if not alert.is_read:
        alert.is_read = True
        alert.save(update_fields=["is_read"])
    return alert


def mark_all_alerts_read(user) -> int:
    return Alert.objects.filter(user=user, is_read=False).update(is_read=True)


def delete_alert(user, pk) -> None:
    Alert.objects.get(pk=pk, user=user).delete()


def user_geofences(user):
    return Geofence.objects.filter(user=user)
