import json
import random
from datetime import datetime, timedelta, timezone as dt_timezone

from django.contrib.auth import get_user_model
from django.test import Client, SimpleTestCase, TestCase, override_settings
from django.urls import reverse
from django.utils import timezone

from . import services
from .analytics import GpsSample, TripStatistics, compute_statistics, haversine_km
from .models import Alert, Geofence, TrackingRecord, Vehicle

TEST_TRACKING_CONFIG = {
    "simulation_base": (-23.5505, -46.6333),
    "simulation_spread_deg": 0.1,
    "speed_limit_kmh": 80.0,
    "history_default_days": 7,
    "live_feed_limit": 50,
}

T0 = datetime(2025, 10, 3, 12, 0, tzinfo=dt_timezone.utc)


def sample(lat, lng, speed, minutes=0):
    return GpsSample(latitude=lat, longitude=lng, speed_kmh=speed, timestamp=T0 + timedelta(minutes=minutes))


class TrackAnalyticsTests(SimpleTestCase):
    def test_empty_track_is_all_zero(self):
        self.assertEqual(compute_statistics([]), TripStatistics(0, 0.0, 0.0, 0.0))

    def test_single_sample_has_no_distance(self):
        stats = compute_statistics([sample(10.0, 20.0, 42.5)])

        self.assertEqual(stats.record_count, 1)
        self.assertEqual(stats.average_speed_kmh, 42.5)
        self.assertEqual(stats.max_speed_kmh, 42.5)
        self.assertEqual(stats.total_distance_km, 0.0)

    def test_identical_coordinates_add_no_distance(self):
        stats = compute_statistics(
            [
                sample(-23.5505, -46.6333, 50, minutes=1),
                sample(-23.5505, -46.6333, 60, minutes=0),
            ]
        )

        self.assertEqual(stats.record_count, 2)
        self.assertEqual(stats.total_distance_km, 0.0)
        self.assertAlmostEqual(stats.average_speed_kmh, 55.0)
        self.assertEqual(stats.max_speed_kmh, 60)

    def test_one_degree_of_longitude_at_equator(self):
        stats = compute_statistics([sample(0, 0, 10), sample(0, 1, 10, minutes=5)])

        self.assertAlmostEqual(stats.total_distance_km, 111.19, delta=0.1)

    def test_speed_aggregates(self):
        stats = compute_statistics(
            [sample(0, 0, 10), sample(0, 0.01, 20, minutes=1), sample(0, 0.02, 30, minutes=2)]
        )

        self.assertAlmostEqual(stats.average_speed_kmh, 20.0)
        self.assertEqual(stats.max_speed_kmh, 30)
        self.assertGreaterEqual(stats.max_speed_kmh, stats.average_speed_kmh)

    def test_distance_follows_time_not_list_order(self):
        # A -> B -> C in time; stored newest first.
        a = sample(0, 0, 10, minutes=0)
        b = sample(0, 1, 10, minutes=1)
        c = sample(0, 2, 10, minutes=2)
        chronological = compute_statistics([a, b, c])
        newest_first = compute_statistics([c, b, a])
        shuffled = compute_statistics([b, c, a])

        self.assertAlmostEqual(chronological.total_distance_km, 2 * haversine_km((0, 0), (0, 1)))
        self.assertEqual(newest_first, chronological)
        self.assertEqual(shuffled, chronological)

    def test_repeated_calls_are_identical_and_input_untouched(self):
        track = [sample(-23.55, -46.63, 35.3, minutes=i) for i in range(3)]
        track.append(sample(-23.56, -46.64, 71.9, minutes=10))
        snapshot = list(track)

        first = compute_statistics(track)
        second = compute_statistics(track)

        self.assertEqual(first, second)
        self.assertEqual(track, snapshot)

    def test_average_never_exceeds_max(self):
        stats = compute_statistics([sample(0, 0, 0.1, minutes=i) for i in range(7)])

        self.assertLessEqual(stats.average_speed_kmh, stats.max_speed_kmh)

    def test_coordinates_are_not_validated(self):
        stats = compute_statistics([sample(95.0, 200.0, 5), sample(-95.0, -200.0, 5, minutes=1)])

        self.assertGreaterEqual(stats.total_distance_km, 0.0)

    def test_as_dict_uses_field_names(self):
        payload = compute_statistics([sample(1, 1, 12)]).as_dict()

        self.assertEqual(
            set(payload),
            {"record_count", "average_speed_kmh", "max_speed_kmh", "total_distance_km"},
        )


@override_settings(TRACKING_CONFIG=TEST_TRACKING_CONFIG)
class TrackingServicesTests(TestCase):
    def setUp(self):
        User = get_user_model()
        self.user = User.objects.create_user("ana", password="secret")
        self.other = User.objects.create_user("bruno", password="secret")
        self.vehicle = Vehicle.objects.create(
            user=self.user, license_plate="ABC1D23", brand="Fiat", model="Strada"
        )
        self.foreign_vehicle = Vehicle.objects.create(
            user=self.other, license_plate="XYZ9Z99", brand="VW", model="Saveiro"
        )

    def test_profile_is_created_on_first_access(self):
        profile = services.get_profile(self.user)

        self.assertEqual(profile.role, "driver")
        self.assertEqual(services.get_profile(self.user).pk, profile.pk)

        services.update_profile(self.user, "  Ana Souza ")
        self.assertEqual(services.get_profile(self.user).full_name, "Ana Souza")

    def test_vehicle_search_is_scoped_to_user(self):
        Vehicle.objects.create(user=self.user, license_plate="DEF4G56", brand="Ford", model="Ranger")

        plates = {v.license_plate for v in services.user_vehicles(self.user, search="fiat")}
        self.assertEqual(plates, {"ABC1D23"})
        self.assertEqual(services.user_vehicles(self.user).count(), 2)
        self.assertEqual(services.user_vehicles(self.user, search="saveiro").count(), 0)

        with self.assertRaises(Vehicle.DoesNotExist):
            services.get_vehicle(self.user, self.foreign_vehicle.pk)

    def test_dashboard_summary_counts(self):
        Vehicle.objects.create(
            user=self.user, license_plate="MNT0A00", brand="Iveco", model="Daily", status="maintenance"
        )
        Alert.objects.create(user=self.user, type="maintenance", title="Oil change")
        Alert.objects.create(user=self.user, type="speed", title="Too fast", is_read=True)
        Alert.objects.create(user=self.other, type="speed", title="Not mine")

        summary = services.dashboard_summary(self.user)

        self.assertEqual(
            summary,
            {
                "total_vehicles": 2,
                "active_vehicles": 1,
                "maintenance_vehicles": 1,
                "unread_alerts": 1,
            },
        )

    def test_record_ping_moves_vehicle(self):
        record = services.record_ping(self.vehicle, -23.55, -46.63, 40.0, heading=90.0)

        self.vehicle.refresh_from_db()
        self.assertEqual(self.vehicle.last_location_lat, -23.55)
        self.assertEqual(self.vehicle.last_location_lng, -46.63)
        self.assertEqual(self.vehicle.last_seen, record.timestamp)
        self.assertEqual(Alert.objects.count(), 0)

    def test_speeding_raises_alert(self):
        services.record_ping(self.vehicle, -23.55, -46.63, 90.0)
        services.record_ping(self.vehicle, -23.55, -46.63, 120.0)

        severities = list(Alert.objects.filter(type="speed").order_by("pk").values_list("severity", flat=True))
        self.assertEqual(severities, ["warning", "critical"])

    def test_speed_alert_thresholds_are_inclusive_at_the_top(self):
        services.record_ping(self.vehicle, -23.55, -46.63, 80.0)
        self.assertFalse(Alert.objects.filter(type="speed").exists())

        services.record_ping(self.vehicle, -23.55, -46.63, 100.0)
        services.record_ping(self.vehicle, -23.55, -46.63, 99.9)

        severities = list(Alert.objects.filter(type="speed").order_by("pk").values_list("severity", flat=True))
        self.assertEqual(severities, ["critical", "warning"])

    def test_geofence_transitions_raise_alerts(self):
        Geofence.objects.create(user=self.user, name="Depot", center_lat=0.0, center_lng=0.0, radius=1000)
        Geofence.objects.create(
            user=self.user, name="Disabled", center_lat=0.0, center_lng=0.0, radius=1000, is_active=False
        )

        services.record_ping(self.vehicle, 0.0, 0.0, 30.0)
        self.assertEqual(Alert.objects.count(), 0)

        services.record_ping(self.vehicle, 0.0, 0.5, 30.0)
        services.record_ping(self.vehicle, 0.0, 0.001, 30.0)

        alerts = list(Alert.objects.filter(type="geofence").order_by("pk"))
        self.assertEqual(len(alerts), 2)
        self.assertIn("left Depot", alerts[0].title)
        self.assertEqual(alerts[0].severity, "warning")
        self.assertIn("entered Depot", alerts[1].title)
        self.assertEqual(alerts[1].severity, "info")

    def test_simulation_is_deterministic_with_seed(self):
        twin = Vehicle.objects.create(user=self.user, license_plate="TWN0001", brand="Fiat", model="Uno")

        first = services.simulate_ping(self.vehicle, rng=random.Random(7))
        second = services.simulate_ping(twin, rng=random.Random(7))

        self.assertEqual((first.latitude, first.longitude, first.speed), (second.latitude, second.longitude, second.speed))
        self.assertAlmostEqual(first.latitude, -23.5505, delta=0.05)
        self.assertAlmostEqual(first.longitude, -46.6333, delta=0.05)
        self.assertTrue(20 <= first.speed <= 100)
        self.assertTrue(0 <= first.heading <= 360)

    def test_simulation_requires_active_vehicle(self):
        self.vehicle.status = "inactive"
        self.vehicle.save()

        with self.assertRaises(ValueError):
            services.simulate_ping(self.vehicle, rng=random.Random(1))

    def test_history_window_covers_whole_days(self):
        start, end = services.history_window(datetime(2025, 10, 1).date(), datetime(2025, 10, 3).date())

        self.assertEqual((start.hour, start.minute, start.second), (0, 0, 0))
        self.assertEqual((end.hour, end.minute, end.second, end.microsecond), (23, 59, 59, 999999))
        self.assertEqual((end - start).days, 2)

        with self.assertRaises(ValueError):
            services.history_window(datetime(2025, 10, 3).date(), datetime(2025, 10, 1).date())

    def test_vehicle_history_filters_window_and_computes_statistics(self):
        now = timezone.now()
        services.record_ping(self.vehicle, 0.0, 0.0, 10.0, timestamp=now - timedelta(hours=2))
        services.record_ping(self.vehicle, 0.0, 1.0, 30.0, timestamp=now - timedelta(hours=1))
        TrackingRecord.objects.create(
            vehicle=self.vehicle, latitude=5.0, longitude=5.0, speed=200.0, timestamp=now - timedelta(days=30)
        )

        records, stats, window = services.vehicle_history(self.user, self.vehicle.pk)

        self.assertEqual(len(records), 2)
        self.assertGreater(records[0].timestamp, records[1].timestamp)
        self.assertEqual(stats.record_count, 2)
        self.assertAlmostEqual(stats.average_speed_kmh, 20.0)
        self.assertEqual(stats.max_speed_kmh, 30.0)
        self.assertAlmostEqual(stats.total_distance_km, 111.19, delta=0.1)
        self.assertEqual(window, services.history_window())

        with self.assertRaises(Vehicle.DoesNotExist):
            services.vehicle_history(self.user, self.foreign_vehicle.pk)

    def test_track_geometry(self):
        self.assertIsNone(services.track_geometry([]))

        now = timezone.now()
        late = services.record_ping(self.vehicle, 1.0, 2.0, 10.0, timestamp=now)
        self.assertEqual(services.track_geometry([late])["type"], "Point")

        early = services.record_ping(self.vehicle, 3.0, 4.0, 10.0, timestamp=now - timedelta(minutes=5))
        geometry = services.track_geometry([late, early])
        self.assertEqual(geometry["type"], "LineString")
        self.assertEqual(tuple(geometry["coordinates"][0]), (4.0, 3.0))
        self.assertEqual(tuple(geometry["coordinates"][-1]), (2.0, 1.0))

    def test_recent_records_are_newest_first_and_limited(self):
        now = timezone.now()
        for minutes in range(5):
            TrackingRecord.objects.create(
                vehicle=self.vehicle, latitude=0, longitude=0, speed=minutes, timestamp=now - timedelta(minutes=minutes)
            )

        records = services.recent_records(self.vehicle, limit=3)

        self.assertEqual([r.speed for r in records], [0, 1, 2])
        self.assertEqual(services.recent_records(self.vehicle, limit=0), [])
        self.assertEqual(len(services.recent_records(self.vehicle)), 5)

    def test_alert_management_is_scoped(self):
        mine = Alert.objects.create(user=self.user, type="speed", title="Mine")
        Alert.objects.create(user=self.user, type="speed", title="Mine too")
        theirs = Alert.objects.create(user=self.other, type="speed", title="Theirs")

        self.assertTrue(services.mark_alert_read(self.user, mine.pk).is_read)
        self.assertEqual(services.user_alerts(self.user, unread_only=True).count(), 1)
        self.assertEqual(services.mark_all_alerts_read(self.user), 1)

        with self.assertRaises(Alert.DoesNotExist):
            services.mark_alert_read(self.user, theirs.pk)
        with self.assertRaises(Alert.DoesNotExist):
            services.delete_alert(self.user, theirs.pk)

        services.delete_alert(self.user, mine.pk)
        self.assertFalse(Alert.objects.filter(pk=mine.pk).exists())


@override_settings(TRACKING_CONFIG=TEST_TRACKING_CONFIG)
class TrackingAPITests(TestCase):
    def setUp(self):
        User = get_user_model()
        self.user = User.objects.create_user("ana", password="secret")
        self.other = User.objects.create_user("bruno", password="secret")
        self.vehicle = Vehicle.objects.create(
            user=self.user, license_plate="ABC1D23", brand="Fiat", model="Strada"
        )
        self.foreign_vehicle = Vehicle.objects.create(
            user=self.other, license_plate="XYZ9Z99", brand="VW", model="Saveiro"
        )
        self.client = Client()
        self.client.force_login(self.user)

    def test_api_requires_authentication(self):
        response = Client().get(reverse("tracking:dashboard-data"))
        self.assertEqual(response.status_code, 401)

    def test_dashboard_api(self):
        response = self.client.get(reverse("tracking:dashboard-data"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["total_vehicles"], 1)

    def test_record_ping_api(self):
        url = reverse("tracking:record-ping", args=[self.vehicle.pk])
        response = self.client.post(
            url,
            data=json.dumps({"latitude": -23.55, "longitude": -46.63, "speed": 55.5}),
            content_type="application/json",
        )

        self.assertEqual(response.status_code, 201)
        payload = response.json()
        self.assertEqual(payload["speed"], 55.5)
        self.assertIsNone(payload["heading"])
        self.vehicle.refresh_from_db()
        self.assertIsNotNone(self.vehicle.last_seen)

    def test_record_ping_api_rejects_bad_input(self):
        url = reverse("tracking:record-ping", args=[self.vehicle.pk])

        out_of_range = self.client.post(
            url,
            data=json.dumps({"latitude": 95, "longitude": 0, "speed": 10}),
            content_type="application/json",
        )
        negative_speed = self.client.post(
            url,
            data=json.dumps({"latitude": 0, "longitude": 0, "speed": -1}),
            content_type="application/json",
        )
        broken = self.client.post(url, data="{not json", content_type="application/json")
        not_utf8 = self.client.post(url, data=b"\xff\xfe\xfa", content_type="application/json")

        self.assertEqual(out_of_range.status_code, 400)
        self.assertEqual(negative_speed.status_code, 400)
        self.assertEqual(broken.status_code, 400)
        self.assertEqual(not_utf8.status_code, 400)
        self.assertEqual(not_utf8.json(), {"error": "Invalid JSON"})
        self.assertEqual(TrackingRecord.objects.count(), 0)

    def test_cannot_touch_other_users_vehicle(self):
        history = self.client.get(reverse("tracking:vehicle-history", args=[self.foreign_vehicle.pk]))
        ping = self.client.post(
            reverse("tracking:record-ping", args=[self.foreign_vehicle.pk]),
            data=json.dumps({"latitude": 0, "longitude": 0, "speed": 10}),
            content_type="application/json",
        )
        simulate = self.client.post(reverse("tracking:simulate-ping-data", args=[self.foreign_vehicle.pk]))

        self.assertEqual(history.status_code, 404)
        self.assertEqual(ping.status_code, 404)
        self.assertEqual(simulate.status_code, 404)

    def test_history_api_returns_statistics_and_path(self):
        now = timezone.now()
        services.record_ping(self.vehicle, 0.0, 0.0, 10.0, timestamp=now - timedelta(minutes=10))
        services.record_ping(self.vehicle, 0.0, 1.0, 30.0, timestamp=now - timedelta(minutes=5))

        response = self.client.get(reverse("tracking:vehicle-history", args=[self.vehicle.pk]))

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["statistics"]["record_count"], 2)
        self.assertAlmostEqual(payload["statistics"]["total_distance_km"], 111.19, delta=0.1)
        self.assertEqual(payload["statistics"]["max_speed_kmh"], 30.0)
        self.assertEqual(len(payload["records"]), 2)
        self.assertEqual(payload["path"]["type"], "LineString")

    def test_history_api_empty_range(self):
        response = self.client.get(
            reverse("tracking:vehicle-history", args=[self.vehicle.pk]),
            {"start": "2020-01-01", "end": "2020-01-02"},
        )

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(
            payload["statistics"],
            {"record_count": 0, "average_speed_kmh": 0.0, "max_speed_kmh": 0.0, "total_distance_km": 0.0},
        )
        self.assertIsNone(payload["path"])
        self.assertTrue(payload["start"].startswith("2020-01-01T00:00:00"))
        self.assertTrue(payload["end"].startswith("2020-01-02T23:59:59.999999"))

    def test_history_api_rejects_inverted_range(self):
        response = self.client.get(
            reverse("tracking:vehicle-history", args=[self.vehicle.pk]),
            {"start": "2025-10-05", "end": "2025-10-01"},
        )
        self.assertEqual(response.status_code, 400)

    def test_simulate_api(self):
        response = self.client.post(reverse("tracking:simulate-ping-data", args=[self.vehicle.pk]))
        self.assertEqual(response.status_code, 201)
        self.assertEqual(TrackingRecord.objects.filter(vehicle=self.vehicle).count(), 1)

        tracking = self.client.get(reverse("tracking:vehicle-tracking", args=[self.vehicle.pk]))
        self.assertEqual(len(tracking.json()["records"]), 1)

    def test_simulate_api_rejects_inactive_vehicle(self):
        self.vehicle.status = "maintenance"
        self.vehicle.save()

        response = self.client.post(reverse("tracking:simulate-ping-data", args=[self.vehicle.pk]))
        self.assertEqual(response.status_code, 400)

    def test_mark_alert_read_api(self):
        alert = Alert.objects.create(user=self.user, type="offline", title="Lost signal")
        foreign = Alert.objects.create(user=self.other, type="offline", title="Not mine")

        response = self.client.post(reverse("tracking:read-alert-data", args=[alert.pk]))
        missing = self.client.post(reverse("tracking:read-alert-data", args=[foreign.pk]))

        self.assertEqual(response.json(), {"success": True})
        self.assertEqual(missing.status_code, 404)
        alert.refresh_from_db()
        self.assertTrue(alert.is_read)


@override_settings(TRACKING_CONFIG=TEST_TRACKING_CONFIG)
class DashboardPagesTests(TestCase):
    def setUp(self):
        User = get_user_model()
        self.user = User.objects.create_user("ana", password="secret")
        self.vehicle = Vehicle.objects.create(
            user=self.user, license_plate="ABC1D23", brand="Fiat", model="Strada"
        )
        self.client = Client()
        self.client.force_login(self.user)

    def test_pages_require_login(self):
        response = Client().get(reverse("tracking:vehicle-list"))
        self.assertEqual(response.status_code, 302)
        self.assertIn(reverse("login"), response["Location"])

    def test_pages_render(self):
        services.record_ping(self.vehicle, 0.0, 0.0, 95.0)
        Geofence.objects.create(user=self.user, name="Depot", center_lat=0, center_lng=0, radius=500)

        for name in ("dashboard", "vehicle-list", "tracking", "history", "alert-list", "geofence-list", "profile"):
            response = self.client.get(reverse(f"tracking:{name}"))
            self.assertEqual(response.status_code, 200, name)

    def test_history_page_shows_statistics(self):
        services.record_ping(self.vehicle, 0.0, 0.0, 10.0)

        response = self.client.get(reverse("tracking:history"), {"vehicle": self.vehicle.pk})

        self.assertEqual(response.context["statistics"].record_count, 1)

    def test_unparseable_vehicle_parameter_falls_back_to_first_vehicle(self):
        for name in ("history", "tracking"):
            response = self.client.get(reverse(f"tracking:{name}"), {"vehicle": "abc"})
            self.assertEqual(response.status_code, 200, name)
            self.assertEqual(response.context["selected_vehicle"], self.vehicle)

    def test_create_vehicle_assigns_owner(self):
        response = self.client.post(
            reverse("tracking:add-vehicle"),
            {"license_plate": "new1a23", "brand": "Renault", "model": "Kangoo", "status": "active"},
        )

        self.assertEqual(response.status_code, 302)
        vehicle = Vehicle.objects.get(license_plate="NEW1A23")
        self.assertEqual(vehicle.user, self.user)

    def test_cannot_edit_other_users_vehicle(self):
        other = get_user_model().objects.create_user("bruno", password="secret")
        foreign = Vehicle.objects.create(user=other, license_plate="XYZ9Z99", brand="VW", model="Saveiro")

        response = self.client.get(reverse("tracking:edit-vehicle", args=[foreign.pk]))
        self.assertEqual(response.status_code, 404)

    def test_geofence_form_rejects_zero_radius(self):
        response = self.client.post(
            reverse("tracking:add-geofence"),
            {"name": "Bad", "center_lat": 0, "center_lng": 0, "radius": 0, "is_active": "on"},
        )

        self.assertEqual(response.status_code, 200)
        self.assertFalse(Geofence.objects.exists())

    def test_simulate_button_redirects_to_tracking(self):
        response = self.client.post(reverse("tracking:simulate-ping", args=[self.vehicle.pk]))

        self.assertEqual(response.status_code, 302)
        self.assertEqual(TrackingRecord.objects.count(), 1)

    def test_alert_actions(self):
        alert = Alert.objects.create(user=self.user, type="speed", title="Too fast")

        self.client.post(reverse("tracking:read-alert", args=[alert.pk]))
        alert.refresh_from_db()
        self.assertTrue(alert.is_read)

        self.client.post(reverse("tracking:delete-alert", args=[alert.pk]))
        self.assertFalse(Alert.objects.exists())
