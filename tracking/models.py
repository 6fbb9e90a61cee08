from django.conf import settings
from django.db import models
from django.utils import timezone

from .analytics import GpsSample, haversine_km


class Profile(models.Model):
    ROLE_CHOICES = [
        ('admin', 'Admin'),
        ('fleet_manager', 'Fleet Manager'),
        ('driver', 'Driver'),
    ]
    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='profile')
    full_name = models.CharField(max_length=150, blank=True, default='')
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default='driver')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.full_name or self.user.get_username()


class Vehicle(models.Model):
    STATUS_CHOICES = [
        ('active', 'Active'),
        ('inactive', 'Inactive'),
        ('maintenance', 'Maintenance'),
    ]
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='vehicles')
    license_plate = models.CharField(max_length=20, unique=True)
    brand = models.CharField(max_length=50)
    model = models.CharField(max_length=50)
    year = models.PositiveIntegerField(null=True, blank=True)
    color = models.CharField(max_length=30, blank=True, default='')
    vin = models.CharField(max_length=17, blank=True, default='')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='active', db_index=True)
    last_location_lat = models.FloatField(null=True, blank=True)
    last_location_lng = models.FloatField(null=True, blank=True)
    last_seen = models.DateTimeField(null=True, blank=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.license_plate} - {self.brand} {self.model}"

    @property
    def last_position(self):
        if self.last_location_lat is None or self.last_location_lng is None:
            return None
        return self.last_location_lat, self.last_location_lng


class TrackingRecord(models.Model):
    vehicle = models.ForeignKey(Vehicle, on_delete=models.CASCADE, related_name='tracking_records')
    latitude = models.FloatField()
    longitude = models.FloatField()
    speed = models.FloatField(default=0.0)  # km/h
    heading = models.FloatField(null=True, blank=True)  # degrees, 0-360
    altitude = models.FloatField(null=True, blank=True)  # metres
    accuracy = models.FloatField(null=True, blank=True)  # metres
    timestamp = models.DateTimeField(default=timezone.now, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-timestamp']

    def __str__(self):
        return f"{self.vehicle.license_plate} @ ({self.latitude}, {self.longitude})"

    def as_sample(self):
        return GpsSample(
            latitude=self.latitude,
            longitude=self.longitude,
            speed_kmh=self.speed,
            timestamp=self.timestamp,
        )

    def as_dict(self):
        return {
            "id": self.pk,
            "vehicle_id": self.vehicle_id,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "speed": self.speed,
            "heading": self.heading,
            "altitude": self.altitude,
            "accuracy": self.accuracy,
            "timestamp": self.timestamp.isoformat(),
        }


class Alert(models.Model):
    TYPE_CHOICES = [
        ('geofence', 'Geofence'),
        ('speed', 'Speed'),
        ('offline', 'Offline'),
        ('maintenance', 'Maintenance'),
    ]
    SEVERITY_CHOICES = [
        ('info', 'Info'),
        ('warning', 'Warning'),
        ('critical', 'Critical'),
    ]
    vehicle = models.ForeignKey(Vehicle, on_delete=models.CASCADE, null=True, blank=True, related_name='alerts')
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='alerts')
    type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    title = models.CharField(max_length=200)
    message = models.TextField(blank=True, default='')
    severity = models.CharField(max_length=20, choices=SEVERITY_CHOICES, default='info')
    is_read = models.BooleanField(default=False, db_index=True)
    triggered_at = models.DateTimeField(default=timezone.now)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-triggered_at']

    def __str__(self):
        return self.title


class Geofence(models.Model):
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='geofences')
    name = models.CharField(max_length=100)
    center_lat = models.FloatField()
    center_lng = models.FloatField()
    radius = models.FloatField()  # metres
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name

    def contains(self, lat, lng):
        distance_m = haversine_km((self.center_lat, self.center_lng), (lat, lng)) * 1000
        return distance_m <= self.radius
