from django.contrib import admin

from .models import Alert, Geofence, Profile, TrackingRecord, Vehicle


@admin.register(Vehicle)
class VehicleAdmin(admin.ModelAdmin):
    list_display = ('license_plate', 'brand', 'model', 'status', 'user', 'last_seen')
    list_filter = ('status',)
    search_fields = ('license_plate', 'brand', 'model', 'vin')


@admin.register(TrackingRecord)
class TrackingRecordAdmin(admin.ModelAdmin):
    list_display = ('vehicle', 'latitude', 'longitude', 'speed', 'timestamp')
    list_filter = ('vehicle',)
    date_hierarchy = 'timestamp'


@admin.register(Alert)
class AlertAdmin(admin.ModelAdmin):
    list_display = ('title', 'type', 'severity', 'is_read', 'user', 'triggered_at')
    list_filter = ('type', 'severity', 'is_read')


admin.site.register(Geofence)
admin.site.register(Profile)
