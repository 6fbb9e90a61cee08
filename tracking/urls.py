from django.urls import path
from .views import (
    DashboardView, VehicleListView, VehicleCreateView, VehicleUpdateView, VehicleDeleteView,
    TrackingView, SimulatePingView, HistoryView,
    AlertListView, AlertReadView, AlertReadAllView, AlertDeleteView,
    GeofenceListView, GeofenceCreateView, GeofenceUpdateView, GeofenceDeleteView,
    ProfileView,
    DashboardAPIView, VehicleHistoryAPIView, VehicleTrackingAPIView, RecordPingAPIView,
    SimulatePingAPIView, AlertReadAPIView,
)

app_name = "tracking"

urlpatterns = [
    path("", DashboardView.as_view(), name="dashboard"),
    path("vehicles/", VehicleListView.as_view(), name="vehicle-list"),
    path("vehicles/add/", VehicleCreateView.as_view(), name="add-vehicle"),
    path("vehicles/<int:pk>/edit/", VehicleUpdateView.as_view(), name="edit-vehicle"),
    path("vehicles/<int:pk>/delete/", VehicleDeleteView.as_view(), name="delete-vehicle"),
    path("vehicles/<int:pk>/simulate/", SimulatePingView.as_view(), name="simulate-ping"),
    path("tracking/", TrackingView.as_view(), name="tracking"),
    path("history/", HistoryView.as_view(), name="history"),
    path("alerts/", AlertListView.as_view(), name="alert-list"),
    path("alerts/read-all/", AlertReadAllView.as_view(), name="read-all-alerts"),
    path("alerts/<int:pk>/read/", AlertReadView.as_view(), name="read-alert"),
    path("alerts/<int:pk>/delete/", AlertDeleteView.as_view(), name="delete-alert"),
    path("geofences/", GeofenceListView.as_view(), name="geofence-list"),
    path("geofences/add/", GeofenceCreateView.as_view(), name="add-geofence"),
    path("geofences/<int:pk>/edit/", GeofenceUpdateView.as_view(), name="edit-geofence"),
    path("geofences/<int:pk>/delete/", GeofenceDeleteView.as_view(), name="delete-geofence"),
    path("settings/", ProfileView.as_view(), name="profile"),
    path("api/dashboard/", DashboardAPIView.as_view(), name="dashboard-data"),
    path("api/vehicles/<int:pk>/history/", VehicleHistoryAPIView.as_view(), name="vehicle-history"),
    path("api/vehicles/<int:pk>/tracking/", VehicleTrackingAPIView.as_view(), name="vehicle-tracking"),
    path("api/vehicles/<int:pk>/pings/", RecordPingAPIView.as_view(), name="record-ping"),
    path("api/vehicles/<int:pk>/simulate/", SimulatePingAPIView.as_view(), name="simulate-ping-data"),
    path("api/alerts/<int:pk>/read/", AlertReadAPIView.as_view(), name="read-alert-data"),
]
