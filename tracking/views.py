from __future__ import annotations

import json
import logging

from django.contrib.auth.mixins import LoginRequiredMixin
from django.http import Http404, JsonResponse
from django.shortcuts import redirect
from django.urls import reverse, reverse_lazy
from django.views.generic import CreateView, DeleteView, ListView, TemplateView, UpdateView, View

from . import services
from .forms import GeofenceForm, HistoryFilterForm, PingForm, ProfileForm, VehicleForm
from .models import Alert, Vehicle

logger = logging.getLogger(__name__)


class OwnedQuerysetMixin(LoginRequiredMixin):
    """Restrict a model view to rows owned by the signed-in user."""

    def get_queryset(self):
        return super().get_queryset().filter(user=self.request.user)


class OwnedCreateMixin(LoginRequiredMixin):
    def form_valid(self, form):
        form.instance.user = self.request.user
        return super().form_valid(form)


def _pick_vehicle(vehicles, raw_pk):
    """Vehicle named by the ``vehicle`` query parameter, else the first one."""
    selected = None
    if raw_pk:
        try:
            selected = vehicles.filter(pk=raw_pk).first()
        except ValueError:
            selected = None
    return selected or vehicles.first()


class DashboardView(LoginRequiredMixin, TemplateView):
    template_name = "tracking/dashboard.html"

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context["summary"] = services.dashboard_summary(self.request.user)
        context["profile"] = services.get_profile(self.request.user)
        return context


class VehicleListView(LoginRequiredMixin, ListView):
    template_name = 'tracking/vehicle_list.html'
    context_object_name = 'vehicles'

    def get_queryset(self):
        return services.user_vehicles(
            self.request.user,
            search=self.request.GET.get('q', ''),
            status=self.request.GET.get('status') or None,
        )

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['query'] = self.request.GET.get('q', '')
        return context


class VehicleCreateView(OwnedCreateMixin, CreateView):
    model = Vehicle
    form_class = VehicleForm
    template_name = 'tracking/vehicle_form.html'
    success_url = reverse_lazy('tracking:vehicle-list')


class VehicleUpdateView(OwnedQuerysetMixin, UpdateView):
    model = Vehicle
    form_class = VehicleForm
    template_name = 'tracking/vehicle_form.html'
    success_url = reverse_lazy('tracking:vehicle-list')


class VehicleDeleteView(OwnedQuerysetMixin, DeleteView):
    model = Vehicle
    template_name = 'tracking/confirm_delete.html'
    success_url = reverse_lazy('tracking:vehicle-list')


class TrackingView(LoginRequiredMixin, TemplateView):
    template_name = "tracking/tracking.html"

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        vehicles = services.user_vehicles(self.request.user, status='active').order_by('license_plate')
        selected = _pick_vehicle(vehicles, self.request.GET.get('vehicle'))
        context["vehicles"] = vehicles
        context["selected_vehicle"] = selected
        context["records"] = services.recent_records(selected) if selected else []
        return context


class SimulatePingView(LoginRequiredMixin, View):
    def post(self, request, *args, **kwargs):
        try:
            vehicle = services.get_vehicle(request.user, self.kwargs['pk'])
        except Vehicle.DoesNotExist:
            raise Http404("Vehicle not found")
        try:
            services.simulate_ping(vehicle)
        except ValueError as e:
            logger.warning("Simulation refused: %s", e)
        return redirect(f"{reverse('tracking:tracking')}?vehicle={vehicle.pk}")


class HistoryView(LoginRequiredMixin, TemplateView):
    template_name = "tracking/history.html"

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        user = self.request.user
        vehicles = services.user_vehicles(user).order_by('license_plate')
        form = HistoryFilterForm(self.request.GET or None)
        context["vehicles"] = vehicles
        context["form"] = form
        context["records"] = []
        context["statistics"] = None

        selected = _pick_vehicle(vehicles, self.request.GET.get('vehicle'))
        context["selected_vehicle"] = selected
        if selected is None:
            return context

        start = end = None
        if form.is_bound:
            if not form.is_valid():
                return context
            start, end = form.cleaned_data.get('start'), form.cleaned_data.get('end')
        try:
            records, statistics, _ = services.vehicle_history(user, selected.pk, start, end)
        except ValueError as e:
            form.add_error(None, str(e))
            return context
        context["records"] = records
        context["statistics"] = statistics
        return context


class AlertListView(LoginRequiredMixin, ListView):
    template_name = 'tracking/alert_list.html'
    context_object_name = 'alerts'

    def get_queryset(self):
        return services.user_alerts(self.request.user, unread_only=self.request.GET.get('filter') == 'unread')


class AlertReadView(LoginRequiredMixin, View):
    def post(self, request, *args, **kwargs):
        try:
            services.mark_alert_read(request.user, self.kwargs['pk'])
        except Alert.DoesNotExist:
            raise Http404("Alert not found")
        return redirect('tracking:alert-list')


class AlertReadAllView(LoginRequiredMixin, View):
    def post(self, request, *args, **kwargs):
        services.mark_all_alerts_read(request.user)
        return redirect('tracking:alert-list')


class AlertDeleteView(LoginRequiredMixin, View):
    def post(self, request, *args, **kwargs):
        try:
            services.delete_alert(request.user, self.kwargs['pk'])
        except Alert.DoesNotExist:
            raise Http404("Alert not found")
        return redirect('tracking:alert-list')


class GeofenceListView(LoginRequiredMixin, ListView):
    template_name = 'tracking/geofence_list.html'
    context_object_name = 'geofences'

    def get_queryset(self):
        return services.user_geofences(self.request.user)


class GeofenceCreateView(OwnedCreateMixin, CreateView):
    form_class = GeofenceForm
    template_name = 'tracking/geofence_form.html'
    success_url = reverse_lazy('tracking:geofence-list')


class GeofenceUpdateView(LoginRequiredMixin, UpdateView):
    form_class = GeofenceForm
    template_name = 'tracking/geofence_form.html'
    success_url = reverse_lazy('tracking:geofence-list')

    def get_queryset(self):
        return services.user_geofences(self.request.user)


class GeofenceDeleteView(LoginRequiredMixin, DeleteView):
    template_name = 'tracking/confirm_delete.html'
    success_url = reverse_lazy('tracking:geofence-list')

    def get_queryset(self):
        return services.user_geofences(self.request.user)


class ProfileView(LoginRequiredMixin, UpdateView):
    form_class = ProfileForm
    template_name = 'tracking/profile_form.html'
    success_url = reverse_lazy('tracking:profile')

    def get_object(self, queryset=None):
        return services.get_profile(self.request.user)


class APILoginRequiredMixin:
    def dispatch(self, request, *args, **kwargs):
        if not request.user.is_authenticated:
            return JsonResponse({'error': 'Authentication required'}, status=401)
        return super().dispatch(request, *args, **kwargs)


class DashboardAPIView(APILoginRequiredMixin, View):
    def get(self, request, *args, **kwargs):
        return JsonResponse(services.dashboard_summary(request.user))


class VehicleHistoryAPIView(APILoginRequiredMixin, View):
    def get(self, request, *args, **kwargs):
        form = HistoryFilterForm(request.GET)
        if not form.is_valid():
            logger.warning("Rejected history query: %s", form.errors.as_json())
            return JsonResponse({'error': form.errors.get_json_data()}, status=400)

        try:
            records, statistics, (start, end) = services.vehicle_history(
                request.user,
                self.kwargs['pk'],
                form.cleaned_data.get('start'),
                form.cleaned_data.get('end'),
            )
        except Vehicle.DoesNotExist:
            return JsonResponse({'error': 'Vehicle not found'}, status=404)
        except ValueError as e:
            return JsonResponse({'error': str(e)}, status=400)

        return JsonResponse(
            {
                "vehicle": self.kwargs['pk'],
                "start": start.isoformat(),
                "end": end.isoformat(),
                "statistics": statistics.as_dict(),
                "records": [record.as_dict() for record in records],
                "path": services.track_geometry(records),
            }
        )


class VehicleTrackingAPIView(APILoginRequiredMixin, View):
    def get(self, request, *args, **kwargs):
        try:
            vehicle = services.get_vehicle(request.user, self.kwargs['pk'])
        except Vehicle.DoesNotExist:
            return JsonResponse({'error': 'Vehicle not found'}, status=404)
        return JsonResponse(
            {
                "vehicle": vehicle.pk,
                "records": [record.as_dict() for record in services.recent_records(vehicle)],
            }
        )


class RecordPingAPIView(APILoginRequiredMixin, View):
    def post(self, request, *args, **kwargs):
        try:
            data = json.loads(request.body)
            vehicle = services.get_vehicle(request.user, self.kwargs['pk'])
        except Vehicle.DoesNotExist:
            return JsonResponse({'error': 'Vehicle not found'}, status=404)
        except (json.JSONDecodeError, UnicodeDecodeError):
            return JsonResponse({'error': 'Invalid JSON'}, status=400)

        if not isinstance(data, dict):
            return JsonResponse({'error': 'Invalid JSON'}, status=400)

        form = PingForm(data)
        if not form.is_valid():
            logger.warning("Rejected ping for vehicle %s: %s", vehicle.pk, form.errors.as_json())
            return JsonResponse({'error': form.errors.get_json_data()}, status=400)

        record = services.record_ping(vehicle, **form.cleaned_data)
        return JsonResponse(record.as_dict(), status=201)


class SimulatePingAPIView(APILoginRequiredMixin, View):
    def post(self, request, *args, **kwargs):
        try:
            vehicle = services.get_vehicle(request.user, self.kwargs['pk'])
            record = services.simulate_ping(vehicle)
        except Vehicle.DoesNotExist:
            return JsonResponse({'error': 'Vehicle not found'}, status=404)
        except ValueError as e:
            return JsonResponse({'error': str(e)}, status=400)
        return JsonResponse(record.as_dict(), status=201)


class AlertReadAPIView(APILoginRequiredMixin, View):
    def post(self, request, *args, **kwargs):
        try:
            services.mark_alert_read(request.user, self.kwargs['pk'])
        except Alert.DoesNotExist:
            return JsonResponse({'error': 'Alert not found'}, status=404)
        return JsonResponse({'success': True})
