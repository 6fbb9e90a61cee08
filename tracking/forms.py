from django import forms

from .models import Geofence, Profile, Vehicle


class VehicleForm(forms.ModelForm):
    class Meta:
        model = Vehicle
        fields = ('license_plate', 'brand', 'model', 'year', 'color', 'vin', 'status')

    def clean_license_plate(self):
        return self.cleaned_data['license_plate'].strip().upper()


class GeofenceForm(forms.ModelForm):
    center_lat = forms.FloatField(min_value=-90, max_value=90)
    center_lng = forms.FloatField(min_value=-180, max_value=180)

    class Meta:
        model = Geofence
        fields = ('name', 'center_lat', 'center_lng', 'radius', 'is_active')

    def clean_radius(self):
        radius = self.cleaned_data['radius']
        if radius <= 0:
            raise forms.ValidationError("Radius must be greater than zero.")
        return radius


class ProfileForm(forms.ModelForm):
    class Meta:
        model = Profile
        fields = ('full_name',)


class PingForm(forms.Form):
    latitude = forms.FloatField(min_value=-90, max_value=90)
    longitude = forms.FloatField(min_value=-180, max_value=180)
    speed = forms.FloatField(min_value=0)
    heading = forms.FloatField(min_value=0, max_value=360, required=False)
    altitude = forms.FloatField(required=False)
    accuracy = forms.FloatField(min_value=0, required=False)


class HistoryFilterForm(forms.Form):
    start = forms.DateField(required=False)
    end = forms.DateField(required=False)

    def clean(self):
        cleaned = super().clean()
        start, end = cleaned.get('start'), cleaned.get('end')
        if start and end and start > end:
            raise forms.ValidationError("Start date must not be after the end date.")
        return cleaned
