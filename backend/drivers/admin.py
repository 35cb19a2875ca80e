from django.contrib import admin
from drivers.models import DriverProfile


@admin.register(DriverProfile)
class DriverProfileAdmin(admin.ModelAdmin):
    """Admin panel for managing Driver Profiles"""

    list_display = [
        "user",
        "vehicle_number",
        "vehicle_type",
        "is_active",
        "is_online",
        "is_busy",
        "busy_until",
        "last_location_update",
    ]

    list_filter = [
        "vehicle_type",
        "is_active",
        "is_online",
        "is_busy",
    ]

    search_fields = [
        "user__username",
        "vehicle_number",
    ]

    readonly_fields = [
        "session_id",
        "last_location_update",
    ]

    ordering = ("user__username",)
