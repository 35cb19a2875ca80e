from django.contrib import admin
from django.urls import path, include

from .views import health_check

urlpatterns = [
    path('admin/', admin.site.urls),
    path("health/", health_check),  # Health check endpoint

    # Rider APIs (create, quote, current, cancel, share link)
    path('api/passenger/rides/', include('passengers.urls')),

    # Driver APIs (status, location, current ride)
    path('api/driver/', include('drivers.urls')),

    # Driver ride actions and scheduled bookings
    path('api/rides/', include('rides.urls')),
]
