from django.urls import path
from . import views

app_name = 'rides'

urlpatterns = [
    # Driver Ride Actions
    path('handle/<int:ride_id>/accept/', views.accept_ride, name='accept-ride'),
    path('handle/<int:ride_id>/arrived/', views.driver_arrived, name='driver-arrived'),
    path('handle/<int:ride_id>/start/', views.start_ride, name='start-ride'),
    path('handle/<int:ride_id>/complete/', views.complete_ride, name='complete-ride'),
    path('handle/<int:ride_id>/cancel/', views.driver_cancel_ride, name='driver-cancel-ride'),

    # Scheduled bookings
    path('upcoming/', views.upcoming_bookings, name='upcoming-bookings'),
]
