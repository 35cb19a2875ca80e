# passengers/urls.py

from django.urls import path

from .views.rides import (
    FareQuoteView,
    PassengerCancelRideView,
    PassengerCreateRideView,
    PassengerCurrentRideView,
    PassengerRideDetailView,
    SharedRideView,
)

app_name = "passengers"

urlpatterns = [
    path("", PassengerCreateRideView.as_view(), name="create-ride"),
    path("quote/", FareQuoteView.as_view(), name="fare-quote"),
    path("current/", PassengerCurrentRideView.as_view(), name="current-ride"),
    path("shared/<str:token>/", SharedRideView.as_view(), name="shared-ride"),
    path("<int:ride_id>/", PassengerRideDetailView.as_view(), name="ride-detail"),
    path("<int:ride_id>/cancel/", PassengerCancelRideView.as_view(), name="cancel-ride"),
]
