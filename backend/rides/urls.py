from django.urls import path
from . import views

app_name = 'rides'

urlpatterns = [
    # Driver Ride Actions
    path('handle/current/', views.driver_current_ride, name='driver-current-ride'),
    path('handle/<int:ride_id>/accept/', views.accept_ride, name='accept-ride'),
    path('handle/<int:ride_id>/arrived/', views.arrived_at_pickup, name='arrived-at-pickup'),
    path('handle/<int:ride_id>/call-attempt/', views.rider_call_attempt, name='rider-call-attempt'),
    path('handle/<int:ride_id>/driver-cancel/', views.driver_cancel_ride, name='driver-cancel-ride'),
]
