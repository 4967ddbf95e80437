# apps/drones/routing.py
from django.urls import path
from .consumers import DroneTrackingConsumer

websocket_urlpatterns = [
    path("ws/drones/", DroneTrackingConsumer.as_asgi()),
]
