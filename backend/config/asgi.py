# config/asgi.py
import os
import django
from django.core.asgi import get_asgi_application

# 1. Init Django first (Critical before importing channels)
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')
django.setup()

from channels.routing import ProtocolTypeRouter, URLRouter
from channels.security.websocket import AllowedHostsOriginValidator
import apps.drones.routing

# 2. Application Definition
# Websocket auth is the one-time ticket redeemed by the consumer itself.
application = ProtocolTypeRouter({
    "http": get_asgi_application(),

    "websocket": AllowedHostsOriginValidator(
        URLRouter(
            apps.drones.routing.websocket_urlpatterns
        )
    ),
})
