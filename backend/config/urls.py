# config/urls.py
from django.contrib import admin
from django.urls import path, include
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView

from apps.core.views import health_check

urlpatterns = [
    # Monitoring
    path('', include('django_prometheus.urls')),
    path('health/', health_check),

    # Admin
    path('admin/', admin.site.urls),

    # API V1 Routes
    path('api/v1/auth/', include('apps.accounts.urls')),
    path('api/v1/orders/', include('apps.orders.urls')),
    path('api/v1/drones/', include('apps.drones.urls')),
    path('api/v1/delivery/', include('apps.delivery.urls')),
    path('api/v1/notifications/', include('apps.notifications.urls')),
    path('api/v1/audit/', include('apps.audit.urls')),

    # API Documentation
    path('api/schema/', SpectacularAPIView.as_view(), name='schema'),
    path('api/docs/', SpectacularSwaggerView.as_view(url_name='schema'), name='swagger-ui'),
]
