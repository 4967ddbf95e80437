from django.db import models
from django.db.models import Q
from django.utils import timezone


class Delivery(models.Model):
    """
    Per-shop delivery tracking for an order (courier or drone handover).
    """
    MODE_CHOICES = (
        ("regular", "Regular"),
        ("drone", "Drone"),
    )

    STATUS_CHOICES = (
        ("unassigned", "Unassigned"),
        ("assigned", "Assigned"),
        ("preparing", "Preparing"),
        ("out_for_delivery", "Out For Delivery"),
        ("nearby", "Nearby"),
        ("delivered", "Delivered"),
        ("cancelled", "Cancelled"),
    )

    order = models.ForeignKey('orders.Order', on_delete=models.CASCADE, related_name="deliveries")
    shop = models.ForeignKey('shops.Shop', on_delete=models.PROTECT, related_name="deliveries")

    delivery_mode = models.CharField(max_length=10, choices=MODE_CHOICES, default="regular")
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="unassigned")

    qr_code = models.CharField(max_length=64, blank=True, null=True, unique=True)
    qr_expiry = models.DateTimeField(blank=True, null=True)

    eta_minutes = models.PositiveIntegerField(null=True, blank=True)
    delivery_partner = models.CharField(max_length=100, blank=True)

    current_location = models.JSONField(default=dict, blank=True)
    # [{"lat", "lng", "timestamp"}]
    route = models.JSONField(default=list, blank=True)
    # [{"status", "timestamp", "location", "notes"}]
    status_history = models.JSONField(default=list, blank=True)
    notes = models.TextField(blank=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = ("order", "shop")
        indexes = [
            models.Index(
                fields=['delivery_mode', 'status'],
                name='active_delivery_idx',
                condition=Q(status__in=['assigned', 'preparing', 'out_for_delivery', 'nearby'])
            ),
            models.Index(fields=['order', '-created_at']),
        ]

    def __str__(self):
        return f"Delivery {self.order_id}/{self.shop_id} - {self.status}"

    def record_status(self, status, notes=""):
        self.status = status
        self.status_history.append({
            "status": status,
            "timestamp": timezone.now().isoformat(),
            "location": self.current_location or None,
            "notes": notes,
        })

    def record_location(self, location):
        self.current_location = location
        self.route.append({**location, "timestamp": timezone.now().isoformat()})
