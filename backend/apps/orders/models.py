from django.conf import settings
from django.db import models
from django.utils import timezone

User = settings.AUTH_USER_MODEL


class Order(models.Model):
    DELIVERY_TYPE_CHOICES = (
        ("regular", "Regular"),
        ("drone", "Drone"),
    )

    FALLBACK_REASON_CHOICES = (
        ("unsafe_weather", "Unsafe Weather"),
        ("weather_api_failure", "Weather API Failure"),
        ("drone_setup_failed", "Drone Setup Failed"),
    )

    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="orders")

    delivery_type = models.CharField(max_length=20, choices=DELIVERY_TYPE_CHOICES, default="regular")
    fallback_reason = models.CharField(max_length=30, choices=FALLBACK_REASON_CHOICES, blank=True, null=True)
    delivery_status = models.CharField(max_length=30, default="pending")

    total_amount = models.DecimalField(max_digits=10, decimal_places=2, default=0)

    # {"lat": .., "lng": .., "address": ..}
    delivery_location = models.JSONField(default=dict, blank=True)
    pickup_location = models.JSONField(default=dict, blank=True)

    delivery_partner = models.CharField(max_length=100, blank=True)
    eta_minutes = models.PositiveIntegerField(null=True, blank=True)
    estimated_delivery_time = models.DateTimeField(null=True, blank=True)
    actual_delivery_time = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=['user', '-created_at']),
            models.Index(fields=['delivery_type', 'delivery_status']),
        ]

    def __str__(self):
        return f"Order #{self.id} ({self.delivery_type})"

    def has_shop(self, shop_id):
        return self.shops.filter(shop_id=shop_id).exists()


class OrderShop(models.Model):
    """
    One shop's slice of a multi-shop order.
    """
    STATUS_CHOICES = (
        ("arrived", "Arrived"),
        ("preparing", "Preparing"),
        ("ready", "Ready"),
        ("delivered", "Delivered"),
        ("cancelled", "Cancelled"),
    )

    # Forward moves a seller may make; cancel is allowed from any non-final state
    TRANSITIONS = {
        "arrived": {"preparing", "cancelled"},
        "preparing": {"ready", "cancelled"},
        "ready": {"delivered", "cancelled"},
        "delivered": set(),
        "cancelled": set(),
    }

    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="shops")
    shop = models.ForeignKey('shops.Shop', on_delete=models.PROTECT, related_name="order_slices")

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="arrived")
    cancel_reason = models.CharField(max_length=255, blank=True)
    subtotal = models.DecimalField(max_digits=10, decimal_places=2, default=0)

    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = ("order", "shop")

    def __str__(self):
        return f"Order #{self.order_id} @ {self.shop_id} ({self.status})"

    def can_move_to(self, status):
        return status in self.TRANSITIONS.get(self.status, set())
