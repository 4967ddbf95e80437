from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import Q
from django.utils import timezone

User = settings.AUTH_USER_MODEL


class Drone(models.Model):
    STATUS_CHOICES = (
        ("idle", "Idle"),
        ("assigned", "Assigned"),
        ("launched", "Launched"),
        ("in_flight", "In Flight"),
        ("landed", "Landed"),
        ("returning", "Returning"),
        ("stopped", "Stopped"),
        ("en_route_to_shop", "En Route To Shop"),
    )

    # A drone in one of these states is bound to exactly one active assignment
    BOUND_STATUSES = ("assigned", "launched", "in_flight")
    AIRBORNE_STATUSES = ("launched", "in_flight", "returning", "en_route_to_shop")

    drone_id = models.CharField(max_length=50, unique=True)
    battery = models.PositiveSmallIntegerField(
        default=100,
        validators=[MinValueValidator(0), MaxValueValidator(100)],
    )
    latitude = models.FloatField(default=0)
    longitude = models.FloatField(default=0)
    altitude = models.FloatField(default=0)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="idle", db_index=True)
    destination = models.CharField(max_length=255, blank=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["drone_id"]
        indexes = [
            models.Index(fields=["status", "-battery"]),
        ]

    def __str__(self):
        return f"{self.drone_id} ({self.status}, {self.battery}%)"

    @property
    def location(self):
        return {"lat": self.latitude, "lng": self.longitude, "altitude": self.altitude}


class DroneOrder(models.Model):
    STATUS_CHOICES = (
        ("pending", "Pending"),
        ("weather_blocked", "Weather Blocked"),
        ("assigned", "Assigned"),
        ("preparing", "Preparing"),
        ("drone_dispatched", "Drone Dispatched"),
        ("drone_en_route_to_shop", "Drone En Route To Shop"),
        ("out_for_delivery", "Out For Delivery"),
        ("delivered", "Delivered"),
        ("cancelled", "Cancelled"),
    )

    CANCELLED_BY_CHOICES = (
        ("user", "User"),
        ("seller", "Seller"),
        ("admin", "Admin"),
        ("system", "System"),
    )

    TERMINAL_STATUSES = ("delivered", "cancelled")
    # Statuses a seller or admin may set directly
    MANUAL_STATUSES = ("preparing", "drone_dispatched", "out_for_delivery", "delivered", "cancelled")

    order = models.OneToOneField('orders.Order', on_delete=models.CASCADE, related_name="drone_order")
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="drone_orders")
    seller = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="seller_drone_orders",
    )

    qr_code = models.CharField(max_length=64, unique=True)
    qr_expires_at = models.DateTimeField(null=True, blank=True)

    status = models.CharField(max_length=30, choices=STATUS_CHOICES, default="pending")
    drone = models.ForeignKey(
        Drone,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="drone_orders",
    )

    # wind_speed, rain_probability, visibility, weather_condition, is_safe, checked_at, error
    weather_check = models.JSONField(default=dict, blank=True)

    pickup_location = models.JSONField(default=dict, blank=True)
    delivery_location = models.JSONField(default=dict, blank=True)
    current_location = models.JSONField(default=dict, blank=True)
    shop_location = models.JSONField(default=dict, blank=True)

    estimated_delivery_time = models.DateTimeField(null=True, blank=True)
    actual_delivery_time = models.DateTimeField(null=True, blank=True)

    cancelled_by = models.CharField(max_length=10, choices=CANCELLED_BY_CHOICES, blank=True, null=True)
    cancellation_reason = models.TextField(blank=True)
    admin_notes = models.TextField(blank=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "-created_at"]),
            models.Index(fields=["user", "-created_at"]),
            models.Index(fields=["drone", "status"]),
        ]

    def __str__(self):
        return f"DroneOrder #{self.id} for Order #{self.order_id} ({self.status})"

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES


class DroneAssignment(models.Model):
    """
    Ledger row binding a drone to an order. One row per order; rebinding
    overwrites it and releasing stamps released_at.
    """
    STATUS_CHOICES = (
        ("assigned", "Assigned"),
        ("released", "Released"),
    )

    order = models.OneToOneField('orders.Order', on_delete=models.CASCADE, related_name="drone_assignment")
    drone = models.ForeignKey(Drone, on_delete=models.PROTECT, related_name="assignments")

    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default="assigned")
    assigned_at = models.DateTimeField(default=timezone.now)
    released_at = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(
                fields=["drone", "status"],
                name="active_drone_assignment_idx",
                condition=Q(status="assigned"),
            ),
        ]

    def __str__(self):
        return f"{self.drone.drone_id} -> Order #{self.order_id} ({self.status})"

    @property
    def is_active(self):
        return self.status == "assigned" and self.released_at is None
