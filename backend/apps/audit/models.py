from django.db import models
from django.conf import settings
from django.utils import timezone


class AuditLogQuerySet(models.QuerySet):
    def update(self, **kwargs):
        raise RuntimeError("Audit logs are immutable (bulk update blocked)")

    def delete(self):
        raise RuntimeError("Audit logs are immutable (bulk delete blocked)")


class AuditLogManager(models.Manager):
    def get_queryset(self):
        return AuditLogQuerySet(self.model, using=self._db)


class AuditLog(models.Model):
    """
    Immutable record of dispatch and delivery actions.
    """
    ACTION_CHOICES = (
        ("order_created", "Order Created"),
        ("drone_order_created", "Drone Order Created"),
        ("drone_delivery_status_change", "Drone Delivery Status Change"),
        ("drone_assigned", "Drone Assigned"),
        ("drone_launched", "Drone Launched"),
        ("drone_fallback", "Fallback To Regular Delivery"),
        ("drone_emergency_stop", "Drone Emergency Stop"),
        ("drone_called_to_shop", "Drone Called To Shop"),
        ("drone_order_cancelled", "Drone Order Cancelled"),
        ("qr_code_verified", "QR Code Verified"),
        ("delivery_updated", "Delivery Updated"),
        ("delivery_completed", "Delivery Completed"),
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )

    action = models.CharField(max_length=50, choices=ACTION_CHOICES)

    reference_id = models.CharField(
        max_length=100,
        help_text="Order ID / Drone Order ID / Drone ID / Delivery ID",
    )

    metadata = models.JSONField(default=dict)

    created_at = models.DateTimeField(default=timezone.now)

    objects = AuditLogManager()

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["action"]),
            models.Index(fields=["reference_id"]),
        ]

    def save(self, *args, **kwargs):
        if self.pk:
            raise RuntimeError("Audit logs are immutable (update blocked)")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise RuntimeError("Audit logs are immutable (delete blocked)")

    def __str__(self):
        return f"{self.action} | {self.reference_id}"
