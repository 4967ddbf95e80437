# apps/notifications/models.py
from django.db import models
from django.utils import timezone
from django.conf import settings


class Notification(models.Model):
    TYPE_CHOICES = (
        ("success", "Success"),
        ("error", "Error"),
        ("warning", "Warning"),
        ("info", "Info"),
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="notifications",
    )

    type = models.CharField(max_length=10, choices=TYPE_CHOICES, default="info")
    title = models.CharField(max_length=100)
    message = models.TextField()
    metadata = models.JSONField(default=dict, blank=True)

    is_read = models.BooleanField(default=False)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        indexes = [
            models.Index(fields=["user", "is_read", "-created_at"]),
        ]

    def __str__(self):
        return f"{self.type}: {self.title} -> {self.user_id}"
