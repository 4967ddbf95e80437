from rest_framework import serializers
from .models import AuditLog


class AuditLogSerializer(serializers.ModelSerializer):
    user_phone = serializers.CharField(source="user.phone", read_only=True, default=None)
    action_display = serializers.CharField(source="get_action_display", read_only=True)

    class Meta:
        model = AuditLog
        fields = (
            "id",
            "action",
            "action_display",
            "reference_id",
            "user",
            "user_phone",
            "metadata",
            "created_at",
        )
        read_only_fields = fields
