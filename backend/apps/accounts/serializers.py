# apps/accounts/serializers.py
from rest_framework import serializers
from .models import User, UserRole


class UserSerializer(serializers.ModelSerializer):
    roles = serializers.SlugRelatedField(many=True, read_only=True, slug_field="role")

    class Meta:
        model = User
        fields = (
            "id",
            "phone",
            "email",
            "first_name",
            "last_name",
            "is_active",
            "is_staff",
            "roles",
            "created_at"
        )
        read_only_fields = ("id", "phone", "is_active", "is_staff", "created_at")


class UserSummarySerializer(serializers.ModelSerializer):
    """
    Compact embed for dashboards (drone order lists, deliveries).
    """
    class Meta:
        model = User
        fields = ("id", "phone", "first_name", "last_name")


class UserRoleSerializer(serializers.ModelSerializer):
    class Meta:
        model = UserRole
        fields = ("id", "role")
