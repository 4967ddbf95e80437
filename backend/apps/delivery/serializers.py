from rest_framework import serializers

from apps.drones.serializers import LocationSerializer
from .models import Delivery


class DeliverySerializer(serializers.ModelSerializer):
    shop_name = serializers.CharField(source="shop.name", read_only=True)

    class Meta:
        model = Delivery
        fields = (
            "id",
            "order",
            "shop",
            "shop_name",
            "delivery_mode",
            "status",
            "eta_minutes",
            "delivery_partner",
            "current_location",
            "route",
            "status_history",
            "notes",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields


class DeliveryWithQrSerializer(DeliverySerializer):
    """
    Includes the handover token. Only for the debug QR helper.
    """
    class Meta(DeliverySerializer.Meta):
        fields = DeliverySerializer.Meta.fields + ("qr_code", "qr_expiry")
        read_only_fields = fields


class DeliveryUpsertSerializer(serializers.Serializer):
    shop_id = serializers.IntegerField()
    status = serializers.ChoiceField(choices=Delivery.STATUS_CHOICES, required=False)
    location = LocationSerializer(required=False)
    eta_minutes = serializers.IntegerField(min_value=0, required=False)
    partner = serializers.CharField(max_length=100, required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)
    delivery_mode = serializers.ChoiceField(choices=Delivery.MODE_CHOICES, required=False)


class DeliveryQrVerifySerializer(serializers.Serializer):
    qr_code = serializers.CharField(max_length=64)
    order_id = serializers.IntegerField()


class DeliveryCompleteSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, allow_blank=True)
