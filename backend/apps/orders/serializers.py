# apps/orders/serializers.py
from rest_framework import serializers

from apps.drones.serializers import LocationSerializer
from .models import Order, OrderShop


class OrderShopSerializer(serializers.ModelSerializer):
    shop_name = serializers.CharField(source="shop.name", read_only=True)

    class Meta:
        model = OrderShop
        fields = ("shop", "shop_name", "status", "cancel_reason", "subtotal", "updated_at")


class OrderSerializer(serializers.ModelSerializer):
    shops = OrderShopSerializer(many=True, read_only=True)
    drone_order = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = (
            "id",
            "delivery_type",
            "fallback_reason",
            "delivery_status",
            "total_amount",
            "delivery_location",
            "pickup_location",
            "delivery_partner",
            "eta_minutes",
            "estimated_delivery_time",
            "actual_delivery_time",
            "shops",
            "drone_order",
            "created_at",
        )
        read_only_fields = fields

    def get_drone_order(self, obj):
        drone_order = getattr(obj, "drone_order", None)
        if drone_order is None:
            return None
        return {"id": drone_order.id, "status": drone_order.status, "qr_code": drone_order.qr_code}


class OrderLineSerializer(serializers.Serializer):
    shop_id = serializers.IntegerField()
    subtotal = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, default=0)


class CreateOrderSerializer(serializers.Serializer):
    shops = OrderLineSerializer(many=True, allow_empty=False)
    delivery_type = serializers.ChoiceField(choices=Order.DELIVERY_TYPE_CHOICES, default="regular")
    delivery_location = LocationSerializer(required=False)
    pickup_location = LocationSerializer(required=False)


class ShopStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=OrderShop.STATUS_CHOICES)
    cancel_reason = serializers.CharField(required=False, allow_blank=True, default="")
