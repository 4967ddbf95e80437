from rest_framework import serializers

from apps.accounts.serializers import UserSummarySerializer
from .models import Drone, DroneOrder, DroneAssignment


class LocationSerializer(serializers.Serializer):
    lat = serializers.FloatField(min_value=-90, max_value=90)
    lng = serializers.FloatField(min_value=-180, max_value=180)
    address = serializers.CharField(required=False, allow_blank=True)


class DroneSerializer(serializers.ModelSerializer):
    class Meta:
        model = Drone
        fields = (
            "id",
            "drone_id",
            "battery",
            "latitude",
            "longitude",
            "altitude",
            "status",
            "destination",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields


class DroneRegisterSerializer(serializers.Serializer):
    drone_id = serializers.CharField(max_length=50)
    battery = serializers.IntegerField(min_value=0, max_value=100, default=100)
    latitude = serializers.FloatField(min_value=-90, max_value=90, default=0)
    longitude = serializers.FloatField(min_value=-180, max_value=180, default=0)
    altitude = serializers.FloatField(min_value=0, default=0)


class DroneTelemetrySerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Drone.STATUS_CHOICES, required=False)
    battery = serializers.IntegerField(min_value=0, max_value=100, required=False)
    latitude = serializers.FloatField(min_value=-90, max_value=90, required=False)
    longitude = serializers.FloatField(min_value=-180, max_value=180, required=False)
    altitude = serializers.FloatField(min_value=0, required=False)


class DroneOrderSerializer(serializers.ModelSerializer):
    drone = DroneSerializer(read_only=True)

    class Meta:
        model = DroneOrder
        fields = (
            "id",
            "order",
            "qr_code",
            "qr_expires_at",
            "status",
            "drone",
            "weather_check",
            "pickup_location",
            "delivery_location",
            "current_location",
            "shop_location",
            "estimated_delivery_time",
            "actual_delivery_time",
            "cancelled_by",
            "cancellation_reason",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields


class AdminDroneOrderSerializer(DroneOrderSerializer):
    user = UserSummarySerializer(read_only=True)
    seller = UserSummarySerializer(read_only=True)

    class Meta(DroneOrderSerializer.Meta):
        fields = DroneOrderSerializer.Meta.fields + ("user", "seller", "admin_notes")
        read_only_fields = fields


class DroneAssignmentSerializer(serializers.ModelSerializer):
    drone_id = serializers.CharField(source="drone.drone_id", read_only=True)

    class Meta:
        model = DroneAssignment
        fields = ("id", "order", "drone_id", "status", "assigned_at", "released_at", "notes")
        read_only_fields = fields


class CreateDroneOrderSerializer(serializers.Serializer):
    order_id = serializers.IntegerField()
    pickup_location = LocationSerializer()
    delivery_location = LocationSerializer()


class DroneOrderStatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=DroneOrder.MANUAL_STATUSES)
    drone_id = serializers.CharField(max_length=50, required=False, allow_blank=True)
    admin_notes = serializers.CharField(required=False, allow_blank=True)


class CancelDroneOrderSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class VerifyQrSerializer(serializers.Serializer):
    qr_code = serializers.CharField(max_length=64)
    order_id = serializers.IntegerField(required=False)


class CallDroneToShopSerializer(serializers.Serializer):
    order_id = serializers.IntegerField()
    shop_id = serializers.IntegerField()
    shop_location = LocationSerializer(required=False)
