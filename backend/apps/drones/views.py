# apps/drones/views.py
from rest_framework import generics, status
from rest_framework.pagination import PageNumberPagination
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.accounts.actors import Actor
from apps.accounts.permissions import IsSeller, IsSellerOrAdmin
from .serializers import (
    AdminDroneOrderSerializer,
    CallDroneToShopSerializer,
    CancelDroneOrderSerializer,
    CreateDroneOrderSerializer,
    DroneOrderSerializer,
    DroneOrderStatusUpdateSerializer,
    DroneRegisterSerializer,
    DroneSerializer,
    DroneTelemetrySerializer,
    VerifyQrSerializer,
)
from .services import DroneRegistryService, get_dispatch_coordinator


class DispatchPagination(PageNumberPagination):
    page_size = 10
    page_size_query_param = 'page_size'
    max_page_size = 100


# ---------------------------------------------------------------------------
# Customer
# ---------------------------------------------------------------------------
class CreateDroneOrderAPIView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = CreateDroneOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        drone_order = get_dispatch_coordinator().create_drone_order(
            data["order_id"],
            Actor.from_user(request.user),
            pickup_location=data["pickup_location"],
            delivery_location=data["delivery_location"],
        )
        return Response(
            {
                "drone_order": DroneOrderSerializer(drone_order).data,
                "weather_safe": drone_order.weather_check.get("is_safe", False),
            },
            status=status.HTTP_201_CREATED,
        )


class DroneOrderByOrderAPIView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, order_id):
        drone_order = get_dispatch_coordinator().get_drone_order_status(order_id, Actor.from_user(request.user))
        return Response(DroneOrderSerializer(drone_order).data)


class DroneStatusByOrderAPIView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, order_id):
        drone, drone_order = get_dispatch_coordinator().get_drone_status_by_order(
            order_id, Actor.from_user(request.user)
        )
        if drone is None:
            return Response({"drone": None})
        return Response({
            "drone": DroneSerializer(drone).data,
            "drone_order": DroneOrderSerializer(drone_order).data,
        })


class VerifyQrDeliveryAPIView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = VerifyQrSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        drone_order = get_dispatch_coordinator().verify_qr_delivery(
            serializer.validated_data["qr_code"],
            Actor.from_user(request.user),
            order_id=serializer.validated_data.get("order_id"),
        )
        return Response({
            "status": "delivered",
            "order_id": drone_order.order_id,
            "delivered_at": drone_order.actual_delivery_time,
        })


class CancelDroneDeliveryAPIView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, drone_order_id):
        serializer = CancelDroneOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        drone_order = get_dispatch_coordinator().cancel_drone_delivery(
            drone_order_id,
            serializer.validated_data["reason"],
            Actor.from_user(request.user),
        )
        return Response(DroneOrderSerializer(drone_order).data)


# ---------------------------------------------------------------------------
# Seller / Admin
# ---------------------------------------------------------------------------
class UpdateDroneOrderStatusAPIView(APIView):
    permission_classes = [IsSellerOrAdmin]

    def patch(self, request, drone_order_id):
        serializer = DroneOrderStatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        drone_order = get_dispatch_coordinator().update_drone_order_status(
            drone_order_id,
            Actor.from_user(request.user),
            data["status"],
            drone_id=data.get("drone_id") or None,
            admin_notes=data.get("admin_notes"),
        )
        return Response(DroneOrderSerializer(drone_order).data)


class CallDroneToShopAPIView(APIView):
    permission_classes = [IsSeller]

    def post(self, request):
        serializer = CallDroneToShopSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        drone_order = get_dispatch_coordinator().call_drone_to_shop(
            data["order_id"],
            data["shop_id"],
            Actor.from_user(request.user),
            shop_location=data.get("shop_location"),
        )
        return Response({
            "drone": DroneSerializer(drone_order.drone).data,
            "drone_order": DroneOrderSerializer(drone_order).data,
        })


# ---------------------------------------------------------------------------
# Admin: fleet and dispatch
# ---------------------------------------------------------------------------
class AdminDroneOrderListAPIView(generics.ListAPIView):
    """
    Admin: all drone orders, newest first. `?status=` filters.
    """
    permission_classes = [IsAdminUser]
    serializer_class = AdminDroneOrderSerializer
    pagination_class = DispatchPagination

    def get_queryset(self):
        return get_dispatch_coordinator().list_drone_orders(self.request.query_params.get("status"))


class AdminFleetAPIView(generics.ListAPIView):
    """
    Admin: list the fleet (GET) or register a drone (POST).
    """
    permission_classes = [IsAdminUser]
    serializer_class = DroneSerializer
    pagination_class = DispatchPagination

    def get_queryset(self):
        return get_dispatch_coordinator().list_drones(self.request.query_params.get("status"))

    def post(self, request):
        serializer = DroneRegisterSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        drone = DroneRegistryService.register(**serializer.validated_data)
        return Response(DroneSerializer(drone).data, status=status.HTTP_201_CREATED)


class AdminDroneTelemetryAPIView(APIView):
    permission_classes = [IsAdminUser]

    def patch(self, request, drone_id):
        serializer = DroneTelemetrySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        drone = DroneRegistryService.update_status(drone_id, **serializer.validated_data)
        return Response(DroneSerializer(drone).data)


class AssignDroneAPIView(APIView):
    permission_classes = [IsAdminUser]

    def post(self, request, order_id):
        drone_order = get_dispatch_coordinator().assign(order_id)
        return Response({
            "drone": DroneSerializer(drone_order.drone).data,
            "drone_order": DroneOrderSerializer(drone_order).data,
        })


class LaunchDroneAPIView(APIView):
    permission_classes = [IsAdminUser]

    def post(self, request, order_id):
        result = get_dispatch_coordinator().launch(order_id)
        body = {
            "message": result.message,
            "weather": result.weather.to_dict(),
            "drone_order": DroneOrderSerializer(result.drone_order).data,
        }
        if result.fallback:
            body["fallback"] = result.fallback
            body["reason"] = result.reason
        else:
            body["drone"] = DroneSerializer(result.drone_order.drone).data
        return Response(body)


class LandDroneAPIView(APIView):
    permission_classes = [IsAdminUser]

    def post(self, request, drone_id):
        drone = get_dispatch_coordinator().land(drone_id)
        return Response({"drone": DroneSerializer(drone).data})


class ReturnDroneAPIView(APIView):
    permission_classes = [IsAdminUser]

    def post(self, request, drone_id):
        drone = get_dispatch_coordinator().return_to_base(drone_id)
        return Response({"drone": DroneSerializer(drone).data})


class EmergencyStopAPIView(APIView):
    permission_classes = [IsAdminUser]

    def post(self, request, drone_id):
        drone = get_dispatch_coordinator().emergency_stop(drone_id)
        return Response({"drone": DroneSerializer(drone).data, "message": "Emergency stop executed"})


class DroneStatusAPIView(APIView):
    permission_classes = [IsAdminUser]

    def get(self, request, drone_id):
        report = get_dispatch_coordinator().get_drone_status(drone_id)
        body = {"drone": DroneSerializer(report.drone).data}
        if report.toast_type:
            body["toast_type"] = report.toast_type
            body["message"] = "Drone battery low; delivery may be delayed."
        return Response(body)
