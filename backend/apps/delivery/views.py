# apps/delivery/views.py
from rest_framework import generics
from rest_framework.pagination import PageNumberPagination
from rest_framework.permissions import IsAuthenticated, IsAdminUser
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.accounts.actors import Actor
from apps.accounts.permissions import IsSellerOrAdmin
from .serializers import (
    DeliveryCompleteSerializer,
    DeliveryQrVerifySerializer,
    DeliverySerializer,
    DeliveryUpsertSerializer,
    DeliveryWithQrSerializer,
)
from .services import DeliveryService


class DeliveryPagination(PageNumberPagination):
    page_size = 20
    page_size_query_param = 'page_size'
    max_page_size = 100


class OrderDeliveryAPIView(APIView):
    """
    GET (customer): tracking rows for the order, `?shop_id=` narrows.
    POST (seller/admin): create or update one shop's delivery.
    """

    def get_permissions(self):
        if self.request.method == "POST":
            return [IsSellerOrAdmin()]
        return [IsAuthenticated()]

    def get(self, request, order_id):
        qs = DeliveryService.get_deliveries(
            order_id,
            Actor.from_user(request.user),
            shop_id=request.query_params.get("shop_id"),
        )
        return Response(DeliverySerializer(qs, many=True).data)

    def post(self, request, order_id):
        serializer = DeliveryUpsertSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        delivery = DeliveryService.upsert_delivery(
            order_id,
            data["shop_id"],
            Actor.from_user(request.user),
            status=data.get("status"),
            location=data.get("location"),
            eta_minutes=data.get("eta_minutes"),
            partner=data.get("partner"),
            notes=data.get("notes"),
            delivery_mode=data.get("delivery_mode"),
        )
        return Response(DeliverySerializer(delivery).data)


class DeliveryQrVerifyAPIView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = DeliveryQrVerifySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        delivery = DeliveryService.verify_qr_delivery(
            serializer.validated_data["qr_code"],
            serializer.validated_data["order_id"],
            Actor.from_user(request.user),
        )
        return Response(DeliverySerializer(delivery).data)


class AdminDeliveryListAPIView(generics.ListAPIView):
    permission_classes = [IsAdminUser]
    serializer_class = DeliverySerializer
    pagination_class = DeliveryPagination

    def get_queryset(self):
        params = self.request.query_params
        return DeliveryService.list_deliveries(status=params.get("status"), mode=params.get("mode"))


class AdminDeliveryCompleteAPIView(APIView):
    permission_classes = [IsAdminUser]

    def post(self, request, delivery_id):
        serializer = DeliveryCompleteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        delivery = DeliveryService.mark_delivery_completed(
            delivery_id,
            notes=serializer.validated_data.get("notes"),
            actor=Actor.from_user(request.user),
        )
        return Response(DeliverySerializer(delivery).data)


class GenerateTestQrAPIView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, order_id):
        delivery = DeliveryService.generate_test_qr(order_id)
        return Response(DeliveryWithQrSerializer(delivery).data)
