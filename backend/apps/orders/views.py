# apps/orders/views.py
from rest_framework import status
from rest_framework.pagination import PageNumberPagination
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.accounts.actors import Actor
from .models import Order
from .serializers import CreateOrderSerializer, OrderSerializer, OrderShopSerializer, ShopStatusSerializer
from .services import OrderService


class OrderPagination(PageNumberPagination):
    page_size = 10
    page_size_query_param = 'page_size'
    max_page_size = 50


class OrderListCreateAPIView(APIView):
    """
    GET: the user's orders, newest first. POST: place an order.
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        qs = (
            Order.objects.filter(user=request.user)
            .select_related("drone_order")
            .prefetch_related("shops__shop")
            .order_by("-created_at")
        )
        paginator = OrderPagination()
        page = paginator.paginate_queryset(qs, request)
        return paginator.get_paginated_response(OrderSerializer(page, many=True).data)

    def post(self, request):
        serializer = CreateOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        order = OrderService.create_order(
            request.user,
            data["shops"],
            delivery_type=data["delivery_type"],
            delivery_location=data.get("delivery_location"),
            pickup_location=data.get("pickup_location"),
        )
        return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)


class OrderDetailAPIView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, order_id):
        order = OrderService.get_order_for(order_id, Actor.from_user(request.user))
        return Response(OrderSerializer(order).data)


class ShopOrderStatusAPIView(APIView):
    """
    Seller: move their shop's slice of an order through its workflow.
    """
    permission_classes = [IsAuthenticated]

    def patch(self, request, order_id, shop_id):
        serializer = ShopStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order_shop = OrderService.update_shop_status(
            order_id,
            shop_id,
            Actor.from_user(request.user),
            serializer.validated_data["status"],
            cancel_reason=serializer.validated_data["cancel_reason"],
        )
        return Response(OrderShopSerializer(order_shop).data)
