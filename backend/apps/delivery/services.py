import logging
from datetime import timedelta

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from apps.audit.services import AuditService
from apps.drones.events import ChannelsEventPublisher, DELIVERY_UPDATE, order_room
from apps.drones.qr import QrIssuer
from apps.notifications.services import NotificationService
from apps.orders.models import Order, OrderShop
from apps.utils.exceptions import Forbidden, InvalidState, NotFound

from .models import Delivery

logger = logging.getLogger(__name__)


class DeliveryService:
    publisher = ChannelsEventPublisher()
    qr_issuer = QrIssuer()

    @staticmethod
    def _broadcast(delivery):
        from .serializers import DeliverySerializer
        DeliveryService.publisher.publish(
            order_room(delivery.order_id),
            DELIVERY_UPDATE,
            {"order_id": delivery.order_id, "delivery": DeliverySerializer(delivery).data},
        )

    @staticmethod
    def _stamp_order(order, **fields):
        for field, value in fields.items():
            setattr(order, field, value)
        order.save(update_fields=list(fields) + ["updated_at"])

    @staticmethod
    def upsert_delivery(order_id, shop_id, actor, status=None, location=None, eta_minutes=None,
                        partner=None, notes=None, delivery_mode=None):
        """
        Creates or updates the delivery row for one shop of an order.
        Seller of that shop or platform admin only.
        """
        with transaction.atomic():
            order_shop = (
                OrderShop.objects.select_related("shop", "order__user")
                .filter(order_id=order_id, shop_id=shop_id)
                .first()
            )
            if order_shop is None:
                raise NotFound("Shop is not part of this order", code="order_shop_not_found")
            if not (actor.is_admin or actor.is_user(order_shop.shop.seller_id)):
                raise Forbidden("Only this shop's seller can update its delivery")

            delivery = Delivery.objects.select_for_update().filter(order_id=order_id, shop_id=shop_id).first()
            if delivery is None:
                mode = delivery_mode or "regular"
                token, expiry = (None, None)
                if mode == "drone":
                    token, expiry = DeliveryService.qr_issuer.issue_secure_token()
                delivery = Delivery(
                    order_id=order_id,
                    shop_id=shop_id,
                    delivery_mode=mode,
                    qr_code=token,
                    qr_expiry=expiry,
                )

            changes = {}
            if status:
                delivery.record_status(status, notes or "")
                changes["status"] = status
            if location:
                delivery.record_location(location)
                changes["location"] = location
            if eta_minutes is not None:
                delivery.eta_minutes = eta_minutes
                changes["eta_minutes"] = eta_minutes
            if partner:
                delivery.delivery_partner = partner
                changes["partner"] = partner
            if notes:
                delivery.notes = notes
            delivery.save()

            # Mirror onto the order
            order = order_shop.order
            order_fields = {}
            if status:
                order_fields["delivery_status"] = status
            if partner:
                order_fields["delivery_partner"] = partner
            if eta_minutes is not None:
                order_fields["eta_minutes"] = eta_minutes
                order_fields["estimated_delivery_time"] = timezone.now() + timedelta(minutes=eta_minutes)
            if status == "delivered":
                order_fields["actual_delivery_time"] = timezone.now()
            if order_fields:
                DeliveryService._stamp_order(order, **order_fields)

            AuditService.delivery_updated(delivery, actor, changes)

            if status == "delivered":
                NotificationService.notify(
                    order.user, "success",
                    "Order Delivered", "Your order has been delivered successfully!",
                    {"order_id": order.id, "shop_id": shop_id},
                )

        DeliveryService._broadcast(delivery)
        return delivery

    @staticmethod
    def get_deliveries(order_id, actor, shop_id=None):
        order = Order.objects.filter(id=order_id).first()
        if order is None or not actor.is_user(order.user_id):
            raise Forbidden("You can only view your own orders")

        qs = Delivery.objects.select_related("shop").filter(order=order).order_by("created_at")
        if shop_id:
            qs = qs.filter(shop_id=shop_id)
        return qs

    @staticmethod
    def list_deliveries(status=None, mode=None):
        qs = Delivery.objects.select_related("shop", "order").order_by("-created_at")
        if status:
            qs = qs.filter(status=status)
        if mode:
            qs = qs.filter(delivery_mode=mode)
        return qs

    @staticmethod
    def mark_delivery_completed(delivery_id, notes=None, actor=None):
        with transaction.atomic():
            delivery = Delivery.objects.select_for_update().select_related("order").filter(id=delivery_id).first()
            if delivery is None:
                raise NotFound("Delivery not found", code="delivery_not_found")

            delivery.record_status("delivered", notes or "Marked as delivered by admin")
            if notes:
                delivery.notes = notes
            delivery.save()

            DeliveryService._stamp_order(
                delivery.order,
                delivery_status="delivered",
                actual_delivery_time=timezone.now(),
            )
            AuditService.delivery_completed(delivery, actor.audit_user() if actor else None)

        DeliveryService._broadcast(delivery)
        return delivery

    @staticmethod
    def verify_qr_delivery(qr_code, order_id, actor):
        with transaction.atomic():
            delivery = (
                Delivery.objects.select_for_update()
                .select_related("order__user")
                .filter(order_id=order_id, qr_code=qr_code, delivery_mode="drone")
                .first()
            )
            if delivery is None:
                raise NotFound("QR code not found or invalid", code="qr_not_found")
            if not actor.is_user(delivery.order.user_id):
                raise Forbidden("You can only verify your own deliveries")
            if DeliveryService.qr_issuer.is_expired(delivery.qr_expiry):
                raise InvalidState("QR code has expired", code="qr_expired")
            if delivery.status == "delivered":
                raise InvalidState("This delivery has already been completed", code="already_delivered")

            delivery.record_status("delivered", "Delivered via QR verification")
            delivery.save()

            DeliveryService._stamp_order(
                delivery.order,
                delivery_status="delivered",
                actual_delivery_time=timezone.now(),
            )
            AuditService.qr_verified(delivery.id, order_id, actor.audit_user())

            NotificationService.notify(
                delivery.order.user, "success",
                "Order Delivered", "Your drone delivery has been completed successfully!",
                {"order_id": order_id, "delivery_id": delivery.id},
            )

        DeliveryService._broadcast(delivery)
        return delivery

    @staticmethod
    def generate_test_qr(order_id):
        """
        Development helper: puts the order's first shop delivery into drone
        mode with a fresh token. Refused outside DEBUG.
        """
        if not settings.DEBUG:
            raise Forbidden("Test QR generation is only available in DEBUG mode")

        with transaction.atomic():
            order = Order.objects.select_for_update().filter(id=order_id).first()
            if order is None:
                raise NotFound("Order not found", code="order_not_found")
            first_slice = order.shops.order_by("id").first()
            if first_slice is None:
                raise InvalidState("Order has no shops", code="empty_order")

            token, expiry = DeliveryService.qr_issuer.issue_secure_token()
            delivery, _ = Delivery.objects.update_or_create(
                order=order,
                shop_id=first_slice.shop_id,
                defaults={
                    "delivery_mode": "drone",
                    "status": "nearby",
                    "qr_code": token,
                    "qr_expiry": expiry,
                },
            )
            DeliveryService._stamp_order(order, delivery_status="nearby")

        logger.info(f"Test QR generated for order {order_id}")
        return delivery
