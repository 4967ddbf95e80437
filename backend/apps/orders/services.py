import logging
from decimal import Decimal

from django.db import DatabaseError, transaction

from apps.accounts.actors import Actor
from apps.audit.services import AuditService
from apps.notifications.services import NotificationService
from apps.shops.models import Shop
from apps.utils.exceptions import BusinessLogicException, Forbidden, InvalidState, NotFound

from .models import Order, OrderShop

logger = logging.getLogger(__name__)


def _has_coordinates(location):
    return bool(location) and location.get("lat") is not None and location.get("lng") is not None


class OrderService:

    @staticmethod
    def create_order(user, shop_lines, delivery_type="regular", delivery_location=None,
                     pickup_location=None, coordinator=None):
        """
        Places an order across one or more shops.

        Drone orders get their DroneOrder inside a savepoint; when that setup
        fails the order still goes through as a regular delivery with
        fallback_reason='drone_setup_failed'.
        """
        if delivery_type not in dict(Order.DELIVERY_TYPE_CHOICES):
            raise BusinessLogicException(f"Unknown delivery type '{delivery_type}'", code="invalid_delivery_type")
        if not shop_lines:
            raise BusinessLogicException("An order needs at least one shop", code="empty_order")
        if delivery_type == "drone" and not (_has_coordinates(delivery_location) and _has_coordinates(pickup_location)):
            raise InvalidState(
                "Drone delivery requires pickup and delivery coordinates",
                code="missing_coordinates",
            )

        shop_ids = [line["shop_id"] for line in shop_lines]
        shops = Shop.objects.in_bulk(shop_ids)
        missing = [sid for sid in shop_ids if sid not in shops or not shops[sid].is_active]
        if missing:
            raise NotFound(f"Shop(s) not found or inactive: {missing}", code="shop_not_found")

        with transaction.atomic():
            # 1. Order + per-shop slices
            order = Order.objects.create(
                user=user,
                delivery_type=delivery_type,
                delivery_location=delivery_location or {},
                pickup_location=pickup_location or {},
                total_amount=sum((Decimal(str(line.get("subtotal", 0))) for line in shop_lines), Decimal("0.00")),
            )
            OrderShop.objects.bulk_create([
                OrderShop(order=order, shop=shops[line["shop_id"]], subtotal=line.get("subtotal", 0))
                for line in shop_lines
            ])

            # 2. Drone setup (isolated)
            if delivery_type == "drone":
                OrderService._attach_drone_order(order, user, pickup_location, delivery_location, coordinator)

            AuditService.order_created(order)

            NotificationService.notify(
                user, "success",
                "Order Placed", f"Your order #{order.id} has been placed.",
                {"order_id": order.id, "delivery_type": order.delivery_type},
            )

        logger.info(f"Order {order.id} created for user {user.id} ({order.delivery_type})")
        return order

    @staticmethod
    def _attach_drone_order(order, user, pickup_location, delivery_location, coordinator=None):
        if coordinator is None:
            from apps.drones.services import get_dispatch_coordinator
            coordinator = get_dispatch_coordinator()

        try:
            with transaction.atomic():
                coordinator.create_drone_order(
                    order.id,
                    Actor.from_user(user),
                    pickup_location=pickup_location,
                    delivery_location=delivery_location,
                )
        except (BusinessLogicException, DatabaseError) as e:
            logger.warning(f"Drone setup failed for order {order.id}, falling back to regular: {e}")
            order.delivery_type = "regular"
            order.fallback_reason = "drone_setup_failed"
            order.save(update_fields=["delivery_type", "fallback_reason", "updated_at"])
            return None

        order.refresh_from_db()
        return order.drone_order

    @staticmethod
    def get_order_for(order_id, actor):
        order = (
            Order.objects.select_related("user")
            .prefetch_related("shops__shop")
            .filter(id=order_id)
            .first()
        )
        if order is None:
            raise NotFound("Order not found", code="order_not_found")

        if actor.is_admin or actor.is_user(order.user_id):
            return order
        if any(actor.is_user(slice_.shop.seller_id) for slice_ in order.shops.all()):
            return order
        raise Forbidden("You do not have access to this order")

    @staticmethod
    def update_shop_status(order_id, shop_id, actor, status, cancel_reason=""):
        with transaction.atomic():
            order_shop = (
                OrderShop.objects.select_for_update()
                .select_related("shop", "order__user")
                .filter(order_id=order_id, shop_id=shop_id)
                .first()
            )
            if order_shop is None:
                raise NotFound("Shop is not part of this order", code="order_shop_not_found")
            if not (actor.is_admin or actor.is_user(order_shop.shop.seller_id)):
                raise Forbidden("Only this shop's seller can update its status")
            if not order_shop.can_move_to(status):
                raise InvalidState(
                    f"Cannot move shop order from {order_shop.status} to {status}",
                    code="invalid_transition",
                )

            order_shop.status = status
            if status == "cancelled":
                order_shop.cancel_reason = cancel_reason
            order_shop.save(update_fields=["status", "cancel_reason", "updated_at"])

            NotificationService.notify(
                order_shop.order.user, "warning" if status == "cancelled" else "info",
                "Order Update", f"{order_shop.shop.name}: your order is now {order_shop.get_status_display()}.",
                {"order_id": order_id, "shop_id": shop_id, "status": status},
            )

        return order_shop
