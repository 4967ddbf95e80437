import logging
from django.utils import timezone
from .models import AuditLog

logger = logging.getLogger(__name__)


class AuditService:
    """
    Centralized Audit Logging.
    Writes immutable logs for compliance and debugging.
    """

    @staticmethod
    def log(action, reference_id, user, metadata):
        AuditLog.objects.create(
            user=user,
            action=action,
            reference_id=str(reference_id),
            metadata=metadata,
            created_at=timezone.now()
        )

    @staticmethod
    def order_created(order):
        AuditService.log(
            action="order_created",
            reference_id=order.id,
            user=order.user,
            metadata={
                "amount": str(order.total_amount),
                "delivery_type": order.delivery_type,
                "fallback_reason": order.fallback_reason,
            },
        )

    @staticmethod
    def drone_order_created(drone_order):
        AuditService.log(
            action="drone_order_created",
            reference_id=drone_order.id,
            user=drone_order.user,
            metadata={
                "order_id": drone_order.order_id,
                "status": drone_order.status,
                "is_safe": drone_order.weather_check.get("is_safe"),
            },
        )

    @staticmethod
    def drone_status_changed(drone_order, actor, old_status):
        AuditService.log(
            action="drone_delivery_status_change",
            reference_id=drone_order.id,
            user=actor.audit_user(),
            metadata={
                "order_id": drone_order.order_id,
                "old_status": old_status,
                "new_status": drone_order.status,
                "actor": actor.kind,
            },
        )

    @staticmethod
    def drone_assigned(drone_order, drone):
        AuditService.log(
            action="drone_assigned",
            reference_id=drone_order.id,
            user=None,
            metadata={"order_id": drone_order.order_id, "drone_id": drone.drone_id},
        )

    @staticmethod
    def drone_launched(drone_order, drone):
        AuditService.log(
            action="drone_launched",
            reference_id=drone_order.id,
            user=None,
            metadata={"order_id": drone_order.order_id, "drone_id": drone.drone_id},
        )

    @staticmethod
    def drone_fallback(drone_order, reason):
        AuditService.log(
            action="drone_fallback",
            reference_id=drone_order.id,
            user=None,
            metadata={
                "order_id": drone_order.order_id,
                "reason": reason,
                "weather": drone_order.weather_check,
            },
        )

    @staticmethod
    def drone_emergency_stop(drone, drone_order=None):
        AuditService.log(
            action="drone_emergency_stop",
            reference_id=drone.drone_id,
            user=None,
            metadata={"order_id": drone_order.order_id if drone_order else None},
        )

    @staticmethod
    def drone_called_to_shop(drone_order, drone, shop, actor):
        AuditService.log(
            action="drone_called_to_shop",
            reference_id=drone_order.id,
            user=actor.audit_user(),
            metadata={
                "order_id": drone_order.order_id,
                "drone_id": drone.drone_id,
                "shop_id": shop.id,
                "battery": drone.battery,
            },
        )

    @staticmethod
    def drone_order_cancelled(drone_order, actor):
        AuditService.log(
            action="drone_order_cancelled",
            reference_id=drone_order.id,
            user=actor.audit_user(),
            metadata={
                "order_id": drone_order.order_id,
                "cancelled_by": drone_order.cancelled_by,
                "reason": drone_order.cancellation_reason,
            },
        )

    @staticmethod
    def qr_verified(reference_id, order_id, user):
        AuditService.log(
            action="qr_code_verified",
            reference_id=reference_id,
            user=user,
            metadata={"order_id": order_id, "verified_at": timezone.now().isoformat()},
        )

    @staticmethod
    def delivery_updated(delivery, actor, changes):
        AuditService.log(
            action="delivery_updated",
            reference_id=delivery.id,
            user=actor.audit_user(),
            metadata={"order_id": delivery.order_id, "shop_id": delivery.shop_id, "changes": changes},
        )

    @staticmethod
    def delivery_completed(delivery, user=None):
        AuditService.log(
            action="delivery_completed",
            reference_id=delivery.id,
            user=user,
            metadata={"order_id": delivery.order_id, "shop_id": delivery.shop_id},
        )
