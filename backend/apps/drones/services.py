# apps/drones/services.py
import logging
from datetime import timedelta

from django.conf import settings
from django.core.cache import cache
from django.db import IntegrityError, transaction
from django.utils import timezone

from apps.audit.services import AuditService
from apps.notifications.services import NotificationService
from apps.orders.models import Order, OrderShop
from apps.utils.exceptions import (
    BusinessLogicException,
    Conflict,
    Forbidden,
    InvalidState,
    NotFound,
    ServiceUnavailable,
)

from .events import ChannelsEventPublisher
from .models import Drone, DroneAssignment, DroneOrder
from .qr import QrIssuer
from .weather import OpenWeatherGate

logger = logging.getLogger(__name__)


class DroneRegistryService:
    """
    Fleet records. Claims are race-safe: a locked scan picks candidates and a
    compare-and-set UPDATE on status decides the winner.
    """
    CLAIM_CANDIDATES = 10
    UPDATABLE_FIELDS = ("status", "altitude", "battery", "latitude", "longitude", "destination")

    @staticmethod
    def get(drone_id):
        try:
            return Drone.objects.get(drone_id=drone_id)
        except Drone.DoesNotExist:
            raise NotFound(f"Drone {drone_id} not found", code="drone_not_found")

    @staticmethod
    def register(drone_id, battery=100, latitude=0, longitude=0, altitude=0):
        try:
            with transaction.atomic():
                drone = Drone.objects.create(
                    drone_id=drone_id,
                    battery=battery,
                    latitude=latitude,
                    longitude=longitude,
                    altitude=altitude,
                )
        except IntegrityError:
            raise Conflict(f"Drone {drone_id} already exists", code="drone_exists")

        logger.info(f"Drone registered: {drone_id}")
        return drone

    @staticmethod
    def update_status(drone_id, **fields):
        """
        Partial update of live telemetry and status. Unknown keys are ignored.
        """
        changes = {k: v for k, v in fields.items() if k in DroneRegistryService.UPDATABLE_FIELDS and v is not None}

        status = changes.get("status")
        if status is not None and status not in dict(Drone.STATUS_CHOICES):
            raise InvalidState(f"Unknown drone status '{status}'", code="invalid_drone_status")

        battery = changes.get("battery")
        if battery is not None and not 0 <= int(battery) <= 100:
            raise InvalidState("Battery must be between 0 and 100", code="invalid_battery")

        drone = DroneRegistryService.get(drone_id)
        for field, value in changes.items():
            setattr(drone, field, value)
        drone.save(update_fields=list(changes) + ["updated_at"])
        return drone

    @staticmethod
    def release_to_idle(drone):
        drone.status = "idle"
        drone.altitude = 0
        drone.destination = ""
        drone.save(update_fields=["status", "altitude", "destination", "updated_at"])
        return drone

    @staticmethod
    def _candidate_ids(**filters):
        return list(
            Drone.objects.filter(status="idle", **filters)
            .order_by("-battery", "id")
            .values_list("id", flat=True)[:DroneRegistryService.CLAIM_CANDIDATES]
        )

    @staticmethod
    def _try_claim(pk, new_status, **extra):
        with transaction.atomic():
            # Rows locked by a competing claim are skipped, not waited on
            locked = Drone.objects.select_for_update(skip_locked=True).filter(id=pk, status="idle").first()
            if locked is None:
                return None

            claimed = Drone.objects.filter(id=pk, status="idle").update(
                status=new_status, updated_at=timezone.now(), **extra
            )
            if not claimed:
                return None

            locked.refresh_from_db()
            return locked

    @staticmethod
    def claim_idle_drone():
        for pk in DroneRegistryService._candidate_ids():
            drone = DroneRegistryService._try_claim(pk, "assigned")
            if drone:
                logger.info(f"Claimed drone {drone.drone_id} ({drone.battery}%)")
                return drone

        raise Conflict("No drones available", code="no_drones_available")

    @staticmethod
    def claim_drone_for_pickup(destination):
        candidates = DroneRegistryService._candidate_ids(battery__gt=settings.DRONE_PICKUP_MIN_BATTERY)
        for pk in candidates:
            drone = DroneRegistryService._try_claim(pk, "en_route_to_shop", destination=destination)
            if drone:
                logger.info(f"Drone {drone.drone_id} dispatched to {destination}")
                return drone

        raise ServiceUnavailable(
            "No drones available with sufficient battery",
            code="no_drones_available",
        )


class AssignmentLedger:
    """
    One assignment row per order, upserted on every bind.
    """

    @staticmethod
    def bind(order, drone, notes=""):
        assignment, _ = DroneAssignment.objects.update_or_create(
            order=order,
            defaults={
                "drone": drone,
                "status": "assigned",
                "assigned_at": timezone.now(),
                "released_at": None,
                "notes": notes,
            },
        )
        return assignment

    @staticmethod
    def release_for_drone(drone):
        return DroneAssignment.objects.filter(drone=drone, status="assigned").update(
            status="released", released_at=timezone.now(), updated_at=timezone.now()
        )

    @staticmethod
    def release_for_order(order):
        return DroneAssignment.objects.filter(order=order, status="assigned").update(
            status="released", released_at=timezone.now(), updated_at=timezone.now()
        )

    @staticmethod
    def active_for_order(order):
        return (
            DroneAssignment.objects.select_related("drone")
            .filter(order=order, status="assigned", released_at__isnull=True)
            .first()
        )


class LaunchResult:
    def __init__(self, drone_order, weather, launched, fallback=None, reason=None):
        self.drone_order = drone_order
        self.weather = weather
        self.launched = launched
        self.fallback = fallback
        self.reason = reason

    @property
    def message(self):
        if self.launched:
            return "Drone launched"
        if self.reason == "weather_api_failure":
            return "Launch temporarily unavailable. Weather data not available. Switched to regular delivery."
        return "Drone launch blocked due to unsafe weather conditions. Switched to regular delivery."


class DroneStatusReport:
    def __init__(self, drone, drone_order=None, low_battery=False, alerted=False):
        self.drone = drone
        self.drone_order = drone_order
        self.low_battery = low_battery
        self.alerted = alerted

    @property
    def toast_type(self):
        return "warning" if self.low_battery and self.drone_order is not None else None


class DispatchCoordinator:
    """
    Drives the drone delivery lifecycle.

    Collaborators are injected so tests can swap the weather gate and the
    publisher. Domain violations raise typed errors; notifications and
    websocket pushes are best-effort and never fail an operation.
    """

    def __init__(self, weather_gate=None, qr_issuer=None, publisher=None, notifier=None):
        self.weather_gate = weather_gate or OpenWeatherGate()
        self.qr_issuer = qr_issuer or QrIssuer()
        self.publisher = publisher or ChannelsEventPublisher()
        self.notifier = notifier or NotificationService

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _lock_by_order(order_id):
        drone_order = (
            DroneOrder.objects.select_for_update()
            .select_related("order", "drone")
            .filter(order_id=order_id)
            .first()
        )
        if drone_order is None:
            raise NotFound("Drone order not found", code="drone_order_not_found")
        return drone_order

    @staticmethod
    def _lock_by_id(drone_order_id):
        drone_order = (
            DroneOrder.objects.select_for_update()
            .select_related("order", "drone")
            .filter(id=drone_order_id)
            .first()
        )
        if drone_order is None:
            raise NotFound("Drone order not found", code="drone_order_not_found")
        return drone_order

    @staticmethod
    def _ensure_mutable(drone_order):
        if drone_order.is_terminal:
            raise InvalidState(
                f"Drone order is already {drone_order.status}",
                code="drone_order_terminal",
            )

    @staticmethod
    def _release_for_terminal(drone_order):
        # A drone that has not taken off goes back to the pool
        drone = drone_order.drone
        if drone is not None and drone.status == "assigned":
            DroneRegistryService.release_to_idle(drone)
        AssignmentLedger.release_for_order(drone_order.order)

    @staticmethod
    def _current_order_for_drone(drone):
        return (
            DroneOrder.objects.select_related("user")
            .filter(drone=drone)
            .exclude(status__in=DroneOrder.TERMINAL_STATUSES)
            .order_by("-updated_at")
            .first()
        )

    def _issue_unique_qr(self, order):
        ttl = settings.DRONE_QR_TTL_SECONDS
        while True:
            token, expires_at = self.qr_issuer.issue(order.id, order.user_id, timezone.now(), ttl=ttl)
            if not DroneOrder.objects.filter(qr_code=token).exists():
                return token, expires_at

    def _publish(self, drone_order, type, to_drone=False, **extra):
        payload = {
            "drone_order_id": drone_order.id,
            "status": drone_order.status,
            "drone_id": drone_order.drone.drone_id if drone_order.drone else None,
            **extra,
        }
        self.publisher.to_order(drone_order.order_id, type, **payload)
        if to_drone and drone_order.drone:
            # to_drone carries the drone id itself
            drone_payload = {k: v for k, v in payload.items() if k != "drone_id"}
            self.publisher.to_drone(
                drone_order.drone.drone_id, type, order_id=drone_order.order_id, **drone_payload
            )

    def _alert(self, drone_order, type, title, message, admin_title, admin_message, **metadata):
        metadata = {"order_id": drone_order.order_id, **metadata}
        self.notifier.notify(drone_order.user, type, title, message, metadata)
        self.notifier.notify_admins(type, admin_title, admin_message, metadata)

    # ------------------------------------------------------------------
    # Drone orders
    # ------------------------------------------------------------------
    def create_drone_order(self, order_id, actor, pickup_location, delivery_location):
        if not pickup_location or not delivery_location:
            raise BusinessLogicException(
                "Order ID, delivery location, and pickup location are required",
                code="missing_fields",
            )

        order = Order.objects.filter(id=order_id).first()
        if order is None:
            raise NotFound("Order not found", code="order_not_found")
        if not actor.is_user(order.user_id):
            raise Forbidden("You can only create drone orders for your own orders")
        if DroneOrder.objects.filter(order=order).exists():
            raise Conflict("This order already has a drone delivery scheduled", code="drone_order_exists")

        # 1. Weather gate on the drop point, outside the write transaction
        verdict = self.weather_gate.check(delivery_location.get("lat"), delivery_location.get("lng"))

        # 2. Persist
        qr_code, qr_expires_at = self._issue_unique_qr(order)
        first_slice = order.shops.select_related("shop").order_by("id").first()

        try:
            with transaction.atomic():
                drone_order = DroneOrder.objects.create(
                    order=order,
                    user=order.user,
                    seller=first_slice.shop.seller if first_slice else None,
                    qr_code=qr_code,
                    qr_expires_at=qr_expires_at,
                    status="pending" if verdict.is_safe else "weather_blocked",
                    weather_check=verdict.to_dict(),
                    pickup_location=pickup_location,
                    delivery_location=delivery_location,
                    shop_location=pickup_location,
                )

                order.delivery_type = "drone"
                order.pickup_location = order.pickup_location or pickup_location
                order.delivery_location = order.delivery_location or delivery_location
                order.save(update_fields=["delivery_type", "pickup_location", "delivery_location", "updated_at"])

                AuditService.drone_order_created(drone_order)
        except IntegrityError:
            raise Conflict("This order already has a drone delivery scheduled", code="drone_order_exists")

        logger.info(
            f"Drone order {drone_order.id} created for order {order.id} "
            f"(weather safe={verdict.is_safe})"
        )
        self._publish(drone_order, "created", weather=drone_order.weather_check)
        return drone_order

    def get_drone_order_status(self, order_id, actor):
        drone_order = DroneOrder.objects.select_related("drone").filter(order_id=order_id).first()
        if drone_order is None:
            raise NotFound("Drone order not found", code="drone_order_not_found")
        if not actor.is_user(drone_order.user_id):
            raise Forbidden("You can only view your own drone orders")

        self._publish(drone_order, "status")
        return drone_order

    def update_drone_order_status(self, drone_order_id, actor, status, drone_id=None, admin_notes=None):
        if status not in DroneOrder.MANUAL_STATUSES:
            raise BusinessLogicException(
                f"Status must be one of: {', '.join(DroneOrder.MANUAL_STATUSES)}",
                code="invalid_status",
            )

        with transaction.atomic():
            drone_order = self._lock_by_id(drone_order_id)
            if not (actor.is_admin or actor.is_user(drone_order.seller_id)):
                raise Forbidden("Only the order's seller or an admin can update drone delivery status")
            self._ensure_mutable(drone_order)

            old_status = drone_order.status
            now = timezone.now()
            drone_order.status = status

            if drone_id:
                drone_order.drone = DroneRegistryService.get(drone_id)
            if admin_notes is not None:
                drone_order.admin_notes = admin_notes

            if status == "drone_dispatched":
                drone_order.estimated_delivery_time = now + timedelta(minutes=30)
            elif status == "delivered":
                drone_order.actual_delivery_time = now
                order = drone_order.order
                order.delivery_status = "delivered"
                order.actual_delivery_time = now
                order.save(update_fields=["delivery_status", "actual_delivery_time", "updated_at"])
            elif status == "cancelled":
                drone_order.cancelled_by = "admin" if actor.is_admin else "seller"
                drone_order.cancellation_reason = admin_notes or ""

            drone_order.save()
            if drone_order.is_terminal:
                self._release_for_terminal(drone_order)
            AuditService.drone_status_changed(drone_order, actor, old_status)

        self._publish(drone_order, "status", to_drone=True, previous_status=old_status)
        return drone_order

    def cancel_drone_delivery(self, drone_order_id, reason, actor):
        with transaction.atomic():
            drone_order = self._lock_by_id(drone_order_id)

            relation = actor.relation_to(drone_order.user_id, drone_order.seller_id)
            if relation is None:
                raise Forbidden("You are not allowed to cancel this drone delivery")
            self._ensure_mutable(drone_order)

            drone_order.status = "cancelled"
            drone_order.cancelled_by = relation
            drone_order.cancellation_reason = reason or ""
            drone_order.save()

            self._release_for_terminal(drone_order)

            AuditService.drone_order_cancelled(drone_order, actor)

        logger.info(f"Drone order {drone_order.id} cancelled by {relation}")
        self._publish(drone_order, "status", cancelled_by=relation)
        return drone_order

    def list_drone_orders(self, status=None):
        qs = DroneOrder.objects.select_related("user", "seller", "drone", "order").order_by("-created_at")
        if status:
            qs = qs.filter(status=status)
        return qs

    def list_drones(self, status=None):
        qs = Drone.objects.order_by("-updated_at")
        if status:
            qs = qs.filter(status=status)
        return qs

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------
    def assign(self, order_id):
        with transaction.atomic():
            drone_order = self._lock_by_order(order_id)
            self._ensure_mutable(drone_order)

            if AssignmentLedger.active_for_order(drone_order.order):
                raise Conflict("Order already has an active drone assignment", code="already_assigned")

            drone = DroneRegistryService.claim_idle_drone()

            drone_order.drone = drone
            drone_order.status = "assigned"
            drone_order.save(update_fields=["drone", "status", "updated_at"])

            AssignmentLedger.bind(drone_order.order, drone)
            AuditService.drone_assigned(drone_order, drone)

        self._publish(drone_order, "assigned", to_drone=True)
        return drone_order

    def launch(self, order_id):
        drone_order = (
            DroneOrder.objects.select_related("drone")
            .filter(order_id=order_id, drone__isnull=False)
            .first()
        )
        if drone_order is None:
            raise NotFound("Drone order not found or no drone assigned", code="drone_not_assigned")
        self._ensure_mutable(drone_order)

        location = drone_order.delivery_location or {}
        verdict = self.weather_gate.check(location.get("lat"), location.get("lng"))

        with transaction.atomic():
            drone_order = self._lock_by_id(drone_order.id)
            self._ensure_mutable(drone_order)

            drone_order.weather_check = verdict.to_dict()
            drone_order.save(update_fields=["weather_check", "updated_at"])

            if not verdict.is_safe:
                reason = "weather_api_failure" if verdict.errored else "unsafe_weather"
                return self._fall_back_to_regular(drone_order, verdict, reason)

            drone = DroneRegistryService.update_status(
                drone_order.drone.drone_id,
                status="in_flight",
                altitude=settings.DRONE_CRUISE_ALTITUDE,
            )
            drone_order.drone = drone
            drone_order.status = "out_for_delivery"
            drone_order.save(update_fields=["status", "updated_at"])

            order = drone_order.order
            order.delivery_status = "out_for_delivery"
            order.save(update_fields=["delivery_status", "updated_at"])

            AuditService.drone_launched(drone_order, drone)

            self._alert(
                drone_order, "info",
                "Order In-Flight", "Your order is on the way via drone.",
                "Drone Launched", f"Drone {drone.drone_id} launched for order {order.id}",
                drone_id=drone.drone_id,
            )

        logger.info(f"Drone {drone.drone_id} launched for order {order_id}")
        self._publish(drone_order, "launched", to_drone=True, weather=drone_order.weather_check)
        return LaunchResult(drone_order, verdict, launched=True)

    def _fall_back_to_regular(self, drone_order, verdict, reason):
        order = drone_order.order
        order.delivery_type = "regular"
        order.fallback_reason = reason
        order.save(update_fields=["delivery_type", "fallback_reason", "updated_at"])

        drone_order.status = "cancelled"
        drone_order.cancelled_by = "system"
        drone_order.cancellation_reason = reason
        drone_order.save()

        drone = drone_order.drone
        if drone is not None:
            DroneRegistryService.release_to_idle(drone)
            AssignmentLedger.release_for_drone(drone)

        AuditService.drone_fallback(drone_order, reason)

        if reason == "weather_api_failure":
            user_message = "Weather data unavailable; switched to regular delivery."
            admin_message = f"Order {order.id} switched to regular delivery due to weather API failure"
        else:
            user_message = "Drone launch blocked due to unsafe weather. Your order will be delivered by regular courier."
            admin_message = f"Order {order.id} switched to regular delivery due to weather"

        self._alert(
            drone_order, "warning",
            "Switched to Regular Delivery", user_message,
            "Drone Fallback Activated", admin_message,
            reason=reason, weather=drone_order.weather_check,
        )

        logger.warning(f"Drone launch for order {order.id} fell back to regular delivery: {reason}")
        self._publish(drone_order, "status", fallback="regular", reason=reason)
        return LaunchResult(drone_order, verdict, launched=False, fallback="regular", reason=reason)

    def land(self, drone_id):
        with transaction.atomic():
            drone = DroneRegistryService.update_status(drone_id, status="landed", altitude=0)
            released = AssignmentLedger.release_for_drone(drone)

        logger.info(f"Drone {drone_id} landed (released {released} assignment(s))")
        self.publisher.to_drone(drone.drone_id, "landed", status=drone.status)
        return drone

    def return_to_base(self, drone_id):
        with transaction.atomic():
            drone = DroneRegistryService.update_status(drone_id, status="returning")
            AssignmentLedger.release_for_drone(drone)

        self.publisher.to_drone(drone.drone_id, "returning", status=drone.status)
        return drone

    def emergency_stop(self, drone_id):
        with transaction.atomic():
            drone = DroneRegistryService.update_status(drone_id, status="stopped", altitude=0)
            drone_order = self._current_order_for_drone(drone)
            AuditService.drone_emergency_stop(drone, drone_order)

            if drone_order is not None:
                self._alert(
                    drone_order, "error",
                    "Drone Emergency Stop", "Your delivery drone was stopped. Our team is on it.",
                    "Emergency Stop", f"Drone {drone_id} emergency stop for order {drone_order.order_id}",
                    drone_id=drone_id,
                )

        logger.critical(f"Emergency stop executed for drone {drone_id}")
        self.publisher.to_drone(drone.drone_id, "emergency_stop", status=drone.status)
        if drone_order is not None:
            self.publisher.to_order(drone_order.order_id, "emergency_stop", drone_id=drone.drone_id)
        return drone

    def get_drone_status(self, drone_id):
        drone = DroneRegistryService.get(drone_id)
        if drone.battery > settings.DRONE_LOW_BATTERY_THRESHOLD:
            return DroneStatusReport(drone)

        drone_order = self._current_order_for_drone(drone)
        alerted = False
        if drone_order is not None and self._low_battery_alert_due(drone):
            self._alert(
                drone_order, "warning",
                "Low Drone Battery", "Drone battery is low; delivery may be delayed.",
                "Low Drone Battery", f"Drone {drone_id} battery low for order {drone_order.order_id}",
                drone_id=drone_id, battery=drone.battery,
            )
            alerted = True

        return DroneStatusReport(drone, drone_order, low_battery=True, alerted=alerted)

    @staticmethod
    def _low_battery_alert_due(drone):
        cooldown = settings.DRONE_LOW_BATTERY_ALERT_COOLDOWN
        if not cooldown:
            return True
        # add() only succeeds when no alert was sent within the window
        return cache.add(f"drone_low_battery:{drone.pk}", 1, timeout=cooldown)

    def get_drone_status_by_order(self, order_id, actor):
        drone_order = DroneOrder.objects.select_related("drone").filter(order_id=order_id).first()
        if drone_order is None:
            return None, None
        if not actor.is_user(drone_order.user_id):
            raise Forbidden("You can only track your own orders")
        return drone_order.drone, drone_order

    # ------------------------------------------------------------------
    # Handover
    # ------------------------------------------------------------------
    def verify_qr_delivery(self, qr_code, actor, order_id=None):
        if not self.qr_issuer.is_well_formed(qr_code):
            raise InvalidState("Invalid QR code format", code="invalid_qr")

        with transaction.atomic():
            qs = DroneOrder.objects.select_for_update().select_related("order", "drone").filter(qr_code=qr_code)
            if order_id is not None:
                qs = qs.filter(order_id=order_id)
            drone_order = qs.first()

            if drone_order is None:
                raise NotFound("Invalid QR code", code="qr_not_found")
            if not actor.is_user(drone_order.user_id):
                raise Forbidden("You can only verify your own deliveries")
            if drone_order.status == "delivered":
                raise InvalidState("Order already delivered", code="already_delivered")
            if self.qr_issuer.is_expired(drone_order.qr_expires_at):
                raise InvalidState("QR code expired", code="qr_expired")
            if drone_order.status != "out_for_delivery":
                raise InvalidState("Order is not out for delivery", code="not_out_for_delivery")

            now = timezone.now()
            drone_order.status = "delivered"
            drone_order.actual_delivery_time = now
            drone_order.save(update_fields=["status", "actual_delivery_time", "updated_at"])

            order = drone_order.order
            order.delivery_status = "delivered"
            order.actual_delivery_time = now
            order.save(update_fields=["delivery_status", "actual_delivery_time", "updated_at"])

            AuditService.qr_verified(drone_order.id, order.id, actor.audit_user())

            self.notifier.notify(
                drone_order.user, "success",
                "Order Delivered", "Your drone delivery has been completed.",
                {"order_id": order.id},
            )
            self.notifier.notify_admins(
                "info", "Drone Delivery Completed",
                f"Order {order.id} delivered by drone",
                {"order_id": order.id},
            )

        self._publish(drone_order, "delivered", to_drone=True)
        return drone_order

    def call_drone_to_shop(self, order_id, shop_id, actor, shop_location=None):
        with transaction.atomic():
            order = Order.objects.select_for_update().filter(id=order_id).first()
            if order is None:
                raise NotFound("Order not found", code="order_not_found")

            order_shop = OrderShop.objects.select_related("shop").filter(order=order, shop_id=shop_id).first()
            if order_shop is None or not actor.is_user(order_shop.shop.seller_id):
                raise Forbidden("You can only call drones for your own shop's orders")
            if order_shop.status != "ready":
                raise InvalidState("Order must be ready before calling a drone", code="shop_not_ready")
            if order.delivery_type != "drone":
                raise InvalidState("Order is not a drone delivery", code="not_drone_order")

            drone_order = DroneOrder.objects.select_for_update().select_related("drone").filter(order=order).first()
            if drone_order is None:
                raise NotFound("Drone order not found", code="drone_order_not_found")
            self._ensure_mutable(drone_order)

            shop = order_shop.shop
            location = shop_location or shop.location or drone_order.pickup_location

            # A drone bound earlier but still on the ground is handed back first
            previous = drone_order.drone
            if previous is not None and previous.status == "assigned":
                DroneRegistryService.release_to_idle(previous)
                AssignmentLedger.release_for_order(order)

            destination = f"{shop.name} ({location.get('lat')}, {location.get('lng')})"
            drone = DroneRegistryService.claim_drone_for_pickup(destination)
            AssignmentLedger.bind(order, drone, notes=f"Called to shop {shop.id} by seller {actor.id}")

            drone_order.drone = drone
            drone_order.status = "drone_en_route_to_shop"
            drone_order.shop_location = location
            drone_order.save(update_fields=["drone", "status", "shop_location", "updated_at"])

            AuditService.drone_called_to_shop(drone_order, drone, shop, actor)

            self._alert(
                drone_order, "info",
                "Drone En Route", f"A drone is heading to {shop.name} to pick up your order.",
                "Drone Called To Shop", f"Drone {drone.drone_id} called to {shop.name} for order {order.id}",
                drone_id=drone.drone_id, shop_id=shop.id,
            )

        self._publish(drone_order, "en_route_to_shop", to_drone=True, shop_location=location)
        return drone_order


def get_dispatch_coordinator():
    return DispatchCoordinator()
