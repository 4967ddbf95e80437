# apps/drones/tests.py
from datetime import timedelta
from io import StringIO
from unittest.mock import MagicMock, patch

import requests
from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from channels.testing import WebsocketCommunicator
from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.core.management import call_command
from django.db import DatabaseError
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient

from apps.accounts.actors import Actor
from apps.accounts.models import UserRole
from apps.audit.models import AuditLog
from apps.notifications.models import Notification
from apps.orders.models import Order, OrderShop
from apps.shops.models import Shop
from apps.utils.exceptions import (
    BusinessLogicException,
    Conflict,
    Forbidden,
    InvalidState,
    NotFound,
    ServiceUnavailable,
)

from .consumers import DroneTrackingConsumer
from .events import ChannelsEventPublisher, drone_room, order_room
from .models import Drone, DroneAssignment, DroneOrder
from .qr import QrIssuer
from .services import DispatchCoordinator, DroneRegistryService
from .weather import OpenWeatherGate, WeatherVerdict

User = get_user_model()

PICKUP = {"lat": 12.9716, "lng": 77.5946}
DROP = {"lat": 12.9352, "lng": 77.6245, "address": "Koramangala"}


def safe_verdict():
    return WeatherVerdict(wind_speed=3.2, rain_probability=0, visibility=10000,
                          weather_condition="Clear", is_safe=True)


def unsafe_verdict():
    return WeatherVerdict(wind_speed=14.0, rain_probability=80, visibility=800,
                          weather_condition="Thunderstorm", is_safe=False)


class FakeWeatherGate:
    def __init__(self, verdict=None):
        self.verdict = verdict or safe_verdict()
        self.calls = []

    def check(self, lat, lng):
        self.calls.append((lat, lng))
        return self.verdict


class RecordingPublisher:
    def __init__(self):
        self.events = []

    def to_order(self, order_id, type, **data):
        self.events.append(("order", order_id, type, data))

    def to_drone(self, drone_id, type, **data):
        self.events.append(("drone", drone_id, type, data))

    def types_for_order(self, order_id):
        return [e[2] for e in self.events if e[0] == "order" and e[1] == order_id]


class DispatchFixtureMixin:
    """
    Customer, seller with one shop, two platform admins, and one order
    whose shop slice is ready for pickup.
    """

    def setUp(self):
        cache.clear()
        self.customer = User.objects.create_user(phone="+919000000001")
        UserRole.objects.create(user=self.customer, role="customer")
        self.seller = User.objects.create_user(phone="+919000000002")
        UserRole.objects.create(user=self.seller, role="seller")
        self.admin = User.objects.create_user(phone="+919000000003", is_staff=True)
        self.admin_b = User.objects.create_user(phone="+919000000004", is_staff=True)
        self.stranger = User.objects.create_user(phone="+919000000005")

        self.shop = Shop.objects.create(seller=self.seller, name="Spice Route", latitude=12.97, longitude=77.59)
        self.order = Order.objects.create(user=self.customer, total_amount=450, delivery_location=DROP)
        self.slice = OrderShop.objects.create(order=self.order, shop=self.shop, status="ready", subtotal=450)

        self.gate = FakeWeatherGate()
        self.publisher = RecordingPublisher()
        self.coordinator = DispatchCoordinator(weather_gate=self.gate, publisher=self.publisher)

    def tearDown(self):
        cache.clear()

    def as_customer(self):
        return Actor.from_user(self.customer)

    def as_seller(self):
        return Actor.from_user(self.seller)

    def make_drone(self, drone_id="DRN-001", battery=90, status="idle"):
        return Drone.objects.create(drone_id=drone_id, battery=battery, status=status)

    def create_drone_order(self):
        return self.coordinator.create_drone_order(self.order.id, self.as_customer(), PICKUP, DROP)

    def launched_drone_order(self):
        self.make_drone()
        self.create_drone_order()
        self.coordinator.assign(self.order.id)
        self.coordinator.launch(self.order.id)
        return DroneOrder.objects.get(order=self.order)


class CreateDroneOrderTestCase(DispatchFixtureMixin, TestCase):
    def test_safe_weather_creates_pending_order(self):
        drone_order = self.create_drone_order()

        self.assertEqual(drone_order.status, "pending")
        self.assertEqual(drone_order.seller, self.seller)
        self.assertTrue(QrIssuer.is_well_formed(drone_order.qr_code))
        self.assertTrue(drone_order.qr_code.startswith("DRN-"))
        self.assertIsNone(drone_order.qr_expires_at)
        self.assertTrue(drone_order.weather_check["is_safe"])
        self.assertEqual(self.gate.calls, [(DROP["lat"], DROP["lng"])])

        self.order.refresh_from_db()
        self.assertEqual(self.order.delivery_type, "drone")
        self.assertEqual(self.publisher.types_for_order(self.order.id), ["created"])
        self.assertTrue(AuditLog.objects.filter(action="drone_order_created").exists())

    def test_unsafe_weather_creates_blocked_order(self):
        self.gate.verdict = unsafe_verdict()
        drone_order = self.create_drone_order()

        self.assertEqual(drone_order.status, "weather_blocked")
        self.assertFalse(drone_order.weather_check["is_safe"])

    def test_second_drone_order_conflicts(self):
        self.create_drone_order()
        with self.assertRaises(Conflict):
            self.create_drone_order()
        self.assertEqual(DroneOrder.objects.filter(order=self.order).count(), 1)

    def test_only_owner_may_create(self):
        with self.assertRaises(Forbidden):
            self.coordinator.create_drone_order(self.order.id, Actor.from_user(self.stranger), PICKUP, DROP)
        self.assertFalse(DroneOrder.objects.exists())

    def test_missing_locations_rejected(self):
        with self.assertRaises(BusinessLogicException):
            self.coordinator.create_drone_order(self.order.id, self.as_customer(), PICKUP, None)

    def test_unknown_order(self):
        with self.assertRaises(NotFound):
            self.coordinator.create_drone_order(999999, self.as_customer(), PICKUP, DROP)

    def test_qr_collision_is_reissued(self):
        other = Order.objects.create(user=self.customer)
        DroneOrder.objects.create(order=other, user=self.customer, qr_code="DRN-" + "A" * 40)

        issuer = MagicMock(wraps=QrIssuer())
        issuer.issue.side_effect = [("DRN-" + "A" * 40, None), ("DRN-" + "B" * 40, None)]
        coordinator = DispatchCoordinator(weather_gate=self.gate, qr_issuer=issuer, publisher=self.publisher)

        drone_order = coordinator.create_drone_order(self.order.id, self.as_customer(), PICKUP, DROP)
        self.assertEqual(drone_order.qr_code, "DRN-" + "B" * 40)
        self.assertEqual(issuer.issue.call_count, 2)

    def test_status_visible_to_owner_only(self):
        self.create_drone_order()
        drone_order = self.coordinator.get_drone_order_status(self.order.id, self.as_customer())
        self.assertEqual(drone_order.order_id, self.order.id)

        with self.assertRaises(Forbidden):
            self.coordinator.get_drone_order_status(self.order.id, Actor.from_user(self.stranger))


class DroneClaimTestCase(DispatchFixtureMixin, TestCase):
    def test_assign_claims_highest_battery_idle_drone(self):
        self.make_drone("DRN-001", battery=40)
        self.make_drone("DRN-002", battery=95)
        self.make_drone("DRN-003", battery=99, status="in_flight")
        self.create_drone_order()

        drone_order = self.coordinator.assign(self.order.id)

        self.assertEqual(drone_order.status, "assigned")
        self.assertEqual(drone_order.drone.drone_id, "DRN-002")
        self.assertEqual(Drone.objects.get(drone_id="DRN-002").status, "assigned")

        assignment = DroneAssignment.objects.get(order=self.order)
        self.assertTrue(assignment.is_active)
        self.assertEqual(assignment.drone.drone_id, "DRN-002")

    def test_no_idle_drone_conflicts_without_mutation(self):
        self.make_drone("DRN-001", status="in_flight")
        self.create_drone_order()

        with self.assertRaises(Conflict) as ctx:
            self.coordinator.assign(self.order.id)

        self.assertEqual(ctx.exception.code, "no_drones_available")
        drone_order = DroneOrder.objects.get(order=self.order)
        self.assertEqual(drone_order.status, "pending")
        self.assertIsNone(drone_order.drone)
        self.assertFalse(DroneAssignment.objects.exists())

    def test_second_assign_conflicts(self):
        self.make_drone("DRN-001")
        self.make_drone("DRN-002")
        self.create_drone_order()
        self.coordinator.assign(self.order.id)

        with self.assertRaises(Conflict) as ctx:
            self.coordinator.assign(self.order.id)
        self.assertEqual(ctx.exception.code, "already_assigned")
        self.assertEqual(Drone.objects.filter(status="idle").count(), 1)

    def test_claim_skips_drone_taken_after_scan(self):
        stale = self.make_drone("DRN-001", battery=99)
        fresh = self.make_drone("DRN-002", battery=50)
        # Another dispatcher won DRN-001 between the scan and the update
        Drone.objects.filter(pk=stale.pk).update(status="assigned")

        with patch.object(DroneRegistryService, "_candidate_ids", return_value=[stale.pk, fresh.pk]):
            drone = DroneRegistryService.claim_idle_drone()

        self.assertEqual(drone.pk, fresh.pk)
        self.assertEqual(drone.status, "assigned")

    def test_claim_with_only_stale_candidates_conflicts(self):
        stale = self.make_drone("DRN-001", status="assigned")
        with patch.object(DroneRegistryService, "_candidate_ids", return_value=[stale.pk]):
            with self.assertRaises(Conflict):
                DroneRegistryService.claim_idle_drone()


class LaunchTestCase(DispatchFixtureMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.drone = self.make_drone()
        self.create_drone_order()
        self.coordinator.assign(self.order.id)

    def test_safe_launch_puts_drone_in_flight(self):
        result = self.coordinator.launch(self.order.id)

        self.assertTrue(result.launched)
        self.drone.refresh_from_db()
        self.assertEqual(self.drone.status, "in_flight")
        self.assertEqual(self.drone.altitude, 50)

        self.order.refresh_from_db()
        self.assertEqual(self.order.delivery_status, "out_for_delivery")
        self.assertEqual(result.drone_order.status, "out_for_delivery")

        self.assertEqual(Notification.objects.filter(user=self.customer, type="info").count(), 1)
        self.assertEqual(Notification.objects.filter(user=self.admin, type="info").count(), 1)
        self.assertEqual(Notification.objects.filter(user=self.admin_b, type="info").count(), 1)
        self.assertIn("launched", self.publisher.types_for_order(self.order.id))

    def assert_fell_back(self, result, reason):
        self.assertFalse(result.launched)
        self.assertEqual(result.fallback, "regular")
        self.assertEqual(result.reason, reason)

        self.order.refresh_from_db()
        self.assertEqual(self.order.delivery_type, "regular")
        self.assertEqual(self.order.fallback_reason, reason)

        drone_order = DroneOrder.objects.get(order=self.order)
        self.assertEqual(drone_order.status, "cancelled")
        self.assertEqual(drone_order.cancelled_by, "system")

        self.drone.refresh_from_db()
        self.assertEqual(self.drone.status, "idle")
        self.assertFalse(DroneAssignment.objects.get(order=self.order).is_active)

        self.assertEqual(Notification.objects.filter(user=self.customer, type="warning").count(), 1)
        self.assertEqual(Notification.objects.filter(user=self.admin, type="warning").count(), 1)
        self.assertTrue(AuditLog.objects.filter(action="drone_fallback", reference_id=str(drone_order.id)).exists())

    def test_unsafe_weather_falls_back_to_regular(self):
        self.gate.verdict = unsafe_verdict()
        result = self.coordinator.launch(self.order.id)
        self.assert_fell_back(result, "unsafe_weather")
        self.assertIn("unsafe weather", result.message)

    def test_weather_failure_falls_back_to_regular(self):
        self.gate.verdict = WeatherVerdict.failed("timeout")
        result = self.coordinator.launch(self.order.id)
        self.assert_fell_back(result, "weather_api_failure")
        self.assertIn("Weather data not available", result.message)

    def test_launch_without_assignment(self):
        other = Order.objects.create(user=self.customer)
        with self.assertRaises(NotFound):
            self.coordinator.launch(other.id)

    def test_launch_after_cancel_is_rejected(self):
        drone_order = DroneOrder.objects.get(order=self.order)
        self.coordinator.cancel_drone_delivery(drone_order.id, "changed my mind", self.as_customer())
        with self.assertRaises(InvalidState):
            self.coordinator.launch(self.order.id)


class QrHandoverTestCase(DispatchFixtureMixin, TestCase):
    def test_owner_verifies_and_order_is_delivered(self):
        drone_order = self.launched_drone_order()

        verified = self.coordinator.verify_qr_delivery(drone_order.qr_code, self.as_customer())

        self.assertEqual(verified.status, "delivered")
        self.assertIsNotNone(verified.actual_delivery_time)
        self.order.refresh_from_db()
        self.assertEqual(self.order.delivery_status, "delivered")
        self.assertIsNotNone(self.order.actual_delivery_time)
        self.assertEqual(Notification.objects.filter(user=self.customer, type="success").count(), 1)
        self.assertTrue(AuditLog.objects.filter(action="qr_code_verified").exists())

    def test_second_verification_fails(self):
        drone_order = self.launched_drone_order()
        self.coordinator.verify_qr_delivery(drone_order.qr_code, self.as_customer())

        with self.assertRaises(InvalidState) as ctx:
            self.coordinator.verify_qr_delivery(drone_order.qr_code, self.as_customer())
        self.assertEqual(ctx.exception.code, "already_delivered")

    def test_expired_code_changes_nothing(self):
        drone_order = self.launched_drone_order()
        DroneOrder.objects.filter(pk=drone_order.pk).update(qr_expires_at=timezone.now() - timedelta(minutes=1))

        with self.assertRaises(InvalidState) as ctx:
            self.coordinator.verify_qr_delivery(drone_order.qr_code, self.as_customer())

        self.assertEqual(ctx.exception.code, "qr_expired")
        drone_order.refresh_from_db()
        self.assertEqual(drone_order.status, "out_for_delivery")
        self.order.refresh_from_db()
        self.assertEqual(self.order.delivery_status, "out_for_delivery")

    def test_malformed_and_unknown_codes(self):
        with self.assertRaises(InvalidState) as ctx:
            self.coordinator.verify_qr_delivery("not-a-code", self.as_customer())
        self.assertEqual(ctx.exception.code, "invalid_qr")

        with self.assertRaises(NotFound):
            self.coordinator.verify_qr_delivery("DRN-" + "0" * 40, self.as_customer())

    def test_stranger_cannot_verify(self):
        drone_order = self.launched_drone_order()
        with self.assertRaises(Forbidden):
            self.coordinator.verify_qr_delivery(drone_order.qr_code, Actor.from_user(self.stranger))

    def test_not_out_for_delivery(self):
        drone_order = self.create_drone_order()
        with self.assertRaises(InvalidState) as ctx:
            self.coordinator.verify_qr_delivery(drone_order.qr_code, self.as_customer())
        self.assertEqual(ctx.exception.code, "not_out_for_delivery")

    def test_order_id_scopes_lookup(self):
        drone_order = self.launched_drone_order()
        with self.assertRaises(NotFound):
            self.coordinator.verify_qr_delivery(drone_order.qr_code, self.as_customer(), order_id=self.order.id + 1)


class CancelAndStatusTestCase(DispatchFixtureMixin, TestCase):
    def test_stranger_cannot_cancel(self):
        drone_order = self.create_drone_order()
        with self.assertRaises(Forbidden):
            self.coordinator.cancel_drone_delivery(drone_order.id, "", Actor.from_user(self.stranger))
        drone_order.refresh_from_db()
        self.assertEqual(drone_order.status, "pending")

    def test_cancel_records_relation_and_releases_grounded_drone(self):
        drone = self.make_drone()
        drone_order = self.create_drone_order()
        self.coordinator.assign(self.order.id)

        cancelled = self.coordinator.cancel_drone_delivery(drone_order.id, "late", self.as_seller())

        self.assertEqual(cancelled.status, "cancelled")
        self.assertEqual(cancelled.cancelled_by, "seller")
        self.assertEqual(cancelled.cancellation_reason, "late")
        drone.refresh_from_db()
        self.assertEqual(drone.status, "idle")
        self.assertFalse(DroneAssignment.objects.get(order=self.order).is_active)

    def test_terminal_order_cannot_be_cancelled(self):
        drone_order = self.launched_drone_order()
        self.coordinator.verify_qr_delivery(drone_order.qr_code, self.as_customer())

        with self.assertRaises(InvalidState) as ctx:
            self.coordinator.cancel_drone_delivery(drone_order.id, "", Actor.from_user(self.admin))
        self.assertEqual(ctx.exception.code, "drone_order_terminal")

    def test_seller_updates_status(self):
        drone_order = self.create_drone_order()
        updated = self.coordinator.update_drone_order_status(drone_order.id, self.as_seller(), "preparing")
        self.assertEqual(updated.status, "preparing")
        self.assertTrue(
            AuditLog.objects.filter(action="drone_delivery_status_change", reference_id=str(drone_order.id)).exists()
        )

    def test_dispatched_sets_eta_and_delivered_stamps_order(self):
        drone_order = self.create_drone_order()
        admin = Actor.from_user(self.admin)

        updated = self.coordinator.update_drone_order_status(drone_order.id, admin, "drone_dispatched")
        self.assertIsNotNone(updated.estimated_delivery_time)

        self.coordinator.update_drone_order_status(drone_order.id, admin, "delivered", admin_notes="handed over")
        self.order.refresh_from_db()
        self.assertEqual(self.order.delivery_status, "delivered")

    def test_manual_cancel_returns_drone_to_pool(self):
        drone = self.make_drone()
        drone_order = self.create_drone_order()
        self.coordinator.assign(self.order.id)

        self.coordinator.update_drone_order_status(drone_order.id, Actor.from_user(self.admin), "cancelled")

        drone.refresh_from_db()
        self.assertEqual(drone.status, "idle")
        self.assertFalse(DroneAssignment.objects.get(order=self.order).is_active)
        self.assertEqual(DroneRegistryService.claim_idle_drone(), drone)

    def test_manual_delivered_releases_assignment(self):
        drone = self.make_drone()
        drone_order = self.create_drone_order()
        self.coordinator.assign(self.order.id)
        self.coordinator.launch(self.order.id)

        self.coordinator.update_drone_order_status(drone_order.id, Actor.from_user(self.admin), "delivered")

        self.assertFalse(DroneAssignment.objects.get(order=self.order).is_active)
        drone.refresh_from_db()
        self.assertEqual(drone.status, "in_flight")

    def test_customer_cannot_update_status(self):
        drone_order = self.create_drone_order()
        with self.assertRaises(Forbidden):
            self.coordinator.update_drone_order_status(drone_order.id, self.as_customer(), "preparing")

    def test_non_manual_status_rejected(self):
        drone_order = self.create_drone_order()
        with self.assertRaises(BusinessLogicException):
            self.coordinator.update_drone_order_status(drone_order.id, Actor.from_user(self.admin), "assigned")


class SideEffectIsolationTestCase(DispatchFixtureMixin, TestCase):
    """
    Dispatch writes must persist when notifications or websocket pushes fail.
    """

    def setUp(self):
        super().setUp()
        self.drone = self.make_drone()
        self.create_drone_order()
        self.live = DispatchCoordinator(weather_gate=self.gate, publisher=ChannelsEventPublisher())

    def listen(self, room):
        layer = get_channel_layer()
        channel = async_to_sync(layer.new_channel)()
        async_to_sync(layer.group_add)(room, channel)
        return layer, channel

    def test_assign_reaches_drone_room(self):
        layer, channel = self.listen(drone_room("DRN-001"))

        with self.captureOnCommitCallbacks(execute=True):
            self.live.assign(self.order.id)

        message = async_to_sync(layer.receive)(channel)
        self.assertEqual(message["event"], "drone:update")
        self.assertEqual(message["data"]["type"], "assigned")
        self.assertEqual(message["data"]["drone_id"], "DRN-001")
        self.assertEqual(message["data"]["order_id"], self.order.id)

    def test_full_flow_with_channels_publisher(self):
        with self.captureOnCommitCallbacks(execute=True):
            self.live.assign(self.order.id)
        with self.captureOnCommitCallbacks(execute=True):
            self.live.launch(self.order.id)
        drone_order = DroneOrder.objects.get(order=self.order)
        with self.captureOnCommitCallbacks(execute=True):
            verified = self.live.verify_qr_delivery(drone_order.qr_code, self.as_customer())

        self.assertEqual(verified.status, "delivered")
        self.assertEqual(DroneOrder.objects.get(order=self.order).status, "delivered")

    def test_launch_survives_failed_notification_insert(self):
        self.live.assign(self.order.id)

        with patch.object(Notification, "_do_insert", side_effect=DatabaseError("disk full")):
            result = self.live.launch(self.order.id)

        self.assertTrue(result.launched)
        self.assertEqual(DroneOrder.objects.get(order=self.order).status, "out_for_delivery")
        self.drone.refresh_from_db()
        self.assertEqual(self.drone.status, "in_flight")
        self.assertFalse(Notification.objects.exists())

    def test_fallback_survives_failed_notification_insert(self):
        self.live.assign(self.order.id)
        self.gate.verdict = unsafe_verdict()

        with patch.object(Notification, "_do_insert", side_effect=DatabaseError("disk full")):
            result = self.live.launch(self.order.id)

        self.assertEqual(result.fallback, "regular")
        self.order.refresh_from_db()
        self.assertEqual(self.order.delivery_type, "regular")
        self.drone.refresh_from_db()
        self.assertEqual(self.drone.status, "idle")

    def test_verify_qr_survives_failed_notification_insert(self):
        self.live.assign(self.order.id)
        self.live.launch(self.order.id)
        drone_order = DroneOrder.objects.get(order=self.order)

        with patch.object(Notification, "_do_insert", side_effect=DatabaseError("disk full")):
            verified = self.live.verify_qr_delivery(drone_order.qr_code, self.as_customer())

        self.assertEqual(verified.status, "delivered")
        self.order.refresh_from_db()
        self.assertEqual(self.order.delivery_status, "delivered")

    @patch("apps.accounts.managers.UserManager.platform_admins", side_effect=DatabaseError("replica down"))
    def test_emergency_stop_survives_failed_admin_lookup(self, mock_admins):
        self.live.assign(self.order.id)

        drone = self.live.emergency_stop("DRN-001")

        self.assertEqual(drone.status, "stopped")
        self.assertEqual(Drone.objects.get(drone_id="DRN-001").status, "stopped")
        self.assertEqual(Notification.objects.filter(user=self.customer, type="error").count(), 1)
        mock_admins.assert_called_once()


class CallDroneToShopTestCase(DispatchFixtureMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.create_drone_order()

    def test_dispatches_drone_above_battery_threshold(self):
        self.make_drone("DRN-001", battery=15)
        self.make_drone("DRN-002", battery=60)

        drone_order = self.coordinator.call_drone_to_shop(self.order.id, self.shop.id, self.as_seller())

        self.assertEqual(drone_order.status, "drone_en_route_to_shop")
        self.assertEqual(drone_order.drone.drone_id, "DRN-002")
        self.assertEqual(drone_order.drone.status, "en_route_to_shop")
        self.assertIn("Spice Route", drone_order.drone.destination)
        self.assertEqual(drone_order.shop_location, {"lat": 12.97, "lng": 77.59})
        self.assertTrue(DroneAssignment.objects.get(order=self.order).is_active)
        self.assertEqual(Notification.objects.filter(user=self.customer, type="info").count(), 1)

    def test_low_battery_fleet_is_unavailable(self):
        self.make_drone("DRN-001", battery=20)
        with self.assertRaises(ServiceUnavailable):
            self.coordinator.call_drone_to_shop(self.order.id, self.shop.id, self.as_seller())
        self.assertEqual(Drone.objects.get(drone_id="DRN-001").status, "idle")

    def test_other_seller_forbidden(self):
        other_seller = User.objects.create_user(phone="+919000000010")
        UserRole.objects.create(user=other_seller, role="seller")
        self.make_drone()
        with self.assertRaises(Forbidden):
            self.coordinator.call_drone_to_shop(self.order.id, self.shop.id, Actor.from_user(other_seller))

    def test_shop_must_be_ready(self):
        OrderShop.objects.filter(pk=self.slice.pk).update(status="preparing")
        self.make_drone()
        with self.assertRaises(InvalidState) as ctx:
            self.coordinator.call_drone_to_shop(self.order.id, self.shop.id, self.as_seller())
        self.assertEqual(ctx.exception.code, "shop_not_ready")

    def test_previously_bound_grounded_drone_is_released(self):
        # Too weak for a pickup run once released
        first = self.make_drone("DRN-001", battery=15)
        self.coordinator.assign(self.order.id)
        self.make_drone("DRN-002", battery=80)

        drone_order = self.coordinator.call_drone_to_shop(self.order.id, self.shop.id, self.as_seller())

        first.refresh_from_db()
        self.assertEqual(first.status, "idle")
        self.assertEqual(drone_order.drone.drone_id, "DRN-002")


class FleetControlTestCase(DispatchFixtureMixin, TestCase):
    def test_land_releases_assignment(self):
        drone_order = self.launched_drone_order()
        drone = self.coordinator.land(drone_order.drone.drone_id)

        self.assertEqual(drone.status, "landed")
        self.assertEqual(drone.altitude, 0)
        self.assertFalse(DroneAssignment.objects.get(order=self.order).is_active)

    def test_return_to_base(self):
        drone_order = self.launched_drone_order()
        drone = self.coordinator.return_to_base(drone_order.drone.drone_id)

        self.assertEqual(drone.status, "returning")
        self.assertFalse(DroneAssignment.objects.get(order=self.order).is_active)

    def test_emergency_stop_alerts_order_owner(self):
        drone_order = self.launched_drone_order()
        drone = self.coordinator.emergency_stop(drone_order.drone.drone_id)

        self.assertEqual(drone.status, "stopped")
        self.assertEqual(Notification.objects.filter(user=self.customer, type="error").count(), 1)
        self.assertTrue(AuditLog.objects.filter(action="drone_emergency_stop").exists())
        self.assertIn("emergency_stop", self.publisher.types_for_order(self.order.id))

    def test_unknown_drone(self):
        with self.assertRaises(NotFound):
            self.coordinator.land("DRN-404")

    def test_low_battery_alerts_once_per_party(self):
        drone_order = self.launched_drone_order()
        Drone.objects.filter(pk=drone_order.drone.pk).update(battery=10)
        Notification.objects.all().delete()

        report = self.coordinator.get_drone_status(drone_order.drone.drone_id)

        self.assertEqual(report.toast_type, "warning")
        self.assertTrue(report.alerted)
        self.assertEqual(Notification.objects.filter(user=self.customer).count(), 1)
        self.assertEqual(Notification.objects.filter(user=self.admin).count(), 1)
        self.assertEqual(Notification.objects.filter(user=self.admin_b).count(), 1)

    @override_settings(DRONE_LOW_BATTERY_ALERT_COOLDOWN=300)
    def test_low_battery_cooldown(self):
        drone_order = self.launched_drone_order()
        Drone.objects.filter(pk=drone_order.drone.pk).update(battery=10)
        Notification.objects.all().delete()

        self.coordinator.get_drone_status(drone_order.drone.drone_id)
        report = self.coordinator.get_drone_status(drone_order.drone.drone_id)

        self.assertFalse(report.alerted)
        self.assertEqual(Notification.objects.filter(user=self.customer).count(), 1)

    def test_healthy_battery_has_no_toast(self):
        drone = self.make_drone(battery=80)
        report = self.coordinator.get_drone_status(drone.drone_id)
        self.assertIsNone(report.toast_type)
        self.assertFalse(Notification.objects.exists())

    def test_low_battery_without_order_has_no_toast(self):
        drone = self.make_drone(battery=5)
        report = self.coordinator.get_drone_status(drone.drone_id)
        self.assertTrue(report.low_battery)
        self.assertIsNone(report.toast_type)

    def test_status_by_order(self):
        drone, drone_order = self.coordinator.get_drone_status_by_order(self.order.id, self.as_customer())
        self.assertIsNone(drone)

        launched = self.launched_drone_order()
        drone, drone_order = self.coordinator.get_drone_status_by_order(self.order.id, self.as_customer())
        self.assertEqual(drone.pk, launched.drone.pk)

        with self.assertRaises(Forbidden):
            self.coordinator.get_drone_status_by_order(self.order.id, Actor.from_user(self.stranger))


class RegistryTestCase(TestCase):
    def test_seed_command_is_idempotent(self):
        call_command("seed_drones", "--count", "3", stdout=StringIO())
        call_command("seed_drones", "--count", "3", stdout=StringIO())
        self.assertEqual(list(Drone.objects.values_list("drone_id", flat=True)), ["DRN-001", "DRN-002", "DRN-003"])

    def test_register_duplicate_conflicts(self):
        DroneRegistryService.register("DRN-001")
        with self.assertRaises(Conflict):
            DroneRegistryService.register("DRN-001")

    def test_update_status_validates(self):
        DroneRegistryService.register("DRN-001")
        drone = DroneRegistryService.update_status("DRN-001", battery=55, latitude=1.5, bogus="x")
        self.assertEqual((drone.battery, drone.latitude), (55, 1.5))

        with self.assertRaises(InvalidState):
            DroneRegistryService.update_status("DRN-001", status="hovering")
        with self.assertRaises(InvalidState):
            DroneRegistryService.update_status("DRN-001", battery=120)


class WeatherGateTestCase(TestCase):
    def setUp(self):
        cache.clear()

    def tearDown(self):
        cache.clear()

    def forecast(self, wind=3.0, pop=0.1, visibility=10000, main="Clear"):
        response = MagicMock()
        response.json.return_value = {
            "list": [{"wind": {"speed": wind}, "pop": pop, "visibility": visibility, "weather": [{"main": main}]}]
        }
        return response

    @override_settings(WEATHER_API_KEY="test-key")
    @patch("apps.drones.weather.requests.get")
    def test_calm_forecast_is_safe(self, mock_get):
        mock_get.return_value = self.forecast()
        verdict = OpenWeatherGate().check(12.9, 77.6)

        self.assertTrue(verdict.is_safe)
        self.assertFalse(verdict.errored)
        self.assertEqual(verdict.rain_probability, 10.0)
        params = mock_get.call_args.kwargs["params"]
        self.assertEqual((params["lat"], params["lon"], params["units"]), (12.9, 77.6, "metric"))

    @override_settings(WEATHER_API_KEY="test-key")
    @patch("apps.drones.weather.requests.get")
    def test_each_threshold_blocks_flight(self, mock_get):
        for kwargs in ({"wind": 10.5}, {"pop": 0.31}, {"visibility": 999}, {"main": "Thunderstorm"}):
            mock_get.return_value = self.forecast(**kwargs)
            verdict = OpenWeatherGate().check(12.9, 77.6)
            self.assertFalse(verdict.is_safe, kwargs)
            self.assertFalse(verdict.errored, kwargs)

    @override_settings(WEATHER_API_KEY="test-key")
    @patch("apps.drones.weather.requests.get")
    def test_boundary_values_are_safe(self, mock_get):
        mock_get.return_value = self.forecast(wind=10, pop=0.3, visibility=1000)
        self.assertTrue(OpenWeatherGate().check(12.9, 77.6).is_safe)

    @override_settings(WEATHER_API_KEY="test-key")
    @patch("apps.drones.weather.requests.get", side_effect=requests.Timeout("slow"))
    def test_network_failure_is_flagged(self, mock_get):
        verdict = OpenWeatherGate().check(12.9, 77.6)
        self.assertFalse(verdict.is_safe)
        self.assertTrue(verdict.errored)

    @override_settings(WEATHER_API_KEY="test-key")
    @patch("apps.drones.weather.requests.get")
    def test_malformed_payload_is_flagged(self, mock_get):
        response = MagicMock()
        response.json.return_value = {"list": []}
        mock_get.return_value = response
        self.assertTrue(OpenWeatherGate().check(12.9, 77.6).errored)

    @override_settings(WEATHER_API_KEY="")
    @patch("apps.drones.weather.requests.get")
    def test_missing_key_skips_provider(self, mock_get):
        verdict = OpenWeatherGate().check(12.9, 77.6)
        self.assertTrue(verdict.errored)
        mock_get.assert_not_called()

    @override_settings(WEATHER_API_KEY="test-key")
    @patch("apps.drones.weather.requests.get", side_effect=requests.ConnectionError("down"))
    def test_open_circuit_fails_fast(self, mock_get):
        for _ in range(5):
            OpenWeatherGate().check(12.9, 77.6)
        mock_get.reset_mock()

        verdict = OpenWeatherGate().check(12.9, 77.6)
        self.assertTrue(verdict.errored)
        mock_get.assert_not_called()


class QrIssuerTestCase(TestCase):
    def test_drone_token_format(self):
        token, expires_at = QrIssuer(secret="s").issue(1, 2)
        self.assertRegex(token, r"^DRN-[0-9A-F]{40}$")
        self.assertIsNone(expires_at)

    def test_tokens_are_unique(self):
        issuer = QrIssuer(secret="s")
        now = timezone.now()
        self.assertNotEqual(issuer.issue(1, 2, now)[0], issuer.issue(1, 2, now)[0])

    def test_secure_token_expires(self):
        token, expires_at = QrIssuer().issue_secure_token(ttl=300)
        self.assertRegex(token, r"^[0-9a-f]{64}$")
        self.assertFalse(QrIssuer.is_expired(expires_at))
        self.assertTrue(QrIssuer.is_expired(expires_at, now=expires_at + timedelta(seconds=1)))

    def test_well_formed(self):
        self.assertTrue(QrIssuer.is_well_formed("DRN-" + "A1" * 20))
        self.assertFalse(QrIssuer.is_well_formed("DRN-" + "a1" * 20))
        self.assertFalse(QrIssuer.is_well_formed(None))
        self.assertFalse(QrIssuer.is_expired(None))


class EventPublisherTestCase(TestCase):
    def test_room_names(self):
        self.assertEqual(order_room(7), "order_7")
        self.assertEqual(drone_room("DRN 001/x"), "drone_DRN_001_x")

    @patch("apps.drones.events.get_channel_layer", side_effect=RuntimeError("redis down"))
    def test_publish_failure_is_swallowed(self, mock_layer):
        with self.captureOnCommitCallbacks(execute=True):
            result = ChannelsEventPublisher().to_order(1, "status", status="pending")
        self.assertIsNone(result)
        mock_layer.assert_called_once()


class DispatchAPITestCase(DispatchFixtureMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.client = APIClient()
        patcher = patch("apps.drones.views.get_dispatch_coordinator", return_value=self.coordinator)
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_create_drone_order(self):
        self.client.force_authenticate(user=self.customer)
        response = self.client.post(
            "/api/v1/drones/orders/",
            {"order_id": self.order.id, "pickup_location": PICKUP, "delivery_location": DROP},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data["weather_safe"])
        self.assertEqual(response.data["drone_order"]["status"], "pending")

    def test_invalid_payload_uses_error_envelope(self):
        self.client.force_authenticate(user=self.customer)
        response = self.client.post("/api/v1/drones/orders/", {"order_id": self.order.id}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["error"]["code"], "validation_error")

    def test_assign_without_drones_returns_conflict(self):
        self.create_drone_order()
        self.client.force_authenticate(user=self.admin)
        response = self.client.post(f"/api/v1/drones/assign/{self.order.id}/")

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["error"]["code"], "no_drones_available")
        self.assertEqual(response.data["error"]["type"], "Conflict")

    def test_admin_endpoints_reject_customers(self):
        self.client.force_authenticate(user=self.customer)
        self.assertEqual(self.client.get("/api/v1/drones/admin/fleet/").status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(self.client.post("/api/v1/drones/DRN-001/land/").status_code, status.HTTP_403_FORBIDDEN)

    def test_fleet_register_and_list(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.post("/api/v1/drones/admin/fleet/", {"drone_id": "DRN-900", "battery": 70}, format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        response = self.client.get("/api/v1/drones/admin/fleet/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["count"], 1)

    def test_launch_fallback_response(self):
        self.make_drone()
        self.create_drone_order()
        self.coordinator.assign(self.order.id)
        self.gate.verdict = unsafe_verdict()

        self.client.force_authenticate(user=self.admin)
        response = self.client.post(f"/api/v1/drones/launch/{self.order.id}/")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["fallback"], "regular")
        self.assertEqual(response.data["reason"], "unsafe_weather")
        self.assertFalse(response.data["weather"]["is_safe"])

    def test_verify_qr_endpoint(self):
        drone_order = self.launched_drone_order()
        self.client.force_authenticate(user=self.customer)
        response = self.client.post("/api/v1/drones/orders/verify-qr/", {"qr_code": drone_order.qr_code}, format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["status"], "delivered")

        response = self.client.post("/api/v1/drones/orders/verify-qr/", {"qr_code": drone_order.qr_code}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["error"]["code"], "already_delivered")

    def test_drone_status_reports_low_battery_toast(self):
        drone_order = self.launched_drone_order()
        Drone.objects.filter(pk=drone_order.drone.pk).update(battery=12)

        self.client.force_authenticate(user=self.admin)
        response = self.client.get(f"/api/v1/drones/{drone_order.drone.drone_id}/status/")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["toast_type"], "warning")

    def test_call_to_shop_requires_seller_role(self):
        self.client.force_authenticate(user=self.customer)
        response = self.client.post(
            "/api/v1/drones/call-to-shop/", {"order_id": self.order.id, "shop_id": self.shop.id}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_drone_tracking_by_order_without_drone_order(self):
        self.client.force_authenticate(user=self.customer)
        response = self.client.get(f"/api/v1/drones/orders/by-order/{self.order.id}/drone/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIsNone(response.data["drone"])


class DeliveryFlowTestCase(DispatchFixtureMixin, TestCase):
    def test_order_to_doorstep(self):
        drone = self.make_drone("DRN-001", battery=90)

        drone_order = self.create_drone_order()
        self.assertEqual(drone_order.status, "pending")

        drone_order = self.coordinator.assign(self.order.id)
        self.assertEqual(drone_order.drone, drone)

        result = self.coordinator.launch(self.order.id)
        self.assertTrue(result.launched)

        delivered = self.coordinator.verify_qr_delivery(result.drone_order.qr_code, self.as_customer())
        self.assertEqual(delivered.status, "delivered")

        drone = self.coordinator.land(drone.drone_id)
        self.assertEqual(drone.status, "landed")

        self.assertEqual(
            self.publisher.types_for_order(self.order.id),
            ["created", "assigned", "launched", "delivered"],
        )
        self.assertEqual(
            list(AuditLog.objects.filter(reference_id=str(delivered.id)).order_by("id").values_list("action", flat=True)),
            ["drone_order_created", "drone_assigned", "drone_launched", "qr_code_verified"],
        )


class TrackingConsumerTestCase(TestCase):
    def tearDown(self):
        cache.clear()

    def test_connect_without_ticket_is_rejected(self):
        async def connect():
            communicator = WebsocketCommunicator(DroneTrackingConsumer.as_asgi(), "/ws/drones/")
            return await communicator.connect()

        connected, code = async_to_sync(connect)()
        self.assertFalse(connected)
        self.assertEqual(code, 4003)

    def test_ticket_is_single_use(self):
        cache.set("ws_ticket:abc", 42, timeout=30)
        self.assertEqual(DroneTrackingConsumer.redeem_ticket("abc"), 42)
        self.assertIsNone(DroneTrackingConsumer.redeem_ticket("abc"))
