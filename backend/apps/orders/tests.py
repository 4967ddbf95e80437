from unittest.mock import MagicMock

from django.test import TestCase
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from apps.accounts.actors import Actor
from apps.accounts.models import UserRole
from apps.audit.models import AuditLog
from apps.drones.models import DroneOrder
from apps.notifications.models import Notification
from apps.orders.models import Order, OrderShop
from apps.orders.services import OrderService
from apps.shops.models import Shop
from apps.utils.exceptions import Conflict, Forbidden, InvalidState, NotFound

User = get_user_model()

PICKUP = {"lat": 12.97, "lng": 77.59}
DROP = {"lat": 12.93, "lng": 77.62}


class OrderServiceTestCase(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(phone="+919999999999", password="pass")
        self.seller = User.objects.create_user(phone="+918888888888", password="pass")
        self.seller.roles.create(role="seller")
        self.shop_a = Shop.objects.create(seller=self.seller, name="Bakery", latitude=12.97, longitude=77.59)
        self.shop_b = Shop.objects.create(seller=self.seller, name="Grocer")

    def test_regular_order_across_shops(self):
        order = OrderService.create_order(
            user=self.user,
            shop_lines=[{"shop_id": self.shop_a.id, "subtotal": 120}, {"shop_id": self.shop_b.id, "subtotal": 80}],
        )

        self.assertEqual(order.delivery_type, "regular")
        self.assertEqual(order.total_amount, 200)
        self.assertEqual(
            list(order.shops.order_by("shop_id").values_list("status", flat=True)),
            ["arrived", "arrived"],
        )
        self.assertTrue(AuditLog.objects.filter(action="order_created", reference_id=str(order.id)).exists())
        self.assertEqual(Notification.objects.filter(user=self.user, type="success").count(), 1)

    def test_drone_order_gets_drone_record(self):
        coordinator = MagicMock()

        def create_drone_order(order_id, actor, pickup_location, delivery_location):
            return DroneOrder.objects.create(
                order_id=order_id, user=actor.user, qr_code="DRN-" + "C" * 40
            )

        coordinator.create_drone_order.side_effect = create_drone_order

        order = OrderService.create_order(
            user=self.user,
            shop_lines=[{"shop_id": self.shop_a.id, "subtotal": 50}],
            delivery_type="drone",
            delivery_location=DROP,
            pickup_location=PICKUP,
            coordinator=coordinator,
        )

        self.assertEqual(order.delivery_type, "drone")
        self.assertIsNone(order.fallback_reason)
        self.assertTrue(DroneOrder.objects.filter(order=order).exists())
        coordinator.create_drone_order.assert_called_once()

    def test_drone_setup_failure_falls_back_to_regular(self):
        coordinator = MagicMock()
        coordinator.create_drone_order.side_effect = Conflict("already scheduled", code="drone_order_exists")

        order = OrderService.create_order(
            user=self.user,
            shop_lines=[{"shop_id": self.shop_a.id}],
            delivery_type="drone",
            delivery_location=DROP,
            pickup_location=PICKUP,
            coordinator=coordinator,
        )

        order.refresh_from_db()
        self.assertEqual(order.delivery_type, "regular")
        self.assertEqual(order.fallback_reason, "drone_setup_failed")
        self.assertEqual(order.shops.count(), 1)

    def test_drone_order_requires_coordinates(self):
        with self.assertRaises(InvalidState):
            OrderService.create_order(
                user=self.user,
                shop_lines=[{"shop_id": self.shop_a.id}],
                delivery_type="drone",
                delivery_location={"lat": 12.9},
                pickup_location=PICKUP,
            )
        self.assertFalse(Order.objects.exists())

    def test_inactive_shop_rejected(self):
        self.shop_b.is_active = False
        self.shop_b.save()
        with self.assertRaises(NotFound):
            OrderService.create_order(user=self.user, shop_lines=[{"shop_id": self.shop_b.id}])

    def test_shop_status_transitions(self):
        order = OrderService.create_order(user=self.user, shop_lines=[{"shop_id": self.shop_a.id}])
        seller = Actor.from_user(self.seller)

        OrderService.update_shop_status(order.id, self.shop_a.id, seller, "preparing")
        slice_ = OrderService.update_shop_status(order.id, self.shop_a.id, seller, "ready")
        self.assertEqual(slice_.status, "ready")

        with self.assertRaises(InvalidState):
            OrderService.update_shop_status(order.id, self.shop_a.id, seller, "arrived")

        self.assertEqual(Notification.objects.filter(user=self.user, type="info").count(), 2)

    def test_cancel_records_reason(self):
        order = OrderService.create_order(user=self.user, shop_lines=[{"shop_id": self.shop_a.id}])
        slice_ = OrderService.update_shop_status(
            order.id, self.shop_a.id, Actor.from_user(self.seller), "cancelled", cancel_reason="out of stock"
        )
        self.assertEqual(slice_.cancel_reason, "out of stock")
        with self.assertRaises(InvalidState):
            OrderService.update_shop_status(order.id, self.shop_a.id, Actor.from_user(self.seller), "preparing")

    def test_only_shop_seller_moves_status(self):
        order = OrderService.create_order(user=self.user, shop_lines=[{"shop_id": self.shop_a.id}])
        with self.assertRaises(Forbidden):
            OrderService.update_shop_status(order.id, self.shop_a.id, Actor.from_user(self.user), "preparing")

    def test_order_visibility(self):
        order = OrderService.create_order(user=self.user, shop_lines=[{"shop_id": self.shop_a.id}])
        stranger = User.objects.create_user(phone="+917777777777")

        self.assertEqual(OrderService.get_order_for(order.id, Actor.from_user(self.seller)), order)
        with self.assertRaises(Forbidden):
            OrderService.get_order_for(order.id, Actor.from_user(stranger))


class OrderAPITestCase(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user = User.objects.create_user(phone="+919999999999", password="pass")
        UserRole.objects.create(user=self.user, role="customer")
        self.seller = User.objects.create_user(phone="+918888888888", password="pass")
        UserRole.objects.create(user=self.seller, role="seller")
        self.shop = Shop.objects.create(seller=self.seller, name="Bakery")
        self.client.force_authenticate(user=self.user)

    def test_create_and_list(self):
        response = self.client.post(
            "/api/v1/orders/",
            {"shops": [{"shop_id": self.shop.id, "subtotal": "99.50"}]},
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertIsNone(response.data["drone_order"])

        response = self.client.get("/api/v1/orders/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["count"], 1)

    def test_drone_order_without_weather_key_is_blocked_not_lost(self):
        response = self.client.post(
            "/api/v1/orders/",
            {
                "shops": [{"shop_id": self.shop.id}],
                "delivery_type": "drone",
                "delivery_location": DROP,
                "pickup_location": PICKUP,
            },
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["delivery_type"], "drone")
        self.assertEqual(response.data["drone_order"]["status"], "weather_blocked")

    def test_missing_coordinates_error_envelope(self):
        response = self.client.post(
            "/api/v1/orders/",
            {"shops": [{"shop_id": self.shop.id}], "delivery_type": "drone"},
            format="json",
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["error"]["code"], "missing_coordinates")

    def test_seller_moves_slice(self):
        order = OrderService.create_order(user=self.user, shop_lines=[{"shop_id": self.shop.id}])
        self.client.force_authenticate(user=self.seller)
        response = self.client.patch(
            f"/api/v1/orders/{order.id}/shops/{self.shop.id}/status/", {"status": "preparing"}, format="json"
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(OrderShop.objects.get(order=order).status, "preparing")
