# apps/delivery/tests.py
from datetime import timedelta
from unittest.mock import patch

from django.test import TestCase, override_settings
from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework.test import APIClient
from rest_framework import status

from apps.accounts.actors import Actor
from apps.accounts.models import UserRole
from apps.audit.models import AuditLog
from apps.delivery.models import Delivery
from apps.delivery.services import DeliveryService
from apps.notifications.models import Notification
from apps.orders.models import Order, OrderShop
from apps.shops.models import Shop
from apps.utils.exceptions import Forbidden, InvalidState, NotFound

User = get_user_model()


class DeliveryServiceTestCase(TestCase):
    def setUp(self):
        self.customer = User.objects.create_user(phone="+919000000000", password="pass")
        self.seller = User.objects.create_user(phone="+919111111111", password="pass")
        UserRole.objects.create(user=self.seller, role="seller")
        self.admin = User.objects.create_user(phone="+919222222222", is_staff=True)

        self.shop = Shop.objects.create(seller=self.seller, name="Chai Point")
        self.order = Order.objects.create(user=self.customer, total_amount=150)
        OrderShop.objects.create(order=self.order, shop=self.shop, subtotal=150)

        self.seller_actor = Actor.from_user(self.seller)

    def test_upsert_records_history_and_route(self):
        DeliveryService.upsert_delivery(self.order.id, self.shop.id, self.seller_actor, status="assigned",
                                        partner="Ravi")
        delivery = DeliveryService.upsert_delivery(
            self.order.id, self.shop.id, self.seller_actor,
            status="out_for_delivery", location={"lat": 12.9, "lng": 77.6}, eta_minutes=20,
        )

        self.assertEqual(Delivery.objects.count(), 1)
        self.assertEqual([h["status"] for h in delivery.status_history], ["assigned", "out_for_delivery"])
        self.assertEqual(len(delivery.route), 1)
        self.assertEqual(delivery.current_location, {"lat": 12.9, "lng": 77.6})

        self.order.refresh_from_db()
        self.assertEqual(self.order.delivery_status, "out_for_delivery")
        self.assertEqual(self.order.delivery_partner, "Ravi")
        self.assertEqual(self.order.eta_minutes, 20)
        self.assertIsNotNone(self.order.estimated_delivery_time)
        self.assertEqual(AuditLog.objects.filter(action="delivery_updated").count(), 2)

    def test_delivered_notifies_customer(self):
        DeliveryService.upsert_delivery(self.order.id, self.shop.id, self.seller_actor, status="delivered")

        self.order.refresh_from_db()
        self.assertIsNotNone(self.order.actual_delivery_time)
        self.assertEqual(Notification.objects.filter(user=self.customer, type="success").count(), 1)

    def test_drone_mode_issues_token(self):
        delivery = DeliveryService.upsert_delivery(
            self.order.id, self.shop.id, self.seller_actor, delivery_mode="drone"
        )
        self.assertRegex(delivery.qr_code, r"^[0-9a-f]{64}$")
        self.assertGreater(delivery.qr_expiry, timezone.now())

    def test_other_seller_forbidden(self):
        other = User.objects.create_user(phone="+919333333333")
        UserRole.objects.create(user=other, role="seller")
        with self.assertRaises(Forbidden):
            DeliveryService.upsert_delivery(self.order.id, self.shop.id, Actor.from_user(other), status="assigned")

    def test_unknown_shop_slice(self):
        other_shop = Shop.objects.create(seller=self.seller, name="Elsewhere")
        with self.assertRaises(NotFound):
            DeliveryService.upsert_delivery(self.order.id, other_shop.id, self.seller_actor, status="assigned")

    def test_deliveries_visible_to_owner_only(self):
        DeliveryService.upsert_delivery(self.order.id, self.shop.id, self.seller_actor, status="assigned")
        self.assertEqual(DeliveryService.get_deliveries(self.order.id, Actor.from_user(self.customer)).count(), 1)
        with self.assertRaises(Forbidden):
            DeliveryService.get_deliveries(self.order.id, self.seller_actor)

    def test_verify_qr(self):
        delivery = DeliveryService.upsert_delivery(
            self.order.id, self.shop.id, self.seller_actor, delivery_mode="drone", status="nearby"
        )
        customer = Actor.from_user(self.customer)

        verified = DeliveryService.verify_qr_delivery(delivery.qr_code, self.order.id, customer)
        self.assertEqual(verified.status, "delivered")
        self.order.refresh_from_db()
        self.assertEqual(self.order.delivery_status, "delivered")

        with self.assertRaises(InvalidState):
            DeliveryService.verify_qr_delivery(delivery.qr_code, self.order.id, customer)

    def test_verify_expired_qr(self):
        delivery = DeliveryService.upsert_delivery(
            self.order.id, self.shop.id, self.seller_actor, delivery_mode="drone", status="nearby"
        )
        Delivery.objects.filter(pk=delivery.pk).update(qr_expiry=timezone.now() - timedelta(seconds=1))

        with self.assertRaises(InvalidState) as ctx:
            DeliveryService.verify_qr_delivery(delivery.qr_code, self.order.id, Actor.from_user(self.customer))
        self.assertEqual(ctx.exception.code, "qr_expired")
        self.assertEqual(Delivery.objects.get(pk=delivery.pk).status, "nearby")

    def test_verify_wrong_order_or_user(self):
        delivery = DeliveryService.upsert_delivery(
            self.order.id, self.shop.id, self.seller_actor, delivery_mode="drone"
        )
        with self.assertRaises(NotFound):
            DeliveryService.verify_qr_delivery(delivery.qr_code, self.order.id + 1, Actor.from_user(self.customer))
        with self.assertRaises(Forbidden):
            DeliveryService.verify_qr_delivery(delivery.qr_code, self.order.id, self.seller_actor)

    def test_admin_completes_delivery(self):
        delivery = DeliveryService.upsert_delivery(self.order.id, self.shop.id, self.seller_actor, status="assigned")
        completed = DeliveryService.mark_delivery_completed(delivery.id, actor=Actor.from_user(self.admin))

        self.assertEqual(completed.status, "delivered")
        self.assertEqual(completed.status_history[-1]["notes"], "Marked as delivered by admin")
        self.assertTrue(AuditLog.objects.filter(action="delivery_completed").exists())

    @override_settings(DEBUG=False)
    def test_test_qr_refused_outside_debug(self):
        with self.assertRaises(Forbidden):
            DeliveryService.generate_test_qr(self.order.id)

    @override_settings(DEBUG=True)
    def test_test_qr_in_debug(self):
        delivery = DeliveryService.generate_test_qr(self.order.id)
        self.assertEqual((delivery.delivery_mode, delivery.status), ("drone", "nearby"))
        self.assertIsNotNone(delivery.qr_code)


class DeliveryAPITestCase(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.customer = User.objects.create_user(phone="+919000000000")
        self.seller = User.objects.create_user(phone="+919111111111")
        UserRole.objects.create(user=self.seller, role="seller")
        self.admin = User.objects.create_user(phone="+919222222222", is_staff=True)
        self.shop = Shop.objects.create(seller=self.seller, name="Chai Point")
        self.order = Order.objects.create(user=self.customer)
        OrderShop.objects.create(order=self.order, shop=self.shop)

    @patch("apps.delivery.services.DeliveryService.publisher")
    def test_seller_posts_update_and_customer_tracks(self, mock_publisher):
        self.client.force_authenticate(user=self.seller)
        response = self.client.post(
            f"/api/v1/delivery/orders/{self.order.id}/",
            {"shop_id": self.shop.id, "status": "preparing"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        mock_publisher.publish.assert_called_once()
        self.assertEqual(mock_publisher.publish.call_args.args[0], f"order_{self.order.id}")

        self.client.force_authenticate(user=self.customer)
        response = self.client.get(f"/api/v1/delivery/orders/{self.order.id}/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data[0]["status"], "preparing")
        self.assertNotIn("qr_code", response.data[0])

    def test_customer_cannot_post_update(self):
        self.client.force_authenticate(user=self.customer)
        response = self.client.post(
            f"/api/v1/delivery/orders/{self.order.id}/", {"shop_id": self.shop.id, "status": "delivered"}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_admin_list_filters(self):
        Delivery.objects.create(order=self.order, shop=self.shop, delivery_mode="drone", status="nearby")
        self.client.force_authenticate(user=self.admin)

        response = self.client.get("/api/v1/delivery/admin/?mode=drone")
        self.assertEqual(response.data["count"], 1)
        response = self.client.get("/api/v1/delivery/admin/?status=delivered")
        self.assertEqual(response.data["count"], 0)

    def test_test_qr_endpoint_forbidden_outside_debug(self):
        self.client.force_authenticate(user=self.customer)
        response = self.client.post(f"/api/v1/delivery/orders/{self.order.id}/test-qr/")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data["error"]["type"], "Forbidden")
