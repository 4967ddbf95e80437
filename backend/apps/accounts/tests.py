# apps/accounts/tests.py
from django.test import TestCase
from django.contrib.auth import get_user_model
from django.core.cache import cache
from rest_framework.test import APIClient
from rest_framework import status
from apps.accounts.models import UserRole
from apps.accounts.actors import Actor

User = get_user_model()


class UserManagerTestCase(TestCase):
    def test_create_user_manager(self):
        user = User.objects.create_user(phone="+919999999999", password="password123")
        self.assertEqual(user.phone, "+919999999999")
        self.assertTrue(user.check_password("password123"))
        self.assertFalse(user.is_staff)

    def test_phone_required(self):
        with self.assertRaises(ValueError):
            User.objects.create_user(phone=None, password="pass")

    def test_platform_admins_only_active_staff(self):
        User.objects.create_user(phone="+911", is_staff=True)
        User.objects.create_user(phone="+912", is_staff=True, is_active=False)
        User.objects.create_user(phone="+913")
        self.assertEqual(list(User.objects.platform_admins().values_list("phone", flat=True)), ["+911"])


class ActorTestCase(TestCase):
    def setUp(self):
        self.customer = User.objects.create_user(phone="+918000000001")
        self.seller = User.objects.create_user(phone="+918000000002")
        UserRole.objects.create(user=self.seller, role="seller")
        self.admin = User.objects.create_user(phone="+918000000003", is_staff=True)

    def test_from_user_resolves_kind(self):
        self.assertEqual(Actor.from_user(self.customer).kind, Actor.USER)
        self.assertEqual(Actor.from_user(self.seller).kind, Actor.SELLER)
        self.assertEqual(Actor.from_user(self.admin).kind, Actor.ADMIN)

    def test_relation_to_record(self):
        owner_id, seller_id = self.customer.id, self.seller.id
        self.assertEqual(Actor.from_user(self.customer).relation_to(owner_id, seller_id), "user")
        self.assertEqual(Actor.from_user(self.seller).relation_to(owner_id, seller_id), "seller")
        self.assertEqual(Actor.from_user(self.admin).relation_to(owner_id, seller_id), "admin")
        self.assertEqual(Actor.system().relation_to(owner_id, seller_id), "system")

        stranger = User.objects.create_user(phone="+918000000009")
        self.assertIsNone(Actor.from_user(stranger).relation_to(owner_id, seller_id))

    def test_non_system_actor_requires_user(self):
        with self.assertRaises(ValueError):
            Actor(Actor.USER)


class AuthAPITestCase(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user = User.objects.create_user(phone="+919876543210", password="testpass")
        UserRole.objects.create(user=self.user, role="customer")

    def tearDown(self):
        cache.clear()

    def test_me_endpoint_authenticated(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.get("/api/v1/auth/me/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["phone"], self.user.phone)
        self.assertEqual(response.data["roles"], ["customer"])

    def test_me_endpoint_unauthenticated(self):
        response = self.client.get("/api/v1/auth/me/")
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_ws_ticket_is_cached_for_user(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.post("/api/v1/auth/ws/ticket/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(cache.get(f"ws_ticket:{response.data['ticket']}"), self.user.id)
