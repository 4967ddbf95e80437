# apps/drones/consumers.py
import json
from urllib.parse import parse_qs

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncWebsocketConsumer
from django.contrib.auth import get_user_model
from django.core.cache import cache

from apps.notifications.tasks import user_group_name
from .events import drone_room, order_room
from .models import DroneOrder

User = get_user_model()


class DroneTrackingConsumer(AsyncWebsocketConsumer):
    """
    Real-time drone delivery updates.
    Auth: one-time 'ticket' via query param. Clients then join rooms with
    {"action": "join_order", "order_id": ..} or {"action": "join_drone", "drone_id": ..}.
    """

    async def connect(self):
        query_string = parse_qs(self.scope["query_string"].decode())
        ticket = query_string.get("ticket", [None])[0]

        if not ticket:
            await self.close(code=4003)
            return

        # 1. Verify & burn ticket
        user_id = await database_sync_to_async(self.redeem_ticket)(ticket)
        if not user_id:
            await self.close(code=4003)
            return

        # 2. Rehydrate user
        try:
            self.user = await database_sync_to_async(User.objects.get)(id=int(user_id), is_active=True)
        except (User.DoesNotExist, ValueError):
            await self.close(code=4003)
            return

        self.scope["user"] = self.user
        self.rooms = {user_group_name(self.user.id)}
        await self.channel_layer.group_add(user_group_name(self.user.id), self.channel_name)
        await self.accept()

    async def disconnect(self, close_code):
        for room in getattr(self, "rooms", ()):
            await self.channel_layer.group_discard(room, self.channel_name)

    async def receive(self, text_data=None, bytes_data=None):
        try:
            message = json.loads(text_data or "{}")
        except json.JSONDecodeError:
            await self.send_error("invalid_json")
            return

        action = message.get("action")
        if action == "join_order":
            order_id = message.get("order_id")
            if await self.can_join_order(order_id):
                await self.join(order_room(order_id))
            else:
                await self.send_error("forbidden")
        elif action == "join_drone":
            drone_id = message.get("drone_id")
            if drone_id and self.user.is_staff:
                await self.join(drone_room(drone_id))
            else:
                await self.send_error("forbidden")
        else:
            await self.send_error("unknown_action")

    async def join(self, room):
        await self.channel_layer.group_add(room, self.channel_name)
        self.rooms.add(room)
        await self.send(text_data=json.dumps({"event": "joined", "room": room}))

    async def send_error(self, code):
        await self.send(text_data=json.dumps({"event": "error", "code": code}))

    # Group message handlers
    async def room_event(self, event):
        await self.send(text_data=json.dumps({"event": event["event"], "data": event["data"]}))

    async def notification_new(self, event):
        await self.send(text_data=json.dumps({"event": "notification:new", "data": event["payload"]}))

    @staticmethod
    def redeem_ticket(ticket):
        key = f"ws_ticket:{ticket}"
        user_id = cache.get(key)
        # Only the caller whose delete succeeds may use the ticket
        if user_id and cache.delete(key):
            return user_id
        return None

    @database_sync_to_async
    def can_join_order(self, order_id):
        """
        The order's customer, its seller, or platform staff.
        """
        try:
            order_id = int(order_id)
        except (TypeError, ValueError):
            return False

        if self.user.is_staff:
            return True

        drone_order = DroneOrder.objects.filter(order_id=order_id).only("user_id", "seller_id").first()
        if drone_order is not None:
            return self.user.id in (drone_order.user_id, drone_order.seller_id)

        from apps.orders.models import Order
        return Order.objects.filter(id=order_id, user=self.user).exists() or Order.objects.filter(
            id=order_id, shops__shop__seller=self.user
        ).exists()
