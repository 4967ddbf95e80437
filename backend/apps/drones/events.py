# apps/drones/events.py
import json
import logging
import re

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.core.serializers.json import DjangoJSONEncoder
from django.db import transaction

from apps.utils.resilience import best_effort

logger = logging.getLogger(__name__)

DRONE_UPDATE = "drone:update"
DELIVERY_UPDATE = "delivery:update"

_GROUP_UNSAFE = re.compile(r"[^0-9A-Za-z_.-]")


def order_room(order_id):
    return f"order_{order_id}"


def drone_room(drone_id):
    # Channels group names only allow ASCII alphanumerics, '-', '_' and '.'
    return f"drone_{_GROUP_UNSAFE.sub('_', str(drone_id))}"[:99]


class ChannelsEventPublisher:
    """
    Pushes real-time updates to per-order and per-drone websocket rooms.
    Delivery is best-effort: a broken channel layer never fails the caller.
    """

    def publish(self, room, event, data):
        payload = json.loads(json.dumps(data, cls=DjangoJSONEncoder))

        if transaction.get_connection().in_atomic_block:
            transaction.on_commit(lambda: self._send(room, event, payload))
            return None
        return self._send(room, event, payload)

    def to_order(self, order_id, type, **data):
        return self.publish(order_room(order_id), DRONE_UPDATE, {"type": type, "order_id": order_id, **data})

    def to_drone(self, drone_id, type, **data):
        return self.publish(drone_room(drone_id), DRONE_UPDATE, {"type": type, "drone_id": drone_id, **data})

    def _send(self, room, event, payload):
        return best_effort(f"publish:{room}", self._group_send, room, event, payload)

    @staticmethod
    def _group_send(room, event, payload):
        channel_layer = get_channel_layer()
        if channel_layer is None:
            logger.warning(f"No channel layer configured; dropping {event} for {room}")
            return False

        async_to_sync(channel_layer.group_send)(
            room,
            {"type": "room_event", "event": event, "data": payload},
        )
        return True
