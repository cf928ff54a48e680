import json
import logging

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncWebsocketConsumer
from django.core.serializers.json import DjangoJSONEncoder

from .exceptions import QueueError
from .services.queue_coordinator import get_queue_coordinator

logger = logging.getLogger(__name__)


class QueueConsumerMixin:
    """Helpers shared by the queue WebSocket consumers"""

    async def send_json(self, payload):
        await self.send(text_data=json.dumps(payload, cls=DjangoJSONEncoder))

    async def send_error(self, message):
        await self.send_json({"type": "error", "message": message})

    def get_authenticated_user(self):
        user = self.scope.get("user")
        if user is None or not user.is_authenticated:
            return None
        return user

    async def queue_update(self, event):
        """Forward an entry change broadcast by the post_save signal"""
        await self.send_json(
            {"type": "queue_update", "action": event.get("action"), "entry": event["entry"]}
        )


class QueueConsumer(QueueConsumerMixin, AsyncWebsocketConsumer):
    """WebSocket consumer for real-time updates of one service's line"""

    async def connect(self):
        self.service_id = str(self.scope["url_route"]["kwargs"]["service_id"])
        self.queue_group_name = f"queue_{self.service_id}"

        user = self.get_authenticated_user()
        if user is None:
            logger.warning(f"Anonymous connection to queue {self.service_id} rejected")
            await self.close(code=4001)
            return

        try:
            stats = await database_sync_to_async(self.get_queue_state)()
        except QueueError as e:
            logger.warning(f"Queue connection to {self.service_id} rejected: {e.message}")
            await self.close(code=4004)
            return

        await self.channel_layer.group_add(self.queue_group_name, self.channel_name)
        await self.accept()
        logger.info(f"User {user.pk} connected to queue {self.service_id}")

        await self.send_json({"type": "queue_state", "data": stats})

    async def disconnect(self, close_code):
        if hasattr(self, "queue_group_name"):
            await self.channel_layer.group_discard(self.queue_group_name, self.channel_name)
        logger.info(f"Disconnected from queue {getattr(self, 'service_id', 'unknown')} ({close_code})")

    async def receive(self, text_data=None, bytes_data=None):
        try:
            data = json.loads(text_data or "{}")
        except json.JSONDecodeError:
            await self.send_error("Invalid JSON")
            return

        message_type = data.get("type", "")

        if message_type == "ping":
            await self.send_json({"type": "pong"})
        elif message_type == "get_state":
            try:
                stats = await database_sync_to_async(self.get_queue_state)()
            except QueueError as e:
                await self.send_error(str(e.message))
                return
            await self.send_json({"type": "queue_state", "data": stats})
        else:
            await self.send_error(f"Unknown message type: {message_type}")

    def get_queue_state(self):
        return get_queue_coordinator().get_stats(self.service_id).to_dict()


class UserQueueConsumer(QueueConsumerMixin, AsyncWebsocketConsumer):
    """WebSocket consumer for the signed-in customer's own entries and notifications"""

    async def connect(self):
        user = self.get_authenticated_user()
        if user is None:
            await self.close(code=4001)
            return

        self.user_id = str(user.pk)
        self.user_group_name = f"user_queue_{self.user_id}"

        await self.channel_layer.group_add(self.user_group_name, self.channel_name)
        await self.accept()

        entries = await database_sync_to_async(self.get_active_entries)()
        await self.send_json({"type": "my_entries", "data": entries})

    async def disconnect(self, close_code):
        if hasattr(self, "user_group_name"):
            await self.channel_layer.group_discard(self.user_group_name, self.channel_name)

    async def receive(self, text_data=None, bytes_data=None):
        try:
            data = json.loads(text_data or "{}")
        except json.JSONDecodeError:
            await self.send_error("Invalid JSON")
            return

        if data.get("type") == "ping":
            await self.send_json({"type": "pong"})
        else:
            await self.send_error(f"Unknown message type: {data.get('type', '')}")

    async def queue_notification(self, event):
        await self.send_json({"type": "notification", "notification": event["notification"]})

    def get_active_entries(self):
        coordinator = get_queue_coordinator()
        return [entry.to_dict() for entry in coordinator.get_user_active_entries(self.user_id)]
