import uuid

from channels.layers import get_channel_layer
from channels.routing import URLRouter
from channels.testing import WebsocketCommunicator
from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from django.test import TransactionTestCase

from apps.queueapp.models import Service
from apps.queueapp.services.queue_coordinator import get_queue_coordinator
from waitline.routing import websocket_urlpatterns

User = get_user_model()


class QueueConsumerTest(TransactionTestCase):
    def setUp(self):
        self.application = URLRouter(websocket_urlpatterns)
        self.staff = User.objects.create_user(username="staff", password="pass1234", is_staff=True)
        self.customer = User.objects.create_user(username="customer", password="pass1234")
        self.service = Service.objects.create(name="Front desk", establishment_id=uuid.uuid4())
        self.entry = get_queue_coordinator().join(self.service.id, self.customer.pk)

    def communicator(self, path, user):
        communicator = WebsocketCommunicator(self.application, path)
        communicator.scope["user"] = user
        return communicator

    async def test_anonymous_user_is_rejected(self):
        communicator = self.communicator(f"/ws/queue/{self.service.id}/", AnonymousUser())

        connected, code = await communicator.connect()

        self.assertFalse(connected)
        self.assertEqual(code, 4001)

    async def test_unknown_service_is_rejected(self):
        communicator = self.communicator(f"/ws/queue/{uuid.uuid4()}/", self.staff)

        connected, code = await communicator.connect()

        self.assertFalse(connected)
        self.assertEqual(code, 4004)

    async def test_connect_sends_queue_state(self):
        communicator = self.communicator(f"/ws/queue/{self.service.id}/", self.staff)

        connected, _ = await communicator.connect()
        self.assertTrue(connected)

        message = await communicator.receive_json_from()
        self.assertEqual(message["type"], "queue_state")
        self.assertEqual(message["data"]["service_id"], str(self.service.id))
        self.assertEqual(message["data"]["waiting_count"], 1)
        self.assertEqual(message["data"]["next_queue_number"], 2)

        await communicator.disconnect()

    async def test_forwards_queue_updates(self):
        communicator = self.communicator(f"/ws/queue/{self.service.id}/", self.staff)
        await communicator.connect()
        await communicator.receive_json_from()

        await get_channel_layer().group_send(
            f"queue_{self.service.id}",
            {
                "type": "queue_update",
                "action": "update",
                "entry": {"id": str(self.entry.id), "status": "called"},
            },
        )

        message = await communicator.receive_json_from()
        self.assertEqual(message["type"], "queue_update")
        self.assertEqual(message["action"], "update")
        self.assertEqual(message["entry"]["status"], "called")

        await communicator.disconnect()

    async def test_ping_and_unknown_messages(self):
        communicator = self.communicator(f"/ws/queue/{self.service.id}/", self.staff)
        await communicator.connect()
        await communicator.receive_json_from()

        await communicator.send_json_to({"type": "ping"})
        self.assertEqual(await communicator.receive_json_from(), {"type": "pong"})

        await communicator.send_to(text_data="not json")
        message = await communicator.receive_json_from()
        self.assertEqual(message, {"type": "error", "message": "Invalid JSON"})

        await communicator.send_json_to({"type": "dance"})
        message = await communicator.receive_json_from()
        self.assertEqual(message["type"], "error")

        await communicator.disconnect()

    async def test_get_state(self):
        communicator = self.communicator(f"/ws/queue/{self.service.id}/", self.staff)
        await communicator.connect()
        await communicator.receive_json_from()

        await communicator.send_json_to({"type": "get_state"})

        message = await communicator.receive_json_from()
        self.assertEqual(message["type"], "queue_state")
        self.assertEqual(message["data"]["waiting_count"], 1)

        await communicator.disconnect()


class UserQueueConsumerTest(TransactionTestCase):
    def setUp(self):
        self.application = URLRouter(websocket_urlpatterns)
        self.customer = User.objects.create_user(username="customer", password="pass1234")
        self.service = Service.objects.create(name="Front desk", establishment_id=uuid.uuid4())
        self.entry = get_queue_coordinator().join(self.service.id, self.customer.pk)

    def communicator(self, user):
        communicator = WebsocketCommunicator(self.application, "/ws/my-queue/")
        communicator.scope["user"] = user
        return communicator

    async def test_anonymous_user_is_rejected(self):
        connected, code = await self.communicator(AnonymousUser()).connect()

        self.assertFalse(connected)
        self.assertEqual(code, 4001)

    async def test_connect_sends_own_entries(self):
        communicator = self.communicator(self.customer)

        connected, _ = await communicator.connect()
        self.assertTrue(connected)

        message = await communicator.receive_json_from()
        self.assertEqual(message["type"], "my_entries")
        self.assertEqual([entry["id"] for entry in message["data"]], [str(self.entry.id)])

        await communicator.disconnect()

    async def test_forwards_notifications(self):
        communicator = self.communicator(self.customer)
        await communicator.connect()
        await communicator.receive_json_from()

        await get_channel_layer().group_send(
            f"user_queue_{self.customer.pk}",
            {
                "type": "queue_notification",
                "notification": {"kind": "called", "title": "It's your turn"},
            },
        )

        message = await communicator.receive_json_from()
        self.assertEqual(message["type"], "notification")
        self.assertEqual(message["notification"]["kind"], "called")

        await communicator.send_json_to({"type": "ping"})
        self.assertEqual(await communicator.receive_json_from(), {"type": "pong"})

        await communicator.disconnect()
