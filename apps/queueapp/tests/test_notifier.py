import uuid
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.test import SimpleTestCase, TestCase

from apps.queueapp.enums import NotificationKind
from apps.queueapp.models import Notification, QueueEntry, Service
from apps.queueapp.services.notifier import DatabaseNotifier, render_notification
from apps.queueapp.signals import entry_update_event

from .helpers import FakeChannelLayer

User = get_user_model()


class RenderNotificationTest(SimpleTestCase):
    def test_reminder(self):
        title, message = render_notification(
            NotificationKind.REMINDER,
            {"position_label": "2nd", "service_name": "Pharmacy", "wait_label": "15 minutes"},
        )

        self.assertEqual(title, "Your turn is coming up")
        self.assertEqual(message, "You are 2nd in line at Pharmacy. Estimated wait: 15 minutes.")

    def test_missing_values_render_empty(self):
        _, message = render_notification("called", {"queue_number": 7})

        self.assertEqual(message, "Number 7, please proceed to .")


class DatabaseNotifierTest(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="customer", password="pass1234")
        self.channel_layer = FakeChannelLayer()
        self.notifier = DatabaseNotifier(channel_layer=self.channel_layer)

    def test_stores_and_pushes_notification(self):
        self.notifier.notify(
            self.user.pk,
            NotificationKind.JOINED,
            {"queue_number": 3, "service_name": "Front desk", "wait_label": "30 minutes"},
        )

        notification = Notification.objects.get(user=self.user)
        self.assertEqual(notification.kind, "joined")
        self.assertEqual(
            notification.message, "You are number 3 in Front desk. Estimated wait: 30 minutes."
        )
        self.assertEqual(notification.data["queue_number"], 3)

        group, event = self.channel_layer.sent[0]
        self.assertEqual(group, f"user_queue_{self.user.pk}")
        self.assertEqual(event["type"], "queue_notification")
        self.assertEqual(event["notification"]["id"], str(notification.id))

    def test_push_failure_is_logged(self):
        self.channel_layer.error = ConnectionError("redis down")

        with self.assertLogs("apps.queueapp.services.notifier", level="WARNING"):
            self.notifier.notify(self.user.pk, "served", {"service_name": "Front desk"})

        self.assertEqual(Notification.objects.filter(user=self.user).count(), 1)

    def test_unknown_kind_is_logged(self):
        with self.assertLogs("apps.queueapp.services.notifier", level="ERROR"):
            self.notifier.notify(self.user.pk, "birthday", {})

        self.assertFalse(Notification.objects.exists())
        self.assertEqual(self.channel_layer.sent, [])


class QueueEntrySignalTest(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="customer", password="pass1234")
        self.service = Service.objects.create(name="Front desk", establishment_id=uuid.uuid4())

    def create_entry(self):
        return QueueEntry.objects.create(
            service=self.service, customer=self.user, queue_number=1, qr_code="WLSIGNAL"
        )

    @patch("apps.queueapp.signals.get_channel_layer")
    def test_save_broadcasts_after_commit(self, mock_get_channel_layer):
        channel_layer = FakeChannelLayer()
        mock_get_channel_layer.return_value = channel_layer

        with self.captureOnCommitCallbacks(execute=True):
            entry = self.create_entry()

        groups = [group for group, _ in channel_layer.sent]
        self.assertEqual(groups, [f"queue_{self.service.id}", f"user_queue_{self.user.pk}"])
        event = channel_layer.sent[0][1]
        self.assertEqual(event["action"], "create")
        self.assertEqual(event["entry"]["id"], str(entry.id))

    @patch("apps.queueapp.signals.get_channel_layer")
    def test_broadcast_failure_is_logged(self, mock_get_channel_layer):
        mock_get_channel_layer.return_value = FakeChannelLayer(error=ConnectionError("redis down"))

        with self.assertLogs("apps.queueapp.signals", level="WARNING"):
            with self.captureOnCommitCallbacks(execute=True):
                self.create_entry()

    def test_update_event(self):
        entry = self.create_entry()
        entry.status = "called"

        event = entry_update_event(entry, created=False)

        self.assertEqual(event["type"], "queue_update")
        self.assertEqual(event["action"], "update")
        self.assertEqual(event["entry"]["status"], "called")
        self.assertIsNone(event["entry"]["served_at"])
