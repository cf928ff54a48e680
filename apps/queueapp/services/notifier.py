import logging
from typing import Any, Dict, List, Optional, Tuple

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.db import DatabaseError, transaction

from apps.queueapp.enums import NotificationKind
from apps.queueapp.models import Notification

logger = logging.getLogger(__name__)

NOTIFICATION_TEMPLATES = {
    NotificationKind.JOINED: (
        "You joined the queue",
        "You are number {queue_number} in {service_name}. Estimated wait: {wait_label}.",
    ),
    NotificationKind.CALLED: (
        "It's your turn",
        "Number {queue_number}, please proceed to {service_name}.",
    ),
    NotificationKind.SERVED: (
        "Thanks for your visit",
        "Your turn at {service_name} has been completed.",
    ),
    NotificationKind.CANCELLED: (
        "You left the queue",
        "Your place in {service_name} is no longer active.",
    ),
    NotificationKind.REMINDER: (
        "Your turn is coming up",
        "You are {position_label} in line at {service_name}. Estimated wait: {wait_label}.",
    ),
}


class _DefaultFormat(dict):
    def __missing__(self, key):
        return ""


def render_notification(kind: NotificationKind, payload: Dict[str, Any]) -> Tuple[str, str]:
    """Title and message for a notification kind, filled from its payload"""
    title, template = NOTIFICATION_TEMPLATES[NotificationKind(kind)]
    return title, template.format_map(_DefaultFormat(payload))


class Notifier:
    """
    Receives queue events. Implementations must never raise: a notification
    problem never changes the outcome of a queue operation.
    """

    def notify(self, user_id, kind: NotificationKind, payload: Dict[str, Any]) -> None:
        raise NotImplementedError


class NullNotifier(Notifier):
    def notify(self, user_id, kind, payload):
        return None


class RecordingNotifier(Notifier):
    """Keeps every event in memory, handy in scripts and tests"""

    def __init__(self):
        self.events: List[Tuple[Any, NotificationKind, Dict[str, Any]]] = []

    def notify(self, user_id, kind, payload):
        self.events.append((user_id, NotificationKind(kind), dict(payload)))

    def kinds(self) -> List[NotificationKind]:
        return [kind for _, kind, _ in self.events]


class DatabaseNotifier(Notifier):
    """
    Stores an in-app ``Notification`` row for the user and pushes it to the
    user's realtime group (``user_queue_<user_id>``) when a channel layer is
    configured. Push and SMS delivery are left to other systems reading the
    notification table.
    """

    def __init__(self, channel_layer=None):
        self._channel_layer = channel_layer

    @property
    def channel_layer(self):
        if self._channel_layer is None:
            self._channel_layer = get_channel_layer()
        return self._channel_layer

    def notify(self, user_id, kind, payload):
        try:
            kind = NotificationKind(kind)
            title, message = render_notification(kind, payload)
            with transaction.atomic():
                notification = Notification.objects.create(
                    user_id=user_id,
                    entry_id=payload.get("entry_id"),
                    kind=kind.value,
                    title=title,
                    message=message,
                    data=payload,
                )
        except (DatabaseError, ValueError, KeyError) as e:
            logger.error(f"Failed to store {kind} notification for user {user_id}: {str(e)}")
            return

        self._push(user_id, notification)

    def _push(self, user_id, notification: Notification) -> None:
        channel_layer = self.channel_layer
        if channel_layer is None:
            return

        try:
            async_to_sync(channel_layer.group_send)(
                f"user_queue_{user_id}",
                {
                    "type": "queue_notification",
                    "notification": {
                        "id": str(notification.id),
                        "kind": notification.kind,
                        "title": notification.title,
                        "message": notification.message,
                        "data": notification.data,
                    },
                },
            )
        except Exception as e:
            logger.warning(f"Realtime push of notification {notification.id} failed: {str(e)}")


def get_notifier(channel_layer: Optional[Any] = None) -> Notifier:
    return DatabaseNotifier(channel_layer=channel_layer)
