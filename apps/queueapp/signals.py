import logging

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.db import transaction
from django.db.models.signals import post_save
from django.dispatch import receiver

from .models import QueueEntry

logger = logging.getLogger(__name__)


def entry_update_event(instance, created):
    return {
        "type": "queue_update",
        "action": "create" if created else "update",
        "entry": {
            "id": str(instance.id),
            "service_id": str(instance.service_id),
            "queue_number": instance.queue_number,
            "status": instance.status,
            "estimated_wait_minutes": instance.estimated_wait_minutes,
            "called_at": instance.called_at.isoformat() if instance.called_at else None,
            "served_at": instance.served_at.isoformat() if instance.served_at else None,
        },
    }


def broadcast_entry_update(instance, created=False):
    """Push an entry change to the service's watchers and to its customer"""
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return

    event = entry_update_event(instance, created)
    try:
        async_to_sync(channel_layer.group_send)(f"queue_{instance.service_id}", event)
        async_to_sync(channel_layer.group_send)(f"user_queue_{instance.customer_id}", event)
    except Exception as e:
        logger.warning(f"Failed to broadcast update of queue entry {instance.id}: {str(e)}")


@receiver(post_save, sender=QueueEntry)
def queue_entry_saved(sender, instance, created, **kwargs):
    """Signal fired when a queue entry is saved"""
    # Listeners only ever see committed state
    transaction.on_commit(lambda: broadcast_entry_update(instance, created))
