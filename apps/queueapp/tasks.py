import logging

from celery import shared_task

from .enums import EntryStatus
from .exceptions import QueueError
from .services.queue_coordinator import get_queue_coordinator

logger = logging.getLogger(__name__)


@shared_task
def send_queue_reminders():
    """Remind customers at the head of every open line that their turn is near"""
    coordinator = get_queue_coordinator()
    sent = 0

    for service in coordinator.store.list_open_services():
        try:
            sent += coordinator.send_reminders(service.id)
        except QueueError as e:
            logger.error(f"Error sending reminders for service {service.id}: {e.message}")

    return f"Sent {sent} queue reminders"


@shared_task
def recompute_open_queues():
    """Periodically refresh wait estimates of every open line"""
    coordinator = get_queue_coordinator()
    services = coordinator.store.list_open_services()

    for service in services:
        try:
            coordinator.recompute_positions(service.id)
        except QueueError as e:
            logger.error(f"Error recomputing queue of service {service.id}: {e.message}")

    return f"Recomputed {len(services)} queues"


@shared_task
def expire_stale_calls():
    """Mark customers who were called but never showed up as no-shows"""
    coordinator = get_queue_coordinator()
    expired = 0

    # Closed services too: a line closed mid-shift still has callers to expire
    for service in coordinator.store.list_services_with_entries([EntryStatus.CALLED]):
        try:
            expired += coordinator.expire_stale_calls(service.id)
        except QueueError as e:
            logger.error(f"Error expiring stale calls for service {service.id}: {e.message}")

    return f"Expired {expired} stale calls"
