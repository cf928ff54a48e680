"""
Celery configuration for Waitline.

This module sets up the Celery application used for periodic queue
maintenance such as reminder sweeps and wait-time refreshes.
"""

import logging
import os

from celery import Celery
from celery.signals import task_failure

logger = logging.getLogger(__name__)

# Set the default Django settings module for the 'celery' program.
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "waitline.settings.production")

app = Celery("waitline")

# Using a string here means the worker doesn't have to serialize
# the configuration object to child processes.
app.config_from_object("django.conf:settings", namespace="CELERY")

app.autodiscover_tasks()

app.conf.task_routes = {
    "apps.queueapp.tasks.*": {"queue": "queues"},
}

app.conf.beat_schedule = {
    "send-queue-reminders": {
        "task": "apps.queueapp.tasks.send_queue_reminders",
        "schedule": 60.0,
    },
    "recompute-open-queues": {
        "task": "apps.queueapp.tasks.recompute_open_queues",
        "schedule": 300.0,
    },
    "expire-stale-calls": {
        "task": "apps.queueapp.tasks.expire_stale_calls",
        "schedule": 120.0,
    },
}


@task_failure.connect
def handle_task_failure(sender=None, task_id=None, exception=None, **kwargs):
    """Log task failures"""
    task_name = sender.name if sender else "unknown"
    logger.error(f"Task {task_name} [{task_id}] failed: {exception}")
