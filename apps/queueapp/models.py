import uuid

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from .enums import EntryStatus, NotificationKind


class Service(models.Model):
    """A queueable endpoint of an establishment"""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    establishment_id = models.UUIDField(_("Establishment"), db_index=True)
    name = models.CharField(_("Name"), max_length=100)
    description = models.TextField(_("Description"), blank=True)
    max_capacity = models.PositiveIntegerField(
        _("Maximum Capacity"), default=50, validators=[MinValueValidator(1)]
    )
    is_open = models.BooleanField(_("Open"), default=True)
    queue_number_counter = models.PositiveIntegerField(
        _("Queue Number Counter"), default=0, editable=False
    )
    avg_service_minutes = models.PositiveIntegerField(
        _("Average Service Time (minutes)"),
        null=True,
        blank=True,
        help_text=_("Leave empty to use the platform default"),
    )
    created_at = models.DateTimeField(_("Created At"), auto_now_add=True)
    updated_at = models.DateTimeField(_("Updated At"), auto_now=True)

    class Meta:
        verbose_name = _("Service")
        verbose_name_plural = _("Services")
        indexes = [
            models.Index(fields=["is_open"], name="queue_service_open_idx"),
            models.Index(fields=["establishment_id", "is_open"], name="queue_service_estab_idx"),
        ]

    def __str__(self):
        return self.name


class QueueEntry(models.Model):
    """One customer's claim on a position in one service's queue"""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    service = models.ForeignKey(
        Service, on_delete=models.CASCADE, related_name="entries", verbose_name=_("Service")
    )
    customer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="queue_entries",
        verbose_name=_("Customer"),
    )
    queue_number = models.PositiveIntegerField(_("Queue Number"))
    qr_code = models.CharField(_("QR Code"), max_length=64, unique=True)
    status = models.CharField(
        _("Status"),
        max_length=10,
        choices=EntryStatus.choices(),
        default=EntryStatus.WAITING.value,
    )
    estimated_wait_minutes = models.PositiveIntegerField(
        _("Estimated Wait Time (minutes)"), default=0
    )
    notes = models.TextField(_("Notes"), blank=True)
    joined_at = models.DateTimeField(_("Joined At"), default=timezone.now)
    called_at = models.DateTimeField(_("Called At"), null=True, blank=True)
    served_at = models.DateTimeField(_("Served At"), null=True, blank=True)

    class Meta:
        verbose_name = _("Queue Entry")
        verbose_name_plural = _("Queue Entries")
        ordering = ["queue_number"]
        indexes = [
            models.Index(fields=["status"], name="queue_entry_status_idx"),
            models.Index(fields=["service", "status"], name="queue_entry_service_idx"),
            models.Index(fields=["customer", "status"], name="queue_entry_customer_idx"),
            models.Index(fields=["joined_at"], name="queue_entry_joined_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["service", "queue_number"], name="queue_entry_unique_number"
            ),
        ]

    def __str__(self):
        return f"{self.service.name} - #{self.queue_number} - {self.status}"


class QueueAnalytics(models.Model):
    """Daily per-service counters"""

    service = models.ForeignKey(
        Service, on_delete=models.CASCADE, related_name="analytics", verbose_name=_("Service")
    )
    date = models.DateField(_("Date"))
    total_customers = models.PositiveIntegerField(_("Total Customers"), default=0)
    served_customers = models.PositiveIntegerField(_("Served Customers"), default=0)
    cancelled_customers = models.PositiveIntegerField(_("Cancelled Customers"), default=0)
    no_show_customers = models.PositiveIntegerField(_("No-show Customers"), default=0)
    created_at = models.DateTimeField(_("Created At"), auto_now_add=True)

    class Meta:
        verbose_name = _("Queue Analytics")
        verbose_name_plural = _("Queue Analytics")
        ordering = ["-date"]
        constraints = [
            models.UniqueConstraint(fields=["service", "date"], name="queue_analytics_unique_day"),
        ]

    def __str__(self):
        return f"{self.service.name} - {self.date}"


class Notification(models.Model):
    """In-app record of a queue event sent to a customer"""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="queue_notifications",
        verbose_name=_("User"),
    )
    entry = models.ForeignKey(
        QueueEntry,
        on_delete=models.CASCADE,
        related_name="notifications",
        verbose_name=_("Queue Entry"),
        null=True,
        blank=True,
    )
    kind = models.CharField(_("Kind"), max_length=20, choices=NotificationKind.choices())
    title = models.CharField(_("Title"), max_length=200)
    message = models.TextField(_("Message"))
    data = models.JSONField(_("Data"), default=dict, blank=True)
    is_read = models.BooleanField(_("Read"), default=False)
    sent_at = models.DateTimeField(_("Sent At"), auto_now_add=True)

    class Meta:
        verbose_name = _("Notification")
        verbose_name_plural = _("Notifications")
        ordering = ["-sent_at"]
        indexes = [
            models.Index(fields=["user", "is_read"], name="queue_notif_user_idx"),
        ]

    def __str__(self):
        return f"{self.kind} - {self.title}"
