import uuid

import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Service",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4, editable=False, primary_key=True, serialize=False
                    ),
                ),
                ("establishment_id", models.UUIDField(db_index=True, verbose_name="Establishment")),
                ("name", models.CharField(max_length=100, verbose_name="Name")),
                ("description", models.TextField(blank=True, verbose_name="Description")),
                (
                    "max_capacity",
                    models.PositiveIntegerField(
                        default=50,
                        validators=[django.core.validators.MinValueValidator(1)],
                        verbose_name="Maximum Capacity",
                    ),
                ),
                ("is_open", models.BooleanField(default=True, verbose_name="Open")),
                (
                    "queue_number_counter",
                    models.PositiveIntegerField(
                        default=0, editable=False, verbose_name="Queue Number Counter"
                    ),
                ),
                (
                    "avg_service_minutes",
                    models.PositiveIntegerField(
                        blank=True,
                        help_text="Leave empty to use the platform default",
                        null=True,
                        verbose_name="Average Service Time (minutes)",
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="Created At")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="Updated At")),
            ],
            options={
                "verbose_name": "Service",
                "verbose_name_plural": "Services",
                "indexes": [
                    models.Index(fields=["is_open"], name="queue_service_open_idx"),
                    models.Index(
                        fields=["establishment_id", "is_open"], name="queue_service_estab_idx"
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="QueueEntry",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4, editable=False, primary_key=True, serialize=False
                    ),
                ),
                ("queue_number", models.PositiveIntegerField(verbose_name="Queue Number")),
                ("qr_code", models.CharField(max_length=64, unique=True, verbose_name="QR Code")),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("waiting", "Waiting"),
                            ("called", "Called"),
                            ("served", "Served"),
                            ("cancelled", "Cancelled"),
                            ("no_show", "No Show"),
                        ],
                        default="waiting",
                        max_length=10,
                        verbose_name="Status",
                    ),
                ),
                (
                    "estimated_wait_minutes",
                    models.PositiveIntegerField(
                        default=0, verbose_name="Estimated Wait Time (minutes)"
                    ),
                ),
                ("notes", models.TextField(blank=True, verbose_name="Notes")),
                (
                    "joined_at",
                    models.DateTimeField(
                        default=django.utils.timezone.now, verbose_name="Joined At"
                    ),
                ),
                ("called_at", models.DateTimeField(blank=True, null=True, verbose_name="Called At")),
                ("served_at", models.DateTimeField(blank=True, null=True, verbose_name="Served At")),
                (
                    "customer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="queue_entries",
                        to=settings.AUTH_USER_MODEL,
                        verbose_name="Customer",
                    ),
                ),
                (
                    "service",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="entries",
                        to="queueapp.service",
                        verbose_name="Service",
                    ),
                ),
            ],
            options={
                "verbose_name": "Queue Entry",
                "verbose_name_plural": "Queue Entries",
                "ordering": ["queue_number"],
                "indexes": [
                    models.Index(fields=["status"], name="queue_entry_status_idx"),
                    models.Index(fields=["service", "status"], name="queue_entry_service_idx"),
                    models.Index(fields=["customer", "status"], name="queue_entry_customer_idx"),
                    models.Index(fields=["joined_at"], name="queue_entry_joined_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("service", "queue_number"), name="queue_entry_unique_number"
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="QueueAnalytics",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                ("date", models.DateField(verbose_name="Date")),
                ("total_customers", models.PositiveIntegerField(default=0, verbose_name="Total Customers")),
                ("served_customers", models.PositiveIntegerField(default=0, verbose_name="Served Customers")),
                (
                    "cancelled_customers",
                    models.PositiveIntegerField(default=0, verbose_name="Cancelled Customers"),
                ),
                (
                    "no_show_customers",
                    models.PositiveIntegerField(default=0, verbose_name="No-show Customers"),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="Created At")),
                (
                    "service",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="analytics",
                        to="queueapp.service",
                        verbose_name="Service",
                    ),
                ),
            ],
            options={
                "verbose_name": "Queue Analytics",
                "verbose_name_plural": "Queue Analytics",
                "ordering": ["-date"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("service", "date"), name="queue_analytics_unique_day"
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Notification",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4, editable=False, primary_key=True, serialize=False
                    ),
                ),
                (
                    "kind",
                    models.CharField(
                        choices=[
                            ("joined", "Joined"),
                            ("called", "Called"),
                            ("served", "Served"),
                            ("cancelled", "Cancelled"),
                            ("reminder", "Reminder"),
                        ],
                        max_length=20,
                        verbose_name="Kind",
                    ),
                ),
                ("title", models.CharField(max_length=200, verbose_name="Title")),
                ("message", models.TextField(verbose_name="Message")),
                ("data", models.JSONField(blank=True, default=dict, verbose_name="Data")),
                ("is_read", models.BooleanField(default=False, verbose_name="Read")),
                ("sent_at", models.DateTimeField(auto_now_add=True, verbose_name="Sent At")),
                (
                    "entry",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="notifications",
                        to="queueapp.queueentry",
                        verbose_name="Queue Entry",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="queue_notifications",
                        to=settings.AUTH_USER_MODEL,
                        verbose_name="User",
                    ),
                ),
            ],
            options={
                "verbose_name": "Notification",
                "verbose_name_plural": "Notifications",
                "ordering": ["-sent_at"],
                "indexes": [
                    models.Index(fields=["user", "is_read"], name="queue_notif_user_idx"),
                ],
            },
        ),
    ]
