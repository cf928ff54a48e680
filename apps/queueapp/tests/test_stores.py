import uuid
from datetime import date
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.db import DatabaseError, IntegrityError, OperationalError, transaction
from django.db.transaction import TransactionManagementError
from django.test import SimpleTestCase, TestCase, TransactionTestCase
from django.utils import timezone

from apps.queueapp.enums import ACTIVE_STATUSES, EntryStatus
from apps.queueapp.exceptions import (
    Conflict,
    EntryNotFound,
    ServiceNotFound,
    StoreUnavailable,
)
from apps.queueapp.models import QueueAnalytics, QueueEntry, Service
from apps.queueapp.services.queue_coordinator import QueueCoordinator
from apps.queueapp.services.records import QueueEntryRecord
from apps.queueapp.services.stores import (
    DjangoQueueStore,
    InMemoryQueueStore,
    translate_database_error,
)

from .helpers import make_entry, make_service

User = get_user_model()


class DjangoQueueStoreTest(TestCase):
    def setUp(self):
        self.store = DjangoQueueStore()
        self.user = User.objects.create_user(username="customer", password="pass1234")
        self.service = Service.objects.create(
            name="Front desk", establishment_id=uuid.uuid4(), max_capacity=3
        )

    def new_record(self, queue_number, user=None, **kwargs):
        return QueueEntryRecord(
            id=uuid.uuid4(),
            service_id=self.service.id,
            user_id=(user or self.user).pk,
            queue_number=queue_number,
            qr_code=kwargs.pop("qr_code", f"WLTEST{queue_number}"),
            joined_at=timezone.now(),
            **kwargs,
        )

    def test_get_service(self):
        record = self.store.get_service(self.service.id)

        self.assertEqual(record.id, self.service.id)
        self.assertEqual(record.max_capacity, 3)
        self.assertTrue(record.is_open)
        self.assertEqual(record.queue_number_counter, 0)

    def test_get_missing_service(self):
        with self.assertRaises(ServiceNotFound):
            self.store.get_service(uuid.uuid4())
        with self.assertRaises(ServiceNotFound):
            self.store.get_service("not-a-uuid")

    def test_list_open_services(self):
        Service.objects.create(name="Closed", establishment_id=uuid.uuid4(), is_open=False)

        self.assertEqual([s.id for s in self.store.list_open_services()], [self.service.id])

    def test_increment_queue_counter(self):
        self.assertEqual(self.store.increment_queue_counter(self.service.id), 1)
        self.assertEqual(self.store.increment_queue_counter(self.service.id), 2)

        self.service.refresh_from_db()
        self.assertEqual(self.service.queue_number_counter, 2)

    def test_increment_unknown_service(self):
        with self.assertRaises(ServiceNotFound):
            self.store.increment_queue_counter(uuid.uuid4())

    def test_create_and_get_entry(self):
        created = self.store.create_entry(self.new_record(1, notes="Wheelchair"))

        fetched = self.store.get_entry(created.id)

        self.assertEqual(fetched.queue_number, 1)
        self.assertEqual(fetched.user_id, self.user.pk)
        self.assertEqual(fetched.status, EntryStatus.WAITING)
        self.assertEqual(fetched.notes, "Wheelchair")
        self.assertEqual(self.store.get_entry_by_qr_code("WLTEST1").id, created.id)

    def test_duplicate_queue_number_is_a_conflict(self):
        self.store.create_entry(self.new_record(1))

        with self.assertRaises(Conflict):
            with transaction.atomic():
                self.store.create_entry(self.new_record(1, qr_code="WLOTHER"))

    def test_missing_entry(self):
        with self.assertRaises(EntryNotFound):
            self.store.get_entry(uuid.uuid4())
        with self.assertRaises(EntryNotFound):
            self.store.get_entry_by_qr_code("WLNOPE")
        with self.assertRaises(EntryNotFound):
            self.store.update_entry(uuid.uuid4(), {"notes": "x"})

    def test_update_entry(self):
        created = self.store.create_entry(self.new_record(1))
        now = timezone.now()

        updated = self.store.update_entry(
            created.id, {"status": EntryStatus.CALLED, "called_at": now}
        )

        self.assertEqual(updated.status, EntryStatus.CALLED)
        self.assertEqual(QueueEntry.objects.get(id=created.id).status, "called")

    def test_list_entries_filters_and_orders(self):
        other = User.objects.create_user(username="other", password="pass1234")
        second = self.store.create_entry(self.new_record(2, user=other))
        first = self.store.create_entry(self.new_record(1))
        self.store.update_entry(second.id, {"status": EntryStatus.SERVED})

        self.assertEqual(
            [e.id for e in self.store.list_entries(self.service.id)], [first.id, second.id]
        )
        self.assertEqual(
            [e.id for e in self.store.list_entries(self.service.id, ACTIVE_STATUSES)], [first.id]
        )
        self.assertEqual(
            [e.id for e in self.store.list_user_entries(other.pk, ["served"])], [second.id]
        )

    def test_record_daily_analytics(self):
        day = date(2024, 5, 6)

        self.store.record_daily_analytics(self.service.id, day, total_customers=1)
        self.store.record_daily_analytics(
            self.service.id, day, total_customers=1, served_customers=1
        )

        analytics = QueueAnalytics.objects.get(service=self.service, date=day)
        self.assertEqual(analytics.total_customers, 2)
        self.assertEqual(analytics.served_customers, 1)
        self.assertEqual(analytics.no_show_customers, 0)

    def test_unknown_analytics_counter(self):
        with self.assertRaises(ValueError):
            self.store.record_daily_analytics(self.service.id, date.today(), walkouts=1)

    def test_service_lock(self):
        with self.store.service_lock(self.service.id):
            self.store.increment_queue_counter(self.service.id)

        self.assertEqual(self.store.get_service(self.service.id).queue_number_counter, 1)

    def test_lock_on_unknown_service(self):
        with self.assertRaises(ServiceNotFound):
            with self.store.service_lock(uuid.uuid4()):
                pass

    def test_lock_rolls_back_on_error(self):
        with self.assertRaises(Conflict):
            with self.store.service_lock(self.service.id):
                self.store.increment_queue_counter(self.service.id)
                raise Conflict()

        self.assertEqual(self.store.get_service(self.service.id).queue_number_counter, 0)

    def test_reads_inside_a_transaction_are_not_retried(self):
        # TestCase wraps every test in a transaction
        with patch.object(
            Service.objects, "get", side_effect=[OperationalError("connection reset"), self.service]
        ) as mock_get:
            with self.assertRaises(StoreUnavailable):
                self.store.get_service(self.service.id)

        self.assertEqual(mock_get.call_count, 1)

    def test_invalid_service_id_is_not_found(self):
        coordinator = QueueCoordinator(store=self.store)

        for operation in (
            coordinator.call_next,
            coordinator.recompute_positions,
            coordinator.send_reminders,
            coordinator.expire_stale_calls,
            coordinator.get_stats,
        ):
            with self.subTest(operation=operation.__name__):
                with self.assertRaises(ServiceNotFound):
                    operation("not-a-uuid")

        with self.assertRaises(ServiceNotFound):
            self.store.increment_queue_counter("not-a-uuid")
        with self.assertRaises(EntryNotFound):
            self.store.update_entry("not-a-uuid", {"notes": "x"})
        self.assertEqual(self.store.list_user_entries("not-a-user"), [])

    def test_list_services_with_entries(self):
        closed = Service.objects.create(
            name="Closed", establishment_id=uuid.uuid4(), is_open=False
        )
        Service.objects.create(name="Empty", establishment_id=uuid.uuid4())
        entry = self.store.create_entry(self.new_record(1))
        self.store.update_entry(entry.id, {"status": EntryStatus.CALLED})
        QueueEntry.objects.create(
            service=closed, customer=self.user, queue_number=1, qr_code="WLCLOSED", status="called"
        )
        QueueEntry.objects.create(
            service=closed, customer=self.user, queue_number=2, qr_code="WLCLOSED2", status="called"
        )

        services = self.store.list_services_with_entries([EntryStatus.CALLED])

        self.assertEqual({s.id for s in services}, {self.service.id, closed.id})
        self.assertEqual(self.store.list_services_with_entries([EntryStatus.SERVED]), [])


class DjangoQueueStoreRetryTest(TransactionTestCase):
    def setUp(self):
        self.store = DjangoQueueStore()
        self.service = Service.objects.create(name="Front desk", establishment_id=uuid.uuid4())

    def test_reads_are_retried_once(self):
        with patch.object(
            Service.objects, "get", side_effect=[OperationalError("connection reset"), self.service]
        ) as mock_get:
            record = self.store.get_service(self.service.id)

        self.assertEqual(record.id, self.service.id)
        self.assertEqual(mock_get.call_count, 2)

    def test_read_failing_twice_is_unavailable(self):
        with patch.object(Service.objects, "get", side_effect=OperationalError("down")) as mock_get:
            with self.assertRaises(StoreUnavailable):
                self.store.get_service(self.service.id)

        self.assertEqual(mock_get.call_count, 2)


class TranslateDatabaseErrorTest(SimpleTestCase):
    def test_conflicts(self):
        self.assertIsInstance(translate_database_error(IntegrityError("duplicate key")), Conflict)
        self.assertIsInstance(
            translate_database_error(OperationalError("could not serialize access")), Conflict
        )
        self.assertIsInstance(translate_database_error(DatabaseError("deadlock detected")), Conflict)
        self.assertIsInstance(
            translate_database_error(OperationalError("database is locked")), Conflict
        )

    def test_conflicts_by_sqlstate(self):
        class LockNotAvailable(Exception):
            pgcode = "55P03"

        error = OperationalError("canceling statement due to lock timeout")
        error.__cause__ = LockNotAvailable()

        self.assertIsInstance(translate_database_error(error), Conflict)

    def test_other_failures(self):
        for error in (
            OperationalError("server closed the connection"),
            OperationalError(
                "could not write block 1234 of temporary file: No space left on device"
            ),
            TransactionManagementError(
                "An error occurred in the current transaction. You can't execute queries "
                "until the end of the 'atomic' block."
            ),
        ):
            with self.subTest(error=str(error)):
                self.assertIsInstance(translate_database_error(error), StoreUnavailable)


class InMemoryQueueStoreTest(SimpleTestCase):
    def setUp(self):
        self.store = InMemoryQueueStore()
        self.service = self.store.add_service(make_service())

    def test_duplicate_queue_number_is_a_conflict(self):
        self.store.create_entry(make_entry(1, service_id=self.service.id))

        with self.assertRaises(Conflict):
            self.store.create_entry(make_entry(1, service_id=self.service.id))

    def test_lock_is_reentrant(self):
        with self.store.service_lock(self.service.id):
            with self.store.service_lock(self.service.id):
                self.assertEqual(self.store.increment_queue_counter(self.service.id), 1)

    def test_unknown_ids(self):
        with self.assertRaises(ServiceNotFound):
            self.store.get_service("missing")
        with self.assertRaises(EntryNotFound):
            self.store.get_entry("missing")
        with self.assertRaises(ServiceNotFound):
            with self.store.service_lock("missing"):
                pass

    def test_list_services_with_entries(self):
        closed = self.store.add_service(make_service(is_open=False, name="Closed"))
        self.store.add_service(make_service(name="Empty"))
        self.store.create_entry(make_entry(1, EntryStatus.CALLED, service_id=closed.id))
        self.store.create_entry(make_entry(1, EntryStatus.WAITING, service_id=self.service.id))

        self.assertEqual(
            [s.id for s in self.store.list_services_with_entries([EntryStatus.CALLED])],
            [closed.id],
        )
