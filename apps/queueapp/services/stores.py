"""
Queue Stores

The queue engine never talks to the ORM directly. It goes through a store,
which is the single source of truth for services and entries and owns the two
concurrency guarantees the engine relies on:

1. ``service_lock(service_id)`` - one critical section per service. Operations
   on the same service are serialized, operations on different services are
   not.
2. ``increment_queue_counter`` - an atomic increment of the per-service queue
   number counter.

``DjangoQueueStore`` implements them with a transaction holding a row lock on
the service. ``InMemoryQueueStore`` uses one re-entrant lock per service and is
meant for single-process deployments, scripts and tests.
"""

import functools
import logging
import threading
from collections import Counter
from contextlib import contextmanager
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from django.core.exceptions import ValidationError
from django.db import DatabaseError, IntegrityError, OperationalError, transaction
from django.db.models import F

from apps.queueapp.enums import EntryStatus
from apps.queueapp.exceptions import (
    Conflict,
    EntryNotFound,
    QueueError,
    ServiceNotFound,
    StoreUnavailable,
)
from apps.queueapp.models import QueueAnalytics, QueueEntry, Service

from .records import QueueEntryRecord, ServiceRecord

logger = logging.getLogger(__name__)

ANALYTICS_FIELDS = frozenset(
    {"total_customers", "served_customers", "cancelled_customers", "no_show_customers"}
)

# PostgreSQL SQLSTATEs: serialization failure, deadlock, lock not available
CONFLICT_SQLSTATES = frozenset({"40001", "40P01", "55P03"})

# Backend messages that mean "another transaction got there first"
CONFLICT_MARKERS = (
    "could not serialize access",
    "deadlock detected",
    "could not obtain lock",
    "database is locked",
    "lock wait timeout",
    "duplicate key",
    "unique constraint",
)


class QueueStore:
    """Interface every queue store implements"""

    def service_lock(self, service_id):
        raise NotImplementedError

    def get_service(self, service_id) -> ServiceRecord:
        raise NotImplementedError

    def list_open_services(self) -> List[ServiceRecord]:
        raise NotImplementedError

    def list_services_with_entries(self, statuses: Iterable) -> List[ServiceRecord]:
        """Services, open or closed, holding at least one entry in one of ``statuses``"""
        raise NotImplementedError

    def increment_queue_counter(self, service_id) -> int:
        raise NotImplementedError

    def list_entries(self, service_id, statuses: Optional[Iterable] = None) -> List[QueueEntryRecord]:
        raise NotImplementedError

    def list_user_entries(self, user_id, statuses: Optional[Iterable] = None) -> List[QueueEntryRecord]:
        raise NotImplementedError

    def get_entry(self, entry_id) -> QueueEntryRecord:
        raise NotImplementedError

    def get_entry_by_qr_code(self, qr_code: str) -> QueueEntryRecord:
        raise NotImplementedError

    def create_entry(self, entry: QueueEntryRecord) -> QueueEntryRecord:
        raise NotImplementedError

    def update_entry(self, entry_id, changes: Dict[str, Any]) -> QueueEntryRecord:
        raise NotImplementedError

    def record_daily_analytics(self, service_id, day: date, **increments) -> None:
        raise NotImplementedError


def _status_values(statuses) -> Optional[List[str]]:
    if statuses is None:
        return None
    return [EntryStatus(status).value for status in statuses]


def translate_database_error(exc: DatabaseError) -> QueueError:
    """Map a backend failure to the queue error the caller can act on"""
    if isinstance(exc, IntegrityError):
        return Conflict()
    if getattr(exc.__cause__, "pgcode", None) in CONFLICT_SQLSTATES:
        return Conflict()
    message = str(exc).lower()
    if any(marker in message for marker in CONFLICT_MARKERS):
        return Conflict()
    return StoreUnavailable()


def retry_read(method):
    """
    Retry an idempotent read once when the database connection hiccups.

    Reads made inside a transaction (e.g. under ``service_lock``) are not
    retried: the failed statement aborts the transaction on PostgreSQL.
    """

    @functools.wraps(method)
    def wrapper(*args, **kwargs):
        try:
            return method(*args, **kwargs)
        except OperationalError as e:
            if transaction.get_connection().in_atomic_block:
                raise StoreUnavailable() from e
            logger.warning(f"Retrying {method.__name__} after database error: {str(e)}")
            try:
                return method(*args, **kwargs)
            except OperationalError as e:
                raise StoreUnavailable() from e

    return wrapper


class DjangoQueueStore(QueueStore):
    """Store backed by the queueapp Django models"""

    @staticmethod
    def service_to_record(service: Service) -> ServiceRecord:
        return ServiceRecord(
            id=service.id,
            establishment_id=service.establishment_id,
            name=service.name,
            max_capacity=service.max_capacity,
            is_open=service.is_open,
            queue_number_counter=service.queue_number_counter,
            avg_service_minutes=service.avg_service_minutes,
        )

    @staticmethod
    def entry_to_record(entry: QueueEntry) -> QueueEntryRecord:
        return QueueEntryRecord(
            id=entry.id,
            service_id=entry.service_id,
            user_id=entry.customer_id,
            queue_number=entry.queue_number,
            qr_code=entry.qr_code,
            joined_at=entry.joined_at,
            status=EntryStatus(entry.status),
            called_at=entry.called_at,
            served_at=entry.served_at,
            estimated_wait_minutes=entry.estimated_wait_minutes,
            notes=entry.notes,
        )

    @contextmanager
    def service_lock(self, service_id):
        try:
            with transaction.atomic():
                # Row lock on the service serializes every check-then-act on its line
                try:
                    locked = list(
                        Service.objects.select_for_update()
                        .filter(id=service_id)
                        .values_list("id", flat=True)
                    )
                except ValidationError:
                    raise ServiceNotFound()
                if not locked:
                    raise ServiceNotFound()
                yield
        except DatabaseError as e:
            logger.error(f"Database error while holding lock on service {service_id}: {str(e)}")
            raise translate_database_error(e) from e

    @retry_read
    def get_service(self, service_id) -> ServiceRecord:
        try:
            return self.service_to_record(Service.objects.get(id=service_id))
        except (Service.DoesNotExist, ValidationError):
            raise ServiceNotFound()

    @retry_read
    def list_open_services(self) -> List[ServiceRecord]:
        return [self.service_to_record(service) for service in Service.objects.filter(is_open=True)]

    @retry_read
    def list_services_with_entries(self, statuses) -> List[ServiceRecord]:
        services = Service.objects.filter(
            entries__status__in=_status_values(statuses)
        ).distinct()
        return [self.service_to_record(service) for service in services]

    def increment_queue_counter(self, service_id) -> int:
        try:
            updated = Service.objects.filter(id=service_id).update(
                queue_number_counter=F("queue_number_counter") + 1
            )
        except ValidationError:
            raise ServiceNotFound()
        if not updated:
            raise ServiceNotFound()
        return Service.objects.values_list("queue_number_counter", flat=True).get(id=service_id)

    @retry_read
    def list_entries(self, service_id, statuses=None) -> List[QueueEntryRecord]:
        try:
            queryset = QueueEntry.objects.filter(service_id=service_id)
        except ValidationError:
            raise ServiceNotFound()
        values = _status_values(statuses)
        if values is not None:
            queryset = queryset.filter(status__in=values)
        return [self.entry_to_record(entry) for entry in queryset.order_by("queue_number")]

    @retry_read
    def list_user_entries(self, user_id, statuses=None) -> List[QueueEntryRecord]:
        try:
            queryset = QueueEntry.objects.filter(customer_id=user_id)
        except (ValidationError, ValueError):
            # Not a valid user key, so nobody can own entries under it
            return []
        values = _status_values(statuses)
        if values is not None:
            queryset = queryset.filter(status__in=values)
        return [self.entry_to_record(entry) for entry in queryset.order_by("-joined_at")]

    @retry_read
    def get_entry(self, entry_id) -> QueueEntryRecord:
        try:
            return self.entry_to_record(QueueEntry.objects.get(id=entry_id))
        except (QueueEntry.DoesNotExist, ValidationError):
            raise EntryNotFound()

    @retry_read
    def get_entry_by_qr_code(self, qr_code: str) -> QueueEntryRecord:
        try:
            return self.entry_to_record(QueueEntry.objects.get(qr_code=qr_code))
        except QueueEntry.DoesNotExist:
            raise EntryNotFound()

    def create_entry(self, entry: QueueEntryRecord) -> QueueEntryRecord:
        try:
            created = QueueEntry.objects.create(
                id=entry.id,
                service_id=entry.service_id,
                customer_id=entry.user_id,
                queue_number=entry.queue_number,
                qr_code=entry.qr_code,
                status=entry.status.value,
                estimated_wait_minutes=entry.estimated_wait_minutes,
                notes=entry.notes or "",
                joined_at=entry.joined_at,
                called_at=entry.called_at,
                served_at=entry.served_at,
            )
        except IntegrityError as e:
            logger.warning(f"Queue number {entry.queue_number} already taken: {str(e)}")
            raise Conflict() from e
        return self.entry_to_record(created)

    def update_entry(self, entry_id, changes: Dict[str, Any]) -> QueueEntryRecord:
        try:
            entry = QueueEntry.objects.get(id=entry_id)
        except (QueueEntry.DoesNotExist, ValidationError):
            raise EntryNotFound()

        for field, value in changes.items():
            if isinstance(value, EntryStatus):
                value = value.value
            setattr(entry, field, value)

        # save() rather than queryset.update() so post_save listeners see the change
        entry.save(update_fields=list(changes.keys()))
        return self.entry_to_record(entry)

    def record_daily_analytics(self, service_id, day: date, **increments) -> None:
        unknown = set(increments) - ANALYTICS_FIELDS
        if unknown:
            raise ValueError(f"Unknown analytics counters: {', '.join(sorted(unknown))}")

        with transaction.atomic():
            analytics, _ = QueueAnalytics.objects.get_or_create(service_id=service_id, date=day)
            QueueAnalytics.objects.filter(id=analytics.id).update(
                **{field: F(field) + amount for field, amount in increments.items()}
            )


class InMemoryQueueStore(QueueStore):
    """Process-local store; one re-entrant lock per service"""

    def __init__(self):
        self._services: Dict[Any, ServiceRecord] = {}
        self._entries: Dict[Any, QueueEntryRecord] = {}
        self._analytics: Dict[tuple, Counter] = {}
        self._data_lock = threading.RLock()
        self._registry_lock = threading.Lock()
        self._service_locks: Dict[Any, threading.RLock] = {}

    def add_service(self, service: ServiceRecord) -> ServiceRecord:
        with self._data_lock:
            self._services[service.id] = service
        return service

    def update_service(self, service_id, **fields) -> ServiceRecord:
        with self._data_lock:
            service = self.get_service(service_id)._replace(**fields)
            self._services[service_id] = service
            return service

    def analytics_for(self, service_id, day: date) -> Dict[str, int]:
        with self._data_lock:
            return dict(self._analytics.get((service_id, day), Counter()))

    def _lock_for(self, service_id) -> threading.RLock:
        with self._registry_lock:
            lock = self._service_locks.get(service_id)
            if lock is None:
                lock = self._service_locks[service_id] = threading.RLock()
            return lock

    @contextmanager
    def service_lock(self, service_id):
        if service_id not in self._services:
            raise ServiceNotFound()
        with self._lock_for(service_id):
            yield

    def get_service(self, service_id) -> ServiceRecord:
        try:
            return self._services[service_id]
        except KeyError:
            raise ServiceNotFound()

    def list_open_services(self) -> List[ServiceRecord]:
        with self._data_lock:
            return [service for service in self._services.values() if service.is_open]

    def list_services_with_entries(self, statuses) -> List[ServiceRecord]:
        service_ids = {entry.service_id for entry in self._filter(lambda entry: True, statuses)}
        with self._data_lock:
            return [
                self._services[service_id]
                for service_id in service_ids
                if service_id in self._services
            ]

    def increment_queue_counter(self, service_id) -> int:
        with self._data_lock:
            service = self.get_service(service_id)
            service = service._replace(queue_number_counter=service.queue_number_counter + 1)
            self._services[service_id] = service
            return service.queue_number_counter

    def _filter(self, predicate, statuses) -> List[QueueEntryRecord]:
        wanted = None if statuses is None else {EntryStatus(status) for status in statuses}
        with self._data_lock:
            return [
                entry
                for entry in self._entries.values()
                if predicate(entry) and (wanted is None or entry.status in wanted)
            ]

    def list_entries(self, service_id, statuses=None) -> List[QueueEntryRecord]:
        entries = self._filter(lambda entry: entry.service_id == service_id, statuses)
        return sorted(entries, key=lambda entry: entry.queue_number)

    def list_user_entries(self, user_id, statuses=None) -> List[QueueEntryRecord]:
        entries = self._filter(lambda entry: str(entry.user_id) == str(user_id), statuses)
        return sorted(entries, key=lambda entry: entry.joined_at, reverse=True)

    def get_entry(self, entry_id) -> QueueEntryRecord:
        try:
            return self._entries[entry_id]
        except KeyError:
            raise EntryNotFound()

    def get_entry_by_qr_code(self, qr_code: str) -> QueueEntryRecord:
        with self._data_lock:
            for entry in self._entries.values():
                if entry.qr_code == qr_code:
                    return entry
        raise EntryNotFound()

    def create_entry(self, entry: QueueEntryRecord) -> QueueEntryRecord:
        with self._data_lock:
            taken = any(
                existing.service_id == entry.service_id
                and existing.queue_number == entry.queue_number
                for existing in self._entries.values()
            )
            if taken or entry.id in self._entries:
                raise Conflict()
            self._entries[entry.id] = entry
        return entry

    def update_entry(self, entry_id, changes: Dict[str, Any]) -> QueueEntryRecord:
        with self._data_lock:
            entry = self.get_entry(entry_id)._replace(**changes)
            self._entries[entry_id] = entry
            return entry

    def record_daily_analytics(self, service_id, day: date, **increments) -> None:
        unknown = set(increments) - ANALYTICS_FIELDS
        if unknown:
            raise ValueError(f"Unknown analytics counters: {', '.join(sorted(unknown))}")
        with self._data_lock:
            self._analytics.setdefault((service_id, day), Counter()).update(increments)
