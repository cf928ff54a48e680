"""
Queue Coordinator

Orchestrates the queue engine: eligibility rules, queue numbers, wait time
estimates, entry transitions, notifications and daily analytics.

Every operation that checks and then changes the line of a service runs inside
``store.service_lock(service_id)``, so concurrent joins cannot both take the
last slot and concurrent calls cannot both pick the same customer. Locks are
per service; different services never wait on each other.

Business failures are raised as ``QueueError`` subclasses. A database failure
that escapes the store is raised as ``StoreUnavailable``.
"""

import functools
import logging
import uuid
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
from django.db import DatabaseError
from django.utils import timezone

from apps.queueapp.conf import get_setting
from apps.queueapp.enums import ACTIVE_STATUSES, REMOVAL_REASONS, EntryStatus, NotificationKind
from apps.queueapp.exceptions import (
    JOIN_ERRORS,
    InvalidTransition,
    NotAuthorized,
    QueueError,
    StoreUnavailable,
)
from apps.queueapp.utils.queue_utils import (
    format_queue_position,
    format_time_interval,
    generate_qr_code,
    minutes_between,
)

from .entry_state_machine import QueueEntryStateMachine
from .notifier import Notifier, NullNotifier, get_notifier
from .queue_rules import QueueRules
from .records import QueueEntryRecord, QueuePosition, QueueStats, ServiceRecord
from .stores import DjangoQueueStore, QueueStore
from .wait_predictor import NullWaitPredictor, WaitPredictor, get_wait_predictor
from .wait_time_estimator import WaitTimeEstimator, round_half_up

logger = logging.getLogger(__name__)

ANALYTICS_COUNTERS = {
    EntryStatus.SERVED: "served_customers",
    EntryStatus.CANCELLED: "cancelled_customers",
    EntryStatus.NO_SHOW: "no_show_customers",
}

USER_CANCEL_NOTE = "Cancelled by user"
NO_SHOW_NOTE = "No show after being called"


def store_operation(method):
    """Raise database failures that escaped the store as StoreUnavailable"""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except QueueError:
            raise
        except DatabaseError as e:
            logger.error(f"Store failure in {method.__name__}: {str(e)}")
            raise StoreUnavailable() from e

    return wrapper


class QueueCoordinator:
    def __init__(
        self,
        store: QueueStore,
        notifier: Optional[Notifier] = None,
        predictor: Optional[WaitPredictor] = None,
        estimator: Optional[WaitTimeEstimator] = None,
        state_machine: Optional[QueueEntryStateMachine] = None,
        clock=timezone.now,
    ):
        self.store = store
        self.notifier = notifier or NullNotifier()
        self.predictor = predictor or NullWaitPredictor()
        self.estimator = estimator or WaitTimeEstimator()
        self.state_machine = state_machine or QueueEntryStateMachine()
        self.clock = clock

    # Helpers

    @staticmethod
    def avg_service_minutes(service: ServiceRecord) -> int:
        return service.avg_service_minutes or get_setting("AVG_SERVICE_MINUTES")

    def fetch_external_signal(self, service: ServiceRecord) -> Optional[float]:
        """Minutes predicted by the occupancy service, or None"""
        try:
            prediction = self.predictor.predict(service.establishment_id)
        except Exception as e:
            logger.error(f"Wait predictor failed for service {service.id}: {str(e)}")
            return None
        return prediction.minutes if prediction is not None else None

    def _notify(self, entry: QueueEntryRecord, kind: NotificationKind, **extra) -> None:
        payload = self._entry_payload(entry)
        payload.update(extra)
        try:
            self.notifier.notify(entry.user_id, kind, payload)
        except Exception as e:
            logger.error(f"Notifier failed for {kind.value} event of entry {entry.id}: {str(e)}")

    def _entry_payload(self, entry: QueueEntryRecord) -> Dict[str, Any]:
        payload = entry.to_dict()
        payload["entry_id"] = payload.pop("id")
        payload["wait_label"] = format_time_interval(entry.estimated_wait_minutes)
        try:
            payload["service_name"] = self.store.get_service(entry.service_id).name
        except (QueueError, DatabaseError):
            payload["service_name"] = ""
        return payload

    def _record_analytics(self, service_id, at, **increments) -> None:
        try:
            day = at.date() if timezone.is_naive(at) else timezone.localdate(at)
            self.store.record_daily_analytics(service_id, day, **increments)
        except (QueueError, DatabaseError) as e:
            logger.error(f"Failed to record analytics for service {service_id}: {str(e)}")

    # Operations

    @store_operation
    def join(self, service_id, user_id, requested_at=None, notes=None) -> QueueEntryRecord:
        """
        Add ``user_id`` to the line of ``service_id``.

        Raises ServiceClosed, AtCapacity or DuplicateMembership when the rules
        refuse the join.
        """
        requested_at = requested_at or self.clock()

        # The prediction is fetched before locking so a slow predictor never holds the line
        service = self.store.get_service(service_id)
        signal = self.fetch_external_signal(service) if service.is_open else None

        with self.store.service_lock(service_id):
            service = self.store.get_service(service_id)
            active = self.store.list_entries(service_id, ACTIVE_STATUSES)

            decision = QueueRules.can_join(active, service, user_id, requested_at)
            if not decision:
                logger.info(
                    f"Join of user {user_id} to service {service_id} refused at "
                    f"{decision.decided_at.isoformat()}: {decision.reason.value}"
                )
                raise JOIN_ERRORS[decision.reason](service_id=service_id)

            queue_number = self.store.increment_queue_counter(service_id)
            estimate = self.estimator.estimate(
                len(active), signal, self.avg_service_minutes(service)
            )

            entry = self.store.create_entry(
                QueueEntryRecord(
                    id=uuid.uuid4(),
                    service_id=service_id,
                    user_id=user_id,
                    queue_number=queue_number,
                    qr_code=generate_qr_code(),
                    joined_at=requested_at,
                    status=EntryStatus.WAITING,
                    estimated_wait_minutes=estimate,
                    notes=notes or "",
                )
            )

        logger.info(
            f"User {user_id} joined service {service_id} as #{entry.queue_number} "
            f"(estimated wait {estimate} min)"
        )
        self._record_analytics(service_id, requested_at, total_customers=1)
        self._notify(entry, NotificationKind.JOINED, position=len(active) + 1)
        return entry

    @store_operation
    def call_next(self, service_id, at=None) -> Optional[QueueEntryRecord]:
        """Call the waiting customer with the lowest queue number, if any"""
        at = at or self.clock()

        with self.store.service_lock(service_id):
            waiting = self.store.list_entries(service_id, [EntryStatus.WAITING])
            entry = QueueRules.next_to_call(waiting)
            if entry is None:
                logger.info(f"No waiting customers to call for service {service_id}")
                return None

            called, changes = self.state_machine.transition(entry, EntryStatus.CALLED, at)
            if changes:
                called = self.store.update_entry(entry.id, changes)

        self._notify(called, NotificationKind.CALLED)
        return called

    @store_operation
    def mark_served(self, entry_id, at=None, notes=None) -> QueueEntryRecord:
        return self._finish(entry_id, EntryStatus.SERVED, at, notes)

    @store_operation
    def remove_from_queue(self, entry_id, reason, at=None, notes=None) -> QueueEntryRecord:
        """Take an entry out of the line as ``cancelled`` or ``no_show``"""
        try:
            reason = EntryStatus(reason)
        except ValueError:
            reason = None
        if reason not in REMOVAL_REASONS:
            raise InvalidTransition("Entries can only be removed as cancelled or no_show")

        return self._finish(entry_id, reason, at, notes)

    def _finish(self, entry_id, to_status: EntryStatus, at, notes) -> QueueEntryRecord:
        at = at or self.clock()
        service_id = self.store.get_entry(entry_id).service_id

        with self.store.service_lock(service_id):
            # Re-read under the lock; another request may have moved the entry
            entry = self.store.get_entry(entry_id)
            updated, changes = self.state_machine.transition(entry, to_status, at, notes)
            updated = self.store.update_entry(entry.id, changes)
            self.recompute_positions(service_id)

        self._record_analytics(service_id, at, **{ANALYTICS_COUNTERS[to_status]: 1})
        kind = NotificationKind.SERVED if to_status == EntryStatus.SERVED else NotificationKind.CANCELLED
        self._notify(updated, kind)
        return updated

    @store_operation
    def cancel_by_user(self, entry_id, user_id, at=None) -> QueueEntryRecord:
        entry = self.store.get_entry(entry_id)
        if str(entry.user_id) != str(user_id):
            raise NotAuthorized()
        return self.remove_from_queue(entry_id, EntryStatus.CANCELLED, at, notes=USER_CANCEL_NOTE)

    @store_operation
    def recompute_positions(self, service_id) -> List[Tuple[QueueEntryRecord, int]]:
        """
        Refresh the estimate of every waiting entry from its current position.

        Only estimates that changed are written back. Returns the waiting
        entries paired with their position.
        """
        with self.store.service_lock(service_id):
            service = self.store.get_service(service_id)
            avg_minutes = self.avg_service_minutes(service)
            active = self.store.list_entries(service_id, ACTIVE_STATUSES)

            positions = []
            for entry in active:
                if entry.status != EntryStatus.WAITING:
                    continue
                position = QueueRules.position(active, entry.queue_number)
                estimate = self.estimator.estimate(position - 1, None, avg_minutes)
                if estimate != entry.estimated_wait_minutes:
                    entry = self.store.update_entry(
                        entry.id, {"estimated_wait_minutes": estimate}
                    )
                positions.append((entry, position))

        return positions

    @store_operation
    def get_position(self, entry_id) -> QueuePosition:
        """Position 0 means the entry is no longer in the line"""
        entry = self.store.get_entry(entry_id)
        active = self.store.list_entries(entry.service_id, ACTIVE_STATUSES)

        if not entry.is_active:
            return QueuePosition(entry.id, 0, 0, len(active))

        return QueuePosition(
            entry_id=entry.id,
            position=QueueRules.position(active, entry.queue_number),
            estimated_wait_minutes=entry.estimated_wait_minutes,
            total_in_queue=len(active),
        )

    @store_operation
    def get_stats(self, service_id) -> QueueStats:
        service = self.store.get_service(service_id)
        entries = self.store.list_entries(service_id)

        counts = {status: 0 for status in EntryStatus}
        for entry in entries:
            counts[entry.status] += 1

        waits = [
            minutes_between(entry.joined_at, entry.served_at)
            for entry in entries
            if entry.status == EntryStatus.SERVED and entry.joined_at and entry.served_at
        ]
        average_wait = round_half_up(float(np.mean(waits))) if waits else 0

        return QueueStats(
            service_id=service.id,
            waiting_count=counts[EntryStatus.WAITING],
            called_count=counts[EntryStatus.CALLED],
            served_count=counts[EntryStatus.SERVED],
            average_wait_minutes=average_wait,
            next_queue_number=service.queue_number_counter + 1,
        )

    @store_operation
    def get_user_active_entries(self, user_id) -> List[QueueEntryRecord]:
        return self.store.list_user_entries(user_id, ACTIVE_STATUSES)

    @store_operation
    def get_entry(self, entry_id) -> QueueEntryRecord:
        return self.store.get_entry(entry_id)

    @store_operation
    def find_by_qr_code(self, qr_code: str) -> QueueEntryRecord:
        return self.store.get_entry_by_qr_code(qr_code)

    @store_operation
    def estimate_wait_for_join(self, service_id) -> int:
        """The estimate a customer joining right now would be given"""
        service = self.store.get_service(service_id)
        active = self.store.list_entries(service_id, ACTIVE_STATUSES)
        signal = self.fetch_external_signal(service)
        return self.estimator.estimate(len(active), signal, self.avg_service_minutes(service))

    @store_operation
    def send_reminders(self, service_id) -> int:
        """Remind the first waiting customers that their turn is near"""
        limit = get_setting("REMINDER_POSITIONS")
        active = self.store.list_entries(service_id, ACTIVE_STATUSES)

        sent = 0
        for entry in active:
            if entry.status != EntryStatus.WAITING:
                continue
            position = QueueRules.position(active, entry.queue_number)
            if position > limit:
                break
            self._notify(
                entry,
                NotificationKind.REMINDER,
                position=position,
                position_label=format_queue_position(position),
            )
            sent += 1

        if sent:
            logger.info(f"Sent {sent} queue reminders for service {service_id}")
        return sent

    @store_operation
    def expire_stale_calls(self, service_id, at=None) -> int:
        """Mark called customers who never showed up as no-shows"""
        at = at or self.clock()
        cutoff = at - timedelta(minutes=get_setting("CALLED_TIMEOUT_MINUTES"))

        expired = 0
        for entry in self.store.list_entries(service_id, [EntryStatus.CALLED]):
            if entry.called_at is None or entry.called_at > cutoff:
                continue
            try:
                self.remove_from_queue(entry.id, EntryStatus.NO_SHOW, at, notes=NO_SHOW_NOTE)
            except InvalidTransition:
                # Served or cancelled since the listing
                continue
            expired += 1

        if expired:
            logger.info(f"Marked {expired} stale calls as no-show for service {service_id}")
        return expired


def get_queue_coordinator() -> QueueCoordinator:
    """Coordinator wired to the database store, in-app notifications and the configured predictor"""
    return QueueCoordinator(
        store=DjangoQueueStore(),
        notifier=get_notifier(),
        predictor=get_wait_predictor(),
    )
