"""
Queue Rules

Stateless policy functions over snapshots of one service's entries:
join eligibility, FIFO position and the next customer to call. Nothing here
touches the database or mutates its inputs.
"""

from datetime import datetime
from typing import Iterable, List, Optional

from apps.queueapp.enums import ACTIVE_STATUSES, EntryStatus, JoinRejection

from .records import QueueEntryRecord, ServiceRecord


class JoinDecision:
    """Outcome of a join eligibility check"""

    def __init__(
        self, reason: Optional[JoinRejection] = None, decided_at: Optional[datetime] = None
    ):
        self.reason = reason
        self.decided_at = decided_at

    @property
    def allowed(self) -> bool:
        return self.reason is None

    def __bool__(self):
        return self.allowed

    def __repr__(self):
        return "JoinDecision(allowed)" if self.allowed else f"JoinDecision({self.reason.value})"


class QueueRules:
    @staticmethod
    def active_entries(entries: Iterable[QueueEntryRecord]) -> List[QueueEntryRecord]:
        """Entries holding a slot in the line, in queue number order"""
        return sorted(
            (entry for entry in entries if entry.status in ACTIVE_STATUSES),
            key=lambda entry: entry.queue_number,
        )

    @staticmethod
    def can_join(
        existing_entries: Iterable[QueueEntryRecord],
        service: ServiceRecord,
        user_id,
        requested_at: Optional[datetime] = None,
    ) -> JoinDecision:
        """
        Check whether ``user_id`` may join ``service`` given its current entries.

        Checks, in order: the service is open, the line is below capacity and
        the user is not already waiting or called in this line.
        """
        if not service.is_open:
            return JoinDecision(JoinRejection.SERVICE_CLOSED, requested_at)

        active = QueueRules.active_entries(existing_entries)

        if len(active) >= service.max_capacity:
            return JoinDecision(JoinRejection.AT_CAPACITY, requested_at)

        if any(str(entry.user_id) == str(user_id) for entry in active):
            return JoinDecision(JoinRejection.DUPLICATE_MEMBERSHIP, requested_at)

        return JoinDecision(None, requested_at)

    @staticmethod
    def position(entries: Iterable[QueueEntryRecord], target_queue_number: int) -> int:
        """
        1-indexed rank of ``target_queue_number`` among waiting and called
        entries. Position 1 is the next customer to be served.
        """
        ahead = sum(
            1
            for entry in entries
            if entry.status in ACTIVE_STATUSES and entry.queue_number < target_queue_number
        )
        return ahead + 1

    @staticmethod
    def next_to_call(entries: Iterable[QueueEntryRecord]) -> Optional[QueueEntryRecord]:
        """The waiting entry with the smallest queue number, if any"""
        waiting = [entry for entry in entries if entry.status == EntryStatus.WAITING]
        if not waiting:
            return None
        return min(waiting, key=lambda entry: entry.queue_number)
