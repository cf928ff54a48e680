"""
Immutable snapshots exchanged between the queue store and the queue engine.

The rules and the state machine only ever see these records, never ORM
instances, so they cannot mutate stored state and do not depend on how the
store persists it.
"""

from datetime import datetime
from typing import Any, Dict, NamedTuple, Optional

from apps.queueapp.enums import ACTIVE_STATUSES, TERMINAL_STATUSES, EntryStatus


class ServiceRecord(NamedTuple):
    id: Any
    establishment_id: Any
    name: str
    max_capacity: int
    is_open: bool
    queue_number_counter: int = 0
    avg_service_minutes: Optional[int] = None


class QueueEntryRecord(NamedTuple):
    id: Any
    service_id: Any
    user_id: Any
    queue_number: int
    qr_code: str
    joined_at: datetime
    status: EntryStatus = EntryStatus.WAITING
    called_at: Optional[datetime] = None
    served_at: Optional[datetime] = None
    estimated_wait_minutes: int = 0
    notes: str = ""

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "service_id": str(self.service_id),
            "user_id": str(self.user_id),
            "queue_number": self.queue_number,
            "qr_code": self.qr_code,
            "status": self.status.value,
            "joined_at": self.joined_at.isoformat() if self.joined_at else None,
            "called_at": self.called_at.isoformat() if self.called_at else None,
            "served_at": self.served_at.isoformat() if self.served_at else None,
            "estimated_wait_minutes": self.estimated_wait_minutes,
            "notes": self.notes,
        }


class QueuePosition:
    """Where an entry currently stands in its line"""

    def __init__(self, entry_id, position: int, estimated_wait_minutes: int, total_in_queue: int):
        self.entry_id = entry_id
        self.position = position
        self.estimated_wait_minutes = estimated_wait_minutes
        self.total_in_queue = total_in_queue

    @property
    def is_next(self) -> bool:
        return self.position == 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entry_id": str(self.entry_id),
            "position": self.position,
            "estimated_wait_minutes": self.estimated_wait_minutes,
            "total_in_queue": self.total_in_queue,
            "is_next": self.is_next,
        }


class QueueStats:
    """Live counters for one service's line"""

    def __init__(
        self,
        service_id,
        waiting_count: int,
        called_count: int,
        served_count: int,
        average_wait_minutes: int,
        next_queue_number: int,
    ):
        self.service_id = service_id
        self.waiting_count = waiting_count
        self.called_count = called_count
        self.served_count = served_count
        self.average_wait_minutes = average_wait_minutes
        self.next_queue_number = next_queue_number

    def to_dict(self) -> Dict[str, Any]:
        return {
            "service_id": str(self.service_id),
            "waiting_count": self.waiting_count,
            "called_count": self.called_count,
            "served_count": self.served_count,
            "average_wait_minutes": self.average_wait_minutes,
            "next_queue_number": self.next_queue_number,
        }
