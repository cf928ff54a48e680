"""
Queue Engine Enumerations

This module defines the enumerations shared by the queue models, the pure
queue rules and the coordinator.
"""

from enum import Enum


class EntryStatus(str, Enum):
    """Lifecycle states of a queue entry"""

    WAITING = "waiting"
    CALLED = "called"
    SERVED = "served"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"

    @classmethod
    def choices(cls):
        return [(status.value, status.value.replace("_", " ").title()) for status in cls]


# Entries that hold a slot in the line (counted for capacity and position)
ACTIVE_STATUSES = frozenset({EntryStatus.WAITING, EntryStatus.CALLED})

# No transition leaves these
TERMINAL_STATUSES = frozenset({EntryStatus.SERVED, EntryStatus.CANCELLED, EntryStatus.NO_SHOW})

# Statuses a business (or the owner) may remove an entry with
REMOVAL_REASONS = frozenset({EntryStatus.CANCELLED, EntryStatus.NO_SHOW})


class NotificationKind(str, Enum):
    """Events the queue engine reports to the notifier"""

    JOINED = "joined"
    CALLED = "called"
    SERVED = "served"
    CANCELLED = "cancelled"
    REMINDER = "reminder"

    @classmethod
    def choices(cls):
        return [(kind.value, kind.value.title()) for kind in cls]


class JoinRejection(str, Enum):
    """Reasons a join request is refused"""

    SERVICE_CLOSED = "service_closed"
    AT_CAPACITY = "at_capacity"
    DUPLICATE_MEMBERSHIP = "duplicate_membership"
