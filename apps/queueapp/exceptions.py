"""
Typed errors raised by the queue engine.

Every expected business outcome (closed service, full queue, bad transition...)
has its own class so callers can react to it without parsing messages. All of
them derive from the project's ``APIException`` which lets the DRF exception
handler render them with the right HTTP status.
"""

from django.utils.translation import gettext_lazy as _

from core.exceptions import (
    APIException,
    ConflictException,
    InvalidOperationException,
    PermissionDeniedException,
    ResourceNotFoundException,
    ServiceUnavailableException,
)

from .enums import JoinRejection


class QueueError(APIException):
    """Base class for every queue engine error"""

    error_code = "queue_error"


class QueueJoinError(QueueError, ConflictException):
    """A join request was refused by the queue rules"""

    reason = None

    def __init__(self, message=None, service_id=None):
        self.service_id = service_id
        super().__init__(message)


class ServiceClosed(QueueJoinError):
    default_message = _("This service is currently closed.")
    error_code = "service_closed"
    reason = JoinRejection.SERVICE_CLOSED


class AtCapacity(QueueJoinError):
    default_message = _("Queue is at maximum capacity. Please try again later.")
    error_code = "at_capacity"
    reason = JoinRejection.AT_CAPACITY


class DuplicateMembership(QueueJoinError):
    default_message = _("You are already in this queue.")
    error_code = "duplicate_membership"
    reason = JoinRejection.DUPLICATE_MEMBERSHIP


JOIN_ERRORS = {
    JoinRejection.SERVICE_CLOSED: ServiceClosed,
    JoinRejection.AT_CAPACITY: AtCapacity,
    JoinRejection.DUPLICATE_MEMBERSHIP: DuplicateMembership,
}


class EntryNotFound(QueueError, ResourceNotFoundException):
    default_message = _("Queue entry not found.")
    error_code = "entry_not_found"


class ServiceNotFound(QueueError, ResourceNotFoundException):
    default_message = _("Service not found.")
    error_code = "service_not_found"


class InvalidTransition(QueueError, InvalidOperationException):
    default_message = _("This status change is not allowed.")
    error_code = "invalid_transition"

    def __init__(self, message=None, from_status=None, to_status=None):
        self.from_status = from_status
        self.to_status = to_status
        if message is None and from_status is not None and to_status is not None:
            message = f"Cannot move a queue entry from {_value(from_status)} to {_value(to_status)}"
        super().__init__(message)


class NotAuthorized(QueueError, PermissionDeniedException):
    default_message = _("Not authorized to change this queue entry.")
    error_code = "not_authorized"


class Conflict(QueueError, ConflictException):
    """The queue changed underneath the operation; the whole call can be retried"""

    default_message = _("The queue was modified concurrently. Please retry.")
    error_code = "conflict"


class StoreUnavailable(QueueError, ServiceUnavailableException):
    default_message = _("Queue storage is currently unavailable.")
    error_code = "store_unavailable"


def _value(status_value):
    return getattr(status_value, "value", status_value)
