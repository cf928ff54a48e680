"""
Queue Entry State Machine

    waiting --> called --> served
       |          |
       |          +--> cancelled / no_show
       +--> served (establishments without a call step)
       +--> cancelled / no_show

served, cancelled and no_show are terminal.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from apps.queueapp.conf import get_setting
from apps.queueapp.enums import EntryStatus
from apps.queueapp.exceptions import InvalidTransition

from .records import QueueEntryRecord

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    EntryStatus.WAITING: frozenset(
        {EntryStatus.CALLED, EntryStatus.SERVED, EntryStatus.CANCELLED, EntryStatus.NO_SHOW}
    ),
    EntryStatus.CALLED: frozenset({EntryStatus.SERVED, EntryStatus.CANCELLED, EntryStatus.NO_SHOW}),
}


class QueueEntryStateMachine:
    def __init__(self, require_call_before_serve: Optional[bool] = None):
        if require_call_before_serve is None:
            require_call_before_serve = get_setting("REQUIRE_CALL_BEFORE_SERVE")
        self.require_call_before_serve = require_call_before_serve

    def allowed_targets(self, status: EntryStatus) -> frozenset:
        targets = ALLOWED_TRANSITIONS.get(status, frozenset())
        if self.require_call_before_serve and status == EntryStatus.WAITING:
            targets = targets - {EntryStatus.SERVED}
        return targets

    def can_transition(self, entry: QueueEntryRecord, to_status) -> bool:
        to_status = _coerce_status(to_status)
        if entry.status == EntryStatus.CALLED and to_status == EntryStatus.CALLED:
            return True
        return to_status in self.allowed_targets(entry.status)

    def transition(
        self,
        entry: QueueEntryRecord,
        to_status,
        at: datetime,
        notes: Optional[str] = None,
    ) -> Tuple[QueueEntryRecord, Dict[str, Any]]:
        """
        Move ``entry`` to ``to_status``.

        Returns the updated record and the fields that changed (empty for the
        idempotent re-call of a called entry). Raises InvalidTransition for an
        edge outside the allowed set, including any edge out of a terminal
        state.
        """
        to_status = _coerce_status(to_status)

        if entry.is_terminal:
            raise InvalidTransition(from_status=entry.status, to_status=to_status)

        # A retried call must not move the call time
        if entry.status == EntryStatus.CALLED and to_status == EntryStatus.CALLED:
            return entry, {}

        if to_status not in self.allowed_targets(entry.status):
            raise InvalidTransition(from_status=entry.status, to_status=to_status)

        changes: Dict[str, Any] = {"status": to_status}

        if to_status == EntryStatus.CALLED and entry.called_at is None:
            changes["called_at"] = at
        elif to_status == EntryStatus.SERVED:
            changes["served_at"] = at

        if notes is not None:
            changes["notes"] = notes

        logger.info(
            f"Queue entry {entry.id} (#{entry.queue_number}) {entry.status.value} -> {to_status.value}"
        )
        return entry._replace(**changes), changes


def _coerce_status(value) -> EntryStatus:
    try:
        return EntryStatus(value)
    except ValueError:
        raise InvalidTransition(f"Unknown queue entry status: {value}")
