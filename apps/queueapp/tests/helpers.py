import uuid
from datetime import datetime, timedelta, timezone

from apps.queueapp.enums import EntryStatus
from apps.queueapp.services.records import QueueEntryRecord, ServiceRecord
from apps.queueapp.services.wait_predictor import PredictionResult, WaitPredictor

BASE_TIME = datetime(2024, 5, 6, 9, 0, tzinfo=timezone.utc)


def make_service(max_capacity=10, is_open=True, **kwargs):
    return ServiceRecord(
        id=kwargs.pop("id", uuid.uuid4()),
        establishment_id=kwargs.pop("establishment_id", uuid.uuid4()),
        name=kwargs.pop("name", "Front desk"),
        max_capacity=max_capacity,
        is_open=is_open,
        **kwargs,
    )


def make_entry(queue_number, status=EntryStatus.WAITING, user_id=None, service_id=None, **kwargs):
    return QueueEntryRecord(
        id=kwargs.pop("id", uuid.uuid4()),
        service_id=service_id or "service-1",
        user_id=user_id or f"user-{queue_number}",
        queue_number=queue_number,
        qr_code=kwargs.pop("qr_code", f"QR{queue_number}"),
        joined_at=kwargs.pop("joined_at", BASE_TIME + timedelta(minutes=queue_number)),
        status=status,
        **kwargs,
    )


class StubPredictor(WaitPredictor):
    """Returns a fixed prediction and counts calls"""

    def __init__(self, minutes=None, error=None):
        self.minutes = minutes
        self.error = error
        self.calls = []

    def predict(self, establishment_ref):
        self.calls.append(establishment_ref)
        if self.error is not None:
            raise self.error
        if self.minutes is None:
            return None
        return PredictionResult(minutes=self.minutes)


class FakeChannelLayer:
    """Channel layer double that records group messages"""

    def __init__(self, error=None):
        self.error = error
        self.sent = []

    async def group_send(self, group, message):
        if self.error is not None:
            raise self.error
        self.sent.append((group, message))
