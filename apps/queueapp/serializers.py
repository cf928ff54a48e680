from rest_framework import serializers

from .enums import REMOVAL_REASONS
from .models import Service


class ServiceSerializer(serializers.ModelSerializer):
    class Meta:
        model = Service
        fields = [
            "id",
            "establishment_id",
            "name",
            "description",
            "max_capacity",
            "is_open",
            "avg_service_minutes",
            "queue_number_counter",
        ]
        read_only_fields = ["id", "queue_number_counter"]


class QueueEntrySerializer(serializers.Serializer):
    """Read-only representation of a queue entry record"""

    id = serializers.UUIDField(read_only=True)
    service_id = serializers.UUIDField(read_only=True)
    user_id = serializers.CharField(read_only=True)
    queue_number = serializers.IntegerField(read_only=True)
    qr_code = serializers.CharField(read_only=True)
    status = serializers.SerializerMethodField()
    estimated_wait_minutes = serializers.IntegerField(read_only=True)
    notes = serializers.CharField(read_only=True)
    joined_at = serializers.DateTimeField(read_only=True)
    called_at = serializers.DateTimeField(read_only=True)
    served_at = serializers.DateTimeField(read_only=True)

    def get_status(self, obj):
        return obj.status.value


class JoinQueueSerializer(serializers.Serializer):
    service_id = serializers.UUIDField(required=True)
    notes = serializers.CharField(required=False, allow_blank=True, max_length=500)


class CallNextSerializer(serializers.Serializer):
    service_id = serializers.UUIDField(required=True)


class EntryActionSerializer(serializers.Serializer):
    entry_id = serializers.UUIDField(required=True)
    notes = serializers.CharField(required=False, allow_blank=True, max_length=500)


class RemoveEntrySerializer(EntryActionSerializer):
    reason = serializers.ChoiceField(choices=sorted(reason.value for reason in REMOVAL_REASONS))


class CancelEntrySerializer(serializers.Serializer):
    entry_id = serializers.UUIDField(required=True)
