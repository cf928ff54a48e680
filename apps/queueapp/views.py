"""
Queue app views for the Waitline platform
Handles endpoints related to joining, calling and serving queue entries

Queue engine errors are not caught here: they propagate to the project's
exception handler which renders them with their HTTP status.
"""

from rest_framework import generics, permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from .exceptions import NotAuthorized
from .models import Service
from .serializers import (
    CallNextSerializer,
    CancelEntrySerializer,
    EntryActionSerializer,
    JoinQueueSerializer,
    QueueEntrySerializer,
    RemoveEntrySerializer,
    ServiceSerializer,
)
from .services.queue_coordinator import get_queue_coordinator


def ensure_can_view(user, entry):
    if not (user.is_staff or str(entry.user_id) == str(user.pk)):
        raise NotAuthorized("You can only view your own queue entries.")


class ServiceListView(generics.ListAPIView):
    """List services currently accepting customers"""

    permission_classes = [permissions.IsAuthenticated]
    serializer_class = ServiceSerializer

    def get_queryset(self):
        return Service.objects.filter(is_open=True).order_by("name")


class JoinQueueView(APIView):
    """Add the authenticated customer to a service's queue"""

    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        serializer = JoinQueueSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        entry = get_queue_coordinator().join(
            serializer.validated_data["service_id"],
            request.user.pk,
            notes=serializer.validated_data.get("notes"),
        )
        return Response(QueueEntrySerializer(entry).data, status=status.HTTP_201_CREATED)


class CallNextView(APIView):
    """Call next customer in queue"""

    permission_classes = [permissions.IsAdminUser]

    def post(self, request):
        serializer = CallNextSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        entry = get_queue_coordinator().call_next(serializer.validated_data["service_id"])

        if entry is None:
            return Response(
                {"entry": None, "message": "No customers are waiting."},
                status=status.HTTP_200_OK,
            )
        return Response({"entry": QueueEntrySerializer(entry).data})


class MarkServedView(APIView):
    """Mark customer as served (completed)"""

    permission_classes = [permissions.IsAdminUser]

    def post(self, request):
        serializer = EntryActionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        entry = get_queue_coordinator().mark_served(
            serializer.validated_data["entry_id"],
            notes=serializer.validated_data.get("notes"),
        )
        return Response(QueueEntrySerializer(entry).data)


class RemoveEntryView(APIView):
    """Remove an entry from the queue as cancelled or no-show"""

    permission_classes = [permissions.IsAdminUser]

    def post(self, request):
        serializer = RemoveEntrySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        entry = get_queue_coordinator().remove_from_queue(
            serializer.validated_data["entry_id"],
            serializer.validated_data["reason"],
            notes=serializer.validated_data.get("notes"),
        )
        return Response(QueueEntrySerializer(entry).data)


class CancelEntryView(APIView):
    """Customer leaves the queue"""

    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        serializer = CancelEntrySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        entry = get_queue_coordinator().cancel_by_user(
            serializer.validated_data["entry_id"], request.user.pk
        )
        return Response(QueueEntrySerializer(entry).data)


class EntryPositionView(APIView):
    """Current position and wait estimate of an entry"""

    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, entry_id):
        coordinator = get_queue_coordinator()
        ensure_can_view(request.user, coordinator.get_entry(entry_id))
        return Response(coordinator.get_position(entry_id).to_dict())


class EntryByQRCodeView(APIView):
    """Look up an entry from its scanned QR code"""

    permission_classes = [permissions.IsAdminUser]

    def get(self, request, qr_code):
        entry = get_queue_coordinator().find_by_qr_code(qr_code)
        return Response(QueueEntrySerializer(entry).data)


class QueueStatsView(APIView):
    """Live counters for a service's queue"""

    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, service_id):
        return Response(get_queue_coordinator().get_stats(service_id).to_dict())


class WaitEstimateView(APIView):
    """Wait a customer would be quoted if joining now"""

    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, service_id):
        coordinator = get_queue_coordinator()
        stats = coordinator.get_stats(service_id)
        return Response(
            {
                "service_id": str(service_id),
                "queue_length": stats.waiting_count + stats.called_count,
                "estimated_wait_minutes": coordinator.estimate_wait_for_join(service_id),
            }
        )


class MyEntriesView(APIView):
    """Active queue entries of the authenticated customer"""

    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        entries = get_queue_coordinator().get_user_active_entries(request.user.pk)
        return Response(QueueEntrySerializer(entries, many=True).data)
