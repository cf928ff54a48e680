"""
WebSocket routing configuration for Waitline.
"""

from django.urls import path

from apps.queueapp.consumers import QueueConsumer, UserQueueConsumer

websocket_urlpatterns = [
    # Live position/status updates for everyone watching one service's line
    path("ws/queue/<uuid:service_id>/", QueueConsumer.as_asgi()),
    # Updates for the signed-in customer's own entries
    path("ws/my-queue/", UserQueueConsumer.as_asgi()),
]
