from django.urls import path

from . import views

app_name = "queueapp"

urlpatterns = [
    path("services/", views.ServiceListView.as_view(), name="service-list"),
    # Queue operations
    path("join/", views.JoinQueueView.as_view(), name="join-queue"),
    path("call-next/", views.CallNextView.as_view(), name="call-next"),
    path("mark-served/", views.MarkServedView.as_view(), name="mark-served"),
    path("remove/", views.RemoveEntryView.as_view(), name="remove-entry"),
    path("cancel/", views.CancelEntryView.as_view(), name="cancel-entry"),
    # Queue status
    path(
        "entries/<uuid:entry_id>/position/",
        views.EntryPositionView.as_view(),
        name="entry-position",
    ),
    path("entries/qr/<str:qr_code>/", views.EntryByQRCodeView.as_view(), name="entry-by-qr"),
    path("my-entries/", views.MyEntriesView.as_view(), name="my-entries"),
    # Statistics
    path("services/<uuid:service_id>/stats/", views.QueueStatsView.as_view(), name="queue-stats"),
    path(
        "services/<uuid:service_id>/estimate/",
        views.WaitEstimateView.as_view(),
        name="wait-estimate",
    ),
]
