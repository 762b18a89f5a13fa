"""Realtime change streams and the views they keep current."""

from .channel import (
    LocalRealtimeHub,
    RealtimeAction,
    RealtimeChannel,
    RealtimeEvent,
    SseRealtimeChannel,
)
from .reconciler import CollectionSpec, ObserverReconciler, RecordCollection, status_in
from .views import (
    DashboardView,
    LendingView,
    Notification,
    NotificationBellView,
    NotificationsView,
    ObserverView,
)

__all__ = [
    # Channels
    "LocalRealtimeHub",
    "RealtimeAction",
    "RealtimeChannel",
    "RealtimeEvent",
    "SseRealtimeChannel",
    # Merge rules
    "CollectionSpec",
    "ObserverReconciler",
    "RecordCollection",
    "status_in",
    # Views
    "DashboardView",
    "LendingView",
    "Notification",
    "NotificationBellView",
    "NotificationsView",
    "ObserverView",
]
