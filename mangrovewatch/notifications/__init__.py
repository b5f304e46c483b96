"""
MangroveWatch - Notifications Module
Notification records and event fan-out.
"""

from mangrovewatch.notifications.models import (
    Notification,
    NotificationType,
    NotificationPriority,
    NotificationChannel,
)
from mangrovewatch.notifications.dispatcher import NotificationDispatcher

__all__ = [
    "Notification",
    "NotificationType",
    "NotificationPriority",
    "NotificationChannel",
    "NotificationDispatcher",
]
