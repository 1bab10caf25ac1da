"""Notification events, outbox dispatch and the outbox flush job."""

from ta_portal.modules.notifications.events import NotificationEvent, NotificationType

__all__ = ["NotificationEvent", "NotificationType"]
