"""
MangroveWatch - Notification Dispatcher
Turns domain events into per-recipient notification records.
"""

import logging
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Sequence

from mangrovewatch.core.clock import utcnow
from mangrovewatch.core.config import Settings, settings as default_settings
from mangrovewatch.notifications.models import (
    Notification,
    NotificationChannel,
    NotificationPriority,
    NotificationType,
)
from mangrovewatch.storage.base import NotificationRepository

logger = logging.getLogger(__name__)

STATUS_PHRASES = {
    "under_review": "moved under review",
    "verified": "verified",
    "false_positive": "marked as a false positive",
    "resolved": "resolved",
}


class NotificationDispatcher:
    """
    Creates notifications and manages their read state.

    Delivery over email, SMS, or push is outside the core; the channel set
    on each record tells the delivery workers what to send.
    """

    def __init__(
        self,
        repository: NotificationRepository,
        config: Optional[Settings] = None
    ):
        config = config or default_settings
        self.repository = repository
        self.retention = timedelta(days=config.notification_retention_days)

    # =========================================================================
    # DISPATCH
    # =========================================================================

    async def dispatch(
        self,
        notification_type: NotificationType,
        recipients: Iterable[str],
        title: str,
        message: str,
        related_report_id: Optional[str] = None,
        related_user_id: Optional[str] = None,
        related_badge_id: Optional[str] = None,
        priority: NotificationPriority = NotificationPriority.NORMAL,
        channels: Optional[Sequence[NotificationChannel]] = None
    ) -> List[Notification]:
        """
        Create one notification per distinct recipient in a single batch write.

        Args:
            notification_type: Event type
            recipients: Recipient user ids (duplicates are collapsed)
            title: Short heading
            message: Body text
            related_report_id: Report the event concerns
            related_user_id: User who caused the event
            related_badge_id: Badge the event concerns
            priority: Display priority
            channels: Delivery channels (in-app only by default)

        Returns:
            The stored notifications
        """
        unique_recipients = list(dict.fromkeys(recipients))
        if not unique_recipients:
            return []

        created_at = utcnow()
        notifications = [
            Notification(
                recipient_id=recipient_id,
                type=notification_type,
                title=title,
                message=message,
                related_report_id=related_report_id,
                related_user_id=related_user_id,
                related_badge_id=related_badge_id,
                priority=priority,
                channels=list(channels or [NotificationChannel.IN_APP]),
                created_at=created_at,
                expires_at=created_at + self.retention,
            )
            for recipient_id in unique_recipients
        ]

        stored = await self.repository.insert_many(notifications)
        logger.info(f"Dispatched {notification_type.value} to {len(stored)} recipients")
        return stored

    # =========================================================================
    # EVENT HELPERS
    # =========================================================================

    async def report_submitted(self, reporter_id: str, report_id: str, report_title: str) -> List[Notification]:
        return await self.dispatch(
            NotificationType.REPORT_SUBMITTED,
            [reporter_id],
            "Report Submitted Successfully",
            f'Your report "{report_title}" has been submitted and is now under review.',
            related_report_id=report_id,
            channels=[NotificationChannel.IN_APP, NotificationChannel.EMAIL],
        )

    async def urgent_report(
        self,
        recipient_ids: Sequence[str],
        report_id: str,
        report_title: str
    ) -> List[Notification]:
        """Alert reviewers about a critical report."""
        return await self.dispatch(
            NotificationType.URGENT_REPORT,
            recipient_ids,
            "Urgent Report Requires Attention",
            f'A critical incident report "{report_title}" requires immediate review.',
            related_report_id=report_id,
            priority=NotificationPriority.URGENT,
            channels=[NotificationChannel.IN_APP, NotificationChannel.EMAIL, NotificationChannel.SMS],
        )

    async def status_changed(
        self,
        reporter_id: str,
        report_id: str,
        report_title: str,
        status: str,
        heading: str = "Report Status Updated",
        validator_id: Optional[str] = None
    ) -> List[Notification]:
        phrase = STATUS_PHRASES.get(status, status.replace("_", " "))
        return await self.dispatch(
            NotificationType.REPORT_STATUS_CHANGED,
            [reporter_id],
            heading,
            f'Your report "{report_title}" has been {phrase}.',
            related_report_id=report_id,
            related_user_id=validator_id,
            channels=[NotificationChannel.IN_APP, NotificationChannel.EMAIL],
        )

    async def badge_earned(self, user_id: str, badge_id: str, badge_name: str) -> List[Notification]:
        return await self.dispatch(
            NotificationType.BADGE_EARNED,
            [user_id],
            "New Badge Earned!",
            f'Congratulations! You\'ve earned the "{badge_name}" badge.',
            related_badge_id=badge_id,
        )

    async def comment_added(
        self,
        reporter_id: str,
        report_id: str,
        report_title: str,
        commenter_id: str,
        commenter_name: Optional[str] = None
    ) -> List[Notification]:
        return await self.dispatch(
            NotificationType.COMMENT_ADDED,
            [reporter_id],
            "New Comment on Your Report",
            f'{commenter_name or "Someone"} commented on your report "{report_title}".',
            related_report_id=report_id,
            related_user_id=commenter_id,
        )

    async def upvote_received(
        self,
        reporter_id: str,
        report_id: str,
        report_title: str,
        voter_id: str
    ) -> List[Notification]:
        return await self.dispatch(
            NotificationType.UPVOTE_RECEIVED,
            [reporter_id],
            "Your Report Was Upvoted",
            f'Someone found your report "{report_title}" useful.',
            related_report_id=report_id,
            related_user_id=voter_id,
            priority=NotificationPriority.LOW,
        )

    async def points_awarded(self, user_id: str, points: int, reason: str = "") -> List[Notification]:
        suffix = f": {reason}" if reason else ""
        return await self.dispatch(
            NotificationType.POINTS_AWARDED,
            [user_id],
            "Points Awarded",
            f"{points} points were awarded by an administrator{suffix}.",
        )

    async def announcement(
        self,
        recipient_ids: Sequence[str],
        title: str,
        message: str,
        priority: NotificationPriority = NotificationPriority.NORMAL
    ) -> List[Notification]:
        return await self.dispatch(
            NotificationType.SYSTEM_ANNOUNCEMENT,
            recipient_ids,
            title,
            message,
            priority=priority,
        )

    # =========================================================================
    # READ STATE
    # =========================================================================

    async def list_for(
        self,
        user_id: str,
        unread_only: bool = False,
        limit: int = 20,
        offset: int = 0
    ) -> List[Notification]:
        return await self.repository.list_for(user_id, unread_only=unread_only, limit=limit, offset=offset)

    async def unread_count(self, user_id: str) -> int:
        return await self.repository.count_unread(user_id)

    async def mark_read(self, notification_id: str, user_id: str) -> Notification:
        """Mark one of the user's notifications read; NotFound for anyone else's."""
        return await self.repository.mark_read(notification_id, user_id, utcnow())

    async def mark_all_read(self, user_id: str) -> int:
        updated = await self.repository.mark_all_read(user_id, utcnow())
        logger.debug(f"Marked {updated} notifications read for {user_id}")
        return updated

    async def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Delete notifications past their expiry."""
        removed = await self.repository.delete_expired(now or utcnow())
        if removed:
            logger.info(f"Purged {removed} expired notifications")
        return removed
