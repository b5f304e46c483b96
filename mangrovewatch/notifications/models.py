"""
Notification records
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional

from mangrovewatch.core.clock import utcnow


class NotificationType(str, Enum):
    """Domain events that produce notifications."""
    REPORT_SUBMITTED = "report_submitted"
    REPORT_VALIDATED = "report_validated"
    REPORT_STATUS_CHANGED = "report_status_changed"
    BADGE_EARNED = "badge_earned"
    POINTS_AWARDED = "points_awarded"
    COMMENT_ADDED = "comment_added"
    UPVOTE_RECEIVED = "upvote_received"
    URGENT_REPORT = "urgent_report"
    SYSTEM_ANNOUNCEMENT = "system_announcement"
    ACHIEVEMENT_UNLOCKED = "achievement_unlocked"


class NotificationPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class NotificationChannel(str, Enum):
    """Delivery channels; sending itself happens outside the core."""
    IN_APP = "in_app"
    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"


TITLE_MAX_LENGTH = 200
MESSAGE_MAX_LENGTH = 1000


@dataclass
class Notification:
    """One notification for one recipient."""
    recipient_id: str
    type: NotificationType
    title: str
    message: str
    related_report_id: Optional[str] = None
    related_user_id: Optional[str] = None
    related_badge_id: Optional[str] = None
    priority: NotificationPriority = NotificationPriority.NORMAL
    channels: List[NotificationChannel] = field(default_factory=lambda: [NotificationChannel.IN_APP])
    is_read: bool = False
    read_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    expires_at: Optional[datetime] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self):
        self.title = self.title.strip()[:TITLE_MAX_LENGTH]
        self.message = self.message.strip()[:MESSAGE_MAX_LENGTH]
        if self.expires_at is None:
            self.expires_at = self.created_at + timedelta(days=30)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expires_at is not None and self.expires_at <= (now or utcnow())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "recipient_id": self.recipient_id,
            "type": self.type.value,
            "title": self.title,
            "message": self.message,
            "related_report_id": self.related_report_id,
            "related_user_id": self.related_user_id,
            "related_badge_id": self.related_badge_id,
            "priority": self.priority.value,
            "channels": [channel.value for channel in self.channels],
            "is_read": self.is_read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }
