"""
Repository contracts

Every method is a coroutine so SQL, document, and in-memory back ends
are interchangeable. Implementations must make the increment and toggle
operations atomic per record.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

from mangrovewatch.core.clock import utcnow

if TYPE_CHECKING:
    from mangrovewatch.notifications.models import Notification
    from mangrovewatch.reports.models import Comment, Report, ReportStatus
    from mangrovewatch.rewards.badges import Badge, CriterionKind
    from mangrovewatch.rewards.ledger import UserLedger

# Ledger counters that may be incremented
COUNTERS = ("reports_submitted", "reports_validated")


@dataclass(frozen=True)
class UpvoteToggle:
    """Outcome of an atomic upvote toggle."""
    upvoted: bool
    count: int
    first_upvote: bool = False


@dataclass(frozen=True)
class AuditEntry:
    """One administrative action."""
    actor_id: str
    action: str
    target_type: str
    target_id: str
    details: str = ""
    created_at: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "actor_id": self.actor_id,
            "action": self.action,
            "target_type": self.target_type,
            "target_id": self.target_id,
            "details": self.details,
            "created_at": self.created_at.isoformat(),
        }


class ReportRepository(ABC):

    @abstractmethod
    async def add(self, report: Report) -> Report:
        ...

    @abstractmethod
    async def get(self, report_id: str) -> Report:
        """Raises NotFound for unknown ids."""

    @abstractmethod
    async def get_many(self, report_ids: Sequence[str]) -> List[Report]:
        """Reports for the ids that exist, in the order given."""

    @abstractmethod
    async def delete(self, report_id: str) -> bool:
        ...

    @abstractmethod
    async def update_status(
        self,
        report_id: str,
        expected: ReportStatus,
        status: ReportStatus,
        validator_id: Optional[str] = None,
        notes: Optional[str] = None,
        at: Optional[datetime] = None
    ) -> Report:
        """
        Compare-and-set the status.

        Validator id, timestamp and notes are written together when
        ``validator_id`` is given.

        Raises:
            NotFound: unknown report
            ConflictError: the status is no longer ``expected``
        """

    @abstractmethod
    async def add_comment(self, report_id: str, comment: Comment) -> Comment:
        ...

    @abstractmethod
    async def toggle_upvote(self, report_id: str, user_id: str) -> UpvoteToggle:
        """
        Add the user's upvote if absent, otherwise remove it, as one step.

        ``first_upvote`` is True only the first time this user ever upvotes
        this report.
        """

    @abstractmethod
    async def increment_views(self, report_id: str) -> int:
        ...


class UserRepository(ABC):
    """Points ledger."""

    @abstractmethod
    async def add(self, ledger: UserLedger) -> UserLedger:
        """Raises ConflictError if the user already exists."""

    @abstractmethod
    async def get(self, user_id: str) -> UserLedger:
        """Raises NotFound for unknown ids."""

    @abstractmethod
    async def increment_points(self, user_id: str, points: int) -> int:
        """Atomically add ``points`` and return the new total."""

    @abstractmethod
    async def increment_counter(self, user_id: str, counter: str, amount: int = 1) -> int:
        """Atomically bump one of COUNTERS and return the new value."""

    @abstractmethod
    async def add_badge(self, user_id: str, badge_id: str, at: Optional[datetime] = None) -> bool:
        """Add a badge to the user's set; False if it was already there."""

    @abstractmethod
    async def find_alert_recipients(self, roles: Sequence[str]) -> List[str]:
        """Ids of users in ``roles`` who opted into alerts."""


class BadgeRepository(ABC):

    @abstractmethod
    async def add(self, badge: Badge) -> Badge:
        """Raises ConflictError on a duplicate name."""

    @abstractmethod
    async def get(self, badge_id: str) -> Badge:
        ...

    @abstractmethod
    async def list_all(self) -> List[Badge]:
        ...

    @abstractmethod
    async def find_qualifying(self, kind: CriterionKind, value: int) -> List[Badge]:
        """Active badges of ``kind`` with threshold <= value, highest threshold first."""

    @abstractmethod
    async def increment_earned(self, badge_id: str, at: Optional[datetime] = None) -> int:
        ...


class NotificationRepository(ABC):

    @abstractmethod
    async def insert_many(self, notifications: Sequence[Notification]) -> List[Notification]:
        """Persist a batch in one write."""

    @abstractmethod
    async def list_for(
        self,
        recipient_id: str,
        unread_only: bool = False,
        limit: int = 20,
        offset: int = 0
    ) -> List[Notification]:
        """Newest first."""

    @abstractmethod
    async def count_unread(self, recipient_id: str) -> int:
        ...

    @abstractmethod
    async def mark_read(self, notification_id: str, recipient_id: str, at: datetime) -> Notification:
        """Raises NotFound unless the notification belongs to the recipient."""

    @abstractmethod
    async def mark_all_read(self, recipient_id: str, at: datetime) -> int:
        ...

    @abstractmethod
    async def delete_expired(self, now: datetime) -> int:
        ...


class AuditLog(ABC):
    """Append-only administrative activity log."""

    @abstractmethod
    async def append(self, entry: AuditEntry) -> AuditEntry:
        ...

    @abstractmethod
    async def entries(self, target_id: Optional[str] = None) -> List[AuditEntry]:
        """Oldest first."""
