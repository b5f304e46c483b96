"""
In-memory repositories

Used by tests and single-process deployments. No method awaits between
reading and writing a record, so each call is atomic on the event loop.
Records are copied on the way in and out so callers never share state
with the store.
"""

import copy
import logging
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Set

from mangrovewatch.core.clock import utcnow
from mangrovewatch.core.exceptions import ConflictError, NotFound, ValidationError
from mangrovewatch.notifications.models import Notification
from mangrovewatch.reports.models import Comment, Report, ReportStatus, Upvote
from mangrovewatch.rewards.badges import Badge, CriterionKind
from mangrovewatch.rewards.ledger import UserLedger
from mangrovewatch.storage.base import (
    COUNTERS,
    AuditEntry,
    AuditLog,
    BadgeRepository,
    NotificationRepository,
    ReportRepository,
    UpvoteToggle,
    UserRepository,
)

logger = logging.getLogger(__name__)


class InMemoryReportRepository(ReportRepository):

    def __init__(self):
        self._reports: Dict[str, Report] = {}
        # (report id) -> users whose upvote has already been rewarded
        self._rewarded_voters: Dict[str, Set[str]] = defaultdict(set)

    def _require(self, report_id: str) -> Report:
        report = self._reports.get(report_id)
        if report is None:
            raise NotFound("Report", report_id)
        return report

    async def add(self, report: Report) -> Report:
        if report.id in self._reports:
            raise ConflictError(f"Report already exists: {report.id}")
        self._reports[report.id] = copy.deepcopy(report)
        return copy.deepcopy(report)

    async def get(self, report_id: str) -> Report:
        return copy.deepcopy(self._require(report_id))

    async def get_many(self, report_ids: Sequence[str]) -> List[Report]:
        return [
            copy.deepcopy(self._reports[report_id])
            for report_id in report_ids
            if report_id in self._reports
        ]

    async def delete(self, report_id: str) -> bool:
        self._rewarded_voters.pop(report_id, None)
        return self._reports.pop(report_id, None) is not None

    async def update_status(
        self,
        report_id: str,
        expected: ReportStatus,
        status: ReportStatus,
        validator_id: Optional[str] = None,
        notes: Optional[str] = None,
        at: Optional[datetime] = None
    ) -> Report:
        report = self._require(report_id)
        if report.status != expected:
            raise ConflictError(
                f"Report {report_id} status changed concurrently "
                f"(expected '{expected.value}', found '{report.status.value}')"
            )

        at = at or utcnow()
        report.status = status
        if validator_id is not None:
            report.validated_by = validator_id
            report.validated_at = at
            report.validation_notes = notes
        report.updated_at = at
        return copy.deepcopy(report)

    async def add_comment(self, report_id: str, comment: Comment) -> Comment:
        report = self._require(report_id)
        report.comments.append(comment)
        report.updated_at = comment.created_at
        return comment

    async def toggle_upvote(self, report_id: str, user_id: str) -> UpvoteToggle:
        report = self._require(report_id)

        if report.has_upvoted(user_id):
            report.upvotes = [upvote for upvote in report.upvotes if upvote.user_id != user_id]
            return UpvoteToggle(upvoted=False, count=report.upvote_count)

        report.upvotes.append(Upvote(user_id=user_id))
        rewarded = self._rewarded_voters[report_id]
        first_upvote = user_id not in rewarded
        rewarded.add(user_id)
        return UpvoteToggle(upvoted=True, count=report.upvote_count, first_upvote=first_upvote)

    async def increment_views(self, report_id: str) -> int:
        report = self._require(report_id)
        report.view_count += 1
        return report.view_count


class InMemoryUserRepository(UserRepository):

    def __init__(self):
        self._users: Dict[str, UserLedger] = {}

    def _require(self, user_id: str) -> UserLedger:
        ledger = self._users.get(user_id)
        if ledger is None:
            raise NotFound("User", user_id)
        return ledger

    async def add(self, ledger: UserLedger) -> UserLedger:
        if ledger.user_id in self._users:
            raise ConflictError(f"User already exists: {ledger.user_id}")
        self._users[ledger.user_id] = copy.deepcopy(ledger)
        return copy.deepcopy(ledger)

    async def get(self, user_id: str) -> UserLedger:
        return copy.deepcopy(self._require(user_id))

    async def increment_points(self, user_id: str, points: int) -> int:
        ledger = self._require(user_id)
        ledger.points += points
        return ledger.points

    async def increment_counter(self, user_id: str, counter: str, amount: int = 1) -> int:
        if counter not in COUNTERS:
            raise ValidationError(f"Unknown ledger counter: {counter}")
        ledger = self._require(user_id)
        value = getattr(ledger, counter) + amount
        setattr(ledger, counter, value)
        return value

    async def add_badge(self, user_id: str, badge_id: str, at: Optional[datetime] = None) -> bool:
        ledger = self._require(user_id)
        if badge_id in ledger.badges:
            return False
        ledger.badges[badge_id] = at or utcnow()
        return True

    async def find_alert_recipients(self, roles: Sequence[str]) -> List[str]:
        wanted = set(roles)
        return [
            ledger.user_id for ledger in self._users.values()
            if ledger.role in wanted and ledger.alerts_enabled
        ]


class InMemoryBadgeRepository(BadgeRepository):

    def __init__(self):
        self._badges: Dict[str, Badge] = {}

    def _require(self, badge_id: str) -> Badge:
        badge = self._badges.get(badge_id)
        if badge is None:
            raise NotFound("Badge", badge_id)
        return badge

    async def add(self, badge: Badge) -> Badge:
        if any(existing.name == badge.name for existing in self._badges.values()):
            raise ConflictError(f"Badge name already exists: {badge.name}")
        self._badges[badge.id] = copy.deepcopy(badge)
        return copy.deepcopy(badge)

    async def get(self, badge_id: str) -> Badge:
        return copy.deepcopy(self._require(badge_id))

    async def list_all(self) -> List[Badge]:
        return [copy.deepcopy(badge) for badge in self._badges.values()]

    async def find_qualifying(self, kind: CriterionKind, value: int) -> List[Badge]:
        matches = [
            badge for badge in self._badges.values()
            if badge.is_active and badge.criterion.kind == kind and badge.criterion.threshold <= value
        ]
        matches.sort(key=lambda badge: (-badge.criterion.threshold, badge.name))
        return [copy.deepcopy(badge) for badge in matches]

    async def increment_earned(self, badge_id: str, at: Optional[datetime] = None) -> int:
        badge = self._require(badge_id)
        badge.times_earned += 1
        badge.last_earned_at = at or utcnow()
        return badge.times_earned


class InMemoryNotificationRepository(NotificationRepository):

    def __init__(self):
        self._notifications: Dict[str, Notification] = {}

    async def insert_many(self, notifications: Sequence[Notification]) -> List[Notification]:
        for notification in notifications:
            self._notifications[notification.id] = copy.deepcopy(notification)
        return list(notifications)

    def _for(self, recipient_id: str) -> List[Notification]:
        return [n for n in self._notifications.values() if n.recipient_id == recipient_id]

    async def list_for(
        self,
        recipient_id: str,
        unread_only: bool = False,
        limit: int = 20,
        offset: int = 0
    ) -> List[Notification]:
        items = [n for n in self._for(recipient_id) if not (unread_only and n.is_read)]
        items.sort(key=lambda n: n.created_at, reverse=True)
        return [copy.deepcopy(n) for n in items[offset:offset + limit]]

    async def count_unread(self, recipient_id: str) -> int:
        return sum(1 for n in self._for(recipient_id) if not n.is_read)

    async def mark_read(self, notification_id: str, recipient_id: str, at: datetime) -> Notification:
        notification = self._notifications.get(notification_id)
        if notification is None or notification.recipient_id != recipient_id:
            raise NotFound("Notification", notification_id)
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = at
        return copy.deepcopy(notification)

    async def mark_all_read(self, recipient_id: str, at: datetime) -> int:
        updated = 0
        for notification in self._for(recipient_id):
            if not notification.is_read:
                notification.is_read = True
                notification.read_at = at
                updated += 1
        return updated

    async def delete_expired(self, now: datetime) -> int:
        expired = [n.id for n in self._notifications.values() if n.is_expired(now)]
        for notification_id in expired:
            del self._notifications[notification_id]
        return len(expired)


class InMemoryAuditLog(AuditLog):

    def __init__(self):
        self._entries: List[AuditEntry] = []

    async def append(self, entry: AuditEntry) -> AuditEntry:
        self._entries.append(entry)
        logger.info(f"Audit: {entry.actor_id} {entry.action} {entry.target_type} {entry.target_id}")
        return entry

    async def entries(self, target_id: Optional[str] = None) -> List[AuditEntry]:
        return [e for e in self._entries if target_id is None or e.target_id == target_id]
