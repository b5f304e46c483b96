"""
SQL repositories

Sessions are synchronous and run in worker threads so the event loop is
never blocked. Counters are incremented with single UPDATE statements,
and status changes are compare-and-set on the current status.
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, List, Optional, Sequence, TypeVar

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from mangrovewatch.core.clock import utcnow
from mangrovewatch.core.exceptions import ConflictError, NotFound, Unexpected, ValidationError
from mangrovewatch.core.geo_utils import Point
from mangrovewatch.media.models import Photo, PhotoMetadata
from mangrovewatch.notifications.models import Notification, NotificationChannel
from mangrovewatch.reports.models import Comment, Report, ReportStatus, Upvote
from mangrovewatch.rewards.badges import Badge, BadgeCriterion, CriterionKind
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

from .connection import DatabaseConnection
from .models import (
    AuditRecord,
    BadgeRecord,
    NotificationRecord,
    ReportCommentRecord,
    ReportPhotoRecord,
    ReportRecord,
    ReportUpvoteRecord,
    UserBadgeRecord,
    UserRecord,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

UPVOTE_TOGGLE_ATTEMPTS = 5


class SqlRepository:
    """Runs a unit of work in its own session on a worker thread."""

    def __init__(self, db: DatabaseConnection):
        self.db = db

    async def _run(self, work: Callable[[Session], T]) -> T:
        """
        Execute ``work`` in a session on a worker thread.

        Raises:
            ConflictError: a unique or foreign key constraint rejected the write
            Unexpected: any other database failure
        """
        try:
            return await asyncio.to_thread(self._execute, work)
        except IntegrityError as e:
            raise ConflictError("Write conflicts with existing data", details={"error": str(e.orig)}) from e
        except SQLAlchemyError as e:
            raise Unexpected(f"Database operation failed: {type(e).__name__}", details={"error": str(e)}) from e

    def _execute(self, work: Callable[[Session], T]) -> T:
        with self.db.get_session() as session:
            return work(session)


# =============================================================================
# MAPPING
# =============================================================================


def _photo_metadata_from_json(data: Optional[dict]) -> Optional[PhotoMetadata]:
    if not data:
        return None
    gps = data.get("gps_coordinates") or {}
    device = data.get("device_info") or {}
    taken_at = data.get("taken_at")
    return PhotoMetadata(
        taken_at=datetime.fromisoformat(taken_at) if taken_at else None,
        gps_latitude=gps.get("latitude"),
        gps_longitude=gps.get("longitude"),
        device_make=device.get("make"),
        device_model=device.get("model"),
    )


def _photo_record(photo: Photo, position: int) -> ReportPhotoRecord:
    return ReportPhotoRecord(
        position=position,
        filename=photo.filename,
        original_name=photo.original_name,
        path=photo.path,
        thumbnail_path=photo.thumbnail_path,
        size=photo.size,
        mime_type=photo.mime_type,
        exif=photo.metadata.to_dict() if photo.metadata else None,
        uploaded_at=photo.uploaded_at,
    )


def _report_from_record(record: ReportRecord) -> Report:
    return Report(
        id=record.id,
        title=record.title,
        incident_type=record.incident_type,
        description=record.description,
        location=Point(longitude=record.longitude, latitude=record.latitude),
        reporter_id=record.reporter_id,
        severity=record.severity,
        photos=[
            Photo(
                filename=photo.filename,
                original_name=photo.original_name,
                path=photo.path,
                thumbnail_path=photo.thumbnail_path,
                size=photo.size,
                mime_type=photo.mime_type,
                metadata=_photo_metadata_from_json(photo.exif),
                uploaded_at=photo.uploaded_at,
            )
            for photo in record.photos
        ],
        status=record.status,
        validated_by=record.validated_by,
        validated_at=record.validated_at,
        validation_notes=record.validation_notes,
        comments=[
            Comment(user_id=c.user_id, text=c.text, created_at=c.created_at, id=c.id)
            for c in record.comments
        ],
        upvotes=[
            Upvote(user_id=u.user_id, created_at=u.created_at)
            for u in record.upvotes if u.active
        ],
        view_count=record.view_count,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _ledger_from_record(record: UserRecord) -> UserLedger:
    return UserLedger(
        user_id=record.id,
        role=record.role,
        name=record.name,
        alerts_enabled=record.alerts_enabled,
        points=record.points,
        reports_submitted=record.reports_submitted,
        reports_validated=record.reports_validated,
        badges={held.badge_id: held.earned_at for held in record.badges},
    )


def _badge_from_record(record: BadgeRecord) -> Badge:
    return Badge(
        id=record.id,
        name=record.name,
        description=record.description,
        icon=record.icon,
        category=record.category,
        tier=record.tier,
        criterion=BadgeCriterion(
            kind=record.criterion_kind,
            threshold=record.threshold,
            timeframe=record.timeframe,
        ),
        points=record.points,
        rarity=record.rarity,
        is_active=record.is_active,
        times_earned=record.times_earned,
        last_earned_at=record.last_earned_at,
    )


def _notification_from_record(record: NotificationRecord) -> Notification:
    return Notification(
        id=record.id,
        recipient_id=record.recipient_id,
        type=record.type,
        title=record.title,
        message=record.message,
        related_report_id=record.related_report_id,
        related_user_id=record.related_user_id,
        related_badge_id=record.related_badge_id,
        priority=record.priority,
        channels=[NotificationChannel(channel) for channel in record.channels or []],
        is_read=record.is_read,
        read_at=record.read_at,
        created_at=record.created_at,
        expires_at=record.expires_at,
    )


# =============================================================================
# REPORTS
# =============================================================================


class SqlReportRepository(SqlRepository, ReportRepository):

    @staticmethod
    def _require(session: Session, report_id: str, for_update: bool = False) -> ReportRecord:
        query = select(ReportRecord).where(ReportRecord.id == report_id)
        if for_update:
            query = query.with_for_update()
        record = session.scalars(query).first()
        if record is None:
            raise NotFound("Report", report_id)
        return record

    async def add(self, report: Report) -> Report:
        def work(session: Session) -> None:
            session.add(ReportRecord(
                id=report.id,
                title=report.title,
                incident_type=report.incident_type,
                description=report.description,
                severity=report.severity,
                longitude=report.location.longitude,
                latitude=report.location.latitude,
                reporter_id=report.reporter_id,
                status=report.status,
                validated_by=report.validated_by,
                validated_at=report.validated_at,
                validation_notes=report.validation_notes,
                view_count=report.view_count,
                created_at=report.created_at,
                updated_at=report.updated_at,
                photos=[_photo_record(photo, i) for i, photo in enumerate(report.photos)],
            ))

        try:
            await self._run(work)
        except ConflictError as e:
            raise ConflictError(f"Report could not be stored: {report.id}") from e
        return report

    async def get(self, report_id: str) -> Report:
        return await self._run(lambda session: _report_from_record(self._require(session, report_id)))

    async def get_many(self, report_ids: Sequence[str]) -> List[Report]:
        if not report_ids:
            return []

        def work(session: Session) -> List[Report]:
            records = session.scalars(
                select(ReportRecord).where(ReportRecord.id.in_(list(report_ids)))
            ).all()
            by_id = {record.id: _report_from_record(record) for record in records}
            return [by_id[report_id] for report_id in report_ids if report_id in by_id]

        return await self._run(work)

    async def delete(self, report_id: str) -> bool:
        def work(session: Session) -> bool:
            record = session.get(ReportRecord, report_id)
            if record is None:
                return False
            session.delete(record)
            return True

        return await self._run(work)

    async def update_status(
        self,
        report_id: str,
        expected: ReportStatus,
        status: ReportStatus,
        validator_id: Optional[str] = None,
        notes: Optional[str] = None,
        at: Optional[datetime] = None
    ) -> Report:
        at = at or utcnow()
        values = {"status": status, "updated_at": at}
        if validator_id is not None:
            values.update(validated_by=validator_id, validated_at=at, validation_notes=notes)

        def work(session: Session) -> Report:
            result = session.execute(
                update(ReportRecord)
                .where(ReportRecord.id == report_id, ReportRecord.status == expected)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            record = self._require(session, report_id)
            if result.rowcount == 0:
                raise ConflictError(
                    f"Report {report_id} status changed concurrently "
                    f"(expected '{expected.value}', found '{record.status.value}')"
                )
            session.refresh(record)
            return _report_from_record(record)

        return await self._run(work)

    async def add_comment(self, report_id: str, comment: Comment) -> Comment:
        def work(session: Session) -> None:
            record = self._require(session, report_id)
            session.add(ReportCommentRecord(
                id=comment.id,
                report_id=report_id,
                user_id=comment.user_id,
                text=comment.text,
                created_at=comment.created_at,
            ))
            record.updated_at = comment.created_at

        await self._run(work)
        return comment

    async def toggle_upvote(self, report_id: str, user_id: str) -> UpvoteToggle:
        def work(session: Session) -> UpvoteToggle:
            # Row lock on the report serialises toggles where the dialect supports it
            self._require(session, report_id, for_update=True)
            upvote = session.get(ReportUpvoteRecord, (report_id, user_id))

            first_upvote = False
            if upvote is None:
                session.add(ReportUpvoteRecord(report_id=report_id, user_id=user_id, active=True))
                session.flush()
                upvoted = first_upvote = True
            else:
                upvoted = not upvote.active
                values = {"active": upvoted}
                if upvoted:
                    values["created_at"] = utcnow()
                # Compare-and-set on the state just read
                result = session.execute(
                    update(ReportUpvoteRecord)
                    .where(
                        ReportUpvoteRecord.report_id == report_id,
                        ReportUpvoteRecord.user_id == user_id,
                        ReportUpvoteRecord.active.is_(upvote.active),
                    )
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    raise ConflictError(f"Upvote by {user_id} on report {report_id} changed concurrently")

            count = session.scalar(
                select(func.count())
                .select_from(ReportUpvoteRecord)
                .where(ReportUpvoteRecord.report_id == report_id, ReportUpvoteRecord.active.is_(True))
            )
            return UpvoteToggle(upvoted=upvoted, count=count, first_upvote=first_upvote)

        for attempt in range(1, UPVOTE_TOGGLE_ATTEMPTS + 1):
            try:
                return await self._run(work)
            except ConflictError:
                # Another toggle by the same user committed first; re-read and apply on top
                logger.debug(f"Upvote toggle on {report_id} by {user_id} retried (attempt {attempt})")

        raise ConflictError(
            f"Upvote by {user_id} on report {report_id} kept changing concurrently",
            details={"attempts": UPVOTE_TOGGLE_ATTEMPTS},
        )

    async def increment_views(self, report_id: str) -> int:
        def work(session: Session) -> int:
            result = session.execute(
                update(ReportRecord)
                .where(ReportRecord.id == report_id)
                .values(view_count=ReportRecord.view_count + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise NotFound("Report", report_id)
            return session.scalar(select(ReportRecord.view_count).where(ReportRecord.id == report_id))

        return await self._run(work)


# =============================================================================
# USERS
# =============================================================================


class SqlUserRepository(SqlRepository, UserRepository):

    async def add(self, ledger: UserLedger) -> UserLedger:
        def work(session: Session) -> None:
            session.add(UserRecord(
                id=ledger.user_id,
                role=ledger.role,
                name=ledger.name,
                alerts_enabled=ledger.alerts_enabled,
                points=ledger.points,
                reports_submitted=ledger.reports_submitted,
                reports_validated=ledger.reports_validated,
                badges=[
                    UserBadgeRecord(badge_id=badge_id, earned_at=earned_at)
                    for badge_id, earned_at in ledger.badges.items()
                ],
            ))

        try:
            await self._run(work)
        except ConflictError as e:
            raise ConflictError(f"User already exists: {ledger.user_id}") from e
        return ledger

    async def get(self, user_id: str) -> UserLedger:
        def work(session: Session) -> UserLedger:
            record = session.get(UserRecord, user_id)
            if record is None:
                raise NotFound("User", user_id)
            return _ledger_from_record(record)

        return await self._run(work)

    def _increment(self, user_id: str, column, amount: int) -> Callable[[Session], int]:
        def work(session: Session) -> int:
            result = session.execute(
                update(UserRecord)
                .where(UserRecord.id == user_id)
                .values({column: column + amount})
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise NotFound("User", user_id)
            # The row stays locked by this transaction until commit
            return session.scalar(select(column).where(UserRecord.id == user_id))

        return work

    async def increment_points(self, user_id: str, points: int) -> int:
        return await self._run(self._increment(user_id, UserRecord.points, points))

    async def increment_counter(self, user_id: str, counter: str, amount: int = 1) -> int:
        if counter not in COUNTERS:
            raise ValidationError(f"Unknown ledger counter: {counter}")
        return await self._run(self._increment(user_id, getattr(UserRecord, counter), amount))

    async def add_badge(self, user_id: str, badge_id: str, at: Optional[datetime] = None) -> bool:
        def work(session: Session) -> bool:
            if session.get(UserRecord, user_id) is None:
                raise NotFound("User", user_id)
            held = session.scalar(
                select(UserBadgeRecord.id)
                .where(UserBadgeRecord.user_id == user_id, UserBadgeRecord.badge_id == badge_id)
            )
            if held is not None:
                return False
            session.add(UserBadgeRecord(user_id=user_id, badge_id=badge_id, earned_at=at or utcnow()))
            return True

        try:
            return await self._run(work)
        except ConflictError:
            # Lost a race with a concurrent award of the same badge
            logger.debug(f"Badge {badge_id} already held by {user_id}")
            return False

    async def find_alert_recipients(self, roles: Sequence[str]) -> List[str]:
        if not roles:
            return []

        def work(session: Session) -> List[str]:
            return list(session.scalars(
                select(UserRecord.id)
                .where(UserRecord.role.in_(list(roles)), UserRecord.alerts_enabled.is_(True))
                .order_by(UserRecord.id)
            ))

        return await self._run(work)


# =============================================================================
# BADGES
# =============================================================================


class SqlBadgeRepository(SqlRepository, BadgeRepository):

    async def add(self, badge: Badge) -> Badge:
        def work(session: Session) -> None:
            session.add(BadgeRecord(
                id=badge.id,
                name=badge.name,
                description=badge.description,
                icon=badge.icon,
                category=badge.category,
                tier=badge.tier,
                criterion_kind=badge.criterion.kind,
                threshold=badge.criterion.threshold,
                timeframe=badge.criterion.timeframe,
                points=badge.points,
                rarity=badge.rarity,
                is_active=badge.is_active,
                times_earned=badge.times_earned,
                last_earned_at=badge.last_earned_at,
            ))

        try:
            await self._run(work)
        except ConflictError as e:
            raise ConflictError(f"Badge name already exists: {badge.name}") from e
        return badge

    async def get(self, badge_id: str) -> Badge:
        def work(session: Session) -> Badge:
            record = session.get(BadgeRecord, badge_id)
            if record is None:
                raise NotFound("Badge", badge_id)
            return _badge_from_record(record)

        return await self._run(work)

    async def list_all(self) -> List[Badge]:
        def work(session: Session) -> List[Badge]:
            records = session.scalars(select(BadgeRecord).order_by(BadgeRecord.created_at, BadgeRecord.name))
            return [_badge_from_record(record) for record in records]

        return await self._run(work)

    async def find_qualifying(self, kind: CriterionKind, value: int) -> List[Badge]:
        def work(session: Session) -> List[Badge]:
            records = session.scalars(
                select(BadgeRecord)
                .where(
                    BadgeRecord.is_active.is_(True),
                    BadgeRecord.criterion_kind == kind,
                    BadgeRecord.threshold <= value,
                )
                .order_by(BadgeRecord.threshold.desc(), BadgeRecord.name)
            )
            return [_badge_from_record(record) for record in records]

        return await self._run(work)

    async def increment_earned(self, badge_id: str, at: Optional[datetime] = None) -> int:
        def work(session: Session) -> int:
            result = session.execute(
                update(BadgeRecord)
                .where(BadgeRecord.id == badge_id)
                .values(times_earned=BadgeRecord.times_earned + 1, last_earned_at=at or utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise NotFound("Badge", badge_id)
            return session.scalar(select(BadgeRecord.times_earned).where(BadgeRecord.id == badge_id))

        return await self._run(work)


# =============================================================================
# NOTIFICATIONS
# =============================================================================


class SqlNotificationRepository(SqlRepository, NotificationRepository):

    async def insert_many(self, notifications: Sequence[Notification]) -> List[Notification]:
        def work(session: Session) -> None:
            session.add_all([
                NotificationRecord(
                    id=n.id,
                    recipient_id=n.recipient_id,
                    type=n.type,
                    title=n.title,
                    message=n.message,
                    related_report_id=n.related_report_id,
                    related_user_id=n.related_user_id,
                    related_badge_id=n.related_badge_id,
                    priority=n.priority,
                    channels=[channel.value for channel in n.channels],
                    is_read=n.is_read,
                    read_at=n.read_at,
                    created_at=n.created_at,
                    expires_at=n.expires_at,
                )
                for n in notifications
            ])

        if notifications:
            await self._run(work)
        return list(notifications)

    async def list_for(
        self,
        recipient_id: str,
        unread_only: bool = False,
        limit: int = 20,
        offset: int = 0
    ) -> List[Notification]:
        def work(session: Session) -> List[Notification]:
            query = select(NotificationRecord).where(NotificationRecord.recipient_id == recipient_id)
            if unread_only:
                query = query.where(NotificationRecord.is_read.is_(False))
            query = query.order_by(NotificationRecord.created_at.desc()).offset(offset).limit(limit)
            return [_notification_from_record(record) for record in session.scalars(query)]

        return await self._run(work)

    async def count_unread(self, recipient_id: str) -> int:
        def work(session: Session) -> int:
            return session.scalar(
                select(func.count())
                .select_from(NotificationRecord)
                .where(NotificationRecord.recipient_id == recipient_id, NotificationRecord.is_read.is_(False))
            )

        return await self._run(work)

    async def mark_read(self, notification_id: str, recipient_id: str, at: datetime) -> Notification:
        def work(session: Session) -> Notification:
            record = session.scalars(
                select(NotificationRecord)
                .where(NotificationRecord.id == notification_id, NotificationRecord.recipient_id == recipient_id)
            ).first()
            if record is None:
                raise NotFound("Notification", notification_id)
            if not record.is_read:
                record.is_read = True
                record.read_at = at
            return _notification_from_record(record)

        return await self._run(work)

    async def mark_all_read(self, recipient_id: str, at: datetime) -> int:
        def work(session: Session) -> int:
            result = session.execute(
                update(NotificationRecord)
                .where(NotificationRecord.recipient_id == recipient_id, NotificationRecord.is_read.is_(False))
                .values(is_read=True, read_at=at)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount

        return await self._run(work)

    async def delete_expired(self, now: datetime) -> int:
        def work(session: Session) -> int:
            result = session.execute(
                delete(NotificationRecord)
                .where(NotificationRecord.expires_at.is_not(None), NotificationRecord.expires_at <= now)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount

        return await self._run(work)


# =============================================================================
# AUDIT LOG
# =============================================================================


class SqlAuditLog(SqlRepository, AuditLog):

    async def append(self, entry: AuditEntry) -> AuditEntry:
        def work(session: Session) -> None:
            session.add(AuditRecord(
                id=entry.id,
                actor_id=entry.actor_id,
                action=entry.action,
                target_type=entry.target_type,
                target_id=entry.target_id,
                details=entry.details,
                created_at=entry.created_at,
            ))

        await self._run(work)
        logger.info(f"Audit: {entry.actor_id} {entry.action} {entry.target_type} {entry.target_id}")
        return entry

    async def entries(self, target_id: Optional[str] = None) -> List[AuditEntry]:
        def work(session: Session) -> List[AuditEntry]:
            query = select(AuditRecord)
            if target_id is not None:
                query = query.where(AuditRecord.target_id == target_id)
            query = query.order_by(AuditRecord.created_at, AuditRecord.id)
            return [
                AuditEntry(
                    id=record.id,
                    actor_id=record.actor_id,
                    action=record.action,
                    target_type=record.target_type,
                    target_id=record.target_id,
                    details=record.details or "",
                    created_at=record.created_at,
                )
                for record in session.scalars(query)
            ]

        return await self._run(work)
