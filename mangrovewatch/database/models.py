"""
SQLAlchemy models for MangroveWatch
Uses GeoAlchemy2 for the PostGIS location index
"""

from sqlalchemy import (
    Column, Integer, Float, String, Text, Boolean, JSON,
    DateTime, ForeignKey, Index, UniqueConstraint, CheckConstraint,
    Enum as SQLEnum
)
from sqlalchemy.orm import declarative_base, relationship
from geoalchemy2 import Geography
from geoalchemy2.shape import from_shape
from shapely.geometry import Point

from mangrovewatch.core.clock import utcnow
from mangrovewatch.notifications.models import NotificationPriority, NotificationType
from mangrovewatch.reports.models import IncidentType, ReportStatus, Severity
from mangrovewatch.rewards.badges import (
    BadgeCategory,
    BadgeRarity,
    BadgeTier,
    CriterionKind,
    Timeframe,
)

# Core tables, portable across dialects
Base = declarative_base()

# PostGIS-only tables
GeoBase = declarative_base()


def _enum(enum_cls, length: int = 30) -> SQLEnum:
    """Store enum values (not names) as plain strings."""
    return SQLEnum(
        enum_cls,
        native_enum=False,
        length=length,
        values_callable=lambda members: [member.value for member in members],
        validate_strings=True,
    )


class UserRecord(Base):
    """
    Reward ledger for one user.

    Identity and authentication are owned elsewhere; role and alert
    preference are mirrored here for alert routing.
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True)
    role = Column(String(30), nullable=False, default="citizen")
    name = Column(String(100))
    alerts_enabled = Column(Boolean, nullable=False, default=True)

    points = Column(Integer, nullable=False, default=0)
    reports_submitted = Column(Integer, nullable=False, default=0)
    reports_validated = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=utcnow)

    badges = relationship("UserBadgeRecord", lazy="selectin", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("points >= 0", name="ck_user_points_non_negative"),
        Index("idx_user_role_alerts", role, alerts_enabled),
        Index("idx_user_points", points),
    )

    def __repr__(self):
        return f"<UserRecord({self.id}, role={self.role}, points={self.points})>"


class BadgeRecord(Base):
    """Badge definition."""
    __tablename__ = "badges"

    id = Column(String(36), primary_key=True)
    name = Column(String(100), nullable=False, unique=True)
    description = Column(String(500), nullable=False)
    icon = Column(String(200), nullable=False)
    category = Column(_enum(BadgeCategory), nullable=False)
    tier = Column(_enum(BadgeTier), nullable=False)

    criterion_kind = Column(_enum(CriterionKind), nullable=False)
    threshold = Column(Integer, nullable=False)
    timeframe = Column(_enum(Timeframe), nullable=False, default=Timeframe.ALL_TIME)

    points = Column(Integer, nullable=False, default=0)
    rarity = Column(_enum(BadgeRarity), nullable=False, default=BadgeRarity.COMMON)
    is_active = Column(Boolean, nullable=False, default=True)

    # Stats
    times_earned = Column(Integer, nullable=False, default=0)
    last_earned_at = Column(DateTime)

    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        CheckConstraint("threshold >= 1", name="ck_badge_threshold_positive"),
        Index("idx_badge_criterion", criterion_kind, threshold),
        Index("idx_badge_active", is_active),
    )

    def __repr__(self):
        return f"<BadgeRecord({self.id}, name={self.name})>"


class UserBadgeRecord(Base):
    """Badge held by a user; at most one row per pair."""
    __tablename__ = "user_badges"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    badge_id = Column(String(36), ForeignKey("badges.id", ondelete="CASCADE"), nullable=False)
    earned_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "badge_id", name="uq_user_badge"),
    )


class ReportRecord(Base):
    """
    Environmental incident report.

    Longitude/latitude are stored as plain columns; the spatial index
    lives in report_locations.
    """
    __tablename__ = "reports"

    id = Column(String(36), primary_key=True)

    # Report details
    title = Column(String(200), nullable=False)
    incident_type = Column(_enum(IncidentType), nullable=False)
    description = Column(Text, nullable=False)
    severity = Column(_enum(Severity, 20), nullable=False, default=Severity.MEDIUM)

    # Location
    longitude = Column(Float, nullable=False)
    latitude = Column(Float, nullable=False)

    reporter_id = Column(String(36), ForeignKey("users.id"), nullable=False)

    # Validation
    status = Column(_enum(ReportStatus, 20), nullable=False, default=ReportStatus.PENDING)
    validated_by = Column(String(36))
    validated_at = Column(DateTime)
    validation_notes = Column(Text)

    view_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    photos = relationship(
        "ReportPhotoRecord",
        order_by="ReportPhotoRecord.position",
        lazy="selectin",
        cascade="all, delete-orphan",
    )
    comments = relationship(
        "ReportCommentRecord",
        order_by="ReportCommentRecord.created_at",
        lazy="selectin",
        cascade="all, delete-orphan",
    )
    upvotes = relationship(
        "ReportUpvoteRecord",
        order_by="ReportUpvoteRecord.created_at",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("idx_report_status", status),
        Index("idx_report_reporter", reporter_id),
        Index("idx_report_created_at", created_at),
    )

    def __repr__(self):
        return f"<ReportRecord({self.id}, status={self.status.value}, title={self.title[:30]})>"


class ReportPhotoRecord(Base):
    """Stored derivative of an uploaded photo."""
    __tablename__ = "report_photos"

    id = Column(Integer, primary_key=True, autoincrement=True)
    report_id = Column(String(36), ForeignKey("reports.id", ondelete="CASCADE"), nullable=False)
    position = Column(Integer, nullable=False, default=0)

    filename = Column(String(200), nullable=False)
    original_name = Column(String(255), nullable=False)
    path = Column(String(500), nullable=False)
    thumbnail_path = Column(String(500), nullable=False)
    size = Column(Integer, nullable=False)
    mime_type = Column(String(50), nullable=False)
    exif = Column(JSON)
    uploaded_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_photo_report", report_id, position),
    )


class ReportCommentRecord(Base):
    __tablename__ = "report_comments"

    id = Column(String(36), primary_key=True)
    report_id = Column(String(36), ForeignKey("reports.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(36), nullable=False)
    text = Column(String(1000), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_comment_report", report_id, created_at),
    )


class ReportUpvoteRecord(Base):
    """
    Upvote by one user on one report.

    Withdrawn upvotes keep their row with ``active`` false so a later
    re-upvote is recognised as a repeat.
    """
    __tablename__ = "report_upvotes"

    report_id = Column(String(36), ForeignKey("reports.id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(String(36), primary_key=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_upvote_active", report_id, active),
    )


class NotificationRecord(Base):
    """Per-recipient notification."""
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True)
    recipient_id = Column(String(36), nullable=False)
    type = Column(_enum(NotificationType), nullable=False)
    title = Column(String(200), nullable=False)
    message = Column(String(1000), nullable=False)

    related_report_id = Column(String(36))
    related_user_id = Column(String(36))
    related_badge_id = Column(String(36))

    priority = Column(_enum(NotificationPriority, 20), nullable=False, default=NotificationPriority.NORMAL)
    channels = Column(JSON, nullable=False, default=list)

    is_read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    expires_at = Column(DateTime)

    __table_args__ = (
        Index("idx_notification_recipient_created", recipient_id, created_at),
        Index("idx_notification_recipient_read", recipient_id, is_read),
        Index("idx_notification_expires_at", expires_at),
    )

    def __repr__(self):
        return f"<NotificationRecord({self.id}, type={self.type.value}, recipient={self.recipient_id})>"


class AuditRecord(Base):
    """Administrative activity log entry."""
    __tablename__ = "admin_activity"

    id = Column(String(36), primary_key=True)
    actor_id = Column(String(36), nullable=False)
    action = Column(String(50), nullable=False)
    target_type = Column(String(30), nullable=False)
    target_id = Column(String(36), nullable=False)
    details = Column(Text, default="")
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_audit_target", target_id, created_at),
        Index("idx_audit_actor", actor_id),
    )


class ReportLocation(GeoBase):
    """
    Spatial index entry for a report.

    Geography type so distances and radii are in metres.
    """
    __tablename__ = "report_locations"

    report_id = Column(String(36), primary_key=True)
    location = Column(Geography("POINT", srid=4326, spatial_index=False), nullable=False)
    updated_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        Index("idx_report_location", location, postgresql_using="gist"),
    )

    @classmethod
    def at(cls, report_id: str, longitude: float, latitude: float) -> "ReportLocation":
        return cls(
            report_id=report_id,
            location=from_shape(Point(longitude, latitude), srid=4326),
            updated_at=utcnow(),
        )

    def __repr__(self):
        return f"<ReportLocation({self.report_id})>"
