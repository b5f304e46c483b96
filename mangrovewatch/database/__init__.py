"""
Database module for MangroveWatch
SQL persistence, with PostGIS for proximity queries
"""

from .connection import DatabaseConnection, get_db, init_db
from .models import (
    Base,
    GeoBase,
    UserRecord,
    BadgeRecord,
    UserBadgeRecord,
    ReportRecord,
    ReportPhotoRecord,
    ReportCommentRecord,
    ReportUpvoteRecord,
    NotificationRecord,
    AuditRecord,
    ReportLocation,
)
from .repository import (
    SqlReportRepository,
    SqlUserRepository,
    SqlBadgeRepository,
    SqlNotificationRepository,
    SqlAuditLog,
)
from .geo_index import PostGISGeoIndex

__all__ = [
    # Connection
    "DatabaseConnection",
    "get_db",
    "init_db",
    # Models
    "Base",
    "GeoBase",
    "UserRecord",
    "BadgeRecord",
    "UserBadgeRecord",
    "ReportRecord",
    "ReportPhotoRecord",
    "ReportCommentRecord",
    "ReportUpvoteRecord",
    "NotificationRecord",
    "AuditRecord",
    "ReportLocation",
    # Repositories
    "SqlReportRepository",
    "SqlUserRepository",
    "SqlBadgeRepository",
    "SqlNotificationRepository",
    "SqlAuditLog",
    "PostGISGeoIndex",
]
