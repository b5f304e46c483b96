"""
MangroveWatch - Storage Module
Repository contracts. Implementations live in
``mangrovewatch.storage.memory`` and ``mangrovewatch.database.repository``.
"""

from mangrovewatch.storage.base import (
    COUNTERS,
    UpvoteToggle,
    AuditEntry,
    ReportRepository,
    UserRepository,
    BadgeRepository,
    NotificationRepository,
    AuditLog,
)

__all__ = [
    "COUNTERS",
    "UpvoteToggle",
    "AuditEntry",
    "ReportRepository",
    "UserRepository",
    "BadgeRepository",
    "NotificationRepository",
    "AuditLog",
]
