"""
MangroveWatch - Reports Module
Report records, status machine, lifecycle operations, and service entry points.
"""

from mangrovewatch.reports.models import (
    IncidentType,
    Severity,
    Priority,
    ReportStatus,
    Comment,
    Upvote,
    Report,
    ReportSummary,
    ReportFields,
    priority_for,
)
from mangrovewatch.reports.state_machine import (
    ALLOWED_TRANSITIONS,
    allowed_targets,
    can_transition,
    ensure_transition,
    is_terminal,
    parse_status,
)
from mangrovewatch.reports.lifecycle import (
    Actor,
    ReportLifecycle,
    SubmissionResult,
    TransitionResult,
    CommentResult,
    UpvoteResult,
    GrantResult,
)
from mangrovewatch.reports.service import ReportService, Backend, build_service, memory_backend

__all__ = [
    # Records
    "IncidentType",
    "Severity",
    "Priority",
    "ReportStatus",
    "Comment",
    "Upvote",
    "Report",
    "ReportSummary",
    "ReportFields",
    "priority_for",
    # State machine
    "ALLOWED_TRANSITIONS",
    "allowed_targets",
    "can_transition",
    "ensure_transition",
    "is_terminal",
    "parse_status",
    # Lifecycle
    "Actor",
    "ReportLifecycle",
    "SubmissionResult",
    "TransitionResult",
    "CommentResult",
    "UpvoteResult",
    "GrantResult",
    # Service
    "ReportService",
    "Backend",
    "build_service",
    "memory_backend",
]
