"""
Report status state machine

Statuses only move forward; nothing re-enters ``pending``. A pending report
may skip straight to any later status (administrative override).
"""

from typing import Dict, FrozenSet, List, Union

from mangrovewatch.core.exceptions import InvalidTransition, ValidationError
from mangrovewatch.reports.models import ReportStatus

# =============================================================================
# TRANSITION TABLE
# =============================================================================

ALLOWED_TRANSITIONS: Dict[ReportStatus, FrozenSet[ReportStatus]] = {
    ReportStatus.PENDING: frozenset({
        ReportStatus.UNDER_REVIEW,
        ReportStatus.VERIFIED,
        ReportStatus.FALSE_POSITIVE,
        ReportStatus.RESOLVED,
    }),
    ReportStatus.UNDER_REVIEW: frozenset({
        ReportStatus.VERIFIED,
        ReportStatus.FALSE_POSITIVE,
    }),
    ReportStatus.VERIFIED: frozenset({ReportStatus.RESOLVED}),
    ReportStatus.FALSE_POSITIVE: frozenset({ReportStatus.RESOLVED}),
    ReportStatus.RESOLVED: frozenset(),
}

TERMINAL_STATUSES: FrozenSet[ReportStatus] = frozenset(
    status for status, targets in ALLOWED_TRANSITIONS.items() if not targets
)


def parse_status(value: Union[str, ReportStatus]) -> ReportStatus:
    """Coerce a status name, rejecting unknown values."""
    try:
        return ReportStatus(value)
    except ValueError:
        allowed = ", ".join(status.value for status in ReportStatus)
        raise ValidationError(
            f"Unknown status '{value}'. Status must be one of: {allowed}",
            details={"status": str(value)},
        )


def allowed_targets(current: ReportStatus) -> List[ReportStatus]:
    """Statuses reachable from ``current`` in one step, in declaration order."""
    targets = ALLOWED_TRANSITIONS[current]
    return [status for status in ReportStatus if status in targets]


def can_transition(current: ReportStatus, target: ReportStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def ensure_transition(current: ReportStatus, target: ReportStatus) -> None:
    """
    Raises:
        InvalidTransition: naming both statuses when the move is not allowed
    """
    if not can_transition(current, target):
        raise InvalidTransition(current.value, target.value)


def is_terminal(status: ReportStatus) -> bool:
    return status in TERMINAL_STATUSES
