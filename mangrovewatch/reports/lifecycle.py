"""
MangroveWatch - Report Lifecycle
Creation, review transitions, comments, and upvotes with their reward and
notification side effects.

The primary mutation of each operation is committed first. Rewards, badges,
notifications, and audit entries follow in causal order on a best-effort
basis: a failure is logged and returned as a warning, never rolled back.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar, Union

from mangrovewatch.core.config import Settings, settings as default_settings
from mangrovewatch.core.constants import (
    COMMENT_MAX_LENGTH,
    COMMENT_POINTS,
    DEFAULT_SUBMISSION_POINTS,
    SUBMISSION_POINTS,
    UPVOTE_POINTS,
    VALIDATION_NOTES_MAX_LENGTH,
    VALIDATION_POINTS_OTHER,
    VALIDATION_POINTS_VERIFIED,
    VERIFIED_REPORTER_BONUS,
)
from mangrovewatch.core.exceptions import Forbidden, ValidationError
from mangrovewatch.core.geo_utils import validate_coordinates
from mangrovewatch.geo.index import GeoIndex, check_radius
from mangrovewatch.media.models import Photo
from mangrovewatch.notifications.dispatcher import NotificationDispatcher
from mangrovewatch.reports.models import (
    Comment,
    Report,
    ReportFields,
    ReportStatus,
    ReportSummary,
    Severity,
)
from mangrovewatch.reports.state_machine import ensure_transition, parse_status
from mangrovewatch.rewards.badges import Badge, CriterionKind
from mangrovewatch.rewards.engine import RewardEngine
from mangrovewatch.storage.base import AuditEntry, AuditLog, ReportRepository, UserRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Actor:
    """Authenticated caller, as resolved by the external auth layer."""
    user_id: str
    role: str
    name: Optional[str] = None


# =============================================================================
# RESULTS
# =============================================================================


@dataclass
class SubmissionResult:
    report: Report
    points_awarded: int = 0
    badges_earned: List[Badge] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "report": self.report.to_dict(),
            "points_awarded": self.points_awarded,
            "badges_earned": [{"id": b.id, "name": b.name} for b in self.badges_earned],
            "warnings": self.warnings,
        }


@dataclass
class TransitionResult:
    report: Report
    previous_status: ReportStatus
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "report": self.report.to_dict(),
            "previous_status": self.previous_status.value,
            "warnings": self.warnings,
        }


@dataclass
class CommentResult:
    comment: Comment
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"comment": self.comment.to_dict(), "warnings": self.warnings}


@dataclass
class UpvoteResult:
    upvoted: bool
    count: int
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"upvoted": self.upvoted, "count": self.count, "warnings": self.warnings}


@dataclass
class GrantResult:
    total: int
    badges_earned: List[Badge] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "badges_earned": [{"id": b.id, "name": b.name} for b in self.badges_earned],
            "warnings": self.warnings,
        }


# =============================================================================
# LIFECYCLE
# =============================================================================


class ReportLifecycle:
    """Drives reports through their status machine."""

    def __init__(
        self,
        reports: ReportRepository,
        users: UserRepository,
        geo_index: GeoIndex,
        rewards: RewardEngine,
        notifications: NotificationDispatcher,
        audit_log: AuditLog,
        config: Optional[Settings] = None
    ):
        self.config = config or default_settings
        self.reports = reports
        self.users = users
        self.geo_index = geo_index
        self.rewards = rewards
        self.notifications = notifications
        self.audit_log = audit_log

    # -------------------------------------------------------------------------
    # Side-effect plumbing
    # -------------------------------------------------------------------------

    async def _attempt(
        self,
        warnings: List[str],
        description: str,
        action: Callable[[], Awaitable[T]]
    ) -> Optional[T]:
        """Run one best-effort side effect; record a warning if it fails."""
        try:
            return await action()
        except Exception as e:
            logger.exception(f"{description} failed")
            warnings.append(f"{description} failed: {e}")
            return None

    async def _credit(self, user_id: str, points: int, reason: str, warnings: List[str]) -> List[Badge]:
        """Award points, then grant any points badges the new total reaches."""
        total = await self._attempt(
            warnings, f"Awarding {points} points to {user_id}",
            lambda: self.rewards.award(user_id, points, reason),
        )
        if total is None:
            return []
        return await self._grant(user_id, CriterionKind.POINTS_TOTAL, total, warnings)

    async def _bump(
        self,
        user_id: str,
        counter: str,
        kind: CriterionKind,
        warnings: List[str]
    ) -> List[Badge]:
        """Increment a ledger counter, then grant badges for the new value."""
        value = await self._attempt(
            warnings, f"Updating {counter} for {user_id}",
            lambda: self.users.increment_counter(user_id, counter),
        )
        if value is None:
            return []
        return await self._grant(user_id, kind, value, warnings)

    async def _grant(self, user_id: str, kind: CriterionKind, value: int, warnings: List[str]) -> List[Badge]:
        earned = await self._attempt(
            warnings, f"Evaluating {kind.value} badges for {user_id}",
            lambda: self.rewards.evaluate_and_grant(user_id, kind, value),
        )
        for badge in earned or []:
            await self._attempt(
                warnings, f"Notifying {user_id} of badge '{badge.name}'",
                lambda badge=badge: self.notifications.badge_earned(user_id, badge.id, badge.name),
            )
        return earned or []

    @staticmethod
    def _require_role(actor: Actor, roles: List[str], action: str) -> None:
        if actor.role not in roles:
            raise Forbidden(
                f"Role '{actor.role}' may not {action}",
                details={"role": actor.role, "allowed_roles": list(roles)},
            )

    # -------------------------------------------------------------------------
    # Create
    # -------------------------------------------------------------------------

    async def create(
        self,
        reporter: Actor,
        fields: Union[ReportFields, Dict[str, Any]],
        photos: Optional[List[Photo]] = None
    ) -> SubmissionResult:
        """
        Create a pending report and credit its reporter.

        Once the report is stored and indexed it is committed: the reward and
        notification steps then run to completion even if the caller is
        cancelled.

        Args:
            reporter: Submitting user
            fields: Report fields (validated here if given raw)
            photos: Photo records already produced by the media pipeline

        Returns:
            SubmissionResult with the stored report and any warnings

        Raises:
            ValidationError: invalid fields
            NotFound: the reporter has no ledger
        """
        report = await self.store(reporter, fields, photos)
        return await asyncio.shield(self.settle(reporter, report))

    async def store(
        self,
        reporter: Actor,
        fields: Union[ReportFields, Dict[str, Any]],
        photos: Optional[List[Photo]] = None
    ) -> Report:
        """
        Persist and index a new report without any side effects.

        If indexing fails or the call is cancelled, the report and any index
        entry are removed before the error propagates.
        """
        fields = ReportFields.parse(fields)
        await self.users.get(reporter.user_id)

        report = Report(
            title=fields.title,
            incident_type=fields.incident_type,
            description=fields.description,
            severity=fields.severity,
            location=fields.location,
            reporter_id=reporter.user_id,
            photos=list(photos or []),
        )

        try:
            report = await self.reports.add(report)
            await self.geo_index.upsert(report.id, report.location.longitude, report.location.latitude)
        except BaseException:
            logger.error(f"Storing report {report.id} failed; removing it")
            await self.geo_index.remove(report.id)
            await self.reports.delete(report.id)
            raise

        logger.info(
            f"Report {report.id} created by {reporter.user_id} "
            f"({report.incident_type.value}, {report.severity.value}, {len(report.photos)} photos)"
        )
        return report

    async def settle(self, reporter: Actor, report: Report) -> SubmissionResult:
        """Credit the reporter and send the submission notifications."""
        result = SubmissionResult(report=report)
        warnings = result.warnings
        points = SUBMISSION_POINTS.get(report.severity.value, DEFAULT_SUBMISSION_POINTS)

        total = await self._attempt(
            warnings, "Awarding submission points",
            lambda: self.rewards.award(reporter.user_id, points, "Report submission"),
        )
        if total is not None:
            result.points_awarded = points

        result.badges_earned += await self._bump(
            reporter.user_id, "reports_submitted", CriterionKind.REPORT_COUNT, warnings
        )
        if total is not None:
            result.badges_earned += await self._grant(
                reporter.user_id, CriterionKind.POINTS_TOTAL, total, warnings
            )

        await self._attempt(
            warnings, "Notifying reporter of submission",
            lambda: self.notifications.report_submitted(reporter.user_id, report.id, report.title),
        )

        if report.severity == Severity.CRITICAL:
            await self._attempt(
                warnings, "Dispatching urgent alert",
                lambda: self._alert_reviewers(report),
            )

        return result

    async def _alert_reviewers(self, report: Report) -> int:
        recipients = await self.users.find_alert_recipients(self.config.reviewer_roles)
        if not recipients:
            logger.warning(f"Critical report {report.id}: no reviewers opted into alerts")
            return 0
        sent = await self.notifications.urgent_report(recipients, report.id, report.title)
        return len(sent)

    # -------------------------------------------------------------------------
    # Review transitions
    # -------------------------------------------------------------------------

    async def transition(
        self,
        report_id: str,
        actor: Actor,
        target_status: Union[str, ReportStatus],
        notes: Optional[str] = None
    ) -> TransitionResult:
        """
        Move a report to ``target_status`` as a reviewer.

        Raises:
            Forbidden: actor lacks a reviewer or admin role
            ValidationError / InvalidTransition: bad status or notes
            NotFound: unknown report
        """
        self._require_role(actor, self.config.validator_roles, "review reports")
        return await self._review(report_id, actor, parse_status(target_status), notes)

    async def approve(self, report_id: str, actor: Actor, notes: Optional[str] = None) -> TransitionResult:
        """Administrative shortcut to ``verified``, with an audit entry."""
        self._require_role(actor, self.config.admin_roles, "approve reports")
        return await self._review(
            report_id, actor, ReportStatus.VERIFIED, notes,
            heading="Report Approved", audit_action="report_approved",
        )

    async def reject(self, report_id: str, actor: Actor, notes: Optional[str] = None) -> TransitionResult:
        """Administrative shortcut to ``false_positive``, with an audit entry."""
        self._require_role(actor, self.config.admin_roles, "reject reports")
        return await self._review(
            report_id, actor, ReportStatus.FALSE_POSITIVE, notes,
            heading="Report Rejected", audit_action="report_rejected",
        )

    async def _review(
        self,
        report_id: str,
        actor: Actor,
        target: ReportStatus,
        notes: Optional[str],
        heading: str = "Report Status Updated",
        audit_action: Optional[str] = None
    ) -> TransitionResult:
        if notes is not None:
            notes = notes.strip() or None
            if notes and len(notes) > VALIDATION_NOTES_MAX_LENGTH:
                raise ValidationError(
                    f"Validation notes must be less than {VALIDATION_NOTES_MAX_LENGTH} characters"
                )

        current = await self.reports.get(report_id)
        ensure_transition(current.status, target)

        report = await self.reports.update_status(
            report_id,
            expected=current.status,
            status=target,
            validator_id=actor.user_id,
            notes=notes,
        )
        logger.info(
            f"Report {report_id} moved {current.status.value} -> {target.value} by {actor.user_id}"
        )

        result = TransitionResult(report=report, previous_status=current.status)
        warnings = result.warnings

        if audit_action:
            await self._attempt(
                warnings, "Recording audit entry",
                lambda: self.audit_log.append(AuditEntry(
                    actor_id=actor.user_id,
                    action=audit_action,
                    target_type="report",
                    target_id=report_id,
                    details=f"{audit_action.replace('_', ' ').capitalize()}: {report.title}",
                )),
            )

        validator_points = (
            VALIDATION_POINTS_VERIFIED if target == ReportStatus.VERIFIED else VALIDATION_POINTS_OTHER
        )
        await self._credit(actor.user_id, validator_points, "Report validation", warnings)
        await self._bump(actor.user_id, "reports_validated", CriterionKind.VALIDATION_COUNT, warnings)

        if target == ReportStatus.VERIFIED:
            await self._credit(report.reporter_id, VERIFIED_REPORTER_BONUS, "Report verified", warnings)

        await self._attempt(
            warnings, "Notifying reporter of status change",
            lambda: self.notifications.status_changed(
                report.reporter_id, report.id, report.title, target.value,
                heading=heading, validator_id=actor.user_id,
            ),
        )
        return result

    # -------------------------------------------------------------------------
    # Community interactions
    # -------------------------------------------------------------------------

    async def add_comment(self, report_id: str, actor: Actor, text: str) -> CommentResult:
        """
        Append a comment and credit the commenter.

        Raises:
            ValidationError: empty or overlong text
            NotFound: unknown report
        """
        text = (text or "").strip()
        if not text:
            raise ValidationError("Comment text is required")
        if len(text) > COMMENT_MAX_LENGTH:
            raise ValidationError(f"Comment must be less than {COMMENT_MAX_LENGTH} characters")

        report = await self.reports.get(report_id)
        comment = await self.reports.add_comment(report_id, Comment(user_id=actor.user_id, text=text))
        logger.info(f"Comment {comment.id} added to report {report_id} by {actor.user_id}")

        result = CommentResult(comment=comment)
        await self._credit(actor.user_id, COMMENT_POINTS, "Comment added", result.warnings)

        if actor.user_id != report.reporter_id:
            await self._attempt(
                result.warnings, "Notifying reporter of comment",
                lambda: self.notifications.comment_added(
                    report.reporter_id, report.id, report.title, actor.user_id, actor.name,
                ),
            )
        return result

    async def toggle_upvote(self, report_id: str, actor: Actor) -> UpvoteResult:
        """
        Add or remove the actor's upvote.

        Only the first upvote a user ever gives a report earns the point and
        notifies the reporter; removing an upvote keeps the point. Upvoting
        one's own report counts but earns nothing.
        """
        report = await self.reports.get(report_id)
        toggle = await self.reports.toggle_upvote(report_id, actor.user_id)
        logger.debug(
            f"Upvote by {actor.user_id} on {report_id}: upvoted={toggle.upvoted}, count={toggle.count}"
        )

        result = UpvoteResult(upvoted=toggle.upvoted, count=toggle.count)
        rewarded = toggle.upvoted and toggle.first_upvote and actor.user_id != report.reporter_id
        if rewarded:
            await self._credit(actor.user_id, UPVOTE_POINTS, "Upvote", result.warnings)
            await self._attempt(
                result.warnings, "Notifying reporter of upvote",
                lambda: self.notifications.upvote_received(
                    report.reporter_id, report.id, report.title, actor.user_id,
                ),
            )
        return result

    async def grant_points(
        self,
        actor: Actor,
        user_id: str,
        points: int,
        reason: str = ""
    ) -> GrantResult:
        """
        Administrative points grant.

        The award itself is the primary mutation; badges, the notification,
        and the audit entry are best-effort.

        Raises:
            Forbidden: actor is not an admin
            ValidationError: negative or non-integer points
            NotFound: unknown user
        """
        self._require_role(actor, self.config.admin_roles, "award points")
        total = await self.rewards.award(user_id, points, reason or "Admin awarded points")

        result = GrantResult(total=total)
        warnings = result.warnings
        result.badges_earned = await self._grant(user_id, CriterionKind.POINTS_TOTAL, total, warnings)

        await self._attempt(
            warnings, "Notifying user of points",
            lambda: self.notifications.points_awarded(user_id, points, reason),
        )
        await self._attempt(
            warnings, "Recording audit entry",
            lambda: self.audit_log.append(AuditEntry(
                actor_id=actor.user_id,
                action="user_updated",
                target_type="user",
                target_id=user_id,
                details=f"Awarded {points} points" + (f": {reason}" if reason else ""),
            )),
        )
        return result

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_report(self, report_id: str, viewer: Optional[Actor] = None) -> Report:
        """Fetch a report, counting the view unless the reporter is looking."""
        report = await self.reports.get(report_id)
        if viewer is None or viewer.user_id != report.reporter_id:
            report.view_count = await self.reports.increment_views(report_id)
        return report

    async def nearby(
        self,
        longitude: float,
        latitude: float,
        radius_km: float,
        limit: Optional[int] = None
    ) -> List[ReportSummary]:
        """
        Reports within ``radius_km``, nearest first.

        Raises:
            ValidationError: coordinates out of range or negative radius
        """
        point = validate_coordinates(longitude, latitude)
        radius_m = check_radius(radius_km) * 1000
        limit = limit if limit is not None else self.config.nearby_max_results

        matches = await self.geo_index.nearby_with_distance(
            point.longitude, point.latitude, radius_m, limit
        )
        reports = {r.id: r for r in await self.reports.get_many([item_id for item_id, _ in matches])}

        return [
            ReportSummary.from_report(reports[item_id], distance_m / 1000)
            for item_id, distance_m in matches
            if item_id in reports
        ]
