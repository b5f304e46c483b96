"""
MangroveWatch - Report Service
Collaborator-facing entry points and back-end wiring.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union

from mangrovewatch.core.config import Settings, settings as default_settings
from mangrovewatch.core.exceptions import RateLimitExceeded
from mangrovewatch.core.logging import setup_logging
from mangrovewatch.core.rate_limit import AllowAllRateLimiter, RateLimiter, SlidingWindowRateLimiter
from mangrovewatch.geo.index import GeoIndex, GridGeoIndex
from mangrovewatch.geo.site_check import OnSiteCheck, OnSiteVerifier
from mangrovewatch.media.models import UploadedFile
from mangrovewatch.media.processor import MediaProcessor
from mangrovewatch.media.storage import MediaStorage
from mangrovewatch.notifications.dispatcher import NotificationDispatcher
from mangrovewatch.reports.lifecycle import (
    Actor,
    CommentResult,
    GrantResult,
    ReportLifecycle,
    SubmissionResult,
    TransitionResult,
    UpvoteResult,
)
from mangrovewatch.reports.models import Report, ReportFields, ReportStatus, ReportSummary
from mangrovewatch.rewards.engine import RewardEngine
from mangrovewatch.storage.base import (
    AuditLog,
    BadgeRepository,
    NotificationRepository,
    ReportRepository,
    UserRepository,
)
from mangrovewatch.storage.memory import (
    InMemoryAuditLog,
    InMemoryBadgeRepository,
    InMemoryNotificationRepository,
    InMemoryReportRepository,
    InMemoryUserRepository,
)

logger = logging.getLogger(__name__)


class ReportService:
    """
    Entry points used by the HTTP layer.

    Callers pass an already authenticated Actor; every operation is rate
    limited per user before anything else happens.
    """

    def __init__(
        self,
        lifecycle: ReportLifecycle,
        media: MediaProcessor,
        verifier: Optional[OnSiteVerifier] = None,
        rate_limiter: Optional[RateLimiter] = None,
        config: Optional[Settings] = None
    ):
        self.config = config or default_settings
        self.lifecycle = lifecycle
        self.media = media
        self.verifier = verifier or OnSiteVerifier(config=self.config)
        self.rate_limiter = rate_limiter or AllowAllRateLimiter()

    def _check_rate(self, actor: Actor, operation: str) -> None:
        key = f"{operation}:{actor.user_id}"
        if not self.rate_limiter.allow(key):
            raise RateLimitExceeded(
                "Too many requests, please try again later",
                details={"operation": operation},
            )

    # =========================================================================
    # SUBMISSION
    # =========================================================================

    async def submit_report(
        self,
        reporter: Actor,
        fields: Union[ReportFields, Dict[str, Any]],
        raw_files: Sequence[UploadedFile] = ()
    ) -> SubmissionResult:
        """
        Validate, store media, and create a report.

        Fields are validated before any upload is stored. If storing the
        report fails, or the call is cancelled before it is stored, the
        stored media are removed before the error propagates. After that the
        report keeps its media and its reporter is credited even if the
        caller gives up waiting.

        Args:
            reporter: Submitting user
            fields: Raw or parsed report fields
            raw_files: Uploaded images (up to the configured maximum)

        Returns:
            SubmissionResult

        Raises:
            RateLimitExceeded, ValidationError, MediaError, NotFound
        """
        self._check_rate(reporter, "submit")
        parsed = ReportFields.parse(fields)

        photos = await self.media.process_batch(list(raw_files))
        try:
            report = await self.lifecycle.store(reporter, parsed, photos)
        except BaseException:
            logger.warning(f"Submission by {reporter.user_id} failed; discarding {len(photos)} photos")
            await self.media.discard(photos)
            raise

        # Stored and indexed: the photos now belong to the report
        return await asyncio.shield(self.lifecycle.settle(reporter, report))

    # =========================================================================
    # REVIEW
    # =========================================================================

    async def transition_report(
        self,
        report_id: str,
        actor: Actor,
        target_status: Union[str, ReportStatus],
        notes: Optional[str] = None
    ) -> TransitionResult:
        self._check_rate(actor, "review")
        return await self.lifecycle.transition(report_id, actor, target_status, notes)

    async def approve_report(self, report_id: str, actor: Actor, notes: Optional[str] = None) -> TransitionResult:
        self._check_rate(actor, "review")
        return await self.lifecycle.approve(report_id, actor, notes)

    async def reject_report(self, report_id: str, actor: Actor, notes: Optional[str] = None) -> TransitionResult:
        self._check_rate(actor, "review")
        return await self.lifecycle.reject(report_id, actor, notes)

    # =========================================================================
    # COMMUNITY
    # =========================================================================

    async def toggle_upvote(self, report_id: str, actor: Actor) -> UpvoteResult:
        self._check_rate(actor, "upvote")
        return await self.lifecycle.toggle_upvote(report_id, actor)

    async def add_comment(self, report_id: str, actor: Actor, text: str) -> CommentResult:
        self._check_rate(actor, "comment")
        return await self.lifecycle.add_comment(report_id, actor, text)

    async def grant_points(
        self,
        actor: Actor,
        user_id: str,
        points: int,
        reason: str = ""
    ) -> GrantResult:
        self._check_rate(actor, "grant")
        return await self.lifecycle.grant_points(actor, user_id, points, reason)

    async def get_report(self, report_id: str, viewer: Optional[Actor] = None) -> Report:
        return await self.lifecycle.get_report(report_id, viewer)

    # =========================================================================
    # GEO
    # =========================================================================

    async def nearby(
        self,
        longitude: float,
        latitude: float,
        radius_km: Optional[float] = None,
        limit: Optional[int] = None
    ) -> List[ReportSummary]:
        if radius_km is None:
            radius_km = self.config.nearby_default_radius_km
        return await self.lifecycle.nearby(longitude, latitude, radius_km, limit)

    def verify_on_site_location(self, longitude: float, latitude: float) -> OnSiteCheck:
        return self.verifier.verify(longitude, latitude)


# =============================================================================
# WIRING
# =============================================================================


@dataclass
class Backend:
    """Repositories and index a service runs on."""
    reports: ReportRepository
    users: UserRepository
    badges: BadgeRepository
    notifications: NotificationRepository
    audit_log: AuditLog
    geo_index: GeoIndex


def memory_backend(config: Optional[Settings] = None) -> Backend:
    return Backend(
        reports=InMemoryReportRepository(),
        users=InMemoryUserRepository(),
        badges=InMemoryBadgeRepository(),
        notifications=InMemoryNotificationRepository(),
        audit_log=InMemoryAuditLog(),
        geo_index=GridGeoIndex(config=config),
    )


def sql_backend(config: Settings) -> Backend:
    from mangrovewatch.database.connection import DatabaseConnection
    from mangrovewatch.database.geo_index import PostGISGeoIndex
    from mangrovewatch.database.repository import (
        SqlAuditLog,
        SqlBadgeRepository,
        SqlNotificationRepository,
        SqlReportRepository,
        SqlUserRepository,
    )

    db = DatabaseConnection(config.database_url, config=config)
    return Backend(
        reports=SqlReportRepository(db),
        users=SqlUserRepository(db),
        badges=SqlBadgeRepository(db),
        notifications=SqlNotificationRepository(db),
        audit_log=SqlAuditLog(db),
        geo_index=PostGISGeoIndex(db),
    )


def build_service(
    config: Optional[Settings] = None,
    backend: Optional[Backend] = None,
    storage: Optional[MediaStorage] = None,
    rate_limiter: Optional[RateLimiter] = None,
    configure_logging: bool = False
) -> ReportService:
    """
    Assemble a ReportService.

    Uses the SQL back end when ``database_url`` is set, in-memory otherwise.

    Args:
        config: Settings (global settings by default)
        backend: Pre-built repositories, overriding ``database_url``
        storage: Media storage (rooted at ``media_root`` by default)
        rate_limiter: Limiter (sliding window from settings by default)
        configure_logging: Call setup_logging() with the configured level

    Returns:
        ReportService
    """
    config = config or default_settings
    if configure_logging:
        setup_logging(config.log_level)

    if backend is None:
        backend = sql_backend(config) if config.database_url else memory_backend(config)

    storage = storage or MediaStorage(config=config)
    storage.ensure_directories()

    rewards = RewardEngine(backend.users, backend.badges)
    dispatcher = NotificationDispatcher(backend.notifications, config=config)
    lifecycle = ReportLifecycle(
        reports=backend.reports,
        users=backend.users,
        geo_index=backend.geo_index,
        rewards=rewards,
        notifications=dispatcher,
        audit_log=backend.audit_log,
        config=config,
    )

    logger.info(f"Report service ready ({type(backend.reports).__name__})")
    return ReportService(
        lifecycle=lifecycle,
        media=MediaProcessor(storage=storage, config=config),
        verifier=OnSiteVerifier(config=config),
        rate_limiter=rate_limiter or SlidingWindowRateLimiter(config=config),
        config=config,
    )
