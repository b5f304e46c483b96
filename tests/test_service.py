"""
Tests for the report service entry points
"""
import asyncio
import logging

import pytest

from mangrovewatch.core.constants import DISPLAY_DIR, TEMP_DIR, THUMBNAIL_DIR
from mangrovewatch.core.exceptions import (
    NotFound,
    RateLimitExceeded,
    TranscodeFailed,
    UnsupportedMediaType,
    ValidationError,
)
from mangrovewatch.core.rate_limit import SlidingWindowRateLimiter
from mangrovewatch.geo.index import GridGeoIndex
from mangrovewatch.media.models import UploadedFile
from mangrovewatch.reports.lifecycle import Actor
from mangrovewatch.reports.models import ReportStatus
from mangrovewatch.reports.service import build_service
from mangrovewatch.rewards.ledger import UserLedger

from conftest import encode_image


def _stored(storage):
    return storage.list_files(DISPLAY_DIR) + storage.list_files(THUMBNAIL_DIR) + storage.list_files(TEMP_DIR)


class TestSubmitReport:
    """End-to-end submission through the service."""

    @pytest.mark.asyncio
    async def test_submit_with_photos(self, service, storage, reporter, report_fields, jpeg_upload, png_upload):
        result = await service.submit_report(reporter, report_fields, [jpeg_upload, png_upload])

        report = result.report
        assert report.status == ReportStatus.PENDING
        assert len(report.photos) == 2
        assert all(storage.exists(photo.path) for photo in report.photos)

        stored = await service.get_report(report.id, reporter)
        assert [p.original_name for p in stored.photos] == ["creek.jpg", "dumping.png"]

    @pytest.mark.asyncio
    async def test_submit_without_photos(self, service, reporter, report_fields):
        result = await service.submit_report(reporter, report_fields)
        assert result.report.photos == []

    @pytest.mark.asyncio
    async def test_invalid_fields_store_nothing(self, service, storage, reporter, report_fields, jpeg_upload):
        report_fields["longitude"] = 200

        with pytest.raises(ValidationError):
            await service.submit_report(reporter, report_fields, [jpeg_upload])

        assert _stored(storage) == []

    @pytest.mark.asyncio
    async def test_rejected_batch_creates_no_report(self, service, backend, storage, reporter, report_fields, jpeg_upload):
        tiny = UploadedFile(filename="tiny.png", content_type="image/png", data=encode_image(64, 64, ".png"))

        with pytest.raises(TranscodeFailed):
            await service.submit_report(reporter, report_fields, [jpeg_upload, tiny])

        assert _stored(storage) == []
        assert (await backend.users.get(reporter.user_id)).reports_submitted == 0

    @pytest.mark.asyncio
    async def test_wrong_mime_type(self, service, storage, reporter, report_fields):
        pdf = UploadedFile(filename="permit.pdf", content_type="application/pdf", data=b"%PDF-1.7")

        with pytest.raises(UnsupportedMediaType):
            await service.submit_report(reporter, report_fields, [pdf])

        assert _stored(storage) == []

    @pytest.mark.asyncio
    async def test_media_discarded_when_create_fails(self, service, storage, report_fields, jpeg_upload):
        stranger = Actor(user_id="not-registered", role="citizen")

        with pytest.raises(NotFound):
            await service.submit_report(stranger, report_fields, [jpeg_upload])

        assert _stored(storage) == []

    @pytest.mark.asyncio
    async def test_media_discarded_when_submission_cancelled(self, service, backend, storage, reporter, report_fields, jpeg_upload, monkeypatch):
        indexing = asyncio.Event()
        stored_ids = []

        async def stalled_upsert(report_id, *args):
            stored_ids.append(report_id)
            indexing.set()
            await asyncio.Event().wait()

        monkeypatch.setattr(service.lifecycle.geo_index, "upsert", stalled_upsert)

        task = asyncio.ensure_future(service.submit_report(reporter, report_fields, [jpeg_upload]))
        await indexing.wait()
        assert storage.list_files(DISPLAY_DIR) != []

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert _stored(storage) == []
        with pytest.raises(NotFound):
            await backend.reports.get(stored_ids[0])

    @pytest.mark.asyncio
    async def test_timeout_after_storing_keeps_report_and_media(self, service, backend, storage, reporter, report_fields, jpeg_upload, monkeypatch):
        stored = []
        crediting = asyncio.Event()
        original_store = service.lifecycle.store
        original_award = service.lifecycle.rewards.award

        async def tracking_store(*args, **kwargs):
            report = await original_store(*args, **kwargs)
            stored.append(report)
            return report

        async def slow_award(user_id, points, reason=""):
            crediting.set()
            await asyncio.sleep(0.3)
            return await original_award(user_id, points, reason)

        monkeypatch.setattr(service.lifecycle, "store", tracking_store)
        monkeypatch.setattr(service.lifecycle.rewards, "award", slow_award)

        submission = asyncio.ensure_future(service.submit_report(reporter, report_fields, [jpeg_upload]))
        await crediting.wait()
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(submission, 0.05)

        await asyncio.sleep(0.6)

        report = await backend.reports.get(stored[0].id)
        assert report.status == ReportStatus.PENDING
        assert len(report.photos) == 1
        assert all(storage.exists(photo.path) for photo in report.photos)
        assert all(storage.exists(photo.thumbnail_path) for photo in report.photos)

        ledger = await backend.users.get(reporter.user_id)
        assert ledger.reports_submitted == 1
        assert ledger.points > 0


class TestServiceOperations:

    @pytest.mark.asyncio
    async def test_review_and_community_flow(self, service, backend, reporter, citizen, reviewer, admin, report_fields):
        report = (await service.submit_report(reporter, report_fields)).report

        await service.add_comment(report.id, citizen, "Confirmed, trees are down.")
        upvote = await service.toggle_upvote(report.id, citizen)
        review = await service.transition_report(report.id, reviewer, "under_review")
        approval = await service.approve_report(report.id, admin)

        assert upvote.upvoted is True
        assert review.report.status == ReportStatus.UNDER_REVIEW
        assert approval.report.status == ReportStatus.VERIFIED
        # 2 for the comment, 1 for the upvote
        assert (await backend.users.get(citizen.user_id)).points == 3

    @pytest.mark.asyncio
    async def test_reject_report(self, service, reporter, admin, report_fields):
        report = (await service.submit_report(reporter, report_fields)).report
        result = await service.reject_report(report.id, admin, notes="Duplicate")
        assert result.report.status == ReportStatus.FALSE_POSITIVE

    @pytest.mark.asyncio
    async def test_grant_points(self, service, citizen, admin):
        result = await service.grant_points(admin, citizen.user_id, 40, "Workshop volunteer")
        assert result.total == 40

    @pytest.mark.asyncio
    async def test_nearby_uses_default_radius(self, service, reporter, report_fields, settings):
        await service.submit_report(reporter, report_fields)
        far = dict(report_fields, longitude=report_fields["longitude"] + 0.2)
        await service.submit_report(reporter, far)

        # Default radius is 10 km; the second report is ~21 km east
        summaries = await service.nearby(report_fields["longitude"], report_fields["latitude"])

        assert settings.nearby_default_radius_km == 10.0
        assert len(summaries) == 1

    def test_verify_on_site_location(self, settings, backend, storage):
        service = build_service(config=settings, backend=backend, storage=storage)

        assert service.verify_on_site_location(72.8777, 19.0760).is_valid is True
        assert service.verify_on_site_location(77.2090, 28.6139).is_valid is False


class TestRateLimiting:

    @pytest.mark.asyncio
    async def test_limit_per_user_and_operation(self, settings, backend, storage, reporter, citizen, report_fields):
        limiter = SlidingWindowRateLimiter(max_requests=2, window_seconds=60)
        service = build_service(config=settings, backend=backend, storage=storage, rate_limiter=limiter)
        await backend.users.add(UserLedger(user_id=reporter.user_id))
        await backend.users.add(UserLedger(user_id=citizen.user_id))

        await service.submit_report(reporter, report_fields)
        await service.submit_report(reporter, report_fields)

        with pytest.raises(RateLimitExceeded):
            await service.submit_report(reporter, report_fields)

        # Other users and other operations keep their own budget
        report = (await service.submit_report(citizen, report_fields)).report
        await service.add_comment(report.id, reporter, "Still allowed")


class TestBuildService:

    def test_memory_backend_by_default(self, settings, storage):
        service = build_service(config=settings, storage=storage)

        assert isinstance(service.lifecycle.geo_index, GridGeoIndex)
        assert type(service.lifecycle.reports).__name__ == "InMemoryReportRepository"

    def test_creates_media_directories(self, settings):
        service = build_service(config=settings)

        for directory in (TEMP_DIR, DISPLAY_DIR, THUMBNAIL_DIR):
            assert (service.media.storage.root / directory).is_dir()

    def test_configure_logging_sets_level(self, settings, storage):
        settings.log_level = "DEBUG"

        build_service(config=settings, storage=storage, configure_logging=True)

        assert logging.getLogger("mangrovewatch").level == logging.DEBUG
