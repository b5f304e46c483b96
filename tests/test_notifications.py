"""
Tests for notifications
"""
from datetime import timedelta

import pytest

from mangrovewatch.core.clock import utcnow
from mangrovewatch.core.exceptions import NotFound
from mangrovewatch.notifications.dispatcher import NotificationDispatcher
from mangrovewatch.notifications.models import (
    Notification,
    NotificationChannel,
    NotificationPriority,
    NotificationType,
)
from mangrovewatch.storage.memory import InMemoryNotificationRepository


class CountingRepository(InMemoryNotificationRepository):
    """Records how many batch writes were made."""

    def __init__(self):
        super().__init__()
        self.batches = 0

    async def insert_many(self, notifications):
        self.batches += 1
        return await super().insert_many(notifications)


@pytest.fixture
def repository():
    return CountingRepository()


@pytest.fixture
def dispatcher(repository, settings):
    return NotificationDispatcher(repository, config=settings)


class TestNotificationModel:

    def test_defaults(self):
        notification = Notification(
            recipient_id="u1",
            type=NotificationType.BADGE_EARNED,
            title="  New Badge Earned!  ",
            message="Well done",
        )
        assert notification.title == "New Badge Earned!"
        assert notification.channels == [NotificationChannel.IN_APP]
        assert notification.is_read is False
        assert notification.expires_at - notification.created_at == timedelta(days=30)

    def test_long_text_truncated(self):
        notification = Notification(
            recipient_id="u1",
            type=NotificationType.SYSTEM_ANNOUNCEMENT,
            title="t" * 300,
            message="m" * 2000,
        )
        assert len(notification.title) == 200
        assert len(notification.message) == 1000

    def test_is_expired(self):
        now = utcnow()
        notification = Notification(
            recipient_id="u1",
            type=NotificationType.SYSTEM_ANNOUNCEMENT,
            title="t",
            message="m",
            expires_at=now,
        )
        assert notification.is_expired(now)
        assert not notification.is_expired(now - timedelta(seconds=1))


class TestDispatch:
    """Test suite for NotificationDispatcher."""

    @pytest.mark.asyncio
    async def test_one_record_per_distinct_recipient_in_one_write(self, dispatcher, repository):
        sent = await dispatcher.urgent_report(["a", "b", "a", "c"], "r1", "Oil spill")

        assert [n.recipient_id for n in sent] == ["a", "b", "c"]
        assert repository.batches == 1
        for notification in sent:
            assert notification.type == NotificationType.URGENT_REPORT
            assert notification.priority == NotificationPriority.URGENT
            assert NotificationChannel.SMS in notification.channels
            assert notification.related_report_id == "r1"

    @pytest.mark.asyncio
    async def test_no_recipients_no_write(self, dispatcher, repository):
        assert await dispatcher.urgent_report([], "r1", "Oil spill") == []
        assert repository.batches == 0

    @pytest.mark.asyncio
    async def test_status_changed_message(self, dispatcher):
        [notification] = await dispatcher.status_changed("u1", "r1", "Dumping", "false_positive")

        assert notification.type == NotificationType.REPORT_STATUS_CHANGED
        assert notification.title == "Report Status Updated"
        assert "marked as a false positive" in notification.message

    @pytest.mark.asyncio
    async def test_report_submitted(self, dispatcher):
        [notification] = await dispatcher.report_submitted("u1", "r1", "Dumping")

        assert notification.title == "Report Submitted Successfully"
        assert '"Dumping"' in notification.message
        assert notification.channels == [NotificationChannel.IN_APP, NotificationChannel.EMAIL]

    @pytest.mark.asyncio
    async def test_retention(self, repository, settings):
        settings.notification_retention_days = 7
        dispatcher = NotificationDispatcher(repository, config=settings)

        [notification] = await dispatcher.badge_earned("u1", "b1", "Validator")

        assert notification.expires_at - notification.created_at == timedelta(days=7)


class TestReadState:

    @pytest.mark.asyncio
    async def test_unread_count_and_mark_read(self, dispatcher):
        first = (await dispatcher.announcement(["u1"], "One", "First"))[0]
        await dispatcher.announcement(["u1", "u2"], "Two", "Second")

        assert await dispatcher.unread_count("u1") == 2

        read = await dispatcher.mark_read(first.id, "u1")
        assert read.is_read is True
        assert read.read_at is not None
        assert await dispatcher.unread_count("u1") == 1

        unread = await dispatcher.list_for("u1", unread_only=True)
        assert [n.title for n in unread] == ["Two"]

    @pytest.mark.asyncio
    async def test_mark_read_other_users_notification(self, dispatcher):
        [notification] = await dispatcher.announcement(["u1"], "Private", "For u1")

        with pytest.raises(NotFound):
            await dispatcher.mark_read(notification.id, "u2")

    @pytest.mark.asyncio
    async def test_mark_all_read(self, dispatcher):
        for i in range(3):
            await dispatcher.announcement(["u1"], f"N{i}", "body")

        assert await dispatcher.mark_all_read("u1") == 3
        assert await dispatcher.mark_all_read("u1") == 0
        assert await dispatcher.unread_count("u1") == 0

    @pytest.mark.asyncio
    async def test_list_newest_first_with_paging(self, dispatcher, repository):
        now = utcnow()
        await repository.insert_many([
            Notification(
                recipient_id="u1",
                type=NotificationType.SYSTEM_ANNOUNCEMENT,
                title=f"N{i}",
                message="body",
                created_at=now + timedelta(minutes=i),
            )
            for i in range(5)
        ])

        page = await dispatcher.list_for("u1", limit=2, offset=1)

        assert [n.title for n in page] == ["N3", "N2"]

    @pytest.mark.asyncio
    async def test_purge_expired(self, dispatcher, repository):
        now = utcnow()
        await repository.insert_many([
            Notification(
                recipient_id="u1",
                type=NotificationType.SYSTEM_ANNOUNCEMENT,
                title="old",
                message="body",
                created_at=now - timedelta(days=40),
            ),
            Notification(
                recipient_id="u1",
                type=NotificationType.SYSTEM_ANNOUNCEMENT,
                title="fresh",
                message="body",
                created_at=now,
            ),
        ])

        assert await dispatcher.purge_expired(now) == 1
        assert [n.title for n in await dispatcher.list_for("u1")] == ["fresh"]
