"""Tests for NotificationRecord aggregate and its read/sent transitions."""

from datetime import UTC, datetime

import pytest
from protean import atomic_change
from protean.exceptions import ValidationError

from messaging.notification.notification import NotificationPage, NotificationRecord


def _make_record(**overrides):
    defaults = {
        "user_id": "user-001",
        "title": "Your order shipped",
        "body": "Order #1001 is on its way.",
        "notification_type": "order",
        "event_key": "order.shipped",
    }
    defaults.update(overrides)
    return NotificationRecord.create(**defaults)


class TestRecordCreation:
    def test_starts_unread(self):
        record = _make_record()
        assert record.read is False
        assert record.read_at is None

    def test_not_sent_initially(self):
        record = _make_record()
        assert record.sent_at is None
        assert record.push_delivered == 0

    def test_data_round_trips(self):
        record = _make_record(data={"order_id": "1001"})
        assert record.get_data() == {"order_id": "1001"}

    def test_defaults_to_info_type(self):
        record = NotificationRecord.create(user_id="user-001", title="Hi", body="Hello")
        assert record.notification_type == "info"

    def test_rejects_unknown_type(self):
        with pytest.raises(ValidationError):
            _make_record(notification_type="gossip")

    def test_requires_title(self):
        with pytest.raises(ValidationError):
            _make_record(title=None)

    def test_raises_recorded_event(self):
        record = _make_record()
        assert record._events[0].__class__.__name__ == "NotificationRecorded"
        assert record._events[0].event_key == "order.shipped"


class TestMarkRead:
    def test_sets_read_at(self):
        record = _make_record()
        record.mark_read()
        assert record.read is True
        assert record.read_at is not None

    def test_is_idempotent(self):
        record = _make_record()
        record.mark_read()
        first_read_at = record.read_at
        record._events.clear()

        record.mark_read()

        assert record.read_at == first_read_at
        assert record._events == []

    def test_raises_read_event(self):
        record = _make_record()
        record._events.clear()
        record.mark_read()
        assert record._events[0].__class__.__name__ == "NotificationRead"

    def test_read_without_timestamp_is_rejected(self):
        record = _make_record()
        with pytest.raises(ValidationError) as exc:
            with atomic_change(record):
                record.read = True
        assert "read_at" in exc.value.messages


class TestMarkSent:
    def test_records_counts(self):
        record = _make_record()
        sent_at = datetime(2024, 1, 1, tzinfo=UTC)
        record.mark_sent(sent_at=sent_at, delivered=2, failed=1)
        assert record.sent_at == sent_at
        assert record.push_delivered == 2
        assert record.push_failed == 1

    def test_raises_pushed_event(self):
        record = _make_record()
        record._events.clear()
        record.mark_sent(delivered=1)
        assert record._events[0].__class__.__name__ == "NotificationPushed"
        assert record._events[0].delivered == 1


class TestNotificationPage:
    def test_pages_round_up(self):
        assert NotificationPage(total=41, page=1, limit=20).pages == 3

    def test_has_more(self):
        assert NotificationPage(total=41, page=2, limit=20).has_more is True
        assert NotificationPage(total=41, page=3, limit=20).has_more is False

    def test_empty(self):
        page = NotificationPage()
        assert page.pages == 0
        assert page.has_more is False
