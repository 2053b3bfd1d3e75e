"""NotificationRecord aggregate — the in-app inbox entry of one notification.

A record is written once, when the ``in_app`` channel is resolved for a
user, and afterwards only changes through ``mark_read`` and ``mark_sent``.

Lifecycle:
    created (unread) → read
    created → sent (push fan-out succeeded for at least one device)
"""

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from protean import atomic_change, invariant
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import Boolean, DateTime, Identifier, Integer, String, Text

from messaging.domain import messaging
from messaging.notification.events import NotificationPushed, NotificationRead, NotificationRecorded
from messaging.shared.enums import NotificationType

# Upper bound for bulk reads and retention sweeps
_SWEEP_SIZE = 10_000


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@messaging.aggregate
class NotificationRecord:
    """A notification as shown in the user's in-app inbox."""

    user_id: Identifier(required=True)

    # Content
    title: String(required=True, max_length=255)
    body: Text(required=True)
    notification_type: String(choices=NotificationType, default=NotificationType.INFO.value)
    action_url: String(max_length=2048)
    icon_url: String(max_length=2048)
    image_url: String(max_length=2048)
    data: Text()  # JSON map

    # Source event correlation
    event_key: String(max_length=100)

    # Read state
    read: Boolean(default=False)
    read_at: DateTime()

    # Push delivery
    sent_at: DateTime()
    push_delivered: Integer(default=0)
    push_failed: Integer(default=0)

    created_at: DateTime()
    updated_at: DateTime()

    @invariant.post
    def read_records_have_read_at(self):
        if self.read and self.read_at is None:
            raise ValidationError({"read_at": ["A read notification must carry its read time"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        user_id,
        title,
        body,
        notification_type=NotificationType.INFO.value,
        action_url=None,
        icon_url=None,
        image_url=None,
        data=None,
        event_key=None,
    ):
        now = datetime.now(UTC)

        record = cls(
            user_id=user_id,
            title=title,
            body=body,
            notification_type=notification_type,
            action_url=action_url,
            icon_url=icon_url,
            image_url=image_url,
            data=json.dumps(data or {}),
            event_key=event_key,
            created_at=now,
            updated_at=now,
        )

        record.raise_(
            NotificationRecorded(
                notification_id=str(record.id),
                user_id=str(user_id),
                notification_type=record.notification_type,
                event_key=event_key,
                created_at=now,
            )
        )
        return record

    # -------------------------------------------------------------------
    # State transitions
    # -------------------------------------------------------------------
    def mark_read(self):
        """Mark as read. Already-read records keep their original ``read_at``."""
        if self.read:
            return

        now = datetime.now(UTC)
        with atomic_change(self):
            self.read = True
            self.read_at = now
            self.updated_at = now

        self.raise_(
            NotificationRead(
                notification_id=str(self.id),
                user_id=str(self.user_id),
                read_at=now,
            )
        )

    def mark_sent(self, sent_at=None, delivered=0, failed=0):
        """Record the outcome of a push fan-out."""
        sent_at = sent_at or datetime.now(UTC)
        self.sent_at = sent_at
        self.push_delivered = delivered
        self.push_failed = failed
        self.updated_at = datetime.now(UTC)

        self.raise_(
            NotificationPushed(
                notification_id=str(self.id),
                user_id=str(self.user_id),
                delivered=delivered,
                failed=failed,
                sent_at=sent_at,
            )
        )

    # -------------------------------------------------------------------
    # Query helpers
    # -------------------------------------------------------------------
    def get_data(self) -> dict:
        return json.loads(self.data) if self.data else {}


@dataclass
class NotificationPage:
    """One page of notification records, newest first."""

    items: list[NotificationRecord] = field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 20

    @property
    def pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.limit else 0

    @property
    def has_more(self) -> bool:
        return self.page < self.pages


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------
@messaging.repository(part_of=NotificationRecord)
class NotificationRecordRepository:
    def get_for_user(self, notification_id, user_id=None) -> NotificationRecord:
        """Load a record, treating one owned by another user as missing."""
        record = self.get(str(notification_id))
        if user_id is not None and str(record.user_id) != str(user_id):
            raise ObjectNotFoundError(f"`NotificationRecord` object with identifier {notification_id} does not exist.")
        return record

    def page_for_user(
        self,
        user_id,
        page: int = 1,
        limit: int = 20,
        read: bool | None = None,
        notification_type: str | None = None,
        event_key: str | None = None,
    ) -> NotificationPage:
        return self.page_all(
            page=page,
            limit=limit,
            user_id=user_id,
            read=read,
            notification_type=notification_type,
            event_key=event_key,
        )

    def page_all(
        self,
        page: int = 1,
        limit: int = 20,
        user_id=None,
        read: bool | None = None,
        notification_type: str | None = None,
        event_key: str | None = None,
    ) -> NotificationPage:
        """Page through every user's records, optionally narrowed by owner and filters."""
        page = max(page, 1)
        criteria = {}
        if user_id is not None:
            criteria["user_id"] = str(user_id)
        if read is not None:
            criteria["read"] = read
        if notification_type:
            criteria["notification_type"] = notification_type
        if event_key:
            criteria["event_key"] = event_key

        query = self._dao.query.filter(**criteria) if criteria else self._dao.query
        results = query.order_by("-created_at").offset((page - 1) * limit).limit(limit).all()
        return NotificationPage(items=results.items, total=results.total, page=page, limit=limit)

    def recent_for_user(self, user_id, limit: int = 5) -> list[NotificationRecord]:
        return self._dao.query.filter(user_id=str(user_id)).order_by("-created_at").limit(limit).all().items

    def unread_count(self, user_id) -> int:
        return self._dao.query.filter(user_id=str(user_id), read=False).limit(1).all().total

    def unread_for_user(self, user_id, limit: int = _SWEEP_SIZE) -> list[NotificationRecord]:
        return (
            self._dao.query.filter(user_id=str(user_id), read=False)
            .order_by("created_at")
            .limit(limit)
            .all()
            .items
        )

    def stats(self, user_id=None) -> dict:
        base = self._dao.query
        if user_id is not None:
            base = base.filter(user_id=str(user_id))

        total = base.limit(1).all().total
        unread = base.filter(read=False).limit(1).all().total
        by_type = {}
        for notification_type in NotificationType:
            count = base.filter(notification_type=notification_type.value).limit(1).all().total
            if count:
                by_type[notification_type.value] = count

        return {"total": total, "unread": unread, "read": total - unread, "by_type": by_type}

    def delete_older_than(self, days: int, limit: int = _SWEEP_SIZE) -> int:
        """Delete up to ``limit`` records created more than ``days`` days ago."""
        cutoff = datetime.now(UTC) - timedelta(days=days)
        expired = self._dao.query.filter(created_at__lt=cutoff).limit(limit).all().items
        for record in expired:
            self._dao.delete(record)
        return len(expired)

    def delete_for_user(self, user_id, older_than_days: int | None = None, limit: int = _SWEEP_SIZE) -> int:
        """Delete up to ``limit`` of a user's records, all of them or only those past ``older_than_days``."""
        query = self._dao.query.filter(user_id=str(user_id))
        if older_than_days is not None:
            query = query.filter(created_at__lt=datetime.now(UTC) - timedelta(days=older_than_days))

        doomed = query.limit(limit).all().items
        for record in doomed:
            self._dao.delete(record)
        return len(doomed)
