"""Read-state commands + handlers — mark one or all inbox notifications read."""

import json

import structlog
from protean import handle
from protean.fields import Identifier, Text
from protean.utils.globals import current_domain

from messaging.domain import messaging
from messaging.notification.notification import NotificationRecord

logger = structlog.get_logger(__name__)


@messaging.command(part_of="NotificationRecord")
class MarkNotificationRead:
    notification_id: Identifier(required=True)
    user_id: Identifier()  # When given, the record must belong to this user


@messaging.command(part_of="NotificationRecord")
class MarkAllNotificationsRead:
    """Mark every unread record of a user read, or only the listed ones."""

    user_id: Identifier(required=True)
    notification_ids: Text()  # Optional JSON list of record ids


@messaging.command_handler(part_of=NotificationRecord)
class ReadStateHandler:
    @handle(MarkNotificationRead)
    def mark_read(self, command: MarkNotificationRead):
        repo = current_domain.repository_for(NotificationRecord)
        record = repo.get_for_user(command.notification_id, command.user_id)
        record.mark_read()
        repo.add(record)
        return str(record.id)

    @handle(MarkAllNotificationsRead)
    def mark_all_read(self, command: MarkAllNotificationsRead):
        repo = current_domain.repository_for(NotificationRecord)
        user_id = str(command.user_id)

        if command.notification_ids:
            records = []
            for notification_id in json.loads(command.notification_ids):
                record = repo.get_for_user(notification_id, user_id)
                if not record.read:
                    records.append(record)
        else:
            records = repo.unread_for_user(user_id)

        for record in records:
            record.mark_read()
            repo.add(record)

        logger.info("Notifications marked read", user_id=user_id, count=len(records))
        return len(records)
