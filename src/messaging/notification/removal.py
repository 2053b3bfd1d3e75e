"""Inbox removal — deleting one record, clearing a user's inbox and retention cleanup."""

import structlog
from protean import handle
from protean.fields import Identifier, Integer
from protean.utils.globals import current_domain

from messaging.domain import messaging
from messaging.notification.notification import NotificationRecord

logger = structlog.get_logger(__name__)


@messaging.command(part_of="NotificationRecord")
class DeleteNotification:
    notification_id: Identifier(required=True)
    user_id: Identifier()


@messaging.command(part_of="NotificationRecord")
class DeleteUserNotifications:
    """Remove a user's records, or only those older than ``older_than_days``."""

    user_id: Identifier(required=True)
    older_than_days: Integer(min_value=1)


@messaging.command(part_of="NotificationRecord")
class CleanupOldNotifications:
    """Remove records older than the retention window."""

    older_than_days: Integer(required=True, min_value=0)


@messaging.command_handler(part_of=NotificationRecord)
class RemovalHandler:
    @handle(DeleteNotification)
    def delete(self, command: DeleteNotification):
        repo = current_domain.repository_for(NotificationRecord)
        record = repo.get_for_user(command.notification_id, command.user_id)
        repo._dao.delete(record)

        logger.info("Notification deleted", notification_id=str(command.notification_id))

    @handle(DeleteUserNotifications)
    def delete_for_user(self, command: DeleteUserNotifications):
        repo = current_domain.repository_for(NotificationRecord)
        removed = repo.delete_for_user(command.user_id, command.older_than_days)

        logger.info(
            "User notifications removed",
            user_id=str(command.user_id),
            older_than_days=command.older_than_days,
            count=removed,
        )
        return removed

    @handle(CleanupOldNotifications)
    def cleanup(self, command: CleanupOldNotifications):
        repo = current_domain.repository_for(NotificationRecord)
        removed = repo.delete_older_than(command.older_than_days)

        logger.info("Old notifications removed", older_than_days=command.older_than_days, count=removed)
        return removed
