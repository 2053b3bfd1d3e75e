"""Domain events for the NotificationRecord aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from messaging.domain import messaging


@messaging.event(part_of="NotificationRecord")
class NotificationRecorded:
    """An in-app notification was stored for a user."""

    __version__ = 1

    notification_id: Identifier(required=True)
    user_id: Identifier(required=True)
    notification_type: String(required=True)
    event_key: String()
    created_at: DateTime(required=True)


@messaging.event(part_of="NotificationRecord")
class NotificationRead:
    """The user opened (or bulk-acknowledged) a notification."""

    __version__ = 1

    notification_id: Identifier(required=True)
    user_id: Identifier(required=True)
    read_at: DateTime(required=True)


@messaging.event(part_of="NotificationRecord")
class NotificationPushed:
    """The notification was fanned out to the user's devices."""

    __version__ = 1

    notification_id: Identifier(required=True)
    user_id: Identifier(required=True)
    delivered: Integer(required=True)
    failed: Integer(required=True)
    sent_at: DateTime(required=True)
