"""Domain events for the PreferenceEntry aggregate."""

from protean.fields import Boolean, DateTime, Identifier, String

from messaging.domain import messaging


@messaging.event(part_of="PreferenceEntry")
class PreferenceCreated:
    """A user's preference for one (type, channel) pair was stored for the first time."""

    __version__ = 1

    preference_id: Identifier(required=True)
    user_id: Identifier(required=True)
    notification_type: String(required=True)
    channel: String(required=True)
    enabled: Boolean(required=True)
    frequency: String(required=True)
    created_at: DateTime(required=True)


@messaging.event(part_of="PreferenceEntry")
class PreferenceUpdated:
    """An existing preference entry changed."""

    __version__ = 1

    preference_id: Identifier(required=True)
    user_id: Identifier(required=True)
    notification_type: String(required=True)
    channel: String(required=True)
    enabled: Boolean(required=True)
    frequency: String(required=True)
    quiet_hours_start: String()
    quiet_hours_end: String()
    quiet_hours_timezone: String()
    updated_at: DateTime(required=True)
