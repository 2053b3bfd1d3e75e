"""Domain events for the DeviceToken aggregate."""

from protean.fields import DateTime, Identifier, String

from messaging.domain import messaging


@messaging.event(part_of="DeviceToken")
class DeviceTokenRegistered:
    """A push token was registered (or re-registered) for a user."""

    __version__ = 1

    device_token_id: Identifier(required=True)
    user_id: Identifier(required=True)
    platform: String()
    registered_at: DateTime(required=True)


@messaging.event(part_of="DeviceToken")
class DeviceTokenRefreshed:
    """A known token was seen again."""

    __version__ = 1

    device_token_id: Identifier(required=True)
    user_id: Identifier(required=True)
    last_active_at: DateTime(required=True)
