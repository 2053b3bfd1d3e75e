"""Domain events for the ChannelPolicy aggregate."""

from protean.fields import Boolean, DateTime, Identifier, String, Text

from messaging.domain import messaging


@messaging.event(part_of="ChannelPolicy")
class ChannelPolicyConfigured:
    """An administrator created or replaced the channel allow-list for an event."""

    __version__ = 1

    policy_id: Identifier(required=True)
    event_key: String(required=True)
    allowed_channels: Text(required=True)  # JSON list of Channel values
    is_active: Boolean(required=True)
    configured_at: DateTime(required=True)


@messaging.event(part_of="ChannelPolicy")
class ChannelPolicyActivated:
    """A previously deactivated policy applies again."""

    __version__ = 1

    policy_id: Identifier(required=True)
    event_key: String(required=True)
    activated_at: DateTime(required=True)


@messaging.event(part_of="ChannelPolicy")
class ChannelPolicyDeactivated:
    """A policy was switched off; the event falls back to the default channels."""

    __version__ = 1

    policy_id: Identifier(required=True)
    event_key: String(required=True)
    deactivated_at: DateTime(required=True)
