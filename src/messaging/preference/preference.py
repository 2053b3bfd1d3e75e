"""PreferenceEntry aggregate — one user's choice for one (notification type, channel) pair.

Entries are sparse: a missing entry means the channel is enabled. Each entry
may carry its own quiet-hours window evaluated in its own time zone.
"""

import json
from datetime import UTC, datetime

from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Identifier, String, Text

from messaging.domain import messaging
from messaging.preference.events import PreferenceCreated, PreferenceUpdated
from messaging.shared.enums import Channel, Frequency, NotificationType
from messaging.shared.quiet_hours import in_quiet_hours, parse_hhmm, validate_timezone

# Sentinel for distinguishing "not provided" from None in partial updates
_UNSET = object()


def check_preference_values(
    notification_type=None,
    channel=None,
    frequency=None,
    quiet_hours_start=None,
    quiet_hours_end=None,
    quiet_hours_timezone=None,
):
    """Validate preference attributes without touching any aggregate.

    Raises ``ValidationError`` on the first bad value.
    """
    for field, enum_cls, value in (
        ("notification_type", NotificationType, notification_type),
        ("channel", Channel, channel),
        ("frequency", Frequency, frequency),
    ):
        if value is None:
            continue
        try:
            enum_cls(value)
        except ValueError:
            raise ValidationError({field: [f"Unknown {field}: {value}"]}) from None

    if quiet_hours_start:
        parse_hhmm(quiet_hours_start, "quiet_hours_start")
    if quiet_hours_end:
        parse_hhmm(quiet_hours_end, "quiet_hours_end")
    if quiet_hours_timezone:
        validate_timezone(quiet_hours_timezone)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@messaging.aggregate
class PreferenceEntry:
    """A user's delivery preference for one notification type on one channel."""

    user_id: Identifier(required=True)
    notification_type: String(choices=NotificationType, required=True)
    channel: String(choices=Channel, required=True)

    enabled: Boolean(default=True)
    frequency: String(choices=Frequency, default=Frequency.IMMEDIATE.value)

    # Quiet hours (DND)
    quiet_hours_start: String(max_length=5)  # "22:00" format
    quiet_hours_end: String(max_length=5)  # "06:00" format
    quiet_hours_timezone: String(max_length=64)  # IANA name, e.g. "Europe/Berlin"

    settings: Text()  # JSON map of channel-specific options

    created_at: DateTime()
    updated_at: DateTime()

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        user_id,
        notification_type,
        channel,
        enabled=True,
        frequency=Frequency.IMMEDIATE.value,
        quiet_hours_start=None,
        quiet_hours_end=None,
        quiet_hours_timezone=None,
        settings=None,
    ):
        check_preference_values(
            notification_type=notification_type,
            channel=channel,
            frequency=frequency,
            quiet_hours_start=quiet_hours_start,
            quiet_hours_end=quiet_hours_end,
            quiet_hours_timezone=quiet_hours_timezone,
        )
        now = datetime.now(UTC)

        entry = cls(
            user_id=user_id,
            notification_type=notification_type,
            channel=channel,
            enabled=enabled,
            frequency=frequency,
            quiet_hours_start=quiet_hours_start,
            quiet_hours_end=quiet_hours_end,
            quiet_hours_timezone=quiet_hours_timezone,
            settings=json.dumps(settings or {}),
            created_at=now,
            updated_at=now,
        )

        entry.raise_(
            PreferenceCreated(
                preference_id=str(entry.id),
                user_id=str(user_id),
                notification_type=entry.notification_type,
                channel=entry.channel,
                enabled=entry.enabled,
                frequency=entry.frequency,
                created_at=now,
            )
        )
        return entry

    # -------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------
    def update(
        self,
        enabled=_UNSET,
        frequency=_UNSET,
        quiet_hours_start=_UNSET,
        quiet_hours_end=_UNSET,
        quiet_hours_timezone=_UNSET,
        settings=_UNSET,
    ):
        """Apply a partial update. Omitted arguments keep their value, ``None`` clears."""
        check_preference_values(
            frequency=None if frequency is _UNSET else frequency,
            quiet_hours_start=None if quiet_hours_start is _UNSET else quiet_hours_start,
            quiet_hours_end=None if quiet_hours_end is _UNSET else quiet_hours_end,
            quiet_hours_timezone=None if quiet_hours_timezone is _UNSET else quiet_hours_timezone,
        )

        if enabled is not _UNSET and enabled is not None:
            self.enabled = enabled
        if frequency is not _UNSET and frequency is not None:
            self.frequency = frequency
        if quiet_hours_start is not _UNSET:
            self.quiet_hours_start = quiet_hours_start
        if quiet_hours_end is not _UNSET:
            self.quiet_hours_end = quiet_hours_end
        if quiet_hours_timezone is not _UNSET:
            self.quiet_hours_timezone = quiet_hours_timezone
        if settings is not _UNSET:
            self.settings = json.dumps(settings or {})

        self._touch()

    def set_quiet_hours(self, start, end, timezone=None):
        """Set the do-not-disturb window. Both start and end required."""
        if not start or not end:
            raise ValidationError({"quiet_hours": ["Both start and end times are required"]})
        self.update(quiet_hours_start=start, quiet_hours_end=end, quiet_hours_timezone=timezone)

    def clear_quiet_hours(self):
        self.update(quiet_hours_start=None, quiet_hours_end=None, quiet_hours_timezone=None)

    def _touch(self):
        now = datetime.now(UTC)
        self.updated_at = now

        self.raise_(
            PreferenceUpdated(
                preference_id=str(self.id),
                user_id=str(self.user_id),
                notification_type=self.notification_type,
                channel=self.channel,
                enabled=self.enabled,
                frequency=self.frequency,
                quiet_hours_start=self.quiet_hours_start,
                quiet_hours_end=self.quiet_hours_end,
                quiet_hours_timezone=self.quiet_hours_timezone,
                updated_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Query helpers
    # -------------------------------------------------------------------
    def get_settings(self) -> dict:
        return json.loads(self.settings) if self.settings else {}

    def is_quiet_at(self, now: datetime, default_timezone: str = "UTC") -> bool:
        """Whether ``now`` falls in this entry's quiet hours.

        The entry's own time zone wins over ``default_timezone``.
        """
        return in_quiet_hours(
            self.quiet_hours_start,
            self.quiet_hours_end,
            now,
            self.quiet_hours_timezone or default_timezone,
        )


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------
@messaging.repository(part_of=PreferenceEntry)
class PreferenceRepository:
    """Lookups keyed by (user, notification type, channel)."""

    def find_entry(self, user_id, notification_type, channel) -> PreferenceEntry | None:
        entries = (
            self._dao.query.filter(
                user_id=str(user_id),
                notification_type=_value(notification_type),
                channel=_value(channel),
            )
            .all()
            .items
        )
        return entries[0] if entries else None

    def entries_for(self, user_id, notification_type=None, channel=None) -> list[PreferenceEntry]:
        criteria = {"user_id": str(user_id)}
        if notification_type is not None:
            criteria["notification_type"] = _value(notification_type)
        if channel is not None:
            criteria["channel"] = _value(channel)
        return (
            self._dao.query.filter(**criteria)
            .order_by(["notification_type", "channel"])
            .limit(len(NotificationType) * len(Channel))
            .all()
            .items
        )

    def enabled_channels_for(self, user_id, notification_type) -> set[Channel]:
        """Channels with a stored, enabled entry. Channels without an entry are not listed."""
        return {
            Channel(entry.channel)
            for entry in self.entries_for(user_id, notification_type=notification_type)
            if entry.enabled
        }

    def preferences_grouped(self, user_id) -> dict[str, dict[str, PreferenceEntry]]:
        grouped: dict[str, dict[str, PreferenceEntry]] = {}
        for entry in self.entries_for(user_id):
            grouped.setdefault(entry.notification_type, {})[entry.channel] = entry
        return grouped

    def quiet_hours_for(self, user_id, channel) -> dict | None:
        """The first quiet-hours window stored for a user's channel, if any."""
        for entry in self.entries_for(user_id, channel=channel):
            if entry.quiet_hours_start and entry.quiet_hours_end:
                return {
                    "start": entry.quiet_hours_start,
                    "end": entry.quiet_hours_end,
                    "timezone": entry.quiet_hours_timezone,
                }
        return None


def _value(member):
    return member.value if hasattr(member, "value") else member
