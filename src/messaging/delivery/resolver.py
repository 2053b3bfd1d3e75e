"""Preference resolution — which channels may carry a notification to a user.

A channel survives when all three gates pass, in this order:

1. the event's channel policy allows it (admin hard limit),
2. the user's preference entry for (type, channel) is enabled and its
   frequency is not ``never`` (a missing entry passes),
3. the current time is outside the entry's quiet hours, evaluated in the
   entry's time zone or, if it has none, the caller's.

An empty result means "suppress" and is not an error.
"""

from datetime import UTC, datetime
from enum import Enum

from protean.utils.globals import current_domain

from messaging.policy.channel_policy import ChannelPolicy
from messaging.preference.preference import PreferenceEntry
from messaging.shared.enums import Channel, Frequency, parse_channels
from messaging.shared.quiet_hours import validate_timezone


class Reason(Enum):
    ALLOWED = "allowed"
    NO_PREFERENCE = "no_preference"
    POLICY_DISALLOWED = "policy_disallowed"
    DISABLED = "disabled"
    FREQUENCY_NEVER = "frequency_never"
    QUIET_HOURS = "quiet_hours"

    @property
    def permits(self) -> bool:
        return self in (Reason.ALLOWED, Reason.NO_PREFERENCE)


class PreferenceResolver:
    """Combines channel policies with user preferences.

    Repositories are looked up in the active domain on every call, so a
    resolve issued after a preference upsert always sees the upsert.
    """

    def __init__(self, default_timezone: str = "UTC", policies=None, preferences=None) -> None:
        self.default_timezone = default_timezone
        self._policies = policies
        self._preferences = preferences

    @property
    def policies(self):
        return self._policies or current_domain.repository_for(ChannelPolicy)

    @property
    def preferences(self):
        return self._preferences or current_domain.repository_for(PreferenceEntry)

    def resolve(
        self,
        user_id,
        event_key: str,
        notification_type: str,
        now: datetime | None = None,
        timezone: str | None = None,
        channels=None,
    ) -> set[Channel]:
        """Channels permitted for ``user_id``, optionally restricted to ``channels``."""
        decisions = self.explain(user_id, event_key, notification_type, now, timezone, channels)
        return {channel for channel, reason in decisions.items() if reason.permits}

    def explain(
        self,
        user_id,
        event_key: str | None,
        notification_type: str,
        now: datetime | None = None,
        timezone: str | None = None,
        channels=None,
    ) -> dict[Channel, Reason]:
        """Per-channel verdict with the gate that decided it.

        Without ``event_key`` the policy gate is skipped.
        """
        now = now or datetime.now(UTC)
        timezone = validate_timezone(timezone, "timezone") if timezone else self.default_timezone
        notification_type = getattr(notification_type, "value", notification_type)

        allowed = set(Channel) if event_key is None else self.policies.get_allowed_channels(event_key)
        candidates = set(Channel) if channels is None else parse_channels(channels)

        decisions = {}
        for channel in sorted(candidates, key=lambda c: c.value):
            if channel not in allowed:
                decisions[channel] = Reason.POLICY_DISALLOWED
                continue
            entry = self.preferences.find_entry(user_id, notification_type, channel)
            decisions[channel] = self._judge(entry, now, timezone)
        return decisions

    def can_send(self, user_id, notification_type, channel, event_key=None, now=None, timezone=None) -> bool:
        decisions = self.explain(user_id, event_key, notification_type, now, timezone, channels=[channel])
        return all(reason.permits for reason in decisions.values())

    @staticmethod
    def _judge(entry: PreferenceEntry | None, now: datetime, timezone: str) -> Reason:
        if entry is None:
            return Reason.NO_PREFERENCE
        if not entry.enabled:
            return Reason.DISABLED
        if entry.frequency == Frequency.NEVER.value:
            return Reason.FREQUENCY_NEVER
        if entry.is_quiet_at(now, timezone):
            return Reason.QUIET_HOURS
        return Reason.ALLOWED


def explain_reasons(decisions: dict[Channel, Reason]) -> dict[str, str]:
    """Flatten resolver decisions for logging and JSON responses."""
    return {channel.value: reason.value for channel, reason in decisions.items()}
