"""ChannelPolicy aggregate — administrator-controlled channel allow-list per event.

A policy states which channels a business event (``order.shipped``,
``payment.failed``...) may use. User preferences can only narrow this set,
never widen it. Events without an active policy use ``DEFAULT_CHANNELS``.
"""

import json
from datetime import UTC, datetime

from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, String, Text

from messaging.domain import messaging
from messaging.policy.defaults import DEFAULT_CHANNELS
from messaging.policy.events import (
    ChannelPolicyActivated,
    ChannelPolicyConfigured,
    ChannelPolicyDeactivated,
)
from messaging.shared.enums import Channel

# Sentinel for distinguishing "not provided" from None in partial updates
_UNSET = object()


def _normalize_channels(channels) -> list[str]:
    """Validate a channel collection and return its sorted, de-duplicated values."""
    if not channels:
        raise ValidationError({"allowed_channels": ["At least one channel must be allowed"]})

    values = set()
    for channel in channels:
        try:
            values.add(Channel(channel).value)
        except ValueError:
            raise ValidationError({"allowed_channels": [f"Unknown channel: {channel}"]}) from None
    return sorted(values)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@messaging.aggregate
class ChannelPolicy:
    """Channel allow-list for one event key."""

    event_key: String(required=True, max_length=100, unique=True)
    display_name: String(required=True, max_length=200)
    description: String(max_length=500)

    allowed_channels: Text(required=True)  # JSON list of Channel values
    is_active: Boolean(default=True)

    extra_data: Text()  # JSON map of admin-defined attributes

    created_at: DateTime()
    updated_at: DateTime()

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        event_key,
        display_name,
        allowed_channels,
        description=None,
        is_active=True,
        metadata=None,
    ):
        channels = _normalize_channels(allowed_channels)
        now = datetime.now(UTC)

        policy = cls(
            event_key=event_key,
            display_name=display_name,
            description=description,
            allowed_channels=json.dumps(channels),
            is_active=is_active,
            extra_data=json.dumps(metadata or {}),
            created_at=now,
            updated_at=now,
        )
        policy._raise_configured(now)
        return policy

    # -------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------
    def reconfigure(
        self,
        display_name=None,
        allowed_channels=None,
        description=_UNSET,
        is_active=None,
        metadata=_UNSET,
    ):
        """Replace the supplied attributes.

        Omitted attributes keep their value. ``description=None`` clears the
        description and ``metadata=None`` empties the metadata.
        """
        if allowed_channels is not None:
            self.allowed_channels = json.dumps(_normalize_channels(allowed_channels))
        if display_name is not None:
            self.display_name = display_name
        if description is not _UNSET:
            self.description = description
        if is_active is not None:
            self.is_active = is_active
        if metadata is not _UNSET:
            self.extra_data = json.dumps(metadata or {})

        now = datetime.now(UTC)
        self.updated_at = now
        self._raise_configured(now)

    def activate(self):
        if self.is_active:
            return

        now = datetime.now(UTC)
        self.is_active = True
        self.updated_at = now
        self.raise_(
            ChannelPolicyActivated(
                policy_id=str(self.id),
                event_key=self.event_key,
                activated_at=now,
            )
        )

    def deactivate(self):
        if not self.is_active:
            return

        now = datetime.now(UTC)
        self.is_active = False
        self.updated_at = now
        self.raise_(
            ChannelPolicyDeactivated(
                policy_id=str(self.id),
                event_key=self.event_key,
                deactivated_at=now,
            )
        )

    def _raise_configured(self, now):
        self.raise_(
            ChannelPolicyConfigured(
                policy_id=str(self.id),
                event_key=self.event_key,
                allowed_channels=self.allowed_channels,
                is_active=self.is_active,
                configured_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Query helpers
    # -------------------------------------------------------------------
    def get_allowed_channels(self) -> set[Channel]:
        values = json.loads(self.allowed_channels) if self.allowed_channels else []
        return {Channel(value) for value in values}

    def get_metadata(self) -> dict:
        return json.loads(self.extra_data) if self.extra_data else {}


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------
@messaging.repository(part_of=ChannelPolicy)
class ChannelPolicyRepository:
    """Lookups keyed by event key. Absence is never an error here."""

    def find_by_event_key(self, event_key: str) -> ChannelPolicy | None:
        policies = self._dao.query.filter(event_key=event_key).all().items
        return policies[0] if policies else None

    def get_allowed_channels(self, event_key: str) -> set[Channel]:
        """Channels an event may use: its active policy, else the platform defaults."""
        policy = self.find_by_event_key(event_key)
        if policy is None or not policy.is_active:
            return set(DEFAULT_CHANNELS)
        return policy.get_allowed_channels()

    def list_policies(self, active_only: bool = False) -> list[ChannelPolicy]:
        query = self._dao.query
        if active_only:
            query = query.filter(is_active=True)
        return query.order_by("event_key").limit(1000).all().items
