"""Channel policy commands + handlers — configure, toggle and seed policies."""

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Boolean, String, Text
from protean.utils.globals import current_domain

from messaging.domain import messaging
from messaging.policy.channel_policy import ChannelPolicy
from messaging.policy.defaults import DEFAULT_EVENT_POLICIES
from messaging.shared.json_fields import load_json

logger = structlog.get_logger(__name__)


@messaging.command(part_of="ChannelPolicy")
class ConfigureChannelPolicy:
    """Create or replace the channel allow-list of an event key."""

    event_key: String(required=True, max_length=100)
    display_name: String(required=True, max_length=200)
    allowed_channels: Text(required=True)  # JSON list of Channel values
    description: String(max_length=500)
    is_active: Boolean(default=True)
    extra_data: Text()  # JSON map


@messaging.command(part_of="ChannelPolicy")
class ActivateChannelPolicy:
    event_key: String(required=True, max_length=100)


@messaging.command(part_of="ChannelPolicy")
class DeactivateChannelPolicy:
    event_key: String(required=True, max_length=100)


@messaging.command(part_of="ChannelPolicy")
class InitializeDefaultPolicies:
    """Seed a policy for every known event key that has none yet."""

    event_keys: Text()  # Optional JSON list restricting which defaults to seed


@messaging.command_handler(part_of=ChannelPolicy)
class ChannelPolicyHandler:
    @handle(ConfigureChannelPolicy)
    def configure(self, command: ConfigureChannelPolicy):
        repo = current_domain.repository_for(ChannelPolicy)
        channels = load_json(command.allowed_channels, "allowed_channels", list)
        metadata = load_json(command.extra_data, "extra_data", dict) if command.extra_data else None

        policy = repo.find_by_event_key(command.event_key)
        if policy is None:
            policy = ChannelPolicy.create(
                event_key=command.event_key,
                display_name=command.display_name,
                allowed_channels=channels,
                description=command.description,
                is_active=command.is_active,
                metadata=metadata,
            )
        else:
            policy.reconfigure(
                display_name=command.display_name,
                allowed_channels=channels,
                description=command.description,
                is_active=command.is_active,
                metadata=metadata,
            )
        repo.add(policy)

        logger.info(
            "Channel policy configured",
            event_key=policy.event_key,
            allowed_channels=channels,
            is_active=policy.is_active,
        )
        return str(policy.id)

    @handle(ActivateChannelPolicy)
    def activate(self, command: ActivateChannelPolicy):
        repo = current_domain.repository_for(ChannelPolicy)
        policy = self._require(repo, command.event_key)
        policy.activate()
        repo.add(policy)

    @handle(DeactivateChannelPolicy)
    def deactivate(self, command: DeactivateChannelPolicy):
        repo = current_domain.repository_for(ChannelPolicy)
        policy = self._require(repo, command.event_key)
        policy.deactivate()
        repo.add(policy)

    @handle(InitializeDefaultPolicies)
    def initialize_defaults(self, command: InitializeDefaultPolicies):
        repo = current_domain.repository_for(ChannelPolicy)
        wanted = list(DEFAULT_EVENT_POLICIES)
        if command.event_keys:
            wanted = load_json(command.event_keys, "event_keys", list)

        created = 0
        for event_key in wanted:
            defaults = DEFAULT_EVENT_POLICIES.get(event_key)
            if defaults is None or repo.find_by_event_key(event_key) is not None:
                continue

            repo.add(
                ChannelPolicy.create(
                    event_key=event_key,
                    display_name=defaults["display_name"],
                    description=defaults["description"],
                    allowed_channels=defaults["channels"],
                )
            )
            created += 1

        logger.info("Default channel policies initialized", created=created)
        return created

    @staticmethod
    def _require(repo, event_key) -> ChannelPolicy:
        policy = repo.find_by_event_key(event_key)
        if policy is None:
            raise ObjectNotFoundError(f"No channel policy for event `{event_key}`")
        return policy
