"""Application tests for channel policy commands and repository lookups."""

import json

import pytest
from protean import current_domain
from protean.exceptions import ObjectNotFoundError, ValidationError

from messaging.policy.channel_policy import ChannelPolicy
from messaging.policy.defaults import DEFAULT_CHANNELS, DEFAULT_EVENT_POLICIES
from messaging.policy.management import (
    ActivateChannelPolicy,
    ConfigureChannelPolicy,
    DeactivateChannelPolicy,
    InitializeDefaultPolicies,
)
from messaging.shared.enums import Channel


def _configure(event_key="order.shipped", channels=("push", "in_app"), **overrides):
    values = {
        "event_key": event_key,
        "display_name": "Order shipped",
        "allowed_channels": json.dumps(list(channels)),
    }
    values.update(overrides)
    return current_domain.process(ConfigureChannelPolicy(**values), asynchronous=False)


def _repo():
    return current_domain.repository_for(ChannelPolicy)


# ---------------------------------------------------------------
# Configure
# ---------------------------------------------------------------
class TestConfigureChannelPolicy:
    def test_creates_policy(self):
        policy_id = _configure()
        policy = _repo().get(policy_id)
        assert policy.event_key == "order.shipped"
        assert policy.get_allowed_channels() == {Channel.PUSH, Channel.IN_APP}

    def test_second_configure_replaces_first(self):
        first_id = _configure()
        second_id = _configure(channels=["email"], display_name="Shipped")

        assert first_id == second_id
        policy = _repo().find_by_event_key("order.shipped")
        assert policy.get_allowed_channels() == {Channel.EMAIL}
        assert policy.display_name == "Shipped"

    def test_stores_metadata(self):
        _configure(extra_data=json.dumps({"team": "logistics"}))
        assert _repo().find_by_event_key("order.shipped").get_metadata() == {"team": "logistics"}

    def test_reconfigure_replaces_description_and_metadata(self):
        _configure(description="Shipping updates", extra_data=json.dumps({"team": "logistics"}))
        _configure(channels=["email"])

        policy = _repo().find_by_event_key("order.shipped")
        assert policy.description is None
        assert policy.get_metadata() == {}

    def test_malformed_channel_json_is_rejected(self):
        with pytest.raises(ValidationError) as exc:
            _configure(allowed_channels="[push,")

        assert "allowed_channels" in exc.value.messages
        assert _repo().find_by_event_key("order.shipped") is None

    def test_channel_json_must_be_a_list(self):
        with pytest.raises(ValidationError) as exc:
            _configure(allowed_channels=json.dumps({"push": True}))

        assert "allowed_channels" in exc.value.messages

    def test_empty_allow_list_is_rejected_and_not_stored(self):
        with pytest.raises(ValidationError):
            _configure(channels=[])
        assert _repo().find_by_event_key("order.shipped") is None

    def test_unknown_channel_is_rejected(self):
        with pytest.raises(ValidationError):
            _configure(channels=["push", "fax"])


# ---------------------------------------------------------------
# Allowed channels lookup
# ---------------------------------------------------------------
class TestAllowedChannels:
    def test_missing_policy_falls_back_to_defaults(self):
        assert _repo().get_allowed_channels("never.configured") == set(DEFAULT_CHANNELS)

    def test_default_list_is_push_email_in_app(self):
        assert DEFAULT_CHANNELS == {Channel.PUSH, Channel.EMAIL, Channel.IN_APP}

    def test_active_policy_is_used(self):
        _configure(channels=["sms"])
        assert _repo().get_allowed_channels("order.shipped") == {Channel.SMS}

    def test_inactive_policy_falls_back_to_defaults(self):
        _configure(channels=["sms"], is_active=False)
        assert _repo().get_allowed_channels("order.shipped") == set(DEFAULT_CHANNELS)


# ---------------------------------------------------------------
# Activation
# ---------------------------------------------------------------
class TestPolicyActivation:
    def test_deactivate(self):
        _configure()
        current_domain.process(DeactivateChannelPolicy(event_key="order.shipped"), asynchronous=False)
        assert _repo().find_by_event_key("order.shipped").is_active is False

    def test_activate(self):
        _configure(is_active=False)
        current_domain.process(ActivateChannelPolicy(event_key="order.shipped"), asynchronous=False)
        assert _repo().find_by_event_key("order.shipped").is_active is True

    def test_unknown_event_key_is_not_found(self):
        with pytest.raises(ObjectNotFoundError):
            current_domain.process(ActivateChannelPolicy(event_key="nope"), asynchronous=False)


# ---------------------------------------------------------------
# Seeding
# ---------------------------------------------------------------
class TestInitializeDefaultPolicies:
    def test_seeds_every_known_event(self):
        created = current_domain.process(InitializeDefaultPolicies(), asynchronous=False)
        assert created == len(DEFAULT_EVENT_POLICIES)
        assert len(_repo().list_policies()) == len(DEFAULT_EVENT_POLICIES)

    def test_is_idempotent(self):
        current_domain.process(InitializeDefaultPolicies(), asynchronous=False)
        assert current_domain.process(InitializeDefaultPolicies(), asynchronous=False) == 0

    def test_keeps_existing_policy(self):
        _configure(channels=["email"])
        current_domain.process(InitializeDefaultPolicies(), asynchronous=False)
        assert _repo().get_allowed_channels("order.shipped") == {Channel.EMAIL}

    def test_restricted_to_given_keys(self):
        created = current_domain.process(
            InitializeDefaultPolicies(event_keys=json.dumps(["order.paid", "unknown.event"])),
            asynchronous=False,
        )
        assert created == 1
        assert [p.event_key for p in _repo().list_policies()] == ["order.paid"]

    def test_list_active_only(self):
        current_domain.process(InitializeDefaultPolicies(), asynchronous=False)
        current_domain.process(DeactivateChannelPolicy(event_key="order.paid"), asynchronous=False)
        active = _repo().list_policies(active_only=True)
        assert "order.paid" not in {p.event_key for p in active}
        assert len(active) == len(DEFAULT_EVENT_POLICIES) - 1
