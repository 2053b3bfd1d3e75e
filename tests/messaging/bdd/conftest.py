"""Shared BDD fixtures and step definitions for the Messaging domain."""

import json

from protean import current_domain
from pytest_bdd import given, parsers, then

from messaging.device.registration import RegisterDeviceToken
from messaging.policy.channel_policy import ChannelPolicy
from messaging.policy.management import ConfigureChannelPolicy
from messaging.preference.management import UpsertPreference


def _csv(value):
    return [item.strip() for item in value.split(",") if item.strip()]


# ---------------------------------------------------------------------------
# Given steps — policies
# ---------------------------------------------------------------------------
@given(parsers.cfparse('no channel policy exists for "{event_key}"'))
def no_policy(event_key):
    assert current_domain.repository_for(ChannelPolicy).find_by_event_key(event_key) is None


@given(parsers.cfparse('the event "{event_key}" allows "{channels}"'))
def policy_allows(event_key, channels):
    current_domain.process(
        ConfigureChannelPolicy(
            event_key=event_key,
            display_name=event_key,
            allowed_channels=json.dumps(_csv(channels)),
        ),
        asynchronous=False,
    )


# ---------------------------------------------------------------------------
# Given steps — preferences
# ---------------------------------------------------------------------------
@given(parsers.cfparse('"{user_id}" has enabled "{channel}" for "{notification_type}"'))
def preference_enabled(user_id, channel, notification_type):
    current_domain.process(
        UpsertPreference(user_id=user_id, notification_type=notification_type, channel=channel, enabled=True),
        asynchronous=False,
    )


@given(parsers.cfparse('"{user_id}" has disabled "{channel}" for "{notification_type}"'))
def preference_disabled(user_id, channel, notification_type):
    current_domain.process(
        UpsertPreference(user_id=user_id, notification_type=notification_type, channel=channel, enabled=False),
        asynchronous=False,
    )


@given(parsers.cfparse('"{user_id}" has quiet hours from "{start}" to "{end}" on "{channel}" for "{notification_type}"'))
def preference_quiet_hours(user_id, start, end, channel, notification_type):
    current_domain.process(
        UpsertPreference(
            user_id=user_id,
            notification_type=notification_type,
            channel=channel,
            quiet_hours_start=start,
            quiet_hours_end=end,
        ),
        asynchronous=False,
    )


# ---------------------------------------------------------------------------
# Given steps — devices
# ---------------------------------------------------------------------------
@given(parsers.cfparse('"{user_id}" has registered devices "{tokens}"'))
def registered_devices(user_id, tokens):
    for token in _csv(tokens):
        current_domain.process(RegisterDeviceToken(user_id=user_id, token=token), asynchronous=False)


@given(parsers.cfparse('the gateway reports "{token}" as unregistered'))
def gateway_unregistered(push_gateway, token):
    push_gateway.fail_token(token, code="registration-token-not-registered")


@given(parsers.cfparse('the gateway is unavailable for "{token}"'))
def gateway_unavailable(push_gateway, token):
    push_gateway.fail_token(token, code="server-unavailable")


# ---------------------------------------------------------------------------
# Then steps — resolution
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the resolved channels are "{channels}"'))
def resolved_channels_are(resolved, channels):
    assert sorted(channel.value for channel in resolved) == sorted(_csv(channels))


@then("no channel is resolved")
def nothing_resolved(resolved):
    assert resolved == set()

