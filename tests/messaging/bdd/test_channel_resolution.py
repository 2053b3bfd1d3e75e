"""BDD tests for channel resolution."""

from datetime import UTC, datetime

from pytest_bdd import parsers, scenarios, when

from messaging.delivery.resolver import PreferenceResolver

scenarios("features/channel_resolution.feature")


@when(
    parsers.cfparse('channels are resolved for "{user_id}" on "{event_key}" at "{hhmm}"'),
    target_fixture="resolved",
)
def resolve_channels(user_id, event_key, hhmm):
    hour, minute = (int(part) for part in hhmm.split(":"))
    now = datetime(2024, 3, 15, hour, minute, tzinfo=UTC)
    return PreferenceResolver().resolve(user_id, event_key, "order", now=now)
