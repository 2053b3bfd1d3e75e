"""Tests for messaging enums and channel parsing."""

import pytest

from messaging.shared.enums import (
    Channel,
    Frequency,
    NotificationType,
    Platform,
    parse_channel,
    parse_channels,
)


class TestChannel:
    def test_has_5_channels(self):
        assert len(Channel) == 5

    def test_values(self):
        assert {c.value for c in Channel} == {"push", "email", "in_app", "sms", "telegram"}


class TestNotificationType:
    def test_has_8_types(self):
        assert len(NotificationType) == 8

    def test_info_value(self):
        assert NotificationType.INFO.value == "info"


class TestFrequency:
    def test_never_value(self):
        assert Frequency.NEVER.value == "never"

    def test_immediate_value(self):
        assert Frequency.IMMEDIATE.value == "immediate"


class TestPlatform:
    def test_values(self):
        assert {p.value for p in Platform} == {"web", "android", "ios"}


class TestParseChannel:
    def test_parses_value(self):
        assert parse_channel("push") is Channel.PUSH

    def test_is_case_insensitive(self):
        assert parse_channel(" In_App ") is Channel.IN_APP

    def test_passes_members_through(self):
        assert parse_channel(Channel.SMS) is Channel.SMS

    def test_rejects_unknown(self):
        with pytest.raises(ValueError):
            parse_channel("pigeon")

    def test_parse_channels_deduplicates(self):
        assert parse_channels(["push", Channel.PUSH, "email"]) == {Channel.PUSH, Channel.EMAIL}
