"""Closed value sets shared across the messaging aggregates."""

from enum import Enum


class Channel(Enum):
    PUSH = "push"
    EMAIL = "email"
    IN_APP = "in_app"
    SMS = "sms"
    TELEGRAM = "telegram"


class NotificationType(Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    SYSTEM = "system"
    PRODUCT = "product"
    ORDER = "order"
    USER = "user"


class Frequency(Enum):
    IMMEDIATE = "immediate"
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    NEVER = "never"


class Platform(Enum):
    WEB = "web"
    ANDROID = "android"
    IOS = "ios"


def parse_channel(value) -> Channel:
    """Coerce a channel name or ``Channel`` member, raising ``ValueError`` if unknown."""
    if isinstance(value, Channel):
        return value
    return Channel(str(value).strip().lower())


def parse_channels(values) -> set[Channel]:
    return {parse_channel(v) for v in values}
