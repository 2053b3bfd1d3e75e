"""Push gateway port (abstract interface).

Defines the contract every push provider adapter implements, so the
dispatcher can run against FakePushGateway in development and tests and
against FirebasePushGateway in production without any other change.

All methods are blocking; the dispatcher moves them off the event loop.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

# Provider error codes after which a token will never work again
PERMANENT_ERROR_CODES = frozenset(
    {
        "registration-token-not-registered",
        "invalid-registration-token",
        "messaging/registration-token-not-registered",
        "messaging/invalid-registration-token",
    }
)


class PushGatewayError(Exception):
    """A push provider rejected a request.

    ``code`` is a stable, provider-neutral string such as
    ``registration-token-not-registered`` or ``server-unavailable``.
    """

    def __init__(self, code: str, message: str | None = None) -> None:
        self.code = code
        self.message = message or code
        super().__init__(self.message)

    @property
    def is_permanent(self) -> bool:
        return is_permanent_error(self.code)


def is_permanent_error(code: str | None) -> bool:
    return code in PERMANENT_ERROR_CODES


@dataclass(frozen=True)
class PushPayload:
    """Provider-neutral content of a push message. ``data`` values are strings."""

    title: str
    body: str
    icon: str | None = None
    image: str | None = None
    click_action: str | None = None
    data: dict[str, str] = field(default_factory=dict)

    @classmethod
    def create(cls, title, body, icon=None, image=None, click_action=None, data=None):
        """Build a payload, serialising non-string data values as JSON."""
        flat = {}
        for key, value in (data or {}).items():
            if value is None:
                continue
            flat[str(key)] = value if isinstance(value, str) else json.dumps(value)
        return cls(title=title, body=body, icon=icon, image=image, click_action=click_action, data=flat)


@dataclass(frozen=True)
class SendResponse:
    """Outcome of one token within a multicast."""

    token: str
    success: bool
    message_id: str | None = None
    error: PushGatewayError | None = None


@dataclass(frozen=True)
class BatchResult:
    responses: list[SendResponse] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for response in self.responses if response.success)

    @property
    def failure_count(self) -> int:
        return len(self.responses) - self.success_count


@dataclass(frozen=True)
class TopicManagementResult:
    success_count: int = 0
    failure_count: int = 0
    errors: list[str] = field(default_factory=list)


class PushGateway(ABC):
    """Abstract push provider interface."""

    @abstractmethod
    def send(self, token: str, payload: PushPayload) -> str:
        """Send to one device. Returns the provider message id."""
        ...

    @abstractmethod
    def send_multicast(self, tokens: list[str], payload: PushPayload) -> BatchResult:
        """Send the same payload to many devices, one response per token."""
        ...

    @abstractmethod
    def send_to_topic(self, topic: str, payload: PushPayload) -> str:
        ...

    @abstractmethod
    def validate_token(self, token: str) -> bool:
        """Whether the provider still accepts ``token`` (dry run, nothing delivered)."""
        ...

    @abstractmethod
    def subscribe_to_topic(self, tokens: list[str], topic: str) -> TopicManagementResult:
        ...

    @abstractmethod
    def unsubscribe_from_topic(self, tokens: list[str], topic: str) -> TopicManagementResult:
        ...
