"""Push gateway factory.

Provides get_gateway() / set_gateway() to swap implementations:
- FakePushGateway for development and testing (default)
- FirebasePushGateway when ``PUSH_GATEWAY=firebase``; credentials are read
  from the service-account file named by ``FIREBASE_CREDENTIALS``
"""

import os

from messaging.channel.fake_push import FakePushGateway
from messaging.channel.push_port import PushGateway

_current_gateway: PushGateway | None = None


def _build_gateway() -> PushGateway:
    kind = os.environ.get("PUSH_GATEWAY", "fake").lower()
    if kind == "firebase":
        from messaging.channel.fcm_adapter import FirebasePushGateway

        credentials_path = os.environ.get("FIREBASE_CREDENTIALS")
        if not credentials_path:
            raise RuntimeError("PUSH_GATEWAY=firebase requires FIREBASE_CREDENTIALS")
        return FirebasePushGateway.from_credentials(credentials_path)
    if kind == "fake":
        return FakePushGateway()
    raise ValueError(f"Unknown push gateway: {kind}")


def get_gateway() -> PushGateway:
    """Return the current push gateway, building it on first use."""
    global _current_gateway
    if _current_gateway is None:
        _current_gateway = _build_gateway()
    return _current_gateway


def set_gateway(gateway: PushGateway) -> None:
    """Override the active push gateway (useful for tests)."""
    global _current_gateway
    _current_gateway = gateway


def reset_gateway() -> None:
    """Reset to the default gateway."""
    global _current_gateway
    _current_gateway = None
