"""DeviceToken aggregate — push registration tokens per user.

A user may hold many tokens (one per browser or app install). A token is
unique per user; re-registering it only refreshes ``last_active_at``. Tokens
leave the registry when the user unregisters them, when the push gateway
reports them permanently invalid, or when they go stale.
"""

import json
from datetime import UTC, datetime, timedelta

import structlog
from protean.fields import DateTime, Identifier, String, Text

from messaging.device.events import DeviceTokenRefreshed, DeviceTokenRegistered
from messaging.domain import messaging
from messaging.shared.enums import Platform
from messaging.utils.logging import mask_token

logger = structlog.get_logger(__name__)

# Upper bound of tokens fetched for a single user or token lookup
_MAX_TOKENS = 500
_SWEEP_SIZE = 10_000


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@messaging.aggregate
class DeviceToken:
    user_id: Identifier(required=True)
    token: String(required=True, max_length=4096)
    platform: String(choices=Platform)
    device_info: Text()  # JSON map (user agent, app version...)

    last_active_at: DateTime()
    created_at: DateTime()

    @classmethod
    def register(cls, user_id, token, platform=None, device_info=None):
        now = datetime.now(UTC)

        device_token = cls(
            user_id=user_id,
            token=token,
            platform=platform,
            device_info=json.dumps(device_info or {}),
            last_active_at=now,
            created_at=now,
        )

        device_token.raise_(
            DeviceTokenRegistered(
                device_token_id=str(device_token.id),
                user_id=str(user_id),
                platform=platform,
                registered_at=now,
            )
        )
        return device_token

    def refresh(self, platform=None, device_info=None):
        """Mark the token as seen now, updating platform and device info when given."""
        now = datetime.now(UTC)
        if platform:
            self.platform = platform
        if device_info is not None:
            self.device_info = json.dumps(device_info)
        self.last_active_at = now

        self.raise_(
            DeviceTokenRefreshed(
                device_token_id=str(self.id),
                user_id=str(self.user_id),
                last_active_at=now,
            )
        )

    def get_device_info(self) -> dict:
        return json.loads(self.device_info) if self.device_info else {}


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------
@messaging.repository(part_of=DeviceToken)
class DeviceTokenRepository:
    def find(self, user_id, token) -> DeviceToken | None:
        tokens = self._dao.query.filter(user_id=str(user_id), token=token).all().items
        return tokens[0] if tokens else None

    def registrations_for(self, user_id) -> list[DeviceToken]:
        return (
            self._dao.query.filter(user_id=str(user_id))
            .order_by("-last_active_at")
            .limit(_MAX_TOKENS)
            .all()
            .items
        )

    def tokens_for(self, user_id) -> list[str]:
        return [registration.token for registration in self.registrations_for(user_id)]

    def remove_by_token(self, token: str) -> int:
        """Delete ``token`` for every user holding it."""
        registrations = self._dao.query.filter(token=token).limit(_MAX_TOKENS).all().items
        for registration in registrations:
            self._dao.delete(registration)
        return len(registrations)

    def remove_by_user_and_token(self, user_id, token: str) -> bool:
        registration = self.find(user_id, token)
        if registration is None:
            return False
        self._dao.delete(registration)
        return True

    def prune_invalid(self, tokens) -> int:
        """Best-effort removal of tokens the gateway rejected. Never raises."""
        removed = 0
        for token in tokens:
            try:
                removed += self.remove_by_token(token)
            except Exception as exc:
                logger.warning("Failed to prune device token", token=mask_token(token), error=str(exc))
        if removed:
            logger.info("Pruned invalid device tokens", count=removed)
        return removed

    def cleanup_stale(self, days: int) -> int:
        """Remove tokens not seen for ``days`` days."""
        cutoff = datetime.now(UTC) - timedelta(days=days)
        stale = self._dao.query.filter(last_active_at__lt=cutoff).limit(_SWEEP_SIZE).all().items
        for registration in stale:
            self._dao.delete(registration)
        logger.info("Stale device tokens removed", days=days, count=len(stale))
        return len(stale)
