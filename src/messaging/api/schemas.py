"""Pydantic request/response models for the Messaging API.

API schemas are separate from Protean commands (anti-corruption pattern).
"""

from typing import Any

from pydantic import BaseModel, Field

_HHMM = r"^([01]?\d|2[0-3]):[0-5]\d$"


# ---------------------------------------------------------------------------
# Request Models
# ---------------------------------------------------------------------------
class NotificationPayload(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    body: str = Field(..., min_length=1)
    notification_type: str = Field("info", examples=["order"])
    action_url: str | None = None
    icon_url: str | None = None
    image_url: str | None = None
    data: dict[str, Any] = {}


class SendToUserRequest(BaseModel):
    event_key: str = Field(..., examples=["order.shipped"])
    user_id: str
    payload: NotificationPayload
    tokens: list[str] | None = Field(None, description="Explicit device tokens; defaults to the user's registry")
    send_push: bool = True
    timezone: str | None = Field(None, examples=["Europe/Berlin"])


class SendBulkRequest(BaseModel):
    event_key: str
    user_ids: list[str] = Field(..., min_length=1)
    payload: NotificationPayload


class TopicSendRequest(BaseModel):
    payload: NotificationPayload


class TopicMembershipRequest(BaseModel):
    tokens: list[str] = Field(..., min_length=1)


class MarkAllReadRequest(BaseModel):
    notification_ids: list[str] | None = None


class RegisterDeviceRequest(BaseModel):
    token: str = Field(..., min_length=1)
    platform: str | None = Field(None, examples=["web"])
    device_info: dict[str, Any] | None = None


class UnregisterDeviceRequest(BaseModel):
    token: str = Field(..., min_length=1)
    user_id: str | None = None


class TokenRequest(BaseModel):
    token: str = Field(..., min_length=1)


class PushTestRequest(BaseModel):
    token: str = Field(..., min_length=1)
    title: str = "Test notification"
    body: str = "Push notifications are working."


class CleanupRequest(BaseModel):
    older_than_days: int | None = Field(None, ge=0)


class UpsertPreferenceRequest(BaseModel):
    notification_type: str
    channel: str
    enabled: bool | None = None
    frequency: str | None = None
    quiet_hours_start: str | None = None
    quiet_hours_end: str | None = None
    quiet_hours_timezone: str | None = None
    clear_quiet_hours: bool = False
    settings: dict[str, Any] | None = None


class BulkPreferencesRequest(BaseModel):
    entries: list[dict[str, Any]]


class QuietHoursRequest(BaseModel):
    start: str | None = Field(None, pattern=_HHMM, examples=["22:00"])
    end: str | None = Field(None, pattern=_HHMM, examples=["06:00"])
    timezone: str | None = None
    channel: str | None = None


class ToggleTypeRequest(BaseModel):
    notification_type: str
    enabled: bool


class ConfigurePolicyRequest(BaseModel):
    display_name: str = Field(..., min_length=1, max_length=200)
    allowed_channels: list[str]
    description: str | None = None
    is_active: bool = True
    metadata: dict[str, Any] | None = None


# ---------------------------------------------------------------------------
# Response Models
# ---------------------------------------------------------------------------
class StatusResponse(BaseModel):
    status: str = "ok"


class CountResponse(BaseModel):
    count: int


class NotificationResponse(BaseModel):
    notification_id: str
    user_id: str
    title: str
    body: str
    notification_type: str
    action_url: str | None = None
    icon_url: str | None = None
    image_url: str | None = None
    data: dict[str, Any] = {}
    event_key: str | None = None
    read: bool
    read_at: str | None = None
    sent_at: str | None = None
    created_at: str | None = None


class NotificationListResponse(BaseModel):
    notifications: list[NotificationResponse]
    total: int
    page: int
    limit: int
    pages: int
    has_more: bool


class TokenOutcomeResponse(BaseModel):
    token: str
    success: bool
    message_id: str | None = None
    error_code: str | None = None


class SendResponse(BaseModel):
    state: str
    channels: list[str]
    notification_id: str | None = None
    push_succeeded: int = 0
    push_failed: int = 0
    pruned_tokens: int = 0


class BulkSendResponse(BaseModel):
    notification_ids: list[str]
    count: int


class TopicSendResponse(BaseModel):
    message_id: str | None = None
    sent: bool


class TopicMembershipResponse(BaseModel):
    success_count: int
    failure_count: int
    errors: list[str] = []


class ValidTokenResponse(BaseModel):
    valid: bool


class IdResponse(BaseModel):
    id: str


class PreferenceResponse(BaseModel):
    preference_id: str
    notification_type: str
    channel: str
    enabled: bool
    frequency: str
    quiet_hours_start: str | None = None
    quiet_hours_end: str | None = None
    quiet_hours_timezone: str | None = None
    settings: dict[str, Any] = {}


class GroupedPreferencesResponse(BaseModel):
    user_id: str
    preferences: dict[str, dict[str, PreferenceResponse]]


class QuietHoursResponse(BaseModel):
    start: str | None = None
    end: str | None = None
    timezone: str | None = None


class CanSendResponse(BaseModel):
    allowed: bool
    reasons: dict[str, str]


class PolicyResponse(BaseModel):
    policy_id: str
    event_key: str
    display_name: str
    description: str | None = None
    allowed_channels: list[str]
    is_active: bool
    metadata: dict[str, Any] = {}


class PolicyListResponse(BaseModel):
    policies: list[PolicyResponse]


class StatsResponse(BaseModel):
    total: int
    unread: int
    read: int
    by_type: dict[str, int]
    device_tokens: int | None = None
