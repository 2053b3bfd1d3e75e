"""FastAPI routes for the Messaging domain.

Thin adapters that translate HTTP requests into engine calls and domain
commands. No business logic — just schema→command→response translation.
"""

import json

from fastapi import APIRouter, HTTPException, Query
from protean.utils.globals import current_domain

from messaging.api.schemas import (
    BulkPreferencesRequest,
    BulkSendResponse,
    CanSendResponse,
    CleanupRequest,
    ConfigurePolicyRequest,
    CountResponse,
    GroupedPreferencesResponse,
    IdResponse,
    MarkAllReadRequest,
    NotificationListResponse,
    NotificationResponse,
    PolicyListResponse,
    PolicyResponse,
    PreferenceResponse,
    PushTestRequest,
    QuietHoursRequest,
    QuietHoursResponse,
    RegisterDeviceRequest,
    SendBulkRequest,
    SendResponse,
    SendToUserRequest,
    StatsResponse,
    StatusResponse,
    ToggleTypeRequest,
    TokenOutcomeResponse,
    TokenRequest,
    TopicMembershipRequest,
    TopicMembershipResponse,
    TopicSendRequest,
    TopicSendResponse,
    UnregisterDeviceRequest,
    UpsertPreferenceRequest,
    ValidTokenResponse,
)
from messaging.channel import get_gateway
from messaging.delivery.dispatcher import PushDispatcher
from messaging.delivery.engine import NotificationEngine
from messaging.delivery.resolver import explain_reasons
from messaging.delivery.settings import DeliverySettings
from messaging.policy.channel_policy import ChannelPolicy
from messaging.policy.management import (
    ActivateChannelPolicy,
    ConfigureChannelPolicy,
    DeactivateChannelPolicy,
    InitializeDefaultPolicies,
)
from messaging.preference.management import (
    BulkUpsertPreferences,
    DeletePreference,
    InitializeUserPreferences,
    SetUserQuietHours,
    ToggleNotificationType,
    UpsertPreference,
)
from messaging.preference.preference import PreferenceEntry

router = APIRouter(prefix="/messaging", tags=["messaging"])


# Shared across requests so its worker pool bounds pushes process-wide
_dispatcher: PushDispatcher | None = None


def _engine() -> NotificationEngine:
    global _dispatcher

    gateway = get_gateway()
    settings = DeliverySettings.from_domain()
    if _dispatcher is None or _dispatcher.gateway is not gateway:
        if _dispatcher is not None:
            _dispatcher.shutdown()
        _dispatcher = PushDispatcher(
            gateway,
            max_concurrency=settings.max_concurrency,
            send_timeout=settings.send_timeout,
        )
    return NotificationEngine(gateway=gateway, settings=settings, dispatcher=_dispatcher)


def _check_paging(page: int, limit: int) -> None:
    if page < 1 or not 1 <= limit <= 100:
        raise HTTPException(status_code=400, detail="page must be >= 1 and limit between 1 and 100")


def _page_response(result) -> NotificationListResponse:
    return NotificationListResponse(
        notifications=[_notification_response(record) for record in result.items],
        total=result.total,
        page=result.page,
        limit=result.limit,
        pages=result.pages,
        has_more=result.has_more,
    )


def _iso(value):
    return value.isoformat() if value else None


def _notification_response(record) -> NotificationResponse:
    return NotificationResponse(
        notification_id=str(record.id),
        user_id=str(record.user_id),
        title=record.title,
        body=record.body,
        notification_type=record.notification_type,
        action_url=record.action_url,
        icon_url=record.icon_url,
        image_url=record.image_url,
        data=record.get_data(),
        event_key=record.event_key,
        read=record.read,
        read_at=_iso(record.read_at),
        sent_at=_iso(record.sent_at),
        created_at=_iso(record.created_at),
    )


def _preference_response(entry) -> PreferenceResponse:
    return PreferenceResponse(
        preference_id=str(entry.id),
        notification_type=entry.notification_type,
        channel=entry.channel,
        enabled=entry.enabled,
        frequency=entry.frequency,
        quiet_hours_start=entry.quiet_hours_start,
        quiet_hours_end=entry.quiet_hours_end,
        quiet_hours_timezone=entry.quiet_hours_timezone,
        settings=entry.get_settings(),
    )


def _policy_response(policy) -> PolicyResponse:
    return PolicyResponse(
        policy_id=str(policy.id),
        event_key=policy.event_key,
        display_name=policy.display_name,
        description=policy.description,
        allowed_channels=sorted(channel.value for channel in policy.get_allowed_channels()),
        is_active=policy.is_active,
        metadata=policy.get_metadata(),
    )


# ---------------------------------------------------------------------------
# Sending
# ---------------------------------------------------------------------------
@router.post("/send", response_model=SendResponse)
async def send_to_user(body: SendToUserRequest) -> SendResponse:
    """Resolve channels for one user and deliver in-app and push."""
    result = await _engine().send_to_user_detailed(
        body.event_key,
        body.user_id,
        body.payload.model_dump(),
        tokens=body.tokens,
        send_push=body.send_push,
        timezone=body.timezone,
    )
    return SendResponse(
        state=result.state.value,
        channels=sorted(channel.value for channel in result.channels),
        notification_id=str(result.record.id) if result.record else None,
        push_succeeded=result.report.success_count if result.report else 0,
        push_failed=result.report.failure_count if result.report else 0,
        pruned_tokens=len(result.report.tokens_to_prune) if result.report else 0,
    )


@router.post("/send-bulk", response_model=BulkSendResponse)
async def send_bulk(body: SendBulkRequest) -> BulkSendResponse:
    records = await _engine().send_bulk(body.event_key, body.user_ids, body.payload.model_dump())
    return BulkSendResponse(notification_ids=[str(record.id) for record in records], count=len(records))


@router.post("/topics/{topic}/send", response_model=TopicSendResponse)
async def send_to_topic(topic: str, body: TopicSendRequest) -> TopicSendResponse:
    message_id = await _engine().send_to_topic(topic, body.payload.model_dump())
    return TopicSendResponse(message_id=message_id, sent=message_id is not None)


@router.post("/topics/{topic}/subscribe", response_model=TopicMembershipResponse)
async def subscribe_to_topic(topic: str, body: TopicMembershipRequest) -> TopicMembershipResponse:
    result = await _engine().subscribe_to_topic(body.tokens, topic)
    return TopicMembershipResponse(
        success_count=result.success_count, failure_count=result.failure_count, errors=result.errors
    )


@router.post("/topics/{topic}/unsubscribe", response_model=TopicMembershipResponse)
async def unsubscribe_from_topic(topic: str, body: TopicMembershipRequest) -> TopicMembershipResponse:
    result = await _engine().unsubscribe_from_topic(body.tokens, topic)
    return TopicMembershipResponse(
        success_count=result.success_count, failure_count=result.failure_count, errors=result.errors
    )


# ---------------------------------------------------------------------------
# Inbox
# ---------------------------------------------------------------------------
@router.get("/users/{user_id}/notifications", response_model=NotificationListResponse)
async def list_notifications(
    user_id: str,
    page: int = 1,
    limit: int = 20,
    read: bool | None = None,
    notification_type: str | None = None,
    event_key: str | None = None,
) -> NotificationListResponse:
    _check_paging(page, limit)
    result = _engine().get_user_notifications(
        user_id,
        page=page,
        limit=limit,
        read=read,
        notification_type=notification_type,
        event_key=event_key,
    )
    return _page_response(result)


@router.get("/users/{user_id}/notifications/unread-count", response_model=CountResponse)
async def unread_count(user_id: str) -> CountResponse:
    return CountResponse(count=_engine().get_unread_count(user_id))


@router.get("/users/{user_id}/notifications/recent", response_model=list[NotificationResponse])
async def recent_notifications(user_id: str, limit: int = 5) -> list[NotificationResponse]:
    return [_notification_response(record) for record in _engine().get_recent_notifications(user_id, limit=limit)]


@router.post("/users/{user_id}/notifications/read-all", response_model=CountResponse)
async def mark_all_read(user_id: str, body: MarkAllReadRequest | None = None) -> CountResponse:
    notification_ids = body.notification_ids if body else None
    return CountResponse(count=_engine().mark_all_read(user_id, notification_ids))


@router.delete("/users/{user_id}/notifications", response_model=CountResponse)
async def delete_user_notifications(user_id: str, older_than_days: int | None = Query(None, ge=1)) -> CountResponse:
    return CountResponse(count=_engine().delete_user_notifications(user_id, older_than_days))


@router.get("/notifications", response_model=NotificationListResponse)
async def list_all_notifications(
    page: int = 1,
    limit: int = 20,
    user_id: str | None = None,
    read: bool | None = None,
    notification_type: str | None = None,
    event_key: str | None = None,
) -> NotificationListResponse:
    _check_paging(page, limit)
    result = _engine().get_all_notifications(
        page=page,
        limit=limit,
        user_id=user_id,
        read=read,
        notification_type=notification_type,
        event_key=event_key,
    )
    return _page_response(result)


@router.get("/notifications/{notification_id}", response_model=NotificationResponse)
async def get_notification(notification_id: str, user_id: str | None = None) -> NotificationResponse:
    return _notification_response(_engine().get_notification(notification_id, user_id))


@router.post("/notifications/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(notification_id: str, user_id: str | None = None) -> NotificationResponse:
    return _notification_response(_engine().mark_read(notification_id, user_id))


@router.delete("/notifications/{notification_id}", response_model=StatusResponse)
async def delete_notification(notification_id: str, user_id: str | None = None) -> StatusResponse:
    _engine().delete_notification(notification_id, user_id)
    return StatusResponse()


@router.get("/stats", response_model=StatsResponse)
async def notification_stats(user_id: str | None = None) -> StatsResponse:
    return StatsResponse(**_engine().get_notification_stats(user_id))


@router.post("/maintenance/cleanup", response_model=CountResponse)
async def cleanup_old_notifications(body: CleanupRequest) -> CountResponse:
    return CountResponse(count=_engine().cleanup_old_notifications(body.older_than_days))


# ---------------------------------------------------------------------------
# Devices
# ---------------------------------------------------------------------------
@router.post("/users/{user_id}/devices", response_model=IdResponse, status_code=201)
async def register_device(user_id: str, body: RegisterDeviceRequest) -> IdResponse:
    token_id = _engine().register_token(user_id, body.token, platform=body.platform, device_info=body.device_info)
    return IdResponse(id=token_id)


@router.get("/users/{user_id}/devices", response_model=list[str])
async def list_devices(user_id: str) -> list[str]:
    return _engine().device_tokens.tokens_for(user_id)


@router.post("/devices/unregister", response_model=CountResponse)
async def unregister_device(body: UnregisterDeviceRequest) -> CountResponse:
    return CountResponse(count=_engine().unregister_token(body.token, body.user_id))


@router.post("/devices/validate", response_model=ValidTokenResponse)
async def validate_device(body: TokenRequest) -> ValidTokenResponse:
    return ValidTokenResponse(valid=await _engine().validate_token(body.token))


@router.post("/devices/test", response_model=TokenOutcomeResponse)
async def send_test_push(body: PushTestRequest) -> TokenOutcomeResponse:
    outcome = await _engine().send_test_notification(body.token, title=body.title, body=body.body)
    return TokenOutcomeResponse(
        token=outcome.token,
        success=outcome.success,
        message_id=outcome.message_id,
        error_code=outcome.error_code,
    )


# ---------------------------------------------------------------------------
# Preferences
# ---------------------------------------------------------------------------
@router.get("/users/{user_id}/preferences", response_model=GroupedPreferencesResponse)
async def get_preferences(user_id: str) -> GroupedPreferencesResponse:
    grouped = current_domain.repository_for(PreferenceEntry).preferences_grouped(user_id)
    return GroupedPreferencesResponse(
        user_id=user_id,
        preferences={
            notification_type: {channel: _preference_response(entry) for channel, entry in channels.items()}
            for notification_type, channels in grouped.items()
        },
    )


@router.put("/users/{user_id}/preferences", response_model=IdResponse)
async def upsert_preference(user_id: str, body: UpsertPreferenceRequest) -> IdResponse:
    command = UpsertPreference(
        user_id=user_id,
        notification_type=body.notification_type,
        channel=body.channel,
        enabled=body.enabled,
        frequency=body.frequency,
        quiet_hours_start=body.quiet_hours_start,
        quiet_hours_end=body.quiet_hours_end,
        quiet_hours_timezone=body.quiet_hours_timezone,
        clear_quiet_hours=body.clear_quiet_hours,
        settings=json.dumps(body.settings) if body.settings is not None else None,
    )
    return IdResponse(id=current_domain.process(command, asynchronous=False))


@router.put("/users/{user_id}/preferences/bulk", response_model=CountResponse)
async def bulk_upsert_preferences(user_id: str, body: BulkPreferencesRequest) -> CountResponse:
    command = BulkUpsertPreferences(user_id=user_id, entries=json.dumps(body.entries))
    return CountResponse(count=current_domain.process(command, asynchronous=False))


@router.post("/users/{user_id}/preferences/initialize", response_model=CountResponse)
async def initialize_preferences(user_id: str) -> CountResponse:
    command = InitializeUserPreferences(user_id=user_id)
    return CountResponse(count=current_domain.process(command, asynchronous=False))


@router.post("/users/{user_id}/preferences/toggle", response_model=StatusResponse)
async def toggle_notification_type(user_id: str, body: ToggleTypeRequest) -> StatusResponse:
    command = ToggleNotificationType(
        user_id=user_id,
        notification_type=body.notification_type,
        enabled=body.enabled,
    )
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@router.put("/users/{user_id}/quiet-hours", response_model=CountResponse)
async def set_quiet_hours(user_id: str, body: QuietHoursRequest) -> CountResponse:
    command = SetUserQuietHours(
        user_id=user_id,
        channel=body.channel,
        start=body.start,
        end=body.end,
        timezone=body.timezone,
    )
    return CountResponse(count=current_domain.process(command, asynchronous=False))


@router.get("/users/{user_id}/quiet-hours", response_model=QuietHoursResponse)
async def get_quiet_hours(user_id: str, channel: str) -> QuietHoursResponse:
    window = current_domain.repository_for(PreferenceEntry).quiet_hours_for(user_id, channel)
    return QuietHoursResponse(**(window or {}))


@router.get("/users/{user_id}/can-send", response_model=CanSendResponse)
async def can_send(
    user_id: str,
    notification_type: str,
    channel: str | None = None,
    event_key: str | None = None,
    timezone: str | None = None,
) -> CanSendResponse:
    """Explain which channels a notification would use right now."""
    try:
        decisions = _engine().resolver.explain(
            user_id,
            event_key,
            notification_type,
            timezone=timezone,
            channels=[channel] if channel else None,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    reasons = explain_reasons(decisions)
    return CanSendResponse(allowed=any(reason.permits for reason in decisions.values()), reasons=reasons)


@router.delete("/preferences/{preference_id}", response_model=StatusResponse)
async def delete_preference(preference_id: str) -> StatusResponse:
    current_domain.process(DeletePreference(preference_id=preference_id), asynchronous=False)
    return StatusResponse()


# ---------------------------------------------------------------------------
# Channel policies
# ---------------------------------------------------------------------------
@router.get("/policies", response_model=PolicyListResponse)
async def list_policies(active_only: bool = False) -> PolicyListResponse:
    policies = current_domain.repository_for(ChannelPolicy).list_policies(active_only=active_only)
    return PolicyListResponse(policies=[_policy_response(policy) for policy in policies])


@router.get("/policies/{event_key}", response_model=PolicyResponse)
async def get_policy(event_key: str) -> PolicyResponse:
    policy = current_domain.repository_for(ChannelPolicy).find_by_event_key(event_key)
    if policy is None:
        raise HTTPException(status_code=404, detail=f"No channel policy for event {event_key}")
    return _policy_response(policy)


@router.put("/policies/{event_key}", response_model=IdResponse)
async def configure_policy(event_key: str, body: ConfigurePolicyRequest) -> IdResponse:
    command = ConfigureChannelPolicy(
        event_key=event_key,
        display_name=body.display_name,
        allowed_channels=json.dumps(body.allowed_channels),
        description=body.description,
        is_active=body.is_active,
        extra_data=json.dumps(body.metadata) if body.metadata is not None else None,
    )
    return IdResponse(id=current_domain.process(command, asynchronous=False))


@router.post("/policies/{event_key}/activate", response_model=StatusResponse)
async def activate_policy(event_key: str) -> StatusResponse:
    current_domain.process(ActivateChannelPolicy(event_key=event_key), asynchronous=False)
    return StatusResponse()


@router.post("/policies/{event_key}/deactivate", response_model=StatusResponse)
async def deactivate_policy(event_key: str) -> StatusResponse:
    current_domain.process(DeactivateChannelPolicy(event_key=event_key), asynchronous=False)
    return StatusResponse()


@router.post("/policies/initialize-defaults", response_model=CountResponse)
async def initialize_default_policies() -> CountResponse:
    return CountResponse(count=current_domain.process(InitializeDefaultPolicies(), asynchronous=False))
