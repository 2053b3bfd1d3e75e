"""NotificationEngine — the caller-facing entry point for delivering notifications.

One ``send_to_user`` request moves through:

    Requested → ChannelsResolved → Suppressed
                                 → InAppRecorded → RecordedOnly
                                                 → PushDispatched → Delivered | PartiallyDelivered

Channels are evaluated independently: push may still go out when the in-app
channel is suppressed, in which case the request skips InAppRecorded.

The in-app record is committed before push fan-out starts and is never
rolled back by push failures or cancellation.
"""

import asyncio
import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

import structlog
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from messaging.channel import get_gateway
from messaging.channel.push_port import PushGateway, PushGatewayError, PushPayload, TopicManagementResult
from messaging.delivery.dispatcher import DispatchReport, PushDispatcher, TokenOutcome
from messaging.delivery.resolver import PreferenceResolver
from messaging.delivery.settings import DeliverySettings
from messaging.device.device_token import DeviceToken
from messaging.device.registration import RegisterDeviceToken, UnregisterDeviceToken
from messaging.notification.notification import NotificationPage, NotificationRecord
from messaging.notification.reading import MarkAllNotificationsRead, MarkNotificationRead
from messaging.notification.removal import CleanupOldNotifications, DeleteNotification, DeleteUserNotifications
from messaging.shared.enums import Channel, NotificationType
from messaging.utils.logging import mask_token

logger = structlog.get_logger(__name__)


class DeliveryState(Enum):
    REQUESTED = "requested"
    CHANNELS_RESOLVED = "channels_resolved"
    SUPPRESSED = "suppressed"
    IN_APP_RECORDED = "in_app_recorded"
    RECORDED_ONLY = "recorded_only"
    PUSH_DISPATCHED = "push_dispatched"
    DELIVERED = "delivered"
    PARTIALLY_DELIVERED = "partially_delivered"


@dataclass(frozen=True)
class NotificationContent:
    """What to tell the user, independent of channel."""

    title: str
    body: str
    notification_type: str = NotificationType.INFO.value
    action_url: str | None = None
    icon_url: str | None = None
    image_url: str | None = None
    data: dict = field(default_factory=dict)

    @classmethod
    def coerce(cls, payload) -> "NotificationContent":
        if isinstance(payload, cls):
            return payload
        values = dict(payload)
        notification_type = values.get("notification_type") or values.get("type") or NotificationType.INFO.value
        return cls(
            title=values["title"],
            body=values["body"],
            notification_type=getattr(notification_type, "value", notification_type),
            action_url=values.get("action_url"),
            icon_url=values.get("icon_url"),
            image_url=values.get("image_url"),
            data=values.get("data") or {},
        )


@dataclass(frozen=True)
class SendResult:
    state: DeliveryState
    channels: frozenset[Channel] = frozenset()
    record: NotificationRecord | None = None
    report: DispatchReport | None = None


class NotificationEngine:
    """Resolves channels, records in-app notifications and fans push out.

    Must be used inside an active domain context. Repositories are looked up
    per call; the gateway and settings are fixed at construction.
    """

    def __init__(
        self,
        gateway: PushGateway | None = None,
        settings: DeliverySettings | None = None,
        resolver: PreferenceResolver | None = None,
        dispatcher: PushDispatcher | None = None,
    ) -> None:
        self.settings = settings or DeliverySettings.from_domain()
        self.gateway = gateway or get_gateway()
        self.resolver = resolver or PreferenceResolver(default_timezone=self.settings.default_timezone)
        self.dispatcher = dispatcher or PushDispatcher(
            self.gateway,
            max_concurrency=self.settings.max_concurrency,
            send_timeout=self.settings.send_timeout,
        )

    @property
    def records(self):
        return current_domain.repository_for(NotificationRecord)

    @property
    def device_tokens(self):
        return current_domain.repository_for(DeviceToken)

    # -------------------------------------------------------------------
    # Sending
    # -------------------------------------------------------------------
    async def send_to_user(
        self,
        event_key: str,
        user_id,
        payload,
        tokens=None,
        send_push: bool = True,
        cancel_event: asyncio.Event | None = None,
        now: datetime | None = None,
        timezone: str | None = None,
    ) -> NotificationRecord | None:
        """Deliver to one user. Returns the in-app record, or ``None`` if in-app was suppressed."""
        result = await self.send_to_user_detailed(
            event_key,
            user_id,
            payload,
            tokens=tokens,
            send_push=send_push,
            cancel_event=cancel_event,
            now=now,
            timezone=timezone,
        )
        return result.record

    async def send_to_user_detailed(
        self,
        event_key: str,
        user_id,
        payload,
        tokens=None,
        send_push: bool = True,
        cancel_event: asyncio.Event | None = None,
        now: datetime | None = None,
        timezone: str | None = None,
    ) -> SendResult:
        content = NotificationContent.coerce(payload)
        user_id = str(user_id)
        log = logger.bind(user_id=user_id, event_key=event_key)

        channels = self.resolver.resolve(user_id, event_key, content.notification_type, now=now, timezone=timezone)
        log.debug("Channels resolved", channels=sorted(c.value for c in channels))

        record = None
        if Channel.IN_APP in channels:
            record = self._record(user_id, event_key, content)

        report = None
        if Channel.PUSH in channels and send_push:
            push_tokens = list(tokens) if tokens is not None else self.device_tokens.tokens_for(user_id)
            if cancel_event is not None and cancel_event.is_set():
                log.info("Push skipped, request cancelled", record_kept=record is not None)
            elif not push_tokens:
                log.debug("Push skipped, no device tokens")
            else:
                report = await self.dispatcher.send_all(push_tokens, self._push_payload(content, event_key, record))
                self._settle(report, record)

        state = self._final_state(record, report)
        log.info(
            "Notification processed",
            state=state.value,
            notification_id=str(record.id) if record else None,
            push_succeeded=report.success_count if report else 0,
            push_failed=report.failure_count if report else 0,
        )
        return SendResult(state=state, channels=frozenset(channels), record=record, report=report)

    async def send_bulk(
        self,
        event_key: str,
        user_ids,
        payload,
        cancel_event: asyncio.Event | None = None,
    ) -> list[NotificationRecord]:
        """Record an in-app notification for every eligible user. Push is not sent.

        Users that are ineligible, or whose resolution or write fails, are
        skipped. The result follows the input order. Chunks run one after
        another and yield to the event loop in between; once ``cancel_event``
        is set no further chunk starts and the records made so far are kept.
        """
        content = NotificationContent.coerce(payload)
        user_ids = list(dict.fromkeys(str(user_id) for user_id in user_ids))
        chunk_size = max(self.settings.bulk_chunk_size, 1)

        records = []
        for start in range(0, len(user_ids), chunk_size):
            if cancel_event is not None and cancel_event.is_set():
                logger.info("Bulk notification cancelled", event_key=event_key, remaining=len(user_ids) - start)
                break

            for user_id in user_ids[start : start + chunk_size]:
                if not self._in_app_eligible(user_id, event_key, content.notification_type):
                    continue
                try:
                    records.append(self._record(user_id, event_key, content))
                except Exception as exc:
                    logger.warning("Bulk notification skipped", user_id=user_id, event_key=event_key, error=str(exc))

            await asyncio.sleep(0)

        logger.info("Bulk notification finished", event_key=event_key, requested=len(user_ids), created=len(records))
        return records

    async def send_to_topic(self, topic: str, payload) -> str | None:
        """Broadcast to a gateway topic. No preference resolution applies."""
        content = NotificationContent.coerce(payload)
        try:
            message_id = await asyncio.to_thread(
                self.gateway.send_to_topic, topic, self._push_payload(content, None, None)
            )
        except PushGatewayError as exc:
            logger.warning("Topic send failed", topic=topic, code=exc.code, error=exc.message)
            return None

        logger.info("Topic notification sent", topic=topic, message_id=message_id)
        return message_id

    async def send_test_notification(
        self,
        token: str,
        title: str = "Test notification",
        body: str = "Push notifications are working.",
    ) -> TokenOutcome:
        if not token or not token.strip():
            raise ValidationError({"token": ["Device token is required"]})

        payload = PushPayload.create(title=title, body=body, data={"test": "true"})
        report = await self.dispatcher.send_all([token], payload)
        return report.outcomes[0]

    # -------------------------------------------------------------------
    # Inbox
    # -------------------------------------------------------------------
    def mark_read(self, notification_id, user_id=None) -> NotificationRecord:
        current_domain.process(
            MarkNotificationRead(notification_id=str(notification_id), user_id=user_id),
            asynchronous=False,
        )
        return self.records.get(str(notification_id))

    def mark_all_read(self, user_id, notification_ids=None) -> int:
        command = MarkAllNotificationsRead(
            user_id=str(user_id),
            notification_ids=json.dumps([str(i) for i in notification_ids]) if notification_ids else None,
        )
        return current_domain.process(command, asynchronous=False)

    def get_user_notifications(
        self,
        user_id,
        page: int = 1,
        limit: int = 20,
        read: bool | None = None,
        notification_type: str | None = None,
        event_key: str | None = None,
    ) -> NotificationPage:
        return self.records.page_for_user(
            user_id,
            page=page,
            limit=limit,
            read=read,
            notification_type=notification_type,
            event_key=event_key,
        )

    def get_all_notifications(
        self,
        page: int = 1,
        limit: int = 20,
        user_id=None,
        read: bool | None = None,
        notification_type: str | None = None,
        event_key: str | None = None,
    ) -> NotificationPage:
        """Admin listing across all users."""
        return self.records.page_all(
            page=page,
            limit=limit,
            user_id=user_id,
            read=read,
            notification_type=notification_type,
            event_key=event_key,
        )

    def get_unread_count(self, user_id) -> int:
        return self.records.unread_count(user_id)

    def get_recent_notifications(self, user_id, limit: int = 5) -> list[NotificationRecord]:
        return self.records.recent_for_user(user_id, limit=limit)

    def get_notification(self, notification_id, user_id=None) -> NotificationRecord:
        return self.records.get_for_user(notification_id, user_id)

    def delete_notification(self, notification_id, user_id=None) -> None:
        current_domain.process(
            DeleteNotification(notification_id=str(notification_id), user_id=user_id),
            asynchronous=False,
        )

    def delete_user_notifications(self, user_id, older_than_days: int | None = None) -> int:
        command = DeleteUserNotifications(user_id=str(user_id), older_than_days=older_than_days)
        return current_domain.process(command, asynchronous=False)

    def get_notification_stats(self, user_id=None) -> dict:
        stats = self.records.stats(user_id)
        if user_id is not None:
            stats["device_tokens"] = len(self.device_tokens.tokens_for(user_id))
        return stats

    def cleanup_old_notifications(self, older_than_days: int | None = None) -> int:
        days = self.settings.retention_days if older_than_days is None else older_than_days
        return current_domain.process(CleanupOldNotifications(older_than_days=days), asynchronous=False)

    # -------------------------------------------------------------------
    # Devices and topics
    # -------------------------------------------------------------------
    def register_token(self, user_id, token: str, platform: str | None = None, device_info: dict | None = None) -> str:
        command = RegisterDeviceToken(
            user_id=str(user_id),
            token=token,
            platform=platform,
            device_info=json.dumps(device_info) if device_info is not None else None,
        )
        return current_domain.process(command, asynchronous=False)

    def unregister_token(self, token: str, user_id=None) -> int:
        command = UnregisterDeviceToken(token=token, user_id=str(user_id) if user_id is not None else None)
        return current_domain.process(command, asynchronous=False)

    def cleanup_stale_tokens(self, days: int | None = None) -> int:
        return self.device_tokens.cleanup_stale(self.settings.stale_token_days if days is None else days)

    async def validate_token(self, token: str) -> bool:
        valid = await asyncio.to_thread(self.gateway.validate_token, token)
        logger.info("Device token validated", token=mask_token(token), valid=valid)
        return valid

    async def subscribe_to_topic(self, tokens, topic: str) -> TopicManagementResult:
        result = await asyncio.to_thread(self.gateway.subscribe_to_topic, list(tokens), topic)
        logger.info(
            "Tokens subscribed to topic", topic=topic, succeeded=result.success_count, failed=result.failure_count
        )
        return result

    async def unsubscribe_from_topic(self, tokens, topic: str) -> TopicManagementResult:
        result = await asyncio.to_thread(self.gateway.unsubscribe_from_topic, list(tokens), topic)
        logger.info(
            "Tokens unsubscribed from topic", topic=topic, succeeded=result.success_count, failed=result.failure_count
        )
        return result

    # -------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------
    def _record(self, user_id: str, event_key: str, content: NotificationContent) -> NotificationRecord:
        record = NotificationRecord.create(
            user_id=user_id,
            title=content.title,
            body=content.body,
            notification_type=content.notification_type,
            action_url=content.action_url,
            icon_url=content.icon_url,
            image_url=content.image_url,
            data=content.data,
            event_key=event_key,
        )
        self.records.add(record)
        return record

    def _in_app_eligible(self, user_id: str, event_key: str, notification_type: str) -> bool:
        try:
            decision = self.resolver.explain(user_id, event_key, notification_type, channels=[Channel.IN_APP])
        except Exception as exc:
            logger.warning("Eligibility check failed", user_id=user_id, event_key=event_key, error=str(exc))
            return False
        return decision[Channel.IN_APP].permits

    def _settle(self, report: DispatchReport, record: NotificationRecord | None) -> None:
        """Apply fan-out feedback: prune dead tokens and stamp the record."""
        if report.tokens_to_prune:
            self.device_tokens.prune_invalid(report.tokens_to_prune)

        if record is not None and report.success_count:
            record.mark_sent(
                sent_at=datetime.now(UTC),
                delivered=report.success_count,
                failed=report.failure_count,
            )
            self.records.add(record)

    @staticmethod
    def _push_payload(content: NotificationContent, event_key, record) -> PushPayload:
        data = dict(content.data)
        data["type"] = content.notification_type
        if event_key:
            data["event_key"] = event_key
        if record is not None:
            data["notification_id"] = str(record.id)
        if content.action_url:
            data["action_url"] = content.action_url

        return PushPayload.create(
            title=content.title,
            body=content.body,
            icon=content.icon_url,
            image=content.image_url,
            click_action=content.action_url,
            data=data,
        )

    @staticmethod
    def _final_state(record, report) -> DeliveryState:
        if report is not None:
            if report.failure_count == 0:
                return DeliveryState.DELIVERED
            return DeliveryState.PARTIALLY_DELIVERED
        if record is not None:
            return DeliveryState.RECORDED_ONLY
        return DeliveryState.SUPPRESSED
