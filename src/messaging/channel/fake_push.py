"""Fake push gateway — records pushes in memory for development and tests."""

import time
from uuid import uuid4

from messaging.channel.push_port import (
    BatchResult,
    PushGateway,
    PushGatewayError,
    PushPayload,
    SendResponse,
    TopicManagementResult,
)


class FakePushGateway(PushGateway):
    """In-memory push gateway with per-token failure and latency injection."""

    def __init__(self):
        self.sent_pushes: list[dict] = []
        self.topic_messages: list[dict] = []
        self.subscriptions: dict[str, set[str]] = {}
        self._failures: dict[str, str] = {}
        self._delays: dict[str, float] = {}
        self.topic_failure: str | None = None

    # -------------------------------------------------------------------
    # Test configuration
    # -------------------------------------------------------------------
    def fail_token(self, token: str, code: str = "registration-token-not-registered"):
        """Make every send to ``token`` fail with ``code``."""
        self._failures[token] = code

    def delay_token(self, token: str, seconds: float):
        """Block for ``seconds`` before answering for ``token``."""
        self._delays[token] = seconds

    def fail_topics(self, code: str = "server-unavailable"):
        self.topic_failure = code

    def reset(self):
        self.sent_pushes.clear()
        self.topic_messages.clear()
        self.subscriptions.clear()
        self._failures.clear()
        self._delays.clear()
        self.topic_failure = None

    @property
    def sent_tokens(self) -> list[str]:
        return [push["token"] for push in self.sent_pushes]

    # -------------------------------------------------------------------
    # PushGateway
    # -------------------------------------------------------------------
    def send(self, token: str, payload: PushPayload) -> str:
        delay = self._delays.get(token)
        if delay:
            time.sleep(delay)

        code = self._failures.get(token)
        if code is not None:
            raise PushGatewayError(code, f"Push to token rejected: {code}")

        message_id = f"push-{uuid4().hex[:12]}"
        self.sent_pushes.append(
            {
                "message_id": message_id,
                "token": token,
                "title": payload.title,
                "body": payload.body,
                "data": dict(payload.data),
            }
        )
        return message_id

    def send_multicast(self, tokens: list[str], payload: PushPayload) -> BatchResult:
        responses = []
        for token in tokens:
            try:
                responses.append(SendResponse(token=token, success=True, message_id=self.send(token, payload)))
            except PushGatewayError as exc:
                responses.append(SendResponse(token=token, success=False, error=exc))
        return BatchResult(responses=responses)

    def send_to_topic(self, topic: str, payload: PushPayload) -> str:
        if self.topic_failure is not None:
            raise PushGatewayError(self.topic_failure, f"Topic send rejected: {self.topic_failure}")

        message_id = f"topic-{uuid4().hex[:12]}"
        self.topic_messages.append({"message_id": message_id, "topic": topic, "title": payload.title})
        return message_id

    def validate_token(self, token: str) -> bool:
        return bool(token) and token not in self._failures

    def subscribe_to_topic(self, tokens: list[str], topic: str) -> TopicManagementResult:
        return self._manage_topic(tokens, topic, subscribe=True)

    def unsubscribe_from_topic(self, tokens: list[str], topic: str) -> TopicManagementResult:
        return self._manage_topic(tokens, topic, subscribe=False)

    def _manage_topic(self, tokens, topic, subscribe) -> TopicManagementResult:
        members = self.subscriptions.setdefault(topic, set())
        errors = []
        for token in tokens:
            if token in self._failures:
                errors.append(self._failures[token])
            elif subscribe:
                members.add(token)
            else:
                members.discard(token)
        return TopicManagementResult(
            success_count=len(tokens) - len(errors),
            failure_count=len(errors),
            errors=errors,
        )
