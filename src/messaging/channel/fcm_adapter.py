"""Firebase Cloud Messaging push gateway.

Wraps ``firebase_admin.messaging``. The firebase app is created once at
process start (``FirebasePushGateway.from_credentials``) and handed to the
adapter; every call passes it explicitly.
"""

import firebase_admin
import structlog
from firebase_admin import credentials, exceptions
from firebase_admin import messaging as fcm

from messaging.channel.push_port import (
    BatchResult,
    PushGateway,
    PushGatewayError,
    PushPayload,
    SendResponse,
    TopicManagementResult,
)

logger = structlog.get_logger(__name__)

# FCM rejects multicasts larger than this
MAX_MULTICAST_TOKENS = 500


def _error_code(error: Exception) -> str:
    """Map a firebase-admin exception onto a provider-neutral error code."""
    if isinstance(error, fcm.UnregisteredError):
        return "registration-token-not-registered"
    if isinstance(error, exceptions.InvalidArgumentError) and "registration token" in str(error).lower():
        return "invalid-registration-token"
    if isinstance(error, fcm.SenderIdMismatchError):
        return "mismatched-credential"
    if isinstance(error, fcm.QuotaExceededError):
        return "message-rate-exceeded"
    if isinstance(error, fcm.ThirdPartyAuthError):
        return "third-party-auth-error"
    if isinstance(error, exceptions.UnavailableError):
        return "server-unavailable"
    if isinstance(error, exceptions.InternalError):
        return "internal-error"
    if isinstance(error, exceptions.FirebaseError):
        return str(error.code).lower().replace("_", "-")
    if isinstance(error, ValueError):
        return "invalid-argument"
    return "unknown-error"


def _gateway_error(error: Exception) -> PushGatewayError:
    return PushGatewayError(_error_code(error), str(error))


class FirebasePushGateway(PushGateway):
    """Production push gateway backed by firebase-admin."""

    def __init__(self, app: firebase_admin.App) -> None:
        self.app = app

    @classmethod
    def from_credentials(cls, credentials_path: str, name: str = "messaging") -> "FirebasePushGateway":
        """Initialise a named firebase app from a service-account JSON file."""
        cred = credentials.Certificate(credentials_path)
        app = firebase_admin.initialize_app(cred, name=name)
        logger.info("Firebase app initialized", app_name=name, project_id=app.project_id)
        return cls(app)

    # -------------------------------------------------------------------
    # Message construction
    # -------------------------------------------------------------------
    @staticmethod
    def _notification(payload: PushPayload) -> fcm.Notification:
        return fcm.Notification(title=payload.title, body=payload.body, image=payload.image)

    @staticmethod
    def _webpush(payload: PushPayload) -> fcm.WebpushConfig | None:
        if not payload.icon and not payload.click_action:
            return None

        # FCM only accepts HTTPS links for web push click-through
        fcm_options = None
        if payload.click_action and payload.click_action.startswith("https://"):
            fcm_options = fcm.WebpushFCMOptions(link=payload.click_action)

        return fcm.WebpushConfig(
            notification=fcm.WebpushNotification(icon=payload.icon),
            fcm_options=fcm_options,
        )

    def _message(self, payload: PushPayload, token=None, topic=None) -> fcm.Message:
        return fcm.Message(
            notification=self._notification(payload),
            data=payload.data or None,
            webpush=self._webpush(payload),
            token=token,
            topic=topic,
        )

    # -------------------------------------------------------------------
    # PushGateway
    # -------------------------------------------------------------------
    def send(self, token: str, payload: PushPayload) -> str:
        try:
            return fcm.send(self._message(payload, token=token), app=self.app)
        except (exceptions.FirebaseError, ValueError) as exc:
            raise _gateway_error(exc) from exc

    def send_multicast(self, tokens: list[str], payload: PushPayload) -> BatchResult:
        responses = []
        for start in range(0, len(tokens), MAX_MULTICAST_TOKENS):
            chunk = tokens[start : start + MAX_MULTICAST_TOKENS]
            message = fcm.MulticastMessage(
                tokens=chunk,
                notification=self._notification(payload),
                data=payload.data or None,
                webpush=self._webpush(payload),
            )
            try:
                batch = fcm.send_each_for_multicast(message, app=self.app)
            except (exceptions.FirebaseError, ValueError) as exc:
                raise _gateway_error(exc) from exc

            for token, response in zip(chunk, batch.responses, strict=True):
                if response.success:
                    responses.append(SendResponse(token=token, success=True, message_id=response.message_id))
                else:
                    responses.append(SendResponse(token=token, success=False, error=_gateway_error(response.exception)))

        return BatchResult(responses=responses)

    def send_to_topic(self, topic: str, payload: PushPayload) -> str:
        try:
            return fcm.send(self._message(payload, topic=topic), app=self.app)
        except (exceptions.FirebaseError, ValueError) as exc:
            raise _gateway_error(exc) from exc

    def validate_token(self, token: str) -> bool:
        probe = fcm.Message(data={"validation": "true"}, token=token)
        try:
            fcm.send(probe, dry_run=True, app=self.app)
        except (exceptions.FirebaseError, ValueError) as exc:
            error = _gateway_error(exc)
            if error.is_permanent or error.code == "invalid-argument":
                return False
            raise error from exc
        return True

    def subscribe_to_topic(self, tokens: list[str], topic: str) -> TopicManagementResult:
        try:
            response = fcm.subscribe_to_topic(tokens, topic, app=self.app)
        except (exceptions.FirebaseError, ValueError) as exc:
            raise _gateway_error(exc) from exc
        return self._topic_result(response)

    def unsubscribe_from_topic(self, tokens: list[str], topic: str) -> TopicManagementResult:
        try:
            response = fcm.unsubscribe_from_topic(tokens, topic, app=self.app)
        except (exceptions.FirebaseError, ValueError) as exc:
            raise _gateway_error(exc) from exc
        return self._topic_result(response)

    @staticmethod
    def _topic_result(response) -> TopicManagementResult:
        return TopicManagementResult(
            success_count=response.success_count,
            failure_count=response.failure_count,
            errors=[error.reason for error in response.errors],
        )
