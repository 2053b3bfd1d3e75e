"""Device token commands + handlers — register and unregister push tokens."""

import structlog
from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from messaging.device.device_token import DeviceToken
from messaging.domain import messaging
from messaging.shared.json_fields import load_json
from messaging.utils.logging import mask_token

logger = structlog.get_logger(__name__)


@messaging.command(part_of="DeviceToken")
class RegisterDeviceToken:
    user_id: Identifier(required=True)
    token: String(required=True, max_length=4096)
    platform: String(max_length=20)
    device_info: Text()  # JSON map


@messaging.command(part_of="DeviceToken")
class UnregisterDeviceToken:
    """Remove a token; without ``user_id`` it is removed for every user."""

    token: String(required=True, max_length=4096)
    user_id: Identifier()


@messaging.command_handler(part_of=DeviceToken)
class DeviceRegistrationHandler:
    @handle(RegisterDeviceToken)
    def register(self, command: RegisterDeviceToken):
        repo = current_domain.repository_for(DeviceToken)
        device_info = load_json(command.device_info, "device_info", dict) if command.device_info else None

        registration = repo.find(command.user_id, command.token)
        if registration is None:
            registration = DeviceToken.register(
                user_id=str(command.user_id),
                token=command.token,
                platform=command.platform,
                device_info=device_info,
            )
        else:
            registration.refresh(platform=command.platform, device_info=device_info)
        repo.add(registration)

        logger.info(
            "Device token registered",
            user_id=str(command.user_id),
            token=mask_token(command.token),
            platform=command.platform,
        )
        return str(registration.id)

    @handle(UnregisterDeviceToken)
    def unregister(self, command: UnregisterDeviceToken):
        repo = current_domain.repository_for(DeviceToken)
        if command.user_id:
            removed = int(repo.remove_by_user_and_token(command.user_id, command.token))
        else:
            removed = repo.remove_by_token(command.token)

        logger.info("Device token unregistered", token=mask_token(command.token), removed=removed)
        return removed
