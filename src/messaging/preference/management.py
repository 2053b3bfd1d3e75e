"""Preference management commands + handlers — upserts, bulk edits, quiet hours."""

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Boolean, Identifier, String, Text
from protean.utils.globals import current_domain

from messaging.domain import messaging
from messaging.preference.preference import PreferenceEntry, check_preference_values
from messaging.shared.enums import Channel, Frequency, NotificationType
from messaging.shared.json_fields import load_json

logger = structlog.get_logger(__name__)

_ENTRY_FIELDS = (
    "enabled",
    "frequency",
    "quiet_hours_start",
    "quiet_hours_end",
    "quiet_hours_timezone",
    "settings",
)


@messaging.command(part_of="PreferenceEntry")
class UpsertPreference:
    """Create or update the preference of one (user, type, channel) key.

    Omitted attributes keep their stored value (or the default on creation).
    """

    user_id: Identifier(required=True)
    notification_type: String(required=True, max_length=20)
    channel: String(required=True, max_length=20)
    enabled: Boolean()
    frequency: String(max_length=20)
    quiet_hours_start: String(max_length=5)
    quiet_hours_end: String(max_length=5)
    quiet_hours_timezone: String(max_length=64)
    clear_quiet_hours: Boolean(default=False)
    settings: Text()  # JSON map


@messaging.command(part_of="PreferenceEntry")
class BulkUpsertPreferences:
    """Upsert many entries of one user, all or nothing."""

    user_id: Identifier(required=True)
    entries: Text(required=True)  # JSON list of {notification_type, channel, enabled, ...}


@messaging.command(part_of="PreferenceEntry")
class InitializeUserPreferences:
    """Store an enabled, immediate entry for every (type, channel) the user lacks."""

    user_id: Identifier(required=True)


@messaging.command(part_of="PreferenceEntry")
class SetUserQuietHours:
    """Apply (or clear, when start/end are empty) a window to a user's stored entries."""

    user_id: Identifier(required=True)
    channel: String(max_length=20)  # Restrict to one channel
    start: String(max_length=5)
    end: String(max_length=5)
    timezone: String(max_length=64)


@messaging.command(part_of="PreferenceEntry")
class ToggleNotificationType:
    """Enable or disable every channel of one notification type for a user."""

    user_id: Identifier(required=True)
    notification_type: String(required=True, max_length=20)
    enabled: Boolean(required=True)


@messaging.command(part_of="PreferenceEntry")
class DeletePreference:
    preference_id: Identifier(required=True)


def _pending_changes(raw: dict) -> dict:
    """Entry attributes actually supplied in ``raw``."""
    return {field: raw[field] for field in _ENTRY_FIELDS if field in raw}


def _apply(repo, user_id, notification_type, channel, changes: dict) -> tuple[PreferenceEntry, bool]:
    """Create or update one entry. Returns the entry and whether it was created."""
    entry = repo.find_entry(user_id, notification_type, channel)
    if entry is None:
        entry = PreferenceEntry.create(
            user_id=user_id,
            notification_type=notification_type,
            channel=channel,
            enabled=True if changes.get("enabled") is None else changes["enabled"],
            frequency=changes.get("frequency") or Frequency.IMMEDIATE.value,
            quiet_hours_start=changes.get("quiet_hours_start"),
            quiet_hours_end=changes.get("quiet_hours_end"),
            quiet_hours_timezone=changes.get("quiet_hours_timezone"),
            settings=changes.get("settings"),
        )
        created = True
    else:
        entry.update(**changes)
        created = False

    repo.add(entry)
    return entry, created


@messaging.command_handler(part_of=PreferenceEntry)
class ManagePreferencesHandler:
    @handle(UpsertPreference)
    def upsert(self, command: UpsertPreference):
        repo = current_domain.repository_for(PreferenceEntry)

        changes = {}
        if command.enabled is not None:
            changes["enabled"] = command.enabled
        if command.frequency:
            changes["frequency"] = command.frequency
        if command.clear_quiet_hours:
            changes.update(quiet_hours_start=None, quiet_hours_end=None, quiet_hours_timezone=None)
        else:
            for field in ("quiet_hours_start", "quiet_hours_end", "quiet_hours_timezone"):
                value = getattr(command, field)
                if value:
                    changes[field] = value
        if command.settings:
            changes["settings"] = load_json(command.settings, "settings", dict)

        entry, created = _apply(
            repo,
            str(command.user_id),
            command.notification_type,
            command.channel,
            changes,
        )

        logger.info(
            "Preference upserted",
            user_id=str(command.user_id),
            notification_type=command.notification_type,
            channel=command.channel,
            created=created,
        )
        return str(entry.id)

    @handle(BulkUpsertPreferences)
    def bulk_upsert(self, command: BulkUpsertPreferences):
        repo = current_domain.repository_for(PreferenceEntry)
        raw_entries = load_json(command.entries, "entries", list)

        # Validate the whole batch before writing anything. Later duplicates of
        # a key override earlier ones.
        batch: dict[tuple[str, str], dict] = {}
        for index, raw in enumerate(raw_entries):
            try:
                if not isinstance(raw, dict):
                    raise ValidationError({"entry": ["Expected an object"]})
                if not raw.get("notification_type") or not raw.get("channel"):
                    raise ValidationError({"entry": ["notification_type and channel are required"]})
                check_preference_values(
                    notification_type=raw["notification_type"],
                    channel=raw["channel"],
                    frequency=raw.get("frequency"),
                    quiet_hours_start=raw.get("quiet_hours_start"),
                    quiet_hours_end=raw.get("quiet_hours_end"),
                    quiet_hours_timezone=raw.get("quiet_hours_timezone"),
                )
            except ValidationError as exc:
                errors = [f"{field}: {message}" for field, messages in exc.messages.items() for message in messages]
                raise ValidationError({f"entries[{index}]": errors}) from exc

            batch[(raw["notification_type"], raw["channel"])] = _pending_changes(raw)

        user_id = str(command.user_id)
        for (notification_type, channel), changes in batch.items():
            _apply(repo, user_id, notification_type, channel, changes)

        logger.info("Preferences bulk upserted", user_id=user_id, count=len(batch))
        return len(batch)

    @handle(InitializeUserPreferences)
    def initialize(self, command: InitializeUserPreferences):
        repo = current_domain.repository_for(PreferenceEntry)
        user_id = str(command.user_id)
        existing = {(entry.notification_type, entry.channel) for entry in repo.entries_for(user_id)}

        created = 0
        for notification_type in NotificationType:
            for channel in Channel:
                if (notification_type.value, channel.value) in existing:
                    continue
                repo.add(
                    PreferenceEntry.create(
                        user_id=user_id,
                        notification_type=notification_type.value,
                        channel=channel.value,
                    )
                )
                created += 1

        logger.info("User preferences initialized", user_id=user_id, created=created)
        return created

    @handle(SetUserQuietHours)
    def set_quiet_hours(self, command: SetUserQuietHours):
        repo = current_domain.repository_for(PreferenceEntry)
        entries = repo.entries_for(str(command.user_id), channel=command.channel)

        for entry in entries:
            if command.start or command.end:
                entry.set_quiet_hours(command.start, command.end, command.timezone)
            else:
                entry.clear_quiet_hours()
            repo.add(entry)

        logger.info(
            "Quiet hours applied",
            user_id=str(command.user_id),
            channel=command.channel,
            start=command.start,
            end=command.end,
            updated=len(entries),
        )
        return len(entries)

    @handle(ToggleNotificationType)
    def toggle_type(self, command: ToggleNotificationType):
        repo = current_domain.repository_for(PreferenceEntry)
        check_preference_values(notification_type=command.notification_type)

        for channel in Channel:
            _apply(
                repo,
                str(command.user_id),
                command.notification_type,
                channel.value,
                {"enabled": command.enabled},
            )

        logger.info(
            "Notification type toggled",
            user_id=str(command.user_id),
            notification_type=command.notification_type,
            enabled=command.enabled,
        )

    @handle(DeletePreference)
    def delete(self, command: DeletePreference):
        repo = current_domain.repository_for(PreferenceEntry)
        entry = repo.get(str(command.preference_id))
        repo._dao.delete(entry)
