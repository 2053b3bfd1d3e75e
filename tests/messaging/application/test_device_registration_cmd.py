"""Application tests for device token registration and pruning."""

from datetime import UTC, datetime, timedelta

import pytest
from protean import current_domain
from protean.exceptions import ValidationError

from messaging.device.device_token import DeviceToken
from messaging.device.registration import RegisterDeviceToken, UnregisterDeviceToken


def _repo():
    return current_domain.repository_for(DeviceToken)


def _register(user_id="user-1", token="tok-1", **values):
    return current_domain.process(RegisterDeviceToken(user_id=user_id, token=token, **values), asynchronous=False)


class TestRegisterDeviceToken:
    def test_malformed_device_info_rejected(self):
        with pytest.raises(ValidationError) as exc:
            _register(device_info="{not json")

        assert "device_info" in exc.value.messages
        assert _repo().tokens_for("user-1") == []

    def test_register_then_list(self):
        _register(token="tok-1")
        _register(token="tok-2")
        assert set(_repo().tokens_for("user-1")) == {"tok-1", "tok-2"}

    def test_reregistration_refreshes_without_duplicate(self):
        first_id = _register(platform="web")
        before = _repo().get(first_id).last_active_at

        second_id = _register(platform="android")

        assert first_id == second_id
        device = _repo().get(first_id)
        assert device.platform == "android"
        assert device.last_active_at >= before
        assert _repo().tokens_for("user-1") == ["tok-1"]

    def test_same_token_for_two_users(self):
        _register(user_id="user-1")
        _register(user_id="user-2")
        assert _repo().tokens_for("user-1") == ["tok-1"]
        assert _repo().tokens_for("user-2") == ["tok-1"]

    def test_most_recent_first(self):
        old_id = _register(token="tok-old")
        device = _repo().get(old_id)
        device.last_active_at = datetime.now(UTC) - timedelta(days=1)
        _repo().add(device)
        _register(token="tok-new")

        assert _repo().tokens_for("user-1") == ["tok-new", "tok-old"]


class TestUnregisterDeviceToken:
    def test_unregister_for_user(self):
        _register(user_id="user-1")
        _register(user_id="user-2")
        removed = current_domain.process(UnregisterDeviceToken(token="tok-1", user_id="user-1"), asynchronous=False)
        assert removed == 1
        assert _repo().tokens_for("user-1") == []
        assert _repo().tokens_for("user-2") == ["tok-1"]

    def test_unregister_everywhere(self):
        _register(user_id="user-1")
        _register(user_id="user-2")
        removed = current_domain.process(UnregisterDeviceToken(token="tok-1"), asynchronous=False)
        assert removed == 2

    def test_unknown_token_is_a_noop(self):
        assert current_domain.process(UnregisterDeviceToken(token="ghost"), asynchronous=False) == 0


class TestPruning:
    def test_prune_invalid_removes_tokens(self):
        _register(token="tok-1")
        _register(token="tok-2")
        assert _repo().prune_invalid(["tok-2", "never-registered"]) == 1
        assert _repo().tokens_for("user-1") == ["tok-1"]

    def test_prune_invalid_swallows_failures(self, monkeypatch):
        _register(token="tok-1")
        repo = _repo()

        def explode(token):
            raise RuntimeError("database unavailable")

        monkeypatch.setattr(repo, "remove_by_token", explode)
        assert repo.prune_invalid(["tok-1"]) == 0

    def test_cleanup_stale(self):
        stale_id = _register(token="tok-stale")
        device = _repo().get(stale_id)
        device.last_active_at = datetime.now(UTC) - timedelta(days=120)
        _repo().add(device)
        _register(token="tok-fresh")

        assert _repo().cleanup_stale(90) == 1
        assert _repo().tokens_for("user-1") == ["tok-fresh"]
