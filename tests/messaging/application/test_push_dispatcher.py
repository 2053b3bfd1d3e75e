"""Tests for concurrent push fan-out and per-token outcome isolation."""

import asyncio
import threading
import time

import pytest

from messaging.channel.fake_push import FakePushGateway
from messaging.channel.push_port import PushPayload
from messaging.delivery.dispatcher import DispatchReport, PushDispatcher, TokenOutcome

PAYLOAD = PushPayload.create(title="Shipped", body="Your order is on its way", data={"order_id": "1001"})


class CrashingGateway(FakePushGateway):
    """Raises an unexpected exception for one token."""

    def __init__(self, bad_token):
        super().__init__()
        self.bad_token = bad_token

    def send(self, token, payload):
        if token == self.bad_token:
            raise RuntimeError("connection reset")
        return super().send(token, payload)


class CountingGateway(FakePushGateway):
    """Tracks the highest number of sends in flight at once."""

    def __init__(self, delay=0.02):
        super().__init__()
        self.delay = delay
        self._lock = threading.Lock()
        self.in_flight = 0
        self.peak = 0

    def send(self, token, payload):
        with self._lock:
            self.in_flight += 1
            self.peak = max(self.peak, self.in_flight)
        try:
            time.sleep(self.delay)
            return super().send(token, payload)
        finally:
            with self._lock:
                self.in_flight -= 1


@pytest.fixture
def gateway():
    return FakePushGateway()


# ---------------------------------------------------------------
# Empty input
# ---------------------------------------------------------------
class TestEmptyFanOut:
    async def test_no_tokens_is_a_noop(self, gateway):
        report = await PushDispatcher(gateway).send_all([], PAYLOAD)

        assert report.success_count == 0
        assert report.failure_count == 0
        assert report.tokens_to_prune == []
        assert gateway.sent_pushes == []

    async def test_blank_tokens_ignored(self, gateway):
        report = await PushDispatcher(gateway).send_all(["", None], PAYLOAD)
        assert report.outcomes == []


# ---------------------------------------------------------------
# Partial failure
# ---------------------------------------------------------------
class TestPartialFailure:
    async def test_permanent_failure_isolated(self, gateway):
        gateway.fail_token("token2")

        report = await PushDispatcher(gateway).send_all(["token1", "token2", "token3"], PAYLOAD)

        assert report.success_count == 2
        assert report.failure_count == 1
        assert report.tokens_to_prune == ["token2"]
        assert report.outcomes[0].success is True
        assert report.outcomes[2].success is True
        assert sorted(gateway.sent_tokens) == ["token1", "token3"]

    async def test_transient_failure_not_pruned(self, gateway):
        gateway.fail_token("token1", code="server-unavailable")

        report = await PushDispatcher(gateway).send_all(["token1"], PAYLOAD)

        assert report.failure_count == 1
        assert report.tokens_to_prune == []
        assert report.outcomes[0].error_code == "server-unavailable"

    async def test_unexpected_exception_becomes_outcome(self):
        gateway = CrashingGateway("token2")

        report = await PushDispatcher(gateway).send_all(["token1", "token2"], PAYLOAD)

        assert report.success_count == 1
        assert report.outcomes[1].error_code == "unknown-error"
        assert report.outcomes[1].error_message == "connection reset"
        assert report.tokens_to_prune == []

    async def test_timeout_is_transient(self, gateway):
        gateway.delay_token("slow", 0.5)

        report = await PushDispatcher(gateway, send_timeout=0.05).send_all(["slow", "fast"], PAYLOAD)

        slow, fast = report.outcomes
        assert slow.success is False
        assert slow.error_code == "timeout"
        assert slow.permanent is False
        assert fast.success is True


# ---------------------------------------------------------------
# Ordering, de-duplication and concurrency
# ---------------------------------------------------------------
class TestFanOutShape:
    async def test_outcomes_follow_input_order(self, gateway):
        gateway.delay_token("a", 0.05)
        report = await PushDispatcher(gateway).send_all(["a", "b", "c"], PAYLOAD)
        assert [outcome.token for outcome in report.outcomes] == ["a", "b", "c"]

    async def test_duplicate_tokens_sent_once(self, gateway):
        report = await PushDispatcher(gateway).send_all(["a", "b", "a"], PAYLOAD)
        assert [outcome.token for outcome in report.outcomes] == ["a", "b"]
        assert sorted(gateway.sent_tokens) == ["a", "b"]

    async def test_concurrency_bounded(self):
        gateway = CountingGateway()

        report = await PushDispatcher(gateway, max_concurrency=2).send_all([f"t{i}" for i in range(8)], PAYLOAD)

        assert report.success_count == 8
        assert gateway.peak <= 2

    async def test_concurrency_bounded_when_sends_hang(self):
        gateway = CountingGateway(delay=0.4)
        dispatcher = PushDispatcher(gateway, max_concurrency=2, send_timeout=0.05)

        report = await dispatcher.send_all([f"t{i}" for i in range(8)], PAYLOAD)
        # Calls abandoned on timeout are still running
        await asyncio.sleep(0.5)

        assert report.failure_count == 8
        assert {outcome.error_code for outcome in report.outcomes} == {"timeout"}
        assert gateway.peak <= 2
        dispatcher.shutdown(wait=True)

    async def test_payload_reaches_gateway(self, gateway):
        await PushDispatcher(gateway).send_all(["a"], PAYLOAD)
        assert gateway.sent_pushes[0]["data"] == {"order_id": "1001"}

    def test_rejects_zero_concurrency(self, gateway):
        with pytest.raises(ValueError):
            PushDispatcher(gateway, max_concurrency=0)


class TestReport:
    def test_counts_from_outcomes(self):
        report = DispatchReport(
            outcomes=[
                TokenOutcome(token="a", success=True, message_id="m1"),
                TokenOutcome(token="b", success=False, error_code="invalid-registration-token"),
                TokenOutcome(token="c", success=False, error_code="quota-exceeded"),
            ]
        )
        assert report.success_count == 1
        assert report.failure_count == 2
        assert report.tokens_to_prune == ["b"]
