"""Push fan-out — deliver one payload to many device tokens concurrently.

Attempts run on the dispatcher's own worker pool (the gateway API is
blocking). The pool has ``max_concurrency`` workers, so a call that outlives
its timeout keeps holding a worker and the cap still holds for hung sends.
Each attempt is isolated: its failure, timeout or crash becomes an outcome
and never touches the other tokens.
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

import structlog

from messaging.channel.push_port import PushGateway, PushGatewayError, PushPayload, is_permanent_error
from messaging.utils.logging import mask_token

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class TokenOutcome:
    token: str
    success: bool
    message_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None

    @property
    def permanent(self) -> bool:
        """Whether the token should be dropped from the registry."""
        return not self.success and is_permanent_error(self.error_code)


@dataclass(frozen=True)
class DispatchReport:
    """Aggregated result of a fan-out. ``outcomes`` follow the input token order."""

    outcomes: list[TokenOutcome] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.success)

    @property
    def failure_count(self) -> int:
        return len(self.outcomes) - self.success_count

    @property
    def tokens_to_prune(self) -> list[str]:
        return [outcome.token for outcome in self.outcomes if outcome.permanent]


class PushDispatcher:
    def __init__(self, gateway: PushGateway, max_concurrency: int = 10, send_timeout: float = 10.0) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.gateway = gateway
        self.max_concurrency = max_concurrency
        self.send_timeout = send_timeout
        self._executor = ThreadPoolExecutor(max_workers=max_concurrency, thread_name_prefix="push-send")

    def shutdown(self, wait: bool = False) -> None:
        """Release the worker pool. Calls still in flight finish on their own."""
        self._executor.shutdown(wait=wait, cancel_futures=True)

    async def send_all(self, tokens, payload: PushPayload) -> DispatchReport:
        """Send ``payload`` to every distinct token and wait for all attempts."""
        unique_tokens = list(dict.fromkeys(token for token in tokens if token))
        if not unique_tokens:
            return DispatchReport()

        semaphore = asyncio.Semaphore(self.max_concurrency)
        outcomes = await asyncio.gather(*(self._attempt(semaphore, token, payload) for token in unique_tokens))
        report = DispatchReport(outcomes=list(outcomes))

        logger.info(
            "Push fan-out finished",
            tokens=len(unique_tokens),
            succeeded=report.success_count,
            failed=report.failure_count,
            to_prune=len(report.tokens_to_prune),
        )
        return report

    async def _attempt(self, semaphore: asyncio.Semaphore, token: str, payload: PushPayload) -> TokenOutcome:
        loop = asyncio.get_running_loop()
        async with semaphore:
            try:
                message_id = await asyncio.wait_for(
                    loop.run_in_executor(self._executor, self.gateway.send, token, payload),
                    timeout=self.send_timeout,
                )
            except TimeoutError:
                logger.warning("Push attempt timed out", token=mask_token(token), timeout=self.send_timeout)
                return TokenOutcome(token=token, success=False, error_code="timeout", error_message="Send timed out")
            except PushGatewayError as exc:
                log = logger.info if is_permanent_error(exc.code) else logger.warning
                log("Push attempt rejected", token=mask_token(token), code=exc.code, error=exc.message)
                return TokenOutcome(token=token, success=False, error_code=exc.code, error_message=exc.message)
            except Exception as exc:
                logger.warning("Push attempt failed", token=mask_token(token), error=str(exc))
                return TokenOutcome(token=token, success=False, error_code="unknown-error", error_message=str(exc))

        return TokenOutcome(token=token, success=True, message_id=message_id)
