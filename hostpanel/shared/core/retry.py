"""
Retry Logic with Exponential Backoff

Pluggable retry policy for provider calls. Callers opt in by passing a
RetryManager; domain services (billing, suspension) never retry on their own.
Only idempotent requests may go through it.
"""
import asyncio
from typing import Any, Awaitable, Callable, Optional, TypeVar
import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from hostpanel.shared.core.exceptions import ProviderRequestError

logger = structlog.get_logger()
T = TypeVar('T')


def _is_transient_provider_error(exc: BaseException) -> bool:
    """Transport failures, throttling and 5xx are worth another attempt; 4xx never."""
    if not isinstance(exc, ProviderRequestError):
        return True
    status = exc.provider_status
    return status is None or status == 429 or status >= 500


RETRY_CONFIGS: dict[str, dict[str, Any]] = {
    "provider_api": {
        "max_attempts": 3,
        "min_wait": 1.0,
        "max_wait": 10.0,
        "multiplier": 2.0,
        "exceptions": (ProviderRequestError, ConnectionError, asyncio.TimeoutError),
        "predicate": _is_transient_provider_error,
    },
}


class RetryManager:
    """Manages retry logic with configurable backoff strategies."""

    def __init__(
        self,
        operation_type: str = "provider_api",
        max_attempts: Optional[int] = None,
        wait: Optional[wait_base] = None,
    ):
        self.operation_type = operation_type
        self.config = dict(RETRY_CONFIGS[operation_type])
        if max_attempts is not None:
            self.config["max_attempts"] = max_attempts
        self._wait = wait or wait_exponential(
            multiplier=self.config["multiplier"],
            min=self.config["min_wait"],
            max=self.config["max_wait"],
        )

    @property
    def max_attempts(self) -> int:
        return int(self.config["max_attempts"])

    def should_retry(self, exc: BaseException) -> bool:
        if not isinstance(exc, self.config["exceptions"]):
            return False
        predicate = self.config.get("predicate")
        return bool(predicate(exc)) if predicate else True

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "operation_failed_will_retry",
            operation_type=self.operation_type,
            attempt=retry_state.attempt_number,
            max_attempts=self.max_attempts,
            error=str(exc),
            error_type=type(exc).__name__,
        )

    async def execute_with_retry(
        self, coro: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any
    ) -> T:
        """Execute a coroutine function with retry logic. The last error is re-raised."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self._wait,
            retry=retry_if_exception(self.should_retry),
            before_sleep=self._log_retry,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    result = await coro(*args, **kwargs)
                outcome = attempt.retry_state.outcome
                if outcome is None or outcome.failed:
                    continue
                if attempt.retry_state.attempt_number > 1:
                    logger.info(
                        "operation_succeeded_after_retry",
                        operation_type=self.operation_type,
                        attempt=attempt.retry_state.attempt_number,
                    )
                return result
        except Exception as e:
            if self.should_retry(e):
                logger.error(
                    "operation_failed_all_retries_exhausted",
                    operation_type=self.operation_type,
                    total_attempts=self.max_attempts,
                    error=str(e),
                    error_type=type(e).__name__,
                )
            raise
        raise RuntimeError("Unexpected retry exhaustion")  # pragma: no cover
