"""
Retry Policy Module

Wraps every remote call with bounded retries and exponential backoff with
jitter. Failures are classified by an HTTP-like status code:

- 429 and 5xx are retried
- 400, 401, 403 and 404 are terminal and re-raised immediately
- anything else, including errors without a status code (network errors),
  is retried on the assumption it may be transient

When the attempts run out the last error is re-raised unchanged so callers
can inspect the original cause.
"""
import asyncio
import random
from typing import Any, Awaitable, Callable, Optional

from loguru import logger
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt


TERMINAL_STATUS_CODES = frozenset({400, 401, 403, 404})
MAX_LOGGED_MESSAGE = 200


def _as_status(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return None


def extract_status_code(error: BaseException) -> Optional[int]:
    """Read the HTTP-like status of an error.

    Looks at a direct ``status_code``/``status``/``code`` attribute first, then
    at ``error.response.status``/``error.response.status_code``.
    """
    for attr in ("status_code", "status", "code"):
        status = _as_status(getattr(error, attr, None))
        if status is not None:
            return status

    response = getattr(error, "response", None)
    if response is not None:
        for attr in ("status", "status_code"):
            status = _as_status(getattr(response, attr, None))
            if status is not None:
                return status
    return None


def is_retryable(error: BaseException) -> bool:
    """Everything except the terminal client errors is retryable"""
    status = extract_status_code(error)
    return status not in TERMINAL_STATUS_CODES


def _truncate(message: str) -> str:
    if len(message) <= MAX_LOGGED_MESSAGE:
        return message
    return message[:MAX_LOGGED_MESSAGE] + "..."


class RetryPolicy:
    """Bounded exponential backoff with jitter, built on tenacity.

    ``sleep`` and ``rng`` are injectable so tests never wait on the clock.
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        jitter_ratio: float = 0.5,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ):
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.jitter_ratio = jitter_ratio
        self._sleep = sleep
        self._rng = rng

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def backoff(self, attempt: int) -> float:
        """Delay before the retry following failed attempt number ``attempt`` (1-based)"""
        jitter = self._rng() * self.jitter_ratio * self.base_delay
        return self.base_delay * (2 ** (attempt - 1)) + jitter

    def _wait(self, retry_state: RetryCallState) -> float:
        return self.backoff(retry_state.attempt_number)

    def _log_retry(self, name: str, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception()
        logger.warning(
            f"{name} failed on attempt {retry_state.attempt_number}/{self.max_attempts}: "
            f"status={extract_status_code(error)} message={_truncate(str(error))}. "
            f"Retrying in {retry_state.next_action.sleep:.2f}s"
        )

    async def call(self, operation: Callable[..., Awaitable[Any]], *args, description: Optional[str] = None, **kwargs) -> Any:
        """Await ``operation(*args, **kwargs)`` under this policy"""
        name = description or getattr(operation, "__name__", "API call")
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self._wait,
            retry=retry_if_exception(is_retryable),
            sleep=self._sleep,
            before_sleep=lambda state: self._log_retry(name, state),
            reraise=True,
        )
        try:
            return await retrying(operation, *args, **kwargs)
        except Exception as e:
            status = extract_status_code(e)
            if is_retryable(e):
                logger.error(
                    f"{name} failed after {self.max_attempts} attempt(s): "
                    f"status={status} message={_truncate(str(e))}"
                )
            else:
                logger.error(
                    f"{name} hit a non-retryable error (status {status}): {_truncate(str(e))}"
                )
            raise
