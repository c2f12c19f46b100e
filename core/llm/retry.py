"""
Retry policy for AI provider calls.

Only rate limiting (429), server errors (5xx), and connection resets are
retried. Every other failure surfaces on the first attempt.
"""
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from config.models import RetryConfig
from utils.errors import ProviderError
from utils.logger import logger

T = TypeVar("T")


def is_retryable_status(status_code: Optional[int]) -> bool:
    return status_code is not None and (status_code == 429 or 500 <= status_code < 600)


def is_connection_reset(exc: BaseException) -> bool:
    """True for a peer reset, whether raised directly or wrapped by httpx."""
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, ConnectionResetError):
            return True
        if isinstance(current, httpx.NetworkError) and "reset" in str(current).lower():
            return True
        current = current.__cause__ or current.__context__
    return False


def _should_retry(exc: BaseException) -> bool:
    return isinstance(exc, ProviderError) and exc.retryable


def _log_retry(state: RetryCallState) -> None:
    exc = state.outcome.exception() if state.outcome else None
    delay = state.next_action.sleep if state.next_action else 0
    logger.warning(f"Provider call failed (attempt {state.attempt_number}), retrying in {delay:.1f}s: {exc}")


def build_retrying(config: RetryConfig) -> AsyncRetrying:
    """
    Create the tenacity controller for one provider call.

    Delays grow as initial * multiplier**n, capped at max_delay, with up to
    `jitter_sec` of random delay added each time.
    """
    return AsyncRetrying(
        stop=stop_after_attempt(config.max_attempts),
        wait=wait_exponential_jitter(
            multiplier=config.initial_delay_sec,
            max=config.max_delay_sec,
            exp_base=config.multiplier,
            jitter=config.jitter_sec,
        ),
        retry=retry_if_exception(_should_retry),
        before_sleep=_log_retry,
        reraise=True,
    )


async def call_with_retry(config: RetryConfig, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
    """Await `fn(*args, **kwargs)` under the retry policy, re-raising the last error."""
    return await build_retrying(config)(fn, *args, **kwargs)
