"""Retry utilities for handling transient failures.

Provides a function and a decorator for retrying async operations with
exponential backoff. Only failures that look transient (network errors,
timeouts, throttling, 5xx responses) are retried; anything else is raised
on the first attempt so that validation and permission errors fail fast.

Key Exports:
    RetryPolicy: Attempt bound and backoff parameters.
    retry_with_backoff: Run a zero-argument coroutine function with retries.
    async_retry: Decorator form of ``retry_with_backoff``.
    is_retryable_error: Decide whether a failure is worth retrying.

Example:
    >>> from issue_triage.utils.retry import retry_with_backoff
    >>>
    >>> async def post():
    ...     await git.add_comment(42, "Thanks for the report!")
    >>>
    >>> await retry_with_backoff(post, RetryPolicy(max_retries=2))

Backoff Formula:
    delay = min(base_delay * 2 ** attempt, max_delay)
    For base_delay=1.0: 1s, 2s, 4s, 8s, ...
"""

import asyncio
import functools
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

import httpx
import structlog
from github import GithubException, RateLimitExceededException

from issue_triage.exceptions import ExternalServiceError, ProviderConnectionError, RateLimitError

log = structlog.get_logger(__name__)

T = TypeVar("T")

DEFAULT_RETRYABLE_MARKERS: tuple[str, ...] = (
    "ThrottlingException",
    "ServiceUnavailable",
    "ECONNRESET",
    "ETIMEDOUT",
)

RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})


def is_retryable_error(
    error: BaseException,
    markers: tuple[str, ...] = DEFAULT_RETRYABLE_MARKERS,
) -> bool:
    """Return True when ``error`` is likely to succeed on a later attempt.

    Args:
        error: The failure raised by the operation.
        markers: Substrings that mark an error as transient when found in
            its message or class name.
    """
    if isinstance(error, (httpx.TransportError, ConnectionError, TimeoutError)):
        return True
    if isinstance(error, (RateLimitExceededException, RateLimitError, ProviderConnectionError)):
        return True
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code in RETRYABLE_STATUS_CODES
    if isinstance(error, GithubException):
        return error.status in RETRYABLE_STATUS_CODES
    if isinstance(error, ExternalServiceError) and error.status_code is not None:
        return error.status_code in RETRYABLE_STATUS_CODES

    text = f"{type(error).__name__} {error}"
    return any(marker in text for marker in markers)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff.

    Attributes:
        max_retries: Retries after the first attempt (0 disables retrying).
        base_delay: Delay in seconds before the first retry.
        max_delay: Upper bound for any single delay.
        retryable_markers: Extra substrings that mark an error as transient.
    """

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    retryable_markers: tuple[str, ...] = DEFAULT_RETRYABLE_MARKERS

    def delay_for(self, attempt: int) -> float:
        """Delay before retrying after the zero-based ``attempt`` failed."""
        return min(self.base_delay * (2**attempt), self.max_delay)

    def is_retryable(self, error: BaseException) -> bool:
        return is_retryable_error(error, self.retryable_markers)


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    *,
    operation_name: str | None = None,
) -> T:
    """Run ``operation`` and retry transient failures with backoff.

    Args:
        operation: Zero-argument coroutine function to invoke.
        policy: Retry bounds; defaults to ``RetryPolicy()``.
        operation_name: Name used in log events (defaults to the callable's name).

    Returns:
        Whatever ``operation`` returns on its first successful attempt.

    Raises:
        The first non-retryable exception, or the last exception once
        ``policy.max_retries`` retries are exhausted.
    """
    policy = policy or RetryPolicy()
    name = operation_name or getattr(operation, "__name__", "operation")
    total_attempts = policy.max_retries + 1

    for attempt in range(total_attempts):
        try:
            return await operation()
        except Exception as e:
            if not policy.is_retryable(e):
                log.error("retry_non_retryable", operation=name, attempt=attempt + 1, error=str(e))
                raise

            if attempt == total_attempts - 1:
                log.error("retry_exhausted", operation=name, attempts=total_attempts, error=str(e))
                raise

            delay = policy.delay_for(attempt)
            log.warning(
                "retry_attempt",
                operation=name,
                attempt=attempt + 1,
                max_attempts=total_attempts,
                delay=delay,
                error=str(e),
            )
            await asyncio.sleep(delay)

    # range() above always runs at least once and either returns or raises
    raise RuntimeError("Retry logic error")


def async_retry(
    policy: RetryPolicy | None = None,
) -> Callable[[Callable[..., Awaitable[Any]]], Callable[..., Awaitable[Any]]]:
    """Decorator for async functions with exponential backoff retry logic.

    Example:
        >>> @async_retry(RetryPolicy(max_retries=5, base_delay=0.5))
        ... async def fetch_repo():
        ...     return await client.get_repo()
    """

    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            return await retry_with_backoff(
                lambda: func(*args, **kwargs),
                policy,
                operation_name=func.__name__,
            )

        return wrapper

    return decorator
