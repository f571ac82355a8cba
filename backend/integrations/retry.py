"""Status-classified retry with capped exponential backoff.

Wraps a zero-argument coroutine function. Failures carrying HTTP status
429 or 5xx are retried; anything else propagates unchanged on first
occurrence. A ``Retry-After`` header (seconds or HTTP-date) overrides the
computed backoff.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Awaitable, Callable, Optional, TypeVar

import httpx

from config import settings
from integrations.exceptions import RetryExhaustedError, ThrottlingError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryOutcome:
    """Telemetry for one ``execute_with_retry`` call.

    Pass an instance in to observe it after the call returns or raises;
    the same object is attached to ``RetryExhaustedError.outcome``.
    """

    attempts: int = 0
    total_delay_ms: float = 0.0
    last_status: Optional[int] = None
    last_delay_ms: Optional[float] = None
    delays_ms: list[float] = field(default_factory=list)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay_ms: float = 500
    max_delay_ms: Optional[float] = None

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        """Build the default policy from environment-level settings."""
        return cls(
            max_attempts=max(1, settings.CONNECTOR_MAX_RETRIES),
            base_delay_ms=settings.CONNECTOR_RETRY_BASE_DELAY_MS,
            max_delay_ms=settings.CONNECTOR_RETRY_MAX_DELAY_MS,
        )

    def backoff_delay_ms(self, attempt: int) -> float:
        """Delay after the ``attempt``-th failure (1-based): base * 2^(attempt-1), capped."""
        delay = self.base_delay_ms * (2 ** (attempt - 1))
        if self.max_delay_ms is not None:
            delay = min(delay, self.max_delay_ms)
        return delay


def parse_retry_after(value: Optional[str], now: Optional[datetime] = None) -> Optional[float]:
    """Convert a ``Retry-After`` header to milliseconds.

    Accepts delta-seconds (``"3"``) or an HTTP-date. Dates in the past
    yield 0. Unparseable values return ``None``.
    """
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        pass
    else:
        return max(seconds, 0.0) * 1000

    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return max((when - now).total_seconds() * 1000, 0.0)


def status_of(exc: BaseException) -> Optional[int]:
    """Extract an HTTP-status-like code from a failure, if it carries one."""
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    status = getattr(exc, "status_code", None)
    return status if isinstance(status, int) else None


def retry_after_of(exc: BaseException) -> Optional[str]:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.headers.get("retry-after")
    value = getattr(exc, "retry_after", None)
    return value if isinstance(value, str) else None


def is_retryable_status(status: Optional[int]) -> bool:
    return status is not None and (status == 429 or status >= 500)


async def execute_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    *,
    context: Optional[str] = None,
    outcome: Optional[RetryOutcome] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    provider_name: str = "",
) -> T:
    """Run ``operation`` until it succeeds, fails non-retryably, or the budget runs out.

    Args:
        operation: Zero-argument coroutine function to invoke.
        policy: Attempt/delay policy. Defaults to :meth:`RetryPolicy.from_settings`.
        context: Label used in log lines and exhaustion messages.
        outcome: Optional telemetry sink, filled in place.
        sleep: Awaitable sleep taking seconds, injectable for tests.

    Raises:
        ThrottlingError: Budget exhausted and the last status was 429.
        RetryExhaustedError: Budget exhausted on a 5xx.
        Exception: Any non-retryable failure, unchanged.
    """
    policy = policy or RetryPolicy.from_settings()
    outcome = outcome if outcome is not None else RetryOutcome()
    label = context or "operation"

    while True:
        outcome.attempts += 1
        try:
            return await operation()
        except Exception as exc:
            status = status_of(exc)
            if not is_retryable_status(status):
                raise
            outcome.last_status = status

            if outcome.attempts >= policy.max_attempts:
                error_cls = ThrottlingError if status == 429 else RetryExhaustedError
                reason = "rate limit exceeded" if status == 429 else "temporarily unavailable"
                logger.warning(
                    "%s: %s after %d attempt(s) (last status %s)",
                    label, reason, outcome.attempts, status,
                )
                raise error_cls(
                    f"{label} {reason} after {outcome.attempts} attempt(s)",
                    outcome=outcome,
                    last_error=exc,
                    provider_name=provider_name,
                ) from exc

            retry_after_ms = parse_retry_after(retry_after_of(exc))
            if retry_after_ms is not None:
                delay_ms = retry_after_ms
            else:
                delay_ms = policy.backoff_delay_ms(outcome.attempts)

            outcome.last_delay_ms = delay_ms
            outcome.total_delay_ms += delay_ms
            outcome.delays_ms.append(delay_ms)
            logger.warning(
                "%s: status %s, retrying in %.0fms (attempt %d/%d)",
                label, status, delay_ms, outcome.attempts, policy.max_attempts,
            )
            await sleep(delay_ms / 1000.0)
