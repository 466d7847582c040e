# retry.py - Retry policy and provider error classification
#
# Every model call goes through RetryPolicy.call():
#   rate limited -> backoff (exponential) and retry, or fail / queue per strategy
#   fatal        -> raised immediately, never retried
#   transient    -> linear backoff and retry
# The total number of attempts is exactly max_retries + 1. Each attempt is
# bounded by the request timeout and a timeout counts as transient.

import asyncio
import logging
from enum import Enum
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from ..config import RateLimitStrategy, SwarmConfig
from ..errors import (
    SwarmError, ProviderError, RateLimitError, FatalProviderError,
    TransientProviderError, ProviderTimeoutError, ConfigurationError,
    MaxRetriesExceededError, RunCancelledError,
)
from .cancel import RunContext

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    FATAL = "fatal"
    TRANSIENT = "transient"


# Fallback heuristics for exceptions raised by clients that do not use the
# ProviderError tree. Typed errors always win over these.
_RATE_LIMIT_MARKERS = ("rate limit", "too many requests", "429")
_FATAL_MARKERS = ("invalid auth", "authentication", "not found", "invalid model")


def classify_error(exc: BaseException) -> ErrorKind:
    """Decide whether a model-call failure is rate limited, fatal or transient."""
    if isinstance(exc, RateLimitError):
        return ErrorKind.RATE_LIMITED
    if isinstance(exc, (FatalProviderError, ConfigurationError)):
        return ErrorKind.FATAL
    if isinstance(exc, (TransientProviderError, asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return ErrorKind.TRANSIENT
    if isinstance(exc, ProviderError):
        return ErrorKind.TRANSIENT
    if isinstance(exc, SwarmError):
        return ErrorKind.FATAL

    text = str(exc).lower()
    if any(marker in text for marker in _RATE_LIMIT_MARKERS):
        return ErrorKind.RATE_LIMITED
    if any(marker in text for marker in _FATAL_MARKERS):
        return ErrorKind.FATAL
    return ErrorKind.TRANSIENT


@dataclass
class RetryPolicy:
    """
    Bounded retry with backoff.

    Usage:
        policy = RetryPolicy(max_retries=3, backoff=1.0)
        response = await policy.call(lambda: client.create_completion(req), ctx)
    """
    max_retries: int = 3
    backoff: float = 1.0
    rate_limit_strategy: RateLimitStrategy = RateLimitStrategy.RETRY
    timeout: Optional[float] = None

    @classmethod
    def from_config(cls, config: SwarmConfig) -> "RetryPolicy":
        return cls(
            max_retries=config.max_retries,
            backoff=config.retry_backoff,
            rate_limit_strategy=config.rate_limit_strategy,
            timeout=config.request_timeout,
        )

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, kind: ErrorKind, attempt: int, exc: BaseException) -> float:
        """Backoff before the retry that follows `attempt` (0-based)."""
        if kind == ErrorKind.RATE_LIMITED:
            retry_after = getattr(exc, "retry_after", None)
            if self.rate_limit_strategy == RateLimitStrategy.QUEUE and retry_after:
                return float(retry_after)
            return self.backoff * (2 ** attempt)
        return self.backoff * (attempt + 1)

    async def _attempt(self, operation: Callable[[], Awaitable[T]], description: str) -> T:
        if not self.timeout:
            return await operation()
        try:
            return await asyncio.wait_for(operation(), self.timeout)
        except asyncio.TimeoutError as e:
            raise ProviderTimeoutError(
                f"{description} timed out after {self.timeout:g}s", cause=e,
            ) from e

    async def call(
        self,
        operation: Callable[[], Awaitable[T]],
        ctx: Optional[RunContext] = None,
        description: str = "model call",
    ) -> T:
        ctx = ctx or RunContext()
        last_error: Optional[BaseException] = None

        for attempt in range(self.max_attempts):
            try:
                return await ctx.guard(self._attempt(operation, description))
            except RunCancelledError:
                raise
            except Exception as e:
                last_error = e
                kind = classify_error(e)

                if kind == ErrorKind.FATAL:
                    logger.debug("%s failed with fatal error: %s", description, e)
                    raise
                if kind == ErrorKind.RATE_LIMITED and self.rate_limit_strategy == RateLimitStrategy.FAIL:
                    raise
                if attempt + 1 >= self.max_attempts:
                    break

                delay = self.delay_for(kind, attempt, e)
                logger.warning(
                    "%s failed (%s, attempt %d/%d): %s; retrying in %.2fs",
                    description, kind.value, attempt + 1, self.max_attempts, e, delay,
                )
                await ctx.sleep(delay)

        raise MaxRetriesExceededError(self.max_attempts, last_error)
