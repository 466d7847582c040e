# config.py - Engine configuration
#
# SwarmConfig holds the knobs shared by the turn executor, the stream
# assembler and the concurrent dispatcher: retry budget, backoff,
# rate-limit strategy, per-request timeout, default model and turn budget.

from enum import Enum
from dataclasses import dataclass, field
from typing import Optional


class RateLimitStrategy(str, Enum):
    """What to do when the provider reports a rate limit."""
    RETRY = "retry"    # exponential backoff, bounded by max_retries
    FAIL = "fail"      # surface the error immediately
    QUEUE = "queue"    # wait for the provider's retry-after hint, then retry


@dataclass
class SwarmConfig:
    """
    Configuration for the execution engine.

    Usage:
        config = SwarmConfig(max_retries=5, retry_backoff=0.5)
        executor = TurnExecutor(client, config)
    """
    max_retries: int = 3
    retry_backoff: float = 1.0
    request_timeout: Optional[float] = 60.0
    max_tokens: int = 4096
    default_model: str = "gpt-4o-mini"
    max_turns: int = 10
    rate_limit_strategy: RateLimitStrategy = RateLimitStrategy.RETRY
    max_workers: Optional[int] = None
    token_limits: dict[str, int] = field(default_factory=lambda: {
        "gpt-3.5-turbo": 4096,
        "gpt-4": 8192,
        "gpt-4o": 128000,
        "gpt-4o-mini": 128000,
        "claude-3-opus": 200000,
    })

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError("max_retries cannot be negative")
        if self.retry_backoff < 0:
            raise ValueError("retry_backoff cannot be negative")
        if self.request_timeout is not None and self.request_timeout <= 0:
            raise ValueError("request_timeout must be positive")
        if self.max_workers is not None and self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")

    def token_limit(self, model: str) -> Optional[int]:
        return self.token_limits.get(model)
