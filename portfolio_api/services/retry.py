"""
Retry policy for upstream calls.

Everything here is pure: response classification and wait computation take
plain values and never perform I/O, so ResilientFetcher can stay a thin loop.
"""

import math
import random
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from portfolio_api.services.rate_limit import RateLimitInfo

TRANSIENT_STATUS_CODES = frozenset({502, 503, 504})
RATE_LIMIT_BUFFER_MS = 1000


class Outcome(str, Enum):
    """How a single attempt ended."""

    SUCCESS = "SUCCESS"
    RATE_LIMITED = "RATE_LIMITED"
    TRANSIENT = "TRANSIENT"  # Retry after backoff
    TERMINAL = "TERMINAL"  # Retrying will not help


@dataclass(frozen=True)
class Classification:
    outcome: Outcome
    reset_at: int | None = None


@dataclass(frozen=True)
class RetryPolicy:
    """Per-call-site retry budget and backoff shape."""

    max_retries: int = 2
    timeout_ms: int = 8_000
    backoff_base_ms: int = 400
    jitter_ms: int = 200
    rate_limit_buffer_ms: int = RATE_LIMIT_BUFFER_MS

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000


@dataclass
class RetryContext:
    """State of one logical call across its attempts."""

    max_attempts: int
    attempt: int = 0
    last_error: Exception | None = None

    @property
    def has_remaining(self) -> bool:
        return self.attempt + 1 < self.max_attempts


def classify(status_code: int, rate_limit: RateLimitInfo | None = None) -> Classification:
    """Map an HTTP status (plus any parsed quota) to an Outcome."""
    if 200 <= status_code < 300:
        return Classification(Outcome.SUCCESS)

    if status_code == 429 or (
        status_code == 403 and rate_limit is not None and rate_limit.remaining == 0
    ):
        return Classification(
            Outcome.RATE_LIMITED,
            reset_at=rate_limit.reset_at if rate_limit else None,
        )

    if status_code in TRANSIENT_STATUS_CODES:
        return Classification(Outcome.TRANSIENT)

    return Classification(Outcome.TERMINAL)


def backoff_ms(
    attempt: int,
    base_ms: int = 400,
    jitter_ms: int = 200,
    rng: Callable[[], float] = random.random,
) -> int:
    """base_ms * 2^attempt plus a jitter in [0, jitter_ms)."""
    jitter = math.floor(rng() * jitter_ms) if jitter_ms > 0 else 0
    return base_ms * (2**attempt) + jitter


def rate_limit_wait_ms(
    reset_at: int,
    now: float,
    buffer_ms: int = RATE_LIMIT_BUFFER_MS,
) -> int:
    """Milliseconds until reset_at (epoch seconds) plus a fixed buffer."""
    return max(0, math.ceil(reset_at * 1000 - now * 1000)) + buffer_ms


def wait_ms_for(
    classification: Classification,
    attempt: int,
    policy: RetryPolicy,
    now: float,
    rng: Callable[[], float] = random.random,
) -> int:
    """Wait before the next attempt after a retryable outcome."""
    if classification.outcome == Outcome.RATE_LIMITED and classification.reset_at:
        return rate_limit_wait_ms(
            classification.reset_at, now, policy.rate_limit_buffer_ms
        )
    return backoff_ms(attempt, policy.backoff_base_ms, policy.jitter_ms, rng)
