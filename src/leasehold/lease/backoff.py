"""Exponential backoff for transient store errors."""

from __future__ import annotations

import random
from dataclasses import dataclass

from leasehold.errors import LeaseConfigError


@dataclass(frozen=True)
class BackoffPolicy:
    """Bounded exponential backoff.

    The delay for the n-th consecutive retry is
    ``initial * multiplier ** (n - 1)``, capped at ``maximum`` and then
    spread by ``jitter`` (a fraction, 0.1 = ±10%).
    """

    initial: float = 0.5
    maximum: float = 5.0
    multiplier: float = 2.0
    jitter: float = 0.0

    def __post_init__(self) -> None:
        if self.initial <= 0 or self.maximum < self.initial:
            raise LeaseConfigError("backoff requires 0 < initial <= maximum")
        if self.multiplier < 1:
            raise LeaseConfigError("backoff multiplier must be >= 1")
        if not 0 <= self.jitter < 1:
            raise LeaseConfigError("backoff jitter must be in [0, 1)")

    def delay(self, attempt: int) -> float:
        """Seconds to wait before retry number ``attempt`` (1-based)."""
        attempt = max(attempt, 1)
        delay = min(self.initial * self.multiplier ** (attempt - 1), self.maximum)
        if self.jitter:
            # Spread retries so claimants do not hit the store in lockstep
            delay *= random.uniform(1 - self.jitter, 1 + self.jitter)  # nosec B311
        return delay
