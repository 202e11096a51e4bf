"""
Admission control for upload authorizations.

The coordinator asks for admission before issuing each requirement. The
limiter is shared by every concurrent push handled by the process, so it caps
the aggregate rate of bytes the server authorizes clients to transfer.
"""
from __future__ import annotations

import logging
import threading
import time
from typing import Optional, Protocol

from .errors import TransientError

__all__ = ["Admission", "Unthrottled", "TransferRateLimiter", "admission_from_rate"]

logger = logging.getLogger(__name__)


class Admission(Protocol):
    """Gate consulted before each upload requirement is issued."""

    def admit(self, nbytes: int, deadline: Optional[float] = None) -> None:
        """
        Wait until nbytes may be authorized.

        Args:
            nbytes: Size of the requirement about to be issued
            deadline: time.monotonic() value by which admission must be granted

        Raises:
            TransientError: If capacity cannot be granted before the deadline
        """
        ...


class Unthrottled:
    """Admits everything immediately."""

    def admit(self, nbytes: int, deadline: Optional[float] = None) -> None:
        return None


class TransferRateLimiter:
    """
    Token bucket over bytes.

    Tokens refill at rate bytes per second up to burst. A request larger than
    burst is admitted once the bucket is full and drives it into debt, so huge
    blobs are delayed rather than rejected outright.
    """

    def __init__(self, rate: int, burst: Optional[int] = None, *,
                 clock=time.monotonic, sleep=time.sleep) -> None:
        if rate <= 0:
            raise ValueError(f"rate must be positive, got {rate}")
        self.rate = float(rate)
        self.burst = float(burst if burst is not None else rate)
        if self.burst <= 0:
            raise ValueError(f"burst must be positive, got {burst}")
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._tokens = self.burst
        self._updated = clock()

    def _refill(self, now: float) -> None:
        self._tokens = min(self.burst, self._tokens + (now - self._updated) * self.rate)
        self._updated = now

    def admit(self, nbytes: int, deadline: Optional[float] = None) -> None:
        need = min(float(nbytes), self.burst)
        while True:
            with self._lock:
                now = self._clock()
                self._refill(now)
                if self._tokens >= need:
                    self._tokens -= float(nbytes)
                    return
                wait = (need - self._tokens) / self.rate

            if deadline is not None and now + wait > deadline:
                raise TransientError(
                    f"transfer rate limit exceeded: cannot admit {nbytes} bytes before deadline"
                )
            logger.debug(f"Throttling {nbytes} bytes for {wait:.3f}s")
            self._sleep(wait)


def admission_from_rate(rate: Optional[int]) -> Admission:
    """Build the admission gate for a configured transfer rate (None = unthrottled)."""
    if rate is None:
        return Unthrottled()
    return TransferRateLimiter(rate)
