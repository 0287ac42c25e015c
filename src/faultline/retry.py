"""Bounded retry and polling helpers."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TypeVar

from faultline.errors import ChaosLibError, StatusCheckTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy:
    """Run a callable up to ``attempts`` times, sleeping ``wait`` between tries.

    Only :class:`~faultline.errors.ChaosLibError` subclasses are retried;
    anything else propagates immediately. The error of the final attempt is
    re-raised once the budget is spent.
    """

    def __init__(
        self,
        attempts: int = 1,
        wait: float = 0.0,
        sleep: Callable[[float], object] = time.sleep,
    ) -> None:
        if attempts < 1:
            raise ValueError("attempts must be at least 1")
        self.attempts = attempts
        self.wait = wait
        self._sleep = sleep

    def run(self, func: Callable[[int], T]) -> T:
        """Call ``func(attempt)`` with a 1-based attempt number until it succeeds."""
        last_error: ChaosLibError | None = None
        for attempt in range(1, self.attempts + 1):
            try:
                return func(attempt)
            except ChaosLibError as exc:
                last_error = exc
                logger.debug("Attempt %d/%d failed: %s", attempt, self.attempts, exc)
                if attempt < self.attempts and self.wait > 0:
                    self._sleep(self.wait)
        if last_error is None:
            raise RuntimeError("retry loop ended without an attempt")
        raise last_error


def poll_until(
    check: Callable[[], bool],
    timeout: float,
    delay: float,
    *,
    target: str | None = None,
    description: str = "desired state",
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], object] = time.sleep,
) -> None:
    """Poll *check* every *delay* seconds until it returns True.

    Errors raised by *check* count as "not yet" and are retried while the
    budget lasts.

    Raises:
        StatusCheckTimeoutError: if *check* is still False after *timeout* seconds.
    """
    deadline = clock() + timeout
    last_error: Exception | None = None
    while True:
        try:
            if check():
                return
            last_error = None
        except Exception as exc:  # noqa: BLE001
            last_error = exc
        if clock() >= deadline:
            reason = f"timed out after {timeout}s waiting for {description}"
            if last_error is not None:
                reason += f" (last error: {last_error})"
            raise StatusCheckTimeoutError(reason, target=target)
        sleep(delay)


__all__ = ["RetryPolicy", "poll_until"]
