"""Tests for faultline.retry: RetryPolicy and poll_until."""

from __future__ import annotations

import pytest
from conftest import FakeClock

from faultline.errors import ChaosLibError, ProbeError, StatusCheckTimeoutError
from faultline.retry import RetryPolicy, poll_until


class TestRetryPolicy:
    def test_success_on_first_attempt(self) -> None:
        clock = FakeClock()
        policy = RetryPolicy(attempts=3, wait=1.0, sleep=clock.sleep)
        assert policy.run(lambda attempt: attempt) == 1
        assert clock.sleeps == []

    def test_retries_until_success(self) -> None:
        clock = FakeClock()
        seen: list[int] = []

        def func(attempt: int) -> str:
            seen.append(attempt)
            if attempt < 3:
                raise ProbeError("not yet")
            return "done"

        assert RetryPolicy(attempts=5, wait=0.5, sleep=clock.sleep).run(func) == "done"
        assert seen == [1, 2, 3]
        assert clock.sleeps == [0.5, 0.5]

    def test_exhausted_budget_raises_last_error(self) -> None:
        clock = FakeClock()

        def func(attempt: int) -> None:
            raise ProbeError(f"failure {attempt}")

        with pytest.raises(ProbeError, match="failure 3"):
            RetryPolicy(attempts=3, wait=0.1, sleep=clock.sleep).run(func)
        # No sleep after the final attempt
        assert len(clock.sleeps) == 2

    def test_foreign_errors_are_not_retried(self) -> None:
        calls: list[int] = []

        def func(attempt: int) -> None:
            calls.append(attempt)
            raise KeyError("boom")

        with pytest.raises(KeyError):
            RetryPolicy(attempts=3).run(func)
        assert calls == [1]

    def test_attempts_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            RetryPolicy(attempts=0)


class TestPollUntil:
    def test_returns_once_check_passes(self) -> None:
        clock = FakeClock()
        answers = iter([False, False, True])
        poll_until(lambda: next(answers), timeout=5, delay=1, clock=clock, sleep=clock.sleep)
        assert clock.sleeps == [1, 1]

    def test_times_out(self) -> None:
        clock = FakeClock()
        with pytest.raises(StatusCheckTimeoutError) as exc_info:
            poll_until(
                lambda: False, timeout=1, delay=0.25, target="pod-a",
                clock=clock, sleep=clock.sleep,
            )
        assert exc_info.value.target == "pod-a"
        assert isinstance(exc_info.value, TimeoutError)
        assert isinstance(exc_info.value, ChaosLibError)

    def test_check_errors_count_as_not_ready(self) -> None:
        clock = FakeClock()

        def check() -> bool:
            raise OSError("state unavailable")

        with pytest.raises(StatusCheckTimeoutError, match="state unavailable"):
            poll_until(check, timeout=0.5, delay=0.25, clock=clock, sleep=clock.sleep)
