"""Interfaces for the collaborators the lifecycle core drives."""

from __future__ import annotations

from abc import ABC, abstractmethod

from faultline.models import DesiredState, ProbeDescriptor, TargetState, Verdict


class PlatformActions(ABC):
    """Platform-specific fault actions for one kind of target.

    ``inject`` and ``revert`` must be idempotent: asking for a state the
    target is already in is a no-op, not an error.
    """

    kind: str = "target"

    @abstractmethod
    def inject(self, target: str) -> None:
        """Apply the fault to *target*."""

    @abstractmethod
    def revert(self, target: str) -> None:
        """Undo the fault on *target*."""

    @abstractmethod
    def wait_for_state(
        self,
        target: str,
        desired: DesiredState,
        timeout: float,
        poll_interval: float,
    ) -> None:
        """Block until *target* reaches *desired*.

        Raises:
            StatusCheckTimeoutError: if the state is not reached within *timeout*.
        """

    def current_state(self, target: str) -> str:
        """Return the platform's own description of *target*'s state."""
        raise NotImplementedError(f"{type(self).__name__} cannot report resource state")

    @property
    def reports_state(self) -> bool:
        """Whether :meth:`current_state` is implemented for this platform."""
        return type(self).current_state is not PlatformActions.current_state


class HealthCheckTransport(ABC):
    """Sends one health check and returns the raw outcome to compare."""

    @abstractmethod
    def send(self, probe: ProbeDescriptor, timeout: float) -> str | int:
        """Run *probe* once within *timeout* seconds.

        Raises:
            ProbeError: if the check could not be performed.
            ProbeTimeoutError: if the check did not answer in time.
        """


class ResultSink(ABC):
    """Receives target state transitions and the final verdict."""

    @abstractmethod
    def record_target_state(self, target: str, state: TargetState, kind: str) -> None:
        """Record that *target* moved to *state*."""

    @abstractmethod
    def record_verdict(
        self,
        verdict: Verdict,
        fail_step: str | None = None,
        error_code: str | None = None,
    ) -> None:
        """Record the run's verdict."""


__all__ = ["HealthCheckTransport", "PlatformActions", "ResultSink"]
