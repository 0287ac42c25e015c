"""Typed error taxonomy for faultline.

Every error raised by the lifecycle core carries an :class:`ErrorType`, the
target it concerns (when there is one) and the :class:`ChaosPhase` in which it
happened, so the final verdict can point at the exact step that failed.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from faultline.models import ChaosPhase


class ErrorType(str, Enum):
    """Error classification reported alongside a failed verdict."""

    generic = "generic"
    target_selection = "target_selection"
    chaos_inject = "chaos_inject"
    chaos_revert = "chaos_revert"
    status_check = "status_check"
    probe_failure = "probe_failure"
    probe_timeout = "probe_timeout"
    experiment_aborted = "experiment_aborted"


# ---------------------------------------------------------------------------
# Base error
# ---------------------------------------------------------------------------

class ChaosLibError(RuntimeError):
    """Base class for all errors raised by faultline."""

    error_type: ErrorType = ErrorType.generic

    def __init__(
        self,
        reason: str,
        target: str | None = None,
        phase: ChaosPhase | None = None,
    ) -> None:
        self.reason = reason
        self.target = target
        self.phase = phase
        super().__init__(reason)

    def with_phase(self, phase: ChaosPhase) -> ChaosLibError:
        """Attach *phase* unless the error already knows where it happened."""
        if self.phase is None:
            self.phase = phase
        return self

    def __str__(self) -> str:
        parts = [f"[{self.error_type.value}]"]
        if self.target:
            parts.append(f"target={self.target}")
        if self.phase is not None:
            parts.append(f"phase={self.phase.value}")
        return " ".join(parts) + f": {self.reason}"


# ---------------------------------------------------------------------------
# Concrete errors
# ---------------------------------------------------------------------------

class TargetSelectionError(ChaosLibError):
    """No eligible targets could be selected."""

    error_type = ErrorType.target_selection


class ChaosInjectError(ChaosLibError):
    """A platform inject action failed or never took effect."""

    error_type = ErrorType.chaos_inject


class ChaosRevertError(ChaosLibError):
    """One or more reverts failed.

    ``errors`` holds every per-target failure, not only the first.
    """

    error_type = ErrorType.chaos_revert

    def __init__(
        self,
        reason: str,
        errors: list[ChaosLibError] | None = None,
        target: str | None = None,
        phase: ChaosPhase | None = None,
    ) -> None:
        super().__init__(reason, target=target, phase=phase)
        self.errors: list[ChaosLibError] = list(errors or [])

    def __str__(self) -> str:
        base = super().__str__()
        if not self.errors:
            return base
        details = "; ".join(str(err) for err in self.errors)
        return f"{base} ({details})"


class StatusCheckTimeoutError(ChaosLibError, TimeoutError):
    """A resource did not settle into the desired state within its budget."""

    error_type = ErrorType.status_check


class ProbeError(ChaosLibError):
    """A health check failed after exhausting its retries."""

    error_type = ErrorType.probe_failure


class ProbeTimeoutError(ProbeError, TimeoutError):
    """A health check exceeded its allotted window."""

    error_type = ErrorType.probe_timeout


class ExperimentAbortedError(ChaosLibError):
    """The run was interrupted by an external abort signal."""

    error_type = ErrorType.experiment_aborted


__all__ = [
    "ChaosInjectError",
    "ChaosLibError",
    "ChaosRevertError",
    "ErrorType",
    "ExperimentAbortedError",
    "ProbeError",
    "ProbeTimeoutError",
    "StatusCheckTimeoutError",
    "TargetSelectionError",
]
