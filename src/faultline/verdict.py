"""Fold probe outcomes and the run's error into the final verdict."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from faultline.errors import ChaosLibError, ErrorType
from faultline.models import ChaosPhase, ProbeResult, ProbeStatus, Verdict


@dataclass(frozen=True)
class VerdictSummary:
    verdict: Verdict
    fail_step: ChaosPhase | None = None
    error_code: str | None = None
    reason: str | None = None
    probe_success_percentage: float = 100.0


def probe_success_percentage(probes: Sequence[ProbeResult]) -> float:
    """Share of probes that passed; 100 when there are none."""
    if not probes:
        return 100.0
    passed = sum(1 for probe in probes if probe.status == ProbeStatus.passed)
    return round(passed * 100.0 / len(probes), 2)


def aggregate(
    probes: Sequence[ProbeResult],
    error: ChaosLibError | None = None,
    aborted: bool = False,
    phase: ChaosPhase | None = None,
) -> VerdictSummary:
    """Decide the verdict of a run.

    Precedence: an external abort yields ``Stopped``; otherwise a run error
    fails the run at the error's phase; otherwise the first failed probe fails
    it at the phase the probe failed in; otherwise the run passes.

    Args:
        probes:  Snapshot of every registered probe.
        error:   The unrecoverable error that ended the run, if any.
        aborted: Whether the run was ended by an external interrupt.
        phase:   Phase the run was in when it ended; used when the error or
                 abort does not carry its own.
    """
    percentage = probe_success_percentage(probes)

    if aborted:
        return VerdictSummary(
            verdict=Verdict.stopped,
            fail_step=(error.phase if error is not None else None) or phase,
            error_code=ErrorType.experiment_aborted.value,
            reason=str(error) if error is not None else "experiment was aborted by an external interrupt",
            probe_success_percentage=percentage,
        )

    if error is not None:
        return VerdictSummary(
            verdict=Verdict.failed,
            fail_step=error.phase or phase,
            error_code=error.error_type.value,
            reason=str(error),
            probe_success_percentage=percentage,
        )

    failed = [probe for probe in probes if probe.status == ProbeStatus.failed]
    if failed:
        first = failed[0]
        return VerdictSummary(
            verdict=Verdict.failed,
            fail_step=first.failed_phase or phase,
            error_code=first.error_code or ErrorType.probe_failure.value,
            reason=first.error or first.description,
            probe_success_percentage=percentage,
        )

    return VerdictSummary(verdict=Verdict.passed, probe_success_percentage=percentage)


__all__ = ["VerdictSummary", "aggregate", "probe_success_percentage"]
