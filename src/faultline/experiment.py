"""End-to-end chaos run: probes, ramp, injection, abort handling and verdict."""

from __future__ import annotations

import logging
import random
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime

from faultline.config import ExperimentConfig, build_platform
from faultline.context import ChaosContext
from faultline.errors import ChaosLibError, ExperimentAbortedError
from faultline.interfaces import HealthCheckTransport, PlatformActions
from faultline.models import (
    ChaosPhase,
    ChaosResult,
    ChaosSpec,
    ProbeDescriptor,
    ProbeKind,
    Verdict,
)
from faultline.observer import ExperimentObserver
from faultline.probes import ProbeEngine
from faultline.selector import select_targets
from faultline.sequencer import InjectionSequencer
from faultline.verdict import aggregate
from faultline.watcher import AbortWatcher

logger = logging.getLogger(__name__)


class ChaosRunner:
    """Run one chaos experiment from pre-chaos checks to the final verdict.

    The runner owns the lifecycle components for a single run: it starts the
    abort watcher, evaluates pre-chaos probes, selects targets, drives the
    injection sequencer, evaluates post-chaos probes and aggregates the
    verdict. An external interrupt (see :meth:`abort`) ends the run with a
    ``Stopped`` verdict once the watcher has reverted every faulted target;
    the runner returns that result instead of exiting the process.
    """

    def __init__(
        self,
        name: str,
        spec: ChaosSpec,
        platform: PlatformActions,
        candidates: Sequence[str],
        probes: Sequence[ProbeDescriptor] = (),
        observer: ExperimentObserver | None = None,
        transports: Mapping[ProbeKind, HealthCheckTransport] | None = None,
        rng: random.Random | None = None,
        install_signal_handlers: bool = False,
    ) -> None:
        self.name = name
        self.spec = spec
        self.platform = platform
        self.candidates = list(candidates)
        self.observer = observer or ExperimentObserver()
        self.context = ChaosContext(self.observer, kind=platform.kind)
        self.probes = ProbeEngine(
            self.context,
            duration=spec.duration,
            timeout=spec.timeout,
            transports=transports,
            state_reader=platform.current_state if platform.reports_state else None,
        )
        for descriptor in probes:
            self.probes.register(descriptor)
        self.watcher = AbortWatcher(spec, platform, self.context, self.observer)
        self._rng = rng or random.Random()  # noqa: S311
        self._install_signal_handlers = install_signal_handlers
        self._sequencer: InjectionSequencer | None = None

    @classmethod
    def from_config(cls, config: ExperimentConfig, **kwargs: object) -> ChaosRunner:
        return cls(
            name=config.name,
            spec=config.spec,
            platform=build_platform(config.platform),
            candidates=config.candidates,
            probes=config.probes,
            **kwargs,  # type: ignore[arg-type]
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def abort(self, reason: str = "interrupt") -> bool:
        """Deliver an external interrupt to the running experiment."""
        return self.watcher.trigger(reason)

    def run(self) -> ChaosResult:
        """Execute the experiment and return its :class:`ChaosResult`."""
        start_time = datetime.now(tz=UTC)
        self.observer.record_verdict(Verdict.awaited)
        self.watcher.start()
        if self._install_signal_handlers:
            self.watcher.install_signal_handlers()

        error: ChaosLibError | None = None
        try:
            error = self._execute()
        except ChaosLibError as exc:
            error = exc.with_phase(self.context.phase)
            logger.error("[Error]: %s", error)
        finally:
            if self.context.aborted:
                self.watcher.wait()
            else:
                self.watcher.stop()
            if self._install_signal_handlers:
                self.watcher.restore_signal_handlers()
            self.probes.cancel()
            self.probes.join(timeout=self.spec.timeout)

        # The watcher only publishes a report when it handled an abort.
        report = self.watcher.report
        aborted = report is not None
        if report is not None:
            error = ExperimentAbortedError(f"aborted by {report.reason}", phase=report.phase)

        summary = aggregate(
            self.probes.results(),
            error=error,
            aborted=aborted,
            phase=self.context.phase,
        )
        self.context.advance(ChaosPhase.completed)
        if not aborted:
            # The watcher already recorded the Stopped verdict on abort.
            self.observer.record_verdict(
                summary.verdict,
                fail_step=summary.fail_step.value if summary.fail_step else None,
                error_code=summary.error_code,
            )
        logger.info("[The End]: %s experiment verdict: %s", self.name, summary.verdict.value)

        outcome = self._sequencer.outcome if self._sequencer is not None else None
        return ChaosResult(
            experiment=self.name,
            verdict=summary.verdict,
            fail_step=summary.fail_step,
            error_code=summary.error_code,
            reason=summary.reason,
            probe_success_percentage=summary.probe_success_percentage,
            probes=self.probes.results(),
            targets=self.context.targets.snapshot(),
            revert_errors=[str(err) for err in outcome.revert_errors] if outcome else [],
            abort=report,
            start_time=start_time,
            end_time=datetime.now(tz=UTC),
            observations=self.observer.get_observations(),
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _execute(self) -> ChaosLibError | None:
        """Walk the phases; return the error that failed the run, if any."""
        with self.observer.scope("probes", "pre_chaos"):
            self.probes.evaluate_phase(ChaosPhase.pre_chaos)
        failures = self.probes.failures(ChaosPhase.pre_chaos)
        if failures:
            logger.error("[Status]: Pre-chaos probes failed, skipping chaos injection")
            return failures[0].error
        if self.context.interrupted:
            return self.context.stop_error

        self.context.advance(ChaosPhase.chaos_inject)
        if self._ramp("before"):
            return self.context.stop_error

        targets = select_targets(
            self.candidates,
            self.spec.affected_percentage,
            self.spec.randomize_order,
            rng=self._rng,
        )
        sequencer = InjectionSequencer(
            self.spec,
            self.platform,
            self.context,
            probe_hook=lambda: self.probes.evaluate_phase(ChaosPhase.chaos_inject),
            rng=self._rng,
        )
        self._sequencer = sequencer
        with self.observer.scope("sequencer", "chaos"):
            sequencer.run(targets)
        if self.context.interrupted:
            return self.context.stop_error
        logger.info("[Confirmation]: %s chaos has been injected successfully", self.name)

        if self._ramp("after"):
            return self.context.stop_error
        self.context.advance(ChaosPhase.post_chaos)
        with self.observer.scope("probes", "post_chaos"):
            self.probes.evaluate_phase(ChaosPhase.post_chaos)
        return None

    def _ramp(self, when: str) -> bool:
        """Wait the ramp time; return True if the run was interrupted meanwhile."""
        if self.spec.ramp_time <= 0:
            return self.context.interrupted
        logger.info("[Ramp]: Waiting for the %ss ramp time %s injecting chaos", self.spec.ramp_time, when)
        return self.context.wait(self.spec.ramp_time)


__all__ = ["ChaosRunner"]
