"""Injection sequencer: the timed inject/revert loop over a target set."""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum

from faultline.context import ChaosContext
from faultline.errors import (
    ChaosInjectError,
    ChaosLibError,
    ChaosRevertError,
    TargetSelectionError,
)
from faultline.interfaces import PlatformActions
from faultline.models import ChaosPhase, ChaosSpec, DesiredState, ExecutionMode, TargetState

logger = logging.getLogger(__name__)


class SequencerState(str, Enum):
    """Lifecycle of one sequencer run."""

    idle = "idle"
    running = "running"
    completed = "completed"
    aborted = "aborted"


@dataclass
class SequencerOutcome:
    """Terminal result of :meth:`InjectionSequencer.run`."""

    state: SequencerState
    cause: str | None = None
    iterations: int = 0
    elapsed: float = 0.0
    revert_errors: list[ChaosLibError] = field(default_factory=list)


class _Interrupted(Exception):
    """Internal signal: abort or stop fired during an interval wait."""


class InjectionSequencer:
    """Drive timed, interruptible fault injection across a target set.

    Each call to :meth:`run` walks the targets in the configured execution mode
    until ``spec.duration`` has elapsed. The elapsed time is only checked
    after a full pass over the targets, so every target of a pass is faulted
    and a started iteration always finishes its revert. The most recent
    :class:`SequencerOutcome` stays on :attr:`outcome`, also when :meth:`run`
    raises.

    Args:
        spec:       Run tunables.
        platform:   Platform actions for the targets.
        context:    Shared run state (abort/stop tokens, target tracker).
        probe_hook: Called once, after the first injection has taken effect,
                    to start during-injection probes.
        rng:        Random source for randomized intervals.
    """

    def __init__(
        self,
        spec: ChaosSpec,
        platform: PlatformActions,
        context: ChaosContext,
        probe_hook: Callable[[], object] | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.spec = spec
        self.platform = platform
        self.context = context
        self.state = SequencerState.idle
        self.outcome: SequencerOutcome | None = None
        self._probe_hook = probe_hook
        self._probes_started = False
        self._rng = rng or random.Random()  # noqa: S311
        self._clock = clock

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(self, targets: Sequence[str]) -> SequencerOutcome:
        """Inject and revert chaos on *targets* until the duration elapses.

        Returns:
            A :class:`SequencerOutcome`; ``aborted`` when the abort token or a
            probe stop request ended the run early.

        Raises:
            TargetSelectionError: if *targets* is empty.
            ChaosInjectError: if an inject fails or never takes effect; every
                target injected so far is reverted first.
            ChaosRevertError: if every revert of a batch fails.
        """
        if self.state != SequencerState.idle:
            raise RuntimeError(f"sequencer already used (state {self.state.value})")
        if not targets:
            raise TargetSelectionError("no targets to inject chaos into")

        if self.context.aborted:
            logger.info("[Abort]: Abort signal received before injection, skipping chaos")
            self.state = SequencerState.aborted
            self.outcome = SequencerOutcome(state=self.state, cause="abort")
            return self.outcome

        self.state = SequencerState.running
        outcome = SequencerOutcome(state=self.state)
        self.outcome = outcome
        for target in targets:
            self.context.targets.mark(target, TargetState.targeted)

        logger.info(
            "[Info]: Injecting chaos in %s mode on %s for %ss",
            self.spec.sequence.value, list(targets), self.spec.duration,
        )
        start = self._clock()
        try:
            if self.spec.sequence == ExecutionMode.serial:
                self._run_serial(targets, outcome, start)
            else:
                self._run_parallel(targets, outcome, start)
        except _Interrupted:
            self._finish_interrupted(outcome)
        except ChaosLibError as exc:
            if self.context.aborted:
                # Racing the watcher's revert; the abort takes precedence.
                logger.warning("[Abort]: Ignoring %s raised during abort", exc)
                self._finish_interrupted(outcome)
            else:
                exc.with_phase(ChaosPhase.chaos_inject)
                logger.error("[Chaos]: Chaos injection failed, err: %s", exc)
                self._cleanup_after_failure(outcome)
                self.state = SequencerState.aborted
                raise
        finally:
            outcome.elapsed = self._clock() - start

        if self.state == SequencerState.running:
            self.state = SequencerState.completed
            logger.info("[Completion]: Chaos injection is done after %.1fs", outcome.elapsed)
        outcome.state = self.state
        return outcome

    # ------------------------------------------------------------------
    # Modes
    # ------------------------------------------------------------------

    def _run_serial(self, targets: Sequence[str], outcome: SequencerOutcome, start: float) -> None:
        while True:
            for target in targets:
                self._checkpoint()
                self._inject(target)
                self._settle(target, DesiredState.injected)
                self._start_probes()
                self._wait_interval()
                errors = self._revert_batch([target])
                if errors:
                    raise ChaosRevertError(
                        f"failed to revert target {target}",
                        errors=errors,
                        target=target,
                        phase=ChaosPhase.chaos_inject,
                    )
                outcome.iterations += 1
            if self._clock() - start >= self.spec.duration:
                return

    def _run_parallel(self, targets: Sequence[str], outcome: SequencerOutcome, start: float) -> None:
        while True:
            self._checkpoint()
            failures: list[ChaosLibError] = []
            for target in targets:
                try:
                    self._inject(target)
                except ChaosInjectError as exc:
                    failures.append(exc)
            if failures:
                if len(failures) == 1:
                    raise failures[0]
                raise ChaosInjectError(
                    "; ".join(str(err) for err in failures),
                    target=",".join(err.target or "?" for err in failures),
                )
            for target in targets:
                self._settle(target, DesiredState.injected)
            self._start_probes()
            self._wait_interval()

            errors = self._revert_batch(list(targets))
            if errors and len(errors) == len(targets):
                raise ChaosRevertError(
                    "failed to revert every target",
                    errors=errors,
                    phase=ChaosPhase.chaos_inject,
                )
            if errors:
                logger.error(
                    "[Revert]: %d of %d targets failed to revert: %s",
                    len(errors), len(targets), "; ".join(str(err) for err in errors),
                )
                outcome.revert_errors.extend(errors)
            outcome.iterations += 1
            if self._clock() - start >= self.spec.duration:
                return

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _checkpoint(self) -> None:
        if self.context.interrupted:
            raise _Interrupted

    def _inject(self, target: str) -> None:
        logger.info("[Chaos]: Injecting chaos on %s %s", self.platform.kind, target)
        try:
            self.platform.inject(target)
        except ChaosLibError as exc:
            raise ChaosInjectError(exc.reason, target=target) from exc
        except Exception as exc:  # noqa: BLE001
            raise ChaosInjectError(f"failed to inject chaos: {exc}", target=target) from exc
        self.context.targets.mark(target, TargetState.injected)

    def _settle(self, target: str, desired: DesiredState) -> None:
        logger.info("[Wait]: Waiting for %s to reach the %s state", target, desired.value)
        try:
            self.platform.wait_for_state(target, desired, self.spec.timeout, self.spec.delay)
        except ChaosLibError as exc:
            error_cls = ChaosInjectError if desired == DesiredState.injected else ChaosRevertError
            raise error_cls(f"{desired.value} state check failed: {exc.reason}", target=target) from exc

    def _start_probes(self) -> None:
        if self._probes_started or self._probe_hook is None:
            return
        self._probes_started = True
        self._probe_hook()

    def _wait_interval(self) -> None:
        seconds = self.spec.interval
        if self.spec.randomness:
            upper = self.spec.interval_upper
            if upper is not None:
                seconds = self._rng.uniform(self.spec.interval, upper)
            else:
                seconds = self._rng.uniform(0, seconds)
        logger.info("[Wait]: Waiting for the chaos interval of %.2fs", seconds)
        if self.context.wait(seconds):
            raise _Interrupted

    def _revert_batch(self, targets: Sequence[str]) -> list[ChaosLibError]:
        """Revert every target in *targets*; return the failures instead of raising."""
        errors: list[ChaosLibError] = []
        pending: list[str] = []
        for target in targets:
            if self.context.targets.state(target) == TargetState.reverted:
                logger.info("[Skip]: %s is already reverted", target)
                continue
            logger.info("[Chaos]: Reverting chaos on %s %s", self.platform.kind, target)
            try:
                self.platform.revert(target)
            except Exception as exc:  # noqa: BLE001
                errors.append(ChaosRevertError(f"failed to revert chaos: {exc}", target=target))
                continue
            pending.append(target)
        for target in pending:
            try:
                self._settle(target, DesiredState.reverted)
            except ChaosRevertError as exc:
                errors.append(exc)
                continue
            self.context.targets.mark(target, TargetState.reverted)
        return errors

    # ------------------------------------------------------------------
    # Termination
    # ------------------------------------------------------------------

    def _finish_interrupted(self, outcome: SequencerOutcome) -> None:
        self.state = SequencerState.aborted
        if self.context.aborted:
            # The abort watcher owns the revert from here on.
            outcome.cause = "abort"
            logger.info("[Abort]: Abort signal received, leaving revert to the abort watcher")
            return
        outcome.cause = "probe-failure"
        logger.info("[Stop]: Stop requested by a failed probe, reverting injected targets")
        outcome.revert_errors.extend(self._cleanup())

    def _cleanup_after_failure(self, outcome: SequencerOutcome) -> None:
        if self.context.aborted:
            return
        errors = self._cleanup()
        for err in errors:
            logger.error("[Revert]: Cleanup after failure could not revert: %s", err)
        outcome.revert_errors.extend(errors)

    def _cleanup(self) -> list[ChaosLibError]:
        injected = self.context.targets.in_state(TargetState.injected)
        if not injected:
            return []
        return self._revert_batch(injected)


__all__ = ["InjectionSequencer", "SequencerOutcome", "SequencerState"]
