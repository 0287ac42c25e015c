"""Probe engine: health checks evaluated before, during and after chaos."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Mapping

from faultline.checks import CommandTransport, HTTPTransport, ResourceStateTransport
from faultline.comparator import compare
from faultline.context import ChaosContext
from faultline.errors import ProbeError, ProbeTimeoutError
from faultline.interfaces import HealthCheckTransport
from faultline.models import (
    ChaosPhase,
    ProbeDescriptor,
    ProbeKind,
    ProbeMode,
    ProbeResult,
    ProbeStatus,
)
from faultline.retry import RetryPolicy

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Per-probe run state
# ---------------------------------------------------------------------------

class ProbeRunState:
    """Mutable counters for one probe.

    Written by at most one evaluator at a time; the lock covers the attempt
    counter and the completion/outcome fields that the orchestrating thread
    reads while background evaluators are still running.
    """

    def __init__(self, descriptor: ProbeDescriptor) -> None:
        self.descriptor = descriptor
        self._lock = threading.Lock()
        self._attempts = 0
        self._status = ProbeStatus.awaited
        self._description = ""
        self._error: ProbeError | None = None
        self._failed_phase: ChaosPhase | None = None
        self._completed = threading.Event()
        self.thread: threading.Thread | None = None

    def next_attempt(self) -> int:
        with self._lock:
            self._attempts += 1
            return self._attempts

    def mark_passed(self, description: str) -> None:
        with self._lock:
            if self._status != ProbeStatus.failed:
                self._status = ProbeStatus.passed
                self._description = description

    def mark_failed(self, error: ProbeError, phase: ChaosPhase) -> None:
        with self._lock:
            if self._status == ProbeStatus.failed:
                return
            self._status = ProbeStatus.failed
            self._error = error
            self._failed_phase = phase
            self._description = error.reason

    def mark_completed(self) -> None:
        self._completed.set()

    def wait_completed(self, timeout: float) -> bool:
        return self._completed.wait(timeout)

    @property
    def attempts(self) -> int:
        with self._lock:
            return self._attempts

    @property
    def completed(self) -> bool:
        return self._completed.is_set()

    @property
    def failed(self) -> bool:
        with self._lock:
            return self._status == ProbeStatus.failed

    @property
    def error(self) -> ProbeError | None:
        with self._lock:
            return self._error

    @property
    def failed_phase(self) -> ChaosPhase | None:
        with self._lock:
            return self._failed_phase

    def to_result(self) -> ProbeResult:
        with self._lock:
            return ProbeResult(
                name=self.descriptor.name,
                kind=self.descriptor.kind,
                mode=self.descriptor.mode,
                status=self._status,
                attempts=self._attempts,
                description=self._description,
                failed_phase=self._failed_phase,
                error=str(self._error) if self._error is not None else None,
                error_code=self._error.error_type.value if self._error is not None else None,
            )


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

_SYNC_MODES = {
    ChaosPhase.pre_chaos: (ProbeMode.sot, ProbeMode.edge),
    ChaosPhase.post_chaos: (ProbeMode.eot, ProbeMode.edge),
}


class ProbeEngine:
    """Register probes and evaluate them phase by phase.

    ``SOT``/``EOT``/``Edge`` probes run synchronously inside
    :meth:`evaluate_phase`. ``Continuous`` probes start a background evaluator
    in ``PreChaos`` that runs until the phase moves past ``ChaosInject`` or a
    check fails; ``OnChaos`` probes start one in ``ChaosInject`` bounded by the
    chaos duration. ``PostChaos`` collects both kinds.

    Args:
        context:      Shared run state.
        duration:     Chaos duration in seconds, bounding ``OnChaos`` probes.
        timeout:      How long ``PostChaos`` waits for background probes.
        transports:   Override the transport used per probe kind.
        state_reader: Reads platform resource state for ``resource_state``
                      probes.
    """

    def __init__(
        self,
        context: ChaosContext,
        duration: float,
        timeout: float = 180.0,
        transports: Mapping[ProbeKind, HealthCheckTransport] | None = None,
        state_reader: Callable[[str], str] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._context = context
        self._duration = duration
        self._timeout = timeout
        self._clock = clock
        self._transports: dict[ProbeKind, HealthCheckTransport] = {
            ProbeKind.http: HTTPTransport(),
            ProbeKind.command: CommandTransport(),
        }
        if state_reader is not None:
            self._transports[ProbeKind.resource_state] = ResourceStateTransport(state_reader)
        self._transports.update(transports or {})
        self._states: dict[str, ProbeRunState] = {}
        self._evaluated: set[ChaosPhase] = set()
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Registration and reporting
    # ------------------------------------------------------------------

    def register(self, descriptor: ProbeDescriptor) -> None:
        """Add *descriptor* to the run.

        Raises:
            ValueError: if the name is taken, no transport serves the kind,
                or the probe's first phase has already begun.
        """
        first = descriptor.first_phase
        with self._lock:
            if descriptor.name in self._states:
                raise ValueError(f"probe '{descriptor.name}' is already registered")
            if descriptor.kind not in self._transports:
                raise ValueError(
                    f"no transport available for {descriptor.kind.value} probe '{descriptor.name}'"
                )
            if first in self._evaluated or first.order < self._context.phase.order:
                raise ValueError(
                    f"probe '{descriptor.name}' must be registered before the "
                    f"{first.value} phase begins"
                )
            self._states[descriptor.name] = ProbeRunState(descriptor)

    def states(self) -> list[ProbeRunState]:
        with self._lock:
            return list(self._states.values())

    def results(self) -> list[ProbeResult]:
        return [state.to_result() for state in self.states()]

    def failures(self, phase: ChaosPhase | None = None) -> list[ProbeRunState]:
        """Failed probes, optionally only those that failed in *phase*."""
        return [
            state
            for state in self.states()
            if state.failed and (phase is None or state.failed_phase == phase)
        ]

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def evaluate_phase(self, phase: ChaosPhase) -> list[ProbeResult]:
        """Trigger every registered probe that applies to *phase*.

        Raises:
            ProbeError: if a synchronous probe with ``stop_on_failure`` fails;
                the remaining probes of the phase are not evaluated.
        """
        with self._lock:
            self._evaluated.add(phase)
        for state in self.states():
            self.prepare(state.descriptor, phase)
        return self.results()

    def prepare(self, descriptor: ProbeDescriptor, phase: ChaosPhase) -> None:
        """Run, start or collect *descriptor* as its mode dictates for *phase*."""
        state = self._states[descriptor.name]
        mode = descriptor.mode

        if mode in _SYNC_MODES.get(phase, ()):
            self._evaluate_sync(state, phase)
        elif phase == ChaosPhase.pre_chaos and mode == ProbeMode.continuous:
            self._start(state, self._run_continuous)
        elif phase == ChaosPhase.chaos_inject and mode == ProbeMode.on_chaos:
            self._start(state, self._run_on_chaos)
        elif phase == ChaosPhase.post_chaos and mode in (ProbeMode.continuous, ProbeMode.on_chaos):
            self._collect(state, phase)

    def cancel(self) -> None:
        """Ask continuous evaluators to stop at their next check."""
        self._context.probe_cancel.set()

    def join(self, timeout: float | None = None) -> None:
        """Wait for all background evaluators to exit."""
        for state in self.states():
            if state.thread is not None:
                state.thread.join(timeout)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _trigger(self, state: ProbeRunState) -> None:
        """One bounded-retry evaluation of *state*'s check."""
        descriptor = state.descriptor
        props = descriptor.run_properties
        transport = self._transports[descriptor.kind]
        expected = descriptor.comparison()
        target = f"{{name: {descriptor.name}}}"

        def attempt(_: int) -> str:
            count = state.next_attempt()
            outcome = transport.send(descriptor, props.probe_timeout)
            compare(outcome, expected, probe=target)
            return (
                f"probe '{descriptor.name}' passed on run {count}: actual '{outcome}' "
                f"satisfies '{expected.criteria}' '{expected.value}'"
            )

        description = RetryPolicy(props.attempts, props.interval).run(attempt)
        state.mark_passed(description)

    def _evaluate_sync(self, state: ProbeRunState, phase: ChaosPhase) -> None:
        descriptor = state.descriptor
        if state.failed:
            logger.info(
                "[Probe]: Skipping %s in %s, it already failed in %s",
                descriptor.name, phase.value, state.failed_phase.value if state.failed_phase else "?",
            )
            return

        logger.info(
            "[Probe]: Running %s probe %s (mode %s, phase %s)",
            descriptor.kind.value, descriptor.name, descriptor.mode.value, phase.value,
        )
        delay = descriptor.run_properties.initial_delay
        if delay > 0:
            logger.info("[Wait]: Waiting for %ss before probe execution", delay)
            self._context.abort_event.wait(delay)

        try:
            self._trigger(state)
        except ProbeError as exc:
            exc.with_phase(phase)
            state.mark_failed(exc, phase)
            state.mark_completed()
            logger.error("[Probe]: The %s probe has failed, err: %s", descriptor.name, exc)
            if descriptor.run_properties.stop_on_failure:
                self._context.request_stop(exc)
                raise
            return

        if phase == ChaosPhase.post_chaos or descriptor.mode == ProbeMode.sot:
            state.mark_completed()

    def _start(self, state: ProbeRunState, target: Callable[[ProbeRunState], None]) -> None:
        if state.thread is not None:
            return
        logger.info(
            "[Probe]: Starting %s probe %s in the background",
            state.descriptor.mode.value, state.descriptor.name,
        )
        state.thread = threading.Thread(
            target=target,
            args=(state,),
            name=f"probe-{state.descriptor.name}",
            daemon=True,
        )
        state.thread.start()

    def _record_background_failure(self, state: ProbeRunState, exc: ProbeError) -> None:
        phase = self._context.phase
        exc.with_phase(phase)
        state.mark_failed(exc, phase)
        logger.error("[Probe]: The %s probe has failed, err: %s", state.descriptor.name, exc)

    def _run_continuous(self, state: ProbeRunState) -> None:
        props = state.descriptor.run_properties
        cancel = self._context.probe_cancel
        try:
            if props.initial_delay > 0 and cancel.wait(props.initial_delay):
                return
            while not cancel.is_set() and not self._context.aborted:
                try:
                    self._trigger(state)
                except ProbeError as exc:
                    self._record_background_failure(state, exc)
                    break
                if cancel.wait(props.polling_interval):
                    break
            logger.info("[Probe]: Stopping %s continuous probe", state.descriptor.name)
        except Exception as exc:  # noqa: BLE001
            self._record_background_failure(
                state, ProbeError(f"unexpected error: {exc}", target=state.descriptor.name)
            )
        finally:
            state.mark_completed()
            self._stop_if_required(state)

    def _run_on_chaos(self, state: ProbeRunState) -> None:
        props = state.descriptor.run_properties
        abort = self._context.abort_event
        duration = self._duration
        try:
            if props.initial_delay > 0:
                if abort.wait(props.initial_delay):
                    return
                duration = max(0.0, duration - props.initial_delay)
            deadline = self._clock() + duration
            while self._clock() < deadline and not abort.is_set():
                try:
                    self._trigger(state)
                except ProbeError as exc:
                    self._record_background_failure(state, exc)
                    break
                remaining = deadline - self._clock()
                if remaining <= 0 or abort.wait(min(props.polling_interval, remaining)):
                    break
            logger.info("[Chaos]: Time is up for the %s probe", state.descriptor.name)
        except Exception as exc:  # noqa: BLE001
            self._record_background_failure(
                state, ProbeError(f"unexpected error: {exc}", target=state.descriptor.name)
            )
        finally:
            state.mark_completed()
            self._stop_if_required(state)

    def _stop_if_required(self, state: ProbeRunState) -> None:
        error = state.error
        if error is not None and state.descriptor.run_properties.stop_on_failure:
            logger.warning(
                "[Probe]: %s failed with stop_on_failure set, stopping the experiment",
                state.descriptor.name,
            )
            self._context.request_stop(error)

    def _collect(self, state: ProbeRunState, phase: ChaosPhase) -> None:
        """Wait for a background evaluator and fold its outcome in."""
        if state.thread is None:
            logger.info("[Probe]: %s never started, nothing to collect", state.descriptor.name)
            return
        if not state.wait_completed(self._timeout):
            error = ProbeTimeoutError(
                f"probe did not complete within {self._timeout}s",
                target=f"{{name: {state.descriptor.name}}}",
                phase=phase,
            )
            state.mark_failed(error, phase)
            logger.error("[Probe]: %s", error)


__all__ = ["ProbeEngine", "ProbeRunState"]
