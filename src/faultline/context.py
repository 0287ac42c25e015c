"""Shared run state passed explicitly to every lifecycle component."""

from __future__ import annotations

import logging
import threading

from faultline.errors import ChaosLibError
from faultline.interfaces import ResultSink
from faultline.models import ChaosPhase, TargetState

logger = logging.getLogger(__name__)


class TargetTracker:
    """Thread-safe map of target -> :class:`TargetState`.

    Every transition is forwarded to the optional result sink.
    """

    def __init__(self, sink: ResultSink | None = None, kind: str = "target") -> None:
        self._states: dict[str, TargetState] = {}
        self._lock = threading.Lock()
        self._sink = sink
        self.kind = kind

    def mark(self, target: str, state: TargetState) -> None:
        with self._lock:
            self._states[target] = state
        if self._sink is not None:
            self._sink.record_target_state(target, state, self.kind)

    def state(self, target: str) -> TargetState:
        with self._lock:
            return self._states.get(target, TargetState.not_targeted)

    def in_state(self, *states: TargetState) -> list[str]:
        """Targets currently in any of *states*, in first-seen order."""
        with self._lock:
            return [target for target, state in self._states.items() if state in states]

    def snapshot(self) -> dict[str, TargetState]:
        with self._lock:
            return dict(self._states)


class ChaosContext:
    """Cancellation tokens, phase and target states for one run.

    Three tokens are kept apart:

    * ``abort_event`` - external interrupt; the abort watcher owns the revert.
    * ``stop_event`` - a probe with ``stop_on_failure`` asked to end early;
      the sequencer reverts what it injected and stops.
    * ``probe_cancel`` - set once the phase moves past ``ChaosInject`` so
      continuous probes wind down.
    """

    def __init__(self, sink: ResultSink | None = None, kind: str = "target") -> None:
        self.targets = TargetTracker(sink, kind)
        self.abort_event = threading.Event()
        self.stop_event = threading.Event()
        self.probe_cancel = threading.Event()
        self.abort_reason: str | None = None
        self.stop_error: ChaosLibError | None = None
        self._phase = ChaosPhase.pre_chaos
        self._wake = threading.Event()
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Phase
    # ------------------------------------------------------------------

    @property
    def phase(self) -> ChaosPhase:
        with self._lock:
            return self._phase

    def advance(self, phase: ChaosPhase) -> None:
        """Move to *phase*.

        Raises:
            ValueError: if *phase* would move the run backwards.
        """
        with self._lock:
            if phase.order < self._phase.order:
                raise ValueError(
                    f"cannot move from phase {self._phase.value} back to {phase.value}"
                )
            self._phase = phase
        if phase.order > ChaosPhase.chaos_inject.order:
            self.probe_cancel.set()
        logger.debug("Chaos phase is now %s", phase.value)

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def request_abort(self, reason: str = "interrupt") -> bool:
        """Fire the one-shot abort token; returns False if it had already fired."""
        with self._lock:
            if self.abort_event.is_set():
                return False
            self.abort_reason = reason
            self.abort_event.set()
        self._wake.set()
        return True

    def request_stop(self, error: ChaosLibError) -> None:
        """Ask the run to end early because of *error*; the first error wins."""
        with self._lock:
            if self.stop_error is None:
                self.stop_error = error
            self.stop_event.set()
        self._wake.set()

    @property
    def aborted(self) -> bool:
        return self.abort_event.is_set()

    @property
    def stop_requested(self) -> bool:
        return self.stop_event.is_set()

    @property
    def interrupted(self) -> bool:
        return self.aborted or self.stop_requested

    def wait(self, seconds: float) -> bool:
        """Sleep up to *seconds*; return True early if abort or stop fires."""
        if seconds <= 0:
            return self.interrupted
        return self._wake.wait(seconds)


__all__ = ["ChaosContext", "TargetTracker"]
