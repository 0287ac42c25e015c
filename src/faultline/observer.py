"""Observation capture for chaos runs."""

from __future__ import annotations

import logging
import threading
from collections.abc import Generator
from contextlib import contextmanager
from datetime import UTC, datetime

from faultline.interfaces import ResultSink
from faultline.models import ObservationPoint, TargetState, Verdict

logger = logging.getLogger(__name__)


class ExperimentObserver(ResultSink):
    """Collect timestamped observation points during a chaos run.

    Doubles as the default :class:`~faultline.interfaces.ResultSink`: target
    state transitions and verdicts are recorded as observations and also kept
    in dedicated maps so callers can inspect them directly.

    All mutations and snapshot reads go through one :class:`threading.Lock`,
    since the sequencer, the abort watcher and background probes all report
    into the same observer.
    """

    def __init__(self) -> None:
        self._observations: list[ObservationPoint] = []
        self._target_states: dict[str, TargetState] = {}
        self._verdicts: list[Verdict] = []
        self._lock: threading.Lock = threading.Lock()

    def observe(
        self,
        component: str,
        event: str,
        details: dict[str, object] | None = None,
    ) -> None:
        """Record a single observation.

        Args:
            component: The component being observed (e.g. ``"sequencer"``).
            event:     A short event label (e.g. ``"target_injected"``).
            details:   Optional free-form detail dict for structured logging.
        """
        point = ObservationPoint(
            timestamp=datetime.now(tz=UTC),
            component=component,
            event=event,
            details=details or {},
        )
        with self._lock:
            self._observations.append(point)

    def get_observations(self) -> list[ObservationPoint]:
        """Return a shallow copy of all observations recorded so far."""
        with self._lock:
            return list(self._observations)

    def clear(self) -> None:
        """Discard all recorded observations, target states and verdicts."""
        with self._lock:
            self._observations.clear()
            self._target_states.clear()
            self._verdicts.clear()

    # ------------------------------------------------------------------
    # ResultSink
    # ------------------------------------------------------------------

    def record_target_state(self, target: str, state: TargetState, kind: str) -> None:
        with self._lock:
            self._target_states[target] = state
        self.observe(kind, f"target_{state.name}", {"target": target})

    def record_verdict(
        self,
        verdict: Verdict,
        fail_step: str | None = None,
        error_code: str | None = None,
    ) -> None:
        with self._lock:
            self._verdicts.append(verdict)
        logger.info("[Verdict]: %s (fail step: %s, error: %s)", verdict.value, fail_step, error_code)
        self.observe(
            "verdict",
            verdict.value,
            {"fail_step": fail_step, "error_code": error_code},
        )

    @property
    def target_states(self) -> dict[str, TargetState]:
        with self._lock:
            return dict(self._target_states)

    @property
    def verdicts(self) -> list[Verdict]:
        with self._lock:
            return list(self._verdicts)

    @contextmanager
    def scope(
        self, component: str, event_prefix: str = ""
    ) -> Generator[None, None, None]:
        """Context manager that records ``start`` and ``end`` (or ``error``) events.

        Example::

            with observer.scope("platform", "inject"):
                platform.inject("pod-a")
        """
        prefix = f"{event_prefix}_" if event_prefix else ""
        self.observe(component, f"{prefix}start")
        try:
            yield
            self.observe(component, f"{prefix}end")
        except Exception as exc:
            self.observe(
                component,
                f"{prefix}error",
                {"exception_type": type(exc).__name__, "message": str(exc)},
            )
            raise


__all__ = ["ExperimentObserver"]
