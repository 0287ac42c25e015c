"""Abort watcher: reverts every faulted target when the run is interrupted."""

from __future__ import annotations

import logging
import signal
import threading
from types import FrameType

from faultline.context import ChaosContext
from faultline.errors import ErrorType
from faultline.interfaces import PlatformActions, ResultSink
from faultline.models import AbortReport, ChaosSpec, DesiredState, TargetState, Verdict

logger = logging.getLogger(__name__)


class AbortWatcher:
    """Background observer that guarantees cleanup on external interruption.

    The watcher blocks on the context's abort token. When it fires, every
    target still tracked as ``targeted`` or ``injected`` is reverted and
    re-verified; a failing target is logged and recorded but never stops the
    others from being reverted. A ``Stopped`` verdict is then sent to the sink
    and an :class:`~faultline.models.AbortReport` published.

    The abort is one-shot: later triggers are ignored. The watcher never
    exits the process; callers decide how to shut down.
    """

    def __init__(
        self,
        spec: ChaosSpec,
        platform: PlatformActions,
        context: ChaosContext,
        sink: ResultSink | None = None,
    ) -> None:
        self.spec = spec
        self.platform = platform
        self.context = context
        self.sink = sink
        self.report: AbortReport | None = None
        self._released = threading.Event()
        self._finished = threading.Event()
        self._thread: threading.Thread | None = None
        self._previous_handlers: dict[int, object] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Spawn the watcher thread."""
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._watch, name="abort-watcher", daemon=True)
        self._thread.start()

    def trigger(self, reason: str = "interrupt") -> bool:
        """Fire the abort; returns False if an abort was already in progress."""
        fired = self.context.request_abort(reason)
        if fired:
            logger.warning("[Abort]: Abort requested (%s)", reason)
        else:
            logger.info("[Abort]: Abort already in progress, ignoring %s", reason)
        return fired

    def stop(self) -> None:
        """Release the watcher after a run that finished without an abort."""
        self._released.set()
        if self._thread is None:
            self._finished.set()
        else:
            self._thread.join()

    def wait(self, timeout: float | None = None) -> AbortReport | None:
        """Block until the watcher has finished; return the abort report, if any."""
        self._finished.wait(timeout)
        return self.report

    @property
    def finished(self) -> bool:
        return self._finished.is_set()

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    def install_signal_handlers(self, signals: tuple[int, ...] = (signal.SIGINT, signal.SIGTERM)) -> None:
        """Route *signals* to :meth:`trigger`. Must be called from the main thread."""
        for signum in signals:
            self._previous_handlers[signum] = signal.signal(signum, self._handle_signal)

    def restore_signal_handlers(self) -> None:
        for signum, handler in self._previous_handlers.items():
            signal.signal(signum, handler)  # type: ignore[arg-type]
        self._previous_handlers.clear()

    def _handle_signal(self, signum: int, frame: FrameType | None) -> None:
        self.trigger(signal.Signals(signum).name)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _watch(self) -> None:
        # Short waits so a release from stop() is noticed promptly.
        try:
            while not self.context.abort_event.wait(0.05):
                if self._released.is_set():
                    return
            self._revert_all()
        finally:
            self._finished.set()

    def _revert_all(self) -> None:
        phase = self.context.phase
        reason = self.context.abort_reason or "interrupt"
        report = AbortReport(reason=reason, phase=phase)
        logger.info("[Abort]: Chaos revert started")

        for target in self.context.targets.in_state(TargetState.targeted, TargetState.injected):
            try:
                self.platform.revert(target)
                self.platform.wait_for_state(
                    target, DesiredState.reverted, self.spec.timeout, self.spec.delay
                )
            except Exception as exc:  # noqa: BLE001
                logger.error("[Abort]: Unable to revert %s: %s", target, exc)
                report.failed[target] = str(exc)
                continue
            self.context.targets.mark(target, TargetState.reverted)
            report.reverted.append(target)

        self.report = report
        if self.sink is not None:
            self.sink.record_verdict(
                Verdict.stopped,
                fail_step=phase.value,
                error_code=ErrorType.experiment_aborted.value,
            )
        logger.info(
            "[Abort]: Chaos revert completed (%d reverted, %d failed)",
            len(report.reverted), len(report.failed),
        )


__all__ = ["AbortWatcher"]
