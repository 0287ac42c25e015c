"""Reference platform adapters: shell commands and POSIX process signals."""

from __future__ import annotations

import logging
import os
import signal
import subprocess
from pathlib import Path

from faultline.errors import ChaosInjectError, ChaosLibError, ChaosRevertError
from faultline.interfaces import PlatformActions
from faultline.models import DesiredState
from faultline.retry import poll_until

logger = logging.getLogger(__name__)


class CommandPlatform(PlatformActions):
    """Drive faults through shell command templates.

    ``{target}`` in each template is replaced by the target identifier.
    When a ``state_command`` is given, its stripped stdout is compared with
    ``injected_state``/``reverted_state`` both to skip redundant actions and
    to wait for a target to settle. Without one, settling is assumed to be
    immediate.
    """

    kind = "command"

    def __init__(
        self,
        inject_command: str,
        revert_command: str,
        state_command: str | None = None,
        injected_state: str = "injected",
        reverted_state: str = "reverted",
        command_timeout: float = 60.0,
    ) -> None:
        self.inject_command = inject_command
        self.revert_command = revert_command
        self.state_command = state_command
        self.injected_state = injected_state
        self.reverted_state = reverted_state
        self.command_timeout = command_timeout

    def _run(self, template: str, target: str) -> str:
        command = template.format(target=target)
        try:
            completed = subprocess.run(  # noqa: S602
                command,
                shell=True,
                capture_output=True,
                text=True,
                timeout=self.command_timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise ChaosLibError(
                f"command '{command}' timed out after {self.command_timeout}s", target=target
            ) from exc
        if completed.returncode != 0:
            raise ChaosLibError(
                f"command '{command}' exited with {completed.returncode}: "
                f"{completed.stderr.strip()}",
                target=target,
            )
        return completed.stdout.strip()

    @property
    def reports_state(self) -> bool:
        return self.state_command is not None

    def current_state(self, target: str) -> str:
        if self.state_command is None:
            raise NotImplementedError("no state_command configured")
        return self._run(self.state_command, target)

    def _already(self, target: str, state: str) -> bool:
        if self.state_command is None:
            return False
        try:
            return self.current_state(target) == state
        except ChaosLibError as exc:
            logger.warning("[Status]: Unable to read state of %s: %s", target, exc)
            return False

    def inject(self, target: str) -> None:
        if self._already(target, self.injected_state):
            logger.info("[Skip]: %s is already %s", target, self.injected_state)
            return
        try:
            self._run(self.inject_command, target)
        except ChaosLibError as exc:
            raise ChaosInjectError(exc.reason, target=target) from exc

    def revert(self, target: str) -> None:
        if self._already(target, self.reverted_state):
            logger.info("[Skip]: %s is already %s", target, self.reverted_state)
            return
        try:
            self._run(self.revert_command, target)
        except ChaosLibError as exc:
            raise ChaosRevertError(exc.reason, target=target) from exc

    def wait_for_state(
        self,
        target: str,
        desired: DesiredState,
        timeout: float,
        poll_interval: float,
    ) -> None:
        if self.state_command is None:
            return
        expected = self.injected_state if desired == DesiredState.injected else self.reverted_state
        poll_until(
            lambda: self.current_state(target) == expected,
            timeout,
            poll_interval,
            target=target,
            description=f"state '{expected}'",
        )


class SignalPlatform(PlatformActions):
    """Pause processes with SIGSTOP and resume them with SIGCONT.

    Targets are process IDs. State is read from ``/proc/<pid>/stat``, so
    settle checks need a Linux-style procfs.
    """

    kind = "process"

    def __init__(self, proc_root: str = "/proc") -> None:
        self.proc_root = Path(proc_root)

    @staticmethod
    def _pid(target: str) -> int:
        try:
            return int(target)
        except ValueError:
            raise ChaosLibError(f"'{target}' is not a process id", target=target) from None

    def current_state(self, target: str) -> str:
        """Return the single-letter process state (``T`` when stopped)."""
        stat = (self.proc_root / str(self._pid(target)) / "stat").read_text(encoding="utf-8")
        # The command name may contain spaces; the state follows its closing paren.
        return stat.rsplit(")", 1)[1].split()[0]

    def inject(self, target: str) -> None:
        pid = self._pid(target)
        try:
            os.kill(pid, signal.SIGSTOP)
        except ProcessLookupError as exc:
            raise ChaosInjectError(f"process {pid} not found", target=target) from exc
        except PermissionError as exc:
            raise ChaosInjectError(f"permission denied signalling {pid}", target=target) from exc

    def revert(self, target: str) -> None:
        pid = self._pid(target)
        try:
            os.kill(pid, signal.SIGCONT)
        except ProcessLookupError:
            logger.info("[Skip]: Process %s is gone, nothing to resume", pid)
        except PermissionError as exc:
            raise ChaosRevertError(f"permission denied signalling {pid}", target=target) from exc

    def wait_for_state(
        self,
        target: str,
        desired: DesiredState,
        timeout: float,
        poll_interval: float,
    ) -> None:
        def settled() -> bool:
            try:
                state = self.current_state(target)
            except FileNotFoundError:
                # A vanished process cannot be left paused.
                return desired == DesiredState.reverted
            stopped = state in ("T", "t")
            return stopped if desired == DesiredState.injected else not stopped

        poll_until(
            settled,
            timeout,
            poll_interval,
            target=target,
            description=f"process {desired.value}",
        )


__all__ = ["CommandPlatform", "SignalPlatform"]
