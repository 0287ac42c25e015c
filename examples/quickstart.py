"""faultline quickstart: working demonstrations of the chaos lifecycle.

Run this file directly to verify your installation:

    python examples/quickstart.py

Each demo is self-contained. Targets are short-lived ``sleep`` processes paused
with SIGSTOP and resumed with SIGCONT, so the demos need Linux and finish in a
few seconds.
"""

from __future__ import annotations

import random
import subprocess
import threading

from faultline import (
    ChaosRunner,
    ChaosSpec,
    ExperimentObserver,
    ProbeDescriptor,
    SignalPlatform,
    TargetState,
    Verdict,
    select_targets,
)
from faultline.models import CommandProbeInputs, Comparison, ProbeKind, ProbeMode, RunProperties


def _spawn(count: int) -> list[subprocess.Popen[bytes]]:
    return [subprocess.Popen(["sleep", "60"]) for _ in range(count)]  # noqa: S603, S607


def _reap(children: list[subprocess.Popen[bytes]]) -> None:
    for child in children:
        child.kill()
        child.wait()


# ---------------------------------------------------------------------------
# Demo 1: Target selection
# ---------------------------------------------------------------------------

def demo_target_selection() -> None:
    """Show how the affected percentage maps onto a candidate pool."""

    print("\n=== Demo 1: Target Selection ===")

    candidates = ["pod-a", "pod-b", "pod-c", "pod-d", "pod-e"]
    rng = random.Random(42)
    for percentage in (0, 40, 100):
        targets = select_targets(candidates, percentage, rng=rng)
        print(f"  {percentage:>3}% of {len(candidates)} -> {list(targets)}")
    assert len(select_targets(candidates, 40, rng=rng)) == 2


# ---------------------------------------------------------------------------
# Demo 2: A full serial run with probes
# ---------------------------------------------------------------------------

def demo_serial_run() -> None:
    """Pause each process in turn while a command probe watches the host."""

    print("\n=== Demo 2: Serial Run With Probes ===")

    children = _spawn(3)
    probe = ProbeDescriptor(
        name="host-alive",
        kind=ProbeKind.command,
        mode=ProbeMode.edge,
        run_properties=RunProperties(attempts=2, interval=0.1),
        command_inputs=CommandProbeInputs(
            command="echo alive", comparator=Comparison(criteria="equal", value="alive")
        ),
    )
    observer = ExperimentObserver()
    runner = ChaosRunner(
        name="pause-sleepers",
        spec=ChaosSpec(duration=0.6, interval=0.2, sequence="serial", affected_percentage=100, delay=0.05),
        platform=SignalPlatform(),
        candidates=[str(child.pid) for child in children],
        probes=[probe],
        observer=observer,
    )
    try:
        result = runner.run()
    finally:
        _reap(children)

    print(f"  verdict: {result.verdict.value}, probes passed: {result.probe_success_percentage}%")
    for target, state in result.targets.items():
        print(f"  pid {target}: {state.value}")
    print(f"  observations recorded: {len(result.observations)}")
    assert result.verdict == Verdict.passed
    assert all(state == TargetState.reverted for state in result.targets.values())


# ---------------------------------------------------------------------------
# Demo 3: Interrupting a run
# ---------------------------------------------------------------------------

def demo_abort() -> None:
    """Abort mid-run and let the watcher resume every paused process."""

    print("\n=== Demo 3: Abort And Revert ===")

    children = _spawn(2)
    runner = ChaosRunner(
        name="abort-demo",
        spec=ChaosSpec(duration=10, interval=5, sequence="parallel", affected_percentage=100, delay=0.05),
        platform=SignalPlatform(),
        candidates=[str(child.pid) for child in children],
    )
    timer = threading.Timer(0.5, runner.abort, args=("demo-interrupt",))
    timer.start()
    try:
        result = runner.run()
    finally:
        timer.cancel()
        _reap(children)

    assert result.abort is not None
    print(f"  verdict: {result.verdict.value} during {result.abort.phase.value}")
    print(f"  reverted by watcher: {result.abort.reverted}")
    assert result.verdict == Verdict.stopped


def main() -> None:
    demo_target_selection()
    demo_serial_run()
    demo_abort()
    print("\nAll demos completed.")


if __name__ == "__main__":
    main()
