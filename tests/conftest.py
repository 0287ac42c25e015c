"""Shared pytest fixtures for the faultline test suite."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable

import pytest

from faultline.context import ChaosContext
from faultline.errors import StatusCheckTimeoutError
from faultline.interfaces import HealthCheckTransport, PlatformActions
from faultline.models import (
    ChaosSpec,
    CommandProbeInputs,
    Comparison,
    DesiredState,
    ProbeDescriptor,
    ProbeKind,
    ProbeMode,
    RunProperties,
)
from faultline.observer import ExperimentObserver

# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakePlatform(PlatformActions):
    """In-memory platform that records every call.

    Inject and revert are idempotent. Targets listed in ``inject_failures`` or
    ``revert_failures`` raise on the matching action; ``on_inject`` and
    ``on_revert`` run after a successful action, for tests that need to act
    mid-run.
    """

    kind = "fake"

    def __init__(
        self,
        inject_failures: Iterable[str] = (),
        revert_failures: Iterable[str] = (),
        on_inject: Callable[[str], None] | None = None,
        on_revert: Callable[[str], None] | None = None,
    ) -> None:
        self.calls: list[tuple[str, str]] = []
        self.states: dict[str, str] = {}
        self.inject_failures = set(inject_failures)
        self.revert_failures = set(revert_failures)
        self.on_inject = on_inject
        self.on_revert = on_revert
        self.max_concurrent = 0
        self._lock = threading.Lock()

    def inject(self, target: str) -> None:
        with self._lock:
            self.calls.append(("inject", target))
            if target in self.inject_failures:
                raise RuntimeError(f"cannot inject {target}")
            self.states[target] = "injected"
            self.max_concurrent = max(self.max_concurrent, len(self.injected()))
        if self.on_inject is not None:
            self.on_inject(target)

    def revert(self, target: str) -> None:
        with self._lock:
            self.calls.append(("revert", target))
            if target in self.revert_failures:
                raise RuntimeError(f"cannot revert {target}")
            self.states[target] = "reverted"
        if self.on_revert is not None:
            self.on_revert(target)

    def wait_for_state(
        self,
        target: str,
        desired: DesiredState,
        timeout: float,
        poll_interval: float,
    ) -> None:
        if self.current_state(target) != desired.value:
            raise StatusCheckTimeoutError(
                f"{target} did not reach {desired.value}", target=target
            )

    def current_state(self, target: str) -> str:
        return self.states.get(target, "reverted")

    def injected(self) -> list[str]:
        return [target for target, state in self.states.items() if state == "injected"]

    def actions(self, action: str) -> list[str]:
        return [target for name, target in self.calls if name == action]


class FakeTransport(HealthCheckTransport):
    """Returns queued outcomes in order, repeating the last one."""

    def __init__(self, *outcomes: str | int | Exception) -> None:
        self.outcomes = list(outcomes) or ["ok"]
        self.calls = 0
        self._lock = threading.Lock()

    def send(self, probe: ProbeDescriptor, timeout: float) -> str | int:
        with self._lock:
            index = min(self.calls, len(self.outcomes) - 1)
            self.calls += 1
        outcome = self.outcomes[index]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeClock:
    """Deterministic monotonic clock whose ``sleep`` advances time."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def command_probe(
    name: str,
    mode: ProbeMode,
    expected: str = "ok",
    **run_properties: object,
) -> ProbeDescriptor:
    """A command probe expecting stdout equal to *expected*, with fast timings."""
    props: dict[str, object] = {"interval": 0.0, "polling_interval": 0.01}
    props.update(run_properties)
    return ProbeDescriptor(
        name=name,
        kind=ProbeKind.command,
        mode=mode,
        run_properties=RunProperties(**props),
        command_inputs=CommandProbeInputs(
            command="echo ok",
            comparator=Comparison(criteria="equal", value=expected),
        ),
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def observer() -> ExperimentObserver:
    """A fresh ExperimentObserver instance."""
    return ExperimentObserver()


@pytest.fixture()
def platform() -> FakePlatform:
    """A fresh FakePlatform with no scripted failures."""
    return FakePlatform()


@pytest.fixture()
def context(observer: ExperimentObserver) -> ChaosContext:
    """Run context reporting into the ``observer`` fixture."""
    return ChaosContext(observer, kind="fake")


@pytest.fixture()
def fast_spec() -> Callable[..., ChaosSpec]:
    """Factory for specs with sub-second timings."""

    def factory(**overrides: object) -> ChaosSpec:
        values: dict[str, object] = {
            "duration": 0.05,
            "interval": 0.01,
            "timeout": 1.0,
            "delay": 0.0,
            "affected_percentage": 100,
        }
        values.update(overrides)
        return ChaosSpec(**values)

    return factory
