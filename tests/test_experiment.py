"""Tests for faultline.experiment: the end-to-end ChaosRunner."""

from __future__ import annotations

import threading
from collections.abc import Callable

import httpx
import pytest
from conftest import FakePlatform, FakeTransport, command_probe

from faultline.checks import HTTPTransport
from faultline.config import CommandPlatformConfig, ExperimentConfig
from faultline.experiment import ChaosRunner
from faultline.models import (
    ChaosPhase,
    ChaosSpec,
    Comparison,
    HTTPProbeInputs,
    ProbeDescriptor,
    ProbeKind,
    ProbeMode,
    ProbeStatus,
    ResourceStateInputs,
    RunProperties,
    TargetState,
    Verdict,
)
from faultline.observer import ExperimentObserver
from faultline.platforms import CommandPlatform

CANDIDATES = ["pod-a", "pod-b", "pod-c"]


def _runner(
    spec: ChaosSpec,
    platform: FakePlatform,
    observer: ExperimentObserver,
    probes: list[ProbeDescriptor] | None = None,
    transport: FakeTransport | None = None,
) -> ChaosRunner:
    return ChaosRunner(
        name="pod-pause",
        spec=spec,
        platform=platform,
        candidates=CANDIDATES,
        probes=probes or [],
        observer=observer,
        transports={ProbeKind.command: transport or FakeTransport("ok")},
    )


class TestSuccessfulRun:
    def test_pass_with_probes(
        self,
        platform: FakePlatform,
        observer: ExperimentObserver,
        fast_spec: Callable[..., ChaosSpec],
    ) -> None:
        probes = [
            command_probe("steady", ProbeMode.sot),
            command_probe("during", ProbeMode.on_chaos),
            command_probe("after", ProbeMode.eot),
        ]
        result = _runner(fast_spec(sequence="serial"), platform, observer, probes).run()

        assert result.verdict == Verdict.passed
        assert result.fail_step is None
        assert result.probe_success_percentage == 100.0
        assert all(probe.status == ProbeStatus.passed for probe in result.probes)
        assert result.targets == {c: TargetState.reverted for c in CANDIDATES}
        assert platform.injected() == []
        assert observer.verdicts == [Verdict.awaited, Verdict.passed]
        assert result.end_time is not None and result.end_time >= result.start_time

    def test_observations_cover_the_phases(
        self,
        platform: FakePlatform,
        observer: ExperimentObserver,
        fast_spec: Callable[..., ChaosSpec],
    ) -> None:
        result = _runner(fast_spec(), platform, observer).run()
        events = {(point.component, point.event) for point in result.observations}
        assert ("probes", "pre_chaos_start") in events
        assert ("sequencer", "chaos_end") in events
        assert ("probes", "post_chaos_end") in events

    def test_partial_selection(
        self,
        platform: FakePlatform,
        observer: ExperimentObserver,
        fast_spec: Callable[..., ChaosSpec],
    ) -> None:
        result = _runner(fast_spec(affected_percentage=30), platform, observer).run()
        assert result.verdict == Verdict.passed
        assert len(set(platform.actions("inject"))) == 1
        assert len(result.targets) == 1


class TestFailedRun:
    def test_pre_chaos_http_500_skips_injection(
        self,
        platform: FakePlatform,
        observer: ExperimentObserver,
        fast_spec: Callable[..., ChaosSpec],
    ) -> None:
        probe = ProbeDescriptor(
            name="frontend",
            kind=ProbeKind.http,
            mode=ProbeMode.edge,
            run_properties=RunProperties(attempts=2, interval=0),
            http_inputs=HTTPProbeInputs(url="http://frontend.local/", response_code="200"),
        )
        runner = ChaosRunner(
            name="pod-pause",
            spec=fast_spec(),
            platform=platform,
            candidates=CANDIDATES,
            probes=[probe],
            observer=observer,
            transports={
                ProbeKind.http: HTTPTransport(
                    httpx.MockTransport(lambda request: httpx.Response(500))
                )
            },
        )
        result = runner.run()

        assert result.verdict == Verdict.failed
        assert result.fail_step == ChaosPhase.pre_chaos
        assert result.error_code == "probe_failure"
        assert result.probe_success_percentage == 0.0
        assert result.probes[0].attempts == 2
        assert platform.calls == []
        assert observer.verdicts == [Verdict.awaited, Verdict.failed]

    def test_inject_failure_fails_in_chaos_inject(
        self,
        observer: ExperimentObserver,
        fast_spec: Callable[..., ChaosSpec],
    ) -> None:
        platform = FakePlatform(inject_failures={"pod-b"})
        result = _runner(fast_spec(sequence="parallel"), platform, observer).run()
        assert result.verdict == Verdict.failed
        assert result.fail_step == ChaosPhase.chaos_inject
        assert result.error_code == "chaos_inject"
        assert platform.injected() == []

    def test_eot_failure_fails_in_post_chaos(
        self,
        platform: FakePlatform,
        observer: ExperimentObserver,
        fast_spec: Callable[..., ChaosSpec],
    ) -> None:
        probes = [command_probe("after", ProbeMode.eot, expected="healthy")]
        result = _runner(fast_spec(), platform, observer, probes).run()
        assert result.verdict == Verdict.failed
        assert result.fail_step == ChaosPhase.post_chaos
        assert result.probe_success_percentage == 0.0

    def test_partial_revert_errors_reported(
        self,
        observer: ExperimentObserver,
        fast_spec: Callable[..., ChaosSpec],
    ) -> None:
        platform = FakePlatform(revert_failures={"pod-c"})
        result = _runner(fast_spec(sequence="parallel"), platform, observer).run()
        assert result.revert_errors
        assert result.targets["pod-c"] == TargetState.injected

    def test_stop_on_failure_ends_run_and_reverts(
        self,
        platform: FakePlatform,
        observer: ExperimentObserver,
        fast_spec: Callable[..., ChaosSpec],
    ) -> None:
        probes = [
            command_probe("watch", ProbeMode.continuous, expected="healthy", stop_on_failure=True)
        ]
        spec = fast_spec(duration=5, interval=2)
        result = _runner(spec, platform, observer, probes).run()
        assert result.verdict == Verdict.failed
        assert result.error_code == "probe_failure"
        assert platform.injected() == []
        assert Verdict.stopped not in observer.verdicts


class TestAbortedRun:
    def test_abort_mid_injection_reverts_and_stops(
        self,
        observer: ExperimentObserver,
        fast_spec: Callable[..., ChaosSpec],
    ) -> None:
        holder: dict[str, ChaosRunner] = {}

        def on_inject(target: str) -> None:
            if target == "pod-b":
                holder["runner"].abort("SIGTERM")

        platform = FakePlatform(on_inject=on_inject)
        runner = _runner(fast_spec(sequence="serial", duration=5, interval=0.1), platform, observer)
        holder["runner"] = runner
        result = runner.run()

        assert result.verdict == Verdict.stopped
        assert result.fail_step == ChaosPhase.chaos_inject
        assert result.error_code == "experiment_aborted"
        assert result.abort is not None
        assert result.abort.reason == "SIGTERM"
        assert "pod-b" in result.abort.reverted
        assert platform.injected() == []
        assert "pod-c" not in platform.actions("inject")
        assert observer.verdicts == [Verdict.awaited, Verdict.stopped]

    def test_abort_during_ramp_skips_injection(
        self,
        platform: FakePlatform,
        observer: ExperimentObserver,
        fast_spec: Callable[..., ChaosSpec],
    ) -> None:
        runner = _runner(fast_spec(ramp_time=5), platform, observer)
        timer = threading.Timer(0.05, runner.abort, args=("SIGINT",))
        timer.start()
        try:
            result = runner.run()
        finally:
            timer.cancel()
        assert result.verdict == Verdict.stopped
        assert result.fail_step == ChaosPhase.chaos_inject
        assert platform.calls == []


class TestFromConfig:
    def test_builds_command_platform(self, fast_spec: Callable[..., ChaosSpec]) -> None:
        config = ExperimentConfig(
            name="cmd",
            spec=fast_spec(),
            candidates=["x"],
            platform=CommandPlatformConfig(inject="true", revert="true"),
        )
        runner = ChaosRunner.from_config(config)
        assert isinstance(runner.platform, CommandPlatform)
        assert runner.run().verdict == Verdict.passed


class TestCleanupErrors:
    def test_cleanup_revert_errors_reach_the_result(
        self,
        observer: ExperimentObserver,
        fast_spec: Callable[..., ChaosSpec],
    ) -> None:
        platform = FakePlatform(inject_failures={"pod-b"}, revert_failures={"pod-a"})
        result = _runner(fast_spec(sequence="parallel"), platform, observer).run()
        assert result.verdict == Verdict.failed
        assert result.error_code == "chaos_inject"
        assert len(result.revert_errors) == 1
        assert "pod-a" in result.revert_errors[0]
        assert result.targets["pod-a"] == TargetState.injected


class TestSerialScenario:
    def test_forty_percent_of_five_faults_two_targets(
        self,
        platform: FakePlatform,
        observer: ExperimentObserver,
        fast_spec: Callable[..., ChaosSpec],
    ) -> None:
        candidates = ["pod-1", "pod-2", "pod-3", "pod-4", "pod-5"]
        spec = fast_spec(sequence="serial", affected_percentage=40, duration=0.03, interval=0.02)
        runner = ChaosRunner(
            name="pod-pause",
            spec=spec,
            platform=platform,
            candidates=candidates,
            observer=observer,
        )
        result = runner.run()

        assert result.verdict == Verdict.passed
        assert len(result.targets) == 2
        assert set(result.targets.values()) == {TargetState.reverted}
        targeted = set(result.targets)
        assert set(platform.actions("inject")) == targeted
        # Each inject is followed by the revert of the same target
        injects_and_reverts = [call for call in platform.calls if call[1] in targeted]
        for (first, target), (second, other) in zip(
            injects_and_reverts[::2], injects_and_reverts[1::2], strict=True
        ):
            assert (first, second) == ("inject", "revert")
            assert target == other
        assert result.end_time is not None
        assert (result.end_time - result.start_time).total_seconds() >= spec.duration


class TestStateReaderWiring:
    def test_resource_probe_rejected_without_state_support(
        self,
        observer: ExperimentObserver,
        fast_spec: Callable[..., ChaosSpec],
    ) -> None:
        probe = ProbeDescriptor(
            name="state",
            kind=ProbeKind.resource_state,
            mode=ProbeMode.eot,
            resource_inputs=ResourceStateInputs(
                resource="pod-a", comparator=Comparison(criteria="equal", value="Running")
            ),
        )
        with pytest.raises(ValueError, match="no transport"):
            ChaosRunner(
                name="cmd",
                spec=fast_spec(),
                platform=CommandPlatform(inject_command="true", revert_command="true"),
                candidates=["x"],
                probes=[probe],
                observer=observer,
            )

    def test_resource_probe_accepted_with_state_command(
        self,
        observer: ExperimentObserver,
        fast_spec: Callable[..., ChaosSpec],
    ) -> None:
        probe = ProbeDescriptor(
            name="state",
            kind=ProbeKind.resource_state,
            mode=ProbeMode.eot,
            resource_inputs=ResourceStateInputs(
                resource="x", comparator=Comparison(criteria="equal", value="reverted")
            ),
        )
        platform = CommandPlatform(
            inject_command="true", revert_command="true", state_command="echo reverted"
        )
        runner = ChaosRunner(
            name="cmd",
            spec=fast_spec(),
            platform=platform,
            candidates=["x"],
            probes=[probe],
            observer=observer,
        )
        assert [state.descriptor.name for state in runner.probes.states()] == ["state"]
