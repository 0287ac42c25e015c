"""Pydantic models for faultline."""

from __future__ import annotations

import random
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class ExecutionMode(str, Enum):
    """How the sequencer walks the target set."""

    serial = "serial"
    parallel = "parallel"


class TargetState(str, Enum):
    """Lifecycle tag of one target within a run."""

    not_targeted = "not-targeted"
    targeted = "targeted"
    injected = "injected"
    reverted = "reverted"


class DesiredState(str, Enum):
    """State a platform is asked to settle a target into."""

    injected = "injected"
    reverted = "reverted"


class ChaosPhase(str, Enum):
    """Run phase; only ever moves forward."""

    pre_chaos = "PreChaos"
    chaos_inject = "ChaosInject"
    post_chaos = "PostChaos"
    completed = "Completed"

    @property
    def order(self) -> int:
        return _PHASE_ORDER.index(self)


_PHASE_ORDER = [
    ChaosPhase.pre_chaos,
    ChaosPhase.chaos_inject,
    ChaosPhase.post_chaos,
    ChaosPhase.completed,
]


class Verdict(str, Enum):
    """Final classification of a chaos run."""

    awaited = "Awaited"
    passed = "Pass"
    failed = "Fail"
    stopped = "Stopped"


class ProbeKind(str, Enum):
    """Transport used by a probe."""

    http = "http"
    command = "command"
    resource_state = "resource_state"


class ProbeMode(str, Enum):
    """When a probe is evaluated relative to the chaos window."""

    sot = "SOT"
    eot = "EOT"
    edge = "Edge"
    continuous = "Continuous"
    on_chaos = "OnChaos"


class ProbeStatus(str, Enum):
    """Outcome of a single probe."""

    awaited = "Awaited"
    passed = "Passed"
    failed = "Failed"


class ComparatorType(str, Enum):
    """How actual and expected probe values are compared."""

    int = "int"
    float = "float"
    string = "string"


# ---------------------------------------------------------------------------
# Range helpers
# ---------------------------------------------------------------------------

def _parse_range(value: Any) -> tuple[float, float | None]:
    """Split ``"lower-upper"`` into a pair; plain values yield ``(value, None)``."""
    if isinstance(value, str) and "-" in value.strip().lstrip("-"):
        lower, _, upper = value.strip().partition("-")
        low, high = float(lower), float(upper)
        if low > high:
            raise ValueError(f"invalid range '{value}': lower bound exceeds upper bound")
        return low, high
    return float(value), None


def resolve_sequence(value: str | ExecutionMode, rng: random.Random | None = None) -> ExecutionMode:
    """Map a sequence name to an :class:`ExecutionMode`; ``"random"`` picks one."""
    if isinstance(value, ExecutionMode):
        return value
    value = value.lower()
    if value == "random":
        rng = rng or random.Random()  # noqa: S311
        return rng.choice(list(ExecutionMode))
    try:
        return ExecutionMode(value)
    except ValueError:
        raise ValueError(f"'{value}' sequence is not supported") from None


# ---------------------------------------------------------------------------
# ChaosSpec
# ---------------------------------------------------------------------------

class ChaosSpec(BaseModel):
    """Immutable tunables for one chaos run.

    Range-encoded values (``"20-60"`` for the affected percentage,
    ``"5-10"`` for the interval) and ``sequence="random"`` are resolved
    exactly once, when the model is constructed.
    """

    model_config = ConfigDict(frozen=True)

    duration: float = Field(default=30.0, gt=0)
    interval: float = Field(default=10.0, ge=0)
    interval_upper: float | None = Field(default=None, ge=0)
    ramp_time: float = Field(default=0.0, ge=0)
    sequence: ExecutionMode = ExecutionMode.parallel
    affected_percentage: int = Field(default=0, ge=0, le=100)
    randomize_order: bool = False
    randomness: bool = False
    timeout: float = Field(default=180.0, gt=0)
    delay: float = Field(default=2.0, ge=0)

    @model_validator(mode="before")
    @classmethod
    def _resolve_tunables(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)

        percentage = data.get("affected_percentage")
        if percentage is not None and not isinstance(percentage, int):
            low, high = _parse_range(percentage)
            if high is None:
                data["affected_percentage"] = int(low)
            else:
                data["affected_percentage"] = random.randint(int(low), int(high))  # noqa: S311

        interval = data.get("interval")
        if isinstance(interval, str):
            low, high = _parse_range(interval)
            data["interval"] = low
            if high is not None:
                data.setdefault("interval_upper", high)

        sequence = data.get("sequence")
        if isinstance(sequence, str):
            data["sequence"] = resolve_sequence(sequence)
        return data

    @model_validator(mode="after")
    def _check_interval_bounds(self) -> ChaosSpec:
        if self.interval_upper is not None and self.interval_upper < self.interval:
            raise ValueError("interval_upper must not be lower than interval")
        return self


# ---------------------------------------------------------------------------
# Probe descriptors
# ---------------------------------------------------------------------------

class RunProperties(BaseModel):
    """Retry, timing and failure policy of a probe."""

    model_config = ConfigDict(frozen=True)

    attempts: int = Field(default=1, ge=1)
    probe_timeout: float = Field(default=5.0, gt=0)
    interval: float = Field(default=1.0, ge=0)
    polling_interval: float = Field(default=1.0, ge=0)
    initial_delay: float = Field(default=0.0, ge=0)
    stop_on_failure: bool = False


class Comparison(BaseModel):
    """Expected value plus the criteria the actual value must satisfy."""

    model_config = ConfigDict(frozen=True)

    type: ComparatorType = ComparatorType.string
    criteria: str
    value: str


class HTTPProbeInputs(BaseModel):
    """Request description and expected status for an HTTP probe."""

    model_config = ConfigDict(frozen=True)

    url: str
    method: str = "GET"
    criteria: str = "=="
    response_code: str = "200"
    body: str | None = None
    body_path: str | None = None
    content_type: str = "application/json"
    insecure_skip_verify: bool = False

    @field_validator("method")
    @classmethod
    def _normalise_method(cls, value: str) -> str:
        method = value.upper()
        if method not in ("GET", "POST"):
            raise ValueError(f"http method '{value}' is not supported")
        return method

    @model_validator(mode="after")
    def _check_body(self) -> HTTPProbeInputs:
        if self.method == "POST" and self.body is None and self.body_path is None:
            raise ValueError("POST http probes need one of body or body_path")
        return self


class CommandProbeInputs(BaseModel):
    """Shell command whose stdout is compared against an expectation."""

    model_config = ConfigDict(frozen=True)

    command: str
    comparator: Comparison


class ResourceStateInputs(BaseModel):
    """Platform resource whose reported state is compared against an expectation."""

    model_config = ConfigDict(frozen=True)

    resource: str
    comparator: Comparison


class ProbeDescriptor(BaseModel):
    """Declarative health check evaluated around the chaos window."""

    model_config = ConfigDict(frozen=True)

    name: str
    kind: ProbeKind
    mode: ProbeMode
    run_properties: RunProperties = Field(default_factory=RunProperties)
    http_inputs: HTTPProbeInputs | None = None
    command_inputs: CommandProbeInputs | None = None
    resource_inputs: ResourceStateInputs | None = None

    @model_validator(mode="after")
    def _check_inputs(self) -> ProbeDescriptor:
        required = {
            ProbeKind.http: ("http_inputs", self.http_inputs),
            ProbeKind.command: ("command_inputs", self.command_inputs),
            ProbeKind.resource_state: ("resource_inputs", self.resource_inputs),
        }
        field_name, inputs = required[self.kind]
        if inputs is None:
            raise ValueError(f"{self.kind.value} probe '{self.name}' requires {field_name}")
        return self

    def comparison(self) -> Comparison:
        """Return the expectation the probe outcome is compared against."""
        if self.kind == ProbeKind.http:
            if self.http_inputs is None:
                raise ValueError(f"http probe '{self.name}' requires http_inputs")
            return Comparison(
                type=ComparatorType.int,
                criteria=self.http_inputs.criteria,
                value=self.http_inputs.response_code,
            )
        if self.kind == ProbeKind.command:
            if self.command_inputs is None:
                raise ValueError(f"command probe '{self.name}' requires command_inputs")
            return self.command_inputs.comparator
        if self.resource_inputs is None:
            raise ValueError(f"resource_state probe '{self.name}' requires resource_inputs")
        return self.resource_inputs.comparator

    @property
    def first_phase(self) -> ChaosPhase:
        """Earliest phase in which this probe is evaluated."""
        if self.mode in (ProbeMode.sot, ProbeMode.edge, ProbeMode.continuous):
            return ChaosPhase.pre_chaos
        if self.mode == ProbeMode.on_chaos:
            return ChaosPhase.chaos_inject
        return ChaosPhase.post_chaos


# ---------------------------------------------------------------------------
# Report records
# ---------------------------------------------------------------------------

class ObservationPoint(BaseModel):
    """A single timestamped observation captured during a run."""

    timestamp: datetime
    component: str
    event: str
    details: dict[str, object] = Field(default_factory=dict)


class ProbeResult(BaseModel):
    """Snapshot of one probe's outcome."""

    name: str
    kind: ProbeKind
    mode: ProbeMode
    status: ProbeStatus
    attempts: int = 0
    description: str = ""
    failed_phase: ChaosPhase | None = None
    error: str | None = None
    error_code: str | None = None


class AbortReport(BaseModel):
    """What the abort watcher reverted, and what it could not."""

    reason: str
    phase: ChaosPhase
    reverted: list[str] = Field(default_factory=list)
    failed: dict[str, str] = Field(default_factory=dict)


class ChaosResult(BaseModel):
    """Complete record of one chaos run."""

    experiment: str
    verdict: Verdict = Verdict.awaited
    fail_step: ChaosPhase | None = None
    error_code: str | None = None
    reason: str | None = None
    probe_success_percentage: float = 100.0
    probes: list[ProbeResult] = Field(default_factory=list)
    targets: dict[str, TargetState] = Field(default_factory=dict)
    revert_errors: list[str] = Field(default_factory=list)
    abort: AbortReport | None = None
    start_time: datetime
    end_time: datetime | None = None
    observations: list[ObservationPoint] = Field(default_factory=list)


__all__ = [
    "AbortReport",
    "ChaosPhase",
    "ChaosResult",
    "ChaosSpec",
    "CommandProbeInputs",
    "Comparison",
    "ComparatorType",
    "DesiredState",
    "ExecutionMode",
    "HTTPProbeInputs",
    "ObservationPoint",
    "ProbeDescriptor",
    "ProbeKind",
    "ProbeMode",
    "ProbeResult",
    "ProbeStatus",
    "ResourceStateInputs",
    "RunProperties",
    "TargetState",
    "Verdict",
    "resolve_sequence",
]
