"""faultline: chaos lifecycle coordinator with guaranteed revert."""

__version__ = "0.1.0"

from faultline.config import ExperimentConfig, load_experiment, spec_from_env  # noqa: E402
from faultline.context import ChaosContext, TargetTracker  # noqa: E402
from faultline.errors import (  # noqa: E402
    ChaosInjectError,
    ChaosLibError,
    ChaosRevertError,
    ErrorType,
    ExperimentAbortedError,
    ProbeError,
    ProbeTimeoutError,
    StatusCheckTimeoutError,
    TargetSelectionError,
)
from faultline.experiment import ChaosRunner  # noqa: E402
from faultline.interfaces import HealthCheckTransport, PlatformActions, ResultSink  # noqa: E402
from faultline.models import (  # noqa: E402
    AbortReport,
    ChaosPhase,
    ChaosResult,
    ChaosSpec,
    ExecutionMode,
    ObservationPoint,
    ProbeDescriptor,
    ProbeMode,
    ProbeResult,
    TargetState,
    Verdict,
)
from faultline.observer import ExperimentObserver  # noqa: E402
from faultline.platforms import CommandPlatform, SignalPlatform  # noqa: E402
from faultline.probes import ProbeEngine  # noqa: E402
from faultline.selector import select_targets  # noqa: E402
from faultline.sequencer import InjectionSequencer, SequencerOutcome, SequencerState  # noqa: E402
from faultline.watcher import AbortWatcher  # noqa: E402

__all__ = [
    "AbortReport",
    "AbortWatcher",
    "ChaosContext",
    "ChaosInjectError",
    "ChaosLibError",
    "ChaosPhase",
    "ChaosResult",
    "ChaosRevertError",
    "ChaosRunner",
    "ChaosSpec",
    "CommandPlatform",
    "ErrorType",
    "ExecutionMode",
    "ExperimentAbortedError",
    "ExperimentConfig",
    "ExperimentObserver",
    "HealthCheckTransport",
    "InjectionSequencer",
    "ObservationPoint",
    "PlatformActions",
    "ProbeDescriptor",
    "ProbeEngine",
    "ProbeError",
    "ProbeMode",
    "ProbeResult",
    "ProbeTimeoutError",
    "ResultSink",
    "SequencerOutcome",
    "SequencerState",
    "SignalPlatform",
    "StatusCheckTimeoutError",
    "TargetSelectionError",
    "TargetState",
    "TargetTracker",
    "Verdict",
    "load_experiment",
    "select_targets",
    "spec_from_env",
]
