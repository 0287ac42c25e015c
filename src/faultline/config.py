"""Experiment configuration: file loading, environment overrides, platform factory."""

from __future__ import annotations

import json
from collections.abc import Mapping
from pathlib import Path
from typing import Annotated, Any, Literal

import yaml
from pydantic import BaseModel, Field

from faultline.interfaces import PlatformActions
from faultline.models import ChaosSpec, ProbeDescriptor
from faultline.platforms import CommandPlatform, SignalPlatform


class CommandPlatformConfig(BaseModel):
    type: Literal["command"] = "command"
    inject: str
    revert: str
    state: str | None = None
    injected_state: str = "injected"
    reverted_state: str = "reverted"
    command_timeout: float = Field(default=60.0, gt=0)


class SignalPlatformConfig(BaseModel):
    type: Literal["signal"] = "signal"
    proc_root: str = "/proc"


PlatformConfig = Annotated[
    CommandPlatformConfig | SignalPlatformConfig,
    Field(discriminator="type"),
]


class ExperimentConfig(BaseModel):
    """Everything needed to run one experiment from the command line."""

    name: str
    spec: ChaosSpec = Field(default_factory=ChaosSpec)
    candidates: list[str] = Field(default_factory=list)
    probes: list[ProbeDescriptor] = Field(default_factory=list)
    platform: PlatformConfig


# Environment variable -> ChaosSpec field
ENV_FIELDS: dict[str, str] = {
    "TOTAL_CHAOS_DURATION": "duration",
    "CHAOS_INTERVAL": "interval",
    "RAMP_TIME": "ramp_time",
    "SEQUENCE": "sequence",
    "PODS_AFFECTED_PERC": "affected_percentage",
    "RANDOMNESS": "randomness",
    "TIMEOUT": "timeout",
    "DELAY": "delay",
}


def load_experiment(path: str | Path) -> ExperimentConfig:
    """Load an :class:`ExperimentConfig` from a YAML or JSON file."""
    file_path = Path(path)
    raw = file_path.read_text(encoding="utf-8")
    if file_path.suffix in (".yaml", ".yml"):
        data: dict[str, Any] = yaml.safe_load(raw) or {}
    else:
        data = json.loads(raw)
    return ExperimentConfig.model_validate(data)


def spec_from_env(environ: Mapping[str, str], base: ChaosSpec | None = None) -> ChaosSpec:
    """Build a :class:`ChaosSpec` from environment variables.

    Unset or empty variables keep the value from *base* (or the default).
    Range values such as ``PODS_AFFECTED_PERC=20-60`` are accepted.
    """
    data: dict[str, Any] = base.model_dump() if base is not None else {}
    for env_name, field_name in ENV_FIELDS.items():
        value = environ.get(env_name, "").strip()
        if not value:
            continue
        if field_name == "interval":
            data.pop("interval_upper", None)
        if field_name == "randomness":
            data[field_name] = value.lower() in ("true", "1", "yes")
        else:
            data[field_name] = value
    return ChaosSpec.model_validate(data)


def build_platform(config: CommandPlatformConfig | SignalPlatformConfig) -> PlatformActions:
    """Instantiate the platform adapter described by *config*."""
    if isinstance(config, CommandPlatformConfig):
        return CommandPlatform(
            inject_command=config.inject,
            revert_command=config.revert,
            state_command=config.state,
            injected_state=config.injected_state,
            reverted_state=config.reverted_state,
            command_timeout=config.command_timeout,
        )
    return SignalPlatform(proc_root=config.proc_root)


__all__ = [
    "CommandPlatformConfig",
    "ENV_FIELDS",
    "ExperimentConfig",
    "SignalPlatformConfig",
    "build_platform",
    "load_experiment",
    "spec_from_env",
]
