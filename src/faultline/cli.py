"""CLI entry point for faultline."""

from __future__ import annotations

import logging
import os
import random
import sys

import click
import yaml
from pydantic import ValidationError

from faultline import __version__
from faultline.config import ExperimentConfig, load_experiment, spec_from_env
from faultline.errors import ChaosLibError
from faultline.experiment import ChaosRunner
from faultline.models import ChaosResult, Verdict
from faultline.selector import select_targets

LOG_FORMAT = "%(levelname)-5s | %(filename)s:%(lineno)-3d | %(message)s"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _load(path: str, use_env: bool = False) -> ExperimentConfig:
    config = load_experiment(path)
    if use_env:
        config = config.model_copy(update={"spec": spec_from_env(os.environ, base=config.spec)})
    return config


def _print_result(result: ChaosResult) -> None:
    click.echo(f"\nVerdict   : {result.verdict.value}")
    if result.fail_step is not None:
        click.echo(f"Fail step : {result.fail_step.value}")
    if result.reason:
        click.echo(f"Reason    : {result.reason}")
    click.echo(f"Probes    : {result.probe_success_percentage}% passed")
    for probe in result.probes:
        click.echo(f"  {probe.name} ({probe.mode.value}): {probe.status.value}")
    click.echo("Targets   :")
    for target, state in result.targets.items():
        click.echo(f"  {target}: {state.value}")
    if result.revert_errors:
        click.echo("Revert errors:")
        for error in result.revert_errors:
            click.echo(f"  {error}")
    if result.abort is not None:
        click.echo(
            f"Aborted   : {result.abort.reason} during {result.abort.phase.value} "
            f"({len(result.abort.reverted)} reverted, {len(result.abort.failed)} failed)"
        )
    click.echo(f"Observations: {len(result.observations)} recorded")


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

@click.group()
@click.version_option(version=__version__, prog_name="faultline")
@click.option(
    "--log-level",
    default="INFO",
    show_default=True,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging verbosity.",
)
def main(log_level: str) -> None:
    """faultline: inject, watch and revert chaos on a set of targets."""
    logging.basicConfig(level=log_level.upper(), format=LOG_FORMAT)


@main.command("run")
@click.option(
    "--experiment",
    "experiment_path",
    required=True,
    metavar="PATH",
    help="Path to experiment definition (YAML or JSON).",
)
@click.option("--json-output", is_flag=True, help="Emit results as JSON.")
@click.option("--env", "use_env", is_flag=True, help="Override tunables from environment variables.")
@click.option("--no-signals", is_flag=True, help="Do not route SIGINT/SIGTERM to the abort watcher.")
def run_command(experiment_path: str, json_output: bool, use_env: bool, no_signals: bool) -> None:
    """Run a chaos experiment defined in a YAML/JSON file."""
    try:
        config = _load(experiment_path, use_env)
    except (OSError, ValueError, ValidationError, yaml.YAMLError) as exc:
        click.echo(f"Error loading experiment: {exc}", err=True)
        sys.exit(1)

    click.echo(
        f"Running experiment '{config.name}' on {len(config.candidates)} candidate(s) "
        f"for {config.spec.duration}s...",
        err=json_output,
    )

    try:
        runner = ChaosRunner.from_config(config, install_signal_handlers=not no_signals)
        result = runner.run()
    except (ChaosLibError, ValueError) as exc:
        click.echo(f"Experiment failed: {exc}", err=True)
        sys.exit(1)

    if json_output:
        click.echo(result.model_dump_json(indent=2))
    else:
        _print_result(result)
    sys.exit(0 if result.verdict == Verdict.passed else 1)


@main.command("select")
@click.option("--candidate", "candidates", multiple=True, required=True, help="Candidate target (repeatable).")
@click.option("--percentage", default=0, show_default=True, type=click.IntRange(0, 100), help="Share of candidates to affect.")
@click.option("--randomize", is_flag=True, help="Shuffle the selected targets.")
@click.option("--seed", type=int, default=None, help="Seed for a reproducible selection.")
def select_command(candidates: tuple[str, ...], percentage: int, randomize: bool, seed: int | None) -> None:
    """Preview which targets a run would select."""
    rng = random.Random(seed)  # noqa: S311
    try:
        targets = select_targets(candidates, percentage, randomize, rng=rng)
    except ChaosLibError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)
    for target in targets:
        click.echo(target)


@main.command("validate")
@click.option(
    "--experiment",
    "experiment_path",
    required=True,
    metavar="PATH",
    help="Path to experiment definition (YAML or JSON).",
)
@click.option("--env", "use_env", is_flag=True, help="Apply environment overrides before validating.")
def validate_command(experiment_path: str, use_env: bool) -> None:
    """Check an experiment definition without running it."""
    try:
        config = _load(experiment_path, use_env)
    except (OSError, ValueError, ValidationError, yaml.YAMLError) as exc:
        click.echo(f"Invalid experiment: {exc}", err=True)
        sys.exit(1)
    spec = config.spec
    click.echo(f"Experiment '{config.name}' is valid")
    click.echo(f"  sequence: {spec.sequence.value}, duration: {spec.duration}s, interval: {spec.interval}s")
    click.echo(f"  candidates: {len(config.candidates)}, affected: {spec.affected_percentage}%")
    click.echo(f"  probes: {', '.join(p.name for p in config.probes) or 'none'}")


if __name__ == "__main__":
    main()
