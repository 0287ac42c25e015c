"""Health-check transports: HTTP, shell command and resource state."""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from pathlib import Path

import httpx

from faultline.errors import ProbeError, ProbeTimeoutError
from faultline.interfaces import HealthCheckTransport
from faultline.models import ProbeDescriptor

logger = logging.getLogger(__name__)


def _probe_target(probe: ProbeDescriptor) -> str:
    return f"{{name: {probe.name}}}"


class HTTPTransport(HealthCheckTransport):
    """Send the probe's HTTP request and return the response status code.

    Args:
        transport: Optional ``httpx`` transport, e.g. ``httpx.MockTransport``
                   in tests.
    """

    def __init__(self, transport: httpx.BaseTransport | None = None) -> None:
        self._transport = transport

    def send(self, probe: ProbeDescriptor, timeout: float) -> int:
        inputs = probe.http_inputs
        if inputs is None:
            raise ProbeError("http probe has no http_inputs", target=_probe_target(probe))

        logger.debug("[Probe]: %s %s (timeout %ss)", inputs.method, inputs.url, timeout)
        try:
            with httpx.Client(
                timeout=timeout,
                verify=not inputs.insecure_skip_verify,
                transport=self._transport,
            ) as client:
                if inputs.method == "GET":
                    response = client.get(inputs.url)
                else:
                    response = client.post(
                        inputs.url,
                        content=self._body(probe),
                        headers={"Content-Type": inputs.content_type},
                    )
        except httpx.TimeoutException as exc:
            raise ProbeTimeoutError(
                f"request to {inputs.url} timed out: {exc}", target=_probe_target(probe)
            ) from exc
        except httpx.HTTPError as exc:
            raise ProbeError(
                f"request to {inputs.url} failed: {exc}", target=_probe_target(probe)
            ) from exc
        return response.status_code

    @staticmethod
    def _body(probe: ProbeDescriptor) -> str:
        inputs = probe.http_inputs
        if inputs is None:
            raise ProbeError("http probe has no http_inputs", target=_probe_target(probe))
        if inputs.body is not None:
            return inputs.body
        try:
            return Path(str(inputs.body_path)).read_text(encoding="utf-8")
        except OSError as exc:
            raise ProbeError(
                f"unable to read body_path '{inputs.body_path}': {exc}",
                target=_probe_target(probe),
            ) from exc


class CommandTransport(HealthCheckTransport):
    """Run the probe's shell command and return its stripped stdout."""

    def send(self, probe: ProbeDescriptor, timeout: float) -> str:
        inputs = probe.command_inputs
        if inputs is None:
            raise ProbeError("command probe has no command_inputs", target=_probe_target(probe))

        try:
            completed = subprocess.run(  # noqa: S602
                inputs.command,
                shell=True,
                capture_output=True,
                text=True,
                timeout=timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise ProbeTimeoutError(
                f"command '{inputs.command}' timed out after {timeout}s",
                target=_probe_target(probe),
            ) from exc
        if completed.returncode != 0:
            raise ProbeError(
                f"unable to run command '{inputs.command}', exit code "
                f"{completed.returncode}; error output: {completed.stderr.strip()}",
                target=_probe_target(probe),
            )
        return completed.stdout.strip()


class ResourceStateTransport(HealthCheckTransport):
    """Read a platform resource's state through *reader*.

    Each read runs on a worker thread so that a slow reader cannot outlast
    the probe's per-attempt timeout.
    """

    def __init__(self, reader: Callable[[str], str]) -> None:
        self._reader = reader

    def send(self, probe: ProbeDescriptor, timeout: float) -> str:
        inputs = probe.resource_inputs
        if inputs is None:
            raise ProbeError(
                "resource_state probe has no resource_inputs", target=_probe_target(probe)
            )
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="faultline-state")
        try:
            return executor.submit(self._reader, inputs.resource).result(timeout=timeout)
        except ProbeError:
            raise
        except FutureTimeoutError as exc:
            raise ProbeTimeoutError(
                f"reading state of '{inputs.resource}' timed out after {timeout}s",
                target=_probe_target(probe),
            ) from exc
        except Exception as exc:  # noqa: BLE001
            raise ProbeError(
                f"unable to read state of '{inputs.resource}': {exc}",
                target=_probe_target(probe),
            ) from exc
        finally:
            # A reader still running past the timeout is left to finish on its own.
            executor.shutdown(wait=False)


__all__ = ["CommandTransport", "HTTPTransport", "ResourceStateTransport"]
