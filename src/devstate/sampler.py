"""Synchronous host telemetry sampler.

Each metric has its own probe. Probes for optional metrics (board name,
temperature, throttling, mounts, CPU clock) resolve to ``None`` when the
platform does not support them or the probe fails, so one missing metric
never aborts a snapshot. Mandatory metrics that cannot be read raise
:class:`~devstate.exceptions.SamplerError`.
"""

from __future__ import annotations

import logging
import os
import platform as _platform
import re
import shutil
import subprocess
import sys
import time
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import TypeVar

import psutil
from pydantic import ValidationError

from devstate._constants import (
    CPUINFO_PATH,
    DEFAULT_DATA_MOUNT,
    OS_RELEASE_PATH,
    RASPBERRY_PI_PREFIX,
    ROOT_MOUNT,
    VCGENCMD,
    VCGENCMD_TIMEOUT_S,
)
from devstate.exceptions import SamplerError
from devstate.models.snapshot import TelemetrySnapshot

_logger = logging.getLogger(__name__)

T = TypeVar("T")

# platform.machine() -> architecture names used by existing subscribers.
_ARCH_ALIASES: dict[str, str] = {
    "x86_64": "x64",
    "amd64": "x64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv6l": "arm",
    "armv7l": "arm",
    "armv8l": "arm",
    "i386": "ia32",
    "i686": "ia32",
    "x86": "ia32",
}

_PROBE_ERRORS: tuple[type[BaseException], ...] = (
    OSError,
    ValueError,
    IndexError,
    subprocess.SubprocessError,
    psutil.Error,
)


def _run_command(args: Sequence[str]) -> str:
    completed = subprocess.run(
        list(args),
        check=True,
        capture_output=True,
        text=True,
        timeout=VCGENCMD_TIMEOUT_S,
    )
    return completed.stdout


def parse_os_release(text: str) -> dict[str, str]:
    """Parse ``/etc/os-release`` ``KEY=value`` lines, unquoting values."""
    result: dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
            value = value[1:-1]
        result[key.strip()] = value
    return result


def parse_cpuinfo_model(text: str) -> str | None:
    """Return the ``Model`` line value from ``/proc/cpuinfo``, if any."""
    for line in text.splitlines():
        if line.startswith("Model"):
            _, sep, value = line.partition(":")
            if sep and value.strip():
                return value.strip()
    return None


def parse_vcgencmd_value(output: str) -> str:
    """Extract the value from ``vcgencmd`` output such as ``temp=48.3'C``."""
    return re.split(r"[=']", output.strip())[1].strip()


class TelemetrySampler:
    """Builds :class:`TelemetrySnapshot` records on demand.

    Parameters
    ----------
    data_mount : str
        Secondary mount reported when it exists.
    clock : callable
        Wall clock in epoch seconds.
    boot_time : callable, optional
        Host boot time in epoch seconds on the same clock as *clock*.
        Defaults to ``psutil.boot_time``.
    run_command : callable
        Runs an external command and returns its stdout.
    """

    def __init__(
        self,
        *,
        data_mount: str = DEFAULT_DATA_MOUNT,
        clock: Callable[[], float] = time.time,
        boot_time: Callable[[], float] | None = None,
        run_command: Callable[[Sequence[str]], str] = _run_command,
        cpuinfo_path: str = CPUINFO_PATH,
        os_release_path: str = OS_RELEASE_PATH,
    ) -> None:
        self._data_mount = data_mount
        self._clock = clock
        self._boot_time = boot_time
        self._run_command = run_command
        self._cpuinfo_path = Path(cpuinfo_path)
        self._os_release_path = Path(os_release_path)

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    def sample(self) -> TelemetrySnapshot:
        """Build a fresh snapshot of the host."""
        try:
            board_name = self._probe("board_name", self.board_name)
            cpu_count = self.cpu_count()
            root_usage = self._probe("root_usage", lambda: self._disk_usage(ROOT_MOUNT))
            data_usage = self._probe("data_usage", self.data_usage)
            memory = psutil.virtual_memory()
            os_release = self._probe("os_release", self.os_release) or {}
            now = self._clock()

            is_pi = board_name is not None and board_name.startswith(RASPBERRY_PI_PREFIX)
            return TelemetrySnapshot(
                architecture_name=self.architecture_name(),
                board_name=board_name,
                cpu_count=cpu_count,
                cpu_frequency=self._probe("cpu_frequency", self.cpu_frequency),
                cpu_load=self._probe("cpu_load", lambda: self.cpu_load(cpu_count)),
                temperature=self._probe("temperature", self.temperature) if is_pi else None,
                throttled=self._probe("throttled", self.throttled) if is_pi else None,
                free_hdd_space=root_usage[0] if root_usage else None,
                free_data_space=data_usage[0] if data_usage else None,
                free_memory=memory.available,
                total_hdd_space=root_usage[1] if root_usage else None,
                total_data_space=data_usage[1] if data_usage else None,
                total_memory=memory.total,
                platform=os_release.get("NAME") or self._os_type(),
                uptime=max(0, int(now - self.boot_time())),
                version=os_release.get("VERSION") or _platform.release(),
                timestamp=int(now),
            )
        except (OSError, psutil.Error, ValidationError) as exc:
            raise SamplerError(f"Telemetry snapshot failed: {exc}") from exc

    def _probe(self, name: str, fn: Callable[[], T | None]) -> T | None:
        try:
            return fn()
        except _PROBE_ERRORS:
            _logger.debug("Probe %s unavailable", name, exc_info=True)
            return None

    # ------------------------------------------------------------------
    # Individual metrics
    # ------------------------------------------------------------------

    def boot_time(self) -> float:
        if self._boot_time is not None:
            return self._boot_time()
        return psutil.boot_time()

    def architecture_name(self) -> str:
        machine = _platform.machine()
        return _ARCH_ALIASES.get(machine.lower(), machine)

    def board_name(self) -> str | None:
        if not sys.platform.startswith("linux") or not self._cpuinfo_path.exists():
            return None
        return parse_cpuinfo_model(self._cpuinfo_path.read_text(encoding="utf-8", errors="replace"))

    def cpu_count(self) -> int:
        return psutil.cpu_count(logical=True) or os.cpu_count() or 1

    def cpu_frequency(self) -> int | None:
        freq = psutil.cpu_freq()
        if freq is None:
            return None
        value = freq.max or freq.current
        return int(round(value)) if value else None

    def cpu_load(self, cpu_count: int | None = None) -> float:
        count = cpu_count or self.cpu_count()
        load1, _load5, _load15 = psutil.getloadavg()
        return round(100 * load1 / count, 2)

    def temperature(self) -> float | None:
        if shutil.which(VCGENCMD) is None:
            return None
        return float(parse_vcgencmd_value(self._run_command([VCGENCMD, "measure_temp"])))

    def throttled(self) -> int | None:
        if shutil.which(VCGENCMD) is None:
            return None
        return int(parse_vcgencmd_value(self._run_command([VCGENCMD, "get_throttled"])), 0)

    def data_usage(self) -> tuple[int, int] | None:
        if not os.path.exists(self._data_mount):
            return None
        return self._disk_usage(self._data_mount)

    def os_release(self) -> dict[str, str] | None:
        if not sys.platform.startswith("linux") or not self._os_release_path.exists():
            return None
        return parse_os_release(self._os_release_path.read_text(encoding="utf-8"))

    @staticmethod
    def _disk_usage(path: str) -> tuple[int, int]:
        usage = psutil.disk_usage(path)
        return usage.free, usage.total

    @staticmethod
    def _os_type() -> str:
        system = _platform.system()
        return "Windows_NT" if system == "Windows" else system
