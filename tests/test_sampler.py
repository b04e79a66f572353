"""Tests for the host telemetry sampler."""

from __future__ import annotations

import sys
from collections.abc import Callable, Sequence
from pathlib import Path
from types import SimpleNamespace

import psutil
import pytest

from devstate.exceptions import SamplerError
from devstate.sampler import (
    TelemetrySampler,
    parse_cpuinfo_model,
    parse_os_release,
    parse_vcgencmd_value,
)

NOW = 1_767_225_600.7

PI_CPUINFO = """processor\t: 0
BogoMIPS\t: 108.00
Features\t: fp asimd evtstrm crc32 cpuid
Hardware\t: BCM2835
Revision\t: c03114
Model\t\t: Raspberry Pi 4 Model B Rev 1.4
"""

X86_CPUINFO = """processor\t: 0
vendor_id\t: GenuineIntel
model name\t: Intel(R) Core(TM) i7-8650U CPU @ 1.90GHz
"""

OS_RELEASE = """PRETTY_NAME="Debian GNU/Linux 12 (bookworm)"
NAME="Debian GNU/Linux"
VERSION_ID="12"
VERSION="12 (bookworm)"
ID=debian
"""


@pytest.fixture
def host(monkeypatch: pytest.MonkeyPatch) -> SimpleNamespace:
    """Patch psutil and platform probes with a deterministic host."""
    usage = {
        "/": SimpleNamespace(free=20_000, total=31_000),
    }
    state = SimpleNamespace(usage=usage, which="/usr/bin/vcgencmd")

    monkeypatch.setattr(sys, "platform", "linux")
    monkeypatch.setattr("devstate.sampler._platform.machine", lambda: "aarch64")
    monkeypatch.setattr("devstate.sampler._platform.release", lambda: "6.6.31+rpt-rpi-v8")
    monkeypatch.setattr("devstate.sampler._platform.system", lambda: "Linux")
    monkeypatch.setattr(psutil, "cpu_count", lambda logical=True: 4)
    monkeypatch.setattr(psutil, "cpu_freq", lambda: SimpleNamespace(current=600.0, min=600.0, max=1800.0))
    monkeypatch.setattr(psutil, "getloadavg", lambda: (0.5, 0.4, 0.3))
    monkeypatch.setattr(psutil, "virtual_memory", lambda: SimpleNamespace(available=1_500, total=3_900))
    monkeypatch.setattr(psutil, "boot_time", lambda: NOW - 3600.2)
    monkeypatch.setattr(psutil, "disk_usage", lambda path: state.usage[path])
    monkeypatch.setattr("devstate.sampler.shutil.which", lambda name: state.which)
    return state


class _Commands:
    def __init__(self, outputs: dict[str, str]) -> None:
        self.outputs = outputs
        self.calls: list[list[str]] = []

    def __call__(self, args: Sequence[str]) -> str:
        self.calls.append(list(args))
        return self.outputs[args[1]]


def _sampler(
    tmp_path: Path,
    *,
    cpuinfo: str | None,
    os_release: str | None,
    commands: _Commands,
    data_mount: Path | None = None,
    boot_time: Callable[[], float] | None = None,
) -> TelemetrySampler:
    cpuinfo_path = tmp_path / "cpuinfo"
    os_release_path = tmp_path / "os-release"
    if cpuinfo is not None:
        cpuinfo_path.write_text(cpuinfo, encoding="utf-8")
    if os_release is not None:
        os_release_path.write_text(os_release, encoding="utf-8")
    return TelemetrySampler(
        data_mount=str(data_mount or tmp_path / "missing-mount"),
        clock=lambda: NOW,
        boot_time=boot_time,
        run_command=commands,
        cpuinfo_path=str(cpuinfo_path),
        os_release_path=str(os_release_path),
    )


def test_raspberry_pi_snapshot(tmp_path: Path, host: SimpleNamespace) -> None:
    data_mount = tmp_path / "data"
    data_mount.mkdir()
    host.usage[str(data_mount)] = SimpleNamespace(free=900, total=1_000)
    commands = _Commands({"measure_temp": "temp=48.3'C\n", "get_throttled": "throttled=0x50005\n"})

    snapshot = _sampler(
        tmp_path, cpuinfo=PI_CPUINFO, os_release=OS_RELEASE, commands=commands, data_mount=data_mount
    ).sample()

    assert snapshot.architecture_name == "arm64"
    assert snapshot.board_name == "Raspberry Pi 4 Model B Rev 1.4"
    assert snapshot.cpu_count == 4
    assert snapshot.cpu_frequency == 1800
    assert snapshot.cpu_load == 12.5
    assert snapshot.temperature == 48.3
    assert snapshot.throttled == 0x50005
    assert (snapshot.free_hdd_space, snapshot.total_hdd_space) == (20_000, 31_000)
    assert (snapshot.free_data_space, snapshot.total_data_space) == (900, 1_000)
    assert (snapshot.free_memory, snapshot.total_memory) == (1_500, 3_900)
    assert snapshot.platform == "Debian GNU/Linux"
    assert snapshot.version == "12 (bookworm)"
    assert snapshot.uptime == 3600
    assert snapshot.timestamp == 1_767_225_600


def test_non_pi_board_skips_vcgencmd(tmp_path: Path, host: SimpleNamespace) -> None:
    commands = _Commands({})

    snapshot = _sampler(tmp_path, cpuinfo=X86_CPUINFO, os_release=OS_RELEASE, commands=commands).sample()

    assert snapshot.board_name is None
    assert snapshot.temperature is None
    assert snapshot.throttled is None
    assert snapshot.free_data_space is None
    assert snapshot.total_data_space is None
    assert commands.calls == []


def test_missing_vcgencmd_resolves_to_null(tmp_path: Path, host: SimpleNamespace) -> None:
    host.which = None
    commands = _Commands({})

    snapshot = _sampler(tmp_path, cpuinfo=PI_CPUINFO, os_release=OS_RELEASE, commands=commands).sample()

    assert snapshot.board_name.startswith("Raspberry Pi")  # type: ignore[union-attr]
    assert snapshot.temperature is None
    assert snapshot.throttled is None


def test_failing_optional_probes_do_not_abort_snapshot(
    tmp_path: Path, host: SimpleNamespace, monkeypatch: pytest.MonkeyPatch
) -> None:
    def broken_loadavg() -> tuple[float, float, float]:
        raise OSError("no loadavg")

    def broken_freq() -> None:
        raise FileNotFoundError("/sys/devices/system/cpu/cpufreq")

    def broken_command(args: Sequence[str]) -> str:
        return "garbage"

    monkeypatch.setattr(psutil, "getloadavg", broken_loadavg)
    monkeypatch.setattr(psutil, "cpu_freq", broken_freq)
    sampler = _sampler(tmp_path, cpuinfo=PI_CPUINFO, os_release=OS_RELEASE, commands=_Commands({}))
    sampler._run_command = broken_command  # noqa: SLF001

    snapshot = sampler.sample()

    assert snapshot.cpu_load is None
    assert snapshot.cpu_frequency is None
    assert snapshot.temperature is None
    assert snapshot.throttled is None
    assert snapshot.cpu_count == 4


def test_non_linux_platform_uses_os_type_and_release(
    tmp_path: Path, host: SimpleNamespace, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(sys, "platform", "darwin")
    monkeypatch.setattr("devstate.sampler._platform.system", lambda: "Darwin")
    monkeypatch.setattr("devstate.sampler._platform.release", lambda: "23.4.0")
    monkeypatch.setattr("devstate.sampler._platform.machine", lambda: "x86_64")

    snapshot = _sampler(tmp_path, cpuinfo=PI_CPUINFO, os_release=OS_RELEASE, commands=_Commands({})).sample()

    assert snapshot.board_name is None
    assert snapshot.platform == "Darwin"
    assert snapshot.version == "23.4.0"
    assert snapshot.architecture_name == "x64"


def test_missing_os_release_falls_back(tmp_path: Path, host: SimpleNamespace) -> None:
    snapshot = _sampler(tmp_path, cpuinfo=None, os_release=None, commands=_Commands({})).sample()

    assert snapshot.board_name is None
    assert snapshot.platform == "Linux"
    assert snapshot.version == "6.6.31+rpt-rpi-v8"


def test_memory_failure_is_fatal(tmp_path: Path, host: SimpleNamespace, monkeypatch: pytest.MonkeyPatch) -> None:
    def broken_memory() -> None:
        raise psutil.AccessDenied()

    monkeypatch.setattr(psutil, "virtual_memory", broken_memory)

    with pytest.raises(SamplerError):
        _sampler(tmp_path, cpuinfo=None, os_release=None, commands=_Commands({})).sample()


def test_uptime_uses_injected_boot_time_on_sampler_clock(
    tmp_path: Path, host: SimpleNamespace, monkeypatch: pytest.MonkeyPatch
) -> None:
    def real_boot_time() -> float:
        raise AssertionError("host boot time must not be mixed with the sampler clock")

    monkeypatch.setattr(psutil, "boot_time", real_boot_time)
    booted = _sampler(tmp_path, cpuinfo=None, os_release=None, commands=_Commands({}), boot_time=lambda: NOW - 42.9)
    assert booted.sample().uptime == 42

    skewed = _sampler(tmp_path, cpuinfo=None, os_release=None, commands=_Commands({}), boot_time=lambda: NOW + 500)
    assert skewed.sample().uptime == 0


class TestParsers:
    def test_os_release_unquotes_values(self) -> None:
        parsed = parse_os_release(OS_RELEASE + "# comment\n\nBROKEN LINE\nVARIANT='Lite'\n")
        assert parsed["NAME"] == "Debian GNU/Linux"
        assert parsed["ID"] == "debian"
        assert parsed["VARIANT"] == "Lite"
        assert "BROKEN LINE" not in parsed

    def test_cpuinfo_model(self) -> None:
        assert parse_cpuinfo_model(PI_CPUINFO) == "Raspberry Pi 4 Model B Rev 1.4"
        assert parse_cpuinfo_model(X86_CPUINFO) is None

    def test_vcgencmd_values(self) -> None:
        assert parse_vcgencmd_value("temp=51.0'C\n") == "51.0"
        assert parse_vcgencmd_value("throttled=0x0\n") == "0x0"

    def test_vcgencmd_garbage_raises_index_error(self) -> None:
        with pytest.raises(IndexError):
            parse_vcgencmd_value("garbage")
