"""Host metrics source with per-category fallbacks (psutil, NVML, sysfs, docker CLI)."""

from __future__ import annotations

import json
import logging
import re
import subprocess
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, TypeVar

import psutil

from .models import (
    ALL_CATEGORIES,
    CATEGORY_CONTAINERS,
    CATEGORY_CPU,
    CATEGORY_CPU_TEMP,
    CATEGORY_DISK,
    CATEGORY_GPU,
    CATEGORY_MEMORY,
    CATEGORY_PROCESSES,
    MetricsSourceError,
    RawContainer,
    RawGpu,
    RawMetrics,
    RawProcess,
    RawVolume,
)


_log = logging.getLogger("hostwatch.telemetry")

_T = TypeVar("_T")

_DRM_ROOT = Path("/sys/class/drm")
_CARD_RE = re.compile(r"^card\d+$")
_PCI_VENDORS = {"0x10de": "NVIDIA", "0x1002": "AMD", "0x8086": "Intel"}


class _GpuAdapter:
    def controllers(self) -> tuple[RawGpu, ...]:
        return ()


class _NvmlGpuAdapter(_GpuAdapter):
    def __init__(self) -> None:
        import pynvml  # type: ignore

        self._nvml = pynvml
        pynvml.nvmlInit()

    def controllers(self) -> tuple[RawGpu, ...]:
        nvml = self._nvml
        out = []
        for index in range(int(nvml.nvmlDeviceGetCount())):
            h = nvml.nvmlDeviceGetHandleByIndex(index)
            name = nvml.nvmlDeviceGetName(h)
            if isinstance(name, (bytes, bytearray)):
                name = name.decode("utf-8", errors="ignore")
            try:
                temp = float(nvml.nvmlDeviceGetTemperature(h, nvml.NVML_TEMPERATURE_GPU))
            except nvml.NVMLError:
                temp = None
            out.append(RawGpu(model=str(name), temp_c=temp))
        return tuple(out)


class _SysfsGpuAdapter(_GpuAdapter):
    """DRM cards on Linux; integrated adapters usually enumerate first."""

    def __init__(self, root: Path = _DRM_ROOT) -> None:
        self._root = root

    def controllers(self) -> tuple[RawGpu, ...]:
        if not self._root.is_dir():
            return ()
        cards = sorted((p for p in self._root.iterdir() if _CARD_RE.match(p.name)), key=lambda p: int(p.name[4:]))
        return tuple(_read_drm_card(card / "device") for card in cards if (card / "device").is_dir())


def _read_drm_card(device: Path) -> RawGpu:
    model = None
    product = device / "product_name"
    if product.is_file():
        model = product.read_text(encoding="utf-8").strip() or None
    if model is None and (device / "vendor").is_file():
        vendor = (device / "vendor").read_text(encoding="utf-8").strip().lower()
        dev_id = (device / "device").read_text(encoding="utf-8").strip() if (device / "device").is_file() else ""
        model = f"{_PCI_VENDORS.get(vendor, vendor)} {dev_id}".strip()

    temp = None
    for sensor in sorted(device.glob("hwmon/hwmon*/temp1_input")):
        try:
            temp = int(sensor.read_text(encoding="utf-8").strip()) / 1000.0
            break
        except (OSError, ValueError):
            continue
    return RawGpu(model=model, temp_c=temp)


def _build_gpu_adapter() -> _GpuAdapter:
    try:
        return _NvmlGpuAdapter()
    except Exception:
        _log.debug("NVML unavailable, falling back to sysfs", extra={"event": "nvml_unavailable"})
        return _SysfsGpuAdapter()


def _cpu_temp_c() -> float | None:
    temps = psutil.sensors_temperatures() if hasattr(psutil, "sensors_temperatures") else {}
    if not temps:
        return None

    for name in ("coretemp", "cpu_thermal", "k10temp", "zenpower", "acpitz"):
        entries = temps.get(name)
        if entries:
            val = entries[0].current
            return float(val) if val is not None else None

    for _name, entries in temps.items():
        if entries and entries[0].current is not None:
            return float(entries[0].current)
    return None


def _volumes() -> tuple[RawVolume, ...]:
    out = []
    for part in psutil.disk_partitions(all=False):
        try:
            usage = psutil.disk_usage(part.mountpoint)
        except (PermissionError, OSError):
            continue
        out.append(RawVolume(mountpoint=part.mountpoint, used_bytes=int(usage.used), size_bytes=int(usage.total)))
    return tuple(out)


def _processes() -> tuple[RawProcess, ...]:
    out = []
    for proc in psutil.process_iter(["name", "memory_info"]):
        info = proc.info
        mem = info.get("memory_info")
        out.append(RawProcess(name=info.get("name") or f"pid {proc.pid}", rss_bytes=(int(mem.rss) if mem else None)))
    return tuple(out)


def _parse_percent(value: object) -> float | None:
    text = str(value or "").strip().rstrip("%")
    try:
        return float(text)
    except ValueError:
        return None


def _docker_containers(timeout_s: float) -> tuple[RawContainer, ...]:
    try:
        result = subprocess.run(
            ["docker", "stats", "--no-stream", "--format", "{{json .}}"],
            capture_output=True,
            text=True,
            timeout=timeout_s,
            check=False,
        )
    except FileNotFoundError:
        # No docker on this host: nothing to report.
        return ()
    if result.returncode != 0:
        raise RuntimeError(result.stderr.strip() or f"docker stats exited with {result.returncode}")

    out = []
    for line in result.stdout.splitlines():
        line = line.strip()
        if not line:
            continue
        row = json.loads(line)
        out.append(
            RawContainer(
                name=str(row.get("Name") or row.get("ID") or "?"),
                cpu_percent=_parse_percent(row.get("CPUPerc")),
                memory_percent=_parse_percent(row.get("MemPerc")),
            )
        )
    return tuple(out)


class MetricsSource:
    """Single synchronous provider; each category is read independently."""

    def __init__(self, docker_timeout_s: float = 4.0, gpu_adapter: _GpuAdapter | None = None) -> None:
        self.docker_timeout_s = docker_timeout_s
        self._gpu = gpu_adapter or _build_gpu_adapter()
        # One collect at a time: cpu_percent(interval=None) measures since its previous call.
        self._lock = threading.Lock()
        # Prime non-blocking CPU measurement.
        psutil.cpu_percent(interval=None)

    def collect(self) -> RawMetrics:
        with self._lock:
            return self._collect_locked()

    def _collect_locked(self) -> RawMetrics:
        failures: dict[str, str] = {}

        def attempt(category: str, fn: Callable[[], _T], default: _T) -> _T:
            try:
                return fn()
            except Exception as exc:
                failures[category] = f"{type(exc).__name__}: {exc}"
                _log.debug(f"{category} unavailable: {exc}", extra={"event": "category_failed"})
                return default

        cpu_load = attempt(CATEGORY_CPU, lambda: float(psutil.cpu_percent(interval=None)), None)
        cpu_temp = attempt(CATEGORY_CPU_TEMP, _cpu_temp_c, None)
        vm = attempt(CATEGORY_MEMORY, psutil.virtual_memory, None)
        volumes = attempt(CATEGORY_DISK, _volumes, ())
        gpus = attempt(CATEGORY_GPU, self._gpu.controllers, ())
        processes = attempt(CATEGORY_PROCESSES, _processes, ())
        containers = attempt(CATEGORY_CONTAINERS, lambda: _docker_containers(self.docker_timeout_s), ())

        if len(failures) == len(ALL_CATEGORIES):
            raise MetricsSourceError("; ".join(f"{k}: {v}" for k, v in failures.items()))

        return RawMetrics(
            collected_at=datetime.now(timezone.utc),
            cpu_load_percent=cpu_load,
            cpu_temp_c=cpu_temp,
            memory_used_bytes=(int(vm.total - vm.available) if vm is not None else None),
            memory_total_bytes=(int(vm.total) if vm is not None else None),
            volumes=volumes,
            gpus=gpus,
            processes=processes,
            containers=containers,
            failures=failures,
        )
