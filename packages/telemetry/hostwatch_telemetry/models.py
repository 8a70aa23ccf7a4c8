"""Typed telemetry models: raw provider readings and the normalized snapshot."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


CATEGORY_CPU = "cpu"
CATEGORY_CPU_TEMP = "cpu_temp"
CATEGORY_MEMORY = "memory"
CATEGORY_DISK = "disk"
CATEGORY_GPU = "gpu"
CATEGORY_PROCESSES = "processes"
CATEGORY_CONTAINERS = "containers"

ALL_CATEGORIES = (
    CATEGORY_CPU,
    CATEGORY_CPU_TEMP,
    CATEGORY_MEMORY,
    CATEGORY_DISK,
    CATEGORY_GPU,
    CATEGORY_PROCESSES,
    CATEGORY_CONTAINERS,
)


class MetricsSourceError(RuntimeError):
    """The provider could not be reached for any metric category."""


@dataclass(frozen=True)
class RawVolume:
    mountpoint: str
    used_bytes: int
    size_bytes: int


@dataclass(frozen=True)
class RawGpu:
    model: str | None
    temp_c: float | None


@dataclass(frozen=True)
class RawProcess:
    name: str
    rss_bytes: int | None


@dataclass(frozen=True)
class RawContainer:
    name: str
    cpu_percent: float | None
    memory_percent: float | None


@dataclass(frozen=True)
class RawMetrics:
    """One unprocessed provider reading.

    A category that could not be read keeps its empty default and gets an entry in
    ``failures`` (category name -> reason).
    """

    collected_at: datetime
    cpu_load_percent: float | None = None
    cpu_temp_c: float | None = None
    memory_used_bytes: int | None = None
    memory_total_bytes: int | None = None
    volumes: tuple[RawVolume, ...] = ()
    gpus: tuple[RawGpu, ...] = ()
    processes: tuple[RawProcess, ...] = ()
    containers: tuple[RawContainer, ...] = ()
    failures: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ProcessUsage:
    name: str
    memory_mb: float


@dataclass(frozen=True)
class ContainerUsage:
    name: str
    cpu_percent: float
    memory_percent: float


@dataclass(frozen=True)
class MetricsSnapshot:
    timestamp: datetime
    cpu_load_percent: float
    cpu_temp_c: float | None
    memory_used_percent: float
    disk_used_percent: float
    gpu_model: str | None
    gpu_temp_c: float | None
    top_processes: tuple[ProcessUsage, ...]
    containers: tuple[ContainerUsage, ...]


def snapshot_to_payload(snapshot: MetricsSnapshot) -> dict[str, Any]:
    """JSON-ready wire shape; unavailable sensors become ``None``."""
    return {
        "timestamp": snapshot.timestamp.isoformat(),
        "cpu_load_percent": snapshot.cpu_load_percent,
        "cpu_temp_c": snapshot.cpu_temp_c,
        "memory_used_percent": snapshot.memory_used_percent,
        "disk_used_percent": snapshot.disk_used_percent,
        "gpu_model": snapshot.gpu_model,
        "gpu_temp_c": snapshot.gpu_temp_c,
        "top_processes": [{"name": p.name, "memory_mb": p.memory_mb} for p in snapshot.top_processes],
        "containers": [
            {"name": c.name, "cpu_percent": c.cpu_percent, "memory_percent": c.memory_percent}
            for c in snapshot.containers
        ],
    }
