"""Raw provider readings -> stable MetricsSnapshot values."""

from __future__ import annotations

from typing import Callable, Sequence

from .models import ContainerUsage, MetricsSnapshot, ProcessUsage, RawGpu, RawMetrics


GpuSelector = Callable[[Sequence[RawGpu]], "RawGpu | None"]

_MB = 1024 * 1024
MAX_TOP_PROCESSES = 5


def pick_last_gpu(gpus: Sequence[RawGpu]) -> RawGpu | None:
    """Discrete adapters are usually enumerated after integrated ones."""
    return gpus[-1] if gpus else None


def pick_first_gpu(gpus: Sequence[RawGpu]) -> RawGpu | None:
    return gpus[0] if gpus else None


GPU_SELECTORS: dict[str, GpuSelector] = {"last": pick_last_gpu, "first": pick_first_gpu}


def _clamp_percent(value: float) -> float:
    return round(max(0.0, min(100.0, float(value))), 2)


def _ratio_percent(used: float | None, total: float | None) -> float:
    if not used or not total or total <= 0:
        return 0.0
    return _clamp_percent(used / total * 100.0)


def _temp(value: float | None) -> float | None:
    return round(float(value), 1) if value is not None else None


def normalize(
    raw: RawMetrics, select_gpu: GpuSelector = pick_last_gpu, top_n: int = MAX_TOP_PROCESSES
) -> MetricsSnapshot:
    disk = raw.volumes[0] if raw.volumes else None
    gpu = select_gpu(raw.gpus)

    limit = max(0, min(top_n, MAX_TOP_PROCESSES))
    # sorted() is stable, so equal rss keeps provider order even with reverse=True.
    ranked = sorted(raw.processes, key=lambda p: p.rss_bytes or 0, reverse=True)[:limit]

    return MetricsSnapshot(
        timestamp=raw.collected_at,
        cpu_load_percent=_clamp_percent(raw.cpu_load_percent or 0.0),
        cpu_temp_c=_temp(raw.cpu_temp_c),
        memory_used_percent=_ratio_percent(raw.memory_used_bytes, raw.memory_total_bytes),
        disk_used_percent=(_ratio_percent(disk.used_bytes, disk.size_bytes) if disk else 0.0),
        gpu_model=(gpu.model if gpu else None),
        gpu_temp_c=(_temp(gpu.temp_c) if gpu else None),
        top_processes=tuple(ProcessUsage(name=p.name, memory_mb=round((p.rss_bytes or 0) / _MB, 1)) for p in ranked),
        containers=tuple(
            ContainerUsage(
                name=c.name,
                cpu_percent=round(float(c.cpu_percent or 0.0), 2),
                memory_percent=round(float(c.memory_percent or 0.0), 2),
            )
            for c in raw.containers
        ),
    )
