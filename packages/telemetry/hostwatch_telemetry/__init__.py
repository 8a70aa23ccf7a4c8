"""Host telemetry source and snapshot normalization for hostwatch."""

from .models import (
    ContainerUsage,
    MetricsSnapshot,
    MetricsSourceError,
    ProcessUsage,
    RawContainer,
    RawGpu,
    RawMetrics,
    RawProcess,
    RawVolume,
    snapshot_to_payload,
)
from .normalizer import GPU_SELECTORS, MAX_TOP_PROCESSES, normalize, pick_first_gpu, pick_last_gpu

try:  # pragma: no cover - optional at import time for minimal test environments
    from .provider import MetricsSource
except Exception:  # pragma: no cover
    MetricsSource = None  # type: ignore[assignment]

__all__ = [
    "ContainerUsage",
    "GPU_SELECTORS",
    "MAX_TOP_PROCESSES",
    "MetricsSnapshot",
    "MetricsSourceError",
    "ProcessUsage",
    "RawContainer",
    "RawGpu",
    "RawMetrics",
    "RawProcess",
    "RawVolume",
    "normalize",
    "pick_first_gpu",
    "pick_last_gpu",
    "snapshot_to_payload",
]

if MetricsSource is not None:
    __all__.append("MetricsSource")
