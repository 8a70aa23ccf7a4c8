"""Threshold evaluation of a MetricsSnapshot into rendered alert lines."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from hostwatch_telemetry.models import MetricsSnapshot


TOP_PROCESSES_HEADER = "Top 5 Memory Processes:"


class AlertCategory(str, Enum):
    CPU = "CPU"
    CPU_TEMP = "CPU_TEMP"
    MEMORY = "MEMORY"
    DISK = "DISK"
    GPU_TEMP = "GPU_TEMP"
    TOP_PROCESSES = "TOP_PROCESSES"
    CONTAINERS = "CONTAINERS"


@dataclass(frozen=True)
class Thresholds:
    cpu_percent: float = 80.0
    cpu_temp_c: float = 85.0
    memory_percent: float = 80.0
    disk_percent: float = 90.0
    gpu_temp_c: float = 75.0
    container_memory_percent: float = 50.0


@dataclass(frozen=True)
class AlertRow:
    text: str
    breaching: bool = False


@dataclass(frozen=True)
class AlertLine:
    """One line per category; block categories carry their items as ``rows``."""

    category: AlertCategory
    text: str
    breaching: bool = False
    rows: tuple[AlertRow, ...] = ()

    @property
    def has_breach(self) -> bool:
        return self.breaching or any(r.breaching for r in self.rows)

    def render(self) -> str:
        if not self.rows:
            return self.text
        return "\n".join([self.text, *(r.text for r in self.rows)])


@dataclass(frozen=True)
class Evaluation:
    lines: tuple[AlertLine, ...]
    any_breach: bool

    def rendered(self) -> list[str]:
        return [line.render() for line in self.lines]


def _limit(value: float) -> str:
    return f"{value:g}"


def _metric_line(category: AlertCategory, label: str, value: str, unit: str, breaching: bool, limit: float) -> AlertLine:
    if breaching:
        return AlertLine(category, f"{label}: *{value}{unit}* (exceeds {_limit(limit)}{unit})", breaching=True)
    return AlertLine(category, f"{label}: {value}{unit}")


class ThresholdEvaluator:
    def __init__(self, thresholds: Thresholds | None = None) -> None:
        self.thresholds = thresholds or Thresholds()

    def evaluate(self, snapshot: MetricsSnapshot) -> Evaluation:
        t = self.thresholds
        lines: list[AlertLine] = [
            _metric_line(
                AlertCategory.CPU,
                "CPU Usage",
                f"{snapshot.cpu_load_percent:.2f}",
                "%",
                snapshot.cpu_load_percent > t.cpu_percent,
                t.cpu_percent,
            )
        ]

        # Absent sensors produce no line at all.
        if snapshot.cpu_temp_c is not None:
            lines.append(
                _metric_line(
                    AlertCategory.CPU_TEMP,
                    "CPU Temp",
                    f"{snapshot.cpu_temp_c:.1f}",
                    "°C",
                    snapshot.cpu_temp_c > t.cpu_temp_c,
                    t.cpu_temp_c,
                )
            )

        lines.append(
            _metric_line(
                AlertCategory.MEMORY,
                "Memory",
                f"{snapshot.memory_used_percent:.2f}",
                "%",
                snapshot.memory_used_percent > t.memory_percent,
                t.memory_percent,
            )
        )
        lines.append(
            _metric_line(
                AlertCategory.DISK,
                "Disk",
                f"{snapshot.disk_used_percent:.2f}",
                "%",
                snapshot.disk_used_percent > t.disk_percent,
                t.disk_percent,
            )
        )

        if snapshot.gpu_temp_c is not None:
            lines.append(
                _metric_line(
                    AlertCategory.GPU_TEMP,
                    "GPU Temp",
                    f"{snapshot.gpu_temp_c:.1f}",
                    "°C",
                    snapshot.gpu_temp_c > t.gpu_temp_c,
                    t.gpu_temp_c,
                )
            )

        lines.append(
            AlertLine(
                AlertCategory.TOP_PROCESSES,
                TOP_PROCESSES_HEADER,
                rows=tuple(AlertRow(f"{p.name}: {p.memory_mb:.1f} MB") for p in snapshot.top_processes),
            )
        )
        lines.append(self._containers_block(snapshot))

        return Evaluation(lines=tuple(lines), any_breach=any(line.has_breach for line in lines))

    def _containers_block(self, snapshot: MetricsSnapshot) -> AlertLine:
        limit = self.thresholds.container_memory_percent
        rows = []
        for c in snapshot.containers:
            if c.memory_percent > limit:
                rows.append(
                    AlertRow(
                        f"{c.name}: CPU {c.cpu_percent:.2f}%, Memory *{c.memory_percent:.2f}%* (exceeds {_limit(limit)}%)",
                        breaching=True,
                    )
                )
            else:
                rows.append(AlertRow(f"{c.name}: CPU {c.cpu_percent:.2f}%, Memory {c.memory_percent:.2f}%"))
        if not rows:
            rows.append(AlertRow("(none)"))
        return AlertLine(AlertCategory.CONTAINERS, "Docker Containers:", rows=tuple(rows))
