import sys
import unittest
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "packages" / "telemetry"))
sys.path.insert(0, str(ROOT / "packages" / "core"))

from hostwatch_core.evaluator import AlertCategory, ThresholdEvaluator, Thresholds
from hostwatch_telemetry.models import ContainerUsage, MetricsSnapshot, ProcessUsage

BASE = MetricsSnapshot(
    timestamp=datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc),
    cpu_load_percent=10.0,
    cpu_temp_c=None,
    memory_used_percent=50.0,
    disk_used_percent=10.0,
    gpu_model=None,
    gpu_temp_c=None,
    top_processes=(),
    containers=(),
)


class ThresholdEvaluatorTests(unittest.TestCase):
    def setUp(self):
        self.evaluator = ThresholdEvaluator()

    def test_cpu_threshold_is_strict(self):
        at_limit = self.evaluator.evaluate(replace(BASE, cpu_load_percent=80.0))
        self.assertFalse(at_limit.any_breach)
        self.assertEqual(at_limit.lines[0].text, "CPU Usage: 80.00%")

        over = self.evaluator.evaluate(replace(BASE, cpu_load_percent=80.01))
        self.assertTrue(over.any_breach)
        self.assertTrue(over.lines[0].breaching)
        self.assertEqual(over.lines[0].text, "CPU Usage: *80.01%* (exceeds 80%)")

    def test_absent_sensors_emit_no_line(self):
        result = self.evaluator.evaluate(BASE)
        self.assertEqual(
            [line.category for line in result.lines],
            [
                AlertCategory.CPU,
                AlertCategory.MEMORY,
                AlertCategory.DISK,
                AlertCategory.TOP_PROCESSES,
                AlertCategory.CONTAINERS,
            ],
        )

    def test_temperature_lines(self):
        result = self.evaluator.evaluate(replace(BASE, cpu_temp_c=90.0, gpu_model="RTX", gpu_temp_c=70.0))
        by_cat = {line.category: line for line in result.lines}
        self.assertEqual(by_cat[AlertCategory.CPU_TEMP].text, "CPU Temp: *90.0°C* (exceeds 85°C)")
        self.assertEqual(by_cat[AlertCategory.GPU_TEMP].text, "GPU Temp: 70.0°C")
        self.assertFalse(by_cat[AlertCategory.GPU_TEMP].breaching)
        self.assertTrue(result.any_breach)

    def test_memory_and_disk_lines(self):
        result = self.evaluator.evaluate(replace(BASE, memory_used_percent=80.5, disk_used_percent=90.0))
        by_cat = {line.category: line for line in result.lines}
        self.assertEqual(by_cat[AlertCategory.MEMORY].text, "Memory: *80.50%* (exceeds 80%)")
        self.assertEqual(by_cat[AlertCategory.DISK].text, "Disk: 90.00%")

    def test_container_rows_carry_breach(self):
        snap = replace(
            BASE,
            containers=(ContainerUsage("web", 1.5, 60.25), ContainerUsage("db", 3.0, 20.0)),
        )
        result = self.evaluator.evaluate(snap)
        block = result.lines[-1]
        self.assertEqual(block.category, AlertCategory.CONTAINERS)
        self.assertFalse(block.breaching)
        self.assertTrue(block.has_breach)
        self.assertTrue(result.any_breach)
        self.assertEqual(
            block.render(),
            "Docker Containers:\n"
            "web: CPU 1.50%, Memory *60.25%* (exceeds 50%)\n"
            "db: CPU 3.00%, Memory 20.00%",
        )

    def test_informational_blocks_always_present(self):
        snap = replace(BASE, top_processes=(ProcessUsage("chrome", 512.0), ProcessUsage("python", 128.5)))
        rendered = self.evaluator.evaluate(snap).rendered()
        self.assertEqual(rendered[-2], "Top 5 Memory Processes:\nchrome: 512.0 MB\npython: 128.5 MB")
        self.assertEqual(rendered[-1], "Docker Containers:\n(none)")

    def test_process_header_is_fixed(self):
        rendered = self.evaluator.evaluate(BASE).rendered()
        self.assertEqual(rendered[-2], "Top 5 Memory Processes:")

    def test_custom_thresholds(self):
        evaluator = ThresholdEvaluator(Thresholds(cpu_percent=5.0, container_memory_percent=90.0))
        result = evaluator.evaluate(replace(BASE, containers=(ContainerUsage("web", 1.0, 60.0),)))
        self.assertTrue(result.lines[0].breaching)
        self.assertEqual(result.lines[0].text, "CPU Usage: *10.00%* (exceeds 5%)")
        self.assertFalse(result.lines[-1].has_breach)


if __name__ == "__main__":
    unittest.main()
