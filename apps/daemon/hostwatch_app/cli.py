"""CLI entrypoints for the hostwatch daemon, one-shot sampling and diagnostics."""

from __future__ import annotations

import argparse
import json
from datetime import datetime, timezone
from pathlib import Path

from hostwatch_core import (
    AppConfig,
    ThresholdEvaluator,
    build_alert_body,
    build_doctor_payload,
    build_notifier,
    load_config,
    load_legacy_credentials,
    save_config,
)
from hostwatch_core.logging_setup import configure_logging, install_crash_hooks
from hostwatch_telemetry import GPU_SELECTORS, MetricsSourceError, normalize, snapshot_to_payload


def _print_json(data: object) -> None:
    print(json.dumps(data, indent=2, sort_keys=True, default=str))


def _load(args: argparse.Namespace) -> AppConfig:
    path = Path(args.config).expanduser() if args.config else None
    cfg = load_config(path)
    if args.legacy_config:
        load_legacy_credentials(cfg, Path(args.legacy_config).expanduser())
    return cfg


def _snapshot(cfg: AppConfig):
    from .app import build_source

    raw = build_source(cfg).collect()
    return normalize(raw, select_gpu=GPU_SELECTORS[cfg.collector.gpu_select], top_n=cfg.collector.top_processes)


def cmd_run(args: argparse.Namespace) -> int:
    from .app import run_daemon

    cfg = _load(args)
    if args.port is not None:
        cfg.server.port = args.port
    if args.no_server:
        cfg.server.enabled = False
    configure_logging(
        keep_files=cfg.logging.keep_files,
        console=cfg.logging.console,
        directory=cfg.logging.directory,
        level=cfg.logging.level,
    )
    install_crash_hooks(cfg.logging.directory)
    return run_daemon(cfg)


def cmd_sample(args: argparse.Namespace) -> int:
    cfg = _load(args)
    try:
        snapshot = _snapshot(cfg)
    except MetricsSourceError as exc:
        _print_json({"success": False, "error": str(exc)})
        return 2
    _print_json(snapshot_to_payload(snapshot))
    return 0


def cmd_check(args: argparse.Namespace) -> int:
    from .app import thresholds_from_config

    cfg = _load(args)
    try:
        snapshot = _snapshot(cfg)
    except MetricsSourceError as exc:
        print(f"collection failed: {exc}")
        return 2
    evaluation = ThresholdEvaluator(thresholds_from_config(cfg)).evaluate(snapshot)
    print("\n\n".join(evaluation.rendered()))
    return 1 if evaluation.any_breach else 0


def cmd_doctor(args: argparse.Namespace) -> int:
    from .app import build_source

    cfg = _load(args)
    try:
        source = build_source(cfg)
    except ImportError:
        source = None
    _print_json(build_doctor_payload(cfg, source))
    return 0


def cmd_test_alert(args: argparse.Namespace) -> int:
    cfg = _load(args)
    now = datetime.now(timezone.utc)
    result = build_notifier(cfg.notifier).send(
        f"{cfg.notifier.title} (test)",
        build_alert_body(now, ["This is a test notification from hostwatch."]),
    )
    _print_json({"success": result.ok, "reason": result.reason, "latency_ms": result.latency_ms})
    return 0 if result.ok else 2


def cmd_import_legacy(args: argparse.Namespace) -> int:
    path = Path(args.config).expanduser() if args.config else None
    cfg = load_config(path)
    load_legacy_credentials(cfg, Path(args.source).expanduser())
    saved = save_config(cfg, path)
    _print_json({"success": True, "config_path": str(saved), "sender": cfg.notifier.sender})
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="hostwatch", description="Host telemetry collector and alerting daemon")
    parser.add_argument("--config", default=None, help="Path to config.json (default: platform config dir)")
    parser.add_argument("--legacy-config", default=None, help="Read EMAIL/PASSWORD from a KEY=VALUE config.txt")
    sub = parser.add_subparsers(dest="command", required=True)

    run_cmd = sub.add_parser("run", help="Run the collector loop and HTTP endpoint")
    run_cmd.add_argument("--port", type=int, default=None, help="Override HTTP port")
    run_cmd.add_argument("--no-server", action="store_true", help="Collect and alert without serving HTTP")
    run_cmd.set_defaults(func=cmd_run)

    sample_cmd = sub.add_parser("sample", help="Print one normalized snapshot as JSON")
    sample_cmd.set_defaults(func=cmd_sample)

    check_cmd = sub.add_parser("check", help="Evaluate thresholds once; exit 1 on breach")
    check_cmd.set_defaults(func=cmd_check)

    doctor_cmd = sub.add_parser("doctor", help="Print diagnostics and sensor availability")
    doctor_cmd.set_defaults(func=cmd_doctor)

    test_cmd = sub.add_parser("test-alert", help="Send one notification through the configured transport")
    test_cmd.set_defaults(func=cmd_test_alert)

    import_cmd = sub.add_parser("import-legacy", help="Import a KEY=VALUE config.txt into config.json")
    import_cmd.add_argument("source", help="Path to legacy config.txt")
    import_cmd.set_defaults(func=cmd_import_legacy)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
