"""CLI entrypoints for the Fireboard exporter, diagnostics, and API inspection."""

from __future__ import annotations

import argparse
import json
import signal
from dataclasses import asdict, dataclass
from datetime import timedelta
from importlib import metadata
from pathlib import Path

from fireboard_api import FireboardClient, FireboardError, TokenCache
from fireboard_collector import Collector, DogStatsdSink, MetricsSink, RecordingSink
from fireboard_core import (
    AppConfig,
    DiagnosticsExporter,
    PerformanceController,
    PerformanceTargets,
    PollScheduler,
    build_doctor_payload,
    load_config,
    save_config,
)
from fireboard_core.config import config_path
from fireboard_core.diagnostics import redact
from fireboard_core.logging_setup import configure_logging, get_logger, install_crash_hooks


def _print_json(data: object) -> None:
    print(json.dumps(data, indent=2, sort_keys=True, default=str))


def _installed_version() -> str:
    try:
        return metadata.version("fireboard-exporter")
    except Exception:
        return "0.1.0"


@dataclass
class Runtime:
    cfg: AppConfig
    token_cache: TokenCache
    client: FireboardClient
    sink: MetricsSink
    collector: Collector


def build_runtime(cfg: AppConfig, dry_run: bool = False) -> Runtime:
    token_cache = TokenCache()
    client = FireboardClient(
        base_url=cfg.api.base_url,
        timeout_s=cfg.api.timeout_ms / 1000.0,
        token_cache=token_cache,
        user_agent=f"fireboard-exporter/{_installed_version()}",
    )
    sink: MetricsSink = RecordingSink() if dry_run else DogStatsdSink(host=cfg.statsd.host, port=cfg.statsd.port)
    collector = Collector(
        source=client,
        sink=sink,
        tags=cfg.collect.tags,
        timeout_s=cfg.api.timeout_ms / 1000.0,
        activity_window=timedelta(minutes=cfg.collect.activity_window_minutes),
        staleness_window=timedelta(minutes=cfg.collect.staleness_window_minutes),
        isolate_sessions=cfg.collect.isolate_sessions,
        realtime_drive=cfg.collect.realtime_drive,
        realtime_temperature=cfg.collect.realtime_temperature,
    )
    return Runtime(cfg=cfg, token_cache=token_cache, client=client, sink=sink, collector=collector)


def _build_scheduler(rt: Runtime, performance: PerformanceController | None = None) -> PollScheduler:
    return PollScheduler(
        collector=rt.collector,
        source=rt.client,
        token_cache=rt.token_cache,
        username=rt.cfg.api.username,
        password=rt.cfg.api.password,
        interval_s=rt.cfg.collect.interval_s,
        cutoff=timedelta(minutes=rt.cfg.collect.cutoff_minutes),
        performance=performance,
    )


def _flush(sink: MetricsSink) -> None:
    if isinstance(sink, DogStatsdSink):
        sink.flush()


def cmd_run(args: argparse.Namespace) -> int:
    cfg = load_config(Path(args.config) if args.config else None)
    install_crash_hooks()
    rt = build_runtime(cfg)
    perf = PerformanceController(
        PerformanceTargets(
            cpu_percent_max=cfg.performance.cpu_percent_max,
            rss_mb_max=cfg.performance.rss_mb_max,
        )
    )
    scheduler = _build_scheduler(rt, performance=perf)

    def _on_signal(_signum, _frame) -> None:
        scheduler.stop()

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)

    get_logger().info("exporter started", extra={"event": "exporter_started"})
    passes = scheduler.run_forever(max_passes=args.max_passes)
    _flush(rt.sink)
    _print_json({"passes": passes, "status": asdict(scheduler.status)})
    return 0


def cmd_collect(args: argparse.Namespace) -> int:
    cfg = load_config(Path(args.config) if args.config else None)
    if args.cutoff_minutes is not None:
        cfg.collect.cutoff_minutes = max(1, args.cutoff_minutes)
    rt = build_runtime(cfg, dry_run=args.dry_run)
    scheduler = _build_scheduler(rt)

    report = scheduler.run_once()
    _flush(rt.sink)
    payload: dict[str, object] = {
        "devices": report.devices,
        "active_devices": report.active_devices,
        "sessions": report.sessions,
        "active_sessions": report.active_sessions,
        "charts_fetched": report.charts_fetched,
        "samples_emitted": report.samples_emitted,
        "partial": report.partial,
        "errors": [str(e) for e in report.errors],
    }
    if isinstance(rt.sink, RecordingSink):
        payload["metrics"] = [asdict(c) for c in rt.sink.calls]
    _print_json(payload)
    return 0


def _authenticated_runtime(args: argparse.Namespace) -> Runtime:
    cfg = load_config(Path(args.config) if args.config else None)
    rt = build_runtime(cfg, dry_run=True)
    rt.token_cache.renew(rt.client, cfg.api.username, cfg.api.password)
    return rt


def cmd_list_devices(args: argparse.Namespace) -> int:
    rt = _authenticated_runtime(args)
    _print_json(
        [
            {
                "id": d.id,
                "uuid": d.uuid,
                "title": d.title,
                "model": d.model,
                "active": d.active,
                "ssid": d.device_log.ssid,
                "link_quality": d.device_log.link_quality,
            }
            for d in rt.client.list_devices()
        ]
    )
    return 0


def cmd_list_sessions(args: argparse.Namespace) -> int:
    rt = _authenticated_runtime(args)
    _print_json([asdict(s) for s in rt.client.list_sessions()])
    return 0


def cmd_show_device(args: argparse.Namespace) -> int:
    rt = _authenticated_runtime(args)
    fetch = {
        "": rt.client.get_device,
        "temperature": rt.client.get_device_realtime_temperature,
        "drive": rt.client.get_device_realtime_drive,
    }[args.realtime or ""]
    _print_json(asdict(fetch(args.uuid)))
    return 0


def cmd_show_session(args: argparse.Namespace) -> int:
    rt = _authenticated_runtime(args)
    _print_json(asdict(rt.client.get_session(args.session_id)))
    return 0


def cmd_doctor(args: argparse.Namespace) -> int:
    cfg = load_config(Path(args.config) if args.config else None)
    payload = build_doctor_payload(cfg)

    if args.export:
        exporter = DiagnosticsExporter()
        out_dir = Path(args.out_dir).expanduser().resolve() if args.out_dir else None
        bundle = exporter.bundle(cfg=cfg, doctor_payload=payload, recent_events=[], output_dir=out_dir)
        payload["diagnostics_bundle"] = str(bundle)

    _print_json(payload)
    return 0


def cmd_config(args: argparse.Namespace) -> int:
    path = Path(args.config) if args.config else config_path()
    cfg = load_config(path, env={}) if args.config_cmd == "init" else load_config(path)
    if args.config_cmd == "init":
        written = save_config(cfg, path)
        _print_json({"config_path": str(written)})
        return 0
    _print_json({"config_path": str(path), "config": redact(asdict(cfg))})
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="fireboard-exporter", description="Fireboard cloud to DogStatsD exporter")
    parser.add_argument("--config", default=None, help="Optional config file path")
    parser.add_argument("--verbose", action="store_true", help="Log to the console as well")
    sub = parser.add_subparsers(dest="command", required=True)

    run_cmd = sub.add_parser("run", help="Poll and export on a schedule")
    run_cmd.add_argument("--max-passes", type=int, default=None, help="Stop after this many passes")
    run_cmd.set_defaults(func=cmd_run)

    collect_cmd = sub.add_parser("collect", help="Run a single collection pass")
    collect_cmd.add_argument("--dry-run", action="store_true", help="Print metrics instead of sending them")
    collect_cmd.add_argument("--cutoff-minutes", type=int, default=None)
    collect_cmd.set_defaults(func=cmd_collect)

    devices_cmd = sub.add_parser("list-devices", help="List account devices")
    devices_cmd.set_defaults(func=cmd_list_devices)

    sessions_cmd = sub.add_parser("list-sessions", help="List account sessions")
    sessions_cmd.set_defaults(func=cmd_list_sessions)

    show_device_cmd = sub.add_parser("show-device", help="Show one device")
    show_device_cmd.add_argument("uuid")
    show_device_cmd.add_argument("--realtime", choices=["temperature", "drive"], default=None)
    show_device_cmd.set_defaults(func=cmd_show_device)

    show_session_cmd = sub.add_parser("show-session", help="Show one session with its devices")
    show_session_cmd.add_argument("session_id", type=int)
    show_session_cmd.set_defaults(func=cmd_show_session)

    doctor_cmd = sub.add_parser("doctor", help="Print diagnostics")
    doctor_cmd.add_argument("--export", action="store_true", help="Export offline diagnostics bundle")
    doctor_cmd.add_argument("--out-dir", default=None, help="Optional output directory for diagnostics bundle")
    doctor_cmd.set_defaults(func=cmd_doctor)

    config_cmd = sub.add_parser("config", help="Show or initialize the config file")
    config_cmd.add_argument("config_cmd", choices=["show", "init"])
    config_cmd.set_defaults(func=cmd_config)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(console=args.verbose)
    try:
        return int(args.func(args))
    except FireboardError as exc:
        get_logger().error(f"command failed: {exc}", extra={"event": "command_error"})
        _print_json(
            {
                "success": False,
                "error": type(exc).__name__,
                "message": str(exc),
                "func": exc.func,
                "resource": exc.resource,
            }
        )
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
