"""Persistent exporter settings schema and load/save helpers."""

from __future__ import annotations

import json
import os
import platform
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any


CONFIG_VERSION = 2


@dataclass
class ApiConfig:
    base_url: str = "https://fireboard.io"
    timeout_ms: int = 10000
    username: str = ""
    password: str = ""


@dataclass
class CollectConfig:
    interval_s: int = 60
    cutoff_minutes: int = 60
    activity_window_minutes: int = 10
    staleness_window_minutes: int = 30
    isolate_sessions: bool = False
    realtime_drive: bool = False
    realtime_temperature: bool = False
    tags: list[str] = field(default_factory=list)


@dataclass
class StatsdConfig:
    host: str = "localhost"
    port: int = 8125


@dataclass
class DiagnosticsConfig:
    keep_log_files: int = 7
    max_bundle_mb: int = 20


@dataclass
class PerformanceConfig:
    cpu_percent_max: float = 25.0
    rss_mb_max: float = 256.0


@dataclass
class AppConfig:
    config_version: int = CONFIG_VERSION
    api: ApiConfig = field(default_factory=ApiConfig)
    collect: CollectConfig = field(default_factory=CollectConfig)
    statsd: StatsdConfig = field(default_factory=StatsdConfig)
    diagnostics: DiagnosticsConfig = field(default_factory=DiagnosticsConfig)
    performance: PerformanceConfig = field(default_factory=PerformanceConfig)


DEFAULT_CONFIG = AppConfig()


def config_root() -> Path:
    system = platform.system()
    if system == "Windows":
        base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
        return base / "FireboardExporter"
    if system == "Darwin":
        return Path.home() / "Library" / "Application Support" / "FireboardExporter"
    return Path.home() / ".config" / "fireboard-exporter"


def config_path() -> Path:
    return config_root() / "config.json"


def _merge(dataclass_type, raw: dict[str, Any]):
    defaults = dataclass_type()  # type: ignore[misc]
    if not isinstance(raw, dict):
        return defaults
    for k, v in raw.items():
        if hasattr(defaults, k):
            setattr(defaults, k, v)
    return defaults


def _normalize_api(cfg: AppConfig) -> None:
    cfg.api.base_url = (cfg.api.base_url or ApiConfig.base_url).rstrip("/")
    cfg.api.timeout_ms = max(100, min(120000, int(cfg.api.timeout_ms)))


def _normalize_collect(cfg: AppConfig) -> None:
    c = cfg.collect
    c.interval_s = max(10, min(3600, int(c.interval_s)))
    c.cutoff_minutes = max(1, int(c.cutoff_minutes))
    c.activity_window_minutes = max(1, int(c.activity_window_minutes))
    c.staleness_window_minutes = max(1, int(c.staleness_window_minutes))
    c.tags = [str(t) for t in (c.tags or []) if str(t).strip()]


def _normalize_statsd(cfg: AppConfig) -> None:
    cfg.statsd.port = int(cfg.statsd.port)
    if not 0 < cfg.statsd.port < 65536:
        cfg.statsd.port = StatsdConfig.port


def _normalize_performance(cfg: AppConfig) -> None:
    cfg.performance.cpu_percent_max = float(max(1.0, cfg.performance.cpu_percent_max))
    cfg.performance.rss_mb_max = float(max(32.0, cfg.performance.rss_mb_max))


def _migrate(raw: dict[str, Any]) -> dict[str, Any]:
    version = int(raw.get("config_version", 1))
    data = dict(raw)

    if version < 2:
        # v1 kept the api settings flat at the top level.
        api = dict(data.get("api", {}) or {})
        for key in ("base_url", "timeout_ms", "username", "password"):
            if key in data:
                api.setdefault(key, data.pop(key))
        data["api"] = api
        data.setdefault("diagnostics", {})
        data.setdefault("performance", {})
        data["config_version"] = 2

    return data


def apply_env(cfg: AppConfig, env: dict[str, str] | None = None) -> AppConfig:
    env = os.environ if env is None else env

    if env.get("FIREBOARD_API_URL"):
        cfg.api.base_url = env["FIREBOARD_API_URL"]
    timeout = env.get("FIREBOARD_API_TIMEOUT_MILLIS", "").strip()
    if timeout:
        try:
            if int(timeout) > 0:
                cfg.api.timeout_ms = int(timeout)
        except ValueError:
            pass
    if env.get("FIREBOARD_USERNAME"):
        cfg.api.username = env["FIREBOARD_USERNAME"]
    if env.get("FIREBOARD_PASSWORD"):
        cfg.api.password = env["FIREBOARD_PASSWORD"]
    if env.get("DD_AGENT_HOST"):
        cfg.statsd.host = env["DD_AGENT_HOST"]
    port = env.get("DD_DOGSTATSD_PORT", "").strip()
    if port.isdigit():
        cfg.statsd.port = int(port)
    return cfg


def load_config(path: Path | None = None, env: dict[str, str] | None = None) -> AppConfig:
    path = path or config_path()
    data: dict[str, Any] = {}
    if path.exists():
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except Exception:
            raw = {}
        if isinstance(raw, dict):
            data = _migrate(raw)

    cfg = AppConfig(
        config_version=int(data.get("config_version", CONFIG_VERSION)),
        api=_merge(ApiConfig, data.get("api", {})),
        collect=_merge(CollectConfig, data.get("collect", {})),
        statsd=_merge(StatsdConfig, data.get("statsd", {})),
        diagnostics=_merge(DiagnosticsConfig, data.get("diagnostics", {})),
        performance=_merge(PerformanceConfig, data.get("performance", {})),
    )

    apply_env(cfg, env)
    _normalize_api(cfg)
    _normalize_collect(cfg)
    _normalize_statsd(cfg)
    _normalize_performance(cfg)
    return cfg


def save_config(cfg: AppConfig, path: Path | None = None) -> Path:
    cfg.config_version = CONFIG_VERSION
    path = path or config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(asdict(cfg), indent=2, sort_keys=True), encoding="utf-8")
    return path
