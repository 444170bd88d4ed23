"""One collection pass: Fireboard devices, sessions and chart data to metrics."""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable

from fireboard_api.errors import Cancelled, FireboardError, RateLimited
from fireboard_api.models import ChannelSeries, Device, DriveLog, SessionSummary
from fireboard_api.source import RemoteDataSource

from .converters import converter_for, parse_percent, parse_ratio
from .sink import MetricsSink


ACTIVITY_WINDOW = timedelta(minutes=10)
STALENESS_WINDOW = timedelta(minutes=30)

DEVICE_TELEMETRY = (
    ("fireboard.devices.link_quality", "link_quality", parse_ratio),
    ("fireboard.devices.disk_usage", "disk_usage", parse_ratio),
    ("fireboard.devices.memory_usage", "memory_usage", parse_ratio),
    ("fireboard.devices.cpu_usage", "cpu_usage", parse_percent),
)

_METRIC_SAFE = re.compile(r"[^a-z0-9_]+")

_log = logging.getLogger("fireboard.collector")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _metric_segment(kind: str) -> str:
    return _METRIC_SAFE.sub("_", kind.lower()).strip("_") or "unknown"


@dataclass
class PassReport:
    started_at: datetime
    devices: int = 0
    active_devices: int = 0
    sessions: int = 0
    active_sessions: int = 0
    charts_fetched: int = 0
    samples_emitted: int = 0
    errors: list[FireboardError] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.errors)


class Collector:
    def __init__(
        self,
        source: RemoteDataSource,
        sink: MetricsSink,
        tags: Iterable[str] = (),
        timeout_s: float | None = None,
        activity_window: timedelta = ACTIVITY_WINDOW,
        staleness_window: timedelta = STALENESS_WINDOW,
        isolate_sessions: bool = False,
        realtime_drive: bool = False,
        realtime_temperature: bool = False,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.source = source
        self.sink = sink
        self.tags: tuple[str, ...] = tuple(tags)
        self.timeout_s = timeout_s
        self.activity_window = activity_window
        self.staleness_window = staleness_window
        self.isolate_sessions = isolate_sessions
        self.realtime_drive = realtime_drive
        self.realtime_temperature = realtime_temperature
        self._clock = clock
        self._cancel: threading.Event | None = None

    def _check_cancel(self) -> None:
        if self._cancel is not None and self._cancel.is_set():
            raise Cancelled()

    def _tags(self, *extra: str) -> tuple[str, ...]:
        return self.tags + extra

    def _fail(self, metric: str, exc: FireboardError, func: str, *extra: str) -> FireboardError:
        self.sink.incr(metric, self._tags(*extra, f"func:{func}"), 1.0)
        resource = " ".join(extra) or None
        _log.warning(
            f"{func} failed: {exc}",
            extra={"event": "collect_error", "func": func, "resource": resource},
        )
        return exc.with_context(func=func, resource=resource)

    def collect(
        self,
        cutoff: datetime,
        now: datetime | None = None,
        cancel: threading.Event | None = None,
    ) -> PassReport:
        now = now or self._clock()
        report = PassReport(started_at=now)
        self._cancel = cancel

        try:
            devices = self.source.list_devices(timeout=self.timeout_s)
        except FireboardError as exc:
            raise self._fail("fireboard.devices.errors", exc, "devicesList")

        report.devices = len(devices)
        self.sink.count("fireboard.devices", len(devices), self._tags(), 1.0)
        for device in devices:
            self._check_cancel()
            if device.active:
                report.active_devices += 1
                self._collect_device(device, now)

        self._check_cancel()
        try:
            sessions = self.source.list_sessions(timeout=self.timeout_s)
        except FireboardError as exc:
            raise self._fail("fireboard.sessions.errors", exc, "sessionsList")

        report.sessions = len(sessions)
        self.sink.count("fireboard.sessions", len(sessions), self._tags(), 1.0)
        for session in sessions:
            self._check_cancel()
            self._collect_session(session, cutoff, now, report)

        _log.info(
            "collection pass done",
            extra={
                "event": "collect_done",
                "devices": report.devices,
                "sessions": report.sessions,
                "samples": report.samples_emitted,
                "errors": len(report.errors),
            },
        )
        return report

    def _collect_device(self, device: Device, now: datetime) -> None:
        uuid_tag = f"uuid:{device.uuid}"
        self.sink.incr("fireboard.devices.active", self._tags(uuid_tag), 1.0)

        telemetry_tags = self._tags(uuid_tag, f"ssid:{device.device_log.ssid}")
        for metric, attr, parse in DEVICE_TELEMETRY:
            raw = getattr(device.device_log, attr)
            value = parse(raw)
            if value is None:
                _log.warning(
                    f"unparseable {attr} {raw!r} for device {device.uuid}",
                    extra={"event": "telemetry_malformed", "field": attr},
                )
                value = 0.0
            self.sink.gauge(metric, value, telemetry_tags, 1.0)

        if device.last_battery_reading is not None:
            self.sink.gauge("fireboard.devices.battery", device.last_battery_reading, telemetry_tags, 1.0)
        if device.device_log.signal_level is not None:
            self.sink.gauge("fireboard.devices.signal_level", device.device_log.signal_level, telemetry_tags, 1.0)

        drivelog = device.last_drivelog
        if self.realtime_drive:
            try:
                drivelog = self.source.get_device_realtime_drive(device.uuid, timeout=self.timeout_s).last_drivelog
            except FireboardError as exc:
                raise self._fail("fireboard.devices.errors", exc, "devicesGetRealtimeDeviceDriveData", uuid_tag)
        if drivelog is not None:
            self._emit_drive(drivelog, self._tags(uuid_tag))

        if self.realtime_temperature:
            try:
                last_templog = self.source.get_device_realtime_temperature(
                    device.uuid, timeout=self.timeout_s
                ).last_templog
            except FireboardError as exc:
                raise self._fail("fireboard.devices.errors", exc, "devicesGetRealtimeTemperatureData", uuid_tag)
            if last_templog is not None:
                age = max(0.0, (now - last_templog).total_seconds())
                self.sink.gauge("fireboard.devices.templog_age_seconds", age, self._tags(uuid_tag), 1.0)

    def _emit_drive(self, drivelog: DriveLog, tags: tuple[str, ...]) -> None:
        if drivelog.drive_percent is not None:
            self.sink.gauge("fireboard.devices.drive_percent", drivelog.drive_percent * 100.0, tags, 1.0)
        if drivelog.setpoint is not None:
            convert = converter_for(drivelog.degree_type)
            self.sink.gauge("fireboard.devices.setpoint", convert(drivelog.setpoint), tags, 1.0)

    def _collect_session(self, session: SessionSummary, cutoff: datetime, now: datetime, report: PassReport) -> None:
        session_tag = f"sessionID:{session.id}"
        if session.is_active(now, self.activity_window):
            report.active_sessions += 1
            self.sink.incr("fireboard.sessions.active", self._tags(session_tag), 1.0)

        if not session.in_scope(cutoff):
            return

        try:
            chart = self.source.get_session_chart(session.id, timeout=self.timeout_s)
        except FireboardError as exc:
            err = self._fail("fireboard.sessions.errors", exc, "sessionsGetChartData", session_tag)
            if not self.isolate_sessions or isinstance(err, RateLimited):
                raise err
            report.errors.append(err)
            return

        report.charts_fetched += 1
        for series in chart:
            report.samples_emitted += self._emit_series(series, session_tag, now)

    def _emit_series(self, series: ChannelSeries, session_tag: str, now: datetime) -> int:
        convert = converter_for(series.degree_type, series.kind)
        metric = f"fireboard.channels.{_metric_segment(series.kind)}"
        tags = self._tags(
            session_tag,
            f"channel:{series.label}",
            f"channel_id:{series.channel_id}",
            f"device:{series.device}",
        )
        oldest = (now - self.staleness_window).timestamp()
        emitted = 0
        for ts, value in series.samples():
            if ts <= oldest:
                continue
            self.sink.gauge(metric, convert(value), tags, 1.0)
            emitted += 1
        return emitted
