"""Typed models for Fireboard cloud API payloads."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from .errors import DecodeError


DEGREE_CELSIUS = 1
DEGREE_FAHRENHEIT = 2
TEMPERATURE_KIND = "temperature"

_log = logging.getLogger("fireboard.api")


def parse_time(value: Any) -> datetime | None:
    """Parse the timestamp shapes the API emits into an aware UTC datetime."""
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if not isinstance(value, str):
        raise DecodeError(f"invalid timestamp: {value!r}")

    text = value.strip()
    if text.endswith(" UTC"):
        text = text[:-4]
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise DecodeError(f"invalid timestamp: {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _time_or_none(raw: Any, what: str) -> datetime | None:
    try:
        return parse_time(raw)
    except DecodeError:
        _log.warning(f"ignoring malformed {what}: {raw!r}", extra={"event": "decode_warning"})
        return None


def _obj(raw: Any, what: str) -> dict[str, Any]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise DecodeError(f"expected object for {what}, got {type(raw).__name__}")
    return raw


def _list(raw: Any, what: str) -> list[Any]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise DecodeError(f"expected list for {what}, got {type(raw).__name__}")
    return raw


def _str(raw: Any) -> str:
    return "" if raw is None else str(raw)


def _int(raw: Any, default: int = 0) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        return default


def _float(raw: Any) -> float | None:
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class DeviceLog:
    link_quality: str = ""
    disk_usage: str = ""
    memory_usage: str = ""
    cpu_usage: str = ""
    ssid: str = ""
    signal_level: int | None = None
    ble_signal_level: int | None = None
    onboard_temp: float | None = None
    battery_voltage: float | None = None
    battery_percent: float | None = None
    version: str = ""
    model: str = ""
    band: str = ""
    date: datetime | None = None

    @classmethod
    def from_payload(cls, raw: Any) -> "DeviceLog":
        data = _obj(raw, "device_log")
        return cls(
            link_quality=_str(data.get("linkquality")),
            disk_usage=_str(data.get("diskUsage")),
            memory_usage=_str(data.get("memUsage")),
            cpu_usage=_str(data.get("cpuUsage")),
            ssid=_str(data.get("ssid")),
            signal_level=(_int(data["signallevel"]) if data.get("signallevel") is not None else None),
            ble_signal_level=(_int(data["bleSignalLevel"]) if data.get("bleSignalLevel") is not None else None),
            onboard_temp=_float(data.get("onboardTemp")),
            battery_voltage=_float(data.get("vBatt")),
            battery_percent=_float(data.get("vBattPer")),
            version=_str(data.get("version")),
            model=_str(data.get("model")),
            band=_str(data.get("band")),
            date=_time_or_none(data.get("date"), "device_log.date"),
        )


@dataclass(frozen=True)
class DriveLog:
    mode_type: str = ""
    tied_channel: int = 0
    drive_percent: float | None = None
    setpoint: float | None = None
    degree_type: int = DEGREE_CELSIUS
    lid_paused: bool = False
    user_initiated: bool = False
    power_mode: str = ""
    created: datetime | None = None

    @classmethod
    def from_payload(cls, raw: Any) -> "DriveLog":
        data = _obj(raw, "last_drivelog")
        return cls(
            mode_type=_str(data.get("modetype")),
            tied_channel=_int(data.get("tiedchannel")),
            drive_percent=_float(data.get("driveper")),
            setpoint=_float(data.get("setpoint")),
            degree_type=_int(data.get("degreetype"), DEGREE_CELSIUS),
            lid_paused=bool(data.get("lidpaused")),
            user_initiated=bool(data.get("userinitiated")),
            power_mode=_str(data.get("powermode")),
            created=_time_or_none(data.get("created"), "last_drivelog.created"),
        )


@dataclass(frozen=True)
class Device:
    id: int
    uuid: str
    title: str = ""
    hardware_id: str = ""
    model: str = ""
    channel_count: int = 0
    active: bool = False
    device_log: DeviceLog = field(default_factory=DeviceLog)
    last_drivelog: DriveLog | None = None
    last_battery_reading: float | None = None
    last_templog: datetime | None = None

    @classmethod
    def from_payload(cls, raw: Any) -> "Device":
        data = _obj(raw, "device")
        drivelog = data.get("last_drivelog")
        return cls(
            id=_int(data.get("id")),
            uuid=_str(data.get("uuid", data.get("UUID"))),
            title=_str(data.get("title")),
            hardware_id=_str(data.get("hardware_id")),
            model=_str(data.get("model")),
            channel_count=_int(data.get("channel_count")),
            active=bool(data.get("active")),
            device_log=DeviceLog.from_payload(data.get("device_log")),
            last_drivelog=(DriveLog.from_payload(drivelog) if drivelog else None),
            last_battery_reading=_float(data.get("last_battery_reading")),
            last_templog=_time_or_none(data.get("last_templog"), "last_templog"),
        )


@dataclass(frozen=True)
class SessionSummary:
    id: int
    title: str = ""
    start_time: datetime | None = None
    end_time: datetime | None = None
    device_ids: tuple[str, ...] = ()

    @classmethod
    def from_payload(cls, raw: Any) -> "SessionSummary":
        data = _obj(raw, "session")
        if "id" not in data:
            raise DecodeError("session without id")
        return cls(
            id=_int(data.get("id")),
            title=_str(data.get("title")),
            start_time=_time_or_none(data.get("start_time"), "start_time"),
            end_time=parse_time(data.get("end_time")),
            device_ids=tuple(_str(d) for d in _list(data.get("device_ids"), "device_ids")),
        )

    def is_active(self, now: datetime, window: timedelta) -> bool:
        # No end time means the session is still running.
        if self.end_time is None:
            return True
        return self.end_time > now - window

    def in_scope(self, cutoff: datetime) -> bool:
        if self.end_time is None:
            return True
        return self.end_time > cutoff


@dataclass(frozen=True)
class SessionDetail(SessionSummary):
    description: str = ""
    duration: str = ""
    last_active: datetime | None = None
    drive: bool = False
    devices: tuple[Device, ...] = ()

    @classmethod
    def from_payload(cls, raw: Any) -> "SessionDetail":
        data = _obj(raw, "session")
        summary = SessionSummary.from_payload(data)
        return cls(
            id=summary.id,
            title=summary.title,
            start_time=summary.start_time,
            end_time=summary.end_time,
            device_ids=summary.device_ids,
            description=_str(data.get("description")),
            duration=_str(data.get("duration")),
            last_active=_time_or_none(data.get("last_active"), "last_active"),
            drive=bool(data.get("drive")),
            devices=tuple(Device.from_payload(d) for d in _list(data.get("devices"), "devices")),
        )


@dataclass(frozen=True)
class ChannelSeries:
    channel_id: str
    label: str = ""
    device: str = ""
    degree_type: int = DEGREE_CELSIUS
    x: tuple[int, ...] = ()
    y: tuple[float, ...] = ()

    @property
    def kind(self) -> str:
        try:
            int(self.channel_id)
        except ValueError:
            return self.channel_id.split("_", 1)[0]
        return TEMPERATURE_KIND

    def samples(self):
        return zip(self.x, self.y)

    @classmethod
    def from_payload(cls, raw: Any) -> "ChannelSeries":
        data = _obj(raw, "chart channel")
        xs = _list(data.get("x"), "x")
        ys = _list(data.get("y"), "y")
        if len(xs) != len(ys):
            raise DecodeError(f"chart series length mismatch: x={len(xs)} y={len(ys)}")
        try:
            x = tuple(int(v) for v in xs)
            y = tuple(float(v) for v in ys)
        except (TypeError, ValueError) as exc:
            raise DecodeError(f"invalid chart sample: {exc}") from exc
        return cls(
            channel_id=_str(data.get("channel_id")),
            label=_str(data.get("label")),
            device=_str(data.get("device")),
            degree_type=_int(data.get("degreetype"), DEGREE_CELSIUS),
            x=x,
            y=y,
        )


def devices_from_payload(raw: Any) -> list[Device]:
    return [Device.from_payload(item) for item in _list(raw, "devices")]


def sessions_from_payload(raw: Any) -> list[SessionSummary]:
    return [SessionSummary.from_payload(item) for item in _list(raw, "sessions")]


def chart_from_payload(raw: Any) -> list[ChannelSeries]:
    return [ChannelSeries.from_payload(item) for item in _list(raw, "chart")]
