"""Remote data source port consumed by the collector."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from .models import ChannelSeries, Device, SessionDetail, SessionSummary


@runtime_checkable
class RemoteDataSource(Protocol):
    def authenticate(self, username: str, password: str, timeout: float | None = None) -> str: ...

    def list_devices(self, timeout: float | None = None) -> list[Device]: ...

    def get_device(self, device_uuid: str, timeout: float | None = None) -> Device: ...

    def get_device_realtime_temperature(self, device_uuid: str, timeout: float | None = None) -> Device: ...

    def get_device_realtime_drive(self, device_uuid: str, timeout: float | None = None) -> Device: ...

    def list_sessions(self, timeout: float | None = None) -> list[SessionSummary]: ...

    def get_session(self, session_id: int, timeout: float | None = None) -> SessionDetail: ...

    def get_session_chart(self, session_id: int, timeout: float | None = None) -> list[ChannelSeries]: ...
