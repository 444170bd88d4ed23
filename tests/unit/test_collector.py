import sys
import threading
import unittest
from collections import Counter
from datetime import datetime, timedelta, timezone
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "packages" / "api"))
sys.path.insert(0, str(ROOT / "packages" / "collector"))

from fireboard_api.errors import Cancelled, DecodeError, RateLimited, RemoteError
from fireboard_api.models import ChannelSeries, Device, DeviceLog, DriveLog, SessionSummary
from fireboard_collector.collector import Collector
from fireboard_collector.sink import RecordingSink

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
CUTOFF = NOW - timedelta(hours=1)


def _ts(delta: timedelta) -> int:
    return int((NOW - delta).timestamp())


class FakeSource:
    def __init__(self, devices=(), sessions=(), charts=None, errors=None, drive=None, templogs=None):
        self.devices = list(devices)
        self.sessions = list(sessions)
        self.charts = charts or {}
        self.errors = errors or {}
        self.drive = drive or {}
        self.templogs = templogs or {}
        self.calls = []

    def _call(self, name, key=None, timeout=None):
        self.calls.append((name, key, timeout))
        exc = self.errors.get((name, key)) or self.errors.get(name)
        if exc is not None:
            raise exc

    def authenticate(self, username, password, timeout=None):
        self._call("authenticate", timeout=timeout)
        return "tok"

    def list_devices(self, timeout=None):
        self._call("list_devices", timeout=timeout)
        return list(self.devices)

    def get_device_realtime_drive(self, device_uuid, timeout=None):
        self._call("get_device_realtime_drive", device_uuid, timeout)
        return Device(id=0, uuid=device_uuid, last_drivelog=self.drive.get(device_uuid))

    def get_device_realtime_temperature(self, device_uuid, timeout=None):
        self._call("get_device_realtime_temperature", device_uuid, timeout)
        return Device(id=0, uuid=device_uuid, last_templog=self.templogs.get(device_uuid))

    def list_sessions(self, timeout=None):
        self._call("list_sessions", timeout=timeout)
        return list(self.sessions)

    def get_session_chart(self, session_id, timeout=None):
        self._call("get_session_chart", session_id, timeout)
        return list(self.charts.get(session_id, []))


def _device(uuid="abc", active=True, **log):
    defaults = dict(link_quality="62/100", disk_usage="0.8M/4.0M", memory_usage="2.7M/4.2M", cpu_usage="66%", ssid="HomeNet")
    defaults.update(log)
    return Device(id=1, uuid=uuid, active=active, device_log=DeviceLog(**defaults))


def _collector(source, sink, **kwargs):
    kwargs.setdefault("tags", ["env:test"])
    return Collector(source, sink, clock=lambda: NOW, **kwargs)


class CollectorDeviceTests(unittest.TestCase):
    def test_active_device_link_quality_gauge(self):
        sink = RecordingSink()
        _collector(FakeSource(devices=[_device()]), sink).collect(CUTOFF)

        gauges = sink.named("fireboard.devices.link_quality")
        self.assertEqual(len(gauges), 1)
        self.assertEqual(gauges[0].kind, "gauge")
        self.assertEqual(gauges[0].value, 62.0)
        self.assertIn("uuid:abc", gauges[0].tags)
        self.assertIn("ssid:HomeNet", gauges[0].tags)
        self.assertIn("env:test", gauges[0].tags)

    def test_device_telemetry_gauges(self):
        sink = RecordingSink()
        _collector(FakeSource(devices=[_device()]), sink).collect(CUTOFF)
        self.assertAlmostEqual(sink.named("fireboard.devices.memory_usage")[0].value, 64.2857, places=3)
        self.assertAlmostEqual(sink.named("fireboard.devices.disk_usage")[0].value, 20.0)
        self.assertEqual(sink.named("fireboard.devices.cpu_usage")[0].value, 66.0)
        active = sink.named("fireboard.devices.active")
        self.assertEqual(active[0].tags, ("env:test", "uuid:abc"))

    def test_device_count_includes_inactive(self):
        sink = RecordingSink()
        source = FakeSource(devices=[_device("a"), _device("b", active=False)])
        report = _collector(source, sink).collect(CUTOFF)
        self.assertEqual(sink.named("fireboard.devices")[0].value, 2)
        self.assertEqual(report.active_devices, 1)
        self.assertEqual(len(sink.named("fireboard.devices.active")), 1)
        self.assertFalse(any("uuid:b" in c.tags for c in sink.calls))

    def test_malformed_telemetry_degrades_to_zero(self):
        sink = RecordingSink()
        source = FakeSource(devices=[_device(link_quality="N/A", cpu_usage="")])
        with self.assertLogs("fireboard.collector", level="WARNING"):
            _collector(source, sink).collect(CUTOFF)
        self.assertEqual(sink.named("fireboard.devices.link_quality")[0].value, 0.0)
        self.assertEqual(sink.named("fireboard.devices.cpu_usage")[0].value, 0.0)
        self.assertEqual(len(sink.named("fireboard.sessions")), 1)

    def test_device_list_failure(self):
        sink = RecordingSink()
        source = FakeSource(errors={"list_devices": RemoteError("boom", status=500)})
        with self.assertRaises(RemoteError) as ctx:
            _collector(source, sink).collect(CUTOFF)
        self.assertEqual(ctx.exception.func, "devicesList")
        errors = sink.named("fireboard.devices.errors")
        self.assertEqual(len(errors), 1)
        self.assertEqual(errors[0].tags, ("env:test", "func:devicesList"))
        self.assertEqual(sink.named("fireboard.devices"), [])

    def test_drive_log_gauges(self):
        sink = RecordingSink()
        device = Device(
            id=1,
            uuid="abc",
            active=True,
            device_log=DeviceLog(link_quality="1/2", ssid="x"),
            last_drivelog=DriveLog(drive_percent=0.25, setpoint=212.0, degree_type=2),
        )
        _collector(FakeSource(devices=[device]), sink).collect(CUTOFF)
        self.assertEqual(sink.named("fireboard.devices.drive_percent")[0].value, 25.0)
        self.assertAlmostEqual(sink.named("fireboard.devices.setpoint")[0].value, 100.0)

    def test_realtime_drive_fetch(self):
        sink = RecordingSink()
        source = FakeSource(devices=[_device()], drive={"abc": DriveLog(drive_percent=1.0)})
        _collector(source, sink, realtime_drive=True).collect(CUTOFF)
        self.assertIn(("get_device_realtime_drive", "abc", None), source.calls)
        self.assertEqual(sink.named("fireboard.devices.drive_percent")[0].value, 100.0)

    def test_realtime_drive_failure_is_tagged(self):
        sink = RecordingSink()
        source = FakeSource(devices=[_device()], errors={"get_device_realtime_drive": RateLimited()})
        with self.assertRaises(RateLimited):
            _collector(source, sink, realtime_drive=True).collect(CUTOFF)
        err = sink.named("fireboard.devices.errors")[0]
        self.assertEqual(err.tags, ("env:test", "uuid:abc", "func:devicesGetRealtimeDeviceDriveData"))

    def test_realtime_temperature_reports_templog_age(self):
        sink = RecordingSink()
        source = FakeSource(devices=[_device()], templogs={"abc": NOW - timedelta(seconds=90)})
        _collector(source, sink, realtime_temperature=True, timeout_s=4.0).collect(CUTOFF)
        self.assertIn(("get_device_realtime_temperature", "abc", 4.0), source.calls)
        age = sink.named("fireboard.devices.templog_age_seconds")
        self.assertEqual(len(age), 1)
        self.assertEqual(age[0].value, 90.0)
        self.assertEqual(age[0].tags, ("env:test", "uuid:abc"))

    def test_realtime_temperature_off_by_default(self):
        sink = RecordingSink()
        source = FakeSource(devices=[_device()], templogs={"abc": NOW})
        _collector(source, sink).collect(CUTOFF)
        self.assertNotIn("get_device_realtime_temperature", [c[0] for c in source.calls])
        self.assertEqual(sink.named("fireboard.devices.templog_age_seconds"), [])

    def test_realtime_temperature_failure_is_tagged(self):
        sink = RecordingSink()
        source = FakeSource(devices=[_device()], errors={"get_device_realtime_temperature": RemoteError("down", status=502)})
        with self.assertRaises(RemoteError) as ctx:
            _collector(source, sink, realtime_temperature=True).collect(CUTOFF)
        err = sink.named("fireboard.devices.errors")[0]
        self.assertEqual(err.tags, ("env:test", "uuid:abc", "func:devicesGetRealtimeTemperatureData"))
        self.assertEqual(ctx.exception.func, "devicesGetRealtimeTemperatureData")


class CollectorSessionTests(unittest.TestCase):
    def test_session_list_rate_limited(self):
        sink = RecordingSink()
        source = FakeSource(devices=[_device()], errors={"list_sessions": RateLimited()})
        with self.assertRaises(RateLimited) as ctx:
            _collector(source, sink).collect(CUTOFF)
        self.assertEqual(ctx.exception.func, "sessionsList")

        errors = [c for c in sink.calls if any(t.startswith("func:") for t in c.tags)]
        self.assertEqual(len(errors), 1)
        self.assertIn("func:sessionsList", errors[0].tags)
        self.assertEqual(sink.named("fireboard.sessions"), [])
        self.assertEqual(sink.named("fireboard.sessions.active"), [])
        self.assertFalse(any(c.name.startswith("fireboard.channels.") for c in sink.calls))

    def test_session_activity(self):
        sink = RecordingSink()
        sessions = [
            SessionSummary(id=1, end_time=NOW - timedelta(minutes=5)),
            SessionSummary(id=2, end_time=NOW - timedelta(minutes=15)),
        ]
        report = _collector(FakeSource(sessions=sessions), sink).collect(CUTOFF)
        active = sink.named("fireboard.sessions.active")
        self.assertEqual([c.tags for c in active], [("env:test", "sessionID:1")])
        self.assertEqual(report.active_sessions, 1)
        self.assertEqual(sink.named("fireboard.sessions")[0].value, 2)

    def test_chart_only_fetched_after_cutoff(self):
        sessions = [
            SessionSummary(id=1, end_time=NOW - timedelta(minutes=30)),
            SessionSummary(id=2, end_time=NOW - timedelta(hours=3)),
        ]
        source = FakeSource(sessions=sessions)
        _collector(source, RecordingSink(), timeout_s=4.0).collect(CUTOFF)
        chart_calls = [c for c in source.calls if c[0] == "get_session_chart"]
        self.assertEqual(chart_calls, [("get_session_chart", 1, 4.0)])

    def test_staleness_filter(self):
        series = ChannelSeries(
            channel_id="1",
            label="Pit",
            device="abc",
            degree_type=1,
            x=(
                _ts(timedelta(minutes=31)),
                _ts(timedelta(minutes=45)),
                _ts(timedelta(minutes=29)),
                _ts(timedelta(seconds=1)),
            ),
            y=(100.0, 101.0, 102.0, 103.0),
        )
        sink = RecordingSink()
        source = FakeSource(sessions=[SessionSummary(id=7, end_time=NOW)], charts={7: [series]})
        report = _collector(source, sink).collect(CUTOFF)

        temps = sink.named("fireboard.channels.temperature")
        self.assertEqual([c.value for c in temps], [102.0, 103.0])
        self.assertEqual(report.samples_emitted, 2)
        self.assertEqual(
            temps[0].tags,
            ("env:test", "sessionID:7", "channel:Pit", "channel_id:1", "device:abc"),
        )

    def test_fahrenheit_channel_converted(self):
        fahrenheit = ChannelSeries(channel_id="2", label="Probe", degree_type=2, x=(_ts(timedelta(seconds=5)),), y=(212.0,))
        drive = ChannelSeries(channel_id="drive_abc", label="Fan", degree_type=2, x=(_ts(timedelta(seconds=5)),), y=(50.0,))
        sink = RecordingSink()
        source = FakeSource(sessions=[SessionSummary(id=7, end_time=NOW)], charts={7: [fahrenheit, drive]})
        _collector(source, sink).collect(CUTOFF)
        self.assertAlmostEqual(sink.named("fireboard.channels.temperature")[0].value, 100.0)
        self.assertEqual(sink.named("fireboard.channels.drive")[0].value, 50.0)

    def test_chart_failure_is_fatal_by_default(self):
        sink = RecordingSink()
        sessions = [SessionSummary(id=7, end_time=NOW), SessionSummary(id=8, end_time=NOW)]
        source = FakeSource(sessions=sessions, errors={("get_session_chart", 7): RemoteError("boom", status=502)})
        with self.assertRaises(RemoteError) as ctx:
            _collector(source, sink).collect(CUTOFF)
        self.assertEqual(ctx.exception.func, "sessionsGetChartData")
        self.assertEqual(ctx.exception.resource, "sessionID:7")
        err = sink.named("fireboard.sessions.errors")
        self.assertEqual(err[0].tags, ("env:test", "sessionID:7", "func:sessionsGetChartData"))
        self.assertNotIn(("get_session_chart", 8, None), source.calls)

    def test_isolated_sessions_continue(self):
        series = ChannelSeries(channel_id="1", label="Pit", x=(_ts(timedelta(seconds=5)),), y=(99.0,))
        sessions = [SessionSummary(id=7, end_time=NOW), SessionSummary(id=8, end_time=NOW)]
        source = FakeSource(
            sessions=sessions,
            charts={8: [series]},
            errors={("get_session_chart", 7): DecodeError("bad body")},
        )
        sink = RecordingSink()
        report = _collector(source, sink, isolate_sessions=True).collect(CUTOFF)
        self.assertTrue(report.partial)
        self.assertEqual(report.errors[0].resource, "sessionID:7")
        self.assertEqual(report.charts_fetched, 1)
        self.assertEqual(sink.named("fireboard.channels.temperature")[0].value, 99.0)

    def test_isolated_sessions_still_propagate_rate_limit(self):
        sessions = [SessionSummary(id=7, end_time=NOW), SessionSummary(id=8, end_time=NOW)]
        source = FakeSource(sessions=sessions, errors={("get_session_chart", 7): RateLimited()})
        with self.assertRaises(RateLimited):
            _collector(source, RecordingSink(), isolate_sessions=True).collect(CUTOFF)


class CollectorPassTests(unittest.TestCase):
    def _source(self):
        series = ChannelSeries(channel_id="1", label="Pit", device="abc", x=(_ts(timedelta(minutes=1)),), y=(120.0,))
        return FakeSource(
            devices=[_device("a"), _device("b", active=False)],
            sessions=[SessionSummary(id=7, end_time=NOW - timedelta(minutes=2))],
            charts={7: [series]},
        )

    def test_repeated_passes_emit_same_calls(self):
        sink = RecordingSink()
        collector = _collector(self._source(), sink)
        collector.collect(CUTOFF, now=NOW)
        first = Counter(sink.calls)
        sink.clear()
        collector.collect(CUTOFF, now=NOW)
        self.assertEqual(Counter(sink.calls), first)

    def test_base_tags_are_not_mutated(self):
        base = ["env:test"]
        sink = RecordingSink()
        collector = Collector(self._source(), sink, tags=base, clock=lambda: NOW)
        collector.collect(CUTOFF)
        base.append("leak:yes")
        collector.collect(CUTOFF)
        self.assertEqual(collector.tags, ("env:test",))
        self.assertFalse(any("leak:yes" in c.tags for c in sink.calls))
        device_tags = {c.tags for c in sink.named("fireboard.devices.active")}
        self.assertEqual(device_tags, {("env:test", "uuid:a")})

    def test_cancelled_pass(self):
        cancel = threading.Event()
        cancel.set()
        with self.assertRaises(Cancelled):
            _collector(self._source(), RecordingSink()).collect(CUTOFF, cancel=cancel)


if __name__ == "__main__":
    unittest.main()
