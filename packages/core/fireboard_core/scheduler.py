"""Repeated collection passes with token renewal, rate-limit backoff, and cancellation."""

from __future__ import annotations

import random
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from fireboard_api import AuthError, Cancelled, FireboardError, RateLimited, TokenCache, TokenError
from fireboard_api.source import RemoteDataSource
from fireboard_collector import Collector, MetricsSink, PassReport

from .logging_setup import get_logger
from .performance import PerformanceController


_log = get_logger("scheduler")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SchedulerStatus:
    state: str = "idle"
    passes: int = 0
    failures: int = 0
    consecutive_failures: int = 0
    interval_s: int = 60
    backoff_seconds: float = 0.0
    last_pass_utc: str | None = None
    last_error: str | None = None
    last_report: PassReport | None = None


class PollScheduler:
    def __init__(
        self,
        collector: Collector,
        source: RemoteDataSource,
        token_cache: TokenCache,
        username: str,
        password: str,
        sink: MetricsSink | None = None,
        interval_s: int = 60,
        cutoff: timedelta = timedelta(minutes=60),
        performance: PerformanceController | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.collector = collector
        self.source = source
        self.token_cache = token_cache
        self.username = username
        self.password = password
        self.sink = sink or collector.sink
        self.cutoff = cutoff
        self.performance = performance
        self.base_interval_s = interval_s

        self._clock = clock
        self._status = SchedulerStatus(interval_s=interval_s)
        self._lock = threading.RLock()
        self._stop = threading.Event()
        self._force_renew = False
        self._events: list[dict[str, Any]] = []

        self._backoff_base = 5.0
        self._backoff_cap = 300.0

    @property
    def status(self) -> SchedulerStatus:
        return self._status

    def recent_events(self, limit: int = 200) -> list[dict[str, Any]]:
        return self._events[-limit:]

    def _log_event(self, event: str, **fields: Any) -> None:
        row = {
            "ts_utc": _utcnow().isoformat(),
            "event": event,
            "state": self._status.state,
        }
        row.update(fields)
        self._events.append(row)
        if len(self._events) > 1000:
            self._events = self._events[-1000:]

    def stop(self) -> None:
        self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def ensure_token(self, now: datetime | None = None) -> None:
        now = now or self._clock()
        if not self._force_renew and not self.token_cache.needs_renewal(now):
            return
        self._status.state = "authenticating"
        self.token_cache.renew(self.source, self.username, self.password, now=now)
        self._force_renew = False
        self._log_event("token_renewed")
        _log.info("auth token renewed", extra={"event": "token_renewed"})

    def run_once(self, now: datetime | None = None) -> PassReport:
        """Run one pass. Errors are recorded on the status and re-raised."""
        with self._lock:
            now = now or self._clock()
            start = time.perf_counter()
            try:
                self.ensure_token(now)
                self._status.state = "collecting"
                report = self.collector.collect(now - self.cutoff, now=now, cancel=self._stop)
            except FireboardError as exc:
                self._record_failure(exc)
                raise
            finally:
                self._emit_budget(time.perf_counter() - start)

            result = "partial" if report.partial else "ok"
            self.sink.incr("fireboard.exporter.passes", self.collector.tags + (f"result:{result}",), 1.0)
            self._status.state = "idle"
            self._status.passes += 1
            self._status.consecutive_failures = 0
            self._status.backoff_seconds = 0.0
            self._status.last_error = None
            self._status.last_pass_utc = now.isoformat()
            self._status.last_report = report
            self._log_event("pass_ok", result=result, samples=report.samples_emitted)
            return report

    def _record_failure(self, exc: FireboardError) -> None:
        if isinstance(exc, Cancelled):
            self._status.state = "stopped"
            self._log_event("pass_cancelled")
            return

        if isinstance(exc, (TokenError, AuthError)):
            self._force_renew = True

        self.sink.incr("fireboard.exporter.passes", self.collector.tags + ("result:error",), 1.0)
        self._status.state = "error"
        self._status.failures += 1
        self._status.consecutive_failures += 1
        self._status.last_error = str(exc)
        self._log_event("pass_error", error=str(exc), kind=type(exc).__name__)
        _log.warning(f"collection pass failed: {exc}", extra={"event": "pass_error"})

    def _emit_budget(self, elapsed: float) -> None:
        tags = self.collector.tags
        self.sink.gauge("fireboard.exporter.pass_seconds", elapsed, tags, 1.0)
        if self.performance is None:
            return
        budget = self.performance.sample(elapsed, self._status.interval_s, self.base_interval_s)
        self.sink.gauge("fireboard.exporter.cpu_percent", budget.cpu_percent, tags, 1.0)
        self.sink.gauge("fireboard.exporter.rss_mb", budget.rss_mb, tags, 1.0)
        if budget.recommended_interval_s != self._status.interval_s:
            self._log_event(
                "interval_adjusted",
                warning=budget.warning,
                interval_s=budget.recommended_interval_s,
            )
        self._status.interval_s = budget.recommended_interval_s

    def next_delay(self, last_error: FireboardError | None = None) -> float:
        if isinstance(last_error, (RateLimited, AuthError)):
            attempt = max(1, self._status.consecutive_failures)
            delay = min(self._backoff_cap, self._backoff_base * (2 ** (attempt - 1)))
            wait_for = delay + random.uniform(0.0, 0.15 * delay)
            self._status.state = "backoff_wait"
            self._status.backoff_seconds = wait_for
            self._log_event("backoff_wait", attempt=attempt, wait_s=wait_for)
            return wait_for
        return float(self._status.interval_s)

    def run_forever(self, max_passes: int | None = None) -> int:
        """Loop until ``stop()`` is called. Returns the number of passes attempted."""
        attempted = 0
        while not self._stop.is_set():
            last_error: FireboardError | None = None
            try:
                self.run_once()
            except Cancelled:
                break
            except FireboardError as exc:
                last_error = exc
            attempted += 1
            if max_passes is not None and attempted >= max_passes:
                break
            self._stop.wait(self.next_delay(last_error))
        self._status.state = "stopped"
        self._log_event("scheduler_stopped", passes=attempted)
        return attempted
