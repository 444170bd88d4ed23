"""Metrics sink port and its DogStatsD / in-memory implementations."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Protocol, Sequence, runtime_checkable

from datadog.dogstatsd import DogStatsd


Tags = Sequence[str]


@runtime_checkable
class MetricsSink(Protocol):
    def incr(self, name: str, tags: Tags, rate: float = 1.0) -> None: ...

    def count(self, name: str, value: int, tags: Tags, rate: float = 1.0) -> None: ...

    def gauge(self, name: str, value: float, tags: Tags, rate: float = 1.0) -> None: ...


@dataclass(frozen=True)
class MetricCall:
    kind: str
    name: str
    value: float
    tags: tuple[str, ...]
    rate: float = 1.0


class RecordingSink:
    """Keeps every call in memory. Used for dry runs."""

    def __init__(self) -> None:
        self.calls: list[MetricCall] = []
        self._lock = threading.Lock()

    def _record(self, kind: str, name: str, value: float, tags: Tags, rate: float) -> None:
        with self._lock:
            self.calls.append(MetricCall(kind=kind, name=name, value=float(value), tags=tuple(tags), rate=rate))

    def incr(self, name: str, tags: Tags, rate: float = 1.0) -> None:
        self._record("incr", name, 1.0, tags, rate)

    def count(self, name: str, value: int, tags: Tags, rate: float = 1.0) -> None:
        self._record("count", name, value, tags, rate)

    def gauge(self, name: str, value: float, tags: Tags, rate: float = 1.0) -> None:
        self._record("gauge", name, value, tags, rate)

    def named(self, name: str) -> list[MetricCall]:
        return [c for c in self.calls if c.name == name]

    def clear(self) -> None:
        with self._lock:
            self.calls.clear()


class DogStatsdSink:
    def __init__(self, host: str = "localhost", port: int = 8125, client: DogStatsd | None = None) -> None:
        self._client = client or DogStatsd(host=host, port=port)

    def incr(self, name: str, tags: Tags, rate: float = 1.0) -> None:
        self._client.increment(name, value=1, tags=list(tags), sample_rate=rate)

    def count(self, name: str, value: int, tags: Tags, rate: float = 1.0) -> None:
        self._client.increment(name, value=int(value), tags=list(tags), sample_rate=rate)

    def gauge(self, name: str, value: float, tags: Tags, rate: float = 1.0) -> None:
        self._client.gauge(name, float(value), tags=list(tags), sample_rate=rate)

    def flush(self) -> None:
        self._client.flush()

    def close(self) -> None:
        self._client.close_socket()
