"""Runtime performance budgeting and poll interval hints."""

from __future__ import annotations

from dataclasses import dataclass

try:
    import psutil
except Exception:  # pragma: no cover
    psutil = None


@dataclass(frozen=True)
class PerformanceTargets:
    cpu_percent_max: float = 25.0
    rss_mb_max: float = 256.0


@dataclass(frozen=True)
class BudgetStatus:
    cpu_percent: float
    rss_mb: float
    pass_seconds: float
    overloaded: bool
    warning: str | None
    recommended_interval_s: int


class PerformanceController:
    def __init__(self, targets: PerformanceTargets | None = None) -> None:
        self.targets = targets or PerformanceTargets()
        self._process = psutil.Process() if psutil is not None else None
        if self._process is not None:
            # Prime non-blocking CPU measurement.
            self._process.cpu_percent(interval=None)

    def sample(self, pass_seconds: float, interval_s: int, base_interval_s: int | None = None) -> BudgetStatus:
        if self._process is None:
            cpu = 0.0
            rss_mb = 0.0
        else:
            cpu = float(self._process.cpu_percent(interval=None))
            rss_mb = float(self._process.memory_info().rss) / (1024 * 1024)
        overloaded = cpu > self.targets.cpu_percent_max or rss_mb > self.targets.rss_mb_max
        floor = base_interval_s or interval_s

        warning = None
        rec_interval = interval_s

        if overloaded:
            warning = "resource_overload"
            rec_interval = min(3600, int(interval_s * 1.25) + 5)
        elif pass_seconds >= interval_s:
            warning = "pass_exceeds_interval"
            rec_interval = min(3600, int(pass_seconds * 1.5) + 1)
        elif interval_s > floor:
            rec_interval = max(floor, interval_s - 5)

        return BudgetStatus(
            cpu_percent=cpu,
            rss_mb=rss_mb,
            pass_seconds=float(pass_seconds),
            overloaded=overloaded,
            warning=warning,
            recommended_interval_s=rec_interval,
        )
