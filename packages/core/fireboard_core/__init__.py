"""Core exporter services for settings, scheduling, diagnostics, and performance."""

from .config import AppConfig, load_config, save_config
from .diagnostics import DiagnosticsExporter, build_doctor_payload
from .performance import BudgetStatus, PerformanceController, PerformanceTargets
from .scheduler import PollScheduler, SchedulerStatus

__all__ = [
    "AppConfig",
    "BudgetStatus",
    "DiagnosticsExporter",
    "PerformanceController",
    "PerformanceTargets",
    "PollScheduler",
    "SchedulerStatus",
    "build_doctor_payload",
    "load_config",
    "save_config",
]
