"""Collection pass, unit converters, and metrics sinks."""

from .collector import ACTIVITY_WINDOW, STALENESS_WINDOW, Collector, PassReport
from .converters import converter_for, f_to_c, identity, parse_percent, parse_ratio, percent_value, ratio_percent
from .sink import DogStatsdSink, MetricCall, MetricsSink, RecordingSink

__all__ = [
    "ACTIVITY_WINDOW",
    "Collector",
    "DogStatsdSink",
    "MetricCall",
    "MetricsSink",
    "PassReport",
    "RecordingSink",
    "STALENESS_WINDOW",
    "converter_for",
    "f_to_c",
    "identity",
    "parse_percent",
    "parse_ratio",
    "percent_value",
    "ratio_percent",
]
