"""Unit and derived-metric conversions for raw device telemetry.

Every function here is pure and never raises on malformed input; the ``parse_*``
variants return ``None`` so callers can log, the others degrade to ``0.0``.
"""

from __future__ import annotations

import re
from typing import Callable

from fireboard_api.models import DEGREE_FAHRENHEIT, TEMPERATURE_KIND


_SIZE_RE = re.compile(r"^\s*([0-9]*\.?[0-9]+)\s*([kmgt]?)(?:i?b)?\s*$", re.IGNORECASE)
_PERCENT_RE = re.compile(r"^\s*(-?[0-9]*\.?[0-9]+)\s*%?\s*$")
_SIZE_SCALE = {"": 1.0, "k": 1024.0, "m": 1024.0**2, "g": 1024.0**3, "t": 1024.0**4}

Converter = Callable[[float], float]


def _size(text: str) -> float | None:
    m = _SIZE_RE.match(text)
    if not m:
        return None
    return float(m.group(1)) * _SIZE_SCALE[m.group(2).lower()]


def parse_ratio(raw: str | None) -> float | None:
    """``"a/b"`` -> ``100 * a / b``. Sizes like ``"2.7M/4.2M"`` are accepted."""
    if not raw or raw.count("/") != 1:
        return None
    left, right = raw.split("/")
    num = _size(left)
    den = _size(right)
    if num is None or den is None or den == 0:
        return None
    return 100.0 * num / den


def ratio_percent(raw: str | None) -> float:
    value = parse_ratio(raw)
    return 0.0 if value is None else value


def parse_percent(raw: str | None) -> float | None:
    if not raw:
        return None
    m = _PERCENT_RE.match(raw)
    if not m:
        return None
    return float(m.group(1))


def percent_value(raw: str | None) -> float:
    value = parse_percent(raw)
    return 0.0 if value is None else value


def f_to_c(value: float) -> float:
    return (value - 32.0) * 5.0 / 9.0


def identity(value: float) -> float:
    return value


def converter_for(degree_type: int, kind: str = TEMPERATURE_KIND) -> Converter:
    if kind == TEMPERATURE_KIND and degree_type == DEGREE_FAHRENHEIT:
        return f_to_c
    return identity
