"""Auto interval calculation for date histograms.

"auto" on a date_histogram means: split the time range into roughly
max_data_points buckets, round to something a human would pick, and never
go below the minimum interval.
"""

import re
from dataclasses import dataclass

from aggforge.models.target import TimeRange

_UNITS_MS = {
    "ms": 1,
    "s": 1000,
    "m": 60 * 1000,
    "h": 60 * 60 * 1000,
    "d": 24 * 60 * 60 * 1000,
    "w": 7 * 24 * 60 * 60 * 1000,
    "y": 365 * 24 * 60 * 60 * 1000,
}
_INTERVAL_RE = re.compile(r"^(\d+(?:\.\d+)?)(ms|s|m|h|d|w|y)$")

# (upper bound, rounded interval) pairs, both in ms
_ROUNDING = [
    (15, 10),
    (35, 20),
    (75, 50),
    (150, 100),
    (350, 200),
    (750, 500),
    (1_500, 1_000),
    (3_500, 2_000),
    (7_500, 5_000),
    (12_500, 10_000),
    (17_500, 15_000),
    (25_000, 20_000),
    (45_000, 30_000),
    (90_000, 60_000),
    (210_000, 120_000),
    (450_000, 300_000),
    (750_000, 600_000),
    (1_050_000, 900_000),
    (1_500_000, 1_200_000),
    (2_700_000, 1_800_000),
    (5_400_000, 3_600_000),
    (9_000_000, 7_200_000),
    (16_200_000, 10_800_000),
    (32_400_000, 21_600_000),
    (86_400_000, 43_200_000),
    (604_800_000, 86_400_000),
    (1_814_400_000, 604_800_000),
    (3_628_800_000, 2_592_000_000),
]


@dataclass(frozen=True)
class Interval:
    text: str  # e.g. "30s"
    ms: int


def parse_interval(text: str) -> int:
    """Parse "10s" / "1m" / ">5m" into milliseconds."""
    cleaned = text.strip().lstrip(">")
    match = _INTERVAL_RE.match(cleaned)
    if not match:
        raise ValueError(f"Invalid interval: {text!r}")
    amount, unit = match.groups()
    return int(float(amount) * _UNITS_MS[unit])


def format_interval(ms: int) -> str:
    """Render milliseconds using the largest unit that divides evenly."""
    for unit in ("y", "w", "d", "h", "m", "s"):
        size = _UNITS_MS[unit]
        if ms >= size and ms % size == 0:
            return f"{ms // size}{unit}"
    return f"{ms}ms"


def round_interval(ms: float) -> int:
    for upper, rounded in _ROUNDING:
        if ms <= upper:
            return rounded
    return _UNITS_MS["y"]


class IntervalCalculator:
    """Computes the interval substituted for $__interval placeholders."""

    def __init__(self, min_interval: str = "10s", max_data_points: int = 1000) -> None:
        self.min_interval = min_interval
        self.max_data_points = max_data_points

    def calculate(
        self,
        time_range: TimeRange,
        min_interval: str | None = None,
        max_data_points: int | None = None,
    ) -> Interval:
        points = max_data_points or self.max_data_points
        floor_ms = parse_interval(min_interval or self.min_interval)

        span_ms = max(time_range.to_ms - time_range.from_ms, 0)
        rounded = round_interval(span_ms / max(points, 1))
        ms = max(rounded, floor_ms)
        return Interval(text=format_interval(ms), ms=ms)
