"""Metric value resolution.

most metrics are a single {"value": x}, but a few fan out: percentiles give
one component per requested percent and extended_stats one per enabled stat.
components() figures out what series a metric turns into, resolve() pulls a
single component's value out of a bucket.

anything missing resolves to None rather than being dropped, so every series
keeps one point per histogram bucket.
"""

from dataclasses import dataclass

from aggforge.models.response import Bucket, MetricValue, to_float
from aggforge.models.target import MetricSpec, MetricType

# fixed output order for extended_stats components, unknown flags go last
EXTENDED_STATS_ORDER = (
    "max",
    "std_deviation_bounds_lower",
    "std_deviation_bounds_upper",
    "min",
    "avg",
    "sum",
    "std_deviation",
    "count",
)

_BOUNDS = {
    "std_deviation_bounds_upper": "upper",
    "std_deviation_bounds_lower": "lower",
}


@dataclass(frozen=True)
class MetricComponent:
    """One output series of a metric.

    key is what the namer labels the series with ("count", "p75", "max",
    "std_deviation_bounds_upper", ...). stat is the lookup key inside the
    value object for multi-value metrics.
    """

    metric: MetricSpec
    key: str
    stat: str | None = None
    field: str | None = None


def format_percent(value: object) -> str:
    """75 -> "75", 99.9 -> "99.9", "75" stays "75"."""
    if isinstance(value, str):
        return value
    if isinstance(value, int | float) and not isinstance(value, bool):
        number = float(value)
        return str(int(number)) if number.is_integer() else str(number)
    return str(value)


def _numeric_sort_key(key: str) -> tuple[int, float, str]:
    number = to_float(key)
    return (0, number, key) if number is not None else (1, 0.0, key)


class MetricValueResolver:
    """Type-specific extraction of metric values from buckets."""

    def components(self, metric: MetricSpec, buckets: list[Bucket]) -> list[MetricComponent]:
        if metric.type == MetricType.COUNT:
            return [MetricComponent(metric=metric, key="count")]

        if metric.type == MetricType.PERCENTILES:
            percents = [format_percent(p) for p in metric.settings.get_list("percents")]
            if not percents:
                percents = self._percents_from_response(metric, buckets)
            return [
                MetricComponent(metric=metric, key=f"p{p}", stat=p, field=metric.field)
                for p in percents
            ]

        if metric.type == MetricType.EXTENDED_STATS:
            enabled = [stat for stat, on in metric.meta.root.items() if on is True]
            ordered = [stat for stat in EXTENDED_STATS_ORDER if stat in enabled]
            ordered += sorted(stat for stat in enabled if stat not in EXTENDED_STATS_ORDER)
            return [
                MetricComponent(metric=metric, key=stat, stat=stat, field=metric.field)
                for stat in ordered
            ]

        return [MetricComponent(metric=metric, key=metric.type, field=metric.field)]

    def resolve(self, component: MetricComponent, bucket: Bucket) -> float | None:
        metric = component.metric
        if metric.type == MetricType.COUNT:
            return float(bucket.doc_count) if bucket.doc_count is not None else None

        value = bucket.metric(metric.id)
        if value is None:
            return None

        if metric.type == MetricType.PERCENTILES:
            return self._percentile(value, component.stat or "")
        if metric.type == MetricType.EXTENDED_STATS:
            stat = component.stat or ""
            if stat in _BOUNDS:
                return value.number("std_deviation_bounds", _BOUNDS[stat])
            return value.number(stat)

        # derivative and friends can report a normalized value instead
        if value.get_path("normalized_value") is not None:
            return value.number("normalized_value")
        return value.number("value")

    def _percentile(self, value: MetricValue, percent: str) -> float | None:
        values = value.get_path("values")
        if not isinstance(values, dict):
            return None
        if percent in values:
            return to_float(values[percent])
        # "75" asked for, backend answered "75.0"
        wanted = to_float(percent)
        if wanted is None:
            return None
        for key, number in values.items():
            if to_float(key) == wanted:
                return to_float(number)
        return None

    def _percents_from_response(self, metric: MetricSpec, buckets: list[Bucket]) -> list[str]:
        if not buckets:
            return []
        value = buckets[0].metric(metric.id)
        values = value.get_path("values") if value is not None else None
        if not isinstance(values, dict):
            return []
        return sorted(values.keys(), key=_numeric_sort_key)
