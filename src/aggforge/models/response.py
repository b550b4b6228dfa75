"""Tagged tree for aggregation responses.

the raw response is schema-loose json where the same position can hold a
bucket list, a map of filter buckets or a metric value. the decoder looks at
each node once and wraps it in one of the variants below so the extractor
never has to guess again.
"""

from dataclasses import dataclass, field
from typing import Any, Union


def to_float(value: Any) -> float | None:
    """Coerce a json scalar to float, None for anything that isn't numeric."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


@dataclass(frozen=True)
class MetricValue:
    """A metric's value object, e.g. {"value": 12} or {"values": {"75": 3.3}}."""

    raw: dict[str, Any] = field(default_factory=dict)

    def get_path(self, *keys: str) -> Any:
        node: Any = self.raw
        for key in keys:
            if not isinstance(node, dict):
                return None
            node = node.get(key)
        return node

    def number(self, *keys: str) -> float | None:
        return to_float(self.get_path(*keys))


@dataclass(frozen=True)
class Bucket:
    """One bucket: key, doc count and whatever sub-aggregations it holds."""

    key: Any = None
    key_as_string: str | None = None
    doc_count: int | None = None
    aggs: dict[str, "AggNode"] = field(default_factory=dict)

    def get(self, agg_id: str) -> "AggNode | None":
        return self.aggs.get(agg_id)

    def metric(self, metric_id: str) -> MetricValue | None:
        node = self.aggs.get(metric_id)
        return node if isinstance(node, MetricValue) else None


@dataclass(frozen=True)
class BucketList:
    """Ordered buckets (date_histogram, terms, histogram, ...)."""

    buckets: list[Bucket] = field(default_factory=list)


@dataclass(frozen=True)
class FilterMap:
    """Keyed buckets of a filters aggregation, in response order."""

    buckets: dict[str, Bucket] = field(default_factory=dict)


AggNode = Union[BucketList, FilterMap, MetricValue]


def error_reason(error: dict[str, Any]) -> str:
    """Pull a readable message out of a backend error object."""
    reason = error.get("reason")
    if isinstance(reason, str) and reason:
        return reason
    root_causes = error.get("root_cause")
    if isinstance(root_causes, list):
        for cause in root_causes:
            if isinstance(cause, dict) and isinstance(cause.get("reason"), str):
                return cause["reason"]
    error_type = error.get("type")
    if isinstance(error_type, str) and error_type:
        return error_type
    return "unknown backend error"
