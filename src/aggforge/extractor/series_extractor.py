"""Series extraction - walks the bucket tree and regroups it into series.

the walk follows the bucket aggregation chain of the target, depth first:
every level above the date histogram contributes one group key, and the
histogram level itself emits one point per bucket for every metric
component. points that share a group key path and a metric component end up
in the same series, in the order they were walked.

only chains ending in a date_histogram turn into time series. anything else
would need tabular output which we don't do.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from aggforge.extractor.naming import SeriesContext, SeriesNamer
from aggforge.extractor.values import MetricValueResolver
from aggforge.models.response import AggNode, Bucket, BucketList, FilterMap
from aggforge.models.series import NamedSeries
from aggforge.models.target import RAW_TYPES, BucketAggSpec, BucketAggType, QueryTarget

logger = logging.getLogger(__name__)

FILTER_TAG = "filter"


def format_key(key: Any) -> str:
    """Render a bucket key as a group label - 0 stays "0", 2.0 becomes "2"."""
    if key is None:
        return ""
    if isinstance(key, bool):
        return str(key).lower()
    if isinstance(key, float) and key.is_integer():
        return str(int(key))
    return str(key)


def key_to_timestamp(key: Any) -> datetime | None:
    """Epoch-millisecond bucket key to a utc datetime, truncated to seconds."""
    if key is None or isinstance(key, bool):
        return None
    if isinstance(key, str):
        try:
            key = float(key)
        except ValueError:
            return None
    if not isinstance(key, int | float):
        return None
    return datetime.fromtimestamp(int(key) // 1000, tz=timezone.utc)


@dataclass
class _SeriesPoints:
    context: SeriesContext
    timestamps: list[datetime | None] = field(default_factory=list)
    values: list[float | None] = field(default_factory=list)


class SeriesExtractor:
    """Turns one target's response tree into named series."""

    def __init__(self, resolver: MetricValueResolver | None = None) -> None:
        self.resolver = resolver or MetricValueResolver()

    def extract(self, target: QueryTarget, root: Bucket) -> list[NamedSeries]:
        chain = target.bucket_aggs
        if not chain or chain[-1].type != BucketAggType.DATE_HISTOGRAM:
            logger.warning(
                "Target %s: no date_histogram at the end of the bucket chain, "
                "tabular results are not supported",
                target.ref_id,
            )
            return []

        collected: dict[tuple, _SeriesPoints] = {}
        self._walk(target, root, 0, (), collected)
        self._trim_edges(target, collected)

        # how many distinct metric components the target emits decides
        # whether grouped names get the metric label appended
        metric_count = len({(index, component) for _, index, component in collected})

        namer = SeriesNamer(target)
        return [
            NamedSeries(
                name=namer.name(points.context, metric_count),
                timestamps=list(points.timestamps),
                values=list(points.values),
                tags=points.context.tags,
            )
            for points in collected.values()
        ]

    def _walk(
        self,
        target: QueryTarget,
        node: Bucket,
        depth: int,
        group: tuple[tuple[str, str], ...],
        collected: dict[tuple, _SeriesPoints],
    ) -> None:
        bucket_agg = target.bucket_aggs[depth]
        child = node.get(bucket_agg.id)
        if child is None:
            logger.debug("Target %s: aggregation %s missing from response", target.ref_id, bucket_agg.id)
            return

        if depth == len(target.bucket_aggs) - 1:
            if isinstance(child, BucketList):
                self._emit(target, child.buckets, group, collected)
            return

        tag = FILTER_TAG if bucket_agg.type == BucketAggType.FILTERS else (bucket_agg.field or bucket_agg.id)
        for key, bucket in self._children(bucket_agg, child):
            self._walk(target, bucket, depth + 1, group + ((tag, key),), collected)

    def _children(self, bucket_agg: BucketAggSpec, node: AggNode) -> list[tuple[str, Bucket]]:
        if isinstance(node, BucketList):
            return [(format_key(bucket.key), bucket) for bucket in node.buckets]
        if isinstance(node, FilterMap):
            # the backend returns filters as an unordered map, declaration order wins
            ordered = [(label, node.buckets[label]) for label in bucket_agg.filter_labels() if label in node.buckets]
            declared = {label for label, _ in ordered}
            ordered.extend((label, b) for label, b in node.buckets.items() if label not in declared)
            return ordered
        return []

    def _emit(
        self,
        target: QueryTarget,
        buckets: list[Bucket],
        group: tuple[tuple[str, str], ...],
        collected: dict[tuple, _SeriesPoints],
    ) -> None:
        for index, metric in enumerate(target.metrics):
            if metric.hide or metric.type in RAW_TYPES:
                continue
            for component in self.resolver.components(metric, buckets):
                key = (group, index, component.key)
                points = collected.get(key)
                if points is None:
                    points = collected[key] = _SeriesPoints(
                        context=SeriesContext(component=component, group=group)
                    )
                for bucket in buckets:
                    points.timestamps.append(key_to_timestamp(bucket.key))
                    points.values.append(self.resolver.resolve(component, bucket))

    def _trim_edges(self, target: QueryTarget, collected: dict[tuple, _SeriesPoints]) -> None:
        histogram = target.find_bucket_agg(BucketAggType.DATE_HISTOGRAM)
        if histogram is None:
            return
        trim = histogram.settings.get_int("trimEdges", 0) or 0
        if trim <= 0:
            return
        for points in collected.values():
            # too short to trim both ends - leave it alone
            if len(points.values) > trim * 2:
                points.timestamps = points.timestamps[trim:-trim]
                points.values = points.values[trim:-trim]
