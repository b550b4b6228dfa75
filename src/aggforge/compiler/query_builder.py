"""Aggregation query compiler.

turns dashboard query targets into a multi-search request. the flow per
target is fairly linear:
  1. check the preconditions (known types, usable ids, a time range)
  2. build the bool filter (time range + optional query string)
  3. nest the bucket aggregations, each one inside the previous
  4. hang every metric off the deepest level

any target failing aborts the whole batch - a partially built multi-search
request isn't something we'd ever want to send.
"""

import logging

from aggforge.compiler.interval import Interval, IntervalCalculator
from aggforge.config import Settings, get_settings
from aggforge.errors import CompileError, SettingsError
from aggforge.models.document import (
    DATE_FORMAT_EPOCH_MS,
    INTERVAL_PLACEHOLDER,
    Aggregation,
    MultiSearchRequest,
    PPLRequest,
    QueryStringFilter,
    RangeFilter,
    SearchRequest,
)
from aggforge.models.target import (
    RAW_TYPES,
    BucketAggSpec,
    BucketAggType,
    MetricSpec,
    MetricType,
    QueryTarget,
    TimeRange,
)

logger = logging.getLogger(__name__)

_METRIC_TYPES = {t.value for t in MetricType}
_BUCKET_AGG_TYPES = {t.value for t in BucketAggType}


class QueryCompiler:
    """Compiles query targets into a MultiSearchRequest.

    stateless - settings and the interval calculator are read-only, so one
    instance can be shared between batches.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        interval_calculator: IntervalCalculator | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.intervals = interval_calculator or IntervalCalculator(
            min_interval=self.settings.min_interval,
            max_data_points=self.settings.max_data_points,
        )

    def compile(self, targets: list[QueryTarget]) -> MultiSearchRequest:
        """Build one search request per target, in submission order."""
        requests = []
        for target in targets:
            try:
                requests.append(self.compile_target(target))
            except CompileError:
                raise
            except ValueError as e:
                # SettingsError and bad interval strings both land here
                raise CompileError(target.ref_id, str(e)) from e
        logger.debug("Compiled %d targets", len(requests))
        return MultiSearchRequest(requests=requests)

    def compile_target(self, target: QueryTarget) -> SearchRequest:
        time_range = self._check_target(target)
        time_field = target.time_field or self.settings.time_field

        interval = self._interval(target, time_range)
        request = SearchRequest(
            index=self.settings.index,
            interval_text=interval.text,
            interval_ms=interval.ms,
            size=0,
        )

        filters = request.query.bool.filters
        filters.append(
            RangeFilter(
                key=time_field,
                gte=str(time_range.from_ms),
                lte=str(time_range.to_ms),
                format=DATE_FORMAT_EPOCH_MS,
            )
        )
        if target.query:
            filters.append(QueryStringFilter(query=target.query, analyze_wildcard=True))

        if not target.bucket_aggs and target.metrics and target.metrics[0].type in RAW_TYPES:
            self._build_raw_document_query(request, target.metrics[0], time_field)
            return request

        # each bucket agg nests inside the previous one - a chain, not a tree
        container = request.aggs
        for bucket_agg in target.bucket_aggs:
            agg = self._build_bucket_agg(bucket_agg, target, time_range)
            if agg is None:
                continue
            container.append(agg)
            container = agg.aggs

        for metric in target.metrics:
            agg = self._build_metric_agg(metric, target)
            if agg is not None:
                container.append(agg)

        logger.debug(
            "Target %s: %d bucket aggs, %d metrics, interval %s",
            target.ref_id,
            len(target.bucket_aggs),
            len(target.metrics),
            interval.text,
        )
        return request

    def compile_ppl(self, target: QueryTarget) -> PPLRequest:
        """PPL targets carry the whole pipeline in their query text."""
        query = (target.query or "").strip()
        if not query:
            raise CompileError(target.ref_id, "PPL query is empty")
        return PPLRequest(query=query)

    def _check_target(self, target: QueryTarget) -> TimeRange:
        """Validate the preconditions the response join relies on, returns the time range.

        aggregation ids come back verbatim as response keys, so empty or
        duplicate ids would make the response ambiguous.
        """
        ref_id = target.ref_id
        if target.time_range is None:
            raise CompileError(ref_id, "missing time range")

        seen: set[str] = set()
        for bucket_agg in target.bucket_aggs:
            if bucket_agg.type not in _BUCKET_AGG_TYPES:
                raise CompileError(ref_id, f"unknown bucket aggregation type '{bucket_agg.type}'")
            if not bucket_agg.id:
                raise CompileError(ref_id, f"{bucket_agg.type} aggregation has no id")
            if bucket_agg.id in seen:
                raise CompileError(ref_id, f"duplicate aggregation id '{bucket_agg.id}'")
            seen.add(bucket_agg.id)

        for metric in target.metrics:
            if metric.type not in _METRIC_TYPES:
                raise CompileError(ref_id, f"unknown metric type '{metric.type}'")
            # count reads doc_count and never shows up as an aggregation
            if metric.type == MetricType.COUNT:
                continue
            if not metric.id:
                raise CompileError(ref_id, f"{metric.type} metric has no id")
            if metric.id in seen:
                raise CompileError(ref_id, f"duplicate aggregation id '{metric.id}'")
            seen.add(metric.id)
        return target.time_range

    def _interval(self, target: QueryTarget, time_range: TimeRange) -> Interval:
        return self.intervals.calculate(
            time_range,
            min_interval=target.interval,
            max_data_points=target.max_data_points,
        )

    def _build_raw_document_query(
        self, request: SearchRequest, metric: MetricSpec, time_field: str
    ) -> None:
        request.size = metric.settings.get_int("size", self.settings.default_raw_size)
        request.sort = {time_field: {"order": "desc", "unmapped_type": "boolean"}}
        request.custom_props["docvalue_fields"] = [time_field]

    def _build_bucket_agg(
        self, bucket_agg: BucketAggSpec, target: QueryTarget, time_range: TimeRange
    ) -> Aggregation | None:
        if bucket_agg.type == BucketAggType.DATE_HISTOGRAM:
            return self._date_histogram(bucket_agg, target, time_range)
        elif bucket_agg.type == BucketAggType.HISTOGRAM:
            return self._histogram(bucket_agg)
        elif bucket_agg.type == BucketAggType.TERMS:
            return self._terms(bucket_agg, target)
        elif bucket_agg.type == BucketAggType.FILTERS:
            return self._filters(bucket_agg)
        elif bucket_agg.type == BucketAggType.GEOHASH_GRID:
            return self._geohash_grid(bucket_agg)
        raise CompileError(target.ref_id, f"unknown bucket aggregation type '{bucket_agg.type}'")

    def _date_histogram(
        self, bucket_agg: BucketAggSpec, target: QueryTarget, time_range: TimeRange
    ) -> Aggregation:
        settings = bucket_agg.settings

        # trimEdges only matters when parsing, but a bad value should fail here
        settings.get_int("trimEdges", 0)

        interval = settings.get_string("interval", "auto")
        if interval == "auto":
            interval = INTERVAL_PLACEHOLDER

        body = {
            "field": bucket_agg.field or target.time_field or self.settings.time_field,
            "interval": interval,
            "min_doc_count": settings.get_int("min_doc_count", 0),
            "extended_bounds": {"min": str(time_range.from_ms), "max": str(time_range.to_ms)},
            "format": settings.get_string("format", DATE_FORMAT_EPOCH_MS),
        }
        if "offset" in settings:
            body["offset"] = settings.get_string("offset")
        if "missing" in settings:
            body["missing"] = settings.get_string("missing")
        return Aggregation(key=bucket_agg.id, type=bucket_agg.type, body=body)

    def _histogram(self, bucket_agg: BucketAggSpec) -> Aggregation:
        settings = bucket_agg.settings
        body = {
            "field": bucket_agg.field,
            "interval": settings.get_int("interval", 1000),
            "min_doc_count": settings.get_int("min_doc_count", 0),
        }
        if "missing" in settings:
            body["missing"] = settings.get_int("missing")
        return Aggregation(key=bucket_agg.id, type=bucket_agg.type, body=body)

    def _terms(self, bucket_agg: BucketAggSpec, target: QueryTarget) -> Aggregation:
        settings = bucket_agg.settings
        size = settings.get_int("size", self.settings.default_terms_size)
        if not size:
            size = self.settings.default_terms_size

        body: dict = {"field": bucket_agg.field, "size": size}
        if "min_doc_count" in settings:
            body["min_doc_count"] = settings.get_int("min_doc_count")
        if "missing" in settings:
            body["missing"] = settings.get_string("missing")

        agg = Aggregation(key=bucket_agg.id, type=bucket_agg.type, body=body)

        order_by = settings.get_string("orderBy")
        if order_by:
            body["order"] = {order_by: settings.get_string("order", "desc")}
            # ordering by a metric needs that metric inside the terms agg
            metric = target.get_metric(order_by)
            if metric is not None and metric.type != MetricType.COUNT:
                order_agg = self._build_metric_agg(metric, target)
                if order_agg is not None:
                    agg.add(order_agg)
        return agg

    def _filters(self, bucket_agg: BucketAggSpec) -> Aggregation | None:
        filters = {}
        for item in bucket_agg.settings.get_list("filters"):
            if not isinstance(item, dict):
                raise SettingsError("filters", item, "object with a query")
            query = item.get("query") or ""
            label = item.get("label") or query
            filters[label] = QueryStringFilter(query=query, analyze_wildcard=True).to_dict()

        if not filters:
            logger.debug("Filters aggregation %s has no filters, skipping", bucket_agg.id)
            return None
        return Aggregation(key=bucket_agg.id, type=bucket_agg.type, body={"filters": filters})

    def _geohash_grid(self, bucket_agg: BucketAggSpec) -> Aggregation:
        body = {
            "field": bucket_agg.field,
            "precision": bucket_agg.settings.get_int("precision", 3),
        }
        return Aggregation(key=bucket_agg.id, type=bucket_agg.type, body=body)

    def _build_metric_agg(self, metric: MetricSpec, target: QueryTarget) -> Aggregation | None:
        """Build the aggregation for a metric, None when it has nothing to send."""
        if metric.type == MetricType.COUNT or metric.type in RAW_TYPES:
            return None

        if metric.is_pipeline:
            return self._pipeline_agg(metric, target)

        body = {}
        if metric.field:
            body["field"] = metric.field
        body.update(metric.settings.non_null())
        return Aggregation(key=metric.id, type=metric.type, body=body)

    def _pipeline_agg(self, metric: MetricSpec, target: QueryTarget) -> Aggregation | None:
        if metric.has_multiple_bucket_paths:
            buckets_path = {}
            for variable in metric.pipeline_variables:
                source = target.get_metric(variable.pipeline_agg)
                if source is None:
                    logger.warning(
                        "Target %s: %s variable '%s' references unknown metric '%s'",
                        target.ref_id,
                        metric.type,
                        variable.name,
                        variable.pipeline_agg,
                    )
                    continue
                buckets_path[variable.name] = self._bucket_path(source)
            if not buckets_path:
                logger.warning(
                    "Target %s: %s %s has no usable pipeline variables, skipping",
                    target.ref_id,
                    metric.type,
                    metric.id,
                )
                return None
        else:
            source = target.get_metric(metric.source_id) if metric.source_id else None
            if source is None:
                logger.warning(
                    "Target %s: %s %s references unknown metric '%s', skipping",
                    target.ref_id,
                    metric.type,
                    metric.id,
                    metric.source_id,
                )
                return None
            buckets_path = self._bucket_path(source)

        body = {"buckets_path": buckets_path}
        body.update(metric.settings.non_null())
        return Aggregation(key=metric.id, type=metric.type, body=body)

    @staticmethod
    def _bucket_path(source: MetricSpec) -> str:
        # count has no aggregation of its own, the backend calls it _count
        return "_count" if source.type == MetricType.COUNT else source.id
