"""Models for AggForge."""

from aggforge.models.document import (
    Aggregation,
    BoolQuery,
    MultiSearchRequest,
    PPLRequest,
    Query,
    QueryStringFilter,
    RangeFilter,
    SearchRequest,
)
from aggforge.models.response import Bucket, BucketList, FilterMap, MetricValue
from aggforge.models.series import FieldSchema, NamedSeries, PPLResponse, QueryResponse, TargetResult
from aggforge.models.target import (
    BucketAggSpec,
    BucketAggType,
    MetricSpec,
    MetricType,
    PipelineVariable,
    QueryTarget,
    SettingsMap,
    TimeRange,
)

__all__ = [
    "Aggregation",
    "BoolQuery",
    "Bucket",
    "BucketAggSpec",
    "BucketAggType",
    "BucketList",
    "FieldSchema",
    "FilterMap",
    "MetricSpec",
    "MetricType",
    "MetricValue",
    "MultiSearchRequest",
    "NamedSeries",
    "PPLRequest",
    "PPLResponse",
    "PipelineVariable",
    "Query",
    "QueryResponse",
    "QueryStringFilter",
    "QueryTarget",
    "RangeFilter",
    "SearchRequest",
    "SettingsMap",
    "TargetResult",
    "TimeRange",
]
