"""Pydantic models for query targets.

a target is one panel query as the dashboard authors it: a time field, a list
of metrics and an ordered chain of bucket aggregations. the json coming from
the dashboard is camelCase, so every multi-word field carries an alias.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, RootModel, field_validator, model_validator

from aggforge.errors import SettingsError


class MetricType(str, Enum):
    """Metric aggregation types understood by the compiler."""

    COUNT = "count"
    AVG = "avg"
    SUM = "sum"
    MAX = "max"
    MIN = "min"
    EXTENDED_STATS = "extended_stats"
    PERCENTILES = "percentiles"
    CARDINALITY = "cardinality"
    RAW_DOCUMENT = "raw_document"
    RAW_DATA = "raw_data"
    # pipeline aggregations - computed from sibling metrics, not documents
    MOVING_AVG = "moving_avg"
    MOVING_FN = "moving_fn"
    DERIVATIVE = "derivative"
    CUMULATIVE_SUM = "cumulative_sum"
    SERIAL_DIFF = "serial_diff"
    BUCKET_SCRIPT = "bucket_script"


class BucketAggType(str, Enum):
    """Bucket aggregation types understood by the compiler."""

    DATE_HISTOGRAM = "date_histogram"
    HISTOGRAM = "histogram"
    TERMS = "terms"
    FILTERS = "filters"
    GEOHASH_GRID = "geohash_grid"


PIPELINE_TYPES = frozenset(
    {
        MetricType.MOVING_AVG.value,
        MetricType.MOVING_FN.value,
        MetricType.DERIVATIVE.value,
        MetricType.CUMULATIVE_SUM.value,
        MetricType.SERIAL_DIFF.value,
        MetricType.BUCKET_SCRIPT.value,
    }
)
# bucket_script is the only one that takes a map of bucket paths
MULTI_PATH_PIPELINE_TYPES = frozenset({MetricType.BUCKET_SCRIPT.value})
RAW_TYPES = frozenset({MetricType.RAW_DOCUMENT.value, MetricType.RAW_DATA.value})


class SettingsMap(RootModel[dict[str, Any]]):
    """Free-form settings attached to a metric or bucket aggregation.

    the dashboard stores numbers as strings half the time ("size": "10"),
    so the typed getters coerce where it's unambiguous and raise
    SettingsError otherwise.
    """

    root: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _none_is_empty(cls, data: Any) -> Any:
        return {} if data is None else data

    def __contains__(self, key: str) -> bool:
        return self.root.get(key) is not None

    def get(self, key: str, default: Any = None) -> Any:
        value = self.root.get(key)
        return default if value is None else value

    def get_string(self, key: str, default: str | None = None) -> str | None:
        value = self.root.get(key)
        if value is None:
            return default
        if isinstance(value, str):
            return value
        if isinstance(value, bool):
            raise SettingsError(key, value, "string")
        if isinstance(value, int):
            return str(value)
        if isinstance(value, float):
            return str(int(value)) if value.is_integer() else str(value)
        raise SettingsError(key, value, "string")

    def get_int(self, key: str, default: int | None = None) -> int | None:
        value = self.root.get(key)
        if value is None or value == "":
            return default
        if isinstance(value, bool):
            raise SettingsError(key, value, "integer")
        if isinstance(value, int):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        if isinstance(value, str):
            try:
                number = float(value.strip())
            except ValueError:
                raise SettingsError(key, value, "integer") from None
            if number.is_integer():
                return int(number)
        raise SettingsError(key, value, "integer")

    def get_list(self, key: str, default: list[Any] | None = None) -> list[Any]:
        value = self.root.get(key)
        if value is None:
            return list(default or [])
        if not isinstance(value, list):
            raise SettingsError(key, value, "list")
        return list(value)

    def keys(self) -> list[str]:
        return list(self.root.keys())

    def non_null(self) -> dict[str, Any]:
        """Copy of the settings without empty keys or null values."""
        return {k: v for k, v in self.root.items() if k and v is not None}


def _epoch_ms_to_datetime(value: int | float) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


class TimeRange(BaseModel):
    """Inclusive time window of a target.

    accepts iso strings, datetimes or epoch milliseconds (which is what the
    dashboard actually sends). naive datetimes are assumed to be utc.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    from_: datetime = Field(alias="from")
    to: datetime

    @field_validator("from_", "to", mode="before")
    @classmethod
    def _parse_epoch_ms(cls, value: Any) -> Any:
        if isinstance(value, bool):
            return value
        if isinstance(value, int | float):
            return _epoch_ms_to_datetime(value)
        if isinstance(value, str) and value.strip().isdigit():
            return _epoch_ms_to_datetime(int(value.strip()))
        return value

    @field_validator("from_", "to")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @model_validator(mode="after")
    def _check_order(self) -> "TimeRange":
        if self.to < self.from_:
            raise ValueError("time range 'to' is before 'from'")
        return self

    @property
    def from_ms(self) -> int:
        return int(self.from_.timestamp() * 1000)

    @property
    def to_ms(self) -> int:
        return int(self.to.timestamp() * 1000)


def _id_to_str(value: Any) -> Any:
    # ids are strings on the wire but older dashboards saved them as numbers
    if value is None:
        return ""
    if isinstance(value, int | float) and not isinstance(value, bool):
        return str(int(value)) if float(value).is_integer() else str(value)
    return value


class PipelineVariable(BaseModel):
    """A named reference from a bucket_script to another metric."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str
    pipeline_agg: str = Field(alias="pipelineAgg")

    @field_validator("pipeline_agg", mode="before")
    @classmethod
    def _agg_id(cls, value: Any) -> Any:
        return _id_to_str(value)


class MetricSpec(BaseModel):
    """One metric of a target (count, avg, percentiles, bucket_script, ...)."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    id: str = ""
    type: str
    field: str | None = None
    hide: bool = False
    settings: SettingsMap = Field(default_factory=SettingsMap)
    meta: SettingsMap = Field(default_factory=SettingsMap)
    pipeline_variables: list[PipelineVariable] = Field(
        default_factory=list, alias="pipelineVariables"
    )
    pipeline_agg: str | None = Field(default=None, alias="pipelineAgg")

    @field_validator("id", "pipeline_agg", mode="before")
    @classmethod
    def _ids(cls, value: Any) -> Any:
        return _id_to_str(value)

    @field_validator("pipeline_variables", mode="before")
    @classmethod
    def _variables_from_map(cls, value: Any) -> Any:
        # some saved dashboards store {"var1": "1"} instead of a list
        if value is None:
            return []
        if isinstance(value, dict):
            return [{"name": k, "pipelineAgg": v} for k, v in value.items()]
        return value

    @property
    def is_pipeline(self) -> bool:
        return self.type in PIPELINE_TYPES

    @property
    def has_multiple_bucket_paths(self) -> bool:
        return self.type in MULTI_PATH_PIPELINE_TYPES

    @property
    def source_id(self) -> str | None:
        """Id of the metric a single-path pipeline aggregation reads from."""
        return self.pipeline_agg or self.field


class BucketAggSpec(BaseModel):
    """One level of the bucket aggregation chain."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    id: str = ""
    type: str
    field: str | None = None
    settings: SettingsMap = Field(default_factory=SettingsMap)

    @field_validator("id", mode="before")
    @classmethod
    def _ids(cls, value: Any) -> Any:
        return _id_to_str(value)

    def filter_labels(self) -> list[str]:
        """Labels of a filters aggregation, in declaration order."""
        labels = []
        for item in self.settings.get_list("filters"):
            if not isinstance(item, dict):
                continue
            query = item.get("query") or ""
            labels.append(item.get("label") or query)
        return labels


class QueryTarget(BaseModel):
    """A single query as authored in the dashboard.

    immutable once built - the compiler and the extractor both read it and
    rely on the ids lining up between the request and the response.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    ref_id: str = Field(default="A", alias="refId")
    time_field: str | None = Field(default=None, alias="timeField")
    time_range: TimeRange | None = Field(default=None, alias="timeRange")
    metrics: list[MetricSpec] = Field(default_factory=list)
    bucket_aggs: list[BucketAggSpec] = Field(default_factory=list, alias="bucketAggs")
    alias: str | None = None
    query: str | None = None
    interval: str | None = None  # minimum interval, e.g. "10s" or ">1m"
    max_data_points: int | None = Field(default=None, alias="maxDataPoints")

    @field_validator("metrics", "bucket_aggs", mode="before")
    @classmethod
    def _null_list(cls, value: Any) -> Any:
        return [] if value is None else value

    def get_metric(self, metric_id: str) -> MetricSpec | None:
        """Get a metric by id."""
        for metric in self.metrics:
            if metric.id == metric_id:
                return metric
        return None

    def find_bucket_agg(self, agg_type: str) -> BucketAggSpec | None:
        """First bucket aggregation of the given type, if any."""
        for agg in self.bucket_aggs:
            if agg.type == agg_type:
                return agg
        return None
