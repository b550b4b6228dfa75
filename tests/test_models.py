"""Tests for pydantic models and the request document."""

import json
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from aggforge.errors import BackendError, SettingsError
from aggforge.models.document import (
    Aggregation,
    BoolQuery,
    MultiSearchRequest,
    PPLRequest,
    QueryStringFilter,
    RangeFilter,
    SearchRequest,
)
from aggforge.models.series import NamedSeries, PPLResponse, QueryResponse, TargetResult
from aggforge.models.target import (
    BucketAggSpec,
    MetricSpec,
    MetricType,
    QueryTarget,
    SettingsMap,
    TimeRange,
)


class TestSettingsMap:
    def test_get_int_coerces_strings(self):
        """Numeric strings are accepted as integers."""
        settings = SettingsMap({"size": "10", "precision": 4.0})
        assert settings.get_int("size") == 10
        assert settings.get_int("precision") == 4

    def test_get_int_default_for_missing_and_empty(self):
        """Missing, null and empty values fall back to the default."""
        settings = SettingsMap({"size": "", "other": None})
        assert settings.get_int("size", 500) == 500
        assert settings.get_int("other", 7) == 7
        assert settings.get_int("nope", 3) == 3

    def test_get_int_rejects_garbage(self):
        """Uncoercible values raise SettingsError."""
        settings = SettingsMap({"size": "ten", "flag": True, "half": "1.5"})
        with pytest.raises(SettingsError, match="size"):
            settings.get_int("size")
        with pytest.raises(SettingsError):
            settings.get_int("flag")
        with pytest.raises(SettingsError):
            settings.get_int("half")

    def test_get_string_renders_numbers(self):
        """Numbers become their plain string form."""
        settings = SettingsMap({"a": 5, "b": 2.0, "c": 0.5, "d": "x"})
        assert settings.get_string("a") == "5"
        assert settings.get_string("b") == "2"
        assert settings.get_string("c") == "0.5"
        assert settings.get_string("d") == "x"

    def test_get_string_rejects_objects(self):
        """Objects can't be read as strings."""
        with pytest.raises(SettingsError):
            SettingsMap({"a": {"b": 1}}).get_string("a")

    def test_get_list_rejects_scalars(self):
        """A scalar where a list is expected is an error."""
        with pytest.raises(SettingsError):
            SettingsMap({"filters": "oops"}).get_list("filters")

    def test_none_is_empty(self):
        """A null settings object behaves like an empty one."""
        metric = MetricSpec.model_validate({"type": "avg", "id": "1", "settings": None})
        assert metric.settings.keys() == []
        assert "anything" not in metric.settings

    def test_non_null_drops_nulls(self):
        """non_null() skips null values and empty keys."""
        settings = SettingsMap({"window": 5, "model": None, "": 1})
        assert settings.non_null() == {"window": 5}


class TestTimeRange:
    def test_epoch_millis(self):
        """Epoch milliseconds (int or string) are accepted."""
        tr = TimeRange.model_validate({"from": 1000, "to": "2000"})
        assert tr.from_ == datetime(1970, 1, 1, 0, 0, 1, tzinfo=timezone.utc)
        assert tr.from_ms == 1000
        assert tr.to_ms == 2000

    def test_naive_iso_is_utc(self):
        """Naive datetimes are taken as utc."""
        tr = TimeRange.model_validate({"from": "2018-05-15T17:50:00", "to": "2018-05-15T17:55:00"})
        assert tr.from_ms == 1526406600000
        assert tr.to_ms == 1526406900000

    def test_rejects_inverted_range(self):
        """'to' before 'from' is a validation error."""
        with pytest.raises(ValidationError):
            TimeRange.model_validate({"from": 2000, "to": 1000})


class TestTargetModels:
    def test_camel_case_aliases(self):
        """Dashboard json uses camelCase keys."""
        target = QueryTarget.model_validate(
            {
                "refId": "B",
                "timeField": "ts",
                "maxDataPoints": 500,
                "metrics": [{"type": "count", "id": 1}],
                "bucketAggs": [{"type": "date_histogram", "field": "ts", "id": 2}],
                "somethingNew": True,
            }
        )
        assert target.ref_id == "B"
        assert target.time_field == "ts"
        assert target.max_data_points == 500
        # numeric ids are normalized to strings
        assert target.metrics[0].id == "1"
        assert target.bucket_aggs[0].id == "2"

    def test_null_lists(self):
        """Null metrics or bucketAggs become empty lists."""
        target = QueryTarget.model_validate({"metrics": None, "bucketAggs": None})
        assert target.metrics == []
        assert target.bucket_aggs == []

    def test_pipeline_variables_from_map(self):
        """Pipeline variables can be given as a name -> id map."""
        metric = MetricSpec.model_validate(
            {"type": "bucket_script", "id": "4", "pipelineVariables": {"var1": "1", "var2": 3}}
        )
        assert [(v.name, v.pipeline_agg) for v in metric.pipeline_variables] == [
            ("var1", "1"),
            ("var2", "3"),
        ]

    def test_pipeline_properties(self):
        """Pipeline metrics expose their source id."""
        derivative = MetricSpec.model_validate({"type": "derivative", "id": "3", "field": "1"})
        script = MetricSpec.model_validate({"type": "bucket_script", "id": "4"})
        avg = MetricSpec.model_validate({"type": "avg", "id": "1", "field": "@value"})

        assert derivative.is_pipeline
        assert derivative.source_id == "1"
        assert not derivative.has_multiple_bucket_paths
        assert script.has_multiple_bucket_paths
        assert not avg.is_pipeline

    def test_lookups(self):
        """Metrics are found by id, bucket aggs by type."""
        target = QueryTarget.model_validate(
            {
                "metrics": [{"type": "avg", "id": "1"}],
                "bucketAggs": [
                    {"type": "terms", "id": "2", "field": "host"},
                    {"type": "date_histogram", "id": "3"},
                ],
            }
        )
        assert target.get_metric("1").type == MetricType.AVG
        assert target.get_metric("9") is None
        assert target.find_bucket_agg("date_histogram").id == "3"

    def test_filter_labels(self):
        """Filter labels fall back to the query text."""
        agg = BucketAggSpec.model_validate(
            {
                "type": "filters",
                "id": "2",
                "settings": {"filters": [{"query": "a:1", "label": "first"}, {"query": "b:2"}]},
            }
        )
        assert agg.filter_labels() == ["first", "b:2"]

    def test_target_is_frozen(self):
        """Targets are immutable once built."""
        target = QueryTarget()
        with pytest.raises(ValidationError):
            target.alias = "x"


class TestDocument:
    def test_single_filter_is_bare_object(self):
        """One bool filter serializes as an object, not a list."""
        query = BoolQuery(filters=[QueryStringFilter(query="a:1")])
        assert query.to_dict() == {
            "filter": {"query_string": {"analyze_wildcard": True, "query": "a:1"}}
        }

    def test_multiple_filters_are_list(self):
        """Two or more filters serialize as a list."""
        query = BoolQuery(
            filters=[
                RangeFilter(key="ts", gte="1", lte="2"),
                QueryStringFilter(query="a:1"),
            ]
        )
        result = query.to_dict()
        assert isinstance(result["filter"], list)
        assert result["filter"][0] == {
            "range": {"ts": {"gte": "1", "lte": "2", "format": "epoch_millis"}}
        }

    def test_duplicate_agg_key_last_wins(self):
        """A repeated aggregation id overwrites the earlier one."""
        request = SearchRequest(index="_all")
        request.aggs.append(Aggregation(key="1", type="avg", body={"field": "a"}))
        request.aggs.append(Aggregation(key="1", type="max", body={"field": "b"}))
        assert request.to_dict()["aggs"] == {"1": {"max": {"field": "b"}}}

    def test_nested_aggs(self):
        """Child aggregations serialize under 'aggs'."""
        parent = Aggregation(key="2", type="terms", body={"field": "host"})
        parent.add(Aggregation(key="1", type="avg", body={"field": "v"}))
        assert parent.to_dict() == {
            "terms": {"field": "host"},
            "aggs": {"1": {"avg": {"field": "v"}}},
        }

    def test_encode_ndjson(self):
        """Encoding writes a header and body line per request and fills in intervals."""
        request = SearchRequest(index="logs-*", interval_text="30s", interval_ms=30000)
        request.aggs.append(
            Aggregation(
                key="2",
                type="date_histogram",
                body={"interval": "$__interval", "script": "$__interval_ms"},
            )
        )
        body = MultiSearchRequest(requests=[request, request]).encode()

        lines = body.split("\n")
        assert body.endswith("\n")
        assert len(lines) == 5  # 2 x (header, body) + trailing empty
        header = json.loads(lines[0])
        assert header == {
            "search_type": "query_then_fetch",
            "ignore_unavailable": True,
            "index": "logs-*",
        }
        doc = json.loads(lines[1])
        assert doc["aggs"]["2"]["date_histogram"] == {"interval": "30s", "script": "30000"}

    def test_ppl_request(self):
        """A PPL request is a single query object."""
        request = PPLRequest(query="source=logs | stats count() by host")
        assert request.to_dict() == {"query": "source=logs | stats count() by host"}
        assert json.loads(request.encode()) == request.to_dict()


class TestSeriesModels:
    def test_lengths_must_match(self):
        """Timestamps and values must line up."""
        with pytest.raises(ValidationError):
            NamedSeries(name="x", timestamps=[None], values=[])

    def test_points(self):
        """points() pairs timestamps with values."""
        ts = datetime(1970, 1, 1, 0, 0, 1, tzinfo=timezone.utc)
        series = NamedSeries(name="Count", timestamps=[ts], values=[10.0])
        assert len(series) == 1
        assert series.points() == [(ts, 10.0)]

    def test_raise_for_error(self):
        """A failed target raises BackendError on demand."""
        result = TargetResult(ref_id="A", error="index not found", error_details={"type": "x"})
        assert not result.ok
        with pytest.raises(BackendError, match="index not found"):
            result.raise_for_error()

    def test_response_errors(self):
        """QueryResponse lists per-target errors."""
        response = QueryResponse(
            results={
                "A": TargetResult(ref_id="A"),
                "B": TargetResult(ref_id="B", error="boom"),
            }
        )
        assert response["A"].ok
        assert response.errors == {"B": "boom"}


class TestPPLResponse:
    def test_rows_follow_schema(self):
        """Datarows are keyed by the schema's column names."""
        response = PPLResponse.model_validate(
            {
                "schema": [{"name": "host", "type": "string"}, {"name": "count()", "type": "integer"}],
                "datarows": [["server1", 10], ["server2", 4]],
                "total": 2,
                "size": 2,
                "status": 200,
            }
        )
        assert response.ok
        assert [c.name for c in response.columns] == ["host", "count()"]
        assert response.rows() == [
            {"host": "server1", "count()": 10},
            {"host": "server2", "count()": 4},
        ]

    def test_error(self):
        """An error object makes the response fail on demand."""
        response = PPLResponse.model_validate(
            {
                "error": {"reason": "Invalid Query", "details": "unknown field", "type": "SemanticCheckException"},
                "status": 400,
            }
        )
        assert not response.ok
        assert response.rows() == []
        with pytest.raises(BackendError, match="Invalid Query"):
            response.raise_for_error("A")
