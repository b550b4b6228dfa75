"""Pytest fixtures for AggForge tests."""

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from aggforge.compiler.query_builder import QueryCompiler
from aggforge.config import Settings
from aggforge.decoder.response_decoder import ResponseDecoder
from aggforge.extractor.series_extractor import SeriesExtractor
from aggforge.models.target import QueryTarget, TimeRange
from aggforge.store import QueryEngine

# 2018-05-15 17:50 - 17:55 utc
FROM_MS = 1526406600000
TO_MS = 1526406900000


@pytest.fixture
def settings() -> Settings:
    """Settings with the stock defaults, independent of the environment."""
    return Settings(
        index="_all",
        time_field="@timestamp",
        min_interval="10s",
        max_data_points=1000,
        default_terms_size=500,
        default_raw_size=500,
        log_level="INFO",
    )


@pytest.fixture
def time_range() -> TimeRange:
    return TimeRange.model_validate({"from": FROM_MS, "to": TO_MS})


@pytest.fixture
def make_target(time_range: TimeRange) -> Callable[..., QueryTarget]:
    """Build a target from dashboard-style json, with the shared time range."""

    def _make(data: dict[str, Any] | str, ref_id: str = "A") -> QueryTarget:
        if isinstance(data, str):
            data = json.loads(data)
        data = {"refId": ref_id, "timeRange": time_range, **data}
        return QueryTarget.model_validate(data)

    return _make


@pytest.fixture
def compiler(settings: Settings) -> QueryCompiler:
    return QueryCompiler(settings)


@pytest.fixture
def decoder() -> ResponseDecoder:
    return ResponseDecoder()


@pytest.fixture
def extractor() -> SeriesExtractor:
    return SeriesExtractor()


@pytest.fixture
def engine(settings: Settings) -> QueryEngine:
    return QueryEngine(settings)


@pytest.fixture
def count_target_json() -> dict[str, Any]:
    return {
        "timeField": "@timestamp",
        "metrics": [{"type": "count", "id": "1"}],
        "bucketAggs": [{"type": "date_histogram", "field": "@timestamp", "id": "2"}],
    }


@pytest.fixture
def count_response_json() -> dict[str, Any]:
    return {
        "responses": [
            {
                "aggregations": {
                    "2": {
                        "buckets": [
                            {"doc_count": 10, "key": 1000},
                            {"doc_count": 15, "key": 2000},
                        ]
                    }
                }
            }
        ]
    }


@pytest.fixture
def grouped_target_json() -> dict[str, Any]:
    return {
        "timeField": "@timestamp",
        "metrics": [
            {"type": "count", "id": "1"},
            {"type": "avg", "field": "@value", "id": "4"},
        ],
        "bucketAggs": [
            {"type": "terms", "field": "host", "id": "2"},
            {"type": "date_histogram", "field": "@timestamp", "id": "3"},
        ],
    }


@pytest.fixture
def grouped_response_json() -> dict[str, Any]:
    return {
        "responses": [
            {
                "aggregations": {
                    "2": {
                        "buckets": [
                            {
                                "3": {
                                    "buckets": [
                                        {"4": {"value": 10}, "doc_count": 1, "key": 1000},
                                        {"4": {"value": 12}, "doc_count": 3, "key": 2000},
                                    ]
                                },
                                "doc_count": 4,
                                "key": "server1",
                            },
                            {
                                "3": {
                                    "buckets": [
                                        {"4": {"value": 20}, "doc_count": 1, "key": 1000},
                                        {"4": {"value": 32}, "doc_count": 3, "key": 2000},
                                    ]
                                },
                                "doc_count": 10,
                                "key": "server2",
                            },
                        ]
                    }
                }
            }
        ]
    }


@pytest.fixture
def targets_file(tmp_path: Path) -> Path:
    """A yaml targets file with a shared time range."""
    path = tmp_path / "targets.yaml"
    path.write_text(
        f"""
from: {FROM_MS}
to: {TO_MS}
targets:
  - refId: A
    timeField: "@timestamp"
    metrics:
      - {{type: count, id: "1"}}
      - {{type: avg, field: "@value", id: "4"}}
    bucketAggs:
      - {{type: terms, field: host, id: "2"}}
      - {{type: date_histogram, field: "@timestamp", id: "3"}}
"""
    )
    return path


@pytest.fixture
def response_file(tmp_path: Path, grouped_response_json: dict[str, Any]) -> Path:
    path = tmp_path / "response.json"
    path.write_text(json.dumps(grouped_response_json))
    return path
