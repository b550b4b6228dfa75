"""In-memory model of the search request we send.

plain dataclasses with a to_dict() each. the backend is fussy about shapes
in a few places (a single bool filter must be a bare object, not a one item
list) so serialization lives next to the data rather than in the compiler.
"""

import json
from dataclasses import dataclass, field
from typing import Any

DATE_FORMAT_EPOCH_MS = "epoch_millis"

# placeholders substituted when the request is encoded
INTERVAL_PLACEHOLDER = "$__interval"
INTERVAL_MS_PLACEHOLDER = "$__interval_ms"


@dataclass
class QueryStringFilter:
    query: str
    analyze_wildcard: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {"query_string": {"analyze_wildcard": self.analyze_wildcard, "query": self.query}}


@dataclass
class RangeFilter:
    """Inclusive range filter, bounds as epoch-millisecond strings."""

    key: str
    gte: str
    lte: str
    format: str | None = DATE_FORMAT_EPOCH_MS

    def to_dict(self) -> dict[str, Any]:
        bounds: dict[str, Any] = {"gte": self.gte, "lte": self.lte}
        if self.format:
            bounds["format"] = self.format
        return {"range": {self.key: bounds}}


Filter = QueryStringFilter | RangeFilter


@dataclass
class BoolQuery:
    filters: list[Filter] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        # one filter goes out as a bare object, two or more as a list
        if not self.filters:
            return {}
        if len(self.filters) == 1:
            return {"filter": self.filters[0].to_dict()}
        return {"filter": [f.to_dict() for f in self.filters]}


@dataclass
class Query:
    bool: BoolQuery = field(default_factory=BoolQuery)

    def to_dict(self) -> dict[str, Any]:
        return {"bool": self.bool.to_dict()}


@dataclass
class Aggregation:
    """A named aggregation, optionally with nested sub-aggregations.

    key is the aggregation id. the backend echoes it back verbatim in the
    response, which is how the extractor finds its way down the tree.
    """

    key: str
    type: str
    body: dict[str, Any] = field(default_factory=dict)
    aggs: list["Aggregation"] = field(default_factory=list)

    def add(self, agg: "Aggregation") -> "Aggregation":
        self.aggs.append(agg)
        return agg

    def to_dict(self) -> dict[str, Any]:
        root: dict[str, Any] = {self.type: self.body}
        if self.aggs:
            root["aggs"] = aggs_to_dict(self.aggs)
        return root


def aggs_to_dict(aggs: list[Aggregation]) -> dict[str, Any]:
    """Serialize sibling aggregations keyed by id, keeping their order.

    a repeated id overwrites the earlier entry, same as a json object would.
    """
    result: dict[str, Any] = {}
    for agg in aggs:
        result[agg.key] = agg.to_dict()
    return result


@dataclass
class SearchRequest:
    """One search body of a multi-search request."""

    index: str
    interval_text: str = ""
    interval_ms: int = 0
    size: int = 0
    sort: dict[str, Any] = field(default_factory=dict)
    query: Query = field(default_factory=Query)
    aggs: list[Aggregation] = field(default_factory=list)
    custom_props: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        root: dict[str, Any] = {"size": self.size}
        if self.sort:
            root["sort"] = self.sort
        root.update(self.custom_props)
        root["query"] = self.query.to_dict()
        if self.aggs:
            root["aggs"] = aggs_to_dict(self.aggs)
        return root

    def header(self) -> dict[str, Any]:
        return {"search_type": "query_then_fetch", "ignore_unavailable": True, "index": self.index}

    def encode_body(self) -> str:
        body = json.dumps(self.to_dict())
        # _ms first, otherwise "$__interval" eats the prefix of "$__interval_ms"
        body = body.replace(INTERVAL_MS_PLACEHOLDER, str(self.interval_ms))
        return body.replace(INTERVAL_PLACEHOLDER, self.interval_text)


@dataclass
class MultiSearchRequest:
    """The full batch, one request per target in submission order."""

    requests: list[SearchRequest] = field(default_factory=list)

    def encode(self) -> str:
        """Render as newline-delimited json (header line, body line, ...)."""
        lines = []
        for request in self.requests:
            lines.append(json.dumps(request.header()))
            lines.append(request.encode_body())
        return "\n".join(lines) + "\n"


@dataclass
class PPLRequest:
    """A piped processing language query. the body is just {"query": ...}."""

    query: str

    def to_dict(self) -> dict[str, Any]:
        return {"query": self.query}

    def encode(self) -> str:
        return json.dumps(self.to_dict())
