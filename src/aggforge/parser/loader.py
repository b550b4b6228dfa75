"""Loader for query target documents.

targets normally arrive as json from the dashboard, but for tests and the cli
it's handy to keep them in files. yaml.safe_load reads both yaml and json, so
one loader covers both formats.

a file is either a bare list of targets or a mapping with a shared time
range:

    from: 2024-01-01T00:00:00Z
    to: 2024-01-02T00:00:00Z
    targets:
      - refId: A
        timeField: "@timestamp"
        metrics: [{type: count, id: "1"}]
        bucketAggs: [{type: date_histogram, field: "@timestamp", id: "2"}]
"""

import json
import string
from pathlib import Path
from typing import Any

import yaml

from aggforge.models.target import QueryTarget, TimeRange


def _default_ref_id(position: int) -> str:
    # A, B, ..., Z, AA, AB, ... like the dashboard does
    letters = string.ascii_uppercase
    name = ""
    position += 1
    while position:
        position, rem = divmod(position - 1, 26)
        name = letters[rem] + name
    return name


def parse_target(
    data: dict[str, Any] | str,
    time_range: TimeRange | dict[str, Any] | None = None,
    ref_id: str | None = None,
) -> QueryTarget:
    """Build a QueryTarget from its json form.

    time_range and ref_id fill in what the target itself doesn't carry -
    the dashboard sends those in the request envelope, not the query json.
    """
    if isinstance(data, str):
        data = json.loads(data)
    if not isinstance(data, dict):
        raise ValueError(f"Target must be an object, got {type(data).__name__}")

    data = dict(data)
    if ref_id is not None and "refId" not in data and "ref_id" not in data:
        data["refId"] = ref_id
    if time_range is not None and "timeRange" not in data and "time_range" not in data:
        data["timeRange"] = time_range
    return QueryTarget.model_validate(data)


def parse_targets(data: Any) -> list[QueryTarget]:
    """Parse a loaded document (bare list or mapping) into targets."""
    if data is None:
        return []

    time_range = None
    if isinstance(data, dict):
        if "from" in data and "to" in data:
            time_range = TimeRange.model_validate({"from": data["from"], "to": data["to"]})
        items = data.get("targets", [])
    else:
        items = data

    if not isinstance(items, list):
        raise ValueError("'targets' must be a list")

    targets = []
    seen: set[str] = set()
    for position, item in enumerate(items):
        target = parse_target(item, time_range=time_range, ref_id=_default_ref_id(position))
        if target.ref_id in seen:
            raise ValueError(f"Duplicate refId: {target.ref_id}")
        seen.add(target.ref_id)
        targets.append(target)
    return targets


def load_targets(path: str | Path) -> list[QueryTarget]:
    """Load targets from a yaml or json file."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Targets file not found: {path}")

    with open(path) as f:
        data = yaml.safe_load(f)
    return parse_targets(data)


def load_response(path: str | Path) -> str:
    """Read a raw multi-search response body from disk."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Response file not found: {path}")
    return path.read_text()
