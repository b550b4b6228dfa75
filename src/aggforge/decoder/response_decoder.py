"""Multi-search response decoder.

the backend answers a multi-search with {"responses": [...]} in the same
order the requests went out. there's no ref id in there, so pairing is purely
positional - whatever order the compiler emitted is the order we read back.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from aggforge.errors import DecodeError
from aggforge.models.response import AggNode, Bucket, BucketList, FilterMap, MetricValue, error_reason
from aggforge.models.series import PPLResponse
from aggforge.models.target import QueryTarget

logger = logging.getLogger(__name__)

# bucket fields that are never sub-aggregations
_BUCKET_FIELDS = frozenset({"key", "key_as_string", "doc_count", "from", "to", "from_as_string", "to_as_string"})


@dataclass(frozen=True)
class TargetResponse:
    """One target paired with its response tree or its backend error."""

    target: QueryTarget
    root: Bucket | None = None
    error: str | None = None
    error_details: dict[str, Any] | None = None


@dataclass(frozen=True)
class DecodedResponse:
    status: int | None
    responses: list[TargetResponse]


def decode_bucket(data: dict[str, Any]) -> Bucket:
    """Wrap a raw bucket, classifying each sub-aggregation by shape."""
    aggs: dict[str, AggNode] = {}
    for key, value in data.items():
        if key in _BUCKET_FIELDS or not isinstance(value, dict):
            continue
        aggs[key] = decode_agg(value)

    key_as_string = data.get("key_as_string")
    doc_count = data.get("doc_count")
    return Bucket(
        key=data.get("key"),
        key_as_string=key_as_string if isinstance(key_as_string, str) else None,
        doc_count=doc_count if isinstance(doc_count, int) and not isinstance(doc_count, bool) else None,
        aggs=aggs,
    )


def decode_agg(data: dict[str, Any]) -> AggNode:
    """Classify one aggregation result: bucket list, filter map or metric value."""
    buckets = data.get("buckets")
    if isinstance(buckets, list):
        return BucketList(buckets=[decode_bucket(b) for b in buckets if isinstance(b, dict)])
    if isinstance(buckets, dict):
        return FilterMap(
            buckets={label: decode_bucket(b) for label, b in buckets.items() if isinstance(b, dict)}
        )
    return MetricValue(raw=data)


class ResponseDecoder:
    """Parses the raw multi-search payload and pairs it with targets."""

    def decode(self, raw: str | bytes | dict[str, Any], targets: list[QueryTarget]) -> DecodedResponse:
        payload = self._load(raw)

        responses = payload.get("responses")
        if not isinstance(responses, list):
            raise DecodeError("Response has no 'responses' list")
        if len(responses) != len(targets):
            raise DecodeError(
                f"Got {len(responses)} responses for {len(targets)} targets"
            )

        status = payload.get("status")
        paired = []
        for target, response in zip(targets, responses):
            if not isinstance(response, dict):
                raise DecodeError(f"Response for target '{target.ref_id}' is not an object")
            paired.append(self._decode_one(target, response))

        logger.debug("Decoded %d responses", len(paired))
        return DecodedResponse(
            status=status if isinstance(status, int) else None,
            responses=paired,
        )

    def decode_ppl(self, raw: str | bytes | dict[str, Any]) -> PPLResponse:
        """Parse a single PPL response. a backend error stays on the result."""
        payload = self._load(raw)
        try:
            response = PPLResponse.model_validate(payload)
        except ValidationError as e:
            raise DecodeError(f"Invalid PPL response: {e}") from e

        if response.error:
            logger.warning("PPL query failed: %s", error_reason(response.error))
        else:
            logger.debug("Decoded PPL response with %d rows", len(response.datarows))
        return response

    def _load(self, raw: str | bytes | dict[str, Any]) -> dict[str, Any]:
        if isinstance(raw, dict):
            payload = raw
        else:
            try:
                payload = json.loads(raw)
            except (TypeError, ValueError) as e:
                raise DecodeError(f"Response is not valid JSON: {e}") from e
        if not isinstance(payload, dict):
            raise DecodeError("Response is not a JSON object")
        return payload

    def _decode_one(self, target: QueryTarget, response: dict[str, Any]) -> TargetResponse:
        error = response.get("error")
        if error:
            details = error if isinstance(error, dict) else {"reason": str(error)}
            reason = error_reason(details)
            logger.warning("Target %s: backend error: %s", target.ref_id, reason)
            return TargetResponse(target=target, error=reason, error_details=details)

        aggregations = response.get("aggregations")
        if not isinstance(aggregations, dict):
            aggregations = {}
        hits = response.get("hits")
        total = hits.get("total") if isinstance(hits, dict) else None
        if isinstance(total, dict):
            total = total.get("value")

        root = decode_bucket(aggregations)
        if isinstance(total, int):
            root = Bucket(doc_count=total, aggs=root.aggs)
        return TargetResponse(target=target, root=root)
