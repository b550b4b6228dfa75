"""Main QueryEngine interface for AggForge."""

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

from aggforge.compiler.query_builder import QueryCompiler
from aggforge.config import Settings, get_settings
from aggforge.decoder.response_decoder import ResponseDecoder
from aggforge.errors import AggForgeError
from aggforge.extractor.series_extractor import SeriesExtractor
from aggforge.models.document import MultiSearchRequest
from aggforge.models.series import PPLResponse, QueryResponse, TargetResult
from aggforge.models.target import QueryTarget
from aggforge.parser.loader import load_targets

logger = logging.getLogger(__name__)

# takes the ndjson body, returns the raw multi-search response
Transport = Callable[[str], str | bytes | dict[str, Any]]


class QueryEngine:
    """Main interface for AggForge."""

    def __init__(
        self,
        settings: Settings | None = None,
        transport: Transport | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            settings: Compile defaults, or None to read them from the environment.
            transport: Callable that sends the request body to the backend.
                Only needed for query().
        """
        self.settings = settings or get_settings()
        self.transport = transport
        self.compiler = QueryCompiler(self.settings)
        self.decoder = ResponseDecoder()
        self.extractor = SeriesExtractor()

    def build(self, targets: list[QueryTarget]) -> MultiSearchRequest:
        """Compile targets into a multi-search request."""
        return self.compiler.compile(targets)

    def get_request_body(self, targets: list[QueryTarget]) -> str:
        """Get the NDJSON body without sending it."""
        return self.build(targets).encode()

    def get_ppl_body(self, target: QueryTarget) -> str:
        """Get the json body of a PPL query."""
        return self.compiler.compile_ppl(target).encode()

    def parse_ppl(self, raw: str | bytes | dict[str, Any]) -> PPLResponse:
        """Decode a PPL response. check .ok or call raise_for_error() for failures."""
        return self.decoder.decode_ppl(raw)

    def parse(
        self,
        raw: str | bytes | dict[str, Any],
        targets: list[QueryTarget],
    ) -> QueryResponse:
        """Turn a raw multi-search response into named series per target.

        backend errors stay attached to their own target, everything else
        in the batch still gets parsed.
        """
        decoded = self.decoder.decode(raw, targets)

        results = {}
        for response in decoded.responses:
            ref_id = response.target.ref_id
            if response.error is not None:
                results[ref_id] = TargetResult(
                    ref_id=ref_id,
                    error=response.error,
                    error_details=response.error_details,
                )
                continue

            series = []
            if response.root is not None:
                series = self.extractor.extract(response.target, response.root)
            results[ref_id] = TargetResult(ref_id=ref_id, series=series)

        return QueryResponse(status=decoded.status, results=results)

    def query(self, targets: list[QueryTarget]) -> QueryResponse:
        """Compile, send and parse in one go."""
        if self.transport is None:
            raise AggForgeError("No transport configured, use get_request_body() and parse() instead")

        # two-step like everywhere else: build the body, then read it back
        body = self.get_request_body(targets)
        logger.debug("Sending multi-search with %d targets", len(targets))
        raw = self.transport(body)
        return self.parse(raw, targets)

    def validate(self, targets: list[QueryTarget]) -> list[str]:
        """Validate targets one by one. Returns list of errors."""
        errors = []
        for target in targets:
            try:
                self.compiler.compile([target])
            except AggForgeError as e:
                errors.append(str(e))
        return errors

    def load_targets(self, path: str | Path) -> list[QueryTarget]:
        return load_targets(path)
