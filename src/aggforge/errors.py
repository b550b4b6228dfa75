"""Exception types for AggForge.

two tiers of failure here and the split matters:
  - CompileError / DecodeError kill the whole batch. a half-built multi-search
    request isn't worth sending, and an unparseable envelope gives us nothing
    to work with.
  - BackendError belongs to a single target. the other targets in the batch
    still render, so it gets attached to the result instead of raised.
"""

from typing import Any


class AggForgeError(Exception):
    """Base class for all AggForge errors."""


class SettingsError(AggForgeError, ValueError):
    """A settings value could not be coerced to the requested type."""

    def __init__(self, key: str, value: Any, expected: str) -> None:
        self.key = key
        self.value = value
        self.expected = expected
        super().__init__(f"Setting '{key}' expected {expected}, got {value!r}")


class CompileError(AggForgeError, ValueError):
    """A query target could not be turned into an aggregation document."""

    def __init__(self, ref_id: str, message: str) -> None:
        self.ref_id = ref_id
        self.message = message
        super().__init__(f"Target '{ref_id}': {message}")


class DecodeError(AggForgeError, ValueError):
    """The raw multi-search response doesn't have the expected shape."""


class BackendError(AggForgeError):
    """The search backend reported an error for one target."""

    def __init__(self, ref_id: str, reason: str, details: dict[str, Any] | None = None) -> None:
        self.ref_id = ref_id
        self.reason = reason
        self.details = details or {}
        super().__init__(f"Target '{ref_id}': {reason}")
