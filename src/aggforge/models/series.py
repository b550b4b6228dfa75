"""Pydantic models for parsed results.

a target can fan out into many series (one per group x metric component),
so the result is a list of named series rather than a single table.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from aggforge.errors import BackendError
from aggforge.models.response import error_reason


class NamedSeries(BaseModel):
    """A display name plus equal-length timestamp and value columns."""

    name: str
    timestamps: list[datetime | None] = Field(default_factory=list)
    values: list[float | None] = Field(default_factory=list)
    tags: dict[str, str] = Field(default_factory=dict)  # group field -> key

    @model_validator(mode="after")
    def _check_lengths(self) -> "NamedSeries":
        if len(self.timestamps) != len(self.values):
            raise ValueError(
                f"Series '{self.name}' has {len(self.timestamps)} timestamps "
                f"but {len(self.values)} values"
            )
        return self

    def __len__(self) -> int:
        return len(self.values)

    def points(self) -> list[tuple[datetime | None, float | None]]:
        return list(zip(self.timestamps, self.values))


class TargetResult(BaseModel):
    """Everything produced for one target - series or a backend error."""

    ref_id: str
    series: list[NamedSeries] = Field(default_factory=list)
    error: str | None = None
    error_details: dict[str, Any] | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise BackendError(self.ref_id, self.error, self.error_details)


class QueryResponse(BaseModel):
    """Results for a whole batch, keyed by ref id in submission order."""

    status: int | None = None
    results: dict[str, TargetResult] = Field(default_factory=dict)

    def __getitem__(self, ref_id: str) -> TargetResult:
        return self.results[ref_id]

    @property
    def errors(self) -> dict[str, str]:
        return {ref: r.error for ref, r in self.results.items() if r.error is not None}


class FieldSchema(BaseModel):
    """One column of a PPL result set."""

    name: str
    type: str


class PPLResponse(BaseModel):
    """A PPL result: column schema, rows in the same column order, or an error.

    rows are left as the backend sent them - turning them into frames or
    tables is up to the caller.
    """

    model_config = ConfigDict(populate_by_name=True)

    status: int | None = None
    error: dict[str, Any] | None = None
    columns: list[FieldSchema] = Field(default_factory=list, alias="schema")
    datarows: list[list[Any]] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.error

    def rows(self) -> list[dict[str, Any]]:
        """Datarows keyed by column name."""
        names = [column.name for column in self.columns]
        return [dict(zip(names, row)) for row in self.datarows]

    def raise_for_error(self, ref_id: str) -> None:
        if self.error:
            raise BackendError(ref_id, error_reason(self.error), self.error)
