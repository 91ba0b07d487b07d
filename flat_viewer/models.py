"""Shared data models for the Flat Viewer pipeline."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from flat_viewer.config import INVALID_VALUE_DISPLAY_LIMIT
from flat_viewer.decoders import extension_for

QueryStatus = Literal[
    "IDLE",
    "INITIALIZING",
    "READY",
    "EXECUTING",
    "FAILED",
]

FormatHint = Literal["csv", "json"]

Number = Union[int, float]
FilterValue = Union[str, Number, tuple[Number, Number]]


class RawFile(BaseModel):
    """File text fetched at a specific commit."""

    model_config = ConfigDict(frozen=True)

    text: str
    filename: str
    sha: str

    @property
    def extension(self) -> str:
        return extension_for(self.filename)


class TaggedDataset(BaseModel):
    """One grid-ready table derived from a data file.

    Exactly one of ``rows`` or ``invalid_value`` is set. ``key`` is the
    top-level key the rows came from, when the payload was split per key.
    """

    key: Optional[str] = None
    rows: Optional[list[Any]] = None
    invalid_value: Optional[str] = None

    @model_validator(mode="after")
    def _rows_xor_invalid(self) -> "TaggedDataset":
        if (self.rows is None) == (self.invalid_value is None):
            raise ValueError("exactly one of rows or invalid_value must be set")
        return self

    @property
    def is_valid(self) -> bool:
        return self.rows is not None

    def display_invalid_value(self, limit: int = INVALID_VALUE_DISPLAY_LIMIT) -> Optional[str]:
        if self.invalid_value is None:
            return None
        return self.invalid_value[:limit]


class FlatFileMeta(BaseModel):
    """Per-file entry of a flat commit message metadata block."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    delta_bytes: int = Field(alias="deltaBytes")
    date: Optional[datetime] = None
    source: Optional[str] = None

    @field_validator("date", mode="before")
    @classmethod
    def _parse_date(cls, value: Any) -> Any:
        if isinstance(value, str):
            try:
                return datetime.fromisoformat(value.replace("Z", "+00:00"))
            except ValueError:
                return None
        return value

    @property
    def delta_sign(self) -> Literal["negative", "positive"]:
        """Shrinking files render negative; growth and no change render positive."""
        return "negative" if self.delta_bytes < 0 else "positive"


class FlatCommitMetadata(BaseModel):
    """The JSON block trailing a flat commit message."""

    files: list[FlatFileMeta]


class FlatCommitRecord(BaseModel):
    """Headline of a flat commit plus the metadata for one requested file."""

    message: str
    file: Optional[FlatFileMeta] = None


class GridViewState(BaseModel):
    """Shareable grid state: column filters, sort order and the pinned column."""

    filters: dict[str, FilterValue] = {}
    sort: list[str] = []
    sticky_column_name: Optional[str] = None


class QueryResult(BaseModel):
    """Result set of one executed query."""

    num_rows: int
    num_cols: int
    results: list[dict[str, Any]]
