"""Pydantic request/response models for the HTTP API."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel

from flat_viewer.models import FlatFileMeta, QueryResult, QueryStatus, TaggedDataset


class CommitSummary(BaseModel):
    """One commit of a data file, with its flat metadata for that file."""

    sha: str
    message: Optional[str] = None
    author_name: Optional[str] = None
    author_email: Optional[str] = None
    date: Optional[str] = None
    file: Optional[FlatFileMeta] = None
    delta: Optional[Literal["negative", "positive"]] = None


class DatasetsResponse(BaseModel):
    filename: str
    sha: str
    datasets: list[TaggedDataset]


class CreateViewResponse(BaseModel):
    """Response from POST /views."""

    view_id: str
    status: QueryStatus


class LoadDatasetRequest(BaseModel):
    """Request body for PUT /views/{view_id}/dataset."""

    owner: str
    name: str
    path: str
    sha: str
    key: Optional[str] = None


class QueryRequest(BaseModel):
    """Request body for POST /views/{view_id}/query."""

    query: str


class ViewStateResponse(BaseModel):
    """Snapshot of a query view.

    ``error`` is an execution error shown alongside the previous ``result``;
    ``init_error`` means the dataset could not be loaded at all.
    """

    view_id: str
    status: QueryStatus
    dataset_id: Optional[str] = None
    result: Optional[QueryResult] = None
    error: Optional[str] = None
    init_error: Optional[str] = None
    superseded: bool = False
