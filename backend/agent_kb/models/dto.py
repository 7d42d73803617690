"""Pydantic DTOs exposed via API."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field


class AddTextDocumentRequest(BaseModel):
    document_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    content: str
    agent_ids: list[str] = Field(default_factory=list)


class UploadResult(BaseModel):
    filename: str
    document_id: str | None = None
    success: bool
    chunks: int = 0
    error: str | None = None


class UploadResponse(BaseModel):
    results: list[UploadResult]


class IngestResponse(BaseModel):
    document_id: str
    name: str
    chunks: int
    dimension: int


class SearchRequest(BaseModel):
    query: str = Field(min_length=1)
    agent_id: str = Field(min_length=1)
    limit: int = Field(default=5, ge=1, le=50)


class SearchResultItem(BaseModel):
    content: str
    documentName: str
    score: float
    chunkIndex: int
    totalChunks: int
    documentId: str


class SearchResponse(BaseModel):
    results: list[SearchResultItem]


class DocumentSummaryResponse(BaseModel):
    id: str
    name: str
    agentIds: list[str]
    chunks: int
    storedChunks: int
    status: Literal["complete", "incomplete"]


class DocumentContentResponse(BaseModel):
    id: str
    content: str


class DeleteResponse(BaseModel):
    status: Literal["ok", "noop"]
    deleted: int


class StatsResponse(BaseModel):
    organization_id: str
    total_documents: int
    total_chunks: int
    incomplete_documents: int
    documents_per_agent: dict[str, int]


class SupportedTypesResponse(BaseModel):
    suffixes: list[str]


class StatusResponse(BaseModel):
    status: dict[str, Any]


__all__ = [
    "AddTextDocumentRequest",
    "UploadResult",
    "UploadResponse",
    "IngestResponse",
    "SearchRequest",
    "SearchResultItem",
    "SearchResponse",
    "DocumentSummaryResponse",
    "DocumentContentResponse",
    "DeleteResponse",
    "StatsResponse",
    "SupportedTypesResponse",
    "StatusResponse",
]
