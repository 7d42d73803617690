"""Internal dataclasses representing persisted and derived entities."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from agent_kb.models.metadata import ChunkMetadata


def chunk_id(document_id: str, index: int) -> str:
    return f"{document_id}_chunk_{index}"


@dataclass(slots=True)
class ChunkRecord:
    """A row of the vector table."""

    id: str
    document_id: str
    content: str
    vector: list[float]
    metadata: str


@dataclass(slots=True)
class ScoredRecord:
    record: ChunkRecord
    score: float


@dataclass(slots=True)
class StoredChunk:
    """A chunk row paired with its parsed metadata."""

    id: str
    document_id: str
    content: str
    metadata: ChunkMetadata


@dataclass(slots=True)
class IngestionMarker:
    document_id: str
    organization_id: str
    total_chunks: int
    status: str
    detail: str | None
    started_at: int
    finished_at: int | None


@dataclass(slots=True)
class SearchHit:
    content: str
    document_name: str
    score: float
    chunk_index: int
    total_chunks: int
    document_id: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "content": self.content,
            "documentName": self.document_name,
            "score": self.score,
            "chunkIndex": self.chunk_index,
            "totalChunks": self.total_chunks,
            "documentId": self.document_id,
        }


@dataclass(slots=True)
class DocumentSummary:
    id: str
    name: str
    agent_ids: list[str]
    chunks: int
    stored_chunks: int
    status: str


@dataclass(slots=True)
class IngestOutcome:
    document_id: str
    name: str
    chunks: int
    dimension: int


@dataclass(slots=True)
class KnowledgeStats:
    organization_id: str
    total_documents: int = 0
    total_chunks: int = 0
    incomplete_documents: int = 0
    documents_per_agent: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "organization_id": self.organization_id,
            "total_documents": self.total_documents,
            "total_chunks": self.total_chunks,
            "incomplete_documents": self.incomplete_documents,
            "documents_per_agent": dict(self.documents_per_agent),
        }


__all__ = [
    "chunk_id",
    "ChunkRecord",
    "ScoredRecord",
    "StoredChunk",
    "IngestionMarker",
    "SearchHit",
    "DocumentSummary",
    "IngestOutcome",
    "KnowledgeStats",
]
