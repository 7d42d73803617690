"""Error taxonomy for the knowledge base."""

from __future__ import annotations


class KnowledgeBaseError(Exception):
    """Base class for every error raised by the knowledge base."""


class UnsupportedFileType(KnowledgeBaseError):
    def __init__(self, mime_type: str, filename: str | None = None) -> None:
        self.mime_type = mime_type
        self.filename = filename
        label = f" ({filename})" if filename else ""
        super().__init__(f"Unsupported file type: {mime_type}{label}")


class ExtractionFailed(KnowledgeBaseError):
    def __init__(self, filename: str, reason: str) -> None:
        self.filename = filename
        self.reason = reason
        super().__init__(f"Failed to extract text from {filename}: {reason}")


class EmbeddingUnavailable(KnowledgeBaseError):
    """Embedding credentials are missing or the embedding API call failed."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Embedding unavailable: {reason}")


class StoreUnavailable(KnowledgeBaseError):
    """The vector store is not open or could not be opened."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Vector store unavailable: {reason}")


class DimensionMismatch(KnowledgeBaseError):
    """A vector does not match the dimension its table was created with."""

    def __init__(self, table: str, expected: int, actual: int) -> None:
        self.table = table
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Vector dimension mismatch for table {table}: expected {expected}, got {actual}"
        )


class EmptyDocument(KnowledgeBaseError):
    def __init__(self, document_id: str) -> None:
        self.document_id = document_id
        super().__init__(f"Document {document_id} produced no chunks")


class DuplicateDocument(KnowledgeBaseError):
    """Chunks for this document id already exist; delete it before re-adding.

    When the chunks belong to another organization the message does not say
    so; it only reports that the id cannot be used.
    """

    def __init__(self, document_id: str, owned: bool = True) -> None:
        self.document_id = document_id
        self.owned = owned
        if owned:
            message = f"Document {document_id} already exists"
        else:
            message = f"Document id {document_id} is not available; choose another id"
        super().__init__(message)


class IngestionFailed(KnowledgeBaseError):
    """Wraps any failure of a file ingestion with the offending file name."""

    def __init__(self, document_id: str, filename: str, cause: Exception) -> None:
        self.document_id = document_id
        self.filename = filename
        self.cause = cause
        super().__init__(f"Failed to ingest {filename} as document {document_id}: {cause}")


class PartialIngestion(KnowledgeBaseError):
    def __init__(self, document_id: str, expected: int, stored: int) -> None:
        self.document_id = document_id
        self.expected = expected
        self.stored = stored
        super().__init__(
            f"Document {document_id} is incomplete: {stored} of {expected} chunks stored"
        )


__all__ = [
    "KnowledgeBaseError",
    "UnsupportedFileType",
    "ExtractionFailed",
    "EmbeddingUnavailable",
    "StoreUnavailable",
    "DimensionMismatch",
    "EmptyDocument",
    "DuplicateDocument",
    "IngestionFailed",
    "PartialIngestion",
]
