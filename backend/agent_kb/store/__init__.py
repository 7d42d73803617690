"""Vector storage components."""

from .vector_store import STATUS_COMPLETE, STATUS_FAILED, STATUS_PENDING, VectorStore

__all__ = [
    "VectorStore",
    "STATUS_PENDING",
    "STATUS_COMPLETE",
    "STATUS_FAILED",
]
