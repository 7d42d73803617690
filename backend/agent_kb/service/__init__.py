"""Knowledge base service layer."""

from .knowledge_base import DOCUMENT_COMPLETE, DOCUMENT_INCOMPLETE, KnowledgeBaseService

__all__ = [
    "KnowledgeBaseService",
    "DOCUMENT_COMPLETE",
    "DOCUMENT_INCOMPLETE",
]
