"""Shared FastAPI dependencies."""

from __future__ import annotations

from functools import lru_cache

from fastapi import Header, HTTPException

from agent_kb.core.config import Settings, get_settings
from agent_kb.ingest.embeddings import build_embedder
from agent_kb.service import KnowledgeBaseService
from agent_kb.store import VectorStore

_SERVICE: KnowledgeBaseService | None = None


@lru_cache(maxsize=1)
def get_app_settings() -> Settings:
    return get_settings()


def build_knowledge_base(settings: Settings) -> KnowledgeBaseService:
    store = VectorStore(settings.store_path, table_name=settings.table_name)
    return KnowledgeBaseService(store=store, embedder=build_embedder(settings), settings=settings)


def get_knowledge_base() -> KnowledgeBaseService:
    global _SERVICE
    if _SERVICE is None:
        _SERVICE = build_knowledge_base(get_app_settings())
    return _SERVICE


async def shutdown_knowledge_base() -> None:
    global _SERVICE
    if _SERVICE is not None:
        await _SERVICE.close()
        _SERVICE = None


def get_organization_id(x_organization_id: str | None = Header(default=None)) -> str:
    """Organization of the authenticated caller, supplied by the host application."""
    if not x_organization_id or not x_organization_id.strip():
        raise HTTPException(status_code=400, detail="X-Organization-Id header is required")
    return x_organization_id.strip()


__all__ = [
    "get_app_settings",
    "build_knowledge_base",
    "get_knowledge_base",
    "shutdown_knowledge_base",
    "get_organization_id",
]
