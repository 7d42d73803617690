"""Retrieval routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from agent_kb.api.dependencies import get_knowledge_base, get_organization_id
from agent_kb.core.metrics import REQUEST_COUNT
from agent_kb.models.dto import SearchRequest, SearchResponse, SearchResultItem
from agent_kb.service import KnowledgeBaseService

router = APIRouter()


@router.post("/search", response_model=SearchResponse, summary="Search documents visible to an agent")
async def search_documents(
    request: SearchRequest,
    organization_id: str = Depends(get_organization_id),
    service: KnowledgeBaseService = Depends(get_knowledge_base),
) -> SearchResponse:
    hits = await service.search_documents(
        query=request.query,
        agent_id=request.agent_id,
        organization_id=organization_id,
        limit=request.limit,
    )
    REQUEST_COUNT.labels(endpoint="search", method="POST", status="200").inc()
    return SearchResponse(results=[SearchResultItem(**hit.to_dict()) for hit in hits])


__all__ = ["router"]
