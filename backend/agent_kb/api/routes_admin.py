"""Document management and service administration routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from agent_kb.api.dependencies import get_knowledge_base, get_organization_id
from agent_kb.core.metrics import metrics_response
from agent_kb.ingest.extract import supported_file_types
from agent_kb.models.dto import (
    DeleteResponse,
    DocumentContentResponse,
    DocumentSummaryResponse,
    StatsResponse,
    StatusResponse,
    SupportedTypesResponse,
)
from agent_kb.models.entities import DocumentSummary
from agent_kb.service import KnowledgeBaseService

router = APIRouter()


@router.get("/knowledge/documents", response_model=list[DocumentSummaryResponse], summary="List documents")
async def list_documents(
    organization_id: str = Depends(get_organization_id),
    service: KnowledgeBaseService = Depends(get_knowledge_base),
) -> list[DocumentSummaryResponse]:
    return [_to_response(summary) for summary in await service.get_documents(organization_id)]


@router.get(
    "/knowledge/documents/{document_id}/content",
    response_model=DocumentContentResponse,
    summary="Reassembled document text",
)
async def document_content(
    document_id: str,
    organization_id: str = Depends(get_organization_id),
    service: KnowledgeBaseService = Depends(get_knowledge_base),
) -> DocumentContentResponse:
    content = await service.get_document_content(document_id, organization_id)
    if not content:
        raise HTTPException(status_code=404, detail="Document not found")
    return DocumentContentResponse(id=document_id, content=content)


@router.delete("/knowledge/documents/{document_id}", response_model=DeleteResponse, summary="Delete a document")
async def delete_document(
    document_id: str,
    organization_id: str = Depends(get_organization_id),
    service: KnowledgeBaseService = Depends(get_knowledge_base),
) -> DeleteResponse:
    deleted = await service.delete_document(document_id, organization_id)
    return DeleteResponse(status="ok" if deleted else "noop", deleted=deleted)


@router.post(
    "/knowledge/documents/{document_id}/repair",
    response_model=DeleteResponse,
    summary="Drop the chunks of a partially ingested document",
)
async def repair_document(
    document_id: str,
    organization_id: str = Depends(get_organization_id),
    service: KnowledgeBaseService = Depends(get_knowledge_base),
) -> DeleteResponse:
    deleted = await service.repair_document(document_id, organization_id)
    return DeleteResponse(status="ok" if deleted else "noop", deleted=deleted)


@router.get("/knowledge/stats", response_model=StatsResponse, summary="Knowledge base statistics")
async def document_stats(
    agent_id: str | None = None,
    organization_id: str = Depends(get_organization_id),
    service: KnowledgeBaseService = Depends(get_knowledge_base),
) -> StatsResponse:
    stats = await service.get_document_stats(organization_id, agent_id=agent_id)
    return StatsResponse(**stats.to_dict())


@router.get("/knowledge/supported-types", response_model=SupportedTypesResponse, summary="Accepted file suffixes")
async def supported_types() -> SupportedTypesResponse:
    return SupportedTypesResponse(suffixes=supported_file_types())


@router.get("/status", response_model=StatusResponse, summary="Vector store and embedding status")
async def service_status(service: KnowledgeBaseService = Depends(get_knowledge_base)) -> StatusResponse:
    return StatusResponse(status=await service.status())


@router.get("/metrics", summary="Prometheus metrics")
async def get_metrics():
    return metrics_response()


def _to_response(summary: DocumentSummary) -> DocumentSummaryResponse:
    return DocumentSummaryResponse(
        id=summary.id,
        name=summary.name,
        agentIds=summary.agent_ids,
        chunks=summary.chunks,
        storedChunks=summary.stored_chunks,
        status=summary.status,
    )


__all__ = ["router"]
