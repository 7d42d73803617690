"""Document ingestion routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from agent_kb.api.dependencies import get_app_settings, get_knowledge_base, get_organization_id
from agent_kb.core.config import Settings
from agent_kb.core.errors import IngestionFailed
from agent_kb.models.dto import AddTextDocumentRequest, IngestResponse, UploadResponse, UploadResult
from agent_kb.service import KnowledgeBaseService
from agent_kb.utils.ids import new_document_id

router = APIRouter()


@router.post("/documents", response_model=UploadResponse, summary="Upload files into the knowledge base")
async def upload_documents(
    files: list[UploadFile] = File(...),
    agent_ids: str = Form(default=""),
    document_id: str | None = Form(default=None),
    name: str | None = Form(default=None),
    organization_id: str = Depends(get_organization_id),
    service: KnowledgeBaseService = Depends(get_knowledge_base),
    settings: Settings = Depends(get_app_settings),
) -> UploadResponse:
    if not files:
        raise HTTPException(status_code=400, detail="No files uploaded")
    if len(files) > settings.max_upload_files:
        raise HTTPException(status_code=400, detail=f"At most {settings.max_upload_files} files per upload")
    if len(files) > 1 and (document_id or name):
        raise HTTPException(status_code=400, detail="document_id and name apply to single-file uploads only")

    agents = _split_ids(agent_ids)
    results: list[UploadResult] = []
    for upload in files:
        filename = upload.filename or "upload"
        data = await upload.read()
        if len(data) > settings.max_upload_bytes:
            results.append(
                UploadResult(
                    filename=filename,
                    success=False,
                    error=f"File exceeds the {settings.max_upload_bytes} byte limit",
                )
            )
            continue
        doc_id = document_id or new_document_id()
        try:
            outcome = await service.ingest_file(
                document_id=doc_id,
                data=data,
                mime_type=upload.content_type or "application/octet-stream",
                filename=filename,
                agent_ids=agents,
                organization_id=organization_id,
                name=name,
            )
        except IngestionFailed as exc:
            results.append(UploadResult(filename=filename, document_id=doc_id, success=False, error=str(exc.cause)))
            continue
        results.append(UploadResult(filename=filename, document_id=doc_id, success=True, chunks=outcome.chunks))
    return UploadResponse(results=results)


@router.post("/documents/text", response_model=IngestResponse, summary="Add a document from raw text")
async def add_text_document(
    request: AddTextDocumentRequest,
    organization_id: str = Depends(get_organization_id),
    service: KnowledgeBaseService = Depends(get_knowledge_base),
) -> IngestResponse:
    outcome = await service.add_document(
        document_id=request.document_id,
        name=request.name,
        content=request.content,
        agent_ids=request.agent_ids,
        organization_id=organization_id,
    )
    return IngestResponse(
        document_id=outcome.document_id,
        name=outcome.name,
        chunks=outcome.chunks,
        dimension=outcome.dimension,
    )


def _split_ids(raw: str) -> list[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


__all__ = ["router"]
