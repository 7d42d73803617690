"""FastAPI application setup for the agent knowledge base."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from agent_kb.api.dependencies import get_app_settings, get_knowledge_base, shutdown_knowledge_base
from agent_kb.api.routes_admin import router as admin_router
from agent_kb.api.routes_ingest import router as ingest_router
from agent_kb.api.routes_query import router as query_router
from agent_kb.core.errors import (
    DuplicateDocument,
    EmbeddingUnavailable,
    EmptyDocument,
    KnowledgeBaseError,
    StoreUnavailable,
    UnsupportedFileType,
)
from agent_kb.core.logging import configure_logging, get_logger

configure_logging()
logger = get_logger(__name__)

app = FastAPI(
    title="Agent Knowledge Base",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.include_router(ingest_router, prefix="/knowledge", tags=["ingest"])
app.include_router(query_router, prefix="/knowledge", tags=["query"])
app.include_router(admin_router, prefix="", tags=["admin"])

_ERROR_STATUS: tuple[tuple[type[KnowledgeBaseError], int], ...] = (
    (UnsupportedFileType, 415),
    (EmptyDocument, 422),
    (DuplicateDocument, 409),
    (EmbeddingUnavailable, 503),
    (StoreUnavailable, 503),
)


@app.exception_handler(KnowledgeBaseError)
async def knowledge_base_error(request: Request, exc: KnowledgeBaseError) -> JSONResponse:
    status_code = next((code for kind, code in _ERROR_STATUS if isinstance(exc, kind)), 400)
    logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


@app.on_event("startup")
async def startup() -> None:
    """Open the vector store; a failure leaves the service uninitialized until first use."""
    settings = get_app_settings()
    configure_logging(settings.log_level, use_json=settings.log_json)
    await get_knowledge_base().open()


@app.on_event("shutdown")
async def shutdown() -> None:
    await shutdown_knowledge_base()


@app.get("/health", tags=["admin"])
def health() -> dict[str, bool]:
    """Simple liveness check."""
    return {"ok": True}
