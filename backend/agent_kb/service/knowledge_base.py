"""Knowledge base orchestration: ingestion, retrieval, listing and deletion."""

from __future__ import annotations

import time
from typing import Iterable, Sequence

from agent_kb.core.config import Settings
from agent_kb.core.errors import (
    DimensionMismatch,
    DuplicateDocument,
    EmbeddingUnavailable,
    EmptyDocument,
    IngestionFailed,
    KnowledgeBaseError,
    PartialIngestion,
    StoreUnavailable,
)
from agent_kb.core.logging import get_logger
from agent_kb.core.metrics import (
    INDEX_SIZE,
    INGEST_DURATION,
    INGESTED_CHUNKS,
    RETRIEVAL_DEGRADED,
    SEARCH_LATENCY,
    SEARCH_RESULTS,
)
from agent_kb.ingest.chunker import TextChunker
from agent_kb.ingest.embeddings import Embedder, embed_in_order
from agent_kb.ingest.extract import extract_text_from_file
from agent_kb.models.entities import (
    ChunkRecord,
    DocumentSummary,
    IngestionMarker,
    IngestOutcome,
    KnowledgeStats,
    SearchHit,
    StoredChunk,
    chunk_id,
)
from agent_kb.models.metadata import ChunkMetadata, parse_metadata
from agent_kb.store.vector_store import STATUS_COMPLETE, STATUS_FAILED, VectorStore

logger = get_logger(__name__)

DOCUMENT_COMPLETE = "complete"
DOCUMENT_INCOMPLETE = "incomplete"


class KnowledgeBaseService:
    """Coordinate chunking, embeddings and the vector store for one table.

    The store and embedder are injected and owned by the host application,
    which calls :meth:`open` and :meth:`close`. Operations on the same
    document id are not serialized here; callers must not add and delete one
    document concurrently.
    """

    def __init__(
        self,
        store: VectorStore,
        embedder: Embedder,
        settings: Settings,
        chunker: TextChunker | None = None,
    ) -> None:
        self.store = store
        self.embedder = embedder
        self.settings = settings
        self.chunker = chunker or TextChunker(settings.chunk_size, settings.chunk_overlap)

    # Lifecycle --------------------------------------------------------

    async def open(self) -> bool:
        """Open the store; a failure is logged and retried on next use."""
        try:
            await self.store.open()
        except StoreUnavailable as exc:
            logger.warning("Vector database initialization warning: %s", exc)
            return False
        await self._update_index_metric()
        return True

    async def close(self) -> None:
        await self.store.close()
        await self.embedder.aclose()

    async def status(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "store_open": self.store.is_open,
            "table": self.store.table_name,
            "table_exists": False,
            "dimension": None,
            "chunks": 0,
            "embedding_model": self.embedder.model,
            "embedding_configured": self.embedder.configured,
        }
        if self.store.is_open:
            payload["table_exists"] = await self.store.table_exists()
            payload["dimension"] = await self.store.dimension()
            payload["chunks"] = await self.store.count()
        return payload

    async def _ensure_open(self) -> None:
        if not self.store.is_open:
            await self.store.open()

    # Ingestion --------------------------------------------------------

    def extract_text_from_file(self, data: bytes, mime_type: str, filename: str) -> str:
        return extract_text_from_file(data, mime_type, filename)

    async def add_document(
        self,
        document_id: str,
        name: str,
        content: str,
        agent_ids: Iterable[str],
        organization_id: str,
    ) -> IngestOutcome:
        """Chunk, embed and persist a document; errors propagate to the caller."""
        started = time.perf_counter()
        try:
            outcome = await self._add_document(document_id, name, content, list(agent_ids), organization_id)
        except Exception:
            INGEST_DURATION.labels(status="error").observe(time.perf_counter() - started)
            raise
        INGEST_DURATION.labels(status="ok").observe(time.perf_counter() - started)
        return outcome

    async def _add_document(
        self,
        document_id: str,
        name: str,
        content: str,
        agent_ids: list[str],
        organization_id: str,
    ) -> IngestOutcome:
        chunks = self.chunker.split(content)
        if not chunks:
            raise EmptyDocument(document_id)
        await self._ensure_open()
        existing = await self.store.scan_document(document_id)
        if existing:
            raise _duplicate(document_id, organization_id, existing)

        vectors = await embed_in_order(self.embedder, chunks, self.settings.embed_concurrency)
        agents = list(dict.fromkeys(agent_ids))
        records = [
            ChunkRecord(
                id=chunk_id(document_id, index),
                document_id=document_id,
                content=text,
                vector=vector,
                metadata=ChunkMetadata(
                    name=name,
                    agent_ids=agents,
                    organization_id=organization_id,
                    chunk_index=index,
                    total_chunks=len(chunks),
                ).to_json(),
            )
            for index, (text, vector) in enumerate(zip(chunks, vectors))
        ]

        await self.store.begin_ingestion(document_id, organization_id, len(records))
        try:
            dimension = await self.store.ensure_table(len(records[0].vector))
            await self.store.insert_many(records)
        except DuplicateDocument as exc:
            # the chunks and marker belong to the add that won the insert
            logger.warning("Document %s was added concurrently: %s", document_id, exc)
            existing = await self.store.scan_document(document_id)
            raise _duplicate(document_id, organization_id, existing) from exc
        except Exception as exc:
            logger.error("Error adding document %s (%s) to vector database: %s", document_id, name, exc)
            await self._mark_failed(document_id, organization_id, exc)
            raise
        await self.store.finish_ingestion(document_id, organization_id, STATUS_COMPLETE)

        INGESTED_CHUNKS.inc(len(records))
        await self._update_index_metric()
        logger.info(
            "Added document %s with %d chunks to vector database",
            name,
            len(records),
            extra={"ctx_document_id": document_id, "ctx_organization_id": organization_id},
        )
        return IngestOutcome(document_id=document_id, name=name, chunks=len(records), dimension=dimension)

    async def ingest_file(
        self,
        document_id: str,
        data: bytes,
        mime_type: str,
        filename: str,
        agent_ids: Iterable[str],
        organization_id: str,
        name: str | None = None,
    ) -> IngestOutcome:
        """Extract text from an uploaded file and add it as a document."""
        try:
            text = self.extract_text_from_file(data, mime_type, filename)
            return await self.add_document(document_id, name or filename, text, agent_ids, organization_id)
        except KnowledgeBaseError as exc:
            logger.warning("Ingestion of %s as %s failed: %s", filename, document_id, exc)
            raise IngestionFailed(document_id, filename, exc) from exc

    async def _mark_failed(self, document_id: str, organization_id: str, exc: Exception) -> None:
        try:
            await self.store.finish_ingestion(document_id, organization_id, STATUS_FAILED, detail=str(exc))
        except StoreUnavailable as marker_exc:
            logger.error("Could not record failed ingestion for %s: %s", document_id, marker_exc)

    # Retrieval --------------------------------------------------------

    async def search_documents(
        self,
        query: str,
        agent_id: str,
        organization_id: str,
        limit: int | None = None,
    ) -> list[SearchHit]:
        """Nearest chunks visible to the agent within the organization.

        Never raises: a missing table, a broken store or an unavailable
        embedding model yields an empty list.
        """
        top_k = self.settings.default_search_limit if limit is None else limit
        if not query.strip() or top_k <= 0:
            return []
        started = time.perf_counter()
        try:
            hits = await self._search(query, agent_id, organization_id, top_k)
        except EmbeddingUnavailable as exc:
            logger.warning("Knowledge base search skipped, embeddings unavailable: %s", exc)
            RETRIEVAL_DEGRADED.labels(reason="embedding").inc()
            return []
        except StoreUnavailable as exc:
            logger.warning("Knowledge base search skipped, store unavailable: %s", exc)
            RETRIEVAL_DEGRADED.labels(reason="store").inc()
            return []
        except DimensionMismatch as exc:
            logger.error("Knowledge base search skipped: %s", exc)
            RETRIEVAL_DEGRADED.labels(reason="dimension").inc()
            return []
        except Exception as exc:  # retrieval runs inside live conversations
            logger.exception("Error searching documents: %s", exc)
            RETRIEVAL_DEGRADED.labels(reason="error").inc()
            return []
        SEARCH_LATENCY.observe(time.perf_counter() - started)
        SEARCH_RESULTS.observe(len(hits))
        return hits

    async def _search(self, query: str, agent_id: str, organization_id: str, top_k: int) -> list[SearchHit]:
        await self._ensure_open()
        if not await self.store.table_exists():
            return []
        vector = await self.embedder.embed(query)
        candidates = await self.store.similarity_search(vector, top_k * self.settings.overfetch_factor)

        visible: list[tuple[StoredChunk, float]] = []
        for candidate in candidates:
            stored = _to_stored(candidate.record)
            if stored is None or not stored.metadata.visible_to(organization_id, agent_id):
                continue
            visible.append((stored, candidate.score))

        incomplete = await self._incomplete_documents({stored.document_id for stored, _ in visible}, organization_id)
        hits: list[SearchHit] = []
        for stored, score in visible:
            if stored.document_id in incomplete:
                continue
            hits.append(
                SearchHit(
                    content=stored.content,
                    document_name=stored.metadata.name,
                    score=score,
                    chunk_index=stored.metadata.chunk_index,
                    total_chunks=stored.metadata.total_chunks,
                    document_id=stored.document_id,
                )
            )
            if len(hits) >= top_k:
                break
        return hits

    async def _incomplete_documents(self, document_ids: set[str], organization_id: str) -> set[str]:
        if not document_ids:
            return set()
        markers = await self.store.ingestion_markers(organization_id)
        incomplete: set[str] = set()
        for document_id in document_ids:
            chunks = await self._document_chunks(document_id, organization_id)
            if _document_status(chunks, markers.get(document_id)) != DOCUMENT_COMPLETE:
                incomplete.add(document_id)
        return incomplete

    # Listing / content / deletion ------------------------------------

    async def get_documents(self, organization_id: str) -> list[DocumentSummary]:
        """One summary per document owned by the organization."""
        await self._ensure_open()
        grouped: dict[str, list[StoredChunk]] = {}
        for record in await self.store.scan_all():
            stored = _to_stored(record)
            if stored is None or stored.metadata.organization_id != organization_id:
                continue
            grouped.setdefault(stored.document_id, []).append(stored)
        if not grouped:
            return []

        markers = await self.store.ingestion_markers(organization_id)
        summaries: list[DocumentSummary] = []
        for document_id, chunks in grouped.items():
            first = min(chunks, key=lambda item: item.metadata.chunk_index)
            summaries.append(
                DocumentSummary(
                    id=document_id,
                    name=first.metadata.name,
                    agent_ids=list(first.metadata.agent_ids),
                    chunks=first.metadata.total_chunks,
                    stored_chunks=len(chunks),
                    status=_document_status(chunks, markers.get(document_id)),
                )
            )
        return summaries

    async def get_document_content(self, document_id: str, organization_id: str) -> str:
        """Reassemble a document by joining its chunks in index order."""
        await self._ensure_open()
        chunks = await self._document_chunks(document_id, organization_id)
        chunks.sort(key=lambda item: item.metadata.chunk_index)
        return "\n\n".join(chunk.content for chunk in chunks)

    async def delete_document(self, document_id: str, organization_id: str) -> int:
        """Remove every chunk of the document owned by the organization; idempotent."""
        await self._ensure_open()
        chunks = await self._document_chunks(document_id, organization_id)
        deleted = await self.store.delete_by_ids([chunk.id for chunk in chunks])
        await self.store.clear_ingestion(document_id, organization_id)
        if deleted:
            logger.info("Deleted document %s from vector database (%d chunks)", document_id, deleted)
            await self._update_index_metric()
        return deleted

    async def _document_chunks(self, document_id: str, organization_id: str) -> list[StoredChunk]:
        chunks: list[StoredChunk] = []
        for record in await self.store.scan_document(document_id):
            stored = _to_stored(record)
            if stored is not None and stored.metadata.organization_id == organization_id:
                chunks.append(stored)
        return chunks

    # Consistency ------------------------------------------------------

    async def verify_document(self, document_id: str, organization_id: str) -> DocumentSummary | None:
        """Return the summary of a complete document; raise PartialIngestion otherwise."""
        await self._ensure_open()
        chunks = await self._document_chunks(document_id, organization_id)
        if not chunks:
            return None
        markers = await self.store.ingestion_markers(organization_id)
        expected = max(chunk.metadata.total_chunks for chunk in chunks)
        if _document_status(chunks, markers.get(document_id)) != DOCUMENT_COMPLETE:
            raise PartialIngestion(document_id, expected, len(chunks))
        first = min(chunks, key=lambda item: item.metadata.chunk_index)
        return DocumentSummary(
            id=document_id,
            name=first.metadata.name,
            agent_ids=list(first.metadata.agent_ids),
            chunks=expected,
            stored_chunks=len(chunks),
            status=DOCUMENT_COMPLETE,
        )

    async def find_incomplete_documents(self, organization_id: str) -> list[DocumentSummary]:
        return [summary for summary in await self.get_documents(organization_id) if summary.status != DOCUMENT_COMPLETE]

    async def repair_document(self, document_id: str, organization_id: str) -> int:
        """Drop the chunks of an incomplete document so it can be added again."""
        try:
            await self.verify_document(document_id, organization_id)
        except PartialIngestion as exc:
            logger.warning("Removing partially ingested document: %s", exc)
            return await self.delete_document(document_id, organization_id)
        return 0

    async def get_document_stats(self, organization_id: str, agent_id: str | None = None) -> KnowledgeStats:
        stats = KnowledgeStats(organization_id=organization_id)
        for summary in await self.get_documents(organization_id):
            if agent_id is not None and agent_id not in summary.agent_ids:
                continue
            stats.total_documents += 1
            stats.total_chunks += summary.stored_chunks
            if summary.status != DOCUMENT_COMPLETE:
                stats.incomplete_documents += 1
            for agent in summary.agent_ids:
                stats.documents_per_agent[agent] = stats.documents_per_agent.get(agent, 0) + 1
        return stats

    async def _update_index_metric(self) -> None:
        try:
            INDEX_SIZE.set(await self.store.count())
        except StoreUnavailable:
            logger.debug("Skipping index size metric; store unavailable")


def _to_stored(record: ChunkRecord) -> StoredChunk | None:
    metadata = parse_metadata(record.metadata, record.id)
    if metadata is None:
        return None
    return StoredChunk(id=record.id, document_id=record.document_id, content=record.content, metadata=metadata)


def _duplicate(document_id: str, organization_id: str, existing: Sequence[ChunkRecord]) -> DuplicateDocument:
    """Conflict error that only names the document when the caller's organization owns it."""
    owned = any(
        stored is not None and stored.metadata.organization_id == organization_id
        for stored in map(_to_stored, existing)
    )
    return DuplicateDocument(document_id, owned=owned)


def _document_status(chunks: Sequence[StoredChunk], marker: IngestionMarker | None) -> str:
    """A document is complete when every indexed chunk is stored and no failure was recorded."""
    if not chunks:
        return DOCUMENT_INCOMPLETE
    if marker is not None and marker.status == STATUS_FAILED:
        return DOCUMENT_INCOMPLETE
    expected = max(chunk.metadata.total_chunks for chunk in chunks)
    indexes = {chunk.metadata.chunk_index for chunk in chunks}
    if len(chunks) != expected or indexes != set(range(expected)):
        return DOCUMENT_INCOMPLETE
    return DOCUMENT_COMPLETE


__all__ = ["KnowledgeBaseService", "DOCUMENT_COMPLETE", "DOCUMENT_INCOMPLETE"]
