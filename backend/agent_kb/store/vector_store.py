"""Embedded, file-backed vector store.

Chunks live in a single SQLite table whose vector column holds float32
blobs. The table is created lazily on the first write with the dimension of
the first vector, and that dimension is recorded in ``vector_tables`` so a
later write with a different model fails instead of corrupting the index.

Similarity search is an exact cosine scan; listing is a full scan. Both are
O(total chunks across all tenants). Tenant and agent filtering happens in the
caller because metadata is an opaque JSON blob.
"""

from __future__ import annotations

import asyncio
import heapq
import math
import sqlite3
import threading
from pathlib import Path
from typing import Any, Callable, Iterable, Sequence, TypeVar

from agent_kb.core.errors import DimensionMismatch, DuplicateDocument, StoreUnavailable
from agent_kb.core.logging import get_logger
from agent_kb.db.sqlite import SQLiteDatabase, iter_rows
from agent_kb.ingest.embeddings import vector_from_bytes, vector_to_bytes
from agent_kb.models.entities import ChunkRecord, IngestionMarker, ScoredRecord
from agent_kb.utils.time import now_ms

logger = get_logger(__name__)

T = TypeVar("T")

_DELETE_BATCH = 500

_BASE_SCHEMA = """
CREATE TABLE IF NOT EXISTS vector_tables (
    name TEXT PRIMARY KEY,
    dim INTEGER NOT NULL,
    created_at INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS knowledge_ingestions (
    table_name TEXT NOT NULL,
    document_id TEXT NOT NULL,
    organization_id TEXT NOT NULL,
    total_chunks INTEGER NOT NULL,
    status TEXT NOT NULL,
    detail TEXT,
    started_at INTEGER NOT NULL,
    finished_at INTEGER,
    PRIMARY KEY (table_name, document_id, organization_id)
);
"""

STATUS_PENDING = "pending"
STATUS_COMPLETE = "complete"
STATUS_FAILED = "failed"


class VectorStore:
    """Explicit handle on the on-disk vector table.

    Blocking SQLite calls run in a worker thread; a single lock serializes
    access to the shared connection.
    """

    def __init__(self, path: Path, table_name: str = "knowledge_documents") -> None:
        self.path = Path(path).expanduser()
        self.table_name = table_name
        self._db: SQLiteDatabase | None = None
        self._dim: int | None = None
        self._lock = threading.Lock()

    # Lifecycle --------------------------------------------------------

    @property
    def is_open(self) -> bool:
        return self._db is not None

    async def open(self) -> None:
        await asyncio.to_thread(self._open_sync)

    async def close(self) -> None:
        await asyncio.to_thread(self._close_sync)

    async def __aenter__(self) -> "VectorStore":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _open_sync(self) -> None:
        with self._lock:
            if self._db is not None:
                return
            db = SQLiteDatabase(self.path)
            try:
                db.connect()
                db.executescript(_BASE_SCHEMA)
                dim = self._load_dimension(db)
            except (sqlite3.Error, OSError) as exc:
                db.close()
                raise StoreUnavailable(f"cannot open {self.path}: {exc}") from exc
            self._db = db
            self._dim = dim
        if dim is None:
            logger.info("Table %s does not exist yet; it will be created on first upload", self.table_name)
        else:
            logger.info("Opened vector table %s (dim=%d) at %s", self.table_name, dim, self.path)

    def _close_sync(self) -> None:
        with self._lock:
            if self._db is not None:
                self._db.close()
            self._db = None
            self._dim = None

    async def _run(self, fn: Callable[..., T], *args: Any) -> T:
        if self._db is None:
            raise StoreUnavailable("vector store is not open")
        return await asyncio.to_thread(self._locked, fn, *args)

    def _locked(self, fn: Callable[..., T], *args: Any) -> T:
        with self._lock:
            if self._db is None:
                raise StoreUnavailable("vector store was closed")
            try:
                return fn(self._db, *args)
            except sqlite3.OperationalError as exc:
                raise StoreUnavailable(str(exc)) from exc

    # Schema -----------------------------------------------------------

    async def table_exists(self) -> bool:
        return await self._run(lambda db: db.table_exists(self.table_name))

    async def dimension(self) -> int | None:
        return await self._run(lambda db: self._dim)

    async def ensure_table(self, dimension: int) -> int:
        """Create the vector table if needed; fail if it exists with another dimension."""
        return await self._run(self._ensure_table_sync, dimension)

    def _ensure_table_sync(self, db: SQLiteDatabase, dimension: int) -> int:
        if dimension <= 0:
            raise ValueError("dimension must be positive")
        if self._dim is not None:
            if self._dim != dimension:
                raise DimensionMismatch(self.table_name, self._dim, dimension)
            return self._dim
        table = self.table_name
        with db.transaction() as cursor:
            cursor.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    id TEXT PRIMARY KEY,
                    document_id TEXT NOT NULL,
                    content TEXT NOT NULL,
                    vector BLOB NOT NULL,
                    metadata TEXT NOT NULL
                )
                """
            )
            cursor.execute(f"CREATE INDEX IF NOT EXISTS idx_{table}_document ON {table}(document_id)")
            cursor.execute(
                "INSERT OR REPLACE INTO vector_tables (name, dim, created_at) VALUES (?, ?, ?)",
                [table, dimension, now_ms()],
            )
        self._dim = dimension
        logger.info("Created vector table %s with dimension %d", table, dimension)
        return dimension

    def _load_dimension(self, db: SQLiteDatabase) -> int | None:
        if not db.table_exists(self.table_name):
            return None
        row = db.execute("SELECT dim FROM vector_tables WHERE name = ?", [self.table_name]).fetchone()
        if row:
            return int(row["dim"])
        # Table predates the registry: take the dimension from a stored vector.
        sample = db.execute(f"SELECT vector FROM {self.table_name} LIMIT 1").fetchone()
        if sample is None:
            return None
        dim = len(vector_from_bytes(sample["vector"]))
        db.execute(
            "INSERT INTO vector_tables (name, dim, created_at) VALUES (?, ?, ?)",
            [self.table_name, dim, now_ms()],
        )
        db.commit()
        return dim

    # Writes -----------------------------------------------------------

    async def insert_many(self, records: Sequence[ChunkRecord]) -> int:
        """Append records in one transaction, creating the table on first write."""
        if not records:
            return 0
        return await self._run(self._insert_many_sync, list(records))

    def _insert_many_sync(self, db: SQLiteDatabase, records: list[ChunkRecord]) -> int:
        dim = self._ensure_table_sync(db, len(records[0].vector))
        for record in records:
            if len(record.vector) != dim:
                raise DimensionMismatch(self.table_name, dim, len(record.vector))
        try:
            with db.transaction() as cursor:
                cursor.executemany(
                    f"INSERT INTO {self.table_name} (id, document_id, content, vector, metadata) VALUES (?, ?, ?, ?, ?)",
                    [
                        (record.id, record.document_id, record.content, vector_to_bytes(record.vector), record.metadata)
                        for record in records
                    ],
                )
        except sqlite3.IntegrityError as exc:
            # another add of the same document committed first
            raise DuplicateDocument(records[0].document_id) from exc
        return len(records)

    async def delete_by_ids(self, ids: Iterable[str]) -> int:
        id_list = list(dict.fromkeys(ids))
        if not id_list:
            return 0
        return await self._run(self._delete_sync, id_list)

    def _delete_sync(self, db: SQLiteDatabase, ids: list[str]) -> int:
        if self._dim is None and not db.table_exists(self.table_name):
            return 0
        deleted = 0
        with db.transaction() as cursor:
            for start in range(0, len(ids), _DELETE_BATCH):
                batch = ids[start : start + _DELETE_BATCH]
                placeholders = ",".join("?" for _ in batch)
                cursor.execute(f"DELETE FROM {self.table_name} WHERE id IN ({placeholders})", batch)
                deleted += cursor.rowcount
        return deleted

    # Reads ------------------------------------------------------------

    async def similarity_search(self, vector: Sequence[float], k: int) -> list[ScoredRecord]:
        """Return up to ``k`` records by descending cosine similarity, unfiltered."""
        if k <= 0:
            return []
        return await self._run(self._search_sync, list(vector), k)

    def _search_sync(self, db: SQLiteDatabase, vector: list[float], k: int) -> list[ScoredRecord]:
        if self._dim is None:
            return []
        if len(vector) != self._dim:
            raise DimensionMismatch(self.table_name, self._dim, len(vector))
        query_norm = _norm(vector)
        cursor = db.execute(f"SELECT id, document_id, content, vector, metadata FROM {self.table_name}")
        scored = (
            (_cosine(vector, query_norm, stored), row)
            for row in iter_rows(cursor)
            for stored in (vector_from_bytes(row["vector"]),)
        )
        best = heapq.nlargest(k, scored, key=lambda item: item[0])
        return [ScoredRecord(record=_row_to_record(row, include_vector=True), score=score) for score, row in best]

    async def scan_all(self, include_vectors: bool = False) -> list[ChunkRecord]:
        """Every record in the table; empty when the table was never created."""
        return await self._run(self._scan_sync, None, include_vectors)

    async def scan_document(self, document_id: str, include_vectors: bool = False) -> list[ChunkRecord]:
        """Records for one document id, served from the ``document_id`` index."""
        return await self._run(self._scan_sync, document_id, include_vectors)

    def _scan_sync(self, db: SQLiteDatabase, document_id: str | None, include_vectors: bool) -> list[ChunkRecord]:
        if self._dim is None and not db.table_exists(self.table_name):
            return []
        columns = "id, document_id, content, metadata" + (", vector" if include_vectors else "")
        if document_id is None:
            rows = db.query(f"SELECT {columns} FROM {self.table_name}")
        else:
            rows = db.query(f"SELECT {columns} FROM {self.table_name} WHERE document_id = ?", [document_id])
        return [_row_to_record(row, include_vector=include_vectors) for row in rows]

    async def count(self) -> int:
        return await self._run(self._count_sync)

    def _count_sync(self, db: SQLiteDatabase) -> int:
        if self._dim is None and not db.table_exists(self.table_name):
            return 0
        row = db.execute(f"SELECT COUNT(*) AS count FROM {self.table_name}").fetchone()
        return int(row["count"]) if row else 0

    # Ingestion markers ------------------------------------------------

    async def begin_ingestion(self, document_id: str, organization_id: str, total_chunks: int) -> None:
        await self._run(self._begin_sync, document_id, organization_id, total_chunks)

    def _begin_sync(self, db: SQLiteDatabase, document_id: str, organization_id: str, total_chunks: int) -> None:
        db.execute(
            """
            INSERT OR REPLACE INTO knowledge_ingestions
            (table_name, document_id, organization_id, total_chunks, status, detail, started_at, finished_at)
            VALUES (?, ?, ?, ?, ?, NULL, ?, NULL)
            """,
            [self.table_name, document_id, organization_id, total_chunks, STATUS_PENDING, now_ms()],
        )
        db.commit()

    async def finish_ingestion(
        self,
        document_id: str,
        organization_id: str,
        status: str,
        detail: str | None = None,
    ) -> None:
        await self._run(self._finish_sync, document_id, organization_id, status, detail)

    def _finish_sync(
        self,
        db: SQLiteDatabase,
        document_id: str,
        organization_id: str,
        status: str,
        detail: str | None,
    ) -> None:
        db.execute(
            """
            UPDATE knowledge_ingestions SET status = ?, detail = ?, finished_at = ?
            WHERE table_name = ? AND document_id = ? AND organization_id = ?
            """,
            [status, detail, now_ms(), self.table_name, document_id, organization_id],
        )
        db.commit()

    async def ingestion_markers(self, organization_id: str) -> dict[str, IngestionMarker]:
        """Markers for an organization keyed by document id."""
        return await self._run(self._markers_sync, organization_id)

    def _markers_sync(self, db: SQLiteDatabase, organization_id: str) -> dict[str, IngestionMarker]:
        rows = db.query(
            """
            SELECT document_id, organization_id, total_chunks, status, detail, started_at, finished_at
            FROM knowledge_ingestions WHERE table_name = ? AND organization_id = ?
            """,
            [self.table_name, organization_id],
        )
        return {
            row["document_id"]: IngestionMarker(
                document_id=row["document_id"],
                organization_id=row["organization_id"],
                total_chunks=row["total_chunks"],
                status=row["status"],
                detail=row["detail"],
                started_at=row["started_at"],
                finished_at=row["finished_at"],
            )
            for row in rows
        }

    async def clear_ingestion(self, document_id: str, organization_id: str) -> None:
        await self._run(self._clear_marker_sync, document_id, organization_id)

    def _clear_marker_sync(self, db: SQLiteDatabase, document_id: str, organization_id: str) -> None:
        db.execute(
            "DELETE FROM knowledge_ingestions WHERE table_name = ? AND document_id = ? AND organization_id = ?",
            [self.table_name, document_id, organization_id],
        )
        db.commit()


def _row_to_record(row: sqlite3.Row, include_vector: bool) -> ChunkRecord:
    return ChunkRecord(
        id=row["id"],
        document_id=row["document_id"],
        content=row["content"],
        vector=vector_from_bytes(row["vector"]) if include_vector else [],
        metadata=row["metadata"],
    )


def _norm(vector: Sequence[float]) -> float:
    return math.sqrt(sum(value * value for value in vector))


def _cosine(query: Sequence[float], query_norm: float, stored: Sequence[float]) -> float:
    denom = query_norm * _norm(stored)
    if denom == 0:
        return 0.0
    return sum(x * y for x, y in zip(query, stored)) / denom


__all__ = ["VectorStore", "STATUS_PENDING", "STATUS_COMPLETE", "STATUS_FAILED"]
