"""Test fixtures for the agent knowledge base."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Callable, Iterator, Sequence

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from agent_kb.core.config import Settings  # noqa: E402
from agent_kb.core.errors import EmbeddingUnavailable  # noqa: E402
from agent_kb.ingest.embeddings import HashedEmbeddingClient  # noqa: E402
from agent_kb.service import KnowledgeBaseService  # noqa: E402
from agent_kb.store import VectorStore  # noqa: E402


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Reset global singletons and environment between tests."""
    monkeypatch.setenv("AGKB_STORE_PATH", str(tmp_path / "vector_db" / "knowledge.db"))
    monkeypatch.setenv("AGKB_EMBEDDING_BACKEND", "hashed")
    monkeypatch.setenv("AGKB_LOG_JSON", "false")
    monkeypatch.delenv("AGKB_CONFIG", raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    from agent_kb.api import dependencies as deps
    from agent_kb.core.config import get_settings

    get_settings.cache_clear()
    deps.get_app_settings.cache_clear()
    deps._SERVICE = None
    yield
    get_settings.cache_clear()
    deps.get_app_settings.cache_clear()
    deps._SERVICE = None


class CountingEmbedder(HashedEmbeddingClient):
    """Hashed embedder that records every text it embeds."""

    def __init__(self, dim: int = 256) -> None:
        super().__init__(model="counting", dim=dim)
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        return await super().embed(text)


class FailingEmbedder(HashedEmbeddingClient):
    """Embedder that fails once ``fail_after`` texts have been embedded."""

    def __init__(self, fail_after: int = 0, dim: int = 256) -> None:
        super().__init__(model="failing", dim=dim)
        self.fail_after = fail_after
        self.calls = 0

    async def embed(self, text: str) -> list[float]:
        self.calls += 1
        if self.calls > self.fail_after:
            raise EmbeddingUnavailable("simulated outage")
        return await super().embed(text)

    async def embed_many(self, texts: Sequence[str]) -> list[list[float]]:
        return [await self.embed(text) for text in texts]


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        store_path=tmp_path / "kb" / "knowledge.db",
        embedding_backend="hashed",
        hashed_dim=256,
        log_json=False,
    )


@pytest.fixture
def store(settings: Settings) -> Iterator[VectorStore]:
    vector_store = VectorStore(settings.store_path, table_name=settings.table_name)
    asyncio.run(vector_store.open())
    yield vector_store
    asyncio.run(vector_store.close())


@pytest.fixture
def embedder() -> CountingEmbedder:
    return CountingEmbedder(dim=256)


@pytest.fixture
def service(store: VectorStore, embedder: CountingEmbedder, settings: Settings) -> KnowledgeBaseService:
    return KnowledgeBaseService(store=store, embedder=embedder, settings=settings)


@pytest.fixture
def failing_embedder() -> Callable[..., FailingEmbedder]:
    return FailingEmbedder


@pytest.fixture
def make_service(store: VectorStore, settings: Settings) -> Callable[..., KnowledgeBaseService]:
    """Build a service over the shared store with a custom embedder."""

    def _make(embedder, **overrides) -> KnowledgeBaseService:
        service_settings = settings.model_copy(update=overrides) if overrides else settings
        return KnowledgeBaseService(store=store, embedder=embedder, settings=service_settings)

    return _make


@pytest.fixture(scope="session")
def long_text() -> str:
    """Fifty 60-character sentences, 3000 characters in total."""
    return "".join(
        f"Sentence {idx:03d} explains the refund policy for order handling. " for idx in range(50)
    ).strip()
