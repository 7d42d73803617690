"""Embedding clients."""

from __future__ import annotations

import asyncio
import hashlib
import math
import re
from array import array
from typing import Iterable, Protocol, Sequence

import httpx

from agent_kb.core.config import Settings
from agent_kb.core.errors import EmbeddingUnavailable
from agent_kb.core.logging import get_logger
from agent_kb.core.metrics import EMBEDDING_FAILURES

logger = get_logger(__name__)

_TOKEN_RE = re.compile(r"\w+")


class Embedder(Protocol):
    """Turns text into fixed-length vectors."""

    model: str

    @property
    def configured(self) -> bool: ...

    async def embed(self, text: str) -> list[float]: ...

    async def embed_many(self, texts: Sequence[str]) -> list[list[float]]: ...

    async def aclose(self) -> None: ...


class OpenAIEmbeddingClient:
    """Async client for an OpenAI-compatible ``/embeddings`` endpoint."""

    backend = "openai"

    def __init__(
        self,
        api_key: str | None,
        model: str = "text-embedding-3-small",
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 30.0,
        max_chars: int = 30000,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.model = model
        self._api_key = api_key
        self._max_chars = max_chars
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "OpenAIEmbeddingClient":
        return cls(
            api_key=settings.resolved_api_key,
            model=settings.embedding_model,
            base_url=settings.embedding_base_url,
            timeout=settings.embedding_timeout,
            max_chars=settings.embedding_max_chars,
        )

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def embed(self, text: str) -> list[float]:
        vectors = await self.embed_many([text])
        return vectors[0]

    async def embed_many(self, texts: Sequence[str]) -> list[list[float]]:
        if not self._api_key:
            raise EmbeddingUnavailable("OPENAI_API_KEY is not configured")
        if not texts:
            return []
        payload = {"model": self.model, "input": [text[: self._max_chars] for text in texts]}
        try:
            response = await self._client.post(
                "/embeddings",
                json=payload,
                headers={"Authorization": f"Bearer {self._api_key}"},
            )
        except httpx.HTTPError as exc:
            EMBEDDING_FAILURES.labels(backend=self.backend).inc()
            raise EmbeddingUnavailable(f"request to embedding API failed: {exc}") from exc
        if response.status_code != 200:
            EMBEDDING_FAILURES.labels(backend=self.backend).inc()
            logger.error(
                "Embedding request failed: status %d, body: %s",
                response.status_code,
                response.text[:200],
            )
            raise EmbeddingUnavailable(f"embedding API returned status {response.status_code}")
        try:
            body = response.json()
        except ValueError as exc:
            raise EmbeddingUnavailable("embedding API returned invalid JSON") from exc
        return _extract_vectors(body, expected=len(texts))

    async def aclose(self) -> None:
        await self._client.aclose()


class HashedEmbeddingClient:
    """Lightweight hashed embedding model with deterministic output."""

    backend = "hashed"

    def __init__(self, model: str = "hashed", dim: int = 384) -> None:
        self.model = model
        self._dim = dim

    @property
    def dim(self) -> int:
        return self._dim

    @property
    def configured(self) -> bool:
        return True

    def encode(self, texts: Iterable[str]) -> list[list[float]]:
        vectors: list[list[float]] = []
        for text in texts:
            vector = [0.0] * self._dim
            for token in _tokenize(text):
                vector[_hash_token(token, self._dim)] += 1.0
            _normalize(vector)
            vectors.append(vector)
        return vectors

    async def embed(self, text: str) -> list[float]:
        return self.encode([text])[0]

    async def embed_many(self, texts: Sequence[str]) -> list[list[float]]:
        return self.encode(texts)

    async def aclose(self) -> None:
        return None


async def embed_in_order(embedder: Embedder, texts: Sequence[str], concurrency: int = 4) -> list[list[float]]:
    """Embed texts concurrently, returning vectors in input order."""
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def _one(text: str) -> list[float]:
        async with semaphore:
            return await embedder.embed(text)

    return list(await asyncio.gather(*(_one(text) for text in texts)))


def build_embedder(settings: Settings) -> Embedder:
    if settings.embedding_backend == "hashed":
        return HashedEmbeddingClient(model=settings.embedding_model, dim=settings.hashed_dim)
    client = OpenAIEmbeddingClient.from_settings(settings)
    if not client.configured:
        logger.warning("OpenAI API key not found. Knowledge base features will be limited.")
    return client


def vector_to_bytes(vector: Sequence[float]) -> bytes:
    return array("f", vector).tobytes()


def vector_from_bytes(blob: bytes) -> list[float]:
    floats = array("f")
    floats.frombytes(blob)
    return list(floats)


def _extract_vectors(response_data: dict, expected: int) -> list[list[float]]:
    data = response_data.get("data") if isinstance(response_data, dict) else None
    if not data or len(data) != expected:
        raise EmbeddingUnavailable("embedding API response does not contain the expected embeddings")
    try:
        ordered = sorted(data, key=lambda item: item.get("index", 0))
        vectors = [[float(value) for value in item["embedding"]] for item in ordered]
    except (KeyError, TypeError, ValueError) as exc:
        raise EmbeddingUnavailable(f"malformed embedding payload: {exc}") from exc
    if any(not vector for vector in vectors):
        raise EmbeddingUnavailable("embedding API returned an empty vector")
    return vectors


def _tokenize(text: str) -> list[str]:
    return _TOKEN_RE.findall(text.lower())


def _hash_token(token: str, dim: int) -> int:
    digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
    value = int.from_bytes(digest, "big")
    return value % dim


def _normalize(vector: list[float]) -> None:
    norm = math.sqrt(sum(value * value for value in vector))
    if norm == 0:
        return
    inv = 1.0 / norm
    for idx, value in enumerate(vector):
        vector[idx] = value * inv


__all__ = [
    "Embedder",
    "OpenAIEmbeddingClient",
    "HashedEmbeddingClient",
    "embed_in_order",
    "build_embedder",
    "vector_to_bytes",
    "vector_from_bytes",
]
