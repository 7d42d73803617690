"""Tests for embedding utilities."""

from __future__ import annotations

import asyncio
import json
from typing import Sequence

import httpx
import pytest

from agent_kb.core.config import Settings
from agent_kb.core.errors import EmbeddingUnavailable
from agent_kb.ingest.embeddings import (
    HashedEmbeddingClient,
    OpenAIEmbeddingClient,
    build_embedder,
    embed_in_order,
    vector_from_bytes,
    vector_to_bytes,
)


def _client(handler, api_key: str | None = "sk-test") -> OpenAIEmbeddingClient:
    return OpenAIEmbeddingClient(
        api_key=api_key,
        base_url="https://embeddings.test/v1",
        transport=httpx.MockTransport(handler),
    )


def test_hashed_embeddings_are_normalized() -> None:
    model = HashedEmbeddingClient(dim=64)
    vectors = model.encode(["hello", "world"])
    assert len(vectors) == 2
    assert all(len(vec) == model.dim for vec in vectors)
    assert abs(sum(value * value for value in vectors[0]) - 1.0) < 1e-6


def test_hashed_embeddings_are_deterministic() -> None:
    first = asyncio.run(HashedEmbeddingClient(dim=64).embed("refund policy"))
    second = asyncio.run(HashedEmbeddingClient(dim=64).embed("refund policy"))
    assert first == second


def test_openai_client_posts_batch_and_orders_by_index() -> None:
    seen: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "data": [
                    {"index": 1, "embedding": [0.0, 1.0]},
                    {"index": 0, "embedding": [1.0, 0.0]},
                ]
            },
        )

    async def scenario() -> list[list[float]]:
        client = _client(handler)
        try:
            return await client.embed_many(["first", "second"])
        finally:
            await client.aclose()

    vectors = asyncio.run(scenario())
    assert vectors == [[1.0, 0.0], [0.0, 1.0]]
    assert seen["url"] == "https://embeddings.test/v1/embeddings"
    assert seen["auth"] == "Bearer sk-test"
    assert seen["body"] == {"model": "text-embedding-3-small", "input": ["first", "second"]}


def test_openai_client_without_key_is_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover - never called
        raise AssertionError("no request expected")

    client = _client(handler, api_key=None)
    assert not client.configured
    with pytest.raises(EmbeddingUnavailable):
        asyncio.run(client.embed("query"))


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, text="upstream error"),
        httpx.Response(200, json={"data": []}),
        httpx.Response(200, json={"data": [{"index": 0}]}),
        httpx.Response(200, text="not json"),
    ],
)
def test_openai_client_failures_raise_unavailable(response: httpx.Response) -> None:
    client = _client(lambda request: response)
    with pytest.raises(EmbeddingUnavailable):
        asyncio.run(client.embed("query"))


def test_openai_client_transport_error_raises_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(EmbeddingUnavailable):
        asyncio.run(_client(handler).embed("query"))


class _SlowFirstEmbedder(HashedEmbeddingClient):
    """Finishes later inputs first to exercise ordering."""

    def __init__(self) -> None:
        super().__init__(dim=16)
        self.active = 0
        self.peak = 0

    async def embed(self, text: str) -> list[float]:
        self.active += 1
        self.peak = max(self.peak, self.active)
        await asyncio.sleep(0.01 * (5 - int(text)))
        self.active -= 1
        return [float(text)] * self.dim

    async def embed_many(self, texts: Sequence[str]) -> list[list[float]]:
        return [await self.embed(text) for text in texts]


def test_embed_in_order_keeps_input_order_and_bounds_concurrency() -> None:
    embedder = _SlowFirstEmbedder()
    vectors = asyncio.run(embed_in_order(embedder, ["0", "1", "2", "3", "4"], concurrency=2))
    assert [vector[0] for vector in vectors] == [0.0, 1.0, 2.0, 3.0, 4.0]
    assert embedder.peak <= 2


def test_build_embedder_selects_backend() -> None:
    hashed = build_embedder(Settings(embedding_backend="hashed", hashed_dim=32))
    assert isinstance(hashed, HashedEmbeddingClient)
    assert hashed.dim == 32

    remote = build_embedder(Settings(embedding_backend="openai", openai_api_key="sk-test"))
    assert isinstance(remote, OpenAIEmbeddingClient)
    assert remote.configured
    asyncio.run(remote.aclose())


def test_vector_blob_round_trip() -> None:
    assert vector_from_bytes(vector_to_bytes([0.5, -1.0, 2.0])) == [0.5, -1.0, 2.0]
