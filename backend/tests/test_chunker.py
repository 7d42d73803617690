"""Tests for chunker."""

import pytest

from agent_kb.ingest.chunker import TextChunker, split_text


def _shared_overlap(previous: str, following: str) -> int:
    for size in range(min(len(previous), len(following)), 0, -1):
        if previous.endswith(following[:size]):
            return size
    return 0


def test_long_document_produces_bounded_overlapping_chunks(long_text: str) -> None:
    assert len(long_text) >= 2999
    chunks = split_text(long_text, chunk_size=1000, chunk_overlap=200)
    assert len(chunks) >= 3
    assert all(len(chunk) <= 1000 for chunk in chunks)
    for previous, following in zip(chunks, chunks[1:]):
        assert 0 < _shared_overlap(previous, following) <= 200


def test_chunks_are_ordered_substrings(long_text: str) -> None:
    chunks = split_text(long_text, chunk_size=400, chunk_overlap=50)
    positions = [long_text.find(chunk) for chunk in chunks]
    assert all(position >= 0 for position in positions)
    assert positions == sorted(positions)
    assert chunks[0].startswith("Sentence 000")
    assert chunks[-1].endswith("Sentence 049 explains the refund policy for order handling.")


def test_prefers_paragraph_boundaries() -> None:
    first = "Refunds are issued within thirty days of purchase."
    second = "Shipping is free for orders above fifty dollars."
    chunks = split_text(f"{first}\n\n{second}", chunk_size=60, chunk_overlap=0)
    assert chunks == [first, second]


def test_unbroken_text_is_cut_by_characters() -> None:
    text = "x" * 2500
    chunks = split_text(text, chunk_size=1000, chunk_overlap=200)
    assert [len(chunk) for chunk in chunks] == [1000, 1000, 900]


def test_short_text_is_single_chunk() -> None:
    assert split_text("  Just one line.  ") == ["Just one line."]


def test_blank_text_yields_no_chunks() -> None:
    assert split_text("") == []
    assert split_text(" \n\n\t ") == []


def test_chunking_is_deterministic(long_text: str) -> None:
    chunker = TextChunker(chunk_size=500, chunk_overlap=100)
    assert chunker.split(long_text) == chunker.split(long_text)


@pytest.mark.parametrize(
    ("chunk_size", "chunk_overlap"),
    [(0, 0), (100, 100), (100, -1)],
)
def test_invalid_sizes_rejected(chunk_size: int, chunk_overlap: int) -> None:
    with pytest.raises(ValueError):
        split_text("some text", chunk_size=chunk_size, chunk_overlap=chunk_overlap)
