"""Chunking utilities."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

DEFAULT_CHUNK_SIZE = 1000
DEFAULT_CHUNK_OVERLAP = 200

# Paragraph, line, sentence, clause, word, then a hard character cut.
DEFAULT_SEPARATORS: tuple[str, ...] = ("\n\n", "\n", ". ", "! ", "? ", ", ", " ", "")


def split_text(
    text: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
    separators: Sequence[str] = DEFAULT_SEPARATORS,
) -> list[str]:
    """Split text into ordered, overlapping chunks of at most ``chunk_size`` characters.

    Separators are kept at the end of the piece they close, so each chunk is a
    contiguous substring of ``text`` with surrounding whitespace trimmed.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if chunk_overlap < 0 or chunk_overlap >= chunk_size:
        raise ValueError("chunk_overlap must be between 0 and chunk_size")
    if not text.strip():
        return []
    return _split_recursive(text, list(separators), chunk_size, chunk_overlap)


def _split_recursive(text: str, separators: list[str], chunk_size: int, chunk_overlap: int) -> list[str]:
    separator = separators[-1]
    remaining: list[str] = []
    for idx, candidate in enumerate(separators):
        if candidate == "":
            separator = candidate
            break
        if candidate in text:
            separator = candidate
            remaining = separators[idx + 1 :]
            break

    chunks: list[str] = []
    pending: list[str] = []
    for piece in _split_keep_separator(text, separator):
        if len(piece) < chunk_size:
            pending.append(piece)
            continue
        if pending:
            chunks.extend(_merge_pieces(pending, chunk_size, chunk_overlap))
            pending = []
        if remaining:
            chunks.extend(_split_recursive(piece, remaining, chunk_size, chunk_overlap))
        else:
            stripped = piece.strip()
            if stripped:
                chunks.append(stripped)
    if pending:
        chunks.extend(_merge_pieces(pending, chunk_size, chunk_overlap))
    return chunks


def _split_keep_separator(text: str, separator: str) -> list[str]:
    if separator == "":
        return list(text)
    parts = text.split(separator)
    pieces = [part + separator for part in parts[:-1]]
    pieces.append(parts[-1])
    return [piece for piece in pieces if piece]


def _merge_pieces(pieces: Sequence[str], chunk_size: int, chunk_overlap: int) -> list[str]:
    """Greedily pack pieces into chunks, carrying a tail of up to ``chunk_overlap`` characters."""
    merged: list[str] = []
    window: list[str] = []
    total = 0
    for piece in pieces:
        length = len(piece)
        if window and total + length > chunk_size:
            chunk = "".join(window).strip()
            if chunk:
                merged.append(chunk)
            while window and (total > chunk_overlap or total + length > chunk_size):
                total -= len(window.pop(0))
        window.append(piece)
        total += length
    chunk = "".join(window).strip()
    if chunk:
        merged.append(chunk)
    return merged


@dataclass(slots=True)
class TextChunker:
    """Chunker bound to fixed size and overlap settings."""

    chunk_size: int = DEFAULT_CHUNK_SIZE
    chunk_overlap: int = DEFAULT_CHUNK_OVERLAP

    def split(self, text: str) -> list[str]:
        return split_text(text, chunk_size=self.chunk_size, chunk_overlap=self.chunk_overlap)


__all__ = ["split_text", "TextChunker", "DEFAULT_CHUNK_SIZE", "DEFAULT_CHUNK_OVERLAP", "DEFAULT_SEPARATORS"]
