"""Text extraction for uploaded files."""

from __future__ import annotations

import io
from pathlib import PurePath

import fitz
import orjson
from docx import Document
from markdown_it import MarkdownIt

from agent_kb.core.errors import ExtractionFailed, UnsupportedFileType
from agent_kb.ingest.types import ExtractedDocument
from agent_kb.utils.text import clean_text

_MD = MarkdownIt()

DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


class BaseExtractor:
    """Common extractor interface."""

    suffixes: tuple[str, ...] = ()
    mime_types: tuple[str, ...] = ()

    def matches_mime(self, mime_type: str) -> bool:
        return _base_mime(mime_type) in self.mime_types

    def matches_name(self, filename: str) -> bool:
        return PurePath(filename).suffix.lower() in self.suffixes

    def extract(self, data: bytes, filename: str) -> ExtractedDocument:  # pragma: no cover - interface
        raise NotImplementedError


class PDFExtractor(BaseExtractor):
    suffixes = (".pdf",)
    mime_types = ("application/pdf",)

    def extract(self, data: bytes, filename: str) -> ExtractedDocument:
        with fitz.open(stream=data, filetype="pdf") as doc:
            pages = [page.get_text("text", sort=True) for page in doc]
        return ExtractedDocument(
            filename=filename,
            mime=self.mime_types[0],
            text=clean_text("\n\n".join(pages)),
            metadata={"page_count": len(pages)},
        )


class DocxExtractor(BaseExtractor):
    suffixes = (".docx",)
    mime_types = (DOCX_MIME,)

    def extract(self, data: bytes, filename: str) -> ExtractedDocument:
        document = Document(io.BytesIO(data))
        paragraphs = [para.text for para in document.paragraphs if para.text.strip()]
        return ExtractedDocument(
            filename=filename,
            mime=self.mime_types[0],
            text=clean_text("\n\n".join(paragraphs)),
            metadata={"title": document.core_properties.title or None},
        )


class PlainTextExtractor(BaseExtractor):
    suffixes = (".txt", ".text")
    mime_types = ("text/plain",)

    def extract(self, data: bytes, filename: str) -> ExtractedDocument:
        return ExtractedDocument(
            filename=filename,
            mime=self.mime_types[0],
            text=clean_text(data.decode("utf-8", errors="replace")),
        )


class CsvExtractor(PlainTextExtractor):
    suffixes = (".csv",)
    mime_types = ("text/csv",)


class MarkdownExtractor(BaseExtractor):
    suffixes = (".md", ".markdown")
    mime_types = ("text/markdown", "text/x-markdown")

    def extract(self, data: bytes, filename: str) -> ExtractedDocument:
        source = data.decode("utf-8", errors="replace")
        blocks = [token.content.strip() for token in _MD.parse(source) if token.content.strip()]
        return ExtractedDocument(
            filename=filename,
            mime=self.mime_types[0],
            text=clean_text("\n\n".join(blocks) if blocks else source),
        )


class JsonExtractor(BaseExtractor):
    suffixes = (".json",)
    mime_types = ("application/json",)

    def extract(self, data: bytes, filename: str) -> ExtractedDocument:
        try:
            text = orjson.dumps(orjson.loads(data), option=orjson.OPT_INDENT_2).decode("utf-8")
        except orjson.JSONDecodeError:
            text = data.decode("utf-8", errors="replace")
        return ExtractedDocument(filename=filename, mime=self.mime_types[0], text=clean_text(text))


class ExtractorRegistry:
    """Registry that selects an extractor by mime type, then by file suffix."""

    def __init__(self) -> None:
        self._extractors: list[BaseExtractor] = [
            PDFExtractor(),
            DocxExtractor(),
            PlainTextExtractor(),
            MarkdownExtractor(),
            CsvExtractor(),
            JsonExtractor(),
        ]

    def for_file(self, mime_type: str, filename: str) -> BaseExtractor | None:
        for extractor in self._extractors:
            if extractor.matches_mime(mime_type):
                return extractor
        for extractor in self._extractors:
            if extractor.matches_name(filename):
                return extractor
        return None

    def supported_suffixes(self) -> list[str]:
        return [suffix for extractor in self._extractors for suffix in extractor.suffixes]

    def is_supported(self, mime_type: str, filename: str) -> bool:
        return self.for_file(mime_type, filename) is not None

    def extract(self, data: bytes, mime_type: str, filename: str) -> ExtractedDocument:
        extractor = self.for_file(mime_type, filename)
        if extractor is None:
            raise UnsupportedFileType(mime_type, filename)
        try:
            return extractor.extract(data, filename)
        except Exception as exc:
            raise ExtractionFailed(filename, str(exc) or exc.__class__.__name__) from exc


_REGISTRY = ExtractorRegistry()


def extract_text_from_file(data: bytes, mime_type: str, filename: str) -> str:
    """Convert uploaded file bytes into a single text string."""
    return _REGISTRY.extract(data, mime_type, filename).text


def extract_document(data: bytes, mime_type: str, filename: str) -> ExtractedDocument:
    return _REGISTRY.extract(data, mime_type, filename)


def supported_file_types() -> list[str]:
    return _REGISTRY.supported_suffixes()


def is_supported(mime_type: str, filename: str) -> bool:
    return _REGISTRY.is_supported(mime_type, filename)


def _base_mime(mime_type: str) -> str:
    return (mime_type or "").split(";", 1)[0].strip().lower()


__all__ = [
    "ExtractorRegistry",
    "extract_text_from_file",
    "extract_document",
    "supported_file_types",
    "is_supported",
]
