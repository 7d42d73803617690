"""Tests for JSON log formatting."""

from __future__ import annotations

import logging

import orjson

from agent_kb.core.logging import JsonFormatter


def test_context_fields_are_emitted_without_prefix() -> None:
    record = logging.LogRecord("agent_kb.service", logging.INFO, __file__, 1, "Added %s", ("policy.txt",), None)
    record.ctx_document_id = "doc-1"
    payload = orjson.loads(JsonFormatter().format(record))
    assert payload["message"] == "Added policy.txt"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "agent_kb.service"
    assert payload["document_id"] == "doc-1"
    assert "ctx_document_id" not in payload
