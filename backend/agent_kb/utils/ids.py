"""ID helpers."""

from __future__ import annotations

import uuid

DOCUMENT_ID_PREFIX = "doc"


def new_document_id() -> str:
    """Random document id for uploads that do not name one."""
    return f"{DOCUMENT_ID_PREFIX}_{uuid.uuid4().hex}"
