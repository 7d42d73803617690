"""Versioned chunk metadata record stored as a JSON blob."""

from __future__ import annotations

from typing import Any, Literal

import orjson
from pydantic import BaseModel, Field, ValidationError

from agent_kb.core.logging import get_logger

logger = get_logger(__name__)

METADATA_VERSION = 1


class ChunkMetadata(BaseModel):
    """Metadata attached to every chunk.

    Serialized keys are camelCase so blobs written before the ``v`` key existed
    still parse; a missing version is read as version 1.
    """

    version: Literal[1] = Field(default=METADATA_VERSION, alias="v")
    name: str
    agent_ids: list[str] = Field(default_factory=list, alias="agentIds")
    organization_id: str = Field(alias="organizationId")
    chunk_index: int = Field(alias="chunkIndex", ge=0)
    total_chunks: int = Field(alias="totalChunks", ge=1)

    model_config = {
        "populate_by_name": True,
        "frozen": True,
        "extra": "ignore",
    }

    def visible_to(self, organization_id: str, agent_id: str | None = None) -> bool:
        if self.organization_id != organization_id:
            return False
        return agent_id is None or agent_id in self.agent_ids

    def to_json(self) -> str:
        return orjson.dumps(self.model_dump(by_alias=True)).decode("utf-8")

    @classmethod
    def from_json(cls, raw: str | bytes | dict[str, Any]) -> "ChunkMetadata":
        data = orjson.loads(raw) if isinstance(raw, (str, bytes)) else raw
        return cls.model_validate(data)


def parse_metadata(raw: str | bytes | dict[str, Any] | None, record_id: str = "") -> ChunkMetadata | None:
    """Parse a stored blob, returning None for records that cannot be read."""
    if raw is None:
        logger.warning("Chunk %s has no metadata", record_id)
        return None
    try:
        return ChunkMetadata.from_json(raw)
    except (orjson.JSONDecodeError, ValidationError) as exc:
        logger.warning("Skipping chunk %s with unreadable metadata: %s", record_id, exc)
        return None


__all__ = ["METADATA_VERSION", "ChunkMetadata", "parse_metadata"]
