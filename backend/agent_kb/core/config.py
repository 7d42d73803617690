"""Application configuration handling."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Mapping

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

ENV_PREFIX = "AGKB_"
DEFAULT_CONFIG_PATH = Path("~/.config/agent-kb/config.yaml")

_YAML_KEY_MAP: Mapping[tuple[str, ...], str] = {
    ("storage", "path"): "store_path",
    ("storage", "table"): "table_name",
    ("embeddings", "backend"): "embedding_backend",
    ("embeddings", "model"): "embedding_model",
    ("embeddings", "base_url"): "embedding_base_url",
    ("embeddings", "api_key"): "openai_api_key",
    ("embeddings", "timeout"): "embedding_timeout",
    ("embeddings", "max_chars"): "embedding_max_chars",
    ("embeddings", "concurrency"): "embed_concurrency",
    ("embeddings", "hashed_dim"): "hashed_dim",
    ("chunking", "size"): "chunk_size",
    ("chunking", "overlap"): "chunk_overlap",
    ("retrieval", "overfetch_factor"): "overfetch_factor",
    ("retrieval", "default_limit"): "default_search_limit",
    ("uploads", "max_files"): "max_upload_files",
    ("uploads", "max_bytes"): "max_upload_bytes",
    ("logging", "level"): "log_level",
    ("logging", "json"): "log_json",
}


class Settings(BaseModel):
    """Runtime configuration loaded from YAML file and environment variables."""

    store_path: Path = Field(default=Path("vector_db") / "knowledge.db")
    table_name: str = "knowledge_documents"
    embedding_backend: Literal["openai", "hashed"] = "openai"
    embedding_model: str = "text-embedding-3-small"
    embedding_base_url: str = "https://api.openai.com/v1"
    openai_api_key: str | None = None
    embedding_timeout: float = 30.0
    embedding_max_chars: int = 30000
    embed_concurrency: int = Field(default=4, ge=1)
    hashed_dim: int = Field(default=384, ge=8)
    chunk_size: int = Field(default=1000, ge=1)
    chunk_overlap: int = Field(default=200, ge=0)
    # Similarity search requests limit * overfetch_factor rows before tenant
    # filtering; results under-fill when more neighbours than that belong to
    # other tenants or agents.
    overfetch_factor: int = Field(default=3, ge=1)
    default_search_limit: int = Field(default=5, ge=1)
    max_upload_files: int = 10
    max_upload_bytes: int = 10 * 1024 * 1024
    log_level: str = "INFO"
    log_json: bool = True

    model_config = {
        "validate_assignment": True,
        "extra": "ignore",
    }

    @field_validator("store_path", mode="before")
    @classmethod
    def _expand_store_path(cls, value: Any) -> Path:
        if isinstance(value, Path):
            return value.expanduser()
        if isinstance(value, str):
            return Path(value).expanduser()
        raise TypeError("store_path must be a path or string")

    @field_validator("table_name")
    @classmethod
    def _check_table_name(cls, value: str) -> str:
        if not value or not value.replace("_", "").isalnum() or not value[0].isalpha():
            raise ValueError(f"Invalid table name: {value}")
        return value

    @model_validator(mode="after")
    def _check_chunking(self) -> "Settings":
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError("chunk_overlap must be smaller than chunk_size")
        return self

    @property
    def resolved_api_key(self) -> str | None:
        return self.openai_api_key or os.environ.get("OPENAI_API_KEY") or None

    @classmethod
    def from_yaml(cls, path: Path | None = None) -> "Settings":
        """Load YAML config and overlay env vars; fall back to defaults."""
        config_path = cls._resolve_config_path(path)
        data: dict[str, Any] = {}
        if config_path and config_path.exists():
            with config_path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
            data.update(_flatten_yaml(raw))
        data.update(_load_env_overrides())
        return cls(**data)

    @staticmethod
    def _resolve_config_path(path: Path | None) -> Path | None:
        if path is not None:
            return path.expanduser()
        env_path = os.environ.get(f"{ENV_PREFIX}CONFIG")
        if env_path:
            return Path(env_path).expanduser()
        resolved_default = DEFAULT_CONFIG_PATH.expanduser()
        return resolved_default if resolved_default.exists() else None


def _flatten_yaml(raw: Mapping[str, Any], prefix: tuple[str, ...] = ()) -> dict[str, Any]:
    """Flatten nested YAML configuration to Settings field names."""
    flat: dict[str, Any] = {}
    for key, value in raw.items():
        next_prefix = prefix + (key,)
        if isinstance(value, Mapping):
            flat.update(_flatten_yaml(value, prefix=next_prefix))
        else:
            mapped_key = _YAML_KEY_MAP.get(next_prefix)
            if mapped_key:
                flat[mapped_key] = value
            elif key in Settings.model_fields:
                flat[key] = value
    return flat


def _load_env_overrides() -> dict[str, Any]:
    """Map environment variables with AGKB_ prefix into Settings fields."""
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        field_name = key[len(ENV_PREFIX) :].lower()
        if field_name in Settings.model_fields:
            overrides[field_name] = value
    return overrides


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings accessor for dependency injection."""
    return Settings.from_yaml()


__all__ = ["Settings", "get_settings"]
