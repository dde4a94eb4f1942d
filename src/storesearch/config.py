# Storesearch – Approximate text search for schema-less document stores
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Central configuration – configurable via:
1. Environment variables (SEARCH_ prefix)
2. .env file
3. JSON overrides file (default /data/config.json)
"""
import json
import logging
from pathlib import Path
from typing import Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings

from .models import FieldSpec

logger = logging.getLogger(__name__)

CONFIG_FILE = Path("/data/config.json")
DEFAULT_DISTANCE_THRESHOLD = 0.2


class Config(BaseSettings):
    # ── Index collection ─────────────────────────
    collection_name: str = "search_index"
    vectorstore_path: str = "/data/vectorstore"
    search_mode: Literal["vector", "lexical"] = "vector"

    # ── Embeddings ───────────────────────────────
    embedding_provider: Literal["local", "openai"] = "local"
    embedding_model: str = "all-MiniLM-L6-v2"
    openai_api_key: str = ""
    openai_embedding_model: str = "text-embedding-3-small"

    # ── Indexed fields ───────────────────────────
    vector_field_prefix: str = "_vector"
    index_fields: list[FieldSpec] = []
    word_min_length: int = 3
    word_max_length: int = 50
    max_fragment_length: int = 8

    # ── Search ───────────────────────────────────
    distance_threshold: float = DEFAULT_DISTANCE_THRESHOLD
    default_limit: int = 10
    hybrid_rerank: bool = True
    combine_strategy: Literal["max", "sum", "weighted_sum"] = "max"

    # ── Writes ───────────────────────────────────
    bulk_flush_every: int = 500
    delete_batch_size: int = 500
    reindex_order: Literal["delete_first", "create_first"] = "delete_first"

    class Config:
        env_prefix = "SEARCH_"
        env_file = ".env"

    @field_validator("distance_threshold")
    @classmethod
    def _threshold_in_range(cls, value: float) -> float:
        if not 0 < value < 1:
            logger.warning(
                "distance_threshold=%s must be > 0 and < 1, using default %s",
                value, DEFAULT_DISTANCE_THRESHOLD,
            )
            return DEFAULT_DISTANCE_THRESHOLD
        return value

    @field_validator("word_min_length", "bulk_flush_every", "delete_batch_size", "default_limit")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be >= 1")
        return value

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "Config":
        """Load config: ENV -> .env -> JSON overrides file."""
        config_file = path or CONFIG_FILE
        overrides: dict = {}
        if config_file.exists():
            try:
                raw = json.loads(config_file.read_text())
                overrides = {
                    k: v for k, v in raw.items()
                    if k in cls.model_fields and v != ""
                }
            except Exception as e:
                logger.warning("Config file error in %s: %s", config_file, e)
        return cls(**overrides)

    def save(self, path: Optional[Path] = None):
        config_file = path or CONFIG_FILE
        config_file.parent.mkdir(parents=True, exist_ok=True)
        config_file.write_text(
            json.dumps(self.model_dump(mode="json"), indent=2, default=str)
        )

    def to_safe_dict(self) -> dict:
        """Config without secrets (for status output)."""
        d = self.model_dump(mode="json")
        if d.get("openai_api_key"):
            d["openai_api_key"] = d["openai_api_key"][:8] + "..."
        return d

    @property
    def active_embedding_model(self) -> str:
        if self.embedding_provider == "local":
            return self.embedding_model
        return self.openai_embedding_model
