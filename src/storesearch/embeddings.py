# Storesearch – Approximate text search for schema-less document stores
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Embedding provider: normalized text -> fixed-dimension float vectors.

Loading a model is expensive, so the underlying chromadb embedding
function is built on the first embed() call and shared afterwards.
Providers are memoised per (provider, model) for the whole process.
"""
import logging
import threading
from typing import Callable, Optional, Sequence

from chromadb.utils import embedding_functions

from .config import Config
from .errors import EmbeddingError

logger = logging.getLogger(__name__)

_provider_cache: dict[tuple[str, str], "EmbeddingProvider"] = {}
_provider_lock = threading.Lock()


def _build_embedding_function(config: Config):
    if config.embedding_provider == "local":
        return embedding_functions.SentenceTransformerEmbeddingFunction(
            model_name=config.embedding_model
        )
    return embedding_functions.OpenAIEmbeddingFunction(
        api_key=config.openai_api_key,
        model_name=config.openai_embedding_model,
    )


class EmbeddingProvider:
    """Lazily initialised, read-only handle around an embedding function."""

    def __init__(self, factory: Callable[[], Callable], name: str = ""):
        self._factory = factory
        self._ef = None
        self._init_lock = threading.Lock()
        self._dimension: Optional[int] = None
        self.name = name

    @classmethod
    def from_config(cls, config: Config) -> "EmbeddingProvider":
        return cls(lambda: _build_embedding_function(config), name=config.active_embedding_model)

    @classmethod
    def from_function(cls, embedding_fn, name: str = "custom") -> "EmbeddingProvider":
        return cls(lambda: embedding_fn, name=name)

    @property
    def loaded(self) -> bool:
        return self._ef is not None

    def _function(self):
        if self._ef is None:
            with self._init_lock:
                if self._ef is None:
                    logger.info("Loading embedding model '%s'", self.name)
                    self._ef = self._factory()
        return self._ef

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        """Vectorize all texts in one batched call."""
        texts = list(texts)
        if not texts:
            return []
        try:
            raw = self._function()(texts)
        except EmbeddingError:
            raise
        except Exception as e:
            raise EmbeddingError(f"Embedding call failed for {len(texts)} text(s): {e}") from e
        if raw is None or len(raw) != len(texts):
            got = 0 if raw is None else len(raw)
            raise EmbeddingError(f"Embedding provider returned {got} vectors for {len(texts)} texts")
        vectors = [[float(x) for x in v] for v in raw]
        dims = {len(v) for v in vectors}
        if len(dims) != 1 or 0 in dims:
            raise EmbeddingError(f"Embedding provider returned inconsistent dimensions: {sorted(dims)}")
        dimension = dims.pop()
        if self._dimension is None:
            self._dimension = dimension
        elif dimension != self._dimension:
            raise EmbeddingError(
                f"Embedding provider '{self.name}' returned {dimension} dimensions, "
                f"expected {self._dimension}"
            )
        return vectors

    def embed_one(self, text: str) -> list[float]:
        return self.embed([text])[0]

    @property
    def dimension(self) -> int:
        if self._dimension is None:
            self.embed([" "])
        return self._dimension


def get_embedding_provider(config: Config, embedding_fn=None) -> EmbeddingProvider:
    """Shared provider for the configured model. An explicit embedding_fn
    bypasses the cache (tests, already-loaded models)."""
    if embedding_fn is not None:
        return EmbeddingProvider.from_function(embedding_fn)
    key = (config.embedding_provider, config.active_embedding_model)
    with _provider_lock:
        provider = _provider_cache.get(key)
        if provider is None:
            provider = EmbeddingProvider.from_config(config)
            _provider_cache[key] = provider
        return provider
