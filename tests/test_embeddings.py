"""Tests for the lazily loaded embedding provider."""
import threading

import pytest

from storesearch.config import Config
from storesearch.embeddings import EmbeddingProvider, get_embedding_provider
from storesearch.errors import EmbeddingError


class CountingFactory:
    def __init__(self, fn):
        self.fn = fn
        self.calls = 0
        self._lock = threading.Lock()

    def __call__(self):
        with self._lock:
            self.calls += 1
        return self.fn


class TestLazyLoading:
    def test_not_loaded_until_first_embed(self, embedding_fn):
        factory = CountingFactory(embedding_fn)
        provider = EmbeddingProvider(factory, name="trigram")
        assert not provider.loaded
        assert factory.calls == 0
        provider.embed(["clos fleuri"])
        assert provider.loaded
        assert factory.calls == 1

    def test_empty_batch_does_not_load(self, embedding_fn):
        factory = CountingFactory(embedding_fn)
        provider = EmbeddingProvider(factory)
        assert provider.embed([]) == []
        assert factory.calls == 0

    def test_loaded_once_across_threads(self, embedding_fn):
        factory = CountingFactory(embedding_fn)
        provider = EmbeddingProvider(factory)
        threads = [threading.Thread(target=provider.embed, args=(["clos"],)) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert factory.calls == 1


class TestEmbed:
    def test_one_vector_per_text(self, embedder):
        vectors = embedder.embed(["le clos fleuri", "villa rose"])
        assert len(vectors) == 2
        assert len(vectors[0]) == len(vectors[1]) == embedder.dimension

    def test_embed_one(self, embedder):
        assert embedder.embed_one("clos") == embedder.embed(["clos"])[0]

    def test_failure_wrapped(self):
        def broken(texts):
            raise RuntimeError("rate limited")

        with pytest.raises(EmbeddingError, match="rate limited"):
            EmbeddingProvider.from_function(broken).embed(["clos"])

    def test_count_mismatch(self):
        provider = EmbeddingProvider.from_function(lambda texts: [[1.0, 0.0]])
        with pytest.raises(EmbeddingError):
            provider.embed(["clos", "fleuri"])

    def test_inconsistent_dimensions(self):
        provider = EmbeddingProvider.from_function(lambda texts: [[1.0, 0.0], [1.0]])
        with pytest.raises(EmbeddingError):
            provider.embed(["clos", "fleuri"])

    def test_empty_vectors(self):
        provider = EmbeddingProvider.from_function(lambda texts: [[] for _ in texts])
        with pytest.raises(EmbeddingError):
            provider.embed(["clos"])

    def test_dimension_change_rejected(self):
        widths = iter([2, 3])
        provider = EmbeddingProvider.from_function(lambda texts: [[1.0] * next(widths) for _ in texts])
        provider.embed(["clos"])
        assert provider.dimension == 2
        with pytest.raises(EmbeddingError, match="expected 2"):
            provider.embed(["fleuri"])


class TestSharedProvider:
    def test_same_model_shared(self):
        config = Config(embedding_model="test-shared-model")
        assert get_embedding_provider(config) is get_embedding_provider(Config(embedding_model="test-shared-model"))

    def test_different_models_not_shared(self):
        a = get_embedding_provider(Config(embedding_model="test-model-a"))
        b = get_embedding_provider(Config(embedding_model="test-model-b"))
        assert a is not b
        assert a.name == "test-model-a"

    def test_explicit_function_bypasses_cache(self, embedding_fn):
        config = Config(embedding_model="test-shared-model")
        provider = get_embedding_provider(config, embedding_fn)
        assert provider is not get_embedding_provider(config)
        assert provider.embed(["clos"])
