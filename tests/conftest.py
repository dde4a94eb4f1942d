import hashlib
import math

import chromadb
import pytest

from storesearch.config import Config
from storesearch.embeddings import EmbeddingProvider
from storesearch.engine import SearchEngine
from storesearch.health import HealthTracker
from storesearch.indexer import Indexer
from storesearch.models import FieldSpec
from storesearch.search import Searcher
from storesearch.store import ChromaDocumentStore


class TrigramEmbedding:
    """Deterministic stand-in for a sentence model: hashed character
    trigram counts, L2-normalized. Texts sharing most trigrams end up
    close in cosine distance."""

    dims = 1024

    def __init__(self):
        self.calls = 0

    def __call__(self, input):
        self.calls += 1
        return [self._vector(text) for text in input]

    def _vector(self, text):
        padded = f" {text.lower()} "
        vec = [0.0] * self.dims
        for i in range(len(padded) - 2):
            gram = padded[i:i + 3].encode()
            vec[int(hashlib.md5(gram).hexdigest(), 16) % self.dims] += 1.0
        norm = math.sqrt(sum(x * x for x in vec)) or 1.0
        return [x / norm for x in vec]


@pytest.fixture
def config(tmp_path):
    """Config for a vector index over "name", stored under tmp_path."""
    return Config(
        collection_name="places",
        vectorstore_path=str(tmp_path / "vectorstore"),
        index_fields=[FieldSpec(name="name")],
    )


@pytest.fixture
def lexical_config(tmp_path):
    return Config(
        collection_name="places",
        vectorstore_path=str(tmp_path / "vectorstore"),
        search_mode="lexical",
        index_fields=[FieldSpec(name="name")],
    )


@pytest.fixture
def chroma(config):
    return chromadb.PersistentClient(path=config.vectorstore_path)


@pytest.fixture
def embedding_fn():
    return TrigramEmbedding()


@pytest.fixture
def embedder(embedding_fn):
    return EmbeddingProvider.from_function(embedding_fn, name="trigram")


@pytest.fixture
def store(chroma, config):
    return ChromaDocumentStore(chroma, config.collection_name)


@pytest.fixture
def indexer(store, embedder, config):
    return Indexer(store, embedder, config)


@pytest.fixture
def searcher(store, embedder, config):
    return Searcher(store, embedder, config)


@pytest.fixture
def lexical_indexer(store, lexical_config):
    return Indexer(store, None, lexical_config)


@pytest.fixture
def lexical_searcher(store, lexical_config):
    return Searcher(store, None, lexical_config)


@pytest.fixture
def health():
    return HealthTracker()


@pytest.fixture
def engine(config, chroma, embedding_fn, health):
    return SearchEngine(config, client=chroma, embedding_fn=embedding_fn, health=health)

