# Storesearch – Approximate text search for schema-less document stores
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
SearchEngine: one configured index collection with its store, embedding
provider, indexer and searcher. This is what glue code (HTTP routes,
change triggers, batch jobs) talks to.
"""
import logging
from typing import Iterable, Mapping, Optional

import chromadb

from .config import Config
from .embeddings import get_embedding_provider
from .errors import SearchEngineError, ValidationError
from .health import HealthTracker
from .indexer import Indexer
from .models import PATH_KEY, SearchResult, coerce_field_specs
from .search import Searcher
from .store import ChromaDocumentStore

logger = logging.getLogger(__name__)


class SearchEngine:
    def __init__(self, config: Optional[Config] = None, client=None, embedding_fn=None,
                 health: Optional[HealthTracker] = None):
        self.config = config or Config.load()
        if not self.config.collection_name or not self.config.collection_name.strip():
            raise ValidationError("collection_name is required and must be a non-empty string.")
        self.chroma = client if client is not None else chromadb.PersistentClient(
            path=self.config.vectorstore_path
        )
        self.store = ChromaDocumentStore(self.chroma, self.config.collection_name)
        if self.config.search_mode == "vector":
            self.embedder = get_embedding_provider(self.config, embedding_fn)
        else:
            self.embedder = None
        self.indexer = Indexer(self.store, self.embedder, self.config)
        self.searcher = Searcher(self.store, self.embedder, self.config)
        self.health = health or HealthTracker()

    def _fields(self, fields):
        if fields is not None:
            return fields
        if not self.config.index_fields:
            raise ValidationError("fields is required when index_fields is not configured.")
        return self.config.index_fields

    # ── Indexing ─────────────────────────────────────────

    def index(self, values: Mapping, display_fields: Mapping, fields=None) -> Optional[str]:
        fields = self._fields(fields)
        path = display_fields.get(PATH_KEY, "") if isinstance(display_fields, Mapping) else ""
        try:
            entry_id = self.indexer.index(fields, values, display_fields)
        except ValidationError:
            raise
        except SearchEngineError as e:
            self.health.record_index(ok=False, path=path, error=str(e))
            raise
        self.health.record_index(ok=True, path=path, indexed=entry_id is not None)
        return entry_id

    def reindex(self, values: Mapping, display_fields: Mapping, fields=None) -> Optional[str]:
        return self.index(values, display_fields, fields)

    def index_document(self, document: Mapping, fields=None,
                       display_keys: Optional[Iterable[str]] = None) -> Optional[str]:
        """Index a flat source document holding indexedDocumentPath, field
        values and display values side by side."""
        if not isinstance(document, Mapping):
            raise ValidationError("document must be a mapping.")
        specs = coerce_field_specs(self._fields(fields))
        indexed = {s.name for s in specs}
        if display_keys is None:
            display = {k: v for k, v in document.items() if k not in indexed}
        else:
            display = {k: document[k] for k in display_keys if k in document}
        if PATH_KEY in document:
            display[PATH_KEY] = document[PATH_KEY]
        return self.index(document, display, specs)

    def bulk_index(self, documents: Iterable[Mapping], fields=None,
                   display_keys: Optional[Iterable[str]] = None) -> dict:
        result = self.indexer.bulk_index(documents, self._fields(fields), display_keys)
        self.health.record_bulk(
            documents=result["documents_total"],
            indexed=result["documents_indexed"],
            skipped=result["documents_skipped"],
            failed=result["documents_failed"],
        )
        return result

    def remove(self, indexed_document_path: str) -> int:
        removed = self.indexer.remove(indexed_document_path)
        self.health.record_remove(removed)
        return removed

    def clear(self):
        self.indexer.clear()

    # ── Search ───────────────────────────────────────────

    def search(self, request, **options) -> list[SearchResult]:
        if isinstance(request, str) and options:
            request = {"query_text": request, **options}
        request = self.searcher.coerce_request(request)
        results = self.searcher.search(request)
        if self.searcher.mode == "lexical":
            mode = "lexical"
        elif not request.single_field and len(request.fields or self.searcher.default_fields) > 1:
            mode = "multi_field"
        else:
            mode = "single_field"
        self.health.record_search(mode, bool(results))
        return results

    # ── Status ───────────────────────────────────────────

    @property
    def stats(self) -> dict:
        return self.indexer.stats

    @property
    def status(self) -> dict:
        return {
            "health": self.health.status,
            "stats": self.stats,
            "config": self.config.to_safe_dict(),
        }
