# Storesearch – Approximate text search for schema-less document stores
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Source document fields -> normalized text -> vectors or fragments -> store

Two index modes:
- "vector":  every indexed field gets its own embedding under
             "<prefix>_<field>", all fields of a document embedded in one
             batched provider call
- "lexical": no embeddings; the entry holds prefix fragments and keyboard
             typo variants for contains-any lookups

Exactly one entry per indexedDocumentPath. The store has no update, so a
reindex is delete-then-create (or create-then-delete with
reindex_order="create_first"). A crash between the two steps leaves the
document without an entry (or with two) until the next successful
reindex; searches dedupe by path, so the duplicate case is invisible to
readers while the missing case is not.

No per-document locking: callers must serialize writes for the same
document.
"""
import logging
from typing import Iterable, Mapping, Optional

from .config import Config
from .embeddings import EmbeddingProvider
from .errors import EmbeddingError, ValidationError
from .lexical import generate_fragments, normalize
from .models import PATH_KEY, FieldSpec, IndexEntry, coerce_field_specs, vector_field_name
from .store import ChromaDocumentStore

logger = logging.getLogger(__name__)


class Indexer:
    def __init__(self, store: ChromaDocumentStore, embedder: Optional[EmbeddingProvider] = None,
                 config: Optional[Config] = None):
        self.config = config or Config()
        self.store = store
        self.embedder = embedder
        if self.config.search_mode == "vector" and embedder is None:
            logger.warning("No embedding provider for '%s', indexing lexical fragments instead",
                           store.collection_name)

    @property
    def mode(self) -> str:
        if self.embedder is not None and self.config.search_mode == "vector":
            return "vector"
        return "lexical"

    # ── Validation ───────────────────────────────────────

    @staticmethod
    def _require_path(display_fields) -> str:
        if not isinstance(display_fields, Mapping):
            raise ValidationError("display_fields must be a mapping holding indexedDocumentPath.")
        path = display_fields.get(PATH_KEY)
        if not isinstance(path, str) or not path.strip():
            raise ValidationError("indexedDocumentPath is required and must be a non-empty string.")
        return path

    def _validate(self, fields, values, display_fields) -> tuple[list[FieldSpec], str]:
        path = self._require_path(display_fields)
        specs = coerce_field_specs(fields)
        if not isinstance(values, Mapping):
            raise ValidationError("values must be a mapping of field name to text.")
        for spec in specs:
            raw = values.get(spec.name)
            if raw is not None and not isinstance(raw, str):
                raise ValidationError(
                    f"Field '{spec.name}' of '{path}' must be a string, got {type(raw).__name__}"
                )
        return specs, path

    # ── Entry building ───────────────────────────────────

    def indexable_texts(self, specs: list[FieldSpec], values: Mapping, path: str = "") -> dict[str, str]:
        """Normalized text per field, length-bounded. Out-of-bounds fields
        are skipped with a warning."""
        lo, hi = self.config.word_min_length, self.config.word_max_length
        texts: dict[str, str] = {}
        for spec in specs:
            raw = values.get(spec.name)
            if not raw:
                continue
            text = normalize(raw)
            if not text:
                continue
            if not lo <= len(text) <= hi:
                logger.warning("Skipping field '%s' of '%s': length %d outside [%d, %d]",
                               spec.name, path, len(text), lo, hi)
                continue
            texts[spec.name] = text
        return texts

    def build_entry(self, specs: list[FieldSpec], values: Mapping, display_fields: Mapping,
                    path: str) -> Optional[IndexEntry]:
        texts = self.indexable_texts(specs, values, path)
        if not texts:
            logger.warning("Nothing to index for '%s': no field within length bounds", path)
            return None

        entry = IndexEntry(
            indexed_document_path=path,
            display_fields=dict(display_fields),
            texts=texts,
            field_specs=[s for s in specs if s.name in texts],
        )
        if self.mode == "vector":
            names = list(texts)
            vectors = self.embedder.embed([texts[n] for n in names])
            prefix = self.config.vector_field_prefix
            entry.vectors = {vector_field_name(prefix, n): v for n, v in zip(names, vectors)}
        else:
            fragments: set[str] = set()
            for text in texts.values():
                fragments.update(generate_fragments(
                    text,
                    min_length=self.config.word_min_length,
                    max_fragment_length=self.config.max_fragment_length,
                    max_length=self.config.word_max_length,
                ))
            entry.fragments = sorted(fragments)
        return entry

    def _existing_ids(self, path: str) -> list[str]:
        return [e.id for e in self.store.where_equal(PATH_KEY, path)]

    def _delete_chunked(self, ids: list[str]) -> int:
        size = self.config.delete_batch_size
        removed = 0
        for i in range(0, len(ids), size):
            removed += self.store.delete(ids[i : i + size])
        return removed

    # ── Single document ──────────────────────────────────

    def index(self, fields, values: Mapping, display_fields: Mapping) -> Optional[str]:
        """(Re-)index one document. Returns the new entry id, or None when
        the document had nothing indexable (its old entry is removed) or the
        embedding provider returned nothing usable (its old entry is kept)."""
        specs, path = self._validate(fields, values, display_fields)
        try:
            entry = self.build_entry(specs, values, display_fields, path)
        except EmbeddingError as e:
            logger.warning("Skipping '%s': %s", path, e)
            return None

        existing = self._existing_ids(path)
        if entry is None:
            removed = self._delete_chunked(existing)
            if removed:
                logger.info("Index: '%s' has no indexable text, %d stale entr%s removed",
                            path, removed, "y" if removed == 1 else "ies")
            return None

        if self.config.reindex_order == "create_first":
            new_id = self.store.create(entry)
            removed = self._delete_chunked(existing)
        else:
            removed = self._delete_chunked(existing)
            new_id = self.store.create(entry)
        logger.info("Index: '%s' -> %d field(s) (%s), %d stale removed",
                    path, len(entry.texts), self.mode, removed)
        return new_id

    def reindex(self, fields, values: Mapping, display_fields: Mapping) -> Optional[str]:
        return self.index(fields, values, display_fields)

    def remove(self, indexed_document_path: str) -> int:
        if not isinstance(indexed_document_path, str) or not indexed_document_path.strip():
            raise ValidationError("indexedDocumentPath is required and must be a non-empty string.")
        removed = self._delete_chunked(self._existing_ids(indexed_document_path))
        if removed:
            logger.info("Removed %d entr%s for '%s'", removed,
                        "y" if removed == 1 else "ies", indexed_document_path)
        return removed

    # ── Bulk ─────────────────────────────────────────────

    @staticmethod
    def _display_snapshot(document: Mapping, indexed: set[str],
                          display_keys: Optional[Iterable[str]]) -> dict:
        if display_keys is None:
            snapshot = {k: v for k, v in document.items() if k not in indexed}
        else:
            snapshot = {k: document[k] for k in display_keys if k in document}
        if PATH_KEY in document:
            snapshot[PATH_KEY] = document[PATH_KEY]
        return snapshot

    def bulk_index(self, documents: Iterable[Mapping], fields,
                   display_keys: Optional[Iterable[str]] = None) -> dict:
        """Index many documents through one bulk write session.

        Each document is a mapping with indexedDocumentPath and the field
        values. A failing document is logged and counted; the others go on.
        """
        specs = coerce_field_specs(fields)
        indexed = {s.name for s in specs}
        keys = list(display_keys) if display_keys is not None else None

        total = skipped = 0
        failures: list[dict] = []
        seen_paths: set[str] = set()

        with self.store.bulk_writer(self.config.bulk_flush_every) as bulk:
            for position, document in enumerate(documents):
                total += 1
                path = ""
                try:
                    if not isinstance(document, Mapping):
                        raise ValidationError(f"Document #{position} is not a mapping")
                    display = self._display_snapshot(document, indexed, keys)
                    _, path = self._validate(specs, document, display)
                    if path in seen_paths:
                        # earlier writes for this path must be visible to the lookup below
                        bulk.flush()
                    seen_paths.add(path)

                    entry = self.build_entry(specs, document, display, path)
                    existing = self._existing_ids(path)
                    if entry is None:
                        bulk.delete(existing, path)
                        skipped += 1
                        continue
                    bulk.replace(entry, existing,
                                 create_first=self.config.reindex_order == "create_first")
                except EmbeddingError as e:
                    logger.warning("Bulk: skipping '%s': %s", path or f"#{position}", e)
                    skipped += 1
                except Exception as e:
                    logger.error("Bulk: document %s failed: %s", path or f"#{position}", e)
                    failures.append({"position": position, "indexedDocumentPath": path, "error": str(e)})

        failures.extend(bulk.failures)
        indexed_count = len(bulk.created)
        result = {
            "status": "success" if not failures else "partial",
            "documents_total": total,
            "documents_indexed": indexed_count,
            "documents_skipped": skipped,
            "documents_failed": total - indexed_count - skipped,
            "entries_removed": bulk.deleted,
            "operations": bulk.operations,
            "flushes": bulk.flushes,
            "failures": failures,
        }
        logger.info(
            "Bulk: %d documents -> %d indexed, %d skipped, %d failed (%d operations, %d flushes)",
            total, indexed_count, skipped, result["documents_failed"], bulk.operations, bulk.flushes,
        )
        return result

    # ── Maintenance ──────────────────────────────────────

    def clear(self):
        self.store.clear()
        logger.info("Cleared index collection '%s'", self.store.collection_name)

    @property
    def stats(self) -> dict:
        return {
            "collection": self.store.collection_name,
            "mode": self.mode,
            "total_entries": self.store.count(),
            "vector_fields": sorted(self.store.vector_fields()),
            "embedding_model": self.embedder.name if self.embedder is not None else None,
        }
