# Storesearch – Approximate text search for schema-less document stores
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Backing store adapter on ChromaDB.

Layout for a logical collection "<name>":
- "<name>"                 one row per IndexEntry: JSON payload, promoted
                           scalar fields for equality filters, the list of
                           vector fields, and lexical fragments as the row
                           document ("|frag1|frag2|")
- "<name>.<vector_field>"  one cosine collection per vector field, rows
                           share the id of their record row

Records are only ever created or deleted, never updated. The record row
is written last, so a half-written entry has no record and is invisible
to every query.
"""
import json
import logging
import re
import uuid
from typing import Any, Iterable, Optional

import chromadb

from .errors import StoreError, ValidationError
from .models import KEYWORDS_KEY, PATH_KEY, IndexEntry, StoredEntry

logger = logging.getLogger(__name__)

PAYLOAD_META = "payload"
VECTOR_FIELDS_META = "vectorFields"
_RESERVED_META = {PAYLOAD_META, VECTOR_FIELDS_META}
_META_KEY_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_.-]*$")
# Record rows are never queried by vector; chroma still wants one.
_RECORD_MARKER = [1.0]


def _vector_collection_name(collection_name: str, vector_field: str) -> str:
    safe = re.sub(r"[^A-Za-z0-9_-]", "-", vector_field).strip("._-") or "vector"
    return f"{collection_name}.{safe}"


def _encode_fragments(fragments: Iterable[str]) -> str:
    return "|" + "|".join(fragments) + "|"


def _decode_fragments(document: Optional[str]) -> list[str]:
    if not document:
        return []
    return [f for f in document.strip("|").split("|") if f]


def _promoted_metadata(payload: dict) -> dict:
    """Scalar payload values that chroma can filter on."""
    meta: dict[str, Any] = {}
    for key, value in payload.items():
        if key in _RESERVED_META or not _META_KEY_RE.match(key):
            continue
        if isinstance(value, (bool, int, float, str)):
            meta[key] = value
    return meta


class ChromaDocumentStore:
    def __init__(self, client, collection_name: str):
        if not isinstance(collection_name, str) or not collection_name.strip():
            raise ValidationError("collection_name is required and must be a non-empty string.")
        self.client = client
        self.collection_name = collection_name
        self._vector_collections: dict[str, Any] = {}
        try:
            self.records = self._open(collection_name)
        except Exception as e:
            raise StoreError("Cannot open collection", collection_name, e) from e

    @classmethod
    def persistent(cls, path: str, collection_name: str) -> "ChromaDocumentStore":
        return cls(chromadb.PersistentClient(path=path), collection_name)

    def _open(self, name: str):
        return self.client.get_or_create_collection(
            name,
            embedding_function=None,
            metadata={"hnsw:space": "cosine"},
        )

    def _vector_collection(self, vector_field: str):
        coll = self._vector_collections.get(vector_field)
        if coll is None:
            coll = self._open(_vector_collection_name(self.collection_name, vector_field))
            self._vector_collections[vector_field] = coll
        return coll

    def _error(self, message: str, cause: Exception) -> StoreError:
        return StoreError(message, self.collection_name, cause)

    # ── Reads ────────────────────────────────────────────

    @staticmethod
    def _to_entries(result: dict) -> list[StoredEntry]:
        entries: list[StoredEntry] = []
        documents = result.get("documents") or [None] * len(result["ids"])
        for rid, meta, doc in zip(result["ids"], result["metadatas"], documents):
            meta = meta or {}
            try:
                data = json.loads(meta.get(PAYLOAD_META) or "{}")
            except ValueError:
                logger.warning("Skipping record %s with unreadable payload", rid)
                continue
            entries.append(StoredEntry(id=rid, data=data, fragments=_decode_fragments(doc)))
        return entries

    def get(self, ids: list[str]) -> dict[str, StoredEntry]:
        if not ids:
            return {}
        try:
            result = self.records.get(ids=list(ids), include=["metadatas", "documents"])
        except Exception as e:
            raise self._error("Lookup by id failed", e) from e
        return {entry.id: entry for entry in self._to_entries(result)}

    def where_equal(self, field: str, value) -> list[StoredEntry]:
        try:
            result = self.records.get(where={field: value}, include=["metadatas", "documents"])
        except Exception as e:
            raise self._error(f"Equality query on '{field}' failed", e) from e
        return self._to_entries(result)

    def where_contains_any(self, field: str, values: Iterable[str]) -> list[StoredEntry]:
        """Entries whose fragment set holds at least one of values."""
        if field != KEYWORDS_KEY:
            raise ValidationError(f"Membership filters are only supported on '{KEYWORDS_KEY}'")
        clauses = [{"$contains": _encode_fragments([v])} for v in dict.fromkeys(values) if v and "|" not in v]
        if not clauses:
            return []
        where_document = clauses[0] if len(clauses) == 1 else {"$or": clauses}
        try:
            result = self.records.get(where_document=where_document, include=["metadatas", "documents"])
        except Exception as e:
            raise self._error(f"Membership query on '{field}' failed", e) from e
        return self._to_entries(result)

    def find_nearest(
        self, vector_field: str, vector: list[float], limit: int,
        distance_threshold: Optional[float] = None,
    ) -> list[tuple[StoredEntry, float]]:
        """k nearest entries by cosine distance, closest first."""
        try:
            coll = self._vector_collection(vector_field)
            total = coll.count()
            if total == 0:
                return []
            result = coll.query(
                query_embeddings=[vector],
                n_results=min(limit, total),
                include=["distances"],
            )
        except Exception as e:
            raise self._error(f"Nearest-neighbour query on '{vector_field}' failed", e) from e
        if not result["ids"] or not result["ids"][0]:
            return []
        pairs = [
            (rid, float(dist))
            for rid, dist in zip(result["ids"][0], result["distances"][0])
            if distance_threshold is None or dist <= distance_threshold
        ]
        if not pairs:
            return []
        records = self.get([rid for rid, _ in pairs])
        hits = [(records[rid], dist) for rid, dist in pairs if rid in records]
        hits.sort(key=lambda h: h[1])
        return hits

    def count(self) -> int:
        try:
            return self.records.count()
        except Exception as e:
            raise self._error("Count failed", e) from e

    def vector_fields(self) -> set[str]:
        try:
            result = self.records.get(include=["metadatas"])
        except Exception as e:
            raise self._error("Listing vector fields failed", e) from e
        fields: set[str] = set()
        for meta in result["metadatas"]:
            fields.update(json.loads((meta or {}).get(VECTOR_FIELDS_META) or "[]"))
        return fields

    # ── Writes ───────────────────────────────────────────

    def create(self, entry: IndexEntry) -> str:
        entry_id = uuid.uuid4().hex
        payload = entry.payload()
        meta = _promoted_metadata(payload)
        meta[PATH_KEY] = entry.indexed_document_path
        meta[PAYLOAD_META] = json.dumps(payload, default=str)
        meta[VECTOR_FIELDS_META] = json.dumps(sorted(entry.vectors))
        written: list[str] = []
        try:
            for vector_field, vector in entry.vectors.items():
                self._vector_collection(vector_field).add(
                    ids=[entry_id],
                    embeddings=[vector],
                    metadatas=[{PATH_KEY: entry.indexed_document_path}],
                )
                written.append(vector_field)
            kwargs: dict = {"ids": [entry_id], "embeddings": [_RECORD_MARKER], "metadatas": [meta]}
            fragments = [f for f in entry.fragments if "|" not in f]
            if fragments:
                kwargs["documents"] = [_encode_fragments(fragments)]
            self.records.add(**kwargs)
        except Exception as e:
            for vector_field in written:
                try:
                    self._vector_collection(vector_field).delete(ids=[entry_id])
                except Exception as cleanup_error:
                    logger.warning("Orphan vector %s in '%s' left behind: %s",
                                   entry_id, vector_field, cleanup_error)
            raise self._error(f"Create failed for '{entry.indexed_document_path}'", e) from e
        return entry_id

    def delete(self, ids: list[str]) -> int:
        """Delete entries by id; unknown ids are ignored."""
        if not ids:
            return 0
        try:
            result = self.records.get(ids=list(ids), include=["metadatas"])
            by_field: dict[str, list[str]] = {}
            for rid, meta in zip(result["ids"], result["metadatas"]):
                for vector_field in json.loads((meta or {}).get(VECTOR_FIELDS_META) or "[]"):
                    by_field.setdefault(vector_field, []).append(rid)
            for vector_field, vector_ids in by_field.items():
                self._vector_collection(vector_field).delete(ids=vector_ids)
            if result["ids"]:
                self.records.delete(ids=list(result["ids"]))
        except Exception as e:
            raise self._error(f"Delete of {len(ids)} entr{'y' if len(ids) == 1 else 'ies'} failed", e) from e
        return len(result["ids"])

    def clear(self):
        """Drop every entry and vector collection of this logical collection."""
        fields = self.vector_fields() | set(self._vector_collections)
        names = [_vector_collection_name(self.collection_name, f) for f in fields]
        names.append(self.collection_name)
        for name in names:
            try:
                self.client.delete_collection(name)
            except Exception as e:
                logger.debug("Collection '%s' not dropped: %s", name, e)
        self._vector_collections = {}
        try:
            self.records = self._open(self.collection_name)
        except Exception as e:
            raise self._error("Cannot recreate collection", e) from e

    def bulk_writer(self, flush_every: int = 500) -> "BulkWriter":
        return BulkWriter(self, flush_every=flush_every)


class BulkWriter:
    """Buffered create/delete session.

    Operations run in the order they were queued, on flush() or every
    flush_every operations. A failing operation is logged and recorded in
    `failures`; the remaining ones still run. A replace is one operation:
    when its first step fails the second one is skipped. close() must be
    called (or use the writer as a context manager) before results are
    durable.
    """

    def __init__(self, store: ChromaDocumentStore, flush_every: int = 500):
        self.store = store
        self.flush_every = max(1, flush_every)
        self._pending: list[tuple[str, Any, str]] = []
        self._closed = False
        self.operations = 0
        self.flushes = 0
        self.created: list[str] = []
        self.deleted = 0
        self.failures: list[dict] = []

    def __enter__(self) -> "BulkWriter":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def _queue(self, kind: str, payload, path: str):
        if self._closed:
            raise StoreError("Bulk writer already closed", self.store.collection_name)
        self._pending.append((kind, payload, path))
        if len(self._pending) >= self.flush_every:
            self.flush()

    def create(self, entry: IndexEntry):
        self._queue("create", entry, entry.indexed_document_path)

    def delete(self, ids: list[str], path: str = ""):
        if ids:
            self._queue("delete", list(ids), path)

    def replace(self, entry: IndexEntry, stale_ids: list[str], create_first: bool = False):
        """Swap a document's stale entries for entry, as one operation."""
        self._queue("replace", (entry, list(stale_ids), create_first), entry.indexed_document_path)

    def flush(self):
        pending, self._pending = self._pending, []
        if not pending:
            return
        for kind, payload, path in pending:
            self.operations += 1
            steps = [(kind, payload)]
            if kind == "replace":
                entry, stale_ids, create_first = payload
                steps = [("delete", stale_ids), ("create", entry)]
                if create_first:
                    steps.reverse()
            step = kind
            try:
                for step, arg in steps:
                    if step == "create":
                        self.created.append(self.store.create(arg))
                    else:
                        self.deleted += self.store.delete(arg)
            except Exception as e:
                logger.error("Bulk %s failed for '%s': %s", step, path, e)
                self.failures.append({"operation": step, "indexedDocumentPath": path, "error": str(e)})
        self.flushes += 1

    def close(self):
        if self._closed:
            return
        self.flush()
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return len(self._pending)
