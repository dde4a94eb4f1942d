# Storesearch – Approximate text search for schema-less document stores
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Centralized health/status tracker – shared by the engine facade and CLI.
Thread-safe, no external dependencies.
"""
import threading
from datetime import datetime, timezone


class HealthTracker:
    def __init__(self):
        self._lock = threading.Lock()
        self._data = {
            "last_index_at": None,
            "last_index_ok": True,
            "last_index_path": None,
            "last_index_error": None,
            "documents_indexed": 0,
            "documents_skipped": 0,

            "last_bulk_at": None,
            "last_bulk_documents": 0,
            "last_bulk_failed": 0,
            "bulk_failures_total": 0,

            "removals_total": 0,
            "entries_removed_total": 0,

            "started_at": datetime.now(timezone.utc).isoformat(),

            "searches_total": 0,
            "searches_hits": 0,
            "searches_misses": 0,
            "searches_by_mode": {
                "single_field": 0,
                "multi_field": 0,
                "lexical": 0,
            },
            "last_search_at": None,
        }

    def record_index(self, ok: bool, path: str = "", indexed: bool = True, error: str | None = None):
        with self._lock:
            self._data["last_index_at"] = datetime.now(timezone.utc).isoformat()
            self._data["last_index_ok"] = ok
            self._data["last_index_path"] = path
            self._data["last_index_error"] = error
            if ok and indexed:
                self._data["documents_indexed"] += 1
            elif ok:
                self._data["documents_skipped"] += 1

    def record_bulk(self, documents: int, indexed: int, skipped: int, failed: int):
        with self._lock:
            self._data["last_bulk_at"] = datetime.now(timezone.utc).isoformat()
            self._data["last_bulk_documents"] = documents
            self._data["last_bulk_failed"] = failed
            self._data["bulk_failures_total"] += failed
            self._data["documents_indexed"] += indexed
            self._data["documents_skipped"] += skipped

    def record_remove(self, removed: int):
        with self._lock:
            self._data["removals_total"] += 1
            self._data["entries_removed_total"] += removed

    def record_search(self, mode: str, hit: bool):
        with self._lock:
            self._data["searches_total"] += 1
            if hit:
                self._data["searches_hits"] += 1
            else:
                self._data["searches_misses"] += 1
            by_mode = self._data["searches_by_mode"]
            if mode in by_mode:
                by_mode[mode] += 1
            self._data["last_search_at"] = datetime.now(timezone.utc).isoformat()

    @property
    def status(self) -> dict:
        with self._lock:
            data = dict(self._data)
            data["searches_by_mode"] = dict(self._data["searches_by_mode"])
            return data

    @property
    def is_healthy(self) -> bool:
        with self._lock:
            return self._data["last_index_ok"]
