# Storesearch – Approximate text search for schema-less document stores
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Error taxonomy shared by indexer, searcher and store adapter.

Skip conditions are not exceptions: they are logged and the operation
continues with what is left.
"""
import traceback
from datetime import datetime, timezone
from typing import Optional


class SearchEngineError(Exception):
    pass


class ValidationError(SearchEngineError, ValueError):
    """Invalid caller input. Raised before any I/O is attempted."""


class EmbeddingError(SearchEngineError):
    """The embedding provider returned nothing usable."""


class StoreError(SearchEngineError):
    """A read or write against the backing store failed."""

    def __init__(self, message: str, collection: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.collection = collection
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc).isoformat()

    def __str__(self) -> str:
        if self.cause is not None:
            return f"{self.message} (collection '{self.collection}'): {self.cause}"
        return f"{self.message} (collection '{self.collection}')"

    def to_dict(self) -> dict:
        trace = None
        if self.cause is not None:
            trace = "".join(traceback.format_exception(
                type(self.cause), self.cause, self.cause.__traceback__,
            ))
        return {
            "message": f"An error occurred in the search index for '{self.collection}' collection.",
            "error": str(self.cause) if self.cause is not None else self.message,
            "collection": self.collection,
            "timestamp": self.timestamp,
            "trace": trace,
        }
