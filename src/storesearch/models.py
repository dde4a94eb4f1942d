# Storesearch – Approximate text search for schema-less document stores
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Value types: field specs and search requests (validated input),
index entries (persisted) and search results (query-time only).
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

import pydantic
from pydantic import BaseModel, ConfigDict, Field

from .errors import ValidationError

PATH_KEY = "indexedDocumentPath"
WEIGHTS_KEY = "fieldWeights"
CONFIGS_KEY = "fieldConfigs"
INDEXED_AT_KEY = "indexedAt"
KEYWORDS_KEY = "searchKeywords"
ORIGINAL_SUFFIX = "_original"


class FieldSpec(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str = Field(min_length=1)
    weight: float = Field(default=1.0, ge=0)
    fuzzy_search: bool = Field(default=True, alias="fuzzySearch")

    def to_config(self) -> dict:
        return {"weight": self.weight, "fuzzySearch": self.fuzzy_search}


class SearchRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    query_text: str = Field(alias="queryText")
    limit: Optional[int] = Field(default=None, ge=1)
    distance_threshold: Optional[float] = Field(default=None, alias="distanceThreshold")
    fields: list[FieldSpec] = Field(default_factory=list, alias="perFieldOverrides")
    single_field: Optional[str] = Field(default=None, alias="singleFieldSelector")


def coerce_field_specs(fields) -> list[FieldSpec]:
    """Accept FieldSpecs, bare field names, dicts, or a {name: {weight, fuzzySearch}} mapping."""
    if fields is None:
        raise ValidationError("fields is required and must be a non-empty list of field specs.")
    if isinstance(fields, (str, FieldSpec)):
        fields = [fields]
    elif isinstance(fields, Mapping):
        fields = [{"name": name, **(cfg or {})} for name, cfg in fields.items()]
    specs: list[FieldSpec] = []
    seen: set[str] = set()
    try:
        for item in fields:
            if isinstance(item, FieldSpec):
                spec = item
            elif isinstance(item, str):
                spec = FieldSpec(name=item)
            elif isinstance(item, Mapping):
                spec = FieldSpec.model_validate(item)
            else:
                raise ValidationError(f"Unsupported field spec: {item!r}")
            if spec.name in seen:
                continue
            seen.add(spec.name)
            specs.append(spec)
    except pydantic.ValidationError as e:
        raise ValidationError(f"Invalid field spec: {e}") from e
    except TypeError as e:
        raise ValidationError(f"fields must be iterable: {e}") from e
    if not specs:
        raise ValidationError("fields is required and must be a non-empty list of field specs.")
    return specs


def vector_field_name(prefix: str, field_name: str) -> str:
    return f"{prefix}_{field_name}"


@dataclass
class IndexEntry:
    """One searchable record per source document."""
    indexed_document_path: str
    display_fields: dict[str, Any]
    texts: dict[str, str]
    field_specs: list[FieldSpec]
    vectors: dict[str, list[float]] = field(default_factory=dict)
    fragments: list[str] = field(default_factory=list)
    indexed_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def payload(self) -> dict:
        """Persisted record without vectors and fragments."""
        record = dict(self.display_fields)
        record[PATH_KEY] = self.indexed_document_path
        for name, text in self.texts.items():
            record[f"{name}{ORIGINAL_SUFFIX}"] = text
        record[WEIGHTS_KEY] = {s.name: s.weight for s in self.field_specs}
        record[CONFIGS_KEY] = {s.name: s.to_config() for s in self.field_specs}
        record[INDEXED_AT_KEY] = self.indexed_at
        return record

    def to_record(self) -> dict:
        record = self.payload()
        record.update(self.vectors)
        if self.fragments:
            record[KEYWORDS_KEY] = list(self.fragments)
        return record


@dataclass
class StoredEntry:
    id: str
    data: dict[str, Any]
    fragments: list[str] = field(default_factory=list)

    @property
    def indexed_document_path(self) -> str:
        return self.data.get(PATH_KEY, "")

    def original_text(self, field_name: str) -> str:
        return self.data.get(f"{field_name}{ORIGINAL_SUFFIX}", "") or ""

    def display_fields(self) -> dict[str, Any]:
        internal = {WEIGHTS_KEY, CONFIGS_KEY, INDEXED_AT_KEY, KEYWORDS_KEY}
        for name in (self.data.get(CONFIGS_KEY) or {}):
            internal.add(f"{name}{ORIGINAL_SUFFIX}")
        return {k: v for k, v in self.data.items() if k not in internal}


@dataclass
class MatchedField:
    field: str
    weight: float
    score: float

    def to_dict(self) -> dict:
        return {"field": self.field, "weight": self.weight, "score": self.score}


@dataclass
class SearchResult:
    fields: dict[str, Any]
    relevance_score: float
    matched_fields: list[MatchedField] = field(default_factory=list)

    @property
    def indexed_document_path(self) -> str:
        return self.fields.get(PATH_KEY, "")

    def to_dict(self) -> dict:
        return {
            **self.fields,
            "relevanceScore": self.relevance_score,
            "matchedFields": [m.to_dict() for m in self.matched_fields],
        }
