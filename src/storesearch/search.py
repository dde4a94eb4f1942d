# Storesearch – Approximate text search for schema-less document stores
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Query text -> store lookups -> deduped, ranked SearchResults.

- single field:  embed query, nearest-neighbour on "<prefix>_<field>",
                 dedupe by path, relevance = 1 - distance, ties broken
                 by the hybrid score
- multi field:   one single-field search per field, scores scaled by
                 field weight, grouped per document (max by default)
- lexical:       query prefixes -> contains-any on the fragment set,
                 confirmed by edit distance (<= 2 for one word,
                 <= 6 summed over all words)
"""
import logging
from typing import Optional

import pydantic

from .config import Config
from .embeddings import EmbeddingProvider
from .errors import EmbeddingError, SearchEngineError, ValidationError
from .lexical import best_fragment_distance, generate_char_array, normalize
from .models import (
    CONFIGS_KEY, KEYWORDS_KEY, FieldSpec, MatchedField, SearchRequest, SearchResult,
    coerce_field_specs, vector_field_name,
)
from .ranking import Candidate, combine_fields, dedupe_by_path, rerank_hybrid
from .store import ChromaDocumentStore

logger = logging.getLogger(__name__)

MAX_TYPO_DISTANCE = 2
# summed over all query words
MAX_TOTAL_TYPO_DISTANCE = 6


class Searcher:
    def __init__(self, store: ChromaDocumentStore, embedder: Optional[EmbeddingProvider] = None,
                 config: Optional[Config] = None, default_fields=None):
        self.config = config or Config()
        self.store = store
        self.embedder = embedder
        fields = default_fields if default_fields is not None else self.config.index_fields
        self.default_fields: list[FieldSpec] = coerce_field_specs(fields) if fields else []

    @property
    def mode(self) -> str:
        if self.embedder is not None and self.config.search_mode == "vector":
            return "vector"
        return "lexical"

    # ── Request handling ─────────────────────────────────

    @staticmethod
    def coerce_request(request) -> SearchRequest:
        if isinstance(request, SearchRequest):
            return request
        if isinstance(request, str):
            return SearchRequest(query_text=request)
        try:
            return SearchRequest.model_validate(request)
        except pydantic.ValidationError as e:
            raise ValidationError(f"Invalid search request: {e}") from e

    def _threshold(self, requested: Optional[float]) -> float:
        if requested is None:
            return self.config.distance_threshold
        if not 0 < requested < 1:
            fallback = self.config.distance_threshold
            logger.warning("distanceThreshold=%s must be > 0 and < 1, using %s", requested, fallback)
            return fallback
        return requested

    def resolve_fields(self, request: SearchRequest) -> list[FieldSpec]:
        if request.single_field:
            for spec in list(request.fields) + self.default_fields:
                if spec.name == request.single_field:
                    return [spec]
            return [FieldSpec(name=request.single_field)]
        if request.fields:
            return list(request.fields)
        if self.default_fields:
            return list(self.default_fields)
        raise ValidationError("No field to search: pass fields or single_field, or configure index_fields.")

    def search(self, request) -> list[SearchResult]:
        """Results ordered most relevant first, at most `limit`, unique per document."""
        request = self.coerce_request(request)
        query = request.query_text
        if not isinstance(query, str) or not query.strip():
            raise ValidationError("queryText is required and must be a non-empty string.")
        query = normalize(query)
        if len(query) < self.config.word_min_length:
            logger.info("Query '%s' shorter than %d characters, returning no results",
                        query, self.config.word_min_length)
            return []
        limit = request.limit or self.config.default_limit
        threshold = self._threshold(request.distance_threshold)

        if self.mode == "lexical":
            return self.search_lexical(query, limit)

        fields = self.resolve_fields(request)
        if len(fields) == 1:
            return self.search_field(query, fields[0], limit, threshold)
        return self.search_fields(query, fields, limit, threshold)

    # ── Vector search ────────────────────────────────────

    def _field_candidates(self, query: str, query_vector: list[float], spec: FieldSpec,
                          limit: int, threshold: float) -> list[Candidate]:
        vector_field = vector_field_name(self.config.vector_field_prefix, spec.name)
        hits = self.store.find_nearest(vector_field, query_vector, limit, threshold)
        # do not trust store ordering; stable sort keeps it for ties
        hits = sorted(hits, key=lambda h: h[1])
        candidates = [
            Candidate(entry=entry, field=spec.name, distance=dist, score=1 - dist)
            for entry, dist in hits
        ]
        candidates = dedupe_by_path(candidates)
        if not spec.fuzzy_search:
            words = query.split()
            candidates = [
                c for c in candidates
                if all(w in c.entry.original_text(spec.name).split() for w in words)
            ]
        if self.config.hybrid_rerank:
            candidates = rerank_hybrid(query, candidates)
        return candidates

    def _embed_query(self, query: str) -> Optional[list[float]]:
        try:
            return self.embedder.embed_one(query)
        except EmbeddingError as e:
            logger.warning("No usable vector for query '%s': %s", query, e)
            return None

    def search_field(self, query: str, spec: FieldSpec, limit: int,
                     threshold: float) -> list[SearchResult]:
        query_vector = self._embed_query(query)
        if query_vector is None:
            return []
        candidates = self._field_candidates(query, query_vector, spec, limit, threshold)
        results = []
        for c in candidates[:limit]:
            c.matched.append(MatchedField(field=spec.name, weight=spec.weight, score=c.score))
            results.append(c.to_result())
        return results

    def search_fields(self, query: str, specs: list[FieldSpec], limit: int,
                      threshold: float) -> list[SearchResult]:
        query_vector = self._embed_query(query)
        if query_vector is None:
            return []
        matches: list[Candidate] = []
        for spec in specs:
            try:
                candidates = self._field_candidates(query, query_vector, spec, limit, threshold)
            except SearchEngineError as e:
                logger.warning("Field '%s' skipped in multi-field search: %s", spec.name, e)
                continue
            for c in candidates:
                scaled = c.score * spec.weight
                c.matched.append(MatchedField(field=spec.name, weight=spec.weight, score=scaled))
                c.score = scaled
                matches.append(c)
        return combine_fields(
            matches, limit,
            strategy=self.config.combine_strategy,
            total_weight=sum(s.weight for s in specs),
        )

    # ── Lexical search ───────────────────────────────────

    def search_lexical(self, query: str, limit: int) -> list[SearchResult]:
        min_len = self.config.word_min_length
        max_frag = self.config.max_fragment_length
        keywords = generate_char_array(query, min_len, max_frag)
        if not keywords:
            return []
        words = [w for w in query.split() if len(w) >= min_len]
        if not words:
            return []

        scored: list[tuple[float, int, SearchResult]] = []
        seen: set[str] = set()
        for order, entry in enumerate(self.store.where_contains_any(KEYWORDS_KEY, keywords)):
            path = entry.indexed_document_path
            if path in seen:
                continue
            best = best_fragment_distance(
                words, entry.fragments, max_frag,
                max_word_distance=MAX_TYPO_DISTANCE,
                max_total_distance=MAX_TOTAL_TYPO_DISTANCE,
            )
            if best is None:
                continue
            seen.add(path)
            relevance = 1 / (1 + best)
            result = SearchResult(
                fields=entry.display_fields(),
                relevance_score=relevance,
                matched_fields=[
                    MatchedField(field=name, weight=1.0, score=relevance)
                    for name in (entry.data.get(CONFIGS_KEY) or {})
                ],
            )
            scored.append((-relevance, order, result))
        scored.sort(key=lambda s: (s[0], s[1]))
        return [r for _, _, r in scored[:limit]]
