# Storesearch – Approximate text search for schema-less document stores
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Ranking: hybrid vector/lexical rerank and multi-field score combination.
"""
from dataclasses import dataclass, field
from typing import Optional

from .lexical import levenshtein_distance, normalize
from .models import MatchedField, SearchResult, StoredEntry

VECTOR_WEIGHT = 0.97
LEXICAL_WEIGHT = 0.03


@dataclass
class Candidate:
    entry: StoredEntry
    field: str
    distance: float
    score: float
    matched: list[MatchedField] = field(default_factory=list)
    hybrid: Optional[float] = None

    def to_result(self) -> SearchResult:
        return SearchResult(
            fields=self.entry.display_fields(),
            relevance_score=self.score,
            matched_fields=list(self.matched),
        )


def hybrid_score(query: str, candidate_text: str, distance: float) -> float:
    """Lower is more relevant.

    The vector distance dominates; edit distance of the query and of the
    reversed query against the candidate text adds a small penalty for
    near-misses that look nothing alike.
    """
    q = normalize(query)
    c = normalize(candidate_text)
    lexical = levenshtein_distance(q, c) + levenshtein_distance(q[::-1], c)
    return LEXICAL_WEIGHT * lexical + VECTOR_WEIGHT * (1 + distance * 10)


def rerank_hybrid(query: str, candidates: list[Candidate]) -> list[Candidate]:
    """Most relevant first: descending score (1 - distance), the hybrid
    score breaks ties so relevanceScore never increases down the list."""
    for c in candidates:
        c.hybrid = hybrid_score(query, c.entry.original_text(c.field), c.distance)
    return sorted(candidates, key=lambda c: (-c.score, c.hybrid))


def dedupe_by_path(candidates: list[Candidate]) -> list[Candidate]:
    """Keep the first candidate per indexedDocumentPath."""
    seen: set[str] = set()
    out: list[Candidate] = []
    for c in candidates:
        path = c.entry.indexed_document_path
        if path in seen:
            continue
        seen.add(path)
        out.append(c)
    return out


def combine_fields(
    matches: list[Candidate], limit: int, strategy: str = "max",
    total_weight: float = 0.0,
) -> list[SearchResult]:
    """Group per-field candidates by document and rank the groups.

    `max` keeps the best weighted field score, so one strong match cannot be
    outranked by several weak ones. `sum` adds them up, `weighted_sum`
    divides that sum by the total configured weight.
    """
    groups: dict[str, Candidate] = {}
    for c in matches:
        path = c.entry.indexed_document_path
        group = groups.get(path)
        if group is None:
            group = Candidate(entry=c.entry, field=c.field, distance=c.distance, score=c.score)
            groups[path] = group
        group.matched.extend(c.matched)

    for group in groups.values():
        scores = [m.score for m in group.matched]
        if strategy == "sum":
            group.score = sum(scores)
        elif strategy == "weighted_sum":
            group.score = sum(scores) / total_weight if total_weight > 0 else 0.0
        else:
            group.score = max(scores)

    ranked = sorted(groups.values(), key=lambda g: g.score, reverse=True)
    return [g.to_result() for g in ranked[:limit]]
