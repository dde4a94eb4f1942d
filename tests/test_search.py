"""Tests for the Searcher: single-field, multi-field and lexical search."""
import logging
import math

import pytest

from storesearch.embeddings import EmbeddingProvider
from storesearch.errors import StoreError, ValidationError
from storesearch.models import PATH_KEY, FieldSpec, IndexEntry, SearchRequest
from storesearch.search import Searcher

NAME = [FieldSpec(name="name")]
NAME_AND_CITY = [FieldSpec(name="name"), FieldSpec(name="city")]


def paths(results):
    return [r.indexed_document_path for r in results]


@pytest.fixture
def places(indexer):
    indexer.index(NAME_AND_CITY, {"name": "Le Clos Fleuri", "city": "Paris"},
                  {PATH_KEY: "places/1", "city": "Paris"})
    indexer.index(NAME_AND_CITY, {"name": "Villa Rose", "city": "Clos Fleuri"},
                  {PATH_KEY: "places/2", "city": "Clos Fleuri"})
    indexer.index(NAME_AND_CITY, {"name": "Chez Marcel", "city": "Lyon"},
                  {PATH_KEY: "places/3", "city": "Lyon"})
    return indexer


class TestRequest:
    def test_plain_string(self):
        assert Searcher.coerce_request("clos").query_text == "clos"

    def test_wire_names(self):
        request = Searcher.coerce_request({
            "queryText": "clos",
            "limit": 5,
            "distanceThreshold": 0.3,
            "perFieldOverrides": [{"name": "name", "weight": 2, "fuzzySearch": False}],
            "singleFieldSelector": "name",
        })
        assert request.limit == 5
        assert request.distance_threshold == 0.3
        assert request.fields == [FieldSpec(name="name", weight=2, fuzzy_search=False)]
        assert request.single_field == "name"

    def test_invalid_limit(self):
        with pytest.raises(ValidationError):
            Searcher.coerce_request({"queryText": "clos", "limit": 0})

    def test_empty_query(self, searcher):
        with pytest.raises(ValidationError):
            searcher.search("   ")

    def test_missing_query(self, searcher):
        with pytest.raises(ValidationError):
            searcher.search({"limit": 3})

    def test_short_query_returns_nothing(self, searcher, places):
        assert searcher.search("cl") == []

    def test_no_fields_anywhere(self, store, embedder, config):
        searcher = Searcher(store, embedder, config.model_copy(update={"index_fields": []}))
        with pytest.raises(ValidationError):
            searcher.search("clos fleuri")


class TestSingleField:
    def test_round_trip(self, searcher, places):
        results = searcher.search({"queryText": "clos fleuri", "distanceThreshold": 0.2, "limit": 10})
        assert paths(results) == ["places/1"]
        top = results[0]
        assert 0.8 < top.relevance_score <= 1.0
        assert [m.field for m in top.matched_fields] == ["name"]

    def test_result_shape(self, searcher, places):
        d = searcher.search("clos fleuri")[0].to_dict()
        assert d[PATH_KEY] == "places/1"
        assert d["city"] == "Paris"
        assert "relevanceScore" in d
        assert d["matchedFields"][0]["field"] == "name"
        for internal in ("name_original", "fieldWeights", "fieldConfigs", "indexedAt"):
            assert internal not in d

    def test_unrelated_text_not_returned(self, searcher, places):
        assert searcher.search("boulangerie moderne") == []

    def test_single_field_selector(self, searcher, places):
        results = searcher.search({"queryText": "clos fleuri", "singleFieldSelector": "city"})
        assert paths(results) == ["places/2"]

    def test_removed_document_not_returned(self, searcher, places):
        places.remove("places/1")
        assert searcher.search("clos fleuri") == []

    def test_duplicates_collapsed(self, searcher, indexer, store):
        values = {"name": "Le Clos Fleuri"}
        display = {PATH_KEY: "places/1"}
        for _ in range(2):
            store.create(indexer.build_entry(NAME, values, display, "places/1"))
        assert paths(searcher.search("clos fleuri")) == ["places/1"]

    def test_limit(self, searcher, indexer):
        for i in range(4):
            indexer.index(NAME, {"name": f"Le Clos Fleuri {i}"}, {PATH_KEY: f"places/{i}"})
        results = searcher.search({"queryText": "le clos fleuri", "limit": 2, "distanceThreshold": 0.5})
        assert len(results) == 2

    def test_closest_first(self, searcher, indexer):
        indexer.index(NAME, {"name": "Le Clos Fleuri du Moulin"}, {PATH_KEY: "places/far"})
        indexer.index(NAME, {"name": "Clos Fleuri"}, {PATH_KEY: "places/exact"})
        results = searcher.search({"queryText": "clos fleuri", "distanceThreshold": 0.6})
        assert paths(results)[0] == "places/exact"
        assert results[0].relevance_score == pytest.approx(1.0)

    def test_relevance_never_increases(self, store, config):
        query_vector = [1.0, 0.0]
        provider = EmbeddingProvider.from_function(lambda texts: [query_vector for _ in texts])
        # a is lexically unlike the query but closer in vector space
        for path, text, distance in [("places/b", "abcd xy", 0.08), ("places/a", "zzzzzzzzzzzzzzzzzz", 0.05)]:
            cos = 1 - distance
            store.create(IndexEntry(
                indexed_document_path=path,
                display_fields={PATH_KEY: path},
                texts={"name": text},
                field_specs=NAME,
                vectors={"_vector_name": [cos, math.sqrt(1 - cos * cos)]},
            ))
        results = Searcher(store, provider, config).search("abcd")
        assert paths(results) == ["places/a", "places/b"]
        scores = [r.relevance_score for r in results]
        assert scores == sorted(scores, reverse=True)

    def test_invalid_threshold_falls_back(self, searcher, places, caplog):
        with caplog.at_level(logging.WARNING, logger="storesearch.search"):
            results = searcher.search({"queryText": "clos fleuri", "distanceThreshold": 1.5})
        assert paths(results) == ["places/1"]
        assert "distanceThreshold" in caplog.text

    def test_query_embedding_failure_returns_nothing(self, store, config, places):
        def broken(texts):
            raise RuntimeError("model unavailable")

        searcher = Searcher(store, EmbeddingProvider.from_function(broken), config)
        assert searcher.search("clos fleuri") == []


class TestExactFields:
    def test_fuzzy_field_accepts_near_miss(self, searcher, places):
        results = searcher.search({
            "queryText": "clos fleurie",
            "distanceThreshold": 0.5,
            "perFieldOverrides": [{"name": "name", "fuzzySearch": True}],
        })
        assert "places/1" in paths(results)

    def test_exact_field_rejects_near_miss(self, searcher, places):
        results = searcher.search({
            "queryText": "clos fleurie",
            "distanceThreshold": 0.5,
            "perFieldOverrides": [{"name": "name", "fuzzySearch": False}],
        })
        assert results == []

    def test_exact_field_accepts_all_words(self, searcher, places):
        results = searcher.search({
            "queryText": "clos fleuri",
            "perFieldOverrides": [{"name": "name", "fuzzySearch": False}],
        })
        assert paths(results) == ["places/1"]


class TestMultiField:
    def search(self, searcher, name_weight, city_weight=1.0, **extra):
        return searcher.search({
            "queryText": "clos fleuri",
            "perFieldOverrides": [
                {"name": "name", "weight": name_weight},
                {"name": "city", "weight": city_weight},
            ],
            **extra,
        })

    def test_documents_from_both_fields(self, searcher, places):
        assert set(paths(self.search(searcher, 1.0))) == {"places/1", "places/2"}

    def test_higher_weight_never_ranks_lower(self, searcher, places):
        heavy = paths(self.search(searcher, 2.0))
        light = paths(self.search(searcher, 0.5))
        assert heavy.index("places/1") <= light.index("places/1")
        assert heavy[0] == "places/1"
        assert light[0] == "places/2"

    def test_matched_fields_weighted(self, searcher, places):
        results = self.search(searcher, 2.0)
        top = results[0]
        assert [m.field for m in top.matched_fields] == ["name"]
        assert top.matched_fields[0].weight == 2.0
        assert top.relevance_score == pytest.approx(top.matched_fields[0].score)

    def test_one_result_per_document(self, searcher, indexer):
        indexer.index(NAME_AND_CITY, {"name": "Clos Fleuri", "city": "Clos Fleuri"},
                      {PATH_KEY: "places/both"})
        results = self.search(searcher, 1.0)
        assert paths(results) == ["places/both"]
        assert sorted(m.field for m in results[0].matched_fields) == ["city", "name"]

    def test_sum_strategy(self, store, embedder, config, indexer):
        indexer.index(NAME_AND_CITY, {"name": "Clos Fleuri", "city": "Clos Fleuri"},
                      {PATH_KEY: "places/both"})
        searcher = Searcher(store, embedder, config.model_copy(update={"combine_strategy": "sum"}))
        results = self.search(searcher, 1.0)
        assert results[0].relevance_score == pytest.approx(2.0)

    def test_failing_field_skipped(self, searcher, places, monkeypatch):
        real = searcher.store.find_nearest

        def find_nearest(vector_field, *args, **kwargs):
            if vector_field == "_vector_city":
                raise StoreError("Nearest-neighbour query failed", "places")
            return real(vector_field, *args, **kwargs)

        monkeypatch.setattr(searcher.store, "find_nearest", find_nearest)
        assert paths(self.search(searcher, 1.0)) == ["places/1"]

    def test_limit(self, searcher, places):
        assert len(self.search(searcher, 1.0, limit=1)) == 1


class TestLexical:
    @pytest.fixture
    def lexical_places(self, lexical_indexer):
        lexical_indexer.index(NAME, {"name": "Montmartre"}, {PATH_KEY: "places/montmartre"})
        lexical_indexer.index(NAME, {"name": "Le Clos Fleuri"}, {PATH_KEY: "places/clos"})
        return lexical_indexer

    def test_mode(self, lexical_searcher):
        assert lexical_searcher.mode == "lexical"

    def test_exact_word(self, lexical_searcher, lexical_places):
        results = lexical_searcher.search("Montmartre")
        assert paths(results) == ["places/montmartre"]
        assert results[0].relevance_score == pytest.approx(1.0)
        assert [m.field for m in results[0].matched_fields] == ["name"]

    def test_typo_tolerated(self, lexical_searcher, lexical_places):
        results = lexical_searcher.search("Montmatre")
        assert paths(results) == ["places/montmartre"]
        assert 0.3 <= results[0].relevance_score < 1.0

    def test_no_match(self, lexical_searcher, lexical_places):
        assert lexical_searcher.search("zzzz") == []

    def test_short_query(self, lexical_searcher, lexical_places):
        assert lexical_searcher.search("mo") == []

    def test_removed_document_not_returned(self, lexical_searcher, lexical_places):
        lexical_places.remove("places/montmartre")
        assert lexical_searcher.search("Montmartre") == []

    def test_accepts_request_model(self, lexical_searcher, lexical_places):
        results = lexical_searcher.search(SearchRequest(query_text="clos"))
        assert paths(results) == ["places/clos"]

    def test_far_extra_word_rejects_match(self, lexical_searcher, lexical_places):
        assert lexical_searcher.search("montmatre zzzzzzzz") == []
