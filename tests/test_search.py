import math

import pytest

from indexer.cache_store import CacheStore
from indexer.errors import CacheLoadError, DimensionMismatchError, NotLoadedError
from indexer.search import SearchEngine, cosine_similarity
from helpers import loaded_engine, make_embedded


@pytest.fixture
def store(tmp_path):
    return CacheStore(tmp_path)


@pytest.fixture
def corpus():
    return [
        make_embedded("Spacecraft#fields", [1.0, 0.0, 0.0], page_name="Spacecraft", href="Spacecraft.html"),
        make_embedded("Propagator#overview", [0.0, 1.0, 0.0], page_name="Propagator", href="Propagator.html"),
        make_embedded("ForceModel#drag", [0.7, 0.7, 0.0], page_name="Force Model", href="ForceModel.html"),
        make_embedded("Burn#impulsive", [0.0, 0.0, 1.0], page_name="Burn", href="ImpulsiveBurn.html"),
    ]


@pytest.fixture
def engine(store, corpus):
    store.save(corpus)
    engine = SearchEngine(store)
    engine.load()
    return engine


class TestCosineSimilarity:
    """Cosine similarity on plain vectors."""

    def test_identical_vectors(self):
        assert cosine_similarity([1, 2, 3], [1, 2, 3]) == pytest.approx(1.0)

    def test_opposite_vectors(self):
        assert cosine_similarity([1, 0], [-1, 0]) == pytest.approx(-1.0)

    def test_orthogonal_vectors(self):
        assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)

    def test_scale_invariant(self):
        assert cosine_similarity([1, 2], [10, 20]) == pytest.approx(1.0)

    def test_zero_vector_scores_zero(self):
        assert cosine_similarity([0, 0, 0], [1, 2, 3]) == 0.0

    def test_result_is_bounded(self):
        score = cosine_similarity([0.1, 0.2, 0.3], [0.1, 0.2, 0.3000000001])
        assert -1.0 <= score <= 1.0

    def test_length_mismatch(self):
        with pytest.raises(DimensionMismatchError):
            cosine_similarity([1, 0], [1, 0, 0])


class TestSearchEngine:
    """Ranking over a loaded corpus."""

    def test_exact_match_ranks_first(self, engine):
        results = engine.search([0.0, 1.0, 0.0], top_k=10, min_score=0.1)
        assert results[0].chunk.id == "Propagator#overview"
        assert results[0].score == pytest.approx(1.0)

    def test_results_sorted_and_filtered(self, engine):
        results = engine.search([1.0, 0.2, 0.0], top_k=10, min_score=0.1)

        ids = [r.chunk.id for r in results]
        assert ids == ["Spacecraft#fields", "ForceModel#drag", "Propagator#overview"]
        scores = [r.score for r in results]
        assert scores == sorted(scores, reverse=True)
        assert all(s >= 0.1 for s in scores)

    def test_min_score_threshold(self, engine):
        results = engine.search([1.0, 0.0, 0.0], top_k=10, min_score=0.5)
        assert [r.chunk.id for r in results] == ["Spacecraft#fields", "ForceModel#drag"]

    def test_top_k_limits_results(self, engine):
        results = engine.search([1.0, 1.0, 1.0], top_k=2, min_score=0.0)
        assert len(results) == 2

    def test_scores_match_cosine_similarity(self, engine, corpus):
        query = [0.3, 0.5, 0.1]
        expected = {c.id: cosine_similarity(query, c.embedding) for c in corpus}
        for result in engine.search(query, top_k=10, min_score=-1.0):
            assert result.score == pytest.approx(expected[result.chunk.id])

    def test_equal_scores_keep_corpus_order(self, tmp_path):
        engine = loaded_engine(tmp_path, [
            make_embedded("b", [1.0, 0.0]),
            make_embedded("a", [2.0, 0.0]),
            make_embedded("c", [0.5, 0.0]),
        ])
        results = engine.search([1.0, 0.0], top_k=10, min_score=0.1)
        assert [r.chunk.id for r in results] == ["b", "a", "c"]

    def test_nothing_above_threshold(self, engine):
        assert engine.search([0.0, 0.0, 1.0], top_k=10, min_score=1.1) == []

    def test_zero_query_vector_scores_zero(self, engine):
        results = engine.search([0.0, 0.0, 0.0], top_k=10, min_score=0.0)
        assert len(results) == 4
        assert all(r.score == 0.0 for r in results)

    def test_results_carry_chunk_data(self, engine):
        result = engine.search([0.0, 0.0, 1.0], top_k=1, min_score=0.1)[0]
        assert result.chunk.page_name == "Burn"
        assert result.chunk.href == "ImpulsiveBurn.html"
        assert result.chunk.full_content == "Some content."

    def test_search_before_load(self, store):
        with pytest.raises(NotLoadedError):
            SearchEngine(store).search([1.0, 0.0, 0.0])

    def test_query_dimension_mismatch(self, engine):
        with pytest.raises(DimensionMismatchError) as exc_info:
            engine.search([1.0, 0.0])
        assert exc_info.value.expected == 3
        assert exc_info.value.actual == 2

    def test_empty_corpus_returns_nothing(self, tmp_path):
        engine = loaded_engine(tmp_path, [])
        assert engine.is_loaded
        assert engine.search([1.0, 0.0]) == []

    def test_stats(self, store, engine):
        assert engine.stats() == {"totalChunks": 4, "isLoaded": True}
        assert SearchEngine(store).stats() == {"totalChunks": 0, "isLoaded": False}


class TestReload:
    """Loading a new cache into a running engine."""

    def test_missing_cache_fails_to_load(self, store):
        engine = SearchEngine(store)
        with pytest.raises(CacheLoadError):
            engine.load()
        assert not engine.is_loaded

    def test_reload_picks_up_new_cache(self, store, engine):
        store.save([make_embedded("New#only", [0.0, 0.0, 1.0])])
        engine.load()

        assert engine.stats()["totalChunks"] == 1
        assert engine.search([0.0, 0.0, 1.0])[0].chunk.id == "New#only"

    def test_failed_reload_keeps_previous_corpus(self, store, engine):
        store.cache_path.write_text("{broken")

        with pytest.raises(CacheLoadError):
            engine.load()

        results = engine.search([1.0, 0.0, 0.0], top_k=1)
        assert results[0].chunk.id == "Spacecraft#fields"
        assert math.isclose(results[0].score, 1.0)

    def test_mixed_embedding_lengths_fail_to_load(self, store, engine):
        store.save([
            make_embedded("Spacecraft#fields", [1.0, 0.0, 0.0]),
            make_embedded("Propagator#overview", [1.0, 0.0]),
        ])

        with pytest.raises(CacheLoadError, match="dimension"):
            engine.load()
        assert engine.stats()["totalChunks"] == 4
