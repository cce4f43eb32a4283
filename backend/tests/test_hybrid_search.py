# @TEST tests/test_hybrid_search.py

"""Tests for the hybrid search engine (weighted full-text + similarity merge).

Verifies the merge arithmetic, deduplication by plc_id, candidate caps and
failure propagation without requiring a real PostgreSQL database.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from app.search.engine import HybridSearchEngine
from app.search.errors import SearchExecutionError
from conftest import make_item

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_mock_engine(results=None, side_effect=None):
    """Build a mock executor with an async search()."""
    engine = AsyncMock()
    if side_effect is not None:
        engine.search = AsyncMock(side_effect=side_effect)
    else:
        engine.search = AsyncMock(return_value=results if results is not None else [])
    return engine


# ---------------------------------------------------------------------------
# 1. Weighted merge arithmetic
# ---------------------------------------------------------------------------


class TestWeightedMerge:
    def test_row_found_by_both_sums_weighted_scores(self):
        merged = HybridSearchEngine.weighted_merge([make_item("p1", 0.8)], [make_item("p1", 0.5)])

        assert len(merged) == 1
        assert merged[0].relevance_score == pytest.approx(0.71)

    def test_similarity_only_row(self):
        merged = HybridSearchEngine.weighted_merge([], [make_item("p2", 0.4)])
        assert merged[0].relevance_score == pytest.approx(0.12)

    def test_fulltext_only_row(self):
        merged = HybridSearchEngine.weighted_merge([make_item("p3", 0.5)], [])
        assert merged[0].relevance_score == pytest.approx(0.35)

    def test_sorted_by_merged_score_descending(self):
        merged = HybridSearchEngine.weighted_merge(
            [make_item("p1", 0.8), make_item("p3", 0.5)],
            [make_item("p1", 0.5), make_item("p2", 0.4)],
        )

        assert [r.plc_id for r in merged] == ["p1", "p3", "p2"]
        scores = [r.relevance_score for r in merged]
        assert scores == sorted(scores, reverse=True)

    def test_custom_weights(self):
        merged = HybridSearchEngine.weighted_merge(
            [make_item("p1", 1.0)], [make_item("p1", 1.0)], fulltext_weight=0.5, similarity_weight=0.5
        )
        assert merged[0].relevance_score == pytest.approx(1.0)


# ---------------------------------------------------------------------------
# 2. Deduplication and stability
# ---------------------------------------------------------------------------


class TestMergeDeduplication:
    def test_each_plc_appears_once(self):
        merged = HybridSearchEngine.weighted_merge(
            [make_item("p1", 0.6), make_item("p2", 0.3)],
            [make_item("p2", 0.9), make_item("p1", 0.2), make_item("p4", 0.2)],
        )
        ids = [r.plc_id for r in merged]
        assert sorted(ids) == ["p1", "p2", "p4"]
        assert len(ids) == len(set(ids))

    def test_fulltext_copy_keeps_highlights(self):
        fulltext = [make_item("p1", 0.8, highlighted_fields={"make": "<mark>Siemens</mark>"})]
        similarity = [make_item("p1", 0.5, plc_description="similarity copy")]

        merged = HybridSearchEngine.weighted_merge(fulltext, similarity)

        assert merged[0].highlighted_fields == {"make": "<mark>Siemens</mark>"}
        assert merged[0].plc_description == "Controller p1"

    def test_ties_keep_insertion_order(self):
        merged = HybridSearchEngine.weighted_merge(
            [make_item("a", 0.3), make_item("b", 0.3)],
            [make_item("c", 0.7)],
        )
        assert [r.plc_id for r in merged] == ["a", "b", "c"]

    def test_inputs_are_not_modified(self):
        fulltext = [make_item("p1", 0.8)]
        similarity = [make_item("p1", 0.5)]

        HybridSearchEngine.weighted_merge(fulltext, similarity)

        assert fulltext[0].relevance_score == 0.8
        assert similarity[0].relevance_score == 0.5


# ---------------------------------------------------------------------------
# 3. Hybrid search orchestration
# ---------------------------------------------------------------------------


class TestHybridSearch:
    @pytest.mark.asyncio
    async def test_runs_both_executors_with_candidate_cap(self):
        fts = _make_mock_engine([make_item("p1", 0.8)])
        sim = _make_mock_engine([make_item("p1", 0.5), make_item("p2", 0.4)])
        engine = HybridSearchEngine(fts, sim)

        results = await engine.search("pump", limit=1000, include_highlights=True, highlight_fields=("make",))

        fts.search.assert_awaited_once_with(
            "pump", limit=500, include_highlights=True, highlight_fields=("make",)
        )
        sim.search.assert_awaited_once_with("pump", limit=500)
        assert [r.plc_id for r in results] == ["p1", "p2"]
        assert results[0].relevance_score == pytest.approx(0.71)
        assert results[1].relevance_score == pytest.approx(0.12)

    @pytest.mark.asyncio
    async def test_result_limited(self):
        fts = _make_mock_engine([make_item(f"f{i}", 0.9 - i * 0.01) for i in range(10)])
        sim = _make_mock_engine([make_item(f"s{i}", 0.5) for i in range(10)])

        results = await HybridSearchEngine(fts, sim).search("pump", limit=5)

        assert len(results) == 5
        assert all(r.plc_id.startswith("f") for r in results)

    @pytest.mark.asyncio
    async def test_executors_run_concurrently(self):
        started: list[str] = []
        release = asyncio.Event()

        async def fts_search(query, **kwargs):
            started.append("fts")
            await release.wait()
            return []

        async def sim_search(query, **kwargs):
            started.append("sim")
            release.set()
            return []

        fts = _make_mock_engine(side_effect=fts_search)
        sim = _make_mock_engine(side_effect=sim_search)

        await asyncio.wait_for(HybridSearchEngine(fts, sim).search("pump"), timeout=1.0)

        assert sorted(started) == ["fts", "sim"]


# ---------------------------------------------------------------------------
# 4. Failure propagation
# ---------------------------------------------------------------------------


class TestHybridFailures:
    @pytest.mark.asyncio
    async def test_fulltext_failure_fails_search(self):
        fts = _make_mock_engine(side_effect=SearchExecutionError("Full-text search failed"))
        sim = _make_mock_engine([make_item("p1", 0.9)])

        with pytest.raises(SearchExecutionError, match="Full-text"):
            await HybridSearchEngine(fts, sim).search("pump")

        sim.search.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_similarity_failure_fails_search(self):
        fts = _make_mock_engine([make_item("p1", 0.9)])
        sim = _make_mock_engine(side_effect=SearchExecutionError("Similarity search failed"))

        with pytest.raises(SearchExecutionError, match="Similarity"):
            await HybridSearchEngine(fts, sim).search("pump")

    @pytest.mark.asyncio
    async def test_no_partial_results_when_one_side_fails(self):
        fts = _make_mock_engine([make_item("p1", 0.9)])
        sim = _make_mock_engine(side_effect=SearchExecutionError("boom"))
        engine = HybridSearchEngine(fts, sim)

        results = None
        with pytest.raises(SearchExecutionError):
            results = await engine.search("pump")
        assert results is None
