# @TEST tests/test_fts.py

"""Tests for the full-text search executor over the equipment search view.

Verifies query construction, row mapping, highlight sanitization and error
wrapping without requiring a real PostgreSQL database.
"""

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError

from app.search.engine import FullTextSearchEngine
from app.search.errors import SearchExecutionError
from conftest import make_row, make_session_factory


def _compiled(session, call_index: int = 1) -> str:
    stmt = session.execute.await_args_list[call_index].args[0]
    return str(stmt.compile(dialect=postgresql.dialect()))


# ---------------------------------------------------------------------------
# 1. Successful search
# ---------------------------------------------------------------------------


class TestSearchSuccess:
    @pytest.mark.asyncio
    async def test_rows_are_mapped_to_items(self):
        factory, _ = make_session_factory([make_row("p1", 0.9), make_row("p2", 0.4)])
        engine = FullTextSearchEngine(factory)

        results = await engine.search("siemens s7 press")

        assert [r.plc_id for r in results] == ["p1", "p2"]
        first = results[0]
        assert first.relevance_score == pytest.approx(0.9)
        assert first.line_number == "1"
        assert first.hierarchy_path == "Plant North > Line A > Press 1 > PLC-p1"
        assert first.firmware_version is None
        assert first.highlighted_fields is None

    @pytest.mark.asyncio
    async def test_negative_scores_are_clamped(self):
        factory, _ = make_session_factory([make_row("p1", -0.2)])
        results = await FullTextSearchEngine(factory).search("pump")
        assert results[0].relevance_score == 0.0

    @pytest.mark.asyncio
    async def test_statement_timeout_is_set_first(self):
        factory, session = make_session_factory([])
        await FullTextSearchEngine(factory, statement_timeout_ms=2500).search("pump")

        first_stmt = session.execute.await_args_list[0].args[0]
        assert str(first_stmt) == "SET LOCAL statement_timeout = 2500"

    @pytest.mark.asyncio
    async def test_query_uses_prefix_tsquery_and_rank(self):
        factory, session = make_session_factory([])
        await FullTextSearchEngine(factory).search("siemens s7", limit=25)

        sql = _compiled(session)
        assert "to_tsquery" in sql
        assert "ts_rank" in sql
        assert "@@" in sql
        assert "mv_equipment_search" in sql
        assert "ts_headline" not in sql
        params = session.execute.await_args_list[1].args[0].compile(dialect=postgresql.dialect()).params
        assert "siemens:* & s7:*" in params.values()
        assert 25 in params.values()

    @pytest.mark.asyncio
    async def test_empty_tsquery_skips_database(self):
        factory, _ = make_session_factory([])
        assert await FullTextSearchEngine(factory).search("& |") == []
        factory.assert_not_called()


# ---------------------------------------------------------------------------
# 2. Highlights
# ---------------------------------------------------------------------------


class TestHighlights:
    @pytest.mark.asyncio
    async def test_highlight_query_uses_ts_headline(self):
        factory, session = make_session_factory([])
        await FullTextSearchEngine(factory).search("pump", include_highlights=True)

        sql = _compiled(session)
        assert "ts_headline" in sql
        assert "jsonb_build_object" in sql
        assert "StartSel=<mark>, StopSel=</mark>" in sql

    @pytest.mark.asyncio
    async def test_fragments_are_sanitized(self):
        row = make_row(
            "p1",
            0.5,
            highlighted_fields={
                "make": "<mark>Siemens</mark><script>alert(1)</script>",
                "model": "<mark>S7</mark>",
            },
        )
        factory, _ = make_session_factory([row])

        results = await FullTextSearchEngine(factory).search("siemens", include_highlights=True)

        assert results[0].highlighted_fields == {
            "make": "<mark>Siemens</mark>",
            "model": "<mark>S7</mark>",
        }

    @pytest.mark.asyncio
    async def test_fragments_restricted_to_requested_fields(self):
        row = make_row("p1", 0.5, highlighted_fields={"make": "<mark>x</mark>", "model": "<mark>y</mark>"})
        factory, _ = make_session_factory([row])

        results = await FullTextSearchEngine(factory).search(
            "siemens", include_highlights=True, highlight_fields=("model",)
        )

        assert results[0].highlighted_fields == {"model": "<mark>y</mark>"}


# ---------------------------------------------------------------------------
# 3. Failures
# ---------------------------------------------------------------------------


class TestErrors:
    @pytest.mark.asyncio
    async def test_database_error_is_wrapped(self):
        error = OperationalError("SELECT ...", {}, Exception("canceling statement due to statement timeout"))
        factory, _ = make_session_factory(side_effect=error)

        with pytest.raises(SearchExecutionError) as exc_info:
            await FullTextSearchEngine(factory).search("pump")

        assert exc_info.value.__cause__ is error
        assert "Full-text search failed" in str(exc_info.value)
