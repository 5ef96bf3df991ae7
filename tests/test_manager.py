"""Tests for supabase_mcp.response.manager.

Covers the plain rendering of fitting data, the Markdown sections of
chunked responses, the final size ceiling on the data block, statistics
recording and the fallback to plain rendering.
"""

import re
from unittest.mock import patch

import pytest

from supabase_mcp.observability import ResponseStats
from supabase_mcp.response import (
    RESPONSE_CONFIGS,
    ChunkingConfig,
    ResponseManager,
    process_response,
)
from supabase_mcp.response import manager as manager_module
from supabase_mcp.response.analyzer import estimate_tokens, to_json
from tests.helpers import extract_json_block, make_rows, make_tables, nested_list


class TestSimpleFormat:
    """Tests for data that fits the budget."""

    def test_context_and_indented_json(self) -> None:
        """Verifies small data is the context, a blank line and JSON."""
        text = process_response({"id": 1}, "Row")

        assert text == 'Row\n\n{\n  "id": 1\n}'

    def test_without_context(self) -> None:
        """Verifies no leading blank line without a context."""
        assert process_response([1, 2]) == "[\n  1,\n  2\n]"

    def test_none_renders_as_null(self) -> None:
        """Verifies None is valid, fitting data."""
        assert process_response(None) == "null"


class TestChunkedFormat:
    """Tests for the sectioned rendering of oversized data."""

    @pytest.fixture
    def paged_text(self) -> str:
        """500 rows processed with the default config."""
        return ResponseManager().process_response(make_rows(500), "Query results")

    def test_sections_present(self, paged_text: str) -> None:
        """Verifies each Markdown section of a paginated response.

        Assertion Strategy:
        - Context first, then summary, data, details, notes, guidance.
        """
        assert paged_text.startswith("Query results\n\n**Response Summary:** ")
        assert "**Data:**\n```json\n" in paged_text
        assert "**Processing Details:**" in paged_text
        assert "**⚠️ Important Notes:**" in paged_text
        assert "**Getting More Data:**" in paged_text

    def test_data_block_holds_first_page(self, paged_text: str) -> None:
        """Verifies the fenced block contains the first 40 rows."""
        assert extract_json_block(paged_text) == make_rows(500)[:40]

    def test_processing_details(self, paged_text: str) -> None:
        """Verifies details list size, strategy and sampling."""
        assert "- Original size: " in paged_text
        assert "- Processing: array pagination" in paged_text
        assert "- Sampling: first_n (40/500)" in paged_text

    def test_continuation_guidance(self, paged_text: str) -> None:
        """Verifies the token and remaining count are given."""
        assert 'Pass continuation_token "offset:40"' in paged_text
        assert "- 460 more items available" in paged_text
        assert "LIMIT" in paged_text

    def test_metadata_hidden_when_disabled(self) -> None:
        """Verifies include_metadata=False omits processing details."""
        manager = ResponseManager(ChunkingConfig(include_metadata=False))

        text = manager.process_response(make_rows(500))

        assert "**Processing Details:**" not in text
        assert "**Getting More Data:**" in text

    def test_omitted_fields_listed(self) -> None:
        """Verifies sampled objects report omitted keys, five at most.

        Arrangement:
        1. Force property sampling on a wide object.
        """
        config = ChunkingConfig(
            max_object_properties=5, max_characters=100, force_strategy=True
        )
        obj = {f"property_{i:02d}": "v" * 20 for i in range(12)}

        text = ResponseManager(config).process_response(obj)

        line = next(
            row for row in text.splitlines() if row.startswith("- Omitted fields:")
        )
        assert line.endswith("...")
        assert line.count(",") == 4


class TestDataCeiling:
    """Tests for the final size ceiling on the data section."""

    def test_unchunked_but_oversized_data_is_limited(self) -> None:
        """Verifies huge rows that pass structural checks are still cut.

        Arrangement:
        1. 10 rows with 5000 character values: too large, but within
           every structural threshold.

        Assertion Strategy:
        - Data block shrinks under the token budget.
        - A note reports the truncation.
        """
        rows = [{"id": i, "body": "b" * 5000} for i in range(10)]

        text = ResponseManager().process_response(rows)

        data = extract_json_block(text)
        assert len(data) < 10
        assert "Data section truncated to fit ~4000 tokens" in text

    def test_conservative_table_listing(self) -> None:
        """Verifies a large schema listing is reduced and disclosed.

        Arrangement:
        1. 100 tables with 20 columns each.
        2. CONSERVATIVE preset.

        Assertion Strategy:
        - Output smaller than the input and under 25000 tokens.
        - Text says it was chunked, truncated or summarized.
        """
        tables = make_tables(100, 20)
        original_tokens = estimate_tokens(len(to_json(tables)))

        text = ResponseManager(RESPONSE_CONFIGS["CONSERVATIVE"]).process_response(
            tables, "Tables"
        )

        output_tokens = estimate_tokens(len(text))
        assert output_tokens < original_tokens
        assert output_tokens < 25000
        assert re.search(r"chunks|truncated|summarized", text, re.IGNORECASE)


class TestStatsAndFallback:
    """Tests for statistics recording and failure handling."""

    def test_stats_recorded_per_strategy(self, stats: ResponseStats) -> None:
        """Verifies every processed response is recorded.

        Assertion Strategy:
        - One "none" and one "array_pagination" record.
        - Pagination saved tokens.
        """
        manager = ResponseManager(stats=stats)

        manager.process_response({"id": 1})
        manager.process_response(make_rows(500))

        assert stats.get_summary("none").total_responses == 1
        paged = stats.get_summary("array_pagination")
        assert paged.total_responses == 1
        assert paged.tokens_saved > 0

    def test_failure_falls_back_to_simple_format(self) -> None:
        """Verifies an internal error yields the plain rendering."""
        rows = make_rows(500)

        with patch.object(
            manager_module, "chunk_response", side_effect=RuntimeError("boom")
        ):
            text = ResponseManager().process_response(rows, "Rows")

        assert text.startswith("Rows\n\n[")
        assert "**Response Summary:**" not in text

    def test_deeply_nested_data_never_raises(self, stats: ResponseStats) -> None:
        """Verifies acyclic data too deep to encode still renders.

        Arrangement:
        1. List nested 3000 levels deep.

        Assertion Strategy:
        - Context leads the text, no exception escapes.
        - The response is still recorded.
        """
        text = ResponseManager(stats=stats).process_response(nested_list(3000), "ctx")

        assert text.startswith("ctx\n\n")
        assert len(stats.get_all_summaries()) == 1

    def test_render_json_placeholder(self) -> None:
        """Verifies values whose str() also fails get a placeholder.

        Arrangement:
        1. A dict key JSON rejects and whose repr() raises.
        """

        class Unprintable:
            def __repr__(self) -> str:
                raise RecursionError("too deep")

        assert manager_module.render_json({Unprintable(): 1}) == "<unrenderable dict>"

    def test_cyclic_data_never_raises(self) -> None:
        """Verifies values JSON cannot encode still produce text."""
        items: list = []
        items.append(items)

        text = ResponseManager().process_response(items)

        assert isinstance(text, str)
        assert text


class TestConfiguration:
    """Tests for with_config() and process_page()."""

    def test_with_config_returns_new_manager(self, stats: ResponseStats) -> None:
        """Verifies overrides produce a new manager sharing the stats."""
        manager = ResponseManager(stats=stats)

        derived = manager.with_config(max_array_items=10)

        assert derived is not manager
        assert derived.config.max_array_items == 10
        assert manager.config.max_array_items == 50
        assert derived.stats is stats

    def test_process_page(self) -> None:
        """Verifies a continuation token selects the matching page."""
        rows = make_rows(100)

        text = ResponseManager().process_page(rows, "offset:40")

        assert extract_json_block(text) == rows[40:80]
        assert 'continuation_token "offset:80"' in text
        assert "- 20 more items available" in text

    def test_process_page_rejects_bad_token(self) -> None:
        """Verifies malformed tokens raise ValueError."""
        with pytest.raises(ValueError, match="continuation token"):
            ResponseManager().process_page(make_rows(10), "page=2")
