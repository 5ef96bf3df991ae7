"""Tests for supabase_mcp.response.strategies.

Each executor is tested directly: page boundaries and tokens for the
paginator, slice layout and key ranking for the sampler, aggregate shape
for the summarizer and the validity guarantee of the truncator.
"""

import json

import pytest

from supabase_mcp.response import (
    ChunkingConfig,
    ValueShape,
    analyze_response,
    decode_continuation_token,
)
from supabase_mcp.response.strategies import (
    TRUNCATION_MARKER,
    page_size,
    paginate,
    property_importance,
    sample,
    sample_array,
    sample_object,
    size_distribution,
    summarize,
    summarize_array,
    summarize_object,
    truncate,
)

# =============================================================================
# Pagination
# =============================================================================


class TestPaginate:
    """Tests for paginate()."""

    def test_first_page_is_prefix(self, chunking_config: ChunkingConfig) -> None:
        """Verifies the first page is the first 80% of max_array_items.

        Arrangement:
        1. 100 items, max_array_items=50 so a page holds 40.

        Assertion Strategy:
        - data is items[0:40], has_more set, token offset:40.
        """
        items = list(range(100))

        page = paginate(items, chunking_config)

        assert page.data == items[:40]
        assert page.metadata.has_more is True
        assert page.metadata.continuation_token == "offset:40"
        assert page.metadata.total_items == 100
        assert page.metadata.chunk_size == 40
        assert page.metadata.sampling.method == "first_n"

    def test_page_from_offset(self, chunking_config: ChunkingConfig) -> None:
        """Verifies an offset resumes where the previous page ended."""
        items = list(range(100))

        page = paginate(items, chunking_config, offset=40)

        assert page.data == items[40:80]
        assert page.metadata.continuation_token == "offset:80"
        assert "starting at item 40" in page.summary

    def test_last_page_has_no_token(self, chunking_config: ChunkingConfig) -> None:
        """Verifies the final page clears has_more and the token."""
        page = paginate(list(range(100)), chunking_config, offset=80)

        assert page.data == list(range(80, 100))
        assert page.metadata.has_more is False
        assert page.metadata.continuation_token is None
        assert page.warnings == ()

    def test_pages_cover_array_exactly_once(
        self, chunking_config: ChunkingConfig
    ) -> None:
        """Verifies following tokens visits every item once, in order."""
        items = list(range(123))
        seen: list[int] = []
        offset = 0

        while True:
            page = paginate(items, chunking_config, offset=offset)
            seen.extend(page.data)
            if not page.metadata.has_more:
                break
            offset = decode_continuation_token(page.metadata.continuation_token)

        assert seen == items

    def test_page_is_not_chunked_again(self, chunking_config: ChunkingConfig) -> None:
        """Verifies a page re-analyzed with the same config fits."""
        page = paginate([{"id": i} for i in range(500)], chunking_config)

        assert analyze_response(page.data, chunking_config).should_chunk is False

    def test_page_size_is_at_least_one(self) -> None:
        """Verifies tiny limits still make progress."""
        assert page_size(ChunkingConfig(max_array_items=1)) == 1

    def test_negative_offset_rejected(self, chunking_config: ChunkingConfig) -> None:
        """Verifies negative offsets raise ValueError."""
        with pytest.raises(ValueError):
            paginate([1, 2, 3], chunking_config, offset=-1)

    def test_non_array_is_truncated(self) -> None:
        """Verifies paginate delegates non-arrays to truncation."""
        config = ChunkingConfig(max_characters=100)

        result = paginate("y" * 500, config, ValueShape.PRIMITIVE)

        assert "Truncated" in result.summary


# =============================================================================
# Sampling
# =============================================================================


class TestSampleArray:
    """Tests for sample_array()."""

    def test_representative_layout(self, chunking_config: ChunkingConfig) -> None:
        """Verifies head, middle and tail slices of a 100 item array.

        Arrangement:
        1. max_array_items=50 gives a target of 30: 12 head, 9 tail,
           9 middle centred on index 50.

        Assertion Strategy:
        - First 12 items are the head, last item is index 99.
        - Middle slice is 46..54.
        """
        items = list(range(100))

        result = sample_array(items, chunking_config)

        assert len(result.data) == 30
        assert result.data[:12] == list(range(12))
        assert result.data[12:21] == list(range(46, 55))
        assert result.data[21:] == list(range(91, 100))
        assert result.data[0] == 0
        assert result.data[-1] == 99

    def test_metadata(self, chunking_config: ChunkingConfig) -> None:
        """Verifies sampling metadata and continuation after the head."""
        result = sample_array(list(range(100)), chunking_config)

        assert result.metadata.sampling.method == "representative"
        assert result.metadata.sampling.sample_size == 30
        assert result.metadata.sampling.total_size == 100
        assert result.metadata.has_more is True
        assert result.metadata.continuation_token == "offset:12"

    @pytest.mark.parametrize("total", [31, 47, 100, 1000])
    def test_never_exceeds_target(self, total: int) -> None:
        """Verifies the sample never exceeds 60% of max_array_items."""
        config = ChunkingConfig(max_array_items=50)

        result = sample_array(list(range(total)), config)

        assert len(result.data) <= 30

    def test_short_array_returned_complete(
        self, chunking_config: ChunkingConfig
    ) -> None:
        """Verifies arrays within the target are returned whole."""
        result = sample_array(list(range(10)), chunking_config)

        assert result.data == list(range(10))
        assert "complete" in result.summary

    @pytest.mark.parametrize(
        ("max_items", "expected"), [(3, [0]), (4, [0, 50])]
    )
    def test_tiny_target_keeps_first_item(
        self, max_items: int, expected: list[int]
    ) -> None:
        """Verifies targets below three still show the first item.

        Arrangement:
        1. max_array_items of 3 and 4 give targets of 1 and 2.

        Assertion Strategy:
        - Index 0 leads the sample.
        - Continuation resumes after it, never at offset 0.
        """
        config = ChunkingConfig(max_array_items=max_items)

        result = sample_array(list(range(100)), config)

        assert result.data == expected
        assert result.metadata.continuation_token == "offset:1"


class TestSampleObject:
    """Tests for property_importance() and sample_object()."""

    def test_identifying_keys_score_higher(self) -> None:
        """Verifies id/name/status style keys get the bonus."""
        assert property_importance("id") == 148
        assert property_importance("description") == 89
        assert property_importance("created_at") > property_importance("createdby")
        assert property_importance("is_active") > property_importance("xx_active")

    def test_keeps_most_important_properties(self) -> None:
        """Verifies low-scoring properties are dropped first.

        Arrangement:
        1. max_object_properties=5 keeps 4 properties.
        2. Object with id, name and long descriptive keys.

        Assertion Strategy:
        - id and name kept, longest keys omitted and reported.
        """
        config = ChunkingConfig(max_object_properties=5)
        obj = {
            "a_rather_long_description_field": 1,
            "id": 2,
            "another_quite_long_field_name": 3,
            "name": 4,
            "x": 5,
            "yy": 6,
        }

        result = sample_object(obj, config)

        assert set(result.data) == {"id", "name", "x", "yy"}
        assert set(result.metadata.omitted_fields) == {
            "a_rather_long_description_field",
            "another_quite_long_field_name",
        }
        assert result.metadata.object_properties == 4
        assert "Omitted:" in result.warnings[0]

    def test_omission_warning_is_capped(self) -> None:
        """Verifies at most ten omitted keys are listed by name."""
        config = ChunkingConfig(max_object_properties=5)
        obj = {f"field_number_{i:02d}": i for i in range(30)}

        result = sample_object(obj, config)

        assert len(result.metadata.omitted_fields) == 26
        assert result.warnings[0].endswith("and 16 more")

    def test_sample_dispatches_on_shape(self, chunking_config: ChunkingConfig) -> None:
        """Verifies sample() routes primitives to truncation."""
        result = sample(42, chunking_config)

        assert result.data == 42


# =============================================================================
# Summarization
# =============================================================================


class TestSummarize:
    """Tests for summarize_array() and summarize_object()."""

    def test_array_summary_data(self) -> None:
        """Verifies the array aggregate: count, sample, types, sizes."""
        items = [{"id": i} for i in range(20)] + ["text"]

        result = summarize_array(items)

        assert result.data["total_count"] == 21
        assert result.data["sample_items"] == items[:5]
        assert result.data["item_types"] == {"object": 20, "string": 1}
        assert result.summary.startswith("Array summarized: 21 items")
        assert result.metadata.has_more is True
        assert result.metadata.continuation_token == "offset:5"

    def test_short_array_summary_has_no_more(self) -> None:
        """Verifies summaries of tiny arrays do not claim more data."""
        result = summarize_array([1, 2])

        assert result.metadata.has_more is False
        assert result.metadata.continuation_token is None

    def test_size_distribution(self) -> None:
        """Verifies min/max/avg of the compact item lengths."""
        assert size_distribution(["a", "abc"]) == {"min": 3, "max": 5, "avg": 4}
        assert size_distribution([]) == {"min": 0, "max": 0, "avg": 0}

    def test_object_summary_data(self) -> None:
        """Verifies the object aggregate and its structure line."""
        obj = {"id": 1, "tags": ["a"], "owner": {"id": 2}, "name": "n"}

        result = summarize_object(obj)

        assert result.data["property_count"] == 4
        assert result.data["property_types"] == {
            "number": 1,
            "array": 1,
            "object": 1,
            "string": 1,
        }
        assert result.data["structure_summary"] == (
            "4 total properties, 2 complex objects/arrays"
        )
        assert result.summary.startswith("Object summarized")

    def test_object_sample_properties_keep_first_five(self) -> None:
        """Verifies at most five properties are carried over literally."""
        obj = {f"k{i}": i for i in range(12)}

        result = summarize(obj, ChunkingConfig())

        assert list(result.data["sample_properties"]) == ["k0", "k1", "k2", "k3", "k4"]


# =============================================================================
# Truncation
# =============================================================================


def _is_valid_or_marked(data: object) -> bool:
    if isinstance(data, str) and data.endswith(TRUNCATION_MARKER):
        return True
    json.dumps(data)
    return True


class TestTruncate:
    """Tests for truncate()."""

    def test_fitting_value_is_returned_unchanged(
        self, chunking_config: ChunkingConfig
    ) -> None:
        """Verifies values within 80% of max_characters pass through."""
        value = {"id": 1}

        result = truncate(value, chunking_config)

        assert result.data is value

    def test_cut_string_is_recovered_as_json(self) -> None:
        """Verifies a string cut mid-way is closed and parsed back.

        Arrangement:
        1. max_characters=100 keeps 80 characters.

        Assertion Strategy:
        - data is a str of 79 'x' (opening quote plus 79 characters).
        """
        config = ChunkingConfig(max_characters=100)

        result = truncate("x" * 500, config)

        assert result.data == "x" * 79
        assert result.metadata.original_size.characters == 502

    def test_cut_array_gets_marker(self) -> None:
        """Verifies unrecoverable cuts end with the truncation marker."""
        config = ChunkingConfig(max_characters=100)

        result = truncate(list(range(200)), config)

        assert isinstance(result.data, str)
        assert result.data.endswith(TRUNCATION_MARKER)
        assert len(result.data) == 80 + len(TRUNCATION_MARKER)

    @pytest.mark.parametrize(
        "value",
        [
            "q" * 1000,
            list(range(1000)),
            {"text": "z" * 1000},
            [{"id": i, "note": "n" * 20} for i in range(100)],
        ],
    )
    def test_output_is_json_or_marked(self, value: object) -> None:
        """Verifies the truncator output is valid JSON or marked."""
        config = ChunkingConfig(max_characters=200)

        result = truncate(value, config)

        assert _is_valid_or_marked(result.data)

    def test_unserializable_value_uses_str(self) -> None:
        """Verifies values JSON cannot encode are truncated as text."""
        config = ChunkingConfig(max_characters=50)

        result = truncate({"handle": object(), "pad": "p" * 200}, config)

        assert isinstance(result.data, str)
        assert result.data.endswith(TRUNCATION_MARKER)
        assert "truncated from" in result.warnings[0]
