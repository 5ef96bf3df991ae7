"""Value types for the response governance pipeline.

Everything here is immutable and built fresh for each call: an analysis
describes one value at one moment, a :class:`ChunkedResponse` is the
envelope handed back to a tool, and :class:`ChunkingResult` adds the
orchestrator's bookkeeping around it.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

ResponseType = Literal["array", "object", "primitive", "mixed"]
SamplingMethod = Literal["first_n", "last_n", "random", "representative"]

_CONTINUATION_TOKEN = re.compile(r"offset:(\d+)")


class SummaryStrategy(Enum):
    """Reduction strategy the analyzer can recommend."""

    TRUNCATE = "truncate"
    SAMPLE = "sample"
    SUMMARIZE = "summarize"
    PAGINATE = "paginate"


class ChunkingStrategy(Enum):
    """Strategy actually applied to a response, as reported in metadata."""

    ARRAY_PAGINATION = "array_pagination"
    FIELD_REDUCTION = "field_reduction"
    SAMPLING = "sampling"
    SUMMARIZATION = "summarization"
    TRUNCATION = "truncation"
    NONE = "none"


class ValueShape(Enum):
    """Top-level shape of a value, decided once by the analyzer.

    Lists and tuples are ARRAY, dicts are OBJECT, everything else is
    PRIMITIVE. Executors receive this tag instead of re-probing the value.
    """

    ARRAY = "array"
    OBJECT = "object"
    PRIMITIVE = "primitive"

    @classmethod
    def of(cls, value: Any) -> ValueShape:
        """Classify ``value``."""
        if isinstance(value, list | tuple):
            return cls.ARRAY
        if isinstance(value, dict):
            return cls.OBJECT
        return cls.PRIMITIVE


# =============================================================================
# Metadata
# =============================================================================


@dataclass(frozen=True)
class OriginalSize:
    """Size of the value before any reduction."""

    characters: int
    estimated_tokens: int
    array_items: int | None = None
    object_properties: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(
            {
                "characters": self.characters,
                "estimated_tokens": self.estimated_tokens,
                "array_items": self.array_items,
                "object_properties": self.object_properties,
            }
        )


@dataclass(frozen=True)
class SamplingInfo:
    """How a subset of a collection was chosen."""

    method: SamplingMethod
    sample_size: int
    total_size: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "method": self.method,
            "sample_size": self.sample_size,
            "total_size": self.total_size,
        }


@dataclass(frozen=True)
class ResponseMetadata:
    """Structured record of what was done to a response.

    Attributes:
        original_size: Size of the raw value.
        total_items: Item count of the original collection.
        chunk_size: Items present in this chunk.
        has_more: More data can be fetched with ``continuation_token``.
        continuation_token: ``offset:<n>`` resume position.
        strategy_applied: :class:`ChunkingStrategy` value.
        omitted_fields: Object keys left out of the data.
        object_properties: Property count relevant to this chunk.
        sampling: Sampling descriptor.

    Raises:
        ValueError: If ``has_more`` is set without a well-formed
            continuation token.
    """

    original_size: OriginalSize | None = None
    total_items: int | None = None
    chunk_size: int | None = None
    has_more: bool | None = None
    continuation_token: str | None = None
    strategy_applied: str | None = None
    omitted_fields: tuple[str, ...] = ()
    object_properties: int | None = None
    sampling: SamplingInfo | None = None

    def __post_init__(self) -> None:
        if self.has_more and self.continuation_token is None:
            raise ValueError("has_more requires a continuation_token")
        if self.continuation_token is not None:
            decode_continuation_token(self.continuation_token)

    def to_dict(self) -> dict[str, Any]:
        """Return the metadata as a dict, leaving out unset fields."""
        return _drop_none(
            {
                "original_size": (
                    self.original_size.to_dict() if self.original_size else None
                ),
                "total_items": self.total_items,
                "chunk_size": self.chunk_size,
                "has_more": self.has_more,
                "continuation_token": self.continuation_token,
                "strategy_applied": self.strategy_applied,
                "omitted_fields": (
                    list(self.omitted_fields) if self.omitted_fields else None
                ),
                "object_properties": self.object_properties,
                "sampling": self.sampling.to_dict() if self.sampling else None,
            }
        )


def encode_continuation_token(offset: int) -> str:
    """Build the token that resumes pagination at ``offset``."""
    if offset < 0:
        raise ValueError(f"offset must not be negative, got {offset}")
    return f"offset:{offset}"


def decode_continuation_token(token: str) -> int:
    """Return the offset encoded in a continuation token.

    Args:
        token: Token of the form ``offset:<non-negative int>``.

    Returns:
        The offset.

    Raises:
        ValueError: If the token is malformed.

    Example:
        >>> decode_continuation_token("offset:40")
        40
    """
    match = _CONTINUATION_TOKEN.fullmatch(token.strip())
    if match is None:
        raise ValueError(f"Invalid continuation token: {token!r}")
    return int(match.group(1))


# =============================================================================
# Envelopes
# =============================================================================


@dataclass(frozen=True)
class ResponseAnalysis:
    """Read-only verdict of the analyzer for one value.

    ``should_chunk`` reflects structural thresholds only (array items,
    object properties, depth with nesting). Raw size is checked separately
    by :func:`~supabase_mcp.response.analyzer.is_oversized`.
    """

    estimated_tokens: int
    character_count: int
    response_type: ResponseType
    complexity: float
    suggested_strategy: SummaryStrategy
    should_chunk: bool
    shape: ValueShape
    array_item_count: int | None = None
    object_property_count: int | None = None

    def original_size(self) -> OriginalSize:
        """Size record for metadata, built from this analysis."""
        return OriginalSize(
            characters=self.character_count,
            estimated_tokens=self.estimated_tokens,
            array_items=self.array_item_count,
            object_properties=self.object_property_count,
        )


@dataclass(frozen=True)
class AnalysisFailure:
    """Analyzer could not measure a value (cycle, unsupported type, ...)."""

    reason: str
    error: BaseException | None = None


@dataclass(frozen=True)
class ChunkedResponse:
    """Envelope returned to tool handlers.

    ``data`` has the same shape family as the input whenever possible.
    Summaries replace it with an aggregate dict and the truncator may
    replace it with a string; callers must not assume it round-trips.
    """

    summary: str
    data: Any
    metadata: ResponseMetadata = field(default_factory=ResponseMetadata)
    warnings: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "summary": self.summary,
            "data": self.data,
            "metadata": self.metadata.to_dict(),
        }
        if self.warnings:
            result["warnings"] = list(self.warnings)
        return result


@dataclass(frozen=True)
class ChunkingFailure:
    """An executor or the analyzer raised while chunking."""

    stage: str
    error: Exception


@dataclass(frozen=True)
class ChunkingResult:
    """Orchestrator output: the envelope plus how it was produced.

    Attributes:
        strategy: Strategy applied.
        result: The chunked response.
        processing_time: Wall time in milliseconds.
        fallback: True if produced by the failure fallback.
    """

    strategy: ChunkingStrategy
    result: ChunkedResponse
    processing_time: float
    fallback: bool = False


def _drop_none(values: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None}
