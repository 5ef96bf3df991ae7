"""Chunking orchestrator: analyze, dispatch to a strategy, attach metadata.

:func:`chunk_response` is the entry point for general-purpose tool output.
Its one guarantee is that it returns: failures inside the analyzer or an
executor become a :class:`~supabase_mcp.response.types.ChunkingFailure`
internally, and the public boundary turns that into truncation.
"""

from __future__ import annotations

import dataclasses
import time
from collections.abc import Callable
from typing import Any

from supabase_mcp.observability import get_logger
from supabase_mcp.response.analyzer import analyze_response, get_response_summary
from supabase_mcp.response.config import DEFAULT_CHUNKING_CONFIG, ChunkingConfig
from supabase_mcp.response.strategies import paginate, sample, summarize, truncate
from supabase_mcp.response.types import (
    ChunkedResponse,
    ChunkingFailure,
    ChunkingResult,
    ChunkingStrategy,
    ResponseAnalysis,
    ResponseMetadata,
    SummaryStrategy,
    ValueShape,
)

logger = get_logger(__name__)

Executor = Callable[[Any, ChunkingConfig, ValueShape | None], ChunkedResponse]

_EXECUTORS: dict[SummaryStrategy, tuple[ChunkingStrategy, Executor]] = {
    SummaryStrategy.PAGINATE: (ChunkingStrategy.ARRAY_PAGINATION, paginate),
    SummaryStrategy.SAMPLE: (ChunkingStrategy.SAMPLING, sample),
    SummaryStrategy.SUMMARIZE: (ChunkingStrategy.SUMMARIZATION, summarize),
    SummaryStrategy.TRUNCATE: (ChunkingStrategy.TRUNCATION, truncate),
}


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


def _unchanged(value: Any, analysis: ResponseAnalysis) -> ChunkedResponse:
    # The value is handed back as-is, never copied
    return ChunkedResponse(
        summary=f"Response: {get_response_summary(value)}",
        data=value,
        metadata=ResponseMetadata(
            strategy_applied=ChunkingStrategy.NONE.value,
            original_size=analysis.original_size(),
        ),
    )


def _dispatch(
    value: Any, config: ChunkingConfig
) -> tuple[ChunkingStrategy, ChunkedResponse] | ChunkingFailure:
    """Run analysis and the chosen executor, capturing any failure."""
    try:
        analysis = analyze_response(value, config)
    except Exception as e:
        return ChunkingFailure(stage="analysis", error=e)

    if not analysis.should_chunk:
        return ChunkingStrategy.NONE, _unchanged(value, analysis)

    requested = (
        config.summary_strategy if config.force_strategy else analysis.suggested_strategy
    )
    strategy, executor = _EXECUTORS[requested]

    try:
        chunked = executor(value, config, analysis.shape)
    except Exception as e:
        return ChunkingFailure(stage=strategy.value, error=e)

    chunked = dataclasses.replace(
        chunked,
        metadata=dataclasses.replace(
            chunked.metadata,
            original_size=analysis.original_size(),
            strategy_applied=strategy.value,
        ),
    )
    logger.debug(
        "Chunking applied",
        strategy=strategy.value,
        estimated_tokens=analysis.estimated_tokens,
        response_type=analysis.response_type,
        complexity=round(analysis.complexity, 3),
    )
    return strategy, chunked


def chunk_response(
    value: Any, config: ChunkingConfig | None = None
) -> ChunkingResult:
    """Reduce ``value`` to fit ``config`` if it is structurally oversized.

    Steps: analyze once; return the value untouched (strategy ``none``)
    when no threshold is exceeded; otherwise run the suggested executor
    (or ``config.summary_strategy`` when ``force_strategy`` is set) and
    stamp ``original_size`` and ``strategy_applied`` on its metadata.

    Args:
        value: Raw tool result.
        config: Size budget. Defaults to :data:`DEFAULT_CHUNKING_CONFIG`.

    Returns:
        The :class:`ChunkingResult`. Never raises; on internal failure the
        value is truncated and ``fallback`` is set.

    Example:
        >>> result = chunk_response([{"id": i} for i in range(200)])
        >>> result.strategy.value, len(result.result.data)
        ('array_pagination', 40)
        >>> result.result.metadata.continuation_token
        'offset:40'
    """
    config = config or DEFAULT_CHUNKING_CONFIG
    start = time.perf_counter()

    outcome = _dispatch(value, config)
    if isinstance(outcome, ChunkingFailure):
        logger.warning(
            "Chunking failed, using fallback truncation",
            stage=outcome.stage,
            error=f"{type(outcome.error).__name__}: {outcome.error}",
        )
        truncated = truncate(value, config)
        return ChunkingResult(
            strategy=ChunkingStrategy.TRUNCATION,
            result=dataclasses.replace(
                truncated,
                metadata=dataclasses.replace(
                    truncated.metadata,
                    strategy_applied=ChunkingStrategy.TRUNCATION.value,
                ),
            ),
            processing_time=_elapsed_ms(start),
            fallback=True,
        )

    strategy, chunked = outcome
    return ChunkingResult(
        strategy=strategy,
        result=chunked,
        processing_time=_elapsed_ms(start),
    )


def chunk_page(
    value: Any, offset: int, config: ChunkingConfig | None = None
) -> ChunkingResult:
    """Return the page of an array that starts at ``offset``.

    Used to resume from a continuation token. Unlike
    :func:`chunk_response` this always paginates, whatever the size of the
    remainder.

    Raises:
        ValueError: If ``offset`` is negative or ``value`` is not an array.

    Example:
        >>> page = chunk_page(list(range(100)), 40).result
        >>> page.data[0], page.metadata.continuation_token
        (40, 'offset:80')
    """
    if ValueShape.of(value) is not ValueShape.ARRAY:
        raise ValueError("Only array results can be paged")

    config = config or DEFAULT_CHUNKING_CONFIG
    start = time.perf_counter()

    chunked = paginate(value, config, offset=offset)
    chunked = dataclasses.replace(
        chunked,
        metadata=dataclasses.replace(
            chunked.metadata,
            strategy_applied=ChunkingStrategy.ARRAY_PAGINATION.value,
        ),
    )
    logger.debug("Page requested", offset=offset, shown=len(chunked.data))
    return ChunkingResult(
        strategy=ChunkingStrategy.ARRAY_PAGINATION,
        result=chunked,
        processing_time=_elapsed_ms(start),
    )
