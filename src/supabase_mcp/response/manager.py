"""Response manager: turns a raw tool result into the text a model reads.

Small results are rendered as plain indented JSON. Oversized ones are
chunked and rendered as Markdown sections (summary, data, processing
details, notes, continuation guidance). The manager always returns text;
any failure along the way degrades to the plain rendering.
"""

from __future__ import annotations

import json
import time
from typing import Any

from supabase_mcp.observability import ResponseStats, get_logger
from supabase_mcp.response.analyzer import estimate_tokens, is_oversized, to_json
from supabase_mcp.response.chunker import chunk_page, chunk_response
from supabase_mcp.response.config import (
    DEFAULT_CHUNKING_CONFIG,
    ChunkingConfig,
    LimiterConfig,
)
from supabase_mcp.response.limiter import limit_response_size
from supabase_mcp.response.types import (
    ChunkingResult,
    ChunkingStrategy,
    ResponseMetadata,
    decode_continuation_token,
)

logger = get_logger(__name__)

#: Omitted keys listed in the processing details before eliding the rest.
MAX_LISTED_OMITTED_FIELDS = 5


def _safe_str(value: Any) -> str:
    try:
        return str(value)
    except Exception:
        return f"<unrenderable {type(value).__name__}>"


def render_json(value: Any) -> str:
    """Indented JSON for display, else ``str(value)``, else a placeholder."""
    try:
        return json.dumps(value, indent=2, ensure_ascii=False, default=str)
    except (TypeError, ValueError, RecursionError):
        return _safe_str(value)


def _bullets(items: list[str]) -> str:
    return "\n".join(f"- {item}" for item in items)


def _measure_tokens(value: Any) -> int:
    try:
        return estimate_tokens(len(to_json(value)))
    except (TypeError, ValueError, RecursionError):
        return estimate_tokens(len(_safe_str(value)))


class ResponseManager:
    """Formats tool results within a :class:`ChunkingConfig` budget.

    Instances are cheap and hold no mutable state besides the optional
    statistics collector; build one per tool call or share one.

    Attributes:
        config: Budget applied to every response.
        stats: Collector that records each processed response, if any.

    Example:
        >>> manager = ResponseManager(RESPONSE_CONFIGS["DATABASE_RESULTS"])
        >>> text = manager.process_response(rows, "Query results")
    """

    def __init__(
        self,
        config: ChunkingConfig | None = None,
        stats: ResponseStats | None = None,
    ) -> None:
        self.config = config or DEFAULT_CHUNKING_CONFIG
        self.stats = stats

    def with_config(self, **overrides: Any) -> ResponseManager:
        """New manager with ``overrides`` applied to this one's config.

        The statistics collector is shared with the new manager.
        """
        return ResponseManager(self.config.replace(**overrides), stats=self.stats)

    def process_response(self, data: Any, context: str | None = None) -> str:
        """Render ``data``, reducing it first if it exceeds the budget.

        Args:
            data: Raw tool result.
            context: Short label placed above the output, e.g. ``"Tables"``.

        Returns:
            Plain ``context`` + JSON text when the data fits, otherwise the
            Markdown sectioned rendering of the chunked data. Never raises.
        """
        start = time.perf_counter()
        try:
            if not is_oversized(data, self.config):
                text = self._format_simple(data, context)
                self._record(ChunkingStrategy.NONE.value, start, data, text)
                return text

            result = chunk_response(data, self.config)
            logger.debug(
                "Response chunked",
                strategy=result.strategy.value,
                fallback=result.fallback,
                processing_ms=round(result.processing_time, 2),
            )
            text = self._format_chunked(result, context)
            self._record(result.strategy.value, start, data, text, result.fallback)
            return text
        except Exception as e:
            logger.warning(
                "Response formatting failed, using simple format",
                error=f"{type(e).__name__}: {e}",
            )
            return self._format_simple(data, context)

    def process_page(
        self, data: Any, continuation_token: str, context: str | None = None
    ) -> str:
        """Render the page of ``data`` that ``continuation_token`` points at.

        Raises:
            ValueError: If the token is malformed or ``data`` is not an array.
        """
        start = time.perf_counter()
        offset = decode_continuation_token(continuation_token)
        result = chunk_page(data, offset, self.config)
        text = self._format_chunked(result, context)
        self._record(result.strategy.value, start, data, text)
        return text

    # -------------------------------------------------------------------------
    # Rendering
    # -------------------------------------------------------------------------

    def _format_simple(self, data: Any, context: str | None) -> str:
        body = render_json(data)
        return f"{context}\n\n{body}" if context else body

    def _format_chunked(self, result: ChunkingResult, context: str | None) -> str:
        chunked = result.result
        metadata = chunked.metadata
        notes = list(chunked.warnings)

        data_text = render_json(chunked.data)
        if estimate_tokens(len(data_text)) > self.config.max_tokens:
            # Strategies bound structure, not size; enforce the ceiling here
            data_text = limit_response_size(
                chunked.data,
                config=LimiterConfig(
                    max_tokens=self.config.max_tokens,
                    max_array_items=self.config.max_array_items,
                    include_warning=False,
                ),
            )
            notes.append(
                f"Data section truncated to fit ~{self.config.max_tokens} tokens"
            )

        sections = [
            f"**Response Summary:** {chunked.summary}",
            f"**Data:**\n```json\n{data_text}\n```",
        ]
        if self.config.include_metadata and _has_significant_metadata(metadata):
            sections.append(_format_metadata(metadata))
        if notes:
            sections.append(f"**⚠️ Important Notes:**\n{_bullets(notes)}")
        if metadata.has_more:
            sections.append(_format_continuation(metadata))

        body = "\n\n".join(sections)
        return f"{context}\n\n{body}" if context else body

    def _record(
        self,
        strategy: str,
        start: float,
        data: Any,
        text: str,
        fallback: bool = False,
    ) -> None:
        if self.stats is None:
            return
        self.stats.record(
            strategy=strategy,
            duration_ms=(time.perf_counter() - start) * 1000,
            original_tokens=_measure_tokens(data),
            final_tokens=estimate_tokens(len(text)),
            fallback=fallback,
        )


def _has_significant_metadata(metadata: ResponseMetadata) -> bool:
    return bool(
        metadata.original_size
        or metadata.strategy_applied not in (None, ChunkingStrategy.NONE.value)
        or metadata.sampling
        or metadata.omitted_fields
    )


def _format_metadata(metadata: ResponseMetadata) -> str:
    items = []
    if metadata.original_size:
        size = metadata.original_size
        items.append(
            f"Original size: {size.characters} chars "
            f"(~{size.estimated_tokens} tokens)"
        )
    if metadata.strategy_applied not in (None, ChunkingStrategy.NONE.value):
        items.append(f"Processing: {metadata.strategy_applied.replace('_', ' ')}")
    if metadata.sampling:
        sampling = metadata.sampling
        items.append(
            f"Sampling: {sampling.method} "
            f"({sampling.sample_size}/{sampling.total_size})"
        )
    if metadata.omitted_fields:
        listed = ", ".join(
            str(key) for key in metadata.omitted_fields[:MAX_LISTED_OMITTED_FIELDS]
        )
        if len(metadata.omitted_fields) > MAX_LISTED_OMITTED_FIELDS:
            listed += "..."
        items.append(f"Omitted fields: {listed}")
    return f"**Processing Details:**\n{_bullets(items)}"


def _format_continuation(metadata: ResponseMetadata) -> str:
    guidance = []
    if metadata.continuation_token:
        guidance.append(
            f'Pass continuation_token "{metadata.continuation_token}" '
            "to see more data"
        )
    if metadata.total_items is not None and metadata.chunk_size is not None:
        if (
            metadata.strategy_applied == ChunkingStrategy.ARRAY_PAGINATION.value
            and metadata.continuation_token
        ):
            seen = decode_continuation_token(metadata.continuation_token)
        else:
            seen = metadata.chunk_size
        guidance.append(f"{metadata.total_items - seen} more items available")
    guidance.append(
        "Consider adding LIMIT clauses to SQL queries for better performance"
    )
    return f"**Getting More Data:**\n{_bullets(guidance)}"


def process_response(
    data: Any,
    context: str | None = None,
    config: ChunkingConfig | None = None,
) -> str:
    """Process ``data`` with a one-off :class:`ResponseManager`.

    Example:
        >>> print(process_response({"id": 1}, "Row"))
        Row
        <BLANKLINE>
        {
          "id": 1
        }
    """
    return ResponseManager(config).process_response(data, context)
