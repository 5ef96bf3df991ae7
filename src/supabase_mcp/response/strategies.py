"""Reduction strategies: pagination, sampling, summarization, truncation.

Every executor takes ``(value, config, shape=None)`` and returns a
:class:`~supabase_mcp.response.types.ChunkedResponse`. ``shape`` is the
tag computed by the analyzer; it is derived from the value when omitted.
An executor handed a shape it does not handle (sampling a string, for
instance) delegates to :func:`truncate` rather than failing.
"""

from __future__ import annotations

import json
import math
import re
from collections import Counter
from typing import Any

from supabase_mcp.response.analyzer import estimate_tokens, json_type_name, to_json
from supabase_mcp.response.config import ChunkingConfig
from supabase_mcp.response.types import (
    ChunkedResponse,
    OriginalSize,
    ResponseMetadata,
    SamplingInfo,
    ValueShape,
    encode_continuation_token,
)

#: Fraction of ``max_array_items`` shown per page.
PAGE_FRACTION = 0.8
#: Fraction of ``max_array_items`` kept by the representative sample.
SAMPLE_FRACTION = 0.6
#: Head and tail shares of the representative sample; the middle gets the rest.
SAMPLE_HEAD_SHARE = 0.4
SAMPLE_TAIL_SHARE = 0.3
#: Fraction of ``max_object_properties`` kept by property sampling.
PROPERTY_FRACTION = 0.8
#: Fraction of ``max_characters`` the truncator keeps.
TRUNCATE_FRACTION = 0.8
#: Literal items/properties included in a summary.
SUMMARY_SAMPLE_SIZE = 5

TRUNCATION_MARKER = "... [truncated]"

_IMPORTANT_KEY_PATTERNS = (
    re.compile(r"(id|name|title|type|status)", re.IGNORECASE),
    re.compile(r"(created|updated|modified).*at", re.IGNORECASE),
)
_IMPORTANT_KEY_PREFIX = re.compile(r"(is|has|can)_", re.IGNORECASE)

_MAX_LISTED_OMISSIONS = 10


def _shape(value: Any, shape: ValueShape | None) -> ValueShape:
    return shape if shape is not None else ValueShape.of(value)


# =============================================================================
# Pagination
# =============================================================================


def page_size(config: ChunkingConfig) -> int:
    """Items per page: 80% of ``max_array_items``, at least one."""
    return max(1, math.floor(config.max_array_items * PAGE_FRACTION))


def paginate(
    value: Any,
    config: ChunkingConfig,
    shape: ValueShape | None = None,
    offset: int = 0,
) -> ChunkedResponse:
    """Return one page of an array with continuation state.

    Args:
        value: Array to page through.
        config: Supplies ``max_array_items``.
        shape: Pre-computed shape tag.
        offset: Index of the first item, as decoded from a continuation
            token. Zero for the first page.

    Returns:
        The page. When items remain, ``has_more`` is set and
        ``continuation_token`` is ``offset:<next index>``.

    Example:
        >>> page = paginate(list(range(100)), ChunkingConfig(max_array_items=50))
        >>> len(page.data), page.metadata.continuation_token
        (40, 'offset:40')
    """
    if _shape(value, shape) is not ValueShape.ARRAY:
        return truncate(value, config)
    if offset < 0:
        raise ValueError(f"offset must not be negative, got {offset}")

    items = list(value)
    total = len(items)
    size = page_size(config)
    page = items[offset : offset + size]
    next_offset = offset + len(page)
    has_more = next_offset < total

    shown = f"{len(page)} of {total} items"
    if offset:
        shown += f" (starting at item {offset})"
    warnings: tuple[str, ...] = ()
    if has_more:
        warnings = (
            f"Only showing {len(page)} of {total} items. "
            "Use pagination to see more.",
        )

    return ChunkedResponse(
        summary=f"Showing {shown}{' (pagination available)' if has_more else ''}",
        data=page,
        metadata=ResponseMetadata(
            total_items=total,
            chunk_size=len(page),
            has_more=has_more,
            continuation_token=(
                encode_continuation_token(next_offset) if has_more else None
            ),
            sampling=SamplingInfo(
                method="first_n", sample_size=len(page), total_size=total
            ),
        ),
        warnings=warnings,
    )


# =============================================================================
# Sampling
# =============================================================================


def sample(
    value: Any, config: ChunkingConfig, shape: ValueShape | None = None
) -> ChunkedResponse:
    """Keep a representative subset of an array or object."""
    resolved = _shape(value, shape)
    if resolved is ValueShape.ARRAY:
        return sample_array(list(value), config)
    if resolved is ValueShape.OBJECT:
        return sample_object(value, config)
    return truncate(value, config)


def sample_array(items: list[Any], config: ChunkingConfig) -> ChunkedResponse:
    """Head, middle and tail slices of an array.

    The target is 60% of ``max_array_items``: 40% of it from the start,
    30% from the end and the remainder centred on the midpoint, so both
    boundaries and the interior are visible.

    Example:
        >>> result = sample_array(list(range(100)), ChunkingConfig(max_array_items=50))
        >>> result.data[:3], result.data[-1], len(result.data)
        ([0, 1, 2], 99, 30)
    """
    total = len(items)
    target = math.floor(config.max_array_items * SAMPLE_FRACTION)

    if total <= target:
        return ChunkedResponse(
            summary=f"Array of {total} items (complete)", data=items
        )

    # The first item stays visible even for tiny targets
    head_n = max(1, math.floor(target * SAMPLE_HEAD_SHARE)) if target else 0
    tail_n = math.floor(target * SAMPLE_TAIL_SHARE)
    middle_n = target - head_n - tail_n

    middle: list[Any] = []
    if middle_n > 0:
        mid = total // 2
        middle = items[mid - middle_n // 2 : mid + math.ceil(middle_n / 2)]
    tail = items[total - tail_n :] if tail_n > 0 else []
    sampled = items[:head_n] + middle + tail

    return ChunkedResponse(
        summary=(
            f"Representative sample: {len(sampled)} of {total} items "
            f"(showing first {head_n}, middle {middle_n}, last {tail_n})"
        ),
        data=sampled,
        metadata=ResponseMetadata(
            total_items=total,
            chunk_size=len(sampled),
            has_more=True,
            continuation_token=encode_continuation_token(head_n),
            sampling=SamplingInfo(
                method="representative",
                sample_size=len(sampled),
                total_size=total,
            ),
        ),
        warnings=(
            f"Showing representative sample of {len(sampled)}/{total} items. "
            "Full data available via pagination.",
        ),
    )


def property_importance(key: Any) -> int:
    """Importance score of an object key; higher keeps the property.

    Shorter names score higher (``100 - len``) and identifying or
    bookkeeping names (``id``, ``status``, ``created_at``, ``is_*``...) get
    a +50 bonus.

    Example:
        >>> property_importance("id"), property_importance("description")
        (148, 89)
    """
    name = str(key)
    score = 100 - len(name)
    if any(p.fullmatch(name) for p in _IMPORTANT_KEY_PATTERNS) or (
        _IMPORTANT_KEY_PREFIX.match(name)
    ):
        score += 50
    return score


def sample_object(obj: dict[Any, Any], config: ChunkingConfig) -> ChunkedResponse:
    """Keep the most important properties of a wide object.

    Properties are ranked by :func:`property_importance` (ties keep their
    original order) and the top 80% of ``max_object_properties`` are kept.
    """
    total = len(obj)
    target = math.floor(config.max_object_properties * PROPERTY_FRACTION)

    if total <= target:
        return ChunkedResponse(
            summary=f"Object with {total} properties (complete)", data=obj
        )

    ranked = sorted(obj.items(), key=lambda kv: property_importance(kv[0]), reverse=True)
    kept = dict(ranked[:target])
    omitted = tuple(str(k) for k, _ in ranked[target:])

    listed = ", ".join(omitted[:_MAX_LISTED_OMISSIONS])
    if len(omitted) > _MAX_LISTED_OMISSIONS:
        listed += f" and {len(omitted) - _MAX_LISTED_OMISSIONS} more"

    return ChunkedResponse(
        summary=(
            f"Object with {len(kept)} of {total} properties (prioritized selection)"
        ),
        data=kept,
        metadata=ResponseMetadata(
            object_properties=len(kept),
            omitted_fields=omitted,
        ),
        warnings=(f"Showing {len(kept)}/{total} properties. Omitted: {listed}",),
    )


# =============================================================================
# Summarization
# =============================================================================


def summarize(
    value: Any, config: ChunkingConfig, shape: ValueShape | None = None
) -> ChunkedResponse:
    """Replace bulk data with aggregate statistics and a small sample."""
    resolved = _shape(value, shape)
    if resolved is ValueShape.ARRAY:
        return summarize_array(list(value))
    if resolved is ValueShape.OBJECT:
        return summarize_object(value)
    return truncate(value, config)


def type_histogram(values: Any) -> dict[str, int]:
    """Count of JSON type labels over ``values``."""
    return dict(Counter(json_type_name(v) for v in values))


def size_distribution(items: list[Any]) -> dict[str, int]:
    """Min, max and mean serialized length of the items.

    Items that cannot be encoded are measured through ``str()``.
    """
    if not items:
        return {"min": 0, "max": 0, "avg": 0}

    sizes = []
    for item in items:
        try:
            sizes.append(len(to_json(item)))
        except (TypeError, ValueError, RecursionError):
            sizes.append(len(str(item)))
    # Half-up rounding, not banker's rounding
    avg = math.floor(sum(sizes) / len(sizes) + 0.5)
    return {"min": min(sizes), "max": max(sizes), "avg": avg}


def summarize_array(items: list[Any]) -> ChunkedResponse:
    """Aggregate view of an array: count, types, sizes, first items."""
    total = len(items)
    sample_size = min(SUMMARY_SAMPLE_SIZE, total)
    item_types = type_histogram(items)

    data = {
        "total_count": total,
        "sample_items": items[:sample_size],
        "item_types": item_types,
        "size_distribution": size_distribution(items),
    }
    has_more = total > sample_size

    return ChunkedResponse(
        summary=(
            f"Array summarized: {total} items of types "
            f"[{', '.join(item_types)}]"
        ),
        data=data,
        metadata=ResponseMetadata(
            total_items=total,
            chunk_size=sample_size,
            has_more=has_more,
            continuation_token=(
                encode_continuation_token(sample_size) if has_more else None
            ),
            sampling=SamplingInfo(
                method="first_n", sample_size=sample_size, total_size=total
            ),
        ),
        warnings=(
            f"Showing summary and {sample_size} sample items. "
            f"Full array has {total} items.",
        ),
    )


def summarize_object(obj: dict[Any, Any]) -> ChunkedResponse:
    """Structural view of an object: property types and first properties."""
    total = len(obj)
    property_types = type_histogram(obj.values())
    complex_count = sum(
        1 for v in obj.values() if ValueShape.of(v) is not ValueShape.PRIMITIVE
    )

    data = {
        "property_count": total,
        "property_types": property_types,
        "sample_properties": dict(list(obj.items())[:SUMMARY_SAMPLE_SIZE]),
        "structure_summary": (
            f"{total} total properties, {complex_count} complex objects/arrays"
        ),
    }

    return ChunkedResponse(
        summary=(
            f"Object summarized: {total} properties with types "
            f"[{', '.join(property_types)}]"
        ),
        data=data,
        metadata=ResponseMetadata(object_properties=total),
        warnings=(
            f"Showing structural summary. Full object has {total} properties.",
        ),
    )


# =============================================================================
# Truncation
# =============================================================================


def _serialize_for_truncation(value: Any) -> tuple[str, bool]:
    """JSON text of ``value``, or its string form if it cannot be encoded.

    Returns:
        ``(text, is_json)``.
    """
    try:
        return to_json(value), True
    except (TypeError, ValueError, RecursionError):
        pass
    try:
        return str(value), False
    except Exception:
        return f"<unserializable {type(value).__name__}>", False


def truncate(
    value: Any, config: ChunkingConfig, shape: ValueShape | None = None
) -> ChunkedResponse:
    """Cut the serialized value to 80% of ``max_characters``.

    The universal fallback: it never raises. After the cut a closing
    quote is appended (when the text does not already end in one) and
    the result re-parsed, which recovers strings cut mid-way. If that
    fails, ``data`` becomes the cut text followed by ``... [truncated]``,
    so callers must not assume the original type survives.

    Values that cannot be JSON encoded are handled as their ``str()``
    text, and ``data`` is that text.
    """
    text, is_json = _serialize_for_truncation(value)
    limit = math.floor(config.max_characters * TRUNCATE_FRACTION)

    if len(text) <= limit:
        return ChunkedResponse(
            summary=f"Data ({len(text)} characters)",
            data=value if is_json else text,
        )

    cut = text[:limit]
    data: Any
    if is_json:
        try:
            data = json.loads(cut if cut.endswith('"') else cut + '"')
        except ValueError:
            data = cut + TRUNCATION_MARKER
    else:
        data = cut + TRUNCATION_MARKER

    return ChunkedResponse(
        summary=f"Truncated data ({len(cut)}/{len(text)} characters)",
        data=data,
        metadata=ResponseMetadata(
            original_size=OriginalSize(
                characters=len(text),
                estimated_tokens=estimate_tokens(len(text)),
            ),
        ),
        warnings=(f"Data truncated from {len(text)} to {len(cut)} characters.",),
    )
