"""Size and structure analysis of tool results.

The analyzer measures a value once (a single compact JSON encode), walks
its structure, and recommends whether and how to reduce it. Token counts
are an approximation: characters divided by a fixed ratio, not the output
of any real tokenizer.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from typing import Any

from supabase_mcp.observability import get_logger
from supabase_mcp.response.config import ChunkingConfig
from supabase_mcp.response.types import (
    AnalysisFailure,
    ResponseAnalysis,
    ResponseType,
    SummaryStrategy,
    ValueShape,
)

logger = get_logger(__name__)

#: Characters per token. JSON punctuation tokenizes densely, so this is
#: lower than the ~4 usually quoted for English prose.
CHARS_PER_TOKEN = 3.5

#: Character count assumed when a value cannot even be turned into a string.
FALLBACK_CHARACTER_COUNT = 1000

#: Share of complex (list/dict) values above which an object is "mixed".
MIXED_OBJECT_RATIO = 0.3

_BASE_COMPLEXITY: dict[str, float] = {
    "primitive": 0.1,
    "object": 0.3,
    "array": 0.5,
    "mixed": 1.0,
}


def to_json(value: Any) -> str:
    """Compact JSON encoding used for every size measurement.

    Raises:
        TypeError: For values JSON cannot encode.
        ValueError: For circular references.
        RecursionError: For structures nested beyond the interpreter limit.
    """
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def estimate_tokens(character_count: int) -> int:
    """Estimated tokens for ``character_count`` characters of JSON."""
    return math.ceil(character_count / CHARS_PER_TOKEN)


# =============================================================================
# Structural metrics
# =============================================================================


@dataclass
class _Metrics:
    max_depth: int = 1
    has_nested_arrays: bool = False
    has_nested_objects: bool = False
    complex_values: int = 0


def _walk_array(items: list[Any] | tuple[Any, ...]) -> _Metrics:
    metrics = _Metrics()
    for item in items:
        _merge_child(metrics, item)
    return metrics


def _walk_object(obj: dict[Any, Any]) -> _Metrics:
    metrics = _Metrics()
    for value in obj.values():
        _merge_child(metrics, value)
    return metrics


def _merge_child(metrics: _Metrics, child: Any) -> None:
    shape = ValueShape.of(child)
    if shape is ValueShape.ARRAY:
        metrics.has_nested_arrays = True
        sub = _walk_array(child)
    elif shape is ValueShape.OBJECT:
        metrics.has_nested_objects = True
        sub = _walk_object(child)
    else:
        return
    metrics.complex_values += 1
    metrics.max_depth = max(metrics.max_depth, sub.max_depth + 1)


@dataclass(frozen=True)
class ResponseMetrics:
    """Structure of one value as seen by the analyzer."""

    response_type: ResponseType
    shape: ValueShape
    max_depth: int
    has_nested_arrays: bool
    has_nested_objects: bool
    array_item_count: int | None = None
    object_property_count: int | None = None


def get_response_metrics(value: Any) -> ResponseMetrics:
    """Classify ``value`` and measure its nesting.

    Arrays report their item count; objects their property count and are
    typed ``mixed`` when more than 30% of their values are lists or dicts.
    Primitives have depth 0.
    """
    shape = ValueShape.of(value)

    if shape is ValueShape.ARRAY:
        walked = _walk_array(value)
        return ResponseMetrics(
            response_type="array",
            shape=shape,
            max_depth=walked.max_depth,
            has_nested_arrays=walked.has_nested_arrays,
            has_nested_objects=walked.has_nested_objects,
            array_item_count=len(value),
        )

    if shape is ValueShape.OBJECT:
        walked = _walk_object(value)
        is_mixed = walked.complex_values > len(value) * MIXED_OBJECT_RATIO
        return ResponseMetrics(
            response_type="mixed" if is_mixed else "object",
            shape=shape,
            max_depth=walked.max_depth,
            has_nested_arrays=walked.has_nested_arrays,
            has_nested_objects=walked.has_nested_objects,
            object_property_count=len(value),
        )

    return ResponseMetrics(
        response_type="primitive",
        shape=shape,
        max_depth=0,
        has_nested_arrays=False,
        has_nested_objects=False,
    )


def calculate_complexity(metrics: ResponseMetrics) -> float:
    """Complexity score in [0, 1] from type, depth, size and nesting."""
    complexity = _BASE_COMPLEXITY[metrics.response_type]
    complexity *= 1 + (metrics.max_depth - 1) * 0.2

    if metrics.array_item_count and metrics.array_item_count > 100:
        complexity *= 1.3
    if metrics.object_property_count and metrics.object_property_count > 20:
        complexity *= 1.2

    if metrics.has_nested_arrays and metrics.has_nested_objects:
        complexity *= 1.4
    elif metrics.has_nested_arrays or metrics.has_nested_objects:
        complexity *= 1.2

    return min(max(complexity, 0.0), 1.0)


def _exceeds_array_limit(metrics: ResponseMetrics, config: ChunkingConfig) -> bool:
    return bool(
        metrics.array_item_count and metrics.array_item_count > config.max_array_items
    )


def _exceeds_property_limit(metrics: ResponseMetrics, config: ChunkingConfig) -> bool:
    return bool(
        metrics.object_property_count
        and metrics.object_property_count > config.max_object_properties
    )


def should_apply_chunking(metrics: ResponseMetrics, config: ChunkingConfig) -> bool:
    """True if any structural threshold of ``config`` is exceeded."""
    if _exceeds_array_limit(metrics, config):
        return True
    if _exceeds_property_limit(metrics, config):
        return True
    return metrics.max_depth > 3 and (
        metrics.has_nested_arrays or metrics.has_nested_objects
    )


def suggest_strategy(
    metrics: ResponseMetrics, config: ChunkingConfig
) -> SummaryStrategy:
    """Pick the reduction strategy that suits the value's structure.

    Long arrays are paginated (or sampled when pagination is disabled),
    nested trees and wide objects are summarized, other collections are
    sampled and primitives truncated.
    """
    if metrics.response_type == "array" and _exceeds_array_limit(metrics, config):
        if config.enable_pagination:
            return SummaryStrategy.PAGINATE
        return SummaryStrategy.SAMPLE

    if metrics.response_type == "mixed" or _exceeds_property_limit(metrics, config):
        return SummaryStrategy.SUMMARIZE

    if metrics.response_type in ("array", "object"):
        return SummaryStrategy.SAMPLE

    return SummaryStrategy.TRUNCATE


# =============================================================================
# Public API
# =============================================================================


def try_analyze(
    value: Any, config: ChunkingConfig
) -> ResponseAnalysis | AnalysisFailure:
    """Analyze ``value`` or report why it could not be measured.

    Returns:
        A :class:`ResponseAnalysis`, or an :class:`AnalysisFailure` when
        the value cannot be JSON encoded (unsupported type, circular
        reference, excessive nesting).
    """
    try:
        character_count = len(to_json(value))
    except (TypeError, ValueError, RecursionError) as e:
        return AnalysisFailure(reason=f"{type(e).__name__}: {e}", error=e)

    try:
        metrics = get_response_metrics(value)
    except RecursionError as e:  # pragma: no cover - encoder fails first
        return AnalysisFailure(reason="structure too deep to walk", error=e)

    return ResponseAnalysis(
        estimated_tokens=estimate_tokens(character_count),
        character_count=character_count,
        response_type=metrics.response_type,
        complexity=calculate_complexity(metrics),
        suggested_strategy=suggest_strategy(metrics, config),
        should_chunk=should_apply_chunking(metrics, config),
        shape=metrics.shape,
        array_item_count=metrics.array_item_count,
        object_property_count=metrics.object_property_count,
    )


def degraded_analysis(
    value: Any, config: ChunkingConfig, failure: AnalysisFailure
) -> ResponseAnalysis:
    """Conservative analysis for a value that could not be measured.

    Size comes from ``str(value)`` (or :data:`FALLBACK_CHARACTER_COUNT`
    if even that fails); the value is typed ``mixed`` with complexity 0.5
    and routed to truncation when its estimate exceeds ``max_tokens``.
    """
    try:
        character_count = len(str(value))
    except Exception:
        character_count = FALLBACK_CHARACTER_COUNT

    estimated_tokens = estimate_tokens(character_count)
    logger.warning(
        "Response analysis failed, using fallback",
        reason=failure.reason,
        characters=character_count,
    )
    return ResponseAnalysis(
        estimated_tokens=estimated_tokens,
        character_count=character_count,
        response_type="mixed",
        complexity=0.5,
        suggested_strategy=SummaryStrategy.TRUNCATE,
        should_chunk=estimated_tokens > config.max_tokens,
        shape=ValueShape.of(value),
    )


def analyze_response(value: Any, config: ChunkingConfig) -> ResponseAnalysis:
    """Analyze a tool result against ``config``. Never raises.

    Args:
        value: Any value, normally JSON-compatible data from a backend.
        config: Thresholds to evaluate against.

    Returns:
        The analysis; a degraded one if the value cannot be encoded.

    Example:
        >>> analysis = analyze_response(list(range(80)), ChunkingConfig())
        >>> analysis.should_chunk, analysis.suggested_strategy.value
        (True, 'paginate')
    """
    outcome = try_analyze(value, config)
    if isinstance(outcome, AnalysisFailure):
        return degraded_analysis(value, config, outcome)
    return outcome


def is_oversized(value: Any, config: ChunkingConfig) -> bool:
    """Quick size check against the token and character ceilings.

    ``None`` is never oversized; values that cannot be encoded always are.
    """
    if value is None:
        return False
    try:
        character_count = len(to_json(value))
    except (TypeError, ValueError, RecursionError):
        return True
    return (
        estimate_tokens(character_count) > config.max_tokens
        or character_count > config.max_characters
    )


def json_type_name(value: Any) -> str:
    """JSON type label of ``value`` (``string``, ``number``, ``array``, ...)."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int | float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list | tuple):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def get_response_summary(value: Any) -> str:
    """One-line description of a value.

    Example:
        >>> get_response_summary([{"id": 1}, {"id": 2}])
        'Array of 2 object items'
        >>> get_response_summary({"id": 1, "name": "a", "schema": "s", "rls": True})
        'Object with 4 properties: id, name, schema...'
    """
    shape = ValueShape.of(value)
    if shape is ValueShape.ARRAY:
        item_type = json_type_name(value[0]) if value else "unknown"
        return f"Array of {len(value)} {item_type} items"
    if shape is ValueShape.OBJECT:
        keys = [str(k) for k in value]
        suffix = "..." if len(keys) > 3 else ""
        return f"Object with {len(keys)} properties: {', '.join(keys[:3])}{suffix}"
    return f"{json_type_name(value)} value"
