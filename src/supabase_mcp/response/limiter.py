"""Hard token ceiling for tool output.

:func:`limit_response_size` is the aggressive path used where a tool's text
must stay below a fixed budget no matter what the backend returned. Unlike
the chunking orchestrator it returns the final string directly: an
optional one-line disclosure header, a blank line, then indented JSON.

The input must be acyclic. A self-referencing structure makes the
recursive field reduction recurse without bound; that is a caller error
and is not detected here.
"""

from __future__ import annotations

import json
import math
from typing import Any

from supabase_mcp.observability import get_logger
from supabase_mcp.response.config import LimiterConfig
from supabase_mcp.response.types import ValueShape

logger = get_logger(__name__)

#: Characters per token for limiter estimates. Deliberately simpler than
#: the analyzer's ratio; the two are independent approximations.
CHARS_PER_TOKEN = 4
#: Item count multiplier applied per shrinking round.
SHRINK_FACTOR = 0.7
#: Share of the budget given to a lone oversized array item.
SINGLE_ITEM_BUDGET = 0.8
#: Longest string kept intact by field reduction.
MAX_STRING_CHARS = 200
#: Shortest cut applied to a string, however small its budget.
MIN_STRING_CHARS = 32
#: Items kept from an array nested inside a reduced value.
NESTED_ARRAY_ITEMS = 5

ELLIPSIS = "..."


def estimate_tokens(text: str) -> int:
    """Estimated tokens of ``text`` at four characters per token."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def _dump(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False, default=str)


def _fallback_text(value: Any, config: LimiterConfig) -> str:
    # Used when the value nests deeper than JSON encoding can follow
    try:
        text = str(value)
    except RecursionError:
        return f"<unrenderable {type(value).__name__}>"
    limit = config.max_tokens * CHARS_PER_TOKEN
    if len(text) <= limit:
        return text
    return text[:limit] + ELLIPSIS


# =============================================================================
# Field reduction
# =============================================================================


def _shorten(text: str, max_tokens: int) -> str:
    limit = min(MAX_STRING_CHARS, max(MIN_STRING_CHARS, max_tokens * CHARS_PER_TOKEN))
    if len(text) <= limit:
        return text
    return text[:limit] + ELLIPSIS


def reduce_value(value: Any, max_tokens: int) -> Any:
    """Shrink the fields of ``value`` towards ``max_tokens``.

    Long strings are cut with ``...`` (at 200 characters, or sooner when
    the budget is small), arrays keep their first five items and
    objects split the budget evenly across their properties, with nested
    containers getting 80% of their share. Numbers, booleans and ``None``
    pass through.

    Args:
        value: Acyclic JSON-like value.
        max_tokens: Budget for this value.

    Returns:
        A new, reduced value; the input is not modified.

    Example:
        >>> reduce_value({"bio": "x" * 500, "tags": list(range(20))}, 1000)["tags"]
        [0, 1, 2, 3, 4]
    """
    shape = ValueShape.of(value)

    if shape is ValueShape.ARRAY:
        kept = list(value[:NESTED_ARRAY_ITEMS])
        per_item = max_tokens // max(len(kept), 1)
        return [reduce_value(item, per_item) for item in kept]

    if shape is ValueShape.OBJECT:
        if not value:
            return {}
        per_property = max_tokens // len(value)
        reduced = {}
        for key, item in value.items():
            if ValueShape.of(item) is ValueShape.PRIMITIVE:
                reduced[key] = reduce_value(item, per_property)
            else:
                reduced[key] = reduce_value(item, math.floor(per_property * 0.8))
        return reduced

    if isinstance(value, str):
        return _shorten(value, max_tokens)

    return value


def _drop_properties(obj: dict[Any, Any], max_tokens: int) -> tuple[dict[Any, Any], str]:
    """Drop trailing properties until ``obj`` fits, keeping at least one."""
    body = _dump(obj)
    kept = len(obj)
    while kept > 1 and estimate_tokens(body) > max_tokens:
        kept = math.floor(kept * SHRINK_FACTOR)
        obj = dict(list(obj.items())[:kept])
        body = _dump(obj)
    return obj, body


# =============================================================================
# Output
# =============================================================================


def _compose(
    body: str,
    context: str,
    original_tokens: int,
    config: LimiterConfig,
    disclosure: str | None = None,
) -> str:
    if not config.include_warning:
        return body

    parts = [context] if context else []
    if disclosure:
        parts.append(disclosure)
    if original_tokens > config.max_tokens:
        parts.append(
            f"(response size reduced from ~{original_tokens} "
            f"to ~{estimate_tokens(body)} tokens)"
        )
    if not parts:
        return body
    return f"{' '.join(parts)}\n\n{body}"


def _limit_array(items: list[Any], context: str, config: LimiterConfig) -> str:
    total = len(items)
    original_tokens = estimate_tokens(_dump(items))

    limited = items[: config.max_array_items]
    was_limited = total > len(limited)
    body = _dump(limited)

    # Each round strictly lowers the count until a single item is left
    while len(limited) > 1 and estimate_tokens(body) > config.max_tokens:
        limited = items[: math.floor(len(limited) * SHRINK_FACTOR)]
        body = _dump(limited)
        was_limited = True

    if len(limited) == 1 and estimate_tokens(body) > config.max_tokens:
        budget = math.floor(config.max_tokens * SINGLE_ITEM_BUDGET)
        single = reduce_value(items[0], budget)
        if ValueShape.of(single) is ValueShape.OBJECT:
            single, _ = _drop_properties(single, budget)
        limited = [single]
        body = _dump(limited)
        was_limited = True

    disclosure = None
    if was_limited:
        disclosure = f"(showing {len(limited)} of {total} items)"

    logger.debug(
        "Array response limited",
        context=context,
        total_items=total,
        shown_items=len(limited),
        original_tokens=original_tokens,
        final_tokens=estimate_tokens(body),
    )
    return _compose(body, context, original_tokens, config, disclosure)


def _limit_object(obj: dict[Any, Any], context: str, config: LimiterConfig) -> str:
    body = _dump(obj)
    original_tokens = estimate_tokens(body)
    if original_tokens <= config.max_tokens:
        return body

    reduced, body = _drop_properties(reduce_value(obj, config.max_tokens), config.max_tokens)

    if len(reduced) < len(obj):
        disclosure = f"(showing {len(reduced)} of {len(obj)} properties)"
    else:
        disclosure = "(properties limited for size)"

    logger.debug(
        "Object response limited",
        context=context,
        total_properties=len(obj),
        shown_properties=len(reduced),
        original_tokens=original_tokens,
        final_tokens=estimate_tokens(body),
    )
    return _compose(body, context, original_tokens, config, disclosure)


def limit_response_size(
    value: Any,
    context: str = "",
    config: LimiterConfig | None = None,
) -> str:
    """Render ``value`` as text that fits ``config.max_tokens``.

    Arrays are cut to ``max_array_items``, then shrunk by 30% per round
    until they fit or one item remains; a lone item that is still too
    large has its fields reduced (see :func:`reduce_value`). Objects over
    budget have their fields reduced, then lose trailing properties if
    needed. Primitives are cut at the character budget with ``...``.

    Args:
        value: Acyclic JSON-like value. Values JSON cannot encode natively
            (dates, decimals) are rendered with ``str()``. Values nested
            too deeply to encode come back as cut ``str()`` text, or a
            placeholder, under a "too deeply nested" header.
        context: Label for the header line, e.g. ``"SQL snippets"``.
        config: Limits. Defaults to ``LimiterConfig()``.

    Returns:
        The text. With ``include_warning`` it starts with a header such as
        ``"SQL snippets (showing 35 of 500 items) (response size reduced
        from ~41000 to ~9800 tokens)"`` followed by a blank line.

    Example:
        >>> text = limit_response_size(list(range(500)), "Numbers")
        >>> text.splitlines()[0]
        'Numbers (showing 50 of 500 items)'
    """
    config = config or LimiterConfig()
    try:
        return _limit(value, context, config)
    except RecursionError:
        logger.warning("Value too deeply nested to limit", context=context)
        return _compose(
            _fallback_text(value, config),
            context,
            0,
            config,
            "(structure too deeply nested to render)",
        )


def _limit(value: Any, context: str, config: LimiterConfig) -> str:
    shape = ValueShape.of(value)

    if shape is ValueShape.ARRAY:
        return _limit_array(list(value), context, config)
    if shape is ValueShape.OBJECT:
        return _limit_object(value, context, config)

    body = _dump(value)
    original_tokens = estimate_tokens(body)
    if original_tokens <= config.max_tokens:
        return body

    body = body[: config.max_tokens * CHARS_PER_TOKEN] + ELLIPSIS
    return _compose(body, context, original_tokens, config)
